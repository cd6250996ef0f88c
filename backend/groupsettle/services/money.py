"""Fixed-point money helpers. Amounts are stored and computed as integer cents."""
from decimal import Decimal, InvalidOperation, ROUND_HALF_UP

CENT = Decimal("0.01")
# largest amount a single expense, share or settlement may carry
MAX_AMOUNT = Decimal("9999999999.99")


def to_minor_units(amount: Decimal) -> int:
    """Convert a decimal currency amount to cents. More than two decimals or out of range is an error."""
    try:
        amount = Decimal(amount)
        quantized = amount.quantize(CENT)
    except InvalidOperation:
        raise ValueError(f"Amount {amount} is out of range")
    if quantized != amount:
        raise ValueError(f"Amount {amount} has more than two decimal places")
    if abs(quantized) > MAX_AMOUNT:
        raise ValueError(f"Amount {amount} is out of range")
    return int(quantized * 100)


def from_minor_units(cents: int) -> Decimal:
    return (Decimal(cents) / 100).quantize(CENT)


def format_amount(cents: int) -> str:
    return f"{from_minor_units(cents):.2f}"


def round_half_up(value: Decimal) -> int:
    return int(value.quantize(Decimal("1"), rounding=ROUND_HALF_UP))
