"""FastAPI app entrypoint."""
import structlog
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from groupsettle.config import get_settings
from groupsettle.database import engine, Base
from groupsettle.errors import InvalidSplit, InvalidStatusTransition, SettlementError, UnknownMember
from groupsettle.logging_setup import configure_logging
from groupsettle.routers import users, groups, expenses, settlements

settings = get_settings()
configure_logging(settings)
logger = structlog.get_logger(__name__)

Base.metadata.create_all(bind=engine)

app = FastAPI(
    title="Group Settle API",
    description="Split group expenses, record settlements, and see who owes whom.",
    version="1.0.0",
)
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=False,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(users.router, prefix="/api")
app.include_router(groups.router, prefix="/api")
app.include_router(expenses.router, prefix="/api")
app.include_router(settlements.router, prefix="/api")

# stored records that no longer balance are a conflict, not a bad request
ERROR_STATUS = {
    InvalidSplit: 409,
    UnknownMember: 409,
    InvalidStatusTransition: 409,
}


@app.exception_handler(SettlementError)
async def settlement_error_handler(request: Request, exc: SettlementError):
    status_code = ERROR_STATUS.get(type(exc), 400)
    logger.warning(
        "settlement_error",
        path=request.url.path,
        error=type(exc).__name__,
        detail=exc.message,
    )
    return JSONResponse(status_code=status_code, content={"detail": exc.message})


@app.get("/")
def root():
    return {"message": "Group Settle API", "docs": "/docs"}
