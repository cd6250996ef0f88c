import pytest

from groupsettle.models import Settlement
from groupsettle.routers import settlements as settlements_router


@pytest.fixture
def setup_group(client, auth_headers, user_id, second_user):
    res = client.post("/api/groups", json={"name": "Test", "member_ids": []}, headers=auth_headers)
    gid = res.json()["id"]
    client.post(f"/api/groups/{gid}/members", json={"email": "user2@example.com"}, headers=auth_headers)
    return gid, user_id, second_user[0]["id"]


def _balances(client, headers, gid):
    res = client.get(f"/api/settlements/group/{gid}/balance", headers=headers)
    assert res.status_code == 200
    data = res.json()
    return {b["user_id"]: b["balance"] for b in data["balances"]}, data


def _dinner(client, headers, gid, payer, participants, amount=100.0):
    return client.post("/api/expenses", json={
        "group_id": gid, "payer_id": payer, "amount": amount,
        "description": "Dinner", "participant_ids": participants
    }, headers=headers)


def test_settlements_balanced(client, auth_headers, setup_group):
    gid, uid1, uid2 = setup_group
    _dinner(client, auth_headers, gid, uid1, [uid1, uid2])
    balances, data = _balances(client, auth_headers, gid)
    assert balances == {uid1: "50.00", uid2: "-50.00"}
    assert data["settlements"] == [{"from_user_id": uid2, "to_user_id": uid1, "amount": "50.00"}]
    assert data["total_expenses"] == "100.00"
    paid = {b["user_id"]: b["paid"] for b in data["balances"]}
    owed = {b["user_id"]: b["owed"] for b in data["balances"]}
    assert paid[uid1] == "100.00"
    assert owed[uid2] == "50.00"


def test_three_way_split_scenario(client, auth_headers, user_id, second_user, third_user):
    uid2, uid3 = second_user[0]["id"], third_user[0]["id"]
    gid = client.post("/api/groups", json={
        "name": "Trio", "member_ids": [uid2, uid3]
    }, headers=auth_headers).json()["id"]
    _dinner(client, auth_headers, gid, user_id, [user_id, uid2, uid3], amount="90.00")
    balances, data = _balances(client, auth_headers, gid)
    assert balances == {user_id: "60.00", uid2: "-30.00", uid3: "-30.00"}
    assert data["settlements"] == [
        {"from_user_id": uid2, "to_user_id": user_id, "amount": "30.00"},
        {"from_user_id": uid3, "to_user_id": user_id, "amount": "30.00"},
    ]


def test_pending_settlement_does_not_move_balance(client, auth_headers, setup_group, second_user):
    gid, uid1, uid2 = setup_group
    _dinner(client, auth_headers, gid, uid1, [uid1, uid2], amount=60.0)
    res = client.post("/api/settlements", json={
        "group_id": gid, "to_user_id": uid1, "amount": "30.00"
    }, headers=second_user[1])
    assert res.status_code == 200
    sid = res.json()["id"]
    assert res.json()["status"] == "pending"

    balances, _ = _balances(client, auth_headers, gid)
    assert balances == {uid1: "30.00", uid2: "-30.00"}

    res = client.patch(f"/api/settlements/{sid}", json={"status": "completed"}, headers=second_user[1])
    assert res.status_code == 200
    assert res.json()["status"] == "completed"
    assert res.json()["completed_at"] is not None

    balances, data = _balances(client, auth_headers, gid)
    assert balances == {uid1: "0.00", uid2: "0.00"}
    assert data["settlements"] == []


def test_canceled_is_terminal(client, auth_headers, setup_group):
    gid, uid1, uid2 = setup_group
    res = client.post("/api/settlements", json={
        "group_id": gid, "from_user_id": uid2, "to_user_id": uid1, "amount": "5.00"
    }, headers=auth_headers)
    sid = res.json()["id"]
    res = client.patch(f"/api/settlements/{sid}", json={"status": "canceled"}, headers=auth_headers)
    assert res.status_code == 200
    res = client.patch(f"/api/settlements/{sid}", json={"status": "completed"}, headers=auth_headers)
    assert res.status_code == 409

    history = client.get(f"/api/settlements/group/{gid}", headers=auth_headers).json()
    assert [s["status"] for s in history] == ["canceled"]


def test_completed_cannot_be_canceled(client, auth_headers, setup_group):
    gid, uid1, uid2 = setup_group
    res = client.post("/api/settlements", json={
        "group_id": gid, "to_user_id": uid2, "amount": "5.00", "status": "completed"
    }, headers=auth_headers)
    sid = res.json()["id"]
    res = client.patch(f"/api/settlements/{sid}", json={"status": "canceled"}, headers=auth_headers)
    assert res.status_code == 409


def test_only_parties_may_update(client, auth_headers, setup_group, third_user):
    gid, uid1, uid2 = setup_group
    client.post(f"/api/groups/{gid}/members", json={"email": "user3@example.com"}, headers=auth_headers)
    res = client.post("/api/settlements", json={
        "group_id": gid, "to_user_id": uid2, "amount": "5.00"
    }, headers=auth_headers)
    sid = res.json()["id"]
    res = client.patch(f"/api/settlements/{sid}", json={"status": "completed"}, headers=third_user[1])
    assert res.status_code == 403


def test_settlement_validation(client, auth_headers, setup_group):
    gid, uid1, uid2 = setup_group
    res = client.post("/api/settlements", json={
        "group_id": gid, "to_user_id": uid1, "amount": "5.00"
    }, headers=auth_headers)
    assert res.status_code == 400
    res = client.post("/api/settlements", json={
        "group_id": gid, "to_user_id": uid2, "amount": "0"
    }, headers=auth_headers)
    assert res.status_code == 422
    res = client.post("/api/settlements", json={
        "group_id": gid, "to_user_id": 999, "amount": "5.00"
    }, headers=auth_headers)
    assert res.status_code == 400


def test_deleted_expense_leaves_balance(client, auth_headers, setup_group):
    gid, uid1, uid2 = setup_group
    eid = _dinner(client, auth_headers, gid, uid1, [uid1, uid2]).json()["id"]
    client.delete(f"/api/expenses/{eid}", headers=auth_headers)
    balances, data = _balances(client, auth_headers, gid)
    assert balances == {uid1: "0.00", uid2: "0.00"}
    assert data["total_expenses"] == "0.00"


def test_edited_expense_replaces_original(client, auth_headers, setup_group):
    gid, uid1, uid2 = setup_group
    eid = _dinner(client, auth_headers, gid, uid1, [uid1, uid2]).json()["id"]
    client.patch(f"/api/expenses/{eid}", json={"amount": "40.00"}, headers=auth_headers)
    balances, _ = _balances(client, auth_headers, gid)
    assert balances == {uid1: "20.00", uid2: "-20.00"}


def test_my_summary(client, auth_headers, setup_group, second_user):
    gid, uid1, uid2 = setup_group
    _dinner(client, auth_headers, gid, uid1, [uid1, uid2])
    other = client.post("/api/groups", json={"name": "Other", "member_ids": [uid2]}, headers=auth_headers).json()["id"]
    _dinner(client, auth_headers, other, uid2, [uid1, uid2], amount="20.00")

    res = client.get("/api/settlements/summary/me", headers=auth_headers)
    assert res.status_code == 200
    data = res.json()
    assert {g["group_id"]: g["balance"] for g in data["groups"]} == {gid: "50.00", other: "-10.00"}
    assert data["total_balance"] == "40.00"


def test_dashboard(client, auth_headers, setup_group):
    gid, uid1, uid2 = setup_group
    client.post("/api/expenses", json={
        "group_id": gid, "payer_id": uid1, "amount": 60.0,
        "description": "Lunch", "participant_ids": [uid1, uid2], "category": "food"
    }, headers=auth_headers)
    client.post("/api/expenses", json={
        "group_id": gid, "payer_id": uid1, "amount": 40.0,
        "description": "Taxi", "participant_ids": [uid1, uid2], "category": "transport"
    }, headers=auth_headers)
    res = client.get(f"/api/settlements/dashboard/{gid}", headers=auth_headers)
    assert res.status_code == 200
    data = res.json()
    assert data["total_expenses"] == "100.00"
    assert data["expense_count"] == 2
    assert data["category_totals"]["food"] == "60.00"
    assert data["category_totals"]["transport"] == "40.00"
    assert data["your_balance"] == "50.00"
    spending = {m["user_id"]: m["paid"] for m in data["member_spending"]}
    assert spending == {uid1: "100.00", uid2: "0.00"}


def test_status_changed_between_read_and_write(client, auth_headers, setup_group, db_session, monkeypatch):
    gid, uid1, uid2 = setup_group
    res = client.post("/api/settlements", json={
        "group_id": gid, "to_user_id": uid2, "amount": "5.00"
    }, headers=auth_headers)
    sid = res.json()["id"]

    real_transition = settlements_router.transition

    def cancel_first(current, requested):
        # another request cancels the settlement after this one has read it
        row = db_session.query(Settlement).filter(Settlement.id == sid).one()
        row.status = "canceled"
        db_session.commit()
        return real_transition(current, requested)

    monkeypatch.setattr(settlements_router, "transition", cancel_first)
    res = client.patch(f"/api/settlements/{sid}", json={"status": "completed"}, headers=auth_headers)
    assert res.status_code == 409

    monkeypatch.undo()
    res = client.get(f"/api/settlements/{sid}", headers=auth_headers)
    assert res.json()["status"] == "canceled"
    assert res.json()["completed_at"] is None


def test_my_settlements_across_groups(client, auth_headers, setup_group, second_user, third_user):
    gid, uid1, uid2 = setup_group
    uid3 = third_user[0]["id"]
    other = client.post("/api/groups", json={"name": "Other", "member_ids": [uid3]}, headers=auth_headers).json()["id"]
    first = client.post("/api/settlements", json={
        "group_id": gid, "to_user_id": uid2, "amount": "5.00"
    }, headers=auth_headers).json()["id"]
    second = client.post("/api/settlements", json={
        "group_id": other, "from_user_id": uid3, "to_user_id": uid1, "amount": "7.00"
    }, headers=auth_headers).json()["id"]

    res = client.get("/api/settlements/me", headers=auth_headers)
    assert res.status_code == 200
    assert [s["id"] for s in res.json()] == [second, first]

    res = client.get("/api/settlements/me", headers=second_user[1])
    assert [s["id"] for s in res.json()] == [first]


def test_get_settlement_only_for_parties(client, auth_headers, setup_group, third_user):
    gid, uid1, uid2 = setup_group
    client.post(f"/api/groups/{gid}/members", json={"email": "user3@example.com"}, headers=auth_headers)
    sid = client.post("/api/settlements", json={
        "group_id": gid, "to_user_id": uid2, "amount": "5.00"
    }, headers=auth_headers).json()["id"]
    assert client.get(f"/api/settlements/{sid}", headers=auth_headers).status_code == 200
    assert client.get(f"/api/settlements/{sid}", headers=third_user[1]).status_code == 403


def test_huge_settlement_amount_rejected(client, auth_headers, setup_group):
    gid, uid1, uid2 = setup_group
    res = client.post("/api/settlements", json={
        "group_id": gid, "to_user_id": uid2, "amount": "1E+30"
    }, headers=auth_headers)
    assert res.status_code == 422
