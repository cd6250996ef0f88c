from datetime import timedelta

from groupsettle.auth import create_access_token


def test_create_user(client):
    res = client.post("/api/users", json={"email": "new@example.com", "name": "New User"})
    assert res.status_code == 200
    data = res.json()
    assert data["email"] == "new@example.com"
    assert data["name"] == "New User"


def test_create_user_duplicate(client):
    client.post("/api/users", json={"email": "dup@example.com"})
    res = client.post("/api/users", json={"email": "dup@example.com"})
    assert res.status_code == 400
    assert "already registered" in res.json()["detail"]


def test_me(client, auth_headers):
    res = client.get("/api/users/me", headers=auth_headers)
    assert res.status_code == 200
    assert res.json()["email"] == "test@example.com"


def test_protected_route_no_token(client):
    res = client.get("/api/groups")
    assert res.status_code == 401


def test_garbage_token(client):
    res = client.get("/api/groups", headers={"Authorization": "Bearer not-a-jwt"})
    assert res.status_code == 401


def test_expired_token(client, user_id):
    token = create_access_token(data={"sub": str(user_id)}, expires_delta=timedelta(minutes=-5))
    res = client.get("/api/groups", headers={"Authorization": f"Bearer {token}"})
    assert res.status_code == 401


def test_token_for_missing_user(client):
    token = create_access_token(data={"sub": "999"})
    res = client.get("/api/users/me", headers={"Authorization": f"Bearer {token}"})
    assert res.status_code == 401
