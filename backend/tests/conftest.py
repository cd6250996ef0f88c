import os

os.environ.setdefault("GROUPSETTLE_DATABASE_URL", "sqlite:///./test.db")

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

from groupsettle.auth import create_access_token
from groupsettle.database import Base, get_db
from groupsettle.main import app

SQLALCHEMY_DATABASE_URL = "sqlite:///./test.db"

engine = create_engine(SQLALCHEMY_DATABASE_URL, connect_args={"check_same_thread": False})
TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)


def override_get_db():
    db = TestingSessionLocal()
    try:
        yield db
    finally:
        db.close()


app.dependency_overrides[get_db] = override_get_db


@pytest.fixture(autouse=True)
def setup_db():
    Base.metadata.create_all(bind=engine)
    yield
    Base.metadata.drop_all(bind=engine)


@pytest.fixture
def client():
    return TestClient(app)


def make_user(client, email, name=None):
    res = client.post("/api/users", json={"email": email, "name": name})
    assert res.status_code == 200
    user = res.json()
    token = create_access_token(data={"sub": str(user["id"])})
    return user, {"Authorization": f"Bearer {token}"}


@pytest.fixture
def current_user(client):
    return make_user(client, "test@example.com", "Test User")


@pytest.fixture
def auth_headers(current_user):
    return current_user[1]


@pytest.fixture
def user_id(current_user):
    return current_user[0]["id"]


@pytest.fixture
def second_user(client):
    return make_user(client, "user2@example.com", "User Two")


@pytest.fixture
def third_user(client):
    return make_user(client, "user3@example.com", "User Three")


@pytest.fixture
def db_session():
    db = TestingSessionLocal()
    try:
        yield db
    finally:
        db.close()
