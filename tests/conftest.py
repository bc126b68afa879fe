import os

# Base SQLite en mémoire partagée ; doit être défini avant l'import de config
os.environ["DATABASE_URL"] = "sqlite://"
os.environ["JWT_SECRET_KEY"] = "test-secret"
os.environ["BCRYPT_ROUNDS"] = "4"

from datetime import date

import pytest
from fastapi.testclient import TestClient

import main
from database.database import Base, SessionLocal, engine
from models.user import UserRegister
from services.auth_service import AuthService, create_access_token
from services.transaction_service import TransactionService


@pytest.fixture(autouse=True)
def reset_database():
    Base.metadata.drop_all(bind=engine)
    Base.metadata.create_all(bind=engine)
    yield


@pytest.fixture
def db():
    session = SessionLocal()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def client():
    return TestClient(main.app)


def make_user(db, name="Alice", email="alice@example.com", password="secret123"):
    return AuthService().register(db, UserRegister(name=name, email=email, password=password))


@pytest.fixture
def user(db):
    return make_user(db)


@pytest.fixture
def other_user(db):
    return make_user(db, name="Bob", email="bob@example.com")


@pytest.fixture
def auth_headers(user):
    return {"Authorization": f"Bearer {create_access_token(user.id)}"}


@pytest.fixture
def other_headers(other_user):
    return {"Authorization": f"Bearer {create_access_token(other_user.id)}"}


@pytest.fixture
def store():
    return TransactionService()


def tx(type="expense", category="Food", amount=100.0, description="Déjeuner", on=date(2024, 3, 1), **extra):
    fields = {"type": type, "category": category, "amount": amount, "description": description, "date": on}
    fields.update(extra)
    return fields
