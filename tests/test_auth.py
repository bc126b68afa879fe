from datetime import timedelta

import pytest
from jose import jwt

from conftest import make_user, tx
from database import crud
from services.auth_service import AuthService, create_access_token, decode_access_token, hash_password, verify_password
from services.errors import AuthenticationError


def test_password_hashing():
    hashed = hash_password("secret123")
    assert hashed != "secret123"
    assert verify_password("secret123", hashed)
    assert not verify_password("wrong", hashed)
    assert not verify_password("secret123", "not-a-bcrypt-hash")


def test_token_round_trip():
    assert decode_access_token(create_access_token(42)) == 42


def test_expired_token_is_rejected():
    token = create_access_token(1, expires_delta=timedelta(minutes=-1))
    with pytest.raises(AuthenticationError):
        decode_access_token(token)


def test_token_signed_with_another_key_is_rejected():
    token = jwt.encode({"sub": "1"}, "another-secret", algorithm="HS256")
    with pytest.raises(AuthenticationError):
        decode_access_token(token)


def test_register_login_me(client):
    registered = client.post("/api/auth/register",
                             json={"name": " Chloé ", "email": "Chloe@Example.com", "password": "motdepasse"})
    assert registered.status_code == 201
    body = registered.json()
    assert body["success"] is True
    assert body["user"]["name"] == "Chloé"
    assert body["user"]["email"] == "chloe@example.com"
    assert body["user"]["role"] == "user"

    login = client.post("/api/auth/login", json={"email": "chloe@example.com", "password": "motdepasse"})
    assert login.status_code == 200
    token = login.json()["token"]

    me = client.get("/api/auth/me", headers={"Authorization": f"Bearer {token}"})
    assert me.json()["data"]["email"] == "chloe@example.com"
    assert "password_hash" not in me.json()["data"]


def test_register_validation(client):
    response = client.post("/api/auth/register", json={"name": "", "email": "nope", "password": "123"})
    assert response.status_code == 400
    assert {e["field"] for e in response.json()["errors"]} == {"name", "email", "password"}


def test_register_duplicate_email(client, user):
    response = client.post("/api/auth/register",
                           json={"name": "Alice 2", "email": "alice@example.com", "password": "secret123"})
    assert response.status_code == 400
    assert response.json()["errors"][0]["field"] == "email"


def test_login_wrong_password(client, user):
    response = client.post("/api/auth/login", json={"email": "alice@example.com", "password": "badpass"})
    assert response.status_code == 401
    assert response.json()["success"] is False


@pytest.mark.parametrize("headers", [
    {},
    {"Authorization": "Bearer garbage"},
    {"Authorization": "Basic YWxpY2U6c2VjcmV0"},
])
def test_me_requires_valid_token(client, headers):
    response = client.get("/api/auth/me", headers=headers)
    assert response.status_code == 401
    assert response.json()["success"] is False


def test_token_of_deleted_user(client, db, user, auth_headers):
    crud.delete_user(db, user)
    assert client.get("/api/auth/me", headers=auth_headers).status_code == 401


def test_deleting_user_cascades_to_transactions(db, store, user, other_user):
    store.create(db, user, tx())
    store.create(db, other_user, tx())
    crud.delete_user(db, user)
    assert crud.count_transactions(db, other_user.id) == 1
    assert crud.count_transactions(db, user.id) == 0


def test_update_profile(client, auth_headers, other_user):
    response = client.put("/api/auth/updateprofile", json={"name": "Alice B."}, headers=auth_headers)
    assert response.json()["data"]["name"] == "Alice B."
    assert response.json()["data"]["email"] == "alice@example.com"

    taken = client.put("/api/auth/updateprofile", json={"email": "bob@example.com"}, headers=auth_headers)
    assert taken.status_code == 400


def test_update_password(client, auth_headers):
    wrong = client.put("/api/auth/updatepassword",
                       json={"currentPassword": "nope", "newPassword": "nouveau123"}, headers=auth_headers)
    assert wrong.status_code == 400

    ok = client.put("/api/auth/updatepassword",
                    json={"currentPassword": "secret123", "newPassword": "nouveau123"}, headers=auth_headers)
    assert ok.status_code == 200
    assert ok.json()["token"]

    assert client.post("/api/auth/login",
                       json={"email": "alice@example.com", "password": "nouveau123"}).status_code == 200


def test_logout_acknowledges(client, auth_headers):
    assert client.post("/api/auth/logout", headers=auth_headers).json()["success"] is True


def test_user_from_token_without_token(db):
    with pytest.raises(AuthenticationError):
        AuthService().user_from_token(db, None)


def test_make_user_stores_lowercase_email(db):
    assert make_user(db, email="MiXeD@Example.org").email == "mixed@example.org"


def test_password_limit_counts_bytes(client):
    # 40 caractères, mais 80 octets en UTF-8
    response = client.post("/api/auth/register",
                           json={"name": "Chloé", "email": "chloe@example.com", "password": "ư" * 40})
    assert response.status_code == 400
    assert [e["field"] for e in response.json()["errors"]] == ["password"]


def test_new_password_limit_counts_bytes(client, auth_headers):
    response = client.put("/api/auth/updatepassword",
                          json={"currentPassword": "secret123", "newPassword": "ư" * 40}, headers=auth_headers)
    assert response.status_code == 400
    assert [e["field"] for e in response.json()["errors"]] == ["newPassword"]


@pytest.mark.parametrize("email", ["alice@", "@example.com", "alice example@example.com", "alice@@example.com"])
def test_register_rejects_malformed_email(client, email):
    response = client.post("/api/auth/register", json={"name": "Alice", "email": email, "password": "secret123"})
    assert response.status_code == 400
    assert response.json()["errors"][0]["field"] == "email"


def test_login_ignores_email_case_and_spaces(client, user):
    response = client.post("/api/auth/login", json={"email": "  ALICE@Example.com ", "password": "secret123"})
    assert response.status_code == 200
