from bson import ObjectId

from auth import create_access_token, create_admin_user, has_role, hash_password, verify_password
from schemas import User


def test_register_login_and_me(client):
    resp = client.post("/api/auth/register", json={"name": "Kavin", "email": "Kavin@Example.com", "password": "secret123"})
    assert resp.status_code == 201
    assert resp.json()["data"]["email"] == "kavin@example.com"
    assert resp.json()["data"]["role"] == "user"

    resp = client.post("/api/auth/login", json={"email": "kavin@example.com", "password": "secret123"})
    assert resp.status_code == 200
    token = resp.json()["data"]["token"]

    resp = client.get("/api/auth/me", headers={"Authorization": f"Bearer {token}"})
    assert resp.status_code == 200
    assert resp.json()["data"]["email"] == "kavin@example.com"


def test_register_duplicate_email(client):
    body = {"name": "Kavin", "email": "kavin@example.com", "password": "secret123"}
    assert client.post("/api/auth/register", json=body).status_code == 201
    resp = client.post("/api/auth/register", json=body)
    assert resp.status_code == 400
    assert resp.json() == {"success": False, "error": "Email already registered"}


def test_register_rejects_short_password(client):
    resp = client.post("/api/auth/register", json={"name": "K", "email": "k@example.com", "password": "123"})
    assert resp.status_code == 400
    assert resp.json()["success"] is False


def test_login_wrong_password(client):
    client.post("/api/auth/register", json={"name": "Kavin", "email": "kavin@example.com", "password": "secret123"})
    resp = client.post("/api/auth/login", json={"email": "kavin@example.com", "password": "wrong-pass"})
    assert resp.status_code == 401
    assert resp.json()["error"] == "Invalid credentials"


def test_missing_token_is_401(client):
    resp = client.get("/api/auth/me")
    assert resp.status_code == 401
    assert resp.json()["error"] == "Access denied. No token provided."


def test_garbage_token_is_401(client):
    resp = client.get("/api/auth/me", headers={"Authorization": "Bearer not-a-jwt"})
    assert resp.status_code == 401
    assert resp.json()["error"] == "Invalid token"


def test_expired_token_is_401(client):
    token = create_access_token({"_id": ObjectId(), "email": "old@example.com", "role": "admin"}, expires_hours=-1)
    resp = client.get("/api/auth/me", headers={"Authorization": f"Bearer {token}"})
    assert resp.status_code == 401
    assert resp.json()["error"] == "Token expired"


def test_token_cookie_is_accepted(client):
    token = create_access_token({"_id": ObjectId(), "email": "cookie@example.com", "role": "user"})
    client.cookies.set("token", token)
    resp = client.get("/api/auth/me")
    assert resp.status_code == 200
    assert resp.json()["data"]["email"] == "cookie@example.com"


def test_user_and_moderator_are_forbidden_on_admin_routes(client, user_headers):
    assert client.get("/api/admin/stats", headers=user_headers).status_code == 403
    token = create_access_token({"_id": ObjectId(), "email": "mod@example.com", "role": "moderator"})
    resp = client.get("/api/admin/stats", headers={"Authorization": f"Bearer {token}"})
    assert resp.status_code == 403


def test_super_admin_passes_admin_check(client):
    token = create_access_token({"_id": ObjectId(), "email": "root@example.com", "role": "super_admin"})
    resp = client.get("/api/admin/stats", headers={"Authorization": f"Bearer {token}"})
    assert resp.status_code == 200


def test_has_role_hierarchy():
    assert has_role({"role": "super_admin"}, "admin")
    assert has_role({"role": "admin"}, "moderator")
    assert not has_role({"role": "moderator"}, "admin")
    assert not has_role({"role": "unknown"}, "user")
    assert not has_role(None, "user")


def test_create_admin_user_creates_then_promotes(mongo):
    uid = create_admin_user(mongo, "boss@example.com", "pw-one")
    user = mongo["user"].find_one({"email": "boss@example.com"})
    assert str(user["_id"]) == uid
    assert user["role"] == "admin"

    mongo["user"].update_one({"_id": user["_id"]}, {"$set": {"role": "user"}})
    assert create_admin_user(mongo, "boss@example.com", "pw-two") == uid
    user = mongo["user"].find_one({"_id": user["_id"]})
    assert user["role"] == "admin"
    assert verify_password("pw-two", user["password_hash"])


def test_registered_user_matches_schema(client, mongo):
    client.post("/api/auth/register", json={"name": "Kavin", "email": "kavin@example.com", "password": "secret123"})
    stored = mongo["user"].find_one({"email": "kavin@example.com"})
    user = User(**{k: v for k, v in stored.items() if k != "_id"})
    assert user.role == "user"
    assert verify_password("secret123", user.password_hash)


def test_password_hash_is_sha256_hex(client, mongo):
    digest = hash_password("secret123")
    assert digest == "fcf730b6d95236ecd3c9fc2d92d7b6b2bb061514961aec041d6c7a7192f592e4"
    assert hash_password("secret123") == digest
    assert not verify_password("Secret123", digest)

    client.post("/api/auth/register", json={"name": "Kavin", "email": "kavin@example.com", "password": "secret123"})
    assert mongo["user"].find_one({"email": "kavin@example.com"})["password_hash"] == digest
