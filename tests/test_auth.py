import re
import pytest
from tests.helpers import auth_headers, register_user, strong_pass, url_prefix


@pytest.mark.asyncio
async def test_register_returns_user_and_token(ac_client):
    resp = await ac_client.post(f"{url_prefix}/auth/register",
                                json={"email": "  Riya@Shopper.io ", "password": strong_pass, "name": "Riya"})
    assert resp.status_code == 201, resp.text
    body = resp.json()
    assert body["success"] is True
    assert body["status"] == "ok"
    user = body["data"]["user"]
    assert user["email"] == "riya@shopper.io"
    assert user["role"] == "buyer"
    assert re.fullmatch(r"REF-[A-Z0-9]{6}", user["referral_code"])
    assert body["data"]["access_token"]


@pytest.mark.asyncio
async def test_duplicate_email_rejected(ac_client):
    await register_user(ac_client, "dup@shopper.io")
    resp = await ac_client.post(f"{url_prefix}/auth/register",
                                json={"email": "dup@shopper.io", "password": strong_pass, "name": "Again"})
    assert resp.status_code == 400
    body = resp.json()
    assert body["success"] is False
    assert body["message"] == "User already exists"
    assert body["error"]["code"] == "HTTP_400"


@pytest.mark.asyncio
async def test_weak_password_rejected(ac_client):
    resp = await ac_client.post(f"{url_prefix}/auth/register",
                                json={"email": "weak@shopper.io", "password": "short", "name": "Weak"})
    assert resp.status_code == 400


@pytest.mark.asyncio
async def test_missing_field_is_validation_error(ac_client):
    resp = await ac_client.post(f"{url_prefix}/auth/register", json={"email": "nofields@shopper.io"})
    assert resp.status_code == 400
    body = resp.json()
    assert body["error"]["code"] == "VALIDATION_ERROR"
    assert body["success"] is False


@pytest.mark.asyncio
async def test_referral_sets_referred_by_and_credits_referrer(ac_client):
    referrer = await register_user(ac_client, "referrer@shopper.io")
    code = referrer["user"]["referral_code"]

    invited = await register_user(ac_client, "invited@shopper.io", referral_code=code.lower())
    assert invited["user"]["referred_by"] == code

    me = await ac_client.get(f"{url_prefix}/users/me", headers=referrer["headers"])
    assert me.status_code == 200
    assert me.json()["data"]["user"]["wallet"] == 100
    assert me.json()["data"]["user"]["referrals"] == 1


@pytest.mark.asyncio
async def test_unknown_referral_code_rejected(ac_client):
    resp = await ac_client.post(f"{url_prefix}/auth/register",
                                json={"email": "ghost@shopper.io", "password": strong_pass, "name": "Ghost",
                                      "referral_code": "REF-ZZZZZZ"})
    assert resp.status_code == 400
    assert resp.json()["message"] == "Invalid referral code"


@pytest.mark.asyncio
async def test_login_success_and_failure(ac_client):
    await register_user(ac_client, "login@shopper.io")

    ok = await ac_client.post(f"{url_prefix}/auth/login", json={"email": "LOGIN@shopper.io", "password": strong_pass})
    assert ok.status_code == 200, ok.text
    token = ok.json()["data"]["access_token"]
    me = await ac_client.get(f"{url_prefix}/users/me", headers=auth_headers(token))
    assert me.status_code == 200
    assert me.json()["data"]["user"]["email"] == "login@shopper.io"

    padded = await ac_client.post(f"{url_prefix}/auth/login", json={"email": " login@shopper.io  ", "password": strong_pass})
    assert padded.status_code == 200, padded.text

    bad = await ac_client.post(f"{url_prefix}/auth/login", json={"email": "login@shopper.io", "password": "Wrong1234"})
    assert bad.status_code == 401
    assert bad.json()["message"] == "Invalid credentials"


@pytest.mark.asyncio
async def test_protected_route_requires_token(ac_client):
    resp = await ac_client.get(f"{url_prefix}/users/me")
    assert resp.status_code == 401
    assert resp.json()["error"]["code"] == "INVALID_AUTH"

    resp = await ac_client.get(f"{url_prefix}/users/me", headers=auth_headers("not-a-jwt"))
    assert resp.status_code == 401


@pytest.mark.asyncio
async def test_request_id_is_echoed(ac_client):
    resp = await ac_client.get(f"{url_prefix}/health", headers={"X-Request-ID": "req-123"})
    assert resp.status_code == 200
    assert resp.json() == {"status": "healthy"}
    assert resp.headers["X-Request-ID"] == "req-123"
