import os
from datetime import timedelta

import pytest
from sqlalchemy import func, select

from coursehub.models.email_token import EmailVerificationToken
from coursehub.models.refresh_token import RefreshToken
from coursehub.models.user import User
from coursehub.services import media, passwords
from coursehub.services.tokens import hash_token, utcnow
from conftest import PASSWORD

pytestmark = pytest.mark.anyio


def register_body(**overrides):
    body = {
        "first_name": "Ada",
        "last_name": "Lovelace",
        "email": "ada@example.com",
        "password": PASSWORD,
    }
    body.update(overrides)
    return body


async def login(client, email, password=PASSWORD):
    return await client.post("/api/auth/login", json={"email": email, "password": password})


async def test_register_creates_user_tokens_and_emails(client, db, sent_emails):
    r = await client.post("/api/auth/register", json=register_body(email="Ada@Example.com"))

    assert r.status_code == 201
    body = r.json()
    assert body["success"] is True
    assert body["user"]["email"] == "ada@example.com"
    assert body["user"]["role"] == "student"
    assert body["user"]["email_verified"] is False
    assert "password_hash" not in body["user"]
    assert body["tokens"]["access_token"] and body["tokens"]["refresh_token"]
    assert "accessToken" in r.headers.get("set-cookie", "")

    user = db.execute(select(User).where(User.email == "ada@example.com")).scalar_one()
    assert db.execute(
        select(EmailVerificationToken).where(EmailVerificationToken.user_id == user.id)
    ).scalar_one_or_none() is not None
    assert [m["subject"] for m in sent_emails] == ["Verify your email", "Welcome to CourseHub"]


async def test_register_rejects_invalid_body_before_handler(client, db):
    r = await client.post("/api/auth/register", json=register_body(password="weak", role="admin"))

    assert r.status_code == 400
    body = r.json()
    assert body["message"] == "Validation failed"
    assert {e["field"] for e in body["errors"]} == {"password", "role"}
    assert db.execute(select(func.count(User.id))).scalar_one() == 0


async def test_duplicate_registration_is_rejected_without_second_row(client, db):
    first = await client.post("/api/auth/register", json=register_body())
    second = await client.post("/api/auth/register", json=register_body(first_name="Other"))

    assert first.status_code == 201
    assert second.status_code == 400
    assert second.json() == {"success": False, "message": "User with this email already exists"}
    assert db.execute(select(func.count(User.id)).where(User.email == "ada@example.com")).scalar_one() == 1


@pytest.mark.parametrize("route", ["register", "login"])
async def test_refresh_row_expires_seven_days_after_issue(client, db, make_user, route):
    before = utcnow()
    if route == "register":
        r = await client.post("/api/auth/register", json=register_body())
    else:
        make_user(email="ada@example.com")
        r = await login(client, "ada@example.com")
    after = utcnow()
    assert r.status_code in (200, 201)

    row = db.execute(
        select(RefreshToken).where(RefreshToken.token == hash_token(r.json()["tokens"]["refresh_token"]))
    ).scalar_one()
    assert before + timedelta(days=7) - timedelta(seconds=1) <= row.expires_at
    assert row.expires_at <= after + timedelta(days=7) + timedelta(seconds=1)


async def test_login_wrong_password_and_unknown_email_look_the_same(client, make_user):
    make_user(email="ada@example.com")

    wrong = await login(client, "ada@example.com", "Wr0ng!Pass")
    unknown = await login(client, "nobody@example.com")

    assert wrong.status_code == unknown.status_code == 401
    assert wrong.json()["message"] == unknown.json()["message"] == "Invalid email or password"


async def test_login_with_unknown_email_still_verifies_a_hash(client, monkeypatch):
    calls = []
    original = passwords.password_context.verify

    def spy(secret, stored):
        calls.append(stored)
        return original(secret, stored)

    monkeypatch.setattr(passwords.password_context, "verify", spy)

    r = await login(client, "nobody@example.com")

    assert r.status_code == 401
    assert calls == [passwords.dummy_hash()]


async def test_login_rejects_deactivated_account(client, make_user):
    make_user(email="ada@example.com", is_active=False)
    r = await login(client, "ada@example.com")
    assert r.status_code == 401


async def test_login_records_last_login(client, db, make_user):
    user = make_user(email="ada@example.com")
    r = await login(client, "ada@example.com")
    assert r.status_code == 200
    db.expire_all()
    assert db.get(User, user.id).last_login is not None


async def test_refresh_rotation_invalidates_presented_token(client, make_user):
    make_user(email="ada@example.com")
    t1 = (await login(client, "ada@example.com")).json()["tokens"]["refresh_token"]

    first = await client.post("/api/auth/refresh", json={"refresh_token": t1})
    assert first.status_code == 200
    t2 = first.json()["tokens"]["refresh_token"]
    assert t2 != t1

    replay = await client.post("/api/auth/refresh", json={"refresh_token": t1})
    assert replay.status_code == 401
    assert replay.json()["message"] == "Invalid or expired refresh token"

    assert (await client.post("/api/auth/refresh", json={"refresh_token": t2})).status_code == 200


async def test_refresh_prefers_cookie(client, make_user):
    make_user(email="ada@example.com")
    token = (await login(client, "ada@example.com")).json()["tokens"]["refresh_token"]

    r = await client.post(
        "/api/auth/refresh",
        headers={"Cookie": f"refreshToken={token}"},
        json={"refresh_token": "ignored"},
    )
    assert r.status_code == 200


async def test_refresh_requires_a_token(client):
    r = await client.post("/api/auth/refresh")
    assert r.status_code == 401
    assert r.json()["message"] == "Refresh token required"


async def test_refresh_rejects_deactivated_user(client, db, make_user):
    user = make_user(email="ada@example.com")
    token = (await login(client, "ada@example.com")).json()["tokens"]["refresh_token"]

    user.is_active = False
    db.commit()

    assert (await client.post("/api/auth/refresh", json={"refresh_token": token})).status_code == 401


async def test_logout_revokes_refresh_token(client, make_user):
    make_user(email="ada@example.com")
    tokens = (await login(client, "ada@example.com")).json()["tokens"]
    headers = {"Authorization": f"Bearer {tokens['access_token']}"}

    r = await client.post("/api/auth/logout", headers=headers, json={"refresh_token": tokens["refresh_token"]})
    assert r.status_code == 200

    replay = await client.post("/api/auth/refresh", json={"refresh_token": tokens["refresh_token"]})
    assert replay.status_code == 401


async def test_profile_never_exposes_password_hash(client, make_user, auth_header):
    user = make_user(email="ada@example.com", bio="Hello")
    r = await client.get("/api/auth/profile", headers=auth_header(user))

    assert r.status_code == 200
    assert r.json()["user"]["email"] == "ada@example.com"
    assert "password_hash" not in r.json()["user"]


async def test_update_profile_splits_name_and_checks_email(client, make_user, auth_header):
    user = make_user(email="ada@example.com")
    make_user(email="taken@example.com")

    r = await client.put(
        "/api/auth/profile",
        headers=auth_header(user),
        json={"name": "Grace Brewster Hopper", "bio": "Compilers"},
    )
    assert r.status_code == 200
    assert r.json()["user"]["first_name"] == "Grace"
    assert r.json()["user"]["last_name"] == "Brewster Hopper"
    assert r.json()["user"]["bio"] == "Compilers"

    taken = await client.put("/api/auth/profile", headers=auth_header(user), json={"email": "taken@example.com"})
    assert taken.status_code == 400
    assert taken.json()["message"] == "Email already exists"


async def test_change_password_revokes_every_refresh_token(client, make_user, auth_header):
    user = make_user(email="ada@example.com")
    t1 = (await login(client, "ada@example.com")).json()["tokens"]["refresh_token"]
    t2 = (await login(client, "ada@example.com")).json()["tokens"]["refresh_token"]

    bad = await client.put(
        "/api/auth/change-password",
        headers=auth_header(user),
        json={"current_password": "Wr0ng!Pass", "new_password": "N3w!Passw", "confirm_password": "N3w!Passw"},
    )
    assert bad.status_code == 400

    same = await client.put(
        "/api/auth/change-password",
        headers=auth_header(user),
        json={"current_password": PASSWORD, "new_password": PASSWORD, "confirm_password": PASSWORD},
    )
    assert same.status_code == 400

    ok = await client.put(
        "/api/auth/change-password",
        headers=auth_header(user),
        json={"current_password": PASSWORD, "new_password": "N3w!Passw", "confirm_password": "N3w!Passw"},
    )
    assert ok.status_code == 200

    for token in (t1, t2):
        assert (await client.post("/api/auth/refresh", json={"refresh_token": token})).status_code == 401
    assert (await login(client, "ada@example.com", "N3w!Passw")).status_code == 200


async def test_delete_account_requires_password(client, db, make_user, auth_header, sent_emails):
    user = make_user(email="ada@example.com")

    wrong = await client.request(
        "DELETE", "/api/auth/account", headers=auth_header(user), json={"password": "Wr0ng!Pass"}
    )
    assert wrong.status_code == 400

    r = await client.request("DELETE", "/api/auth/account", headers=auth_header(user), json={"password": PASSWORD})
    assert r.status_code == 200
    assert db.execute(select(func.count(User.id))).scalar_one() == 0
    assert sent_emails[-1]["subject"] == "Your account has been deleted"


async def test_profile_requires_authentication(client):
    r = await client.get("/api/auth/profile")
    assert r.status_code == 401
    assert r.json() == {"success": False, "message": "Access token required"}


async def test_profile_picture_goes_to_app_cdn_and_local_copy_is_removed(
    app, client, make_user, auth_header, settings, monkeypatch
):
    user = make_user()
    seen = []

    def fake_upload(cdn, path, user_id):
        seen.append((cdn, user_id))
        return "https://cdn/avatar.png"

    monkeypatch.setattr(media, "upload_profile_picture", fake_upload)

    r = await client.post(
        "/api/auth/upload-profile-picture",
        headers=auth_header(user),
        files={"profile_picture": ("me.png", b"\x89PNG", "image/png")},
    )

    assert r.status_code == 200
    assert r.json()["user"]["avatar_url"] == "https://cdn/avatar.png"
    assert seen == [(app.state.media_cdn, user.id)]
    assert os.listdir(settings.uploads_dir) == []
