"""
Shared fixtures: one app per test on an in-memory SQLite database.

Outbound e-mail is captured instead of sent. The test client forgets cookies
after every response so each request authenticates only with what the test
passes explicitly (Bearer header, body or Cookie header).
"""
import httpx
import pytest
from httpx import ASGITransport

from coursehub.config import Settings
from coursehub.database import create_tables
from coursehub.main import create_app
from coursehub.models.user import User
from coursehub.services import mailer
from coursehub.services.passwords import hash_password
from coursehub.services.tokens import create_access_token

PASSWORD = "Str0ng!Pass"


@pytest.fixture
def anyio_backend():
    return "asyncio"


@pytest.fixture
def settings(tmp_path):
    return Settings(
        _env_file=None,
        app_env="test",
        database_url="sqlite://",
        jwt_secret="test-access-secret",
        jwt_refresh_secret="test-refresh-secret",
        uploads_dir=str(tmp_path / "uploads"),
        resend_api_key="",
        cloudinary_cloud_name="",
    )


@pytest.fixture
def app(settings):
    app = create_app(settings)
    # ASGITransport does not run the lifespan
    create_tables(app.state.engine)
    return app


@pytest.fixture
def db(app):
    session = app.state.session_factory()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture(autouse=True)
def sent_emails(monkeypatch):
    outbox = []

    async def fake_send_email(to, subject, html, settings):
        outbox.append({"to": to, "subject": subject, "html": html})
        return {"id": f"test-{len(outbox)}"}

    monkeypatch.setattr(mailer, "send_email", fake_send_email)
    return outbox


@pytest.fixture
async def client(app):
    async def forget_cookies(response):
        c.cookies.clear()

    async with httpx.AsyncClient(
        transport=ASGITransport(app=app),
        base_url="http://test",
        event_hooks={"response": [forget_cookies]},
    ) as c:
        yield c


@pytest.fixture
def make_user(db):
    counter = {"n": 0}

    def _make(role="student", email=None, password=PASSWORD, is_active=True, **fields):
        counter["n"] += 1
        user = User(
            first_name=fields.pop("first_name", "Test"),
            last_name=fields.pop("last_name", "User"),
            email=email or f"{role}{counter['n']}@example.com",
            password_hash=hash_password(password),
            role=role,
            is_active=is_active,
            **fields,
        )
        db.add(user)
        db.commit()
        db.refresh(user)
        return user

    return _make


@pytest.fixture
def auth_header(settings):
    def _header(user):
        return {"Authorization": f"Bearer {create_access_token(user.id, settings)}"}

    return _header
