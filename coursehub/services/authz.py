import logging

from fastapi import Depends, Request
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.orm import Session as DbSession

from coursehub.config import Settings, get_app_settings
from coursehub.database import get_db
from coursehub.errors import Forbidden, Unauthorized
from coursehub.models.user import User
from coursehub.services.sessions import ACCESS_COOKIE
from coursehub.services.tokens import TokenError, TokenExpired, decode_access_token, subject_id

logger = logging.getLogger(__name__)

bearer = HTTPBearer(auto_error=False)


def _token_from_request(req: Request, credentials: HTTPAuthorizationCredentials | None) -> str | None:
    raw = req.cookies.get(ACCESS_COOKIE)
    if raw:
        return raw
    if credentials and credentials.credentials:
        return credentials.credentials
    return None


def resolve_user(token: str, db: DbSession, settings: Settings) -> User:
    try:
        payload = decode_access_token(token, settings)
        user_id = subject_id(payload)
    except TokenExpired as exc:
        raise Unauthorized("Token expired") from exc
    except TokenError as exc:
        logger.info("Access token rejected: %s", exc)
        raise Unauthorized("Invalid token") from exc

    user = db.get(User, user_id)
    if not user or not user.is_active:
        raise Unauthorized("Invalid token or user not found")
    return user


def authenticate(
    req: Request,
    credentials: HTTPAuthorizationCredentials | None = Depends(bearer),
    db: DbSession = Depends(get_db),
    settings: Settings = Depends(get_app_settings),
) -> User:
    """Resolve the caller. The ORM user (password hash included) lands on
    ``request.state.user``; responses must go through ``public_user``."""
    token = _token_from_request(req, credentials)
    if not token:
        raise Unauthorized("Access token required")

    user = resolve_user(token, db, settings)
    req.state.user = user
    return user


def optional_authenticate(
    req: Request,
    credentials: HTTPAuthorizationCredentials | None = Depends(bearer),
    db: DbSession = Depends(get_db),
    settings: Settings = Depends(get_app_settings),
) -> User | None:
    token = _token_from_request(req, credentials)
    if not token:
        return None
    try:
        user = resolve_user(token, db, settings)
    except Unauthorized:
        return None
    req.state.user = user
    return user


def authorize_roles(*roles: str):
    allowed = set(roles)

    def dependency(user: User = Depends(authenticate)) -> User:
        if user.role not in allowed:
            raise Forbidden(f"Access denied. Required roles: {', '.join(roles)}")
        return user

    return dependency


require_admin = authorize_roles("admin")
require_tutor = authorize_roles("tutor", "admin")
require_student = authorize_roles("student")
