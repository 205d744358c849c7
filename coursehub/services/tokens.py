import hashlib
import secrets
import uuid
from datetime import datetime, timedelta, timezone

import jwt

ACCESS = "access"
REFRESH = "refresh"


class TokenError(Exception):
    pass


class TokenExpired(TokenError):
    pass


class TokenInvalid(TokenError):
    pass


def new_token() -> str:
    return secrets.token_urlsafe(32)

def hash_token(token: str) -> str:
    return hashlib.sha256(token.encode("utf-8")).hexdigest()

def utcnow() -> datetime:
    # naive UTC, matches the DateTime columns
    return datetime.now(timezone.utc).replace(tzinfo=None)

def expires_in(minutes: int) -> datetime:
    return utcnow() + timedelta(minutes=minutes)


def _encode(subject: str, token_type: str, lifetime: timedelta, secret: str, algorithm: str) -> str:
    now = datetime.now(timezone.utc)
    payload = {
        "sub": subject,
        "type": token_type,
        "iat": now,
        "exp": now + lifetime,
        # two tokens for the same user in the same second must still differ
        "jti": uuid.uuid4().hex,
    }
    return jwt.encode(payload, secret, algorithm=algorithm)


def _decode(token: str, token_type: str, secret: str, algorithm: str) -> dict:
    try:
        payload = jwt.decode(token, secret, algorithms=[algorithm])
    except jwt.ExpiredSignatureError as exc:
        raise TokenExpired("token expired") from exc
    except jwt.InvalidTokenError as exc:
        raise TokenInvalid(str(exc)) from exc

    if payload.get("type") != token_type or not payload.get("sub"):
        raise TokenInvalid(f"not a {token_type} token")
    return payload


def create_access_token(user_id, settings) -> str:
    return _encode(
        str(user_id),
        ACCESS,
        timedelta(minutes=settings.access_token_expire_minutes),
        settings.jwt_secret,
        settings.jwt_algorithm,
    )


def create_refresh_token(user_id, settings) -> str:
    return _encode(
        str(user_id),
        REFRESH,
        timedelta(days=settings.refresh_token_expire_days),
        settings.jwt_refresh_secret,
        settings.jwt_algorithm,
    )


def decode_access_token(token: str, settings) -> dict:
    return _decode(token, ACCESS, settings.jwt_secret, settings.jwt_algorithm)


def decode_refresh_token(token: str, settings) -> dict:
    return _decode(token, REFRESH, settings.jwt_refresh_secret, settings.jwt_algorithm)


def subject_id(payload: dict) -> uuid.UUID:
    try:
        return uuid.UUID(str(payload["sub"]))
    except (KeyError, ValueError) as exc:
        raise TokenInvalid("invalid subject") from exc
