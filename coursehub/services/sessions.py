"""Refresh-token lifecycle: issue, rotate, revoke, and the auth cookies.

Refresh tokens are signed JWTs, and each one also has a row in
``refresh_tokens`` keyed by the SHA-256 digest of the token. A token is only
honoured while its row exists and has not expired, so deleting the row revokes
the token even though its signature stays valid.
"""
from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass
from datetime import timedelta

from fastapi import Response
from sqlalchemy import delete
from sqlalchemy.orm import Session as DbSession

from coursehub.config import Settings
from coursehub.errors import Unauthorized
from coursehub.models.refresh_token import RefreshToken
from coursehub.models.user import User

from .tokens import (
    TokenError,
    create_access_token,
    create_refresh_token,
    decode_refresh_token,
    hash_token,
    subject_id,
    utcnow,
)

logger = logging.getLogger(__name__)

ACCESS_COOKIE = "accessToken"
REFRESH_COOKIE = "refreshToken"


@dataclass
class TokenPair:
    access_token: str
    refresh_token: str

    def as_dict(self) -> dict:
        return {"access_token": self.access_token, "refresh_token": self.refresh_token}


def issue_access_token(user_id, settings: Settings) -> str:
    return create_access_token(user_id, settings)


def issue_refresh_token(db: DbSession, user_id: uuid.UUID, settings: Settings) -> str:
    """Sign a refresh token and add its row to the session (caller commits)."""
    token = create_refresh_token(user_id, settings)
    db.add(
        RefreshToken(
            user_id=user_id,
            token=hash_token(token),
            expires_at=utcnow() + timedelta(days=settings.refresh_token_expire_days),
        )
    )
    return token


def issue_token_pair(db: DbSession, user: User, settings: Settings) -> TokenPair:
    return TokenPair(
        access_token=issue_access_token(user.id, settings),
        refresh_token=issue_refresh_token(db, user.id, settings),
    )


def rotate_refresh_token(db: DbSession, presented: str, settings: Settings) -> tuple[User, TokenPair]:
    """Exchange a live refresh token for a new pair; the old one stops working.

    Every failure is reported as the same ``Unauthorized``.
    """
    invalid = Unauthorized("Invalid or expired refresh token")

    try:
        payload = decode_refresh_token(presented, settings)
        user_id = subject_id(payload)
    except TokenError as exc:
        logger.info("Refresh rejected: %s", exc)
        raise invalid from exc

    user = db.get(User, user_id)
    if user is None or not user.is_active:
        logger.warning("Refresh rejected: user %s missing or inactive", user_id)
        raise invalid

    # the conditional delete is the claim: of two concurrent rotations only one removes the row
    claimed = db.execute(
        delete(RefreshToken).where(
            RefreshToken.token == hash_token(presented),
            RefreshToken.user_id == user_id,
            RefreshToken.expires_at >= utcnow(),
        )
    )
    if claimed.rowcount != 1:
        db.rollback()
        logger.warning("Refresh rejected: token for user %s is revoked or already rotated", user_id)
        raise invalid

    pair = TokenPair(
        access_token=issue_access_token(user.id, settings),
        refresh_token=create_refresh_token(user.id, settings),
    )
    db.add(
        RefreshToken(
            user_id=user.id,
            token=hash_token(pair.refresh_token),
            expires_at=utcnow() + timedelta(days=settings.refresh_token_expire_days),
        )
    )
    db.commit()
    return user, pair


def revoke_one(db: DbSession, token: str) -> int:
    res = db.execute(delete(RefreshToken).where(RefreshToken.token == hash_token(token)))
    db.commit()
    return res.rowcount or 0


def revoke_all_for_user(db: DbSession, user_id: uuid.UUID, *, commit: bool = True) -> int:
    res = db.execute(delete(RefreshToken).where(RefreshToken.user_id == user_id))
    if commit:
        db.commit()
    return res.rowcount or 0


def set_token_cookies(resp: Response, pair: TokenPair, settings: Settings) -> None:
    is_prod = settings.is_production

    resp.set_cookie(
        key=ACCESS_COOKIE,
        value=pair.access_token,
        httponly=True,
        secure=is_prod,  # True in prod (HTTPS)
        samesite="lax",
        domain=settings.cookie_domain if is_prod else None,
        max_age=settings.access_token_expire_minutes * 60,
        path="/",
    )
    resp.set_cookie(
        key=REFRESH_COOKIE,
        value=pair.refresh_token,
        httponly=True,
        secure=is_prod,
        samesite="lax",
        domain=settings.cookie_domain if is_prod else None,
        max_age=settings.refresh_token_expire_days * 24 * 60 * 60,
        path="/",
    )


def clear_token_cookies(resp: Response) -> None:
    resp.delete_cookie(ACCESS_COOKIE, path="/")
    resp.delete_cookie(REFRESH_COOKIE, path="/")
