import logging
import os

from fastapi import APIRouter, BackgroundTasks, Depends, File, Request, Response, UploadFile
from sqlalchemy import delete
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session as DbSession

from coursehub.config import Settings, get_app_settings
from coursehub.database import get_db
from coursehub.errors import Conflict, UpstreamFailure, Unauthorized, ValidationFailed
from coursehub.models.email_token import EmailVerificationToken
from coursehub.models.password_reset_token import PasswordResetToken
from coursehub.models.user import User
from coursehub.schemas.auth import (
    ChangePasswordIn,
    DeleteAccountIn,
    ForgotPasswordIn,
    LoginIn,
    RegisterIn,
    ResendVerificationIn,
    ResetPasswordIn,
    UpdateProfileIn,
    VerifyEmailIn,
)
from coursehub.schemas.user import public_user
from coursehub.services import mailer, media
from coursehub.services.authz import authenticate
from coursehub.services.local_files import delete_local_file, save_upload
from coursehub.services.ownership import delete_user_tree
from coursehub.services.passwords import dummy_hash, hash_password, verify_and_upgrade, verify_password
from coursehub.services.sessions import (
    REFRESH_COOKIE,
    clear_token_cookies,
    issue_token_pair,
    revoke_all_for_user,
    revoke_one,
    rotate_refresh_token,
    set_token_cookies,
)
from coursehub.services.tokens import expires_in, hash_token, new_token, utcnow
from coursehub.validation import (
    CHANGE_PASSWORD_RULES,
    DELETE_ACCOUNT_RULES,
    FORGOT_PASSWORD_RULES,
    LOGIN_RULES,
    REGISTER_RULES,
    RESEND_VERIFICATION_RULES,
    RESET_PASSWORD_RULES,
    UPDATE_PROFILE_RULES,
    VERIFY_EMAIL_RULES,
    validated,
)

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/auth", tags=["auth"])

AVATAR_MIMES = {"image/jpeg", "image/png", "image/gif", "image/webp"}
AVATAR_MAX_BYTES = 5 * 1024 * 1024

GENERIC_RESET_MESSAGE = "If an account with that email exists, a password reset link has been sent."
GENERIC_VERIFY_MESSAGE = "If an account with that email exists, a verification email has been sent."


def _normalize_email(email: str) -> str:
    return email.lower().strip()


def _queue_email(background: BackgroundTasks, to: str, mail: tuple[str, str], settings: Settings) -> None:
    subject, html = mail
    background.add_task(mailer.deliver, to, subject, html, settings)


def _new_verification_token(db: DbSession, user: User, settings: Settings) -> str:
    token = new_token()
    db.add(
        EmailVerificationToken(
            user_id=user.id,
            token=hash_token(token),
            expires_at=expires_in(settings.verification_token_expire_hours * 60),
        )
    )
    return token


async def _presented_refresh_token(req: Request) -> str | None:
    raw = req.cookies.get(REFRESH_COOKIE)
    if raw:
        return raw
    try:
        body = await req.json()
    except ValueError:
        return None
    if isinstance(body, dict) and isinstance(body.get("refresh_token"), str):
        return body["refresh_token"] or None
    return None


@router.post("/register", status_code=201)
def register(
    resp: Response,
    background: BackgroundTasks,
    payload: RegisterIn = Depends(validated(REGISTER_RULES, RegisterIn)),
    db: DbSession = Depends(get_db),
    settings: Settings = Depends(get_app_settings),
):
    email = _normalize_email(payload.email)
    exists = db.query(User).filter(User.email == email).first()
    if exists:
        raise Conflict("User with this email already exists")

    user = User(
        first_name=payload.first_name.strip(),
        last_name=payload.last_name.strip(),
        email=email,
        password_hash=hash_password(payload.password),
        role=payload.role,
        is_active=True,
        email_verified=False,
    )
    db.add(user)
    try:
        db.flush()
    except IntegrityError as exc:
        db.rollback()
        raise Conflict("User with this email already exists") from exc

    pair = issue_token_pair(db, user, settings)
    token = _new_verification_token(db, user, settings)
    db.commit()
    db.refresh(user)
    logger.info("Registered user %s (%s)", user.id, user.role)

    _queue_email(background, user.email, mailer.verification_email(user.first_name, mailer.verify_link(token, settings)), settings)
    _queue_email(background, user.email, mailer.welcome_email(user.first_name, user.role), settings)

    set_token_cookies(resp, pair, settings)
    return {
        "success": True,
        "message": "User registered successfully. Please verify your email.",
        "user": public_user(user),
        "tokens": pair.as_dict(),
    }


@router.post("/login")
def login(
    resp: Response,
    payload: LoginIn = Depends(validated(LOGIN_RULES, LoginIn)),
    db: DbSession = Depends(get_db),
    settings: Settings = Depends(get_app_settings),
):
    email = _normalize_email(payload.email)
    user = db.query(User).filter(User.email == email).first()

    ok, upgraded_hash = verify_and_upgrade(payload.password, user.password_hash if user else dummy_hash())
    if not user or not ok:
        raise Unauthorized("Invalid email or password")

    if not user.is_active:
        raise Unauthorized("Account is deactivated. Please contact support.")

    if upgraded_hash:
        user.password_hash = upgraded_hash
    pair = issue_token_pair(db, user, settings)
    user.last_login = utcnow()
    db.commit()
    db.refresh(user)

    set_token_cookies(resp, pair, settings)
    return {
        "success": True,
        "message": "Login successful",
        "user": public_user(user),
        "tokens": pair.as_dict(),
    }


@router.post("/refresh")
async def refresh(
    req: Request,
    resp: Response,
    db: DbSession = Depends(get_db),
    settings: Settings = Depends(get_app_settings),
):
    presented = await _presented_refresh_token(req)
    if not presented:
        raise Unauthorized("Refresh token required")

    user, pair = rotate_refresh_token(db, presented, settings)

    set_token_cookies(resp, pair, settings)
    return {
        "success": True,
        "message": "Tokens refreshed successfully",
        "user": public_user(user),
        "tokens": pair.as_dict(),
    }


@router.post("/logout")
async def logout(
    req: Request,
    resp: Response,
    user: User = Depends(authenticate),
    db: DbSession = Depends(get_db),
):
    presented = await _presented_refresh_token(req)
    if presented:
        revoke_one(db, presented)
    clear_token_cookies(resp)
    logger.info("User %s logged out", user.id)
    return {"success": True, "message": "Logout successful"}


@router.get("/profile")
def get_profile(user: User = Depends(authenticate)):
    return {"success": True, "user": public_user(user)}


@router.put("/profile")
def update_profile(
    user: User = Depends(authenticate),
    payload: UpdateProfileIn = Depends(validated(UPDATE_PROFILE_RULES, UpdateProfileIn)),
    db: DbSession = Depends(get_db),
):
    if payload.name:
        first, _, last = payload.name.strip().partition(" ")
        user.first_name = first
        if last.strip():
            user.last_name = last.strip()
    if payload.first_name:
        user.first_name = payload.first_name.strip()
    if payload.last_name:
        user.last_name = payload.last_name.strip()

    if payload.email:
        email = _normalize_email(payload.email)
        if email != user.email:
            taken = db.query(User).filter(User.email == email, User.id != user.id).first()
            if taken:
                raise Conflict("Email already exists")
            user.email = email

    if payload.phone is not None:
        user.phone = payload.phone.strip() or None
    if payload.bio is not None:
        user.bio = payload.bio.strip() or None

    try:
        db.commit()
    except IntegrityError as exc:
        db.rollback()
        raise Conflict("Email already exists") from exc
    db.refresh(user)

    return {"success": True, "message": "Profile updated successfully", "user": public_user(user)}


@router.put("/change-password")
def change_password(
    resp: Response,
    user: User = Depends(authenticate),
    payload: ChangePasswordIn = Depends(validated(CHANGE_PASSWORD_RULES, ChangePasswordIn)),
    db: DbSession = Depends(get_db),
):
    if not verify_password(payload.current_password, user.password_hash):
        raise Conflict("Current password is incorrect")

    if verify_password(payload.new_password, user.password_hash):
        raise Conflict("New password must be different from current password")

    user.password_hash = hash_password(payload.new_password)
    revoke_all_for_user(db, user.id, commit=False)
    db.commit()

    clear_token_cookies(resp)
    return {"success": True, "message": "Password changed successfully. Please login again."}


@router.post("/forgot-password")
def forgot_password(
    background: BackgroundTasks,
    payload: ForgotPasswordIn = Depends(validated(FORGOT_PASSWORD_RULES, ForgotPasswordIn)),
    db: DbSession = Depends(get_db),
    settings: Settings = Depends(get_app_settings),
):
    email = _normalize_email(payload.email)
    user = db.query(User).filter(User.email == email).first()

    # same answer either way (anti-enumeration)
    if not user:
        return {"success": True, "message": GENERIC_RESET_MESSAGE}

    token = new_token()
    db.add(
        PasswordResetToken(
            user_id=user.id,
            token=hash_token(token),
            expires_at=expires_in(settings.reset_token_expire_minutes),
        )
    )
    db.commit()

    link = mailer.reset_link(token, settings)
    _queue_email(background, user.email, mailer.password_reset_email(user.first_name, link), settings)
    return {"success": True, "message": GENERIC_RESET_MESSAGE}


@router.post("/reset-password")
def reset_password(
    payload: ResetPasswordIn = Depends(validated(RESET_PASSWORD_RULES, ResetPasswordIn)),
    db: DbSession = Depends(get_db),
):
    row = (
        db.query(PasswordResetToken)
        .filter(
            PasswordResetToken.token == hash_token(payload.token),
            PasswordResetToken.used.is_(False),
            PasswordResetToken.expires_at >= utcnow(),
        )
        .first()
    )
    user = db.get(User, row.user_id) if row else None
    if not row or not user:
        raise Conflict("Invalid or expired reset token")

    user.password_hash = hash_password(payload.password)
    row.used = True
    revoke_all_for_user(db, user.id, commit=False)
    db.commit()

    return {"success": True, "message": "Password reset successfully. Please login with your new password."}


@router.post("/verify-email")
def verify_email(
    payload: VerifyEmailIn = Depends(validated(VERIFY_EMAIL_RULES, VerifyEmailIn)),
    db: DbSession = Depends(get_db),
):
    row = (
        db.query(EmailVerificationToken)
        .filter(
            EmailVerificationToken.token == hash_token(payload.token),
            EmailVerificationToken.used.is_(False),
            EmailVerificationToken.expires_at >= utcnow(),
        )
        .first()
    )
    user = db.get(User, row.user_id) if row else None
    if not row or not user:
        raise Conflict("Invalid or expired verification token")

    user.email_verified = True
    row.used = True
    db.commit()

    return {"success": True, "message": "Email verified successfully"}


@router.post("/resend-verification-email")
def resend_verification_email(
    background: BackgroundTasks,
    payload: ResendVerificationIn = Depends(validated(RESEND_VERIFICATION_RULES, ResendVerificationIn)),
    db: DbSession = Depends(get_db),
    settings: Settings = Depends(get_app_settings),
):
    email = _normalize_email(payload.email)
    user = db.query(User).filter(User.email == email).first()
    if not user:
        return {"success": True, "message": GENERIC_VERIFY_MESSAGE}

    if user.email_verified:
        raise Conflict("Email is already verified")

    db.execute(delete(EmailVerificationToken).where(EmailVerificationToken.user_id == user.id))
    token = _new_verification_token(db, user, settings)
    db.commit()

    link = mailer.verify_link(token, settings)
    _queue_email(background, user.email, mailer.verification_email(user.first_name, link), settings)
    return {"success": True, "message": GENERIC_VERIFY_MESSAGE}


@router.delete("/account")
def delete_account(
    resp: Response,
    background: BackgroundTasks,
    user: User = Depends(authenticate),
    payload: DeleteAccountIn = Depends(validated(DELETE_ACCOUNT_RULES, DeleteAccountIn)),
    db: DbSession = Depends(get_db),
    settings: Settings = Depends(get_app_settings),
):
    if not verify_password(payload.password, user.password_hash):
        raise Conflict("Invalid password")

    email, first_name, user_id = user.email, user.first_name, user.id

    revoke_all_for_user(db, user_id, commit=False)
    delete_user_tree(db, user)
    db.commit()
    logger.info("Deleted account %s", user_id)

    clear_token_cookies(resp)
    _queue_email(background, email, mailer.account_deleted_email(first_name), settings)
    return {"success": True, "message": "Account deleted successfully. A confirmation email has been sent."}


@router.post("/upload-profile-picture")
def upload_profile_picture(
    profile_picture: UploadFile | None = File(None),
    user: User = Depends(authenticate),
    db: DbSession = Depends(get_db),
    settings: Settings = Depends(get_app_settings),
    cdn: media.MediaCdn = Depends(media.get_media_cdn),
):
    if profile_picture is None or not profile_picture.filename:
        raise ValidationFailed([], detail="No image file provided")

    if profile_picture.content_type not in AVATAR_MIMES:
        raise ValidationFailed([], detail="Invalid file type. Only JPEG, PNG, GIF, and WebP are allowed.")

    local_path = save_upload(profile_picture, settings.uploads_dir, prefix="profile")
    try:
        if os.path.getsize(local_path) > AVATAR_MAX_BYTES:
            raise ValidationFailed([], detail="File size exceeds 5MB limit")

        try:
            avatar_url = media.upload_profile_picture(cdn, local_path, user.id)
        except Exception as exc:
            logger.error("Avatar upload failed for user %s: %s", user.id, exc)
            raise UpstreamFailure("Failed to upload profile picture", error=str(exc)) from exc

        user.avatar_url = avatar_url
        db.commit()
        db.refresh(user)
    finally:
        delete_local_file(local_path)

    return {"success": True, "message": "Profile picture uploaded successfully", "user": public_user(user)}
