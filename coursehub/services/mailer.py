import logging

import httpx

from coursehub.config import Settings

logger = logging.getLogger(__name__)

RESEND_URL = "https://api.resend.com/emails"


async def send_email(to: str, subject: str, html: str, settings: Settings):
    if not settings.resend_api_key:
        raise RuntimeError("RESEND_API_KEY not set")

    async with httpx.AsyncClient(timeout=20) as client:
        r = await client.post(
            RESEND_URL,
            headers={
                "Authorization": f"Bearer {settings.resend_api_key}",
                "Content-Type": "application/json",
            },
            json={"from": settings.mail_from, "to": [to], "subject": subject, "html": html},
        )
        r.raise_for_status()
        return r.json()


async def deliver(to: str, subject: str, html: str, settings: Settings) -> bool:
    """Background-task wrapper: a failed send is logged, never raised."""
    try:
        await send_email(to, subject, html, settings)
        return True
    except (httpx.HTTPError, RuntimeError) as exc:
        logger.error("Sending '%s' to %s failed: %s", subject, to, exc)
        return False


def verify_link(token: str, settings: Settings) -> str:
    return f"{settings.client_url}/verify-email?token={token}"


def reset_link(token: str, settings: Settings) -> str:
    return f"{settings.client_url}/reset-password?token={token}"


def verification_email(first_name: str, link: str) -> tuple[str, str]:
    return (
        "Verify your email",
        f"<p>Hi {first_name},</p>"
        f"<p>Please verify your email by clicking the link below:</p>"
        f"<p><a href='{link}'>{link}</a></p>"
        f"<p>This link expires in 24 hours.</p>",
    )


def welcome_email(first_name: str, role: str) -> tuple[str, str]:
    what = "create your first course" if role == "tutor" else "browse the course catalogue"
    return (
        "Welcome to CourseHub",
        f"<p>Hi {first_name},</p><p>Your account is ready. Log in to {what}.</p>",
    )


def password_reset_email(first_name: str, link: str) -> tuple[str, str]:
    return (
        "Reset your password",
        f"<p>Hi {first_name},</p>"
        f"<p>Reset your password:</p><p><a href='{link}'>{link}</a></p>"
        f"<p>This link expires in 1 hour. Ignore this email if you did not ask for it.</p>",
    )


def account_deleted_email(first_name: str) -> tuple[str, str]:
    return (
        "Your account has been deleted",
        f"<p>Hi {first_name},</p><p>Your CourseHub account and its data have been removed.</p>",
    )
