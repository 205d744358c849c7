# coursehub/config.py
from __future__ import annotations

from functools import lru_cache
from pathlib import Path

from fastapi import Request
from pydantic_settings import BaseSettings, SettingsConfigDict

ENV_PATH = Path(__file__).resolve().parents[1] / ".env"

PLACEHOLDER_SECRETS = {"change-me", "change-me-too"}


class Settings(BaseSettings):
    app_env: str = "development"

    database_url: str = "sqlite:///./coursehub.db"
    auto_create_tables: bool = True

    jwt_secret: str = "change-me"
    jwt_refresh_secret: str = "change-me-too"
    jwt_algorithm: str = "HS256"
    access_token_expire_minutes: int = 15
    refresh_token_expire_days: int = 7

    verification_token_expire_hours: int = 24
    reset_token_expire_minutes: int = 60

    # CORS origin and base for links in e-mails
    client_url: str = "http://localhost:3000"
    cookie_domain: str | None = None

    resend_api_key: str = ""
    mail_from: str = "CourseHub <no-reply@coursehub.local>"

    cloudinary_cloud_name: str = ""
    cloudinary_api_key: str = ""
    cloudinary_api_secret: str = ""
    cloudinary_notification_url: str | None = None

    uploads_dir: str = "uploads"

    upload_request_timeout_seconds: int = 30 * 60
    request_timeout_seconds: int = 10 * 60
    shutdown_timeout_seconds: int = 10

    host: str = "0.0.0.0"
    port: int = 5000
    log_level: str = "INFO"

    model_config = SettingsConfigDict(
        env_file=str(ENV_PATH),
        env_file_encoding="utf-8",
        extra="ignore",
    )

    @property
    def is_production(self) -> bool:
        return self.app_env.lower() in {"prod", "production"}


@lru_cache
def get_settings() -> Settings:
    return Settings()


def validate_runtime_config(settings: Settings) -> None:
    if not settings.is_production:
        return
    if settings.jwt_secret in PLACEHOLDER_SECRETS or settings.jwt_refresh_secret in PLACEHOLDER_SECRETS:
        raise RuntimeError("JWT_SECRET and JWT_REFRESH_SECRET must be set in production.")
    if settings.jwt_secret == settings.jwt_refresh_secret:
        raise RuntimeError("JWT_SECRET and JWT_REFRESH_SECRET must differ.")


def get_app_settings(request: Request) -> Settings:
    return request.app.state.settings
