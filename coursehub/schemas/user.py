import uuid
from datetime import datetime

from pydantic import BaseModel

from coursehub.models.user import User


class UserOut(BaseModel):
    id: uuid.UUID
    first_name: str
    last_name: str
    full_name: str
    email: str
    role: str
    is_active: bool
    email_verified: bool
    avatar_url: str | None = None
    phone: str | None = None
    bio: str | None = None
    last_login: datetime | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None

    class Config:
        from_attributes = True


def public_user(user: User) -> dict:
    """The only shape in which a user leaves the API (no password hash)."""
    return UserOut.model_validate(user).model_dump(mode="json")
