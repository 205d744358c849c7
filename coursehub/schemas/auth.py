from typing import Literal

from pydantic import BaseModel, EmailStr


class RegisterIn(BaseModel):
    first_name: str
    last_name: str
    email: EmailStr
    password: str
    role: Literal["student", "tutor"] = "student"


class LoginIn(BaseModel):
    email: EmailStr
    password: str


class RefreshIn(BaseModel):
    refresh_token: str | None = None


class UpdateProfileIn(BaseModel):
    name: str | None = None
    first_name: str | None = None
    last_name: str | None = None
    email: EmailStr | None = None
    phone: str | None = None
    bio: str | None = None


class ChangePasswordIn(BaseModel):
    current_password: str
    new_password: str
    confirm_password: str


class ForgotPasswordIn(BaseModel):
    email: EmailStr


class ResetPasswordIn(BaseModel):
    token: str
    password: str
    confirm_password: str


class VerifyEmailIn(BaseModel):
    token: str


class ResendVerificationIn(BaseModel):
    email: EmailStr


class DeleteAccountIn(BaseModel):
    password: str
