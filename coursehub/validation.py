"""Declarative request validation.

A schema is a list of ``Rule`` objects. Each rule names a field path, a check
and the message reported when the check fails. Paths are dotted and may use
``*`` to address every element of a list (``modules.*.videos.*.title``); a
``*`` over a missing or non-list value addresses nothing, so nested rules
only apply when their parent list is present.

``validate`` evaluates a schema against a parsed JSON body and reports the
first failing rule per concrete field. ``validated`` wraps that into a FastAPI
dependency that also parses the body into a pydantic model.
"""
from __future__ import annotations

import math
import re
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Callable, Iterator, Type
from urllib.parse import urlparse

from email_validator import EmailNotValidError, validate_email
from fastapi import Request
from pydantic import BaseModel, ValidationError

from coursehub.errors import ValidationFailed, field_errors_from_pydantic

Check = Callable[[Any, dict], bool]

_MISSING = object()

NAME_RE = re.compile(r"^[a-zA-Z\s]+$")
PASSWORD_RE = re.compile(r"^(?=.*[a-z])(?=.*[A-Z])(?=.*\d)(?=.*[@$!%*?&])[A-Za-z\d@$!%*?&]+$")
PLAYLIST_RE = re.compile(r"^[a-zA-Z0-9_]+$")
PHONE_RE = re.compile(r"^\+?[0-9][0-9\s\-()]{6,19}$")


@dataclass(frozen=True)
class Rule:
    field: str
    check: Check
    message: str
    optional: bool = False


# ---- checks ----

def _text(value: Any) -> str | None:
    return value.strip() if isinstance(value, str) else None


def not_empty() -> Check:
    def check(value, data):
        if isinstance(value, str):
            return bool(value.strip())
        return value is not None and value != [] and value != {}
    return check


def length(min_len: int = 0, max_len: int | None = None) -> Check:
    def check(value, data):
        text = _text(value)
        if text is None:
            return False
        return len(text) >= min_len and (max_len is None or len(text) <= max_len)
    return check


def matches(pattern: re.Pattern) -> Check:
    def check(value, data):
        text = _text(value)
        return text is not None and bool(pattern.match(text))
    return check


def is_email() -> Check:
    def check(value, data):
        text = _text(value)
        if not text:
            return False
        try:
            validate_email(text, check_deliverability=False)
        except EmailNotValidError:
            return False
        return True
    return check


def one_of(*choices: str) -> Check:
    def check(value, data):
        return value in choices
    return check


def _number(value: Any) -> float | None:
    if isinstance(value, bool):
        return None
    if not isinstance(value, (int, float, str)):
        return None
    try:
        number = float(value.strip() if isinstance(value, str) else value)
    except (ValueError, OverflowError):
        return None
    # rejects inf and nan, which float() accepts
    return number if math.isfinite(number) else None


def is_float(min_value: float | None = None, max_value: float | None = None) -> Check:
    def check(value, data):
        number = _number(value)
        if number is None:
            return False
        return (min_value is None or number >= min_value) and (max_value is None or number <= max_value)
    return check


def is_int(min_value: int | None = None) -> Check:
    def check(value, data):
        number = _number(value)
        if number is None or not number.is_integer():
            return False
        return min_value is None or number >= min_value
    return check


def is_list() -> Check:
    def check(value, data):
        return isinstance(value, list)
    return check


def is_url() -> Check:
    def check(value, data):
        text = _text(value)
        if not text:
            return False
        parsed = urlparse(text if "://" in text else f"http://{text}")
        return parsed.scheme in ("http", "https") and "." in (parsed.hostname or "")
    return check


def is_date() -> Check:
    def check(value, data):
        text = _text(value)
        if not text:
            return False
        try:
            datetime.fromisoformat(text.replace("Z", "+00:00"))
        except ValueError:
            return False
        return True
    return check


def same_as(other: str) -> Check:
    def check(value, data):
        return value == data.get(other)
    return check


# ---- evaluation ----

def _is_absent(value: Any) -> bool:
    return value is _MISSING or value is None or value == ""


def resolve(data: Any, path: str) -> Iterator[tuple[str, Any]]:
    """Yield ``(concrete_path, value)`` for every location ``path`` addresses."""

    def walk(node: Any, parts: list[str], prefix: list[str]):
        if not parts:
            yield ".".join(prefix), node
            return
        head, rest = parts[0], parts[1:]
        if head == "*":
            if isinstance(node, list):
                for i, item in enumerate(node):
                    yield from walk(item, rest, prefix + [str(i)])
            return
        child = node.get(head, _MISSING) if isinstance(node, dict) else _MISSING
        yield from walk(child, rest, prefix + [head])

    yield from walk(data, path.split("."), [])


def validate(data: dict, rules: list[Rule]) -> list[dict[str, Any]]:
    errors: list[dict[str, Any]] = []
    failed: set[str] = set()

    for rule in rules:
        for field, value in resolve(data, rule.field):
            if field in failed:
                continue
            if rule.optional and _is_absent(value):
                continue
            current = None if value is _MISSING else value
            if not rule.check(current, data):
                failed.add(field)
                errors.append({"field": field, "message": rule.message, "value": current})

    return errors


def validated(rules: list[Rule], model: Type[BaseModel]):
    """Dependency factory: JSON body -> rules -> ``model`` instance."""

    async def dependency(request: Request):
        try:
            data = await request.json()
        except ValueError:
            data = None
        if not isinstance(data, dict):
            raise ValidationFailed(
                [{"field": "body", "message": "Request body must be a JSON object", "value": None}]
            )

        errors = validate(data, rules)
        if errors:
            raise ValidationFailed(errors)

        try:
            return model.model_validate(data)
        except ValidationError as exc:
            raise ValidationFailed(field_errors_from_pydantic(exc.errors())) from exc

    return dependency


# ---- rule sets ----

def _name_rules(field: str, label: str, optional: bool = False) -> list[Rule]:
    return [
        Rule(field, length(2, 50), f"{label} must be between 2 and 50 characters", optional),
        Rule(field, matches(NAME_RE), f"{label} can only contain letters and spaces", optional),
    ]


def _password_rules(field: str, label: str) -> list[Rule]:
    return [
        Rule(field, length(8), f"{label} must be at least 8 characters long"),
        Rule(
            field,
            matches(PASSWORD_RE),
            f"{label} must contain at least one uppercase letter, one lowercase letter, "
            "one number, and one special character",
        ),
    ]


EMAIL_RULE = Rule("email", is_email(), "Please provide a valid email address")

REGISTER_RULES = [
    *_name_rules("first_name", "First name"),
    *_name_rules("last_name", "Last name"),
    EMAIL_RULE,
    *_password_rules("password", "Password"),
    Rule("role", one_of("student", "tutor"), "Role must be either student or tutor", optional=True),
]

LOGIN_RULES = [
    EMAIL_RULE,
    Rule("password", not_empty(), "Password is required"),
]

UPDATE_PROFILE_RULES = [
    *_name_rules("name", "Name", optional=True),
    *_name_rules("first_name", "First name", optional=True),
    *_name_rules("last_name", "Last name", optional=True),
    Rule("email", is_email(), "Please provide a valid email address", optional=True),
    Rule("phone", matches(PHONE_RE), "Please provide a valid phone number", optional=True),
    Rule("bio", length(0, 500), "Bio cannot exceed 500 characters", optional=True),
]

CHANGE_PASSWORD_RULES = [
    Rule("current_password", not_empty(), "Current password is required"),
    *_password_rules("new_password", "New password"),
    Rule("confirm_password", same_as("new_password"), "Password confirmation does not match new password"),
]

FORGOT_PASSWORD_RULES = [EMAIL_RULE]

RESET_PASSWORD_RULES = [
    Rule("token", not_empty(), "Reset token is required"),
    *_password_rules("password", "Password"),
    Rule("confirm_password", same_as("password"), "Password confirmation does not match password"),
]

VERIFY_EMAIL_RULES = [Rule("token", not_empty(), "Verification token is required")]

RESEND_VERIFICATION_RULES = [EMAIL_RULE]

DELETE_ACCOUNT_RULES = [Rule("password", not_empty(), "Password is required to delete account")]

COURSE_RULES = [
    Rule("name", length(3, 100), "Course name must be between 3 and 100 characters"),
    Rule("description", length(3, 1000), "Description must be between 3 and 1000 characters"),
    Rule("price", is_float(0), "Price must be a valid number greater than or equal to 0"),
    Rule("category", not_empty(), "Category is required"),
    Rule("playlist_name", matches(PLAYLIST_RE), "Playlist name can only contain letters, numbers, and underscores"),
    Rule("playlist_name", length(3, 50), "Playlist name must be between 3 and 50 characters"),
    Rule("prerequisites", is_list(), "Prerequisites must be an array", optional=True),
    Rule("syllabus", is_list(), "Syllabus must be an array", optional=True),
    Rule("motive", length(0, 500), "Motive must not exceed 500 characters", optional=True),
    Rule("modules", is_list(), "Modules must be an array", optional=True),
    Rule("modules.*.title", length(3, 100), "Module title must be between 3 and 100 characters"),
    Rule("modules.*.videos", is_list(), "Module videos must be an array", optional=True),
    Rule("modules.*.videos.*.title", length(3, 100), "Video title must be between 3 and 100 characters"),
    Rule("modules.*.videos.*.duration", is_int(0), "Video duration must be a positive integer"),
    Rule("modules.*.assignments", is_list(), "Module assignments must be an array", optional=True),
    Rule(
        "modules.*.assignments.*.title",
        length(3, 100),
        "Assignment title must be between 3 and 100 characters",
    ),
    Rule(
        "modules.*.assignments.*.instructions",
        length(10, 2000),
        "Assignment instructions must be between 10 and 2000 characters",
    ),
]

MODULE_RULES = [
    Rule("title", length(3, 100), "Module title must be between 3 and 100 characters"),
    Rule("description", length(0, 500), "Description must not exceed 500 characters", optional=True),
    Rule("order", is_int(1), "Order must be a positive integer", optional=True),
]

VIDEO_RULES = [
    Rule("title", length(3, 100), "Video title must be between 3 and 100 characters"),
    Rule("url", is_url(), "Please provide a valid video URL"),
    Rule("duration", is_int(1), "Duration must be a positive integer (in seconds)"),
    Rule("description", length(0, 500), "Description must not exceed 500 characters", optional=True),
    Rule("order", is_int(1), "Order must be a positive integer", optional=True),
]

ASSIGNMENT_RULES = [
    Rule("title", not_empty(), "Assignment title is required"),
    Rule("title", length(3, 100), "Assignment title must be between 3 and 100 characters"),
    Rule("instructions", not_empty(), "Instructions are required"),
    Rule("instructions", length(3, 2000), "Instructions must be between 3 and 2000 characters"),
    Rule("description", length(0, 500), "Description must not exceed 500 characters", optional=True),
    Rule("due_date", is_date(), "Due date must be a valid date", optional=True),
    Rule("order", is_int(1), "Order must be a positive integer", optional=True),
]

GRADE_RULES = [
    Rule("grade", is_float(0, 100), "Grade must be a number between 0 and 100", optional=True),
    Rule("feedback", length(0, 2000), "Feedback must not exceed 2000 characters", optional=True),
]
