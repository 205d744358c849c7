from __future__ import annotations

import logging
from typing import Any

from fastapi import FastAPI, HTTPException, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from sqlalchemy.exc import SQLAlchemyError
from starlette.exceptions import HTTPException as StarletteHTTPException

logger = logging.getLogger(__name__)


class ValidationFailed(HTTPException):
    def __init__(self, errors: list[dict[str, Any]], detail: str = "Validation failed"):
        super().__init__(status_code=400, detail=detail)
        self.errors = errors


class Unauthorized(HTTPException):
    def __init__(self, detail: str = "Unauthorized"):
        super().__init__(status_code=401, detail=detail)


class Forbidden(HTTPException):
    def __init__(self, detail: str = "Forbidden"):
        super().__init__(status_code=403, detail=detail)


class NotFound(HTTPException):
    def __init__(self, detail: str = "Not found"):
        super().__init__(status_code=404, detail=detail)


class Conflict(HTTPException):
    def __init__(self, detail: str = "Already exists", status_code: int = 400):
        super().__init__(status_code=status_code, detail=detail)


class UpstreamFailure(HTTPException):
    """A database or CDN call failed; `error` carries the provider message."""

    def __init__(self, detail: str, error: str | None = None):
        super().__init__(status_code=500, detail=detail)
        self.error = error


class RequestTimedOut(HTTPException):
    def __init__(self, detail: str = "Request timeout"):
        super().__init__(status_code=504, detail=detail)


class InternalError(HTTPException):
    def __init__(self, detail: str = "Internal server error"):
        super().__init__(status_code=500, detail=detail)


def _expose_errors(request: Request) -> bool:
    settings = getattr(request.app.state, "settings", None)
    return settings is None or not settings.is_production


def field_errors_from_pydantic(errors) -> list[dict[str, Any]]:
    out = []
    for err in errors:
        loc = [str(p) for p in err.get("loc", ()) if p not in ("body", "query", "path", "form")]
        out.append({"field": ".".join(loc), "message": err.get("msg", "Invalid value"), "value": err.get("input")})
    return out


async def http_error_handler(request: Request, exc: StarletteHTTPException):
    body: dict[str, Any] = {"success": False, "message": exc.detail}
    if isinstance(exc, ValidationFailed):
        body["errors"] = jsonable_errors(exc.errors)
    if isinstance(exc, UpstreamFailure):
        if exc.error and _expose_errors(request):
            body["error"] = exc.error
    return JSONResponse(status_code=exc.status_code, content=body, headers=getattr(exc, "headers", None))


async def request_validation_handler(request: Request, exc: RequestValidationError):
    errors = field_errors_from_pydantic(exc.errors())
    return JSONResponse(
        status_code=400,
        content={"success": False, "message": "Validation failed", "errors": jsonable_errors(errors)},
    )


def jsonable_errors(errors: list[dict[str, Any]]) -> list[dict[str, Any]]:
    out = []
    for e in errors:
        value = e.get("value")
        if not isinstance(value, (str, int, float, bool, type(None))):
            value = None
        out.append({**e, "value": value})
    return out


async def database_error_handler(request: Request, exc: SQLAlchemyError):
    logger.exception("Database error on %s %s", request.method, request.url.path)
    body: dict[str, Any] = {"success": False, "message": "Database error"}
    if _expose_errors(request):
        body["error"] = str(exc.__cause__ or exc)
    return JSONResponse(status_code=500, content=body)


async def unhandled_error_handler(request: Request, exc: Exception):
    logger.exception("Unhandled error on %s %s", request.method, request.url.path)
    body: dict[str, Any] = {"success": False, "message": "Internal server error"}
    if _expose_errors(request):
        body["error"] = str(exc)
    return JSONResponse(status_code=500, content=body)


def register_error_handlers(app: FastAPI) -> None:
    app.add_exception_handler(StarletteHTTPException, http_error_handler)
    app.add_exception_handler(RequestValidationError, request_validation_handler)
    app.add_exception_handler(SQLAlchemyError, database_error_handler)
    app.add_exception_handler(Exception, unhandled_error_handler)
