"""
Error taxonomy and the exception handlers that render it.

Every failure leaves the API as the same JSON body:

    {"error": {"type", "message", "status", "severity", "entity_type",
               "log_id", "path", "method", "timestamp"}}
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any

import structlog
from fastapi import FastAPI, HTTPException, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

log = structlog.get_logger()

MESSAGES: dict[str, dict[str, str]] = {
    "en": {
        "unauthorized": "You need to sign in to continue.",
        "forbidden": "You do not have permission to do this.",
        "not_found": "The requested {entity} could not be found.",
        "invalid_token": "This link is invalid or has already been used.",
        "invalid_token_or_expired": "This link is invalid or has expired.",
        "slug_exists": "This slug is already taken.",
        "email_exists": "An account with this email address already exists.",
        "last_admin": "At least one admin must remain.",
        "already_member": "This user is already a member.",
        "no_recipients": "None of the given email addresses could be invited.",
        "membership_not_found": "Membership not found.",
        "sign_up_restricted": "Sign up is currently restricted.",
        "invalid_credentials": "The email or password is incorrect.",
        "email_not_verified": "Please verify your email address first.",
        "wrong_user": "This invitation was sent to another account.",
        "invalid_request": "The request is invalid.",
        "http_error": "The request could not be completed.",
        "server_error": "Something went wrong on our side.",
    },
    "nl": {
        "unauthorized": "Je moet inloggen om verder te gaan.",
        "forbidden": "Je hebt geen toestemming om dit te doen.",
        "not_found": "De gevraagde {entity} is niet gevonden.",
        "invalid_token": "Deze link is ongeldig of al gebruikt.",
        "invalid_token_or_expired": "Deze link is ongeldig of verlopen.",
        "server_error": "Er is iets misgegaan aan onze kant.",
    },
}

DEFAULT_LANGUAGE = "en"

STATUS_TYPES = {401: "unauthorized", 403: "forbidden", 404: "not_found"}


def message_for(error_type: str, language: str | None = None, entity_type: str | None = None) -> str:
    """Look up the human message for an error type, falling back to English."""
    catalog = MESSAGES.get(language or DEFAULT_LANGUAGE, {})
    template = catalog.get(error_type) or MESSAGES[DEFAULT_LANGUAGE].get(error_type, error_type)
    return template.replace("{entity}", (entity_type or "resource").replace("_", " "))


class AppError(Exception):
    """Domain error carrying its HTTP status and taxonomy type."""

    def __init__(
        self,
        status: int,
        type: str,
        severity: str = "warn",
        entity_type: str | None = None,
        meta: dict[str, Any] | None = None,
    ):
        super().__init__(type)
        self.status = status
        self.type = type
        self.severity = severity
        self.entity_type = entity_type
        self.meta = meta or {}

    def __repr__(self) -> str:
        return f"AppError({self.status}, {self.type!r}, entity_type={self.entity_type!r})"


def _language(request: Request) -> str | None:
    return getattr(request.state, "language", None)


def error_body(
    request: Request,
    *,
    status: int,
    type: str,
    severity: str,
    entity_type: str | None = None,
    message: str | None = None,
) -> dict[str, Any]:
    return {
        "error": {
            "type": type,
            "message": message or message_for(type, _language(request), entity_type),
            "status": status,
            "severity": severity,
            "entity_type": entity_type,
            "log_id": getattr(request.state, "request_id", None),
            "path": request.url.path,
            "method": request.method,
            "timestamp": datetime.now(timezone.utc).isoformat(),
        }
    }


async def app_error_handler(request: Request, exc: AppError) -> JSONResponse:
    event = "request.error" if exc.severity == "error" else "request.rejected"
    logger = log.error if exc.severity == "error" else log.info
    logger(event, type=exc.type, status=exc.status, entity_type=exc.entity_type, **exc.meta)
    return JSONResponse(
        status_code=exc.status,
        content=error_body(
            request,
            status=exc.status,
            type=exc.type,
            severity=exc.severity,
            entity_type=exc.entity_type,
        ),
    )


async def http_exception_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    error_type = STATUS_TYPES.get(exc.status_code, "http_error")
    message = exc.detail if error_type == "http_error" and isinstance(exc.detail, str) else None
    return JSONResponse(
        status_code=exc.status_code,
        content=error_body(request, status=exc.status_code, type=error_type, severity="warn", message=message),
        headers=getattr(exc, "headers", None),
    )


async def validation_exception_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    errors = exc.errors()
    message = None
    if errors:
        first = errors[0]
        location = ".".join(str(part) for part in first.get("loc", ()) if part != "body")
        message = f"{location}: {first.get('msg')}" if location else first.get("msg")
    return JSONResponse(
        status_code=400,
        content=error_body(request, status=400, type="invalid_request", severity="warn", message=message),
    )


async def unhandled_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    log.exception("request.failed", error=type(exc).__name__)
    return JSONResponse(
        status_code=500,
        content=error_body(request, status=500, type="server_error", severity="error"),
    )


def register_exception_handlers(app: FastAPI) -> None:
    app.add_exception_handler(AppError, app_error_handler)
    app.add_exception_handler(StarletteHTTPException, http_exception_handler)
    app.add_exception_handler(HTTPException, http_exception_handler)
    app.add_exception_handler(RequestValidationError, validation_exception_handler)
    app.add_exception_handler(Exception, unhandled_exception_handler)
