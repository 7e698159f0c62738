"""
Expense Tracker Backend — Error Translator
===========================================

What:  Converts any failure into exactly one ErrorEnvelope, and registers the
       FastAPI exception handlers that send it.
How:   translate() classifies the exception, then applies production
       redaction. Unclassified errors become 500 "Internal server error".

Classification:
    QuotaExceededError                  → 429 (+ retryAfter)
    UpstreamServiceError                → 503 (+ retryAfter when known)
    other ExpenseTrackerError           → its own status and message
    RequestValidationError (FastAPI)    → 400 "Validation failed"
    jwt.ExpiredSignatureError           → 401 "Token expired"
    jwt.InvalidTokenError               → 401 "Invalid token"
    IntegrityError, unique              → 409 "Resource already exists"
    IntegrityError, foreign key         → 400 "Referenced resource does not exist"
    StarletteHTTPException              → its status code and detail
    anything else                       → 500 "Internal server error"

Production mode:
    - details are dropped
    - any 500 message becomes "Something went wrong"
    Other modes add the formatted traceback as `stack`.
"""

import logging
import traceback
from typing import Any, Optional, Tuple

import jwt
from fastapi import FastAPI, Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from sqlalchemy.exc import IntegrityError
from starlette.exceptions import HTTPException as StarletteHTTPException

from expense_tracker.exceptions import (
    ConstraintViolationError,
    ExpenseTrackerError,
    QuotaExceededError,
    UpstreamServiceError,
)
from expense_tracker.middleware.request_id import request_id_var
from expense_tracker.schemas.common import ErrorEnvelope

logger = logging.getLogger(__name__)

GENERIC_SERVER_MESSAGE = "Something went wrong"
DEFAULT_MESSAGE = "Internal server error"

# (status, message, details, retry_after)
Classification = Tuple[int, str, Optional[Any], Optional[int]]

_UNIQUE_SQLSTATE = "23505"
_FOREIGN_KEY_SQLSTATE = "23503"


def constraint_kind(exc: IntegrityError) -> Optional[str]:
    """Tell unique from foreign-key violations across SQLite and PostgreSQL."""
    orig = exc.orig
    code = getattr(orig, "sqlstate", None) or getattr(orig, "pgcode", None)
    if code == _UNIQUE_SQLSTATE:
        return ConstraintViolationError.UNIQUE
    if code == _FOREIGN_KEY_SQLSTATE:
        return ConstraintViolationError.FOREIGN_KEY

    text = str(orig).upper()
    if "UNIQUE" in text or "DUPLICATE KEY" in text:
        return ConstraintViolationError.UNIQUE
    if "FOREIGN KEY" in text:
        return ConstraintViolationError.FOREIGN_KEY
    return None


def classify(exc: BaseException) -> Classification:
    if isinstance(exc, QuotaExceededError):
        return exc.status, exc.message, exc.details or None, exc.retry_after

    if isinstance(exc, UpstreamServiceError):
        return exc.status, exc.message, exc.details or None, exc.retry_after

    if isinstance(exc, ExpenseTrackerError):
        return exc.status, exc.message, exc.details or None, None

    if isinstance(exc, RequestValidationError):
        return 400, "Validation failed", jsonable_encoder(exc.errors()), None

    if isinstance(exc, jwt.ExpiredSignatureError):
        return 401, "Token expired", None, None

    if isinstance(exc, jwt.InvalidTokenError):
        return 401, "Invalid token", None, None

    if isinstance(exc, IntegrityError):
        kind = constraint_kind(exc)
        if kind is not None:
            violation = ConstraintViolationError(kind)
            return violation.status, violation.message, None, None
        return 500, DEFAULT_MESSAGE, None, None

    if isinstance(exc, StarletteHTTPException):
        return exc.status_code, str(exc.detail), None, None

    return 500, DEFAULT_MESSAGE, None, None


def translate(exc: BaseException, production: bool = False) -> ErrorEnvelope:
    """Map any failure to its client-visible envelope."""
    status, message, details, retry_after = classify(exc)

    if production:
        if status == 500:
            message = GENERIC_SERVER_MESSAGE
        return ErrorEnvelope(message=message, status=status, retry_after=retry_after)

    stack = "".join(traceback.format_exception(type(exc), exc, exc.__traceback__))
    return ErrorEnvelope(
        message=message,
        status=status,
        details=details,
        retry_after=retry_after,
        stack=stack,
    )


def envelope_response(envelope: ErrorEnvelope, headers: Optional[dict] = None) -> JSONResponse:
    response_headers = dict(headers or {})
    if envelope.retry_after is not None:
        response_headers["Retry-After"] = str(envelope.retry_after)
    return JSONResponse(
        status_code=envelope.status,
        content=envelope.to_content(),
        headers=response_headers,
    )


def _is_production(request: Request) -> bool:
    app_settings = getattr(request.app.state, "settings", None)
    return bool(app_settings and app_settings.is_production)


async def handle_exception(request: Request, exc: Exception) -> JSONResponse:
    """Single terminal point: every registered handler funnels through here."""
    envelope = translate(exc, production=_is_production(request))
    rid = request_id_var.get("")

    if envelope.status >= 500:
        logger.error(
            "[%s] %s %s failed: %s",
            rid,
            request.method,
            request.url.path,
            exc,
            exc_info=(type(exc), exc, exc.__traceback__),
        )
    else:
        logger.info(
            "[%s] %s %s → %d %s",
            rid,
            request.method,
            request.url.path,
            envelope.status,
            envelope.message,
        )

    headers = None
    if isinstance(exc, StarletteHTTPException) and exc.headers:
        headers = exc.headers
    return envelope_response(envelope, headers)


def register_exception_handlers(app: FastAPI) -> None:
    """
    Route every failure kind through handle_exception.

    The Exception handler catches anything unclassified; Starlette's
    ServerErrorMiddleware invokes it for errors that escape the routers.
    """
    for exc_class in (
        ExpenseTrackerError,
        RequestValidationError,
        StarletteHTTPException,
        IntegrityError,
        jwt.PyJWTError,
        Exception,
    ):
        app.add_exception_handler(exc_class, handle_exception)
