from __future__ import annotations

import logging
from typing import Any

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from sqlalchemy.exc import OperationalError
from starlette import status
from starlette.exceptions import HTTPException as StarletteHTTPException

from ..services.exceptions import (
    AllocationContention,
    CodeConflict,
    DeletionBlocked,
    LimitExceeded,
    NotFound,
    UnknownNamespace,
)

logger = logging.getLogger("clientdesk.errors")

DATABASE_UNAVAILABLE_MESSAGE = (
    "Unable to connect to the database. Please check your database connection and try again."
)


class ErrorEnvelope(JSONResponse):
    def __init__(
        self,
        *,
        status_code: int,
        code: str,
        message: str,
        details: Any | None = None,
        headers: dict[str, str] | None = None,
    ) -> None:
        payload: dict[str, Any] = {"code": code, "message": message}
        if details is not None:
            payload["details"] = details
        super().__init__(payload, status_code=status_code, headers=headers)


async def http_exception_handler(request: Request, exc: StarletteHTTPException):
    detail = exc.detail
    if isinstance(detail, str):
        message = detail
    else:
        message = "Error"
    details = detail if isinstance(detail, dict) else None
    return ErrorEnvelope(
        status_code=exc.status_code,
        code="http_error",
        message=message,
        details=details,
        headers=getattr(exc, "headers", None),
    )


async def validation_exception_handler(request: Request, exc: RequestValidationError):
    return ErrorEnvelope(
        status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
        code="validation_error",
        message="Validation failed",
        details={"errors": exc.errors()},
    )


async def value_error_handler(request: Request, exc: ValueError):
    return ErrorEnvelope(
        status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
        code="validation_error",
        message=str(exc),
    )


async def limit_exceeded_handler(request: Request, exc: LimitExceeded):
    # Surfaced verbatim: the requester has to escalate to an administrator.
    return ErrorEnvelope(
        status_code=status.HTTP_409_CONFLICT,
        code="sequence_limit_exceeded",
        message=str(exc),
        details={"namespace": exc.namespace, "max": exc.max_value},
    )


async def allocation_contention_handler(request: Request, exc: AllocationContention):
    return ErrorEnvelope(
        status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
        code="allocation_contention",
        message=str(exc),
        details={"namespace": exc.namespace, "attempts": exc.attempts},
        headers={"Retry-After": "1"},
    )


async def code_conflict_handler(request: Request, exc: CodeConflict):
    return ErrorEnvelope(
        status_code=status.HTTP_409_CONFLICT,
        code="code_conflict",
        message=str(exc),
        details={"field": exc.field, "value": exc.value},
    )


async def deletion_blocked_handler(request: Request, exc: DeletionBlocked):
    return ErrorEnvelope(
        status_code=status.HTTP_409_CONFLICT,
        code="deletion_blocked",
        message=str(exc),
        details=exc.details,
    )


async def not_found_handler(request: Request, exc: NotFound | UnknownNamespace):
    code = "unknown_namespace" if isinstance(exc, UnknownNamespace) else "not_found"
    return ErrorEnvelope(status_code=status.HTTP_404_NOT_FOUND, code=code, message=str(exc) or "Not found")


async def database_error_handler(request: Request, exc: OperationalError):
    logger.error(
        "database.unavailable",
        exc_info=exc,
        extra={"extra_data": {"path": request.url.path}},
    )
    return ErrorEnvelope(
        status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
        code="database_unavailable",
        message=DATABASE_UNAVAILABLE_MESSAGE,
    )


def register_exception_handlers(app: FastAPI) -> None:
    app.add_exception_handler(StarletteHTTPException, http_exception_handler)
    app.add_exception_handler(RequestValidationError, validation_exception_handler)
    app.add_exception_handler(LimitExceeded, limit_exceeded_handler)
    app.add_exception_handler(AllocationContention, allocation_contention_handler)
    app.add_exception_handler(CodeConflict, code_conflict_handler)
    app.add_exception_handler(DeletionBlocked, deletion_blocked_handler)
    app.add_exception_handler(NotFound, not_found_handler)
    app.add_exception_handler(UnknownNamespace, not_found_handler)
    app.add_exception_handler(OperationalError, database_error_handler)
    app.add_exception_handler(ValueError, value_error_handler)
