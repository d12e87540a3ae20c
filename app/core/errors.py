# app/core/errors.py
"""
Centralised error types + FastAPI exception handlers.

Core services raise typed errors; translating them into HTTP responses is done
only here, at the boundary:

- ValidationError  -> 422 (malformed manifest, missing transition fields, unknown grade)
- NotFoundError    -> 404 (unknown device / quote / price list)
- ConflictError    -> 409 (illegal status transition, duplicate unique key)
- DependencyError  -> 503 (store failure mid-batch; details carry the applied count)
- PyMongoError     -> 503 store_unavailable (any other uncaught driver failure)

BestEffortError is never raised through a request. Side effects that may fail
(commission accrual, notifications) record it on a SideEffectOutcome instead.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Optional

from fastapi import FastAPI, HTTPException, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from pymongo.errors import DuplicateKeyError, PyMongoError
from starlette import status

logger = logging.getLogger(__name__)


class AppError(Exception):
    def __init__(
        self,
        *,
        status_code: int,
        code: str,
        message: str,
        details: dict[str, Any] | None = None,
        headers: dict[str, str] | None = None,
    ) -> None:
        super().__init__(message)
        self.status_code = int(status_code)
        self.code = str(code)
        self.message = str(message)
        self.details = details
        self.headers = headers


class NotFoundError(AppError):
    def __init__(self, *, code: str = "not_found", message: str = "Not found", details: dict[str, Any] | None = None):
        super().__init__(status_code=status.HTTP_404_NOT_FOUND, code=code, message=message, details=details)


class ConflictError(AppError):
    def __init__(self, *, code: str = "conflict", message: str = "Conflict", details: dict[str, Any] | None = None):
        super().__init__(status_code=status.HTTP_409_CONFLICT, code=code, message=message, details=details)


class ValidationError(AppError):
    def __init__(
        self,
        *,
        code: str = "validation_error",
        message: str = "Validation failed",
        details: dict[str, Any] | None = None,
    ):
        super().__init__(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            code=code,
            message=message,
            details=details,
        )


class DependencyError(AppError):
    def __init__(
        self,
        *,
        code: str = "dependency_error",
        message: str = "Storage operation failed",
        details: dict[str, Any] | None = None,
    ):
        super().__init__(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            code=code,
            message=message,
            details=details,
        )


class BestEffortError(Exception):
    """A side effect failed; the primary operation it hangs off still stands."""

    def __init__(self, side_effect: str, message: str) -> None:
        super().__init__(f"{side_effect}: {message}")
        self.side_effect = side_effect
        self.message = message


@dataclass
class SideEffectOutcome:
    name: str
    ok: bool = True
    skipped: bool = False
    detail: Optional[str] = None
    error: Optional[BestEffortError] = None

    def as_dict(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "ok": self.ok,
            "skipped": self.skipped,
            "detail": self.detail,
            "error": self.error.message if self.error else None,
        }


def _request_id(request: Request) -> str | None:
    rid = getattr(request.state, "request_id", None)
    if isinstance(rid, str) and rid.strip():
        return rid.strip()

    hdr = request.headers.get("x-request-id")
    if hdr and hdr.strip():
        return hdr.strip()

    return None


def _error_payload(*, code: str, message: str, details: dict[str, Any] | None, request_id: str | None) -> dict[str, Any]:
    return {
        "error": {
            "code": code,
            "message": message,
            "details": details,
        },
        "request_id": request_id,
    }


def _json_error(
    request: Request,
    *,
    status_code: int,
    code: str,
    message: str,
    details: dict[str, Any] | None = None,
    headers: dict[str, str] | None = None,
) -> JSONResponse:
    rid = _request_id(request)

    out_headers = dict(headers or {})
    if rid:
        out_headers.setdefault("X-Request-ID", rid)

    return JSONResponse(
        status_code=int(status_code),
        content=_error_payload(code=code, message=message, details=details, request_id=rid),
        headers=out_headers,
    )


def register_exception_handlers(app: FastAPI) -> None:
    @app.exception_handler(AppError)
    async def _handle_app_error(request: Request, exc: AppError) -> JSONResponse:
        if exc.status_code >= 500:
            logger.warning("app_error code=%s message=%s details=%s", exc.code, exc.message, exc.details)
        return _json_error(
            request,
            status_code=exc.status_code,
            code=exc.code,
            message=exc.message,
            details=exc.details,
            headers=exc.headers,
        )

    @app.exception_handler(RequestValidationError)
    async def _handle_validation_error(request: Request, exc: RequestValidationError) -> JSONResponse:
        return _json_error(
            request,
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            code="validation_error",
            message="Request validation failed",
            details={"errors": exc.errors()},
        )

    @app.exception_handler(HTTPException)
    async def _handle_http_exception(request: Request, exc: HTTPException) -> JSONResponse:
        details: dict[str, Any] | None = None
        message = "Request failed"

        if isinstance(exc.detail, str):
            message = exc.detail
        elif isinstance(exc.detail, dict):
            message = str(exc.detail.get("message") or message)
            details = exc.detail

        return _json_error(
            request,
            status_code=exc.status_code,
            code="http_exception",
            message=message,
            details=details,
            headers=getattr(exc, "headers", None),
        )

    @app.exception_handler(DuplicateKeyError)
    async def _handle_duplicate_key(request: Request, exc: DuplicateKeyError) -> JSONResponse:
        logger.info("duplicate_key err=%s", exc)
        return _json_error(
            request,
            status_code=status.HTTP_409_CONFLICT,
            code="duplicate_key",
            message="A record with the same unique key already exists",
        )

    @app.exception_handler(PyMongoError)
    async def _handle_store_error(request: Request, exc: PyMongoError) -> JSONResponse:
        # Single-document writes outside a chunked batch; nothing partial to report.
        logger.warning("store_error type=%s err=%s", exc.__class__.__name__, exc)
        return _json_error(
            request,
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            code="store_unavailable",
            message="Document store is unavailable; retry shortly",
        )

    @app.exception_handler(Exception)
    async def _handle_unexpected(request: Request, exc: Exception) -> JSONResponse:
        logger.exception("Unhandled exception", exc_info=exc)
        return _json_error(
            request,
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            code="internal_error",
            message="Internal server error",
        )
