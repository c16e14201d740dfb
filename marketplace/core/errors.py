from __future__ import annotations

import logging
from typing import Any

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from sqlalchemy.exc import SQLAlchemyError

logger = logging.getLogger(__name__)

INTERNAL_ERROR_MESSAGE = "An internal server error occurred"


class MarketplaceError(Exception):
    """Base for every error a handler may surface to an API caller."""

    status_code = status.HTTP_400_BAD_REQUEST
    code = "bad_request"

    def __init__(self, detail: str, *, code: str | None = None) -> None:
        super().__init__(detail)
        self.detail = detail
        if code is not None:
            self.code = code

    def to_payload(self) -> dict[str, Any]:
        return {"detail": self.detail, "code": self.code}


class BadRequest(MarketplaceError):
    status_code = status.HTTP_400_BAD_REQUEST
    code = "bad_request"


class ValidationFailure(MarketplaceError):
    status_code = 422
    code = "validation_failed"

    def __init__(self, detail: str, *, errors: dict[str, str] | None = None, code: str | None = None) -> None:
        super().__init__(detail, code=code)
        self.errors = errors or {}

    def to_payload(self) -> dict[str, Any]:
        payload = super().to_payload()
        payload["errors"] = self.errors
        return payload


class Unauthorized(MarketplaceError):
    status_code = status.HTTP_401_UNAUTHORIZED
    code = "unauthorized"


class Forbidden(MarketplaceError):
    status_code = status.HTTP_403_FORBIDDEN
    code = "forbidden"


class NotFound(MarketplaceError):
    status_code = status.HTTP_404_NOT_FOUND
    code = "not_found"


class Conflict(MarketplaceError):
    status_code = status.HTTP_409_CONFLICT
    code = "conflict"


class Internal(MarketplaceError):
    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR
    code = "internal_error"

    def to_payload(self) -> dict[str, Any]:
        return {"detail": INTERNAL_ERROR_MESSAGE, "code": self.code}


async def _handle_marketplace_error(request: Request, exc: MarketplaceError) -> JSONResponse:
    if isinstance(exc, Internal):
        logger.error("internal error on %s %s: %s", request.method, request.url.path, exc.detail)
    headers = {"WWW-Authenticate": "Bearer"} if isinstance(exc, Unauthorized) else None
    return JSONResponse(status_code=exc.status_code, content=exc.to_payload(), headers=headers)


async def _handle_request_validation(request: Request, exc: RequestValidationError) -> JSONResponse:
    errors: dict[str, str] = {}
    for error in exc.errors():
        location = [str(part) for part in error.get("loc", ()) if part not in ("body", "query", "path")]
        errors[".".join(location) or "request"] = error.get("msg", "invalid value")
    failure = ValidationFailure("Request validation failed", errors=errors)
    return JSONResponse(status_code=failure.status_code, content=failure.to_payload())


async def _handle_database_error(request: Request, exc: SQLAlchemyError) -> JSONResponse:
    logger.exception("database error on %s %s", request.method, request.url.path, exc_info=exc)
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={"detail": INTERNAL_ERROR_MESSAGE, "code": Internal.code},
    )


def register_exception_handlers(app: FastAPI) -> None:
    app.add_exception_handler(MarketplaceError, _handle_marketplace_error)
    app.add_exception_handler(RequestValidationError, _handle_request_validation)
    app.add_exception_handler(SQLAlchemyError, _handle_database_error)
