from __future__ import annotations

from contextvars import ContextVar
from dataclasses import dataclass


@dataclass(frozen=True)
class RequestContext:
    request_id: str | None
    user_id: str | None
    user_role: str | None


_REQUEST_ID_CTX: ContextVar[str | None] = ContextVar("request_id", default=None)
_USER_ID_CTX: ContextVar[str | None] = ContextVar("user_id", default=None)
_USER_ROLE_CTX: ContextVar[str | None] = ContextVar("user_role", default=None)


def set_request_context(
    *, request_id: str | None = None, user_id: str | None = None, user_role: str | None = None
) -> None:
    if request_id is not None:
        _REQUEST_ID_CTX.set(request_id)
    if user_id is not None:
        _USER_ID_CTX.set(user_id)
    if user_role is not None:
        _USER_ROLE_CTX.set(user_role)


def current_context() -> RequestContext:
    return RequestContext(
        request_id=_REQUEST_ID_CTX.get(),
        user_id=_USER_ID_CTX.get(),
        user_role=_USER_ROLE_CTX.get(),
    )


def clear_request_context() -> None:
    _REQUEST_ID_CTX.set(None)
    _USER_ID_CTX.set(None)
    _USER_ROLE_CTX.set(None)
