from __future__ import annotations

import logging
from typing import Any, Callable, Dict, Optional

from fastapi import Depends, Request
from fastapi.security import OAuth2PasswordBearer
from sqlalchemy.orm import Session

from marketplace.core.config import Settings, get_settings
from marketplace.core.database import get_db
from marketplace.core.errors import Forbidden, Unauthorized
from marketplace.core.request_context import set_request_context
from marketplace.models.user import Role, User
from marketplace.services.auth import decode_access_token

oauth2_scheme = OAuth2PasswordBearer(tokenUrl="/api/auth/token")

logger = logging.getLogger(__name__)


def _extract_user_id(payload: Dict[str, Any]) -> Optional[int]:
    raw = payload.get("sub")
    if isinstance(raw, int):
        return raw
    if isinstance(raw, str) and raw.strip().isdigit():
        return int(raw.strip())
    return None


def get_current_user(
    request: Request,
    token: str = Depends(oauth2_scheme),
    db: Session = Depends(get_db),
    settings: Settings = Depends(get_settings),
) -> User:
    try:
        payload = decode_access_token(settings, token)
    except ValueError:
        raise Unauthorized("Invalid or expired token")

    if payload.get("purpose"):
        # single-purpose tokens such as password resets are not sessions
        raise Unauthorized("Invalid or expired token")

    user_id = _extract_user_id(payload)
    if user_id is None:
        raise Unauthorized("Token has no subject")

    user = db.query(User).filter(User.id == user_id).first()
    if user is None or not user.is_active:
        raise Unauthorized("User not found")

    # Plain values only: a rollback later in the request expires the ORM instance.
    request.state.user_id = user.id
    request.state.user_role = user.role
    set_request_context(user_id=str(user.id), user_role=user.role)
    return user


def require_roles(*roles: Role) -> Callable[..., User]:
    allowed = {role.value for role in roles}

    def dependency(user: User = Depends(get_current_user)) -> User:
        if user.role not in allowed:
            logger.info("role denied user_id=%s role=%s allowed=%s", user.id, user.role, sorted(allowed))
            raise Forbidden("Your role is not allowed to use this endpoint")
        return user

    return dependency


require_admin = require_roles(Role.ADMIN)
require_seller = require_roles(Role.SELLER)
require_buyer = require_roles(Role.BUYER)
