from __future__ import annotations

import logging

from sqlalchemy.orm import Session

from marketplace.models.user import Role, User
from marketplace.services.auth import hash_password, normalize_email

logger = logging.getLogger(__name__)
BOOTSTRAP_PREFIX = "[ADMIN_BOOTSTRAP]"
DEFAULT_ADMIN_NAME = "Admin"


def upsert_admin_user(
    db: Session,
    *,
    email: str,
    password: str | None,
    name: str = DEFAULT_ADMIN_NAME,
    reset_password: bool = False,
) -> tuple[User, bool]:
    """Create the admin account, or promote and optionally re-key an existing user with that email."""
    email = normalize_email(email)
    if not email:
        raise ValueError("Admin email is required")

    user = db.query(User).filter(User.email == email).first()
    if user is None:
        if not password:
            raise ValueError("Password is required to create an admin")
        user = User(
            name=name,
            email=email,
            password_hash=hash_password(password),
            role=Role.ADMIN.value,
            is_active=True,
        )
        db.add(user)
        db.commit()
        db.refresh(user)
        logger.info("%s created id=%s email=%s", BOOTSTRAP_PREFIX, user.id, user.email)
        return user, True

    user.role = Role.ADMIN.value
    user.is_active = True
    if password and reset_password:
        user.password_hash = hash_password(password)
    db.commit()
    db.refresh(user)
    logger.info("%s exists id=%s email=%s", BOOTSTRAP_PREFIX, user.id, user.email)
    return user, False
