from __future__ import annotations

import hashlib
import logging
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Optional

import bcrypt
from jose import JWTError, jwt
from sqlalchemy.orm import Session

from marketplace.core.config import Settings
from marketplace.models.user import Role, User
from marketplace.services.event_bus import PASSWORD_RESET_REQUESTED, event_bus

logger = logging.getLogger(__name__)

# bcrypt only looks at the first 72 bytes.
_BCRYPT_MAX_BYTES = 72

PASSWORD_RESET_PURPOSE = "password_reset"
PASSWORD_RESET_EXPIRE_MINUTES = 30


def _password_bytes(password: str) -> bytes:
    return (password or "").encode("utf-8")[:_BCRYPT_MAX_BYTES]


def hash_password(password: str) -> str:
    return bcrypt.hashpw(_password_bytes(password), bcrypt.gensalt()).decode("utf-8")


def verify_password(plain_password: str, password_hash: str) -> bool:
    try:
        return bcrypt.checkpw(_password_bytes(plain_password), (password_hash or "").encode("utf-8"))
    except ValueError:
        # malformed hash
        return False


def create_access_token(
    settings: Settings,
    user_id: int,
    extra: Optional[Dict[str, Any]] = None,
    expires_minutes: int | None = None,
) -> str:
    """Sign a bearer token; ``sub`` must be a string for python-jose."""
    now = datetime.now(timezone.utc)
    exp = now + timedelta(minutes=expires_minutes or settings.jwt_expire_minutes)
    payload: Dict[str, Any] = {
        "sub": str(user_id),
        "iat": int(now.timestamp()),
        "exp": int(exp.timestamp()),
    }
    if extra:
        payload.update(extra)
    return jwt.encode(payload, settings.jwt_secret_key, algorithm=settings.jwt_algorithm)


def decode_access_token(settings: Settings, token: str) -> Dict[str, Any]:
    """Return the token payload or raise ValueError if it is invalid or expired."""
    try:
        return jwt.decode(token, settings.jwt_secret_key, algorithms=[settings.jwt_algorithm])
    except JWTError as exc:
        raise ValueError("Invalid or expired token") from exc


def issue_token_for(settings: Settings, user: User) -> str:
    return create_access_token(settings, user.id, extra={"role": user.role})


def normalize_email(email: str) -> str:
    return (email or "").strip().lower()


def authenticate_user(db: Session, email: str, password: str) -> User | None:
    user = db.query(User).filter(User.email == normalize_email(email)).first()
    if user is None or not user.is_active:
        return None
    if not verify_password(password, user.password_hash):
        return None
    return user


def register_user(
    db: Session,
    *,
    name: str,
    email: str,
    password: str,
    wants_to_sell: bool,
    phone: str | None = None,
) -> User | None:
    """Create a buyer, or a pending seller awaiting admin approval. None if the email is taken."""
    email = normalize_email(email)
    if db.query(User.id).filter(User.email == email).first() is not None:
        return None
    user = User(
        name=name.strip(),
        email=email,
        password_hash=hash_password(password),
        role=(Role.PENDING_SELLER if wants_to_sell else Role.BUYER).value,
        phone=phone,
        is_active=True,
    )
    db.add(user)
    db.commit()
    db.refresh(user)
    logger.info("user registered id=%s role=%s", user.id, user.role)
    return user


def change_password(db: Session, user: User, current_password: str, new_password: str) -> bool:
    """False when current_password does not match."""
    if not verify_password(current_password, user.password_hash):
        return False
    user.password_hash = hash_password(new_password)
    db.commit()
    logger.info("password changed user_id=%s", user.id)
    return True


def _password_fingerprint(user: User) -> str:
    # Changes with every new password, so a reset token works once.
    return hashlib.sha256(user.password_hash.encode("utf-8")).hexdigest()[:16]


def request_password_reset(db: Session, settings: Settings, email: str) -> str | None:
    """Issue a short-lived reset token and hand it to the notification handlers.

    Returns None for unknown or inactive accounts; callers answer the same way in
    both cases so the endpoint does not reveal which emails are registered.
    """
    user = db.query(User).filter(User.email == normalize_email(email)).first()
    if user is None or not user.is_active:
        logger.info("password reset requested for unknown email")
        return None
    token = create_access_token(
        settings,
        user.id,
        extra={"purpose": PASSWORD_RESET_PURPOSE, "pwf": _password_fingerprint(user)},
        expires_minutes=PASSWORD_RESET_EXPIRE_MINUTES,
    )
    event_bus.emit(PASSWORD_RESET_REQUESTED, {"user_id": user.id, "email": user.email, "token": token})
    return token


def reset_password(db: Session, settings: Settings, token: str, new_password: str) -> User:
    """Set a new password from a reset token; raises ValueError when the token is unusable."""
    payload = decode_access_token(settings, token)
    if payload.get("purpose") != PASSWORD_RESET_PURPOSE:
        raise ValueError("Not a password reset token")
    raw_id = str(payload.get("sub") or "")
    user = db.query(User).filter(User.id == int(raw_id)).first() if raw_id.isdigit() else None
    if user is None or not user.is_active or payload.get("pwf") != _password_fingerprint(user):
        raise ValueError("Reset token is no longer valid")
    user.password_hash = hash_password(new_password)
    db.commit()
    logger.info("password reset user_id=%s", user.id)
    return user
