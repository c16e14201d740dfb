from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Depends
from fastapi.security import OAuth2PasswordRequestForm
from pydantic import BaseModel, EmailStr, Field, model_validator
from sqlalchemy.orm import Session

from marketplace.core.config import Settings, get_settings
from marketplace.core.database import get_db
from marketplace.core.errors import BadRequest, Conflict, Unauthorized
from marketplace.deps import get_current_user
from marketplace.models.user import User
from marketplace.services.auth import (
    authenticate_user,
    issue_token_for,
    register_user,
    request_password_reset,
    reset_password,
)

router = APIRouter(prefix="/api/auth", tags=["auth"])


class RegisterPayload(BaseModel):
    name: str = Field(..., min_length=1, max_length=120)
    email: EmailStr
    password: str = Field(..., min_length=8, max_length=128)
    phone: Optional[str] = Field(default=None, max_length=30)
    wants_to_sell: bool = False


class LoginPayload(BaseModel):
    email: EmailStr
    password: str


class PasswordResetPayload(BaseModel):
    email: EmailStr


class NewPasswordPayload(BaseModel):
    new_password: str = Field(..., min_length=8, max_length=128)
    new_password_confirmation: str

    @model_validator(mode="after")
    def passwords_match(self):
        if self.new_password != self.new_password_confirmation:
            raise ValueError("Passwords must match")
        return self


class PasswordResetConfirmPayload(NewPasswordPayload):
    token: str = Field(..., min_length=1)


def user_to_dict(user: User) -> dict:
    return {
        "id": user.id,
        "name": user.name,
        "email": user.email,
        "role": user.role,
        "phone": user.phone,
        "is_active": user.is_active,
        "created_at": user.created_at.isoformat() if user.created_at else None,
    }


def _token_response(settings: Settings, user: User) -> dict:
    return {"access_token": issue_token_for(settings, user), "token_type": "bearer", "user": user_to_dict(user)}


@router.post("/register", status_code=201)
def register(
    payload: RegisterPayload,
    db: Session = Depends(get_db),
    settings: Settings = Depends(get_settings),
):
    user = register_user(
        db,
        name=payload.name,
        email=payload.email,
        password=payload.password,
        wants_to_sell=payload.wants_to_sell,
        phone=payload.phone,
    )
    if user is None:
        raise Conflict("Email is already registered", code="email_taken")
    return _token_response(settings, user)


@router.post("/login")
def login(payload: LoginPayload, db: Session = Depends(get_db), settings: Settings = Depends(get_settings)):
    user = authenticate_user(db, payload.email, payload.password)
    if user is None:
        raise Unauthorized("Invalid credentials")
    return _token_response(settings, user)


@router.post("/token")
def token(
    form_data: OAuth2PasswordRequestForm = Depends(),
    db: Session = Depends(get_db),
    settings: Settings = Depends(get_settings),
):
    """OAuth2 password flow used by the docs "Authorize" button; username is the email."""
    user = authenticate_user(db, form_data.username, form_data.password)
    if user is None:
        raise Unauthorized("Invalid credentials")
    return {"access_token": issue_token_for(settings, user), "token_type": "bearer"}


@router.get("/me")
def me(user: User = Depends(get_current_user)):
    return user_to_dict(user)


@router.post("/reset-password", status_code=202)
def reset_password_request(
    payload: PasswordResetPayload,
    db: Session = Depends(get_db),
    settings: Settings = Depends(get_settings),
):
    request_password_reset(db, settings, payload.email)
    return {"detail": "If the email is registered, reset instructions have been sent"}


@router.post("/reset-password/confirm")
def reset_password_confirm(
    payload: PasswordResetConfirmPayload,
    db: Session = Depends(get_db),
    settings: Settings = Depends(get_settings),
):
    try:
        reset_password(db, settings, payload.token, payload.new_password)
    except ValueError:
        raise BadRequest("Reset link is invalid or has expired", code="invalid_reset_token")
    return {"detail": "Password updated"}
