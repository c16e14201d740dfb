from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field
from sqlalchemy.orm import Session

from marketplace.core.database import get_db
from marketplace.core.errors import BadRequest
from marketplace.deps import get_current_user
from marketplace.models.user import User
from marketplace.routers.auth import NewPasswordPayload, user_to_dict
from marketplace.services.auth import change_password

router = APIRouter(prefix="/api/users", tags=["users"])


class ProfilePayload(BaseModel):
    name: str = Field(..., min_length=1, max_length=120)
    phone: Optional[str] = Field(default=None, max_length=30)


class AddressPayload(BaseModel):
    street: Optional[str] = Field(default=None, max_length=255)
    city: Optional[str] = Field(default=None, max_length=120)
    postal_code: Optional[str] = Field(default=None, max_length=20)
    country: Optional[str] = Field(default=None, max_length=80)


class ChangePasswordPayload(NewPasswordPayload):
    current_password: str = Field(..., min_length=1)


def address_to_dict(user: User) -> dict:
    return {
        "street": user.address_street,
        "city": user.address_city,
        "postal_code": user.address_postal_code,
        "country": user.address_country,
    }


def profile_to_dict(user: User) -> dict:
    profile = user_to_dict(user)
    address = address_to_dict(user)
    profile["address"] = address if any(address.values()) else None
    return profile


def _clean(value: Optional[str]) -> Optional[str]:
    value = (value or "").strip()
    return value or None


@router.get("/profile")
def get_profile(user: User = Depends(get_current_user)):
    return profile_to_dict(user)


@router.put("/profile")
def update_profile(payload: ProfilePayload, db: Session = Depends(get_db), user: User = Depends(get_current_user)):
    name = payload.name.strip()
    if not name:
        raise BadRequest("Name cannot be blank")
    user.name = name
    # phone is only replaced when sent
    if payload.phone is not None:
        user.phone = _clean(payload.phone)
    db.commit()
    db.refresh(user)
    return profile_to_dict(user)


@router.get("/profile/address")
def get_address(user: User = Depends(get_current_user)):
    return address_to_dict(user)


@router.put("/profile/address")
def update_address(payload: AddressPayload, db: Session = Depends(get_db), user: User = Depends(get_current_user)):
    user.address_street = _clean(payload.street)
    user.address_city = _clean(payload.city)
    user.address_postal_code = _clean(payload.postal_code)
    user.address_country = _clean(payload.country)
    db.commit()
    db.refresh(user)
    return address_to_dict(user)


@router.put("/me/password")
def update_password(
    payload: ChangePasswordPayload,
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
):
    if not change_password(db, user, payload.current_password, payload.new_password):
        raise BadRequest("Current password is incorrect", code="wrong_password")
    return {"detail": "Password updated"}
