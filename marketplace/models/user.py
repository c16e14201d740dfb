from enum import Enum

from sqlalchemy import Boolean, Column, DateTime, Integer, String, func

from marketplace.core.database import Base


class Role(str, Enum):
    BUYER = "buyer"
    SELLER = "seller"
    PENDING_SELLER = "pending_seller"
    ADMIN = "admin"


class User(Base):
    __tablename__ = "users"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String(120), nullable=False)
    email = Column(String(255), unique=True, index=True, nullable=False)
    password_hash = Column(String(255), nullable=False)
    role = Column(String(20), nullable=False, default=Role.BUYER.value)  # see Role
    phone = Column(String(30), nullable=True)
    address_street = Column(String(255), nullable=True)
    address_city = Column(String(120), nullable=True)
    address_postal_code = Column(String(20), nullable=True)
    address_country = Column(String(80), nullable=True)
    is_active = Column(Boolean, nullable=False, default=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)

    @property
    def role_enum(self) -> Role:
        return Role(self.role)
