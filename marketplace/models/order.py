from sqlalchemy import Boolean, Column, DateTime, ForeignKey, Integer, Numeric, String, func
from sqlalchemy.orm import relationship

from marketplace.core.database import Base


class Order(Base):
    __tablename__ = "orders"

    id = Column(Integer, primary_key=True)
    buyer_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)

    # Money is frozen at checkout and never recomputed.
    subtotal_amount = Column(Numeric(12, 2), nullable=False)
    discount_amount = Column(Numeric(12, 2), nullable=False, default=0)
    total_amount = Column(Numeric(12, 2), nullable=False)
    refunded_amount = Column(Numeric(12, 2), nullable=False, default=0)
    discount_code_id = Column(Integer, ForeignKey("discount_codes.id"), nullable=True, index=True)
    free_shipping = Column(Boolean, nullable=False, default=False)

    status = Column(String(20), nullable=False, default="pending", index=True)
    payment_status = Column(String(30), nullable=False, default="pending")
    payment_method = Column(String(20), nullable=True)  # mtn | orange | other
    version = Column(Integer, nullable=False, default=1)

    shipping_name = Column(String(120), nullable=True)
    shipping_address_1 = Column(String(255), nullable=True)
    shipping_address_2 = Column(String(255), nullable=True)
    shipping_city = Column(String(120), nullable=True)
    shipping_postal_code = Column(String(20), nullable=True)
    shipping_country = Column(String(80), nullable=True)
    shipping_phone = Column(String(30), nullable=True)

    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)

    buyer = relationship("User")
    discount_code = relationship("DiscountCode")
    order_items = relationship("OrderItem", back_populates="order", cascade="all, delete-orphan")
    payments = relationship("OrderPayment", back_populates="order", cascade="all, delete-orphan")
    redemption = relationship("DiscountRedemption", back_populates="order", uselist=False)
