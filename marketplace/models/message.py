from sqlalchemy import Boolean, CheckConstraint, Column, DateTime, ForeignKey, Integer, String, Text, func
from sqlalchemy.orm import relationship

from marketplace.core.database import Base


class Message(Base):
    __tablename__ = "messages"
    __table_args__ = (CheckConstraint("sender_id <> recipient_id", name="ck_messages_not_to_self"),)

    id = Column(Integer, primary_key=True)
    # id of the first message of the conversation; equal to id on that first message
    thread_id = Column(Integer, ForeignKey("messages.id"), nullable=True, index=True)
    sender_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    recipient_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    subject = Column(String(100), nullable=False)
    body = Column(Text, nullable=False)
    is_read = Column(Boolean, nullable=False, default=False)
    read_at = Column(DateTime(timezone=True), nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)

    sender = relationship("User", foreign_keys=[sender_id])
    recipient = relationship("User", foreign_keys=[recipient_id])
