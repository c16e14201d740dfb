from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel, Field
from sqlalchemy.orm import Session

from marketplace.core.database import get_db
from marketplace.deps import get_current_user
from marketplace.models.message import Message
from marketplace.models.user import User
from marketplace.services.messages import get_thread, list_messages, mark_read, send_message, unread_count

router = APIRouter(prefix="/api/messages", tags=["messages"])


class MessagePayload(BaseModel):
    recipient_id: Optional[int] = None
    thread_id: Optional[int] = None
    subject: str = Field(..., min_length=1, max_length=100)
    message: str = Field(..., min_length=1, max_length=5000)


def message_to_dict(message: Message) -> dict:
    return {
        "id": message.id,
        "thread_id": message.thread_id,
        "sender_id": message.sender_id,
        "sender_name": message.sender.name if message.sender else None,
        "recipient_id": message.recipient_id,
        "recipient_name": message.recipient.name if message.recipient else None,
        "subject": message.subject,
        "message": message.body,
        "read": message.is_read,
        "read_at": message.read_at.isoformat() if message.read_at else None,
        "created_at": message.created_at.isoformat() if message.created_at else None,
    }


@router.get("")
def inbox(
    unread_only: bool = False,
    limit: int = Query(default=50, ge=1, le=200),
    offset: int = Query(default=0, ge=0),
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
):
    messages = list_messages(db, user.id, unread_only=unread_only, limit=limit, offset=offset)
    return {
        "messages": [message_to_dict(message) for message in messages],
        "unread_count": unread_count(db, user.id),
    }


@router.post("", status_code=201)
def send(payload: MessagePayload, db: Session = Depends(get_db), user: User = Depends(get_current_user)):
    message = send_message(
        db,
        user,
        recipient_id=payload.recipient_id,
        subject=payload.subject,
        body=payload.message,
        thread_id=payload.thread_id,
    )
    return message_to_dict(message)


@router.get("/{thread_id}")
def thread(thread_id: int, db: Session = Depends(get_db), user: User = Depends(get_current_user)):
    return [message_to_dict(message) for message in get_thread(db, user.id, thread_id)]


@router.put("/{message_id}/read")
def read(message_id: int, db: Session = Depends(get_db), user: User = Depends(get_current_user)):
    return message_to_dict(mark_read(db, user.id, message_id))
