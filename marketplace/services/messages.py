"""Direct messages between marketplace users.

A conversation is a thread keyed by the id of its first message. Only the two
people in a thread can read it or reply to it, and only the recipient of a
message can mark it read.
"""

from __future__ import annotations

import logging

from sqlalchemy import or_
from sqlalchemy.orm import Session

from marketplace.core.clock import utcnow
from marketplace.core.errors import BadRequest, Forbidden, NotFound
from marketplace.models.message import Message
from marketplace.models.user import User
from marketplace.services.event_bus import MESSAGE_SENT, event_bus

logger = logging.getLogger(__name__)


def _involving(user_id: int):
    return or_(Message.sender_id == user_id, Message.recipient_id == user_id)


def _thread_root(db: Session, user_id: int, thread_id: int) -> Message:
    root = db.query(Message).filter(Message.id == thread_id, Message.thread_id == thread_id).first()
    if root is None or user_id not in (root.sender_id, root.recipient_id):
        raise NotFound("Conversation not found")
    return root


def send_message(
    db: Session,
    sender: User,
    *,
    recipient_id: int | None,
    subject: str,
    body: str,
    thread_id: int | None = None,
) -> Message:
    if thread_id is not None:
        root = _thread_root(db, sender.id, thread_id)
        # a reply always goes to the other person in the thread
        recipient_id = root.recipient_id if root.sender_id == sender.id else root.sender_id
    if recipient_id is None:
        raise BadRequest("recipient_id is required to start a conversation")
    if not subject.strip() or not body.strip():
        raise BadRequest("Subject and message cannot be blank")
    if recipient_id == sender.id:
        raise BadRequest("You cannot send a message to yourself")

    recipient = db.query(User).filter(User.id == recipient_id, User.is_active.is_(True)).first()
    if recipient is None:
        raise NotFound("Recipient not found")

    message = Message(
        thread_id=thread_id,
        sender_id=sender.id,
        recipient_id=recipient.id,
        subject=subject.strip(),
        body=body.strip(),
        is_read=False,
    )
    db.add(message)
    db.flush()
    if message.thread_id is None:
        message.thread_id = message.id
    db.commit()
    db.refresh(message)

    logger.info(
        "message sent id=%s thread=%s sender=%s recipient=%s",
        message.id,
        message.thread_id,
        message.sender_id,
        message.recipient_id,
    )
    event_bus.emit(
        MESSAGE_SENT,
        {
            "message_id": message.id,
            "thread_id": message.thread_id,
            "sender_id": message.sender_id,
            "recipient_id": message.recipient_id,
        },
    )
    return message


def list_messages(
    db: Session,
    user_id: int,
    *,
    unread_only: bool = False,
    limit: int = 50,
    offset: int = 0,
) -> list[Message]:
    """Sent and received messages, newest first; unread_only keeps unread received ones."""
    if unread_only:
        query = db.query(Message).filter(Message.recipient_id == user_id, Message.is_read.is_(False))
    else:
        query = db.query(Message).filter(_involving(user_id))
    return query.order_by(Message.created_at.desc(), Message.id.desc()).offset(offset).limit(limit).all()


def unread_count(db: Session, user_id: int) -> int:
    return db.query(Message).filter(Message.recipient_id == user_id, Message.is_read.is_(False)).count()


def get_thread(db: Session, user_id: int, thread_id: int) -> list[Message]:
    _thread_root(db, user_id, thread_id)
    return db.query(Message).filter(Message.thread_id == thread_id).order_by(Message.created_at, Message.id).all()


def mark_read(db: Session, user_id: int, message_id: int) -> Message:
    message = db.query(Message).filter(Message.id == message_id, _involving(user_id)).first()
    if message is None:
        raise NotFound("Message not found")
    if message.recipient_id != user_id:
        raise Forbidden("Only the recipient can mark a message as read")
    if not message.is_read:
        message.is_read = True
        message.read_at = utcnow()
        db.commit()
        db.refresh(message)
    return message
