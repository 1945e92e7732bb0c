from datetime import datetime, timezone
from typing import Optional
from uuid import UUID

from sqlalchemy.orm import Session

from sales_agent.models import Conversation, HandoffRequest, Message, Payment
from sales_agent.services.state_machine import (
    OPEN_HANDOFF_STATUSES,
    ConversationStatus,
    FollowUp,
    PaymentStatus,
    transition,
)


def get_conversation(db: Session, chat_id: str) -> Optional[Conversation]:
    return db.query(Conversation).filter(Conversation.chat_id == chat_id).first()


def get_or_create_conversation(
    db: Session,
    chat_id: str,
    phone_number: str,
    customer_name: Optional[str] = None,
) -> Conversation:
    """One conversation per chat id, created on first contact."""
    conversation = get_conversation(db, chat_id)

    if not conversation:
        conversation = Conversation(
            chat_id=chat_id,
            phone_number=phone_number,
            customer_name=customer_name,
            status=ConversationStatus.ACTIVE.value,
            total_messages=0,
        )
        db.add(conversation)
        db.flush()
    elif customer_name and not conversation.customer_name:
        conversation.customer_name = customer_name

    return conversation


def update_status(db: Session, conversation: Conversation, new_status: ConversationStatus) -> ConversationStatus:
    """Move the conversation to new_status. Raises InvalidTransitionError if not allowed."""
    current = ConversationStatus(conversation.status)
    conversation.status = transition(current, new_status).value
    db.flush()
    return new_status


def save_message(
    db: Session,
    conversation: Conversation,
    sender: str,
    body: Optional[str],
    message_type: str = "text",
    intent: Optional[str] = None,
    message_id: Optional[str] = None,
    media_url: Optional[str] = None,
) -> Message:
    now = datetime.now(timezone.utc)
    message = Message(
        conversation_id=conversation.id,
        chat_id=conversation.chat_id,
        message_id=message_id,
        sender=sender,
        body=body,
        message_type=message_type,
        intent=intent,
        media_url=media_url,
        created_at=now,
    )
    db.add(message)
    # Read-modify-write; concurrent messages on one chat may undercount.
    conversation.total_messages = (conversation.total_messages or 0) + 1
    conversation.last_message_at = now
    db.flush()
    return message


def get_history(db: Session, conversation_id: UUID, limit: int = 10) -> list[Message]:
    """Most recent messages, oldest first."""
    rows = (
        db.query(Message)
        .filter(Message.conversation_id == conversation_id)
        .order_by(Message.created_at.desc())
        .limit(limit)
        .all()
    )
    return list(reversed(rows))


def message_exists(db: Session, message_id: str) -> bool:
    return db.query(Message.id).filter(Message.message_id == message_id).first() is not None


def set_follow_up(conversation: Conversation, follow_up: Optional[FollowUp]) -> None:
    conversation.expected_follow_up = follow_up.value if follow_up else None


def consume_follow_up(conversation: Conversation) -> Optional[FollowUp]:
    """Return the pending follow-up (if any) and clear it."""
    value = conversation.expected_follow_up
    conversation.expected_follow_up = None
    return FollowUp(value) if value else None


def get_stats(db: Session) -> dict:
    return {
        "total_conversations": db.query(Conversation).count(),
        "active_conversations": db.query(Conversation)
        .filter(Conversation.status == ConversationStatus.ACTIVE.value)
        .count(),
        "pending_handoffs": db.query(HandoffRequest).filter(HandoffRequest.status.in_(OPEN_HANDOFF_STATUSES)).count(),
        "pending_payments": db.query(Payment).filter(Payment.status == PaymentStatus.PENDING.value).count(),
        "total_messages": db.query(Message).count(),
    }


def parse_uuid(value) -> Optional[UUID]:
    if isinstance(value, UUID):
        return value
    try:
        return UUID(str(value).strip())
    except (TypeError, ValueError, AttributeError):
        return None
