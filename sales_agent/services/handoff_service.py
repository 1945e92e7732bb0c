from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Optional

from sqlalchemy.orm import Session

from sales_agent.logging_config import get_logger
from sales_agent.models import Conversation, HandoffRequest
from sales_agent.services.catalog_service import Catalog
from sales_agent.services.conversation_service import (
    get_conversation,
    parse_uuid,
    save_message,
    set_follow_up,
    update_status,
)
from sales_agent.services.errors import ErrorCode
from sales_agent.services.intent_service import HANDOFF_INTENT_LABEL
from sales_agent.services.notification_service import OperatorNotifier, format_handoff_notification
from sales_agent.services.result import Result
from sales_agent.services.sheets_service import SheetsMirror
from sales_agent.services.state_machine import (
    OPEN_HANDOFF_STATUSES,
    ConversationStatus,
    HandoffStatus,
    Priority,
    higher_priority,
)
from sales_agent.services.waha_service import format_chat_id

logger = get_logger("handoff_service")


@dataclass
class HandoffOutcome:
    handoff: HandoffRequest
    reply: str
    reused: bool = False


def get_open_handoff(db: Session, conversation_id) -> Optional[HandoffRequest]:
    return (
        db.query(HandoffRequest)
        .filter(
            HandoffRequest.conversation_id == conversation_id,
            HandoffRequest.status.in_(OPEN_HANDOFF_STATUSES),
        )
        .order_by(HandoffRequest.created_at.desc())
        .first()
    )


class HandoffWorkflow:
    """Handoff state changes. Each transition is committed before any outbound call."""

    def __init__(self, transport, sheets: SheetsMirror, notifier: OperatorNotifier, catalog: Catalog):
        self.transport = transport
        self.sheets = sheets
        self.notifier = notifier
        self.catalog = catalog

    async def initiate(
        self,
        db: Session,
        conversation: Conversation,
        reason: str,
        priority: Priority = Priority.NORMAL,
    ) -> HandoffOutcome:
        """Move the conversation to a human and acknowledge the customer.

        A conversation keeps at most one open request; a second trigger extends it.
        """
        priority = Priority(priority)
        handoff = get_open_handoff(db, conversation.id)
        reused = handoff is not None

        if reused:
            if reason and reason not in (handoff.reason or ""):
                handoff.reason = f"{handoff.reason}; {reason}" if handoff.reason else reason
            handoff.priority = higher_priority(handoff.priority, priority.value).value
        else:
            handoff = HandoffRequest(
                conversation_id=conversation.id,
                chat_id=conversation.chat_id,
                phone_number=conversation.phone_number,
                customer_name=conversation.customer_name,
                reason=reason,
                priority=priority.value,
                status=HandoffStatus.PENDING.value,
            )
            db.add(handoff)

        if conversation.status != ConversationStatus.HUMAN_HANDOFF.value:
            update_status(db, conversation, ConversationStatus.HUMAN_HANDOFF)
        set_follow_up(conversation, None)
        db.commit()

        logger.info(
            "Handoff initiated",
            extra={
                "context": {
                    "handoff_id": str(handoff.id),
                    "chat_id": conversation.chat_id,
                    "priority": handoff.priority,
                    "reused": reused,
                }
            },
        )

        if not reused:
            await self.sheets.log_handoff(
                handoff_id=str(handoff.id),
                phone_number=conversation.phone_number,
                customer_name=conversation.customer_name or "",
                reason=reason,
                priority=handoff.priority,
            )
        await self.notifier.notify(
            format_handoff_notification(
                handoff_id=str(handoff.id),
                phone_number=conversation.phone_number,
                chat_id=conversation.chat_id,
                reason=handoff.reason or reason,
                priority=handoff.priority,
                customer_name=conversation.customer_name,
            )
        )

        reply = self.catalog.render("handoff_initiated")
        sent = await self.transport.send_text(conversation.chat_id, reply)
        if not sent.success:
            logger.error("Handoff acknowledgment not delivered", extra={"context": {"chat_id": conversation.chat_id}})
        save_message(db, conversation, "bot", reply, intent=HANDOFF_INTENT_LABEL)
        return HandoffOutcome(handoff=handoff, reply=reply, reused=reused)

    async def resume(self, db: Session, chat_id_or_phone: str, actor: str) -> Result[Conversation]:
        chat_id = format_chat_id(chat_id_or_phone)
        conversation = get_conversation(db, chat_id)
        if conversation is None:
            return Result.failure(f"Conversation not found: {chat_id}", ErrorCode.NOT_FOUND.value)
        if conversation.status != ConversationStatus.HUMAN_HANDOFF.value:
            return Result.failure(
                f"Conversation {chat_id} is {conversation.status}, not in human handoff",
                ErrorCode.INVALID_STATE.value,
            )

        update_status(db, conversation, ConversationStatus.ACTIVE)
        conversation.human_agent = None
        now = datetime.now(timezone.utc)
        note = f"AI resumed by {actor}"
        open_requests = (
            db.query(HandoffRequest)
            .filter(
                HandoffRequest.conversation_id == conversation.id,
                HandoffRequest.status.in_(OPEN_HANDOFF_STATUSES),
            )
            .all()
        )
        for handoff in open_requests:
            handoff.status = HandoffStatus.RESOLVED.value
            handoff.resolved_at = now
            handoff.resolution_notes = note
        db.commit()
        logger.info("AI resumed", extra={"context": {"chat_id": chat_id, "resolved": len(open_requests)}})

        for handoff in open_requests:
            await self.sheets.update_handoff_status(str(handoff.id), "Resolved", handoff.assigned_to or "", note)
        await self.transport.send_text(chat_id, self.catalog.render("ai_resumed"))
        await self.notifier.notify(f"✅ AI resumed for {chat_id}")
        return Result.success(conversation)

    async def assign(self, db: Session, handoff_id, agent_id: str) -> Result[HandoffRequest]:
        lookup = self._load_open(db, handoff_id)
        if not lookup.ok:
            return lookup
        handoff = lookup.value

        handoff.status = HandoffStatus.ASSIGNED.value
        handoff.assigned_to = agent_id
        handoff.assigned_at = datetime.now(timezone.utc)
        if handoff.conversation is not None:
            handoff.conversation.human_agent = agent_id
        db.commit()
        logger.info("Handoff assigned", extra={"context": {"handoff_id": str(handoff.id), "agent": agent_id}})

        await self.sheets.update_handoff_status(str(handoff.id), "Assigned", agent_id)
        await self.notifier.notify(f"✅ Handoff {handoff.id} assigned to {agent_id}")
        return Result.success(handoff)

    async def resolve(self, db: Session, handoff_id, notes: Optional[str] = None) -> Result[HandoffRequest]:
        lookup = self._load_open(db, handoff_id)
        if not lookup.ok:
            return lookup
        handoff = lookup.value

        handoff.status = HandoffStatus.RESOLVED.value
        handoff.resolved_at = datetime.now(timezone.utc)
        handoff.resolution_notes = notes
        conversation = handoff.conversation
        if conversation is not None and conversation.status == ConversationStatus.HUMAN_HANDOFF.value:
            update_status(db, conversation, ConversationStatus.ACTIVE)
            conversation.human_agent = None
        db.commit()
        logger.info("Handoff resolved", extra={"context": {"handoff_id": str(handoff.id)}})

        await self.sheets.update_handoff_status(str(handoff.id), "Resolved", handoff.assigned_to or "", notes or "")
        await self.notifier.notify(f"✅ Handoff {handoff.id} resolved")
        return Result.success(handoff)

    def pending_handoffs(self, db: Session) -> list[HandoffRequest]:
        return (
            db.query(HandoffRequest)
            .filter(HandoffRequest.status.in_(OPEN_HANDOFF_STATUSES))
            .order_by(HandoffRequest.created_at.desc())
            .all()
        )

    def _load_open(self, db: Session, handoff_id) -> Result[HandoffRequest]:
        parsed = parse_uuid(handoff_id)
        if parsed is None:
            return Result.failure(f"Invalid handoff id: {handoff_id}", ErrorCode.VALIDATION_ERROR.value)
        handoff = db.query(HandoffRequest).filter(HandoffRequest.id == parsed).first()
        if handoff is None:
            return Result.failure(f"Handoff not found: {handoff_id}", ErrorCode.NOT_FOUND.value)
        if handoff.status not in OPEN_HANDOFF_STATUSES:
            return Result.failure(f"Handoff already {handoff.status}", ErrorCode.INVALID_STATE.value)
        return Result.success(handoff)
