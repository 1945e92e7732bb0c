from dataclasses import dataclass
from typing import Any, Optional, Sequence

from sqlalchemy.orm import Session

from sales_agent.logging_config import get_logger
from sales_agent.models import Conversation, Message
from sales_agent.services.admin_command_service import handle_admin_command, parse_admin_command
from sales_agent.services.conversation_service import (
    consume_follow_up,
    get_conversation,
    get_history,
    get_or_create_conversation,
    save_message,
    set_follow_up,
    update_status,
)
from sales_agent.services.errors import CommandValidationError, ErrorCode
from sales_agent.services.intent_service import (
    HANDOFF_INTENT_LABEL,
    HUMAN_REPLY_LABEL,
    Classification,
    Intent,
    detect_language,
    should_handoff,
)
from sales_agent.services.notification_service import format_forwarded_message
from sales_agent.services.rate_limit_service import check_rate_limit
from sales_agent.services.result import Result
from sales_agent.services.state_machine import ConversationStatus, FollowUp, Priority
from sales_agent.services.waha_service import (
    ParsedMessage,
    format_chat_id,
    is_processable,
    parse_inbound_event,
)

logger = get_logger("message_service")

MSG_CONFIRMED_HANDOFF_REASON = "Customer confirmed request for human agent"


@dataclass
class InboundResult:
    processed: bool
    intent: Optional[str] = None
    confidence: Optional[float] = None
    reason: Optional[str] = None
    error: Optional[str] = None
    action: Optional[str] = None
    handoff: bool = False
    forwarded: bool = False


@dataclass
class BotReply:
    text: str
    follow_up: Optional[FollowUp] = None


async def handle_inbound_message(db: Session, services, raw_payload: dict[str, Any]) -> InboundResult:
    """Process one webhook event end to end. Never raises; failures land in the result."""
    message = parse_inbound_event(raw_payload)
    if not is_processable(message):
        return InboundResult(processed=False, reason="not_processable")

    try:
        return await _process_message(db, services, message)
    except Exception as exc:
        db.rollback()
        logger.error(
            "Inbound message failed",
            extra={"context": {"chat_id": message.chat_id, "message_id": message.message_id, "error": str(exc)}},
            exc_info=True,
        )
        await services.transport.send_text(
            message.chat_id, services.catalog.error_message(services.settings.admin_phone)
        )
        return InboundResult(processed=False, error=str(exc))


async def _process_message(db: Session, services, message: ParsedMessage) -> InboundResult:
    """Run the pipeline for one parsed message.

    Pending writes are committed before every outbound call so no row lock
    outlives an await; a second message from the same chat never waits on it.
    """
    settings = services.settings
    logger.info(
        "Inbound message",
        extra={"context": {"phone": message.phone_number, "preview": message.body[:50], "media": message.has_media}},
    )

    if await services.dedup.is_duplicate(db, message.message_id):
        logger.info("Duplicate event skipped", extra={"context": {"message_id": message.message_id}})
        return InboundResult(processed=False, reason="duplicate")

    allowed = check_rate_limit(
        db,
        message.chat_id,
        window_seconds=settings.rate_limit_window_seconds,
        max_requests=settings.rate_limit_max_requests,
    )
    db.commit()
    if not allowed:
        await services.transport.send_text(message.chat_id, services.catalog.render("rate_limited"))
        return InboundResult(processed=False, reason="rate_limited")

    conversation = get_or_create_conversation(db, message.chat_id, message.phone_number, message.customer_name)

    if services.notifier.is_admin(message.phone_number):
        admin_result = await _maybe_handle_admin(db, services, message)
        if admin_result is not None:
            return admin_result

    if conversation.status == ConversationStatus.BLOCKED.value:
        db.commit()
        return InboundResult(processed=False, reason="blocked")
    if conversation.status == ConversationStatus.COMPLETED.value:
        update_status(db, conversation, ConversationStatus.ACTIVE)

    if conversation.status == ConversationStatus.HUMAN_HANDOFF.value:
        return await _forward_to_operator(db, services, conversation, message)

    history = get_history(db, conversation.id, limit=settings.history_limit)
    classification = services.classifier.classify(message.body, has_attachment=message.has_media)
    save_message(
        db,
        conversation,
        "customer",
        message.body,
        message_type=message.media_type,
        intent=classification.intent.value,
        message_id=message.message_id,
        media_url=message.media_url,
    )
    follow_up = consume_follow_up(conversation)
    db.commit()

    logger.info(
        "Message classified",
        extra={
            "context": {
                "chat_id": message.chat_id,
                "intent": classification.intent.value,
                "confidence": classification.confidence,
                "follow_up": follow_up.value if follow_up else None,
            }
        },
    )

    decision = should_handoff(classification)
    if decision.handoff:
        await services.handoffs.initiate(db, conversation, decision.reason, decision.priority)
        db.commit()
        return _classified_result(classification, handoff=True)

    reply = await process_intent(db, services, conversation, message, classification, history, follow_up)
    if reply is None:
        db.commit()
        return _classified_result(classification, handoff=True)

    sent = await services.transport.send_text(message.chat_id, reply.text)
    if not sent.success:
        logger.error("Reply not delivered", extra={"context": {"chat_id": message.chat_id, "error": sent.error}})
    save_message(db, conversation, "bot", reply.text, intent=classification.intent.value)
    set_follow_up(conversation, reply.follow_up)
    db.commit()
    return _classified_result(classification)


def _classified_result(classification: Classification, handoff: bool = False) -> InboundResult:
    return InboundResult(
        processed=True,
        intent=classification.intent.value,
        confidence=classification.confidence,
        handoff=handoff,
    )


async def _maybe_handle_admin(db: Session, services, message: ParsedMessage) -> Optional[InboundResult]:
    try:
        command = parse_admin_command(message.body)
    except CommandValidationError as exc:
        db.commit()
        await services.transport.send_text(message.chat_id, f"❌ {exc}")
        return InboundResult(processed=True, action="invalid_command", error=str(exc))

    if command is None:
        return None

    db.commit()
    outcome = await handle_admin_command(db, services, command, message.chat_id)
    db.commit()
    return InboundResult(
        processed=outcome["processed"],
        action=outcome["action"],
        error=outcome.get("error"),
    )


async def _forward_to_operator(db: Session, services, conversation: Conversation, message: ParsedMessage) -> InboundResult:
    save_message(
        db,
        conversation,
        "customer",
        message.body,
        message_type=message.media_type,
        intent=HANDOFF_INTENT_LABEL,
        message_id=message.message_id,
        media_url=message.media_url,
    )
    db.commit()
    await services.notifier.notify(
        format_forwarded_message(conversation.phone_number, message.body, conversation.customer_name)
    )
    return InboundResult(processed=True, handoff=True, forwarded=True)


async def process_intent(
    db: Session,
    services,
    conversation: Conversation,
    message: ParsedMessage,
    classification: Classification,
    history: Sequence[Message],
    follow_up: Optional[FollowUp],
) -> Optional[BotReply]:
    """Pick the reply for a classified message. None means the handoff flow already replied."""
    catalog = services.catalog
    intent = classification.intent
    metadata = classification.metadata
    service_id = metadata.get("service_id")
    context = {
        "is_returning": bool(history),
        "customer_name": conversation.customer_name,
        "service_id": service_id,
        "service_name": metadata.get("service_name"),
        "language": detect_language(message.body),
    }

    if intent == Intent.GREETING:
        return BotReply(catalog.greeting(is_returning=bool(history)))

    if intent in (Intent.SERVICE_INQUIRY, Intent.PRICING_INQUIRY):
        info = catalog.service_info(service_id) if service_id else None
        if info:
            return BotReply(f"{info}\n\n{catalog.render('order_prompt')}", FollowUp.ORDER_CONFIRMATION)
        return await generate_reply(services, message.body, history, intent, context)

    if intent == Intent.PAYMENT_INQUIRY:
        return BotReply(catalog.payment_methods_message())

    if intent == Intent.PAYMENT_CONFIRMATION:
        text = await services.payments.initiate(
            db,
            conversation,
            has_attachment=message.has_media,
            service_id=service_id,
            service_name=metadata.get("service_name"),
        )
        return BotReply(text)

    if intent == Intent.ORDER_INTENT:
        info = catalog.service_info(service_id) if service_id else None
        if info:
            return BotReply(f"{info}\n\n{catalog.payment_methods_message()}")
        return await generate_reply(services, message.body, history, intent, context)

    if intent == Intent.FAQ:
        answer = catalog.find_faq_answer(message.body)
        if answer:
            return BotReply(answer)
        return await generate_reply(services, message.body, history, intent, context)

    if intent == Intent.CONFIRMATION:
        if follow_up == FollowUp.ORDER_CONFIRMATION:
            return BotReply(catalog.payment_methods_message())
        if follow_up == FollowUp.HANDOFF_CONFIRMATION:
            await services.handoffs.initiate(db, conversation, MSG_CONFIRMED_HANDOFF_REASON, Priority.NORMAL)
            return None
        return await generate_reply(services, message.body, history, intent, context)

    if intent == Intent.REJECTION:
        return BotReply(catalog.render("rejection"))

    if intent == Intent.OUT_OF_SCOPE:
        return BotReply(catalog.render("out_of_scope"), FollowUp.HANDOFF_CONFIRMATION)

    return await generate_reply(services, message.body, history, intent, context)


async def generate_reply(
    services,
    text: str,
    history: Sequence[Message],
    intent: Intent,
    context: dict,
) -> BotReply:
    catalog = services.catalog
    result = await services.generator.generate(text, history, intent.value, context)
    if result.success:
        reply = result.text
    else:
        reply = catalog.fallback_response(intent.value, services.settings.admin_phone)

    follow_up = FollowUp.HANDOFF_CONFIRMATION if catalog.offers_team_connection(reply) else None
    return BotReply(reply, follow_up)


async def send_message_to_customer(db: Session, services, chat_id: str, text: str) -> Result[Message]:
    """Relay an operator-written reply to a customer and keep it in the history."""
    chat_id = format_chat_id(chat_id)
    conversation = get_conversation(db, chat_id)
    if conversation is None:
        return Result.failure(f"Conversation not found: {chat_id}", ErrorCode.NOT_FOUND.value)

    sent = await services.transport.send_text(chat_id, text)
    if not sent.success:
        return Result.failure(f"Send failed: {sent.error}", ErrorCode.UPSTREAM_FAILURE.value)

    saved = save_message(db, conversation, "human", text, intent=HUMAN_REPLY_LABEL)
    return Result.success(saved)
