from fastapi import APIRouter, Depends, Request
from sqlalchemy.orm import Session

from sales_agent.database import get_db
from sales_agent.dependencies import AgentServices, get_services
from sales_agent.logging_config import get_logger
from sales_agent.schemas.webhook import WebhookAck
from sales_agent.services.message_service import handle_inbound_message

logger = get_logger("webhook")

router = APIRouter(tags=["webhook"])


async def _read_json(request: Request):
    try:
        return await request.json()
    except ValueError as exc:
        logger.warning("Webhook body is not JSON", extra={"context": {"error": str(exc)}})
        return None


@router.post("/webhook", response_model=WebhookAck)
async def handle_webhook(
    request: Request,
    db: Session = Depends(get_db),
    services: AgentServices = Depends(get_services),
):
    """Receive WAHA events. Always acknowledged so WAHA never retries a processed event."""
    payload = await _read_json(request)
    if not isinstance(payload, dict):
        return WebhookAck(processed=False, reason="invalid_payload")

    result = await handle_inbound_message(db, services, payload)
    return WebhookAck(
        processed=result.processed,
        intent=result.intent,
        reason=result.reason or result.error,
    )


@router.get("/webhook")
async def webhook_probe():
    return {"status": "ok", "message": "Use POST with a WAHA event payload"}


@router.post("/webhook/session", response_model=WebhookAck)
async def handle_session_event(request: Request):
    """WAHA session status changes (STARTING, WORKING, FAILED...) are only logged."""
    payload = await _read_json(request)
    if not isinstance(payload, dict):
        return WebhookAck(processed=False, reason="invalid_payload")

    session_payload = payload.get("payload") or {}
    logger.info(
        "WAHA session event",
        extra={
            "context": {
                "event": payload.get("event"),
                "session": payload.get("session"),
                "status": session_payload.get("status") if isinstance(session_payload, dict) else None,
            }
        },
    )
    return WebhookAck(processed=True)
