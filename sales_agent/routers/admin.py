"""Admin API for operators who prefer HTTP over WhatsApp commands."""

from typing import Optional

from fastapi import APIRouter, Depends, Header, HTTPException
from sqlalchemy.orm import Session

from sales_agent.database import get_db
from sales_agent.dependencies import AgentServices, get_services
from sales_agent.models import Message
from sales_agent.schemas.admin import (
    ActionResponse,
    ApprovePaymentRequest,
    AssignHandoffRequest,
    ConversationOut,
    HandoffOut,
    MessageOut,
    PaymentOut,
    RejectPaymentRequest,
    ResolveHandoffRequest,
    ResumeAIRequest,
    SendMessageRequest,
    StatsResponse,
)
from sales_agent.services.conversation_service import get_conversation, get_stats
from sales_agent.services.errors import ErrorCode
from sales_agent.services.message_service import send_message_to_customer
from sales_agent.services.result import Result
from sales_agent.services.waha_service import format_chat_id

router = APIRouter(prefix="/admin", tags=["admin"])

ERROR_STATUS = {
    ErrorCode.NOT_FOUND.value: 404,
    ErrorCode.INVALID_STATE.value: 409,
    ErrorCode.ALREADY_PROCESSED.value: 409,
    ErrorCode.VALIDATION_ERROR.value: 400,
    ErrorCode.UPSTREAM_FAILURE.value: 502,
}


def _require_admin_token(services: AgentServices, provided: Optional[str]) -> None:
    expected = services.settings.admin_api_token
    if not expected:
        raise HTTPException(status_code=500, detail="ADMIN_API_TOKEN not configured")
    if not provided or provided != expected:
        raise HTTPException(status_code=401, detail="Invalid admin token")


def _finish(db: Session, result: Result, message: str) -> ActionResponse:
    if not result.ok:
        db.rollback()
        raise HTTPException(status_code=ERROR_STATUS.get(result.error_code, 400), detail=result.error)
    db.commit()
    record_id = getattr(result.value, "id", None)
    return ActionResponse(success=True, message=message, id=record_id)


# === PAYMENTS ===


@router.post("/approve-payment", response_model=ActionResponse)
async def approve_payment(
    data: ApprovePaymentRequest,
    db: Session = Depends(get_db),
    services: AgentServices = Depends(get_services),
    x_admin_token: Optional[str] = Header(default=None, alias="X-Admin-Token"),
):
    _require_admin_token(services, x_admin_token)
    approver = data.approved_by or services.settings.admin_phone
    result = await services.payments.approve(db, data.payment_id, approver)
    return _finish(db, result, "Payment approved")


@router.post("/reject-payment", response_model=ActionResponse)
async def reject_payment(
    data: RejectPaymentRequest,
    db: Session = Depends(get_db),
    services: AgentServices = Depends(get_services),
    x_admin_token: Optional[str] = Header(default=None, alias="X-Admin-Token"),
):
    _require_admin_token(services, x_admin_token)
    rejecter = data.rejected_by or services.settings.admin_phone
    result = await services.payments.reject(db, data.payment_id, data.reason, rejecter)
    return _finish(db, result, "Payment rejected")


@router.get("/payments/pending", response_model=list[PaymentOut])
async def pending_payments(
    db: Session = Depends(get_db),
    services: AgentServices = Depends(get_services),
    x_admin_token: Optional[str] = Header(default=None, alias="X-Admin-Token"),
):
    _require_admin_token(services, x_admin_token)
    return services.payments.pending_payments(db)


# === HANDOFFS ===


@router.post("/assign-handoff", response_model=ActionResponse)
async def assign_handoff(
    data: AssignHandoffRequest,
    db: Session = Depends(get_db),
    services: AgentServices = Depends(get_services),
    x_admin_token: Optional[str] = Header(default=None, alias="X-Admin-Token"),
):
    _require_admin_token(services, x_admin_token)
    result = await services.handoffs.assign(db, data.handoff_id, data.agent_id)
    return _finish(db, result, f"Handoff assigned to {data.agent_id}")


@router.post("/resolve-handoff", response_model=ActionResponse)
async def resolve_handoff(
    data: ResolveHandoffRequest,
    db: Session = Depends(get_db),
    services: AgentServices = Depends(get_services),
    x_admin_token: Optional[str] = Header(default=None, alias="X-Admin-Token"),
):
    _require_admin_token(services, x_admin_token)
    result = await services.handoffs.resolve(db, data.handoff_id, data.resolution)
    return _finish(db, result, "Handoff resolved")


@router.post("/resume-ai", response_model=ActionResponse)
async def resume_ai(
    data: ResumeAIRequest,
    db: Session = Depends(get_db),
    services: AgentServices = Depends(get_services),
    x_admin_token: Optional[str] = Header(default=None, alias="X-Admin-Token"),
):
    _require_admin_token(services, x_admin_token)
    result = await services.handoffs.resume(db, data.chat_id, services.settings.admin_phone)
    return _finish(db, result, "AI resumed")


@router.get("/handoffs/pending", response_model=list[HandoffOut])
async def pending_handoffs(
    db: Session = Depends(get_db),
    services: AgentServices = Depends(get_services),
    x_admin_token: Optional[str] = Header(default=None, alias="X-Admin-Token"),
):
    _require_admin_token(services, x_admin_token)
    return services.handoffs.pending_handoffs(db)


# === CONVERSATIONS ===


@router.post("/send-message", response_model=ActionResponse)
async def send_message(
    data: SendMessageRequest,
    db: Session = Depends(get_db),
    services: AgentServices = Depends(get_services),
    x_admin_token: Optional[str] = Header(default=None, alias="X-Admin-Token"),
):
    _require_admin_token(services, x_admin_token)
    if not data.message.strip():
        raise HTTPException(status_code=400, detail="Message cannot be empty")
    result = await send_message_to_customer(db, services, data.chat_id, data.message)
    return _finish(db, result, "Message sent")


@router.get("/stats", response_model=StatsResponse)
async def admin_stats(
    db: Session = Depends(get_db),
    services: AgentServices = Depends(get_services),
    x_admin_token: Optional[str] = Header(default=None, alias="X-Admin-Token"),
):
    _require_admin_token(services, x_admin_token)
    return StatsResponse(**get_stats(db))


@router.get("/conversation/{chat_id}", response_model=ConversationOut)
async def conversation_detail(
    chat_id: str,
    limit: int = 50,
    db: Session = Depends(get_db),
    services: AgentServices = Depends(get_services),
    x_admin_token: Optional[str] = Header(default=None, alias="X-Admin-Token"),
):
    _require_admin_token(services, x_admin_token)
    conversation = get_conversation(db, format_chat_id(chat_id))
    if conversation is None:
        raise HTTPException(status_code=404, detail=f"Conversation not found: {chat_id}")

    recent = (
        db.query(Message)
        .filter(Message.conversation_id == conversation.id)
        .order_by(Message.created_at.desc())
        .limit(max(1, min(limit, 200)))
        .all()
    )
    detail = ConversationOut.model_validate(conversation)
    return detail.model_copy(update={"messages": [MessageOut.model_validate(message) for message in reversed(recent)]})
