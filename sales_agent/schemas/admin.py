from datetime import datetime
from decimal import Decimal
from typing import Optional
from uuid import UUID

from pydantic import BaseModel, ConfigDict


class ApprovePaymentRequest(BaseModel):
    payment_id: UUID
    approved_by: Optional[str] = None


class RejectPaymentRequest(BaseModel):
    payment_id: UUID
    reason: str = "Payment could not be verified"
    rejected_by: Optional[str] = None


class AssignHandoffRequest(BaseModel):
    handoff_id: UUID
    agent_id: str


class ResolveHandoffRequest(BaseModel):
    handoff_id: UUID
    resolution: Optional[str] = None


class ResumeAIRequest(BaseModel):
    chat_id: str


class SendMessageRequest(BaseModel):
    chat_id: str
    message: str


class ActionResponse(BaseModel):
    success: bool
    message: Optional[str] = None
    id: Optional[UUID] = None


class PaymentOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    chat_id: str
    phone_number: str
    service_name: Optional[str] = None
    amount: Optional[Decimal] = None
    currency: str
    screenshot_url: Optional[str] = None
    status: str
    created_at: datetime


class HandoffOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    chat_id: str
    phone_number: str
    customer_name: Optional[str] = None
    reason: Optional[str] = None
    priority: str
    status: str
    assigned_to: Optional[str] = None
    created_at: datetime


class MessageOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    sender: str
    body: Optional[str] = None
    message_type: str
    intent: Optional[str] = None
    created_at: datetime


class ConversationOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    chat_id: str
    phone_number: str
    customer_name: Optional[str] = None
    status: str
    human_agent: Optional[str] = None
    total_messages: int
    expected_follow_up: Optional[str] = None
    last_message_at: Optional[datetime] = None
    messages: list[MessageOut] = []


class StatsResponse(BaseModel):
    total_conversations: int
    active_conversations: int
    pending_handoffs: int
    pending_payments: int
    total_messages: int
