from sales_agent.schemas.admin import (
    ActionResponse,
    ApprovePaymentRequest,
    AssignHandoffRequest,
    ConversationOut,
    HandoffOut,
    PaymentOut,
    RejectPaymentRequest,
    ResolveHandoffRequest,
    ResumeAIRequest,
    SendMessageRequest,
    StatsResponse,
)
from sales_agent.schemas.webhook import WahaMessage, WahaWebhookEvent, WebhookAck

__all__ = [
    "ActionResponse",
    "ApprovePaymentRequest",
    "AssignHandoffRequest",
    "ConversationOut",
    "HandoffOut",
    "PaymentOut",
    "RejectPaymentRequest",
    "ResolveHandoffRequest",
    "ResumeAIRequest",
    "SendMessageRequest",
    "StatsResponse",
    "WahaMessage",
    "WahaWebhookEvent",
    "WebhookAck",
]
