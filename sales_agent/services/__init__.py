from sales_agent.services.conversation_service import (
    get_or_create_conversation,
    save_message,
    update_status,
)
from sales_agent.services.handoff_service import HandoffWorkflow
from sales_agent.services.intent_service import Intent, IntentClassifier
from sales_agent.services.message_service import (
    handle_inbound_message,
    process_intent,
    send_message_to_customer,
)
from sales_agent.services.payment_service import PaymentWorkflow
from sales_agent.services.result import Result
from sales_agent.services.state_machine import ConversationStatus

__all__ = [
    "get_or_create_conversation",
    "save_message",
    "update_status",
    "HandoffWorkflow",
    "Intent",
    "IntentClassifier",
    "handle_inbound_message",
    "process_intent",
    "send_message_to_customer",
    "PaymentWorkflow",
    "Result",
    "ConversationStatus",
]
