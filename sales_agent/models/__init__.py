from sales_agent.models.conversation import Conversation
from sales_agent.models.handoff import HandoffRequest
from sales_agent.models.message import Message
from sales_agent.models.payment import Payment
from sales_agent.models.rate_limit import RateLimit

__all__ = [
    "Conversation",
    "Message",
    "Payment",
    "HandoffRequest",
    "RateLimit",
]
