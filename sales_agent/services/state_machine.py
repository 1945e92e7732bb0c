from enum import Enum
from typing import Optional


class ConversationStatus(str, Enum):
    ACTIVE = "active"
    HUMAN_HANDOFF = "human_handoff"
    COMPLETED = "completed"
    BLOCKED = "blocked"


class FollowUp(str, Enum):
    """What the last bot reply asked the customer to answer."""

    ORDER_CONFIRMATION = "order_confirmation"
    HANDOFF_CONFIRMATION = "handoff_confirmation"


class PaymentStatus(str, Enum):
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"
    REFUNDED = "refunded"


class HandoffStatus(str, Enum):
    PENDING = "pending"
    ASSIGNED = "assigned"
    IN_PROGRESS = "in_progress"
    RESOLVED = "resolved"
    CANCELLED = "cancelled"


class Priority(str, Enum):
    LOW = "low"
    NORMAL = "normal"
    HIGH = "high"
    URGENT = "urgent"


OPEN_HANDOFF_STATUSES = (HandoffStatus.PENDING.value, HandoffStatus.ASSIGNED.value, HandoffStatus.IN_PROGRESS.value)

PRIORITY_RANK = {Priority.LOW: 0, Priority.NORMAL: 1, Priority.HIGH: 2, Priority.URGENT: 3}

VALID_TRANSITIONS = {
    ConversationStatus.ACTIVE: [
        ConversationStatus.HUMAN_HANDOFF,
        ConversationStatus.COMPLETED,
        ConversationStatus.BLOCKED,
    ],
    ConversationStatus.HUMAN_HANDOFF: [
        ConversationStatus.ACTIVE,
        ConversationStatus.COMPLETED,
        ConversationStatus.BLOCKED,
    ],
    ConversationStatus.COMPLETED: [ConversationStatus.ACTIVE],
    ConversationStatus.BLOCKED: [ConversationStatus.ACTIVE],
}


class InvalidTransitionError(Exception):
    def __init__(self, from_status: ConversationStatus, to_status: ConversationStatus):
        self.from_status = from_status
        self.to_status = to_status
        super().__init__(f"Invalid transition: {from_status.value} -> {to_status.value}")


def can_transition(from_status: ConversationStatus, to_status: ConversationStatus) -> bool:
    """Check if transition is valid."""
    allowed = VALID_TRANSITIONS.get(from_status, [])
    return to_status in allowed


def transition(from_status: ConversationStatus, to_status: ConversationStatus) -> ConversationStatus:
    """Perform state transition. Raises InvalidTransitionError if not allowed."""
    if not can_transition(from_status, to_status):
        raise InvalidTransitionError(from_status, to_status)
    return to_status


def higher_priority(first: Optional[str], second: Optional[str]) -> Priority:
    a = Priority(first or Priority.NORMAL.value)
    b = Priority(second or Priority.NORMAL.value)
    return a if PRIORITY_RANK[a] >= PRIORITY_RANK[b] else b
