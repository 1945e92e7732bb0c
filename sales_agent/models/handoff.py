import uuid

from sqlalchemy import Column, DateTime, ForeignKey, Text, Uuid
from sqlalchemy.orm import relationship

from sales_agent.database import Base, utcnow


class HandoffRequest(Base):
    __tablename__ = "handoff_requests"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    conversation_id = Column(Uuid, ForeignKey("conversations.id"), nullable=False, index=True)
    chat_id = Column(Text, nullable=False)
    phone_number = Column(Text, nullable=False)
    customer_name = Column(Text)
    reason = Column(Text)
    priority = Column(Text, nullable=False, default="normal")  # low, normal, high, urgent
    status = Column(Text, nullable=False, default="pending")  # pending, assigned, in_progress, resolved, cancelled
    assigned_to = Column(Text)
    assigned_at = Column(DateTime(timezone=True))
    resolved_at = Column(DateTime(timezone=True))
    resolution_notes = Column(Text)
    created_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)
    updated_at = Column(DateTime(timezone=True), nullable=False, default=utcnow, onupdate=utcnow)

    conversation = relationship("Conversation", back_populates="handoff_requests")
