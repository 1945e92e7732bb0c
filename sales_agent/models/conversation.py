import uuid

from sqlalchemy import Column, DateTime, Integer, Text, Uuid
from sqlalchemy.orm import relationship

from sales_agent.database import Base, utcnow


class Conversation(Base):
    __tablename__ = "conversations"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    chat_id = Column(Text, nullable=False, unique=True, index=True)
    phone_number = Column(Text, nullable=False)
    customer_name = Column(Text)
    status = Column(Text, nullable=False, default="active")  # active, human_handoff, completed, blocked
    human_agent = Column(Text)
    total_messages = Column(Integer, nullable=False, default=0)
    expected_follow_up = Column(Text)  # order_confirmation, handoff_confirmation
    last_message_at = Column(DateTime(timezone=True))
    created_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)
    updated_at = Column(DateTime(timezone=True), nullable=False, default=utcnow, onupdate=utcnow)

    messages = relationship("Message", back_populates="conversation", order_by="Message.created_at")
    payments = relationship("Payment", back_populates="conversation")
    handoff_requests = relationship("HandoffRequest", back_populates="conversation")
