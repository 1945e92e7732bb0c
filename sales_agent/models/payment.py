import uuid

from sqlalchemy import Column, DateTime, ForeignKey, Numeric, Text, Uuid
from sqlalchemy.orm import relationship

from sales_agent.database import Base, utcnow


class Payment(Base):
    __tablename__ = "payments"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    conversation_id = Column(Uuid, ForeignKey("conversations.id"))
    chat_id = Column(Text, nullable=False, index=True)
    phone_number = Column(Text, nullable=False)
    service_id = Column(Text)
    service_name = Column(Text)
    amount = Column(Numeric(10, 2))
    currency = Column(Text, nullable=False, default="PKR")
    payment_method = Column(Text)
    screenshot_url = Column(Text)
    status = Column(Text, nullable=False, default="pending")  # pending, approved, rejected, refunded
    approved_by = Column(Text)
    approved_at = Column(DateTime(timezone=True))
    rejected_at = Column(DateTime(timezone=True))
    rejection_reason = Column(Text)
    notes = Column(Text)
    created_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)
    updated_at = Column(DateTime(timezone=True), nullable=False, default=utcnow, onupdate=utcnow)

    conversation = relationship("Conversation", back_populates="payments")
