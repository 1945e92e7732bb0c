import uuid

from sqlalchemy import Column, DateTime, ForeignKey, Text, Uuid
from sqlalchemy.orm import relationship

from sales_agent.database import Base, utcnow


class Message(Base):
    __tablename__ = "messages"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    conversation_id = Column(Uuid, ForeignKey("conversations.id"), nullable=False, index=True)
    chat_id = Column(Text, nullable=False)
    message_id = Column(Text, index=True)  # transport id, used for dedup fallback
    sender = Column(Text, nullable=False)  # customer, bot, human, system
    body = Column(Text)
    message_type = Column(Text, nullable=False, default="text")
    intent = Column(Text)
    media_url = Column(Text)
    created_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)

    conversation = relationship("Conversation", back_populates="messages")
