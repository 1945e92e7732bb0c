from sqlalchemy import Column, DateTime, Integer, Text

from sales_agent.database import Base


class RateLimit(Base):
    __tablename__ = "rate_limits"

    chat_id = Column(Text, primary_key=True)
    message_count = Column(Integer, nullable=False, default=0)
    window_start = Column(DateTime(timezone=True), nullable=False)
