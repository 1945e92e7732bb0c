from datetime import datetime, timedelta, timezone
from typing import Optional

from sqlalchemy import update
from sqlalchemy.orm import Session

from sales_agent.database import as_aware
from sales_agent.logging_config import get_logger
from sales_agent.models import RateLimit

logger = get_logger("rate_limit_service")


def check_rate_limit(
    db: Session,
    chat_id: str,
    window_seconds: int,
    max_requests: int,
    now: Optional[datetime] = None,
) -> bool:
    """Fixed-window counter per chat. Returns True when the message is allowed."""
    now = now or datetime.now(timezone.utc)
    record = db.query(RateLimit).filter(RateLimit.chat_id == chat_id).first()

    if record is None:
        db.add(RateLimit(chat_id=chat_id, message_count=1, window_start=now))
        db.flush()
        return True

    window_start = as_aware(record.window_start)
    if now > window_start + timedelta(seconds=window_seconds):
        record.message_count = 1
        record.window_start = now
        db.flush()
        return True

    if record.message_count >= max_requests:
        logger.warning(
            "Rate limit exceeded",
            extra={"context": {"chat_id": chat_id, "count": record.message_count, "max": max_requests}},
        )
        return False

    # Conditional increment so two racing messages cannot both pass at the ceiling.
    outcome = db.execute(
        update(RateLimit)
        .where(RateLimit.chat_id == chat_id, RateLimit.message_count < max_requests)
        .values(message_count=RateLimit.message_count + 1)
        .execution_options(synchronize_session=False)
    )
    db.expire(record)
    if outcome.rowcount == 0:
        logger.warning("Rate limit exceeded", extra={"context": {"chat_id": chat_id, "max": max_requests}})
        return False
    return True
