from typing import Optional

import redis.asyncio as redis_async
from redis.exceptions import RedisError
from sqlalchemy.orm import Session

from sales_agent.logging_config import get_logger
from sales_agent.services.conversation_service import message_exists

logger = get_logger("dedup_service")

DEDUP_KEY_PREFIX = "sales_agent:inbound"
REDIS_SOCKET_TIMEOUT_SECONDS = 0.5


class MessageDeduplicator:
    """Drops webhook redeliveries by transport message id.

    Redis SET NX is the fast path; without redis (or when it is down) the
    message table is consulted instead.
    """

    def __init__(self, redis_url: Optional[str] = None, ttl_seconds: int = 3600, redis_client=None):
        self.ttl_seconds = ttl_seconds
        self._redis = redis_client
        if self._redis is None and redis_url:
            self._redis = redis_async.from_url(
                redis_url,
                decode_responses=True,
                socket_connect_timeout=REDIS_SOCKET_TIMEOUT_SECONDS,
                socket_timeout=REDIS_SOCKET_TIMEOUT_SECONDS,
            )

    async def is_duplicate(self, db: Session, message_id: Optional[str]) -> bool:
        if not message_id:
            return False

        if self._redis is not None:
            try:
                stored = await self._redis.set(f"{DEDUP_KEY_PREFIX}:{message_id}", "1", nx=True, ex=self.ttl_seconds)
                return not stored
            except (RedisError, OSError) as exc:
                logger.warning("Dedup redis unavailable, using database", extra={"context": {"error": str(exc)}})

        return message_exists(db, message_id)

    async def aclose(self) -> None:
        if self._redis is not None:
            await self._redis.aclose()
