import re
from dataclasses import dataclass
from typing import Any, Optional

import httpx
from pydantic import ValidationError

from sales_agent.logging_config import get_logger
from sales_agent.schemas.webhook import WahaMessage, WahaWebhookEvent
from sales_agent.services.errors import ConfigurationError

logger = get_logger("waha_service")

MESSAGE_EVENTS = {"message", "message.any"}
STATUS_BROADCAST = "status@broadcast"
GROUP_SUFFIX = "@g.us"
SEND_TEXT_PATH = "/api/sendText"


@dataclass
class SendResult:
    success: bool
    error: Optional[str] = None


@dataclass
class ParsedMessage:
    message_id: Optional[str]
    chat_id: str
    phone_number: str
    body: str
    has_media: bool = False
    media_type: str = "text"
    media_url: Optional[str] = None
    customer_name: Optional[str] = None
    is_group: bool = False
    timestamp: Optional[int] = None
    session: Optional[str] = None


def extract_phone_number(chat_id: Optional[str]) -> str:
    if not chat_id:
        return ""
    return chat_id.replace("@c.us", "").replace("@s.whatsapp.net", "")


def digits_only(value: Optional[str]) -> str:
    return re.sub(r"\D", "", extract_phone_number(value))


def format_chat_id(chat_id_or_phone: str) -> str:
    """Accept either a chat id or a bare phone number and return a chat id."""
    value = (chat_id_or_phone or "").strip()
    if "@" in value:
        return value
    digits = digits_only(value)
    return f"{digits}@c.us"


def _media_type(raw_type: Optional[str], has_media: bool) -> str:
    if not has_media:
        return "text"
    if raw_type in {"image", "document", "audio", "video"}:
        return raw_type
    if raw_type == "ptt":
        return "audio"
    return "image"


def parse_inbound_event(payload: dict[str, Any]) -> Optional[ParsedMessage]:
    """Turn a WAHA webhook body into a ParsedMessage, or None for events we ignore."""
    try:
        event = WahaWebhookEvent.model_validate(payload or {})
        if event.event not in MESSAGE_EVENTS or not event.payload:
            return None
        message = WahaMessage.model_validate(event.payload)
    except ValidationError as exc:
        logger.warning("Unparseable webhook payload", extra={"context": {"error": str(exc)}})
        return None

    if message.from_me:
        return None

    chat_id = message.chat_id or message.sender
    if not chat_id or chat_id == STATUS_BROADCAST:
        return None

    customer_name = None
    if message.raw_data:
        customer_name = message.raw_data.get("notifyName") or None

    return ParsedMessage(
        message_id=message.id,
        chat_id=chat_id,
        phone_number=extract_phone_number(message.sender or chat_id),
        body=message.body or "",
        has_media=message.has_media,
        media_type=_media_type(message.type, message.has_media),
        media_url=message.media.url if message.media else None,
        customer_name=customer_name,
        is_group=GROUP_SUFFIX in chat_id,
        timestamp=message.timestamp,
        session=event.session,
    )


def is_processable(message: Optional[ParsedMessage]) -> bool:
    if message is None:
        return False
    if message.is_group:
        return False
    if not message.body and not message.has_media:
        return False
    return True


class WahaClient:
    """Outbound client for a WAHA (WhatsApp HTTP API) instance."""

    def __init__(self, base_url: Optional[str], session: str = "default", api_key: Optional[str] = None, timeout: float = 30.0):
        if not base_url:
            raise ConfigurationError("WAHA_API_URL is required")
        self.base_url = base_url.rstrip("/")
        self.session = session
        headers = {"Content-Type": "application/json"}
        if api_key:
            headers["X-Api-Key"] = api_key
        self._client = httpx.AsyncClient(base_url=self.base_url, headers=headers, timeout=timeout)

    async def send_text(self, chat_id: str, text: str) -> SendResult:
        if not chat_id or not text:
            logger.warning("send_text: missing chat_id or text", extra={"context": {"chat_id": chat_id}})
            return SendResult(success=False, error="missing chat_id or text")

        try:
            response = await self._client.post(
                SEND_TEXT_PATH,
                json={"chatId": chat_id, "text": text, "session": self.session},
            )
        except httpx.HTTPError as exc:
            logger.error("WAHA send failed", extra={"context": {"chat_id": chat_id, "error": str(exc)}})
            return SendResult(success=False, error=str(exc))

        if response.status_code >= 400:
            logger.error(
                "WAHA send rejected",
                extra={"context": {"chat_id": chat_id, "status": response.status_code, "body": response.text[:200]}},
            )
            return SendResult(success=False, error=f"HTTP {response.status_code}")

        logger.info("Message sent", extra={"context": {"phone": extract_phone_number(chat_id)}})
        return SendResult(success=True)

    async def check_health(self) -> dict:
        try:
            response = await self._client.get(f"/api/sessions/{self.session}")
            response.raise_for_status()
            data = response.json()
        except (httpx.HTTPError, ValueError) as exc:
            return {"healthy": False, "status": "error", "error": str(exc)}
        return {"healthy": True, "status": data.get("status", "unknown"), "session": self.session}

    async def aclose(self) -> None:
        await self._client.aclose()
