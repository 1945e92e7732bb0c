"""Operator notifications over WhatsApp."""

from datetime import datetime, timezone
from typing import Optional

from sales_agent.logging_config import get_logger
from sales_agent.services.waha_service import digits_only, format_chat_id

logger = get_logger("notification_service")

PRIORITY_EMOJI = {"urgent": "🔴", "high": "🟠", "normal": "🟡", "low": "🟢"}


def _now_label() -> str:
    return datetime.now(timezone.utc).strftime("%Y-%m-%d %H:%M UTC")


def format_payment_notification(payment_id: str, phone_number: str, has_screenshot: bool, service_name: Optional[str] = None) -> str:
    text = (
        "💰 *NEW PAYMENT RECEIVED*\n\n"
        f"📱 Customer: {phone_number}\n"
        f"📸 Screenshot: {'Yes ✅' if has_screenshot else 'No ❌'}\n"
    )
    if service_name:
        text += f"📦 Service: {service_name}\n"
    text += (
        f"🕐 Time: {_now_label()}\n\n"
        f"*Payment ID:* {payment_id}\n\n"
        "Reply with:\n"
        f"✅ /approve {payment_id}\n"
        f"❌ /reject {payment_id} [reason]"
    )
    return text


def format_handoff_notification(
    handoff_id: str,
    phone_number: str,
    chat_id: str,
    reason: str,
    priority: str,
    customer_name: Optional[str] = None,
) -> str:
    emoji = PRIORITY_EMOJI.get(priority, PRIORITY_EMOJI["normal"])
    name_line = f"👤 Name: {customer_name}\n" if customer_name else ""
    return (
        "🙋 *HUMAN HANDOFF REQUEST*\n\n"
        f"{emoji} Priority: {priority.upper()}\n"
        f"📱 Customer: {phone_number}\n"
        f"{name_line}"
        f"📝 Reason: {reason}\n"
        f"🕐 Time: {_now_label()}\n\n"
        f"*Handoff ID:* {handoff_id}\n\n"
        f"Use /resume_ai {chat_id} to resume AI."
    )


def format_forwarded_message(phone_number: str, body: str, customer_name: Optional[str] = None) -> str:
    sender = f"{customer_name} ({phone_number})" if customer_name else phone_number
    return f"📨 Message from {sender}:\n\n{body}"


class OperatorNotifier:
    """Sends operator-facing messages. Failures are logged, never raised."""

    def __init__(self, transport, admin_phone: Optional[str]):
        self.transport = transport
        self.admin_phone = admin_phone
        self.admin_chat_id = format_chat_id(admin_phone) if admin_phone else None

    def is_admin(self, phone_number: Optional[str]) -> bool:
        admin_digits = digits_only(self.admin_phone)
        return bool(admin_digits and digits_only(phone_number) == admin_digits)

    async def notify(self, text: str) -> bool:
        if not self.admin_chat_id:
            logger.warning("Operator notification skipped: admin phone not configured")
            return False
        result = await self.transport.send_text(self.admin_chat_id, text)
        if not result.success:
            logger.error("Operator notification failed", extra={"context": {"error": result.error}})
        return result.success
