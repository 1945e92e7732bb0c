from dataclasses import dataclass, field
from typing import Optional

from sqlalchemy.orm import Session

from sales_agent.logging_config import get_logger
from sales_agent.services.conversation_service import get_conversation, get_stats
from sales_agent.services.errors import CommandValidationError, ErrorCode
from sales_agent.services.result import Result
from sales_agent.services.waha_service import format_chat_id

logger = get_logger("admin_command_service")


@dataclass(frozen=True)
class CommandSpec:
    action: str
    requires_id: bool


COMMANDS = {
    "/approve": CommandSpec("approve_payment", True),
    "/reject": CommandSpec("reject_payment", True),
    "/resume_ai": CommandSpec("resume_ai", True),
    "/resumeai": CommandSpec("resume_ai", True),
    "/assign": CommandSpec("assign_handoff", True),
    "/resolve": CommandSpec("resolve_handoff", True),
    "/status": CommandSpec("get_status", True),
    "/stats": CommandSpec("get_stats", False),
    "/help": CommandSpec("admin_help", False),
}

HELP_TEXT = (
    "🔧 *Admin Commands*\n\n"
    "💰 /approve [payment_id] - Approve payment\n"
    "❌ /reject [payment_id] [reason] - Reject payment\n"
    "🤖 /resume_ai [chat_id or phone] - Resume AI\n"
    "👤 /assign [handoff_id] [agent] - Assign handoff\n"
    "✅ /resolve [handoff_id] [notes] - Resolve handoff\n"
    "🔎 /status [chat_id or phone] - Conversation status\n"
    "📊 /stats - View statistics\n"
    "❓ /help - Show this help"
)


@dataclass
class AdminCommand:
    command: str
    action: str
    id: Optional[str]
    args: list[str] = field(default_factory=list)
    raw: str = ""

    @property
    def rest(self) -> str:
        """Free text after the id (reject reason, resolution notes, agent name)."""
        return " ".join(self.args[1:]).strip()


def parse_admin_command(text: Optional[str]) -> Optional[AdminCommand]:
    """None for ordinary text; CommandValidationError for a bad slash command."""
    if not text or not text.strip().startswith("/"):
        return None

    parts = text.strip().split()
    command = parts[0].lower()
    args = parts[1:]

    spec = COMMANDS.get(command)
    if spec is None:
        raise CommandValidationError(f"Unknown command {command}. Type /help")
    if spec.requires_id and not args:
        raise CommandValidationError(f"{command} needs an id. Type /help")

    return AdminCommand(command=command, action=spec.action, id=args[0] if args else None, args=args, raw=text)


def format_stats(stats: dict) -> str:
    return (
        "📊 *System Statistics*\n\n"
        f"📱 Total Conversations: {stats['total_conversations']}\n"
        f"✅ Active: {stats['active_conversations']}\n"
        f"🙋 Pending Handoffs: {stats['pending_handoffs']}\n"
        f"💰 Pending Payments: {stats['pending_payments']}\n"
        f"💬 Total Messages: {stats['total_messages']}"
    )


def _format_status(db: Session, reference: str) -> str:
    chat_id = format_chat_id(reference)
    conversation = get_conversation(db, chat_id)
    if conversation is None:
        return f"❌ Conversation not found: {chat_id}"
    lines = [
        f"🔎 *{chat_id}*",
        f"Status: {conversation.status}",
        f"Messages: {conversation.total_messages}",
    ]
    if conversation.customer_name:
        lines.append(f"Name: {conversation.customer_name}")
    if conversation.human_agent:
        lines.append(f"Agent: {conversation.human_agent}")
    if conversation.last_message_at:
        lines.append(f"Last message: {conversation.last_message_at:%Y-%m-%d %H:%M}")
    return "\n".join(lines)


async def handle_admin_command(db: Session, services, command: AdminCommand, chat_id: str) -> dict:
    """Run an operator command and reply to the operator's chat."""
    logger.info("Admin command", extra={"context": {"action": command.action, "id": command.id}})
    actor = services.settings.admin_phone or "admin"

    if command.action == "admin_help":
        await services.transport.send_text(chat_id, HELP_TEXT)
        return {"processed": True, "action": command.action}

    if command.action == "get_stats":
        await services.transport.send_text(chat_id, format_stats(get_stats(db)))
        return {"processed": True, "action": command.action}

    if command.action == "get_status":
        await services.transport.send_text(chat_id, _format_status(db, command.id))
        return {"processed": True, "action": command.action}

    if command.action == "approve_payment":
        result = await services.payments.approve(db, command.id, actor)
    elif command.action == "reject_payment":
        result = await services.payments.reject(db, command.id, command.rest or None, actor)
    elif command.action == "resume_ai":
        result = await services.handoffs.resume(db, command.id, actor)
    elif command.action == "assign_handoff":
        result = await services.handoffs.assign(db, command.id, command.rest or actor)
    elif command.action == "resolve_handoff":
        result = await services.handoffs.resolve(db, command.id, command.rest or None)
    else:
        result = Result.failure(f"Unsupported action {command.action}", ErrorCode.VALIDATION_ERROR.value)

    if not result.ok:
        prefix = "⚠️" if result.is_invalid_state else "❌"
        await services.transport.send_text(chat_id, f"{prefix} {result.error}")
        return {"processed": False, "action": command.action, "error": result.error, "error_code": result.error_code}

    return {"processed": True, "action": command.action}
