from datetime import datetime, timezone
from typing import Optional

from sqlalchemy.orm import Session

from sales_agent.logging_config import get_logger
from sales_agent.models import Conversation, Payment
from sales_agent.services.catalog_service import Catalog
from sales_agent.services.conversation_service import parse_uuid
from sales_agent.services.errors import ErrorCode
from sales_agent.services.notification_service import OperatorNotifier, format_payment_notification
from sales_agent.services.result import Result
from sales_agent.services.sheets_service import SheetsMirror
from sales_agent.services.state_machine import PaymentStatus

logger = get_logger("payment_service")

DEFAULT_REJECTION_REASON = "Payment could not be verified"


class PaymentWorkflow:
    """Payment state changes. Each transition is committed before any outbound call."""

    def __init__(self, transport, sheets: SheetsMirror, notifier: OperatorNotifier, catalog: Catalog):
        self.transport = transport
        self.sheets = sheets
        self.notifier = notifier
        self.catalog = catalog

    async def initiate(
        self,
        db: Session,
        conversation: Conversation,
        has_attachment: bool,
        service_id: Optional[str] = None,
        service_name: Optional[str] = None,
    ) -> str:
        """Record a pending payment and return the customer acknowledgment.

        Every confirmation creates a new record; the operator decides which one to approve.
        """
        payment = Payment(
            conversation_id=conversation.id,
            chat_id=conversation.chat_id,
            phone_number=conversation.phone_number,
            service_id=service_id,
            service_name=service_name,
            screenshot_url="pending_download" if has_attachment else None,
            status=PaymentStatus.PENDING.value,
        )
        db.add(payment)
        db.commit()

        logger.info(
            "Payment recorded",
            extra={"context": {"payment_id": str(payment.id), "chat_id": conversation.chat_id, "screenshot": has_attachment}},
        )

        await self.sheets.log_payment(
            payment_id=str(payment.id),
            phone_number=conversation.phone_number,
            status="Pending",
            screenshot="Screenshot attached" if has_attachment else "No screenshot",
            service_name=service_name or "",
        )
        await self.notifier.notify(
            format_payment_notification(str(payment.id), conversation.phone_number, has_attachment, service_name)
        )
        return self.catalog.render("payment_received")

    async def approve(self, db: Session, payment_id, approver: str) -> Result[Payment]:
        lookup = self._load(db, payment_id)
        if not lookup.ok:
            return lookup
        payment = lookup.value

        if payment.status != PaymentStatus.PENDING.value:
            return Result.failure(f"Payment already {payment.status}", ErrorCode.ALREADY_PROCESSED.value)

        payment.status = PaymentStatus.APPROVED.value
        payment.approved_by = approver
        payment.approved_at = datetime.now(timezone.utc)
        db.commit()
        logger.info("Payment approved", extra={"context": {"payment_id": str(payment.id), "by": approver}})

        await self.sheets.update_payment_status(str(payment.id), "Approved", approver)
        sent = await self.transport.send_text(payment.chat_id, self.catalog.render("payment_confirmed"))
        if not sent.success:
            logger.error("Payment confirmation not delivered", extra={"context": {"chat_id": payment.chat_id}})
        await self.notifier.notify(f"✅ Payment approved for {payment.phone_number}")
        return Result.success(payment)

    async def reject(self, db: Session, payment_id, reason: Optional[str], rejecter: str) -> Result[Payment]:
        lookup = self._load(db, payment_id)
        if not lookup.ok:
            return lookup
        payment = lookup.value

        # pending -> rejected is one-way, same as approval
        if payment.status != PaymentStatus.PENDING.value:
            return Result.failure(f"Payment already {payment.status}", ErrorCode.ALREADY_PROCESSED.value)

        reason = reason or DEFAULT_REJECTION_REASON
        payment.status = PaymentStatus.REJECTED.value
        payment.rejection_reason = reason
        payment.rejected_at = datetime.now(timezone.utc)
        payment.notes = f"Rejected by {rejecter}"
        db.commit()
        logger.info("Payment rejected", extra={"context": {"payment_id": str(payment.id), "reason": reason}})

        await self.sheets.update_payment_status(str(payment.id), "Rejected", rejecter, reason)
        sent = await self.transport.send_text(payment.chat_id, self.catalog.render("payment_rejected", reason=reason))
        if not sent.success:
            logger.error("Payment rejection not delivered", extra={"context": {"chat_id": payment.chat_id}})
        await self.notifier.notify(f"❌ Payment rejected: {reason}")
        return Result.success(payment)

    def pending_payments(self, db: Session) -> list[Payment]:
        return (
            db.query(Payment)
            .filter(Payment.status == PaymentStatus.PENDING.value)
            .order_by(Payment.created_at.desc())
            .all()
        )

    def _load(self, db: Session, payment_id) -> Result[Payment]:
        parsed = parse_uuid(payment_id)
        if parsed is None:
            return Result.failure(f"Invalid payment id: {payment_id}", ErrorCode.VALIDATION_ERROR.value)
        payment = db.query(Payment).filter(Payment.id == parsed).first()
        if payment is None:
            return Result.failure(f"Payment not found: {payment_id}", ErrorCode.NOT_FOUND.value)
        return Result.success(payment)
