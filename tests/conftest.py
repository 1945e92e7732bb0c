import os

os.environ.setdefault("DATABASE_URL", "sqlite://")

from uuid import uuid4

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from sales_agent.config import Settings
from sales_agent.database import Base
from sales_agent.dependencies import AgentServices
from sales_agent.services.ai_service import GenerationResult, ProviderFailure
from sales_agent.services.catalog_service import load_catalog
from sales_agent.services.dedup_service import MessageDeduplicator
from sales_agent.services.handoff_service import HandoffWorkflow
from sales_agent.services.intent_service import IntentClassifier
from sales_agent.services.notification_service import OperatorNotifier
from sales_agent.services.payment_service import PaymentWorkflow
from sales_agent.services.rate_limit_service import check_rate_limit
from sales_agent.services.waha_service import SendResult

ADMIN_PHONE = "923001234567"
ADMIN_CHAT_ID = f"{ADMIN_PHONE}@c.us"
CUSTOMER_PHONE = "923331112222"
CUSTOMER_CHAT_ID = f"{CUSTOMER_PHONE}@c.us"
ADMIN_TOKEN = "test-admin-token"


class FakeTransport:
    """Records outbound WhatsApp messages instead of calling WAHA."""

    def __init__(self, fail: bool = False):
        self.sent = []
        self.fail = fail

    async def send_text(self, chat_id, text):
        self.sent.append((chat_id, text))
        if self.fail:
            return SendResult(success=False, error="HTTP 500")
        return SendResult(success=True)

    async def check_health(self):
        return {"healthy": True, "status": "WORKING", "session": "default"}

    async def aclose(self):
        return None

    def texts_to(self, chat_id):
        return [text for sent_to, text in self.sent if sent_to == chat_id]


class FakeSheets:
    enabled = True

    def __init__(self):
        self.calls = []

    async def log_payment(self, **kwargs):
        self.calls.append(("log_payment", kwargs))
        return True

    async def update_payment_status(self, *args):
        self.calls.append(("update_payment_status", args))
        return True

    async def log_handoff(self, **kwargs):
        self.calls.append(("log_handoff", kwargs))
        return True

    async def update_handoff_status(self, *args):
        self.calls.append(("update_handoff_status", args))
        return True

    async def aclose(self):
        return None

    def operations(self):
        return [name for name, _ in self.calls]


class FakeGenerator:
    """Returns a fixed reply, or fails like every provider being down when reply is None."""

    def __init__(self, reply=None):
        self.reply = reply
        self.calls = []

    async def generate(self, user_text, history=(), intent=None, context=None):
        self.calls.append({"text": user_text, "history": list(history), "intent": intent, "context": context})
        if self.reply is None:
            return GenerationResult(success=False, failures=[ProviderFailure(provider="fake", error="down")])
        return GenerationResult(success=True, text=self.reply, provider="fake")

    def provider_names(self):
        return ["fake"]

    async def aclose(self):
        return None


@pytest.fixture
def db_session():
    """In-memory SQLite session with the full schema."""
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    session = sessionmaker(autocommit=False, autoflush=False, bind=engine)()
    try:
        yield session
    finally:
        session.close()
        Base.metadata.drop_all(bind=engine)
        engine.dispose()


@pytest.fixture
def session_factory(tmp_path):
    """File-backed SQLite: every session gets its own connection and real write locks."""
    engine = create_engine(
        f"sqlite:///{tmp_path / 'agent.db'}",
        connect_args={"check_same_thread": False, "timeout": 1},
    )
    Base.metadata.create_all(bind=engine)
    try:
        yield sessionmaker(autocommit=False, autoflush=False, bind=engine)
    finally:
        engine.dispose()


class WritingTransport(FakeTransport):
    """Writes through a second session on every send, failing if the caller still holds a write lock."""

    def __init__(self, session_factory):
        super().__init__()
        self.session_factory = session_factory

    async def send_text(self, chat_id, text):
        with self.session_factory() as other:
            check_rate_limit(other, f"side-{len(self.sent)}@c.us", window_seconds=60, max_requests=30)
            other.commit()
        return await super().send_text(chat_id, text)


@pytest.fixture
def catalog():
    return load_catalog()


@pytest.fixture
def settings():
    return Settings(
        database_url="sqlite://",
        admin_phone=ADMIN_PHONE,
        admin_api_token=ADMIN_TOKEN,
        rate_limit_window_seconds=60,
        rate_limit_max_requests=30,
        redis_url=None,
    )


@pytest.fixture
def transport():
    return FakeTransport()


@pytest.fixture
def sheets():
    return FakeSheets()


@pytest.fixture
def generator():
    return FakeGenerator(reply="Ji, main aapki madad kar sakta hoon.")


@pytest.fixture
def notifier(transport):
    return OperatorNotifier(transport, ADMIN_PHONE)


@pytest.fixture
def payments(transport, sheets, notifier, catalog):
    return PaymentWorkflow(transport, sheets, notifier, catalog)


@pytest.fixture
def handoffs(transport, sheets, notifier, catalog):
    return HandoffWorkflow(transport, sheets, notifier, catalog)


@pytest.fixture
def services(settings, catalog, transport, generator, sheets, notifier, payments, handoffs):
    return AgentServices(
        settings=settings,
        catalog=catalog,
        classifier=IntentClassifier(catalog),
        transport=transport,
        generator=generator,
        sheets=sheets,
        notifier=notifier,
        payments=payments,
        handoffs=handoffs,
        dedup=MessageDeduplicator(redis_url=None),
    )


@pytest.fixture
def make_event():
    """Build a WAHA `message` webhook body."""

    def _make(
        body="hi",
        phone=CUSTOMER_PHONE,
        message_id=None,
        has_media=False,
        from_me=False,
        event="message",
        name="Ali",
        chat_id=None,
    ):
        return {
            "event": event,
            "session": "default",
            "payload": {
                "id": message_id or f"false_{phone}@c.us_{uuid4().hex[:16]}",
                "from": f"{phone}@c.us",
                "chatId": chat_id,
                "body": body,
                "fromMe": from_me,
                "hasMedia": has_media,
                "type": "image" if has_media else "chat",
                "timestamp": 1735689600,
                "_data": {"notifyName": name},
            },
        }

    return _make
