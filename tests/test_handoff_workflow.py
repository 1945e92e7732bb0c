import asyncio
from uuid import uuid4

import pytest

from conftest import ADMIN_CHAT_ID, ADMIN_PHONE, CUSTOMER_CHAT_ID, CUSTOMER_PHONE, WritingTransport
from sales_agent.models import HandoffRequest, Message
from sales_agent.services.conversation_service import get_or_create_conversation
from sales_agent.services.handoff_service import HandoffWorkflow, get_open_handoff
from sales_agent.services.notification_service import OperatorNotifier
from sales_agent.services.state_machine import Priority


@pytest.fixture
def conversation(db_session):
    return get_or_create_conversation(db_session, CUSTOMER_CHAT_ID, CUSTOMER_PHONE, "Ali")


class TestInitiateHandoff:
    def test_moves_conversation_to_human(self, db_session, handoffs, conversation, transport, catalog):
        outcome = asyncio.run(handoffs.initiate(db_session, conversation, "Customer requested human agent"))

        assert conversation.status == "human_handoff"
        assert outcome.reused is False
        assert outcome.handoff.status == "pending"
        assert outcome.handoff.priority == "normal"
        assert transport.texts_to(CUSTOMER_CHAT_ID) == [catalog.render("handoff_initiated")]

    def test_operator_notification_has_resume_command(self, db_session, handoffs, conversation, transport):
        asyncio.run(handoffs.initiate(db_session, conversation, "Customer frustration detected", Priority.HIGH))

        notification = transport.texts_to(ADMIN_CHAT_ID)[-1]
        assert "HUMAN HANDOFF REQUEST" in notification
        assert "Priority: HIGH" in notification
        assert f"/resume_ai {CUSTOMER_CHAT_ID}" in notification

    def test_acknowledgment_saved_with_handoff_label(self, db_session, handoffs, conversation):
        asyncio.run(handoffs.initiate(db_session, conversation, "Customer requested human agent"))

        saved = db_session.query(Message).filter(Message.conversation_id == conversation.id).all()
        assert [(m.sender, m.intent) for m in saved] == [("bot", "HUMAN_HANDOFF")]

    def test_second_trigger_reuses_open_request(self, db_session, handoffs, conversation, sheets):
        asyncio.run(handoffs.initiate(db_session, conversation, "Customer requested human agent"))
        outcome = asyncio.run(
            handoffs.initiate(db_session, conversation, "Customer frustration detected", Priority.HIGH)
        )

        assert outcome.reused is True
        assert db_session.query(HandoffRequest).count() == 1
        assert outcome.handoff.priority == "high"
        assert outcome.handoff.reason == "Customer requested human agent; Customer frustration detected"
        assert sheets.operations().count("log_handoff") == 1

    def test_clears_expected_follow_up(self, db_session, handoffs, conversation):
        conversation.expected_follow_up = "handoff_confirmation"
        asyncio.run(handoffs.initiate(db_session, conversation, "Customer confirmed request for human agent"))
        assert conversation.expected_follow_up is None


class TestResumeAI:
    def test_resume_resolves_open_requests(self, db_session, handoffs, conversation, transport, catalog):
        outcome = asyncio.run(handoffs.initiate(db_session, conversation, "Customer requested human agent"))

        result = asyncio.run(handoffs.resume(db_session, CUSTOMER_PHONE, "923001234567"))

        assert result.ok is True
        assert conversation.status == "active"
        assert outcome.handoff.status == "resolved"
        assert outcome.handoff.resolution_notes == "AI resumed by 923001234567"
        assert get_open_handoff(db_session, conversation.id) is None
        assert transport.texts_to(CUSTOMER_CHAT_ID)[-1] == catalog.render("ai_resumed")

    def test_resume_active_conversation_is_invalid_state(self, db_session, handoffs, conversation):
        result = asyncio.run(handoffs.resume(db_session, CUSTOMER_CHAT_ID, "admin"))
        assert result.ok is False
        assert result.error_code == "invalid_state"

    def test_resume_unknown_chat(self, db_session, handoffs):
        result = asyncio.run(handoffs.resume(db_session, "920000000000", "admin"))
        assert result.error_code == "not_found"


class TestAssignAndResolve:
    def test_assign_sets_agent(self, db_session, handoffs, conversation):
        outcome = asyncio.run(handoffs.initiate(db_session, conversation, "Customer requested human agent"))

        result = asyncio.run(handoffs.assign(db_session, str(outcome.handoff.id), "sana"))

        assert result.ok is True
        assert outcome.handoff.status == "assigned"
        assert outcome.handoff.assigned_to == "sana"
        assert outcome.handoff.assigned_at is not None
        assert conversation.human_agent == "sana"

    def test_resolve_returns_conversation_to_bot(self, db_session, handoffs, conversation):
        outcome = asyncio.run(handoffs.initiate(db_session, conversation, "Customer requested human agent"))

        result = asyncio.run(handoffs.resolve(db_session, outcome.handoff.id, "Order placed by phone"))

        assert result.ok is True
        assert outcome.handoff.status == "resolved"
        assert outcome.handoff.resolution_notes == "Order placed by phone"
        assert conversation.status == "active"

    def test_resolve_twice_is_invalid_state(self, db_session, handoffs, conversation):
        outcome = asyncio.run(handoffs.initiate(db_session, conversation, "Customer requested human agent"))
        asyncio.run(handoffs.resolve(db_session, outcome.handoff.id))

        result = asyncio.run(handoffs.resolve(db_session, outcome.handoff.id))

        assert result.error_code == "invalid_state"

    def test_assign_unknown_handoff(self, db_session, handoffs):
        result = asyncio.run(handoffs.assign(db_session, uuid4(), "sana"))
        assert result.error_code == "not_found"

    def test_pending_handoffs_lists_open_requests(self, db_session, handoffs, conversation):
        outcome = asyncio.run(handoffs.initiate(db_session, conversation, "Customer requested human agent"))
        assert [h.id for h in handoffs.pending_handoffs(db_session)] == [outcome.handoff.id]

        asyncio.run(handoffs.resolve(db_session, outcome.handoff.id))
        assert handoffs.pending_handoffs(db_session) == []


class TestOutboundCallsAfterCommit:
    def test_transitions_release_write_locks(self, session_factory, sheets, catalog):
        transport = WritingTransport(session_factory)
        handoffs = HandoffWorkflow(transport, sheets, OperatorNotifier(transport, ADMIN_PHONE), catalog)

        with session_factory() as db:
            conversation = get_or_create_conversation(db, CUSTOMER_CHAT_ID, CUSTOMER_PHONE, "Ali")
            outcome = asyncio.run(handoffs.initiate(db, conversation, "Customer requested human agent"))
            db.commit()
            handoff_id = str(outcome.handoff.id)
            conversation_id = conversation.id

            assigned = asyncio.run(handoffs.assign(db, handoff_id, "sana"))
            resolved = asyncio.run(handoffs.resolve(db, handoff_id, "done"))
            asyncio.run(handoffs.initiate(db, conversation, "Customer frustration detected", Priority.HIGH))
            db.commit()
            resumed = asyncio.run(handoffs.resume(db, CUSTOMER_CHAT_ID, ADMIN_PHONE))

        assert [assigned.ok, resolved.ok, resumed.ok] == [True, True, True]
        with session_factory() as db:
            assert get_open_handoff(db, conversation_id) is None
