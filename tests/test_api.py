import asyncio
from uuid import uuid4

import pytest
from fastapi.testclient import TestClient

from conftest import ADMIN_TOKEN, CUSTOMER_CHAT_ID, CUSTOMER_PHONE
from sales_agent.database import get_db
from sales_agent.main import app
from sales_agent.models import Payment
from sales_agent.services.conversation_service import get_or_create_conversation

AUTH = {"X-Admin-Token": ADMIN_TOKEN}


@pytest.fixture
def client(db_session, services):
    app.state.services = services
    app.dependency_overrides[get_db] = lambda: db_session
    try:
        yield TestClient(app)
    finally:
        app.dependency_overrides.clear()
        del app.state.services


@pytest.fixture
def conversation(db_session):
    conversation = get_or_create_conversation(db_session, CUSTOMER_CHAT_ID, CUSTOMER_PHONE, "Ali")
    db_session.commit()
    return conversation


@pytest.fixture
def payment(db_session, payments, conversation):
    asyncio.run(payments.initiate(db_session, conversation, True))
    db_session.commit()
    return db_session.query(Payment).one()


class TestWebhookEndpoint:
    def test_message_is_processed(self, client, make_event, transport):
        response = client.post("/webhook", json=make_event(body="Hi"))

        assert response.status_code == 200
        data = response.json()
        assert data["status"] == "received"
        assert data["processed"] is True
        assert data["intent"] == "GREETING"
        assert len(transport.texts_to(CUSTOMER_CHAT_ID)) == 1

    def test_ignored_event_still_acknowledged(self, client, make_event):
        response = client.post("/webhook", json=make_event(from_me=True))

        assert response.status_code == 200
        assert response.json()["processed"] is False
        assert response.json()["reason"] == "not_processable"

    def test_invalid_json_still_acknowledged(self, client):
        response = client.post("/webhook", content=b"not json", headers={"Content-Type": "application/json"})

        assert response.status_code == 200
        assert response.json()["reason"] == "invalid_payload"

    def test_probe(self, client):
        assert client.get("/webhook").json()["status"] == "ok"

    def test_session_event(self, client):
        response = client.post(
            "/webhook/session",
            json={"event": "session.status", "session": "default", "payload": {"status": "WORKING"}},
        )
        assert response.status_code == 200
        assert response.json()["processed"] is True


class TestAdminAuth:
    def test_missing_token_is_rejected(self, client):
        assert client.get("/admin/stats").status_code == 401

    def test_wrong_token_is_rejected(self, client):
        assert client.get("/admin/stats", headers={"X-Admin-Token": "nope"}).status_code == 401

    def test_unconfigured_token(self, client, services):
        services.settings.admin_api_token = None
        assert client.get("/admin/stats", headers=AUTH).status_code == 500


class TestAdminPayments:
    def test_approve(self, client, payment, db_session):
        response = client.post("/admin/approve-payment", json={"payment_id": str(payment.id)}, headers=AUTH)

        assert response.status_code == 200
        assert response.json()["success"] is True
        db_session.refresh(payment)
        assert payment.status == "approved"

    def test_double_approve_conflicts(self, client, payment):
        client.post("/admin/approve-payment", json={"payment_id": str(payment.id)}, headers=AUTH)
        response = client.post("/admin/approve-payment", json={"payment_id": str(payment.id)}, headers=AUTH)
        assert response.status_code == 409

    def test_unknown_payment(self, client):
        response = client.post("/admin/approve-payment", json={"payment_id": str(uuid4())}, headers=AUTH)
        assert response.status_code == 404

    def test_reject(self, client, payment, db_session):
        response = client.post(
            "/admin/reject-payment",
            json={"payment_id": str(payment.id), "reason": "Blurry screenshot"},
            headers=AUTH,
        )

        assert response.status_code == 200
        db_session.refresh(payment)
        assert payment.rejection_reason == "Blurry screenshot"

    def test_pending_list(self, client, payment):
        response = client.get("/admin/payments/pending", headers=AUTH)

        assert response.status_code == 200
        assert [item["id"] for item in response.json()] == [str(payment.id)]


class TestAdminHandoffs:
    def test_resume_active_conversation_conflicts(self, client, conversation):
        response = client.post("/admin/resume-ai", json={"chat_id": CUSTOMER_CHAT_ID}, headers=AUTH)
        assert response.status_code == 409

    def test_assign_and_resolve(self, client, handoffs, conversation, db_session):
        outcome = asyncio.run(handoffs.initiate(db_session, conversation, "Customer requested human agent"))
        db_session.commit()
        handoff_id = str(outcome.handoff.id)

        listed = client.get("/admin/handoffs/pending", headers=AUTH).json()
        assert [item["id"] for item in listed] == [handoff_id]

        assigned = client.post(
            "/admin/assign-handoff", json={"handoff_id": handoff_id, "agent_id": "sana"}, headers=AUTH
        )
        assert assigned.status_code == 200

        resolved = client.post("/admin/resolve-handoff", json={"handoff_id": handoff_id}, headers=AUTH)
        assert resolved.status_code == 200
        assert client.get("/admin/handoffs/pending", headers=AUTH).json() == []


class TestAdminConversations:
    def test_send_message(self, client, conversation, transport):
        response = client.post(
            "/admin/send-message", json={"chat_id": CUSTOMER_PHONE, "message": "Salam, main Sana hoon"}, headers=AUTH
        )

        assert response.status_code == 200
        assert transport.texts_to(CUSTOMER_CHAT_ID) == ["Salam, main Sana hoon"]

    def test_send_message_to_unknown_chat(self, client):
        response = client.post("/admin/send-message", json={"chat_id": "920000000000", "message": "hi"}, headers=AUTH)
        assert response.status_code == 404

    def test_conversation_detail(self, client, make_event):
        client.post("/webhook", json=make_event(body="Hi"))

        response = client.get(f"/admin/conversation/{CUSTOMER_PHONE}", headers=AUTH)

        assert response.status_code == 200
        data = response.json()
        assert data["status"] == "active"
        assert [m["sender"] for m in data["messages"]] == ["customer", "bot"]

    def test_conversation_not_found(self, client):
        assert client.get("/admin/conversation/920000000000", headers=AUTH).status_code == 404

    def test_stats(self, client, payment):
        data = client.get("/admin/stats", headers=AUTH).json()
        assert data["total_conversations"] == 1
        assert data["pending_payments"] == 1


class TestServiceEndpoints:
    def test_health(self, client):
        data = client.get("/health").json()
        assert data["status"] == "ok"
        assert data["providers"] == ["fake"]

    def test_public_stats(self, client, conversation):
        assert client.get("/stats").json()["total_conversations"] == 1

    def test_root(self, client):
        assert client.get("/").json()["service"] == "WhatsApp Sales Agent"
