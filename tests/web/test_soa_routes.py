"""
HTTP tests for the SOA routes.

The database is prepared synchronously because TestClient runs the app on
its own event loop.
"""

import asyncio

import pytest
from fastapi.testclient import TestClient

from conftest import (
    AGENT_ID,
    CLIENT_ID,
    OTHER_AGENT_ID,
    PREFERRED_EMAIL,
    FakeClock,
    RecordingEmailProvider,
    seed_contacts,
)
from database.async_engine import create_engine, create_schema, get_session_factory
from security.agent_auth import create_agent_token
from web.app import create_app
from web.dependencies import build_container


@pytest.fixture
def app_engine(db_settings):
    engine = create_engine(db_settings)

    async def _prepare():
        await create_schema(engine)
        await seed_contacts(engine)

    asyncio.run(_prepare())
    yield engine
    asyncio.run(engine.dispose())


@pytest.fixture
def outbox():
    return RecordingEmailProvider()


@pytest.fixture
def app_clock():
    return FakeClock()


@pytest.fixture
def app_container(app_engine, soa_settings, auth_settings, outbox, document_store, renderer_config, app_clock):
    return build_container(
        session_factory=get_session_factory(app_engine),
        settings=soa_settings,
        auth_settings=auth_settings,
        email_provider=outbox,
        store=document_store,
        renderer_config=renderer_config,
        clock=app_clock,
    )


@pytest.fixture
def client(app_container):
    with TestClient(create_app(container=app_container)) as test_client:
        yield test_client


@pytest.fixture
def agent_headers(auth_settings):
    return {"Authorization": f"Bearer {create_agent_token(AGENT_ID, auth_settings)}"}


@pytest.fixture
def other_agent_headers(auth_settings):
    return {"Authorization": f"Bearer {create_agent_token(OTHER_AGENT_ID, auth_settings)}"}


def send(client, headers, **overrides):
    body = {
        "client_id": CLIENT_ID,
        "beneficiary_name": "Mary Smith",
        "agent_name": "Alex Agent",
        "agent_phone": "555-0100",
        "products_preselected": ["part_d", "dental_vision_hearing"],
    }
    body.update(overrides)
    response = client.post("/api/soa/send", json=body, headers=headers)
    assert response.status_code == 200, response.text
    return response.json()


def token_of(sent):
    return sent["sign_url"].rsplit("/", 1)[-1]


def client_sign(client, token, **overrides):
    body = {
        "token": token,
        "typed_signature": "Mary Smith",
        "products_selected": ["part_d"],
        "signer_type": "beneficiary",
    }
    body.update(overrides)
    return client.post("/api/soa/client-sign", json=body)


class TestAgentAuth:
    """Agent routes require a bearer token."""

    def test_missing_token(self, client):
        response = client.get("/api/soa", params={"client_id": CLIENT_ID})
        assert response.status_code == 401
        assert response.json()["code"] == "UNAUTHORIZED"

    def test_bad_token(self, client):
        response = client.get(
            "/api/soa", params={"client_id": CLIENT_ID}, headers={"Authorization": "Bearer nope"},
        )
        assert response.status_code == 401

    def test_other_agents_record(self, client, agent_headers, other_agent_headers):
        sent = send(client, agent_headers)
        response = client.get(f"/api/soa/{sent['soa']['id']}", headers=other_agent_headers)
        assert response.status_code == 404


class TestSendAndRead:
    """Tests for send, list, get and audit."""

    def test_send(self, client, agent_headers, outbox):
        sent = send(client, agent_headers)

        assert sent["soa"]["status"] == "sent"
        assert sent["sign_url"].startswith("https://soa.example.com/soa/sign/")
        assert sent["soa"]["sign_url"] == sent["sign_url"]
        assert outbox.sent[0].to == PREFERRED_EMAIL
        assert sent["sign_url"] in outbox.sent[0].body_text

    def test_send_validation(self, client, agent_headers):
        response = client.post(
            "/api/soa/send", json={"client_id": CLIENT_ID}, headers=agent_headers,
        )
        body = response.json()
        assert response.status_code == 400
        assert {e["field"] for e in body["field_errors"]} == {"agent_name", "beneficiary_name"}

    def test_send_sms(self, client, agent_headers):
        response = client.post(
            "/api/soa/send",
            json={"client_id": CLIENT_ID, "agent_name": "A", "beneficiary_name": "B", "delivery_method": "sms"},
            headers=agent_headers,
        )
        assert response.status_code == 400
        assert response.json()["code"] == "DELIVERY_METHOD_NOT_SUPPORTED"

    def test_send_delivery_failure(self, client, agent_headers, outbox):
        outbox.fail("Email is on the suppression list")
        response = client.post(
            "/api/soa/send",
            json={"client_id": CLIENT_ID, "agent_name": "A", "beneficiary_name": "B"},
            headers=agent_headers,
        )
        assert response.status_code == 502
        assert response.json()["code"] == "DELIVERY_FAILED"

    def test_list_and_get(self, client, agent_headers):
        sent = send(client, agent_headers)
        soa_id = sent["soa"]["id"]

        listing = client.get("/api/soa", params={"client_id": CLIENT_ID}, headers=agent_headers).json()
        assert listing["count"] == 1
        assert listing["soas"][0]["id"] == soa_id

        fetched = client.get(f"/api/soa/{soa_id}", headers=agent_headers).json()
        assert fetched["soa"]["products_preselected"] == ["part_d", "dental_vision_hearing"]

    def test_audit_trail(self, client, agent_headers):
        soa_id = send(client, agent_headers)["soa"]["id"]

        body = client.get(f"/api/soa/{soa_id}/audit", headers=agent_headers).json()

        assert [e["action"] for e in body["entries"]] == ["created", "sent"]
        assert body["entries"][0]["performed_by"] == AGENT_ID
        assert body["entries"][1]["ip_address"] == "testclient"

    def test_lazy_expiry(self, client, agent_headers, app_clock):
        soa_id = send(client, agent_headers)["soa"]["id"]
        app_clock.advance(hours=73)

        fetched = client.get(f"/api/soa/{soa_id}", headers=agent_headers).json()
        assert fetched["soa"]["status"] == "expired"


class TestPublicSigning:
    """Tests for verify, opened and client-sign."""

    def test_verify_get_and_post(self, client, agent_headers):
        token = token_of(send(client, agent_headers))

        by_query = client.get("/api/soa/verify", params={"token": token}).json()
        by_body = client.post("/api/soa/verify", json={"token": token}).json()

        assert by_query == by_body
        assert by_query["valid"] is True
        assert by_query["soa"] == {
            "beneficiary_name": "Mary Smith",
            "agent_name": "Alex Agent",
            "agent_phone": "555-0100",
            "products_preselected": ["part_d", "dental_vision_hearing"],
            "language": "en",
        }

    def test_verify_unknown_token_is_structured(self, client):
        response = client.get("/api/soa/verify", params={"token": "nope"})
        body = response.json()
        assert response.status_code == 200
        assert body["valid"] is False
        assert body["code"] == "INVALID_TOKEN"
        assert "soa" not in body

    def test_verify_without_token(self, client):
        body = client.post("/api/soa/verify").json()
        assert body["valid"] is False
        assert body["code"] == "INVALID_TOKEN"

    def test_verify_expired(self, client, agent_headers, app_clock):
        token = token_of(send(client, agent_headers))
        app_clock.advance(hours=73)

        body = client.get("/api/soa/verify", params={"token": token}).json()
        assert body["code"] == "TOKEN_EXPIRED"

    def test_opened_once(self, client, agent_headers):
        sent = send(client, agent_headers)
        token = token_of(sent)

        assert client.post("/api/soa/opened", json={"token": token}).json() == {"ok": True}
        assert client.post("/api/soa/opened", json={"token": token}).json() == {"ok": False}

        fetched = client.get(f"/api/soa/{sent['soa']['id']}", headers=agent_headers).json()
        assert fetched["soa"]["status"] == "opened"

    def test_client_sign(self, client, agent_headers):
        sent = send(client, agent_headers)
        token = token_of(sent)

        response = client_sign(client, token)

        assert response.status_code == 200
        assert response.json() == {"ok": True}
        fetched = client.get(f"/api/soa/{sent['soa']['id']}", headers=agent_headers).json()
        assert fetched["soa"]["status"] == "client_signed"
        assert fetched["soa"]["products_selected"] == ["part_d"]

    def test_client_sign_replay(self, client, agent_headers):
        token = token_of(send(client, agent_headers))
        client_sign(client, token)

        body = client_sign(client, token).json()
        assert body["ok"] is False
        assert body["code"] == "ALREADY_USED"

    def test_client_sign_validation(self, client, agent_headers):
        token = token_of(send(client, agent_headers))

        body = client_sign(client, token, signer_type="representative").json()

        assert body["ok"] is False
        assert body["code"] == "VALIDATION_ERROR"
        assert {e["field"] for e in body["field_errors"]} == {"rep_name", "rep_relationship"}

    def test_client_sign_null_signature(self, client, agent_headers):
        sent = send(client, agent_headers)

        response = client_sign(client, token_of(sent), typed_signature=None)

        assert response.status_code == 200
        body = response.json()
        assert body["ok"] is False
        assert body["code"] == "VALIDATION_ERROR"
        assert [e["field"] for e in body["field_errors"]] == ["typed_signature"]
        fetched = client.get(f"/api/soa/{sent['soa']['id']}", headers=agent_headers).json()
        assert fetched["soa"]["status"] == "sent"

    def test_client_sign_products_as_string(self, client, agent_headers):
        response = client_sign(client, token_of(send(client, agent_headers)), products_selected="part_d")

        assert response.status_code == 200
        body = response.json()
        assert body["ok"] is False
        assert [e["field"] for e in body["field_errors"]] == ["products_selected"]

    def test_client_sign_non_object_body(self, client):
        response = client.post("/api/soa/client-sign", json=["part_d"])

        assert response.status_code == 200
        body = response.json()
        assert body["ok"] is False
        assert body["code"] == "INVALID_TOKEN"

    def test_verify_null_token(self, client):
        response = client.post("/api/soa/verify", json={"token": None})

        assert response.status_code == 200
        assert response.json()["valid"] is False
        assert response.json()["code"] == "INVALID_TOKEN"

    def test_opened_null_token(self, client):
        assert client.post("/api/soa/opened", json={"token": None}).json() == {"ok": False}

    def test_agent_notified_on_shutdown_drain(self, app_container, agent_headers, outbox):
        with TestClient(create_app(container=app_container)) as test_client:
            token = token_of(send(test_client, agent_headers))
            client_sign(test_client, token)

        assert len(outbox.messages_with_tag("agent_notice")) == 1


class TestAgentActions:
    """Tests for resend, void, countersign, edit and documents."""

    def _signed(self, client, headers):
        sent = send(client, headers)
        client_sign(client, token_of(sent))
        return sent["soa"]["id"]

    def test_resend(self, client, agent_headers, outbox):
        soa_id = send(client, agent_headers)["soa"]["id"]

        body = client.post(f"/api/soa/{soa_id}/resend", headers=agent_headers).json()

        assert body["ok"] is True
        assert body["soa"]["status"] == "sent"
        assert len(outbox.messages_with_tag("sign_request")) == 2

    def test_void(self, client, agent_headers):
        sent = send(client, agent_headers)

        body = client.post(
            f"/api/soa/{sent['soa']['id']}/void", json={"reason": "Duplicate"}, headers=agent_headers,
        ).json()

        assert body["soa"]["status"] == "voided"
        verify = client.get("/api/soa/verify", params={"token": token_of(sent)}).json()
        assert verify["code"] == "ALREADY_USED"
        assert verify["error"] == "This link is no longer valid."

    def test_void_without_body(self, client, agent_headers):
        soa_id = send(client, agent_headers)["soa"]["id"]
        response = client.post(f"/api/soa/{soa_id}/void", headers=agent_headers)
        assert response.json()["soa"]["status"] == "voided"

    def test_countersign_before_client(self, client, agent_headers):
        soa_id = send(client, agent_headers)["soa"]["id"]

        response = client.post(
            f"/api/soa/{soa_id}/countersign", json={"typed_signature": "Alex Agent"}, headers=agent_headers,
        )

        assert response.status_code == 409
        assert response.json()["details"]["current_status"] == "sent"

    def test_countersign_and_download(self, client, agent_headers):
        soa_id = self._signed(client, agent_headers)

        body = client.post(
            f"/api/soa/{soa_id}/countersign",
            json={"typed_signature": "Alex Agent", "initial_contact_method": "Phone"},
            headers=agent_headers,
        ).json()
        assert body["soa"]["status"] == "completed"
        assert "warning" not in body
        assert body["soa"]["signed_artifact_path"] == f"{AGENT_ID}/{soa_id}.pdf"

        url = client.get(f"/api/soa/{soa_id}/signed-url", headers=agent_headers).json()["url"]
        assert url.startswith("https://soa.example.com/api/soa/documents/")

        download = client.get(url.replace("https://soa.example.com", ""))
        assert download.status_code == 200
        assert download.headers["content-type"] == "application/pdf"
        assert download.content.startswith(b"%PDF")

    def test_download_with_bad_token(self, client):
        response = client.get("/api/soa/documents/not-a-token")
        assert response.status_code == 404

    def test_edit_completed(self, client, agent_headers):
        soa_id = self._signed(client, agent_headers)
        client.post(
            f"/api/soa/{soa_id}/countersign", json={"typed_signature": "Alex Agent"}, headers=agent_headers,
        )

        body = client.patch(
            f"/api/soa/{soa_id}", json={"agent_name": "Alexandra Agent"}, headers=agent_headers,
        ).json()
        assert body["soa"]["agent_name"] == "Alexandra Agent"

        trail = client.get(f"/api/soa/{soa_id}/audit", headers=agent_headers).json()["entries"]
        edited = [e for e in trail if e["action"] == "edited"][0]
        assert edited["metadata"]["fields_changed"]["agent_name"] == {
            "before": "Alex Agent", "after": "Alexandra Agent",
        }

    def test_render_requires_completed(self, client, agent_headers):
        soa_id = send(client, agent_headers)["soa"]["id"]
        response = client.post(f"/api/soa/{soa_id}/render", headers=agent_headers)
        assert response.status_code == 409


class TestHealth:
    """Tests for the health endpoints."""

    def test_health(self, client):
        response = client.get("/health")
        body = response.json()

        assert response.status_code == 200
        assert body["status"] == "healthy"
        assert body["checks"]["database"]["status"] == "healthy"
        assert body["checks"]["email"]["provider"] == "recording"

    def test_liveness(self, client):
        assert client.get("/health/live").json() == {"status": "alive"}
