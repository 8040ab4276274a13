"""
Tests for the FastAPI server: proxies and the wizard session API.
"""

import json
from unittest.mock import AsyncMock, patch

import httpx
import pytest
from fastapi.testclient import TestClient

import server
from chat_assistant import ChatConfigurationError, ChatProviderError
from draft_storage import DraftStorageConfig, DraftStore
from offer_client import OfferServiceClient
from property_lookup import PropertyLookupClient
from wizard.chat_session import FALLBACK_REPLY, HttpChatSender
from wizard.submission import SERVER_ERROR_MESSAGE


# ============================================================================
# Test Fixtures
# ============================================================================

@pytest.fixture(autouse=True)
def environment(tmp_path, monkeypatch):
    monkeypatch.setenv("DRAFT_STORAGE_DIR", str(tmp_path / "drafts"))
    monkeypatch.setenv("DRAFT_SAVE_DELAY", "60")
    monkeypatch.delenv("DRAFT_STORAGE_MAX_BYTES", raising=False)
    monkeypatch.delenv("OFFER_PROXY_URL", raising=False)
    monkeypatch.delenv("OFFERBOT_BASE_URL", raising=False)
    server.sessions_store.clear()
    yield
    server.sessions_store.clear()


@pytest.fixture
def client():
    with patch("server.notify_listing_scraper") as notifier:
        with TestClient(server.app) as test_client:
            test_client.notifier = notifier
            yield test_client


@pytest.fixture
def mailer():
    with patch("server.OfferMailer") as mock_mailer:
        yield mock_mailer.return_value


def offer_service(handler):
    """Patch the offer service with a fake upstream."""
    return patch("server.OfferServiceClient", lambda: OfferServiceClient(transport=httpx.MockTransport(handler)))


def offer_created(request):
    return httpx.Response(200, json={
        "pdf_url": "/files/offer-2345678.pdf",
        "listingAgentInfo": {"name": "Sam Agent"},
    })


@pytest.fixture
def offer():
    return {
        "MLS_ID": "2345678",
        "buyerdata": {"Buyer1Name": "Jane Buyer", "B_Email": "jane@example.com"},
    }


COMPLETE_BUYER = {
    "Buyer1Name": "Jane Buyer",
    "B_Email": "jane@example.com",
    "B_Status": "A single person",
    "ClosingDate": "2026-04-01",
}


# ============================================================================
# Health / Property Lookup
# ============================================================================

class TestHealth:
    def test_health(self, client):
        assert client.get("/api/health").json() == {"status": "healthy", "service": "offer-wizard-api"}


class TestAddressLookup:
    def test_usage(self, client):
        assert client.get("/api/address-mlsid").json()["usage"]["method"] == "POST"

    def test_invalid_json(self, client):
        resp = client.post("/api/address-mlsid", content="not json", headers={"content-type": "application/json"})
        assert resp.status_code == 400
        assert resp.json() == {"error": "Invalid JSON in request body"}

    def test_missing_fields(self, client):
        resp = client.post("/api/address-mlsid", json={"city": "Seattle"})
        assert resp.status_code == 400
        assert resp.json()["error"] == "Missing required fields"

    def test_found(self, client):
        def handler(request):
            return httpx.Response(200, json={"zpid": 1, "price": 450000, "attributionInfo": {"mlsId": "2345678"}})

        with patch("server.PropertyLookupClient", lambda: PropertyLookupClient(transport=httpx.MockTransport(handler))):
            resp = client.post("/api/address-mlsid", json={"address": "123 Main St"})
        assert resp.status_code == 200
        assert resp.json()["mlsId"] == "2345678"

    def test_upstream_status_passed_through(self, client):
        handler = lambda request: httpx.Response(503, json={"message": "maintenance"})
        with patch("server.PropertyLookupClient", lambda: PropertyLookupClient(transport=httpx.MockTransport(handler))):
            resp = client.post("/api/address-mlsid", json={"address": "123 Main St"})
        assert resp.status_code == 503
        assert resp.json() == {"error": "Property data API error", "details": "maintenance", "status": 503}


# ============================================================================
# Offer Assistant
# ============================================================================

class TestOfferBotChat:
    @patch("server.OfferAssistant")
    def test_reply(self, mock_assistant, client):
        mock_assistant.return_value.reply = AsyncMock(return_value="Happy to help!")
        resp = client.post("/api/offer-bot-chat", json={
            "message": "What is earnest money?",
            "propertyData": {"price": 450000},
            "formData": {"MLS_ID": "1"},
            "currentStep": 3,
            "conversationHistory": [{"text": "hi", "isBot": False}],
        })
        assert resp.status_code == 200
        assert resp.json() == {"response": "Happy to help!"}
        mock_assistant.return_value.reply.assert_awaited_once_with(
            "What is earnest money?",
            current_step=3,
            property_context={"price": 450000},
            form_context={"MLS_ID": "1"},
            history=[{"text": "hi", "isBot": False}],
        )

    @patch("server.OfferAssistant")
    def test_missing_credentials(self, mock_assistant, client):
        mock_assistant.return_value.reply = AsyncMock(side_effect=ChatConfigurationError("OPENAI_API_KEY not configured"))
        resp = client.post("/api/offer-bot-chat", json={"message": "hi"})
        assert resp.status_code == 500

    @patch("server.OfferAssistant")
    def test_provider_failure(self, mock_assistant, client):
        mock_assistant.return_value.reply = AsyncMock(side_effect=ChatProviderError("rate limited"))
        resp = client.post("/api/offer-bot-chat", json={"message": "hi"})
        assert resp.status_code == 502
        assert resp.json() == {"error": "Failed to get AI response"}

    def test_message_required(self, client):
        assert client.post("/api/offer-bot-chat", json={"message": " "}).status_code == 400


# ============================================================================
# Offer Creation
# ============================================================================

class TestCreateOffer:
    def test_missing_fields(self, client, mailer):
        resp = client.post("/api/create-offer", json={"MLS_ID": "1"})
        assert resp.status_code == 400
        assert resp.json()["success"] is False

    def test_invalid_json(self, client, mailer):
        resp = client.post("/api/create-offer", content="{", headers={"content-type": "application/json"})
        assert resp.status_code == 400

    def test_success(self, client, mailer, offer):
        seen = {}

        def handler(request):
            seen["body"] = json.loads(request.content)
            return offer_created(request)

        with offer_service(handler):
            resp = client.post("/api/create-offer", json=offer)

        assert resp.status_code == 200
        data = resp.json()
        assert data["success"] is True
        assert data["mlsId"] == "2345678"
        assert data["documentUrl"] == "https://offerbot.ngrok.app/files/offer-2345678.pdf"
        assert data["listingAgentInfo"] == {"name": "Sam Agent"}
        assert set(seen["body"]) == {"MLS_ID", "Form22A_FromBuyer", "Form35_FromBuyer", "buyerdata"}
        mailer.send_offer_emails.assert_called_once_with(offer, data["documentUrl"])

    def test_email_failure_keeps_success(self, client, mailer, offer):
        mailer.send_offer_emails.side_effect = OSError("smtp down")
        with offer_service(offer_created):
            resp = client.post("/api/create-offer", json=offer)
        assert resp.status_code == 200
        assert resp.json()["success"] is True

    def test_upstream_error_sends_no_email(self, client, mailer, offer):
        with offer_service(lambda request: httpx.Response(500, text="boom")):
            resp = client.post("/api/create-offer", json=offer)
        assert resp.status_code == 500
        assert resp.json()["success"] is False
        mailer.send_offer_emails.assert_not_called()

    def test_upstream_unreachable(self, client, mailer, offer):
        def handler(request):
            raise httpx.ConnectError("refused", request=request)

        with offer_service(handler):
            resp = client.post("/api/create-offer", json=offer)
        assert resp.status_code == 502
        mailer.send_offer_emails.assert_not_called()


# ============================================================================
# Wizard Sessions
# ============================================================================

class TestWizardSessions:
    def create(self, client, **body):
        resp = client.post("/api/wizard/sessions", json=body)
        assert resp.status_code == 200
        return resp.json()

    def test_create(self, client):
        session = self.create(client)
        assert session["session_id"]
        assert session["position"]["step"] == 1
        assert session["canGoNext"] is False
        assert session["chat"] == []

    def test_unknown_session(self, client):
        assert client.get("/api/wizard/sessions/missing").status_code == 404

    @pytest.mark.parametrize("session_id", ["../x", "a/b", "draft.json"])
    def test_unsafe_session_id_rejected(self, client, session_id):
        resp = client.post("/api/wizard/sessions", json={"session_id": session_id})
        assert resp.status_code == 422
        assert server.sessions_store == {}

    def test_resume_saved_draft(self, client):
        DraftStore.from_config(DraftStorageConfig(), "abc").save({
            "MLS_ID": "2345678",
            "Form22A": {"TypeofLoan": "FHA"},
        })
        session = self.create(client, session_id="abc")
        assert session["session_id"] == "abc"
        assert session["draft"]["MLS_ID"] == "2345678"
        assert session["position"]["includeFinancingAddendum"] is True
        assert session["reachableSteps"] == [1, 2, 3, 4, 5, 7]

    def test_navigation(self, client):
        session_id = self.create(client)["session_id"]
        base = f"/api/wizard/sessions/{session_id}"

        blocked = client.post(f"{base}/next").json()
        assert blocked["moved"] is False
        assert blocked["errors"][0]["field"] == "MLS_ID"

        client.patch(f"{base}/draft", json={"MLS_ID": "2345678", "listingPrice": 450000})
        moved = client.post(f"{base}/next").json()
        assert moved["moved"] is True
        assert moved["position"]["step"] == 2
        client.notifier.assert_called_once_with("2345678")

        back = client.post(f"{base}/back").json()
        assert back["position"]["step"] == 1

    def test_select_property(self, client):
        session_id = self.create(client)["session_id"]
        resp = client.post(f"/api/wizard/sessions/{session_id}/property", json={"zpid": 1, "mlsId": "2345678", "price": 450000})
        data = resp.json()
        assert data["draft"]["MLS_ID"] == "2345678"
        assert data["draft"]["listingPrice"] == 450000
        assert data["canGoNext"] is True

    def test_addenda(self, client):
        session_id = self.create(client)["session_id"]
        resp = client.put(f"/api/wizard/sessions/{session_id}/addenda", json={"includeInspectionAddendum": True})
        assert resp.json()["reachableSteps"] == [1, 2, 3, 4, 6, 7]

    def test_full_submission(self, client, mailer):
        session_id = self.create(client)["session_id"]
        base = f"/api/wizard/sessions/{session_id}"

        client.patch(f"{base}/draft", json={"MLS_ID": "2345678", "listingPrice": 450000})
        client.post(f"{base}/next")
        client.patch(f"{base}/draft", json={"buyerdata": COMPLETE_BUYER})
        for _ in range(3):
            assert client.post(f"{base}/next").json()["moved"] is True

        with offer_service(offer_created):
            resp = client.post(f"{base}/submit", json={"requestAgentHelp": True, "agentHelpNotes": "Call me"})

        data = resp.json()
        assert resp.status_code == 200
        assert data["result"]["ok"] is True
        assert data["result"]["documentUrl"] == "https://offerbot.ngrok.app/files/offer-2345678.pdf"
        assert data["position"]["submitted"] is True
        sent_offer = mailer.send_offer_emails.call_args[0][0]
        assert sent_offer["agentHelpNotes"] == "Call me"
        assert sent_offer["buyerdata"]["offer_price_num"] == 450000

        again = client.post(f"{base}/submit")
        assert again.status_code == 409

    def test_submission_upstream_failure(self, client, mailer):
        session_id = self.create(client)["session_id"]
        base = f"/api/wizard/sessions/{session_id}"
        client.patch(f"{base}/draft", json={"MLS_ID": "2345678", "listingPrice": 450000})
        client.post(f"{base}/next")
        client.patch(f"{base}/draft", json={"buyerdata": COMPLETE_BUYER})
        client.post(f"{base}/next")
        client.post(f"{base}/next")
        client.post(f"{base}/next")

        with offer_service(lambda request: httpx.Response(500, text="boom")):
            data = client.post(f"{base}/submit").json()
        assert data["result"]["category"] == "server"
        assert data["result"]["message"] == SERVER_ERROR_MESSAGE
        assert data["position"]["submitted"] is False

    def test_submit_validation_failure(self, client):
        session_id = self.create(client)["session_id"]
        data = client.post(f"/api/wizard/sessions/{session_id}/submit").json()
        assert data["result"]["category"] == "validation"

    def test_submit_before_review_refused(self, client, mailer):
        session_id = self.create(client)["session_id"]
        base = f"/api/wizard/sessions/{session_id}"
        client.patch(f"{base}/draft", json={"MLS_ID": "2345678", "listingPrice": 450000})
        client.post(f"{base}/next")
        client.patch(f"{base}/draft", json={"buyerdata": COMPLETE_BUYER})
        client.post(f"{base}/next")
        client.post(f"{base}/next")

        data = client.post(f"{base}/submit").json()
        assert data["position"]["step"] == 4
        assert data["result"]["category"] == "validation"
        assert data["position"]["submitted"] is False
        mailer.send_offer_emails.assert_not_called()

    def test_non_numeric_offer_price(self, client):
        session_id = self.create(client)["session_id"]
        resp = client.patch(f"/api/wizard/sessions/{session_id}/draft", json={"buyerdata": {"offer_price_num": "abc"}})
        assert resp.status_code == 200
        assert resp.json()["draft"]["buyerdata"] == {"offer_price_num": "abc"}

    def test_submit_while_in_flight(self, client):
        session_id = self.create(client)["session_id"]
        server.sessions_store[session_id].wizard._submitting = True
        assert client.post(f"/api/wizard/sessions/{session_id}/submit").status_code == 409

    @patch("server.OfferAssistant")
    def test_chat(self, mock_assistant, client):
        mock_assistant.return_value.reply = AsyncMock(return_value="Happy to help!")
        session_id = self.create(client)["session_id"]
        data = client.post(f"/api/wizard/sessions/{session_id}/chat", json={"message": "What's an MLS ID?"}).json()
        assert data["response"] == "Happy to help!"
        assert len(data["messages"]) == 2
        assert mock_assistant.return_value.reply.call_args.kwargs["current_step"] == 1

    @patch("server.OfferAssistant")
    def test_chat_failure_falls_back(self, mock_assistant, client):
        mock_assistant.return_value.reply = AsyncMock(side_effect=ChatProviderError("down"))
        session_id = self.create(client)["session_id"]
        data = client.post(f"/api/wizard/sessions/{session_id}/chat", json={"message": "hello"}).json()
        assert data["response"] == FALLBACK_REPLY

    def test_chat_goes_through_assistant_endpoint(self, client, monkeypatch):
        session_id = self.create(client)["session_id"]
        sender = server.sessions_store[session_id].chat._sender
        assert isinstance(sender, HttpChatSender)
        assert sender.base_url == "http://offer-wizard"

        monkeypatch.setenv("OFFER_PROXY_URL", "https://wizard.example.com")
        assert server.create_chat_sender().base_url == "https://wizard.example.com"

    def test_delete(self, client):
        DraftStore.from_config(DraftStorageConfig(), "gone").save({"MLS_ID": "1"})
        self.create(client, session_id="gone")
        assert client.delete("/api/wizard/sessions/gone").status_code == 200
        assert not DraftStore.from_config(DraftStorageConfig(), "gone").exists()
        assert client.delete("/api/wizard/sessions/gone").status_code == 404
