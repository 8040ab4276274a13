"""
FastAPI Server for the Offer Wizard API

Provides endpoints for:
- Looking up a property (address -> MLS ID and details)
- Asking the offer assistant about the current step
- Creating an offer with the offer-generation service and emailing it
- Driving a wizard session: edit the draft, navigate, submit, chat
"""

import logging
import os
import uuid
from typing import Any, Dict, List, Optional

import httpx
from dotenv import load_dotenv
from fastapi import FastAPI, HTTPException, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field
from starlette.concurrency import run_in_threadpool

from chat_assistant import ChatConfigurationError, ChatProviderError, OfferAssistant
from draft_storage import DraftStorageConfig, DraftStore
from mailer import OfferMailer
from offer_client import OfferServiceClient, OfferServiceError, notify_listing_scraper
from offer_mapping import build_offer_service_request, resolve_document_url
from property_lookup import PropertyLookupClient, PropertyLookupError
from wizard.autosave import DraftAutosaver
from wizard.chat_session import ChatSession, HttpChatSender
from wizard.controller import OfferWizard
from wizard.submission import HttpOfferSubmitter

load_dotenv()

logging.basicConfig(
    level=os.getenv("LOG_LEVEL", "INFO").upper(),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)

# ============================================================================
# FastAPI App
# ============================================================================

app = FastAPI(
    title="Offer Wizard API",
    description="Guided home purchase offer wizard with property lookup and AI help",
    version="0.1.0",
)

# CORS for the wizard frontend
app.add_middleware(
    CORSMiddleware,
    allow_origins=os.getenv("CORS_ORIGINS", "http://localhost:5173,http://localhost:3000").split(","),
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# ============================================================================
# Pydantic Models for API
# ============================================================================

class CreateSessionRequest(BaseModel):
    """Start a wizard, or resume one by id."""
    session_id: Optional[str] = Field(default=None, pattern=r"^[A-Za-z0-9_-]+$")


class DraftUpdate(BaseModel):
    """Top-level draft sections to replace."""
    MLS_ID: Optional[str] = None
    listingPrice: Optional[float] = None
    buyerdata: Optional[Dict[str, Any]] = None
    Form22A: Optional[Dict[str, Any]] = None
    Form35: Optional[Dict[str, Any]] = None
    requestAgentHelp: Optional[bool] = None
    agentHelpNotes: Optional[str] = None


class AddendaUpdate(BaseModel):
    includeFinancingAddendum: Optional[bool] = None
    includeInspectionAddendum: Optional[bool] = None


class SubmitRequest(BaseModel):
    requestAgentHelp: Optional[bool] = None
    agentHelpNotes: Optional[str] = None


class ChatRequest(BaseModel):
    message: str


# ============================================================================
# In-Memory Wizard Sessions (drafts themselves are persisted to disk)
# ============================================================================

class WizardSession:
    """A wizard and its chat conversation."""

    def __init__(self, session_id: str, wizard: OfferWizard):
        self.session_id = session_id
        self.wizard = wizard
        self.chat = ChatSession(create_chat_sender())

    def snapshot(self) -> Dict[str, Any]:
        return {
            "session_id": self.session_id,
            **self.wizard.snapshot(),
            "chat": self.chat.messages,
        }


sessions_store: Dict[str, WizardSession] = {}


def create_submitter() -> HttpOfferSubmitter:
    """
    Submit to OFFER_PROXY_URL when set, otherwise to this application in
    process.
    """
    proxy_url = os.getenv("OFFER_PROXY_URL")
    if proxy_url:
        return HttpOfferSubmitter(base_url=proxy_url)
    return HttpOfferSubmitter(
        base_url="http://offer-wizard",
        transport=httpx.ASGITransport(app=app),
    )


def create_chat_sender() -> HttpChatSender:
    """Same routing as create_submitter, for the assistant endpoint."""
    proxy_url = os.getenv("OFFER_PROXY_URL")
    if proxy_url:
        return HttpChatSender(base_url=proxy_url)
    return HttpChatSender(
        base_url="http://offer-wizard",
        transport=httpx.ASGITransport(app=app),
    )


def open_wizard_session(session_id: str) -> WizardSession:
    storage_config = DraftStorageConfig()
    store = DraftStore.from_config(storage_config, session_id)
    wizard = OfferWizard.restore(
        store,
        autosaver=DraftAutosaver(store, delay=storage_config.save_delay),
        submitter=create_submitter(),
        listing_notifier=notify_listing_scraper,
    )
    return WizardSession(session_id, wizard)


def get_session(session_id: str) -> WizardSession:
    session = sessions_store.get(session_id)
    if session is None:
        raise HTTPException(status_code=404, detail="Wizard session not found")
    return session


async def read_json_body(request: Request) -> Any:
    try:
        return await request.json()
    except ValueError:
        return None


# ============================================================================
# API Endpoints
# ============================================================================

@app.get("/api/health")
def health_check():
    """Health check endpoint."""
    return {"status": "healthy", "service": "offer-wizard-api"}


# ----------------------------------------------------------------------------
# Property Lookup
# ----------------------------------------------------------------------------

@app.get("/api/address-mlsid")
def address_lookup_usage():
    """Usage information for the property lookup."""
    return {
        "message": "Property lookup API - use POST method",
        "usage": {
            "method": "POST",
            "body": {
                "address": "string (required if no zipcode)",
                "city": "string (optional)",
                "state": "string (optional)",
                "zipcode": "string (required if no address)",
            },
        },
        "example": {
            "address": "123 Main St",
            "city": "Seattle",
            "state": "WA",
            "zipcode": "98101",
        },
    }


@app.post("/api/address-mlsid")
async def address_lookup(request: Request):
    """Look up a property by address."""
    body = await read_json_body(request)
    if not isinstance(body, dict):
        return JSONResponse(status_code=400, content={"error": "Invalid JSON in request body"})

    try:
        async with PropertyLookupClient() as client:
            return await client.search(body)
    except PropertyLookupError as e:
        return JSONResponse(status_code=e.status_code, content=e.to_dict())
    except Exception as e:
        logger.exception(f"Unexpected property lookup error: {e}")
        return JSONResponse(status_code=500, content={"error": "Internal server error", "details": str(e)})


# ----------------------------------------------------------------------------
# Offer Assistant
# ----------------------------------------------------------------------------

@app.post("/api/offer-bot-chat")
async def offer_bot_chat(request: Request):
    """Answer a question about the offer form."""
    body = await read_json_body(request)
    if not isinstance(body, dict) or not str(body.get("message") or "").strip():
        return JSONResponse(status_code=400, content={"error": "Message is required"})

    try:
        response = await OfferAssistant().reply(
            str(body["message"]),
            current_step=body.get("currentStep"),
            property_context=body.get("propertyContext") or body.get("propertyData"),
            form_context=body.get("formContext") or body.get("formData"),
            history=body.get("conversationHistory") or [],
        )
    except ChatConfigurationError as e:
        logger.error(f"Offer assistant misconfigured: {e}")
        return JSONResponse(status_code=500, content={"error": "Server configuration error"})
    except ChatProviderError:
        return JSONResponse(status_code=502, content={"error": "Failed to get AI response"})

    return {"response": response}


# ----------------------------------------------------------------------------
# Offer Creation
# ----------------------------------------------------------------------------

@app.post("/api/create-offer")
async def create_offer(request: Request):
    """
    Create an offer with the offer-generation service, then send the team
    notification and buyer confirmation emails.
    """
    offer = await read_json_body(request)
    if not isinstance(offer, dict):
        return JSONResponse(status_code=400, content={"success": False, "message": "Invalid JSON in request body"})

    if not offer.get("MLS_ID") or not offer.get("buyerdata"):
        return JSONResponse(
            status_code=400,
            content={"success": False, "message": "Missing required fields: MLS_ID and buyerdata"},
        )

    request_body = build_offer_service_request(offer)  # type: ignore[arg-type]

    try:
        async with OfferServiceClient() as client:
            api_response = await client.create_offer(request_body)
            base_url = client.base_url
    except OfferServiceError as e:
        if e.status_code == 0:
            return JSONResponse(
                status_code=502,
                content={"success": False, "message": "Could not reach the offer service", "error": e.message},
            )
        return JSONResponse(
            status_code=500,
            content={
                "success": False,
                "message": f"Offer service returned an error ({e.status_code})",
                "error": e.message,
            },
        )

    document_url = resolve_document_url(api_response.get("pdf_url"), base_url)

    try:
        await run_in_threadpool(OfferMailer().send_offer_emails, offer, document_url)
    except Exception as e:
        logger.error(f"Offer emails failed for MLS {offer['MLS_ID']}: {e}")

    return {
        "success": True,
        "message": "Offer created successfully",
        "mlsId": offer["MLS_ID"],
        "documentUrl": document_url,
        "listingAgentInfo": api_response.get("listingAgentInfo"),
        "apiResponse": api_response,
    }


# ----------------------------------------------------------------------------
# Wizard Sessions
# ----------------------------------------------------------------------------

@app.post("/api/wizard/sessions")
async def create_wizard_session(payload: Optional[CreateSessionRequest] = None):
    """Start a wizard, resuming the saved draft when the id is known."""
    session_id = (payload.session_id if payload else None) or uuid.uuid4().hex
    session = sessions_store.get(session_id)
    if session is None:
        session = open_wizard_session(session_id)
        sessions_store[session_id] = session
    return session.snapshot()


@app.get("/api/wizard/sessions/{session_id}")
async def get_wizard_session(session_id: str):
    return get_session(session_id).snapshot()


@app.patch("/api/wizard/sessions/{session_id}/draft")
async def update_wizard_draft(session_id: str, update: DraftUpdate):
    session = get_session(session_id)
    if session.wizard.submitted:
        raise HTTPException(status_code=409, detail="Offer already submitted")
    session.wizard.update_draft(update.model_dump(exclude_unset=True))
    return session.snapshot()


@app.post("/api/wizard/sessions/{session_id}/property")
async def select_wizard_property(session_id: str, record: Dict[str, Any]):
    """Use a property lookup result for the offer."""
    session = get_session(session_id)
    if session.wizard.submitted:
        raise HTTPException(status_code=409, detail="Offer already submitted")
    session.wizard.select_property(record)  # type: ignore[arg-type]
    return session.snapshot()


@app.put("/api/wizard/sessions/{session_id}/addenda")
async def set_wizard_addenda(session_id: str, update: AddendaUpdate):
    session = get_session(session_id)
    session.wizard.set_addenda(
        include_financing=update.includeFinancingAddendum,
        include_inspection=update.includeInspectionAddendum,
    )
    return session.snapshot()


@app.post("/api/wizard/sessions/{session_id}/next")
async def wizard_next(session_id: str):
    session = get_session(session_id)
    moved = session.wizard.go_next()
    return {"moved": moved, **session.snapshot()}


@app.post("/api/wizard/sessions/{session_id}/back")
async def wizard_back(session_id: str):
    session = get_session(session_id)
    moved = session.wizard.go_back()
    return {"moved": moved, **session.snapshot()}


@app.post("/api/wizard/sessions/{session_id}/submit")
async def submit_wizard(session_id: str, payload: Optional[SubmitRequest] = None):
    """Submit the offer; 409 while a submission is already in flight."""
    session = get_session(session_id)
    payload = payload or SubmitRequest()

    if session.wizard.is_submitting:
        raise HTTPException(status_code=409, detail="Submission already in progress")
    if session.wizard.submitted:
        raise HTTPException(status_code=409, detail="Offer already submitted")

    result = await session.wizard.submit(
        request_agent_help=payload.requestAgentHelp,
        agent_help_notes=payload.agentHelpNotes,
    )
    if result is None:
        raise HTTPException(status_code=409, detail="Submission already in progress")
    return {"result": result, **session.snapshot()}


@app.post("/api/wizard/sessions/{session_id}/chat")
async def wizard_chat(session_id: str, chat: ChatRequest):
    session = get_session(session_id)
    if not chat.message.strip():
        raise HTTPException(status_code=400, detail="Message is required")

    reply = await session.chat.ask(
        chat.message,
        current_step=session.wizard.step,
        property_context=session.wizard.property,
        form_context=session.wizard.draft,
    )
    messages: List[Dict[str, Any]] = session.chat.messages  # type: ignore[assignment]
    return {"response": reply, "messages": messages}


@app.delete("/api/wizard/sessions/{session_id}")
async def delete_wizard_session(session_id: str):
    """Discard a wizard and its saved draft."""
    session = sessions_store.pop(session_id, None)
    if session is None:
        raise HTTPException(status_code=404, detail="Wizard session not found")
    session.chat.close()
    session.wizard.discard()
    return {"message": "Wizard session deleted", "session_id": session_id}


# ============================================================================
# Run with: uvicorn server:app --reload
# ============================================================================
