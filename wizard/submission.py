"""
Submission Orchestration - Payload Assembly and Outcome Classification

Builds the final offer payload from the draft and the addendum toggles,
posts it to the offer submission endpoint, and turns whatever comes back
into a SubmissionResult:

- 2xx: success, with the document link and any listing agent info
- 4xx: the server's own message when it sent one, else a generic hint
- 5xx: a generic "try again" message; the body is not read
- no response at all: a generic network message
"""

import copy
import logging
import os
from typing import Any, Awaitable, Callable, Dict, Optional, Protocol

import httpx

from state import OfferDraft, SubmissionResult

logger = logging.getLogger(__name__)

SERVER_ERROR_MESSAGE = "Something went wrong on our end. Please try again in a moment."
CLIENT_ERROR_MESSAGE = (
    "There was a problem with your submission. "
    "Please check your information and try again."
)
UNEXPECTED_ERROR_MESSAGE = "An unexpected error occurred. Please try again."
NETWORK_ERROR_MESSAGE = "Network error. Please check your connection and try again."
INVALID_RESPONSE_MESSAGE = "We couldn't read the response to your submission. Please try again."

SUBMIT_PATH = "/api/create-offer"


# ============================================================================
# Payload
# ============================================================================

def build_submission_payload(
    draft: OfferDraft,
    include_financing: bool,
    include_inspection: bool,
    request_agent_help: bool = False,
    agent_help_notes: Optional[str] = None,
) -> Dict[str, Any]:
    """
    Assemble the offer to submit.

    An addendum is only sent when its toggle is on; the draft itself keeps
    the addendum either way.
    """
    payload: Dict[str, Any] = {
        key: copy.deepcopy(value)
        for key, value in draft.items()
        if key not in ("Form22A", "Form35", "requestAgentHelp", "agentHelpNotes")
    }

    if include_financing and draft.get("Form22A") is not None:
        payload["Form22A"] = copy.deepcopy(draft["Form22A"])
    if include_inspection and draft.get("Form35") is not None:
        payload["Form35"] = copy.deepcopy(draft["Form35"])

    payload["requestAgentHelp"] = bool(request_agent_help)
    if request_agent_help and agent_help_notes:
        payload["agentHelpNotes"] = agent_help_notes
    return payload


# ============================================================================
# Outcome Classification
# ============================================================================

def success_result(body: Dict[str, Any]) -> SubmissionResult:
    api_response = body.get("apiResponse") or {}
    document_url = body.get("documentUrl")
    if not document_url and isinstance(api_response, dict):
        document_url = api_response.get("pdf_url")
    listing_agent = body.get("listingAgentInfo")
    if listing_agent is None and isinstance(api_response, dict):
        listing_agent = api_response.get("listingAgentInfo")
    return {
        "ok": True,
        "category": "success",
        "message": body.get("message") or "Offer submitted successfully",
        "documentUrl": document_url,
        "listingAgentInfo": listing_agent,
        "response": body,
    }


def failure_result(category: str, message: str) -> SubmissionResult:
    return {
        "ok": False,
        "category": category,
        "message": message,
        "documentUrl": None,
        "listingAgentInfo": None,
        "response": None,
    }


def classify_response(status_code: int, read_json: Callable[[], Any]) -> SubmissionResult:
    """
    Map a submission response to a result.

    Args:
        status_code: HTTP status
        read_json: Parses the body; only called when the body is needed
    """
    if 200 <= status_code < 300:
        try:
            body = read_json()
        except ValueError as e:
            logger.error(f"Submission succeeded but the response was unreadable: {e}")
            return failure_result("server", INVALID_RESPONSE_MESSAGE)
        return success_result(body if isinstance(body, dict) else {})

    if status_code >= 500:
        return failure_result("server", SERVER_ERROR_MESSAGE)

    if status_code >= 400:
        try:
            body = read_json()
        except ValueError:
            return failure_result("validation", CLIENT_ERROR_MESSAGE)
        message = None
        if isinstance(body, dict):
            message = body.get("message") or body.get("error")
        return failure_result("validation", str(message) if message else CLIENT_ERROR_MESSAGE)

    return failure_result("server", UNEXPECTED_ERROR_MESSAGE)


# ============================================================================
# Submitter
# ============================================================================

class Submitter(Protocol):
    def __call__(self, payload: Dict[str, Any]) -> Awaitable[SubmissionResult]: ...


class HttpOfferSubmitter:
    """
    Posts offers to the submission endpoint.

    Args:
        base_url: Where the submission endpoint lives (OFFER_PROXY_URL)
        transport: Optional httpx transport, e.g. httpx.ASGITransport to
            submit to an in-process application
        timeout: Request timeout in seconds
    """

    def __init__(
        self,
        base_url: Optional[str] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        timeout: float = 90.0,
    ):
        self.base_url = base_url or os.getenv("OFFER_PROXY_URL", "http://localhost:8000")
        self.transport = transport
        self.timeout = timeout

    async def __call__(self, payload: Dict[str, Any]) -> SubmissionResult:
        try:
            async with httpx.AsyncClient(
                base_url=self.base_url,
                transport=self.transport,
                timeout=self.timeout,
            ) as client:
                resp = await client.post(SUBMIT_PATH, json=payload)
        except httpx.TransportError as e:
            logger.error(f"Submission error: {e}")
            return failure_result("network", NETWORK_ERROR_MESSAGE)

        if resp.status_code >= 400:
            logger.warning(f"Submission rejected with status {resp.status_code}")
        return classify_response(resp.status_code, resp.json)
