"""
Chat session for one wizard.

Keeps the visible conversation and sends each question, together with the
wizard context and the most recent messages, to the assistant. Replies that
arrive after the session was closed are dropped.
"""

import logging
import os
from typing import Any, Awaitable, Callable, Dict, List, Optional

import httpx

from chat_assistant import CHAT_CONTEXT_WINDOW
from state import ChatMessage

logger = logging.getLogger(__name__)

FALLBACK_REPLY = "Oops, something went wrong on my end. Mind trying that again?"
CHAT_PATH = "/api/offer-bot-chat"

ChatSender = Callable[[Dict[str, Any]], Awaitable[str]]


class HttpChatSender:
    """Posts chat turns to the assistant endpoint and returns the reply text."""

    def __init__(
        self,
        base_url: Optional[str] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        timeout: float = 30.0,
    ):
        self.base_url = base_url or os.getenv("OFFER_PROXY_URL", "http://localhost:8000")
        self.transport = transport
        self.timeout = timeout

    async def __call__(self, payload: Dict[str, Any]) -> str:
        async with httpx.AsyncClient(
            base_url=self.base_url,
            transport=self.transport,
            timeout=self.timeout,
        ) as client:
            resp = await client.post(CHAT_PATH, json=payload)
            resp.raise_for_status()
            data = resp.json()
        return str(data.get("response") or "") if isinstance(data, dict) else ""


class ChatSession:
    """
    Conversation state for one wizard.

    Args:
        sender: Async callable taking the chat payload, returning the reply
        context_window: How many previous messages go along with a question
    """

    def __init__(self, sender: ChatSender, context_window: int = CHAT_CONTEXT_WINDOW):
        self._sender = sender
        self.context_window = context_window
        self.messages: List[ChatMessage] = []
        self.closed = False

    def close(self) -> None:
        self.closed = True

    async def ask(
        self,
        text: str,
        current_step: Optional[int] = None,
        property_context: Optional[Dict[str, Any]] = None,
        form_context: Optional[Dict[str, Any]] = None,
    ) -> Optional[str]:
        """
        Ask a question and record the reply.

        Returns:
            The reply text (the fallback text if the assistant failed), or
            None if nothing was asked or the session closed before the reply.
        """
        text = (text or "").strip()
        if not text or self.closed:
            return None

        history = list(self.messages[-self.context_window:]) if self.context_window > 0 else []
        self.messages.append({"text": text, "isBot": False})

        payload = {
            "message": text,
            "propertyContext": property_context,
            "formContext": form_context,
            "currentStep": current_step,
            "conversationHistory": history,
        }

        try:
            reply = await self._sender(payload)
        except Exception as e:
            logger.warning(f"Chat request failed: {e}")
            reply = FALLBACK_REPLY

        if self.closed:
            logger.debug("Chat session closed before the reply arrived; dropping it")
            return None

        reply = reply or FALLBACK_REPLY
        self.messages.append({"text": reply, "isBot": True})
        return reply
