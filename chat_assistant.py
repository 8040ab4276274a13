"""
Offer Assistant - Contextual AI Help for the Offer Wizard

Answers buyer questions about the step they're on. The system prompt is
built from the property being offered on, a little of the draft (buyer
name, offer price) and the current step; the last CHAT_CONTEXT_WINDOW
messages of the conversation are replayed so follow-ups make sense.

Uses LangChain chat models (OpenAI by default, Anthropic optional).
A missing provider credential is a configuration error, not a provider
failure: the API reports it as a 500.
"""

import logging
import os
from typing import Any, Callable, Dict, List, Optional, Sequence

from langchain_anthropic import ChatAnthropic
from langchain_core.messages import AIMessage, BaseMessage, HumanMessage, SystemMessage
from langchain_openai import ChatOpenAI

from wizard.sequencer import step_title

logger = logging.getLogger(__name__)

# Conversation messages replayed to the model, most recent last
CHAT_CONTEXT_WINDOW = 10

FALLBACK_REPLY = (
    "I'm sorry, I couldn't generate a response. "
    "Can you try asking in a different way?"
)

PROVIDER_API_KEYS = {
    "openai": "OPENAI_API_KEY",
    "anthropic": "ANTHROPIC_API_KEY",
}

DEFAULT_MODELS = {
    "openai": "gpt-4o-mini",
    "anthropic": "claude-3-5-haiku-latest",
}


class ChatConfigurationError(Exception):
    """The assistant can't run: provider unknown or credential missing."""


class ChatProviderError(Exception):
    """The language model call failed."""


class ChatConfig:
    """Assistant configuration from environment variables."""

    def __init__(self):
        self.llm_provider = os.getenv("CHAT_LLM_PROVIDER", "openai").lower()
        self.llm_model = os.getenv("CHAT_LLM_MODEL") or DEFAULT_MODELS.get(self.llm_provider, "")
        self.llm_temperature = float(os.getenv("CHAT_LLM_TEMPERATURE", "0.7"))
        self.llm_max_tokens = int(os.getenv("CHAT_LLM_MAX_TOKENS", "300"))
        self.context_window = int(os.getenv("CHAT_CONTEXT_WINDOW", str(CHAT_CONTEXT_WINDOW)))

    @property
    def api_key_env(self) -> Optional[str]:
        return PROVIDER_API_KEYS.get(self.llm_provider)

    def validate(self) -> None:
        """
        Raises:
            ChatConfigurationError: unknown provider or missing API key
        """
        if self.api_key_env is None:
            raise ChatConfigurationError(f"Unknown LLM provider: {self.llm_provider}")
        if not os.getenv(self.api_key_env):
            raise ChatConfigurationError(f"{self.api_key_env} not configured")


def create_chat_model(config: ChatConfig) -> Any:
    """Build the LangChain chat model for the configured provider."""
    if config.llm_provider == "anthropic":
        return ChatAnthropic(  # type: ignore[call-arg]
            model_name=config.llm_model,
            temperature=config.llm_temperature,
            max_tokens=config.llm_max_tokens,
        )
    return ChatOpenAI(
        model=config.llm_model,
        temperature=config.llm_temperature,
        max_completion_tokens=config.llm_max_tokens,
    )


# ============================================================================
# Prompt Building
# ============================================================================

def _money(value: Any) -> str:
    try:
        return f"${float(value):,.0f}"
    except (TypeError, ValueError):
        return f"${value}"


def build_context_prompt(
    current_step: Optional[int],
    property_context: Optional[Dict[str, Any]] = None,
    form_context: Optional[Dict[str, Any]] = None,
) -> str:
    """
    Build the system prompt describing where the buyer is in the wizard.
    """
    lines = [
        "You are a helpful real estate assistant helping someone fill out a home "
        "purchase offer form. You should be friendly, conversational, and provide "
        "clear guidance.",
        "",
    ]
    if current_step:
        lines.append(f"Current Step: {current_step} ({step_title(current_step)})")
    else:
        lines.append("Current Step: unknown")

    prop = property_context or {}
    address = prop.get("address") or {}
    if isinstance(address, dict) and address.get("full"):
        lines.append(f"Property: {address['full']}")
        if prop.get("price"):
            lines.append(f"Listing Price: {_money(prop['price'])}")
        if prop.get("bedrooms") and prop.get("bathrooms"):
            lines.append(f"Beds/Baths: {prop['bedrooms']}/{prop['bathrooms']}")
        if prop.get("squareFeet"):
            lines.append(f"Square Feet: {int(prop['squareFeet']):,}")

    buyer = (form_context or {}).get("buyerdata") or {}
    if buyer.get("Buyer1Name"):
        lines.append(f"Buyer Name: {buyer['Buyer1Name']}")
    if buyer.get("offer_price_num"):
        lines.append(f"Offer Price: {_money(buyer['offer_price_num'])}")

    lines.append("")
    lines.append(
        "Provide helpful, friendly answers. Keep responses concise (2-4 sentences). "
        "Use natural, conversational language. Don't use technical jargon unless "
        "necessary, and if you do, explain it simply."
    )
    return "\n".join(lines)


def build_messages(
    message: str,
    system_prompt: str,
    history: Optional[Sequence[Dict[str, Any]]] = None,
    context_window: int = CHAT_CONTEXT_WINDOW,
) -> List[BaseMessage]:
    """
    System prompt, the last `context_window` history messages, then the new message.
    """
    messages: List[BaseMessage] = [SystemMessage(content=system_prompt)]

    recent = list(history or [])[-context_window:] if context_window > 0 else []
    for item in recent:
        text = item.get("text")
        if not text:
            continue
        if item.get("isBot"):
            messages.append(AIMessage(content=text))
        else:
            messages.append(HumanMessage(content=text))

    messages.append(HumanMessage(content=message))
    return messages


# ============================================================================
# Assistant
# ============================================================================

class OfferAssistant:
    """
    Answers one chat turn at a time; holds no conversation state itself.

    Args:
        config: Assistant configuration
        model_factory: Builds the chat model (injectable for testing)
    """

    def __init__(
        self,
        config: Optional[ChatConfig] = None,
        model_factory: Callable[[ChatConfig], Any] = create_chat_model,
    ):
        self.config = config or ChatConfig()
        self._model_factory = model_factory

    async def reply(
        self,
        message: str,
        current_step: Optional[int] = None,
        property_context: Optional[Dict[str, Any]] = None,
        form_context: Optional[Dict[str, Any]] = None,
        history: Optional[Sequence[Dict[str, Any]]] = None,
    ) -> str:
        """
        Get the assistant's answer.

        Raises:
            ChatConfigurationError: provider not usable
            ChatProviderError: the model call failed
        """
        self.config.validate()

        system_prompt = build_context_prompt(current_step, property_context, form_context)
        messages = build_messages(message, system_prompt, history, self.config.context_window)

        try:
            llm = self._model_factory(self.config)
            response = await llm.ainvoke(messages)
        except Exception as e:
            logger.error(f"Chat model call failed: {e}")
            raise ChatProviderError(str(e)) from e

        text = str(getattr(response, "content", "") or "").strip()
        return text or FALLBACK_REPLY
