"""
Offer-generation service client.
Submits assembled offers and triggers the listing scraper.
"""
import asyncio
import logging
import os
from typing import Any, Dict, Optional, Set

import httpx

logger = logging.getLogger(__name__)

DEFAULT_OFFERBOT_BASE_URL = "https://offerbot.ngrok.app/"
OFFER_PATH = "offer/"
LISTING_SCRAPER_PATH = "offer/listingHouseScrap"


class OfferServiceError(Exception):
    """Offer-generation service failure (status_code 0 = no response)."""
    def __init__(self, status_code: int, message: str, response: Optional[Dict] = None):
        self.status_code = status_code
        self.message = message
        self.response = response
        super().__init__(f"Offer service error {status_code}: {message}")


class OfferServiceConfig:
    """Offer service configuration from environment variables."""

    def __init__(self):
        base_url = os.getenv("OFFERBOT_BASE_URL", DEFAULT_OFFERBOT_BASE_URL)
        self.base_url = base_url if base_url.endswith("/") else f"{base_url}/"
        self.timeout = float(os.getenv("OFFER_SERVICE_TIMEOUT", "60"))
        self.scraper_timeout = float(os.getenv("LISTING_SCRAPER_TIMEOUT", "15"))


class OfferServiceClient:
    """
    Async client for the external offer-generation service.

    Usage:
        async with OfferServiceClient() as client:
            result = await client.create_offer(payload)
    """

    def __init__(
        self,
        config: Optional[OfferServiceConfig] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.config = config or OfferServiceConfig()
        self._client = httpx.AsyncClient(
            base_url=self.config.base_url,
            headers={
                "Accept": "application/json",
                "Content-Type": "application/json",
            },
            timeout=self.config.timeout,
            transport=transport,
        )

    @property
    def base_url(self) -> str:
        return self.config.base_url

    async def aclose(self) -> None:
        await self._client.aclose()

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc, tb):
        await self.aclose()

    async def create_offer(self, payload: Dict[str, Any]) -> Dict[str, Any]:
        """
        Send an assembled offer to the generation service.

        Raises:
            OfferServiceError: on a non-2xx status, an unreadable body or a
                transport failure (status_code 0)
        """
        logger.info(f"Sending offer for MLS {payload.get('MLS_ID')} to offer service")
        logger.debug(f"Offer request body: {payload}")

        try:
            resp = await self._client.post(OFFER_PATH, json=payload)
        except httpx.TransportError as e:
            logger.error(f"Offer service network error: {e}")
            raise OfferServiceError(0, str(e)) from e

        if resp.is_error:
            logger.error(f"Offer service returned {resp.status_code}: {resp.text[:500]}")
            raise OfferServiceError(resp.status_code, resp.reason_phrase or "error", {"detail": resp.text})

        try:
            data = resp.json()
        except ValueError as e:
            raise OfferServiceError(resp.status_code, "Invalid JSON from offer service") from e

        if not isinstance(data, dict):
            raise OfferServiceError(resp.status_code, "Unexpected response shape from offer service")

        logger.info("Offer service accepted the offer")
        return data

    async def trigger_listing_scraper(self, mls_id: str) -> None:
        """
        Ask the service to scrape the listing for an MLS id.
        Never raises: failures are logged and otherwise ignored.
        """
        try:
            resp = await self._client.post(
                LISTING_SCRAPER_PATH,
                json={"MLS_ID": mls_id},
                timeout=self.config.scraper_timeout,
            )
            if resp.is_error:
                logger.warning(f"Listing scraper returned status {resp.status_code}: {resp.text[:200]}")
        except Exception as e:
            logger.warning(f"Listing scraper request failed: {e}")


# ============================================================================
# Fire-and-forget listing scraper
# ============================================================================

# Strong references so pending notifications aren't garbage collected
_background_tasks: Set[asyncio.Task] = set()


async def _scrape_listing(mls_id: str, config: Optional[OfferServiceConfig]) -> None:
    async with OfferServiceClient(config) as client:
        await client.trigger_listing_scraper(mls_id)


def notify_listing_scraper(mls_id: str, config: Optional[OfferServiceConfig] = None) -> Optional[asyncio.Task]:
    """
    Start the listing scraper notification in the background.

    Returns the task, or None when there is no running event loop (the
    notification is skipped and logged).
    """
    try:
        loop = asyncio.get_running_loop()
    except RuntimeError:
        logger.warning(f"No event loop running; skipping listing scraper for {mls_id}")
        return None

    task = loop.create_task(_scrape_listing(mls_id, config))
    _background_tasks.add(task)
    task.add_done_callback(_background_tasks.discard)
    return task
