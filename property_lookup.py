"""
Property Lookup - Address to MLS ID / Property Details

Proxies an address search to the third-party real-estate data API and
reshapes its response into a PropertyRecord with only the fields the
wizard needs.

Failures are raised as PropertyLookupError carrying the HTTP status the
API should answer with:
- 400: missing address and zipcode
- 404: upstream reported an error, or no property came back
- 502: upstream unreachable or returned something that isn't JSON
- 504: upstream timed out
- upstream status passed through for other non-2xx answers
"""

import logging
import os
import re
from typing import Any, Dict, List, Optional

import httpx

from state import PropertyRecord

logger = logging.getLogger(__name__)

DEFAULT_PROPERTY_LOOKUP_URL = "https://www.drillbreaker29.com/api/zillow/search_by_address"
MAX_PHOTOS = 20

HOA_FEE_PATTERN = re.compile(r"\$([0-9,]+)")


class PropertyLookupError(Exception):
    """Property lookup failure, mapped to an API status."""
    def __init__(
        self,
        status_code: int,
        error: str,
        details: Optional[str] = None,
        upstream_status: Optional[int] = None,
    ):
        self.status_code = status_code
        self.error = error
        self.details = details
        self.upstream_status = upstream_status
        super().__init__(f"{error}: {details}" if details else error)

    def to_dict(self) -> Dict[str, Any]:
        body: Dict[str, Any] = {"error": self.error}
        if self.details is not None:
            body["details"] = self.details
        if self.upstream_status is not None:
            body["status"] = self.upstream_status
        return body


class PropertyLookupConfig:
    """Property lookup configuration from environment variables."""

    def __init__(self):
        self.url = os.getenv("PROPERTY_LOOKUP_URL", DEFAULT_PROPERTY_LOOKUP_URL)
        self.timeout = float(os.getenv("PROPERTY_LOOKUP_TIMEOUT", "10"))


# ============================================================================
# Response Reshaping
# ============================================================================

def extract_hoa_fee(fee: Optional[str]) -> Optional[int]:
    """
    Pull the dollar amount out of an HOA fee string.

    Examples:
        "$480 monthly" -> 480
        "$1,200/mo" -> 1200
    """
    if not fee:
        return None
    match = HOA_FEE_PATTERN.search(fee)
    return int(match.group(1).replace(",", "")) if match else None


def extract_photos(original_photos: Any) -> List[str]:
    """
    One URL per photo, first 20 photos only.

    Newer responses carry `mixedSources` with webp/jpeg renditions (largest
    last); older ones have a plain `url`.
    """
    if not isinstance(original_photos, list):
        return []

    urls: List[str] = []
    for photo in original_photos[:MAX_PHOTOS]:
        if not isinstance(photo, dict):
            continue
        url = None
        mixed = photo.get("mixedSources")
        if mixed:
            sources = mixed.get("webp") or mixed.get("jpeg")
            if sources:
                url = (sources[-1] or {}).get("url")
        else:
            url = photo.get("url")
        if url:
            urls.append(url)
    return urls


def _to_int(value: Any) -> Optional[int]:
    if not value:
        return None
    try:
        return int(float(str(value).replace(",", "")))
    except ValueError:
        return None


def transform_property_data(raw: Dict[str, Any]) -> PropertyRecord:
    """Reshape a raw upstream property into a PropertyRecord."""
    attribution = raw.get("attributionInfo") or {}
    reso_facts = raw.get("resoFacts") or {}

    return {
        "zpid": raw.get("zpid") or 0,
        "mlsId": attribution.get("mlsId") or None,
        "address": {
            "street": raw.get("streetAddress") or "",
            "city": raw.get("city") or "",
            "state": raw.get("state") or "",
            "zipcode": raw.get("zipcode") or "",
            "full": raw.get("abbreviatedAddress") or "",
        },
        "price": raw.get("price") or None,
        "bedrooms": raw.get("bedrooms") or None,
        "bathrooms": raw.get("bathrooms") or None,
        "squareFeet": _to_int(raw.get("livingArea")),
        "lotSize": reso_facts.get("lotSize") or None,
        "yearBuilt": raw.get("yearBuilt") or None,
        "homeType": raw.get("homeType") or "Unknown",
        "homeStatus": raw.get("homeStatus") or "UNKNOWN",
        "daysOnZillow": raw.get("daysOnZillow") or None,
        "timeOnZillow": raw.get("timeOnZillow") or None,
        "zestimate": raw.get("zestimate") or None,
        "priceHistory": [
            {
                "date": item.get("date"),
                "event": item.get("event"),
                "price": item.get("price"),
                "priceChangeRate": item.get("priceChangeRate"),
            }
            for item in raw.get("priceHistory") or []
        ],
        "taxHistory": [
            {"year": item.get("year") or 0, "value": item.get("value") or 0}
            for item in raw.get("taxHistory") or []
        ],
        "monthlyHoaFee": extract_hoa_fee(reso_facts.get("hoaFee")),
        "propertyTaxRate": raw.get("propertyTaxRate") or None,
        "originalPhotos": extract_photos(raw.get("originalPhotos")),
        "virtualTourUrl": reso_facts.get("virtualTour") or None,
        "description": raw.get("description") or None,
        "latitude": raw.get("latitude") or None,
        "longitude": raw.get("longitude") or None,
        "attribution": {
            "agentName": attribution.get("agentName") or None,
            "brokerName": attribution.get("brokerName") or None,
            "mlsName": attribution.get("mlsName") or None,
            "lastUpdated": attribution.get("lastUpdated") or None,
        },
        "schools": [
            {
                "name": school.get("name") or "",
                "grades": school.get("grades") or "",
                "distance": school.get("distance") or 0,
                "rating": school.get("rating") or None,
            }
            for school in raw.get("schools") or []
        ],
    }


# ============================================================================
# Client
# ============================================================================

def build_search_payload(request: Dict[str, Any]) -> Dict[str, str]:
    """
    Keep only the address fields the upstream understands.

    Raises:
        PropertyLookupError: 400 when neither address nor zipcode is given
    """
    payload = {
        field: str(request[field]).strip()
        for field in ("address", "city", "state", "zipcode")
        if request.get(field) and str(request[field]).strip()
    }
    if not payload.get("address") and not payload.get("zipcode"):
        raise PropertyLookupError(
            400,
            "Missing required fields",
            "Must provide at least an address or zipcode",
        )
    return payload


class PropertyLookupClient:
    """
    Async client for the upstream property search.

    Usage:
        async with PropertyLookupClient() as client:
            record = await client.search({"address": "123 Main St", "zipcode": "98101"})
    """

    def __init__(
        self,
        config: Optional[PropertyLookupConfig] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.config = config or PropertyLookupConfig()
        self._client = httpx.AsyncClient(
            headers={"Content-Type": "application/json"},
            timeout=self.config.timeout,
            transport=transport,
        )

    async def aclose(self) -> None:
        await self._client.aclose()

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc, tb):
        await self.aclose()

    async def search(self, request: Dict[str, Any]) -> PropertyRecord:
        """
        Search for a property by address.

        Raises:
            PropertyLookupError: with the status to report to the caller
        """
        payload = build_search_payload(request)

        try:
            resp = await self._client.post(self.config.url, json=payload)
        except httpx.TimeoutException as e:
            logger.warning(f"Property lookup timed out after {self.config.timeout}s")
            raise PropertyLookupError(
                504, "Request timeout", "The property data API took too long to respond"
            ) from e
        except httpx.TransportError as e:
            logger.error(f"Property lookup connection failed: {e}")
            raise PropertyLookupError(
                502, "External API error", f"Failed to connect to property data API: {e}"
            ) from e

        if resp.is_error:
            raise PropertyLookupError(
                resp.status_code,
                "Property data API error",
                _error_details(resp),
                upstream_status=resp.status_code,
            )

        content_type = resp.headers.get("content-type", "")
        if "application/json" not in content_type:
            raise PropertyLookupError(
                502, "Unexpected response format", f"Expected JSON but received {content_type}"
            )

        try:
            raw = resp.json()
        except ValueError as e:
            raise PropertyLookupError(
                502, "Invalid response from property data API", "Could not parse response as JSON"
            ) from e

        if not isinstance(raw, dict):
            raise PropertyLookupError(
                502, "Invalid response from property data API", "Expected a JSON object"
            )

        if raw.get("error"):
            raise PropertyLookupError(404, "Property search failed", str(raw["error"]))

        if not raw.get("zpid"):
            raise PropertyLookupError(
                404, "Property not found", "No property data returned for the given address"
            )

        record = transform_property_data(raw)
        logger.info(f"Found property zpid={record['zpid']} mlsId={record['mlsId']}")
        return record


def _error_details(resp: httpx.Response) -> str:
    text = resp.text
    try:
        data = resp.json()
    except ValueError:
        return text[:200]
    if isinstance(data, dict):
        return str(data.get("message") or data.get("error") or text)
    return text[:200]
