from __future__ import annotations

from typing import Any, Dict, Optional

import httpx

from management.errors import UpstreamError
from telemetry.logging_utils import get_logger, timed_operation
from telemetry.retry import retry_with_backoff

logger = get_logger(__name__)

DEFAULT_GEOCODER_URL = "https://nominatim.openstreetmap.org/search"
DEFAULT_COUNTRY = "Philippines"
USER_AGENT = "iReside/0.1 (listing geocoder)"


def address_query(listing: Dict[str, Any], country: str = DEFAULT_COUNTRY) -> str:
    parts = [listing.get("display_address"), listing.get("barangay"), listing.get("city"), country]
    return ", ".join(str(p).strip() for p in parts if p and str(p).strip())


class NominatimGeocoder:
    """Forward geocoding through an OpenStreetMap Nominatim search endpoint."""

    def __init__(self, base_url: str = DEFAULT_GEOCODER_URL, timeout: float = 10.0) -> None:
        self.base_url = base_url
        self.timeout = timeout

    def lookup(self, query: str) -> Optional[Dict[str, Any]]:
        params = {"format": "json", "q": query, "limit": 1}
        headers = {"Accept-Language": "en", "User-Agent": USER_AGENT}

        def _call() -> httpx.Response:
            resp = httpx.get(self.base_url, params=params, headers=headers, timeout=self.timeout)
            resp.raise_for_status()
            return resp

        with timed_operation(logger, "geocode_lookup", provider="nominatim"):
            try:
                resp = retry_with_backoff(
                    _call, retries=2, retry_exceptions=(httpx.TransportError,), operation="geocode"
                )
                results = resp.json()
            except (httpx.HTTPError, ValueError) as exc:
                logger.warning("geocode_failed", extra={"error": str(exc)})
                raise UpstreamError("Address lookup service is unavailable. Please try again later.") from exc
        if not results:
            logger.info("geocode_no_match", extra={"query": query})
            return None
        top = results[0]
        return {
            "lat": float(top["lat"]),
            "lng": float(top["lon"]),
            "display_name": top.get("display_name"),
        }
