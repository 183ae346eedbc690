"""Performance webhook client returning CrUX Core Web Vitals per device.

The webhook returns CrUX records for every project in one response. The raw
response is cached for ten minutes and the network is hit at most once per
thirty seconds; inside that interval the last cached response (or nothing)
is used.
"""

from __future__ import annotations

import json
import logging
import threading
import time
from typing import Any, Callable, Dict, List, Optional

from .errors import ApiError
from .http_client import JsonApiClient
from .models import CoreWebVitals, DeviceVitals
from .rounding import round_half_up

logger = logging.getLogger(__name__)

CACHE_TTL_SECONDS = 10 * 60
MIN_REQUEST_INTERVAL_SECONDS = 30

DEFAULT_DESKTOP_VITALS = CoreWebVitals(lcp=2.2, cls=0.08, inp=180)
DEFAULT_MOBILE_VITALS = CoreWebVitals(lcp=2.8, cls=0.12, inp=220)
UNPARSABLE_RECORD_VITALS = CoreWebVitals(lcp=2.5, cls=0.1, inp=200)

WEBHOOK_KEY_MAPPING: Dict[str, str] = {
    "diptyque": "diptyque",
    "byredo": "byredo",
    "swissense": "swisssense",
    "elon": "elon",
}

FORM_FACTOR_DESKTOP = "DESKTOP"
FORM_FACTOR_PHONE = "PHONE"


def webhook_key(project_id: str) -> str:
    """Map an internal project id to the key used by the webhook."""
    return WEBHOOK_KEY_MAPPING.get(project_id, project_id)


def _p75(metrics: Dict[str, Any], name: str, default: str) -> float:
    value = ((metrics.get(name) or {}).get("percentiles") or {}).get("p75")
    return float(value if value not in (None, "") else default)


def extract_vitals(crux_data: Any) -> CoreWebVitals:
    """Extract p75 vitals from a CrUX record.

    LCP arrives in milliseconds and is converted to seconds. A record that
    cannot be parsed yields the "good" boundary vitals.
    """
    try:
        record = json.loads(crux_data) if isinstance(crux_data, str) else crux_data
        metrics = (record.get("record") or {}).get("metrics")
        if not metrics:
            raise ValueError("No metrics found in CrUX data")

        lcp = _p75(metrics, "largest_contentful_paint", "2500") / 1000
        cls = _p75(metrics, "cumulative_layout_shift", "0.1")
        inp = _p75(metrics, "interaction_to_next_paint", "200")
    except (ValueError, TypeError, AttributeError) as exc:
        logger.warning("Failed to parse CrUX data", extra={"error": str(exc)})
        return UNPARSABLE_RECORD_VITALS

    return CoreWebVitals(lcp=round_half_up(lcp, 2), cls=round_half_up(cls, 3), inp=round_half_up(inp))


class PerformanceWebhookClient(JsonApiClient):
    """Fetch per-device Core Web Vitals from the performance webhook."""

    def __init__(
        self,
        url: str,
        timeout_seconds: int = 15,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        super().__init__(url, timeout_seconds=timeout_seconds)
        self._configured = bool(url)
        self._clock = clock
        self._lock = threading.Lock()
        self._cached_items: Optional[List[Dict[str, Any]]] = None
        self._cached_at: Optional[float] = None
        self._last_request_at: Optional[float] = None

    def _fetch_all(self) -> Optional[List[Dict[str, Any]]]:
        """Return all CrUX items, from cache when fresh."""
        with self._lock:
            now = self._clock()

            if self._cached_items is not None and self._cached_at is not None:
                if now - self._cached_at < CACHE_TTL_SECONDS:
                    logger.debug("Using cached webhook data")
                    return self._cached_items

            if self._last_request_at is not None and now - self._last_request_at < MIN_REQUEST_INTERVAL_SECONDS:
                logger.debug("Webhook request rate limited; using cached data")
                return self._cached_items

            if not self._configured:
                return None

            self._last_request_at = now
            try:
                payload = self._get_json()
            except ApiError as exc:
                logger.warning("Performance webhook unavailable", extra={"error": str(exc)})
                return None

            if not isinstance(payload, list):
                logger.warning("Performance webhook returned unexpected payload shape")
                return None

            self._cached_items = [item for item in payload if isinstance(item, dict)]
            self._cached_at = now
            logger.info("Fetched CrUX data from webhook", extra={"items": len(self._cached_items)})
            return self._cached_items

    def fetch(self, project_key: str) -> Optional[DeviceVitals]:
        """Return desktop and mobile vitals for ``project_key``.

        Returns ``None`` when the webhook is unavailable or has no records
        for the project; callers keep last-known data in that case. A missing
        form factor is filled with that device's documented default.
        """
        items = self._fetch_all()
        if items is None:
            return None

        project_items = [item for item in items if item.get("key") == project_key]
        if not project_items:
            logger.warning("No webhook data found for project", extra={"project_key": project_key})
            return None

        desktop = next((item for item in project_items if item.get("formFactor") == FORM_FACTOR_DESKTOP), None)
        mobile = next((item for item in project_items if item.get("formFactor") == FORM_FACTOR_PHONE), None)

        return DeviceVitals(
            desktop=extract_vitals(desktop.get("cruxData")) if desktop else DEFAULT_DESKTOP_VITALS,
            mobile=extract_vitals(mobile.get("cruxData")) if mobile else DEFAULT_MOBILE_VITALS,
        )

    def fetch_all_projects(self) -> Dict[str, DeviceVitals]:
        """Return vitals for every project key present in the webhook response."""
        items = self._fetch_all()
        if not items:
            return {}

        results: Dict[str, DeviceVitals] = {}
        for key in sorted({str(item["key"]) for item in items if item.get("key")}):
            vitals = self.fetch(key)
            if vitals is not None:
                results[key] = vitals

        return results
