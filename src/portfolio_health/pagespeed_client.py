"""Google PageSpeed Insights client for live accessibility scores."""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Any

from .errors import ApiError, NotFoundError
from .http_client import JsonApiClient
from .models import AccessibilitySource, AccessibilityScore
from .repository import MemoryRepository

logger = logging.getLogger(__name__)

PAGESPEED_ENDPOINT = "https://www.googleapis.com/pagespeedonline/v5/runPagespeed"
DEFAULT_STRATEGY = "MOBILE"


class PageSpeedClient(JsonApiClient):
    """Fetch Lighthouse accessibility scores, falling back to stored values.

    ``fetch`` never raises: a missing API key, a failed request, or a
    response without a positive score all yield ``fallback_score`` with
    source ``stored``.
    """

    def __init__(self, api_key: str, timeout_seconds: int = 15, endpoint: str = PAGESPEED_ENDPOINT) -> None:
        super().__init__(endpoint, timeout_seconds=timeout_seconds)
        self._api_key = api_key

    def _fallback(self, fallback_score: float, strategy: str) -> AccessibilityScore:
        return AccessibilityScore(
            score=fallback_score,
            source=AccessibilitySource.STORED,
            fetched_at=datetime.now(timezone.utc),
            strategy=strategy,
        )

    def fetch(self, url: str, fallback_score: float, strategy: str = DEFAULT_STRATEGY) -> AccessibilityScore:
        if not self._api_key:
            logger.debug("PageSpeed API key not configured; using stored accessibility score")
            return self._fallback(fallback_score, strategy)

        params = {
            "url": url,
            "category": "ACCESSIBILITY",
            "strategy": strategy,
            "key": self._api_key,
        }

        try:
            payload = self._get_json(params=params)
        except ApiError as exc:
            logger.warning(
                "Accessibility score fallback in use",
                extra={"url": url, "error": str(exc)},
            )
            return self._fallback(fallback_score, strategy)

        raw_score = _nested(payload, "lighthouseResult", "categories", "accessibility", "score")
        if isinstance(raw_score, (int, float)) and not isinstance(raw_score, bool) and raw_score > 0:
            return AccessibilityScore(
                score=float(raw_score),
                source=AccessibilitySource.PAGESPEED,
                fetched_at=datetime.now(timezone.utc),
                strategy=strategy,
            )

        logger.warning(
            "Accessibility score fallback in use: invalid score in PageSpeed response",
            extra={"url": url},
        )
        return self._fallback(fallback_score, strategy)


def _nested(payload: Any, *keys: str) -> Any:
    """Walk ``keys`` through nested objects; any non-object level yields ``None``."""
    value = payload
    for key in keys:
        if not isinstance(value, dict):
            return None
        value = value.get(key)
    return value


def accessibility_for_project(
    repository: MemoryRepository,
    client: PageSpeedClient,
    project_id: str,
) -> AccessibilityScore:
    """Resolve the accessibility score shown for a project.

    The stored score of the latest metrics (``0`` when there are none) is the
    fallback. Projects without a URL report source ``unavailable``.

    Raises:
        NotFoundError: If the project does not exist.
    """
    project = repository.get_project(project_id)
    if project is None:
        raise NotFoundError(f"Project '{project_id}' was not found.")

    latest = repository.get_latest_metrics(project_id)
    fallback_score = latest.perf.accessibility if latest is not None else 0.0

    if not project.url:
        return AccessibilityScore(
            score=fallback_score,
            source=AccessibilitySource.UNAVAILABLE,
            fetched_at=datetime.now(timezone.utc),
        )

    return client.fetch(project.url, fallback_score)
