"""Advisory ("AI") suggestion generators.

A generator proposes ordered text/rationale drafts for a project from its
latest and historical metrics. Generators are asked to avoid
``exclude_texts`` but the suggestion engine re-checks every draft.
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from typing import AbstractSet, Any, Dict, List, Optional, Sequence

from .config import Config
from .errors import ApiError
from .http_client import JsonApiClient
from .models import Project, ProjectMetrics, SuggestionDraft
from .scoring import cwv_score, health_score
from .serialization import to_jsonable

logger = logging.getLogger(__name__)


class AdvisoryGenerator(ABC):
    """Interface for advisory suggestion generators."""

    @abstractmethod
    def generate(
        self,
        project: Optional[Project],
        latest_metrics: ProjectMetrics,
        historical_metrics: Sequence[ProjectMetrics],
        exclude_texts: AbstractSet[str],
        completed_suggestion_text: Optional[str] = None,
    ) -> List[SuggestionDraft]:
        """Return ordered drafts for ``project``, avoiding ``exclude_texts``."""


class NullAdvisoryGenerator(AdvisoryGenerator):
    """Generator used when no advisory service is configured."""

    def generate(
        self,
        project: Optional[Project],
        latest_metrics: ProjectMetrics,
        historical_metrics: Sequence[ProjectMetrics],
        exclude_texts: AbstractSet[str],
        completed_suggestion_text: Optional[str] = None,
    ) -> List[SuggestionDraft]:
        return []


class HttpAdvisoryGenerator(JsonApiClient, AdvisoryGenerator):
    """Request suggestions from an HTTP advisory service.

    The service receives the project context as JSON and answers with
    ``{"suggestions": [{"text": ..., "rationale": ...}, ...]}``. Any failure
    yields an empty list.
    """

    def __init__(self, url: str, api_key: str = "", timeout_seconds: int = 15) -> None:
        super().__init__(url, timeout_seconds=timeout_seconds)
        if api_key:
            self._session.headers.update({"Authorization": f"Bearer {api_key}"})

    def _build_request(
        self,
        project: Optional[Project],
        latest_metrics: ProjectMetrics,
        historical_metrics: Sequence[ProjectMetrics],
        exclude_texts: AbstractSet[str],
        completed_suggestion_text: Optional[str],
    ) -> Dict[str, Any]:
        body: Dict[str, Any] = {
            "project": to_jsonable(project) if project is not None else None,
            "latestMetrics": to_jsonable(latest_metrics),
            "historicalMetrics": to_jsonable(list(historical_metrics)),
            "scores": {
                "coreWebVitals": cwv_score(latest_metrics.perf.core_web_vitals),
                "health": health_score(latest_metrics),
            },
            "excludeTexts": sorted(exclude_texts),
        }
        if completed_suggestion_text:
            body["completedSuggestionText"] = completed_suggestion_text
        return body

    def generate(
        self,
        project: Optional[Project],
        latest_metrics: ProjectMetrics,
        historical_metrics: Sequence[ProjectMetrics],
        exclude_texts: AbstractSet[str],
        completed_suggestion_text: Optional[str] = None,
    ) -> List[SuggestionDraft]:
        body = self._build_request(
            project, latest_metrics, historical_metrics, exclude_texts, completed_suggestion_text
        )

        try:
            payload = self._post_json("", body)
        except ApiError as exc:
            logger.warning(
                "Advisory service unavailable; continuing without AI suggestions",
                extra={"project_id": latest_metrics.project_id, "error": str(exc)},
            )
            return []

        items = payload.get("suggestions") if isinstance(payload, dict) else None
        if not isinstance(items, list):
            logger.warning(
                "Advisory service returned unexpected payload shape",
                extra={"project_id": latest_metrics.project_id},
            )
            return []

        drafts: List[SuggestionDraft] = []
        for item in items:
            if not isinstance(item, dict):
                continue
            text = str(item.get("text") or "").strip()
            rationale = str(item.get("rationale") or "").strip()
            if not text or text in exclude_texts:
                continue
            drafts.append(SuggestionDraft(text=text, rationale=rationale))

        logger.info(
            "Received advisory suggestions",
            extra={"project_id": latest_metrics.project_id, "drafts": len(drafts)},
        )
        return drafts


def build_advisory_generator(config: Config) -> AdvisoryGenerator:
    """Return the HTTP generator when configured, otherwise the null generator."""
    if not config.advisory_api_url:
        return NullAdvisoryGenerator()
    return HttpAdvisoryGenerator(
        config.advisory_api_url,
        api_key=config.advisory_api_key,
        timeout_seconds=config.timeout_seconds,
    )
