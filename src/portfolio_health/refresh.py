"""Explicit refresh operations that pull live data into the repository.

Stored reads never reach the network. These functions are the only place
where collaborator data is written back, and every one of them keeps the
last-known record when its collaborator returns nothing.
"""

from __future__ import annotations

import logging
from dataclasses import replace
from datetime import datetime, timezone
from typing import Dict, Optional

from .errors import NotFoundError
from .jira_client import DEFAULT_FLOW_METRICS, JiraFlowClient, jira_project_key
from .models import CoreWebVitals, PerfMetrics, ProjectMetrics
from .quality import parse_month
from .repository import MemoryRepository
from .webhook_client import PerformanceWebhookClient, webhook_key

logger = logging.getLogger(__name__)

DEFAULT_PERF_BY_PROJECT: Dict[str, PerfMetrics] = {
    "diptyque": PerfMetrics(
        core_web_vitals=CoreWebVitals(lcp=1.9, cls=0.06, inp=110),
        accessibility=0.91,
        best_practices=0.94,
        seo=0.93,
    ),
    "elon": PerfMetrics(
        core_web_vitals=CoreWebVitals(lcp=2.8, cls=0.15, inp=185),
        accessibility=0.76,
        best_practices=0.83,
        seo=0.81,
    ),
    "swissense": PerfMetrics(
        core_web_vitals=CoreWebVitals(lcp=3.2, cls=0.18, inp=220),
        accessibility=0.73,
        best_practices=0.81,
        seo=0.78,
    ),
    "byredo": PerfMetrics(
        core_web_vitals=CoreWebVitals(lcp=2.1, cls=0.08, inp=125),
        accessibility=0.88,
        best_practices=0.92,
        seo=0.90,
    ),
}

DEFAULT_PERF = PerfMetrics(
    core_web_vitals=CoreWebVitals(lcp=2.5, cls=0.1, inp=200),
    accessibility=0.80,
    best_practices=0.85,
    seo=0.80,
)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def current_month(now: Optional[datetime] = None) -> str:
    """Return ``YYYY-MM`` for the month containing ``now`` (UTC)."""
    now = now or _utcnow()
    return f"{now.year:04d}-{now.month:02d}"


def last_full_calendar_month(now: Optional[datetime] = None) -> str:
    """Return ``YYYY-MM`` of the month before the one containing ``now``."""
    now = now or _utcnow()
    if now.month == 1:
        return f"{now.year - 1:04d}-12"
    return f"{now.year:04d}-{now.month - 1:02d}"


def default_perf(project_id: str) -> PerfMetrics:
    return DEFAULT_PERF_BY_PROJECT.get(project_id, DEFAULT_PERF)


def refresh_flow_metrics(
    repository: MemoryRepository,
    jira_client: JiraFlowClient,
    project_id: str,
    month: Optional[str] = None,
) -> Optional[ProjectMetrics]:
    """Replace a month's flow metrics with fresh Jira data.

    Performance data of the existing record is kept; without one the
    project's default performance profile is used.

    Returns:
        The stored, enriched metrics, or ``None`` when Jira returned nothing
        and the stored record was left untouched.

    Raises:
        NotFoundError: If the project is unknown or has no Jira key.
        DataValidationError: If ``month`` is malformed.
    """
    target_month = month or current_month()
    parse_month(target_month)

    project = repository.get_project(project_id)
    jira_key = jira_project_key(project) if project is not None else None
    if project is None or not jira_key:
        raise NotFoundError(f"Project '{project_id}' not found or missing Jira key.")

    logger.info("Refreshing Jira flow metrics", extra={"project_id": project_id, "month": target_month})

    flow = jira_client.fetch(jira_key, target_month)
    if flow is None:
        logger.warning(
            "Jira returned no flow metrics; keeping stored data",
            extra={"project_id": project_id, "month": target_month},
        )
        return None

    with repository.project_lock(project_id):
        existing = repository.get_project_metrics(project_id, target_month)
        perf = existing[0].perf if existing else default_perf(project_id)
        return repository.upsert_project_metrics(
            ProjectMetrics(project_id=project_id, month=target_month, perf=perf, flow=flow)
        )


def refresh_performance_metrics(
    repository: MemoryRepository,
    webhook_client: PerformanceWebhookClient,
    project_id: str,
    month: Optional[str] = None,
) -> Optional[ProjectMetrics]:
    """Write webhook Core Web Vitals into a month's record.

    Mobile vitals become the primary ``core_web_vitals``; both devices are
    kept in ``core_web_vitals_device``. The month's own record is the base,
    falling back to the latest record and then to default profiles.

    Returns:
        The stored, enriched metrics, or ``None`` when the webhook had no
        data and the stored record was left untouched.

    Raises:
        NotFoundError: If the project is unknown.
        DataValidationError: If ``month`` is malformed.
    """
    target_month = month or current_month()
    parse_month(target_month)

    if repository.get_project(project_id) is None:
        raise NotFoundError(f"Project '{project_id}' was not found.")

    vitals = webhook_client.fetch(webhook_key(project_id))
    if vitals is None:
        logger.info(
            "No live performance data; keeping stored metrics",
            extra={"project_id": project_id, "month": target_month},
        )
        return None

    with repository.project_lock(project_id):
        existing = repository.get_project_metrics(project_id, target_month)
        base = existing[0] if existing else repository.get_latest_metrics(project_id)
        perf = base.perf if base is not None else default_perf(project_id)
        flow = base.flow if base is not None else DEFAULT_FLOW_METRICS

        updated = ProjectMetrics(
            project_id=project_id,
            month=target_month,
            perf=replace(perf, core_web_vitals=vitals.mobile, core_web_vitals_device=vitals),
            flow=flow,
        )
        return repository.upsert_project_metrics(updated)
