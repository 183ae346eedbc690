"""Jira client deriving monthly flow metrics from work items."""

from __future__ import annotations

import calendar
import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from requests.auth import HTTPBasicAuth

from .config import Config
from .errors import ApiError, AuthenticationError, DataValidationError
from .http_client import JsonApiClient
from .models import FlowMetrics, Project
from .quality import parse_month
from .rounding import round_half_up_int
from .serialization import parse_timestamp
from .stats import nearest_rank_percentile

logger = logging.getLogger(__name__)

JIRA_PROJECT_MAPPING: Dict[str, str] = {
    "diptyque": "DPTQ",
    "elon": "ELONMVP",
}

DEFAULT_FLOW_METRICS = FlowMetrics(
    throughput_ratio=0.5,
    wip_ratio=0.4,
    quality_special=0.7,
    cycle_time_p50=5,
    cycle_time_p85=10,
    cycle_time_p95=15,
    wip_count=11,
    throughput_count=15,
    total_items_count=30,
    quality_issues_count=2,
)

DEFAULT_CYCLE_TIME_DAYS = 5.0
DEFAULT_QUALITY_RATIO = 0.7
SECONDS_PER_DAY = 86400


@dataclass(slots=True)
class WorkItem:
    """Minimal issue data needed for flow calculations."""

    key: str
    started_at: Optional[datetime]
    finished_at: Optional[datetime]


def jira_project_key(project: Project) -> Optional[str]:
    """Return the Jira key of a project, preferring the project's own value."""
    return project.jira_key or JIRA_PROJECT_MAPPING.get(project.id)


def _clamp_ratio(value: float) -> float:
    return min(max(value, 0.0), 1.0)


def calculate_flow_metrics(work_items: List[WorkItem], now: Optional[datetime] = None) -> FlowMetrics:
    """Derive flow metrics from a month's work items.

    Business logic:
    - Completed items have a finish date that is not in the future.
    - Throughput ratio is completed / total; WIP ratio is unfinished / total.
    - Cycle times are nearest-rank P50/P85/P95 of positive completed
      durations in days, rounded to whole days (5 when no samples exist).
    - The quality ratio is a placeholder until the incident ledger enriches it.
    """
    now = now or datetime.now(timezone.utc)
    total = len(work_items)

    completed = [item for item in work_items if item.finished_at is not None and item.finished_at <= now]
    unfinished = [item for item in work_items if item.finished_at is None]

    throughput_ratio = len(completed) / total if total > 0 else 0.5
    wip_ratio = len(unfinished) / total if total > 0 else 0.4

    cycle_times = sorted(
        duration
        for duration in (
            (item.finished_at - item.started_at).total_seconds() / SECONDS_PER_DAY
            for item in completed
            if item.started_at is not None and item.finished_at is not None
        )
        if duration > 0
    )

    return FlowMetrics(
        throughput_ratio=_clamp_ratio(throughput_ratio),
        wip_ratio=_clamp_ratio(wip_ratio),
        quality_special=_clamp_ratio(DEFAULT_QUALITY_RATIO),
        cycle_time_p50=round_half_up_int(nearest_rank_percentile(cycle_times, 0.5, DEFAULT_CYCLE_TIME_DAYS)),
        cycle_time_p85=round_half_up_int(nearest_rank_percentile(cycle_times, 0.85, DEFAULT_CYCLE_TIME_DAYS)),
        cycle_time_p95=round_half_up_int(nearest_rank_percentile(cycle_times, 0.95, DEFAULT_CYCLE_TIME_DAYS)),
        wip_count=len(unfinished),
        throughput_count=len(completed),
        total_items_count=total,
        quality_issues_count=0,
    )


class JiraFlowClient(JsonApiClient):
    """Small client for the Jira Cloud issue search API."""

    _PAGE_SIZE = 100

    def __init__(self, host: str, email: str, token: str, timeout_seconds: int = 15) -> None:
        """Initialize an authenticated Jira client.

        Raises:
            AuthenticationError: If host, email, or API token is missing.
        """
        if not host or not email or not token:
            raise AuthenticationError(
                "Missing required Jira configuration. "
                "Set 'JIRA_HOST', 'JIRA_EMAIL' and 'JIRA_PAT' before refreshing flow metrics."
            )

        super().__init__(f"{host.rstrip('/')}/rest/api/3", timeout_seconds=timeout_seconds)
        self._session.auth = HTTPBasicAuth(email, token)

    @classmethod
    def from_config(cls, config: Config) -> "JiraFlowClient":
        return cls(
            host=config.jira_host,
            email=config.jira_email,
            token=config.jira_token,
            timeout_seconds=config.timeout_seconds,
        )

    def list_work_items(self, project_key: str, month: str) -> List[WorkItem]:
        """List issues of ``project_key`` that were active during ``month``.

        Uses offset pagination via ``startAt``/``maxResults``.
        """
        year, month_number = parse_month(month)
        first_day = f"{year:04d}-{month_number:02d}-01"
        last_day = f"{year:04d}-{month_number:02d}-{calendar.monthrange(year, month_number)[1]:02d}"
        jql = (
            f'project = "{project_key}" AND created <= "{last_day}" '
            f'AND (resolved >= "{first_day}" OR resolution = EMPTY)'
        )

        work_items: List[WorkItem] = []
        start_at = 0

        while True:
            params: Dict[str, Any] = {
                "jql": jql,
                "fields": "created,resolutiondate",
                "startAt": start_at,
                "maxResults": self._PAGE_SIZE,
            }
            payload = self._get_json("search", params=params)
            if not isinstance(payload, dict):
                raise ApiError(f"Jira search returned unexpected payload shape for project {project_key}")

            issues = payload.get("issues") or []
            if not isinstance(issues, list):
                raise ApiError(f"Jira search returned non-list issues for project {project_key}")

            for issue in issues:
                if not isinstance(issue, dict):
                    logger.warning("Skipping malformed Jira issue", extra={"project_key": project_key})
                    continue
                fields = issue.get("fields")
                if not isinstance(fields, dict):
                    fields = {}
                work_items.append(
                    WorkItem(
                        key=str(issue.get("key", "")),
                        started_at=parse_timestamp(_normalize_jira_timestamp(fields.get("created"))),
                        finished_at=parse_timestamp(_normalize_jira_timestamp(fields.get("resolutiondate"))),
                    )
                )

            start_at += len(issues)
            try:
                total = int(payload.get("total", 0))
            except (TypeError, ValueError) as exc:
                raise ApiError(f"Jira search returned invalid total for project {project_key}") from exc
            if not issues or start_at >= total:
                break

        return work_items

    def fetch(self, project_key: str, month: str) -> Optional[FlowMetrics]:
        """Fetch flow metrics for a project month.

        Returns documented default metrics when the month has no work items
        and ``None`` when Jira cannot be reached, which callers treat as
        "keep existing data".
        """
        logger.info("Fetching Jira flow metrics", extra={"project_key": project_key, "month": month})

        try:
            work_items = self.list_work_items(project_key, month)
        except (ApiError, DataValidationError) as exc:
            logger.warning(
                "Failed to fetch Jira flow metrics",
                extra={"project_key": project_key, "month": month, "error": str(exc)},
            )
            return None

        if not work_items:
            logger.info("No work items found; using default flow metrics", extra={"project_key": project_key})
            return DEFAULT_FLOW_METRICS

        metrics = calculate_flow_metrics(work_items)
        logger.info(
            "Calculated flow metrics",
            extra={
                "project_key": project_key,
                "month": month,
                "work_items": len(work_items),
                "throughput_count": metrics.throughput_count,
                "wip_count": metrics.wip_count,
            },
        )
        return metrics


def _normalize_jira_timestamp(value: Any) -> Optional[str]:
    """Convert Jira's ``+0000`` offsets into ISO-8601 ``+00:00`` form.

    Non-string values are treated as missing.
    """
    if not value or not isinstance(value, str):
        return None
    if len(value) > 5 and value[-5] in "+-" and value[-4:].isdigit():
        return f"{value[:-2]}:{value[-2:]}"
    return value
