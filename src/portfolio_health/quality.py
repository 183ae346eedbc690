"""Quality-window enrichment for monthly flow metrics.

Quality incidents are counted over a trailing 14-day window that ends at
the close of the metrics month:

- window end: 23:59:59.999 UTC on the last calendar day of the month,
- window start: 00:00:00.000 UTC thirteen days earlier.

Only ``detected_at`` decides membership; resolution time is irrelevant.
The derived quality ratio is ``max(0, 1 - incidents / total_items)``.
"""

from __future__ import annotations

import calendar
import logging
import re
from dataclasses import replace
from datetime import datetime, timedelta, timezone
from typing import Iterable, Tuple

from .errors import DataValidationError
from .models import ProjectMetrics, QualityIncident
from .rounding import round_half_up

logger = logging.getLogger(__name__)

QUALITY_WINDOW_DAYS = 14

_MONTH_PATTERN = re.compile(r"^(\d{4})-(\d{2})$")


def parse_month(month: str) -> Tuple[int, int]:
    """Parse a zero-padded ``YYYY-MM`` string.

    Raises:
        DataValidationError: If the value is not a valid ``YYYY-MM`` month.
    """
    match = _MONTH_PATTERN.match(month or "")
    if match is None:
        raise DataValidationError(f"Invalid metrics month '{month}': expected 'YYYY-MM'.")

    year, month_number = int(match.group(1)), int(match.group(2))
    if not 1 <= month_number <= 12:
        raise DataValidationError(f"Invalid metrics month '{month}': month must be 01-12.")

    return year, month_number


def quality_window(month: str) -> Tuple[datetime, datetime]:
    """Return the inclusive ``(start, end)`` quality window for a month."""
    year, month_number = parse_month(month)
    last_day = calendar.monthrange(year, month_number)[1]

    window_end = datetime(year, month_number, last_day, 23, 59, 59, 999000, tzinfo=timezone.utc)
    window_start = datetime(year, month_number, last_day, tzinfo=timezone.utc) - timedelta(
        days=QUALITY_WINDOW_DAYS - 1
    )
    return window_start, window_end


def count_incidents(
    project_id: str,
    incidents: Iterable[QualityIncident],
    window_start: datetime,
    window_end: datetime,
) -> int:
    """Count ``project_id`` incidents detected within ``[window_start, window_end]``."""
    return sum(
        1
        for incident in incidents
        if incident.project_id == project_id and window_start <= incident.detected_at <= window_end
    )


def enrich_quality_window(
    project_id: str,
    metric: ProjectMetrics,
    incidents: Iterable[QualityIncident],
) -> ProjectMetrics:
    """Recompute the quality fields of ``metric`` from the incident ledger.

    Any stored ``quality_special`` or ``quality_issues_count`` is replaced.
    Applying the function to an already enriched record yields the same
    record, since the inputs it reads (month, item counts, ledger) are not
    among the fields it writes.

    Args:
        project_id: Project whose incidents are counted.
        metric: Raw or previously enriched metrics snapshot.
        incidents: Incident ledger; entries for other projects are ignored.

    Returns:
        A new ``ProjectMetrics`` with quality fields set.

    Raises:
        DataValidationError: If ``metric.month`` is malformed.
    """
    window_start, window_end = quality_window(metric.month)
    count = count_incidents(project_id, incidents, window_start, window_end)

    flow = metric.flow
    total_items = flow.total_items_count
    if total_items is None:
        total_items = flow.throughput_count
    if total_items is None:
        total_items = 0
    safe_total = total_items if total_items > 0 else 1

    ratio = max(0.0, 1 - count / safe_total)

    logger.debug(
        "Enriched quality window",
        extra={"project_id": project_id, "month": metric.month, "incidents": count},
    )

    return replace(
        metric,
        flow=replace(
            flow,
            quality_issues_count=count,
            quality_special=round_half_up(ratio, 2),
            quality_window_start=window_start,
            quality_window_end=window_end,
        ),
    )
