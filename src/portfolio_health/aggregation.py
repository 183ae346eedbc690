"""Portfolio-level aggregation of project metrics.

This module folds per-project metrics into:
- portfolio KPI averages and health bucket counts (latest month per project),
- a month-keyed trend series across all projects,
- a single project's monthly trend.
"""

from __future__ import annotations

import logging
from collections import defaultdict
from typing import Callable, Dict, List, Optional, Sequence, Tuple

from .models import (
    AggregatedMetrics,
    HealthStatus,
    Project,
    ProjectMetrics,
    ProjectTrend,
    ProjectTrendPoint,
    TrendPoint,
)
from .repository import MemoryRepository
from .rounding import round_half_up_int
from .scoring import health_score, health_status_for_score

logger = logging.getLogger(__name__)


def _mean(metrics: Sequence[ProjectMetrics], value: Callable[[ProjectMetrics], float]) -> float:
    return sum(value(metric) for metric in metrics) / len(metrics)


def _throughput_count(metric: ProjectMetrics) -> float:
    flow = metric.flow
    if flow.throughput_count is not None:
        return flow.throughput_count
    return round_half_up_int(flow.throughput_ratio * (flow.total_items_count or 0))


def _wip_count(metric: ProjectMetrics) -> float:
    flow = metric.flow
    if flow.wip_count is not None:
        return flow.wip_count
    return round_half_up_int(flow.wip_ratio * (flow.total_items_count or 0))


def _empty_aggregate(total_projects: int) -> AggregatedMetrics:
    return AggregatedMetrics(
        total_projects=total_projects,
        average_lcp=0.0,
        average_cls=0.0,
        average_inp=0.0,
        average_accessibility=0.0,
        average_best_practices=0.0,
        average_seo=0.0,
        average_throughput=0.0,
        average_throughput_count=0.0,
        average_wip=0.0,
        average_wip_count=0.0,
        average_quality=0.0,
        average_quality_issues=0.0,
        median_cycle_time=0.0,
        healthy_projects=0,
        at_risk_projects=0,
        critical_projects=0,
    )


def aggregate(pairs: Sequence[Tuple[Project, Optional[ProjectMetrics]]]) -> AggregatedMetrics:
    """Aggregate the latest metrics of every project in the portfolio.

    ``total_projects`` counts every pair, including projects without
    metrics. Averages and bucket counts only consider projects that have
    metrics; when none do, every numeric field is ``0``.

    ``median_cycle_time`` is the element at index ``n // 2`` of the sorted
    P50 cycle times (the upper median for even ``n``).
    """
    total_projects = len(pairs)
    metrics = [metric for _, metric in pairs if metric is not None]

    if not metrics:
        logger.info("No project metrics available for aggregation", extra={"projects_total": total_projects})
        return _empty_aggregate(total_projects)

    cycle_times = sorted(metric.flow.cycle_time_p50 for metric in metrics)
    median_cycle_time = cycle_times[len(cycle_times) // 2]

    buckets: Dict[HealthStatus, int] = {status: 0 for status in HealthStatus}
    for metric in metrics:
        buckets[health_status_for_score(health_score(metric))] += 1

    aggregated = AggregatedMetrics(
        total_projects=total_projects,
        average_lcp=_mean(metrics, lambda m: m.perf.core_web_vitals.lcp),
        average_cls=_mean(metrics, lambda m: m.perf.core_web_vitals.cls),
        average_inp=_mean(metrics, lambda m: m.perf.core_web_vitals.inp),
        average_accessibility=_mean(metrics, lambda m: m.perf.accessibility),
        average_best_practices=_mean(metrics, lambda m: m.perf.best_practices),
        average_seo=_mean(metrics, lambda m: m.perf.seo),
        average_throughput=_mean(metrics, lambda m: m.flow.throughput_ratio),
        average_throughput_count=_mean(metrics, _throughput_count),
        average_wip=_mean(metrics, lambda m: m.flow.wip_ratio),
        average_wip_count=_mean(metrics, _wip_count),
        average_quality=_mean(metrics, lambda m: m.flow.quality_special),
        average_quality_issues=_mean(metrics, lambda m: m.flow.quality_issues_count or 0),
        median_cycle_time=median_cycle_time,
        healthy_projects=buckets[HealthStatus.HEALTHY],
        at_risk_projects=buckets[HealthStatus.AT_RISK],
        critical_projects=buckets[HealthStatus.CRITICAL],
    )

    logger.info(
        "Aggregated portfolio metrics",
        extra={
            "projects_total": total_projects,
            "projects_with_metrics": len(metrics),
            "healthy": aggregated.healthy_projects,
            "at_risk": aggregated.at_risk_projects,
            "critical": aggregated.critical_projects,
        },
    )

    return aggregated


def trend_series(pairs: Sequence[Tuple[Project, Sequence[ProjectMetrics]]]) -> List[TrendPoint]:
    """Average every month's metrics across projects, ordered by month.

    Months without any metrics are absent from the result.
    """
    by_month: Dict[str, List[ProjectMetrics]] = defaultdict(list)
    for _, project_metrics in pairs:
        for metric in project_metrics:
            by_month[metric.month].append(metric)

    return [
        TrendPoint(
            month=month,
            avg_lcp=_mean(metrics, lambda m: m.perf.core_web_vitals.lcp),
            avg_cls=_mean(metrics, lambda m: m.perf.core_web_vitals.cls),
            avg_inp=_mean(metrics, lambda m: m.perf.core_web_vitals.inp),
            avg_accessibility=_mean(metrics, lambda m: m.perf.accessibility),
            avg_throughput=_mean(metrics, lambda m: m.flow.throughput_ratio),
            avg_quality=_mean(metrics, lambda m: m.flow.quality_special),
        )
        for month, metrics in sorted(by_month.items())
    ]


def project_trend(project: Project, metrics: Sequence[ProjectMetrics]) -> ProjectTrend:
    """Build one project's monthly trend, ordered by month."""
    points = [
        ProjectTrendPoint(
            month=metric.month,
            lcp=metric.perf.core_web_vitals.lcp,
            cls=metric.perf.core_web_vitals.cls,
            inp=metric.perf.core_web_vitals.inp,
            accessibility=metric.perf.accessibility,
            throughput=metric.flow.throughput_ratio,
            quality=metric.flow.quality_special,
        )
        for metric in sorted(metrics, key=lambda m: m.month)
        if metric.project_id == project.id
    ]
    return ProjectTrend(project_id=project.id, project_name=project.name, points=points)


def portfolio_snapshot(repository: MemoryRepository) -> Tuple[AggregatedMetrics, List[TrendPoint]]:
    """Read every project from the repository and aggregate the portfolio."""
    projects = repository.get_projects()
    latest_pairs = [(project, repository.get_latest_metrics(project.id)) for project in projects]
    history_pairs = [(project, repository.get_project_metrics(project.id)) for project in projects]
    return aggregate(latest_pairs), trend_series(history_pairs)
