"""Statistics and formatting helpers for portfolio reporting.

This module provides utilities for:
- Computing nearest-rank percentiles over cycle-time samples.
- Formatting ratios, day counts, and Core Web Vitals for display.
- Building human-readable portfolio and project reports.
"""

from __future__ import annotations

import math
from datetime import date
from typing import List, Optional, Sequence

from .models import AggregatedMetrics, ProjectMetrics, Suggestion, TrendPoint
from .quality import parse_month
from .rounding import round_half_up_int
from .scoring import cls_band, cwv_score, health_score, health_status, inp_band, lcp_band, ratio_band, score_band


def nearest_rank_percentile(sorted_values: Sequence[float], p: float, default: float) -> float:
    """Return the nearest-rank percentile of pre-sorted samples.

    The rank is ``ceil(n * p) - 1`` (clamped at 0) for ``p`` in ``(0, 1]``.
    Empty input or a zero value at that rank returns ``default``.

    Raises:
        ValueError: If ``p`` is outside ``[0, 1]``.
    """
    if not 0 <= p <= 1:
        raise ValueError("Percentile 'p' must be in the range [0, 1].")

    if not sorted_values:
        return default

    index = max(0, math.ceil(len(sorted_values) * p) - 1)
    return sorted_values[index] or default


def format_metric(value: float, kind: str) -> str:
    """Format a metric value as ``percentage``, ``days`` or ``ratio``."""
    if kind == "percentage":
        return f"{round_half_up_int(value * 100)}%"
    if kind == "days":
        return f"{value:g}d"
    if kind == "ratio":
        return f"{value:.2f}"
    return str(value)


def format_lcp(lcp: float) -> str:
    return f"{lcp:.1f}s"


def format_cls(cls: float) -> str:
    return f"{cls:.3f}"


def format_inp(inp: float) -> str:
    return f"{round_half_up_int(inp)}ms"


def format_month_year(month: str) -> str:
    """Format ``YYYY-MM`` as e.g. ``March 2025``."""
    year, month_number = parse_month(month)
    return date(year, month_number, 1).strftime("%B %Y")


def generate_portfolio_report(aggregated: AggregatedMetrics, trend: Sequence[TrendPoint]) -> str:
    """Generate a human-readable portfolio overview.

    Args:
        aggregated: Portfolio KPI aggregate.
        trend: Month-ordered trend points.

    Returns:
        Formatted multi-line text report.
    """
    lines = [
        "Portfolio Health Report",
        f"Projects: {aggregated.total_projects}",
        (
            f"Health: {aggregated.healthy_projects} healthy, "
            f"{aggregated.at_risk_projects} at-risk, "
            f"{aggregated.critical_projects} critical"
        ),
        "",
        "1) Core Web Vitals (average)",
        f"   LCP: {format_lcp(aggregated.average_lcp)}",
        f"   CLS: {format_cls(aggregated.average_cls)}",
        f"   INP: {format_inp(aggregated.average_inp)}",
        "",
        "2) Lighthouse (average)",
        f"   Accessibility: {format_metric(aggregated.average_accessibility, 'percentage')}",
        f"   Best Practices: {format_metric(aggregated.average_best_practices, 'percentage')}",
        f"   SEO: {format_metric(aggregated.average_seo, 'percentage')}",
        "",
        "3) Flow (average)",
        f"   Throughput: {format_metric(aggregated.average_throughput, 'percentage')}"
        f" ({aggregated.average_throughput_count:.1f} items)",
        f"   WIP: {format_metric(aggregated.average_wip, 'percentage')} ({aggregated.average_wip_count:.1f} items)",
        f"   Quality: {format_metric(aggregated.average_quality, 'percentage')}"
        f" ({aggregated.average_quality_issues:.1f} incidents)",
        f"   Median cycle time (P50): {format_metric(aggregated.median_cycle_time, 'days')}",
    ]

    if trend:
        lines.extend(["", "4) Monthly trend"])
        for point in trend:
            lines.append(
                f"   {point.month}: LCP {format_lcp(point.avg_lcp)}"
                f" | CLS {format_cls(point.avg_cls)}"
                f" | INP {format_inp(point.avg_inp)}"
                f" | A11y {format_metric(point.avg_accessibility, 'percentage')}"
                f" | Throughput {format_metric(point.avg_throughput, 'percentage')}"
                f" | Quality {format_metric(point.avg_quality, 'percentage')}"
            )

    return "\n".join(lines)


def generate_project_report(
    project_name: str,
    metrics: Optional[ProjectMetrics],
    suggestions: Sequence[Suggestion] = (),
) -> str:
    """Generate a human-readable report for one project's latest metrics."""
    lines: List[str] = [f"Project: {project_name}", f"Health: {health_status(metrics).value}"]

    if metrics is None:
        lines.append("No metrics available yet.")
        return "\n".join(lines)

    vitals = metrics.perf.core_web_vitals
    flow = metrics.flow
    score = cwv_score(vitals)

    lines.extend(
        [
            f"Month: {format_month_year(metrics.month)}",
            f"Health score: {health_score(metrics):.2f}",
            "",
            f"Core Web Vitals score: {score:.0f} ({score_band(score).value})",
            f"   LCP: {format_lcp(vitals.lcp)} ({lcp_band(vitals.lcp).value})",
            f"   CLS: {format_cls(vitals.cls)} ({cls_band(vitals.cls).value})",
            f"   INP: {format_inp(vitals.inp)} ({inp_band(vitals.inp).value})",
            f"Accessibility: {format_metric(metrics.perf.accessibility, 'percentage')}"
            f" ({ratio_band(metrics.perf.accessibility).value})",
            f"Best Practices: {format_metric(metrics.perf.best_practices, 'percentage')}"
            f" ({ratio_band(metrics.perf.best_practices).value})",
            f"SEO: {format_metric(metrics.perf.seo, 'percentage')} ({ratio_band(metrics.perf.seo).value})",
            "",
            f"Throughput: {format_metric(flow.throughput_ratio, 'percentage')}",
            f"WIP: {format_metric(flow.wip_ratio, 'percentage')}",
            f"Quality: {format_metric(flow.quality_special, 'percentage')}"
            f" ({flow.quality_issues_count or 0} incidents in 14-day window)",
            f"Cycle time P50/P85/P95: {format_metric(flow.cycle_time_p50, 'days')}"
            f" / {format_metric(flow.cycle_time_p85, 'days')}"
            f" / {format_metric(flow.cycle_time_p95, 'days')}",
        ]
    )

    if suggestions:
        lines.extend(["", "Suggestions"])
        for suggestion in suggestions:
            lines.append(f"   [{suggestion.source.value}] {suggestion.text} ({suggestion.status.value})")
            lines.append(f"      {suggestion.rationale}")

    return "\n".join(lines)
