"""Tests for month parsing and quality-window enrichment."""

import sys
from datetime import datetime, timezone
from pathlib import Path

import pytest

# Add src directory to path
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from portfolio_health.errors import DataValidationError
from portfolio_health.models import (
    CoreWebVitals,
    FlowMetrics,
    IncidentStatus,
    PerfMetrics,
    ProjectMetrics,
    QualityIncident,
)
from portfolio_health.quality import enrich_quality_window, parse_month, quality_window


def _utc(*args) -> datetime:
    return datetime(*args, tzinfo=timezone.utc)


def _incident(key: str, detected_at: datetime, project_id: str = "p1") -> QualityIncident:
    return QualityIncident(
        project_id=project_id,
        key=key,
        category="production-bug",
        status=IncidentStatus.OPEN,
        detected_at=detected_at,
    )


def _metric(month: str = "2025-03", total_items=None, throughput_count=None, quality=0.99) -> ProjectMetrics:
    return ProjectMetrics(
        project_id="p1",
        month=month,
        perf=PerfMetrics(
            core_web_vitals=CoreWebVitals(lcp=2.0, cls=0.05, inp=150),
            accessibility=0.9,
            best_practices=0.9,
            seo=0.9,
        ),
        flow=FlowMetrics(
            throughput_ratio=0.6,
            wip_ratio=0.3,
            quality_special=quality,
            cycle_time_p50=3,
            cycle_time_p85=6,
            cycle_time_p95=9,
            throughput_count=throughput_count,
            total_items_count=total_items,
            quality_issues_count=42,
        ),
    )


def test_parse_month_valid():
    """Verify zero-padded months parse into year and month numbers."""
    assert parse_month("2025-03") == (2025, 3)
    assert parse_month("1999-12") == (1999, 12)


@pytest.mark.parametrize("month", ["2025-3", "2025-13", "2025-00", "25-03", "2025/03", "", "March"])
def test_parse_month_invalid_raises(month):
    """Verify malformed months fail fast with DataValidationError."""
    with pytest.raises(DataValidationError):
        parse_month(month)


def test_quality_window_march_2025():
    """Verify the window spans Mar 18 00:00 to Mar 31 23:59:59.999 UTC."""
    start, end = quality_window("2025-03")

    assert start == _utc(2025, 3, 18)
    assert end == _utc(2025, 3, 31, 23, 59, 59, 999000)


def test_quality_window_february_leap_year():
    """Verify the window end follows the month length in leap years."""
    start, end = quality_window("2024-02")

    assert start == _utc(2024, 2, 16)
    assert end == _utc(2024, 2, 29, 23, 59, 59, 999000)


def test_enrich_counts_incidents_inside_window_only():
    """Verify only incidents detected inside the window are counted."""
    incidents = [
        _incident("A", _utc(2025, 3, 17, 23, 59, 59)),
        _incident("B", _utc(2025, 3, 18)),
        _incident("C", _utc(2025, 3, 25, 12)),
        _incident("D", _utc(2025, 3, 31, 23, 59, 59, 999000)),
        _incident("E", _utc(2025, 4, 1)),
        _incident("F", _utc(2025, 3, 20), project_id="other"),
    ]

    enriched = enrich_quality_window("p1", _metric(total_items=20), incidents)

    assert enriched.flow.quality_issues_count == 3
    assert enriched.flow.quality_special == pytest.approx(0.85)
    assert enriched.flow.quality_window_start == _utc(2025, 3, 18)
    assert enriched.flow.quality_window_end == _utc(2025, 3, 31, 23, 59, 59, 999000)


def test_enrich_example_from_dashboard():
    """Verify 3 incidents over 20 items in March yield a 0.85 quality ratio."""
    incidents = [_incident(key, _utc(2025, 3, day)) for key, day in (("A", 19), ("B", 24), ("C", 30))]

    enriched = enrich_quality_window("p1", _metric(total_items=20), incidents)

    assert enriched.flow.quality_special == 0.85


def test_enrich_falls_back_to_throughput_count():
    """Verify throughput count is the denominator when total items is absent."""
    incidents = [_incident("A", _utc(2025, 3, 20))]

    enriched = enrich_quality_window("p1", _metric(throughput_count=4), incidents)

    assert enriched.flow.quality_special == 0.75


def test_enrich_without_item_counts_uses_safe_denominator_and_clamps():
    """Verify missing counts use a denominator of one and the ratio never goes negative."""
    no_incidents = enrich_quality_window("p1", _metric(), [])
    assert no_incidents.flow.quality_special == 1.0
    assert no_incidents.flow.quality_issues_count == 0

    incidents = [_incident("A", _utc(2025, 3, 20)), _incident("B", _utc(2025, 3, 21))]
    many = enrich_quality_window("p1", _metric(total_items=0), incidents)
    assert many.flow.quality_special == 0.0


def test_enrich_is_idempotent_and_keeps_other_fields():
    """Verify re-enriching an enriched record yields the same record."""
    incidents = [_incident("A", _utc(2025, 3, 20))]
    metric = _metric(total_items=10)

    once = enrich_quality_window("p1", metric, incidents)
    twice = enrich_quality_window("p1", once, incidents)

    assert once == twice
    assert once.perf == metric.perf
    assert once.flow.throughput_ratio == metric.flow.throughput_ratio
    assert once.flow.cycle_time_p85 == metric.flow.cycle_time_p85


def test_enrich_invalid_month_raises():
    """Verify enrichment fails fast on a malformed month."""
    with pytest.raises(DataValidationError):
        enrich_quality_window("p1", _metric(month="2025-3"), [])


@pytest.mark.parametrize(
    "incident_count, expected",
    [(1, 0.88), (3, 0.63), (5, 0.38), (7, 0.13)],
)
def test_enrich_rounds_half_ratios_up(incident_count, expected):
    """Verify ratios ending in 5 at the third decimal round up, as the dashboard shows them."""
    incidents = [_incident(f"P1-{index}", _utc(2025, 3, 20 + index)) for index in range(incident_count)]

    enriched = enrich_quality_window("p1", _metric(total_items=8), incidents)

    assert enriched.flow.quality_issues_count == incident_count
    assert enriched.flow.quality_special == expected
