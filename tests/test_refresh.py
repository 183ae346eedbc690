"""Tests for the explicit Jira and performance refresh operations."""

import sys
from datetime import datetime, timezone
from pathlib import Path
from unittest.mock import Mock

import pytest

# Add src directory to path
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from portfolio_health.errors import DataValidationError, NotFoundError
from portfolio_health.jira_client import DEFAULT_FLOW_METRICS
from portfolio_health.models import (
    CoreWebVitals,
    DeviceVitals,
    FlowMetrics,
    PerfMetrics,
    Project,
    ProjectMetrics,
)
from portfolio_health.refresh import (
    DEFAULT_PERF,
    DEFAULT_PERF_BY_PROJECT,
    current_month,
    last_full_calendar_month,
    refresh_flow_metrics,
    refresh_performance_metrics,
)
from portfolio_health.repository import MemoryRepository

UPDATED_AT = datetime(2025, 1, 1, tzinfo=timezone.utc)

STORED_PERF = PerfMetrics(
    core_web_vitals=CoreWebVitals(lcp=2.2, cls=0.07, inp=140),
    accessibility=0.88,
    best_practices=0.9,
    seo=0.91,
)

STORED_FLOW = FlowMetrics(
    throughput_ratio=0.6,
    wip_ratio=0.3,
    quality_special=0.9,
    cycle_time_p50=3,
    cycle_time_p85=6,
    cycle_time_p95=9,
    total_items_count=20,
)

FRESH_FLOW = FlowMetrics(
    throughput_ratio=0.8,
    wip_ratio=0.1,
    quality_special=0.7,
    cycle_time_p50=2,
    cycle_time_p85=4,
    cycle_time_p95=6,
    wip_count=2,
    throughput_count=16,
    total_items_count=20,
)

VITALS = DeviceVitals(
    desktop=CoreWebVitals(lcp=1.8, cls=0.04, inp=90),
    mobile=CoreWebVitals(lcp=2.6, cls=0.11, inp=210),
)


def _repository(metrics=()) -> MemoryRepository:
    projects = [
        Project(id="diptyque", name="Diptyque", url="https://d.example", updated_at=UPDATED_AT, jira_key="DPTQ"),
        Project(id="byredo", name="Byredo", url="https://b.example", updated_at=UPDATED_AT),
        Project(id="custom", name="Custom", url="https://c.example", updated_at=UPDATED_AT, jira_key="CUS"),
    ]
    return MemoryRepository(projects=projects, metrics=metrics)


def _stored(project_id: str = "diptyque", month: str = "2025-03") -> ProjectMetrics:
    return ProjectMetrics(project_id=project_id, month=month, perf=STORED_PERF, flow=STORED_FLOW)


def test_month_helpers():
    """Verify current and previous month formatting, including January."""
    assert current_month(datetime(2025, 3, 15, tzinfo=timezone.utc)) == "2025-03"
    assert last_full_calendar_month(datetime(2025, 3, 15, tzinfo=timezone.utc)) == "2025-02"
    assert last_full_calendar_month(datetime(2025, 1, 2, tzinfo=timezone.utc)) == "2024-12"


def test_refresh_flow_keeps_existing_perf():
    """Verify Jira flow replaces the month's flow while perf data is kept."""
    repository = _repository([_stored()])
    jira_client = Mock()
    jira_client.fetch.return_value = FRESH_FLOW

    updated = refresh_flow_metrics(repository, jira_client, "diptyque", "2025-03")

    jira_client.fetch.assert_called_once_with("DPTQ", "2025-03")
    assert updated.perf == STORED_PERF
    assert updated.flow.throughput_ratio == 0.8
    assert updated.flow.quality_issues_count == 0
    assert repository.get_latest_metrics("diptyque") == updated


def test_refresh_flow_uses_default_perf_for_new_month():
    """Verify a month without stored metrics gets the project's default perf profile."""
    repository = _repository()
    jira_client = Mock()
    jira_client.fetch.return_value = FRESH_FLOW

    updated = refresh_flow_metrics(repository, jira_client, "diptyque", "2025-04")
    custom = refresh_flow_metrics(repository, jira_client, "custom", "2025-04")

    assert updated.perf == DEFAULT_PERF_BY_PROJECT["diptyque"]
    assert custom.perf == DEFAULT_PERF
    jira_client.fetch.assert_called_with("CUS", "2025-04")


def test_refresh_flow_without_jira_data_keeps_stored_record():
    """Verify a failed Jira fetch writes nothing."""
    repository = _repository([_stored()])
    jira_client = Mock()
    jira_client.fetch.return_value = None

    assert refresh_flow_metrics(repository, jira_client, "diptyque", "2025-03") is None
    assert repository.get_latest_metrics("diptyque").flow.throughput_ratio == 0.6


def test_refresh_flow_requires_known_project_with_jira_key():
    """Verify unknown projects and projects without a Jira key raise NotFoundError."""
    repository = _repository()
    jira_client = Mock()

    with pytest.raises(NotFoundError):
        refresh_flow_metrics(repository, jira_client, "missing", "2025-03")
    with pytest.raises(NotFoundError):
        refresh_flow_metrics(repository, jira_client, "byredo", "2025-03")
    jira_client.fetch.assert_not_called()


def test_refresh_flow_rejects_malformed_month():
    """Verify malformed months fail before any fetch."""
    jira_client = Mock()

    with pytest.raises(DataValidationError):
        refresh_flow_metrics(_repository(), jira_client, "diptyque", "2025-3")
    jira_client.fetch.assert_not_called()


def test_refresh_performance_writes_mobile_as_primary_vitals():
    """Verify webhook vitals update the month's record and keep device detail."""
    repository = _repository([_stored("byredo")])
    webhook_client = Mock()
    webhook_client.fetch.return_value = VITALS

    updated = refresh_performance_metrics(repository, webhook_client, "byredo", "2025-03")

    webhook_client.fetch.assert_called_once_with("byredo")
    assert updated.perf.core_web_vitals == VITALS.mobile
    assert updated.perf.core_web_vitals_device == VITALS
    assert updated.perf.accessibility == STORED_PERF.accessibility
    assert updated.flow.throughput_ratio == STORED_FLOW.throughput_ratio


def test_refresh_performance_rekeys_latest_record_for_new_month():
    """Verify the latest stored record is the base for a month without data."""
    repository = _repository([_stored("byredo", "2025-02")])
    webhook_client = Mock()
    webhook_client.fetch.return_value = VITALS

    updated = refresh_performance_metrics(repository, webhook_client, "byredo", "2025-03")

    assert updated.month == "2025-03"
    assert updated.flow.cycle_time_p85 == STORED_FLOW.cycle_time_p85
    assert [metric.month for metric in repository.get_project_metrics("byredo")] == ["2025-02", "2025-03"]


def test_refresh_performance_without_history_uses_defaults():
    """Verify projects without metrics get default perf and flow around the live vitals."""
    repository = _repository()
    webhook_client = Mock()
    webhook_client.fetch.return_value = VITALS

    updated = refresh_performance_metrics(repository, webhook_client, "byredo", "2025-03")

    assert updated.perf.seo == DEFAULT_PERF_BY_PROJECT["byredo"].seo
    assert updated.flow.throughput_ratio == DEFAULT_FLOW_METRICS.throughput_ratio


def test_refresh_performance_without_webhook_data_keeps_stored_record():
    """Verify missing webhook data leaves the stored record untouched."""
    repository = _repository([_stored("byredo")])
    webhook_client = Mock()
    webhook_client.fetch.return_value = None

    assert refresh_performance_metrics(repository, webhook_client, "byredo", "2025-03") is None
    assert repository.get_latest_metrics("byredo").perf == STORED_PERF


def test_refresh_performance_maps_webhook_key():
    """Verify internal ids are translated to webhook keys."""
    repository = MemoryRepository(
        projects=[Project(id="swissense", name="Swissense", url="https://s.example", updated_at=UPDATED_AT)]
    )
    webhook_client = Mock()
    webhook_client.fetch.return_value = None

    refresh_performance_metrics(repository, webhook_client, "swissense", "2025-03")

    webhook_client.fetch.assert_called_once_with("swisssense")


def test_refresh_performance_unknown_project_raises_not_found():
    """Verify unknown projects raise NotFoundError."""
    with pytest.raises(NotFoundError):
        refresh_performance_metrics(_repository(), Mock(), "missing", "2025-03")
