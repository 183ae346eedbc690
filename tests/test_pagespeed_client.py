"""Tests for PageSpeed accessibility lookups and their fallbacks."""

import sys
from datetime import datetime, timezone
from pathlib import Path
from unittest.mock import Mock

import pytest

# Add src directory to path
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from portfolio_health.errors import ApiError, NotFoundError
from portfolio_health.models import (
    AccessibilitySource,
    CoreWebVitals,
    FlowMetrics,
    PerfMetrics,
    Project,
    ProjectMetrics,
)
from portfolio_health.pagespeed_client import PageSpeedClient, accessibility_for_project
from portfolio_health.repository import MemoryRepository

UPDATED_AT = datetime(2025, 1, 1, tzinfo=timezone.utc)


def _payload(score):
    return {"lighthouseResult": {"categories": {"accessibility": {"score": score}}}}


def _repository(url: str = "https://p1.example", accessibility: float = 0.82) -> MemoryRepository:
    project = Project(id="p1", name="Project One", url=url, updated_at=UPDATED_AT)
    metrics = ProjectMetrics(
        project_id="p1",
        month="2025-03",
        perf=PerfMetrics(
            core_web_vitals=CoreWebVitals(lcp=2.0, cls=0.05, inp=150),
            accessibility=accessibility,
            best_practices=0.9,
            seo=0.9,
        ),
        flow=FlowMetrics(
            throughput_ratio=0.6,
            wip_ratio=0.3,
            quality_special=0.9,
            cycle_time_p50=3,
            cycle_time_p85=6,
            cycle_time_p95=9,
        ),
    )
    return MemoryRepository(projects=[project], metrics=[metrics])


def test_fetch_returns_pagespeed_score():
    """Verify a positive Lighthouse score is returned with source pagespeed."""
    client = PageSpeedClient("api-key")
    client._get_json = Mock(return_value=_payload(0.93))

    result = client.fetch("https://p1.example", fallback_score=0.5)

    assert result.score == 0.93
    assert result.source is AccessibilitySource.PAGESPEED
    assert result.strategy == "MOBILE"
    params = client._get_json.call_args.kwargs["params"]
    assert params == {
        "url": "https://p1.example",
        "category": "ACCESSIBILITY",
        "strategy": "MOBILE",
        "key": "api-key",
    }


def test_fetch_without_api_key_uses_fallback_without_network():
    """Verify a missing API key returns the stored score without calling the API."""
    client = PageSpeedClient("")
    client._get_json = Mock()

    result = client.fetch("https://p1.example", fallback_score=0.5)

    assert result.score == 0.5
    assert result.source is AccessibilitySource.STORED
    client._get_json.assert_not_called()


def test_fetch_api_error_uses_fallback():
    """Verify upstream failures never surface to the caller."""
    client = PageSpeedClient("api-key")
    client._get_json = Mock(side_effect=ApiError("quota exceeded"))

    result = client.fetch("https://p1.example", fallback_score=0.7, strategy="DESKTOP")

    assert result.score == 0.7
    assert result.source is AccessibilitySource.STORED
    assert result.strategy == "DESKTOP"


@pytest.mark.parametrize(
    "payload",
    [
        _payload(0),
        _payload(None),
        _payload("0.9"),
        {"lighthouseResult": None},
        {"lighthouseResult": "broken"},
        {"lighthouseResult": {"categories": ["accessibility"]}},
        {"lighthouseResult": {"categories": {"accessibility": 0.93}}},
        [],
        {},
    ],
)
def test_fetch_invalid_score_uses_fallback(payload):
    """Verify zero, missing or malformed scores fall back to the stored value."""
    client = PageSpeedClient("api-key")
    client._get_json = Mock(return_value=payload)

    result = client.fetch("https://p1.example", fallback_score=0.6)

    assert result.score == 0.6
    assert result.source is AccessibilitySource.STORED


def test_accessibility_for_project_uses_latest_stored_score_as_fallback():
    """Verify the latest stored accessibility score is the fallback."""
    client = Mock()

    accessibility_for_project(_repository(accessibility=0.82), client, "p1")

    client.fetch.assert_called_once_with("https://p1.example", 0.82)


def test_accessibility_for_project_without_url_is_unavailable():
    """Verify projects without a URL report source unavailable."""
    client = Mock()

    result = accessibility_for_project(_repository(url=""), client, "p1")

    assert result.source is AccessibilitySource.UNAVAILABLE
    assert result.score == 0.82
    client.fetch.assert_not_called()


def test_accessibility_for_unknown_project_raises_not_found():
    """Verify unknown projects raise NotFoundError."""
    with pytest.raises(NotFoundError):
        accessibility_for_project(_repository(), Mock(), "missing")


def test_accessibility_for_project_without_metrics_falls_back_to_zero():
    """Verify projects without metrics use a zero fallback score."""
    project = Project(id="p2", name="Project Two", url="https://p2.example", updated_at=UPDATED_AT)
    repository = MemoryRepository(projects=[project])
    client = Mock()

    accessibility_for_project(repository, client, "p2")

    client.fetch.assert_called_once_with("https://p2.example", 0.0)
