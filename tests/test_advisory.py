"""Tests for advisory suggestion generators."""

import sys
from datetime import datetime, timezone
from pathlib import Path
from unittest.mock import Mock

import pytest

# Add src directory to path
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from portfolio_health.advisory import (
    AdvisoryGenerator,
    HttpAdvisoryGenerator,
    NullAdvisoryGenerator,
    build_advisory_generator,
)
from portfolio_health.config import Config
from portfolio_health.errors import ApiError
from portfolio_health.models import (
    CoreWebVitals,
    FlowMetrics,
    PerfMetrics,
    Project,
    ProjectMetrics,
    SuggestionDraft,
)

PROJECT = Project(
    id="p1",
    name="Project One",
    url="https://p1.example",
    updated_at=datetime(2025, 1, 1, tzinfo=timezone.utc),
)

METRICS = ProjectMetrics(
    project_id="p1",
    month="2025-03",
    perf=PerfMetrics(
        core_web_vitals=CoreWebVitals(lcp=3.0, cls=0.05, inp=150),
        accessibility=0.8,
        best_practices=0.9,
        seo=0.85,
    ),
    flow=FlowMetrics(
        throughput_ratio=0.5,
        wip_ratio=0.4,
        quality_special=0.9,
        cycle_time_p50=4,
        cycle_time_p85=8,
        cycle_time_p95=12,
    ),
)


def _config(advisory_api_url: str = "", advisory_api_key: str = "") -> Config:
    return Config(
        data_dir=Path("."),
        pagespeed_api_key="",
        jira_host="",
        jira_email="",
        jira_token="",
        performance_webhook_url="",
        advisory_api_url=advisory_api_url,
        advisory_api_key=advisory_api_key,
    )


def _generate(generator, exclude_texts=frozenset(), completed=None):
    return generator.generate(
        project=PROJECT,
        latest_metrics=METRICS,
        historical_metrics=[METRICS],
        exclude_texts=exclude_texts,
        completed_suggestion_text=completed,
    )


def test_null_generator_returns_no_drafts():
    """Verify the null generator proposes nothing."""
    assert _generate(NullAdvisoryGenerator()) == []


def test_build_advisory_generator_selects_implementation():
    """Verify the HTTP generator is only used when a URL is configured."""
    assert isinstance(build_advisory_generator(_config()), NullAdvisoryGenerator)

    generator = build_advisory_generator(_config("https://advisor.example/suggest", "key-1"))

    assert isinstance(generator, HttpAdvisoryGenerator)
    assert generator._session.headers["Authorization"] == "Bearer key-1"


def test_http_generator_posts_context_and_parses_drafts():
    """Verify the request body carries metrics and exclusions and drafts are parsed."""
    generator = HttpAdvisoryGenerator("https://advisor.example/suggest")
    generator._post_json = Mock(
        return_value={
            "suggestions": [
                {"text": "Preload hero image", "rationale": "LCP is in the warning band."},
                {"text": "  ", "rationale": "blank"},
                {"text": "Already given", "rationale": "dup"},
                "not a dict",
            ]
        }
    )

    drafts = _generate(generator, exclude_texts=frozenset({"Already given"}), completed="Done thing")

    assert drafts == [SuggestionDraft(text="Preload hero image", rationale="LCP is in the warning band.")]
    path, body = generator._post_json.call_args.args
    assert path == ""
    assert body["project"]["id"] == "p1"
    assert body["latestMetrics"]["perf"]["coreWebVitals"]["lcp"] == 3.0
    assert len(body["historicalMetrics"]) == 1
    assert body["excludeTexts"] == ["Already given"]
    assert body["completedSuggestionText"] == "Done thing"
    assert body["scores"]["coreWebVitals"] == (75 + 100 + 100) / 3


def test_http_generator_omits_completed_text_when_absent():
    """Verify the completion field is only sent for replacements."""
    generator = HttpAdvisoryGenerator("https://advisor.example/suggest")
    generator._post_json = Mock(return_value={"suggestions": []})

    _generate(generator)

    _, body = generator._post_json.call_args.args
    assert "completedSuggestionText" not in body


def test_http_generator_api_error_returns_empty():
    """Verify advisory failures degrade to no drafts."""
    generator = HttpAdvisoryGenerator("https://advisor.example/suggest")
    generator._post_json = Mock(side_effect=ApiError("timeout"))

    assert _generate(generator) == []


def test_http_generator_unexpected_payload_returns_empty():
    """Verify malformed responses degrade to no drafts."""
    generator = HttpAdvisoryGenerator("https://advisor.example/suggest")
    generator._post_json = Mock(return_value=["not", "a", "dict"])

    assert _generate(generator) == []


def test_advisory_generator_interface_cannot_be_instantiated():
    """Verify the generator interface requires a generate implementation."""
    with pytest.raises(TypeError):
        AdvisoryGenerator()

    assert isinstance(NullAdvisoryGenerator(), AdvisoryGenerator)
    assert isinstance(HttpAdvisoryGenerator("https://advisory.example/suggest"), AdvisoryGenerator)
