"""Domain models for portfolio performance, flow, and suggestion data.

Value records are frozen so that the repository can hand them out without
callers mutating shared state. State changes produce new instances through
``dataclasses.replace``.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import FrozenSet, List, Optional


class Band(str, Enum):
    """Colour band used for individual scores and vitals."""

    GOOD = "good"
    WARNING = "warning"
    POOR = "poor"


class HealthStatus(str, Enum):
    """Overall project health classification."""

    HEALTHY = "healthy"
    AT_RISK = "at-risk"
    CRITICAL = "critical"


class SuggestionSource(str, Enum):
    """Origin of a suggestion: the advisory service or the rule catalog."""

    AI = "ai"
    RULE = "rule"


class SuggestionStatus(str, Enum):
    """Lifecycle state of a suggestion."""

    NEW = "new"
    DONE = "done"
    IRRELEVANT = "irrelevant"


class IncidentStatus(str, Enum):
    """Whether a quality incident is still open."""

    OPEN = "open"
    RESOLVED = "resolved"


class AccessibilitySource(str, Enum):
    """Where an accessibility score came from."""

    PAGESPEED = "pagespeed"
    STORED = "stored"
    UNAVAILABLE = "unavailable"


@dataclass(frozen=True, slots=True)
class Project:
    """Represents a monitored site in the portfolio."""

    id: str
    name: str
    url: str
    updated_at: datetime
    description: Optional[str] = None
    tags: FrozenSet[str] = field(default_factory=frozenset)
    jira_key: Optional[str] = None


@dataclass(frozen=True, slots=True)
class CoreWebVitals:
    """LCP in seconds, CLS unitless, INP in milliseconds."""

    lcp: float
    cls: float
    inp: float


@dataclass(frozen=True, slots=True)
class DeviceVitals:
    """Core Web Vitals measured separately for desktop and mobile visitors."""

    desktop: CoreWebVitals
    mobile: CoreWebVitals


@dataclass(frozen=True, slots=True)
class PerfMetrics:
    """Performance signals for one month; ratio fields are in ``[0, 1]``."""

    core_web_vitals: CoreWebVitals
    accessibility: float
    best_practices: float
    seo: float
    core_web_vitals_device: Optional[DeviceVitals] = None


@dataclass(frozen=True, slots=True)
class FlowMetrics:
    """Delivery-flow signals for one month.

    ``quality_special``, ``quality_issues_count`` and the quality window bounds
    are derived from the incident ledger and recomputed on every read.
    Cycle times are in days.
    """

    throughput_ratio: float
    wip_ratio: float
    quality_special: float
    cycle_time_p50: float
    cycle_time_p85: float
    cycle_time_p95: float
    wip_count: Optional[int] = None
    throughput_count: Optional[int] = None
    total_items_count: Optional[int] = None
    quality_issues_count: Optional[int] = None
    quality_window_start: Optional[datetime] = None
    quality_window_end: Optional[datetime] = None


@dataclass(frozen=True, slots=True)
class ProjectMetrics:
    """Monthly metrics snapshot keyed by ``(project_id, month)``."""

    project_id: str
    month: str
    perf: PerfMetrics
    flow: FlowMetrics


@dataclass(frozen=True, slots=True)
class QualityIncident:
    """A production quality issue; only ``detected_at`` places it in a quality window."""

    project_id: str
    key: str
    category: str
    status: IncidentStatus
    detected_at: datetime
    resolved_at: Optional[datetime] = None


@dataclass(frozen=True, slots=True)
class Suggestion:
    """An improvement suggestion attached to a project."""

    id: str
    text: str
    rationale: str
    source: SuggestionSource
    status: SuggestionStatus
    created_at: datetime
    updated_at: datetime


@dataclass(frozen=True, slots=True)
class SuggestionDraft:
    """Text/rationale pair proposed by the advisory generator."""

    text: str
    rationale: str


@dataclass(frozen=True, slots=True)
class AggregatedMetrics:
    """Portfolio-wide KPI averages and health bucket counts."""

    total_projects: int
    average_lcp: float
    average_cls: float
    average_inp: float
    average_accessibility: float
    average_best_practices: float
    average_seo: float
    average_throughput: float
    average_throughput_count: float
    average_wip: float
    average_wip_count: float
    average_quality: float
    average_quality_issues: float
    median_cycle_time: float
    healthy_projects: int
    at_risk_projects: int
    critical_projects: int


@dataclass(frozen=True, slots=True)
class TrendPoint:
    """Portfolio averages for one month, over projects with data that month."""

    month: str
    avg_lcp: float
    avg_cls: float
    avg_inp: float
    avg_accessibility: float
    avg_throughput: float
    avg_quality: float


@dataclass(frozen=True, slots=True)
class ProjectTrendPoint:
    """One project's headline values for a single month."""

    month: str
    lcp: float
    cls: float
    inp: float
    accessibility: float
    throughput: float
    quality: float


@dataclass(frozen=True, slots=True)
class ProjectTrend:
    """A project's monthly points in ascending month order."""

    project_id: str
    project_name: str
    points: List[ProjectTrendPoint]


@dataclass(frozen=True, slots=True)
class AccessibilityScore:
    """Accessibility score with the source it was resolved from."""

    score: float
    source: AccessibilitySource
    fetched_at: datetime
    strategy: Optional[str] = None
