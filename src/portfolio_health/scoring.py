"""Scoring rules for Core Web Vitals and overall project health.

Every function in this module is pure: results depend only on the inputs.

Breakpoints differ per scale and must not be mixed:
- individual vitals use inclusive "at most" thresholds (lower is better),
- the 0..100 Core Web Vitals score uses 90/75,
- 0..1 ratios use 0.90/0.70,
- the 0..1 health score uses 0.8/0.6.
"""

from __future__ import annotations

from typing import Optional

from .models import Band, CoreWebVitals, HealthStatus, ProjectMetrics

LCP_GOOD_SECONDS = 2.5
LCP_OK_SECONDS = 4.0
CLS_GOOD = 0.10
CLS_OK = 0.25
INP_GOOD_MS = 200.0
INP_OK_MS = 500.0

VITAL_POINTS = {Band.GOOD: 100.0, Band.WARNING: 75.0, Band.POOR: 25.0}

CWV_WEIGHT = 0.3
ACCESSIBILITY_WEIGHT = 0.2
BEST_PRACTICES_WEIGHT = 0.2
SEO_WEIGHT = 0.1
THROUGHPUT_WEIGHT = 0.1
QUALITY_WEIGHT = 0.1

HEALTHY_THRESHOLD = 0.8
AT_RISK_THRESHOLD = 0.6


def classify_vital(value: float, good_threshold: float, ok_threshold: float) -> Band:
    """Classify a lower-is-better vital against inclusive thresholds."""
    if value <= good_threshold:
        return Band.GOOD
    if value <= ok_threshold:
        return Band.WARNING
    return Band.POOR


def lcp_band(lcp: float) -> Band:
    """Band for LCP in seconds (good <= 2.5, warning <= 4.0)."""
    return classify_vital(lcp, LCP_GOOD_SECONDS, LCP_OK_SECONDS)


def cls_band(cls: float) -> Band:
    """Band for CLS (good <= 0.1, warning <= 0.25)."""
    return classify_vital(cls, CLS_GOOD, CLS_OK)


def inp_band(inp: float) -> Band:
    """Band for INP in milliseconds (good <= 200, warning <= 500)."""
    return classify_vital(inp, INP_GOOD_MS, INP_OK_MS)


def cwv_score(vitals: CoreWebVitals) -> float:
    """Compute the discrete Core Web Vitals score in ``[0, 100]``.

    Each vital contributes 100 (good), 75 (warning) or 25 (poor); the
    result is the arithmetic mean of the three.
    """
    points = (
        VITAL_POINTS[lcp_band(vitals.lcp)],
        VITAL_POINTS[cls_band(vitals.cls)],
        VITAL_POINTS[inp_band(vitals.inp)],
    )
    return sum(points) / len(points)


def score_band(score: float) -> Band:
    """Band a 0..100 Core Web Vitals score."""
    if score >= 90:
        return Band.GOOD
    if score >= 75:
        return Band.WARNING
    return Band.POOR


def ratio_band(ratio: float) -> Band:
    """Band a 0..1 ratio such as accessibility or SEO."""
    if ratio >= 0.9:
        return Band.GOOD
    if ratio >= 0.7:
        return Band.WARNING
    return Band.POOR


def health_score(metrics: ProjectMetrics) -> float:
    """Compute the weighted health score of a metrics snapshot.

    The weights are fixed and sum to 1.0, so the result stays within
    ``[0, 1]`` whenever every ratio input does.
    """
    perf = metrics.perf
    flow = metrics.flow

    perf_score = (
        cwv_score(perf.core_web_vitals) / 100.0 * CWV_WEIGHT
        + perf.accessibility * ACCESSIBILITY_WEIGHT
        + perf.best_practices * BEST_PRACTICES_WEIGHT
        + perf.seo * SEO_WEIGHT
    )
    flow_score = flow.throughput_ratio * THROUGHPUT_WEIGHT + flow.quality_special * QUALITY_WEIGHT

    return perf_score + flow_score


def health_status_for_score(score: float) -> HealthStatus:
    """Classify a 0..1 health score as healthy, at-risk or critical."""
    if score >= HEALTHY_THRESHOLD:
        return HealthStatus.HEALTHY
    if score >= AT_RISK_THRESHOLD:
        return HealthStatus.AT_RISK
    return HealthStatus.CRITICAL


def health_band(score: float) -> Band:
    """Colour band for a 0..1 health score."""
    return {
        HealthStatus.HEALTHY: Band.GOOD,
        HealthStatus.AT_RISK: Band.WARNING,
        HealthStatus.CRITICAL: Band.POOR,
    }[health_status_for_score(score)]


def health_status(metrics: Optional[ProjectMetrics]) -> HealthStatus:
    """Classify project health; missing metrics count as critical."""
    if metrics is None:
        return HealthStatus.CRITICAL
    return health_status_for_score(health_score(metrics))
