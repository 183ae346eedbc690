"""Conversion between domain records and their JSON representation.

Seed fixtures and CLI output use camelCase keys and ISO-8601 UTC
timestamps with a ``Z`` suffix, matching the dashboard's data files.
"""

from __future__ import annotations

import json
import os
from dataclasses import fields, is_dataclass
from datetime import datetime, timezone
from enum import Enum
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional, Tuple

from .errors import ConfigurationError, DataValidationError
from .models import (
    CoreWebVitals,
    DeviceVitals,
    FlowMetrics,
    IncidentStatus,
    PerfMetrics,
    Project,
    ProjectMetrics,
    QualityIncident,
    Suggestion,
    SuggestionSource,
    SuggestionStatus,
)


def parse_timestamp(value: Optional[str]) -> Optional[datetime]:
    """Parse an ISO-8601 timestamp into a timezone-aware UTC datetime."""
    if not value:
        return None

    normalized = value[:-1] + "+00:00" if value.endswith("Z") else value
    try:
        parsed = datetime.fromisoformat(normalized)
    except ValueError as exc:
        raise DataValidationError(f"Invalid timestamp '{value}'.") from exc

    if parsed.tzinfo is None:
        return parsed.replace(tzinfo=timezone.utc)
    return parsed.astimezone(timezone.utc)


def format_timestamp(value: datetime) -> str:
    """Format a datetime as UTC ISO-8601 with millisecond precision."""
    utc_value = value.astimezone(timezone.utc)
    return utc_value.isoformat(timespec="milliseconds").replace("+00:00", "Z")


def _camel_case(name: str) -> str:
    head, *rest = name.split("_")
    return head + "".join(part.capitalize() for part in rest)


def to_jsonable(value: Any) -> Any:
    """Convert records, enums and datetimes into JSON-compatible values."""
    if is_dataclass(value) and not isinstance(value, type):
        return {
            _camel_case(item.name): to_jsonable(getattr(value, item.name))
            for item in fields(value)
            if getattr(value, item.name) is not None
        }
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, datetime):
        return format_timestamp(value)
    if isinstance(value, (set, frozenset)):
        return sorted(to_jsonable(item) for item in value)
    if isinstance(value, (list, tuple)):
        return [to_jsonable(item) for item in value]
    if isinstance(value, dict):
        return {key: to_jsonable(item) for key, item in value.items()}
    return value


def _require(payload: Dict[str, Any], key: str, context: str) -> Any:
    if key not in payload or payload[key] is None:
        raise DataValidationError(f"{context} payload is missing required field '{key}': {payload}")
    return payload[key]


def vitals_from_dict(payload: Dict[str, Any]) -> CoreWebVitals:
    return CoreWebVitals(
        lcp=float(_require(payload, "lcp", "CoreWebVitals")),
        cls=float(_require(payload, "cls", "CoreWebVitals")),
        inp=float(_require(payload, "inp", "CoreWebVitals")),
    )


def project_from_dict(payload: Dict[str, Any]) -> Project:
    updated_at = parse_timestamp(payload.get("updatedAt")) or datetime.now(timezone.utc)
    return Project(
        id=str(_require(payload, "id", "Project")),
        name=str(_require(payload, "name", "Project")),
        url=str(payload.get("url") or ""),
        updated_at=updated_at,
        description=payload.get("description"),
        tags=frozenset(payload.get("tags") or ()),
        jira_key=payload.get("jiraKey"),
    )


def perf_from_dict(payload: Dict[str, Any]) -> PerfMetrics:
    device = payload.get("coreWebVitalsDevice")
    return PerfMetrics(
        core_web_vitals=vitals_from_dict(_require(payload, "coreWebVitals", "PerfMetrics")),
        accessibility=float(_require(payload, "accessibility", "PerfMetrics")),
        best_practices=float(_require(payload, "bestPractices", "PerfMetrics")),
        seo=float(_require(payload, "seo", "PerfMetrics")),
        core_web_vitals_device=(
            DeviceVitals(
                desktop=vitals_from_dict(device["desktop"]),
                mobile=vitals_from_dict(device["mobile"]),
            )
            if device
            else None
        ),
    )


def _optional_int(value: Any) -> Optional[int]:
    return None if value is None else int(value)


def flow_from_dict(payload: Dict[str, Any]) -> FlowMetrics:
    return FlowMetrics(
        throughput_ratio=float(_require(payload, "throughputRatio", "FlowMetrics")),
        wip_ratio=float(_require(payload, "wipRatio", "FlowMetrics")),
        quality_special=float(payload.get("qualitySpecial", 0.0)),
        cycle_time_p50=float(_require(payload, "cycleTimeP50", "FlowMetrics")),
        cycle_time_p85=float(_require(payload, "cycleTimeP85", "FlowMetrics")),
        cycle_time_p95=float(_require(payload, "cycleTimeP95", "FlowMetrics")),
        wip_count=_optional_int(payload.get("wipCount")),
        throughput_count=_optional_int(payload.get("throughputCount")),
        total_items_count=_optional_int(payload.get("totalItemsCount")),
        quality_issues_count=_optional_int(payload.get("qualityIssuesCount")),
        quality_window_start=parse_timestamp(payload.get("qualityWindowStart")),
        quality_window_end=parse_timestamp(payload.get("qualityWindowEnd")),
    )


def metrics_from_dict(payload: Dict[str, Any]) -> ProjectMetrics:
    return ProjectMetrics(
        project_id=str(_require(payload, "projectId", "ProjectMetrics")),
        month=str(_require(payload, "month", "ProjectMetrics")),
        perf=perf_from_dict(_require(payload, "perf", "ProjectMetrics")),
        flow=flow_from_dict(_require(payload, "flow", "ProjectMetrics")),
    )


def incident_from_dict(payload: Dict[str, Any]) -> QualityIncident:
    try:
        status = IncidentStatus(payload.get("status", IncidentStatus.OPEN.value))
    except ValueError as exc:
        raise DataValidationError(f"Unknown incident status in payload: {payload}") from exc

    return QualityIncident(
        project_id=str(_require(payload, "projectId", "QualityIncident")),
        key=str(_require(payload, "key", "QualityIncident")),
        category=str(payload.get("category") or "unknown"),
        status=status,
        detected_at=parse_timestamp(_require(payload, "detectedAt", "QualityIncident")),
        resolved_at=parse_timestamp(payload.get("resolvedAt")),
    )


def suggestion_from_dict(payload: Dict[str, Any]) -> Tuple[str, Suggestion]:
    """Parse a stored suggestion, returning it with its owning project id."""
    try:
        source = SuggestionSource(_require(payload, "source", "Suggestion"))
        status = SuggestionStatus(payload.get("status", SuggestionStatus.NEW.value))
    except ValueError as exc:
        raise DataValidationError(f"Unknown suggestion source or status in payload: {payload}") from exc

    created_at = parse_timestamp(_require(payload, "createdAt", "Suggestion"))
    suggestion = Suggestion(
        id=str(_require(payload, "id", "Suggestion")),
        text=str(_require(payload, "text", "Suggestion")),
        rationale=str(payload.get("rationale") or ""),
        source=source,
        status=status,
        created_at=created_at,
        updated_at=parse_timestamp(payload.get("updatedAt")) or created_at,
    )
    return str(_require(payload, "projectId", "Suggestion")), suggestion


def suggestion_to_dict(project_id: str, suggestion: Suggestion) -> Dict[str, Any]:
    return {"projectId": project_id, **to_jsonable(suggestion)}


def load_json_list(path: Path) -> List[Dict[str, Any]]:
    """Load a JSON file that must contain a list of objects.

    A missing file yields an empty list.
    """
    if not path.exists():
        return []

    with path.open(encoding="utf-8") as handle:
        try:
            payload = json.load(handle)
        except ValueError as exc:
            raise DataValidationError(f"Seed file '{path}' is not valid JSON.") from exc

    if not isinstance(payload, list):
        raise DataValidationError(f"Seed file '{path}' must contain a JSON list.")

    return payload


def dump_json_list(path: Path, items: Iterable[Dict[str, Any]]) -> None:
    """Write ``items`` as a JSON list, replacing ``path`` atomically.

    Raises:
        ConfigurationError: If the data directory is not writable.
    """
    temporary = path.with_name(f".{path.name}.tmp")
    try:
        with temporary.open("w", encoding="utf-8") as handle:
            json.dump(list(items), handle, indent=2)
            handle.write("\n")
        os.replace(temporary, path)
    except OSError as exc:
        raise ConfigurationError(f"Cannot write data file '{path}': {exc}") from exc
