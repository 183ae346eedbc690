"""In-memory repository for projects, metrics, suggestions, and incidents.

The repository owns every collection. Records are immutable dataclasses, so
callers receive values they cannot use to alter shared state; all changes go
through repository methods.

Each project has a re-entrant lock. Every read-modify-write sequence on a
project's metrics or suggestions runs under that lock, which makes metric
upserts atomic per ``(project_id, month)`` and keeps suggestion creation
plus AI rotation atomic per project.
"""

from __future__ import annotations

import logging
import threading
import uuid
from contextlib import contextmanager
from dataclasses import replace
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Callable, Dict, Iterable, Iterator, List, Optional, Tuple

from .models import (
    Project,
    ProjectMetrics,
    QualityIncident,
    Suggestion,
    SuggestionSource,
    SuggestionStatus,
)
from .quality import enrich_quality_window, parse_month
from .serialization import (
    dump_json_list,
    incident_from_dict,
    load_json_list,
    metrics_from_dict,
    project_from_dict,
    suggestion_from_dict,
    suggestion_to_dict,
    to_jsonable,
)

logger = logging.getLogger(__name__)

MAX_AI_SUGGESTIONS = 3

PROJECTS_FILE = "projects.json"
METRICS_FILE = "metrics.json"
INCIDENTS_FILE = "quality_incidents.json"
SUGGESTIONS_FILE = "suggestions.json"


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class MemoryRepository:
    """Thread-safe in-memory store loaded from and saved to JSON data files."""

    def __init__(
        self,
        projects: Iterable[Project] = (),
        metrics: Iterable[ProjectMetrics] = (),
        incidents: Iterable[QualityIncident] = (),
        suggestions: Iterable[Tuple[str, Suggestion]] = (),
        now: Callable[[], datetime] = _utcnow,
    ) -> None:
        self._now = now
        self._projects: Dict[str, Project] = {project.id: project for project in projects}
        self._metrics: Dict[str, Dict[str, ProjectMetrics]] = {}
        self._suggestions: Dict[str, List[Suggestion]] = {}
        self._incidents: Tuple[QualityIncident, ...] = tuple(incidents)

        self._registry_lock = threading.Lock()
        self._project_locks: Dict[str, threading.RLock] = {}

        for metric in metrics:
            parse_month(metric.month)
            self._metrics.setdefault(metric.project_id, {})[metric.month] = metric

        for project_id, suggestion in suggestions:
            self._suggestions.setdefault(project_id, []).append(suggestion)

    @classmethod
    def from_seed(cls, data_dir: Path, now: Callable[[], datetime] = _utcnow) -> "MemoryRepository":
        """Create a repository from the JSON files in ``data_dir``.

        ``suggestions.json`` is optional; it is written by ``save``.

        Raises:
            DataValidationError: If a fixture is malformed.
        """
        projects = [project_from_dict(item) for item in load_json_list(data_dir / PROJECTS_FILE)]
        metrics = [metrics_from_dict(item) for item in load_json_list(data_dir / METRICS_FILE)]
        incidents = [incident_from_dict(item) for item in load_json_list(data_dir / INCIDENTS_FILE)]
        suggestions = [suggestion_from_dict(item) for item in load_json_list(data_dir / SUGGESTIONS_FILE)]

        logger.info(
            "Loaded seed data",
            extra={
                "data_dir": str(data_dir),
                "projects": len(projects),
                "metrics": len(metrics),
                "incidents": len(incidents),
                "suggestions": len(suggestions),
            },
        )

        return cls(projects=projects, metrics=metrics, incidents=incidents, suggestions=suggestions, now=now)

    @contextmanager
    def project_lock(self, project_id: str) -> Iterator[None]:
        """Hold the re-entrant lock guarding one project's mutable state."""
        with self._registry_lock:
            lock = self._project_locks.setdefault(project_id, threading.RLock())
        with lock:
            yield

    # Projects

    def get_projects(self) -> List[Project]:
        with self._registry_lock:
            return list(self._projects.values())

    def get_project(self, project_id: str) -> Optional[Project]:
        with self._registry_lock:
            return self._projects.get(project_id)

    def create_or_update_project(self, project: Project) -> Project:
        """Insert ``project`` or replace the record with the same id."""
        stored = replace(project, updated_at=self._now())
        with self._registry_lock:
            self._projects[stored.id] = stored
        return stored

    def update_project(self, project_id: str, **changes: Any) -> Optional[Project]:
        """Apply partial changes to an existing project; ``None`` if absent."""
        for immutable in ("id", "updated_at"):
            changes.pop(immutable, None)
        with self._registry_lock:
            current = self._projects.get(project_id)
            if current is None:
                return None
            updated = replace(current, **changes, updated_at=self._now())
            self._projects[project_id] = updated
            return updated

    # Metrics

    def _enrich(self, project_id: str, metric: ProjectMetrics) -> ProjectMetrics:
        return enrich_quality_window(project_id, metric, self._incidents)

    def get_project_metrics(self, project_id: str, month: Optional[str] = None) -> List[ProjectMetrics]:
        """Return a project's enriched metrics ordered by month."""
        with self.project_lock(project_id):
            stored = [
                metric
                for metric_month, metric in self._metrics.get(project_id, {}).items()
                if month is None or metric_month == month
            ]
        return [self._enrich(project_id, metric) for metric in sorted(stored, key=lambda m: m.month)]

    def get_latest_metrics(self, project_id: str) -> Optional[ProjectMetrics]:
        """Return the enriched metrics with the greatest ``month``, if any."""
        with self.project_lock(project_id):
            stored = list(self._metrics.get(project_id, {}).values())
        if not stored:
            return None
        return self._enrich(project_id, max(stored, key=lambda m: m.month))

    def upsert_project_metrics(self, metric: ProjectMetrics) -> ProjectMetrics:
        """Store ``metric`` under its key (last write wins) and return it enriched.

        Raises:
            DataValidationError: If ``metric.month`` is malformed.
        """
        parse_month(metric.month)
        with self.project_lock(metric.project_id):
            project_metrics = self._metrics.setdefault(metric.project_id, {})
            existed = metric.month in project_metrics
            project_metrics[metric.month] = metric
            enriched = self._enrich(metric.project_id, metric)

        logger.info(
            "Upserted project metrics",
            extra={"project_id": metric.project_id, "month": metric.month, "replaced": existed},
        )
        return enriched

    # Suggestions

    def get_suggestions(self, project_id: str) -> List[Suggestion]:
        with self.project_lock(project_id):
            return list(self._suggestions.get(project_id, []))

    def create_suggestion(
        self,
        project_id: str,
        text: str,
        rationale: str,
        source: SuggestionSource,
        status: SuggestionStatus = SuggestionStatus.NEW,
    ) -> Suggestion:
        """Append a suggestion, then rotate AI suggestions down to the cap.

        After an AI suggestion is created, only the newest
        ``MAX_AI_SUGGESTIONS`` AI suggestions (any status) are kept; older
        ones are removed from the project's list. Rule suggestions are never
        evicted.
        """
        timestamp = self._now()
        suggestion = Suggestion(
            id=uuid.uuid4().hex,
            text=text,
            rationale=rationale,
            source=source,
            status=status,
            created_at=timestamp,
            updated_at=timestamp,
        )

        with self.project_lock(project_id):
            suggestions = self._suggestions.setdefault(project_id, [])
            suggestions.append(suggestion)

            if source is SuggestionSource.AI:
                self._rotate_ai_suggestions(project_id)

        return suggestion

    def _rotate_ai_suggestions(self, project_id: str) -> None:
        suggestions = self._suggestions[project_id]
        # Stable sort keeps insertion order for identical timestamps.
        ai_suggestions = sorted(
            (item for item in suggestions if item.source is SuggestionSource.AI),
            key=lambda item: item.created_at,
        )
        excess = len(ai_suggestions) - MAX_AI_SUGGESTIONS
        if excess <= 0:
            return

        evicted = {item.id for item in ai_suggestions[:excess]}
        self._suggestions[project_id] = [item for item in suggestions if item.id not in evicted]

        logger.info(
            "Evicted oldest AI suggestions",
            extra={"project_id": project_id, "evicted": len(evicted)},
        )

    def update_suggestion(self, project_id: str, suggestion_id: str, **changes: Any) -> Optional[Suggestion]:
        """Apply partial changes to a suggestion; ``None`` if absent."""
        for immutable in ("id", "created_at", "updated_at"):
            changes.pop(immutable, None)

        with self.project_lock(project_id):
            suggestions = self._suggestions.get(project_id, [])
            for index, current in enumerate(suggestions):
                if current.id == suggestion_id:
                    updated = replace(current, **changes, updated_at=self._now())
                    suggestions[index] = updated
                    return updated

        return None

    # Persistence

    def save(self, data_dir: Path) -> None:
        """Write projects, metrics and suggestions back to ``data_dir``.

        Metrics are written as stored; their quality fields are recomputed
        on every read anyway. The incident ledger is read-only and its file
        is left untouched.

        Raises:
            ConfigurationError: If a data file cannot be written.
        """
        with self._registry_lock:
            projects = sorted(self._projects.values(), key=lambda project: project.id)
            project_ids = sorted(set(self._projects) | set(self._metrics) | set(self._suggestions))

        metrics: List[ProjectMetrics] = []
        suggestions: List[Tuple[str, Suggestion]] = []
        for project_id in project_ids:
            with self.project_lock(project_id):
                metrics.extend(sorted(self._metrics.get(project_id, {}).values(), key=lambda m: m.month))
                suggestions.extend((project_id, item) for item in self._suggestions.get(project_id, []))

        dump_json_list(data_dir / PROJECTS_FILE, (to_jsonable(project) for project in projects))
        dump_json_list(data_dir / METRICS_FILE, (to_jsonable(metric) for metric in metrics))
        dump_json_list(
            data_dir / SUGGESTIONS_FILE,
            (suggestion_to_dict(project_id, item) for project_id, item in suggestions),
        )

        logger.info(
            "Saved repository",
            extra={
                "data_dir": str(data_dir),
                "projects": len(projects),
                "metrics": len(metrics),
                "suggestions": len(suggestions),
            },
        )

    # Quality incidents

    def get_quality_incidents(self, project_id: str) -> List[QualityIncident]:
        return [incident for incident in self._incidents if incident.project_id == project_id]
