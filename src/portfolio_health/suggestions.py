"""Rule and advisory driven improvement suggestions.

Suggestions for a project come from two sources, in this order:

1. the advisory generator (``source=ai``), at most three per call,
2. the fixed rule catalog below (``source=rule``), at most three per call,
   taken in catalog order.

A suggestion's text is never issued twice for the same project, whatever
the status of the earlier suggestion. Storage keeps at most three AI
suggestions per project; the repository evicts the oldest on creation.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Callable, Dict, FrozenSet, List, Optional, Sequence, Set, Tuple

from .advisory import AdvisoryGenerator
from .errors import InvalidTransitionError, NotFoundError
from .models import ProjectMetrics, Suggestion, SuggestionDraft, SuggestionSource, SuggestionStatus
from .repository import MemoryRepository
from .scoring import cwv_score

logger = logging.getLogger(__name__)

MAX_NEW_AI_SUGGESTIONS = 3
MAX_NEW_RULE_SUGGESTIONS = 3
DISPLAY_LIMIT = 3


@dataclass(frozen=True, slots=True)
class SuggestionRule:
    """One catalog entry: a condition over the latest metrics and its advice."""

    id: str
    condition: Callable[[ProjectMetrics], bool]
    text: str
    rationale: str


SUGGESTION_RULES: Tuple[SuggestionRule, ...] = (
    SuggestionRule(
        id="cwv-optimization",
        condition=lambda m: cwv_score(m.perf.core_web_vitals) < 75,
        text="Optimize Core Web Vitals: reduce LCP, minimize layout shifts, improve responsiveness",
        rationale=(
            "Core Web Vitals score is below 75. Focus on image optimization, layout stability, "
            "and interaction responsiveness."
        ),
    ),
    SuggestionRule(
        id="a11y-improvements",
        condition=lambda m: m.perf.accessibility < 0.9,
        text="Add landmarks, fix contrast, label interactive elements",
        rationale="Accessibility score is below 90%. Improving accessibility makes your site usable by everyone.",
    ),
    SuggestionRule(
        id="best-practices",
        condition=lambda m: m.perf.best_practices < 0.9,
        text="Audit third-party scripts, upgrade deps, enable HTTPS security headers",
        rationale="Best practices score is below 90%. Following web standards improves security and reliability.",
    ),
    SuggestionRule(
        id="seo-improvements",
        condition=lambda m: m.perf.seo < 0.9,
        text="Improve metadata, structured data, fix link texts",
        rationale="SEO score is below 90%. Better SEO increases discoverability and search rankings.",
    ),
    SuggestionRule(
        id="throughput-wip",
        condition=lambda m: m.flow.throughput_ratio < 0.5 or m.flow.wip_ratio > 0.5,
        text="Limit WIP, smaller batches, enforce WIP policies",
        rationale=(
            "Low throughput or high WIP ratio indicates workflow inefficiencies. "
            "Limiting work in progress improves flow."
        ),
    ),
    SuggestionRule(
        id="cycle-time",
        condition=lambda m: m.flow.cycle_time_p85 > 7,
        text="Split work, reduce handoffs, add QA shift-left",
        rationale=(
            "85th percentile cycle time exceeds 7 days. Breaking down work and reducing dependencies "
            "speeds delivery."
        ),
    ),
    SuggestionRule(
        id="quality-gates",
        condition=lambda m: m.flow.quality_special < 0.7,
        text="Add QA gates, increase automated checks",
        rationale=(
            "Quality metrics are below 70%. Adding quality gates and automation prevents defects "
            "reaching production."
        ),
    ),
    SuggestionRule(
        id="image-modernization",
        condition=lambda m: cwv_score(m.perf.core_web_vitals) < 60,
        text="Implement next-gen image formats (WebP, AVIF) with fallbacks",
        rationale=(
            "Poor Core Web Vitals often correlate with unoptimized images. Modern formats reduce "
            "bandwidth by 30-50%."
        ),
    ),
    SuggestionRule(
        id="code-splitting",
        condition=lambda m: cwv_score(m.perf.core_web_vitals) < 60,
        text="Implement dynamic imports and code splitting for better bundle sizes",
        rationale=(
            "Large JavaScript bundles slow initial page loads and hurt Core Web Vitals. Code splitting "
            "loads only necessary code upfront."
        ),
    ),
    SuggestionRule(
        id="caching-strategy",
        condition=lambda m: cwv_score(m.perf.core_web_vitals) < 70,
        text="Implement aggressive caching strategies for static assets",
        rationale="Caching reduces server load and improves repeat visit performance significantly.",
    ),
    SuggestionRule(
        id="monitoring-alerts",
        condition=lambda m: m.flow.quality_special < 0.8,
        text="Set up performance monitoring and alerts for core metrics",
        rationale=(
            "Proactive monitoring catches issues before they impact users and helps maintain quality standards."
        ),
    ),
    SuggestionRule(
        id="workflow-automation",
        condition=lambda m: m.flow.cycle_time_p50 > 5,
        text="Automate testing and deployment pipelines to reduce manual overhead",
        rationale=(
            "Manual processes introduce delays and errors. Automation accelerates delivery and improves consistency."
        ),
    ),
)

# Re-applying the current status is always allowed and only refreshes updated_at.
ALLOWED_TRANSITIONS: Dict[SuggestionStatus, FrozenSet[SuggestionStatus]] = {
    SuggestionStatus.NEW: frozenset({SuggestionStatus.DONE, SuggestionStatus.IRRELEVANT}),
    SuggestionStatus.DONE: frozenset({SuggestionStatus.NEW}),
    SuggestionStatus.IRRELEVANT: frozenset({SuggestionStatus.NEW}),
}


def applicable_rules(metrics: ProjectMetrics, exclude_texts: Set[str] | FrozenSet[str]) -> List[SuggestionRule]:
    """Return the rules that fire for ``metrics``, in catalog order, minus excluded texts."""
    return [rule for rule in SUGGESTION_RULES if rule.condition(metrics) and rule.text not in exclude_texts]


def top_suggestions(suggestions: Sequence[Suggestion], limit: int = DISPLAY_LIMIT) -> List[Suggestion]:
    """Select the suggestions to display.

    Newest first: up to ``limit`` AI suggestions, with the remaining slots
    filled by rule suggestions.
    """
    ordered = sorted(suggestions, key=lambda item: item.created_at, reverse=True)
    ai = [item for item in ordered if item.source is SuggestionSource.AI][:limit]
    rules = [item for item in ordered if item.source is SuggestionSource.RULE]
    return ai + rules[: limit - len(ai)]


class SuggestionEngine:
    """Generate and manage per-project suggestions."""

    def __init__(self, repository: MemoryRepository, advisory_generator: AdvisoryGenerator) -> None:
        self._repository = repository
        self._advisory_generator = advisory_generator

    def _accepted_drafts(self, drafts: Sequence[SuggestionDraft], exclude_texts: Set[str]) -> List[SuggestionDraft]:
        """Drop drafts whose text is excluded or repeated within the response."""
        accepted: List[SuggestionDraft] = []
        seen: Set[str] = set()
        for draft in drafts:
            if not draft.text or draft.text in exclude_texts or draft.text in seen:
                logger.debug("Skipping advisory draft", extra={"text": draft.text})
                continue
            seen.add(draft.text)
            accepted.append(draft)
        return accepted

    def _advisory_drafts(
        self,
        project_id: str,
        latest: ProjectMetrics,
        completed_text: Optional[str] = None,
    ) -> List[SuggestionDraft]:
        """Ask the advisory generator for drafts without holding the project lock.

        The returned drafts are unfiltered; callers re-check them against the
        suggestions stored at the time they write.
        """
        exclude_texts = frozenset(suggestion.text for suggestion in self._repository.get_suggestions(project_id))
        return list(
            self._advisory_generator.generate(
                project=self._repository.get_project(project_id),
                latest_metrics=latest,
                historical_metrics=self._repository.get_project_metrics(project_id),
                exclude_texts=exclude_texts,
                completed_suggestion_text=completed_text,
            )
        )

    def generate_suggestions(self, project_id: str) -> List[Suggestion]:
        """Create new suggestions for a project and return the full list.

        Returns an empty list when the project has no metrics. Existing
        suggestions come first, followed by the newly created ones. The
        advisory call happens before the project lock is taken, so slow
        advisory services do not block readers of the project.
        """
        latest = self._repository.get_latest_metrics(project_id)
        if latest is None:
            logger.info("No metrics available; skipping suggestions", extra={"project_id": project_id})
            return []

        drafts = self._advisory_drafts(project_id, latest)

        with self._repository.project_lock(project_id):
            latest = self._repository.get_latest_metrics(project_id) or latest
            existing = self._repository.get_suggestions(project_id)
            exclude_texts = {suggestion.text for suggestion in existing}
            created: List[Suggestion] = []

            for draft in self._accepted_drafts(drafts, exclude_texts)[:MAX_NEW_AI_SUGGESTIONS]:
                suggestion = self._repository.create_suggestion(
                    project_id,
                    text=draft.text,
                    rationale=draft.rationale,
                    source=SuggestionSource.AI,
                    status=SuggestionStatus.NEW,
                )
                exclude_texts.add(suggestion.text)
                created.append(suggestion)

            for rule in applicable_rules(latest, exclude_texts)[:MAX_NEW_RULE_SUGGESTIONS]:
                created.append(
                    self._repository.create_suggestion(
                        project_id,
                        text=rule.text,
                        rationale=rule.rationale,
                        source=SuggestionSource.RULE,
                        status=SuggestionStatus.NEW,
                    )
                )

        logger.info(
            "Generated suggestions",
            extra={
                "project_id": project_id,
                "existing": len(existing),
                "created_ai": sum(1 for item in created if item.source is SuggestionSource.AI),
                "created_rule": sum(1 for item in created if item.source is SuggestionSource.RULE),
            },
        )
        return existing + created

    def get_next_suggestion(self, project_id: str, completed_text: str) -> Optional[Suggestion]:
        """Create at most one replacement suggestion after a completion.

        Prefers the first acceptable advisory draft, then the first rule that
        fires and has not been issued yet. Returns ``None`` when nothing
        qualifies.
        """
        latest = self._repository.get_latest_metrics(project_id)
        if latest is None:
            return None

        drafts = self._advisory_drafts(project_id, latest, completed_text)

        with self._repository.project_lock(project_id):
            latest = self._repository.get_latest_metrics(project_id) or latest
            exclude_texts = {suggestion.text for suggestion in self._repository.get_suggestions(project_id)}

            accepted = self._accepted_drafts(drafts, exclude_texts)
            if accepted:
                return self._repository.create_suggestion(
                    project_id,
                    text=accepted[0].text,
                    rationale=accepted[0].rationale,
                    source=SuggestionSource.AI,
                    status=SuggestionStatus.NEW,
                )

            rules = applicable_rules(latest, exclude_texts)
            if not rules:
                logger.info("No further suggestions available", extra={"project_id": project_id})
                return None

            return self._repository.create_suggestion(
                project_id,
                text=rules[0].text,
                rationale=rules[0].rationale,
                source=SuggestionSource.RULE,
                status=SuggestionStatus.NEW,
            )

    def update_suggestion_status(
        self,
        project_id: str,
        suggestion_id: str,
        status: SuggestionStatus,
    ) -> Suggestion:
        """Change a suggestion's status.

        Raises:
            NotFoundError: If the suggestion does not exist for the project.
            InvalidTransitionError: If the status change is not allowed.
        """
        with self._repository.project_lock(project_id):
            current = next(
                (item for item in self._repository.get_suggestions(project_id) if item.id == suggestion_id),
                None,
            )
            if current is None:
                raise NotFoundError(f"Suggestion '{suggestion_id}' was not found for project '{project_id}'.")

            if status is not current.status and status not in ALLOWED_TRANSITIONS[current.status]:
                raise InvalidTransitionError(
                    f"Cannot change suggestion '{suggestion_id}' from '{current.status.value}' to '{status.value}'."
                )

            updated = self._repository.update_suggestion(project_id, suggestion_id, status=status)
            if updated is None:
                raise NotFoundError(f"Suggestion '{suggestion_id}' was not found for project '{project_id}'.")

        logger.info(
            "Updated suggestion status",
            extra={"project_id": project_id, "suggestion_id": suggestion_id, "status": status.value},
        )
        return updated

    def complete_suggestion(
        self,
        project_id: str,
        suggestion_id: str,
        status: SuggestionStatus,
        completed_text: Optional[str] = None,
    ) -> Tuple[Suggestion, Optional[Suggestion]]:
        """Update a suggestion and, when it was closed, request a replacement.

        The replacement is a separate step that only runs for ``done`` or
        ``irrelevant`` with a non-empty ``completed_text``.
        """
        updated = self.update_suggestion_status(project_id, suggestion_id, status)

        next_suggestion: Optional[Suggestion] = None
        if status in (SuggestionStatus.DONE, SuggestionStatus.IRRELEVANT) and completed_text:
            next_suggestion = self.get_next_suggestion(project_id, completed_text)

        return updated, next_suggestion
