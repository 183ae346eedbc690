"""Entry point wiring configuration, storage, collaborators and engines."""

from __future__ import annotations

import argparse
import json
import logging
import os
import sys
from typing import Any, Optional, Sequence

from .advisory import build_advisory_generator
from .aggregation import portfolio_snapshot, project_trend
from .cli import parse_args
from .config import Config, load_config
from .errors import (
    ApiError,
    AuthenticationError,
    ConfigurationError,
    DataValidationError,
    NotFoundError,
)
from .jira_client import JiraFlowClient
from .models import Project, SuggestionStatus
from .pagespeed_client import PageSpeedClient, accessibility_for_project
from .refresh import refresh_flow_metrics, refresh_performance_metrics
from .repository import MemoryRepository
from .serialization import to_jsonable
from .stats import format_metric, generate_portfolio_report, generate_project_report
from .suggestions import SuggestionEngine, top_suggestions
from .webhook_client import PerformanceWebhookClient

logger = logging.getLogger(__name__)

EXIT_OK = 0
EXIT_UNEXPECTED = 1
EXIT_CONFIGURATION = 2
EXIT_AUTHENTICATION = 3
EXIT_API = 4
EXIT_NOT_FOUND = 5
EXIT_DATA_VALIDATION = 6

DEFAULT_LOG_LEVEL = "WARNING"

# Commands whose changes are written back to the data directory.
MUTATING_COMMANDS = frozenset({"suggestions", "suggestion-status", "refresh-flow", "refresh-performance"})


def configure_logging(level: Optional[str] = None) -> None:
    """Install the root handler; ``level`` overrides ``PORTFOLIO_HEALTH_LOG_LEVEL``."""
    resolved = (level or os.getenv("PORTFOLIO_HEALTH_LOG_LEVEL") or DEFAULT_LOG_LEVEL).upper()
    logging.basicConfig(
        level=getattr(logging, resolved, logging.WARNING),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


def _emit(payload: Any, as_json: bool, text: str) -> None:
    if as_json:
        print(json.dumps(to_jsonable(payload), indent=2))
    else:
        print(text)


def _require_project(repository: MemoryRepository, project_id: str) -> Project:
    project = repository.get_project(project_id)
    if project is None:
        raise NotFoundError(f"Project '{project_id}' was not found.")
    return project


def run_command(args: argparse.Namespace, config: Config, repository: MemoryRepository) -> None:
    """Execute one parsed subcommand and print its result."""
    if args.command == "portfolio":
        aggregated, trend = portfolio_snapshot(repository)
        _emit(
            {"aggregated": aggregated, "trend": trend},
            args.json,
            generate_portfolio_report(aggregated, trend),
        )
        return

    if args.command == "project":
        project = _require_project(repository, args.project_id)
        history = repository.get_project_metrics(project.id)
        latest = history[-1] if history else None
        suggestions = top_suggestions(repository.get_suggestions(project.id))
        _emit(
            {
                "project": project,
                "latest": latest,
                "trend": project_trend(project, history),
                "suggestions": suggestions,
            },
            args.json,
            generate_project_report(project.name, latest, suggestions),
        )
        return

    if args.command == "suggestions":
        project = _require_project(repository, args.project_id)
        engine = SuggestionEngine(repository, build_advisory_generator(config))
        shown = top_suggestions(engine.generate_suggestions(project.id))
        lines = [f"Suggestions for {project.name}"]
        if not shown:
            lines.append("No suggestions available.")
        for suggestion in shown:
            lines.append(f"- [{suggestion.source.value}] {suggestion.text}")
            lines.append(f"    {suggestion.rationale}")
        _emit(shown, args.json, "\n".join(lines))
        return

    if args.command == "suggestion-status":
        project = _require_project(repository, args.project_id)
        engine = SuggestionEngine(repository, build_advisory_generator(config))
        updated, next_suggestion = engine.complete_suggestion(
            project.id,
            args.suggestion_id,
            SuggestionStatus(args.status),
            args.completed_text,
        )
        lines = [f"Suggestion {updated.id} for {project.name} is now {updated.status.value}."]
        if next_suggestion is not None:
            lines.append(f"Next suggestion [{next_suggestion.source.value}]: {next_suggestion.text}")
        elif args.completed_text and updated.status is not SuggestionStatus.NEW:
            lines.append("No further suggestions available.")
        _emit({"updated": updated, "next": next_suggestion}, args.json, "\n".join(lines))
        return

    if args.command == "accessibility":
        client = PageSpeedClient(config.pagespeed_api_key, timeout_seconds=config.timeout_seconds)
        score = accessibility_for_project(repository, client, args.project_id)
        _emit(
            score,
            args.json,
            f"Accessibility for {args.project_id}: {format_metric(score.score, 'percentage')} "
            f"(source: {score.source.value})",
        )
        return

    if args.command == "refresh-flow":
        jira_client = JiraFlowClient.from_config(config)
        updated = refresh_flow_metrics(repository, jira_client, args.project_id, args.month)
        if updated is None:
            raise ApiError(f"Failed to fetch flow metrics from Jira for project '{args.project_id}'.")
        _emit(
            updated,
            args.json,
            f"Updated flow metrics for {args.project_id} ({updated.month}): "
            f"throughput {format_metric(updated.flow.throughput_ratio, 'percentage')}, "
            f"WIP {format_metric(updated.flow.wip_ratio, 'percentage')}",
        )
        return

    if args.command == "refresh-performance":
        webhook_client = PerformanceWebhookClient(
            config.performance_webhook_url, timeout_seconds=config.timeout_seconds
        )
        updated = refresh_performance_metrics(repository, webhook_client, args.project_id, args.month)
        if updated is None:
            _emit(None, args.json, f"No live performance data for {args.project_id}; stored metrics kept.")
            return
        vitals = updated.perf.core_web_vitals
        _emit(
            updated,
            args.json,
            f"Updated Core Web Vitals for {args.project_id} ({updated.month}): "
            f"LCP {vitals.lcp:.2f}s, CLS {vitals.cls:.3f}, INP {vitals.inp:.0f}ms",
        )
        return

    raise ConfigurationError(f"Unknown command '{args.command}'.")


def orchestrate(argv: Optional[Sequence[str]] = None) -> int:
    """Run the CLI flow and translate errors into process exit codes.

    Returns:
        0 on success, 2 for configuration errors, 3 for authentication
        errors, 4 for API errors, 5 when a referenced record is missing,
        6 for invalid data, and 1 for any other error.
    """
    try:
        args = parse_args(argv)
        configure_logging(args.log_level)
        config = load_config(data_dir=args.data_dir)
        repository = MemoryRepository.from_seed(config.data_dir)
        run_command(args, config, repository)
        if args.command in MUTATING_COMMANDS and not args.dry_run:
            repository.save(config.data_dir)
        return EXIT_OK
    except ConfigurationError as exc:
        print(f"Configuration error: {exc}", file=sys.stderr)
        return EXIT_CONFIGURATION
    except AuthenticationError as exc:
        print(f"Authentication error: {exc}", file=sys.stderr)
        return EXIT_AUTHENTICATION
    except ApiError as exc:
        print(f"API error: {exc}", file=sys.stderr)
        return EXIT_API
    except NotFoundError as exc:
        print(f"Not found: {exc}", file=sys.stderr)
        return EXIT_NOT_FOUND
    except DataValidationError as exc:
        print(f"Data validation error: {exc}", file=sys.stderr)
        return EXIT_DATA_VALIDATION
    except Exception as exc:  # noqa: BLE001
        logger.exception("Unexpected error")
        print(f"Unexpected error: {exc}", file=sys.stderr)
        return EXIT_UNEXPECTED


def main() -> None:
    sys.exit(orchestrate())


if __name__ == "__main__":
    main()
