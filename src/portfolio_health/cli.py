"""Command-line argument parsing for the portfolio health engine."""

from __future__ import annotations

import argparse
from typing import Optional, Sequence

from .errors import DataValidationError
from .models import SuggestionStatus
from .quality import parse_month

LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR")
SUGGESTION_STATUSES = tuple(status.value for status in SuggestionStatus)


def _month(value: str) -> str:
    """Parse and validate a ``YYYY-MM`` CLI value.

    Raises:
        argparse.ArgumentTypeError: If value is not a valid month.
    """
    try:
        parse_month(value)
    except DataValidationError as exc:
        raise argparse.ArgumentTypeError("must be a month in YYYY-MM format") from exc

    return value


def _identifier(value: str) -> str:
    stripped = value.strip()
    if not stripped:
        raise argparse.ArgumentTypeError("must not be empty")
    return stripped


def parse_args(argv: Optional[Sequence[str]] = None) -> argparse.Namespace:
    """Parse command-line arguments.

    Returns:
        Parsed CLI arguments. ``command`` names the selected subcommand;
        project subcommands also carry ``project_id`` and refresh
        subcommands an optional ``month``.
    """
    parser = argparse.ArgumentParser(
        prog="portfolio-health",
        description=(
            "Portfolio health dashboard core: web performance, delivery flow and "
            "improvement suggestions across projects."
        ),
    )

    parser.add_argument(
        "--data-dir",
        default=None,
        help="Directory holding projects.json, metrics.json, quality_incidents.json and suggestions.json.",
    )
    parser.add_argument(
        "--log-level",
        type=str.upper,
        choices=LOG_LEVELS,
        default=None,
        help="Logging level (default: PORTFOLIO_HEALTH_LOG_LEVEL or WARNING).",
    )
    parser.add_argument(
        "--json",
        action="store_true",
        help="Print machine-readable JSON instead of a text report.",
    )
    parser.add_argument(
        "--dry-run",
        action="store_true",
        help="Do not write changes from mutating commands back to the data directory.",
    )

    subparsers = parser.add_subparsers(dest="command", required=True)

    subparsers.add_parser("portfolio", help="Show portfolio KPIs and monthly trend.")

    project_parser = subparsers.add_parser("project", help="Show one project's latest metrics.")
    project_parser.add_argument("project_id", type=_identifier, help="Project identifier.")

    suggestions_parser = subparsers.add_parser(
        "suggestions", help="Generate and list improvement suggestions for a project."
    )
    suggestions_parser.add_argument("project_id", type=_identifier, help="Project identifier.")

    accessibility_parser = subparsers.add_parser(
        "accessibility", help="Fetch a project's accessibility score from PageSpeed."
    )
    accessibility_parser.add_argument("project_id", type=_identifier, help="Project identifier.")

    for name, help_text in (
        ("refresh-flow", "Refresh a month's flow metrics from Jira."),
        ("refresh-performance", "Refresh a month's Core Web Vitals from the performance webhook."),
    ):
        refresh_parser = subparsers.add_parser(name, help=help_text)
        refresh_parser.add_argument("project_id", type=_identifier, help="Project identifier.")
        refresh_parser.add_argument(
            "--month",
            type=_month,
            default=None,
            help="Target month as YYYY-MM (default: current month).",
        )

    status_parser = subparsers.add_parser(
        "suggestion-status",
        help="Change a suggestion's status; closing one can request a replacement.",
    )
    status_parser.add_argument("project_id", type=_identifier, help="Project identifier.")
    status_parser.add_argument("suggestion_id", type=_identifier, help="Suggestion identifier.")
    status_parser.add_argument(
        "status",
        type=str.lower,
        choices=SUGGESTION_STATUSES,
        help="New status.",
    )
    status_parser.add_argument(
        "--completed-text",
        default=None,
        help="Text of the closed suggestion; when given, a replacement suggestion is generated.",
    )

    return parser.parse_args(argv)
