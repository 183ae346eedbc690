"""Configuration parsing and validation for the portfolio health engine."""

from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from .errors import ConfigurationError

DEFAULT_DATA_DIR = Path(__file__).parent / "data"
DEFAULT_TIMEOUT_SECONDS = 15


@dataclass(frozen=True)
class Config:
    """Validated runtime settings used by the engine and its integrations."""

    data_dir: Path
    pagespeed_api_key: str
    jira_host: str
    jira_email: str
    jira_token: str
    performance_webhook_url: str
    advisory_api_url: str
    advisory_api_key: str
    timeout_seconds: int = DEFAULT_TIMEOUT_SECONDS


def _env(name: str) -> str:
    return os.getenv(name, "").strip()


def _parse_timeout(raw: str) -> int:
    if not raw:
        return DEFAULT_TIMEOUT_SECONDS

    try:
        timeout = int(raw)
    except ValueError as exc:
        raise ConfigurationError(
            "Invalid value for 'PORTFOLIO_HEALTH_TIMEOUT_SECONDS': expected an integer."
        ) from exc

    if timeout <= 0:
        raise ConfigurationError(
            "Invalid value for 'PORTFOLIO_HEALTH_TIMEOUT_SECONDS': expected an integer greater than 0."
        )

    return timeout


def load_config(data_dir: Optional[str] = None) -> Config:
    """Build and validate application configuration from the environment.

    Missing integration credentials are not an error here: each integration
    falls back to stored or default data when it cannot authenticate.

    Args:
        data_dir: Optional override for the seed data directory. Takes
            precedence over ``PORTFOLIO_HEALTH_DATA_DIR``.

    Returns:
        A validated ``Config`` instance.

    Raises:
        ConfigurationError: If the data directory does not exist or the
            request timeout is not a positive integer.
    """
    resolved_dir = Path(data_dir or _env("PORTFOLIO_HEALTH_DATA_DIR") or DEFAULT_DATA_DIR)
    if not resolved_dir.is_dir():
        raise ConfigurationError(f"Seed data directory '{resolved_dir}' does not exist.")

    return Config(
        data_dir=resolved_dir,
        pagespeed_api_key=_env("GOOGLE_PAGESPEED_API_KEY") or _env("PAGESPEED_API_KEY"),
        jira_host=_env("JIRA_HOST").rstrip("/"),
        jira_email=_env("JIRA_EMAIL"),
        jira_token=_env("JIRA_PAT"),
        performance_webhook_url=_env("PERFORMANCE_WEBHOOK_URL"),
        advisory_api_url=_env("ADVISORY_API_URL"),
        advisory_api_key=_env("ADVISORY_API_KEY"),
        timeout_seconds=_parse_timeout(_env("PORTFOLIO_HEALTH_TIMEOUT_SECONDS")),
    )
