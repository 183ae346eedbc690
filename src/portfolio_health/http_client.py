"""Shared JSON-over-HTTP client used by the external integrations."""

from __future__ import annotations

import time
from typing import Any, Dict, Optional

import requests

from .errors import ApiError


class JsonApiClient:
    """Small ``requests`` wrapper with bounded timeouts and retry/backoff.

    Retries transport errors, HTTP 429, and HTTP 5xx with exponential
    backoff, honouring ``Retry-After`` when present. Every other failure is
    raised as ``ApiError`` so integrations can convert it to a fallback.
    """

    _MAX_RETRIES = 3
    _MAX_BACKOFF_SECONDS = 30

    def __init__(self, base_url: str, timeout_seconds: int = 15) -> None:
        """Initialize the client.

        Args:
            base_url: Absolute URL that request paths are resolved against.
            timeout_seconds: Per-request timeout in seconds.
        """
        self._base_url = base_url.rstrip("/")
        self._timeout_seconds = timeout_seconds

        self._session = requests.Session()
        self._session.headers.update({"Accept": "application/json"})

    def _build_url(self, path: str) -> str:
        if not path:
            return self._base_url
        return f"{self._base_url}/{path.lstrip('/')}"

    def _extract_backoff_seconds(self, response: requests.Response, attempt: int) -> int:
        """Compute exponential backoff seconds, honoring Retry-After when available."""
        retry_after_header = response.headers.get("Retry-After")
        if retry_after_header:
            try:
                retry_after_seconds = int(retry_after_header)
                return min(self._MAX_BACKOFF_SECONDS, max(1, retry_after_seconds))
            except ValueError:
                pass

        return min(self._MAX_BACKOFF_SECONDS, 2 ** (attempt - 1))

    def _request_json(
        self,
        method: str,
        path: str = "",
        params: Optional[Dict[str, Any]] = None,
        json_body: Optional[Dict[str, Any]] = None,
    ) -> Any:
        """Execute a request with retry logic for 429/5xx responses.

        Raises:
            ApiError: If the request repeatedly fails, returns HTTP >= 400,
                or does not return valid JSON.
        """
        url = self._build_url(path)
        last_error: Optional[Exception] = None

        for attempt in range(1, self._MAX_RETRIES + 1):
            try:
                response = self._session.request(
                    method,
                    url,
                    params=params,
                    json=json_body,
                    timeout=self._timeout_seconds,
                )
            except requests.RequestException as exc:
                last_error = exc
                if attempt == self._MAX_RETRIES:
                    raise ApiError(f"Request failed after retries: {method} {url}") from exc
                time.sleep(min(self._MAX_BACKOFF_SECONDS, 2 ** (attempt - 1)))
                continue

            status_code = response.status_code
            is_retryable = status_code == 429 or 500 <= status_code <= 599

            if is_retryable and attempt < self._MAX_RETRIES:
                time.sleep(self._extract_backoff_seconds(response, attempt))
                continue

            if status_code >= 400:
                raise ApiError(f"API request failed: {method} {url} returned {status_code} - {response.text}")

            try:
                return response.json()
            except ValueError as exc:
                raise ApiError(f"API returned invalid JSON: {method} {url}") from exc

        raise ApiError(f"Request failed after retries: {method} {url}") from last_error

    def _get_json(self, path: str = "", params: Optional[Dict[str, Any]] = None) -> Any:
        return self._request_json("GET", path, params=params)

    def _post_json(self, path: str, body: Dict[str, Any]) -> Any:
        return self._request_json("POST", path, json_body=body)
