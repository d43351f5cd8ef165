"""Centralized network boundary helpers."""

from __future__ import annotations

import urllib.error
import urllib.request


def http_get(url: str, timeout_seconds: int = 30) -> tuple[int, bytes]:
    """Fetch ``url`` and return the status code and raw body.

    HTTP error statuses are returned, not raised; connection problems raise
    ``OSError``.

    Example:
        ```python
        status, body = http_get("https://example.org/languages.yml")
        ```
    """
    req = urllib.request.Request(url, method="GET", headers={"User-Agent": "fence-runner"})
    try:
        with urllib.request.urlopen(req, timeout=timeout_seconds) as resp:  # nosec - caller controls endpoint
            return int(resp.status), resp.read()
    except urllib.error.HTTPError as exc:
        return int(exc.code), b""
