"""HTTP side of index synchronization.

The Updater only sees a ``Fetcher``: any callable taking a remote path and
request headers and returning an ``httpx.Response``. ``HttpFetcher`` is the
default one, a thin httpx client with retry-with-backoff. Retrying is the
fetcher's business; the Updater never retries.
"""

from __future__ import annotations

import enum
import time
from collections.abc import Mapping
from typing import Protocol

import httpx

DEFAULT_TIMEOUT = 15.0
DEFAULT_MAX_RETRIES = 3
DEFAULT_BACKOFF_BASE = 1.0  # seconds


class ResponseKind(enum.Enum):
    FULL = "full"
    PARTIAL_CONTENT = "partial_content"
    NOT_MODIFIED = "not_modified"


class Fetcher(Protocol):
    def __call__(self, remote_path: str, headers: Mapping[str, str]) -> httpx.Response: ...


def classify(response: httpx.Response) -> ResponseKind:
    """206 → partial content, 304 → not modified, anything else → full."""
    if response.status_code == httpx.codes.PARTIAL_CONTENT:
        return ResponseKind.PARTIAL_CONTENT
    if response.status_code == httpx.codes.NOT_MODIFIED:
        return ResponseKind.NOT_MODIFIED
    return ResponseKind.FULL


def get_with_retry(
    url: str,
    *,
    client: httpx.Client | None = None,
    max_retries: int = DEFAULT_MAX_RETRIES,
    backoff_base: float = DEFAULT_BACKOFF_BASE,
    **kwargs,
) -> httpx.Response:
    """GET with exponential backoff on 429/5xx.

    Args:
        url: Request URL.
        client: Reuse this client; module-level ``httpx.get`` otherwise.
        max_retries: Maximum retry attempts (default 3).
        backoff_base: Base delay in seconds (default 1.0). Doubles each retry.
        **kwargs: Passed to the GET call (headers, timeout, etc.).

    Returns:
        The final httpx.Response (may still be an error after all retries).

    Raises:
        httpx.ConnectError, httpx.TimeoutException: On connection failure
            after all retries exhausted.
    """
    get = client.get if client is not None else httpx.get
    if client is None:
        kwargs.setdefault("timeout", DEFAULT_TIMEOUT)

    for attempt in range(max_retries + 1):
        try:
            resp = get(url, **kwargs)
        except (httpx.ConnectError, httpx.TimeoutException):
            if attempt < max_retries:
                time.sleep(backoff_base * (2 ** attempt))
                continue
            raise

        if resp.status_code == 429 or resp.status_code >= 500:
            if attempt < max_retries:
                wait = backoff_base * (2 ** attempt)
                # Respect Retry-After header
                retry_after = resp.headers.get("retry-after", "")
                if retry_after.isdigit():
                    wait = max(wait, float(retry_after))
                time.sleep(wait)
                continue

        return resp

    return resp  # type: ignore[possibly-undefined]


class HttpFetcher:
    """Fetch compact-index endpoints relative to a base URL."""

    def __init__(
        self,
        base_url: str,
        *,
        timeout: float = DEFAULT_TIMEOUT,
        max_retries: int = DEFAULT_MAX_RETRIES,
        backoff_base: float = DEFAULT_BACKOFF_BASE,
        client: httpx.Client | None = None,
    ):
        self.base_url = base_url.rstrip("/") + "/"
        self.timeout = timeout
        self.max_retries = max_retries
        self.backoff_base = backoff_base
        self._client = client

    def url_for(self, remote_path: str) -> str:
        return self.base_url + remote_path.lstrip("/")

    def __call__(self, remote_path: str, headers: Mapping[str, str]) -> httpx.Response:
        return get_with_retry(
            self.url_for(remote_path),
            client=self._client,
            max_retries=self.max_retries,
            backoff_base=self.backoff_base,
            headers=dict(headers),
            timeout=self.timeout,
            follow_redirects=True,
        )
