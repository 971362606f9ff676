"""Byte fetching for identity record sources, with bounded retry."""

from __future__ import annotations

import http.client
import logging
import random
import ssl
import time
import urllib.error
import urllib.request
from collections.abc import Iterator
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Callable

from cmsauth.certs import CertCache
from cmsauth.errors import SourceUnavailable

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT_SECONDS = 30.0

Opener = Callable[..., Any]

# every way a GET of the identity source can fail short of a bug in our code
_SOURCE_ERRORS = (OSError, ValueError, http.client.HTTPException)


@dataclass(frozen=True)
class RetryPolicy:
    """How often an identity source GET is repeated before giving up.

    Only transient failures are retried: gateway/throttling statuses and
    connection-level ``URLError``. Everything else fails on the first attempt.
    """

    attempts: int = 3
    base_delay_seconds: float = 0.1
    max_delay_seconds: float = 2.0
    jitter_ratio: float = 0.2

    def should_retry(self, error: Exception) -> bool:
        if isinstance(error, urllib.error.HTTPError):
            return error.code in (429, 502, 503, 504)
        return isinstance(error, urllib.error.URLError)

    def delays(self) -> Iterator[float]:
        """Yield the pause before each retry, doubling up to ``max_delay_seconds``."""
        delay = max(0.0, self.base_delay_seconds)
        ceiling = max(delay, self.max_delay_seconds)
        for _ in range(max(1, self.attempts) - 1):
            window = delay * max(0.0, self.jitter_ratio)
            yield max(0.0, delay + random.uniform(-window, window)) if window else delay
            delay = min(ceiling, delay * 2)


DEFAULT_RETRY = RetryPolicy()


def read_token(value: str) -> str:
    """Return the content of ``value`` when it names a file, else ``value`` itself."""
    path = Path(value) if value else None
    if path is not None and path.is_file():
        return path.read_text(encoding="utf-8").replace("\n", "")
    return value


def _client_context(cert_cache: CertCache) -> ssl.SSLContext | None:
    bundle = cert_cache.get()
    if bundle is None:
        return None
    context = ssl.create_default_context()
    context.load_cert_chain(bundle.cert_file, bundle.key_file)
    return context


def _get_with_retry(
    open_url: Opener,
    request: urllib.request.Request,
    kwargs: dict[str, Any],
    retry: RetryPolicy,
    sleep: Callable[[float], None],
) -> bytes:
    delays = retry.delays()
    attempt = 1
    while True:
        try:
            with open_url(request, **kwargs) as response:
                return response.read()
        except Exception as error:  # noqa: BLE001
            delay = next(delays, None) if retry.should_retry(error) else None
            if delay is None:
                raise
            logger.info("GET %s attempt %d failed (%s), retrying", request.full_url, attempt, error)
            sleep(delay)
            attempt += 1


def fetch_json_bytes(
    url: str,
    *,
    token: str | None = None,
    timeout: float = DEFAULT_TIMEOUT_SECONDS,
    retry: RetryPolicy = DEFAULT_RETRY,
    sleep: Callable[[float], None] = time.sleep,
    opener: Opener | None = None,
    cert_cache: CertCache | None = None,
) -> bytes:
    """GET ``url`` expecting JSON.

    A bearer ``token`` takes precedence; without one, client certificates from
    ``cert_cache`` are presented when available. Any failure to reach or read
    the source, including a malformed URL or unusable certificates, is raised
    as :class:`SourceUnavailable`.
    """
    headers = {"Accept": "application/json"}
    if token:
        headers["Authorization"] = f"Bearer {token}"
    try:
        request = urllib.request.Request(url, method="GET", headers=headers)
        kwargs: dict[str, Any] = {"timeout": timeout}
        if not token and cert_cache is not None:
            context = _client_context(cert_cache)
            if context is not None:
                kwargs["context"] = context
        body = _get_with_retry(opener or urllib.request.urlopen, request, kwargs, retry, sleep)
    except SourceUnavailable:
        raise
    except _SOURCE_ERRORS as error:
        raise SourceUnavailable(f"Unable to fetch {url}: {error}") from error
    logger.debug("fetched %d bytes from %s", len(body), url)
    return body
