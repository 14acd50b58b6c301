"""Single HTTP request primitive with pacing and retries."""

from __future__ import annotations

import asyncio
import logging
import random
from dataclasses import dataclass, field
from typing import Any, Mapping

import httpx

from ..errors import TransportError
from ..ratelimit import RateLimiter

logger = logging.getLogger(__name__)

SUPPORTED_METHODS = frozenset({"GET", "POST", "PUT", "DELETE"})


@dataclass(frozen=True, slots=True)
class RetryPolicy:
    """Rules deciding when and how a request is attempted again.

    ``max_attempts`` counts every request made, the first one included. Zero
    disables the policy entirely and the request is sent exactly once.
    """

    max_attempts: int = 0
    retryable_status_codes: frozenset[int] = field(default_factory=frozenset)
    expected_content_type: str | None = None
    backoff_min: float = 1.0
    backoff_max: float = 5.0
    backoff_factor: float = 2.0
    jitter: bool = True

    def delay(self, retry_number: int) -> float:
        """Return the sleep before retry ``retry_number`` (zero based)."""

        ceiling = min(self.backoff_max, self.backoff_min * self.backoff_factor**retry_number)
        if not self.jitter:
            return ceiling
        return random.uniform(self.backoff_min, max(ceiling, self.backoff_min))

    def allows_retry(self, attempts_made: int) -> bool:
        return self.max_attempts > 0 and attempts_made < self.max_attempts

    def content_type_matches(self, content_type: str | None) -> bool:
        if not self.expected_content_type:
            return True
        observed = (content_type or "").lower()
        return self.expected_content_type.lower() in observed


NO_RETRY = RetryPolicy()

PROVIDER_DEFAULT_RETRY = RetryPolicy(max_attempts=5, backoff_min=1.0, backoff_max=5.0)

LIBRARY_DEFAULT_TIMEOUT = 120.0
LIBRARY_DEFAULT_RETRY = RetryPolicy(
    max_attempts=5,
    retryable_status_codes=frozenset({504}),
    backoff_min=1.0,
    backoff_max=5.0,
)


def join_url(base: str, *paths: str) -> str:
    """Join ``paths`` onto ``base`` with exactly one slash between segments."""

    segments = [segment.strip("/") for segment in paths if segment and segment.strip("/")]
    if not segments:
        return base.rstrip("/")
    return f"{base.rstrip('/')}/{'/'.join(segments)}"


async def send(
    client: httpx.AsyncClient,
    method: str,
    url: str,
    *,
    timeout: float | None = None,
    params: Mapping[str, Any] | None = None,
    headers: Mapping[str, str] | None = None,
    json: Any = None,
    retry: RetryPolicy = NO_RETRY,
    limiter: RateLimiter | None = None,
    follow_redirects: bool | None = None,
) -> httpx.Response:
    """Send a request, retrying per ``retry`` and pacing with ``limiter``.

    Transport failures are retried while attempts remain and then raised as
    :class:`TransportError`. Responses with a retryable status code or an
    unexpected content type are discarded and retried; once attempts run out
    the last response is returned untouched so the caller can inspect it.
    """

    verb = method.upper()
    if verb not in SUPPORTED_METHODS:
        raise ValueError(f"Request method {method!r} is not supported")

    request_timeout = httpx.Timeout(timeout) if timeout else httpx.USE_CLIENT_DEFAULT
    redirects = (
        httpx.USE_CLIENT_DEFAULT if follow_redirects is None else follow_redirects
    )
    attempts = 0

    while True:
        if limiter is not None:
            await limiter.take()

        attempts += 1
        try:
            response = await client.request(
                verb,
                url,
                params=params,
                headers=headers,
                json=json,
                timeout=request_timeout,
                follow_redirects=redirects,
            )
        except httpx.TransportError as exc:
            logger.debug("Failed requesting %s: %s", url, exc.__class__.__name__)
            if not retry.allows_retry(attempts):
                raise TransportError(
                    f"{verb} {url} failed after {attempts} attempt(s): {exc.__class__.__name__}"
                ) from exc
            backoff = retry.delay(attempts - 1)
            logger.info(
                "Transient error requesting %s (%s). Retrying in %.1fs",
                url,
                exc.__class__.__name__,
                backoff,
            )
            await asyncio.sleep(backoff)
            continue

        logger.debug("%s %s -> %s", verb, response.request.url, response.status_code)

        if not retry.allows_retry(attempts):
            return response

        if response.status_code in retry.retryable_status_codes:
            await response.aclose()
            backoff = retry.delay(attempts - 1)
            logger.info(
                "Retrying %s in %.1fs after status %s",
                url,
                backoff,
                response.status_code,
            )
            await asyncio.sleep(backoff)
            continue

        content_type = response.headers.get("content-type")
        if not retry.content_type_matches(content_type):
            await response.aclose()
            backoff = retry.delay(attempts - 1)
            logger.info(
                "Retrying %s in %.1fs after unexpected content type %r",
                url,
                backoff,
                content_type,
            )
            await asyncio.sleep(backoff)
            continue

        return response
