"""
Retry helpers with exponential backoff for the outbound HTTP clients.

Polymarket's Gamma and CLOB APIs rate-limit and occasionally 5xx; local
LLM servers are slow and sometimes not running at all. Each gets its own
RetryConfig. ConnectionHealthMonitor records per-upstream success and error
counts for the /health endpoint.
"""

import asyncio
import logging
import random
import time
from typing import Optional

import aiohttp

logger = logging.getLogger(__name__)


class RetryConfig:
    """Configuration for retry behavior."""

    def __init__(
        self,
        max_retries: int = 3,
        base_delay: float = 1.0,
        max_delay: float = 60.0,
        exponential_base: float = 2.0,
        jitter: bool = True,
        retryable_exceptions: Optional[tuple] = None,
        retryable_status_codes: Optional[set] = None,
    ):
        """
        Args:
            max_retries: Maximum number of retry attempts (0 = single attempt)
            base_delay: Initial delay in seconds
            max_delay: Maximum delay cap in seconds
            exponential_base: Base for exponential backoff (2.0 = 1s, 2s, 4s...)
            jitter: Add random jitter to the delay
            retryable_exceptions: Exception types to retry on
            retryable_status_codes: HTTP status codes to retry on
        """
        self.max_retries = max_retries
        self.base_delay = base_delay
        self.max_delay = max_delay
        self.exponential_base = exponential_base
        self.jitter = jitter
        self.retryable_exceptions = retryable_exceptions or (
            aiohttp.ClientError,
            asyncio.TimeoutError,
            ConnectionError,
            OSError,
        )
        self.retryable_status_codes = retryable_status_codes or {
            408,  # Request Timeout
            429,  # Too Many Requests
            500,  # Internal Server Error
            502,  # Bad Gateway
            503,  # Service Unavailable
            504,  # Gateway Timeout
        }


# Polymarket Gamma / CLOB reads
HTTP_RETRY_CONFIG = RetryConfig(
    max_retries=3,
    base_delay=1.0,
    max_delay=30.0,
)

LLM_RETRY_CONFIG = RetryConfig(
    max_retries=1,  # Generation is slow; one retry on transient failure
    base_delay=1.0,
    max_delay=5.0,
)

# Availability probes should answer fast and never back off
PROBE_RETRY_CONFIG = RetryConfig(max_retries=0)


def calculate_delay(attempt: int, config: RetryConfig) -> float:
    """Delay before retry `attempt` (0-based), with up to 25% jitter."""
    delay = config.base_delay * (config.exponential_base ** attempt)
    delay = min(delay, config.max_delay)

    if config.jitter:
        jitter_range = delay * 0.25
        delay += random.uniform(-jitter_range, jitter_range)

    return max(0.1, delay)


async def retry_http_request(
    session: aiohttp.ClientSession,
    method: str,
    url: str,
    config: Optional[RetryConfig] = None,
    **kwargs,
) -> aiohttp.ClientResponse:
    """
    Execute an HTTP request, retrying on transport errors and retryable statuses.

    The final response is returned even if its status is retryable, so the
    caller decides how to treat it. Transport errors on the last attempt
    are re-raised.

    Example:
        resp = await retry_http_request(session, "GET", url, params=params)
        async with resp:
            data = await resp.json()
    """
    if config is None:
        config = HTTP_RETRY_CONFIG

    last_exception = None

    for attempt in range(config.max_retries + 1):
        try:
            resp = await session.request(method, url, **kwargs)

            if resp.status in config.retryable_status_codes and attempt < config.max_retries:
                delay = calculate_delay(attempt, config)
                logger.warning(
                    f"[Retry] HTTP {method} {url} returned {resp.status} "
                    f"(attempt {attempt + 1}/{config.max_retries + 1}). Retrying in {delay:.1f}s..."
                )
                await resp.release()
                await asyncio.sleep(delay)
                continue

            return resp

        except config.retryable_exceptions as e:
            last_exception = e

            if attempt < config.max_retries:
                delay = calculate_delay(attempt, config)
                logger.warning(
                    f"[Retry] HTTP {method} {url} failed (attempt {attempt + 1}/{config.max_retries + 1}): "
                    f"{type(e).__name__}: {e}. Retrying in {delay:.1f}s..."
                )
                await asyncio.sleep(delay)
            else:
                logger.error(
                    f"[Retry] HTTP {method} {url} failed after {config.max_retries + 1} attempts: "
                    f"{type(e).__name__}: {e}"
                )
                raise

    if last_exception:
        raise last_exception


class ConnectionHealthMonitor:
    """
    Tracks the last success and consecutive errors per named upstream
    (e.g. "polymarket_gamma", "polymarket_clob").
    """

    def __init__(self, stale_threshold_sec: float = 60.0):
        self.stale_threshold = stale_threshold_sec
        self._last_success: dict[str, float] = {}
        self._error_counts: dict[str, int] = {}

    def mark_success(self, name: str):
        self._last_success[name] = time.time()
        self._error_counts[name] = 0

    def mark_error(self, name: str):
        self._error_counts[name] = self._error_counts.get(name, 0) + 1

    def is_healthy(self, name: str) -> bool:
        """Healthy if the last success is recent and no error followed it."""
        if name not in self._last_success:
            return False
        if self._error_counts.get(name, 0) > 0:
            return False
        return time.time() - self._last_success[name] < self.stale_threshold

    def get_status(self) -> dict:
        now = time.time()
        status = {}

        for name in set(self._last_success) | set(self._error_counts):
            last = self._last_success.get(name)
            status[name] = {
                "last_success_age_sec": round(now - last, 1) if last is not None else None,
                "is_healthy": self.is_healthy(name),
                "error_count": self._error_counts.get(name, 0),
            }

        return status

    def reset(self):
        self._last_success.clear()
        self._error_counts.clear()


# Global health monitor instance
connection_monitor = ConnectionHealthMonitor(stale_threshold_sec=120.0)
