"""HTTP and retry utilities.

Provides reusable pieces for talking to the remote record store:
- RetryStrategy: transport-level retries (urllib3) for idempotent reads
- RetryPolicy: application-level retry with exponential backoff and jitter,
  parameterised per call site (insurance submit, recovery, bulk fetch)
- SessionManager: pooled ``requests`` session with the transport retries
"""

from __future__ import annotations

import logging
import random
import time
from typing import Any, Callable, TypeVar

import requests
from requests.adapters import HTTPAdapter
from urllib3.util.retry import Retry as URLRetry

logger = logging.getLogger(__name__)

T = TypeVar("T")


class RetryStrategy:
    """Defines transport retry behavior for HTTP requests."""

    def __init__(self, max_retries: int = 3, backoff_factor: float = 2.0,
                 status_forcelist: list[int] | None = None):
        """Initialize retry strategy.

        Args:
            max_retries: Maximum number of retry attempts (default: 3)
            backoff_factor: Exponential backoff multiplier (default: 2.0)
            status_forcelist: HTTP status codes to retry on
                            (default: [429, 500, 502, 503, 504])
        """
        self.max_retries = max_retries
        self.backoff_factor = backoff_factor
        self.status_forcelist = status_forcelist or [429, 500, 502, 503, 504]

    def get_retry_object(self) -> URLRetry:
        """Get urllib3 Retry object configured with this strategy.

        Only GET and HEAD are retried at this level; writes go through
        RetryPolicy so every attempt is visible to the caller.
        """
        return URLRetry(
            total=self.max_retries,
            backoff_factor=self.backoff_factor,
            status_forcelist=self.status_forcelist,
            allowed_methods=["GET", "HEAD"],
            raise_on_status=False,
        )


class RetryPolicy:
    """Retry a callable with exponential backoff.

    The delay before retry ``n`` (1-based) is
    ``min(base_delay * multiplier ** (n - 1) + jitter, max_delay)`` where
    jitter is uniform in ``[0, jitter)``.

    Usage::

        policy = RetryPolicy(max_attempts=3, base_delay=1.0)
        rows = policy.run(lambda: client.insert("voters", [payload]))
    """

    def __init__(
        self,
        max_attempts: int = 3,
        base_delay: float = 1.0,
        multiplier: float = 2.0,
        max_delay: float | None = None,
        jitter: float = 0.0,
        retry_on: tuple[type[BaseException], ...] = (Exception,),
        give_up_on: tuple[type[BaseException], ...] = (),
        sleep: Callable[[float], Any] = time.sleep,
    ) -> None:
        if max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")
        self.max_attempts = max_attempts
        self.base_delay = base_delay
        self.multiplier = multiplier
        self.max_delay = max_delay
        self.jitter = jitter
        self.retry_on = retry_on
        self.give_up_on = give_up_on
        self.sleep = sleep
        self.attempts = 0

    def delay_for(self, retry_number: int) -> float:
        """Seconds to wait before retry *retry_number* (1-based)."""
        delay = self.base_delay * self.multiplier ** (retry_number - 1)
        if self.jitter:
            delay += random.uniform(0, self.jitter)
        if self.max_delay is not None:
            delay = min(delay, self.max_delay)
        return delay

    def run(self, func: Callable[[], T], label: str = "operation") -> T:
        """Call *func* until it succeeds or attempts run out.

        Exceptions listed in ``give_up_on`` propagate immediately. After the
        final attempt the last exception is re-raised.
        """
        self.attempts = 0
        while True:
            self.attempts += 1
            try:
                return func()
            except self.give_up_on:
                raise
            except self.retry_on as exc:
                if self.attempts >= self.max_attempts:
                    logger.warning("%s failed after %d attempts: %s",
                                   label, self.attempts, exc)
                    raise
                delay = self.delay_for(self.attempts)
                logger.info("%s attempt %d/%d failed (%s); retrying in %.2fs",
                            label, self.attempts, self.max_attempts, exc, delay)
                self.sleep(delay)


class SessionManager:
    """Manages HTTP sessions with connection pooling and retries."""

    def __init__(self, retry_strategy: RetryStrategy | None = None,
                 pool_connections: int = 10, pool_maxsize: int = 20,
                 headers: dict[str, str] | None = None):
        """Initialize session manager.

        Args:
            retry_strategy: RetryStrategy to use (default: standard strategy)
            pool_connections: Number of connection pools to cache
            pool_maxsize: Maximum number of connections per pool
            headers: Default headers sent with every request
        """
        self.retry_strategy = retry_strategy or RetryStrategy()
        self.pool_connections = pool_connections
        self.pool_maxsize = pool_maxsize
        self.headers = dict(headers or {})
        self._session: requests.Session | None = None

    @property
    def session(self) -> requests.Session:
        """Get or create HTTP session with retries and pooling."""
        if self._session is None:
            self._session = requests.Session()
            self._session.headers.update(self.headers)

            adapter = HTTPAdapter(
                max_retries=self.retry_strategy.get_retry_object(),
                pool_connections=self.pool_connections,
                pool_maxsize=self.pool_maxsize,
            )
            self._session.mount("http://", adapter)
            self._session.mount("https://", adapter)

        return self._session

    def close(self) -> None:
        """Close the session and release resources."""
        if self._session:
            self._session.close()
            self._session = None

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()
