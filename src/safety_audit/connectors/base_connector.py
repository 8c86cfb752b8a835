"""
Base async connector class for REST datastores.
Provides transport retries, a concurrency limit and a pooled aiohttp session.
"""

import asyncio
import aiohttp
from abc import ABC, abstractmethod
from dataclasses import asdict, dataclass
from typing import Any, Dict, Iterator, Optional
from datetime import datetime
import logging

from ..exceptions import PersistenceUnavailable

RETRYABLE_STATUSES = frozenset({429, 500, 502, 503, 504})


@dataclass
class RequestStats:
    """Counters for one connector instance."""
    requests_made: int = 0
    requests_successful: int = 0
    requests_failed: int = 0
    retries: int = 0
    opened_at: Optional[datetime] = None
    closed_at: Optional[datetime] = None

    def to_dict(self) -> Dict[str, Any]:
        stats = asdict(self)
        if self.opened_at and self.closed_at:
            stats["duration_seconds"] = (self.closed_at - self.opened_at).total_seconds()
        return stats


class _RetryableResponse(Exception):
    """One attempt failed in a way that is worth repeating."""

    def __init__(self, reason: str, wait: Optional[float] = None):
        self.reason = reason
        self.wait = wait
        super().__init__(reason)


class BaseAsyncConnector(ABC):
    """
    Abstract base class for async REST connectors.

    A request is attempted up to ``max_retries`` times with exponential
    backoff. What is left after that surfaces as PersistenceUnavailable;
    retrying a whole datastore operation is up to the caller.
    """

    def __init__(
        self,
        base_url: str,
        max_concurrent_requests: int = 10,
        timeout: int = 30,
        max_retries: int = 3,
        initial_delay: float = 1,
        backoff_multiplier: float = 2,
        max_delay: float = 60,
        verify_ssl: bool = True
    ):
        self.base_url = base_url.rstrip('/')
        self.max_concurrent_requests = max_concurrent_requests
        self.timeout = aiohttp.ClientTimeout(total=timeout)
        self.max_retries = max(1, max_retries)
        self.initial_delay = initial_delay
        self.backoff_multiplier = backoff_multiplier
        self.max_delay = max_delay
        self.verify_ssl = verify_ssl

        self._session: Optional[aiohttp.ClientSession] = None
        self._semaphore: Optional[asyncio.Semaphore] = None
        self.logger = logging.getLogger(self.__class__.__name__)

        self.stats = RequestStats()

    @abstractmethod
    def _get_auth_headers(self) -> Dict[str, str]:
        """Default headers sent with every request."""
        pass

    @abstractmethod
    async def test_connection(self) -> bool:
        """Return True if the datastore answers."""
        pass

    async def __aenter__(self):
        await self._create_session()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self._close_session()
        return False

    async def _create_session(self):
        if self._session is not None and not self._session.closed:
            return

        connector = aiohttp.TCPConnector(
            limit=self.max_concurrent_requests,
            ssl=None if self.verify_ssl else False
        )
        self._session = aiohttp.ClientSession(
            connector=connector,
            timeout=self.timeout,
            headers=self._get_auth_headers()
        )
        self._semaphore = asyncio.Semaphore(self.max_concurrent_requests)
        self.stats.opened_at = datetime.now()

    async def _close_session(self):
        if self._session and not self._session.closed:
            await self._session.close()
            self.stats.closed_at = datetime.now()

    def _backoff_delays(self) -> Iterator[float]:
        delay = self.initial_delay
        while True:
            yield min(delay, self.max_delay)
            delay *= self.backoff_multiplier

    async def _attempt(self, operation: str, method: str, url: str, **kwargs) -> Any:
        """Single request. Raises _RetryableResponse or PersistenceUnavailable on failure."""
        async with self._semaphore:
            self.stats.requests_made += 1

            async with self._session.request(method, url, **kwargs) as response:
                if response.status == 200:
                    try:
                        payload = await response.json(content_type=None)
                    except ValueError as e:
                        raise PersistenceUnavailable(operation, "invalid JSON response") from e
                    self.stats.requests_successful += 1
                    return payload

                if response.status in RETRYABLE_STATUSES:
                    wait = None
                    if response.status == 429:
                        wait = float(response.headers.get('Retry-After', self.initial_delay))
                    raise _RetryableResponse(f"HTTP {response.status}", wait)

                body = await response.text()
                self.logger.error(f"{operation} rejected: {response.status} - {body[:200]}")
                if response.status in (401, 403):
                    raise PersistenceUnavailable(operation, f"authentication failed ({response.status})")
                raise PersistenceUnavailable(operation, f"request rejected ({response.status})")

    async def _request_with_retry(
        self,
        operation: str,
        method: str,
        url: str,
        **kwargs
    ) -> Any:
        """
        Make an HTTP request, retrying transient failures.

        Args:
            operation: Datastore operation name, used in errors
            method: HTTP method (GET, PUT, POST, ...)
            url: Full URL to request
            **kwargs: Additional arguments for aiohttp request

        Returns:
            Decoded JSON response (None for an empty node)

        Raises:
            PersistenceUnavailable: If the request is rejected or every attempt failed
        """
        await self._create_session()
        delays = self._backoff_delays()
        reason = "retries exhausted"

        for attempt in range(1, self.max_retries + 1):
            wait = next(delays)
            try:
                return await self._attempt(operation, method, url, **kwargs)
            except PersistenceUnavailable:
                self.stats.requests_failed += 1
                raise
            except _RetryableResponse as e:
                reason = e.reason
                if e.wait is not None:
                    wait = min(e.wait, self.max_delay)
            except asyncio.TimeoutError:
                reason = "timeout"
            except aiohttp.ClientError as e:
                reason = str(e) or e.__class__.__name__

            self.logger.warning(f"{operation}: {reason} (attempt {attempt}/{self.max_retries})")
            if attempt < self.max_retries:
                self.stats.retries += 1
                await asyncio.sleep(wait)

        self.stats.requests_failed += 1
        self.logger.error(f"{operation} failed after {self.max_retries} attempt(s): {reason}")
        raise PersistenceUnavailable(operation, reason)

    def get_stats(self) -> Dict[str, Any]:
        """Return statistics about datastore requests."""
        return self.stats.to_dict()
