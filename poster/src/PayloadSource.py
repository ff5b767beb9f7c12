"""PayloadSource: Poll attestor endpoints for signed payloads.

Each source is an HTTP endpoint returning JSON of the form::

    {"messages": ["0x...", ...], "signatures": ["0x...", ...]}

Sources are fetched concurrently with a shared ``httpx.AsyncClient``. A source
that fails enters an exponential backoff (5s, 10s, 20s, ... capped at 300s)
and is skipped until it expires; a successful fetch resets it.
"""

from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass

import httpx

from .errors import PayloadSourceError
from .Observation import Payload

logger = logging.getLogger(__name__)


@dataclass
class SourceBackoff:
    """Failure tracking for one source URL."""

    consecutive_failures: int = 0
    backoff_until: float = 0.0


class PayloadSource:
    """Fetches payload batches from a set of HTTP sources.

    :ivar urls: Source URLs.
    :ivar timeout: Per-request timeout in seconds.
    :ivar base_backoff_seconds: Backoff after the first failure.
    :ivar max_backoff_seconds: Backoff ceiling.
    """

    DEFAULT_BASE_BACKOFF_SECONDS = 5.0
    DEFAULT_MAX_BACKOFF_SECONDS = 300.0

    def __init__(
        self,
        urls: list[str],
        timeout: float = 10.0,
        client: httpx.AsyncClient | None = None,
        base_backoff_seconds: float = DEFAULT_BASE_BACKOFF_SECONDS,
        max_backoff_seconds: float = DEFAULT_MAX_BACKOFF_SECONDS,
    ) -> None:
        """Initialize the payload source.

        :param urls: Source URLs to poll.
        :param timeout: Request timeout in seconds (default: 10).
        :param client: Optional client to use instead of a shared one.
        :param base_backoff_seconds: Initial backoff after a failure.
        :param max_backoff_seconds: Maximum backoff.
        """
        self.urls = list(urls)
        self.timeout = timeout
        self.base_backoff_seconds = base_backoff_seconds
        self.max_backoff_seconds = max_backoff_seconds
        self._client = client
        self._status: dict[str, SourceBackoff] = {u: SourceBackoff() for u in self.urls}

    def _get_client(self) -> httpx.AsyncClient:
        if self._client is None or self._client.is_closed:
            self._client = httpx.AsyncClient(
                timeout=httpx.Timeout(30.0, connect=10.0),
                limits=httpx.Limits(max_connections=20, max_keepalive_connections=10),
                follow_redirects=True,
            )
        return self._client

    async def close(self) -> None:
        """Close the HTTP client."""
        if self._client is not None and not self._client.is_closed:
            await self._client.aclose()
            self._client = None

    def get_active_sources(self) -> list[str]:
        """Sources not currently in backoff."""
        now = time.time()
        return [u for u in self.urls if now >= self._status[u].backoff_until]

    def record_failure(self, url: str) -> float:
        """Put a source into backoff.

        :param url: Source that failed.
        :returns: Backoff duration in seconds.
        """
        status = self._status.setdefault(url, SourceBackoff())
        status.consecutive_failures += 1
        backoff_seconds = min(
            self.base_backoff_seconds * (2 ** (status.consecutive_failures - 1)),
            self.max_backoff_seconds,
        )
        status.backoff_until = time.time() + backoff_seconds
        return backoff_seconds

    def record_success(self, url: str) -> None:
        """Clear a source's backoff."""
        self._status[url] = SourceBackoff()

    async def fetch(self, url: str) -> list[Payload]:
        """Fetch and parse one source.

        :param url: Source URL.
        :returns: Payloads published by the source.
        :raises PayloadSourceError: On HTTP, network or format errors.
        """
        client = self._get_client()
        try:
            response = await client.get(url, timeout=self.timeout)
        except httpx.TimeoutException as e:
            raise PayloadSourceError(f"Request timeout: {e}") from e
        except httpx.RequestError as e:
            raise PayloadSourceError(f"Request failed: {e}") from e

        if not response.is_success:
            raise PayloadSourceError(f"HTTP {response.status_code}: {response.text[:200]}")

        try:
            data = response.json()
            messages = data["messages"]
            signatures = data["signatures"]
        except (ValueError, KeyError, TypeError) as e:
            raise PayloadSourceError(f"Malformed payload response: {e}") from e

        if not isinstance(messages, list) or not isinstance(signatures, list):
            raise PayloadSourceError("messages and signatures must be lists")
        if len(messages) != len(signatures):
            raise PayloadSourceError(
                f"{len(messages)} messages but {len(signatures)} signatures"
            )

        try:
            return [Payload.from_hex(m, s) for m, s in zip(messages, signatures)]
        except (ValueError, TypeError) as e:
            raise PayloadSourceError(f"Invalid hex in payload response: {e}") from e

    async def fetch_all(self) -> list[Payload]:
        """Fetch every active source concurrently.

        Failing sources are logged and put into backoff; they never fail the
        whole poll.

        :returns: Payloads from all sources that answered.
        """
        active = self.get_active_sources()
        if not active:
            logger.warning("All payload sources in backoff")
            return []

        results = await asyncio.gather(
            *(self.fetch(url) for url in active), return_exceptions=True
        )

        payloads: list[Payload] = []
        for url, result in zip(active, results):
            if isinstance(result, PayloadSourceError):
                backoff = self.record_failure(url)
                logger.warning(f"[{url}] {result}; backing off {backoff:.1f}s")
            elif isinstance(result, BaseException):
                raise result
            else:
                self.record_success(url)
                logger.debug(f"[{url}] {len(result)} payload(s)")
                payloads.extend(result)
        return payloads
