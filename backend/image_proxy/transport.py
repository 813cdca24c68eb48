"""
Resilient Transport

Fetches upstream images through httpx and retries transport-level
failures (connection refused, DNS, timeouts) with exponential backoff.

- Any received response is returned as-is, including error statuses
- Delay before retry n is ``backoff_base ** n`` (3s, 9s, 27s by default)
- Task cancellation stops both the in-flight request and the backoff sleep
- After the last attempt the original httpx error is re-raised
"""

import asyncio
import logging
from dataclasses import dataclass
from enum import Enum
from typing import Awaitable, Callable, Optional

import httpx

from .settings import ImageProxySettings

logger = logging.getLogger(__name__)


class AttemptOutcome(str, Enum):
    """Result tag of a single fetch attempt"""
    SUCCESS = "success"        # A response was received (any status)
    TRANSIENT = "transient"    # Transport failure worth retrying
    TERMINAL = "terminal"      # Transport failure that retrying cannot fix


@dataclass
class AttemptResult:
    outcome: AttemptOutcome
    response: Optional[httpx.Response] = None
    error: Optional[Exception] = None


@dataclass
class FetchResult:
    """An upstream response, fully read."""
    content: bytes
    status_code: int
    content_type: str

    @property
    def is_success(self) -> bool:
        return 200 <= self.status_code < 300


class ResilientTransport:
    """
    Retrying wrapper around an ``httpx.AsyncClient``.

    Usage:
        async with ResilientTransport.from_settings(settings) as transport:
            result = await transport.fetch(url)
    """

    def __init__(
        self,
        client: httpx.AsyncClient,
        max_retries: int = 3,
        backoff_base: float = 3.0,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        self.client = client
        self.max_retries = max_retries
        self.backoff_base = backoff_base
        self._sleep = sleep

    @classmethod
    def from_settings(cls, settings: ImageProxySettings) -> "ResilientTransport":
        client = httpx.AsyncClient(
            timeout=settings.request_timeout_seconds,
            follow_redirects=True,
            headers={
                "User-Agent": settings.user_agent,
                "Accept": "image/*,*/*;q=0.8",
            },
        )
        return cls(
            client,
            max_retries=settings.max_retries,
            backoff_base=settings.backoff_base,
        )

    async def __aenter__(self) -> "ResilientTransport":
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        """Close HTTP client."""
        await self.client.aclose()

    def backoff_delay(self, retry: int) -> float:
        """Seconds to wait before retry number ``retry`` (1-based)."""
        return self.backoff_base ** retry

    async def _attempt(self, url: str) -> AttemptResult:
        try:
            response = await self.client.get(url)
        except httpx.UnsupportedProtocol as e:
            return AttemptResult(AttemptOutcome.TERMINAL, error=e)
        except httpx.TransportError as e:
            return AttemptResult(AttemptOutcome.TRANSIENT, error=e)
        return AttemptResult(AttemptOutcome.SUCCESS, response=response)

    async def fetch(self, url: str) -> FetchResult:
        """
        Fetch a URL, retrying transport failures.

        Returns:
            FetchResult for the first received response.

        Raises:
            httpx.TransportError: the error of the last attempt once
            retries are exhausted, or a terminal transport error.
        """
        retry = 0
        while True:
            result = await self._attempt(url)

            if result.outcome is AttemptOutcome.SUCCESS:
                response = result.response
                if retry:
                    logger.info(f"[Transport] Fetched after {retry} retries: {url[:80]}")
                return FetchResult(
                    content=response.content,
                    status_code=response.status_code,
                    content_type=response.headers.get("content-type", ""),
                )

            if result.outcome is AttemptOutcome.TERMINAL or retry >= self.max_retries:
                logger.error(
                    f"[Transport] Giving up after {retry + 1} attempts: {url[:80]} ({result.error!r})"
                )
                raise result.error

            retry += 1
            delay = self.backoff_delay(retry)
            logger.warning(
                f"[Transport] {type(result.error).__name__} for {url[:80]}, "
                f"retry {retry}/{self.max_retries} in {delay:.0f}s"
            )
            await self._sleep(delay)
