"""
Remote fetch port.

Every adapter fetches pages through an object implementing FetchPort.
Two backends exist: ZenRowsCrawler (managed scraping API) and
LocalCrawler (httpx for raw pages, Playwright for rendered ones).
"""

import asyncio
from dataclasses import dataclass
from typing import Optional, Tuple, Protocol, Awaitable, TypeVar, runtime_checkable
import logging

from ..base import CancelToken, ScrapeCancelledException

logger = logging.getLogger(__name__)

T = TypeVar('T')


@dataclass(frozen=True)
class FetchOptions:
    """Per-request fetch options."""
    render: bool = False
    wait_ms: int = 0
    wait_for_selector: Optional[str] = None
    proxy_country: str = 'fr'
    premium_proxy: bool = True
    blocked_resource_types: Tuple[str, ...] = ('image', 'media', 'font')


class FetchError(Exception):
    """A fetch did not produce a usable body."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code


class MissingCredentialsError(FetchError):
    """The remote backend is selected but no credential is configured."""


@runtime_checkable
class FetchPort(Protocol):
    async def fetch(
        self,
        url: str,
        options: FetchOptions,
        cancel: Optional[CancelToken] = None,
    ) -> str:
        ...

    async def close(self) -> None:
        ...


async def race_cancel(awaitable: Awaitable[T], cancel: Optional[CancelToken]) -> T:
    """
    Await `awaitable`, aborting as soon as the token fires.

    The in-flight request is cancelled and ScrapeCancelledException is
    raised; no result is produced for an aborted fetch.
    """
    if cancel is None:
        return await awaitable

    if cancel.cancelled:
        if asyncio.iscoroutine(awaitable):
            awaitable.close()
        cancel.raise_if_cancelled()
    task = asyncio.ensure_future(awaitable)
    waiter = asyncio.ensure_future(cancel.wait())
    try:
        await asyncio.wait({task, waiter}, return_when=asyncio.FIRST_COMPLETED)
    except asyncio.CancelledError:
        # Outer deadline hit: the request must not outlive its caller
        task.cancel()
        raise
    finally:
        waiter.cancel()

    if task.done():
        return task.result()

    task.cancel()
    try:
        await task
    except asyncio.CancelledError:
        pass
    except Exception as e:
        logger.debug(f"Fetch raised while being cancelled: {e}")
    raise ScrapeCancelledException(cancel.reason or "cancelled")


def build_fetcher(settings) -> FetchPort:
    """Create the fetch backend selected by settings.fetch_backend."""
    backend = (settings.fetch_backend or 'zenrows').lower()
    if backend == 'zenrows':
        from .zenrows import ZenRowsCrawler
        return ZenRowsCrawler(
            api_key=settings.zenrows_api_key,
            base_url=settings.zenrows_base_url,
            timeout=settings.fetch_timeout,
            min_body_length=settings.min_body_length,
        )
    if backend == 'local':
        from .local import LocalCrawler
        return LocalCrawler(
            timeout=settings.fetch_timeout,
            min_body_length=settings.min_body_length,
        )
    raise ValueError(f"Unknown fetch backend: {settings.fetch_backend}")
