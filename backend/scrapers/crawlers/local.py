"""Local fetch backend: httpx for raw pages, Playwright for rendered ones."""

from typing import Optional
import logging

from ..base import CancelToken
from .fetch import FetchOptions, race_cancel
from .static import StaticCrawler
from .stealth import StealthCrawler

logger = logging.getLogger(__name__)


class LocalCrawler:
    """FetchPort implementation that needs no third-party service."""

    def __init__(
        self,
        timeout: float = 30.0,
        min_body_length: int = 100,
        static: Optional[StaticCrawler] = None,
        stealth: Optional[StealthCrawler] = None,
    ):
        self.static = static or StaticCrawler(timeout=timeout, min_body_length=min_body_length)
        self.stealth = stealth or StealthCrawler(timeout=timeout, min_body_length=min_body_length)

    async def fetch(
        self,
        url: str,
        options: FetchOptions,
        cancel: Optional[CancelToken] = None,
    ) -> str:
        if options.render:
            request = self.stealth.fetch(
                url,
                wait_ms=options.wait_ms,
                wait_selector=options.wait_for_selector,
                blocked_resource_types=options.blocked_resource_types,
            )
        else:
            request = self.static.fetch(url)
        return await race_cancel(request, cancel)

    async def close(self):
        await self.static.close()
        await self.stealth.close()
