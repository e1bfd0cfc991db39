"""
Raw page fetcher for the local backend.

Plain httpx GET with browser-like headers, no JavaScript execution.
"""

from typing import Optional, Dict
import httpx
import logging

from .fetch import FetchError

logger = logging.getLogger(__name__)

DEFAULT_HEADERS = {
    'User-Agent': 'Mozilla/5.0 (Macintosh; Intel Mac OS X 10_15_7) AppleWebKit/537.36 (KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36',
    'Accept': 'text/html,application/xhtml+xml,application/xml;q=0.9,image/avif,image/webp,image/apng,*/*;q=0.8',
    'Accept-Language': 'fr-FR,fr;q=0.9,en;q=0.8',
    'Accept-Encoding': 'gzip, deflate',
}


class StaticCrawler:
    """
    Wrapper for fetching raw HTML pages.

    Uses a pooled httpx.AsyncClient. Failures surface as FetchError;
    the caller decides whether to fall back to a rendered fetch.
    """

    def __init__(
        self,
        timeout: float = 30.0,
        min_body_length: int = 100,
        headers: Optional[Dict[str, str]] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.timeout = timeout
        self.min_body_length = min_body_length
        self.headers = headers or dict(DEFAULT_HEADERS)
        self._transport = transport
        self._client: Optional[httpx.AsyncClient] = None

    def _get_client(self) -> httpx.AsyncClient:
        """Get or create reusable HTTP client with connection pooling."""
        if self._client is None or self._client.is_closed:
            self._client = httpx.AsyncClient(
                follow_redirects=True,
                timeout=self.timeout,
                headers=self.headers,
                transport=self._transport,
                limits=httpx.Limits(
                    max_keepalive_connections=5,
                    max_connections=10,
                    keepalive_expiry=30.0
                )
            )
        return self._client

    async def close(self):
        """Close the HTTP client and release resources."""
        if self._client is not None and not self._client.is_closed:
            await self._client.aclose()
            self._client = None

    async def fetch(self, url: str) -> str:
        """
        Fetch a URL and return HTML content.

        Raises:
            FetchError: On transport error, error status or short body
        """
        logger.debug(f"StaticCrawler fetching: {url}")
        client = self._get_client()

        try:
            response = await client.get(url)
        except httpx.HTTPError as e:
            raise FetchError(f"Request failed for {url}: {e}") from e

        if response.status_code >= 400:
            raise FetchError(f"HTTP {response.status_code} for {url}", status_code=response.status_code)

        if len(response.text) < self.min_body_length:
            raise FetchError(
                f"Body too short ({len(response.text)} chars) for {url}, likely blocked",
                status_code=response.status_code,
            )
        return response.text
