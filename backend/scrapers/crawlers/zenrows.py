"""
Remote fetch backend using the ZenRows scraping API.

The target URL and fetch options are passed as query parameters to a
single GET endpoint; the response body is the target page.
"""

from typing import Optional, Dict
import httpx
import logging

from ..base import CancelToken
from .fetch import FetchOptions, FetchError, MissingCredentialsError, race_cancel

logger = logging.getLogger(__name__)

DEFAULT_BASE_URL = 'https://api.zenrows.com/v1/'


class ZenRowsCrawler:
    """
    Fetch pages through ZenRows.

    Raw fetches still go through the premium proxy in the configured
    country; rendered fetches add js_render plus wait / wait_for.
    """

    def __init__(
        self,
        api_key: str,
        base_url: str = DEFAULT_BASE_URL,
        timeout: float = 30.0,
        min_body_length: int = 100,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        """
        Initialize the crawler.

        Args:
            api_key: ZenRows API key; empty means unconfigured
            base_url: API endpoint
            timeout: Per-request timeout in seconds
            min_body_length: Shorter bodies are treated as blocked pages
            transport: Optional httpx transport (used by tests)
        """
        self.api_key = api_key
        self.base_url = base_url
        self.timeout = timeout
        self.min_body_length = min_body_length
        self._transport = transport
        self._client: Optional[httpx.AsyncClient] = None

    def _get_client(self) -> httpx.AsyncClient:
        """Get or create the reusable HTTP client."""
        if self._client is None or self._client.is_closed:
            self._client = httpx.AsyncClient(
                timeout=self.timeout,
                transport=self._transport,
                limits=httpx.Limits(
                    max_keepalive_connections=5,
                    max_connections=10,
                    keepalive_expiry=30.0
                )
            )
        return self._client

    def build_params(self, url: str, options: FetchOptions) -> Dict[str, str]:
        params = {
            'apikey': self.api_key,
            'url': url,
        }
        if options.premium_proxy:
            params['premium_proxy'] = 'true'
            params['proxy_country'] = options.proxy_country
        if options.render:
            params['js_render'] = 'true'
            if options.wait_ms:
                params['wait'] = str(options.wait_ms)
            if options.wait_for_selector:
                params['wait_for'] = options.wait_for_selector
            if options.blocked_resource_types:
                params['block_resources'] = ','.join(options.blocked_resource_types)
        return params

    @staticmethod
    def _describe_error(response: httpx.Response) -> str:
        """ZenRows errors carry a JSON body with code / title."""
        try:
            payload = response.json()
        except ValueError:
            return response.text[:200]
        if isinstance(payload, dict):
            code = payload.get('code')
            title = payload.get('title') or payload.get('detail')
            if code or title:
                return f"{code or 'ERROR'}: {title or ''}".strip()
        return response.text[:200]

    async def _get(self, url: str, options: FetchOptions) -> str:
        client = self._get_client()
        mode = 'rendered' if options.render else 'raw'
        logger.debug(f"ZenRows {mode} fetch: {url}")

        try:
            response = await client.get(self.base_url, params=self.build_params(url, options))
        except httpx.TimeoutException as e:
            raise FetchError(f"ZenRows timeout for {url}: {e}") from e
        except httpx.HTTPError as e:
            raise FetchError(f"ZenRows request failed for {url}: {e}") from e

        if response.status_code >= 400:
            raise FetchError(
                f"ZenRows HTTP {response.status_code} for {url}: {self._describe_error(response)}",
                status_code=response.status_code,
            )

        body = response.text
        if len(body) < self.min_body_length:
            raise FetchError(
                f"Body too short ({len(body)} chars) for {url}, likely blocked",
                status_code=response.status_code,
            )
        return body

    async def fetch(
        self,
        url: str,
        options: FetchOptions,
        cancel: Optional[CancelToken] = None,
    ) -> str:
        """
        Fetch a page body.

        Raises:
            MissingCredentialsError: No API key configured
            FetchError: Transport error, error status or blocked body
            ScrapeCancelledException: The token fired mid-request
        """
        if not self.api_key:
            raise MissingCredentialsError("ZENROWS_API_KEY is not configured")
        return await race_cancel(self._get(url, options), cancel)

    async def close(self):
        """Close the HTTP client and release resources."""
        if self._client is not None and not self._client.is_closed:
            await self._client.aclose()
            self._client = None
