"""
Tests for the local fetch backend.
"""

import asyncio

import httpx
import pytest

from scrapers.crawlers.fetch import FetchError, FetchOptions
from scrapers.crawlers.local import LocalCrawler
from scrapers.crawlers.static import StaticCrawler

PAGE = '<html><body>' + 'x' * 500 + '</body></html>'


class FakeStealth:
    def __init__(self):
        self.calls = []
        self.closed = False

    async def fetch(self, url, wait_ms=0, wait_selector=None, blocked_resource_types=()):
        self.calls.append((url, wait_ms, wait_selector, tuple(blocked_resource_types)))
        return '<html>rendered</html>'

    async def close(self):
        self.closed = True


def static(handler):
    return StaticCrawler(transport=httpx.MockTransport(handler))


class TestStaticCrawler:

    def test_fetch(self):
        seen = []

        def handler(request):
            seen.append(request)
            return httpx.Response(200, text=PAGE)

        body = asyncio.run(static(handler).fetch('https://www.leboncoin.fr/recherche?text=208'))

        assert body == PAGE
        assert seen[0].headers['Accept-Language'].startswith('fr-FR')

    def test_error_status(self):
        def handler(request):
            return httpx.Response(403, text='blocked')

        with pytest.raises(FetchError) as exc:
            asyncio.run(static(handler).fetch('https://x.fr'))
        assert exc.value.status_code == 403

    def test_short_body(self):
        def handler(request):
            return httpx.Response(200, text='<html></html>')

        with pytest.raises(FetchError):
            asyncio.run(static(handler).fetch('https://x.fr'))


class TestLocalCrawler:

    def test_routes_by_render_flag(self):
        def handler(request):
            return httpx.Response(200, text=PAGE)

        stealth = FakeStealth()
        crawler = LocalCrawler(static=static(handler), stealth=stealth)
        options = FetchOptions(render=True, wait_ms=3000, wait_for_selector='.card', blocked_resource_types=('image',))

        async def run():
            raw = await crawler.fetch('https://x.fr', FetchOptions())
            rendered = await crawler.fetch('https://x.fr', options)
            await crawler.close()
            return raw, rendered

        raw, rendered = asyncio.run(run())

        assert raw == PAGE
        assert rendered == '<html>rendered</html>'
        assert stealth.calls == [('https://x.fr', 3000, '.card', ('image',))]
        assert stealth.closed is True
