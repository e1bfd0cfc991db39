"""
End-to-end tests for the search orchestrator.
"""

import asyncio

import pytest

from scrapers.base import CancelToken, SearchPass, SearchQuery
from scrapers.crawlers.fetch import MissingCredentialsError
from scrapers.crawlers.zenrows import ZenRowsCrawler
from scrapers.manager import ScraperManager, analyze_listing, run_search
from scrapers.sites.leboncoin import LeboncoinScraper
from scoring.fraud import FraudFlagType


QUERY = SearchQuery(brand='Peugeot', model='208', max_price=20000)


def lacentrale_three(pages):
    return pages.lacentrale([
        pages.lacentrale_ad('E1', 'Peugeot 208 Allure PureTech', 14500, year=2021, mileage=25000),
        pages.lacentrale_ad('E2', 'Peugeot 208 GT Line automatique', 18900, year=2022, mileage=12000),
        pages.lacentrale_ad('E3', 'Peugeot 208 Active Pack', 11900, year=2018, mileage=70000),
    ])


class TestSearch:
    """Test whole-search behaviour."""

    def test_one_source_times_out(self, fetcher, pages, settings_factory):
        """One slow source, one source with three listings."""
        fetcher.add('leboncoin.fr', pages.leboncoin([]), delay=2.0)
        fetcher.add('lacentrale.fr', lacentrale_three(pages), render=False)
        manager = ScraperManager(settings_factory(source_deadline_seconds=0.2), fetcher=fetcher)

        result = asyncio.run(manager.search(QUERY))

        assert sorted(l.id for l in result.listings) == ['lacentrale_E1', 'lacentrale_E2', 'lacentrale_E3']
        assert result.failed_sources == ['leboncoin']
        assert result.diagnostics['leboncoin'].status == 'timeout'
        assert result.diagnostics['lacentrale'].status == 'ok'
        assert result.diagnostics['lacentrale'].items == 3
        assert result.summary() == {
            'total_sources': 2, 'successful': 1, 'failed': 1, 'total_listings': 3,
        }

    def test_listings_are_scored_and_ranked(self, fetcher, pages, settings_factory):
        fetcher.add('lacentrale.fr', lacentrale_three(pages), render=False)
        manager = ScraperManager(settings_factory(enabled_sources=['lacentrale']), fetcher=fetcher)

        result = asyncio.run(manager.search(QUERY))

        for listing in result.listings:
            assert 0 <= listing.relevance_score <= 100
            assert 0 <= listing.fraud_score <= 100
            assert listing.risk_level in ('low', 'medium', 'high', 'critical')
        keys = [(-l.relevance_score, l.fraud_score, l.id) for l in result.listings]
        assert keys == sorted(keys)

    def test_strict_empty_runs_relaxed(self, fetcher, pages, settings_factory):
        fetcher.add('price=0-20000', '<html><body>Aucun résultat</body></html>')
        fetcher.add('price=0-22000', pages.leboncoin([
            pages.lbc_ad(100 + i, f'Peugeot 208 n{i}', 15000 + i * 500) for i in range(12)
        ]), render=False)
        manager = ScraperManager(settings_factory(enabled_sources=['leboncoin']), fetcher=fetcher)

        result = asyncio.run(manager.search(QUERY))

        attempts = result.diagnostics['leboncoin'].attempts
        assert [a.search_pass for a in attempts] == [SearchPass.STRICT, SearchPass.RELAXED]
        assert attempts[0].items == 0
        assert len(result.listings) == 12
        assert not any('price=0-24000' in u for u in fetcher.urls())

    def test_opportunity_when_relaxed_under_returns(self, fetcher, pages, settings_factory):
        fetcher.add('price=0-20000', '<html><body>Aucun résultat</body></html>')
        fetcher.add('price=0-22000', pages.leboncoin([pages.lbc_ad(1, 'Peugeot 208', 21000)]), render=False)
        fetcher.add('price=0-24000', pages.leboncoin([pages.lbc_ad(2, 'Peugeot 2008', 23500)]), render=False)
        manager = ScraperManager(settings_factory(enabled_sources=['leboncoin']), fetcher=fetcher)

        result = asyncio.run(manager.search(QUERY))

        attempts = result.diagnostics['leboncoin'].attempts
        assert [a.search_pass for a in attempts] == list(SearchPass)
        assert len(result.listings) == 2

    def test_configuration_error_is_isolated(self, fetcher, pages, settings_factory):
        fetcher.add('leboncoin.fr', error=MissingCredentialsError('ZENROWS_API_KEY is not configured'))
        fetcher.add('lacentrale.fr', lacentrale_three(pages), render=False)
        manager = ScraperManager(settings_factory(), fetcher=fetcher)

        result = asyncio.run(manager.search(QUERY))

        assert result.diagnostics['leboncoin'].status == 'config_error'
        assert 'ZENROWS_API_KEY' in result.diagnostics['leboncoin'].error
        assert len(result.listings) == 3

    def test_broken_adapter_is_recorded(self, fetcher, settings_factory):
        class BrokenScraper(LeboncoinScraper):
            async def scrape(self, query, search_pass, cancel=None):
                raise RuntimeError('layout changed')

        manager = ScraperManager(
            settings_factory(enabled_sources=['leboncoin']),
            fetcher=fetcher,
            registry={'leboncoin': BrokenScraper},
        )

        result = asyncio.run(manager.search(QUERY))

        diagnostics = result.diagnostics['leboncoin']
        assert diagnostics.status == 'error'
        assert 'layout changed' in diagnostics.error
        assert len(diagnostics.attempts) == 3
        assert result.listings == []

    def test_everything_empty_is_valid(self, fetcher, settings_factory):
        fetcher.add('leboncoin.fr', '<html><body>Aucun résultat</body></html>')
        fetcher.add('lacentrale.fr', '<html><body>Aucune annonce</body></html>')
        manager = ScraperManager(settings_factory(), fetcher=fetcher)

        result = asyncio.run(manager.search(QUERY))

        assert result.listings == []
        assert {d.status for d in result.diagnostics.values()} == {'empty'}
        assert result.failed_sources == []

    def test_cross_source_duplicates(self, fetcher, pages, settings_factory):
        fetcher.add('leboncoin.fr', pages.leboncoin([
            pages.lbc_ad(5, 'Peugeot 208 GT Line automatique', 18900, regdate='2022', mileage='12000'),
        ]), render=False)
        fetcher.add('lacentrale.fr', lacentrale_three(pages), render=False)
        manager = ScraperManager(settings_factory(), fetcher=fetcher)

        result = asyncio.run(manager.search(QUERY))

        ids = {l.id for l in result.listings}
        assert len(result.listings) == 3
        assert len(ids & {'lbc_5', 'lacentrale_E2'}) == 1

    def test_divergent_price_duplicate_is_flagged(self, fetcher, pages, settings_factory):
        fetcher.add('leboncoin.fr', pages.leboncoin([
            pages.lbc_ad(5, 'Peugeot 208 Allure PureTech', 12000, regdate='2021', mileage='25000'),
        ]), render=False)
        fetcher.add('lacentrale.fr', lacentrale_three(pages), render=False)
        manager = ScraperManager(settings_factory(), fetcher=fetcher)

        result = asyncio.run(manager.search(QUERY))

        by_id = {l.id: l for l in result.listings}
        assert len(by_id) == 4
        for key in ('lbc_5', 'lacentrale_E1'):
            types = {f.type for f in by_id[key].red_flags}
            assert FraudFlagType.DUPLICATE_LISTING in types


class TestCancellation:
    """Test cancel and search-wide timeout."""

    def test_cancel_discards_everything(self, fetcher, pages, settings_factory):
        fetcher.add('leboncoin.fr', pages.leboncoin([]), delay=10.0)
        fetcher.add('lacentrale.fr', lacentrale_three(pages), render=False)
        manager = ScraperManager(settings_factory(source_deadline_seconds=20.0), fetcher=fetcher)

        async def run():
            cancel = CancelToken()
            asyncio.get_running_loop().call_later(0.1, cancel.cancel, 'user abort')
            return await manager.search(QUERY, cancel=cancel)

        result = asyncio.run(run())

        assert result.listings == []
        assert {d.status for d in result.diagnostics.values()} == {'cancelled'}
        assert result.diagnostics['lacentrale'].error == 'user abort'

    def test_search_timeout_cancels(self, fetcher, pages, settings_factory):
        fetcher.add('leboncoin.fr', pages.leboncoin([]), delay=10.0)
        fetcher.add('lacentrale.fr', pages.lacentrale([]), delay=10.0)
        manager = ScraperManager(
            settings_factory(source_deadline_seconds=20.0, search_timeout_seconds=0.1),
            fetcher=fetcher,
        )

        result = asyncio.run(manager.search(QUERY))

        assert result.listings == []
        assert {d.status for d in result.diagnostics.values()} == {'cancelled'}
        assert result.diagnostics['leboncoin'].error == 'search timeout'


class TestManagerHelpers:

    def test_default_fetcher_from_settings(self, settings_factory):
        manager = ScraperManager(settings_factory())
        assert isinstance(manager.fetcher, ZenRowsCrawler)
        assert manager.fetcher.api_key == 'test-key'

    def test_unknown_backend(self, settings_factory):
        with pytest.raises(ValueError):
            ScraperManager(settings_factory(fetch_backend='carrier-pigeon'))

    def test_list_scrapers(self, fetcher, settings_factory):
        manager = ScraperManager(settings_factory(), fetcher=fetcher)
        scrapers = {s['key']: s for s in manager.list_scrapers()}
        assert scrapers['leboncoin']['implemented'] is True
        assert scrapers['paruvendu']['implemented'] is False
        assert scrapers['paruvendu']['enabled'] is False
        assert manager.get_implemented_scrapers() == ['leboncoin', 'lacentrale']

    def test_scrape_unimplemented_site(self, fetcher, settings_factory):
        manager = ScraperManager(settings_factory(), fetcher=fetcher)
        listings, diagnostics = asyncio.run(manager.scrape_site('autoscout24', QUERY))
        assert listings == []
        assert diagnostics.status == 'error'
        assert diagnostics.source == 'AutoScout24'

    def test_unknown_enabled_source(self, fetcher, settings_factory):
        manager = ScraperManager(settings_factory(enabled_sources=['nope']), fetcher=fetcher)
        with pytest.raises(ValueError):
            manager.site_keys()

    def test_results_summary(self, fetcher, pages, settings_factory):
        fetcher.add('lacentrale.fr', lacentrale_three(pages), render=False)
        manager = ScraperManager(settings_factory(enabled_sources=['lacentrale']), fetcher=fetcher)
        assert manager.get_results_summary()['total_sites'] == 0

        asyncio.run(manager.search(QUERY))

        summary = manager.get_results_summary()
        assert summary['total_sites'] == 1
        assert summary['successful'] == 1
        assert summary['total_listings'] == 3

    def test_run_search_closes_fetcher(self, fetcher, pages, settings_factory):
        fetcher.add('lacentrale.fr', lacentrale_three(pages), render=False)

        result = asyncio.run(run_search(QUERY, settings_factory(enabled_sources=['lacentrale']), fetcher=fetcher))

        assert len(result.listings) == 3
        assert fetcher.closed is True


class TestAnalyzeListing:

    def test_analyze_single_listing(self):
        result = analyze_listing({
            'title': 'Peugeot 208',
            'description': 'Paiement par virement immédiat uniquement',
            'price': 4000,
            'market_min': 10000,
            'unknown_field': 'ignored',
        }, reference_year=2026)
        assert result.fraud_score >= 70
        assert result.risk_level.value == 'critical'

    def test_analyze_with_peers(self):
        fields = {'title': 'Peugeot 208 Allure', 'price': 12000}
        alone = analyze_listing(fields, reference_year=2026)
        with_peers = analyze_listing(fields, peers=[{'title': 'Peugeot 208 Allure', 'price': 15000}],
                                     reference_year=2026)
        assert with_peers.fraud_score == alone.fraud_score + 15
        assert FraudFlagType.DUPLICATE_LISTING in {f.type for f in with_peers.red_flags}

    def test_price_checked_against_market_estimate(self):
        result = analyze_listing({
            'title': 'Peugeot 208 Allure',
            'price': 3000,
            'year': 2021,
            'mileage_km': 60000,
            'location': 'Lyon',
            'photos_count': 6,
        }, reference_year=2026)
        price_flags = [f for f in result.red_flags if f.type == FraudFlagType.PRICE_TOO_LOW]
        assert len(price_flags) == 1
        assert 'Prix marché estimé: 9 045 €' in price_flags[0].evidence
        assert result.fraud_score >= 40

    def test_explicit_market_min_wins(self):
        result = analyze_listing({
            'title': 'Peugeot 208 Allure',
            'price': 3000,
            'year': 2021,
            'market_min': 3500,
        }, reference_year=2026)
        assert FraudFlagType.PRICE_TOO_LOW not in {f.type for f in result.red_flags}
