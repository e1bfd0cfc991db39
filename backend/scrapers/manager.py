"""
Scraper Manager - orchestrates all site scrapers.

Runs every configured source concurrently under one shared cancel token,
each with its own soft deadline, then merges, deduplicates and scores
whatever the sources returned. A failed or slow source contributes zero
listings and a diagnostic entry; it never aborts the search.
"""

import asyncio
from dataclasses import fields as dataclass_fields, replace
from typing import Dict, Iterable, List, Mapping, Optional, Tuple, Type
from datetime import datetime, timezone
import logging
import time

from scoring.fraud import (
    DUPLICATE_LISTING_POINTS,
    FraudDetectionResult,
    FraudInput,
    detect_duplicate_listings,
    detect_fraud,
    fraud_input_from_listing,
)
from scoring.market import compute_market_stats, estimate_market_price
from scoring.relevance import current_year, score_listing
from .base import (
    BaseScraper,
    CancelToken,
    Colors,
    Listing,
    ScrapeCancelledException,
    SearchQuery,
    SearchResult,
    SourceDiagnostics,
)
from .config import SITES, get_site_config, get_enabled_sites
from .crawlers.fetch import MissingCredentialsError, build_fetcher
from .dedup import dedupe_listings
from .passes import run_passes
from .utils.normalizers import split_title
from .sites import SCRAPERS

logger = logging.getLogger(__name__)


class ScraperManager:
    """
    Manages and orchestrates all site scrapers.

    Usage:
        async with ScraperManager(settings) as manager:
            result = await manager.search(SearchQuery(brand='Peugeot', max_price=20000))

            # Single source, passes included
            listings, diagnostics = await manager.scrape_site('leboncoin', query)

            status = manager.list_scrapers()
    """

    def __init__(
        self,
        config=None,
        fetcher=None,
        registry: Optional[Mapping[str, Type[BaseScraper]]] = None,
    ):
        """
        Initialize the scraper manager.

        Args:
            config: Settings object (defaults to the application settings)
            fetcher: Fetch port; built from config when omitted
            registry: Site key -> adapter class (defaults to every implemented site)
        """
        if config is None:
            from api.config import settings as config
        self.config = config
        self.fetcher = fetcher if fetcher is not None else build_fetcher(config)
        self.registry = dict(registry) if registry is not None else dict(SCRAPERS)
        self.results: Dict[str, SourceDiagnostics] = {}

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc, tb):
        await self.aclose()

    async def aclose(self):
        await self.fetcher.close()

    def get_scraper(self, site_key: str) -> Optional[BaseScraper]:
        """
        Get a scraper instance for a site.

        Args:
            site_key: Site identifier (e.g., 'leboncoin')

        Returns:
            Scraper instance or None if not implemented
        """
        if site_key not in self.registry:
            logger.warning(f"Scraper not implemented for site: {site_key}")
            return None

        scraper = self.registry[site_key](
            self.fetcher,
            max_results=self.config.max_results_per_source,
        )
        proxy_country = getattr(self.config, 'proxy_country', None)
        if proxy_country:
            scraper.config = replace(scraper.config, proxy_country=proxy_country)
        return scraper

    def site_keys(self) -> List[str]:
        """Sources a search runs against."""
        if self.config.enabled_sources:
            for key in self.config.enabled_sources:
                get_site_config(key)
            return list(self.config.enabled_sources)
        return [k for k in get_enabled_sites() if k in self.registry]

    async def scrape_site(
        self,
        site_key: str,
        query: SearchQuery,
        cancel: Optional[CancelToken] = None,
    ) -> Tuple[List[Listing], SourceDiagnostics]:
        """
        Run every needed pass for one source under its deadline.

        Returns:
            (listings, diagnostics); listings is empty on any failure
        """
        config = get_site_config(site_key)
        diagnostics = SourceDiagnostics(source=config.name)
        started = time.monotonic()

        def elapsed() -> int:
            return int((time.monotonic() - started) * 1000)

        scraper = self.get_scraper(site_key)
        if not scraper:
            diagnostics.status = 'error'
            diagnostics.error = f'Scraper not implemented for {site_key}'
            return [], diagnostics

        logger.info(f"Starting scrape for {config.name} ({site_key})")
        try:
            run = await asyncio.wait_for(
                run_passes(
                    scraper,
                    query,
                    cancel=cancel,
                    min_results=self.config.min_results_per_pass,
                    max_results=self.config.max_results_per_source,
                ),
                timeout=self.config.source_deadline_seconds,
            )
        except asyncio.TimeoutError:
            diagnostics.status = 'timeout'
            diagnostics.error = f'No result within {self.config.source_deadline_seconds}s'
            diagnostics.ms = elapsed()
            logger.warning(f"{Colors.yellow('⏱')} {config.name} timed out after {diagnostics.ms}ms")
            return [], diagnostics
        except MissingCredentialsError as e:
            diagnostics.status = 'config_error'
            diagnostics.error = str(e)
            diagnostics.ms = elapsed()
            logger.error(f"{Colors.red('✘')} {config.name} configuration error: {e}")
            return [], diagnostics
        except ScrapeCancelledException as e:
            diagnostics.status = 'cancelled'
            diagnostics.error = str(e)
            diagnostics.ms = elapsed()
            logger.info(f"{config.name} cancelled: {e}")
            return [], diagnostics

        diagnostics.attempts = run.attempts
        diagnostics.items = len(run.listings)
        diagnostics.strategy = run.strategy
        diagnostics.ms = elapsed()
        if run.all_failed:
            diagnostics.status = 'error'
            diagnostics.error = run.last_error
            logger.error(f"{Colors.red('✘')} {config.name} failed: {run.last_error}")
        else:
            diagnostics.status = 'ok' if run.listings else 'empty'
            logger.info(
                f"{Colors.green('✔')} {config.name}: {len(run.listings)} listings "
                f"via {run.strategy.value} in {diagnostics.ms}ms"
            )
        return run.listings, diagnostics

    async def search(
        self,
        query: SearchQuery,
        cancel: Optional[CancelToken] = None,
    ) -> SearchResult:
        """
        Run a full search across every configured source.

        A cancelled search (caller token or search-wide timeout) returns no
        listings and marks every source as cancelled.
        """
        cancel = cancel or CancelToken()
        reference_year = current_year()
        started_at = datetime.now(timezone.utc)
        site_keys = self.site_keys()

        logger.info(
            f"{Colors.bold('Search')} {query.search_text} <= {query.max_price}€ "
            f"on {len(site_keys)} sources: {site_keys}"
        )

        semaphore = asyncio.Semaphore(max(1, self.config.max_sites_parallel))

        async def guarded(key):
            async with semaphore:
                return await self.scrape_site(key, query, cancel)

        loop = asyncio.get_running_loop()
        timer = loop.call_later(self.config.search_timeout_seconds, cancel.cancel, 'search timeout')
        try:
            outcomes = await asyncio.gather(*(guarded(k) for k in site_keys), return_exceptions=True)
        finally:
            timer.cancel()

        collected: List[Listing] = []
        diagnostics: Dict[str, SourceDiagnostics] = {}
        for key, outcome in zip(site_keys, outcomes):
            if isinstance(outcome, BaseException):
                if not isinstance(outcome, Exception):
                    raise outcome
                logger.error(f"Scraper failed for {key}: {outcome}")
                diagnostics[key] = SourceDiagnostics(
                    source=SITES[key].name,
                    status='error',
                    error=str(outcome),
                )
                continue
            listings, source_diagnostics = outcome
            diagnostics[key] = source_diagnostics
            collected.extend(listings)

        if cancel.cancelled:
            logger.warning(f"Search cancelled ({cancel.reason}); discarding {len(collected)} listings")
            for source_diagnostics in diagnostics.values():
                source_diagnostics.status = 'cancelled'
                source_diagnostics.error = cancel.reason
            listings: List[Listing] = []
        else:
            listings = self.score_listings(collected, reference_year)

        self.results = diagnostics
        result = SearchResult(
            listings=listings,
            diagnostics=diagnostics,
            started_at=started_at,
            completed_at=datetime.now(timezone.utc),
        )
        summary = result.summary()
        logger.info(
            f"Search done in {result.duration_seconds:.1f}s: {summary['total_listings']} listings, "
            f"{summary['successful']}/{summary['total_sources']} sources ok"
        )
        return result

    def score_listings(self, listings: List[Listing], reference_year: int) -> List[Listing]:
        """Dedup, score for relevance and fraud, and rank a merged candidate set."""
        unique = dedupe_listings(
            listings,
            similarity_threshold=self.config.dedup_title_similarity,
            price_tolerance=self.config.dedup_price_tolerance,
        )
        stats = compute_market_stats(unique)
        inputs = [fraud_input_from_listing(l, stats) for l in unique]

        scored = []
        for listing, data in zip(unique, inputs):
            fraud = detect_fraud(data, reference_year)
            duplicates = detect_duplicate_listings(
                data,
                inputs,
                similarity_threshold=self.config.dedup_title_similarity,
                price_delta=self.config.dedup_price_delta,
            )
            fraud = fraud.add_flags(duplicates, points=DUPLICATE_LISTING_POINTS)
            scored.append(listing.with_scores(
                relevance_score=score_listing(listing, stats, reference_year),
                fraud_score=fraud.fraud_score,
                risk_level=fraud.risk_level.value,
                red_flags=tuple(fraud.red_flags),
            ))

        scored.sort(key=lambda l: (-l.relevance_score, l.fraud_score, l.id))
        for listing in scored[:3]:
            logger.info(
                f"   {Colors.cyan(listing.relevance_score)} {listing.title} "
                f"({listing.source}, fraud {listing.fraud_score})"
            )
        return scored

    def list_scrapers(self) -> List[Dict]:
        """
        List all configured sites and their implementation status.

        Returns:
            List of site info dictionaries
        """
        scrapers = []
        for key, config in SITES.items():
            scrapers.append({
                'key': key,
                'name': config.name,
                'short_name': config.short_name,
                'type': config.scraper_type.value,
                'reputation': config.reputation.value,
                'enabled': config.enabled,
                'implemented': key in self.registry,
                'url': config.search_url,
            })
        return scrapers

    def get_implemented_scrapers(self) -> List[str]:
        """Get list of implemented scraper keys."""
        return list(self.registry.keys())

    def get_results_summary(self) -> Dict:
        """
        Get summary of the last search's per-source results.

        Returns:
            Summary dictionary with totals
        """
        if not self.results:
            return {
                'total_sites': 0,
                'successful': 0,
                'failed': 0,
                'total_listings': 0,
            }

        successful = sum(1 for d in self.results.values() if d.ok)
        return {
            'total_sites': len(self.results),
            'successful': successful,
            'failed': len(self.results) - successful,
            'total_listings': sum(d.items for d in self.results.values()),
            'sites': {k: d.to_dict() for k, d in self.results.items()},
        }


# Entry points for standalone usage

async def run_search(query: SearchQuery, settings=None, fetcher=None) -> SearchResult:
    """
    Run one search with a manager that is closed afterwards.

    Args:
        query: Buyer query
        settings: Settings object (defaults to the application settings)
        fetcher: Optional fetch port

    Returns:
        SearchResult
    """
    async with ScraperManager(settings, fetcher=fetcher) as manager:
        return await manager.search(query)


FRAUD_INPUT_FIELDS = {f.name for f in dataclass_fields(FraudInput)}


def fraud_input_from_fields(fields: Mapping) -> FraudInput:
    """Build a FraudInput from a loose mapping; unknown keys are ignored."""
    return FraudInput(**{k: v for k, v in fields.items() if k in FRAUD_INPUT_FIELDS})


def with_market_estimate(data: FraudInput, fields: Mapping, reference_year: int) -> FraudInput:
    """Fill market_min / market_max from the deterministic market estimate."""
    guessed_brand, guessed_model = split_title(data.title)
    estimate = estimate_market_price(
        reference_year,
        brand=fields.get('brand') or guessed_brand,
        model=fields.get('model') or guessed_model,
        year=data.year,
        mileage_km=data.mileage_km,
        announced_price=data.price,
        has_history=data.has_history,
        transmission=fields.get('transmission'),
        region=data.location,
    )
    logger.debug(
        f"Market estimate for {data.title!r}: {estimate.min_price}-{estimate.max_price} ({estimate.position})"
    )
    market_max = data.market_max if data.market_max is not None else estimate.max_price
    return replace(data, market_min=estimate.min_price, market_max=market_max)


def analyze_listing(
    fields: Mapping,
    peers: Optional[Iterable[Mapping]] = None,
    reference_year: Optional[int] = None,
    similarity_threshold: float = 0.8,
    price_delta: int = 1000,
) -> FraudDetectionResult:
    """
    Fraud analysis for one externally supplied listing.

    Independent of any search. Without a market_min the price check runs
    against a deterministic estimate from brand, model, year and mileage
    (brand and model default to the first two title words). When peers
    are given, the duplicate check runs against them and its flag is
    folded into the result.
    """
    if reference_year is None:
        reference_year = current_year()
    data = fraud_input_from_fields(fields)
    if data.market_min is None:
        data = with_market_estimate(data, fields, reference_year)
    result = detect_fraud(data, reference_year)
    if peers:
        duplicates = detect_duplicate_listings(
            data,
            [fraud_input_from_fields(p) for p in peers],
            similarity_threshold=similarity_threshold,
            price_delta=price_delta,
        )
        result = result.add_flags(duplicates, points=DUPLICATE_LISTING_POINTS)
    return result
