"""
Base classes for the listing acquisition pipeline.

This module defines the data structures shared by every site adapter
(queries, passes, source payloads, canonical listings, diagnostics) and
the abstract base class implementing the extraction cascade.
"""

from abc import ABC, abstractmethod
from typing import List, Dict, Optional, Any, Callable, Tuple
from dataclasses import dataclass, field, replace
from enum import Enum
from datetime import datetime, timezone
import asyncio
import math
import logging
import time

logger = logging.getLogger(__name__)


# ANSI color codes for terminal output
class Colors:
    """ANSI color codes for colorized logging."""
    RESET = '\033[0m'
    BOLD = '\033[1m'

    GREEN = '\033[92m'
    YELLOW = '\033[93m'
    RED = '\033[91m'
    CYAN = '\033[96m'
    GRAY = '\033[90m'

    @staticmethod
    def green(text):
        return f"{Colors.GREEN}{text}{Colors.RESET}"

    @staticmethod
    def yellow(text):
        return f"{Colors.YELLOW}{text}{Colors.RESET}"

    @staticmethod
    def red(text):
        return f"{Colors.RED}{text}{Colors.RESET}"

    @staticmethod
    def cyan(text):
        return f"{Colors.CYAN}{text}{Colors.RESET}"

    @staticmethod
    def gray(text):
        return f"{Colors.GRAY}{text}{Colors.RESET}"

    @staticmethod
    def bold(text):
        return f"{Colors.BOLD}{text}{Colors.RESET}"


class ScraperType(Enum):
    """How a site is fetched first."""
    STATIC = "static"           # raw fetch is usually enough
    JAVASCRIPT = "javascript"   # often needs the rendered fallback
    STEALTH = "stealth"         # aggressive anti-bot, premium proxy required


class ReputationTier(Enum):
    """Curated source reputation used by relevance scoring."""
    PROFESSIONAL = "professional"
    GENERALIST = "generalist"
    OTHER = "other"


class SearchPass(Enum):
    """Widening level of a search attempt."""
    STRICT = "strict"
    RELAXED = "relaxed"
    OPPORTUNITY = "opportunity"

    @property
    def price_factor(self) -> float:
        return {
            SearchPass.STRICT: 1.0,
            SearchPass.RELAXED: 1.1,
            SearchPass.OPPORTUNITY: 1.2,
        }[self]

    def widen(self, max_price: int) -> int:
        """Max price bound under this pass, floored to whole euros."""
        return math.floor(round(max_price * self.price_factor, 6))


class ExtractionStrategy(Enum):
    """Which step of the extraction cascade produced the listings."""
    RAW_STRUCTURED = "raw-structured"
    RAW_ATTRIBUTES = "raw-attributes"
    RENDERED_STRUCTURED = "rendered-structured"
    NONE = "none"


class ScrapeCancelledException(Exception):
    """Raised when a search is cancelled while work is still in flight."""


class CancelToken:
    """
    Search-wide cancellation signal.

    Passed explicitly through the orchestrator, the adapters and the fetch
    port. Cancelling is one-way; a token cannot be reset.
    """

    def __init__(self):
        self._event = asyncio.Event()
        self.reason: Optional[str] = None

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    def cancel(self, reason: str = "cancelled"):
        if not self._event.is_set():
            self.reason = reason
            self._event.set()

    def raise_if_cancelled(self):
        if self._event.is_set():
            raise ScrapeCancelledException(self.reason or "cancelled")

    async def wait(self):
        await self._event.wait()


@dataclass(frozen=True)
class SearchQuery:
    """Immutable buyer query. One query may run under several passes."""
    brand: str
    max_price: int
    model: Optional[str] = None
    min_price: Optional[int] = None
    min_year: Optional[int] = None
    max_mileage: Optional[int] = None
    zip_code: Optional[str] = None

    def __post_init__(self):
        if not self.brand or not self.brand.strip():
            raise ValueError("brand is required")
        if self.max_price is None or self.max_price < 0:
            raise ValueError("max_price must be >= 0")
        if self.min_price is not None and self.min_price < 0:
            raise ValueError("min_price must be >= 0")

    @property
    def search_text(self) -> str:
        return ' '.join(p for p in (self.brand, self.model) if p).strip()


@dataclass
class SiteConfig:
    """Configuration for a listing source."""
    name: str                           # Display name, also the Listing.source tag
    short_name: str                     # Logger / id prefix (e.g., 'lbc')
    search_url: str                     # Search results page
    base_url: str                       # Base URL for building absolute links
    scraper_type: ScraperType           # Which fetch mode usually works
    reputation: ReputationTier = ReputationTier.OTHER
    render_wait_ms: int = 5000          # Rendered fetch: extra wait
    render_wait_selector: Optional[str] = None
    proxy_country: str = 'fr'
    blocked_resource_types: Tuple[str, ...] = ('image', 'media', 'font')
    enabled: bool = True                # Whether to include in searches


@dataclass(frozen=True)
class JsonAdPayload:
    """One ad object located inside an embedded structured-data blob."""
    source: str
    data: Dict[str, Any]


@dataclass(frozen=True)
class HtmlCardPayload:
    """Fields matched inside one listing container of a raw HTML page."""
    source: str
    href: Optional[str]
    title: Optional[str] = None
    price_text: Optional[str] = None
    image_url: Optional[str] = None
    city: Optional[str] = None
    text: str = ''


@dataclass(frozen=True)
class Listing:
    """Canonical, source-normalized vehicle advertisement."""
    id: str
    external_id: str
    title: str
    url: str
    source: str
    price: Optional[int] = None
    year: Optional[int] = None
    mileage_km: Optional[int] = None
    image_url: Optional[str] = None
    city: Optional[str] = None
    brand: Optional[str] = None
    model: Optional[str] = None
    description: Optional[str] = None
    photos_count: Optional[int] = None
    ai_score: Optional[int] = None

    # Filled by the scoring engines, always on a new instance
    relevance_score: Optional[int] = None
    fraud_score: Optional[int] = None
    risk_level: Optional[str] = None
    red_flags: Tuple[Any, ...] = ()

    def with_scores(
        self,
        relevance_score: Optional[int] = None,
        fraud_score: Optional[int] = None,
        risk_level: Optional[str] = None,
        red_flags: Optional[Tuple[Any, ...]] = None,
    ) -> 'Listing':
        """Return a copy carrying the given scores; self is left untouched."""
        changes: Dict[str, Any] = {}
        if relevance_score is not None:
            changes['relevance_score'] = relevance_score
        if fraud_score is not None:
            changes['fraud_score'] = fraud_score
        if risk_level is not None:
            changes['risk_level'] = risk_level
        if red_flags is not None:
            changes['red_flags'] = tuple(red_flags)
        return replace(self, **changes)

    def to_dict(self) -> Dict:
        return {
            'id': self.id,
            'external_id': self.external_id,
            'title': self.title,
            'price': self.price,
            'year': self.year,
            'mileage_km': self.mileage_km,
            'url': self.url,
            'image_url': self.image_url,
            'source': self.source,
            'city': self.city,
            'brand': self.brand,
            'model': self.model,
            'relevance_score': self.relevance_score,
            'fraud_score': self.fraud_score,
            'risk_level': self.risk_level,
            'red_flags': [f.to_dict() if hasattr(f, 'to_dict') else f for f in self.red_flags],
        }


@dataclass
class SiteScrapeOutcome:
    """What one adapter call returns for one pass."""
    listings: List[Listing]
    strategy: ExtractionStrategy
    elapsed_ms: int


@dataclass
class PassAttempt:
    """Record of one pass run against one source."""
    search_pass: SearchPass
    items: int
    ms: int
    strategy: ExtractionStrategy
    note: Optional[str] = None

    def to_dict(self) -> Dict:
        return {
            'pass': self.search_pass.value,
            'items': self.items,
            'ms': self.ms,
            'strategy': self.strategy.value,
            'note': self.note,
        }


@dataclass
class SourceDiagnostics:
    """Per-source result of a search execution."""
    source: str
    status: str = 'pending'         # ok | empty | timeout | error | config_error | cancelled
    items: int = 0
    ms: int = 0
    strategy: ExtractionStrategy = ExtractionStrategy.NONE
    attempts: List[PassAttempt] = field(default_factory=list)
    error: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.status in ('ok', 'empty')

    @property
    def failed(self) -> bool:
        return not self.ok

    def to_dict(self) -> Dict:
        return {
            'source': self.source,
            'status': self.status,
            'ok': self.ok,
            'items': self.items,
            'ms': self.ms,
            'strategy': self.strategy.value,
            'attempts': [a.to_dict() for a in self.attempts],
            'error': self.error,
        }


@dataclass
class SearchResult:
    """Result of one full search execution."""
    listings: List[Listing]
    diagnostics: Dict[str, SourceDiagnostics]
    started_at: datetime
    completed_at: Optional[datetime] = None

    @property
    def duration_seconds(self) -> Optional[float]:
        if self.completed_at and self.started_at:
            return (self.completed_at - self.started_at).total_seconds()
        return None

    @property
    def failed_sources(self) -> List[str]:
        return [k for k, d in self.diagnostics.items() if d.failed]

    def summary(self) -> Dict:
        return {
            'total_sources': len(self.diagnostics),
            'successful': sum(1 for d in self.diagnostics.values() if d.ok),
            'failed': len(self.failed_sources),
            'total_listings': len(self.listings),
        }

    def to_dict(self) -> Dict:
        return {
            'listings': [l.to_dict() for l in self.listings],
            'diagnostics': {k: d.to_dict() for k, d in self.diagnostics.items()},
            'summary': self.summary(),
            'started_at': self.started_at.isoformat(),
            'completed_at': self.completed_at.isoformat() if self.completed_at else None,
            'duration_seconds': self.duration_seconds,
        }


# An extraction strategy turns one fetched body into listings, or nothing
Extractor = Callable[[str], List[Listing]]


class BaseScraper(ABC):
    """
    Abstract base class for all site adapters.

    Subclasses must implement:
    - build_url(): search URL for a query under a pass
    - extract_structured(): embedded structured-data strategy
    - extract_attributes(): container attribute-scan strategy

    The cascade itself lives here so a site change only touches one
    strategy of one adapter:
    1. raw fetch + structured data
    2. raw fetch + attribute scan (same body, no second fetch)
    3. rendered fetch + structured data
    """

    def __init__(self, config: SiteConfig, fetcher, max_results: int = 100):
        """
        Initialize the adapter.

        Args:
            config: Site configuration
            fetcher: Remote fetch port implementation
            max_results: Cap on listings returned per call
        """
        self.config = config
        self.fetcher = fetcher
        self.max_results = max_results
        self.logger = logging.getLogger(f"scraper.{config.short_name}")

    @property
    def source(self) -> str:
        return self.config.name

    @abstractmethod
    def build_url(self, query: SearchQuery, search_pass: SearchPass) -> str:
        """Search results URL for a query under the given pass."""

    @abstractmethod
    def extract_structured(self, html: str) -> List[Listing]:
        """Locate the embedded state blob and map its ads array."""

    @abstractmethod
    def extract_attributes(self, html: str) -> List[Listing]:
        """Pattern-match listing containers in raw HTML."""

    def raw_options(self):
        from .crawlers.fetch import FetchOptions
        return FetchOptions(
            render=False,
            proxy_country=self.config.proxy_country,
            blocked_resource_types=self.config.blocked_resource_types,
        )

    def rendered_options(self):
        from .crawlers.fetch import FetchOptions
        return FetchOptions(
            render=True,
            wait_ms=self.config.render_wait_ms,
            wait_for_selector=self.config.render_wait_selector,
            proxy_country=self.config.proxy_country,
            blocked_resource_types=self.config.blocked_resource_types,
        )

    def _apply(self, name: str, extractor: Extractor, html: str) -> List[Listing]:
        """Run one strategy; garbled input degrades to an empty result."""
        try:
            listings = extractor(html)
        except Exception as e:
            self.logger.warning(f"{name} extraction failed: {e}")
            return []
        return listings[:self.max_results]

    async def _fetch(self, url: str, options, cancel: Optional[CancelToken]) -> Optional[str]:
        """Fetch a body, turning recoverable failures into None."""
        from .crawlers.fetch import FetchError, MissingCredentialsError

        try:
            return await self.fetcher.fetch(url, options, cancel=cancel)
        except MissingCredentialsError:
            raise
        except FetchError as e:
            mode = 'rendered' if options.render else 'raw'
            self.logger.warning(f"{mode} fetch failed: {e}")
            return None

    async def scrape(
        self,
        query: SearchQuery,
        search_pass: SearchPass,
        cancel: Optional[CancelToken] = None,
    ) -> SiteScrapeOutcome:
        """
        Run the extraction cascade for one pass.

        Returns as soon as one strategy yields at least one listing.
        """
        started = time.monotonic()

        def outcome(listings, strategy):
            return SiteScrapeOutcome(
                listings=listings,
                strategy=strategy,
                elapsed_ms=int((time.monotonic() - started) * 1000),
            )

        if cancel is not None:
            cancel.raise_if_cancelled()

        url = self.build_url(query, search_pass)
        self.logger.info(f"[{search_pass.value}] {Colors.cyan('❯')} {url}")

        raw = await self._fetch(url, self.raw_options(), cancel)
        if raw:
            self.logger.debug(f"raw body {len(raw) / 1024:.1f} KB")
            listings = self._apply('structured', self.extract_structured, raw)
            if listings:
                self.logger.info(f"   {Colors.green('✔')} {len(listings)} listings via raw structured data")
                return outcome(listings, ExtractionStrategy.RAW_STRUCTURED)

            listings = self._apply('attributes', self.extract_attributes, raw)
            if listings:
                self.logger.info(f"   {Colors.green('✔')} {len(listings)} listings via attribute scan")
                return outcome(listings, ExtractionStrategy.RAW_ATTRIBUTES)

        if cancel is not None:
            cancel.raise_if_cancelled()

        self.logger.info(f"   {Colors.yellow('…')} raw strategies empty, trying rendered fetch")
        rendered = await self._fetch(url, self.rendered_options(), cancel)
        if rendered:
            listings = self._apply('rendered structured', self.extract_structured, rendered)
            if listings:
                self.logger.info(f"   {Colors.green('✔')} {len(listings)} listings via rendered structured data")
                return outcome(listings, ExtractionStrategy.RENDERED_STRUCTURED)

        self.logger.info(f"   {Colors.gray('✘')} no listings")
        return outcome([], ExtractionStrategy.NONE)
