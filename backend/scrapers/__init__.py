"""
Listing acquisition layer.

This package provides:
- the shared data model (queries, passes, listings, diagnostics)
- the site registry and per-site adapters with their extraction cascade
- fetch port backends (ZenRows API, local httpx + Playwright)

The orchestrator lives in scrapers.manager; it depends on the scoring
package and is imported from there directly.
"""

from .base import (
    BaseScraper,
    CancelToken,
    ExtractionStrategy,
    Listing,
    ScraperType,
    SearchPass,
    SearchQuery,
    SearchResult,
    SiteConfig,
    SourceDiagnostics,
)
from .config import SITES, get_site_config, get_enabled_sites

__all__ = [
    'BaseScraper',
    'CancelToken',
    'ExtractionStrategy',
    'Listing',
    'ScraperType',
    'SearchPass',
    'SearchQuery',
    'SearchResult',
    'SiteConfig',
    'SourceDiagnostics',
    'SITES',
    'get_site_config',
    'get_enabled_sites',
]
