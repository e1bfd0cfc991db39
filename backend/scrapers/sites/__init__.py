"""Per-site adapter implementations."""

from .leboncoin import LeboncoinScraper
from .lacentrale import LacentraleScraper

# Site key -> adapter class, for sites that have an implementation
SCRAPERS = {
    'leboncoin': LeboncoinScraper,
    'lacentrale': LacentraleScraper,
}

__all__ = ['LeboncoinScraper', 'LacentraleScraper', 'SCRAPERS']
