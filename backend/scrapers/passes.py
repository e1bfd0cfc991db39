"""
Pass widening for one source.

A source is tried under the strict pass first. While the listings gathered
so far stay under the "too few" threshold the next, wider pass runs, in
order strict -> relaxed -> opportunity. Passes run sequentially; listings
accumulate across passes and are merged by id.
"""

import logging
from dataclasses import dataclass, field
from typing import Dict, List, Optional

from .base import (
    BaseScraper,
    CancelToken,
    ExtractionStrategy,
    Listing,
    PassAttempt,
    ScrapeCancelledException,
    SearchPass,
    SearchQuery,
)
from .crawlers.fetch import MissingCredentialsError

logger = logging.getLogger(__name__)

PASS_ORDER = (SearchPass.STRICT, SearchPass.RELAXED, SearchPass.OPPORTUNITY)


@dataclass
class PassRunResult:
    """Listings gathered for one source across every pass attempted."""
    listings: List[Listing] = field(default_factory=list)
    attempts: List[PassAttempt] = field(default_factory=list)
    strategy: ExtractionStrategy = ExtractionStrategy.NONE
    errors: int = 0

    @property
    def all_failed(self) -> bool:
        return bool(self.attempts) and self.errors == len(self.attempts)

    @property
    def last_error(self) -> Optional[str]:
        for attempt in reversed(self.attempts):
            if attempt.note:
                return attempt.note
        return None


async def run_passes(
    scraper: BaseScraper,
    query: SearchQuery,
    cancel: Optional[CancelToken] = None,
    min_results: int = 10,
    max_results: Optional[int] = None,
) -> PassRunResult:
    """
    Run the widening passes for one adapter.

    Configuration errors and cancellation propagate. Any other adapter
    failure is recorded in that pass's attempt note and the next pass
    still runs.
    """
    result = PassRunResult()
    seen: Dict[str, Listing] = {}

    for search_pass in PASS_ORDER:
        if cancel is not None:
            cancel.raise_if_cancelled()

        try:
            outcome = await scraper.scrape(query, search_pass, cancel=cancel)
        except (MissingCredentialsError, ScrapeCancelledException):
            raise
        except Exception as e:
            scraper.logger.warning(f"[{search_pass.value}] pass failed: {e}")
            result.errors += 1
            result.attempts.append(PassAttempt(
                search_pass=search_pass,
                items=0,
                ms=0,
                strategy=ExtractionStrategy.NONE,
                note=f"{type(e).__name__}: {e}",
            ))
        else:
            new = 0
            for listing in outcome.listings:
                if listing.id not in seen:
                    seen[listing.id] = listing
                    new += 1
            if outcome.listings and result.strategy == ExtractionStrategy.NONE:
                result.strategy = outcome.strategy
            result.attempts.append(PassAttempt(
                search_pass=search_pass,
                items=len(outcome.listings),
                ms=outcome.elapsed_ms,
                strategy=outcome.strategy,
                note=None if new == len(outcome.listings) else f"{new} new",
            ))
            scraper.logger.info(
                f"[{search_pass.value}] {len(outcome.listings)} items "
                f"({outcome.strategy.value}, {outcome.elapsed_ms}ms), {len(seen)} total"
            )

        if len(seen) >= min_results:
            break

    listings = list(seen.values())
    if max_results is not None:
        listings = listings[:max_results]
    result.listings = listings
    return result
