"""
Relevance scoring engine.

A listing's relevance is the sum of six capped sub-scores:

    price vs market     0-30   (neutral 15)
    mileage             0-20   (neutral 10)
    age                 0-15   (neutral 7)
    source reputation   0-10
    completeness        0-15
    source quality      0-10   (neutral 5)

The engine is a pure function of (listing, market stats, reference year).
The reference year is captured once per search run so repeated scoring
of the same input is deterministic.
"""

import math
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Dict, List, Optional

from scrapers.base import Listing
from scrapers.config import REPUTATION_POINTS, reputation_for
from .market import MarketStats, compute_market_stats

NEUTRAL_PRICE = 15
NEUTRAL_MILEAGE = 10
NEUTRAL_YEAR = 7
NEUTRAL_AI = 5


def current_year() -> int:
    return datetime.now(timezone.utc).year


@dataclass(frozen=True)
class RelevanceBreakdown:
    price: int
    mileage: int
    age: int
    source: int
    completeness: int
    ai: int

    @property
    def total(self) -> int:
        raw = self.price + self.mileage + self.age + self.source + self.completeness + self.ai
        return max(0, min(100, raw))

    def to_dict(self) -> Dict:
        return {
            'price': self.price,
            'mileage': self.mileage,
            'age': self.age,
            'source': self.source,
            'completeness': self.completeness,
            'ai': self.ai,
            'total': self.total,
        }


def score_price(price: Optional[int], stats: MarketStats) -> int:
    if price is None or price < 0 or not stats.avg_price:
        return NEUTRAL_PRICE

    ratio = price / stats.avg_price
    if ratio < 0.85:
        return 30
    if ratio < 0.95:
        return 25
    if ratio <= 1.05:
        return 20
    if ratio <= 1.15:
        return 10
    return 0


def score_mileage(mileage: Optional[int]) -> int:
    if mileage is None or mileage < 0:
        return NEUTRAL_MILEAGE

    if mileage < 30000:
        return 20
    if mileage < 50000:
        return 18
    if mileage < 100000:
        return 15
    if mileage < 150000:
        return 10
    if mileage < 200000:
        return 5
    return 0


def score_age(year: Optional[int], reference_year: int) -> int:
    if year is None or year <= 1900:
        return NEUTRAL_YEAR

    age = reference_year - year
    if age <= 2:
        return 15
    if age <= 5:
        return 12
    if age <= 10:
        return 8
    if age <= 15:
        return 4
    return 0


def score_source(source: str) -> int:
    return REPUTATION_POINTS[reputation_for(source)]


def score_completeness(listing: Listing) -> int:
    score = 0
    if listing.price is not None and listing.price > 0:
        score += 3
    if listing.mileage_km is not None and listing.mileage_km > 0:
        score += 3
    if listing.year is not None and listing.year > 1900:
        score += 3
    if listing.image_url:
        score += 3
    if listing.title and len(listing.title) >= 20:
        score += 3
    return score


def score_ai(ai_score: Optional[int]) -> int:
    """Rescale a source-supplied 0-100 quality score to 0-10 (half up)."""
    if ai_score is None or ai_score < 0 or ai_score > 100:
        return NEUTRAL_AI
    return int(math.floor(ai_score / 10 + 0.5))


def score_breakdown(
    listing: Listing,
    stats: MarketStats,
    reference_year: Optional[int] = None,
) -> RelevanceBreakdown:
    if reference_year is None:
        reference_year = current_year()
    return RelevanceBreakdown(
        price=score_price(listing.price, stats),
        mileage=score_mileage(listing.mileage_km),
        age=score_age(listing.year, reference_year),
        source=score_source(listing.source),
        completeness=score_completeness(listing),
        ai=score_ai(listing.ai_score),
    )


def score_listing(
    listing: Listing,
    stats: MarketStats,
    reference_year: Optional[int] = None,
) -> int:
    """Relevance score 0-100."""
    return score_breakdown(listing, stats, reference_year).total


def score_all(listings: List[Listing], reference_year: Optional[int] = None) -> List[Listing]:
    """
    Score a whole candidate set.

    Market stats are computed once, before any listing is scored. Returns
    new Listing instances; the inputs are not modified.
    """
    if reference_year is None:
        reference_year = current_year()
    stats = compute_market_stats(listings)
    return [
        listing.with_scores(relevance_score=score_listing(listing, stats, reference_year))
        for listing in listings
    ]
