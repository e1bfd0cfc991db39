"""
Cross-source deduplication.

Ids are source-local, so the same ad posted on two sites is matched on
content: similar normalized titles, close prices and non-contradicting
year/mileage. Within each cluster the most complete listing is kept.
"""

import logging
from typing import List

from scoring.similarity import normalize_title, title_similarity
from .base import Listing

logger = logging.getLogger(__name__)

# Presence weights used to pick the survivor of a duplicate cluster
COMPLETENESS_WEIGHTS = {
    'title': 20,
    'price': 25,
    'year': 20,
    'mileage_km': 20,
    'image_url': 10,
    'url': 5,
}

MILEAGE_TOLERANCE_KM = 1000


def completeness(listing: Listing) -> int:
    return sum(
        weight for name, weight in COMPLETENESS_WEIGHTS.items()
        if getattr(listing, name) not in (None, '')
    )


def is_duplicate(
    a: Listing,
    b: Listing,
    similarity_threshold: float = 0.8,
    price_tolerance: int = 100,
) -> bool:
    """Whether two listings describe the same ad."""
    if a.price is None or b.price is None:
        return False
    if abs(a.price - b.price) > price_tolerance:
        return False
    if a.year is not None and b.year is not None and a.year != b.year:
        return False
    if (a.mileage_km is not None and b.mileage_km is not None
            and abs(a.mileage_km - b.mileage_km) > MILEAGE_TOLERANCE_KM):
        return False
    return title_similarity(a.title, b.title) >= similarity_threshold


def dedupe_listings(
    listings: List[Listing],
    similarity_threshold: float = 0.8,
    price_tolerance: int = 100,
) -> List[Listing]:
    """
    Collapse duplicate clusters, keeping first-seen order of the survivors.

    Ties on completeness go to the listing seen first.
    """
    kept: List[Listing] = []
    for listing in listings:
        for index, existing in enumerate(kept):
            if is_duplicate(existing, listing, similarity_threshold, price_tolerance):
                if completeness(listing) > completeness(existing):
                    kept[index] = listing
                logger.debug(
                    f"Duplicate: {listing.id} ~ {existing.id} "
                    f"({normalize_title(listing.title)!r})"
                )
                break
        else:
            kept.append(listing)

    if len(kept) != len(listings):
        logger.info(f"Dedup: {len(listings)} -> {len(kept)} listings")
    return kept
