"""
Scoring engines for normalized listings.

- market: per-search price/mileage/year aggregates and a single-vehicle price band
- relevance: 0-100 buyer-fit ranking
- fraud: 0-100 deception-risk rating with structured red flags
"""

from .market import MarketStats, MarketEstimate, compute_market_stats, estimate_market_price
from .relevance import RelevanceBreakdown, score_breakdown, score_listing, score_all, current_year
from .fraud import (
    FraudFlagType,
    Severity,
    Confidence,
    RiskLevel,
    FraudRedFlag,
    FraudInput,
    FraudDetectionResult,
    detect_fraud,
    detect_duplicate_listings,
    fraud_input_from_listing,
)
from .similarity import normalize_title, title_similarity

__all__ = [
    'MarketStats',
    'compute_market_stats',
    'MarketEstimate',
    'estimate_market_price',
    'RelevanceBreakdown',
    'score_breakdown',
    'score_listing',
    'score_all',
    'current_year',
    'FraudFlagType',
    'Severity',
    'Confidence',
    'RiskLevel',
    'FraudRedFlag',
    'FraudInput',
    'FraudDetectionResult',
    'detect_fraud',
    'detect_duplicate_listings',
    'fraud_input_from_listing',
    'normalize_title',
    'title_similarity',
]
