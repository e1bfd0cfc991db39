"""
Market reference for scoring.

Statistics over one candidate set, plus a deterministic price band for
a single vehicle analyzed on its own.
"""

import math
import re
from dataclasses import dataclass
from statistics import mean, median
from typing import Dict, Iterable, List, Optional, Tuple

from scrapers.base import Listing


@dataclass(frozen=True)
class MarketStats:
    """Price/mileage/year aggregates; every field is None on an empty sample."""
    avg_price: Optional[float] = None
    median_price: Optional[float] = None
    min_price: Optional[int] = None
    max_price: Optional[int] = None
    avg_mileage: Optional[float] = None
    avg_year: Optional[float] = None
    sample_size: int = 0

    def to_dict(self) -> Dict:
        return {
            'avg_price': self.avg_price,
            'median_price': self.median_price,
            'min_price': self.min_price,
            'max_price': self.max_price,
            'avg_mileage': self.avg_mileage,
            'avg_year': self.avg_year,
            'sample_size': self.sample_size,
        }


def compute_market_stats(listings: Iterable[Listing]) -> MarketStats:
    """
    Compute stats fresh for one candidate set.

    Prices and mileages <= 0 and years <= 1900 are ignored.
    """
    listings = list(listings)
    prices = [l.price for l in listings if l.price is not None and l.price > 0]
    mileages = [l.mileage_km for l in listings if l.mileage_km is not None and l.mileage_km > 0]
    years = [l.year for l in listings if l.year is not None and l.year > 1900]

    return MarketStats(
        avg_price=mean(prices) if prices else None,
        median_price=median(prices) if prices else None,
        min_price=min(prices) if prices else None,
        max_price=max(prices) if prices else None,
        avg_mileage=mean(mileages) if mileages else None,
        avg_year=mean(years) if years else None,
        sample_size=len(listings),
    )


# ============================================================
# DETERMINISTIC ESTIMATE
# Used when a single listing is analyzed without a candidate set
# ============================================================

# Average French market price by model and year
MODEL_PRICE_REFERENCE = {
    'golf': {2016: 12000, 2017: 13500, 2018: 15000, 2019: 16500, 2020: 18000},
    'polo': {2016: 9000, 2017: 10000, 2018: 11000, 2019: 12000, 2020: 13000},
    'clio': {2016: 8000, 2017: 9000, 2018: 10000, 2019: 11000, 2020: 12000},
    'megane': {2016: 10000, 2017: 11500, 2018: 13000, 2019: 14500, 2020: 16000},
    '208': {2016: 7500, 2017: 8500, 2018: 9500, 2019: 10500, 2020: 11500},
    '308': {2016: 9500, 2017: 11000, 2018: 12500, 2019: 14000, 2020: 15500},
    'a3': {2016: 15000, 2017: 17000, 2018: 19000, 2019: 21000, 2020: 23000},
    'serie3': {2016: 18000, 2017: 20000, 2018: 22000, 2019: 24000, 2020: 26000},
}

# Category fallback for models outside the table
CATEGORY_ESTIMATES = (
    (('polo', 'clio', '208'), 10000),
    (('golf', 'megane', '308'), 13000),
    (('a3', 'serie'), 20000),
)
DEFAULT_CATEGORY_ESTIMATE = 15000
UNKNOWN_VEHICLE_ESTIMATE = 12000
UNKNOWN_AGE = 5

MIN_MARKET_PRICE = 1000
HIGH_MILEAGE_KM = 150000

CONDITION_ADJUSTMENTS = {
    'excellent': (500, 'État excellent'),
    'good': (0, 'État bon'),
    'average': (-500, 'État moyen'),
    'poor': (-1500, 'État médiocre'),
}


def _round(value: float) -> int:
    """Round half up."""
    return int(math.floor(value + 0.5))


def _km(value: int) -> str:
    return f"{_round(value):,}".replace(',', ' ')


@dataclass(frozen=True)
class PriceAdjustment:
    factor: str
    impact: int

    def to_dict(self) -> Dict:
        return {'factor': self.factor, 'impact': self.impact}


@dataclass(frozen=True)
class MarketEstimate:
    """Estimated price band for one vehicle, with the adjustments applied."""
    min_price: int
    max_price: int
    vehicle_price: int
    position: str = 'moyenne'           # basse_fourchette | moyenne | haute_fourchette | hors_fourchette
    advice: str = ''
    adjustments: Tuple[PriceAdjustment, ...] = ()

    def to_dict(self) -> Dict:
        return {
            'min_price': self.min_price,
            'max_price': self.max_price,
            'vehicle_price': self.vehicle_price,
            'position': self.position,
            'advice': self.advice,
            'adjustments': [a.to_dict() for a in self.adjustments],
        }


def reference_base_price(
    brand: Optional[str],
    model: Optional[str],
    year: Optional[int],
    reference_year: int,
) -> Optional[float]:
    """
    Base price from the reference table, or a category estimate.

    The closest earlier year in the table is used with a 10% yearly
    decline to the requested year. Returns None without brand, model and year.
    """
    if not brand or not model or not year:
        return None
    model_key = re.sub(r'\s+', '', model.lower())
    if not model_key:
        return None

    for key, prices in MODEL_PRICE_REFERENCE.items():
        if key not in model_key and model_key not in key:
            continue
        base_year = year
        while base_year >= 2010 and base_year not in prices:
            base_year -= 1
        if base_year in prices:
            return _round(prices[base_year] * 0.9 ** (year - base_year))

    estimate = DEFAULT_CATEGORY_ESTIMATE
    for keys, value in CATEGORY_ESTIMATES:
        if any(k in model_key for k in keys):
            estimate = value
            break
    return _round(estimate * 0.88 ** (reference_year - year))


def _adjust(
    base_price: float,
    year: Optional[int],
    mileage_km: Optional[int],
    mileage_confidence: str,
    has_history: Optional[bool],
    transmission: Optional[str],
    condition: Optional[str],
    region: Optional[str],
    reference_year: int,
) -> Tuple[List[PriceAdjustment], int]:
    adjustments = []
    price = base_price

    if mileage_km and year:
        age = reference_year - year
        suspicious = (mileage_km < 500 and age >= 1) or (mileage_km < 2000 and age >= 2)
        if suspicious:
            # No bonus for a mileage the fraud engine may flag
            adjustments.append(PriceAdjustment(f"Kilométrage suspect ({_km(mileage_km)} km)", 0))
        elif mileage_km > HIGH_MILEAGE_KM:
            penalty = min((mileage_km - HIGH_MILEAGE_KM) * 0.02, 2000)
            price -= penalty
            adjustments.append(PriceAdjustment(f"Kilométrage ({_km(mileage_km)} km)", -_round(penalty)))
        elif mileage_km < 50000 and age >= 1 and mileage_confidence == 'high':
            bonus = min((50000 - mileage_km) * 0.01, 500)
            price += bonus
            adjustments.append(PriceAdjustment(f"Kilométrage faible ({_km(mileage_km)} km)", _round(bonus)))
        elif mileage_km < 50000 and mileage_confidence != 'high':
            adjustments.append(PriceAdjustment(
                f"Kilométrage faible ({_km(mileage_km)} km) - confiance {mileage_confidence}", 0,
            ))

    if has_history is False:
        penalty = -800 if mileage_km and mileage_km > HIGH_MILEAGE_KM else -300
        price += penalty
        adjustments.append(PriceAdjustment('Historique entretien non prouvé', penalty))
    elif has_history is True:
        adjustments.append(PriceAdjustment('Historique entretien vérifié', 0))

    gearbox = (transmission or '').lower()
    if 'automatique' in gearbox or 'dsg' in gearbox:
        price -= 400
        adjustments.append(PriceAdjustment('Boîte DSG/Auto (vidange à vérifier)', -400))

    impact, label = CONDITION_ADJUSTMENTS.get(condition or '', (0, 'Information insuffisante'))
    price += impact
    adjustments.append(PriceAdjustment(label, impact))

    area = (region or '').lower()
    if 'paris' in area or 'idf' in area:
        price = _round(price * 1.05)
        adjustments.append(PriceAdjustment('Région Paris/IDF', _round(base_price * 0.05)))
    elif region:
        adjustments.append(PriceAdjustment('Région', 0))

    return adjustments, max(MIN_MARKET_PRICE, _round(price))


def _position(price: Optional[int], low: int, high: int) -> Tuple[str, str]:
    if not price:
        return 'moyenne', ''
    width = high - low
    center = (low + high) / 2
    if price < low * 0.9:
        return 'basse_fourchette', 'Prix très attractif, opportunité intéressante'
    if price < low:
        return 'basse_fourchette', 'Prix attractif, bon rapport qualité-prix'
    if price <= low + width * 0.3:
        return 'basse_fourchette', 'Prix cohérent, dans la fourchette basse'
    if price <= low + width * 0.7:
        return 'moyenne', 'Prix dans la moyenne du marché'
    if price <= high:
        diff = price - center
        return 'haute_fourchette', (
            f"Prix dans la fourchette haute. Négociation possible: {_round(diff * 0.3)}-{_round(diff * 0.5)}€"
        )
    diff = price - high
    if price <= high * 1.1:
        return 'haute_fourchette', f"Négociation recommandée: {_round(diff * 0.5)}-{_round(diff * 0.8)}€"
    return 'hors_fourchette', f"Négociation nécessaire: {_round(diff * 0.6)}-{_round(diff)}€"


def estimate_market_price(
    reference_year: int,
    brand: Optional[str] = None,
    model: Optional[str] = None,
    year: Optional[int] = None,
    mileage_km: Optional[int] = None,
    announced_price: Optional[int] = None,
    has_history: Optional[bool] = None,
    transmission: Optional[str] = None,
    condition: Optional[str] = None,
    region: Optional[str] = None,
    mileage_confidence: str = 'low',
) -> MarketEstimate:
    """
    Deterministic market band for one vehicle: +/-10% around the adjusted price.

    Mileage only raises the estimate when its confidence is 'high'.
    Example:
        Peugeot 208 from 2021, no proven history, in 2026 -> 9 045 to 11 055
    """
    base = reference_base_price(brand, model, year, reference_year)
    if base is None:
        age = reference_year - year if year else UNKNOWN_AGE
        base = UNKNOWN_VEHICLE_ESTIMATE * 0.88 ** age

    adjustments, price = _adjust(
        base, year, mileage_km, mileage_confidence, has_history,
        transmission, condition, region, reference_year,
    )
    spread = _round(price * 0.1)
    low = max(MIN_MARKET_PRICE, price - spread)
    high = price + spread
    position, advice = _position(announced_price, low, high)
    return MarketEstimate(
        min_price=low,
        max_price=high,
        vehicle_price=price,
        position=position,
        advice=advice,
        adjustments=tuple(adjustments),
    )
