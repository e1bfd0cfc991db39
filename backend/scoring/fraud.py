"""
Fraud / anomaly detection engine.

Ten independent heuristics run over a listing-like input. Each one that
triggers adds to the fraud score and emits a structured red flag. The
score is clamped to 100 and mapped to a risk level; recommendations come
from a fixed ladder keyed on the score band.

Vocabulary is French since every supported source is a French site.
"""

import re
from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, Iterable, List, Optional, Tuple

from scrapers.base import Listing
from .market import MarketStats
from .relevance import current_year
from .similarity import title_similarity


class FraudFlagType(Enum):
    PRICE_TOO_LOW = "price_too_low"
    PRICE_TOO_HIGH = "price_too_high"
    MILEAGE_TAMPERING = "mileage_tampering"
    SUSPICIOUS_DESCRIPTION = "suspicious_description"
    SELLER_SUSPICIOUS = "seller_suspicious"
    PHOTO_ANOMALY = "photo_anomaly"
    DUPLICATE_LISTING = "duplicate_listing"
    LOCATION_INCONSISTENT = "location_inconsistent"
    CONTACT_SUSPICIOUS = "contact_suspicious"
    PAYMENT_METHOD_SUSPICIOUS = "payment_method_suspicious"
    URGENCY_PRESSURE = "urgency_pressure"
    INCOMPLETE_INFORMATION = "incomplete_information"
    VICE_CACHE_DETECTED = "vice_cache_detected"


class Severity(Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"


class Confidence(Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


class RiskLevel(Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"

    @classmethod
    def from_score(cls, score: int) -> 'RiskLevel':
        if score >= 70:
            return cls.CRITICAL
        if score >= 50:
            return cls.HIGH
        if score >= 30:
            return cls.MEDIUM
        return cls.LOW


# ============================================================
# VOCABULARY
# ============================================================

SUSPICIOUS_KEYWORDS = {
    Severity.CRITICAL: (
        'virement immédiat',
        'paiement avant livraison',
        'pas de visite possible',
        "véhicule à l'étranger",
        'départ urgent',
        'déménagement urgent',
        'divorce',
        'héritage',
        'décès',
        'cash uniquement',
        'pas de chèque',
        'virement bancaire uniquement',
    ),
    Severity.HIGH: (
        'urgent',
        'rapide',
        'immédiat',
        'départ',
        'déménagement',
        'étranger',
        'virement',
        'cash',
        'pas de visite',
        'livraison possible',
        'garantie constructeur',
        'jamais accidenté',
    ),
    Severity.MEDIUM: (
        'occasion unique',
        'prix cassé',
        'braderie',
        'liquidation',
        'fin de série',
        'déstockage',
    ),
}

# Added when the in-search duplicate check fires
DUPLICATE_LISTING_POINTS = 15

KEYWORD_POINTS = {
    Severity.CRITICAL: 30,
    Severity.HIGH: 20,
    Severity.MEDIUM: 10,
}

# Plural and agreement endings; "départ" must not match "département"
WORD_ENDINGS = r'(?:s|e|es|é|ée|és|ées)?'


def word_pattern(term: str) -> re.Pattern:
    """Whole-word, case-insensitive match of a term and its inflections."""
    return re.compile(r'\b' + re.escape(term) + WORD_ENDINGS + r'\b', re.IGNORECASE)


KEYWORD_PATTERNS = {
    severity: tuple((keyword, word_pattern(keyword)) for keyword in keywords)
    for severity, keywords in SUSPICIOUS_KEYWORDS.items()
}

URGENCY_PATTERNS = tuple(word_pattern(term) for term in (
    'urgent',
    'rapide',
    'immédiat',
    'départ',
    'déménagement',
    'dernière chance',
    'derniers jours',
))

CONTACT_PATTERNS = tuple(re.compile(p, re.IGNORECASE) for p in (
    r'^\+33\d{9}$',
    r'^00\d{10,}$',
    r'gmail\.com',
    r'yahoo\.fr',
    r'hotmail\.(com|fr)',
))

PAYMENT_PATTERNS = tuple(re.compile(p, re.IGNORECASE) for p in (
    r'virement.*immédiat',
    r'paiement.*avant.*livraison',
    r'cash.*uniquement',
    r'pas.*de.*chèque',
    r'virement.*bancaire.*uniquement',
))

PRO_SELLER_PATTERN = re.compile(r'\b(concession|garage|professionnel|pro)\b', re.IGNORECASE)

URL_CITY_PATTERN = re.compile(
    r'(paris|lyon|marseille|toulouse|nice|nantes|strasbourg|montpellier|bordeaux|rennes)',
    re.IGNORECASE,
)

VICE_CACHE_KEYWORDS = (
    'accident',
    'choc',
    'carrosserie',
    'réparation',
    'casse',
    'panne',
    'problème',
    'défaut',
    'vice',
    'sinistre',
)

VICE_CACHE_PATTERNS = tuple((keyword, word_pattern(keyword)) for keyword in VICE_CACHE_KEYWORDS)

VICE_CACHE_DISCLAIMERS = ('jamais accidenté', 'aucun sinistre')

RECOMMENDATIONS = (
    (50, (
        'ARNAQUE PROBABLE - Ne pas acheter sans vérification exhaustive',
        "Vérifier l'identité du vendeur (pièce d'identité)",
        'Exiger une visite physique du véhicule',
        "Ne jamais payer avant d'avoir vu le véhicule",
    )),
    (30, (
        'Prudence recommandée - Vérifications approfondies nécessaires',
        'Demander des photos supplémentaires',
        "Vérifier l'historique du véhicule (VIN)",
        'Rencontrer le vendeur en personne',
    )),
    (15, (
        'Vérifications de routine recommandées',
        'Demander des informations complémentaires',
    )),
)


# ============================================================
# DATA STRUCTURES
# ============================================================

@dataclass(frozen=True)
class FraudRedFlag:
    type: FraudFlagType
    severity: Severity
    title: str
    description: str
    evidence: Tuple[str, ...] = ()
    confidence: Confidence = Confidence.MEDIUM

    def to_dict(self) -> Dict:
        return {
            'type': self.type.value,
            'severity': self.severity.value,
            'title': self.title,
            'description': self.description,
            'evidence': list(self.evidence),
            'confidence': self.confidence.value,
        }


@dataclass
class FraudInput:
    """Listing-like input; every field is optional."""
    title: Optional[str] = None
    description: Optional[str] = None
    price: Optional[int] = None
    market_min: Optional[float] = None
    market_max: Optional[float] = None
    mileage_km: Optional[int] = None
    year: Optional[int] = None
    location: Optional[str] = None
    contact_info: Optional[str] = None
    photos_count: Optional[int] = None
    url: Optional[str] = None
    source: Optional[str] = None
    has_history: bool = False


@dataclass
class FraudDetectionResult:
    risk_level: RiskLevel
    fraud_score: int
    red_flags: List[FraudRedFlag] = field(default_factory=list)
    suspicious_patterns: List[str] = field(default_factory=list)
    recommendations: List[str] = field(default_factory=list)

    def add_flags(self, flags: Iterable[FraudRedFlag], points: int = 0) -> 'FraudDetectionResult':
        """Return a result with extra flags, the score re-clamped and re-banded."""
        flags = list(flags)
        if not flags:
            return self
        score = min(100, self.fraud_score + points)
        return FraudDetectionResult(
            risk_level=RiskLevel.from_score(score),
            fraud_score=score,
            red_flags=self.red_flags + flags,
            suspicious_patterns=list(self.suspicious_patterns),
            recommendations=recommendations_for(score),
        )

    def to_dict(self) -> Dict:
        return {
            'risk_level': self.risk_level.value,
            'fraud_score': self.fraud_score,
            'red_flags': [f.to_dict() for f in self.red_flags],
            'suspicious_patterns': list(self.suspicious_patterns),
            'recommendations': list(self.recommendations),
        }


def recommendations_for(score: int) -> List[str]:
    for threshold, advice in RECOMMENDATIONS:
        if score >= threshold:
            return list(advice)
    return []


def _format_eur(value: float) -> str:
    return f"{int(round(value)):,}".replace(',', ' ') + ' €'


# ============================================================
# HEURISTICS
# Each returns (points, flags, patterns)
# ============================================================

Check = Tuple[int, List[FraudRedFlag], List[str]]


def check_price(data: FraudInput) -> Check:
    if data.price is None or data.price <= 0 or not data.market_min:
        return 0, [], []

    ratio = data.price / data.market_min
    evidence = (
        f"Prix annoncé: {_format_eur(data.price)}",
        f"Prix marché estimé: {_format_eur(data.market_min)}",
    )
    if ratio < 0.6:
        flag = FraudRedFlag(
            type=FraudFlagType.PRICE_TOO_LOW,
            severity=Severity.CRITICAL,
            title='Prix anormalement bas',
            description=(
                f"Le prix est {round((1 - ratio) * 100)}% en-dessous du marché estimé. "
                "Risque d'arnaque ou vice caché majeur."
            ),
            evidence=evidence + (f"Écart: {_format_eur(data.market_min - data.price)}",),
            confidence=Confidence.HIGH,
        )
        return 40, [flag], ['prix_anormalement_bas']
    if ratio < 0.75:
        flag = FraudRedFlag(
            type=FraudFlagType.PRICE_TOO_LOW,
            severity=Severity.HIGH,
            title='Prix suspect',
            description='Le prix est significativement en-dessous du marché. Vérification impérative.',
            evidence=evidence,
            confidence=Confidence.MEDIUM,
        )
        return 25, [flag], []
    return 0, [], []


def check_keywords(text: str) -> Check:
    points, flags, patterns = 0, [], []
    for severity, patterns_for_tier in KEYWORD_PATTERNS.items():
        for keyword, pattern in patterns_for_tier:
            match = pattern.search(text)
            if match is None:
                continue
            context = text[max(0, match.start() - 50):match.start() + 100]
            flags.append(FraudRedFlag(
                type=FraudFlagType.SUSPICIOUS_DESCRIPTION,
                severity=severity,
                title=f'Mots-clés suspects détectés: "{keyword}"',
                description=f"L'annonce contient des mots-clés typiques d'arnaques: \"{keyword}\".",
                evidence=(f'Mot-clé suspect: "{keyword}"', f"Contexte: {context}"),
                confidence=Confidence.HIGH if severity == Severity.CRITICAL else Confidence.MEDIUM,
            ))
            points += KEYWORD_POINTS[severity]
            patterns.append('keyword_' + re.sub(r'\s+', '_', keyword))
    return points, flags, patterns


def check_urgency(text: str) -> Check:
    count = sum(1 for pattern in URGENCY_PATTERNS if pattern.search(text))
    if count < 2:
        return 0, [], []
    flag = FraudRedFlag(
        type=FraudFlagType.URGENCY_PRESSURE,
        severity=Severity.HIGH,
        title="Pression d'urgence suspecte",
        description="L'annonce utilise plusieurs mots d'urgence pour forcer une décision rapide.",
        evidence=(f"{count} mots d'urgence détectés",),
        confidence=Confidence.MEDIUM,
    )
    return 20, [flag], ['pression_urgence']


def check_contact(data: FraudInput) -> Check:
    if not data.contact_info:
        return 0, [], []
    contact = data.contact_info.strip()
    if not any(pattern.search(contact) for pattern in CONTACT_PATTERNS):
        return 0, [], []
    flag = FraudRedFlag(
        type=FraudFlagType.CONTACT_SUSPICIOUS,
        severity=Severity.MEDIUM,
        title='Contact suspect',
        description='Le contact utilise un format suspect (email générique, numéro étranger).',
        evidence=(f"Contact: {contact}",),
        confidence=Confidence.LOW,
    )
    return 10, [flag], ['contact_suspect']


def check_payment(text: str) -> Check:
    for pattern in PAYMENT_PATTERNS:
        if pattern.search(text):
            flag = FraudRedFlag(
                type=FraudFlagType.PAYMENT_METHOD_SUSPICIOUS,
                severity=Severity.CRITICAL,
                title='Méthode de paiement suspecte',
                description="L'annonce impose une méthode de paiement suspecte (virement avant livraison, cash uniquement).",
                evidence=(f"Pattern détecté: {pattern.pattern}",),
                confidence=Confidence.HIGH,
            )
            return 35, [flag], ['paiement_suspect']
    return 0, [], []


def check_missing_information(data: FraudInput) -> Check:
    missing = []
    if data.price is None:
        missing.append('prix')
    if data.mileage_km is None:
        missing.append('kilométrage')
    if data.year is None:
        missing.append('année')
    if not data.location:
        missing.append('localisation')
    if not data.photos_count:
        missing.append('photos')
    if not data.description or len(data.description) < 100:
        missing.append('description détaillée')

    if len(missing) < 3:
        return 0, [], []
    flag = FraudRedFlag(
        type=FraudFlagType.INCOMPLETE_INFORMATION,
        severity=Severity.HIGH,
        title='Informations manquantes',
        description=f"L'annonce manque de {len(missing)} informations essentielles.",
        evidence=(f"Informations manquantes: {', '.join(missing)}",),
        confidence=Confidence.MEDIUM,
    )
    return 15, [flag], ['informations_incompletes']


def check_mileage(data: FraudInput, reference_year: int) -> Check:
    if data.mileage_km is None or data.year is None:
        return 0, [], []
    age = reference_year - data.year
    if data.mileage_km >= 1000 or age < 3:
        return 0, [], []
    yearly = data.mileage_km / max(1, age)
    flag = FraudRedFlag(
        type=FraudFlagType.MILEAGE_TAMPERING,
        severity=Severity.CRITICAL,
        title='Kilométrage probablement trafiqué',
        description=f"Kilométrage ({data.mileage_km} km) anormalement faible pour un véhicule de {age} ans.",
        evidence=(
            f"Kilométrage: {data.mileage_km} km",
            f"Âge: {age} ans",
            f"Moyenne: {round(yearly)} km/an (normal: 10-20k km/an)",
        ),
        confidence=Confidence.HIGH,
    )
    return 40, [flag], ['kilometrage_trafique']


def check_seller(text: str, data: FraudInput) -> Check:
    if data.has_history or not PRO_SELLER_PATTERN.search(text):
        return 0, [], []
    flag = FraudRedFlag(
        type=FraudFlagType.SELLER_SUSPICIOUS,
        severity=Severity.MEDIUM,
        title='Vendeur pro sans historique',
        description="Vendeur professionnel sans historique d'entretien. Inhabituel.",
        evidence=('Vendeur professionnel détecté', "Historique d'entretien absent"),
        confidence=Confidence.LOW,
    )
    return 10, [flag], []


def check_location(data: FraudInput) -> Check:
    if not data.location or not data.url:
        return 0, [], []
    match = URL_CITY_PATTERN.search(data.url)
    if not match or match.group(0).lower() in data.location.lower():
        return 0, [], []
    flag = FraudRedFlag(
        type=FraudFlagType.LOCATION_INCONSISTENT,
        severity=Severity.MEDIUM,
        title='Localisation incohérente',
        description=f"Localisation mentionnée ({data.location}) différente de celle dans l'URL ({match.group(0)}).",
        evidence=(f"Localisation annonce: {data.location}", f"Localisation URL: {match.group(0)}"),
        confidence=Confidence.LOW,
    )
    return 10, [flag], ['localisation_incoherente']


def check_vice_cache(text: str) -> Check:
    found = [kw for kw, pattern in VICE_CACHE_PATTERNS if pattern.search(text)]
    if len(found) < 3 or any(d in text for d in VICE_CACHE_DISCLAIMERS):
        return 0, [], []
    flag = FraudRedFlag(
        type=FraudFlagType.VICE_CACHE_DETECTED,
        severity=Severity.HIGH,
        title='Indices de vice caché',
        description=f"La description mentionne {len(found)} mots liés à des problèmes/accidents.",
        evidence=(f"Mots détectés: {', '.join(found)}",),
        confidence=Confidence.MEDIUM,
    )
    return 25, [flag], ['vice_cache_detecte']


# ============================================================
# ENTRY POINTS
# ============================================================

def detect_fraud(data: FraudInput, reference_year: Optional[int] = None) -> FraudDetectionResult:
    """Run the ten heuristics and combine them into one result."""
    if reference_year is None:
        reference_year = current_year()

    text = f"{data.title or ''} {data.description or ''}".lower()

    checks = (
        check_price(data),
        check_keywords(text),
        check_urgency(text),
        check_contact(data),
        check_payment(text),
        check_missing_information(data),
        check_mileage(data, reference_year),
        check_seller(text, data),
        check_location(data),
        check_vice_cache(text),
    )

    points = 0
    flags: List[FraudRedFlag] = []
    patterns: List[str] = []
    for check_points, check_flags, check_patterns in checks:
        points += check_points
        flags.extend(check_flags)
        patterns.extend(check_patterns)

    score = min(100, points)
    return FraudDetectionResult(
        risk_level=RiskLevel.from_score(score),
        fraud_score=score,
        red_flags=flags,
        suspicious_patterns=patterns,
        recommendations=recommendations_for(score),
    )


def detect_duplicate_listings(
    data: FraudInput,
    peers: Iterable[FraudInput],
    similarity_threshold: float = 0.8,
    price_delta: int = 1000,
) -> List[FraudRedFlag]:
    """
    Flag near-identical titles posted at clearly different prices.

    Similarity is plain (lowercased) Levenshtein relative to the longer
    title; a peer counts when similarity > threshold and the price gap is
    > price_delta.
    """
    if not data.title or data.price is None:
        return []

    similar = []
    for other in peers:
        if other is data or not other.title or other.price is None:
            continue
        similarity = title_similarity(data.title, other.title, normalize=False)
        if similarity > similarity_threshold and abs(data.price - other.price) > price_delta:
            similar.append(other)

    if not similar:
        return []
    return [FraudRedFlag(
        type=FraudFlagType.DUPLICATE_LISTING,
        severity=Severity.HIGH,
        title='Annonce dupliquée détectée',
        description=f"{len(similar)} annonce(s) similaire(s) trouvée(s) avec des prix différents.",
        evidence=tuple(f"Prix: {_format_eur(s.price)} - {s.url or 'URL inconnue'}" for s in similar),
        confidence=Confidence.MEDIUM,
    )]


def fraud_input_from_listing(listing: Listing, stats: Optional[MarketStats] = None) -> FraudInput:
    """
    Build the engine input for a scraped listing.

    Within a search the candidate set's average price is the market
    reference the price check compares against.
    """
    return FraudInput(
        title=listing.title,
        description=listing.description,
        price=listing.price,
        market_min=stats.avg_price if stats else None,
        market_max=stats.max_price if stats else None,
        mileage_km=listing.mileage_km,
        year=listing.year,
        location=listing.city,
        photos_count=listing.photos_count,
        url=listing.url,
        source=listing.source,
    )
