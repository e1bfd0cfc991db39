"""
Data normalization utilities for site adapters.

These functions turn the loosely typed values found in listing payloads
into canonical Python values. A value that cannot be read normalizes to
None, never to 0: zero is a valid price or mileage.
"""

import hashlib
import html
import re
from typing import Any, Optional, Tuple
from urllib.parse import urljoin, urlsplit, urlunsplit

from ..base import Listing

# Thousands separators seen in French price/mileage text (incl. narrow nbsp)
_SEPARATORS = re.compile(r'[\s.]')
_NUMBER = re.compile(r'\d[\d\s.]*(?:,\d+)?')
_YEAR = re.compile(r'(?<!\d)(19\d{2}|20\d{2})(?!\d)')


def parse_int(value: Any) -> Optional[int]:
    """
    Read an integer out of a scalar or a first-element-of-array value.

    Examples:
        12500 -> 12500
        [12500] -> 12500
        "12 500 €" -> 12500
        "12.500,00" -> 12500
        0 -> 0
        None, "", [], "n/c" -> None
    """
    if isinstance(value, (list, tuple)):
        if not value:
            return None
        value = value[0]

    if value is None or isinstance(value, bool):
        return None

    if isinstance(value, int):
        return value

    if isinstance(value, float):
        if value != value:  # NaN
            return None
        return int(value)

    if isinstance(value, dict):
        for key in ('value', 'amount', 'raw'):
            if key in value:
                return parse_int(value[key])
        return None

    text = str(value).strip()
    match = _NUMBER.search(text)
    if not match:
        return None
    number = match.group(0).split(',')[0].strip()
    if re.fullmatch(r'\d+\.\d{1,2}', number):
        # decimal point, not a thousands separator
        number = number.split('.')[0]
    digits = _SEPARATORS.sub('', number)
    return int(digits) if digits.isdigit() else None


def parse_price(value: Any) -> Optional[int]:
    """Price in whole euros, accepting scalar or array payload shapes."""
    price = parse_int(value)
    if price is None or price < 0:
        return None
    return price


def parse_mileage(value: Any) -> Optional[int]:
    """
    Mileage in km.

    Examples:
        "45 000 km" -> 45000
        45000 -> 45000
    """
    mileage = parse_int(value)
    if mileage is None or mileage < 0:
        return None
    return mileage


def parse_year(value: Any) -> Optional[int]:
    """
    Model year from a number or a date-ish string.

    Examples:
        2019 -> 2019
        "03/2019" -> 2019
        "2019-03-01" -> 2019
        "12" -> None
    """
    if isinstance(value, (list, tuple)):
        value = value[0] if value else None
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        year = int(value)
        return year if 1900 < year < 2100 else None
    match = _YEAR.search(str(value))
    return int(match.group(1)) if match else None


def clean_text(text: Optional[str]) -> Optional[str]:
    """Unescape entities and collapse whitespace; empty becomes None."""
    if text is None:
        return None
    text = re.sub(r'\s+', ' ', html.unescape(str(text))).strip()
    return text or None


def absolute_url(url: Optional[str], base_url: str) -> Optional[str]:
    """
    Make a URL absolute.

    Examples:
        //img.example.com/a.jpg -> https://img.example.com/a.jpg
        /ad/123 -> https://www.leboncoin.fr/ad/123 (with that base)
    """
    if not url or not isinstance(url, str):
        return None
    url = url.strip()
    if not url:
        return None
    if url.startswith('//'):
        return 'https:' + url
    if url.startswith(('http://', 'https://')):
        return url
    return urljoin(base_url, url)


def strip_query(url: Optional[str]) -> Optional[str]:
    """Drop query string and fragment."""
    if not url:
        return url
    parts = urlsplit(url)
    return urlunsplit((parts.scheme, parts.netloc, parts.path, '', ''))


def url_digest(url: str) -> str:
    return hashlib.sha1(url.encode('utf-8')).hexdigest()[:12]


def split_title(title: Optional[str]) -> Tuple[Optional[str], Optional[str]]:
    """
    Heuristic brand/model from a free-text title: first two tokens.

    Examples:
        "Peugeot 208 Allure" -> ("Peugeot", "208")
        "Clio" -> ("Clio", None)
    """
    if not title:
        return None, None
    tokens = title.split()
    brand = tokens[0] if tokens else None
    model = tokens[1] if len(tokens) > 1 else None
    return brand, model


def build_listing(
    source: str,
    id_prefix: str,
    base_url: str,
    external_id: Any = None,
    title: Optional[str] = None,
    url: Optional[str] = None,
    price: Any = None,
    year: Any = None,
    mileage: Any = None,
    image_url: Any = None,
    city: Any = None,
    brand: Optional[str] = None,
    model: Optional[str] = None,
    description: Optional[str] = None,
    photos_count: Optional[int] = None,
    ai_score: Any = None,
    default_title: Optional[str] = None,
) -> Optional[Listing]:
    """
    Map already-located payload fields to a canonical Listing.

    Returns None for a malformed candidate (no usable URL).
    Without an external id the id is derived from the URL; without
    brand/model fields they are guessed from the title.
    """
    title = clean_text(title)
    url = absolute_url(url, base_url)
    # A URL is mandatory, so a title-only candidate is dropped too
    if not url:
        return None

    external = clean_text(str(external_id)) if external_id not in (None, '') else None
    if not external:
        external = url_digest(url)

    image = absolute_url(image_url, base_url) if isinstance(image_url, str) else None
    score = parse_int(ai_score)
    if not brand and not model:
        brand, model = split_title(title)

    return Listing(
        id=f"{id_prefix}_{external}",
        external_id=external,
        title=title or default_title or f"Annonce {source}",
        url=url,
        source=source,
        price=parse_price(price),
        year=parse_year(year),
        mileage_km=parse_mileage(mileage),
        image_url=image,
        city=clean_text(city) if isinstance(city, str) else None,
        brand=clean_text(brand) if isinstance(brand, str) else None,
        model=clean_text(model) if isinstance(model, str) else None,
        description=clean_text(description),
        photos_count=photos_count,
        ai_score=score,
    )
