"""
LeBonCoin adapter.

Site structure:
- Search page is a Next.js app; the raw body usually carries the ads in
  the __NEXT_DATA__ script.
- Listing cards are <a data-qa-id="aditem_container"> anchors with
  aditem_title / aditem_price / aditem_location children.
"""

import re
from typing import Any, Dict, List, Optional
from urllib.parse import urlencode, urlsplit

from ..base import (
    BaseScraper,
    SearchQuery,
    SearchPass,
    Listing,
    JsonAdPayload,
    HtmlCardPayload,
)
from ..config import get_site_config
from ..utils.normalizers import build_listing, strip_query
from ..utils.extractors import (
    parse_html,
    extract_script_json,
    first_list_at,
    first_value,
    first_image,
    element_text,
    element_image,
)

NEXT_DATA_PATHS = (
    'props.pageProps.searchData.ads',
    'props.pageProps.ads',
    'props.pageProps.data.ads',
    'props.initialState.ads',
)

# Thumbnail first, then full size
IMAGE_KEYS = (
    'images.urls_thumb',
    'images.urls_large',
    'images.thumb',
    'images.large',
    'images.thumb_url',
    'images.small_url',
)

AD_ID_PATTERN = re.compile(r'/ad/(?:[a-z_]+/)?(\d+)')

BASE_URL = 'https://www.leboncoin.fr'


def canonical_ad_url(url: Optional[str]) -> Optional[str]:
    """
    Normalize a LeBonCoin ad URL.

    Examples:
        /ad/ad/2712345678?utm=x -> https://www.leboncoin.fr/ad/2712345678
        https://leboncoin.fr/ad/voitures/2712345678#photos -> https://www.leboncoin.fr/ad/voitures/2712345678
        2712345678 -> https://www.leboncoin.fr/ad/2712345678
    """
    if not url or not isinstance(url, str):
        return None
    url = strip_query(url.strip())
    if url.isdigit():
        return f"{BASE_URL}/ad/{url}"

    path = urlsplit(url).path if url.startswith(('http://', 'https://', '//')) else url
    while '/ad/ad/' in path:
        path = path.replace('/ad/ad/', '/ad/')
    if not path.startswith('/'):
        path = '/' + path

    direct = re.match(r'^/ad/(\d+)', path)
    if direct:
        return f"{BASE_URL}/ad/{direct.group(1)}"
    return f"{BASE_URL}{path}"


def ad_id_from_url(url: Optional[str]) -> Optional[str]:
    if not url:
        return None
    match = AD_ID_PATTERN.search(url)
    return match.group(1) if match else None


def _attributes(ad: Dict[str, Any]) -> Dict[str, Any]:
    """Ad attributes come either as a dict or as a list of {key, value}."""
    raw = ad.get('attributes')
    if isinstance(raw, dict):
        return raw
    if isinstance(raw, list):
        attrs = {}
        for item in raw:
            if isinstance(item, dict) and item.get('key'):
                attrs[item['key']] = item.get('value', item.get('value_label'))
        return attrs
    return {}


class LeboncoinScraper(BaseScraper):
    """
    Adapter for leboncoin.fr car listings (category 2).

    Pass rules:
    - strict: price min-max from the query, zip code honoured
    - relaxed: price 0-floor(max*1.1), no zip code
    - opportunity: price 0-floor(max*1.2), no zip code, brand-only text
    """

    def __init__(self, fetcher, max_results: int = 100):
        super().__init__(get_site_config('leboncoin'), fetcher, max_results)

    def build_url(self, query: SearchQuery, search_pass: SearchPass) -> str:
        params = {'category': '2'}

        if search_pass == SearchPass.OPPORTUNITY:
            params['text'] = query.brand.strip()
        else:
            params['text'] = query.search_text

        max_price = search_pass.widen(query.max_price)
        if search_pass == SearchPass.STRICT and query.min_price:
            params['price'] = f"{query.min_price}-{max_price}"
        else:
            params['price'] = f"0-{max_price}"

        if query.max_mileage:
            params['mileage'] = f"min-{query.max_mileage}"
        if query.min_year:
            params['regdate'] = f"{query.min_year}-max"
        if search_pass == SearchPass.STRICT and query.zip_code:
            params['locations'] = query.zip_code

        return f"{self.config.search_url}?{urlencode(params)}"

    # ------------------------------------------------------------
    # Strategy: embedded structured data
    # ------------------------------------------------------------

    def find_ads(self, html: str) -> List[JsonAdPayload]:
        data = extract_script_json(html, '__NEXT_DATA__')
        if data is None:
            return []
        ads = first_list_at(data, NEXT_DATA_PATHS)
        if not ads:
            page_props = data.get('props', {}).get('pageProps', {}) if isinstance(data, dict) else {}
            keys = list(page_props.keys()) if isinstance(page_props, dict) else []
            self.logger.warning(f"__NEXT_DATA__ found but no ads array (pageProps keys: {keys})")
        return [JsonAdPayload(source=self.source, data=ad) for ad in ads]

    def map_ad(self, payload: JsonAdPayload) -> Optional[Listing]:
        ad = payload.data
        attrs = _attributes(ad)

        title = ad.get('subject') or ad.get('title') or ''
        ad_id = first_value(ad, 'list_id', 'id', 'adId')
        url = canonical_ad_url(ad.get('url') or (str(ad_id) if ad_id else None))

        location = ad.get('location') if isinstance(ad.get('location'), dict) else {}
        city = location.get('city') or location.get('city_label')

        images = ad.get('images') if isinstance(ad.get('images'), dict) else {}
        photos_count = images.get('nb_images')

        return build_listing(
            source=payload.source,
            id_prefix=self.config.short_name,
            base_url=self.config.base_url,
            external_id=ad_id or ad_id_from_url(url),
            title=title,
            url=url,
            price=ad.get('price'),
            year=attrs.get('regdate') or attrs.get('year') or ad.get('year'),
            mileage=attrs.get('mileage') or ad.get('mileage'),
            image_url=first_image(ad, IMAGE_KEYS),
            city=city,
            brand=attrs.get('brand'),
            model=attrs.get('model'),
            description=ad.get('body'),
            photos_count=photos_count if isinstance(photos_count, int) else None,
            default_title='Annonce LeBonCoin',
        )

    def extract_structured(self, html: str) -> List[Listing]:
        listings = []
        for payload in self.find_ads(html):
            listing = self.map_ad(payload)
            if listing is not None:
                listings.append(listing)
        return listings

    # ------------------------------------------------------------
    # Strategy: attribute scan
    # ------------------------------------------------------------

    def scan_cards(self, html: str) -> List[HtmlCardPayload]:
        if 'aditem_container' not in html:
            return []
        soup = parse_html(html)
        cards = []
        for anchor in soup.select('a[data-qa-id="aditem_container"]'):
            cards.append(HtmlCardPayload(
                source=self.source,
                href=anchor.get('href'),
                title=element_text(anchor.select_one('[data-qa-id="aditem_title"]')) or anchor.get('title'),
                price_text=element_text(anchor.select_one('[data-qa-id="aditem_price"]')),
                image_url=element_image(anchor),
                city=element_text(anchor.select_one('[data-qa-id="aditem_location"]')),
                text=anchor.get_text(' ', strip=True),
            ))
            if len(cards) >= self.max_results:
                break
        return cards

    def map_card(self, payload: HtmlCardPayload) -> Optional[Listing]:
        url = canonical_ad_url(payload.href)
        return build_listing(
            source=payload.source,
            id_prefix=self.config.short_name,
            base_url=self.config.base_url,
            external_id=ad_id_from_url(url),
            title=payload.title,
            url=url,
            price=payload.price_text,
            image_url=payload.image_url,
            city=payload.city,
            default_title='Annonce LeBonCoin',
        )

    def extract_attributes(self, html: str) -> List[Listing]:
        listings = []
        for payload in self.scan_cards(html):
            listing = self.map_card(payload)
            if listing is not None:
                listings.append(listing)
        return listings
