"""
LaCentrale adapter.

Site structure:
- Search page state is injected as `window.__INITIAL_STATE__ = {...};`
  or, on newer pages, as a Next.js __NEXT_DATA__ script.
- Listing cards are anchors pointing at /auto-occasion-annonce-<id>.html.
"""

import re
from typing import Any, Dict, List, Optional
from urllib.parse import urlencode

from ..base import (
    BaseScraper,
    SearchQuery,
    SearchPass,
    Listing,
    JsonAdPayload,
    HtmlCardPayload,
)
from ..config import get_site_config
from ..utils.normalizers import build_listing, strip_query, absolute_url, clean_text
from ..utils.extractors import (
    parse_html,
    extract_script_json,
    extract_assigned_json,
    first_list_at,
    first_value,
    first_image,
    element_text,
    element_image,
)

INITIAL_STATE_PATHS = (
    'ads',
    'listings',
    'vehicles',
    'data.ads',
    'data.listings',
    'searchResults.ads',
    'search.results.listings',
    'listing.results',
)

NEXT_DATA_PATHS = (
    'props.pageProps.ads',
    'props.pageProps.listings',
    'props.pageProps.data.ads',
    'props.pageProps.data.listings',
    'props.pageProps.searchResults.ads',
    'props.pageProps.search.results.listings',
    'props.initialState.ads',
)

# Thumbnails win over full-size images when an ad carries both
IMAGE_KEYS = (
    'thumbnail',
    'thumbnailUrl',
    'thumbnails',
    'imageUrl',
    'image',
    'photo',
    'img',
    'picture',
    'photoUrl',
    'media.url',
    'media.src',
    'pictures',
    'photos',
    'images',
    'media.images',
)

AD_ID_PATTERNS = (
    re.compile(r'/auto-occasion-annonce-([^/.?]+)'),
    re.compile(r'/annonce/([^/?]+)'),
    re.compile(r'/annonce-([^/.?]+)\.html'),
)

CARD_HREF = re.compile(r'/auto-occasion-annonce|/annonce')
CARD_PRICE = re.compile(r'(\d{1,3}(?:\s?\d{3})*)\s*€')


def ad_id_from_url(url: Optional[str]) -> Optional[str]:
    if not url:
        return None
    for pattern in AD_ID_PATTERNS:
        match = pattern.search(url)
        if match:
            return match.group(1)
    return None


class LacentraleScraper(BaseScraper):
    """
    Adapter for lacentrale.fr listings.

    Pass rules:
    - strict: priceMax from the query, priceMin when given
    - relaxed: priceMax floor(max*1.1), no priceMin
    - opportunity: priceMax floor(max*1.2), no priceMin
    """

    def __init__(self, fetcher, max_results: int = 100):
        super().__init__(get_site_config('lacentrale'), fetcher, max_results)

    def build_url(self, query: SearchQuery, search_pass: SearchPass) -> str:
        params = {}

        # BRAND:MODEL, upper case, no spaces
        brand = re.sub(r'\s+', '', query.brand.strip().upper())
        model = re.sub(r'\s+', '', (query.model or '').strip().upper())
        params['makesModelsCommercialNames'] = f"{brand}:{model}" if model else brand

        params['priceMax'] = str(search_pass.widen(query.max_price))
        if search_pass == SearchPass.STRICT and query.min_price:
            params['priceMin'] = str(query.min_price)

        if query.max_mileage:
            params['mileageMax'] = str(query.max_mileage)
        if query.min_year:
            params['yearMin'] = str(query.min_year)

        return f"{self.config.search_url}?{urlencode(params)}"

    # ------------------------------------------------------------
    # Strategy: embedded structured data
    # ------------------------------------------------------------

    def find_ads(self, html: str) -> List[JsonAdPayload]:
        ads: List[Dict[str, Any]] = []

        state = extract_assigned_json(html, 'window.__INITIAL_STATE__')
        if state is not None:
            ads = first_list_at(state, INITIAL_STATE_PATHS)
            if not ads:
                self.logger.debug("__INITIAL_STATE__ found but no ads array")

        if not ads:
            data = extract_script_json(html, '__NEXT_DATA__')
            if data is not None:
                ads = first_list_at(data, NEXT_DATA_PATHS)
                if not ads:
                    self.logger.debug("__NEXT_DATA__ found but no ads array")

        return [JsonAdPayload(source=self.source, data=ad) for ad in ads]

    def _image(self, ad: Dict[str, Any]) -> Optional[str]:
        image = first_image(ad, IMAGE_KEYS)
        if not image:
            return None
        return strip_query(absolute_url(image, self.config.base_url))

    def map_ad(self, payload: JsonAdPayload) -> Optional[Listing]:
        ad = payload.data
        ad_id = first_value(ad, 'id', 'adId', 'listId', 'externalId')

        url = first_value(ad, 'url', 'link', 'href', 'path')
        if not url and ad_id:
            url = f"/auto-occasion-annonce-{ad_id}.html"
        url = strip_query(absolute_url(str(url), self.config.base_url)) if url else None

        vehicle = ad.get('vehicle') if isinstance(ad.get('vehicle'), dict) else {}
        city = first_value(ad, 'city', 'locationCity', 'cityLabel', 'location.city', 'location')

        return build_listing(
            source=payload.source,
            id_prefix=self.config.short_name,
            base_url=self.config.base_url,
            external_id=ad_id or ad_id_from_url(url),
            title=first_value(ad, 'title', 'name', 'label', 'model'),
            url=url,
            price=first_value(ad, 'price', 'priceEur', 'price.value'),
            year=first_value(ad, 'year', 'registrationYear') or vehicle.get('year'),
            mileage=first_value(ad, 'mileage', 'mileageKm') or vehicle.get('mileage'),
            image_url=self._image(ad),
            city=city if isinstance(city, str) else None,
            brand=first_value(ad, 'make', 'brand') or vehicle.get('make'),
            model=first_value(ad, 'model') or vehicle.get('model'),
            description=ad.get('description'),
            ai_score=ad.get('qualityScore'),
            default_title='Annonce LaCentrale',
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
        if 'annonce' not in html:
            return []
        soup = parse_html(html)
        cards = []
        seen = set()

        for anchor in soup.find_all('a', href=CARD_HREF):
            href = strip_query(anchor.get('href'))
            if not href or href in seen:
                continue
            seen.add(href)

            heading = anchor.find(['h2', 'h3'])
            title = element_text(heading) or anchor.get('title') or anchor.get('data-title')

            text = anchor.get_text(' ', strip=True)
            price_match = CARD_PRICE.search(text)
            price_text = price_match.group(1) if price_match else anchor.get('data-price')

            city_el = anchor.find('span', class_=lambda c: c and 'city' in c.lower())
            city = element_text(city_el) or anchor.get('data-city')

            cards.append(HtmlCardPayload(
                source=self.source,
                href=href,
                title=title,
                price_text=price_text,
                image_url=element_image(anchor),
                city=city,
                text=text,
            ))
            if len(cards) >= self.max_results:
                break
        return cards

    def map_card(self, payload: HtmlCardPayload) -> Optional[Listing]:
        url = absolute_url(payload.href, self.config.base_url)
        image = absolute_url(payload.image_url, self.config.base_url)
        return build_listing(
            source=payload.source,
            id_prefix=self.config.short_name,
            base_url=self.config.base_url,
            external_id=ad_id_from_url(url),
            title=clean_text(payload.title),
            url=url,
            price=payload.price_text,
            image_url=image,
            city=payload.city,
            default_title='Annonce LaCentrale',
        )

    def extract_attributes(self, html: str) -> List[Listing]:
        listings = []
        for payload in self.scan_cards(html):
            listing = self.map_card(payload)
            if listing is not None:
                listings.append(listing)
        return listings
