"""
Data extraction utilities for site adapters.

These functions locate embedded structured data in page bodies and pull
values out of the loosely shaped dicts found there.
"""

import re
import json
from typing import Any, Dict, Iterable, List, Optional
from bs4 import BeautifulSoup


def parse_html(html: str) -> BeautifulSoup:
    """Parse a page body."""
    return BeautifulSoup(html, 'html.parser')


def extract_script_json(html: str, script_id: str) -> Optional[Any]:
    """
    Parse the JSON content of a <script id="..."> block.

    Returns None when the block is missing or does not hold valid JSON.
    """
    if not html or script_id not in html:
        return None
    soup = parse_html(html)
    script = soup.find('script', id=script_id)
    if script is None:
        return None
    content = script.string or script.get_text()
    if not content or not content.strip():
        return None
    try:
        return json.loads(content)
    except (json.JSONDecodeError, ValueError):
        return None


def extract_assigned_json(html: str, variable: str) -> Optional[Any]:
    """
    Parse a `<variable> = {...};` assignment injected into an inline script.

    Args:
        html: Page body
        variable: Left-hand side, e.g. 'window.__INITIAL_STATE__'

    Returns:
        Parsed object, or None when missing or not valid JSON
    """
    if not html or variable not in html:
        return None
    pattern = re.escape(variable) + r'\s*=\s*({[\s\S]+?});'
    # The lazy match may stop at a '};' inside a string, so widen until it parses
    for match in re.finditer(pattern, html):
        start = match.start(1)
        end = match.end(1)
        while end <= len(html):
            try:
                return json.loads(html[start:end])
            except (json.JSONDecodeError, ValueError):
                end = html.find('};', end)
                if end == -1:
                    break
                end += 1
    return None


def get_path(data: Any, path: str) -> Any:
    """
    Follow a dotted path through nested dicts and lists.

    Examples:
        get_path({'a': {'b': [1, 2]}}, 'a.b') -> [1, 2]
        get_path({'a': [{'x': 1}]}, 'a.0.x') -> 1
        get_path({}, 'a.b') -> None
    """
    current = data
    for key in path.split('.'):
        if isinstance(current, dict):
            current = current.get(key)
        elif isinstance(current, list) and key.isdigit():
            index = int(key)
            current = current[index] if index < len(current) else None
        else:
            return None
        if current is None:
            return None
    return current


def first_list_at(data: Any, paths: Iterable[str]) -> List[Dict[str, Any]]:
    """Return the first non-empty list of dicts found at one of the paths."""
    for path in paths:
        value = get_path(data, path)
        if isinstance(value, list):
            ads = [item for item in value if isinstance(item, dict)]
            if ads:
                return ads
    return []


def first_value(data: Dict[str, Any], *keys: str) -> Any:
    """First present, non-empty value among dotted keys."""
    for key in keys:
        value = get_path(data, key)
        if value not in (None, '', [], {}):
            return value
    return None


def image_from_value(value: Any) -> Optional[str]:
    """
    Resolve an image URL from a string, a dict or a list.

    Dicts are probed for url / src / href / path; lists use their first
    resolvable element.
    """
    if isinstance(value, str):
        return value.strip() or None
    if isinstance(value, dict):
        for key in ('url', 'src', 'href', 'path'):
            found = image_from_value(value.get(key))
            if found:
                return found
        return None
    if isinstance(value, (list, tuple)):
        for item in value:
            found = image_from_value(item)
            if found:
                return found
    return None


def first_image(data: Dict[str, Any], keys: Iterable[str]) -> Optional[str]:
    """Image URL from the first key, in priority order, that resolves."""
    for key in keys:
        found = image_from_value(get_path(data, key))
        if found:
            return found
    return None


def element_text(element) -> Optional[str]:
    """Whitespace-normalized text of a BeautifulSoup element."""
    if element is None:
        return None
    text = element.get_text(' ', strip=True)
    return text or None


def element_image(element) -> Optional[str]:
    """First image source inside an element, honouring lazy-load attributes."""
    if element is None:
        return None
    img = element.find('img')
    if img is None:
        return None
    for attr in ('src', 'data-src', 'data-lazy-src'):
        value = img.get(attr)
        if value and not value.startswith('data:'):
            return value
    srcset = img.get('srcset')
    if srcset:
        return srcset.split(',')[0].split()[0]
    return None
