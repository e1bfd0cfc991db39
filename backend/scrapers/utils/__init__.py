"""Shared utilities for site adapters."""

from .normalizers import (
    parse_int,
    parse_price,
    parse_mileage,
    parse_year,
    clean_text,
    absolute_url,
    strip_query,
    url_digest,
    split_title,
    build_listing,
)
from .extractors import (
    parse_html,
    extract_script_json,
    extract_assigned_json,
    get_path,
    first_list_at,
    first_value,
    image_from_value,
    first_image,
    element_text,
    element_image,
)

__all__ = [
    'parse_int',
    'parse_price',
    'parse_mileage',
    'parse_year',
    'clean_text',
    'absolute_url',
    'strip_query',
    'url_digest',
    'split_title',
    'build_listing',
    'parse_html',
    'extract_script_json',
    'extract_assigned_json',
    'get_path',
    'first_list_at',
    'first_value',
    'image_from_value',
    'first_image',
    'element_text',
    'element_image',
]
