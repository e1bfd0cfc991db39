"""Fetch backends behind the remote fetch port."""

from .fetch import (
    FetchOptions,
    FetchError,
    MissingCredentialsError,
    FetchPort,
    build_fetcher,
    race_cancel,
)
from .zenrows import ZenRowsCrawler
from .local import LocalCrawler

__all__ = [
    'FetchOptions',
    'FetchError',
    'MissingCredentialsError',
    'FetchPort',
    'build_fetcher',
    'race_cancel',
    'ZenRowsCrawler',
    'LocalCrawler',
]
