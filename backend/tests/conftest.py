"""
Pytest configuration and fixtures for the vehicle search tests.
"""

import asyncio
import json
from types import SimpleNamespace

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from api.config import Settings
from api.database import Base, get_db
from api.main import app, get_manager
from scrapers.base import Listing
from scrapers.crawlers.fetch import FetchError, race_cancel
from scrapers.manager import ScraperManager


# Create an in-memory SQLite database for testing
SQLALCHEMY_DATABASE_URL = "sqlite:///:memory:"

engine = create_engine(
    SQLALCHEMY_DATABASE_URL,
    connect_args={"check_same_thread": False},
    poolclass=StaticPool,
)
TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)


def override_get_db():
    """Override the get_db dependency for testing."""
    try:
        db = TestingSessionLocal()
        yield db
    finally:
        db.close()


class FakeFetcher:
    """
    Scripted fetch port.

    Routes map (url substring, render) to a body, an exception or a delay.
    render=None matches both modes. Every call is recorded.
    """

    def __init__(self):
        self.routes = []
        self.calls = []
        self.closed = False

    def add(self, substring, body=None, render=None, error=None, delay=0.0):
        self.routes.append((substring, render, body, error, delay))
        return self

    async def fetch(self, url, options, cancel=None):
        self.calls.append((url, options.render))
        for substring, render, body, error, delay in self.routes:
            if substring not in url:
                continue
            if render is not None and render != options.render:
                continue
            if delay:
                await race_cancel(asyncio.sleep(delay), cancel)
            if error is not None:
                raise error
            return body
        raise FetchError(f"No scripted response for {url}")

    async def close(self):
        self.closed = True

    def urls(self, render=None):
        return [u for u, r in self.calls if render is None or r == render]


def make_settings(**overrides):
    values = {
        'zenrows_api_key': 'test-key',
        'fetch_backend': 'zenrows',
        'source_deadline_seconds': 5.0,
        'search_timeout_seconds': 30.0,
        'min_results_per_pass': 10,
        'max_results_per_source': 100,
        'enabled_sources': [],
    }
    values.update(overrides)
    return Settings(**values)


# ============================================================
# Sample page bodies
# ============================================================

def lbc_ad(list_id, subject, price, regdate='2019', mileage='45000', city='Lyon', thumb=None):
    return {
        'list_id': list_id,
        'subject': subject,
        'url': f'https://www.leboncoin.fr/ad/voitures/{list_id}',
        'price': [price],
        'body': 'Très bon état, entretien suivi, carnet complet.',
        'location': {'city': city, 'zipcode': '69001'},
        'images': {
            'nb_images': 6,
            'urls_thumb': [thumb or f'//img.leboncoin.fr/thumb/{list_id}.jpg'],
            'urls_large': [f'https://img.leboncoin.fr/large/{list_id}.jpg'],
        },
        'attributes': [
            {'key': 'brand', 'value': 'Peugeot'},
            {'key': 'model', 'value': '208'},
            {'key': 'regdate', 'value': regdate},
            {'key': 'mileage', 'value': mileage},
        ],
    }


def leboncoin_page(ads):
    data = {'props': {'pageProps': {'searchData': {'ads': ads}}}}
    return (
        '<html><head><title>leboncoin</title></head><body>'
        f'<script id="__NEXT_DATA__" type="application/json">{json.dumps(data)}</script>'
        '</body></html>'
    )


def leboncoin_cards_page():
    return """
    <html><body><div class="results">
      <a data-qa-id="aditem_container" href="/ad/voitures/2700000001?xtor=1">
        <img src="https://img.leboncoin.fr/a1.jpg" alt="">
        <p data-qa-id="aditem_title">Peugeot 208 Allure 1.2 PureTech</p>
        <span data-qa-id="aditem_price">12 500 €</span>
        <p data-qa-id="aditem_location">Lyon 69003</p>
      </a>
      <a data-qa-id="aditem_container" href="/ad/voitures/2700000002">
        <img data-src="//img.leboncoin.fr/a2.jpg" src="data:image/gif;base64,AAAA" alt="">
        <p data-qa-id="aditem_title">Peugeot 208 Active</p>
        <span data-qa-id="aditem_price">9 900 €</span>
      </a>
    </div></body></html>
    """


def lacentrale_ad(ad_id, title, price, year=2020, mileage=30000, quality=80):
    return {
        'id': ad_id,
        'title': title,
        'price': price,
        'year': year,
        'mileage': mileage,
        'city': 'Paris',
        'make': 'PEUGEOT',
        'model': '208',
        'photos': [{'url': f'//images.lacentrale.fr/{ad_id}.jpg?w=300'}],
        'qualityScore': quality,
    }


def lacentrale_page(ads):
    state = {'searchResults': {'ads': ads}}
    return (
        '<html><body><script>'
        f'window.__INITIAL_STATE__ = {json.dumps(state)};'
        '</script></body></html>'
    )


def lacentrale_cards_page():
    return """
    <html><body>
      <a href="/auto-occasion-annonce-69100000001.html?from=list" title="Peugeot 208">
        <h3>Peugeot 208 GT Line</h3>
        <img src="/img/69100000001.jpg">
        <span class="vehicle-city">Paris</span>
        <span>14 990 €</span>
      </a>
      <a href="/auto-occasion-annonce-69100000001.html">duplicate link</a>
    </body></html>
    """


# ============================================================
# Fixtures
# ============================================================

@pytest.fixture
def fetcher():
    """A fresh scripted fetch port."""
    return FakeFetcher()


@pytest.fixture
def settings_factory():
    return make_settings


@pytest.fixture
def pages():
    """Builders for sample source pages."""
    return SimpleNamespace(
        lbc_ad=lbc_ad,
        leboncoin=leboncoin_page,
        leboncoin_cards=leboncoin_cards_page,
        lacentrale_ad=lacentrale_ad,
        lacentrale=lacentrale_page,
        lacentrale_cards=lacentrale_cards_page,
    )


@pytest.fixture
def sample_listings():
    """A small, varied candidate set."""
    return [
        Listing(
            id='lbc_1', external_id='1', title='Peugeot 208 Allure 1.2 PureTech 110',
            url='https://www.leboncoin.fr/ad/1', source='LeBonCoin',
            price=12000, year=2020, mileage_km=40000,
            image_url='https://img.leboncoin.fr/1.jpg', city='Lyon',
        ),
        Listing(
            id='lacentrale_2', external_id='2', title='Peugeot 208 Active Business',
            url='https://www.lacentrale.fr/auto-occasion-annonce-2.html', source='LaCentrale',
            price=14000, year=2019, mileage_km=60000, ai_score=75,
        ),
        Listing(
            id='lbc_3', external_id='3', title='208',
            url='https://www.leboncoin.fr/ad/3', source='LeBonCoin',
        ),
    ]


@pytest.fixture(scope="function")
def db_session():
    """Create a fresh database session for each test."""
    Base.metadata.create_all(bind=engine)
    db = TestingSessionLocal()
    try:
        yield db
    finally:
        db.close()
        Base.metadata.drop_all(bind=engine)


@pytest.fixture(scope="function")
def client(db_session, fetcher):
    """Create a test client with database and manager overrides."""
    manager = ScraperManager(make_settings(), fetcher=fetcher)
    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_manager] = lambda: manager

    # Use TestClient directly without context manager so the lifespan does not run
    test_client = TestClient(app)
    yield test_client

    app.dependency_overrides.clear()
