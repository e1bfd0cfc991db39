"""
Tests for API endpoints.
"""

from fastapi import status

from api.database import save_listings
from scrapers.crawlers.fetch import MissingCredentialsError


class TestRootEndpoint:
    """Test the root endpoint."""

    def test_root_returns_json(self, client):
        response = client.get("/")

        assert response.status_code == status.HTTP_200_OK
        data = response.json()
        assert data["message"] == "Vehicle Search API"
        assert "version" in data

    def test_favicon(self, client):
        assert client.get("/favicon.ico").status_code == status.HTTP_204_NO_CONTENT


class TestScrapersEndpoint:

    def test_list_scrapers(self, client):
        response = client.get("/api/scrapers")

        assert response.status_code == status.HTTP_200_OK
        data = response.json()
        keys = {s["key"] for s in data["scrapers"]}
        assert {"leboncoin", "lacentrale", "paruvendu"} <= keys
        assert data["implemented"] == ["leboncoin", "lacentrale"]


class TestSearchEndpoint:
    """Test running a search through the API."""

    def test_search_returns_ranked_listings(self, client, fetcher, pages):
        fetcher.add('leboncoin.fr', pages.leboncoin([
            pages.lbc_ad(1, 'Peugeot 208 Allure', 12500),
        ]), render=False)
        fetcher.add('lacentrale.fr', pages.lacentrale([
            pages.lacentrale_ad('A1', 'Peugeot 208 GT Line', 17900, year=2022, mileage=15000),
        ]), render=False)

        response = client.post("/api/search", json={"brand": "Peugeot", "model": "208", "max_price": 20000})

        assert response.status_code == status.HTTP_200_OK
        data = response.json()
        assert {l["id"] for l in data["listings"]} == {"lbc_1", "lacentrale_A1"}
        assert data["summary"]["total_listings"] == 2
        assert data["diagnostics"]["leboncoin"]["status"] == "ok"
        for listing in data["listings"]:
            assert 0 <= listing["relevance_score"] <= 100
            assert listing["risk_level"] in ("low", "medium", "high", "critical")

    def test_search_results_are_stored(self, client, fetcher, pages):
        fetcher.add('leboncoin.fr', pages.leboncoin([pages.lbc_ad(1, 'Peugeot 208 Allure', 12500)]), render=False)
        fetcher.add('lacentrale.fr', '<html><body>Aucune annonce</body></html>')

        client.post("/api/search", json={"brand": "Peugeot", "model": "208", "max_price": 20000})
        response = client.get("/api/listings")

        assert [l["id"] for l in response.json()] == ["lbc_1"]

    def test_failed_source_is_reported(self, client, fetcher, pages):
        fetcher.add('leboncoin.fr', error=MissingCredentialsError('ZENROWS_API_KEY is not configured'))
        fetcher.add('lacentrale.fr', pages.lacentrale([]))

        response = client.post("/api/search", json={"brand": "Peugeot", "max_price": 20000})

        assert response.status_code == status.HTTP_200_OK
        data = response.json()
        assert data["diagnostics"]["leboncoin"]["status"] == "config_error"
        assert data["diagnostics"]["lacentrale"]["status"] == "empty"
        assert data["summary"]["failed"] == 1
        assert data["listings"] == []

    def test_blank_brand_rejected(self, client):
        response = client.post("/api/search", json={"brand": "   ", "max_price": 20000})
        assert response.status_code == status.HTTP_422_UNPROCESSABLE_ENTITY

    def test_negative_price_rejected(self, client):
        response = client.post("/api/search", json={"brand": "Peugeot", "max_price": -1})
        assert response.status_code == status.HTTP_422_UNPROCESSABLE_ENTITY


class TestAnalyzeEndpoint:

    def test_analyze_scam(self, client):
        response = client.post("/api/analyze", json={
            "title": "Peugeot 208",
            "description": "Paiement par virement immédiat, cash uniquement",
            "price": 4000,
            "market_min": 10000,
            "mileage_km": 60000,
            "year": 2019,
            "location": "Paris",
        })

        assert response.status_code == status.HTTP_200_OK
        data = response.json()
        assert data["risk_level"] == "critical"
        assert data["fraud_score"] >= 70
        assert data["recommendations"]

    def test_analyze_with_peers(self, client):
        response = client.post("/api/analyze", json={
            "title": "Peugeot 208 Allure",
            "price": 12000,
            "peers": [{"title": "Peugeot 208 Allure", "price": 15000, "url": "https://x.fr/2"}],
        })

        types = {f["type"] for f in response.json()["red_flags"]}
        assert "duplicate_listing" in types

    def test_analyze_without_market_reference(self, client):
        response = client.post("/api/analyze", json={
            "title": "Peugeot 208 Allure",
            "price": 3000,
            "year": 2021,
            "mileage_km": 60000,
        })

        types = {f["type"] for f in response.json()["red_flags"]}
        assert "price_too_low" in types


class TestListingsEndpoint:
    """Test the stored listings endpoint."""

    def test_get_listings_empty(self, client):
        response = client.get("/api/listings")

        assert response.status_code == status.HTTP_200_OK
        assert response.json() == []

    def test_get_listings_filtered(self, client, db_session, sample_listings):
        scored = [l.with_scores(relevance_score=50 + i * 10) for i, l in enumerate(sample_listings)]
        save_listings(db_session, scored)

        response = client.get("/api/listings", params={"source": "LeBonCoin"})
        assert [l["id"] for l in response.json()] == ["lbc_3", "lbc_1"]

        response = client.get("/api/listings", params={"min_relevance": 60})
        assert [l["id"] for l in response.json()] == ["lbc_3", "lacentrale_2"]

    def test_invalid_limit(self, client):
        response = client.get("/api/listings", params={"limit": 0})
        assert response.status_code == status.HTTP_422_UNPROCESSABLE_ENTITY
