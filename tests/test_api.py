"""Tests for the HTTP endpoints (FastAPI TestClient against a SQLite file database)."""

import pytest
from fastapi.testclient import TestClient
from sqlalchemy.exc import OperationalError
from sqlalchemy.orm import Query

from georef.api.dependencies import get_session_factory
from georef.core.database import get_db
from georef.main import app

from conftest import seed


@pytest.fixture
def client(hierarchy, session_factory):
    def override_get_db():
        db = session_factory()
        try:
            yield db
        finally:
            db.close()

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_session_factory] = lambda: session_factory
    yield TestClient(app)
    app.dependency_overrides.clear()


class TestLookupEndpoint:

    def test_lookup_city(self, client):
        response = client.get("/api/v1/psgc/lookup", params={"code": "041419"})

        assert response.status_code == 200
        data = response.json()
        assert data["full_address"] == "Bacoor, Cavite, Region IV-A"
        assert [link["level"] for link in data["chain"]] == ["region", "province", "city"]

    def test_invalid_code_is_400(self, client):
        response = client.get("/api/v1/psgc/lookup", params={"code": "123"})
        assert response.status_code == 400
        assert response.json()["error"] == "invalid_code"

    def test_unknown_code_is_404(self, client):
        response = client.get("/api/v1/psgc/lookup", params={"code": "0499"})
        assert response.status_code == 404
        assert response.json() == {
            "error": "not_found",
            "level": "province",
            "code": "0499",
            "detail": "province '0499' not found",
        }

    def test_missing_ancestor_is_404(self, client, hierarchy):
        seed(hierarchy, barangays=[{"code": "9999990001", "name": "Lost", "city_municipality_code": "999999",
                                    "urban_rural_status": None, "is_active": True}])

        response = client.get("/api/v1/psgc/lookup", params={"code": "9999990001"})

        assert response.status_code == 404
        body = response.json()
        assert body["error"] == "ancestor_not_found"
        assert body["code"] == "999999"
        assert body["child_code"] == "9999990001"

    def test_city_without_province_reference_is_404(self, client, hierarchy):
        seed(hierarchy, cities=[{"code": "041499", "name": "No Ref", "province_code": None,
                                 "type": "Municipality", "is_independent": False, "is_active": True}])

        response = client.get("/api/v1/psgc/lookup", params={"code": "041499"})

        assert response.status_code == 404
        assert response.json()["error"] == "ancestor_not_found"
        assert response.json()["code"] is None

    def test_address_labels(self, client):
        response = client.get("/api/v1/psgc/address", params={"region": "13", "city": "137404"})
        assert response.status_code == 200
        assert response.json()["full_address"] == "Quezon City, National Capital Region (NCR)"


class TestSearchEndpoint:

    def test_search(self, client):
        response = client.get("/api/v1/psgc/search", params={"q": "qc"})

        assert response.status_code == 200
        data = response.json()
        assert data["data"][0]["name"] == "Quezon City"
        assert set(data) == {"data", "count", "totalCount", "offset", "hasMore"}

    def test_levels_and_pagination(self, client):
        response = client.get(
            "/api/v1/psgc/search",
            params={"q": "ba", "levels": "city,barangay", "limit": 2, "offset": 0}
        )
        data = response.json()
        assert data["count"] == 2
        assert data["hasMore"] is True

    def test_short_query_is_empty_success(self, client):
        response = client.get("/api/v1/psgc/search", params={"q": "a"})
        assert response.status_code == 200
        assert response.json()["data"] == []

    def test_backend_failure_is_503(self, client):
        def broken_factory():
            raise OperationalError("SELECT", {}, Exception("connection refused"))

        app.dependency_overrides[get_session_factory] = lambda: broken_factory
        response = client.get("/api/v1/psgc/search", params={"q": "bacoor"})
        assert response.status_code == 503
        assert response.json()["error"] == "backend_unavailable"


class TestBrowseEndpoints:

    def test_regions(self, client):
        response = client.get("/api/v1/psgc/regions")
        assert [r["code"] for r in response.json()] == ["13", "04"]

    def test_provinces_by_region(self, client):
        response = client.get("/api/v1/psgc/provinces", params={"region": "04"})
        assert [p["name"] for p in response.json()] == ["Cavite", "Laguna"]

    def test_cities_by_province(self, client):
        response = client.get("/api/v1/psgc/cities", params={"province": "0414"})
        body = response.json()
        assert [c["name"] for c in body] == ["Bacoor", "Imus"]
        assert body[0]["province_code"] == "0414"
        assert body[0]["type"] == "City"

    def test_barangays_by_city(self, client):
        response = client.get("/api/v1/psgc/barangays", params={"city": "041419"})
        body = response.json()
        assert [b["code"] for b in body] == ["0414190001", "0414190002"]
        assert body[0]["city_municipality_code"] == "041419"

    def test_independent_cities(self, client):
        response = client.get("/api/v1/psgc/regions/13/independent-cities")
        assert [c["name"] for c in response.json()] == ["City of Manila", "Quezon City"]

    def test_store_failure_is_503(self, client, monkeypatch):
        def broken(self):
            raise OperationalError("SELECT", {}, Exception("connection refused"))

        monkeypatch.setattr(Query, "all", broken)
        response = client.get("/api/v1/psgc/provinces", params={"region": "04"})

        assert response.status_code == 503
        assert response.json()["error"] == "backend_unavailable"


class TestIntegrityEndpoint:

    def test_report(self, client):
        response = client.get("/api/v1/psgc/integrity")
        assert response.status_code == 200
        body = response.json()
        assert body["severity"] == "excellent"
        assert body["counts"]["psgc_regions"] == 2


def test_health(client):
    response = client.get("/health")
    assert response.status_code == 200
    assert response.json()["status"] == "healthy"
