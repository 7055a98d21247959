"""
Tests for the /v1/env endpoints.

Tests cover:
- X-Data-Source header on every feed response (live, fallback, empty)
- camelCase wire format of rainfall records
- Coordinate validation (lone lat, out-of-range values)
- Flood-risk classification from explicit values and from the nearest station
- Snapshot passthrough and debug info
"""

import pytest
from fastapi.testclient import TestClient

from constants import NEA_FORECAST_URL, NEA_PM25_URL, NEA_RAINFALL_URL
from env_data import EnvDataService
from helpers import forecast_payload, iso, pm25_payload, rainfall_payload, station, write_snapshot
from main import app as main_app
from routers.dependencies import get_env_service
from utils.snapshot import SnapshotProvider

USER_LAT, USER_LNG = 1.3521, 103.8198

SNAPSHOT = {
    "rain": {"timestamp": "2026-10-12T13:00:00+08:00", "stations": [
        {"id": "S77", "name": "Alexandra Road", "location": {"latitude": 1.2937, "longitude": 103.8125},
         "rainfall": 0.4, "lastHour": 2.2},
    ]},
    "twoHr": {
        "forecasts": [{"area": "Bishan", "forecast": "Cloudy"}],
        "metadata": [{"name": "Bishan", "label_location": {"latitude": 1.350772, "longitude": 103.839}}],
    },
    "_savedAt": 1791781500000,
}


@pytest.fixture
def service(fetch_client, snapshot_path):
    write_snapshot(snapshot_path, SNAPSHOT)
    return EnvDataService(client=fetch_client, snapshot=SnapshotProvider(snapshot_path), ow_api_key="")


@pytest.fixture
def client(service):
    """Test client with the env service swapped for one backed by the fake upstream."""
    main_app.dependency_overrides[get_env_service] = lambda: service
    yield TestClient(main_app)
    main_app.dependency_overrides.clear()


class TestFeedEndpoints:
    """Test feed responses and the data source header."""

    def test_rainfall_live_uses_camel_case(self, client, upstream):
        upstream.set_json(NEA_RAINFALL_URL, rainfall_payload(
            [station("S1", USER_LAT + 0.01, USER_LNG)],
            [(iso(0), {"S1": 0.6}), (iso(5), {"S1": 0.4})],
        ))

        response = client.get(f"/v1/env/rainfall?lat={USER_LAT}&lng={USER_LNG}")

        assert response.status_code == 200
        assert response.headers["X-Data-Source"] == "live"
        record = response.json()["stations"][0]
        assert record["lastHour"] == 1.0
        assert record["coverageMinutes"] == 10.0
        assert record["distanceKm"] == pytest.approx(1.112, abs=0.001)

    def test_rainfall_fallback_header(self, client, upstream):
        upstream.set_json(NEA_RAINFALL_URL, {}, status=503)

        response = client.get("/v1/env/rainfall")

        assert response.status_code == 200
        assert response.headers["X-Data-Source"] == "fallback"
        assert response.json()["stations"][0]["id"] == "S77"

    def test_empty_feed_is_still_200(self, client, upstream):
        upstream.set_json(NEA_PM25_URL, {}, status=500)

        response = client.get("/v1/env/pm25")

        assert response.status_code == 200
        assert response.headers["X-Data-Source"] == "empty"
        assert response.json() == []

    def test_pm25_live(self, client, upstream):
        upstream.set_json(NEA_PM25_URL, pm25_payload({"central": 12}))
        response = client.get("/v1/env/pm25")
        assert response.headers["X-Data-Source"] == "live"
        assert {r["name"]: r["value"] for r in response.json()}["central"] == 12

    def test_nearest_area(self, client, upstream):
        upstream.set_json(NEA_FORECAST_URL, forecast_payload([
            ("Bishan", 1.350772, 103.839, "Light Rain"),
            ("Changi", 1.357, 103.987, "Fair"),
        ]))

        response = client.get(f"/v1/env/nearest-area?lat={USER_LAT}&lng={USER_LNG}")

        assert response.status_code == 200
        assert response.json()["area"] == "Bishan"
        assert response.json()["forecast"] == "Light Rain"
        assert response.headers["X-Data-Source"] == "live"

    def test_now_without_openweather(self, client, upstream):
        upstream.set_json(NEA_FORECAST_URL, {}, status=500)
        body = client.get(f"/v1/env/now?lat={USER_LAT}&lng={USER_LNG}").json()
        assert body["area"] == "Bishan"
        assert body["neaForecastText"] == "Cloudy"
        assert body["source"] == {"nea": True, "openweather": False}

    def test_outlook_without_key_is_empty(self, client):
        assert client.get(f"/v1/env/outlook?lat={USER_LAT}&lng={USER_LNG}").json() == []


class TestValidation:
    """Test request validation and the standardized error body."""

    def test_lone_latitude_is_rejected(self, client):
        response = client.get("/v1/env/rainfall?lat=1.35")
        assert response.status_code == 400
        body = response.json()
        assert body["error"] == "BAD_REQUEST"
        assert "lng" in body["message"]

    def test_out_of_range_latitude(self, client):
        response = client.get("/v1/env/nearest-area?lat=200&lng=103.8")
        assert response.status_code == 422
        body = response.json()
        assert body["error"] == "VALIDATION_ERROR"
        assert any("lat" in d["field"] for d in body["details"])
        assert body["path"] == "/v1/env/nearest-area"

    def test_outlook_count_bounds(self, client):
        response = client.get(f"/v1/env/outlook?lat={USER_LAT}&lng={USER_LNG}&cnt=41")
        assert response.status_code == 422


class TestFloodRiskEndpoint:
    """Test the flood-risk classifier endpoint."""

    @pytest.mark.parametrize("query, level", [
        ("rainfall=12&last_hour=35", "High"),
        ("rainfall=6", "Moderate"),
        ("last_hour=20", "Moderate"),
        ("rainfall=1&last_hour=2", "Low"),
        ("", "Low"),
    ])
    def test_explicit_values(self, client, query, level):
        assert client.get(f"/v1/env/flood-risk?{query}").json()["level"] == level

    def test_low_coverage_is_not_trusted(self, client):
        body = client.get("/v1/env/flood-risk?last_hour=40&coverage=10&min_coverage=15").json()
        assert body["level"] == "Low"
        assert body["coverageMinutes"] == 10

        body = client.get("/v1/env/flood-risk?last_hour=40&coverage=10&min_coverage=15&allow_null=true").json()
        assert body["level"] is None

    def test_unknown_with_allow_null(self, client):
        assert client.get("/v1/env/flood-risk?allow_null=true").json()["level"] is None

    def test_nearest_station_mode(self, client, upstream):
        upstream.set_json(NEA_RAINFALL_URL, rainfall_payload(
            [station("S1", USER_LAT + 0.0108, USER_LNG), station("S2", 1.45, 103.7)],
            [(iso(0), {"S1": 12, "S2": 0}), (iso(5), {"S1": 23, "S2": 0})],
        ))

        body = client.get(f"/v1/env/flood-risk?lat={USER_LAT}&lng={USER_LNG}").json()

        assert body["level"] == "High"
        assert body["station"]["id"] == "S1"
        assert body["lastHour"] == 35
        assert body["station"]["distanceKm"] == pytest.approx(1.2, abs=0.01)


class TestSnapshotEndpoints:
    def test_snapshot_passthrough(self, client):
        body = client.get("/v1/env/snapshot").json()
        assert body["_savedAt"] == 1791781500000
        assert set(body) == set(SNAPSHOT)
        assert body["rain"]["stations"][0]["id"] == "S77"

    def test_snapshot_debug_before_any_load(self, client):
        body = client.get("/v1/env/snapshot/debug").json()
        assert body["source"] is None
        assert body["savedAt"] is None
        assert body["path"].endswith("env_snapshot.json")

    def test_snapshot_debug_after_load(self, client):
        client.get("/v1/env/snapshot")
        body = client.get("/v1/env/snapshot/debug").json()
        assert body == {"source": "assets", "path": body["path"], "savedAt": 1791781500000}

    def test_snapshot_debug_after_fallback(self, client, upstream):
        upstream.set_json(NEA_RAINFALL_URL, {}, status=503)
        assert client.get("/v1/env/rainfall").headers["X-Data-Source"] == "fallback"
        assert client.get("/v1/env/snapshot/debug").json()["source"] == "assets"

    def test_missing_snapshot_is_404(self, fetch_client, tmp_path):
        service = EnvDataService(client=fetch_client, snapshot=SnapshotProvider(tmp_path / "missing.json"))
        main_app.dependency_overrides[get_env_service] = lambda: service
        try:
            response = TestClient(main_app).get("/v1/env/snapshot")
        finally:
            main_app.dependency_overrides.clear()
        assert response.status_code == 404
        assert response.json()["error"] == "NOT_FOUND"
