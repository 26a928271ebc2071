# tests/conftest.py
from datetime import datetime, timezone
from importlib import reload
from pathlib import Path

import pytest
from fastapi.testclient import TestClient

from carpool.plan.config import EngineConfig
from carpool.plan.models import Coordinate, Driver, PickupRequest


@pytest.fixture(autouse=True)
def _env_test_config(monkeypatch, tmp_path: Path):
    """
    Keep every test offline and fast: no live-traffic key, no OSRM, no
    Nominatim, no throttling delays, and a throwaway data dir.
    """
    monkeypatch.setenv("GOOGLE_MAPS_API_KEY", "")
    monkeypatch.setenv("OSRM_ENABLED", "0")
    monkeypatch.setenv("GEOCODER_ENABLED", "0")
    monkeypatch.setenv("ROUTING_MIN_INTERVAL_SEC", "0")
    monkeypatch.setenv("GEOCODER_MIN_INTERVAL_SEC", "0")
    monkeypatch.setenv("ESTIMATOR_DELAY_SEC", "0")
    monkeypatch.setenv("CARPOOL_TZ", "UTC")
    monkeypatch.setenv("CARPOOL_DATA_DIR", str(tmp_path / "data"))
    monkeypatch.delenv("GAZETTEER_CSV", raising=False)
    yield


@pytest.fixture
def config() -> EngineConfig:
    return EngineConfig(
        osrm_enabled=False,
        geocoder_enabled=False,
        routing_min_interval_s=0.0,
        geocoder_min_interval_s=0.0,
        estimator_delay_s=0.0,
    )


@pytest.fixture
def deadline() -> datetime:
    return datetime(2025, 9, 2, 12, 0, tzinfo=timezone.utc)


@pytest.fixture
def make_driver():
    def _make(driver_id: str, lat: float, lng: float, seats: int = 4) -> Driver:
        return Driver(id=driver_id, name=f"Driver {driver_id}", coordinate=Coordinate(lat=lat, lng=lng), seat_capacity=seats)
    return _make


@pytest.fixture
def make_pickup():
    def _make(pickup_id: str, lat: float, lng: float, party: int = 1) -> PickupRequest:
        return PickupRequest(id=pickup_id, name=f"Rider {pickup_id}", coordinate=Coordinate(lat=lat, lng=lng), party_size=party)
    return _make


@pytest.fixture
def app(_env_test_config):
    # Import AFTER env vars so module-level settings pick them up
    import backend.main as bm
    bm = reload(bm)
    return bm.app


@pytest.fixture
def client(app):
    c = TestClient(app)
    r = c.post("/admin/reload")
    assert r.status_code == 200, f"/admin/reload failed: {r.status_code} {r.text}"
    return c
