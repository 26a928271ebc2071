import numpy as np
import pytest

from carpool.plan.geo import (
    estimate_duration_seconds, haversine_km, haversine_matrix_km, haversine_meters,
)
from carpool.plan.models import Coordinate


def test_haversine_one_degree_of_longitude_on_equator():
    d = haversine_km(Coordinate(lat=0, lng=0), Coordinate(lat=0, lng=1))
    assert d == pytest.approx(111.195, abs=1e-3)


def test_haversine_is_symmetric_and_zero_for_same_point():
    a = Coordinate(lat=40.7580, lng=-73.9855)
    b = Coordinate(lat=40.6413, lng=-73.7781)
    assert haversine_km(a, b) == pytest.approx(haversine_km(b, a))
    assert haversine_km(a, a) == 0.0
    assert haversine_meters(a, b) == pytest.approx(haversine_km(a, b) * 1000)


def test_matrix_matches_scalar_distances():
    origins = [Coordinate(lat=0, lng=0), Coordinate(lat=10, lng=10)]
    targets = [Coordinate(lat=0, lng=1), Coordinate(lat=-5, lng=3), Coordinate(lat=10, lng=10)]
    m = haversine_matrix_km(origins, targets)
    assert m.shape == (2, 3)
    for i, o in enumerate(origins):
        for j, t in enumerate(targets):
            assert m[i, j] == pytest.approx(haversine_km(o, t), abs=1e-9)
    assert m[1, 2] == pytest.approx(0.0)


def test_matrix_with_no_targets_is_empty():
    m = haversine_matrix_km([Coordinate(lat=0, lng=0)], [])
    assert isinstance(m, np.ndarray)
    assert m.shape == (1, 0)


def test_estimate_duration_at_30_kmh():
    # 15 km at 30 km/h is half an hour
    assert estimate_duration_seconds(15_000, 30) == pytest.approx(1800)


def test_estimate_duration_rejects_non_positive_speed():
    with pytest.raises(ValueError):
        estimate_duration_seconds(1000, 0)
