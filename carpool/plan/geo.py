from __future__ import annotations
from typing import Sequence
from math import radians, sin, cos, atan2, sqrt

import numpy as np

from .models import Coordinate

EARTH_RADIUS_KM = 6371.0


def haversine_km(a: Coordinate, b: Coordinate) -> float:
    """Great-circle distance in kilometres (spherical Earth, R = 6371 km)."""
    dphi = radians(b.lat - a.lat)
    dlmb = radians(b.lng - a.lng)
    phi1 = radians(a.lat); phi2 = radians(b.lat)
    h = sin(dphi/2)**2 + cos(phi1)*cos(phi2)*sin(dlmb/2)**2
    return EARTH_RADIUS_KM * 2 * atan2(sqrt(h), sqrt(1 - h))


def haversine_meters(a: Coordinate, b: Coordinate) -> float:
    return haversine_km(a, b) * 1000.0


def haversine_matrix_km(origins: Sequence[Coordinate], targets: Sequence[Coordinate]) -> np.ndarray:
    """
    Vectorised haversine: rows = origins, cols = targets, values in km.
    Empty inputs give a correctly shaped empty matrix.
    """
    if not origins or not targets:
        return np.zeros((len(origins), len(targets)), dtype=float)
    o = np.radians(np.array([[c.lat, c.lng] for c in origins], dtype=float))
    t = np.radians(np.array([[c.lat, c.lng] for c in targets], dtype=float))
    lat1 = o[:, 0][:, None]; lng1 = o[:, 1][:, None]
    lat2 = t[:, 0][None, :]; lng2 = t[:, 1][None, :]
    h = np.sin((lat2 - lat1) / 2) ** 2 + np.cos(lat1) * np.cos(lat2) * np.sin((lng2 - lng1) / 2) ** 2
    h = np.clip(h, 0.0, 1.0)
    return EARTH_RADIUS_KM * 2 * np.arctan2(np.sqrt(h), np.sqrt(1 - h))


def estimate_duration_seconds(distance_meters: float, speed_kmh: float) -> float:
    """Travel time at a constant average speed."""
    if speed_kmh <= 0:
        raise ValueError("speed_kmh must be positive")
    return (distance_meters / 1000.0) * (3600.0 / speed_kmh)


