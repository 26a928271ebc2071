from __future__ import annotations
import os
from dataclasses import dataclass, replace as _dc_replace
from enum import Enum
from pathlib import Path
from typing import Optional, Tuple


def _env_bool(name: str, default: bool) -> bool:
    v = os.getenv(name, str(default)).strip().lower()
    return v in ("1", "true", "yes", "y", "on")

def _env_float(name: str, default: float) -> float:
    try:
        return float(os.getenv(name, str(default)))
    except Exception:
        return float(default)

def _env_int(name: str, default: int) -> int:
    try:
        return int(os.getenv(name, str(default)))
    except Exception:
        return int(default)

def _env_str(name: str, default: str) -> str:
    return os.getenv(name, default).strip()


class ProviderKind(str, Enum):
    LIVE_TRAFFIC = "live_traffic"
    ROAD_NETWORK = "road_network"
    ESTIMATOR = "estimator"


class OverflowPolicy(str, Enum):
    MOST_REMAINING = "most_remaining"
    LEAST_LOADED = "least_loaded"


@dataclass(frozen=True)
class EngineConfig:
    # live-traffic backend (Google Directions)
    google_maps_api_key: str = ""
    google_directions_url: str = "https://maps.googleapis.com/maps/api/directions/json"
    google_mode: str = "driving"
    google_units: str = "metric"
    google_avoid: str = "tolls"
    google_departure_time: str = "now"
    google_traffic_model: str = "best_guess"
    max_waypoints: int = 23

    # road-network backend (OSRM)
    osrm_enabled: bool = True
    osrm_url: str = "https://router.project-osrm.org/route/v1/driving"

    # straight-line estimator
    mock_speed_kmh: float = 30.0
    estimator_delay_s: float = 0.0

    routing_min_interval_s: float = 0.1
    request_timeout_s: float = 10.0

    # scheduling / allocation
    buffer_minutes: float = 5.0
    default_seat_capacity: int = 4
    load_penalty_weight: float = 2.0
    overflow_policy: OverflowPolicy = OverflowPolicy.MOST_REMAINING

    # geocoding (Nominatim)
    geocoder_enabled: bool = True
    nominatim_url: str = "https://nominatim.openstreetmap.org/search"
    geocoder_user_agent: str = "carpool-planner/1.0"
    geocoder_min_interval_s: float = 1.0
    gazetteer_csv: Optional[Path] = None

    timezone: str = "UTC"

    @property
    def live_traffic_configured(self) -> bool:
        return bool(self.google_maps_api_key and self.google_maps_api_key.strip())

    @property
    def buffer_seconds(self) -> float:
        return float(self.buffer_minutes) * 60.0

    def replace(self, **changes) -> "EngineConfig":
        return _dc_replace(self, **changes)


def load_engine_config() -> EngineConfig:
    """Build the immutable engine configuration from the process environment."""
    defaults = EngineConfig()
    gazetteer = _env_str("GAZETTEER_CSV", "")
    policy = _env_str("OVERFLOW_POLICY", defaults.overflow_policy.value).lower()
    try:
        overflow = OverflowPolicy(policy)
    except ValueError:
        overflow = defaults.overflow_policy
    return EngineConfig(
        google_maps_api_key=_env_str("GOOGLE_MAPS_API_KEY", ""),
        google_directions_url=_env_str("GOOGLE_DIRECTIONS_URL", defaults.google_directions_url),
        google_mode=_env_str("GOOGLE_MODE", defaults.google_mode),
        google_units=_env_str("GOOGLE_UNITS", defaults.google_units),
        google_avoid=_env_str("GOOGLE_AVOID", defaults.google_avoid),
        max_waypoints=_env_int("MAX_WAYPOINTS", defaults.max_waypoints),
        osrm_enabled=_env_bool("OSRM_ENABLED", defaults.osrm_enabled),
        osrm_url=_env_str("OSRM_URL", defaults.osrm_url).rstrip("/"),
        mock_speed_kmh=_env_float("MOCK_SPEED_KMH", defaults.mock_speed_kmh),
        estimator_delay_s=_env_float("ESTIMATOR_DELAY_SEC", defaults.estimator_delay_s),
        routing_min_interval_s=_env_float("ROUTING_MIN_INTERVAL_SEC", defaults.routing_min_interval_s),
        request_timeout_s=_env_float("REQUEST_TIMEOUT_SEC", defaults.request_timeout_s),
        buffer_minutes=_env_float("BUFFER_MINUTES", defaults.buffer_minutes),
        default_seat_capacity=max(1, _env_int("DEFAULT_SEAT_CAPACITY", defaults.default_seat_capacity)),
        load_penalty_weight=_env_float("LOAD_PENALTY_WEIGHT", defaults.load_penalty_weight),
        overflow_policy=overflow,
        geocoder_enabled=_env_bool("GEOCODER_ENABLED", defaults.geocoder_enabled),
        nominatim_url=_env_str("NOMINATIM_URL", defaults.nominatim_url),
        geocoder_user_agent=_env_str("GEOCODER_USER_AGENT", defaults.geocoder_user_agent),
        geocoder_min_interval_s=_env_float("GEOCODER_MIN_INTERVAL_SEC", defaults.geocoder_min_interval_s),
        gazetteer_csv=Path(gazetteer).expanduser() if gazetteer else None,
        timezone=_env_str("CARPOOL_TZ", defaults.timezone) or defaults.timezone,
    )


def routing_capabilities(config: EngineConfig) -> Tuple[ProviderKind, ...]:
    """Ordered backend list: live traffic if credentialed, road network if enabled, estimator always."""
    kinds = []
    if config.live_traffic_configured:
        kinds.append(ProviderKind.LIVE_TRAFFIC)
    if config.osrm_enabled:
        kinds.append(ProviderKind.ROAD_NETWORK)
    kinds.append(ProviderKind.ESTIMATOR)
    return tuple(kinds)


def describe_routing_mode(config: EngineConfig) -> str:
    primary = routing_capabilities(config)[0]
    if primary is ProviderKind.LIVE_TRAFFIC:
        return "Google Maps Directions API (with live traffic)"
    if primary is ProviderKind.ROAD_NETWORK:
        return "OSRM Open Source Routing (real roads, no traffic)"
    return "Straight-line estimator (haversine distances)"
