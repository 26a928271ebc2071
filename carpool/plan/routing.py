from __future__ import annotations

import asyncio
import logging
import re
from typing import Any, Dict, List, Optional, Sequence

import polyline
import requests

from .config import EngineConfig, ProviderKind, routing_capabilities
from .errors import RoutingBackendError, RoutingExhaustedError
from .geo import estimate_duration_seconds, haversine_meters
from .models import Coordinate, Leg, Route, RouteStep, TrafficInfo
from .throttle import RateLimiter, run_blocking

logger = logging.getLogger(__name__)

_TAG_RE = re.compile(r"<[^>]*>")


def route_cache_key(coords: Sequence[Coordinate]) -> str:
    return "|".join(c.as_key() for c in coords)


class RouteBackend:
    kind: ProviderKind

    async def route(self, coords: Sequence[Coordinate]) -> Route:
        raise NotImplementedError


class _HttpBackend(RouteBackend):
    def __init__(self, config: EngineConfig, limiter: RateLimiter):
        self.config = config
        self.limiter = limiter

    async def route(self, coords: Sequence[Coordinate]) -> Route:
        await self.limiter.wait()
        try:
            data = await run_blocking(self._fetch, list(coords), timeout=self.config.request_timeout_s)
            return self._parse(data, coords)
        except RoutingBackendError:
            raise
        except asyncio.TimeoutError:
            raise RoutingBackendError(self.kind.value, f"timed out after {self.config.request_timeout_s}s")
        except requests.RequestException as e:
            raise RoutingBackendError(self.kind.value, f"request failed: {e}") from e
        except (KeyError, IndexError, TypeError, ValueError) as e:
            raise RoutingBackendError(self.kind.value, f"malformed response: {e!r}") from e

    def _fetch(self, coords: List[Coordinate]) -> Dict[str, Any]:
        raise NotImplementedError

    def _parse(self, data: Dict[str, Any], coords: Sequence[Coordinate]) -> Route:
        raise NotImplementedError


class GoogleDirectionsBackend(_HttpBackend):
    """Live-traffic routing via the Google Maps Directions API."""

    kind = ProviderKind.LIVE_TRAFFIC

    def _fetch(self, coords: List[Coordinate]) -> Dict[str, Any]:
        if not self.config.live_traffic_configured:
            raise RoutingBackendError(self.kind.value, "Google Maps API key not configured")
        intermediate = coords[1:-1]
        if len(intermediate) > self.config.max_waypoints:
            raise RoutingBackendError(
                self.kind.value,
                f"{len(intermediate)} intermediate stops exceeds the {self.config.max_waypoints} waypoint limit",
            )
        params = {
            "origin": f"{coords[0].lat},{coords[0].lng}",
            "destination": f"{coords[-1].lat},{coords[-1].lng}",
            "key": self.config.google_maps_api_key,
            "mode": self.config.google_mode,
            "units": self.config.google_units,
            "departure_time": self.config.google_departure_time,
            "traffic_model": self.config.google_traffic_model,
        }
        if self.config.google_avoid:
            params["avoid"] = self.config.google_avoid
        if intermediate:
            params["waypoints"] = "|".join(f"{c.lat},{c.lng}" for c in intermediate)

        response = requests.get(self.config.google_directions_url, params=params, timeout=self.config.request_timeout_s)
        if not response.ok:
            raise RoutingBackendError(self.kind.value, f"HTTP {response.status_code} {response.reason}")
        data = response.json()
        if data.get("status") != "OK":
            raise RoutingBackendError(
                self.kind.value, f"status {data.get('status')} - {data.get('error_message', 'Unknown error')}"
            )
        if not data.get("routes"):
            raise RoutingBackendError(self.kind.value, "no routes returned")
        return data

    def _parse(self, data: Dict[str, Any], coords: Sequence[Coordinate]) -> Route:
        route = data["routes"][0]
        raw_legs = route["legs"]

        legs: List[Leg] = []
        nominal_total = 0.0
        for leg in raw_legs:
            nominal = float(leg["duration"]["value"])
            nominal_total += nominal
            in_traffic = leg.get("duration_in_traffic")
            legs.append(Leg(
                distance_meters=float(leg["distance"]["value"]),
                duration_seconds=float(in_traffic["value"]) if in_traffic else nominal,
                steps=[
                    RouteStep(
                        instruction=_TAG_RE.sub("", step.get("html_instructions", "")),
                        distance_meters=float(step["distance"]["value"]),
                        duration_seconds=float(step["duration"]["value"]),
                    )
                    for step in leg.get("steps", [])
                ],
            ))

        traffic_total = sum(leg.duration_seconds for leg in legs)
        with_traffic = [bool(leg.get("duration_in_traffic")) for leg in raw_legs]
        if with_traffic and all(with_traffic):
            delay: Optional[float] = max(0.0, traffic_total - nominal_total)
        elif any(with_traffic):
            delay = traffic_total - nominal_total
        else:
            delay = None

        points = (route.get("overview_polyline") or {}).get("points")
        geometry = [Coordinate(lat=lat, lng=lng) for lat, lng in polyline.decode(points)] if points else list(coords)

        return Route(
            distance_meters=sum(leg.distance_meters for leg in legs),
            duration_seconds=traffic_total,
            geometry=geometry,
            legs=legs,
            provider=self.kind,
            traffic_delay_seconds=delay,
            traffic_info=TrafficInfo(
                has_traffic_data=any(with_traffic),
                normal_duration_seconds=nominal_total,
                traffic_duration_seconds=traffic_total,
            ),
        )


class OsrmBackend(_HttpBackend):
    """Road-network routing via an OSRM route service (no traffic)."""

    kind = ProviderKind.ROAD_NETWORK

    def _fetch(self, coords: List[Coordinate]) -> Dict[str, Any]:
        if not self.config.osrm_enabled:
            raise RoutingBackendError(self.kind.value, "OSRM routing is disabled")
        coord_str = ";".join(f"{c.lng},{c.lat}" for c in coords)
        url = f"{self.config.osrm_url.rstrip('/')}/{coord_str}"
        params = {"overview": "full", "steps": "true", "geometries": "geojson"}

        response = requests.get(url, params=params, timeout=self.config.request_timeout_s)
        if not response.ok:
            raise RoutingBackendError(self.kind.value, f"HTTP {response.status_code}")
        data = response.json()
        if data.get("code") != "Ok":
            raise RoutingBackendError(self.kind.value, f"{data.get('code')} - {data.get('message', 'Unknown error')}")
        if not data.get("routes"):
            raise RoutingBackendError(self.kind.value, "no routes returned")
        return data

    @staticmethod
    def _instruction(step: Dict[str, Any]) -> str:
        maneuver = step.get("maneuver", {})
        if maneuver.get("instruction"):
            return maneuver["instruction"]
        text = " ".join(p for p in (maneuver.get("type"), maneuver.get("modifier")) if p)
        if step.get("name"):
            text = f"{text} onto {step['name']}"
        return f"{text} for {round(float(step.get('distance', 0.0)))}m".strip()

    def _parse(self, data: Dict[str, Any], coords: Sequence[Coordinate]) -> Route:
        route = data["routes"][0]
        legs = [
            Leg(
                distance_meters=float(leg["distance"]),
                duration_seconds=float(leg["duration"]),
                steps=[
                    RouteStep(
                        instruction=self._instruction(step),
                        distance_meters=float(step.get("distance", 0.0)),
                        duration_seconds=float(step.get("duration", 0.0)),
                    )
                    for step in leg.get("steps", [])
                ],
            )
            for leg in route["legs"]
        ]
        geometry = [Coordinate(lat=lat, lng=lng) for lng, lat in route["geometry"]["coordinates"]]
        duration = float(route["duration"])
        return Route(
            distance_meters=float(route["distance"]),
            duration_seconds=duration,
            geometry=geometry,
            legs=legs,
            provider=self.kind,
            traffic_delay_seconds=None,
            traffic_info=TrafficInfo(
                has_traffic_data=False,
                normal_duration_seconds=duration,
                traffic_duration_seconds=duration,
            ),
        )


class StraightLineEstimator(RouteBackend):
    """Haversine legs at a fixed average speed. Never fails."""

    kind = ProviderKind.ESTIMATOR

    def __init__(self, config: EngineConfig):
        self.config = config

    async def route(self, coords: Sequence[Coordinate]) -> Route:
        if self.config.estimator_delay_s > 0:
            await asyncio.sleep(self.config.estimator_delay_s)
        return self.estimate(coords)

    def estimate(self, coords: Sequence[Coordinate]) -> Route:
        legs: List[Leg] = []
        for start, end in zip(coords, coords[1:]):
            distance = haversine_meters(start, end)
            duration = estimate_duration_seconds(distance, self.config.mock_speed_kmh)
            legs.append(Leg(
                distance_meters=distance,
                duration_seconds=duration,
                steps=[RouteStep(
                    instruction=(
                        f"Drive from {start.lat:.4f}, {start.lng:.4f} "
                        f"to {end.lat:.4f}, {end.lng:.4f}"
                    ),
                    distance_meters=distance,
                    duration_seconds=duration,
                )],
            ))
        duration_total = sum(leg.duration_seconds for leg in legs)
        return Route(
            distance_meters=sum(leg.distance_meters for leg in legs),
            duration_seconds=duration_total,
            geometry=list(coords),
            legs=legs,
            provider=self.kind,
            traffic_delay_seconds=None,
            traffic_info=TrafficInfo(
                has_traffic_data=False,
                normal_duration_seconds=duration_total,
                traffic_duration_seconds=duration_total,
            ),
        )


def build_backends(config: EngineConfig, limiter: RateLimiter) -> List[RouteBackend]:
    backends: List[RouteBackend] = []
    for kind in routing_capabilities(config):
        if kind is ProviderKind.LIVE_TRAFFIC:
            backends.append(GoogleDirectionsBackend(config, limiter))
        elif kind is ProviderKind.ROAD_NETWORK:
            backends.append(OsrmBackend(config, limiter))
        else:
            backends.append(StraightLineEstimator(config))
    return backends


class RouteProvider:
    """
    Ordered coordinates -> Route, trying each backend in priority order.

    The backend list is fixed at construction. Results are cached by the exact
    coordinate sequence; concurrent requests for the same uncached sequence
    share one computation.
    """

    def __init__(self, config: EngineConfig, backends: Optional[Sequence[RouteBackend]] = None):
        self.config = config
        self.limiter = RateLimiter(config.routing_min_interval_s)
        self.backends: List[RouteBackend] = list(backends) if backends is not None else build_backends(config, self.limiter)
        self._cache: Dict[str, Route] = {}
        self._inflight: Dict[str, asyncio.Task] = {}

    @property
    def capabilities(self) -> List[ProviderKind]:
        return [b.kind for b in self.backends]

    @property
    def cache_size(self) -> int:
        return len(self._cache)

    def clear_cache(self) -> None:
        self._cache.clear()

    async def compute_route(self, coords: Sequence[Coordinate]) -> Route:
        if len(coords) < 2:
            raise ValueError("A route needs at least two coordinates")
        key = route_cache_key(coords)
        cached = self._cache.get(key)
        if cached is not None:
            logger.debug("Using cached route for %d stops", len(coords))
            return cached

        task = self._inflight.get(key)
        if task is None:
            task = asyncio.ensure_future(self._compute_uncached(list(coords)))
            self._inflight[key] = task
            task.add_done_callback(lambda t: self._settle(key, t))
        # a cancelled waiter must not cancel the computation other waiters share
        route = await asyncio.shield(task)
        self._cache[key] = route
        return route

    def _settle(self, key: str, task: asyncio.Task) -> None:
        if self._inflight.get(key) is task:
            self._inflight.pop(key, None)
        if not task.cancelled() and task.exception() is None:
            self._cache[key] = task.result()

    async def _compute_uncached(self, coords: List[Coordinate]) -> Route:
        for backend in self.backends:
            try:
                route = await backend.route(coords)
                logger.info("Route via %s: %.0f m, %.0f s", backend.kind.value, route.distance_meters, route.duration_seconds)
                return route
            except Exception as e:
                logger.warning("Routing failed with %s, trying fallback: %s", backend.kind.value, e)
        raise RoutingExhaustedError(
            f"All routing backends failed ({', '.join(k.value for k in self.capabilities)})"
        )
