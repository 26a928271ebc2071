from __future__ import annotations

import asyncio
import logging
from pathlib import Path
from typing import Any, Dict, Optional

import pandas as pd
import requests

from . import plus_codes
from .config import EngineConfig
from .errors import InvalidPlusCodeError, MissingLocalityContextError, UnresolvableAddressError
from .models import Coordinate, ResolvedLocation
from .throttle import RateLimiter, run_blocking

logger = logging.getLogger(__name__)

# Known places used when the external geocoder is disabled or finds nothing.
DEFAULT_GAZETTEER: Dict[str, Dict[str, Any]] = {
    "times square, new york, ny": {"lat": 40.7580, "lng": -73.9855, "display_name": "Times Square, New York, NY"},
    "central park, new york, ny": {"lat": 40.7829, "lng": -73.9654, "display_name": "Central Park, New York, NY"},
    "brooklyn bridge, new york, ny": {"lat": 40.7061, "lng": -73.9969, "display_name": "Brooklyn Bridge, New York, NY"},
    "empire state building, new york, ny": {"lat": 40.7484, "lng": -73.9857, "display_name": "Empire State Building, New York, NY"},
    "statue of liberty, new york, ny": {"lat": 40.6892, "lng": -74.0445, "display_name": "Statue of Liberty, New York, NY"},
    "123 main street, new york, ny": {"lat": 40.7589, "lng": -73.9851, "display_name": "123 Main Street, New York, NY"},
    "456 broadway, new york, ny": {"lat": 40.7505, "lng": -73.9934, "display_name": "456 Broadway, New York, NY"},
    "789 5th avenue, new york, ny": {"lat": 40.7614, "lng": -73.9776, "display_name": "789 5th Avenue, New York, NY"},
    "jfk airport, new york, ny": {"lat": 40.6413, "lng": -73.7781, "display_name": "JFK Airport, New York, NY"},
    "laguardia airport, new york, ny": {"lat": 40.7769, "lng": -73.8740, "display_name": "LaGuardia Airport, New York, NY"},
    "grand central station, new york, ny": {"lat": 40.7527, "lng": -73.9772, "display_name": "Grand Central Terminal, New York, NY"},
    "wall street, new york, ny": {"lat": 40.7074, "lng": -74.0113, "display_name": "Wall Street, New York, NY"},
}


def normalize_place(text: str) -> str:
    return (text or "").strip().lower()


def load_gazetteer_csv(path: Path) -> Dict[str, Dict[str, Any]]:
    """
    Read extra known places. Expects columns: name, lat, lng (or lon), optional display_name.
    Rows with a blank name or non-numeric coordinates are skipped.
    """
    df = pd.read_csv(path)
    if "lng" not in df.columns and "lon" in df.columns:
        df = df.rename(columns={"lon": "lng"})
    if not {"name", "lat", "lng"}.issubset(df.columns):
        raise ValueError(f"{path} must have columns: name, lat, lng")
    df["lat"] = pd.to_numeric(df["lat"], errors="coerce")
    df["lng"] = pd.to_numeric(df["lng"], errors="coerce")
    df = df.dropna(subset=["name", "lat", "lng"])

    places: Dict[str, Dict[str, Any]] = {}
    for _, row in df.iterrows():
        name = str(row["name"]).strip()
        if not name:
            continue
        display = row.get("display_name")
        places[normalize_place(name)] = {
            "lat": float(row["lat"]),
            "lng": float(row["lng"]),
            "display_name": str(display) if isinstance(display, str) and display.strip() else name,
        }
    return places


class GeoResolver:
    """
    Address text -> coordinate.

    Order: compact location code, external geocoder (Nominatim), static
    gazetteer. Results are memoised per exact input string for the lifetime of
    the instance; concurrent lookups of the same uncached string share one
    upstream call.
    """

    def __init__(self, config: EngineConfig, gazetteer: Optional[Dict[str, Dict[str, Any]]] = None):
        self.config = config
        self.gazetteer: Dict[str, Dict[str, Any]] = dict(DEFAULT_GAZETTEER)
        if config.gazetteer_csv is not None:
            try:
                self.gazetteer.update(load_gazetteer_csv(config.gazetteer_csv))
            except (OSError, ValueError) as e:
                logger.warning("Gazetteer %s not loaded: %s", config.gazetteer_csv, e)
        if gazetteer:
            self.gazetteer.update({normalize_place(k): v for k, v in gazetteer.items()})
        self._limiter = RateLimiter(config.geocoder_min_interval_s)
        self._cache: Dict[str, ResolvedLocation] = {}
        self._inflight: Dict[str, asyncio.Task] = {}

    # ------------------- Public API -------------------

    async def resolve(self, address: str) -> Coordinate:
        return (await self.resolve_location(address)).coordinate

    async def resolve_location(self, address: str) -> ResolvedLocation:
        cached = self._cache.get(address)
        if cached is not None:
            logger.debug("Geocode cache hit for %r", address)
            return cached

        task = self._inflight.get(address)
        if task is None:
            task = asyncio.ensure_future(self._resolve_uncached(address))
            self._inflight[address] = task
            task.add_done_callback(lambda t: self._settle(address, t))
        result = await asyncio.shield(task)
        self._cache[address] = result
        return result

    def _settle(self, address: str, task: asyncio.Task) -> None:
        # runs even when every waiter was cancelled, so the entry never goes stale
        if self._inflight.get(address) is task:
            self._inflight.pop(address, None)
        if not task.cancelled() and task.exception() is None:
            self._cache[address] = task.result()

    def clear_cache(self) -> None:
        self._cache.clear()

    @property
    def cache_size(self) -> int:
        return len(self._cache)

    # ------------------- Resolution chain -------------------

    async def _resolve_uncached(self, address: str) -> ResolvedLocation:
        if not address or not address.strip():
            raise UnresolvableAddressError(address, "empty address")

        found = plus_codes.find_plus_code(address)
        if found:
            result = await self._from_plus_code(*found)
            if result is not None:
                return result

        result = await self._resolve_free_text(address)
        if result is not None:
            return result
        raise UnresolvableAddressError(
            address, "check the address or try a more specific location"
        )

    async def _from_plus_code(self, code: str, locality: str) -> Optional[ResolvedLocation]:
        display = f"{locality} (Plus Code: {code})" if locality else f"Plus Code: {code}"
        try:
            if plus_codes.is_full(code):
                coord = plus_codes.decode(code)
                return ResolvedLocation(coordinate=coord, display_name=display, source="plus_code")
            if not locality:
                raise MissingLocalityContextError(code)
            center = plus_codes.locality_center(locality)
            if center is None:
                anchor = await self._resolve_free_text(locality)
                center = anchor.coordinate if anchor else None
            if center is None:
                logger.warning("No centre known for locality %r; geocoding %s as text", locality, code)
                return None
            coord = plus_codes.decode(code, reference=center)
            return ResolvedLocation(coordinate=coord, display_name=display, source="plus_code")
        except MissingLocalityContextError:
            raise
        except InvalidPlusCodeError as e:
            logger.warning("Failed to decode location code %s: %s", code, e)
            return None

    async def _resolve_free_text(self, text: str) -> Optional[ResolvedLocation]:
        if self.config.geocoder_enabled:
            try:
                result = await self._geocode_remote(text)
                if result is not None:
                    return result
            except (requests.RequestException, asyncio.TimeoutError, ValueError, KeyError) as e:
                logger.warning("Geocoder failed for %r, falling back to gazetteer: %s", text, e)
        return self._lookup_gazetteer(text)

    async def _geocode_remote(self, text: str) -> Optional[ResolvedLocation]:
        await self._limiter.wait()
        rows = await run_blocking(self._query_nominatim, text, timeout=self.config.request_timeout_s)
        if not rows:
            return None
        top = rows[0]
        coord = Coordinate(lat=float(top["lat"]), lng=float(top["lon"]))
        return ResolvedLocation(coordinate=coord, display_name=top.get("display_name"), source="geocoder")

    def _query_nominatim(self, text: str):
        response = requests.get(
            self.config.nominatim_url,
            params={"q": text, "format": "json", "limit": 1, "addressdetails": 1},
            headers={"User-Agent": self.config.geocoder_user_agent},
            timeout=self.config.request_timeout_s,
        )
        response.raise_for_status()
        return response.json()

    def _lookup_gazetteer(self, text: str) -> Optional[ResolvedLocation]:
        key = normalize_place(text)
        if not key:
            return None
        rec = self.gazetteer.get(key)
        if rec is None:
            match = next((k for k in self.gazetteer if key in k or k in key), None)
            rec = self.gazetteer.get(match) if match else None
        if rec is None:
            return None
        return ResolvedLocation(
            coordinate=Coordinate(lat=rec["lat"], lng=rec["lng"]),
            display_name=rec.get("display_name"),
            source="gazetteer",
        )
