"""
Standalone check of every configured routing backend on a two-stop route.
"""

from __future__ import annotations

import asyncio
import os
import sys

PROJECT_ROOT = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))
if PROJECT_ROOT not in sys.path:
    sys.path.insert(0, PROJECT_ROOT)

from carpool.runtime import configure_logging
from carpool.plan.config import load_engine_config
from carpool.plan.errors import RoutingBackendError
from carpool.plan.models import Coordinate
from carpool.plan.routing import RouteProvider

SAMPLE = [
    Coordinate(lat=40.7580, lng=-73.9855),
    Coordinate(lat=40.7484, lng=-73.9857),
]


async def check_backends() -> bool:
    logger = configure_logging("check_routing_backends")
    provider = RouteProvider(load_engine_config())
    all_ok = True
    for backend in provider.backends:
        try:
            route = await backend.route(SAMPLE)
            logger.info(
                "%s OK: %.0f m, %.0f s, %d geometry points",
                backend.kind.value, route.distance_meters, route.duration_seconds, len(route.geometry),
            )
        except RoutingBackendError as e:
            all_ok = False
            logger.error("%s FAILED: %s", backend.kind.value, e.reason)
    return all_ok


if __name__ == "__main__":
    ok = asyncio.run(check_backends())
    print("\nAll routing backends responded" if ok else "\nSome routing backends failed")
    sys.exit(0 if ok else 1)
