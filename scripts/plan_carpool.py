#!/usr/bin/env python3
"""
Plan a carpool from a JSON description and print the plan as JSON.

Input format:
  {
    "destination": {"address": "Times Square, New York, NY", "deadline": "2025-09-02T12:00"},
    "drivers": [{"name": "Ana", "address": "...", "seats": 4}],
    "pickups": [{"name": "Ben", "lat": 40.75, "lng": -73.99, "party_size": 2}]
  }
Each entry needs either an address or lat/lng.

Usage:
  python3 scripts/plan_carpool.py --input trip.json --strategy greedy --out plan.json
"""

from __future__ import annotations

import argparse
import asyncio
import json
import os
import sys
from pathlib import Path
from typing import Any, Dict

PROJECT_ROOT = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))
if PROJECT_ROOT not in sys.path:
    sys.path.insert(0, PROJECT_ROOT)

from carpool.runtime import configure_logging
from carpool.timeparse import format_distance, format_duration, parse_deadline
from carpool.plan.config import load_engine_config
from carpool.plan.models import Coordinate, Destination, PickupRequest
from carpool.plan.planner import CarpoolEngine, build_engine
from carpool.plan.session import PlanningSession, new_id


async def _coordinate(engine: CarpoolEngine, entry: Dict[str, Any]) -> Coordinate:
    if "lat" in entry and "lng" in entry:
        return Coordinate(lat=float(entry["lat"]), lng=float(entry["lng"]))
    return await engine.resolver.resolve(str(entry["address"]))


async def build_session(engine: CarpoolEngine, trip: Dict[str, Any]) -> PlanningSession:
    session = PlanningSession()
    dest = trip["destination"]
    session.set_destination(Destination(
        coordinate=await _coordinate(engine, dest),
        deadline=parse_deadline(dest["deadline"], engine.config.timezone),
        address=dest.get("address"),
    ))
    for d in trip.get("drivers", []):
        session.add_driver(engine.make_driver(
            d["name"], await _coordinate(engine, d), d.get("seats"), d.get("id"), d.get("address"),
        ))
    for p in trip.get("pickups", []):
        session.add_pickup(PickupRequest(
            id=p.get("id") or new_id(),
            name=p["name"],
            coordinate=await _coordinate(engine, p),
            party_size=int(p.get("party_size", 1)),
            address=p.get("address"),
        ))
    return session


async def run(args: argparse.Namespace) -> Dict[str, Any]:
    engine = build_engine(load_engine_config())
    trip = json.loads(Path(args.input).read_text(encoding="utf-8"))
    session = await build_session(engine, trip)
    result = await engine.plan(session, strategy=args.strategy, concurrent=args.concurrent)
    return result.model_dump(mode="json")


def main():
    ap = argparse.ArgumentParser(description="Allocate, route and schedule a carpool")
    ap.add_argument("--input", required=True, help="Trip description JSON")
    ap.add_argument("--strategy", choices=["greedy", "cluster"], default="greedy")
    ap.add_argument("--concurrent", action="store_true", help="Route drivers concurrently")
    ap.add_argument("--out", default=None, help="Write plan JSON here instead of stdout")
    args = ap.parse_args()

    logger = configure_logging("plan_carpool")
    plan = asyncio.run(run(args))

    for d in plan["drivers"]:
        logger.info(
            "%s: %d pickups, %s, %s, leave %s",
            d["driver_name"], len(d["pickups"]),
            format_duration(d["route"]["duration_seconds"]),
            format_distance(d["route"]["distance_meters"]),
            d["schedule"]["formatted_departure_time"],
        )
    for w in plan["warnings"]:
        logger.warning(w)

    text = json.dumps(plan, indent=2)
    if args.out:
        Path(args.out).write_text(text, encoding="utf-8")
        logger.info("Wrote %s", args.out)
    else:
        print(text)


if __name__ == "__main__":
    main()
