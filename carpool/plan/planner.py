from __future__ import annotations

import asyncio
import logging
from typing import Dict, List, Optional, Sequence

from ..timeparse import parse_deadline
from .allocation import STRATEGY_GREEDY, flag_over_capacity, get_allocator
from .config import EngineConfig, describe_routing_mode
from .errors import SessionError
from .geocoder import GeoResolver
from .models import (
    Allocation, Coordinate, Destination, Driver, DriverPlan, PickupRequest, PlanResult,
)
from .routing import RouteProvider
from .schedule import ScheduleComputer
from .session import PlanningSession, new_id
from .tour import TourBuilder

logger = logging.getLogger(__name__)


class CarpoolEngine:
    """
    One planning engine per configuration: geocoding, allocation, stop
    ordering, routing and scheduling. Build a new engine when the
    configuration changes.
    """

    def __init__(
        self,
        config: EngineConfig,
        resolver: Optional[GeoResolver] = None,
        route_provider: Optional[RouteProvider] = None,
    ):
        self.config = config
        self.resolver = resolver or GeoResolver(config)
        self.route_provider = route_provider or RouteProvider(config)
        self.tours = TourBuilder()
        self.scheduler = ScheduleComputer(config.buffer_seconds)
        logger.info("Carpool engine ready: %s", describe_routing_mode(config))

    # ------------------- Session input -------------------

    async def set_destination_from_address(self, session: PlanningSession, address: str, deadline) -> Destination:
        coord = await self.resolver.resolve(address)
        return session.set_destination(Destination(
            coordinate=coord,
            deadline=parse_deadline(deadline, self.config.timezone),
            address=address,
        ))

    async def add_driver_from_address(
        self,
        session: PlanningSession,
        name: str,
        address: str,
        seat_capacity: Optional[int] = None,
        driver_id: Optional[str] = None,
    ) -> Driver:
        coord = await self.resolver.resolve(address)
        return session.add_driver(self.make_driver(name, coord, seat_capacity, driver_id, address))

    async def add_pickup_from_address(
        self,
        session: PlanningSession,
        name: str,
        address: str,
        party_size: int = 1,
        pickup_id: Optional[str] = None,
    ) -> PickupRequest:
        coord = await self.resolver.resolve(address)
        return session.add_pickup(PickupRequest(
            id=pickup_id or new_id(), name=name, coordinate=coord, party_size=party_size, address=address,
        ))

    def make_driver(
        self,
        name: str,
        coordinate: Coordinate,
        seat_capacity: Optional[int] = None,
        driver_id: Optional[str] = None,
        address: Optional[str] = None,
    ) -> Driver:
        return Driver(
            id=driver_id or new_id(),
            name=name,
            coordinate=coordinate,
            seat_capacity=seat_capacity or self.config.default_seat_capacity,
            address=address,
        )

    # ------------------- Allocation -------------------

    def allocate(self, drivers: Sequence[Driver], pickups: Sequence[PickupRequest], strategy: str = STRATEGY_GREEDY) -> Allocation:
        return get_allocator(strategy, self.config).allocate(drivers, pickups)

    def manual_allocation(
        self,
        drivers: Sequence[Driver],
        pickups: Sequence[PickupRequest],
        assignments: Dict[str, List[str]],
    ) -> Allocation:
        driver_ids = {d.id for d in drivers}
        pickup_by_id = {p.id: p for p in pickups}
        seen: Dict[str, str] = {}
        for driver_id, pickup_ids in assignments.items():
            if driver_id not in driver_ids:
                raise SessionError(f"Unknown driver {driver_id} in assignments")
            for pid in pickup_ids:
                if pid not in pickup_by_id:
                    raise SessionError(f"Unknown pickup {pid} in assignments")
                if pid in seen:
                    raise SessionError(f"Pickup {pid} assigned to both {seen[pid]} and {driver_id}")
                seen[pid] = driver_id

        alloc = Allocation(
            strategy="manual",
            assignments={d.id: list(assignments.get(d.id, [])) for d in drivers},
            loads={
                d.id: sum(pickup_by_id[pid].party_size for pid in assignments.get(d.id, []))
                for d in drivers
            },
            unassigned=[p.id for p in pickups if p.id not in seen],
        )
        return flag_over_capacity(alloc, drivers)

    # ------------------- Routing + schedule -------------------

    async def plan_driver(self, driver: Driver, pickups: Sequence[PickupRequest], destination: Destination) -> DriverPlan:
        ordered = self.tours.order_stops(driver, pickups)
        coords = self.tours.stop_sequence(driver, ordered, destination.coordinate)
        route = await self.route_provider.compute_route(coords)
        schedule = self.scheduler.compute(destination.deadline, route, ordered)
        return DriverPlan(
            driver_id=driver.id,
            driver_name=driver.name,
            pickups=ordered,
            route=route,
            schedule=schedule,
        )

    async def plan(
        self,
        session: PlanningSession,
        strategy: str = STRATEGY_GREEDY,
        assignments: Optional[Dict[str, List[str]]] = None,
        concurrent: bool = False,
    ) -> PlanResult:
        """
        Allocate (or take `assignments` as given), then route and schedule
        every driver. Drivers with no pickups still get a direct route.
        """
        destination = session.require_ready()
        revision = session.revision
        drivers = session.drivers
        pickups = session.pickups

        if assignments is not None:
            allocation = self.manual_allocation(drivers, pickups, assignments)
        else:
            allocation = self.allocate(drivers, pickups, strategy)

        def assigned_to(driver: Driver) -> List[PickupRequest]:
            ids = set(allocation.assignments.get(driver.id, []))
            return [p for p in pickups if p.id in ids]

        if concurrent:
            plans = await asyncio.gather(*(
                self.plan_driver(d, assigned_to(d), destination) for d in drivers
            ))
        else:
            plans = [await self.plan_driver(d, assigned_to(d), destination) for d in drivers]

        warnings = [
            f"Driver {oc.driver_id} is over capacity ({oc.load}/{oc.seat_capacity})"
            for oc in allocation.over_capacity
        ]
        if allocation.unassigned:
            warnings.append(f"{len(allocation.unassigned)} pickups are not assigned to any driver")

        result = PlanResult(allocation=allocation, drivers=list(plans), warnings=warnings)
        if session.revision == revision:
            session.plan = result
        else:
            logger.info("Session changed while planning; returning the plan without storing it")
        return result


def build_engine(config: EngineConfig) -> CarpoolEngine:
    return CarpoolEngine(config)
