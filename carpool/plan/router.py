from __future__ import annotations
from typing import Any, Callable, Dict

from fastapi import APIRouter, HTTPException

from ..timeparse import format_distance, format_duration, parse_deadline
from .errors import (
    CarpoolError, InvalidPlusCodeError, SessionError, UnresolvableAddressError,
)
from .models import (
    AllocateRequest, Allocation, Destination, DestinationIn, DriverIn, GeocodeRequest,
    PickupIn, PickupRequest, PlanResult, ResolvedLocation, RoutesRequest, SessionSnapshot,
)
from .planner import CarpoolEngine
from .session import PlanningSession, new_id


def _as_http(exc: CarpoolError) -> HTTPException:
    if isinstance(exc, (UnresolvableAddressError, InvalidPlusCodeError)):
        return HTTPException(status_code=422, detail=str(exc))
    if isinstance(exc, SessionError):
        return HTTPException(status_code=400, detail=str(exc))
    return HTTPException(status_code=500, detail=str(exc))


def _summarize_plan(result: PlanResult) -> Dict[str, Any]:
    return {
        "drivers": [
            {
                "driver_id": p.driver_id,
                "driver_name": p.driver_name,
                "pickups": len(p.pickups),
                "provider": p.route.provider.value,
                "duration": format_duration(p.total_duration_seconds),
                "distance": format_distance(p.total_distance_meters),
                "departure": p.schedule.formatted_departure_time,
            }
            for p in result.drivers
        ],
        "warnings": list(result.warnings),
    }


def create_router(
    get_session: Callable[[], PlanningSession],
    get_engine: Callable[[], CarpoolEngine],
) -> APIRouter:
    """
    Factory that returns the /plan router. Uses callables so the app can swap
    the session or rebuild the engine without re-registering routes.
    """
    router = APIRouter(prefix="/plan", tags=["Plan"])

    async def _coordinate_for(body, label: str):
        if body.coordinate is not None:
            return body.coordinate
        if not body.address:
            raise HTTPException(status_code=422, detail=f"{label} needs an address or a coordinate")
        return await get_engine().resolver.resolve(body.address)

    # ------------------- Endpoints -------------------

    @router.post("/geocode", response_model=ResolvedLocation)
    async def geocode(req: GeocodeRequest):
        try:
            return await get_engine().resolver.resolve_location(req.address)
        except CarpoolError as e:
            raise _as_http(e)

    @router.get("/session", response_model=SessionSnapshot)
    def get_session_snapshot():
        return get_session().snapshot()

    @router.put("/destination", response_model=Destination)
    async def set_destination(body: DestinationIn):
        engine = get_engine()
        try:
            coord = await _coordinate_for(body, "Destination")
            deadline = parse_deadline(body.deadline, engine.config.timezone)
        except CarpoolError as e:
            raise _as_http(e)
        except (ValueError, OverflowError) as e:
            raise HTTPException(status_code=422, detail=f"Invalid deadline: {e}")
        return get_session().set_destination(
            Destination(coordinate=coord, deadline=deadline, address=body.address)
        )

    @router.post("/drivers")
    async def add_driver(body: DriverIn):
        engine = get_engine()
        try:
            coord = await _coordinate_for(body, "Driver")
            driver = engine.make_driver(body.name, coord, body.seat_capacity, body.id, body.address)
            return get_session().add_driver(driver)
        except CarpoolError as e:
            raise _as_http(e)

    @router.delete("/drivers/{driver_id}")
    def remove_driver(driver_id: str):
        try:
            return get_session().remove_driver(driver_id)
        except SessionError as e:
            raise HTTPException(status_code=404, detail=str(e))

    @router.post("/pickups")
    async def add_pickup(body: PickupIn):
        try:
            coord = await _coordinate_for(body, "Pickup")
            pickup = PickupRequest(
                id=body.id or new_id(),
                name=body.name,
                coordinate=coord,
                party_size=body.party_size,
                address=body.address,
            )
            return get_session().add_pickup(pickup)
        except CarpoolError as e:
            raise _as_http(e)

    @router.delete("/pickups/{pickup_id}")
    def remove_pickup(pickup_id: str):
        try:
            return get_session().remove_pickup(pickup_id)
        except SessionError as e:
            raise HTTPException(status_code=404, detail=str(e))

    @router.post("/allocate", response_model=Allocation)
    def allocate(req: AllocateRequest):
        session = get_session()
        try:
            session.require_ready()
        except SessionError as e:
            raise _as_http(e)
        return get_engine().allocate(session.drivers, session.pickups, req.strategy)

    @router.post("/routes")
    async def compute_routes(req: RoutesRequest):
        session = get_session()
        try:
            result = await get_engine().plan(
                session,
                strategy=req.strategy,
                assignments=req.assignments,
                concurrent=req.concurrent,
            )
        except CarpoolError as e:
            raise _as_http(e)
        return {"plan": result.model_dump(mode="json"), "summary": _summarize_plan(result)}

    return router
