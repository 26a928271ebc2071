from __future__ import annotations

from datetime import datetime
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field

from .config import ProviderKind


# -----------------------------
# Core entities
# -----------------------------

class Coordinate(BaseModel):
    model_config = ConfigDict(frozen=True)

    lat: float = Field(..., ge=-90.0, le=90.0)
    lng: float = Field(..., ge=-180.0, le=180.0)

    def as_key(self) -> str:
        # repr() round-trips floats exactly
        return f"{self.lat!r},{self.lng!r}"


class ResolvedLocation(BaseModel):
    model_config = ConfigDict(frozen=True)

    coordinate: Coordinate
    display_name: Optional[str] = None
    source: str = Field(..., description="plus_code | geocoder | gazetteer")


class Driver(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: str
    name: str
    coordinate: Coordinate
    seat_capacity: int = Field(4, ge=1)
    address: Optional[str] = None


class PickupRequest(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: str
    name: str
    coordinate: Coordinate
    party_size: int = Field(1, ge=1)
    address: Optional[str] = None


class Destination(BaseModel):
    model_config = ConfigDict(frozen=True)

    coordinate: Coordinate
    deadline: datetime
    address: Optional[str] = None


# -----------------------------
# Allocation
# -----------------------------

class OverCapacity(BaseModel):
    driver_id: str
    load: int
    seat_capacity: int

    @property
    def excess(self) -> int:
        return self.load - self.seat_capacity


class Allocation(BaseModel):
    strategy: str
    assignments: Dict[str, List[str]] = Field(
        default_factory=dict,
        description="driver id -> pickup ids, in assignment order",
    )
    loads: Dict[str, int] = Field(default_factory=dict)
    over_capacity: List[OverCapacity] = Field(default_factory=list)
    unassigned: List[str] = Field(default_factory=list)

    @property
    def feasible(self) -> bool:
        return not self.over_capacity and not self.unassigned

    def driver_for(self, pickup_id: str) -> Optional[str]:
        for driver_id, pickup_ids in self.assignments.items():
            if pickup_id in pickup_ids:
                return driver_id
        return None


# -----------------------------
# Routing
# -----------------------------

class RouteStep(BaseModel):
    instruction: str
    distance_meters: float = 0.0
    duration_seconds: float = 0.0


class Leg(BaseModel):
    distance_meters: float = Field(..., ge=0.0)
    duration_seconds: float = Field(..., ge=0.0)
    steps: List[RouteStep] = Field(default_factory=list)


class TrafficInfo(BaseModel):
    has_traffic_data: bool = False
    normal_duration_seconds: float = 0.0
    traffic_duration_seconds: float = 0.0


class Route(BaseModel):
    distance_meters: float = Field(..., ge=0.0)
    duration_seconds: float = Field(..., ge=0.0)
    geometry: List[Coordinate]
    legs: List[Leg]
    provider: ProviderKind
    traffic_delay_seconds: Optional[float] = None
    traffic_info: Optional[TrafficInfo] = None


# -----------------------------
# Schedule
# -----------------------------

class StopTime(BaseModel):
    pickup_id: str
    arrival_time: datetime
    formatted_time: str = ""


class Schedule(BaseModel):
    driver_departure_time: datetime
    stop_times: List[StopTime] = Field(default_factory=list)
    target_arrival_time: Optional[datetime] = None
    formatted_departure_time: str = ""


class DriverPlan(BaseModel):
    driver_id: str
    driver_name: str
    pickups: List[PickupRequest]
    route: Route
    schedule: Schedule

    @property
    def total_duration_seconds(self) -> float:
        return self.route.duration_seconds

    @property
    def total_distance_meters(self) -> float:
        return self.route.distance_meters


class PlanResult(BaseModel):
    allocation: Allocation
    drivers: List[DriverPlan]
    warnings: List[str] = Field(default_factory=list)


# -----------------------------
# HTTP request/response models
# -----------------------------

class GeocodeRequest(BaseModel):
    address: str = Field(..., min_length=1)


class DestinationIn(BaseModel):
    address: Optional[str] = None
    coordinate: Optional[Coordinate] = None
    deadline: str = Field(..., description="ISO datetime, e.g. 2025-09-02T12:00")


class DriverIn(BaseModel):
    name: str = Field(..., min_length=1)
    address: Optional[str] = None
    coordinate: Optional[Coordinate] = None
    seat_capacity: Optional[int] = Field(None, ge=1)
    id: Optional[str] = None


class PickupIn(BaseModel):
    name: str = Field(..., min_length=1)
    address: Optional[str] = None
    coordinate: Optional[Coordinate] = None
    party_size: int = Field(1, ge=1)
    id: Optional[str] = None


class AllocateRequest(BaseModel):
    strategy: str = Field("greedy", pattern="^(greedy|cluster)$")


class RoutesRequest(BaseModel):
    strategy: str = Field("greedy", pattern="^(greedy|cluster)$")
    assignments: Optional[Dict[str, List[str]]] = Field(
        None,
        description="Manual driver id -> pickup ids; skips automatic allocation",
    )
    concurrent: bool = False


class SessionSnapshot(BaseModel):
    destination: Optional[Destination] = None
    drivers: List[Driver] = Field(default_factory=list)
    pickups: List[PickupRequest] = Field(default_factory=list)
    plan: Optional[PlanResult] = None
    meta: Dict[str, Any] = Field(default_factory=dict)
