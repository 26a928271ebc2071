from __future__ import annotations

import json
import logging
import uuid
from pathlib import Path
from typing import Dict, List, Optional

from .errors import SessionError
from .models import Destination, Driver, PickupRequest, PlanResult, SessionSnapshot

logger = logging.getLogger(__name__)

SNAPSHOT_FILENAME = "carpool_session.json"


def new_id() -> str:
    return uuid.uuid4().hex[:12]


class PlanningSession:
    """
    Drivers, pickups and the destination for one planning run.
    Any change drops the last computed plan; plans are never patched in place.
    """

    def __init__(self):
        self.destination: Optional[Destination] = None
        self._drivers: Dict[str, Driver] = {}
        self._pickups: Dict[str, PickupRequest] = {}
        self.plan: Optional[PlanResult] = None
        self.revision = 0

    @property
    def drivers(self) -> List[Driver]:
        return list(self._drivers.values())

    @property
    def pickups(self) -> List[PickupRequest]:
        return list(self._pickups.values())

    def _invalidate(self) -> None:
        self.revision += 1
        self.plan = None

    def set_destination(self, destination: Destination) -> Destination:
        self.destination = destination
        self._invalidate()
        return destination

    def add_driver(self, driver: Driver) -> Driver:
        if driver.id in self._drivers:
            raise SessionError(f"Driver {driver.id} already exists")
        self._drivers[driver.id] = driver
        self._invalidate()
        return driver

    def remove_driver(self, driver_id: str) -> Driver:
        if driver_id not in self._drivers:
            raise SessionError(f"Unknown driver {driver_id}")
        self._invalidate()
        return self._drivers.pop(driver_id)

    def add_pickup(self, pickup: PickupRequest) -> PickupRequest:
        if pickup.id in self._pickups:
            raise SessionError(f"Pickup {pickup.id} already exists")
        self._pickups[pickup.id] = pickup
        self._invalidate()
        return pickup

    def remove_pickup(self, pickup_id: str) -> PickupRequest:
        if pickup_id not in self._pickups:
            raise SessionError(f"Unknown pickup {pickup_id}")
        self._invalidate()
        return self._pickups.pop(pickup_id)

    def get_pickup(self, pickup_id: str) -> PickupRequest:
        try:
            return self._pickups[pickup_id]
        except KeyError:
            raise SessionError(f"Unknown pickup {pickup_id}")

    def clear(self) -> None:
        self.destination = None
        self._drivers.clear()
        self._pickups.clear()
        self._invalidate()

    def require_ready(self) -> Destination:
        if self.destination is None:
            raise SessionError("Please set a destination first")
        if not self._drivers:
            raise SessionError("Please add at least one driver")
        return self.destination

    # ------------------- Snapshot -------------------

    def snapshot(self) -> SessionSnapshot:
        return SessionSnapshot(
            destination=self.destination,
            drivers=self.drivers,
            pickups=self.pickups,
            plan=self.plan,
        )

    @classmethod
    def from_snapshot(cls, snap: SessionSnapshot) -> "PlanningSession":
        session = cls()
        session.destination = snap.destination
        for d in snap.drivers:
            session._drivers[d.id] = d
        for p in snap.pickups:
            session._pickups[p.id] = p
        session.plan = snap.plan
        return session


class SessionStore:
    """Saves and loads the session snapshot as a single JSON document."""

    def __init__(self, data_dir: Path, filename: str = SNAPSHOT_FILENAME):
        self.path = Path(data_dir) / filename

    def save(self, session: PlanningSession) -> Path:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        tmp = self.path.with_suffix(".tmp")
        tmp.write_text(session.snapshot().model_dump_json(indent=2), encoding="utf-8")
        tmp.replace(self.path)
        logger.info("Saved session to %s", self.path)
        return self.path

    def load(self) -> PlanningSession:
        if not self.path.exists():
            logger.info("No saved session at %s; starting empty", self.path)
            return PlanningSession()
        raw = json.loads(self.path.read_text(encoding="utf-8"))
        return PlanningSession.from_snapshot(SessionSnapshot.model_validate(raw))
