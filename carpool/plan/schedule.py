from __future__ import annotations

from datetime import datetime
from typing import Sequence

from ..timeparse import format_clock, seconds_before
from .models import PickupRequest, Route, Schedule, StopTime

DEFAULT_BUFFER_SECONDS = 5 * 60.0


class ScheduleComputer:
    """
    Works backwards from the deadline through an already-computed route.

    The route must have one leg per stop transition: driver -> p1 -> ... -> pn
    -> destination, i.e. len(pickups) + 1 legs. No routing calls are made here.
    """

    def __init__(self, buffer_seconds: float = DEFAULT_BUFFER_SECONDS):
        self.buffer_seconds = float(buffer_seconds)

    def compute(self, deadline: datetime, route: Route, ordered_pickups: Sequence[PickupRequest]) -> Schedule:
        legs = route.legs
        if len(legs) != len(ordered_pickups) + 1:
            raise ValueError(
                f"Route has {len(legs)} legs but {len(ordered_pickups)} pickups need {len(ordered_pickups) + 1}"
            )

        target = seconds_before(deadline, self.buffer_seconds)
        current = target
        stop_times = []
        # leg i ends at stop i (pickups) or at the destination (last leg)
        for i in range(len(legs) - 1, -1, -1):
            current = seconds_before(current, legs[i].duration_seconds)
            if i > 0:
                pickup = ordered_pickups[i - 1]
                stop_times.append(StopTime(
                    pickup_id=pickup.id,
                    arrival_time=current,
                    formatted_time=format_clock(current),
                ))
        stop_times.reverse()

        return Schedule(
            driver_departure_time=current,
            stop_times=stop_times,
            target_arrival_time=target,
            formatted_departure_time=format_clock(current),
        )


def compute_schedule(
    deadline: datetime,
    route: Route,
    ordered_pickups: Sequence[PickupRequest],
    buffer_seconds: float = DEFAULT_BUFFER_SECONDS,
) -> Schedule:
    return ScheduleComputer(buffer_seconds).compute(deadline, route, ordered_pickups)
