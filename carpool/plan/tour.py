from __future__ import annotations

from typing import List, Sequence

from .geo import haversine_km
from .models import Coordinate, Driver, PickupRequest


def order_stops(start: Coordinate, pickups: Sequence[PickupRequest]) -> List[PickupRequest]:
    """
    Nearest-neighbour visiting order from `start`.
    Always steps to the closest unvisited pickup; ties go to the earlier input.
    """
    if len(pickups) <= 1:
        return list(pickups)

    ordered: List[PickupRequest] = []
    remaining = list(pickups)
    current = start
    while remaining:
        nearest_idx = 0
        nearest = haversine_km(current, remaining[0].coordinate)
        for i in range(1, len(remaining)):
            d = haversine_km(current, remaining[i].coordinate)
            if d < nearest:
                nearest = d
                nearest_idx = i
        stop = remaining.pop(nearest_idx)
        ordered.append(stop)
        current = stop.coordinate
    return ordered


class TourBuilder:
    def order_stops(self, driver: Driver, assigned: Sequence[PickupRequest]) -> List[PickupRequest]:
        return order_stops(driver.coordinate, assigned)

    @staticmethod
    def stop_sequence(driver: Driver, ordered: Sequence[PickupRequest], destination: Coordinate) -> List[Coordinate]:
        """driver -> pickups (in order) -> destination"""
        return [driver.coordinate, *(p.coordinate for p in ordered), destination]
