from __future__ import annotations

import logging
import warnings
from typing import Callable, Dict, List, Optional, Sequence

import numpy as np

from .config import EngineConfig, OverflowPolicy
from .errors import InfeasibleCapacityWarning
from .geo import haversine_matrix_km
from .models import Allocation, Driver, OverCapacity, PickupRequest

logger = logging.getLogger(__name__)

STRATEGY_GREEDY = "greedy"
STRATEGY_CLUSTER = "cluster"


def _empty_allocation(strategy: str, drivers: Sequence[Driver], pickups: Sequence[PickupRequest]) -> Allocation:
    alloc = Allocation(
        strategy=strategy,
        assignments={d.id: [] for d in drivers},
        loads={d.id: 0 for d in drivers},
    )
    if not drivers and pickups:
        logger.warning("No drivers available; %d pickups left unassigned", len(pickups))
        alloc.unassigned = [p.id for p in pickups]
    return alloc


def flag_over_capacity(alloc: Allocation, drivers: Sequence[Driver]) -> Allocation:
    """Record, log and warn about every driver carrying more than their seats."""
    over = [
        OverCapacity(driver_id=d.id, load=alloc.loads[d.id], seat_capacity=d.seat_capacity)
        for d in drivers
        if alloc.loads[d.id] > d.seat_capacity
    ]
    alloc.over_capacity = over
    for oc in over:
        msg = (
            f"Driver {oc.driver_id} is over capacity: {oc.load} riders "
            f"for {oc.seat_capacity} seats ({alloc.strategy} allocation)"
        )
        logger.warning(msg)
        warnings.warn(msg, InfeasibleCapacityWarning, stacklevel=3)
    return alloc


class CapacityGreedyAllocator:
    """
    Repeatedly commits the cheapest feasible (pickup, driver) pair.

    score = distance_km(driver, pickup) + load_penalty_weight * driver_load

    Pairs that would push a driver over their seats are skipped. When no
    feasible pair is left, the first remaining pickup goes to the driver
    chosen by the overflow policy and the result is flagged over capacity.
    Ties go to the first pair in input order.
    """

    strategy = STRATEGY_GREEDY

    def __init__(
        self,
        load_penalty_weight: float = 2.0,
        overflow_policy: OverflowPolicy = OverflowPolicy.MOST_REMAINING,
    ):
        self.load_penalty_weight = float(load_penalty_weight)
        self.overflow_policy = OverflowPolicy(overflow_policy)

    @classmethod
    def from_config(cls, config: EngineConfig) -> "CapacityGreedyAllocator":
        return cls(config.load_penalty_weight, config.overflow_policy)

    def allocate(self, drivers: Sequence[Driver], pickups: Sequence[PickupRequest]) -> Allocation:
        alloc = _empty_allocation(self.strategy, drivers, pickups)
        if not drivers or not pickups:
            return alloc

        dist = haversine_matrix_km([d.coordinate for d in drivers], [p.coordinate for p in pickups])
        capacity = np.array([d.seat_capacity for d in drivers], dtype=int)
        load = np.zeros(len(drivers), dtype=int)
        remaining: List[int] = list(range(len(pickups)))

        while remaining:
            best: Optional[tuple] = None
            best_score = float("inf")
            for pos, pi in enumerate(remaining):
                party = pickups[pi].party_size
                for di in range(len(drivers)):
                    if load[di] + party > capacity[di]:
                        continue
                    score = float(dist[di, pi]) + self.load_penalty_weight * float(load[di])
                    if score < best_score:
                        best_score = score
                        best = (pos, pi, di)

            if best is None:
                pos, pi = 0, remaining[0]
                di = self._overflow_driver(capacity, load)
                logger.info(
                    "No feasible driver for pickup %s (party of %d); overflowing onto %s",
                    pickups[pi].id, pickups[pi].party_size, drivers[di].id,
                )
            else:
                pos, pi, di = best

            alloc.assignments[drivers[di].id].append(pickups[pi].id)
            load[di] += pickups[pi].party_size
            remaining.pop(pos)

        alloc.loads = {d.id: int(load[i]) for i, d in enumerate(drivers)}
        return flag_over_capacity(alloc, drivers)

    def _overflow_driver(self, capacity: np.ndarray, load: np.ndarray) -> int:
        """Only reached when no driver has room for any remaining pickup."""
        margin = capacity - load
        if self.overflow_policy is OverflowPolicy.LEAST_LOADED:
            return int(np.argmin(load))
        # argmax returns the first index on ties
        return int(np.argmax(margin))


class ProximityClusterAllocator:
    """Each pickup goes to its nearest driver; seat capacity is not considered."""

    strategy = STRATEGY_CLUSTER

    def allocate(self, drivers: Sequence[Driver], pickups: Sequence[PickupRequest]) -> Allocation:
        alloc = _empty_allocation(self.strategy, drivers, pickups)
        if not drivers or not pickups:
            return alloc

        dist = haversine_matrix_km([d.coordinate for d in drivers], [p.coordinate for p in pickups])
        loads: Dict[str, int] = {d.id: 0 for d in drivers}
        for pi, pickup in enumerate(pickups):
            di = int(np.argmin(dist[:, pi]))
            alloc.assignments[drivers[di].id].append(pickup.id)
            loads[drivers[di].id] += pickup.party_size
        alloc.loads = loads
        return flag_over_capacity(alloc, drivers)


def get_allocator(strategy: str, config: EngineConfig):
    factories: Dict[str, Callable[[], object]] = {
        STRATEGY_GREEDY: lambda: CapacityGreedyAllocator.from_config(config),
        STRATEGY_CLUSTER: ProximityClusterAllocator,
    }
    try:
        return factories[strategy]()
    except KeyError:
        raise ValueError(f"Unknown allocation strategy {strategy!r}; expected one of {sorted(factories)}")
