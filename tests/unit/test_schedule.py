from datetime import timedelta

import pytest

from carpool.plan.config import ProviderKind
from carpool.plan.models import Coordinate, Leg, Route
from carpool.plan.schedule import DEFAULT_BUFFER_SECONDS, ScheduleComputer, compute_schedule


def _route(durations):
    legs = [Leg(distance_meters=1000.0, duration_seconds=d) for d in durations]
    return Route(
        distance_meters=1000.0 * len(legs),
        duration_seconds=float(sum(durations)),
        geometry=[Coordinate(lat=0, lng=i) for i in range(len(legs) + 1)],
        legs=legs,
        provider=ProviderKind.ESTIMATOR,
    )


def test_backward_propagation_from_deadline(deadline, make_pickup):
    pickups = [make_pickup("p1", 0, 1), make_pickup("p2", 0, 2)]
    schedule = ScheduleComputer().compute(deadline, _route([100, 200, 300]), pickups)

    target = deadline - timedelta(minutes=5)
    assert schedule.target_arrival_time == target
    assert [s.pickup_id for s in schedule.stop_times] == ["p1", "p2"]
    assert schedule.stop_times[1].arrival_time == target - timedelta(seconds=300)
    assert schedule.stop_times[0].arrival_time == target - timedelta(seconds=500)
    assert schedule.driver_departure_time == target - timedelta(seconds=600)
    assert schedule.formatted_departure_time == "11:45 AM"
    assert schedule.stop_times[1].formatted_time == "11:50 AM"


def test_times_are_non_decreasing_and_before_target(deadline, make_pickup):
    pickups = [make_pickup(f"p{i}", 0, i) for i in range(4)]
    schedule = compute_schedule(deadline, _route([60, 0, 120, 30, 45]), pickups)
    times = [schedule.driver_departure_time] + [s.arrival_time for s in schedule.stop_times]
    assert times == sorted(times)
    assert times[-1] <= deadline - timedelta(seconds=DEFAULT_BUFFER_SECONDS)


def test_no_pickups_only_departure(deadline):
    schedule = ScheduleComputer(buffer_seconds=0).compute(deadline, _route([900]), [])
    assert schedule.stop_times == []
    assert schedule.driver_departure_time == deadline - timedelta(seconds=900)


def test_leg_count_must_match_pickups(deadline, make_pickup):
    with pytest.raises(ValueError):
        ScheduleComputer().compute(deadline, _route([100, 200]), [make_pickup("p1", 0, 1), make_pickup("p2", 0, 2)])
