from carpool.plan.models import Coordinate
from carpool.plan.tour import TourBuilder, order_stops


def test_nearest_neighbour_order(make_pickup):
    # driver at origin; pickups at 1, 3 and 2 degrees east
    pickups = [make_pickup("p1", 0, 1), make_pickup("p3", 0, 3), make_pickup("p2", 0, 2)]
    ordered = order_stops(Coordinate(lat=0, lng=0), pickups)
    assert [p.id for p in ordered] == ["p1", "p2", "p3"]


def test_greedy_choice_is_not_globally_optimal(make_pickup):
    # the nearest first stop pulls the tour away from the far cluster
    pickups = [make_pickup("far", 0, -3), make_pickup("near", 0, 1), make_pickup("next", 0, 2.5)]
    ordered = order_stops(Coordinate(lat=0, lng=0), pickups)
    assert [p.id for p in ordered] == ["near", "next", "far"]


def test_ties_go_to_earlier_pickup(make_pickup):
    pickups = [make_pickup("west", 0, -1), make_pickup("east", 0, 1)]
    ordered = order_stops(Coordinate(lat=0, lng=0), pickups)
    assert [p.id for p in ordered] == ["west", "east"]


def test_zero_or_one_pickup_is_returned_unchanged(make_pickup):
    assert order_stops(Coordinate(lat=0, lng=0), []) == []
    only = [make_pickup("p", 5, 5)]
    assert order_stops(Coordinate(lat=0, lng=0), only) == only


def test_stop_sequence_runs_driver_pickups_destination(make_driver, make_pickup):
    driver = make_driver("D", 0, 0)
    tours = TourBuilder()
    ordered = tours.order_stops(driver, [make_pickup("p2", 0, 2), make_pickup("p1", 0, 1)])
    dest = Coordinate(lat=0, lng=3)
    seq = tours.stop_sequence(driver, ordered, dest)
    assert [(c.lat, c.lng) for c in seq] == [(0, 0), (0, 1), (0, 2), (0, 3)]


def test_closer_pickup_is_visited_first_regardless_of_input_order(make_pickup):
    ordered = order_stops(Coordinate(lat=0, lng=0), [make_pickup("far", 0, 5), make_pickup("near", 0, 1)])
    assert [(p.coordinate.lat, p.coordinate.lng) for p in ordered] == [(0, 1), (0, 5)]
