def _seed(client):
    r = client.put("/plan/destination", json={"coordinate": {"lat": 0, "lng": 3}, "deadline": "2025-09-02T12:00"})
    assert r.status_code == 200, r.text
    r = client.post("/plan/drivers", json={"name": "Ana", "coordinate": {"lat": 0, "lng": 0}, "id": "D"})
    assert r.status_code == 200, r.text
    for pid, lng in (("p1", 1), ("p2", 2)):
        r = client.post("/plan/pickups", json={"name": pid, "coordinate": {"lat": 0, "lng": lng}, "id": pid})
        assert r.status_code == 200, r.text


def test_health(client):
    r = client.get("/health")
    assert r.status_code == 200
    body = r.json()
    assert body["status"] == "ok"
    assert body["routing_mode"].startswith("Straight-line")


def test_config(client):
    body = client.get("/config").json()
    assert body["capabilities"] == ["estimator"]
    assert body["buffer_minutes"] == 5
    assert body["default_seat_capacity"] == 4


def test_geocode_from_gazetteer(client):
    r = client.post("/plan/geocode", json={"address": "Times Square, New York, NY"})
    assert r.status_code == 200
    body = r.json()
    assert body["source"] == "gazetteer"
    assert body["coordinate"] == {"lat": 40.758, "lng": -73.9855}


def test_geocode_errors_are_422(client):
    assert client.post("/plan/geocode", json={"address": "Nowhere In Particular"}).status_code == 422
    r = client.post("/plan/geocode", json={"address": "9G8F+6W"})
    assert r.status_code == 422
    assert "locality" in r.json()["detail"]


def test_driver_defaults_and_address_input(client):
    r = client.post("/plan/drivers", json={"name": "Ben", "address": "Central Park, New York, NY"})
    assert r.status_code == 200
    body = r.json()
    assert body["seat_capacity"] == 4
    assert body["coordinate"] == {"lat": 40.7829, "lng": -73.9654}
    assert client.post("/plan/drivers", json={"name": "NoWhere"}).status_code == 422


def test_bad_deadline_is_422(client):
    r = client.put("/plan/destination", json={"coordinate": {"lat": 0, "lng": 0}, "deadline": "not a date"})
    assert r.status_code == 422


def test_allocate_requires_destination_and_driver(client):
    r = client.post("/plan/allocate", json={"strategy": "greedy"})
    assert r.status_code == 400
    assert "destination" in r.json()["detail"]


def test_allocate_and_routes(client):
    _seed(client)

    r = client.post("/plan/allocate", json={"strategy": "cluster"})
    assert r.status_code == 200
    alloc = r.json()
    assert alloc["strategy"] == "cluster"
    assert sorted(alloc["assignments"]["D"]) == ["p1", "p2"]

    r = client.post("/plan/routes", json={"strategy": "greedy"})
    assert r.status_code == 200, r.text
    body = r.json()
    plan = body["plan"]["drivers"][0]
    assert [p["id"] for p in plan["pickups"]] == ["p1", "p2"]
    assert plan["route"]["provider"] == "estimator"
    assert len(plan["schedule"]["stop_times"]) == 2
    summary = body["summary"]["drivers"][0]
    assert summary["pickups"] == 2
    assert summary["distance"].endswith("km")

    snap = client.get("/plan/session").json()
    assert snap["plan"] is not None


def test_unknown_strategy_is_rejected(client):
    _seed(client)
    assert client.post("/plan/allocate", json={"strategy": "random"}).status_code == 422


def test_delete_endpoints(client):
    _seed(client)
    assert client.delete("/plan/pickups/p1").status_code == 200
    assert client.delete("/plan/pickups/p1").status_code == 404
    assert client.delete("/plan/drivers/ghost").status_code == 404
    snap = client.get("/plan/session").json()
    assert [p["id"] for p in snap["pickups"]] == ["p2"]


def test_save_and_load_session(client):
    _seed(client)
    r = client.post("/admin/save")
    assert r.status_code == 200

    # load swaps the in-memory session for the saved snapshot
    r = client.post("/admin/load")
    assert r.status_code == 200
    body = r.json()
    assert body["drivers"] == 1
    assert body["pickups"] == 2
    assert body["has_destination"] is True
