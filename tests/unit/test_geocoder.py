import asyncio
import time

import pytest
import responses

from carpool.plan.errors import MissingLocalityContextError, UnresolvableAddressError
from carpool.plan.geocoder import GeoResolver, load_gazetteer_csv

NOMINATIM = "https://nominatim.openstreetmap.org/search"


def _online(config):
    return config.replace(geocoder_enabled=True)


@responses.activate
def test_geocoder_result_is_used_and_cached(config):
    responses.add(
        responses.GET, NOMINATIM,
        json=[{"lat": "51.5007", "lon": "-0.1246", "display_name": "Big Ben, London"}],
        status=200,
    )
    resolver = GeoResolver(_online(config))

    loc = asyncio.run(resolver.resolve_location("Big Ben"))
    assert loc.source == "geocoder"
    assert (loc.coordinate.lat, loc.coordinate.lng) == (51.5007, -0.1246)
    assert loc.display_name == "Big Ben, London"

    again = asyncio.run(resolver.resolve("Big Ben"))
    assert again == loc.coordinate
    assert len(responses.calls) == 1
    assert resolver.cache_size == 1
    assert responses.calls[0].request.headers["User-Agent"] == "carpool-planner/1.0"


@responses.activate
def test_geocoder_failure_falls_back_to_gazetteer(config):
    responses.add(responses.GET, NOMINATIM, status=503)
    resolver = GeoResolver(_online(config))

    loc = asyncio.run(resolver.resolve_location("Times Square, New York, NY"))
    assert loc.source == "gazetteer"
    assert (loc.coordinate.lat, loc.coordinate.lng) == (40.7580, -73.9855)


@responses.activate
def test_empty_geocoder_result_falls_back_to_gazetteer(config):
    responses.add(responses.GET, NOMINATIM, json=[], status=200)
    resolver = GeoResolver(_online(config))
    c = asyncio.run(resolver.resolve("jfk airport"))
    assert (c.lat, c.lng) == (40.6413, -73.7781)


@responses.activate
def test_full_plus_code_never_calls_the_geocoder(config):
    resolver = GeoResolver(_online(config))
    loc = asyncio.run(resolver.resolve_location("8FVC9G8F+6W Zurich"))
    assert loc.source == "plus_code"
    assert loc.coordinate.lat == pytest.approx(47.3655625)
    assert len(responses.calls) == 0


def test_short_plus_code_uses_known_locality(config):
    resolver = GeoResolver(config)
    c = asyncio.run(resolver.resolve("9G8F+6W, New York, NY"))
    assert c.lat == pytest.approx(40.745425)
    assert c.lng == pytest.approx(-73.9585)


def test_short_plus_code_without_locality_raises(config):
    resolver = GeoResolver(config)
    with pytest.raises(MissingLocalityContextError):
        asyncio.run(resolver.resolve("9G8F+6W"))


def test_short_plus_code_anchored_on_gazetteer_locality(config):
    resolver = GeoResolver(config, gazetteer={"Springfield": {"lat": 39.7817, "lng": -89.6501}})
    c = asyncio.run(resolver.resolve("9G8F+6W Springfield"))
    assert c.lat == pytest.approx(39.7817 + 0.032625)
    assert c.lng == pytest.approx(-89.6501 + 0.0475)


def test_unknown_address_raises_unresolvable(config):
    resolver = GeoResolver(config)
    with pytest.raises(UnresolvableAddressError) as exc:
        asyncio.run(resolver.resolve("Nowhere In Particular"))
    assert exc.value.address == "Nowhere In Particular"


def test_empty_address_raises_unresolvable(config):
    with pytest.raises(UnresolvableAddressError):
        asyncio.run(GeoResolver(config).resolve("   "))


def test_concurrent_lookups_share_one_request(config):
    resolver = GeoResolver(config)
    calls = []

    async def fake_free_text(text):
        calls.append(text)
        await asyncio.sleep(0.01)
        return resolver._lookup_gazetteer("wall street")

    resolver._resolve_free_text = fake_free_text

    async def run():
        return await asyncio.gather(*(resolver.resolve("Wall St") for _ in range(5)))

    coords = asyncio.run(run())
    assert len({(c.lat, c.lng) for c in coords}) == 1
    assert calls == ["Wall St"]


def test_clear_cache(config):
    resolver = GeoResolver(config)
    asyncio.run(resolver.resolve("central park"))
    assert resolver.cache_size == 1
    resolver.clear_cache()
    assert resolver.cache_size == 0


def test_gazetteer_csv_loading(config, tmp_path):
    csv = tmp_path / "places.csv"
    csv.write_text(
        "name,lat,lon,display_name\n"
        "Union Station,38.8973,-77.0063,Union Station DC\n"
        "Broken,not-a-number,1.0,\n",
        encoding="utf-8",
    )
    places = load_gazetteer_csv(csv)
    assert list(places) == ["union station"]
    assert places["union station"]["display_name"] == "Union Station DC"

    resolver = GeoResolver(config.replace(gazetteer_csv=csv))
    c = asyncio.run(resolver.resolve("Union Station"))
    assert (c.lat, c.lng) == (38.8973, -77.0063)


def test_gazetteer_csv_missing_columns(tmp_path):
    csv = tmp_path / "bad.csv"
    csv.write_text("place,x,y\nA,1,2\n", encoding="utf-8")
    with pytest.raises(ValueError):
        load_gazetteer_csv(csv)


def test_cancelled_waiter_leaves_shared_lookup_running(config):
    resolver = GeoResolver(config)
    calls = []

    async def slow_free_text(text):
        calls.append(text)
        await asyncio.sleep(0.01)
        return resolver._lookup_gazetteer("wall street")

    resolver._resolve_free_text = slow_free_text

    async def run():
        first = asyncio.ensure_future(resolver.resolve("Wall St"))
        second = asyncio.ensure_future(resolver.resolve("Wall St"))
        await asyncio.sleep(0)
        first.cancel()
        return await asyncio.gather(first, second, return_exceptions=True)

    first, second = asyncio.run(run())
    assert isinstance(first, asyncio.CancelledError)
    assert (second.lat, second.lng) == (40.7074, -74.0113)
    assert calls == ["Wall St"]
    assert resolver.cache_size == 1


@responses.activate
def test_geocoder_timeout_falls_back_to_gazetteer(config):
    def slow(request):
        time.sleep(0.3)
        return (200, {}, "[]")

    responses.add_callback(responses.GET, NOMINATIM, callback=slow)
    resolver = GeoResolver(_online(config).replace(request_timeout_s=0.05))

    loc = asyncio.run(resolver.resolve_location("Empire State Building, New York, NY"))
    assert loc.source == "gazetteer"
    assert (loc.coordinate.lat, loc.coordinate.lng) == (40.7484, -73.9857)
