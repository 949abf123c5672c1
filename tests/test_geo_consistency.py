import pytest

from rental_pricing.rules.geo import (
    GeoJSONPoint,
    GeoPoint,
    has_valid_coordinates,
    is_wrong_ordered,
    normalize,
    normalize_document,
    repair,
)


def test_normalize_puts_longitude_first():
    loc = normalize(GeoPoint(address="Depot", lat=37.0, lng=-122.0))

    assert loc.coordinates == GeoJSONPoint(coordinates=(-122.0, 37.0))
    assert loc.coordinates.type == "Point"


def test_normalize_overwrites_wrong_point():
    loc = GeoPoint(lat=37.0, lng=-122.0, coordinates=GeoJSONPoint(coordinates=(37.0, -122.0)))

    assert normalize(loc).coordinates.coordinates == (-122.0, 37.0)


@pytest.mark.parametrize(
    "loc",
    [
        GeoPoint(lat=37.0, lng=-122.0),
        GeoPoint(lat=-33.8688, lng=151.2093, coordinates=GeoJSONPoint(coordinates=(1.0, 2.0))),
        GeoPoint(lat=0.0, lng=0.0),
    ],
)
def test_normalize_is_idempotent(loc):
    once = normalize(loc)

    assert normalize(once) == once
    assert once.coordinates.coordinates[0] == loc.lng
    assert once.coordinates.coordinates[1] == loc.lat


def test_normalize_leaves_point_alone_without_lat_lng():
    point = GeoJSONPoint(coordinates=(-122.0, 37.0))
    loc = GeoPoint(address="Somewhere", lat=37.0, coordinates=point)

    assert normalize(loc).coordinates is point


def test_wrong_order_detection_uses_tolerance():
    wrong = GeoPoint(lat=37.0, lng=-122.0, coordinates=GeoJSONPoint(coordinates=(37.0000001, -122.0)))
    right = GeoPoint(lat=37.0, lng=-122.0, coordinates=GeoJSONPoint(coordinates=(-122.0, 37.0)))

    assert is_wrong_ordered(wrong)
    assert not is_wrong_ordered(right)
    assert not is_wrong_ordered(GeoPoint(lat=37.0, lng=-122.0))
    assert not is_wrong_ordered(
        GeoPoint(lat=37.0, lng=-122.0, coordinates=GeoJSONPoint(coordinates=(37.0,)))
    )


def test_repair_rewrites_only_wrong_ordered_points():
    wrong = GeoPoint(lat=37.0, lng=-122.0, coordinates=GeoJSONPoint(coordinates=(37.0, -122.0)))
    unrelated = GeoPoint(lat=37.0, lng=-122.0, coordinates=GeoJSONPoint(coordinates=(10.0, 20.0)))

    assert repair(wrong).coordinates.coordinates == (-122.0, 37.0)
    assert repair(unrelated) is unrelated


def test_has_valid_coordinates():
    assert has_valid_coordinates(GeoPoint(coordinates=GeoJSONPoint(coordinates=(1.0, 2.0))))
    assert not has_valid_coordinates(GeoPoint(lat=1.0, lng=2.0))
    assert not has_valid_coordinates(GeoPoint(coordinates=GeoJSONPoint(coordinates=(1.0, 2.0), type="LineString")))


def test_normalize_document_keeps_extra_keys_and_coerces_numbers():
    doc = {"address": "Yard 7", "lat": "37.0", "lng": -122, "range": 25}

    out = normalize_document(doc)

    assert out["range"] == 25
    assert out["coordinates"] == {"type": "Point", "coordinates": [-122.0, 37.0]}
    assert doc == {"address": "Yard 7", "lat": "37.0", "lng": -122, "range": 25}


def test_normalize_document_without_lat_lng_is_unchanged():
    doc = {"address": "Unknown", "coordinates": {"type": "Point", "coordinates": [5, 6]}}

    assert normalize_document(doc) == doc
