"""Tests for feed record validation and normalization."""

import datetime

import pytest

from busmap.core.vehicle_normalizer import (
    ROUTE_PLACEHOLDER,
    StopRef,
    is_at_depot,
    is_stale,
    normalize_vehicle,
    normalize_vehicles,
    parse_stop_field,
    parse_timestamp,
)

NOW = datetime.datetime(2026, 3, 2, 8, 15, 0, tzinfo=datetime.timezone.utc)


def make_record(**overrides) -> dict:
    record = {
        "current_gps_latitude": "64.1766",
        "current_gps_longitude": "-51.7359",
        "route_short_name": "1",
        "route_long_name": "Nuuk Center - Qinngorput",
        "stop_name": "54: Atuarfik Hans Lynge",
        "next_stop_name": "12: Nuuk Center",
        "current_bus_speed": "23.5",
        "at_stop": "false",
        "updated_at": "2026-03-02T08:14:05Z",
        "trip_headsign": "Qinngorput",
        "trip_id": "T-1001",
        "location_id": "bus-17",
        "device_id": "dev-9",
    }
    record.update(overrides)
    return record


def test_parse_stop_field():
    assert parse_stop_field("54: Atuarfik Hans Lynge") == StopRef(54, "Atuarfik Hans Lynge")
    assert parse_stop_field("  7 :Tuujuk  ") == StopRef(7, "Tuujuk")


@pytest.mark.parametrize("raw", ["N/A", None, "", "Tuujuk", "54:", "12: N/A", 54])
def test_parse_stop_field_rejects_placeholders(raw):
    assert parse_stop_field(raw) is None


def test_parse_timestamp():
    assert parse_timestamp("2026-03-02T08:14:05Z") == datetime.datetime(
        2026, 3, 2, 8, 14, 5, tzinfo=datetime.timezone.utc
    )
    # Offsets are converted, naive values are taken as UTC
    assert parse_timestamp("2026-03-02T06:14:05-02:00").hour == 8
    assert parse_timestamp("2026-03-02T08:14:05").tzinfo == datetime.timezone.utc
    assert parse_timestamp("yesterday") is None
    assert parse_timestamp("") is None


def test_is_stale_window():
    assert not is_stale(NOW - datetime.timedelta(seconds=120), NOW)
    assert is_stale(NOW - datetime.timedelta(seconds=121), NOW)
    assert is_stale(None, NOW)
    assert not is_stale(NOW - datetime.timedelta(seconds=200), NOW, stale_after_seconds=300)


def test_depot_bounds():
    assert is_at_depot(64.181, -51.716)
    assert not is_at_depot(64.1766, -51.7359)


def test_normalize_full_record():
    vehicle = normalize_vehicle("4217", make_record(), NOW)
    assert vehicle.id == "bus-17"
    assert vehicle.route == "1"
    assert (vehicle.lat, vehicle.lon) == (64.1766, -51.7359)
    assert vehicle.speed == 23.5
    assert vehicle.at_stop is False
    assert vehicle.current_stop_id == 54
    assert vehicle.current_stop_name == "Atuarfik Hans Lynge"
    assert vehicle.next_stop_id == 12
    assert vehicle.headsign == "Qinngorput"
    assert vehicle.trip_id == "T-1001"
    assert vehicle.is_stale is False
    assert vehicle.at_depot is False


def test_identity_fallback_order():
    assert normalize_vehicle("k", make_record(location_id=""), NOW).id == "dev-9"
    assert normalize_vehicle("k", make_record(location_id=None, device_id=None), NOW).id == "k"


def test_missing_optional_fields_get_defaults():
    record = {"current_gps_latitude": 64.18, "current_gps_longitude": -51.72}
    vehicle = normalize_vehicle("k", record, NOW)
    assert vehicle.route == ROUTE_PLACEHOLDER
    assert vehicle.speed == 0.0
    assert vehicle.at_stop is False
    assert vehicle.current_stop_id is None
    assert vehicle.next_stop_name is None
    assert vehicle.updated_at is None
    assert vehicle.is_stale is True


@pytest.mark.parametrize("speed", ["-4", "fast", None, "nan"])
def test_invalid_speed_becomes_zero(speed):
    assert normalize_vehicle("k", make_record(current_bus_speed=speed), NOW).speed == 0.0


def test_at_stop_flag():
    assert normalize_vehicle("k", make_record(at_stop="true"), NOW).at_stop is True
    assert normalize_vehicle("k", make_record(at_stop=True), NOW).at_stop is True
    assert normalize_vehicle("k", make_record(at_stop="yes"), NOW).at_stop is False


@pytest.mark.parametrize("lat", [None, "", "north", True, "inf", [64.1]])
def test_bad_coordinates_skip_record(lat):
    assert normalize_vehicle("k", make_record(current_gps_latitude=lat), NOW) is None


def test_missing_coordinates_skip_record():
    record = make_record()
    del record["current_gps_longitude"]
    assert normalize_vehicle("k", record, NOW) is None


def test_non_object_record_is_skipped():
    assert normalize_vehicle("k", "garbage", NOW) is None


def test_stale_record():
    vehicle = normalize_vehicle("k", make_record(updated_at="2026-03-02T08:00:00Z"), NOW)
    assert vehicle.is_stale is True


def test_numeric_route_is_text():
    assert normalize_vehicle("k", make_record(route_short_name=2), NOW).route == "2"


def test_normalize_vehicles_skips_bad_records():
    payload = {
        "a": make_record(location_id="bus-1"),
        "b": make_record(current_gps_latitude="n/a"),
        "c": make_record(location_id="bus-3", route_short_name=""),
    }
    vehicles = normalize_vehicles(payload, NOW)
    assert [v.id for v in vehicles] == ["bus-1", "bus-3"]
    assert vehicles[1].route == ROUTE_PLACEHOLDER


def test_normalize_vehicles_accepts_list_and_rejects_other():
    assert len(normalize_vehicles([make_record()], NOW)) == 1
    assert normalize_vehicles("nope", NOW) == []
