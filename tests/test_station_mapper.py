from datetime import datetime, timezone

import pytest

from bikeshare_refresh.services.station_mapper import StationExtra, TriState, map_station
from bikeshare_refresh.utils.identifiers import derive_station_id
from factories import upstream_station

NOW = datetime(2026, 3, 1, 12, 0, tzinfo=timezone.utc)


def _map(**overrides):
    return map_station(upstream_station("st-1", **overrides), "net-1", now=NOW)


def test_docked_station_capacity_is_bikes_plus_empty_slots():
    record = _map(free_bikes=3, empty_slots=7)

    assert record.is_virtual is False
    assert record.capacity == 10
    assert record.num_docks_available == 7
    assert record.num_regular_bikes_available == 3
    assert record.num_ebikes_available == 0
    assert record.is_operational is True
    assert record.is_renting is TriState.YES
    assert record.is_returning is TriState.YES


def test_virtual_station_falls_back_to_free_bikes_when_slots_falsy():
    record = _map(free_bikes=4, empty_slots=0, extra={"virtual": True, "slots": 0})

    assert record.is_virtual is True
    assert record.capacity == 4


def test_virtual_station_uses_advertised_slots():
    record = _map(free_bikes=4, empty_slots=None, extra={"virtual": 1, "slots": 20})

    assert record.capacity == 20


def test_virtual_station_accepts_returns_without_empty_slots():
    record = _map(free_bikes=4, empty_slots=0, extra={"virtual": True})

    assert record.is_operational is True
    assert record.is_returning is TriState.YES


def test_uid_marks_station_virtual():
    record = _map(extra={"uid": "virtual"})

    assert record.is_virtual is True


def test_explicit_virtual_flag_wins_over_uid():
    record = _map(extra={"virtual": False, "uid": "virtual"})

    assert record.is_virtual is False


def test_closed_status_disables_station_regardless_of_bikes():
    record = _map(free_bikes=2, empty_slots=None, extra={"status": "closed"})

    assert record.is_operational is False
    assert record.is_renting is TriState.NO
    assert record.is_returning is TriState.NO


def test_operational_flag_overrides_capacity():
    record = _map(free_bikes=3, empty_slots=7, extra={"operational": 0, "status": "open"})

    assert record.capacity == 10
    assert record.is_operational is False
    assert record.is_renting is TriState.NO


def test_online_flag_used_when_operational_absent():
    record = _map(free_bikes=0, empty_slots=0, extra={"online": True})

    assert record.capacity == 0
    assert record.is_operational is True
    assert record.is_renting is TriState.NO
    # No slot information and no status: nothing is known about returns.
    assert record.is_returning is TriState.UNKNOWN
    assert record.to_row()["is_returning"] is None


def test_explicit_renting_and_returning_flags():
    record = _map(free_bikes=3, empty_slots=0, extra={"renting": 0, "returning": 1})

    assert record.is_renting is TriState.NO
    assert record.is_returning is TriState.YES


def test_maintenance_status_keeps_station_operational_but_blocks_usage():
    record = _map(free_bikes=3, empty_slots=7, extra={"status": "Maintenance"})

    assert record.is_operational is True
    assert record.is_renting is TriState.NO
    assert record.is_returning is TriState.NO


def test_open_status_marks_renting_and_returning():
    record = _map(free_bikes=0, empty_slots=0, extra={"online": 1, "status": "active"})

    assert record.is_renting is TriState.YES
    assert record.is_returning is TriState.YES


def test_capacity_falls_back_to_slots_when_empty_slots_missing():
    record = _map(free_bikes=3, empty_slots=None, extra={"slots": 12})

    assert record.capacity == 12
    assert record.num_docks_available == 0


def test_negative_empty_slots_are_clamped():
    record = _map(free_bikes=3, empty_slots=-1)

    assert record.capacity == 3
    assert record.num_docks_available == 0


@pytest.mark.parametrize(
    "extra, regular, ebikes",
    [
        ({"ebikes": 2}, 3, 2),
        ({"ebikes": 2, "normal_bikes": 4}, 4, 2),
        ({"ebikes": 9}, 0, 9),
        ({}, 5, 0),
    ],
)
def test_bike_counts(extra, regular, ebikes):
    record = _map(free_bikes=5, empty_slots=5, extra=extra)

    assert record.num_regular_bikes_available == regular
    assert record.num_ebikes_available == ebikes


def test_boolean_counts_are_coerced_to_numbers():
    record = _map(free_bikes=True, empty_slots=False)

    assert record.capacity == 1
    assert record.num_regular_bikes_available == 1


@pytest.mark.parametrize(
    "overrides, capacity, regular, ebikes",
    [
        ({"free_bikes": float("nan"), "extra": {"virtual": True}}, 0, 0, 0),
        ({"free_bikes": float("inf")}, 0, 0, 0),
        ({"extra": {"virtual": True, "slots": "1e999"}}, 3, 3, 0),
        ({"extra": {"slots": float("nan")}, "empty_slots": None}, 3, 3, 0),
        ({"extra": {"ebikes": "1e999"}}, 10, 3, 0),
        ({"extra": {"normal_bikes": "nan"}}, 10, 3, 0),
        ({"extra": {"ebikes": float("-inf"), "normal_bikes": float("inf")}}, 10, 3, 0),
    ],
)
def test_non_finite_counts_are_treated_as_missing(overrides, capacity, regular, ebikes):
    record = _map(**overrides)

    assert record.capacity == capacity
    assert record.num_regular_bikes_available == regular
    assert record.num_ebikes_available == ebikes


def test_non_finite_flag_is_unknown():
    assert TriState.parse(float("nan")) is TriState.UNKNOWN
    assert TriState.parse(float("inf")) is TriState.UNKNOWN


def test_minimal_record_resolves_every_attribute():
    record = map_station({"id": "bare"}, "net-1", now=NOW)

    assert record.name == ""
    assert record.location == "POINT(0.0 0.0)"
    assert record.capacity == 0
    assert record.is_operational is False
    assert record.is_renting is TriState.NO
    assert record.is_returning is TriState.NO
    assert record.is_virtual is False
    assert record.num_docks_available == 0
    assert record.last_reported == NOW
    assert record.fetched_at == NOW
    assert record.address is None


def test_identity_location_and_timestamps():
    record = _map(
        latitude=41.3874,
        longitude=2.1686,
        timestamp="2026-03-01T11:00:00+01:00Z",
        extra={"address": "Carrer de Balmes 1"},
    )

    assert record.id == derive_station_id("st-1")
    assert record.network_id == "net-1"
    assert record.location == "POINT(2.1686 41.3874)"
    assert record.address == "Carrer de Balmes 1"
    assert record.last_reported == datetime(2026, 3, 1, 10, 0, tzinfo=timezone.utc)
    assert record.fetched_at == NOW
    assert record.raw_data["id"] == "st-1"


def test_unparseable_timestamp_falls_back_to_now():
    record = _map(timestamp="not-a-date")

    assert record.last_reported == NOW


def test_station_without_id_is_rejected():
    with pytest.raises(ValueError):
        map_station({"name": "no id"}, "net-1", now=NOW)


def test_extra_flag_encodings():
    extra = StationExtra.parse(
        {"virtual": "true", "online": 0, "renting": "0", "returning": "sometimes", "status": " OPEN "}
    )

    assert extra.virtual is TriState.YES
    assert extra.online is TriState.NO
    assert extra.renting is TriState.NO
    assert extra.returning is TriState.UNKNOWN
    assert extra.operational is TriState.UNKNOWN
    assert extra.status == "open"


def test_non_mapping_extra_is_ignored():
    assert StationExtra.parse(["virtual"]) == StationExtra()
