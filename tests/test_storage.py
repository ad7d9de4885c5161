from datetime import datetime, timedelta, timezone

import pytest

from fleetsim.fleet.storage import (
    DuplicateVehicleError,
    MemoryVehicleStorage,
    StorageError,
    Vehicle,
    VehicleNotFoundError,
    vehicle_from_dict,
)


def make_vehicle(vehicle_id="test-vehicle-1", **overrides):
    fields = dict(
        id=vehicle_id,
        region="us-west-2",
        status="available",
        battery_level=80,
        battery_range_km=200.0,
        location_lat=37.7749,
        location_lng=-122.4194,
        vehicle_type="sedan",
    )
    fields.update(overrides)
    return Vehicle(**fields)


def test_create_vehicle_rejects_duplicate():
    storage = MemoryVehicleStorage()
    vehicle = make_vehicle()
    storage.create_vehicle(vehicle)
    assert storage.get_vehicle("test-vehicle-1") is vehicle
    with pytest.raises(DuplicateVehicleError):
        storage.create_vehicle(vehicle)


def test_create_vehicle_sets_timestamp():
    storage = MemoryVehicleStorage()
    before = datetime.now(timezone.utc)
    storage.create_vehicle(make_vehicle())
    assert storage.get_vehicle("test-vehicle-1").last_updated >= before


def test_get_vehicle():
    storage = MemoryVehicleStorage()
    storage.create_vehicle(make_vehicle())
    retrieved = storage.get_vehicle("test-vehicle-1")
    assert retrieved.id == "test-vehicle-1"
    with pytest.raises(VehicleNotFoundError) as info:
        storage.get_vehicle("non-existent")
    assert "not found" in str(info.value)
    assert isinstance(info.value, StorageError)


def test_update_vehicle_location():
    storage = MemoryVehicleStorage()
    storage.create_vehicle(make_vehicle())
    storage.update_vehicle_location("test-vehicle-1", 37.7849, -122.4094)
    updated = storage.get_vehicle("test-vehicle-1")
    assert (updated.location_lat, updated.location_lng) == (37.7849, -122.4094)
    assert updated.status == "available"


def test_update_vehicle_location_and_status():
    storage = MemoryVehicleStorage()
    storage.create_vehicle(make_vehicle())
    storage.update_vehicle_location_and_status("test-vehicle-1", 45.5, -122.6, "charging")
    updated = storage.get_vehicle("test-vehicle-1")
    assert (updated.location_lat, updated.location_lng, updated.status) == (
        45.5,
        -122.6,
        "charging",
    )


def test_update_vehicle_status():
    storage = MemoryVehicleStorage()
    storage.create_vehicle(make_vehicle())
    storage.update_vehicle_status("test-vehicle-1", "busy", "job-123")
    updated = storage.get_vehicle("test-vehicle-1")
    assert updated.status == "busy"
    assert updated.current_job_id == "job-123"
    storage.update_vehicle_status("test-vehicle-1", "available", None)
    assert storage.get_vehicle("test-vehicle-1").current_job_id is None


def test_get_vehicles_by_region_and_status():
    storage = MemoryVehicleStorage()
    vehicles = [
        make_vehicle("v1"),
        make_vehicle("v2", status="busy", battery_level=60, battery_range_km=150.0),
        make_vehicle("v3", region="us-east-1", location_lat=40.7128, location_lng=-74.0060),
        make_vehicle("v4", battery_level=70, battery_range_km=180.0),
    ]
    for vehicle in vehicles:
        storage.create_vehicle(vehicle)
    result = storage.get_vehicles_by_region_and_status("us-west-2", "available")
    assert sorted(v.id for v in result) == ["v1", "v4"]


def test_get_all_vehicles():
    storage = MemoryVehicleStorage()
    storage.create_vehicle(make_vehicle("a"))
    storage.create_vehicle(make_vehicle("b"))
    assert [v.id for v in storage.get_all_vehicles()] == ["a", "b"]


@pytest.mark.parametrize(
    "operation",
    [
        lambda s: s.update_vehicle(make_vehicle("missing")),
        lambda s: s.update_vehicle_location("missing", 1.0, 2.0),
        lambda s: s.update_vehicle_location_and_status("missing", 1.0, 2.0, "busy"),
        lambda s: s.update_vehicle_status("missing", "busy", None),
    ],
)
def test_updates_of_unknown_vehicle_raise(operation):
    with pytest.raises(VehicleNotFoundError):
        operation(MemoryVehicleStorage())


def test_update_vehicle_replaces_record():
    storage = MemoryVehicleStorage()
    storage.create_vehicle(make_vehicle())
    storage.update_vehicle(make_vehicle(battery_level=10))
    assert storage.get_vehicle("test-vehicle-1").battery_level == 10


def test_to_dict_omits_missing_job_id():
    data = make_vehicle(last_updated=datetime(2024, 1, 1, tzinfo=timezone.utc)).to_dict()
    assert "current_job_id" not in data
    assert data["last_updated"] == "2024-01-01T00:00:00Z"
    assert data["battery_level"] == 80


def test_to_dict_zero_time():
    assert make_vehicle().to_dict()["last_updated"] == "0001-01-01T00:00:00Z"


def test_dict_round_trip():
    stamp = datetime(2024, 3, 5, 12, 30, 45, 120000, tzinfo=timezone(timedelta(hours=-7)))
    vehicle = make_vehicle(current_job_id="job-9", last_updated=stamp)
    data = vehicle.to_dict()
    assert data["last_updated"] == "2024-03-05T12:30:45.12-07:00"
    assert vehicle_from_dict(data) == vehicle


def test_from_dict_parses_nanoseconds_and_defaults():
    vehicle = vehicle_from_dict({"id": "x", "last_updated": "2024-01-01T12:30:45.123456789Z"})
    assert vehicle.last_updated == datetime(2024, 1, 1, 12, 30, 45, 123456, tzinfo=timezone.utc)
    assert vehicle.status == ""
    assert vehicle.battery_level == 0
    assert vehicle.current_job_id is None


@pytest.mark.parametrize(
    "data",
    [
        {"id": 5},
        {"battery_level": 80.5},
        {"battery_range_km": "far"},
        {"last_updated": "yesterday"},
        {"current_job_id": 12},
    ],
)
def test_from_dict_rejects_bad_types(data):
    with pytest.raises(ValueError):
        vehicle_from_dict(data)