import pytest

from fleetsim.fleet.service import (
    FleetService,
    NoVehicleAvailableError,
    calculate_distance,
)
from fleetsim.fleet.storage import (
    DuplicateVehicleError,
    MemoryVehicleStorage,
    Vehicle,
    VehicleNotFoundError,
)


def _vehicle(vehicle_id, region="us-west-2", status="available", battery=80,
             range_km=200.0, lat=37.7749, lng=-122.4194):
    return Vehicle(
        id=vehicle_id,
        region=region,
        status=status,
        battery_level=battery,
        battery_range_km=range_km,
        location_lat=lat,
        location_lng=lng,
        vehicle_type="sedan",
    )


@pytest.fixture
def storage():
    return MemoryVehicleStorage()


@pytest.fixture
def service(storage):
    return FleetService(storage)


def test_find_nearest_available_vehicle(service):
    vehicles = [
        _vehicle("v1", battery=80, range_km=200.0, lat=37.7749, lng=-122.4194),
        _vehicle("v2", battery=30, range_km=50.0, lat=37.7849, lng=-122.4094),
        _vehicle("v3", battery=90, range_km=250.0, lat=37.8049, lng=-122.4394),
        _vehicle("v4", region="us-east-1", battery=100, range_km=300.0,
                 lat=40.7128, lng=-74.0060),
    ]
    for vehicle in vehicles:
        service.register_vehicle(vehicle)

    found = service.find_nearest_available_vehicle("us-west-2", 37.7649, -122.4294, 50.0)
    assert found.id == "v1"


def test_find_nearest_no_battery_capacity(service):
    service.register_vehicle(_vehicle("v1", battery=20, range_km=50.0))
    with pytest.raises(NoVehicleAvailableError) as info:
        service.find_nearest_available_vehicle("us-west-2", 37.7649, -122.4294, 50.0)
    assert "sufficient battery" in str(info.value)


def test_find_nearest_ignores_other_regions(service):
    service.register_vehicle(_vehicle("v4", region="us-east-1", range_km=300.0,
                                      lat=40.7128, lng=-74.0060))
    with pytest.raises(NoVehicleAvailableError):
        service.find_nearest_available_vehicle("us-west-2", 40.7128, -74.0060, 1.0)


def test_find_nearest_ignores_busy_vehicles(service):
    service.register_vehicle(_vehicle("busy-one", status="busy"))
    service.register_vehicle(_vehicle("free-one", lat=37.8049, lng=-122.4394))
    found = service.find_nearest_available_vehicle("us-west-2", 37.7749, -122.4194, 1.0)
    assert found.id == "free-one"


def test_assign_and_complete_job(service, storage):
    service.register_vehicle(_vehicle("v1"))

    service.assign_job("v1", "job-123")
    updated = storage.get_vehicle("v1")
    assert updated.status == "busy"
    assert updated.current_job_id == "job-123"

    service.complete_job("v1")
    completed = storage.get_vehicle("v1")
    assert completed.status == "available"
    assert completed.current_job_id is None


def test_assign_job_unknown_vehicle(service):
    with pytest.raises(VehicleNotFoundError):
        service.assign_job("missing", "job-1")


def test_update_vehicle_location(service, storage):
    service.register_vehicle(_vehicle("v1"))
    service.update_vehicle_location("v1", 37.7849, -122.4094)
    updated = storage.get_vehicle("v1")
    assert (updated.location_lat, updated.location_lng) == (37.7849, -122.4094)


def test_update_vehicle_location_and_status(service, storage):
    service.register_vehicle(_vehicle("v1"))
    service.update_vehicle_location_and_status("v1", 45.5152, -122.6784, "charging")
    updated = storage.get_vehicle("v1")
    assert (updated.location_lat, updated.location_lng, updated.status) == (
        45.5152, -122.6784, "charging")


def test_register_duplicate_vehicle(service):
    service.register_vehicle(_vehicle("v1"))
    with pytest.raises(DuplicateVehicleError):
        service.register_vehicle(_vehicle("v1"))


def test_get_all_vehicles_sorted_by_status_then_id(service):
    for vehicle_id, status in [("c", "offline"), ("b", "busy"), ("z", "available"),
                               ("a", "busy"), ("m", "available")]:
        service.register_vehicle(_vehicle(vehicle_id, status=status))
    ordered = [vehicle.id for vehicle in service.get_all_vehicles()]
    assert ordered == ["m", "z", "a", "b", "c"]


def test_get_all_vehicles_empty(service):
    assert service.get_all_vehicles() == []


def test_calculate_distance():
    distance = calculate_distance(37.7749, -122.4194, 34.0522, -118.2437)
    assert 500 < distance < 600
    assert calculate_distance(37.7749, -122.4194, 37.7749, -122.4194) <= 0.001


def test_calculate_distance_is_symmetric():
    forward = calculate_distance(37.7749, -122.4194, 34.0522, -118.2437)
    backward = calculate_distance(34.0522, -118.2437, 37.7749, -122.4194)
    assert forward == pytest.approx(backward)