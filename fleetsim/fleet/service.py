"""Fleet operations on top of a vehicle store."""

from __future__ import annotations

import math
from typing import Optional

from fleetsim.fleet.storage import Vehicle, VehicleStorage

EARTH_RADIUS_KM = 6371.0
SAFETY_FACTOR = 1.2

_STATUS_ORDER = {"available": 0, "busy": 1, "offline": 2}


class NoVehicleAvailableError(LookupError):
    """Raised when no available vehicle can make the requested trip."""

    def __init__(self) -> None:
        super().__init__("no available vehicle found with sufficient battery for trip")


def calculate_distance(lat1: float, lng1: float, lat2: float, lng2: float) -> float:
    """Return the great-circle distance between two points in kilometres."""
    lat1_rad = math.radians(lat1)
    lng1_rad = math.radians(lng1)
    lat2_rad = math.radians(lat2)
    lng2_rad = math.radians(lng2)

    dlat = lat2_rad - lat1_rad
    dlng = lng2_rad - lng1_rad

    a = (
        math.sin(dlat / 2) ** 2
        + math.cos(lat1_rad) * math.cos(lat2_rad) * math.sin(dlng / 2) ** 2
    )
    c = 2 * math.atan2(math.sqrt(a), math.sqrt(1 - a))
    return EARTH_RADIUS_KM * c


class FleetService:
    """Registers vehicles, tracks their state and matches them to trips."""

    def __init__(self, storage: VehicleStorage) -> None:
        self.storage = storage

    def register_vehicle(self, vehicle: Vehicle) -> None:
        """Add a new vehicle to the fleet."""
        self.storage.create_vehicle(vehicle)

    def update_vehicle_location_and_status(
        self, vehicle_id: str, lat: float, lng: float, status: str
    ) -> None:
        """Record a vehicle's new position and status."""
        self.storage.update_vehicle_location_and_status(vehicle_id, lat, lng, status)

    def update_vehicle_location(self, vehicle_id: str, lat: float, lng: float) -> None:
        """Record a vehicle's new position."""
        self.storage.update_vehicle_location(vehicle_id, lat, lng)

    def assign_job(self, vehicle_id: str, job_id: str) -> None:
        """Mark a vehicle busy with the given job."""
        self.storage.update_vehicle_status(vehicle_id, "busy", job_id)

    def complete_job(self, vehicle_id: str) -> None:
        """Mark a vehicle available again and clear its job."""
        self.storage.update_vehicle_status(vehicle_id, "available", None)

    def find_nearest_available_vehicle(
        self,
        region: str,
        pickup_lat: float,
        pickup_lng: float,
        trip_distance_km: float,
    ) -> Vehicle:
        """Return the closest available vehicle with range for pickup plus trip.

        The range must cover the distance to the pickup and the trip itself
        with a 20% safety margin.
        """
        best: Optional[Vehicle] = None
        min_distance = math.inf
        for vehicle in self.storage.get_vehicles_by_region_and_status(region, "available"):
            to_pickup = calculate_distance(
                vehicle.location_lat, vehicle.location_lng, pickup_lat, pickup_lng
            )
            needed = (to_pickup + trip_distance_km) * SAFETY_FACTOR
            if vehicle.battery_range_km < needed:
                continue
            if to_pickup < min_distance:
                min_distance = to_pickup
                best = vehicle
        if best is None:
            raise NoVehicleAvailableError()
        return best

    def get_all_vehicles(self) -> list[Vehicle]:
        """Return every vehicle, ordered by status (available, busy, offline) then id."""
        return sorted(
            self.storage.get_all_vehicles(),
            key=lambda vehicle: (_STATUS_ORDER.get(vehicle.status, 0), vehicle.id),
        )