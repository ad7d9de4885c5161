"""Charging stations and how to find the nearest one."""

from __future__ import annotations

from dataclasses import dataclass

from fleetsim.simulator.routing import haversine_distance

PORTLAND_REGION = "us-west-2"


@dataclass(frozen=True)
class ChargingStation:
    """A place where a vehicle can charge."""

    id: str
    lat: float
    lng: float


_PORTLAND_STATIONS = (
    ChargingStation("pioneer-place", 45.5188, -122.6746),
    ChargingStation("lloyd-center", 45.5311, -122.6536),
    ChargingStation("ohsu-campus", 45.4993, -122.6859),
    ChargingStation("pdx-airport", 45.5898, -122.5951),
    ChargingStation("hawthorne-whole-foods", 45.5122, -122.6208),
)

_DEFAULT_STATIONS = (
    ChargingStation("default-station-1", 37.7749, -122.4194),
    ChargingStation("default-station-2", 37.7849, -122.4094),
)


def get_charging_stations(region: str) -> list[ChargingStation]:
    """Return the charging stations serving a region."""
    if region == PORTLAND_REGION:
        return list(_PORTLAND_STATIONS)
    return list(_DEFAULT_STATIONS)


def find_nearest_charging_station(
    vehicle_lat: float, vehicle_lng: float, region: str
) -> ChargingStation:
    """Return the station in the region closest to the vehicle.

    Ties go to the station listed first. With no stations at all, an
    emergency station at the vehicle's own position is returned.
    """
    stations = get_charging_stations(region)
    if not stations:
        return ChargingStation("emergency-station", vehicle_lat, vehicle_lng)
    return min(
        stations,
        key=lambda station: haversine_distance(vehicle_lat, vehicle_lng, station.lat, station.lng),
    )