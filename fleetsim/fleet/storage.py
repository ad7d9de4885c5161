"""Vehicle records and the storage backends that hold them."""

from __future__ import annotations

import re
import threading
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Any, Mapping, Optional

ZERO_TIME = datetime(1, 1, 1, tzinfo=timezone.utc)

_TIMESTAMP_RE = re.compile(
    r"^(\d{4})-(\d{2})-(\d{2})T(\d{2}):(\d{2}):(\d{2})"
    r"(?:\.(\d+))?(Z|[+-]\d{2}:\d{2})$"
)


class StorageError(Exception):
    """Raised when a storage backend cannot complete an operation."""


class VehicleNotFoundError(StorageError):
    """Raised when a vehicle id is not known to the storage."""

    def __init__(self, vehicle_id: str) -> None:
        super().__init__(f"vehicle {vehicle_id} not found")
        self.vehicle_id = vehicle_id


class DuplicateVehicleError(StorageError):
    """Raised when a vehicle with the same id is already stored."""

    def __init__(self, vehicle_id: str) -> None:
        super().__init__(f"vehicle {vehicle_id} already exists")
        self.vehicle_id = vehicle_id


def _format_timestamp(moment: datetime) -> str:
    if moment.tzinfo is None:
        moment = moment.replace(tzinfo=timezone.utc)
    text = (
        f"{moment.year:04d}-{moment.month:02d}-{moment.day:02d}"
        f"T{moment.hour:02d}:{moment.minute:02d}:{moment.second:02d}"
    )
    if moment.microsecond:
        text += "." + f"{moment.microsecond:06d}".rstrip("0")
    offset = moment.utcoffset()
    if not offset:
        return text + "Z"
    minutes = int(offset.total_seconds() // 60)
    sign = "+" if minutes >= 0 else "-"
    minutes = abs(minutes)
    return f"{text}{sign}{minutes // 60:02d}:{minutes % 60:02d}"


def _parse_timestamp(text: str) -> datetime:
    match = _TIMESTAMP_RE.match(text)
    if match is None:
        raise ValueError(f"invalid timestamp {text!r}")
    year, month, day, hour, minute, second, fraction, zone = match.groups()
    microsecond = int(fraction[:6].ljust(6, "0")) if fraction else 0
    if zone == "Z":
        tz = timezone.utc
    else:
        sign = -1 if zone[0] == "-" else 1
        delta = timedelta(hours=int(zone[1:3]), minutes=int(zone[4:6]))
        tz = timezone(sign * delta)
    return datetime(
        int(year), int(month), int(day),
        int(hour), int(minute), int(second), microsecond, tzinfo=tz,
    )


@dataclass
class Vehicle:
    """A vehicle in the fleet."""

    id: str = ""
    region: str = ""
    status: str = ""
    battery_level: int = 0
    battery_range_km: float = 0.0
    location_lat: float = 0.0
    location_lng: float = 0.0
    current_job_id: Optional[str] = None
    last_updated: datetime = field(default=ZERO_TIME)
    vehicle_type: str = ""

    def to_dict(self) -> dict[str, Any]:
        """Return the JSON form of the vehicle; a missing job id is left out."""
        data: dict[str, Any] = {
            "id": self.id,
            "region": self.region,
            "status": self.status,
            "battery_level": self.battery_level,
            "battery_range_km": self.battery_range_km,
            "location_lat": self.location_lat,
            "location_lng": self.location_lng,
        }
        if self.current_job_id is not None:
            data["current_job_id"] = self.current_job_id
        data["last_updated"] = _format_timestamp(self.last_updated)
        data["vehicle_type"] = self.vehicle_type
        return data


def _as_str(data: Mapping[str, Any], key: str) -> str:
    value = data.get(key)
    if value is None:
        return ""
    if not isinstance(value, str):
        raise ValueError(f"{key}: expected a string, got {value!r}")
    return value


def _as_float(data: Mapping[str, Any], key: str) -> float:
    value = data.get(key)
    if value is None:
        return 0.0
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise ValueError(f"{key}: expected a number, got {value!r}")
    return float(value)


def _as_int(data: Mapping[str, Any], key: str) -> int:
    value = data.get(key)
    if value is None:
        return 0
    if isinstance(value, bool):
        raise ValueError(f"{key}: expected an integer, got {value!r}")
    if isinstance(value, int):
        return value
    if isinstance(value, float) and value.is_integer():
        return int(value)
    raise ValueError(f"{key}: expected an integer, got {value!r}")


def vehicle_from_dict(data: Mapping[str, Any]) -> Vehicle:
    """Build a vehicle from its JSON form; absent fields take zero values."""
    if not isinstance(data, Mapping):
        raise ValueError("vehicle data must be an object")
    job_id = data.get("current_job_id")
    if job_id is not None and not isinstance(job_id, str):
        raise ValueError(f"current_job_id: expected a string, got {job_id!r}")
    stamp = data.get("last_updated")
    if stamp is None:
        last_updated = ZERO_TIME
    elif isinstance(stamp, str):
        last_updated = _parse_timestamp(stamp)
    else:
        raise ValueError(f"last_updated: expected a timestamp, got {stamp!r}")
    return Vehicle(
        id=_as_str(data, "id"),
        region=_as_str(data, "region"),
        status=_as_str(data, "status"),
        battery_level=_as_int(data, "battery_level"),
        battery_range_km=_as_float(data, "battery_range_km"),
        location_lat=_as_float(data, "location_lat"),
        location_lng=_as_float(data, "location_lng"),
        current_job_id=job_id,
        last_updated=last_updated,
        vehicle_type=_as_str(data, "vehicle_type"),
    )


class VehicleStorage(ABC):
    """Operations every vehicle store provides."""

    @abstractmethod
    def create_vehicle(self, vehicle: Vehicle) -> None:
        """Add a new vehicle to the fleet."""

    @abstractmethod
    def get_vehicle(self, vehicle_id: str) -> Vehicle:
        """Return the vehicle with this id."""

    @abstractmethod
    def update_vehicle(self, vehicle: Vehicle) -> None:
        """Replace a stored vehicle."""

    @abstractmethod
    def get_vehicles_by_region_and_status(self, region: str, status: str) -> list[Vehicle]:
        """Return the vehicles in a region with a given status."""

    @abstractmethod
    def get_all_vehicles(self) -> list[Vehicle]:
        """Return every stored vehicle."""

    @abstractmethod
    def update_vehicle_location_and_status(
        self, vehicle_id: str, lat: float, lng: float, status: str
    ) -> None:
        """Set location, status and timestamp of a vehicle."""

    @abstractmethod
    def update_vehicle_location(self, vehicle_id: str, lat: float, lng: float) -> None:
        """Set location and timestamp of a vehicle."""

    @abstractmethod
    def update_vehicle_status(
        self, vehicle_id: str, status: str, job_id: Optional[str]
    ) -> None:
        """Set the status of a vehicle and set or clear its job id."""


def _now() -> datetime:
    return datetime.now(timezone.utc)


class MemoryVehicleStorage(VehicleStorage):
    """Thread-safe vehicle store kept in a dictionary."""

    def __init__(self) -> None:
        self._vehicles: dict[str, Vehicle] = {}
        self._lock = threading.RLock()

    def _require(self, vehicle_id: str) -> Vehicle:
        try:
            return self._vehicles[vehicle_id]
        except KeyError:
            raise VehicleNotFoundError(vehicle_id) from None

    def create_vehicle(self, vehicle: Vehicle) -> None:
        with self._lock:
            if vehicle.id in self._vehicles:
                raise DuplicateVehicleError(vehicle.id)
            vehicle.last_updated = _now()
            self._vehicles[vehicle.id] = vehicle

    def get_vehicle(self, vehicle_id: str) -> Vehicle:
        with self._lock:
            return self._require(vehicle_id)

    def update_vehicle(self, vehicle: Vehicle) -> None:
        with self._lock:
            self._require(vehicle.id)
            vehicle.last_updated = _now()
            self._vehicles[vehicle.id] = vehicle

    def get_vehicles_by_region_and_status(self, region: str, status: str) -> list[Vehicle]:
        with self._lock:
            return [
                vehicle
                for vehicle in self._vehicles.values()
                if vehicle.region == region and vehicle.status == status
            ]

    def get_all_vehicles(self) -> list[Vehicle]:
        with self._lock:
            return list(self._vehicles.values())

    def update_vehicle_location_and_status(
        self, vehicle_id: str, lat: float, lng: float, status: str
    ) -> None:
        with self._lock:
            vehicle = self._require(vehicle_id)
            vehicle.location_lat = lat
            vehicle.location_lng = lng
            vehicle.status = status
            vehicle.last_updated = _now()

    def update_vehicle_location(self, vehicle_id: str, lat: float, lng: float) -> None:
        with self._lock:
            vehicle = self._require(vehicle_id)
            vehicle.location_lat = lat
            vehicle.location_lng = lng
            vehicle.last_updated = _now()

    def update_vehicle_status(
        self, vehicle_id: str, status: str, job_id: Optional[str]
    ) -> None:
        with self._lock:
            vehicle = self._require(vehicle_id)
            vehicle.status = status
            vehicle.current_job_id = job_id
            vehicle.last_updated = _now()