"""Vehicle storage backed by a DynamoDB table."""

from __future__ import annotations

import math
from datetime import datetime
from decimal import Decimal, InvalidOperation
from typing import Any, Callable, Mapping, Optional

from fleetsim.fleet.storage import (
    StorageError,
    Vehicle,
    VehicleNotFoundError,
    VehicleStorage,
    vehicle_from_dict,
)

_STRING_FIELDS = frozenset(
    {"id", "region", "status", "current_job_id", "last_updated", "vehicle_type"}
)
_INT_FIELDS = frozenset({"battery_level"})
_FLOAT_FIELDS = frozenset({"battery_range_km", "location_lat", "location_lng"})
_KNOWN_FIELDS = _STRING_FIELDS | _INT_FIELDS | _FLOAT_FIELDS

REGION_STATUS_INDEX = "region-status-index"


def _format_number(value: float) -> str:
    if isinstance(value, int):
        return str(value)
    if not math.isfinite(value):
        raise ValueError(f"cannot store non-finite number {value!r}")
    text = format(Decimal(repr(value)), "f")
    if "." in text:
        text = text.rstrip("0").rstrip(".")
    return text


def _encode_attribute(value: Any) -> dict[str, str]:
    if isinstance(value, str):
        return {"S": value}
    return {"N": _format_number(value)}


def marshal_vehicle(vehicle: Vehicle) -> dict[str, dict[str, str]]:
    """Return the DynamoDB item for a vehicle."""
    try:
        return {name: _encode_attribute(value) for name, value in vehicle.to_dict().items()}
    except ValueError as exc:
        raise StorageError(f"failed to marshal vehicle: {exc}") from exc


def _decode_attribute(name: str, attribute: Mapping[str, Any]) -> Any:
    if attribute.get("NULL"):
        return None
    if name in _STRING_FIELDS:
        if "S" not in attribute:
            raise ValueError(f"{name}: expected a string attribute")
        return attribute["S"]
    if "N" not in attribute:
        raise ValueError(f"{name}: expected a number attribute")
    try:
        number = Decimal(attribute["N"])
    except InvalidOperation as exc:
        raise ValueError(f"{name}: invalid number {attribute['N']!r}") from exc
    if not number.is_finite():
        raise ValueError(f"{name}: invalid number {attribute['N']!r}")
    if name in _INT_FIELDS:
        if number != number.to_integral_value():
            raise ValueError(f"{name}: expected an integer, got {attribute['N']!r}")
        return int(number)
    return float(number)


def unmarshal_vehicle(item: Mapping[str, Mapping[str, Any]]) -> Vehicle:
    """Build a vehicle from a DynamoDB item; unknown attributes are ignored."""
    try:
        data = {
            name: _decode_attribute(name, attribute)
            for name, attribute in item.items()
            if name in _KNOWN_FIELDS
        }
        return vehicle_from_dict(data)
    except ValueError as exc:
        raise StorageError(f"failed to unmarshal vehicle: {exc}") from exc


def _timestamp() -> str:
    text = datetime.now().astimezone().replace(microsecond=0).isoformat()
    return text[:-6] + "Z" if text.endswith("+00:00") else text


class DynamoDBVehicleStorage(VehicleStorage):
    """Vehicle store on a DynamoDB table keyed by ``id``.

    The client is any object with the low-level DynamoDB operations
    ``put_item``, ``get_item``, ``update_item``, ``query`` and ``scan``
    taking keyword arguments and returning response dictionaries.
    """

    def __init__(self, client: Any, table_name: str) -> None:
        self.client = client
        self.table_name = table_name

    @staticmethod
    def _call(failure: str, operation: Callable[..., Any], **params: Any) -> Mapping[str, Any]:
        try:
            return operation(**params) or {}
        except Exception as exc:
            raise StorageError(f"{failure}: {exc}") from exc

    def _key(self, vehicle_id: str) -> dict[str, dict[str, str]]:
        return {"id": {"S": vehicle_id}}

    def create_vehicle(self, vehicle: Vehicle) -> None:
        item = marshal_vehicle(vehicle)
        self._call(
            "failed to put vehicle",
            self.client.put_item,
            TableName=self.table_name,
            Item=item,
        )

    def get_vehicle(self, vehicle_id: str) -> Vehicle:
        result = self._call(
            "failed to get vehicle",
            self.client.get_item,
            TableName=self.table_name,
            Key=self._key(vehicle_id),
        )
        item = result.get("Item")
        if item is None:
            raise VehicleNotFoundError(vehicle_id)
        return unmarshal_vehicle(item)

    def update_vehicle(self, vehicle: Vehicle) -> None:
        item = marshal_vehicle(vehicle)
        self._call(
            "failed to update vehicle",
            self.client.put_item,
            TableName=self.table_name,
            Item=item,
        )

    def update_vehicle_location_and_status(
        self, vehicle_id: str, lat: float, lng: float, status: str
    ) -> None:
        self._call(
            "failed to update vehicle location and status",
            self.client.update_item,
            TableName=self.table_name,
            Key=self._key(vehicle_id),
            UpdateExpression=(
                "SET location_lat = :lat, location_lng = :lng, "
                "#status = :status, last_updated = :timestamp"
            ),
            ExpressionAttributeNames={"#status": "status"},
            ExpressionAttributeValues={
                ":lat": {"N": f"{lat:f}"},
                ":lng": {"N": f"{lng:f}"},
                ":status": {"S": status},
                ":timestamp": {"S": _timestamp()},
            },
        )

    def update_vehicle_location(self, vehicle_id: str, lat: float, lng: float) -> None:
        try:
            values = {
                ":lat": {"N": _format_number(lat)},
                ":lng": {"N": _format_number(lng)},
                ":timestamp": {"S": _timestamp()},
            }
        except ValueError as exc:
            raise StorageError(f"failed to update vehicle location: {exc}") from exc
        self._call(
            "failed to update vehicle location",
            self.client.update_item,
            TableName=self.table_name,
            Key=self._key(vehicle_id),
            UpdateExpression="SET location_lat = :lat, location_lng = :lng, last_updated = :timestamp",
            ExpressionAttributeValues=values,
        )

    def update_vehicle_status(
        self, vehicle_id: str, status: str, job_id: Optional[str]
    ) -> None:
        expression = "SET #status = :status, last_updated = :timestamp"
        values: dict[str, dict[str, str]] = {
            ":status": {"S": status},
            ":timestamp": {"S": _timestamp()},
        }
        if job_id is not None:
            expression += ", current_job_id = :jobID"
            values[":jobID"] = {"S": job_id}
        else:
            expression += " REMOVE current_job_id"
        self._call(
            "failed to update vehicle status",
            self.client.update_item,
            TableName=self.table_name,
            Key=self._key(vehicle_id),
            UpdateExpression=expression,
            ExpressionAttributeNames={"#status": "status"},
            ExpressionAttributeValues=values,
        )

    def get_vehicles_by_region_and_status(self, region: str, status: str) -> list[Vehicle]:
        result = self._call(
            "failed to query vehicles by region and status",
            self.client.query,
            TableName=self.table_name,
            IndexName=REGION_STATUS_INDEX,
            KeyConditionExpression="#region = :region AND #status = :status",
            ExpressionAttributeNames={"#region": "region", "#status": "status"},
            ExpressionAttributeValues={
                ":region": {"S": region},
                ":status": {"S": status},
            },
        )
        return [unmarshal_vehicle(item) for item in result.get("Items") or []]

    def get_all_vehicles(self) -> list[Vehicle]:
        result = self._call(
            "failed to scan vehicles",
            self.client.scan,
            TableName=self.table_name,
        )
        return [unmarshal_vehicle(item) for item in result.get("Items") or []]