"""Client for the job service that hands out rides and deliveries."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Mapping, Optional

import requests

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT = 10.0


class JobServiceError(Exception):
    """Raised when the job service cannot be reached or rejects a request."""

    def __init__(self, message: str, status_code: Optional[int] = None) -> None:
        super().__init__(message)
        self.status_code = status_code


@dataclass
class DeliveryDetails:
    """Extra information carried by delivery jobs."""

    restaurant_name: str = ""
    items: list[str] = field(default_factory=list)
    instructions: str = ""


@dataclass
class Job:
    """A ride or delivery job as the job service describes it."""

    id: str = ""
    job_type: str = ""
    status: str = ""
    assigned_vehicle_id: Optional[str] = None
    pickup_lat: float = 0.0
    pickup_lng: float = 0.0
    destination_lat: float = 0.0
    destination_lng: float = 0.0
    estimated_distance_km: float = 0.0
    customer_id: str = ""
    region: str = ""
    delivery_details: Optional[DeliveryDetails] = None


def _text(data: Mapping[str, Any], key: str) -> str:
    value = data.get(key)
    if value is None:
        return ""
    if not isinstance(value, str):
        raise ValueError(f"{key}: expected a string, got {value!r}")
    return value


def _number(data: Mapping[str, Any], key: str) -> float:
    value = data.get(key)
    if value is None:
        return 0.0
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise ValueError(f"{key}: expected a number, got {value!r}")
    return float(value)


def _delivery_from_dict(data: Any) -> Optional[DeliveryDetails]:
    if data is None:
        return None
    if not isinstance(data, Mapping):
        raise ValueError("delivery_details: expected an object")
    items = data.get("items")
    if items is None:
        items = []
    if not isinstance(items, list) or not all(isinstance(item, str) for item in items):
        raise ValueError("delivery_details.items: expected a list of strings")
    return DeliveryDetails(
        restaurant_name=_text(data, "restaurant_name"),
        items=list(items),
        instructions=_text(data, "instructions"),
    )


def job_from_dict(data: Mapping[str, Any]) -> Job:
    """Build a job from its JSON form; absent fields take zero values."""
    if not isinstance(data, Mapping):
        raise ValueError("job data must be an object")
    assigned = data.get("assigned_vehicle_id")
    if assigned is not None and not isinstance(assigned, str):
        raise ValueError(f"assigned_vehicle_id: expected a string, got {assigned!r}")
    return Job(
        id=_text(data, "id"),
        job_type=_text(data, "job_type"),
        status=_text(data, "status"),
        assigned_vehicle_id=assigned,
        pickup_lat=_number(data, "pickup_lat"),
        pickup_lng=_number(data, "pickup_lng"),
        destination_lat=_number(data, "destination_lat"),
        destination_lng=_number(data, "destination_lng"),
        estimated_distance_km=_number(data, "estimated_distance_km"),
        customer_id=_text(data, "customer_id"),
        region=_text(data, "region"),
        delivery_details=_delivery_from_dict(data.get("delivery_details")),
    )


class JobClient:
    """Talks to the job service over HTTP."""

    def __init__(self, base_url: str, timeout: float = DEFAULT_TIMEOUT) -> None:
        self.base_url = base_url
        self.timeout = timeout
        self._session = requests.Session()

    def _request(self, method: str, path: str, **kwargs: Any) -> requests.Response:
        try:
            return self._session.request(
                method, f"{self.base_url}{path}", timeout=self.timeout, **kwargs
            )
        except requests.RequestException as exc:
            raise JobServiceError(f"job service request failed: {exc}") from exc

    @staticmethod
    def _decode(response: requests.Response) -> Any:
        try:
            return response.json()
        except ValueError as exc:
            raise JobServiceError(f"invalid response from job service: {exc}") from exc

    def get_assigned_jobs(self, vehicle_id: str) -> list[Job]:
        """Return the jobs assigned to a vehicle, whatever their status."""
        with self._request("GET", "/jobs") as response:
            if response.status_code != 200:
                raise JobServiceError(
                    f"job service returned status {response.status_code}",
                    response.status_code,
                )
            payload = self._decode(response)
        if payload is None:
            return []
        if not isinstance(payload, list):
            raise JobServiceError("invalid response from job service: expected a list")
        try:
            jobs = [job_from_dict(entry) for entry in payload if entry is not None]
        except ValueError as exc:
            raise JobServiceError(f"invalid response from job service: {exc}") from exc
        return [job for job in jobs if job.assigned_vehicle_id == vehicle_id]

    def complete_job(self, job_id: str) -> None:
        """Tell the job service that a job is done."""
        with self._request("POST", f"/jobs/{job_id}/complete") as response:
            if response.status_code != 200:
                raise JobServiceError(
                    f"failed to complete job, status: {response.status_code}",
                    response.status_code,
                )

    def create_test_ride_job(
        self,
        customer_id: str,
        region: str,
        pickup_lat: float,
        pickup_lng: float,
        dest_lat: float,
        dest_lng: float,
    ) -> Job:
        """Create a ride job for testing and demos and return it."""
        body = {
            "job_type": "ride",
            "customer_id": customer_id,
            "region": region,
            "pickup_lat": pickup_lat,
            "pickup_lng": pickup_lng,
            "destination_lat": dest_lat,
            "destination_lng": dest_lng,
        }
        with self._request("POST", "/jobs", json=body) as response:
            if response.status_code != 201:
                raise JobServiceError(
                    f"failed to create job, status: {response.status_code}",
                    response.status_code,
                )
            payload = self._decode(response)
        if payload is None:
            payload = {}
        try:
            return job_from_dict(payload)
        except ValueError as exc:
            raise JobServiceError(f"invalid response from job service: {exc}") from exc