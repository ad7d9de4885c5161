"""Talking to the fleet service and streaming telemetry from a vehicle."""

from __future__ import annotations

import json
import logging
import time
from datetime import datetime, timezone
from typing import Any, Callable, Mapping, Optional

import requests

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT = 5.0
DEFAULT_MAX_RETRIES = 10
DEFAULT_BASE_DELAY = 1.0
DEFAULT_MAX_DELAY = 30.0
DEFAULT_DEADLINE = 300.0
BACKOFF_FACTOR = 1.5


class FleetRegistrationError(Exception):
    """Raised when a vehicle cannot be registered with the fleet service."""

    def __init__(self, message: str, status_code: Optional[int] = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class FleetClient:
    """Registers vehicles with the fleet service and reports their positions."""

    def __init__(self, base_url: str, timeout: float = DEFAULT_TIMEOUT) -> None:
        self.base_url = base_url
        self.timeout = timeout
        self._session = requests.Session()

    def register_vehicle(self, payload: Mapping[str, Any]) -> None:
        """Register one vehicle; the fleet service must answer 201."""
        url = f"{self.base_url}/vehicles"
        vehicle_id = payload.get("id", "")
        try:
            with self._session.post(url, json=dict(payload), timeout=self.timeout) as response:
                status = response.status_code
        except requests.RequestException as exc:
            logger.error("HTTP request failed during registration of %s (%s): %s",
                         vehicle_id, url, exc)
            raise FleetRegistrationError(str(exc)) from exc
        if status != 201:
            logger.error("Vehicle registration of %s rejected with status %d", vehicle_id, status)
            raise FleetRegistrationError(
                f"failed to register vehicle, status: {status}", status
            )
        logger.info("Vehicle %s registered with fleet service", vehicle_id)

    def register_with_retry(
        self,
        vehicle_id: str,
        payload: Mapping[str, Any],
        max_retries: int = DEFAULT_MAX_RETRIES,
        base_delay: float = DEFAULT_BASE_DELAY,
        max_delay: float = DEFAULT_MAX_DELAY,
        deadline: float = DEFAULT_DEADLINE,
        sleep: Callable[[float], None] = time.sleep,
    ) -> int:
        """Register with exponential backoff; return the attempt that succeeded.

        Delays grow by half each time up to ``max_delay``. The whole process
        gives up once ``deadline`` seconds have passed.
        """
        logger.info("Starting registration of %s (max %d attempts)", vehicle_id, max_retries)
        started = time.monotonic()
        waited = 0.0
        delay = base_delay
        last_error: Optional[Exception] = None

        for attempt in range(1, max_retries + 1):
            try:
                self.register_vehicle(payload)
            except FleetRegistrationError as exc:
                last_error = exc
                logger.warning("Registration attempt %d/%d of %s failed: %s (next delay %.2fs)",
                               attempt, max_retries, vehicle_id, exc, delay)
            else:
                logger.info("Registration of %s succeeded on attempt %d", vehicle_id, attempt)
                return attempt

            if attempt == max_retries:
                break

            elapsed = max(time.monotonic() - started, waited)
            remaining = deadline - elapsed
            if remaining <= delay:
                if remaining > 0:
                    sleep(remaining)
                logger.error("Registration of %s timed out", vehicle_id)
                raise FleetRegistrationError(
                    "registration timeout: context deadline exceeded"
                ) from last_error
            sleep(delay)
            waited += delay
            delay = min(delay * BACKOFF_FACTOR, max_delay)

        logger.error("Registration of %s failed after %d attempts: %s",
                     vehicle_id, max_retries, last_error)
        raise FleetRegistrationError(
            f"registration failed after {max_retries} attempts: {last_error}"
        ) from last_error

    def report_location(self, vehicle_id: str, lat: float, lng: float, status: str) -> bool:
        """Send a position and status update; return whether it was accepted."""
        url = f"{self.base_url}/vehicles/{vehicle_id}/location"
        body = {"lat": lat, "lng": lng, "status": status}
        try:
            with self._session.put(url, json=body, timeout=self.timeout) as response:
                code = response.status_code
        except requests.RequestException as exc:
            logger.error("Failed to report location of %s to %s: %s", vehicle_id, url, exc)
            return False
        if code != 200:
            logger.warning("Location update of %s returned status %d", vehicle_id, code)
            return False
        logger.debug("Reported location of %s: %s, %s", vehicle_id, lat, lng)
        return True


def _json_number(value: float) -> Any:
    if isinstance(value, float) and value.is_integer() and abs(value) < 1e21:
        return int(value)
    return value


class TelemetryStreamer:
    """Puts vehicle telemetry records on a Kinesis stream.

    The client is any object with a ``put_record`` method taking
    ``StreamName``, ``Data`` and ``PartitionKey`` keyword arguments.
    """

    def __init__(self, client: Any, stream_name: str) -> None:
        self.client = client
        self.stream_name = stream_name

    def send(
        self,
        vehicle_id: str,
        lat: float,
        lng: float,
        status: str,
        battery: float,
        job_id: Optional[str] = None,
    ) -> bool:
        """Send one telemetry record; return whether the stream accepted it."""
        record: dict[str, Any] = {
            "vehicle_id": vehicle_id,
            "timestamp": datetime.now(timezone.utc).strftime("%Y-%m-%dT%H:%M:%SZ"),
            "latitude": _json_number(lat),
            "longitude": _json_number(lng),
            "status": status,
            "battery": _json_number(battery),
        }
        if job_id is not None:
            record["job_id"] = job_id
        try:
            data = json.dumps(record, sort_keys=True, separators=(",", ":"),
                              allow_nan=False).encode()
        except ValueError as exc:
            logger.error("Failed to encode telemetry record for %s: %s", vehicle_id, exc)
            return False
        try:
            self.client.put_record(
                StreamName=self.stream_name, Data=data, PartitionKey=vehicle_id
            )
        except Exception as exc:
            logger.error("Failed to send telemetry of %s to Kinesis: %s", vehicle_id, exc)
            return False
        return True