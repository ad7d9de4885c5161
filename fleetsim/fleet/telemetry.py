"""Reading vehicle telemetry records from a Kinesis stream."""

from __future__ import annotations

import json
import logging
import threading
from dataclasses import dataclass
from typing import Any, Mapping, Optional, Union

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class VehicleTelemetry:
    """One telemetry sample sent by a vehicle."""

    vehicle_id: str = ""
    timestamp: str = ""
    latitude: float = 0.0
    longitude: float = 0.0
    status: str = ""
    battery: float = 0.0
    job_id: Optional[str] = None


def _text(payload: Mapping[str, Any], key: str) -> str:
    value = payload.get(key)
    if value is None:
        return ""
    if not isinstance(value, str):
        raise ValueError(f"{key}: expected a string, got {value!r}")
    return value


def _number(payload: Mapping[str, Any], key: str) -> float:
    value = payload.get(key)
    if value is None:
        return 0.0
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise ValueError(f"{key}: expected a number, got {value!r}")
    return float(value)


def parse_telemetry(data: Union[bytes, str]) -> VehicleTelemetry:
    """Decode a JSON telemetry record; absent fields take zero values."""
    try:
        payload = json.loads(data)
    except ValueError as exc:
        raise ValueError(f"invalid telemetry record: {exc}") from exc
    if payload is None:
        payload = {}
    if not isinstance(payload, dict):
        raise ValueError("telemetry record must be a JSON object")
    job_id = payload.get("job_id")
    if job_id is not None and not isinstance(job_id, str):
        raise ValueError(f"job_id: expected a string, got {job_id!r}")
    return VehicleTelemetry(
        vehicle_id=_text(payload, "vehicle_id"),
        timestamp=_text(payload, "timestamp"),
        latitude=_number(payload, "latitude"),
        longitude=_number(payload, "longitude"),
        status=_text(payload, "status"),
        battery=_number(payload, "battery"),
        job_id=job_id,
    )


class TelemetryConsumer:
    """Polls every shard of a stream and decodes the telemetry it carries.

    The client is any object offering the low-level Kinesis operations
    ``describe_stream``, ``get_shard_iterator`` and ``get_records`` with
    keyword arguments and dictionary responses. Records feed analytics only;
    the fleet's primary data store is not changed.
    """

    poll_interval = 1.0

    def __init__(self, client: Any, stream_name: str, fleet_service: Any) -> None:
        self.client = client
        self.stream_name = stream_name
        self.fleet_service = fleet_service
        self.records_processed = 0
        self._lock = threading.Lock()

    def start(self, stop_event: Optional[threading.Event] = None) -> list[threading.Thread]:
        """Start one polling thread per shard and return the threads."""
        if stop_event is None:
            stop_event = threading.Event()
        logger.info("Starting Kinesis consumer for stream %s", self.stream_name)
        try:
            description = self.client.describe_stream(StreamName=self.stream_name)
        except Exception as exc:
            logger.error("Failed to describe Kinesis stream: %s", exc)
            return []

        shards = (description or {}).get("StreamDescription", {}).get("Shards") or []
        threads = []
        for shard in shards:
            thread = threading.Thread(
                target=self.process_shard,
                args=(shard["ShardId"], stop_event),
                name=f"telemetry-{shard['ShardId']}",
                daemon=True,
            )
            thread.start()
            threads.append(thread)
        return threads

    def process_shard(self, shard_id: str, stop_event: threading.Event) -> None:
        """Read records from one shard until stopped or the shard closes."""
        logger.info("Processing shard %s", shard_id)
        try:
            response = self.client.get_shard_iterator(
                StreamName=self.stream_name,
                ShardId=shard_id,
                ShardIteratorType="LATEST",
            )
        except Exception as exc:
            logger.error("Failed to get shard iterator for %s: %s", shard_id, exc)
            return

        iterator = (response or {}).get("ShardIterator")
        while not stop_event.is_set():
            if iterator is None:
                logger.warning("Shard iterator is nil, stopping shard %s", shard_id)
                return
            try:
                response = self.client.get_records(ShardIterator=iterator) or {}
            except Exception as exc:
                logger.error("Failed to get records from shard %s: %s", shard_id, exc)
                stop_event.wait(self.poll_interval)
                continue

            for record in response.get("Records") or []:
                self.process_record(record)

            iterator = response.get("NextShardIterator")
            stop_event.wait(self.poll_interval)
        logger.info("Stopping shard processing for %s", shard_id)

    def process_record(self, record: Any) -> Optional[VehicleTelemetry]:
        """Decode one record; return the telemetry, or None if it is malformed."""
        data = record.get("Data", b"") if isinstance(record, Mapping) else record
        try:
            telemetry = parse_telemetry(data)
        except (ValueError, TypeError) as exc:
            logger.error("Failed to unmarshal telemetry record: %s", exc)
            return None
        with self._lock:
            self.records_processed += 1
        logger.debug(
            "Processing vehicle telemetry: vehicle_id=%s lat=%s lng=%s status=%s battery=%s",
            telemetry.vehicle_id, telemetry.latitude, telemetry.longitude,
            telemetry.status, telemetry.battery,
        )
        return telemetry