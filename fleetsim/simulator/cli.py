"""Command that starts a group of simulated vehicles."""

from __future__ import annotations

import argparse
import json
import logging
import os
import re
import signal
import sys
import threading
import time
from datetime import datetime, timezone
from typing import Any, Mapping, Optional, Sequence

from fleetsim.simulator.fleet_client import FleetRegistrationError
from fleetsim.simulator.spawn import random_spawn_location
from fleetsim.simulator.vehicle import SimulatedVehicle

logger = logging.getLogger(__name__)

DEFAULT_FLEET_SERVICE_URL = "http://localhost:8080"
DEFAULT_JOB_SERVICE_URL = "http://localhost:8081"
DEFAULT_REGION = "us-west-2"
DEFAULT_VEHICLE_COUNT = 1
DEFAULT_START_LAT = 37.7749
DEFAULT_START_LNG = -122.4194
STARTUP_WAIT_SECONDS = 45
STAGGER_SECONDS = 0.1

_INT_PATTERN = re.compile(r"[+-]?[0-9]+")


def env_str(env: Mapping[str, str], key: str, default: str) -> str:
    """Return the variable's value, or ``default`` when it is unset or empty."""
    value = env.get(key, "")
    return value if value else default


def env_int(env: Mapping[str, str], key: str, default: int) -> int:
    """Return the variable as a decimal integer, or ``default`` if absent or invalid."""
    value = env.get(key, "")
    if value and _INT_PATTERN.fullmatch(value):
        return int(value)
    return default


def env_float(env: Mapping[str, str], key: str, default: float) -> float:
    """Return the variable as a float, or ``default`` if absent or invalid."""
    value = env.get(key, "")
    if value and value == value.strip() and "_" not in value:
        try:
            return float(value)
        except ValueError:
            pass
    return default


class _JsonFormatter(logging.Formatter):
    """Formats each record as one JSON object per line."""

    def format(self, record: logging.LogRecord) -> str:
        entry: dict[str, Any] = {
            "time": datetime.fromtimestamp(record.created, timezone.utc).isoformat(),
            "level": record.levelname,
            "msg": record.getMessage(),
        }
        fields = getattr(record, "fields", None)
        if isinstance(fields, Mapping):
            entry.update(fields)
        if record.exc_info:
            entry["error"] = self.formatException(record.exc_info)
        return json.dumps(entry, default=str)


def _log(level: int, message: str, **fields: Any) -> None:
    logger.log(level, message, extra={"fields": fields})


def main(argv: Optional[Sequence[str]] = None) -> int:
    """Start the configured number of vehicles and run until interrupted."""
    parser = argparse.ArgumentParser(
        prog="car-simulator",
        description="Run simulated vehicles against the fleet and job services. "
        "Configuration is read from the environment.",
    )
    parser.parse_args(argv)

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(_JsonFormatter())
    root = logging.getLogger()
    previous_level = root.level
    root.addHandler(handler)
    root.setLevel(logging.INFO)

    vehicles: list[SimulatedVehicle] = []
    try:
        env = os.environ
        fleet_service_url = env_str(env, "FLEET_SERVICE_URL", DEFAULT_FLEET_SERVICE_URL)
        job_service_url = env_str(env, "JOB_SERVICE_URL", DEFAULT_JOB_SERVICE_URL)
        region = env_str(env, "REGION", DEFAULT_REGION)
        vehicle_count = env_int(env, "VEHICLE_COUNT", DEFAULT_VEHICLE_COUNT)
        start_lat = env_float(env, "START_LAT", DEFAULT_START_LAT)
        start_lng = env_float(env, "START_LNG", DEFAULT_START_LNG)

        _log(
            logging.INFO,
            "Starting vehicle simulators",
            vehicle_count=vehicle_count,
            region=region,
            fleet_service_url=fleet_service_url,
            job_service_url=job_service_url,
            start_lat=start_lat,
            start_lng=start_lng,
        )
        if env.get("KINESIS_VEHICLE_TELEMETRY_STREAM"):
            _log(
                logging.WARNING,
                "Telemetry streaming requested but no stream client is configured",
                stream=env["KINESIS_VEHICLE_TELEMETRY_STREAM"],
            )

        _log(
            logging.INFO,
            "Waiting for fleet service to initialize",
            wait_seconds=STARTUP_WAIT_SECONDS,
        )
        time.sleep(STARTUP_WAIT_SECONDS)

        for number in range(1, vehicle_count + 1):
            vehicle_id = f"sim-vehicle-{number}"
            spawn = random_spawn_location()
            vehicle = SimulatedVehicle(
                vehicle_id,
                region,
                fleet_service_url,
                job_service_url,
                spawn.lat,
                spawn.lng,
            )
            try:
                vehicle.start()
            except FleetRegistrationError as exc:
                _log(logging.ERROR, "Failed to start vehicle", vehicle_id=vehicle_id, error=str(exc))
                continue

            vehicles.append(vehicle)
            _log(
                logging.INFO,
                "Started vehicle",
                vehicle_id=vehicle_id,
                spawn_location=spawn.name,
                lat=spawn.lat,
                lng=spawn.lng,
            )
            # Stagger starts so the fleet service is not flooded.
            time.sleep(STAGGER_SECONDS)

        _log(
            logging.INFO,
            "Vehicle startup complete",
            started_count=len(vehicles),
            requested_count=vehicle_count,
        )

        shutdown = threading.Event()

        def request_shutdown(signum: int, frame: Any) -> None:
            shutdown.set()

        previous_handlers = {
            signum: signal.signal(signum, request_shutdown)
            for signum in (signal.SIGINT, signal.SIGTERM)
        }
        try:
            _log(logging.INFO, "Car simulators running, waiting for shutdown signal")
            while not shutdown.wait(1.0):
                pass
        finally:
            for signum, previous in previous_handlers.items():
                if previous is not None:
                    signal.signal(signum, previous)

        _log(logging.INFO, "Shutting down car simulators")
        for vehicle in vehicles:
            vehicle.stop()
        return 0
    finally:
        root.removeHandler(handler)
        root.setLevel(previous_level)


if __name__ == "__main__":
    sys.exit(main())