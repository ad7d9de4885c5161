"""Command that runs the fleet service."""

from __future__ import annotations

import argparse
import json
import logging
import os
from typing import Any, Mapping, Optional, Sequence

from fleetsim.fleet.api import create_app
from fleetsim.fleet.dynamodb import DynamoDBVehicleStorage
from fleetsim.fleet.service import FleetService
from fleetsim.fleet.storage import MemoryVehicleStorage, VehicleStorage

logger = logging.getLogger(__name__)

DEFAULT_PORT = "8080"


class _JsonFormatter(logging.Formatter):
    def format(self, record: logging.LogRecord) -> str:
        entry = {
            "time": self.formatTime(record),
            "level": record.levelname,
            "msg": record.getMessage(),
        }
        if record.exc_info:
            entry["error"] = self.formatException(record.exc_info)
        return json.dumps(entry)


def _configure_logging() -> None:
    handler = logging.StreamHandler()
    handler.setFormatter(_JsonFormatter())
    logging.basicConfig(level=logging.INFO, handlers=[handler])


def build_storage(
    env: Optional[Mapping[str, str]] = None, dynamodb_client: Any = None
) -> VehicleStorage:
    """Choose the vehicle store from the environment.

    ``STORAGE_TYPE=dynamodb`` selects the DynamoDB table named by
    ``DYNAMODB_VEHICLES_TABLE``, which then needs ``dynamodb_client``;
    anything else selects in-memory storage.
    """
    if env is None:
        env = os.environ
    if env.get("STORAGE_TYPE") == "dynamodb":
        table_name = env.get("DYNAMODB_VEHICLES_TABLE", "")
        if not table_name:
            raise ValueError("DYNAMODB_VEHICLES_TABLE environment variable not set")
        if dynamodb_client is None:
            raise ValueError("DynamoDB storage requires a DynamoDB client")
        logger.info("Using DynamoDB storage, table %s", table_name)
        return DynamoDBVehicleStorage(dynamodb_client, table_name)
    logger.info("Using in-memory storage")
    return MemoryVehicleStorage()


def main(argv: Optional[Sequence[str]] = None) -> int:
    """Run the fleet HTTP service; return the process exit status."""
    parser = argparse.ArgumentParser(
        prog="fleet-service",
        description="Run the fleet management HTTP service. "
        "Configured through STORAGE_TYPE, DYNAMODB_VEHICLES_TABLE, "
        "PATH_PREFIX and PORT.",
    )
    parser.parse_args(argv)
    _configure_logging()

    env = os.environ
    try:
        storage = build_storage(env)
    except ValueError as exc:
        logger.error("%s", exc)
        return 1

    service = FleetService(storage)

    stream_name = env.get("KINESIS_VEHICLE_TELEMETRY_STREAM", "")
    if stream_name:
        logger.warning(
            "Telemetry stream %s configured but no Kinesis client is available; "
            "consumer not started",
            stream_name,
        )

    app = create_app(service, env.get("PATH_PREFIX", ""))

    port_text = env.get("PORT") or DEFAULT_PORT
    try:
        port = int(port_text)
    except ValueError:
        logger.error("Fleet Service failed to start: invalid port %r", port_text)
        return 1

    logger.info("Fleet Service starting on port %s", port)
    try:
        app.run(host="0.0.0.0", port=port)
    except OSError as exc:
        logger.error("Fleet Service failed to start: %s", exc)
        return 1
    return 0