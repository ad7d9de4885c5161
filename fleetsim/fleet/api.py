"""HTTP interface of the fleet service."""

from __future__ import annotations

import json
import logging
from typing import Any, Mapping, Optional

from flask import Blueprint, Flask, Response, request

from fleetsim.fleet.service import FleetService, NoVehicleAvailableError
from fleetsim.fleet.storage import StorageError, vehicle_from_dict

logger = logging.getLogger(__name__)

_SERVICE_ERRORS = (StorageError, NoVehicleAvailableError)


class _BadBody(ValueError):
    pass


def _error(message: str, status: int) -> Response:
    return Response(message + "\n", status=status, mimetype="text/plain")


def _json(payload: Any, status: int = 200) -> Response:
    return Response(json.dumps(payload) + "\n", status=status, mimetype="application/json")


def _read_object() -> Mapping[str, Any]:
    try:
        payload = json.loads(request.get_data())
    except ValueError as exc:
        raise _BadBody(str(exc)) from exc
    if payload is None:
        return {}
    if not isinstance(payload, dict):
        raise _BadBody("expected a JSON object")
    return payload


def _number(payload: Mapping[str, Any], key: str) -> float:
    value = payload.get(key)
    if value is None:
        return 0.0
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise _BadBody(f"{key}: expected a number")
    return float(value)


def _string(payload: Mapping[str, Any], key: str) -> str:
    value = payload.get(key)
    if value is None:
        return ""
    if not isinstance(value, str):
        raise _BadBody(f"{key}: expected a string")
    return value


def _parse_float(text: str) -> float:
    if text != text.strip() or "_" in text:
        raise ValueError(f"invalid number {text!r}")
    return float(text)


def create_app(fleet_service: FleetService, path_prefix: Optional[str] = None) -> Flask:
    """Build the Flask application serving the fleet API.

    Routes are mounted under ``path_prefix`` when one is given. Every
    response carries permissive CORS headers and OPTIONS requests are
    answered with 200 straight away.
    """
    app = Flask(__name__)
    routes = Blueprint("fleet", __name__, url_prefix=path_prefix or None)

    @routes.route("/health", methods=["GET"])
    def health() -> Response:
        return _json({"status": "healthy"})

    @routes.route("/vehicles", methods=["GET"])
    def get_all_vehicles() -> Response:
        try:
            vehicles = fleet_service.get_all_vehicles()
        except _SERVICE_ERRORS as exc:
            return _error(str(exc), 500)
        return _json([vehicle.to_dict() for vehicle in vehicles])

    @routes.route("/vehicles", methods=["POST"])
    def register_vehicle() -> Response:
        try:
            vehicle = vehicle_from_dict(_read_object())
        except ValueError as exc:
            logger.error("Failed to decode vehicle registration request: %s", exc)
            return _error("Invalid JSON", 400)

        logger.info(
            "Vehicle registration request received: id=%s region=%s lat=%s lng=%s",
            vehicle.id, vehicle.region, vehicle.location_lat, vehicle.location_lng,
        )
        try:
            fleet_service.register_vehicle(vehicle)
        except _SERVICE_ERRORS as exc:
            logger.error("Vehicle registration failed: id=%s error=%s", vehicle.id, exc)
            return _error(str(exc), 400)

        logger.info("Vehicle registration successful: id=%s", vehicle.id)
        return _json(vehicle.to_dict(), 201)

    @routes.route("/vehicles/<vehicle_id>/location", methods=["PUT"])
    def update_vehicle_location(vehicle_id: str) -> Response:
        try:
            payload = _read_object()
            lat = _number(payload, "lat")
            lng = _number(payload, "lng")
            status = _string(payload, "status")
        except _BadBody:
            return _error("Invalid JSON", 400)
        try:
            fleet_service.update_vehicle_location_and_status(vehicle_id, lat, lng, status)
        except _SERVICE_ERRORS as exc:
            return _error(str(exc), 400)
        return Response(status=200)

    @routes.route("/vehicles/<vehicle_id>/assign", methods=["POST"])
    def assign_job(vehicle_id: str) -> Response:
        try:
            job_id = _string(_read_object(), "job_id")
        except _BadBody:
            return _error("Invalid JSON", 400)
        try:
            fleet_service.assign_job(vehicle_id, job_id)
        except _SERVICE_ERRORS as exc:
            return _error(str(exc), 400)
        return Response(status=200)

    @routes.route("/vehicles/<vehicle_id>/complete", methods=["POST"])
    def complete_job(vehicle_id: str) -> Response:
        try:
            fleet_service.complete_job(vehicle_id)
        except _SERVICE_ERRORS as exc:
            return _error(str(exc), 400)
        return Response(status=200)

    @routes.route("/vehicles/find", methods=["GET"])
    def find_nearest_vehicle() -> Response:
        region = request.args.get("region", "")
        lat_text = request.args.get("pickup_lat", "")
        lng_text = request.args.get("pickup_lng", "")
        distance_text = request.args.get("trip_distance_km", "")

        if not (region and lat_text and lng_text and distance_text):
            return _error("Missing required parameters", 400)

        parsed = []
        for text, label in ((lat_text, "latitude"), (lng_text, "longitude"),
                            (distance_text, "trip distance")):
            try:
                parsed.append(_parse_float(text))
            except ValueError:
                return _error(f"Invalid {label}", 400)
        lat, lng, distance = parsed

        try:
            vehicle = fleet_service.find_nearest_available_vehicle(region, lat, lng, distance)
        except _SERVICE_ERRORS as exc:
            return _error(str(exc), 404)
        return _json(vehicle.to_dict())

    app.register_blueprint(routes)

    @app.before_request
    def answer_preflight() -> Optional[Response]:
        if request.method == "OPTIONS":
            return Response(status=200)
        return None

    @app.after_request
    def add_cors_headers(response: Response) -> Response:
        response.headers["Access-Control-Allow-Origin"] = "*"
        response.headers["Access-Control-Allow-Methods"] = "GET, POST, PUT, DELETE, OPTIONS"
        response.headers["Access-Control-Allow-Headers"] = "Content-Type"
        return response

    return app