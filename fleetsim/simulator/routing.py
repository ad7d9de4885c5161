"""Road routing with a straight-line fallback."""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass, field
from typing import Any, Optional

import requests

logger = logging.getLogger(__name__)

EARTH_RADIUS_KM = 6371.0
DEFAULT_OSRM_URL = "http://router.project-osrm.org"
DEFAULT_TIMEOUT = 10.0
FALLBACK_SEGMENTS = 10
FALLBACK_SPEED_MPS = 13.89  # about 50 km/h


def haversine_distance(lat1: float, lng1: float, lat2: float, lng2: float) -> float:
    """Return the great-circle distance between two points in kilometres."""
    d_lat = math.radians(lat2 - lat1)
    d_lng = math.radians(lng2 - lng1)
    a = (
        math.sin(d_lat / 2) ** 2
        + math.cos(math.radians(lat1)) * math.cos(math.radians(lat2)) * math.sin(d_lng / 2) ** 2
    )
    c = 2 * math.atan2(math.sqrt(a), math.sqrt(1 - a))
    return EARTH_RADIUS_KM * c


@dataclass(frozen=True)
class RoutePoint:
    """A coordinate on a route."""

    lat: float
    lng: float


@dataclass
class Route:
    """Waypoints of a route with its length in metres and duration in seconds."""

    points: list[RoutePoint] = field(default_factory=list)
    distance: float = 0.0
    duration: float = 0.0


def _as_number(value: Any, what: str) -> float:
    if value is None:
        return 0.0
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise ValueError(f"{what}: expected a number, got {value!r}")
    return float(value)


def _parse_osrm_route(route: Any) -> Route:
    if not isinstance(route, dict):
        raise ValueError("route must be an object")
    geometry = route.get("geometry") or {}
    if not isinstance(geometry, dict):
        raise ValueError("geometry must be an object")
    coordinates = geometry.get("coordinates") or []
    if not isinstance(coordinates, list):
        raise ValueError("coordinates must be a list")
    points = []
    for coordinate in coordinates:
        if not isinstance(coordinate, list) or len(coordinate) < 2:
            raise ValueError(f"invalid coordinate {coordinate!r}")
        # OSRM sends [lng, lat].
        points.append(
            RoutePoint(
                lat=_as_number(coordinate[1], "latitude"),
                lng=_as_number(coordinate[0], "longitude"),
            )
        )
    return Route(
        points=points,
        distance=_as_number(route.get("distance"), "distance"),
        duration=_as_number(route.get("duration"), "duration"),
    )


class RoutingService:
    """Computes driving routes from an OSRM server."""

    def __init__(self, base_url: str = DEFAULT_OSRM_URL, timeout: float = DEFAULT_TIMEOUT) -> None:
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self._session = requests.Session()

    def get_route(
        self, start_lat: float, start_lng: float, end_lat: float, end_lng: float
    ) -> Route:
        """Return a road route; fall back to a straight line if routing fails."""
        url = (
            f"{self.base_url}/route/v1/driving/"
            f"{start_lng:f},{start_lat:f};{end_lng:f},{end_lat:f}"
        )
        params = {"overview": "full", "geometries": "geojson"}
        try:
            with self._session.get(url, params=params, timeout=self.timeout) as response:
                status_code = response.status_code
                payload = response.json()
        except requests.RequestException as exc:
            logger.error("OSRM routing API failed, using straight-line fallback: %s (%s)", exc, url)
            return self.straight_line_route(start_lat, start_lng, end_lat, end_lng)
        except ValueError as exc:
            logger.error(
                "OSRM response parsing failed, using straight-line fallback: %s (status %s)",
                exc, status_code,
            )
            return self.straight_line_route(start_lat, start_lng, end_lat, end_lng)

        routes: Optional[Any] = payload.get("routes") if isinstance(payload, dict) else None
        if not isinstance(payload, dict) or (routes is not None and not isinstance(routes, list)):
            logger.error("OSRM response malformed, using straight-line fallback")
            return self.straight_line_route(start_lat, start_lng, end_lat, end_lng)
        if not routes:
            logger.error(
                "OSRM returned no routes, using straight-line fallback (code %s)",
                payload.get("code"),
            )
            return self.straight_line_route(start_lat, start_lng, end_lat, end_lng)

        try:
            route = _parse_osrm_route(routes[0])
        except ValueError as exc:
            logger.error("OSRM response parsing failed, using straight-line fallback: %s", exc)
            return self.straight_line_route(start_lat, start_lng, end_lat, end_lng)

        logger.info(
            "OSRM routing successful: distance_m=%s duration_s=%s waypoints=%d",
            route.distance, route.duration, len(route.points),
        )
        return route

    def straight_line_route(
        self, start_lat: float, start_lng: float, end_lat: float, end_lng: float
    ) -> Route:
        """Return an evenly divided straight route between two points."""
        points = []
        for step in range(FALLBACK_SEGMENTS + 1):
            ratio = step / FALLBACK_SEGMENTS
            points.append(
                RoutePoint(
                    lat=start_lat * (1 - ratio) + end_lat * ratio,
                    lng=start_lng * (1 - ratio) + end_lng * ratio,
                )
            )
        distance = haversine_distance(start_lat, start_lng, end_lat, end_lng) * 1000
        return Route(points=points, distance=distance, duration=distance / FALLBACK_SPEED_MPS)