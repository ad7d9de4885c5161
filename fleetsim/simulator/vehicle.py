"""A simulated autonomous vehicle that drives, charges and carries out jobs."""

from __future__ import annotations

import logging
import math
import os
import random
import threading
from enum import Enum
from typing import Any, Mapping, Optional

from fleetsim.simulator.charging import find_nearest_charging_station
from fleetsim.simulator.fleet_client import (
    FleetClient,
    FleetRegistrationError,
    TelemetryStreamer,
)
from fleetsim.simulator.jobs import Job, JobClient, JobServiceError
from fleetsim.simulator.routing import Route, RoutingService, haversine_distance

logger = logging.getLogger(__name__)

TICK_INTERVAL = 2.0
BATTERY_DRAIN_RATE = 4.0  # km per battery percent
DEFAULT_SPEED = 0.00035  # degrees per tick, about 35 km/h in the city
LOW_BATTERY_THRESHOLD = 30.0
CRITICAL_BATTERY_THRESHOLD = 15.0
FULL_CHARGE_THRESHOLD = 95.0
CHARGE_STEP = 2.0
ROADSIDE_CHARGE = 20.0
DEPLETION_CHARGE = 5.0
ARRIVAL_THRESHOLD = 0.001  # degrees, about 100 m
IDLE_MOVE_CHANCE = 0.1
IDLE_RADIUS = 0.01


class VehicleStatus(str, Enum):
    """Operating state reported to the fleet service."""

    AVAILABLE = "available"
    BUSY = "busy"
    CHARGING = "charging"
    MAINTENANCE = "maintenance"


class JobPhase(str, Enum):
    """What the vehicle is currently working towards."""

    IDLE = "idle"
    PICKUP = "pickup"
    DELIVERY = "delivery"
    GOING_TO_CHARGE = "going_to_charge"
    CHARGING = "charging"
    STRANDED = "stranded"


def movement_speed(env: Optional[Mapping[str, str]] = None) -> float:
    """Return the step size per tick, taken from ``DEMO_SPEED`` when valid."""
    if env is None:
        env = os.environ
    text = env.get("DEMO_SPEED", "")
    if text and text == text.strip() and "_" not in text:
        try:
            return float(text)
        except ValueError:
            pass
    return DEFAULT_SPEED


def _plain_number(value: float) -> Any:
    if isinstance(value, float) and value.is_integer() and abs(value) < 1e21:
        return int(value)
    return value


class SimulatedVehicle:
    """One vehicle of the simulated fleet.

    Every tick the vehicle looks for assigned jobs, acts according to its
    status, reports its position to the fleet service and heads for a
    charger when its battery runs low.
    """

    tick_interval = TICK_INTERVAL

    def __init__(
        self,
        vehicle_id: str,
        region: str,
        fleet_service_url: str,
        job_service_url: str,
        start_lat: float,
        start_lng: float,
        *,
        job_client: Optional[JobClient] = None,
        routing_service: Optional[RoutingService] = None,
        fleet_client: Optional[FleetClient] = None,
        streamer: Optional[TelemetryStreamer] = None,
        rng: Optional[random.Random] = None,
    ) -> None:
        self.rng = rng if rng is not None else random.Random()
        battery = float(self.rng.randrange(40) + 60)

        self.id = vehicle_id
        self.region = region
        self.status = VehicleStatus.AVAILABLE
        self.battery_drain_rate = BATTERY_DRAIN_RATE
        self.battery_level = battery
        self.battery_range_km = battery * self.battery_drain_rate
        self.location_lat = start_lat
        self.location_lng = start_lng
        self.current_job_id: Optional[str] = None
        self.vehicle_type = "sedan"

        self.fleet_service_url = fleet_service_url
        self.job_service_url = job_service_url
        self.job_client = job_client if job_client is not None else JobClient(job_service_url)
        self.routing_service = routing_service if routing_service is not None else RoutingService()
        self.fleet_client = (
            fleet_client if fleet_client is not None else FleetClient(fleet_service_url)
        )
        self.streamer = streamer

        self.target_lat = 0.0
        self.target_lng = 0.0
        self.is_moving = False
        self.current_job: Optional[Job] = None
        self.job_phase = JobPhase.IDLE
        self.current_route: Optional[Route] = None
        self.route_index = 0

        self._stop_event = threading.Event()
        self._thread: Optional[threading.Thread] = None

    def to_registration_payload(self) -> dict[str, Any]:
        """Return the JSON body used to register the vehicle."""
        payload: dict[str, Any] = {
            "id": self.id,
            "region": self.region,
            "status": self.status.value,
            "battery_level": _plain_number(self.battery_level),
            "battery_range_km": _plain_number(self.battery_range_km),
            "location_lat": self.location_lat,
            "location_lng": self.location_lng,
        }
        if self.current_job_id is not None:
            payload["current_job_id"] = self.current_job_id
        payload["vehicle_type"] = self.vehicle_type
        return payload

    # Lifecycle

    def start(self) -> None:
        """Register with the fleet service and start ticking in the background."""
        if self._thread is not None and self._thread.is_alive():
            raise RuntimeError(f"vehicle {self.id} is already running")
        try:
            self.fleet_client.register_with_retry(self.id, self.to_registration_payload())
        except FleetRegistrationError as exc:
            raise FleetRegistrationError(
                f"failed to register with fleet after retries: {exc}", exc.status_code
            ) from exc
        self._stop_event.clear()
        self._thread = threading.Thread(
            target=self._run, name=f"vehicle-{self.id}", daemon=True
        )
        self._thread.start()

    def stop(self) -> None:
        """Stop the background loop and wait for it to end."""
        self._stop_event.set()
        thread = self._thread
        if thread is not None and thread is not threading.current_thread():
            thread.join()
        self._thread = None

    def _run(self) -> None:
        while not self._stop_event.wait(self.tick_interval):
            self.tick()

    def tick(self) -> None:
        """Run one step of the simulation."""
        logger.info("Vehicle status update: %s", self.status_snapshot())
        self.check_for_jobs()

        behaviour = {
            VehicleStatus.AVAILABLE: self.simulate_idle_behavior,
            VehicleStatus.BUSY: self.simulate_job_execution,
            VehicleStatus.CHARGING: self.simulate_charging,
            VehicleStatus.MAINTENANCE: self.simulate_maintenance,
        }.get(self.status)
        if behaviour is not None:
            behaviour()

        self.report_to_fleet()

        if self.battery_level <= LOW_BATTERY_THRESHOLD and self.status is VehicleStatus.AVAILABLE:
            logger.warning(
                "Vehicle %s battery low (%.2f%%), initiating charging",
                self.id, self.battery_level,
            )
            self.go_to_charge()

    # Jobs

    def check_for_jobs(self) -> None:
        """Pick up the first assigned job when free to take one."""
        if self.status is not VehicleStatus.AVAILABLE or self.current_job is not None:
            return
        try:
            jobs = self.job_client.get_assigned_jobs(self.id)
        except JobServiceError as exc:
            logger.error("Failed to check for jobs for %s: %s", self.id, exc)
            return
        for job in jobs:
            if job.status == "assigned":
                self.start_job(job)
                break

    def start_job(self, job: Job) -> None:
        """Begin a job by driving to its pickup point."""
        self.current_job = job
        self.status = VehicleStatus.BUSY
        self.job_phase = JobPhase.PICKUP
        self.set_route_target(job.pickup_lat, job.pickup_lng)
        logger.info(
            "Vehicle %s started %s job %s, pickup at %s, %s",
            self.id, job.job_type, job.id, job.pickup_lat, job.pickup_lng,
        )

    def simulate_idle_behavior(self) -> None:
        """Now and then wander to a random nearby point."""
        if not self.is_moving:
            if self.rng.random() < IDLE_MOVE_CHANCE:
                self.set_random_target(IDLE_RADIUS)
                self.is_moving = True
        else:
            self.move_towards_target()

    def simulate_job_execution(self) -> None:
        """Drive through the pickup and delivery phases of the current job."""
        if self.current_job is None:
            self.status = VehicleStatus.AVAILABLE
            self.is_moving = False
            return

        if self.battery_level <= CRITICAL_BATTERY_THRESHOLD:
            logger.warning(
                "Vehicle %s battery critically low (%.2f%%) during job %s, abandoning job",
                self.id, self.battery_level, self.current_job.id,
            )
            self.current_job = None
            self.current_job_id = None
            self.job_phase = JobPhase.IDLE
            self.go_to_charge()
            return

        if not self.is_moving:
            return

        self.move_along_route()
        if self.current_job is None or self.distance_to_target() >= ARRIVAL_THRESHOLD:
            return
        if self.job_phase is JobPhase.PICKUP:
            self.job_phase = JobPhase.DELIVERY
            self.set_route_target(
                self.current_job.destination_lat, self.current_job.destination_lng
            )
            logger.info(
                "Vehicle %s reached pickup, going to destination %s, %s",
                self.id, self.current_job.destination_lat, self.current_job.destination_lng,
            )
        elif self.job_phase is JobPhase.DELIVERY:
            self.complete_current_job()

    def complete_current_job(self) -> None:
        """Report the current job as done and become available."""
        job = self.current_job
        if job is None:
            return
        logger.info("Vehicle %s completed %s job %s", self.id, job.job_type, job.id)
        try:
            self.job_client.complete_job(job.id)
        except JobServiceError as exc:
            logger.error("Failed to complete job %s: %s", job.id, exc)

        self.current_job = None
        self.current_job_id = None
        self.status = VehicleStatus.AVAILABLE
        self.is_moving = False
        self.job_phase = JobPhase.IDLE

    # Maintenance and charging

    def simulate_maintenance(self) -> None:
        """Recover a stranded vehicle with a roadside charge."""
        if self.job_phase is not JobPhase.STRANDED:
            return
        logger.info(
            "Vehicle %s requesting roadside assistance at %s, %s",
            self.id, self.location_lat, self.location_lng,
        )
        self.battery_level = ROADSIDE_CHARGE
        self.battery_range_km = self.battery_level * self.battery_drain_rate
        self.status = VehicleStatus.CHARGING
        self.job_phase = JobPhase.GOING_TO_CHARGE
        self.go_to_charge()

    def simulate_charging(self) -> None:
        """Drive to the charger, then charge until nearly full."""
        if self.is_moving and self.job_phase is JobPhase.GOING_TO_CHARGE:
            self.move_along_route()
            if self.distance_to_target() < ARRIVAL_THRESHOLD:
                self.is_moving = False
                self.job_phase = JobPhase.CHARGING
                logger.info(
                    "Vehicle %s arrived at charging station with %.2f%% battery",
                    self.id, self.battery_level,
                )
            return

        if self.job_phase is not JobPhase.CHARGING:
            return
        if self.battery_level < FULL_CHARGE_THRESHOLD:
            previous = self.battery_level
            self.battery_level += CHARGE_STEP
            self.battery_range_km = self.battery_level * self.battery_drain_rate
            logger.info(
                "Vehicle %s charging: %.2f%% -> %.2f%% (range %.1f km)",
                self.id, previous, self.battery_level, self.battery_range_km,
            )
        else:
            self.status = VehicleStatus.AVAILABLE
            self.is_moving = False
            self.job_phase = JobPhase.IDLE
            logger.info(
                "Vehicle %s fully charged (%.2f%%, range %.1f km), returning to service",
                self.id, self.battery_level, self.battery_range_km,
            )

    # Movement

    def set_route_target(self, target_lat: float, target_lng: float) -> None:
        """Plan a route to a target and start following it."""
        self.target_lat = target_lat
        self.target_lng = target_lng
        try:
            route = self.routing_service.get_route(
                self.location_lat, self.location_lng, target_lat, target_lng
            )
        except Exception as exc:
            logger.error("Failed to get route for vehicle %s: %s", self.id, exc)
            self.current_route = None
            self.is_moving = True
            return

        self.current_route = route
        self.route_index = 0
        self.is_moving = True
        logger.info(
            "Vehicle %s calculated route with %d waypoints (%.1f km, %.1f min)",
            self.id, len(route.points), route.distance / 1000, route.duration / 60,
        )

    def move_along_route(self) -> None:
        """Advance one step along the planned route."""
        if self.battery_level <= 0:
            self.handle_battery_depletion()
            return

        route = self.current_route
        if route is None or not route.points:
            self.move_towards_target()
            return

        if self.route_index >= len(route.points) - 1:
            self.location_lat = self.target_lat
            self.location_lng = self.target_lng
            self.is_moving = False
            self.current_route = None
            self.route_index = 0
            return

        prev_lat, prev_lng = self.location_lat, self.location_lng
        waypoint = route.points[self.route_index + 1]
        step = movement_speed()

        lat_diff = waypoint.lat - self.location_lat
        lng_diff = waypoint.lng - self.location_lng
        distance = math.hypot(lat_diff, lng_diff)

        if distance < step:
            self.route_index += 1
            self.location_lat = waypoint.lat
            self.location_lng = waypoint.lng
        else:
            self.location_lat += lat_diff / distance * step
            self.location_lng += lng_diff / distance * step

        self.drain_battery(
            haversine_distance(prev_lat, prev_lng, self.location_lat, self.location_lng)
        )

    def move_towards_target(self) -> None:
        """Advance one step straight towards the target."""
        if self.battery_level <= 0:
            self.handle_battery_depletion()
            return

        prev_lat, prev_lng = self.location_lat, self.location_lng
        distance = self.distance_to_target()
        if distance < ARRIVAL_THRESHOLD:
            self.location_lat = self.target_lat
            self.location_lng = self.target_lng
            self.is_moving = False
            return

        factor = movement_speed() / distance
        self.location_lat += (self.target_lat - self.location_lat) * factor
        self.location_lng += (self.target_lng - self.location_lng) * factor

        self.drain_battery(
            haversine_distance(prev_lat, prev_lng, self.location_lat, self.location_lng)
        )

    def set_random_target(self, radius_degrees: float) -> None:
        """Aim at a random point within ``radius_degrees`` of the vehicle."""
        angle = self.rng.random() * 2 * math.pi
        radius = self.rng.random() * radius_degrees
        self.target_lat = self.location_lat + radius * math.cos(angle)
        self.target_lng = self.location_lng + radius * math.sin(angle)

    def distance_to_target(self) -> float:
        """Return the straight distance to the target in degrees."""
        return math.hypot(self.target_lat - self.location_lat, self.target_lng - self.location_lng)

    # Battery

    def drain_battery(self, km_traveled: float) -> None:
        """Use up battery for a distance driven; strand the vehicle at zero."""
        if km_traveled <= 0:
            return
        before = self.battery_level
        used = km_traveled / self.battery_drain_rate
        self.battery_level = max(0.0, self.battery_level - used)
        self.battery_range_km = self.battery_level * self.battery_drain_rate
        logger.info(
            "Vehicle %s drove %.5f km using %.5f%% battery (%d%% -> %d%%, %.1f km per %%)",
            self.id, km_traveled, used, int(before), int(self.battery_level),
            km_traveled / used if used else self.battery_drain_rate,
        )
        if self.battery_level == 0:
            self.handle_battery_depletion()

    def handle_battery_depletion(self) -> None:
        """Deal with an empty battery.

        A vehicle already heading for a charger is moved to the nearest
        station with a minimal charge; any other vehicle is stranded and
        drops its job.
        """
        logger.error(
            "Vehicle %s battery depleted at %s, %s (status %s, phase %s)",
            self.id, self.location_lat, self.location_lng,
            self.status.value, self.job_phase.value,
        )
        if self.status is VehicleStatus.CHARGING and self.job_phase is JobPhase.GOING_TO_CHARGE:
            station = find_nearest_charging_station(
                self.location_lat, self.location_lng, self.region
            )
            self.location_lat = station.lat
            self.location_lng = station.lng
            self.is_moving = False
            self.job_phase = JobPhase.CHARGING
            self.battery_level = DEPLETION_CHARGE
            self.battery_range_km = self.battery_level * self.battery_drain_rate
            logger.info(
                "Vehicle %s moved to charging station %s due to battery depletion",
                self.id, station.id,
            )
            return

        self.is_moving = False
        self.status = VehicleStatus.MAINTENANCE
        self.job_phase = JobPhase.STRANDED
        if self.current_job is not None:
            logger.warning(
                "Vehicle %s abandoning job %s due to battery depletion",
                self.id, self.current_job.id,
            )
            self.current_job = None
            self.current_job_id = None

    def go_to_charge(self) -> None:
        """Head for the nearest charging station."""
        station = find_nearest_charging_station(self.location_lat, self.location_lng, self.region)
        self.status = VehicleStatus.CHARGING
        self.set_route_target(station.lat, station.lng)
        self.job_phase = JobPhase.GOING_TO_CHARGE
        logger.info(
            "Vehicle %s going to charging station %s with %.2f%% battery (%.2f km away)",
            self.id, station.id, self.battery_level,
            haversine_distance(self.location_lat, self.location_lng, station.lat, station.lng),
        )

    # Reporting

    def report_to_fleet(self) -> bool:
        """Send position and status to the fleet service and the telemetry stream.

        Returns whether the fleet service accepted the update.
        """
        accepted = self.fleet_client.report_location(
            self.id, self.location_lat, self.location_lng, self.status.value
        )
        if self.streamer is not None:
            self.streamer.send(
                self.id,
                self.location_lat,
                self.location_lng,
                self.status.value,
                self.battery_level,
                self.current_job_id,
            )
        return accepted

    def status_snapshot(self) -> dict[str, Any]:
        """Return the vehicle's state as logged on every tick."""
        snapshot: dict[str, Any] = {
            "vehicle_id": self.id,
            "status": self.status.value,
            "battery_level": self.battery_level,
            "battery_range_km": self.battery_range_km,
            "location_lat": self.location_lat,
            "location_lng": self.location_lng,
            "region": self.region,
            "vehicle_type": self.vehicle_type,
            "battery_drain_rate": self.battery_drain_rate,
            "is_moving": self.is_moving,
        }
        job = self.current_job
        if self.status is VehicleStatus.BUSY and job is not None:
            snapshot.update(
                current_job_id=job.id,
                job_type=job.job_type,
                job_phase=self.job_phase.value,
                pickup_lat=job.pickup_lat,
                pickup_lng=job.pickup_lng,
                destination_lat=job.destination_lat,
                destination_lng=job.destination_lng,
            )
        if self.is_moving and self.target_lat != 0 and self.target_lng != 0:
            snapshot.update(
                route_target_lat=self.target_lat,
                route_target_lng=self.target_lng,
                distance_to_target=self.distance_to_target(),
            )
        return snapshot