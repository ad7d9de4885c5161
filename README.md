# fleetsim

A small autonomous-vehicle fleet system in two parts:

- **Fleet service** (`fleetsim.fleet`): a registry of vehicles with an HTTP API.
  Vehicles register themselves, report their position and status, are assigned
  jobs and are released when a job is done. Dispatch picks the nearest available
  vehicle in a region that has enough battery range for the trip.
- **Car simulator** (`fleetsim.simulator`): simulated battery-powered vehicles
  that register with the fleet service, poll a job service for work, drive to
  pickup and destination along routes, drain their battery with distance, and
  head to the nearest charging station when the battery runs low.

## Installation

```
pip install .
```

For running the test suite:

```
pip install ".[test]"
pytest
```

## Running the fleet service

```
fleetsim-fleet-service
```

It serves the HTTP API with in-memory storage and is configured through
environment variables:

| Variable      | Meaning                                              | Default |
|---------------|------------------------------------------------------|---------|
| `PORT`        | Port to listen on (all interfaces)                   | `8080`  |
| `PATH_PREFIX` | Prefix for every route, when behind a load balancer  | none    |

### HTTP API

| Method | Path                        | Purpose                                   |
|--------|-----------------------------|-------------------------------------------|
| GET    | `/health`                   | `{"status": "healthy"}`                   |
| GET    | `/vehicles`                 | All vehicles, sorted by status then id    |
| POST   | `/vehicles`                 | Register a vehicle (201 on success, 400 if the id exists) |
| PUT    | `/vehicles/{id}/location`   | Update `lat`, `lng` and `status`          |
| POST   | `/vehicles/{id}/assign`     | Assign `job_id`; vehicle becomes `busy`   |
| POST   | `/vehicles/{id}/complete`   | Clear the job; vehicle becomes `available`|
| GET    | `/vehicles/find`            | Nearest suitable vehicle; needs `region`, `pickup_lat`, `pickup_lng`, `trip_distance_km` |

`GET /vehicles` puts `busy` vehicles after the others and `offline` ones last;
every other status sorts together with `available`. Within a status, vehicles
are ordered by id.

`/vehicles/find` answers 400 when a parameter is missing or not a number, and
404 when no vehicle qualifies. A vehicle qualifies when it is `available` in
the region and its battery range covers the distance to the pickup plus the
trip distance, with a 20% safety margin; of those, the closest to the pickup
wins.

Every response carries permissive CORS headers, and `OPTIONS` requests are
answered with 200 directly.

### Using it as a library

```python
from fleetsim.fleet.storage import MemoryVehicleStorage, vehicle_from_dict
from fleetsim.fleet.service import FleetService, NoVehicleAvailableError
from fleetsim.fleet.api import create_app

service = FleetService(MemoryVehicleStorage())
service.register_vehicle(vehicle_from_dict({
    "id": "demo-vehicle-1",
    "region": "us-west-2",
    "status": "available",
    "battery_level": 80,
    "battery_range_km": 200.0,
    "location_lat": 45.5152,
    "location_lng": -122.6784,
    "vehicle_type": "sedan",
}))

try:
    vehicle = service.find_nearest_available_vehicle("us-west-2", 45.52, -122.68, 10.0)
except NoVehicleAvailableError:
    vehicle = None

app = create_app(service, path_prefix="")
with app.test_client() as client:
    print(client.get("/vehicles").get_json())
```

Storage errors are raised as `StorageError`, with the subclasses
`VehicleNotFoundError` and `DuplicateVehicleError`.

`fleetsim.fleet.dynamodb.DynamoDBVehicleStorage(client, table_name)` keeps the
same vehicles in a DynamoDB table keyed by `id`, using a `region-status-index`
index for dispatch queries. The client is any object with the low-level
operations `put_item`, `get_item`, `update_item`, `query` and `scan` taking
keyword arguments and returning response dictionaries.
`fleetsim.fleet.server.build_storage(env, dynamodb_client)` picks this store
when `STORAGE_TYPE=dynamodb` and `DYNAMODB_VEHICLES_TABLE` are set, and the
in-memory store otherwise.

`fleetsim.fleet.telemetry.TelemetryConsumer(client, stream_name, fleet_service)`
polls every shard of a Kinesis stream in its own thread (`start(stop_event)`)
and decodes each record with `parse_telemetry`. The client needs
`describe_stream`, `get_shard_iterator` and `get_records`. Records are only
decoded and counted; the vehicle store is not changed.

## Running the car simulator

```
fleetsim-car-simulator
```

It is configured through environment variables:

| Variable            | Meaning                                  | Default                 |
|---------------------|------------------------------------------|-------------------------|
| `FLEET_SERVICE_URL` | Base URL of the fleet service            | `http://localhost:8080` |
| `JOB_SERVICE_URL`   | Base URL of the job service              | `http://localhost:8081` |
| `REGION`            | Region the vehicles report               | `us-west-2`             |
| `VEHICLE_COUNT`     | Number of vehicles to start              | `1`                     |
| `DEMO_SPEED`        | Movement per tick, in degrees            | `0.00035`               |

`START_LAT` and `START_LNG` are read and logged, but vehicles do not start
there: each spawns at a random point from a fixed list of Portland locations.

The command waits 45 seconds for the fleet service to come up, then starts
vehicles named `sim-vehicle-1`, `sim-vehicle-2`, … one after another. Each
registers with the fleet service, retrying up to ten times with growing delays
(1 s, then half as long again each time, at most 30 s, five minutes overall);
a vehicle that cannot register is skipped. Each running vehicle updates every
two seconds. The command logs one JSON object per line and stops on an
interrupt or termination signal.

Vehicle behaviour in brief:

- Battery starts between 60% and 99%; one percent is 4 km of range.
- While available, a vehicle now and then drives to a random point nearby.
- It takes the first job assigned to it by the job service, drives to the
  pickup, then to the destination, and reports the job complete.
- At 30% or less while available, it drives to the nearest charging station
  and charges 2% per tick until it reaches at least 95%.
- At 15% or less during a job, the job is abandoned and the vehicle goes to charge.
- A vehicle that runs out of battery on the way to a charger is moved to the
  nearest station with 5%; elsewhere it is stranded, and on the next tick
  recovered with 20% and sent to charge.
- Routes come from an OSRM routing server (the public demo server unless
  `RoutingService` is given another `base_url`); when that fails, an
  eleven-point straight line is used instead.

Some of the helpers are useful on their own:

```python
from fleetsim.simulator.routing import haversine_distance
from fleetsim.simulator.charging import find_nearest_charging_station

print(haversine_distance(45.5152, -122.6784, 45.5898, -122.5951))  # km
print(find_nearest_charging_station(45.52, -122.65, "us-west-2").id)
```

`SimulatedVehicle` accepts its collaborators as keyword arguments
(`job_client`, `routing_service`, `fleet_client`, `streamer`, `rng`), and
`tick()` runs one step by hand. A `TelemetryStreamer(client, stream_name)`
given as `streamer` puts a JSON record on a Kinesis stream after each position
report; its client needs a `put_record` method.

## What the package does not do

- The commands create no AWS clients. `fleetsim-fleet-service` with
  `STORAGE_TYPE=dynamodb` exits with an error, since no DynamoDB client is
  available to it; use `DynamoDBVehicleStorage` from your own code instead.
  When `KINESIS_VEHICLE_TELEMETRY_STREAM` is set, both commands only log a
  warning: the fleet service starts no consumer and the simulator streams no
  telemetry.
- There is no job service here. The simulator expects one at
  `JOB_SERVICE_URL` offering `GET /jobs`, `POST /jobs` and
  `POST /jobs/{id}/complete`; `fleetsim.simulator.jobs.JobClient` is the
  client side only.
- There is no dashboard or other user interface.