import json
import re

import pytest
import responses

from fleetsim.simulator.fleet_client import (
    FleetClient,
    FleetRegistrationError,
    TelemetryStreamer,
)

BASE = "http://fleet.test"
PAYLOAD = {"id": "sim-vehicle-1", "region": "us-west-2", "status": "available"}


@pytest.fixture
def rsps():
    with responses.RequestsMock(assert_all_requests_are_fired=False) as mock_responses:
        yield mock_responses


def test_register_vehicle_posts_payload(rsps):
    rsps.add(responses.POST, f"{BASE}/vehicles", status=201, json=PAYLOAD)
    FleetClient(BASE).register_vehicle(PAYLOAD)
    assert len(rsps.calls) == 1
    assert json.loads(rsps.calls[0].request.body) == PAYLOAD


def test_register_vehicle_rejected(rsps):
    rsps.add(responses.POST, f"{BASE}/vehicles", status=400)
    with pytest.raises(FleetRegistrationError) as info:
        FleetClient(BASE).register_vehicle(PAYLOAD)
    assert info.value.status_code == 400


def test_register_vehicle_connection_error(rsps):
    with pytest.raises(FleetRegistrationError) as info:
        FleetClient(BASE).register_vehicle(PAYLOAD)
    assert info.value.status_code is None


def test_register_with_retry_succeeds_after_failures(rsps):
    rsps.add(responses.POST, f"{BASE}/vehicles", status=503)
    rsps.add(responses.POST, f"{BASE}/vehicles", status=503)
    rsps.add(responses.POST, f"{BASE}/vehicles", status=201)
    delays = []
    attempt = FleetClient(BASE).register_with_retry("sim-vehicle-1", PAYLOAD, sleep=delays.append)
    assert attempt == 3
    assert delays == [1.0, 1.5]


def test_register_with_retry_gives_up_and_caps_delay(rsps):
    rsps.add(responses.POST, f"{BASE}/vehicles", status=500)
    delays = []
    with pytest.raises(FleetRegistrationError) as info:
        FleetClient(BASE).register_with_retry(
            "sim-vehicle-1", PAYLOAD, max_retries=6, base_delay=1.0, max_delay=2.0,
            deadline=1000.0, sleep=delays.append,
        )
    assert "after 6 attempts" in str(info.value)
    assert len(delays) == 5
    assert all(d <= 2.0 for d in delays)
    assert delays == sorted(delays)
    assert len(rsps.calls) == 6


def test_register_with_retry_times_out(rsps):
    rsps.add(responses.POST, f"{BASE}/vehicles", status=500)
    delays = []
    with pytest.raises(FleetRegistrationError) as info:
        FleetClient(BASE).register_with_retry(
            "sim-vehicle-1", PAYLOAD, max_retries=10, base_delay=1.0, max_delay=30.0,
            deadline=2.0, sleep=delays.append,
        )
    assert "timeout" in str(info.value)
    assert sum(delays) <= 2.0
    assert len(rsps.calls) < 10


def test_report_location_sends_update(rsps):
    url = f"{BASE}/vehicles/sim-vehicle-1/location"
    rsps.add(responses.PUT, url, status=200)
    assert FleetClient(BASE).report_location("sim-vehicle-1", 45.5, -122.6, "busy") is True
    body = json.loads(rsps.calls[0].request.body)
    assert body == {"lat": 45.5, "lng": -122.6, "status": "busy"}


def test_report_location_non_ok_status(rsps):
    rsps.add(responses.PUT, f"{BASE}/vehicles/v9/location", status=400)
    assert FleetClient(BASE).report_location("v9", 1.0, 2.0, "available") is False


def test_report_location_connection_error(rsps):
    assert FleetClient(BASE).report_location("v9", 1.0, 2.0, "available") is False


class _FakeKinesis:
    def __init__(self, fail=False):
        self.fail = fail
        self.calls = []

    def put_record(self, **kwargs):
        if self.fail:
            raise RuntimeError("stream unavailable")
        self.calls.append(kwargs)
        return {"ShardId": "shard-0"}


def test_streamer_sends_record():
    client = _FakeKinesis()
    streamer = TelemetryStreamer(client, "telemetry")
    assert streamer.send("sim-vehicle-1", 45.5, -122.6, "busy", 72.5, "job-123") is True
    call = client.calls[0]
    assert call["StreamName"] == "telemetry"
    assert call["PartitionKey"] == "sim-vehicle-1"
    record = json.loads(call["Data"])
    assert record["vehicle_id"] == "sim-vehicle-1"
    assert record["latitude"] == 45.5
    assert record["longitude"] == -122.6
    assert record["status"] == "busy"
    assert record["battery"] == 72.5
    assert record["job_id"] == "job-123"
    assert re.fullmatch(r"\d{4}-\d{2}-\d{2}T\d{2}:\d{2}:\d{2}Z", record["timestamp"])


def test_streamer_omits_missing_job_and_sorts_keys():
    client = _FakeKinesis()
    TelemetryStreamer(client, "telemetry").send("v1", 1.5, 2.5, "available", 60.0)
    record = json.loads(client.calls[0]["Data"])
    assert "job_id" not in record
    assert list(record) == sorted(record)
    assert b" " not in client.calls[0]["Data"]


def test_streamer_reports_failure():
    streamer = TelemetryStreamer(_FakeKinesis(fail=True), "telemetry")
    assert streamer.send("v1", 1.0, 2.0, "available", 50.0) is False