import json

import pytest
import responses

from fleetsim.simulator.jobs import (
    DeliveryDetails,
    JobClient,
    JobServiceError,
    job_from_dict,
)

BASE = "http://jobs.test"


@pytest.fixture
def mocked():
    with responses.RequestsMock(assert_all_requests_are_fired=False) as rsps:
        yield rsps


def _sample_jobs():
    return [
        {
            "id": "job-1",
            "job_type": "ride",
            "status": "assigned",
            "assigned_vehicle_id": "vehicle-1",
            "pickup_lat": 37.7749,
            "pickup_lng": -122.4194,
            "destination_lat": 37.7849,
            "destination_lng": -122.4094,
            "customer_id": "customer-1",
            "region": "us-west-2",
        },
        {
            "id": "job-2",
            "job_type": "delivery",
            "status": "assigned",
            "assigned_vehicle_id": "vehicle-2",
            "pickup_lat": 37.7649,
            "pickup_lng": -122.4294,
            "destination_lat": 37.7749,
            "destination_lng": -122.4194,
            "customer_id": "customer-2",
            "region": "us-west-2",
        },
        {
            "id": "job-3",
            "job_type": "ride",
            "status": "pending",
            "pickup_lat": 37.7549,
            "pickup_lng": -122.4394,
            "customer_id": "customer-3",
            "region": "us-west-2",
        },
    ]


def test_get_assigned_jobs_filters_by_vehicle(mocked):
    mocked.add(responses.GET, f"{BASE}/jobs", json=_sample_jobs(), status=200)

    jobs = JobClient(BASE).get_assigned_jobs("vehicle-1")

    assert len(jobs) == 1
    assert jobs[0].id == "job-1"
    assert jobs[0].job_type == "ride"
    assert mocked.calls[0].request.url == f"{BASE}/jobs"


def test_get_assigned_jobs_no_match_returns_empty(mocked):
    mocked.add(responses.GET, f"{BASE}/jobs", json=_sample_jobs(), status=200)
    assert JobClient(BASE).get_assigned_jobs("vehicle-9") == []


def test_get_assigned_jobs_null_body_is_empty(mocked):
    mocked.add(responses.GET, f"{BASE}/jobs", body="null", status=200)
    assert JobClient(BASE).get_assigned_jobs("vehicle-1") == []


def test_get_assigned_jobs_error_status(mocked):
    mocked.add(responses.GET, f"{BASE}/jobs", status=500)
    with pytest.raises(JobServiceError) as info:
        JobClient(BASE).get_assigned_jobs("vehicle-1")
    assert info.value.status_code == 500


def test_get_assigned_jobs_invalid_json(mocked):
    mocked.add(responses.GET, f"{BASE}/jobs", body="not json", status=200)
    with pytest.raises(JobServiceError):
        JobClient(BASE).get_assigned_jobs("vehicle-1")


def test_unreachable_service_raises(mocked):
    with pytest.raises(JobServiceError):
        JobClient(BASE).get_assigned_jobs("vehicle-1")


def test_complete_job(mocked):
    mocked.add(responses.POST, f"{BASE}/jobs/job-123/complete", status=200)

    JobClient(BASE).complete_job("job-123")

    assert len(mocked.calls) == 1
    assert mocked.calls[0].request.method == "POST"
    assert mocked.calls[0].request.url == f"{BASE}/jobs/job-123/complete"


def test_complete_job_error(mocked):
    mocked.add(responses.POST, f"{BASE}/jobs/job-123/complete", status=400)
    with pytest.raises(JobServiceError) as info:
        JobClient(BASE).complete_job("job-123")
    assert info.value.status_code == 400


def test_create_test_ride_job(mocked):
    received = []

    def handler(request):
        body = json.loads(request.body)
        received.append(body)
        job = {
            "id": "job-456",
            "job_type": body["job_type"],
            "status": "pending",
            "pickup_lat": body["pickup_lat"],
            "pickup_lng": body["pickup_lng"],
            "destination_lat": body["destination_lat"],
            "destination_lng": body["destination_lng"],
            "customer_id": body["customer_id"],
            "region": body["region"],
            "estimated_distance_km": 1.5,
        }
        return 201, {"Content-Type": "application/json"}, json.dumps(job)

    mocked.add_callback(responses.POST, f"{BASE}/jobs", callback=handler)

    job = JobClient(BASE).create_test_ride_job(
        "test-customer", "us-west-2", 37.7749, -122.4194, 37.7849, -122.4094
    )

    assert job.id == "job-456"
    assert job.job_type == "ride"
    assert job.customer_id == "test-customer"
    assert job.estimated_distance_km == 1.5
    assert received[0]["job_type"] == "ride"
    assert received[0]["customer_id"] == "test-customer"
    assert received[0]["pickup_lat"] == 37.7749
    assert received[0]["destination_lng"] == -122.4094
    assert mocked.calls[0].request.headers["Content-Type"] == "application/json"


def test_create_test_ride_job_requires_created_status(mocked):
    mocked.add(responses.POST, f"{BASE}/jobs", json={"id": "job-456"}, status=200)
    with pytest.raises(JobServiceError) as info:
        JobClient(BASE).create_test_ride_job(
            "test-customer", "us-west-2", 37.7749, -122.4194, 37.7849, -122.4094
        )
    assert info.value.status_code == 200


def test_job_from_dict_with_delivery_details():
    job = job_from_dict(
        {
            "id": "job-2",
            "job_type": "delivery",
            "delivery_details": {
                "restaurant_name": "Corner Cafe",
                "items": ["soup", "bread"],
                "instructions": "leave at door",
            },
        }
    )
    assert job.delivery_details == DeliveryDetails("Corner Cafe", ["soup", "bread"], "leave at door")
    assert job.assigned_vehicle_id is None
    assert job.pickup_lat == 0.0


def test_job_from_dict_rejects_wrong_types():
    with pytest.raises(ValueError):
        job_from_dict({"id": 5})
    with pytest.raises(ValueError):
        job_from_dict({"pickup_lat": "north"})