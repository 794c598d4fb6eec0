"""Tests for the polling controller's lifecycle and idempotent terminal handling."""

import time

import pytest
import requests
from PySide6.QtCore import QCoreApplication

from core.models import ApiError, JobStatus, TrackingState
from services.history_store import HistoryStore, fallback_key
from services.polling_controller import PollingController, ProcessedDataWorker


class FakeApiClient:
    """Return queued status payloads, raising any queued exception instead."""

    def __init__(self, *responses):
        self.responses = list(responses)
        self.requested = []

    def fetch_job_status(self, job_id):
        self.requested.append(job_id)
        response = self.responses.pop(0) if len(self.responses) > 1 else self.responses[0]
        if isinstance(response, Exception):
            raise response
        return response


def _payload(status, job_id="42", **extra):
    payload = {"jobId": job_id, "status": status}
    payload.update(extra)
    return payload


@pytest.fixture
def store(memory_storage):
    return HistoryStore(memory_storage)


def _controller(api_client, store):
    return PollingController(api_client, store, interval_ms=1000, run_in_background=False)


def test_track_requires_job_id(store):
    """An empty job id is rejected before anything starts."""
    controller = _controller(FakeApiClient(_payload("RUNNING")), store)
    with pytest.raises(ValueError):
        controller.track("  ")
    assert controller.state is TrackingState.IDLE
    assert not controller.is_polling


def test_track_fetches_immediately_and_keeps_polling(store):
    """Tracking polls once right away and leaves the timer running."""
    api = FakeApiClient(_payload("RUNNING"))
    controller = _controller(api, store)
    snapshots = []
    controller.snapshot_updated.connect(snapshots.append)

    controller.track("42")

    assert api.requested == ["42"]
    assert controller.state is TrackingState.TRACKING
    assert controller.is_polling
    assert snapshots[0].status is JobStatus.RUNNING
    controller.stop()


def test_terminal_status_is_recorded_once(store, memory_storage):
    """A second terminal result for the same job does not add another entry."""
    payload = _payload(
        "COMPLETED",
        threadsUsed=3,
        jobParameters={"filePath": "/uploads/orders.csv"},
        steps=[
            {"stepName": "extract", "readCount": 10, "writeCount": 10},
            {"stepName": "load", "readCount": 8, "writeCount": 6, "filterCount": 1, "skipCount": 1},
        ],
    )
    controller = _controller(FakeApiClient(payload), store)
    completed = []
    controller.job_completed.connect(completed.append)

    controller.track("42")
    controller.on_status_received(99, "42", payload)
    controller.poll_now()

    assert controller.state is TrackingState.COMPLETED
    assert not controller.is_polling
    assert len(completed) == 1
    entries = store.entries()
    assert [entry.job_id for entry in entries] == ["42"]
    entry = entries[0]
    assert (entry.read_count, entry.write_count, entry.filter_count, entry.skip_count) == (8, 6, 1, 1)
    assert (entry.file_name, entry.file_type) == ("orders.csv", "csv")
    assert entry.threads_used == 3
    assert entry.duration_ms >= 0
    assert fallback_key("42") in memory_storage.items


def test_tracked_file_info_wins(store):
    """File details passed to track() override what the backend reports."""
    payload = _payload("FAILED", jobParameters={"filePath": "/tmp/upload-123.tmp"})
    controller = _controller(FakeApiClient(payload), store)

    controller.track("42", "Customers.csv", "csv")

    entry = store.find("42")
    assert controller.state is TrackingState.FAILED
    assert entry.status is JobStatus.FAILED
    assert (entry.file_name, entry.file_type) == ("Customers.csv", "csv")


def test_fetch_failure_keeps_tracking(store):
    """Transient errors are reported but polling carries on."""
    api = FakeApiClient(ApiError("Bad gateway", 502), requests.ConnectionError("refused"), _payload("RUNNING"))
    controller = _controller(api, store)
    failures = []
    controller.fetch_failed.connect(lambda job_id, message: failures.append((job_id, message)))

    controller.track("42")
    controller.poll_now()

    assert controller.state is TrackingState.TRACKING
    assert controller.is_polling
    assert [job_id for job_id, _ in failures] == ["42", "42"]
    assert "Bad gateway" in failures[0][1]

    controller.poll_now()
    assert controller.last_snapshot.status is JobStatus.RUNNING
    controller.stop()


def test_malformed_payload_is_a_transient_failure(store):
    controller = _controller(FakeApiClient(["not", "an", "object"]), store)
    failures = []
    controller.fetch_failed.connect(lambda job_id, message: failures.append(message))

    controller.track("42")

    assert controller.state is TrackingState.TRACKING
    assert len(failures) == 1
    controller.stop()


def test_stale_and_foreign_results_are_ignored(store):
    """Results for another job or older than the last applied one are dropped."""
    controller = _controller(FakeApiClient(_payload("RUNNING")), store)
    controller.track("42")

    controller.on_status_received(5, "other", _payload("COMPLETED", job_id="other"))
    controller.on_status_received(4, "42", _payload("STARTED"))
    controller.on_status_received(3, "42", _payload("COMPLETED"))

    assert controller.state is TrackingState.TRACKING
    assert controller.last_snapshot.status is JobStatus.STARTED
    assert store.entries() == []
    controller.stop()


def test_update_job_id_drops_results_for_previous_id(store):
    controller = _controller(FakeApiClient(_payload("RUNNING", job_id="temp")), store)
    controller.track("temp")

    controller.update_job_id("real-7")
    controller.on_status_received(10, "temp", _payload("COMPLETED", job_id="temp"))

    assert controller.current_job_id == "real-7"
    assert controller.state is TrackingState.TRACKING
    assert store.entries() == []
    controller.stop()


def test_stop_is_idempotent_and_ignores_late_results(store):
    """Stopping twice is harmless and results arriving afterwards change nothing."""
    controller = _controller(FakeApiClient(_payload("RUNNING")), store)
    states = []
    controller.state_changed.connect(states.append)

    controller.stop()
    controller.track("42")
    controller.stop()
    controller.stop()
    controller.on_status_received(50, "42", _payload("COMPLETED"))

    assert controller.state is TrackingState.IDLE
    assert not controller.is_polling
    assert states == ["tracking", "idle"]
    assert store.entries() == []


def test_retracking_resets_terminal_handling(store):
    """A new track() after a finished job records the new job as well."""
    api = FakeApiClient(_payload("COMPLETED"))
    controller = _controller(api, store)
    controller.track("42")

    api.responses = [_payload("STOPPED", job_id="43")]
    controller.track("43")

    assert controller.state is TrackingState.STOPPED
    assert [entry.job_id for entry in store.entries()] == ["43", "42"]


def test_shutdown_stops_tracking(store):
    controller = _controller(FakeApiClient(_payload("RUNNING")), store)
    controller.track("42")

    controller.shutdown()

    assert controller.state is TrackingState.IDLE
    assert not controller.is_polling


def test_duration_uses_backend_times_when_reported(store):
    """Recorded durations follow the backend's start and end times."""
    payload = _payload("COMPLETED", startTime="2024-03-01T10:00:00Z", endTime="2024-03-01T10:01:05Z")
    controller = _controller(FakeApiClient(payload), store)

    controller.track("42")

    assert store.find("42").duration_ms == 65000


class SlowApiClient:
    """Answer every status request after a short delay, from any thread."""

    def __init__(self, payload, delay=0.05):
        self.payload = payload
        self.delay = delay

    def fetch_job_status(self, job_id):
        time.sleep(self.delay)
        return dict(self.payload)


def test_background_polling_records_terminal_once(store):
    """Overlapping background fetches still record the finished job once."""
    controller = PollingController(SlowApiClient(_payload("COMPLETED")), store, interval_ms=10)
    completed = []
    controller.job_completed.connect(completed.append)

    controller.track("42")
    deadline = time.monotonic() + 5
    while not completed and time.monotonic() < deadline:
        QCoreApplication.processEvents()
        time.sleep(0.005)
    controller.shutdown()
    QCoreApplication.processEvents()

    assert len(completed) == 1
    assert controller.state is TrackingState.COMPLETED
    assert [entry.job_id for entry in store.entries()] == ["42"]
    assert controller._inflight == {}


class DataApiClient:
    def __init__(self, result):
        self.result = result

    def fetch_processed_data(self):
        if isinstance(self.result, Exception):
            raise self.result
        return self.result


def test_processed_data_worker_reports_records():
    worker = ProcessedDataWorker(DataApiClient([{"id": 1}, {"id": 2}]), "42")
    loaded = []
    worker.data_loaded.connect(lambda job_id, records: loaded.append((job_id, len(records))))

    worker.run()

    assert loaded == [("42", 2)]


def test_processed_data_worker_reports_failures():
    worker = ProcessedDataWorker(DataApiClient(ApiError("Service unavailable", 503)), "42")
    failures = []
    worker.data_failed.connect(lambda job_id, message: failures.append(message))

    worker.run()

    assert failures and "Service unavailable" in failures[0]
