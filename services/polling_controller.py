"""Timer-driven status polling for a single ETL job."""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Dict, Optional

import requests
from PySide6.QtCore import QObject, QThread, QTimer, Signal

from core.metrics import last_step_counts
from core.models import ApiError, JobHistoryEntry, JobSnapshot, TrackingState
from core.normalizer import normalize_status
from services.api_client import EtlApiClient
from services.history_store import HistoryStore
from services.logger import get_logger


logger = get_logger("polling")

# Failures that only mean "try again on the next tick".
TRANSIENT_ERRORS = (ApiError, requests.RequestException, ValueError)


class StatusFetchWorker(QThread):
    """Fetch one status payload in a background thread.

    Results are delivered through queued signals, so the controller applies
    them on its own thread.
    """

    status_received = Signal(int, str, object)
    status_failed = Signal(int, str, str)

    def __init__(self, api_client: EtlApiClient, sequence: int, job_id: str) -> None:
        super().__init__()
        self._api_client = api_client
        self.sequence = sequence
        self.job_id = job_id

    def run(self) -> None:
        """Entry point executed by QThread.start."""
        try:
            payload = self._api_client.fetch_job_status(self.job_id)
        except TRANSIENT_ERRORS as exc:
            self.status_failed.emit(self.sequence, self.job_id, str(exc))
            return
        except Exception as exc:  # pylint: disable=broad-except
            logger.exception("Unexpected error fetching status for job %s: %s", self.job_id, exc)
            self.status_failed.emit(self.sequence, self.job_id, str(exc))
            return
        self.status_received.emit(self.sequence, self.job_id, payload)


class ProcessedDataWorker(QThread):
    """Download the backend's processed records once a job has completed."""

    data_loaded = Signal(str, object)
    data_failed = Signal(str, str)

    def __init__(self, api_client: EtlApiClient, job_id: str) -> None:
        super().__init__()
        self._api_client = api_client
        self.job_id = job_id

    def run(self) -> None:
        try:
            records = self._api_client.fetch_processed_data()
        except Exception as exc:  # pylint: disable=broad-except
            logger.exception("Failed to load processed data for job %s: %s", self.job_id, exc)
            self.data_failed.emit(self.job_id, str(exc))
            return
        self.data_loaded.emit(self.job_id, records)


class PollingController(QObject):
    """Poll the backend for one job until it reaches a terminal status.

    A fetch is dispatched immediately on :meth:`track` and then on every
    timer tick, whether or not the previous fetch has returned. Each fetch
    carries a sequence number; results for another job, results that arrive
    after :meth:`stop`, and results older than one already applied are
    dropped. The first terminal snapshot is recorded in the history store
    exactly once.
    """

    snapshot_updated = Signal(object)
    job_completed = Signal(object)
    fetch_failed = Signal(str, str)
    state_changed = Signal(str)
    tracking_started = Signal(str)

    DEFAULT_INTERVAL_MS = 2000

    def __init__(
        self,
        api_client: EtlApiClient,
        history_store: HistoryStore,
        interval_ms: int = DEFAULT_INTERVAL_MS,
        run_in_background: bool = True,
        parent: Optional[QObject] = None,
    ) -> None:
        super().__init__(parent)
        self._api_client = api_client
        self._history_store = history_store
        self._run_in_background = run_in_background
        self._timer = QTimer(self)
        self._timer.setInterval(interval_ms)
        self._timer.timeout.connect(self.poll_now)

        self._state = TrackingState.IDLE
        self._job_id: Optional[str] = None
        self._file_name: Optional[str] = None
        self._file_type: Optional[str] = None
        self._started_at: Optional[datetime] = None
        self._ended_at: Optional[datetime] = None
        self._terminal_handled = False
        self._last_snapshot: Optional[JobSnapshot] = None
        self._sequence = 0
        self._last_applied = 0
        self._inflight: Dict[int, StatusFetchWorker] = {}

    @property
    def state(self) -> TrackingState:
        return self._state

    @property
    def current_job_id(self) -> Optional[str]:
        return self._job_id

    @property
    def is_tracking(self) -> bool:
        return self._state is TrackingState.TRACKING

    @property
    def is_polling(self) -> bool:
        """True while the recurring fetch timer is scheduled."""
        return self._timer.isActive()

    @property
    def last_snapshot(self) -> Optional[JobSnapshot]:
        return self._last_snapshot

    @property
    def started_at(self) -> Optional[datetime]:
        return self._started_at

    def set_interval(self, interval_ms: int) -> None:
        self._timer.setInterval(interval_ms)

    def set_api_client(self, api_client: EtlApiClient) -> None:
        """Swap the client used by future fetches, e.g. after settings change."""
        self._api_client = api_client

    def track(self, job_id: str, file_name: Optional[str] = None, file_type: Optional[str] = None) -> None:
        """Start polling ``job_id``; any previously tracked job is abandoned."""
        job_id = self._require_job_id(job_id)
        self._timer.stop()
        self._job_id = job_id
        self._file_name = file_name
        self._file_type = file_type
        self._started_at = datetime.now(timezone.utc)
        self._ended_at = None
        self._terminal_handled = False
        self._last_snapshot = None
        # Fetches dispatched before this point belong to the previous job.
        self._last_applied = self._sequence
        self._set_state(TrackingState.TRACKING)
        logger.info("Tracking job %s (%s)", job_id, file_name or "file unknown")
        self.tracking_started.emit(job_id)

        self.poll_now()
        if self._state is TrackingState.TRACKING:
            self._timer.start()

    def update_job_id(self, job_id: str) -> None:
        """Re-key the tracked job, e.g. once the backend assigns the real id."""
        job_id = self._require_job_id(job_id)
        if job_id == self._job_id:
            return
        logger.info("Tracked job id changed from %s to %s", self._job_id, job_id)
        self._job_id = job_id
        self._last_applied = self._sequence

    def stop(self) -> None:
        """Cancel the recurring fetch. Safe to call at any time, any number of times."""
        self._timer.stop()
        if self._state is TrackingState.TRACKING:
            logger.info("Stopped tracking job %s", self._job_id)
            self._set_state(TrackingState.IDLE)

    def poll_now(self) -> None:
        """Dispatch one status fetch for the tracked job."""
        if self._state is not TrackingState.TRACKING or not self._job_id:
            return
        self._sequence += 1
        sequence, job_id = self._sequence, self._job_id

        if self._run_in_background:
            worker = StatusFetchWorker(self._api_client, sequence, job_id)
            worker.status_received.connect(self.on_status_received)
            worker.status_failed.connect(self.on_status_failed)
            worker.finished.connect(self._release_finished_workers)
            # Workers stay referenced until their thread has exited.
            self._inflight[sequence] = worker
            worker.start()
            return

        try:
            payload = self._api_client.fetch_job_status(job_id)
        except TRANSIENT_ERRORS as exc:
            self.on_status_failed(sequence, job_id, str(exc))
            return
        self.on_status_received(sequence, job_id, payload)

    def on_status_received(self, sequence: int, job_id: str, payload: Any) -> None:
        """Apply a fetched payload unless it is stale or for another job."""
        if job_id != self._job_id:
            logger.debug("Ignoring status for job %s while tracking %s", job_id, self._job_id)
            return
        if sequence <= self._last_applied:
            logger.debug("Ignoring out-of-order status #%d for job %s", sequence, job_id)
            return
        if self._terminal_handled:
            logger.debug("Terminal status for job %s already processed; ignoring", job_id)
            return
        if self._state is not TrackingState.TRACKING:
            logger.debug("Ignoring status for job %s after polling stopped", job_id)
            return

        try:
            snapshot = normalize_status(payload, job_id, self._file_name, self._file_type)
        except ValueError as exc:
            self._report_failure(job_id, f"Malformed status payload: {exc}")
            return

        self._last_applied = sequence
        self._last_snapshot = snapshot
        self.snapshot_updated.emit(snapshot)
        if snapshot.status.is_terminal:
            self._handle_terminal(snapshot)

    def on_status_failed(self, sequence: int, job_id: str, message: str) -> None:
        """Log a failed fetch; polling carries on with the next tick."""
        if job_id != self._job_id or self._state is not TrackingState.TRACKING:
            return
        self._report_failure(job_id, message)

    def shutdown(self, timeout_ms: int = 3000) -> None:
        """Stop polling and wait for fetches still in flight to return."""
        self.stop()
        for worker in list(self._inflight.values()):
            worker.wait(timeout_ms)
        self._release_finished_workers()

    def _release_finished_workers(self) -> None:
        for sequence, worker in list(self._inflight.items()):
            if worker.isFinished():
                del self._inflight[sequence]
                worker.deleteLater()

    def _report_failure(self, job_id: str, message: str) -> None:
        logger.warning("Error checking status of job %s: %s", job_id, message)
        self.fetch_failed.emit(job_id, message)

    def _handle_terminal(self, snapshot: JobSnapshot) -> None:
        self._terminal_handled = True
        self._timer.stop()
        self._ended_at = datetime.now(timezone.utc)

        entry = self._build_history_entry(snapshot)
        stored = self._history_store.record_terminal(entry)
        logger.info("Job %s finished with status %s", stored.job_id, stored.status.value)

        self._set_state(TrackingState(snapshot.status.value.lower()))
        self.job_completed.emit(stored)

    def _build_history_entry(self, snapshot: JobSnapshot) -> JobHistoryEntry:
        counts = last_step_counts(snapshot.steps)
        # Backend times win over the local tracking window when reported.
        started = snapshot.start_time or self._started_at
        ended = snapshot.end_time or self._ended_at
        duration_ms = 0
        if started and ended:
            duration_ms = max(0, int((ended - started).total_seconds() * 1000))
        return JobHistoryEntry(
            job_id=self._job_id or snapshot.job_id,
            status=snapshot.status,
            file_name=snapshot.file_name,
            file_type=snapshot.file_type,
            timestamp=self._ended_at.isoformat() if self._ended_at else "",
            duration_ms=duration_ms,
            threads_used=snapshot.threads_used or 0,
            read_count=counts.read_count,
            write_count=counts.write_count,
            filter_count=counts.filter_count,
            skip_count=counts.skip_count,
            start_time=snapshot.start_time,
            end_time=snapshot.end_time,
            exit_code=snapshot.exit_code,
            steps=list(snapshot.steps),
        )

    def _set_state(self, state: TrackingState) -> None:
        if state is self._state:
            return
        self._state = state
        self.state_changed.emit(state.value)

    @staticmethod
    def _require_job_id(job_id: Any) -> str:
        if not isinstance(job_id, str) or not job_id.strip():
            raise ValueError("job_id must be a non-empty string")
        return job_id.strip()
