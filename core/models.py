"""Shared data models used across the ETL monitor services and UI."""

from __future__ import annotations

import math
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Mapping, Optional


class JobStatus(str, Enum):
    """Batch status reported by the ETL backend for jobs and steps."""

    STARTING = "STARTING"
    STARTED = "STARTED"
    RUNNING = "RUNNING"
    COMPLETED = "COMPLETED"
    FAILED = "FAILED"
    STOPPED = "STOPPED"
    UNKNOWN = "UNKNOWN"

    @classmethod
    def parse(cls, value: Any) -> "JobStatus":
        """Map a raw status value to a member, defaulting to UNKNOWN."""
        if isinstance(value, cls):
            return value
        if not isinstance(value, str):
            return cls.UNKNOWN
        try:
            return cls(value.strip().upper())
        except ValueError:
            return cls.UNKNOWN

    @property
    def is_terminal(self) -> bool:
        """Return True for statuses after which no further change is expected."""
        return self in TERMINAL_STATUSES


TERMINAL_STATUSES = frozenset({JobStatus.COMPLETED, JobStatus.FAILED, JobStatus.STOPPED})


class TrackingState(str, Enum):
    """Lifecycle of the polling controller for its tracked job."""

    IDLE = "idle"
    TRACKING = "tracking"
    COMPLETED = "completed"
    FAILED = "failed"
    STOPPED = "stopped"


def coerce_count(value: Any, default: int = 0) -> int:
    """Return a non-negative integer counter, falling back to ``default``."""
    if isinstance(value, bool) or value is None:
        return default
    if isinstance(value, str):
        try:
            value = float(value.strip())
        except ValueError:
            return default
    if not isinstance(value, (int, float)) or not math.isfinite(value):
        return default
    return max(0, int(value))


def _optional_count(value: Any) -> Optional[int]:
    if value is None:
        return None
    return coerce_count(value)


def parse_timestamp(value: Any) -> Optional[datetime]:
    """Parse ISO 8601 strings or epoch milliseconds into an aware datetime."""
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, datetime):
        return value if value.tzinfo else value.replace(tzinfo=timezone.utc)
    if isinstance(value, (int, float)):
        try:
            return datetime.fromtimestamp(value / 1000, tz=timezone.utc)
        except (OverflowError, OSError, ValueError):
            return None
    if not isinstance(value, str) or not value.strip():
        return None
    text = value.strip()
    if text.endswith("Z"):
        text = text[:-1] + "+00:00"
    try:
        parsed = datetime.fromisoformat(text)
    except ValueError:
        return None
    return parsed if parsed.tzinfo else parsed.replace(tzinfo=timezone.utc)


def _isoformat(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value else None


def _text(value: Any) -> Optional[str]:
    if value is None:
        return None
    text = str(value).strip()
    return text or None


def parse_steps(value: Any) -> List["StepReport"]:
    """Build step reports from a raw list, skipping anything that is not an object."""
    if not isinstance(value, list):
        return []
    return [StepReport.from_dict(item) for item in value if isinstance(item, Mapping)]


@dataclass
class StepReport:
    """Counters reported by a single step of a job execution."""

    step_name: str
    status: JobStatus = JobStatus.UNKNOWN
    read_count: int = 0
    write_count: int = 0
    filter_count: int = 0
    skip_count: int = 0
    read_skip_count: Optional[int] = None
    process_skip_count: Optional[int] = None
    write_skip_count: Optional[int] = None
    commit_count: Optional[int] = None
    rollback_count: Optional[int] = None
    start_time: Optional[datetime] = None
    end_time: Optional[datetime] = None

    @property
    def effective_skip_count(self) -> int:
        """Sum the skip sub-counters when present, else use the plain skip count."""
        parts = [
            count
            for count in (self.read_skip_count, self.process_skip_count, self.write_skip_count)
            if count is not None
        ]
        if parts:
            return sum(parts)
        return self.skip_count

    @property
    def duration_ms(self) -> Optional[int]:
        """Elapsed step time, available once both timestamps are known."""
        if self.start_time and self.end_time:
            return int((self.end_time - self.start_time).total_seconds() * 1000)
        return None

    @classmethod
    def from_dict(cls, payload: Mapping[str, Any]) -> "StepReport":
        """Build a step from a backend payload, defaulting invalid counters to zero."""
        return cls(
            step_name=_text(payload.get("stepName")) or "Unknown Step",
            status=JobStatus.parse(payload.get("status")),
            read_count=coerce_count(payload.get("readCount")),
            write_count=coerce_count(payload.get("writeCount")),
            filter_count=coerce_count(payload.get("filterCount")),
            skip_count=coerce_count(payload.get("skipCount")),
            read_skip_count=_optional_count(payload.get("readSkipCount")),
            process_skip_count=_optional_count(payload.get("processSkipCount")),
            write_skip_count=_optional_count(payload.get("writeSkipCount")),
            commit_count=_optional_count(payload.get("commitCount")),
            rollback_count=_optional_count(payload.get("rollbackCount")),
            start_time=parse_timestamp(payload.get("startTime")),
            end_time=parse_timestamp(payload.get("endTime")),
        )

    def to_dict(self) -> Dict[str, Any]:
        """Serialise using the backend's camelCase field names."""
        payload: Dict[str, Any] = {
            "stepName": self.step_name,
            "status": self.status.value,
            "readCount": self.read_count,
            "writeCount": self.write_count,
            "filterCount": self.filter_count,
            "skipCount": self.skip_count,
            "startTime": _isoformat(self.start_time),
            "endTime": _isoformat(self.end_time),
        }
        optional = {
            "readSkipCount": self.read_skip_count,
            "processSkipCount": self.process_skip_count,
            "writeSkipCount": self.write_skip_count,
            "commitCount": self.commit_count,
            "rollbackCount": self.rollback_count,
        }
        payload.update({key: value for key, value in optional.items() if value is not None})
        return payload


@dataclass
class JobSnapshot:
    """Canonical view of one status poll for the tracked job."""

    job_id: str
    status: JobStatus = JobStatus.UNKNOWN
    start_time: Optional[datetime] = None
    end_time: Optional[datetime] = None
    threads_used: Optional[int] = None
    exit_code: Optional[str] = None
    steps: List[StepReport] = field(default_factory=list)
    file_name: str = "Unknown file"
    file_type: str = "Unknown type"


@dataclass
class JobHistoryEntry:
    """Persisted summary of a job that reached a terminal status."""

    job_id: str
    status: JobStatus = JobStatus.UNKNOWN
    file_name: str = "Unknown file"
    file_type: str = "Unknown type"
    timestamp: str = ""
    duration_ms: int = 0
    threads_used: int = 0
    read_count: int = 0
    write_count: int = 0
    filter_count: int = 0
    skip_count: int = 0
    start_time: Optional[datetime] = None
    end_time: Optional[datetime] = None
    exit_code: Optional[str] = None
    steps: List[StepReport] = field(default_factory=list)

    @property
    def sort_time(self) -> Optional[datetime]:
        """Parsed insertion timestamp, or None when it cannot be read."""
        return parse_timestamp(self.timestamp)

    def to_dict(self) -> Dict[str, Any]:
        """Serialise to the persisted JSON layout."""
        return {
            "jobId": self.job_id,
            "status": self.status.value,
            "fileName": self.file_name,
            "fileType": self.file_type,
            "timestamp": self.timestamp,
            "durationMs": self.duration_ms,
            "threadsUsed": self.threads_used,
            "readCount": self.read_count,
            "writeCount": self.write_count,
            "filterCount": self.filter_count,
            "skipCount": self.skip_count,
            "startTime": _isoformat(self.start_time),
            "endTime": _isoformat(self.end_time),
            "exitCode": self.exit_code,
            "steps": [step.to_dict() for step in self.steps],
        }

    @classmethod
    def from_dict(cls, payload: Mapping[str, Any]) -> "JobHistoryEntry":
        """Rebuild an entry from persisted JSON, tolerating missing fields.

        Missing identifiers, file names and timestamps are left empty here;
        the history store fills those in when an entry is stored.
        """
        steps = parse_steps(payload.get("steps"))
        return cls(
            job_id=_text(payload.get("jobId")) or "",
            status=JobStatus.parse(payload.get("status")),
            file_name=_text(payload.get("fileName")) or "",
            file_type=_text(payload.get("fileType")) or "",
            timestamp=_text(payload.get("timestamp")) or _text(payload.get("savedAt")) or "",
            duration_ms=coerce_count(payload.get("durationMs")),
            threads_used=coerce_count(payload.get("threadsUsed")),
            read_count=coerce_count(payload.get("readCount")),
            write_count=coerce_count(payload.get("writeCount")),
            filter_count=coerce_count(payload.get("filterCount")),
            skip_count=coerce_count(payload.get("skipCount")),
            start_time=parse_timestamp(payload.get("startTime")),
            end_time=parse_timestamp(payload.get("endTime")),
            exit_code=_text(payload.get("exitCode")),
            steps=steps,
        )


@dataclass
class UploadResult:
    """Job handle returned by the backend after accepting an upload."""

    job_id: str
    file_name: str


@dataclass
class ApiError(Exception):
    """Wrapper for API errors that preserves server metadata and status codes."""

    message: str
    status_code: Optional[int] = None
    payload: Optional[Dict[str, Any]] = None

    def __str__(self) -> str:
        details = f"{self.message}"
        if self.status_code:
            details += f" (status {self.status_code})"
        return details
