"""Map raw status payloads from the ETL backend into job snapshots."""

from __future__ import annotations

import re
from typing import Any, Mapping, Optional, Tuple

from core.models import JobSnapshot, JobStatus, coerce_count, parse_steps, parse_timestamp


UNKNOWN_FILE = "Unknown file"
UNKNOWN_TYPE = "Unknown type"

# Spring Batch job parameters arrive as "{value=C:\data\in.csv, type=class java.lang.String, ...}".
_WRAPPED_VALUE = re.compile(r"value=([^,}]*)")
_PATH_SEPARATORS = re.compile(r"[\\/]")


def _as_text(value: Any) -> Optional[str]:
    """Return a usable string, treating blanks and placeholders as absent."""
    if not isinstance(value, str):
        return None
    text = value.strip()
    if not text or text in (UNKNOWN_FILE, UNKNOWN_TYPE):
        return None
    return text


def unwrap_parameter(raw: Any) -> Optional[str]:
    """Extract the inner value of a job parameter in any of its serialised forms."""
    if isinstance(raw, Mapping):
        raw = raw.get("value")
    if raw is None or isinstance(raw, (Mapping, list)):
        return None
    text = str(raw).strip()
    if text.startswith("{") or "{value=" in text:
        match = _WRAPPED_VALUE.search(text)
        if not match:
            return None
        text = match.group(1).strip()
    return text or None


def file_name_from_path(path: str) -> Optional[str]:
    """Return the final segment of a POSIX or Windows path."""
    segment = _PATH_SEPARATORS.split(path)[-1].strip()
    return segment or None


def file_type_from_name(file_name: str) -> Optional[str]:
    """Return the lower-cased extension of a file name."""
    if "." not in file_name:
        return None
    suffix = file_name.rsplit(".", 1)[1].strip().lower()
    return suffix or None


def extract_file_info(
    payload: Mapping[str, Any],
    file_name: Optional[str] = None,
    file_type: Optional[str] = None,
) -> Tuple[str, str]:
    """Work out the file name and type for a job, falling back to placeholders.

    Explicit arguments win, then the payload's ``fileName``/``fileType``
    fields, then the ``filePath``/``fileType`` entries of ``jobParameters``.
    When no type is given anywhere it is taken from the file extension.
    """
    name = _as_text(file_name) or _as_text(payload.get("fileName"))
    kind = _as_text(file_type) or _as_text(payload.get("fileType"))

    parameters = payload.get("jobParameters")
    if not isinstance(parameters, Mapping):
        parameters = {}

    if not name:
        path = unwrap_parameter(parameters.get("filePath"))
        if path:
            name = file_name_from_path(path)
    if not kind:
        kind = unwrap_parameter(parameters.get("fileType"))
    if not kind and name:
        kind = file_type_from_name(name)

    return name or UNKNOWN_FILE, kind or UNKNOWN_TYPE


def normalize_status(
    payload: Any,
    job_id: Optional[str] = None,
    file_name: Optional[str] = None,
    file_type: Optional[str] = None,
) -> JobSnapshot:
    """Convert a ``GET /status/{jobId}`` payload into a :class:`JobSnapshot`.

    ``job_id`` is used when the payload does not carry its own identifier,
    which is the case for the backend's NOT_FOUND responses. A payload that
    is not a JSON object raises ``ValueError``.
    """
    if not isinstance(payload, Mapping):
        raise ValueError("Status payload is not a JSON object")

    raw_id = payload.get("jobId")
    resolved_id = str(raw_id).strip() if raw_id not in (None, "") else (job_id or "")
    if not resolved_id:
        raise ValueError("Status payload has no job identifier")

    threads = payload.get("threadsUsed")
    if threads is None:
        threads = payload.get("maxThreads")

    name, kind = extract_file_info(payload, file_name, file_type)
    exit_code = payload.get("exitCode")
    return JobSnapshot(
        job_id=resolved_id,
        status=JobStatus.parse(payload.get("status")),
        start_time=parse_timestamp(payload.get("startTime")),
        end_time=parse_timestamp(payload.get("endTime")),
        threads_used=coerce_count(threads) if threads is not None else None,
        exit_code=str(exit_code) if exit_code is not None else None,
        steps=parse_steps(payload.get("steps")),
        file_name=name,
        file_type=kind,
    )
