"""Durable, deduplicated history of finished ETL jobs."""

from __future__ import annotations

import copy
import json
import time
from datetime import datetime, timezone
from typing import Any, Iterable, List, Mapping, Optional, Set, Tuple, Union

from PySide6.QtCore import QObject, Signal

from core.models import JobHistoryEntry
from core.normalizer import extract_file_info
from services.logger import get_logger
from services.storage import KeyValueStorage


logger = get_logger("history")

PRIMARY_KEY = "etlJobHistory"
FALLBACK_PREFIX = "etl-job-"
HISTORY_LIMIT = 50

_OLDEST = datetime.min.replace(tzinfo=timezone.utc)


def fallback_key(job_id: str) -> str:
    """Storage key of the per-job mirror record."""
    return f"{FALLBACK_PREFIX}{job_id}"


def _utc_now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def _generate_job_id(taken: Iterable[str]) -> str:
    """Return a time-based id, suffixed when it is already in use."""
    taken = set(taken)
    base = f"job-{int(time.time() * 1000)}"
    candidate, suffix = base, 1
    while candidate in taken:
        candidate = f"{base}-{suffix}"
        suffix += 1
    return candidate


def _sort_key(entry: JobHistoryEntry) -> datetime:
    # Entries with unreadable timestamps sink to the end instead of breaking the sort.
    return entry.sort_time or _OLDEST


class HistoryStore(QObject):
    """Own the persisted job history and reconcile it with per-job fallback records.

    Every terminal job is written twice: into the primary list under
    ``etlJobHistory`` and into its own ``etl-job-{jobId}`` record. The next
    :meth:`load` folds any fallback record whose job is missing from the
    primary list back in, so a lost primary write is recovered on restart.
    """

    history_changed = Signal(list)

    def __init__(
        self,
        storage: KeyValueStorage,
        history_limit: int = HISTORY_LIMIT,
        parent: Optional[QObject] = None,
    ) -> None:
        super().__init__(parent)
        self._storage = storage
        self._history_limit = history_limit
        self._history: List[JobHistoryEntry] = []

    @property
    def history_limit(self) -> int:
        return self._history_limit

    def entries(self) -> List[JobHistoryEntry]:
        """Return a copy of the history, newest first."""
        return copy.deepcopy(self._history)

    def find(self, job_id: str) -> Optional[JobHistoryEntry]:
        for entry in self._history:
            if entry.job_id == job_id:
                return copy.deepcopy(entry)
        return None

    def load(self) -> List[JobHistoryEntry]:
        """Read the primary history and merge in any fallback records."""
        history = self._read_primary()
        recovered, consumed_keys = self._recover_fallback_entries()

        known = {entry.job_id for entry in history}
        for entry in recovered:
            if entry.job_id in known:
                logger.info("Fallback record for job %s already in history, discarding it", entry.job_id)
                continue
            history.insert(0, entry)
            known.add(entry.job_id)
            logger.info("Recovered job %s from fallback storage", entry.job_id)

        history.sort(key=_sort_key, reverse=True)
        self._history = history

        if consumed_keys:
            if self._save():
                for key in consumed_keys:
                    self._remove_key(key)
            else:
                logger.warning("Keeping %d fallback records until history can be saved", len(consumed_keys))

        self._emit_history_update()
        return self.entries()

    def reconcile_on_startup(self) -> List[JobHistoryEntry]:
        """Load history at application start, recovering fallback records."""
        entries = self.load()
        logger.info("History ready with %d entries", len(entries))
        return entries

    def upsert(self, entry: Union[JobHistoryEntry, Mapping[str, Any]]) -> JobHistoryEntry:
        """Insert or replace an entry by job id and move it to the front."""
        stored = self._normalize(entry)
        for index, existing in enumerate(self._history):
            if existing.job_id == stored.job_id:
                logger.info("Updating existing job in history: %s", stored.job_id)
                del self._history[index]
                break

        self._history.insert(0, stored)
        self._save()
        self._emit_history_update()
        logger.info("Job %s added to history", stored.job_id)
        return copy.deepcopy(stored)

    def mirror(self, entry: JobHistoryEntry) -> bool:
        """Write the per-job fallback record; return False when the write failed."""
        payload = entry.to_dict()
        payload["savedAt"] = _utc_now_iso()
        try:
            self._storage.set_item(fallback_key(entry.job_id), json.dumps(payload, ensure_ascii=False))
        except OSError as exc:
            logger.error("Failed to write fallback record for job %s: %s", entry.job_id, exc)
            return False
        return True

    def record_terminal(self, entry: Union[JobHistoryEntry, Mapping[str, Any]]) -> JobHistoryEntry:
        """Persist a finished job to the primary history, then mirror it to its fallback key."""
        stored = self.upsert(entry)
        self.mirror(stored)
        return stored

    def clear(self) -> None:
        """Drop every entry, including fallback records still waiting for recovery."""
        self._history = []
        self._save()
        for key in self._fallback_keys():
            self._remove_key(key)
        self._emit_history_update()
        logger.info("History cleared")

    def _normalize(
        self,
        entry: Union[JobHistoryEntry, Mapping[str, Any]],
        taken: Optional[Set[str]] = None,
        stamp_missing: bool = True,
    ) -> JobHistoryEntry:
        """Fill in defaults so every stored entry is complete and addressable.

        ``taken`` holds ids a generated id must not collide with; it defaults
        to the ids already in the history. Entries read back from storage
        keep a missing timestamp empty so they sort last instead of jumping
        to the front.
        """
        raw = entry.to_dict() if isinstance(entry, JobHistoryEntry) else dict(entry)
        normalized = JobHistoryEntry.from_dict(raw)
        if not normalized.job_id:
            if taken is None:
                taken = {existing.job_id for existing in self._history}
            normalized.job_id = _generate_job_id(taken)
            logger.warning("History entry missing jobId, generated %s", normalized.job_id)
        if not normalized.timestamp and stamp_missing:
            normalized.timestamp = _utc_now_iso()
        normalized.file_name, normalized.file_type = extract_file_info(
            raw, normalized.file_name, normalized.file_type
        )
        return normalized

    def _read_primary(self) -> List[JobHistoryEntry]:
        try:
            text = self._storage.get_item(PRIMARY_KEY)
        except (OSError, UnicodeDecodeError) as exc:
            logger.warning("Cannot read job history: %s", exc)
            return []
        if not text:
            return []
        try:
            raw = json.loads(text)
        except json.JSONDecodeError:
            logger.warning("Job history is corrupted, starting fresh.")
            return []
        if not isinstance(raw, list):
            logger.warning("Job history has unexpected shape %s, starting fresh.", type(raw).__name__)
            return []

        items = [item for item in raw if isinstance(item, Mapping)]
        # Generated ids must not collide with ids stored further down the list.
        reserved = {str(item.get("jobId")).strip() for item in items if item.get("jobId")}
        history: List[JobHistoryEntry] = []
        seen: Set[str] = set()
        for item in items:
            entry = self._normalize(item, taken=seen | reserved, stamp_missing=False)
            if entry.job_id in seen:
                continue
            seen.add(entry.job_id)
            history.append(entry)
        return history

    def _fallback_keys(self) -> List[str]:
        try:
            return [key for key in self._storage.keys() if key.startswith(FALLBACK_PREFIX)]
        except OSError as exc:
            logger.warning("Cannot list fallback records: %s", exc)
            return []

    def _recover_fallback_entries(self) -> Tuple[List[JobHistoryEntry], List[str]]:
        """Parse every fallback record; unreadable ones are left in place."""
        recovered: List[JobHistoryEntry] = []
        consumed: List[str] = []
        for key in self._fallback_keys():
            try:
                text = self._storage.get_item(key)
                raw = json.loads(text) if text else None
            except (OSError, UnicodeDecodeError, json.JSONDecodeError) as exc:
                logger.error("Error parsing job data from key %s: %s", key, exc)
                continue
            if not isinstance(raw, Mapping) or not raw.get("jobId"):
                logger.warning("Fallback record %s has no jobId, skipping", key)
                continue
            recovered.append(self._normalize(raw, stamp_missing=False))
            consumed.append(key)
        return recovered, consumed

    def _save(self) -> bool:
        """Persist the first ``history_limit`` entries; return False on failure."""
        serialized = [entry.to_dict() for entry in self._history[: self._history_limit]]
        try:
            self._storage.set_item(PRIMARY_KEY, json.dumps(serialized, ensure_ascii=False))
        except OSError as exc:
            logger.error("Error saving job history: %s", exc)
            return False
        return True

    def _remove_key(self, key: str) -> None:
        try:
            self._storage.remove_item(key)
        except OSError as exc:
            logger.warning("Cannot remove storage key %s: %s", key, exc)

    def _emit_history_update(self) -> None:
        self.history_changed.emit(self.entries())
