"""Aggregate step counters reported by the ETL backend."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Iterable, Sequence

from core.models import StepReport


def calculate_efficiency(read_count: int, write_count: int) -> float:
    """Return the share of read records that were written, as a percentage.

    A step that has not read anything yet has an efficiency of 0.
    """
    if not read_count or read_count <= 0:
        return 0.0
    return write_count / read_count * 100


@dataclass(frozen=True)
class StepCounts:
    """Read/write/filter/skip counters for a step or a whole job."""

    read_count: int = 0
    write_count: int = 0
    filter_count: int = 0
    skip_count: int = 0

    @property
    def efficiency(self) -> float:
        return calculate_efficiency(self.read_count, self.write_count)


def aggregate_totals(steps: Iterable[StepReport]) -> StepCounts:
    """Sum the counters of every step; skips use the per-step sub-counters when present."""
    read = write = filtered = skipped = 0
    for step in steps:
        read += step.read_count
        write += step.write_count
        filtered += step.filter_count
        skipped += step.effective_skip_count
    return StepCounts(read, write, filtered, skipped)


def last_step_counts(steps: Sequence[StepReport]) -> StepCounts:
    """Counters of the final step, which history entries treat as authoritative."""
    if not steps:
        return StepCounts()
    step = steps[-1]
    return StepCounts(
        read_count=step.read_count,
        write_count=step.write_count,
        filter_count=step.filter_count,
        skip_count=step.effective_skip_count,
    )
