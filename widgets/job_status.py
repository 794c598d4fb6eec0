"""Live status panel for the job currently being tracked."""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Optional

from PySide6.QtWidgets import QGridLayout, QLabel, QTreeWidget, QTreeWidgetItem, QVBoxLayout, QWidget

from core.formatting import format_duration, format_efficiency, format_timestamp
from core.metrics import aggregate_totals, calculate_efficiency
from core.models import JobSnapshot, JobStatus


STATUS_STYLES = {
    JobStatus.COMPLETED: "color: #3fb950;",
    JobStatus.FAILED: "color: #f85149;",
    JobStatus.STOPPED: "color: #f85149;",
    JobStatus.STARTED: "color: #d29922;",
    JobStatus.STARTING: "color: #d29922;",
}


class JobStatusWidget(QWidget):
    """Job header fields, run totals and a per-step metrics table."""

    def __init__(self, parent=None) -> None:
        """Create labels and the step table."""
        super().__init__(parent)
        self._init_ui()

    def _init_ui(self) -> None:
        layout = QVBoxLayout(self)
        layout.setContentsMargins(0, 0, 0, 0)

        grid = QGridLayout()
        grid.setHorizontalSpacing(24)
        self.job_id_label = QLabel("Job: -")
        self.status_label = QLabel("Status: -")
        self.start_label = QLabel("Started: N/A")
        self.end_label = QLabel("Ended: N/A")
        self.duration_label = QLabel("Duration: N/A")
        self.threads_label = QLabel("Threads: N/A")
        grid.addWidget(self.job_id_label, 0, 0)
        grid.addWidget(self.status_label, 0, 1)
        grid.addWidget(self.threads_label, 0, 2)
        grid.addWidget(self.start_label, 1, 0)
        grid.addWidget(self.end_label, 1, 1)
        grid.addWidget(self.duration_label, 1, 2)
        layout.addLayout(grid)

        self.totals_label = QLabel()
        layout.addWidget(self.totals_label)

        self.steps_tree = QTreeWidget()
        self.steps_tree.setRootIsDecorated(False)
        self.steps_tree.setHeaderLabels(
            ["Step", "Status", "Read", "Write", "Filter", "Skip", "Efficiency", "Duration"]
        )
        self.steps_tree.setColumnWidth(0, 180)
        self.steps_tree.setToolTip(
            "Filter: records excluded by processor logic. "
            "Skip: records skipped because of read, process or write errors. "
            "Efficiency: written / read."
        )
        layout.addWidget(self.steps_tree)

    def reset(self, job_id: str) -> None:
        """Clear the panel for a newly tracked job."""
        self.job_id_label.setText(f"Job: {job_id}")
        self._set_status(JobStatus.STARTING)
        self.start_label.setText(f"Started: {format_timestamp(datetime.now(timezone.utc))}")
        self.end_label.setText("Ended: N/A")
        self.duration_label.setText("Duration: Calculating...")
        self.threads_label.setText("Threads: Loading...")
        self.totals_label.setText("Loading step details...")
        self.steps_tree.clear()

    def show_snapshot(self, snapshot: JobSnapshot, tracked_since: Optional[datetime] = None) -> None:
        """Render the latest polled snapshot."""
        self.job_id_label.setText(f"Job: {snapshot.job_id}")
        self._set_status(snapshot.status)
        self.start_label.setText(f"Started: {format_timestamp(snapshot.start_time)}")
        self.end_label.setText(f"Ended: {format_timestamp(snapshot.end_time)}")

        started = snapshot.start_time or tracked_since
        if started:
            ended = snapshot.end_time or datetime.now(timezone.utc)
            duration_ms = int((ended - started).total_seconds() * 1000)
            self.duration_label.setText(f"Duration: {format_duration(duration_ms)}")
        else:
            self.duration_label.setText("Duration: N/A")
        threads = snapshot.threads_used if snapshot.threads_used is not None else "N/A"
        self.threads_label.setText(f"Threads: {threads}")

        totals = aggregate_totals(snapshot.steps)
        self.totals_label.setText(
            f"{snapshot.file_name} ({snapshot.file_type}) | read {totals.read_count}, "
            f"written {totals.write_count}, filtered {totals.filter_count}, "
            f"skipped {totals.skip_count}, efficiency {format_efficiency(totals.efficiency)}"
        )

        self.steps_tree.clear()
        for step in snapshot.steps:
            self.steps_tree.addTopLevelItem(
                QTreeWidgetItem(
                    [
                        step.step_name,
                        step.status.value,
                        str(step.read_count),
                        str(step.write_count),
                        str(step.filter_count),
                        str(step.effective_skip_count),
                        format_efficiency(calculate_efficiency(step.read_count, step.write_count)),
                        format_duration(step.duration_ms),
                    ]
                )
            )

    def _set_status(self, status: JobStatus) -> None:
        self.status_label.setText(f"Status: {status.value}")
        self.status_label.setStyleSheet(STATUS_STYLES.get(status, ""))
