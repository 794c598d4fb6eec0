"""Job history panel listing finished ETL jobs."""

from __future__ import annotations

from typing import List, Optional

from PySide6.QtCore import Qt, Signal
from PySide6.QtGui import QColor
from PySide6.QtWidgets import (
    QHBoxLayout,
    QLabel,
    QPushButton,
    QTreeWidget,
    QTreeWidgetItem,
    QVBoxLayout,
    QWidget,
)

from core.formatting import format_duration, format_timestamp
from core.models import JobHistoryEntry, JobStatus


STATUS_COLORS = {
    JobStatus.COMPLETED: "#3fb950",
    JobStatus.FAILED: "#f85149",
    JobStatus.STOPPED: "#d29922",
    JobStatus.RUNNING: "#4a90e2",
}

COLUMNS = [
    "Job ID",
    "File",
    "Type",
    "Status",
    "Processed At",
    "Duration",
    "Threads",
    "Read",
    "Written",
    "Filtered",
    "Skipped",
]


class JobHistoryWidget(QWidget):
    """Display finished jobs, newest first, with a clear action."""

    clear_requested = Signal()
    job_selected = Signal(str)

    def __init__(self, parent=None) -> None:
        super().__init__(parent)
        self._entries: List[JobHistoryEntry] = []
        self._init_ui()

    def _init_ui(self) -> None:
        layout = QVBoxLayout(self)
        layout.setContentsMargins(0, 0, 0, 0)

        toolbar = QHBoxLayout()
        self.count_label = QLabel("No job history available")
        toolbar.addWidget(self.count_label)
        toolbar.addStretch()
        self.clear_button = QPushButton("Clear History")
        self.clear_button.setEnabled(False)
        self.clear_button.clicked.connect(self.clear_requested)
        toolbar.addWidget(self.clear_button)
        layout.addLayout(toolbar)

        self.tree = QTreeWidget()
        self.tree.setRootIsDecorated(False)
        self.tree.setHeaderLabels(COLUMNS)
        self.tree.setColumnWidth(0, 120)
        self.tree.setColumnWidth(1, 180)
        self.tree.setColumnWidth(4, 150)
        self.tree.itemDoubleClicked.connect(self._handle_double_click)
        layout.addWidget(self.tree)

    def update_history(self, entries: List[JobHistoryEntry]) -> None:
        """Refresh the list from the store's ordered entries."""
        self._entries = list(entries or [])
        selected = self._current_selection_id()
        self.tree.clear()
        for entry in self._entries:
            item = QTreeWidgetItem(
                [
                    entry.job_id,
                    entry.file_name,
                    entry.file_type,
                    entry.status.value,
                    format_timestamp(entry.timestamp),
                    format_duration(entry.duration_ms),
                    str(entry.threads_used or "N/A"),
                    str(entry.read_count),
                    str(entry.write_count),
                    str(entry.filter_count),
                    str(entry.skip_count),
                ]
            )
            item.setData(0, Qt.UserRole, entry.job_id)
            color = STATUS_COLORS.get(entry.status)
            if color:
                item.setForeground(3, QColor(color))
            if entry.exit_code:
                item.setToolTip(3, f"Exit code: {entry.exit_code}")
            self.tree.addTopLevelItem(item)
            if entry.job_id == selected:
                item.setSelected(True)

        count = len(self._entries)
        self.count_label.setText(f"{count} job(s)" if count else "No job history available")
        self.clear_button.setEnabled(bool(count))

    def _current_selection_id(self) -> Optional[str]:
        items = self.tree.selectedItems()
        if not items:
            return None
        return items[0].data(0, Qt.UserRole)

    def _handle_double_click(self, item: QTreeWidgetItem, _column: int) -> None:
        job_id = item.data(0, Qt.UserRole)
        if job_id:
            self.job_selected.emit(job_id)
