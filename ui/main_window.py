"""Main Qt window and UI workflow bindings for the ETL job monitor."""

from __future__ import annotations

from pathlib import Path
from typing import Any, Optional

from PySide6.QtCore import Qt
from PySide6.QtWidgets import (
    QFileDialog,
    QFormLayout,
    QHBoxLayout,
    QLabel,
    QLineEdit,
    QMainWindow,
    QMessageBox,
    QPushButton,
    QSpinBox,
    QSplitter,
    QStatusBar,
    QVBoxLayout,
    QWidget,
)

from core.config import AppConfig, ConfigManager
from core.models import JobHistoryEntry, JobSnapshot, JobStatus, TrackingState
from core.normalizer import file_type_from_name
from services.api_client import EtlApiClient
from services.history_store import HistoryStore
from services.logger import get_logger
from services.polling_controller import PollingController, ProcessedDataWorker
from widgets.job_history import JobHistoryWidget
from widgets.job_status import JobStatusWidget
from widgets.log_view import LogViewWidget


logger = get_logger("ui")

UPLOAD_FILTER = "Data files (*.csv *.json *.xlsx *.xls);;All files (*)"


class MainWindow(QMainWindow):
    """Main application window.

    The window owns no job state. It renders what the polling controller and
    the history store emit, and forwards user actions to them.
    """

    def __init__(
        self,
        config_manager: ConfigManager,
        config: AppConfig,
        api_client: EtlApiClient,
        history_store: HistoryStore,
        controller: PollingController,
    ) -> None:
        """Keep references to the injected services and build the UI."""
        super().__init__()
        self.setWindowTitle("ETL Job Monitor")
        self.resize(1100, 720)

        self.config_manager = config_manager
        self.config = config
        self.api_client = api_client
        self.history_store = history_store
        self.controller = controller
        self._data_worker: Optional[ProcessedDataWorker] = None

        self._init_ui()
        self._load_config_to_ui()
        self._connect_signals()
        self.history_view.update_history(self.history_store.entries())
        self._toggle_controls(active=False)

    def _init_ui(self) -> None:
        """Construct the split layout: tracking on the left, history and log on the right."""
        central = QWidget()
        central_layout = QVBoxLayout(central)
        central_layout.setContentsMargins(16, 12, 16, 12)

        splitter = QSplitter(Qt.Horizontal)
        splitter.setChildrenCollapsible(False)
        central_layout.addWidget(splitter, 1)

        self.status_view = JobStatusWidget()
        self.history_view = JobHistoryWidget()
        self.log_view = LogViewWidget()

        left = QWidget()
        left_layout = QVBoxLayout(left)
        left_layout.setContentsMargins(0, 0, 0, 0)
        left_layout.setSpacing(12)
        left_layout.addWidget(self._create_section_label("Settings"))
        left_layout.addWidget(self._create_settings_panel())
        left_layout.addWidget(self._create_section_label("Job Status"))
        left_layout.addWidget(self._create_tracking_panel())
        left_layout.addWidget(self.status_view, 1)
        splitter.addWidget(left)

        right_splitter = QSplitter(Qt.Vertical)
        right_splitter.setChildrenCollapsible(False)
        right_splitter.addWidget(self._wrap_section("Job History", self.history_view))
        right_splitter.addWidget(self._wrap_section("Log", self.log_view))
        right_splitter.setStretchFactor(0, 3)
        right_splitter.setStretchFactor(1, 1)
        splitter.addWidget(right_splitter)

        splitter.setStretchFactor(0, 2)
        splitter.setStretchFactor(1, 3)

        self.setCentralWidget(central)
        self.setStatusBar(QStatusBar())

    def _create_section_label(self, text: str) -> QLabel:
        label = QLabel(text)
        label.setAlignment(Qt.AlignLeft | Qt.AlignVCenter)
        label.setStyleSheet("font-weight: 600; font-size: 14px; margin-bottom: 4px;")
        return label

    def _wrap_section(self, title: str, widget: QWidget) -> QWidget:
        container = QWidget()
        layout = QVBoxLayout(container)
        layout.setContentsMargins(0, 0, 0, 0)
        layout.setSpacing(6)
        layout.addWidget(self._create_section_label(title))
        layout.addWidget(widget)
        return container

    def _create_settings_panel(self) -> QWidget:
        """Backend address, token and poll interval, applied on demand."""
        container = QWidget()
        layout = QVBoxLayout(container)
        layout.setContentsMargins(0, 0, 0, 0)

        form = QFormLayout()
        form.setFieldGrowthPolicy(QFormLayout.ExpandingFieldsGrow)
        self.base_url_input = QLineEdit()
        form.addRow("Backend URL", self.base_url_input)
        self.token_input = QLineEdit()
        self.token_input.setEchoMode(QLineEdit.Password)
        form.addRow("API Token", self.token_input)
        self.interval_spin = QSpinBox()
        self.interval_spin.setRange(250, 60000)
        self.interval_spin.setSingleStep(250)
        self.interval_spin.setSuffix(" ms")
        form.addRow("Poll interval", self.interval_spin)
        layout.addLayout(form)

        row = QHBoxLayout()
        row.addStretch()
        self.apply_button = QPushButton("Apply Settings")
        self.apply_button.clicked.connect(self._persist_config)
        row.addWidget(self.apply_button)
        layout.addLayout(row)
        return container

    def _create_tracking_panel(self) -> QWidget:
        container = QWidget()
        row = QHBoxLayout(container)
        row.setContentsMargins(0, 0, 0, 0)
        self.job_id_input = QLineEdit()
        self.job_id_input.setPlaceholderText("Job ID")
        row.addWidget(self.job_id_input, 1)
        self.track_button = QPushButton("Track")
        self.track_button.clicked.connect(self._track_job)
        row.addWidget(self.track_button)
        self.upload_button = QPushButton("Upload File…")
        self.upload_button.clicked.connect(self._upload_file)
        row.addWidget(self.upload_button)
        self.stop_button = QPushButton("Stop")
        self.stop_button.clicked.connect(self._stop_tracking)
        row.addWidget(self.stop_button)
        return container

    def _connect_signals(self) -> None:
        """Wire controller and store signals to their handlers."""
        self.controller.tracking_started.connect(self._on_tracking_started)
        self.controller.snapshot_updated.connect(self._on_snapshot_updated)
        self.controller.job_completed.connect(self._on_job_completed)
        self.controller.fetch_failed.connect(self._on_fetch_failed)
        self.controller.state_changed.connect(self._on_state_changed)
        self.history_store.history_changed.connect(self.history_view.update_history)
        self.history_view.clear_requested.connect(self._confirm_clear_history)
        self.history_view.job_selected.connect(self.job_id_input.setText)

    def _load_config_to_ui(self) -> None:
        self.base_url_input.setText(self.config.base_url)
        self.token_input.setText(self.config.api_token)
        self.interval_spin.setValue(self.config.polling.interval_ms)

    def _persist_config(self) -> None:
        """Save settings and rebuild the API client used by the controller."""
        payload = self.config.to_dict()
        payload["base_url"] = self.base_url_input.text()
        payload["api_token"] = self.token_input.text().strip()
        payload["polling"]["interval_ms"] = self.interval_spin.value()
        try:
            config = AppConfig(**payload)
            self.config_manager.save(config)
        except (ValueError, OSError) as exc:
            logger.exception("Failed to save settings: %s", exc)
            QMessageBox.critical(self, "Settings not saved", str(exc))
            return

        self.config = config
        self.api_client = EtlApiClient.from_config(config)
        self.controller.set_api_client(self.api_client)
        self.controller.set_interval(config.polling.interval_ms)
        self.statusBar().showMessage("Settings saved", 5000)

    # Slots
    def _track_job(self) -> None:
        job_id = self.job_id_input.text().strip()
        if not job_id:
            QMessageBox.warning(self, "Missing job id", "Enter the id of the job to track.")
            return
        self.controller.track(job_id)

    def _upload_file(self) -> None:
        """Upload a data file, then track the job the backend started for it."""
        path_text, _ = QFileDialog.getOpenFileName(self, "Select data file", "", UPLOAD_FILTER)
        if not path_text:
            return
        path = Path(path_text)
        try:
            result = self.api_client.upload_file(path)
        except Exception as exc:  # pylint: disable=broad-except
            logger.exception("Upload of %s failed: %s", path.name, exc)
            self.log_view.append(f"Upload of {path.name} failed: {exc}")
            QMessageBox.critical(self, "Upload failed", str(exc))
            return

        self.log_view.append(f"Uploaded {result.file_name}, ETL job {result.job_id} started.")
        self.job_id_input.setText(result.job_id)
        self.controller.track(result.job_id, result.file_name, file_type_from_name(result.file_name))

    def _stop_tracking(self) -> None:
        self.controller.stop()
        self.statusBar().showMessage("Polling stopped", 5000)

    def _confirm_clear_history(self) -> None:
        reply = QMessageBox.question(
            self,
            "Clear history",
            "Are you sure you want to clear all job history?",
            QMessageBox.Yes | QMessageBox.No,
            QMessageBox.No,
        )
        if reply == QMessageBox.Yes:
            self.history_store.clear()
            self.log_view.append("Job history cleared.")

    def _on_tracking_started(self, job_id: str) -> None:
        self.status_view.reset(job_id)
        self.log_view.append(f"Tracking job {job_id}.")

    def _on_snapshot_updated(self, snapshot: JobSnapshot) -> None:
        self.status_view.show_snapshot(snapshot, self.controller.started_at)
        self.statusBar().showMessage(f"Job {snapshot.job_id}: {snapshot.status.value}", 5000)

    def _on_fetch_failed(self, job_id: str, message: str) -> None:
        self.log_view.append(f"Status check for job {job_id} failed, retrying: {message}")

    def _on_state_changed(self, state: str) -> None:
        self._toggle_controls(active=state == TrackingState.TRACKING.value)

    def _on_job_completed(self, entry: JobHistoryEntry) -> None:
        """Report the finished job and load results when it succeeded."""
        self.log_view.append(f"Job {entry.job_id} finished with status {entry.status.value}.")
        self.statusBar().showMessage(f"Job {entry.job_id} {entry.status.value.lower()}", 8000)
        if entry.status is not JobStatus.COMPLETED:
            return
        if self._data_worker and self._data_worker.isRunning():
            logger.info("Processed data download already running; skipping job %s", entry.job_id)
            return
        worker = ProcessedDataWorker(self.api_client, entry.job_id)
        worker.data_loaded.connect(self._on_data_loaded)
        worker.data_failed.connect(self._on_data_failed)
        self._data_worker = worker
        worker.start()

    def _on_data_loaded(self, job_id: str, records: Any) -> None:
        self.log_view.append(f"{len(records)} processed record(s) available after job {job_id}.")

    def _on_data_failed(self, job_id: str, message: str) -> None:
        self.log_view.append(f"Could not load processed data for job {job_id}: {message}")

    def _toggle_controls(self, active: bool) -> None:
        self.stop_button.setEnabled(active)
        self.apply_button.setEnabled(not active)

    def closeEvent(self, event) -> None:
        """Stop polling and let in-flight fetches finish before the window goes away."""
        self.controller.shutdown()
        if self._data_worker:
            self._data_worker.wait(3000)
        super().closeEvent(event)
