"""Bootstrap helpers for launching the ETL job monitor Qt application."""

from __future__ import annotations

import sys
from pathlib import Path

from PySide6.QtWidgets import QApplication

from core.config import ConfigManager
from services.api_client import EtlApiClient
from services.history_store import HistoryStore
from services.logger import get_logger, setup_logging
from services.polling_controller import PollingController
from services.storage import FileStorage
from ui.main_window import MainWindow


def run() -> None:
    """Load settings, wire the services together, and start the event loop."""
    app = QApplication(sys.argv)
    config_manager = ConfigManager()
    config = config_manager.load()
    setup_logging(Path(config.storage_dir) / "logs", level=config.log_level)
    logger = get_logger("app")

    storage = FileStorage(Path(config.storage_dir) / "history")
    history_store = HistoryStore(storage, history_limit=config.history_limit)
    api_client = EtlApiClient.from_config(config)
    controller = PollingController(api_client, history_store, interval_ms=config.polling.interval_ms)

    window = MainWindow(config_manager, config, api_client, history_store, controller)
    # Recovery runs after the window is connected so the restored list is rendered.
    history_store.reconcile_on_startup()
    logger.info("Monitoring backend at %s", api_client.base_url)
    window.show()
    sys.exit(app.exec())


if __name__ == "__main__":
    run()
