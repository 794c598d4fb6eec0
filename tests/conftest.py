"""Shared fixtures for the ETL monitor tests."""

from typing import Dict, List, Optional

import pytest
from PySide6.QtCore import QCoreApplication


class MemoryStorage:
    """Dictionary-backed key/value storage with switchable write failures."""

    def __init__(self, items: Optional[Dict[str, str]] = None) -> None:
        self.items: Dict[str, str] = dict(items or {})
        self.fail_writes = False

    def get_item(self, key: str) -> Optional[str]:
        return self.items.get(key)

    def set_item(self, key: str, value: str) -> None:
        if self.fail_writes:
            raise OSError("disk full")
        self.items[key] = value

    def remove_item(self, key: str) -> None:
        self.items.pop(key, None)

    def keys(self) -> List[str]:
        return sorted(self.items)


@pytest.fixture(scope="session", autouse=True)
def qt_app():
    """Provide the Qt application instance that signals and timers need."""
    app = QCoreApplication.instance() or QCoreApplication([])
    yield app


@pytest.fixture
def memory_storage():
    return MemoryStorage()
