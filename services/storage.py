"""File-backed key/value storage for the job history tiers."""

from __future__ import annotations

import os
from pathlib import Path
from typing import List, Optional, Protocol
from urllib.parse import quote, unquote

from services.logger import get_logger


logger = get_logger("storage")


class KeyValueStorage(Protocol):
    """String keys mapped to string values, the layout the history store expects."""

    def get_item(self, key: str) -> Optional[str]: ...

    def set_item(self, key: str, value: str) -> None: ...

    def remove_item(self, key: str) -> None: ...

    def keys(self) -> List[str]: ...


class FileStorage:
    """Store each key as ``<root>/<quoted key>.json``.

    Keys are percent-encoded so arbitrary job identifiers map to safe file
    names. Writes go through a temporary file and an atomic rename, so a
    reader never observes a half-written value. I/O errors propagate as
    ``OSError``.
    """

    SUFFIX = ".json"

    def __init__(self, root: Path | str) -> None:
        self._root = Path(root).expanduser()
        self._root.mkdir(parents=True, exist_ok=True)

    @property
    def root(self) -> Path:
        return self._root

    def _path_for(self, key: str) -> Path:
        return self._root / f"{quote(key, safe='-_.')}{self.SUFFIX}"

    def get_item(self, key: str) -> Optional[str]:
        path = self._path_for(key)
        if not path.exists():
            return None
        return path.read_text(encoding="utf-8")

    def set_item(self, key: str, value: str) -> None:
        path = self._path_for(key)
        temp_path = path.with_name(f"{path.name}.tmp")
        temp_path.write_text(value, encoding="utf-8")
        os.replace(temp_path, path)

    def remove_item(self, key: str) -> None:
        path = self._path_for(key)
        if path.exists():
            path.unlink()
            logger.debug("Removed storage key %s", key)

    def keys(self) -> List[str]:
        return sorted(unquote(path.name[: -len(self.SUFFIX)]) for path in self._root.glob(f"*{self.SUFFIX}"))
