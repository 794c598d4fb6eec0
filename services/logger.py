"""Central logging utilities that unify console and file output."""

import logging
from datetime import datetime
from pathlib import Path
from typing import Optional, Union


ROOT_LOGGER_NAME = "etlmonitor"
LOG_DIR_NAME = "logs"
LOG_FILE_BASENAME = "etl-monitor"
RECENT_SUFFIX = "_recent"
LOG_FORMAT = "%(asctime)s | %(levelname)-7s | %(name)s | %(message)s"


def _resolve_level(level: Union[int, str]) -> int:
    if isinstance(level, int):
        return level
    resolved = logging.getLevelName(str(level).upper())
    return resolved if isinstance(resolved, int) else logging.INFO


def setup_logging(
    log_directory: Path | str | None = None,
    level: Union[int, str] = logging.INFO,
) -> logging.Logger:
    """Configure the ``etlmonitor`` logger with a console and a per-run log file."""
    log_dir = Path(log_directory).expanduser() if log_directory else Path(".") / LOG_DIR_NAME
    log_dir.mkdir(parents=True, exist_ok=True)
    log_path = _prepare_log_file(log_dir)
    numeric_level = _resolve_level(level)

    formatter = logging.Formatter(LOG_FORMAT, datefmt="%Y-%m-%d %H:%M:%S")

    file_handler = logging.FileHandler(log_path, encoding="utf-8")
    file_handler.setFormatter(formatter)
    file_handler.setLevel(numeric_level)

    console_handler = logging.StreamHandler()
    console_handler.setFormatter(formatter)
    console_handler.setLevel(numeric_level)

    root_logger = logging.getLogger(ROOT_LOGGER_NAME)
    root_logger.setLevel(numeric_level)
    for handler in list(root_logger.handlers):
        root_logger.removeHandler(handler)
        handler.close()
    root_logger.addHandler(file_handler)
    root_logger.addHandler(console_handler)
    root_logger.propagate = False

    root_logger.info("Logging to %s", log_path.name)
    return root_logger


def _prepare_log_file(log_dir: Path) -> Path:
    """Archive the previous run's log and return the path for the current run."""
    for recent_file in log_dir.glob(f"*{RECENT_SUFFIX}.log"):
        target = recent_file.with_name(recent_file.name.replace(RECENT_SUFFIX, ""))
        counter = 1
        while target.exists():
            target = recent_file.with_name(f"{target.stem}_{counter}.log")
            counter += 1
        recent_file.rename(target)

    timestamp = datetime.now().strftime("%Y%m%d_%H%M%S")
    return log_dir / f"{LOG_FILE_BASENAME}_{timestamp}{RECENT_SUFFIX}.log"


def get_logger(name: Optional[str] = None) -> logging.Logger:
    """Return a child logger under the etlmonitor namespace."""
    if name:
        return logging.getLogger(f"{ROOT_LOGGER_NAME}.{name}")
    return logging.getLogger(ROOT_LOGGER_NAME)
