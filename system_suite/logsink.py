"""Append-only log file shared by every component of the suite."""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path
from typing import List, Optional, Tuple

from .config import SuiteConfig
from .errors import LogSinkUnavailable

LOGGER_NAME = "system_suite"
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"
LINE_FORMAT = "%(asctime)s [%(sink_level)s] %(message)s"

_LINE_RE = re.compile(r"^(\d{4}-\d{2}-\d{2} \d{2}:\d{2}:\d{2}) \[([A-Z]+)\] ?(.*)$")

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class LogRecord:
    timestamp: datetime
    level: str
    message: str

    def __str__(self) -> str:
        return f"{self.timestamp:{DATE_FORMAT}} [{self.level}] {self.message}"


class SinkFormatter(logging.Formatter):
    """Render records as ``<timestamp> [LEVEL] message`` with WARN/ERROR level names."""

    LEVEL_NAMES = {"WARNING": "WARN", "CRITICAL": "ERROR"}

    def __init__(self) -> None:
        super().__init__(LINE_FORMAT, datefmt=DATE_FORMAT)

    def format(self, record: logging.LogRecord) -> str:
        record.sink_level = self.LEVEL_NAMES.get(record.levelname, record.levelname)
        return super().format(record)


def open_log_sink(config: SuiteConfig, name: str = LOGGER_NAME) -> Tuple[logging.Logger, SuiteConfig]:
    """Attach the file sink to logger ``name``, relocating to the working directory if needed.

    Returns the logger and the configuration whose paths are actually in use.
    """
    candidates = [config, config.with_fallback_dirs(Path.cwd())]
    last_error: Optional[OSError] = None
    for index, candidate in enumerate(candidates):
        try:
            handler = _file_handler(candidate)
        except OSError as exc:
            last_error = exc
            if index == 0:
                logger.warning(
                    "Primary log path %s unavailable. Falling back to local workspace.", candidate.log_file
                )
            continue
        sink = logging.getLogger(name)
        for existing in list(sink.handlers):
            if isinstance(existing.formatter, SinkFormatter):
                sink.removeHandler(existing)
                existing.close()
        sink.addHandler(handler)
        sink.setLevel(logging.INFO)
        sink.propagate = False
        return sink, candidate
    raise LogSinkUnavailable(f"Unable to initialize log file: {last_error}")


def _file_handler(config: SuiteConfig) -> logging.FileHandler:
    for directory in (config.config_dir, config.data_dir, config.cache_dir, config.backup_dir):
        directory.mkdir(parents=True, exist_ok=True)
    config.log_file.touch(exist_ok=True)
    handler = logging.FileHandler(config.log_file, mode="a", encoding="utf-8")
    handler.setFormatter(SinkFormatter())
    return handler


def read_records(path: Path, limit: int = 50) -> List[LogRecord]:
    """Parse the last ``limit`` records; continuation lines join the preceding record."""
    try:
        text = Path(path).read_text(encoding="utf-8", errors="replace")
    except OSError:
        return []
    records: List[LogRecord] = []
    for line in text.splitlines():
        match = _LINE_RE.match(line)
        if match:
            stamp, level, message = match.groups()
            records.append(LogRecord(datetime.strptime(stamp, DATE_FORMAT), level, message))
        elif records:
            previous = records[-1]
            records[-1] = LogRecord(previous.timestamp, previous.level, f"{previous.message}\n{line}")
    return records[-limit:] if limit > 0 else []


def last_record(path: Path) -> Optional[LogRecord]:
    records = read_records(path, limit=1)
    return records[0] if records else None
