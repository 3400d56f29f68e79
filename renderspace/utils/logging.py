"""
Centralized logging for RenderSpace.

Every AppLogger writes to Python logging and to a per-process ring buffer
that the admin endpoints read, so recent render errors can be inspected
without external log aggregation. Entries carrying a job_id can be pulled
up per render job.
"""

import logging
from collections import deque
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from threading import Lock
from typing import Optional, List, Dict, Any


class LogLevel(str, Enum):
    DEBUG = "debug"
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"
    CRITICAL = "critical"


class LogSource(str, Enum):
    """Where a log entry came from. The admin endpoints filter on these."""
    RENDER = "render_pipeline"
    QUEUE = "render_queue"
    CREDITS = "credits"
    EVENTS = "events"
    API = "api"
    ADMIN = "admin"


_ERROR_LEVELS = (LogLevel.ERROR, LogLevel.CRITICAL)


@dataclass
class LogEntry:
    level: LogLevel
    message: str
    source: LogSource
    metadata: Dict[str, Any] = field(default_factory=dict)
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    @property
    def job_id(self) -> Optional[str]:
        job_id = self.metadata.get("job_id")
        return str(job_id) if job_id is not None else None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "timestamp": self.timestamp.isoformat(),
            "level": self.level.value,
            "source": self.source.value,
            "message": self.message,
            "job_id": self.job_id,
            "metadata": self.metadata,
        }


class LogBuffer:
    """Thread-safe ring buffer of the most recent entries."""

    def __init__(self, max_size: int = 1000):
        self._entries: deque = deque(maxlen=max_size)
        self._lock = Lock()

    def add(self, entry: LogEntry):
        with self._lock:
            self._entries.append(entry)

    def _select(
        self,
        limit: int,
        source: Optional[LogSource] = None,
        job_id: Optional[str] = None,
        errors_only: bool = False,
    ) -> List[Dict[str, Any]]:
        with self._lock:
            entries = list(self._entries)

        selected = []
        for entry in reversed(entries):
            if len(selected) >= limit:
                break
            if source is not None and entry.source != source:
                continue
            if job_id is not None and entry.job_id != job_id:
                continue
            if errors_only and entry.level not in _ERROR_LEVELS:
                continue
            selected.append(entry.to_dict())
        return selected

    def get_recent(
        self,
        limit: int = 100,
        source: Optional[LogSource] = None,
        job_id: Optional[str] = None,
    ) -> List[Dict[str, Any]]:
        """Newest entries first, optionally for one source or one render job."""
        return self._select(limit, source=source, job_id=job_id)

    def get_errors(self, limit: int = 50, source: Optional[LogSource] = None) -> List[Dict[str, Any]]:
        """Newest error and critical entries first."""
        return self._select(limit, source=source, errors_only=True)

    def get_stats(self) -> Dict[str, Any]:
        with self._lock:
            entries = list(self._entries)

        by_level: Dict[str, int] = {}
        by_source: Dict[str, int] = {}
        for entry in entries:
            by_level[entry.level.value] = by_level.get(entry.level.value, 0) + 1
            by_source[entry.source.value] = by_source.get(entry.source.value, 0) + 1

        return {
            "total": len(entries),
            "by_level": by_level,
            "by_source": by_source,
        }


# One buffer per process (web, RQ work horse, scheduler)
_log_buffer = LogBuffer()


def get_log_buffer() -> LogBuffer:
    return _log_buffer


class AppLogger:
    """
    Logs to Python logging and to the in-memory buffer.

    Keyword arguments become entry metadata: logger.error("...", job_id=x).
    """

    def __init__(self, source: LogSource):
        self.source = source
        self._logger = logging.getLogger(f"renderspace.{source.value}")

    def _log(self, level: LogLevel, message: str, metadata: Dict[str, Any]):
        _log_buffer.add(LogEntry(level, message, self.source, metadata))

        extra_msg = f" | {metadata}" if metadata else ""
        self._logger.log(getattr(logging, level.value.upper()), f"{message}{extra_msg}")

    def debug(self, message: str, **metadata):
        self._log(LogLevel.DEBUG, message, metadata)

    def info(self, message: str, **metadata):
        self._log(LogLevel.INFO, message, metadata)

    def warning(self, message: str, **metadata):
        self._log(LogLevel.WARNING, message, metadata)

    def error(self, message: str, **metadata):
        self._log(LogLevel.ERROR, message, metadata)

    def critical(self, message: str, **metadata):
        self._log(LogLevel.CRITICAL, message, metadata)


def get_logger(source: LogSource) -> AppLogger:
    return AppLogger(source)


def configure_logging(level: str = "INFO"):
    """Configure the root handler once per process."""
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
    )


render_logger = AppLogger(LogSource.RENDER)
queue_logger = AppLogger(LogSource.QUEUE)
credit_logger = AppLogger(LogSource.CREDITS)
event_logger = AppLogger(LogSource.EVENTS)
api_logger = AppLogger(LogSource.API)
