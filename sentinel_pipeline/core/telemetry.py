"""Operator-visible telemetry stream.

``TelemetryLog`` is the append-only structured event stream consumed by
the monitoring console.  Each ``LogEntry`` is also forwarded to the
standard ``logging`` module so that the same events reach the Functions
host log / Application Insights.

Subscribers are plain callables invoked synchronously after each append;
a subscriber that raises is logged and skipped, it never breaks the
pipeline step that emitted the entry.
"""

from __future__ import annotations

import enum
import logging
from collections import deque
from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from collections.abc import Callable

logger = logging.getLogger("sentinel_pipeline.telemetry")


class LogLevel(enum.Enum):
    """Severity of a telemetry entry."""

    DEBUG = "DEBUG"
    INFO = "INFO"
    WARN = "WARN"
    ERROR = "ERROR"
    SUCCESS = "SUCCESS"


_STDLIB_LEVELS: dict[LogLevel, int] = {
    LogLevel.DEBUG: logging.DEBUG,
    LogLevel.INFO: logging.INFO,
    LogLevel.WARN: logging.WARNING,
    LogLevel.ERROR: logging.ERROR,
    LogLevel.SUCCESS: logging.INFO,
}


@dataclass(frozen=True, slots=True)
class LogEntry:
    """One structured telemetry event.

    Attributes:
        timestamp: UTC time the entry was appended.
        level: Severity level.
        message: Human-readable message.
        payload: Optional structured payload (ids, error dicts, counts).
    """

    timestamp: datetime
    level: LogLevel
    message: str
    payload: dict[str, Any] | None = None

    def to_dict(self) -> dict[str, object]:
        return {
            "timestamp": self.timestamp.isoformat(),
            "level": self.level.value,
            "message": self.message,
            "payload": self.payload,
        }


@dataclass
class TelemetryLog:
    """Append-only, bounded in-memory event stream.

    Attributes:
        max_entries: Number of most recent entries retained.
    """

    max_entries: int = 500
    _entries: deque[LogEntry] = field(init=False, repr=False)
    _subscribers: list[Callable[[LogEntry], None]] = field(
        init=False, repr=False, default_factory=list
    )

    def __post_init__(self) -> None:
        self._entries = deque(maxlen=self.max_entries)

    def emit(
        self,
        level: LogLevel,
        message: str,
        payload: dict[str, Any] | None = None,
    ) -> LogEntry:
        """Append a new entry and fan it out to logging and subscribers."""
        entry = LogEntry(
            timestamp=datetime.now(UTC),
            level=level,
            message=message,
            payload=payload,
        )
        self._entries.append(entry)
        if payload:
            logger.log(_STDLIB_LEVELS[level], "%s | payload=%s", message, payload)
        else:
            logger.log(_STDLIB_LEVELS[level], "%s", message)

        for subscriber in list(self._subscribers):
            try:
                subscriber(entry)
            except Exception:
                logger.exception("Telemetry subscriber failed | subscriber=%r", subscriber)
        return entry

    # Convenience wrappers -------------------------------------------------

    def debug(self, message: str, payload: dict[str, Any] | None = None) -> LogEntry:
        return self.emit(LogLevel.DEBUG, message, payload)

    def info(self, message: str, payload: dict[str, Any] | None = None) -> LogEntry:
        return self.emit(LogLevel.INFO, message, payload)

    def warn(self, message: str, payload: dict[str, Any] | None = None) -> LogEntry:
        return self.emit(LogLevel.WARN, message, payload)

    def error(self, message: str, payload: dict[str, Any] | None = None) -> LogEntry:
        return self.emit(LogLevel.ERROR, message, payload)

    def success(self, message: str, payload: dict[str, Any] | None = None) -> LogEntry:
        return self.emit(LogLevel.SUCCESS, message, payload)

    # Consumers ------------------------------------------------------------

    def subscribe(self, callback: Callable[[LogEntry], None]) -> Callable[[], None]:
        """Register *callback* for every future entry.

        Returns:
            A zero-argument function that removes the subscription.
        """
        self._subscribers.append(callback)

        def _unsubscribe() -> None:
            if callback in self._subscribers:
                self._subscribers.remove(callback)

        return _unsubscribe

    def entries(self, *, level: LogLevel | None = None) -> list[LogEntry]:
        """Return retained entries oldest-first, optionally filtered by level."""
        if level is None:
            return list(self._entries)
        return [e for e in self._entries if e.level is level]

    def tail(self, count: int) -> list[LogEntry]:
        """Return the *count* most recent entries, oldest-first."""
        if count <= 0:
            return []
        return list(self._entries)[-count:]

    def __len__(self) -> int:
        return len(self._entries)
