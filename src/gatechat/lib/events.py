"""Process-wide publish point for log lines and tool-call updates.

The notifier carries two event kinds to presentation code:

- **Log events** (``LogEvent``): level, message and timestamp. Events
  below the configured minimum level are dropped at emit time.
- **Tool-call updates** (``ToolCallInfo``): published when a call starts
  and again when it completes.

Delivery is synchronous and at-most-once. Subscribers only see events
emitted while they are subscribed; nothing is buffered or replayed.

Standard ``logging`` records reach the notifier through
``NotifierHandler``, so library code keeps using
``logging.getLogger(__name__)`` and never imports the notifier directly.

Examples:
    Subscribe to log lines and stop listening later::

        >>> notifier = EventNotifier(level=LogLevel.WARN)
        >>> seen: list[LogEvent] = []
        >>> unsubscribe = notifier.subscribe_logs(seen.append)
        >>> notifier.info("hidden")
        >>> notifier.error("shown")
        >>> [e.message for e in seen]
        ['shown']
        >>> unsubscribe()

    Route the package logger into the notifier::

        >>> logging.getLogger("gatechat").addHandler(NotifierHandler(notifier))
"""

import logging
from collections.abc import Callable, Iterator
from contextlib import contextmanager
from datetime import datetime
from enum import IntEnum
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field

logger = logging.getLogger(__name__)

type Unsubscribe = Callable[[], None]


class LogLevel(IntEnum):
    """Terminal log levels, ordered by severity."""

    DEBUG = 10
    INFO = 20
    WARN = 30
    ERROR = 40

    @classmethod
    def parse(cls, name: str) -> "LogLevel":
        """Parse a level name (``debug``, ``info``, ``warn``/``warning``, ``error``)."""
        key = name.strip().upper()
        if key == "WARNING":
            key = "WARN"
        try:
            return cls[key]
        except KeyError:
            raise ValueError(f"Unknown log level: {name!r}") from None

    @classmethod
    def from_record(cls, levelno: int) -> "LogLevel":
        """Map a ``logging`` level number onto the nearest terminal level."""
        if levelno >= logging.ERROR:
            return cls.ERROR
        if levelno >= logging.WARNING:
            return cls.WARN
        if levelno >= logging.INFO:
            return cls.INFO
        return cls.DEBUG


class LogEvent(BaseModel):
    """A single log line destined for the terminal."""

    model_config = ConfigDict(frozen=True)

    level: LogLevel
    message: str
    timestamp: datetime = Field(default_factory=datetime.now)


class ToolCallInfo(BaseModel):
    """Lifecycle record for one tool call made by the agent."""

    call_id: str = Field(description="Unique per call")
    name: str
    args_text: str = ""
    status: Literal["running", "completed"] = "running"
    started_at: datetime = Field(default_factory=datetime.now)
    duration: float | None = Field(
        default=None, description="Seconds between start and completion"
    )
    is_error: bool = False

    def complete(self, *, is_error: bool = False) -> None:
        """Mark the call completed and record its duration."""
        if self.status == "completed":
            return
        self.status = "completed"
        self.is_error = is_error
        self.duration = (datetime.now() - self.started_at).total_seconds()


class Subscribers[T]:
    """Ordered callback registry with unsubscribe handles."""

    def __init__(self) -> None:
        self._callbacks: list[Callable[[T], None]] = []

    def __len__(self) -> int:
        return len(self._callbacks)

    def add(self, callback: Callable[[T], None]) -> Unsubscribe:
        """Register *callback*; the returned function removes it again."""
        self._callbacks.append(callback)

        def unsubscribe() -> None:
            if callback in self._callbacks:
                self._callbacks.remove(callback)

        return unsubscribe

    def publish(self, event: T) -> None:
        """Deliver *event* to every callback registered right now."""
        # Snapshot so a callback may unsubscribe itself mid-delivery
        for callback in list(self._callbacks):
            if callback in self._callbacks:
                callback(event)


class EventNotifier:
    """Publish/subscribe point for log events and tool-call updates."""

    def __init__(self, level: LogLevel = LogLevel.INFO) -> None:
        self.level = level
        self._logs: Subscribers[LogEvent] = Subscribers()
        self._tool_calls: Subscribers[ToolCallInfo] = Subscribers()

    def subscribe_logs(self, callback: Callable[[LogEvent], None]) -> Unsubscribe:
        return self._logs.add(callback)

    def subscribe_tool_calls(
        self, callback: Callable[[ToolCallInfo], None]
    ) -> Unsubscribe:
        return self._tool_calls.add(callback)

    def should_emit(self, level: LogLevel) -> bool:
        """True if *level* is at or above the configured minimum."""
        return level >= self.level

    def log(self, level: LogLevel, message: str | None) -> None:
        """Emit a log event unless it is empty or below the minimum level."""
        if not message or not self.should_emit(level):
            return
        self._logs.publish(LogEvent(level=level, message=message))

    def debug(self, message: str | None) -> None:
        self.log(LogLevel.DEBUG, message)

    def info(self, message: str | None) -> None:
        self.log(LogLevel.INFO, message)

    def warn(self, message: str | None) -> None:
        self.log(LogLevel.WARN, message)

    def error(self, message: str | None) -> None:
        self.log(LogLevel.ERROR, message)

    def tool_call(self, info: ToolCallInfo) -> None:
        """Publish a tool-call lifecycle update.

        Subscribers receive a copy, so later transitions of the caller's
        record do not rewrite events already delivered.
        """
        self._tool_calls.publish(info.model_copy())


# ---------------------------------------------------------------------------
# logging bridge
# ---------------------------------------------------------------------------


class ExpectedErrorFilter(logging.Filter):
    """Drops error-level records while an expected failure is in progress.

    The first gateway connect attempt fails with an unauthorized error
    whenever no valid token is stored. Transport code logs that failure at
    error level before it reaches the bootstrapper, so the bootstrapper
    wraps the attempt in ``expecting()`` to keep it out of the terminal.
    """

    def __init__(self) -> None:
        super().__init__()
        self._depth = 0

    @property
    def active(self) -> bool:
        return self._depth > 0

    @contextmanager
    def expecting(self) -> Iterator[None]:
        self._depth += 1
        try:
            yield
        finally:
            self._depth -= 1

    def filter(self, record: logging.LogRecord) -> bool:
        return not (self.active and record.levelno >= logging.ERROR)


expected_errors = ExpectedErrorFilter()


class NotifierHandler(logging.Handler):
    """Forward ``logging`` records to an ``EventNotifier``."""

    def __init__(self, notifier: EventNotifier) -> None:
        super().__init__(level=logging.DEBUG)
        self.notifier = notifier
        self.addFilter(expected_errors)

    def emit(self, record: logging.LogRecord) -> None:
        try:
            message = record.getMessage()
            if record.exc_info and record.exc_info[1] is not None:
                message = f"{message}: {record.exc_info[1]}"
            self.notifier.log(LogLevel.from_record(record.levelno), message)
        except Exception:
            self.handleError(record)
