"""Event sink protocol and the in-process sinks.

All sinks implement the ``EventSink`` protocol: a ``sink_name`` property
and an ``emit(name, **fields)`` method.  Components receive a sink through
their constructor and never reach for a global one.
"""

from __future__ import annotations

import logging
from typing import Any, Protocol, runtime_checkable

from intuneforge.models.events import PublishEvent

logger = logging.getLogger(__name__)


@runtime_checkable
class EventSink(Protocol):
    """Protocol that every intuneforge event sink must implement.

    Attributes
    ----------
    sink_name : str
        A unique human-readable identifier for this sink instance
        (e.g. ``"logging"``, ``"jsonl_file"``).
    """

    @property
    def sink_name(self) -> str:
        """Return the unique name of this sink."""
        ...

    def emit(self, name: str, /, **fields: Any) -> None:
        """Record a named event with structured fields.

        Implementations must be cheap and must not block; the pipeline
        emits from inside its upload and polling loops.
        """
        ...


class NullEventSink:
    """Discards everything. The default when no sink is injected."""

    @property
    def sink_name(self) -> str:
        return "null"

    def emit(self, name: str, /, **fields: Any) -> None:
        return None


class LoggingEventSink:
    """Forwards events to a standard-library logger.

    Failure events (``*.failed``, ``*.cleanup_failed``) are logged at
    WARNING, the rest at ``level``.
    """

    def __init__(self, log: logging.Logger | None = None, level: int = logging.DEBUG) -> None:
        self._log = log or logger
        self._level = level

    @property
    def sink_name(self) -> str:
        return "logging"

    def emit(self, name: str, /, **fields: Any) -> None:
        level = logging.WARNING if name.endswith("failed") else self._level
        rendered = " ".join(f"{k}={v}" for k, v in fields.items())
        self._log.log(level, "%s %s", name, rendered)


class MemoryEventSink:
    """Collects events in memory, in emission order."""

    def __init__(self) -> None:
        self.events: list[PublishEvent] = []

    @property
    def sink_name(self) -> str:
        return "memory"

    def emit(self, name: str, /, **fields: Any) -> None:
        self.events.append(PublishEvent(name=name, fields=fields))

    def names(self) -> list[str]:
        """Event names in emission order."""
        return [e.name for e in self.events]

    def of(self, name: str) -> list[PublishEvent]:
        """All events with the given name."""
        return [e for e in self.events if e.name == name]

    def clear(self) -> None:
        self.events.clear()


__all__ = [
    "EventSink",
    "LoggingEventSink",
    "MemoryEventSink",
    "NullEventSink",
]
