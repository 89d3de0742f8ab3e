"""SinkDispatcher — fans events out to ALL configured sinks.

Every event emitted through the dispatcher reaches every registered sink.
Sink failures are logged but never prevent delivery to the remaining
sinks, and never propagate into the publishing pipeline.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from intuneforge.routing.sinks import EventSink

logger = logging.getLogger(__name__)


class SinkDispatcher:
    """An ``EventSink`` that forwards to any number of other sinks.

    Usage
    -----
    >>> dispatcher = SinkDispatcher()
    >>> dispatcher.register_sink(LoggingEventSink())
    >>> dispatcher.register_sink(JsonLinesFileSink("publish.jsonl"))
    >>> dispatcher.emit("publish.started", display_name="7-Zip")
    """

    def __init__(self, sinks: list[EventSink] | None = None) -> None:
        self._sinks: list[EventSink] = []
        for sink in sinks or []:
            self.register_sink(sink)

    @property
    def sink_name(self) -> str:
        return "dispatcher"

    # ------------------------------------------------------------------
    # Sink management
    # ------------------------------------------------------------------

    def register_sink(self, sink: EventSink) -> None:
        """Register a sink to receive emitted events.

        Sinks are called in registration order.  Duplicate registration
        of the same sink instance is silently ignored.
        """
        if sink not in self._sinks:
            self._sinks.append(sink)
            logger.debug("Registered sink: %s", sink.sink_name)

    def unregister_sink(self, sink: EventSink) -> None:
        """Remove a previously registered sink."""
        try:
            self._sinks.remove(sink)
            logger.debug("Unregistered sink: %s", sink.sink_name)
        except ValueError:
            pass

    @property
    def registered_sinks(self) -> list[EventSink]:
        """Return a copy of the registered sink list."""
        return list(self._sinks)

    # ------------------------------------------------------------------
    # Emit
    # ------------------------------------------------------------------

    def emit(self, name: str, /, **fields: Any) -> None:
        """Emit an event to ALL registered sinks.

        A failing sink is logged and skipped; the event is still delivered
        to every other sink.
        """
        failed = 0
        for sink in self._sinks:
            try:
                sink.emit(name, **fields)
            except Exception as exc:  # noqa: BLE001
                failed += 1
                logger.error("Sink %s failed for event %s: %s", sink.sink_name, name, exc)

        if failed:
            logger.warning(
                "Event %s: %d/%d sinks failed", name, failed, len(self._sinks)
            )
