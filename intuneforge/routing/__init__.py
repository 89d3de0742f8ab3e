"""Structured event routing for the publishing pipeline."""

from intuneforge.routing.dispatcher import SinkDispatcher
from intuneforge.routing.sinks import (
    EventSink,
    LoggingEventSink,
    MemoryEventSink,
    NullEventSink,
)
from intuneforge.routing.sinks.jsonl_file import JsonLinesFileSink

__all__ = [
    "EventSink",
    "JsonLinesFileSink",
    "LoggingEventSink",
    "MemoryEventSink",
    "NullEventSink",
    "SinkDispatcher",
]
