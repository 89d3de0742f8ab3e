"""Structured publish events handed to event sinks."""

from __future__ import annotations

import uuid
from datetime import datetime, timezone
from typing import Any

from pydantic import BaseModel, ConfigDict, Field


class PublishEvent(BaseModel):
    """A named event with free-form structured fields.

    Event names are dotted, component first (``upload.chunk``,
    ``content.committed``, ``publish.cleanup_failed``).
    """

    model_config = ConfigDict(frozen=True)

    event_id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    name: str
    fields: dict[str, Any] = {}
    timestamp_utc: datetime = Field(
        default_factory=lambda: datetime.now(timezone.utc)
    )

    @property
    def component(self) -> str:
        """The part of the name before the first dot."""
        return self.name.split(".", 1)[0]
