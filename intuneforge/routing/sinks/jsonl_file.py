"""JSON-lines file sink — appends one canonical JSON object per event.

Layout: a single append-only file; each line is a serialized
``PublishEvent`` so a publish run can be replayed or grepped afterwards.
"""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Any

from intuneforge.models.events import PublishEvent

logger = logging.getLogger(__name__)


def canonical_json_bytes(obj: Any) -> bytes:
    """Deterministic, sorted, compact JSON bytes."""
    return json.dumps(
        obj, sort_keys=True, separators=(",", ":"), ensure_ascii=True, default=str
    ).encode("utf-8")


class JsonLinesFileSink:
    """Writes events to a local JSON-lines file.

    Parameters
    ----------
    path:
        Target file.  Parent directories are created on construction.
    """

    def __init__(self, path: Path | str) -> None:
        self._path = Path(path)
        self._path.parent.mkdir(parents=True, exist_ok=True)

    @property
    def sink_name(self) -> str:
        return "jsonl_file"

    @property
    def path(self) -> Path:
        return self._path

    def emit(self, name: str, /, **fields: Any) -> None:
        event = PublishEvent(name=name, fields=fields)
        line = canonical_json_bytes(event.model_dump(mode="json"))
        with self._path.open("ab") as fh:
            fh.write(line + b"\n")
        logger.debug("JsonLinesFileSink: wrote %s to %s", event.event_id, self._path)

    def read_events(self) -> list[dict]:
        """Read back every event written so far."""
        if not self._path.exists():
            return []
        return [
            json.loads(line)
            for line in self._path.read_text(encoding="utf-8").splitlines()
            if line.strip()
        ]
