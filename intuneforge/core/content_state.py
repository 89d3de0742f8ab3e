"""Deterministic content file state machine.

Enforces:
- Valid state transitions only (VALID_TRANSITIONS table)
- COMMITTED and FAILED are terminal; a file is committed at most once
- Every transition recorded in the history and emitted as an event
"""

from __future__ import annotations

from intuneforge.core.errors import IntuneForgeError
from intuneforge.models.states import (
    VALID_TRANSITIONS,
    ContentFileState,
    ContentFileTransition,
)
from intuneforge.routing.sinks import EventSink, NullEventSink


class InvalidTransitionError(IntuneForgeError):
    """Raised when a requested state transition is not valid."""


class ContentFileStateMachine:
    """Tracks the lifecycle of the content files of one publish.

    Parameters
    ----------
    events:
        Sink that receives a ``content.state`` event per transition.
    """

    def __init__(self, events: EventSink | None = None) -> None:
        self._events = events or NullEventSink()
        self._states: dict[str, ContentFileState] = {}
        self._history: list[ContentFileTransition] = []

    # ------------------------------------------------------------------
    # State management
    # ------------------------------------------------------------------

    def register(self, content_file_id: str) -> ContentFileState:
        """Start tracking a freshly registered content file."""
        if content_file_id in self._states:
            raise InvalidTransitionError(
                f"Content file {content_file_id} is already registered "
                f"(state {self._states[content_file_id].value})"
            )
        self._states[content_file_id] = ContentFileState.REGISTERED
        self._events.emit(
            "content.state",
            content_file_id=content_file_id,
            from_state=None,
            to_state=ContentFileState.REGISTERED.value,
        )
        return ContentFileState.REGISTERED

    def get_state(self, content_file_id: str) -> ContentFileState:
        """Return the current state of a tracked content file."""
        try:
            return self._states[content_file_id]
        except KeyError:
            raise InvalidTransitionError(
                f"Content file {content_file_id} is not registered"
            ) from None

    @property
    def history(self) -> list[ContentFileTransition]:
        """All transitions so far, oldest first."""
        return list(self._history)

    # ------------------------------------------------------------------
    # Transition logic
    # ------------------------------------------------------------------

    def transition(
        self,
        content_file_id: str,
        target_state: ContentFileState,
        *,
        reason: str | None = None,
    ) -> ContentFileTransition:
        """Move a content file to *target_state*.

        Raises ``InvalidTransitionError`` if VALID_TRANSITIONS does not
        allow the move.
        """
        current = self.get_state(content_file_id)
        allowed = VALID_TRANSITIONS.get(current, set())
        if target_state not in allowed:
            raise InvalidTransitionError(
                f"Cannot transition {content_file_id} from {current.value} to "
                f"{target_state.value}. Allowed: {sorted(s.value for s in allowed)}"
            )

        record = ContentFileTransition(
            content_file_id=content_file_id,
            from_state=current,
            to_state=target_state,
            reason=reason,
        )
        self._states[content_file_id] = target_state
        self._history.append(record)
        self._events.emit(
            "content.state",
            content_file_id=content_file_id,
            from_state=current.value,
            to_state=target_state.value,
            reason=reason,
        )
        return record

    def fail(self, content_file_id: str, reason: str) -> ContentFileTransition | None:
        """Move a non-terminal file to FAILED. No-op for terminal files."""
        current = self.get_state(content_file_id)
        if ContentFileState.FAILED not in VALID_TRANSITIONS.get(current, set()):
            return None
        return self.transition(content_file_id, ContentFileState.FAILED, reason=reason)

    def get_available_transitions(self, content_file_id: str) -> set[ContentFileState]:
        """Return the set of valid target states for a content file."""
        return set(VALID_TRANSITIONS.get(self.get_state(content_file_id), set()))
