"""Content file state machine models — deterministic transitions."""

from __future__ import annotations

from enum import Enum

from pydantic import BaseModel, ConfigDict


class ContentFileState(str, Enum):
    """Local view of where a content file is in the publishing lifecycle."""

    REGISTERED = "registered"
    URI_PENDING = "uri_pending"
    URI_ASSIGNED = "uri_assigned"
    UPLOADING = "uploading"
    COMMITTING = "committing"
    COMMITTED = "committed"
    FAILED = "failed"


# Valid state transitions, enforced by ContentFileStateMachine.
# Terminal states (COMMITTED, FAILED) have no outgoing transitions.
VALID_TRANSITIONS: dict[ContentFileState, set[ContentFileState]] = {
    ContentFileState.REGISTERED: {ContentFileState.URI_PENDING, ContentFileState.FAILED},
    ContentFileState.URI_PENDING: {ContentFileState.URI_ASSIGNED, ContentFileState.FAILED},
    ContentFileState.URI_ASSIGNED: {ContentFileState.UPLOADING, ContentFileState.FAILED},
    ContentFileState.UPLOADING: {ContentFileState.COMMITTING, ContentFileState.FAILED},
    ContentFileState.COMMITTING: {ContentFileState.COMMITTED, ContentFileState.FAILED},
    ContentFileState.COMMITTED: set(),  # terminal
    ContentFileState.FAILED: set(),  # terminal
}

TERMINAL_STATES: frozenset[ContentFileState] = frozenset(
    state for state, targets in VALID_TRANSITIONS.items() if not targets
)


class ContentFileTransition(BaseModel):
    """Records a single state transition for the publish trail."""

    model_config = ConfigDict(frozen=True)

    content_file_id: str
    from_state: ContentFileState
    to_state: ContentFileState
    reason: str | None = None  # populated when entering FAILED
