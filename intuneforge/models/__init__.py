"""intuneforge data models — all Pydantic v2, all frozen (immutable)."""

from intuneforge.models.apps import (
    COMMIT_FAILURE_STATES,
    URI_FAILURE_STATES,
    ApplicationRecord,
    ContentFile,
    ContentFileRequest,
    ContentVersion,
    MimeContent,
    UploadState,
)
from intuneforge.models.events import PublishEvent
from intuneforge.models.metadata import ArchiveMetadata, EncryptionInfo
from intuneforge.models.states import (
    TERMINAL_STATES,
    VALID_TRANSITIONS,
    ContentFileState,
    ContentFileTransition,
)

__all__ = [
    # metadata
    "ArchiveMetadata",
    "EncryptionInfo",
    # remote entities
    "ApplicationRecord",
    "ContentVersion",
    "ContentFile",
    "ContentFileRequest",
    "MimeContent",
    "UploadState",
    "URI_FAILURE_STATES",
    "COMMIT_FAILURE_STATES",
    # states
    "ContentFileState",
    "ContentFileTransition",
    "VALID_TRANSITIONS",
    "TERMINAL_STATES",
    # events
    "PublishEvent",
]
