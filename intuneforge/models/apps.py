"""Remote entity models — application records, content versions, content files.

The management API speaks camelCase JSON; models use snake_case attributes
with camelCase aliases so a Graph payload can be validated directly and
dumped back with ``by_alias=True``.
"""

from __future__ import annotations

import base64
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, field_validator
from pydantic.alias_generators import to_camel

WIN32_LOB_APP_ODATA_TYPE = "#microsoft.graph.win32LobApp"


class UploadState(str, Enum):
    """Server-side processing state of a content file."""

    SUCCESS = "success"
    TRANSIENT_ERROR = "transientError"
    ERROR = "error"
    UNKNOWN = "unknown"
    URI_REQUEST_SUCCESS = "azureStorageUriRequestSuccess"
    URI_REQUEST_PENDING = "azureStorageUriRequestPending"
    URI_REQUEST_FAILED = "azureStorageUriRequestFailed"
    URI_REQUEST_TIMED_OUT = "azureStorageUriRequestTimedOut"
    URI_RENEWAL_SUCCESS = "azureStorageUriRenewalSuccess"
    URI_RENEWAL_PENDING = "azureStorageUriRenewalPending"
    URI_RENEWAL_FAILED = "azureStorageUriRenewalFailed"
    URI_RENEWAL_TIMED_OUT = "azureStorageUriRenewalTimedOut"
    COMMIT_SUCCESS = "commitFileSuccess"
    COMMIT_PENDING = "commitFilePending"
    COMMIT_FAILED = "commitFileFailed"
    COMMIT_TIMED_OUT = "commitFileTimedOut"

    @classmethod
    def _missing_(cls, value: object) -> UploadState:
        return cls.UNKNOWN


# Terminal server states while waiting for a storage URI.
URI_FAILURE_STATES: frozenset[UploadState] = frozenset({
    UploadState.URI_REQUEST_FAILED,
    UploadState.URI_REQUEST_TIMED_OUT,
})

# Terminal server states while waiting for a commit to finish.
COMMIT_FAILURE_STATES: frozenset[UploadState] = frozenset({
    UploadState.COMMIT_FAILED,
    UploadState.COMMIT_TIMED_OUT,
})


class _GraphModel(BaseModel):
    model_config = ConfigDict(
        frozen=True,
        alias_generator=to_camel,
        populate_by_name=True,
        extra="ignore",
    )

    def to_graph(self) -> dict[str, Any]:
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)


class MimeContent(_GraphModel):
    """Inline binary content (the app icon). ``value`` is base64."""

    type: str = "image/png"
    value: str

    @classmethod
    def from_bytes(cls, data: bytes, mime_type: str = "image/png") -> MimeContent:
        return cls(type=mime_type, value=base64.b64encode(data).decode("ascii"))

    def to_bytes(self) -> bytes:
        return base64.b64decode(self.value)


class ApplicationRecord(_GraphModel):
    """A Win32 line-of-business app in the management service.

    ``id`` is assigned by the server; a record with an ``id`` set before
    publishing refers to an app that already exists remotely.  Descriptive
    fields not modelled here (detection rules, return codes, ...) are
    carried through untouched.
    """

    model_config = ConfigDict(extra="allow")

    id: str | None = None
    display_name: str
    description: str = ""
    publisher: str = ""
    developer: str | None = None
    notes: str | None = None
    information_url: str | None = None
    privacy_information_url: str | None = None
    file_name: str | None = None
    setup_file_path: str | None = None
    install_command_line: str | None = None
    uninstall_command_line: str | None = None
    display_version: str | None = None
    large_icon: MimeContent | None = None
    committed_content_version: str | None = None
    upload_state: int | None = None
    publishing_state: str | None = None

    def to_graph(self) -> dict[str, Any]:
        """Render as a create-app request body."""
        body = super().to_graph()
        body.pop("id", None)
        body["@odata.type"] = WIN32_LOB_APP_ODATA_TYPE
        return body

    def with_icon(self, icon: MimeContent) -> ApplicationRecord:
        return self.model_copy(update={"large_icon": icon})


class ContentVersion(_GraphModel):
    """A versioned container for one upload attempt's payload."""

    id: str


class ContentFile(_GraphModel):
    """A file registered under a content version."""

    id: str
    name: str | None = None
    size: int | None = None
    size_encrypted: int | None = None
    azure_storage_uri: str | None = None
    azure_storage_uri_expiration_date_time: str | None = None
    is_committed: bool = False
    is_dependency: bool = False
    upload_state: UploadState = UploadState.UNKNOWN

    @field_validator("upload_state", mode="before")
    @classmethod
    def _coerce_state(cls, value: Any) -> UploadState:
        if value is None:
            return UploadState.UNKNOWN
        return UploadState(value)

    @property
    def has_storage_uri(self) -> bool:
        return bool(self.azure_storage_uri)


class ContentFileRequest(_GraphModel):
    """Body of the register-content-file call."""

    name: str
    size: int
    size_encrypted: int
    is_dependency: bool = False
    manifest: str | None = None

    def to_graph(self) -> dict[str, Any]:
        body = self.model_dump(mode="json", by_alias=True)
        body["@odata.type"] = "#microsoft.graph.mobileAppContentFile"
        return body
