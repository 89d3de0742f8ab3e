"""Content version orchestrator — drives one content upload to commit.

The orchestrator wires the ArchiveMetadataReader, the GraphClient, the
ChunkedBlobUploader and the ContentFileStateMachine into the remote
content-version lifecycle of an existing app:

    parse metadata -> create content version -> register content file
        -> wait for storage URI -> upload blocks -> commit encryption info
        -> wait for commit -> point the app at the new version

Each step gates the next.  Errors propagate unchanged; undoing remote
state is the caller's job (see ``AppPublisher``).
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable
from pathlib import Path

from pydantic import BaseModel, ConfigDict

from intuneforge.bridge.archive_access import ArchiveAccess, LocalArchiveAccess
from intuneforge.bridge.graph_client import GraphClient
from intuneforge.core.archive import ArchiveMetadataReader
from intuneforge.core.blob_uploader import ChunkedBlobUploader
from intuneforge.core.content_state import ContentFileStateMachine
from intuneforge.core.errors import CommitFailedError, NotFoundError, RemoteApiError
from intuneforge.core.polling import PollPolicy, poll_until
from intuneforge.models.apps import (
    COMMIT_FAILURE_STATES,
    URI_FAILURE_STATES,
    ContentFile,
    ContentFileRequest,
    ContentVersion,
    UploadState,
)
from intuneforge.models.metadata import ArchiveMetadata
from intuneforge.models.states import ContentFileState, ContentFileTransition
from intuneforge.routing.sinks import EventSink, NullEventSink

logger = logging.getLogger(__name__)


class ContentPublishResult(BaseModel):
    """What a successful content publish left behind remotely."""

    model_config = ConfigDict(frozen=True)

    app_id: str
    content_version: ContentVersion
    content_file: ContentFile
    metadata: ArchiveMetadata
    block_ids: list[str]
    history: list[ContentFileTransition] = []

    @property
    def committed_content_version(self) -> str:
        return self.content_version.id


class ContentVersionOrchestrator:
    """Publishes a payload as a new committed content version of an app.

    Parameters
    ----------
    graph:
        Management API client.
    uploader:
        Block uploader for the payload.
    reader:
        Metadata reader; built over ``files`` when omitted.
    files:
        Local file access (payload existence and size).
    uri_policy, commit_policy:
        Polling budgets for storage URI assignment and commit processing.
    events:
        Structured event sink.
    sleep:
        Awaitable sleep used between polls (``asyncio.sleep``).
    """

    def __init__(
        self,
        graph: GraphClient,
        uploader: ChunkedBlobUploader,
        *,
        reader: ArchiveMetadataReader | None = None,
        files: ArchiveAccess | None = None,
        uri_policy: PollPolicy | None = None,
        commit_policy: PollPolicy | None = None,
        events: EventSink | None = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        self._graph = graph
        self._uploader = uploader
        self._files = files or LocalArchiveAccess()
        self._reader = reader or ArchiveMetadataReader(self._files)
        self._uri_policy = uri_policy or PollPolicy(timeout_seconds=60.0)
        self._commit_policy = commit_policy or PollPolicy(timeout_seconds=600.0, max_attempts=120)
        self._events = events or NullEventSink()
        self._sleep = sleep

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    async def publish_content(
        self, app_id: str, payload_path: Path, metadata_path: Path
    ) -> ContentPublishResult:
        """Upload *payload_path* as a new committed content version of *app_id*.

        The payload size is checked against the block limit before any
        remote call.  Each call tracks its content file in its own
        state machine; the transitions come back on the result.

        Lifecycle:
        1. Parse the metadata record
        2. Create a content version
        3. Register the content file (unencrypted and encrypted sizes)
        4. Poll until the storage URI is assigned
        5. Upload the payload in blocks
        6. Commit with the encryption info
        7. Poll until the commit is processed
        8. Patch the app's committed content version
        """
        payload_path = Path(payload_path)
        if not self._files.file_exists(payload_path):
            raise NotFoundError(f"Payload file not found: {payload_path}", path=str(payload_path))
        encrypted_size = self._files.file_size(payload_path)
        self._uploader.check_capacity(encrypted_size)
        states = ContentFileStateMachine(self._events)

        # 1. Metadata
        metadata = self._reader.read_metadata_file(Path(metadata_path))
        logger.debug("Creating new content version for app %s", app_id)

        # 2. Content version
        version = await self._graph.create_content_version(app_id)
        logger.debug("Created content version %s", version.id)
        self._events.emit("content.version_created", app_id=app_id, content_version_id=version.id)

        # 3. Content file: declared sizes come from two different sources
        request = ContentFileRequest(
            name=metadata.file_name,
            size=metadata.unencrypted_content_size,
            size_encrypted=encrypted_size,
        )
        logger.debug(
            "Creating content file %s %d %d", request.name, request.size, request.size_encrypted
        )
        content_file = await self._graph.create_content_file(app_id, version.id, request)
        states.register(content_file.id)
        self._events.emit(
            "content.file_registered",
            content_file_id=content_file.id,
            file_name=request.name,
            size=request.size,
            size_encrypted=request.size_encrypted,
        )

        try:
            # 4. Storage URI
            states.transition(content_file.id, ContentFileState.URI_PENDING)
            content_file = await self._wait_for_storage_uri(app_id, version.id, content_file.id)
            states.transition(content_file.id, ContentFileState.URI_ASSIGNED)
            logger.debug("Loaded content file %s with storage URI", content_file.id)

            # 5. Upload
            states.transition(content_file.id, ContentFileState.UPLOADING)
            block_ids = await self._uploader.upload_file(
                payload_path, content_file.azure_storage_uri or ""
            )
            logger.debug("Uploaded content file %s", content_file.id)

            # 6 + 7. Commit and wait
            states.transition(content_file.id, ContentFileState.COMMITTING)
            await self._graph.commit_content_file(
                app_id, version.id, content_file.id, metadata.encryption_info
            )
            content_file = await self._wait_for_commit(app_id, version.id, content_file.id)
            states.transition(content_file.id, ContentFileState.COMMITTED)
        except BaseException as exc:
            states.fail(content_file.id, reason=str(exc) or type(exc).__name__)
            raise

        # 8. Point the app at the new version
        await self._graph.patch_app(app_id, {"committedContentVersion": version.id})
        logger.info("Added content version %s to app %s", version.id, app_id)
        self._events.emit(
            "content.committed",
            app_id=app_id,
            content_version_id=version.id,
            content_file_id=content_file.id,
        )

        return ContentPublishResult(
            app_id=app_id,
            content_version=version,
            content_file=content_file,
            metadata=metadata,
            block_ids=block_ids,
            history=states.history,
        )

    async def publish_archive(self, app_id: str, archive_path: Path) -> ContentPublishResult:
        """Publish a packed archive (or extracted directory) to an existing app."""
        async with self._reader.open(Path(archive_path)) as package:
            return await self.publish_content(
                app_id, package.payload_path, package.metadata_path
            )

    # ------------------------------------------------------------------
    # Polling
    # ------------------------------------------------------------------

    async def _wait_for_storage_uri(
        self, app_id: str, version_id: str, file_id: str
    ) -> ContentFile:
        def accept(content_file: ContentFile) -> bool:
            if content_file.upload_state in URI_FAILURE_STATES:
                raise RemoteApiError(
                    f"Storage URI request for content file {file_id} ended in "
                    f"{content_file.upload_state.value}",
                    error_code=content_file.upload_state.value,
                )
            return content_file.has_storage_uri

        return await poll_until(
            lambda: self._graph.get_content_file(app_id, version_id, file_id),
            accept,
            policy=self._uri_policy,
            what=f"storage URI of content file {file_id}",
            sleep=self._sleep,
        )

    async def _wait_for_commit(
        self, app_id: str, version_id: str, file_id: str
    ) -> ContentFile:
        def accept(content_file: ContentFile) -> bool:
            state = content_file.upload_state
            if state in COMMIT_FAILURE_STATES:
                detail = _server_detail(content_file)
                self._events.emit(
                    "content.commit_failed",
                    content_file_id=file_id,
                    upload_state=state.value,
                    detail=detail,
                )
                raise CommitFailedError(
                    f"Commit of content file {file_id} ended in {state.value}: {detail}",
                    upload_state=state.value,
                    detail=detail,
                )
            return state == UploadState.COMMIT_SUCCESS

        return await poll_until(
            lambda: self._graph.get_content_file(app_id, version_id, file_id),
            accept,
            policy=self._commit_policy,
            what=f"commit of content file {file_id}",
            sleep=self._sleep,
        )


def _server_detail(content_file: ContentFile) -> str:
    """The service-reported fields of a content file, minus the signed URI."""
    fields = content_file.model_dump(
        mode="json",
        by_alias=True,
        exclude_none=True,
        exclude={"azure_storage_uri"},
    )
    return ", ".join(f"{key}={value}" for key, value in sorted(fields.items()))
