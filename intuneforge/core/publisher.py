"""App publisher — the single entry point hosts call to publish an app.

The publisher creates the application record, runs the content stage
(``ContentVersionOrchestrator`` plus a final reload) into an explicit
``StageOutcome``, and runs a compensation step whenever that outcome is
not successful:

- ``AuthFailedError``: surfaced as-is.  No cleanup; a delete would be
  rejected for the same reason.
- anything else, including cancellation: the app is deleted exactly once
  if this call created it.  The delete is shielded from the caller's
  cancellation.  A failed delete is logged and attached to the original
  error, which is always the one raised.
"""

from __future__ import annotations

import asyncio
import logging
from pathlib import Path
from typing import Any

import httpx
from pydantic import BaseModel, ConfigDict

from intuneforge.bridge.archive_access import ArchiveAccess, LocalArchiveAccess
from intuneforge.bridge.credentials import TokenSupplier, supplier_for
from intuneforge.bridge.graph_client import GraphClient
from intuneforge.config import PublishSettings
from intuneforge.core.archive import ArchiveMetadataReader
from intuneforge.core.blob_uploader import ChunkedBlobUploader
from intuneforge.core.content_version import ContentPublishResult, ContentVersionOrchestrator
from intuneforge.core.errors import AuthFailedError, IntuneForgeError, NotFoundError, RemoteApiError
from intuneforge.core.polling import PollPolicy
from intuneforge.models.apps import ApplicationRecord, MimeContent
from intuneforge.routing.dispatcher import SinkDispatcher
from intuneforge.routing.sinks import EventSink, LoggingEventSink, NullEventSink
from intuneforge.routing.sinks.jsonl_file import JsonLinesFileSink

logger = logging.getLogger(__name__)


class StageOutcome(BaseModel):
    """Result of the content stage: a value or the error that stopped it."""

    model_config = ConfigDict(frozen=True, arbitrary_types_allowed=True)

    content: ContentPublishResult | None = None
    application: ApplicationRecord | None = None
    error: BaseException | None = None

    @property
    def ok(self) -> bool:
        return self.error is None


def attach_cleanup_error(original: BaseException, cleanup_error: BaseException) -> None:
    """Record a failed compensation on the error that triggered it."""
    if isinstance(original, IntuneForgeError):
        original.cleanup_error = cleanup_error
    original.add_note(f"Cleanup failed as well: {type(cleanup_error).__name__}: {cleanup_error}")


class AppPublisher:
    """Creates an app, publishes its content, and rolls back on failure.

    Parameters
    ----------
    graph:
        Management API client.
    orchestrator:
        Content version orchestrator bound to the same client.
    reader:
        Archive reader for :meth:`publish_archive`.
    files:
        Local file access (icon).
    events:
        Structured event sink.
    """

    def __init__(
        self,
        graph: GraphClient,
        orchestrator: ContentVersionOrchestrator,
        *,
        reader: ArchiveMetadataReader | None = None,
        files: ArchiveAccess | None = None,
        events: EventSink | None = None,
        closeables: list[Any] | None = None,
    ) -> None:
        self._graph = graph
        self._orchestrator = orchestrator
        self._files = files or LocalArchiveAccess()
        self._reader = reader or ArchiveMetadataReader(self._files)
        self._events = events or NullEventSink()
        self._closeables = closeables or []

    @classmethod
    def from_settings(
        cls,
        settings: PublishSettings,
        *,
        token_supplier: TokenSupplier | None = None,
        http_client: httpx.AsyncClient | None = None,
        events: EventSink | None = None,
    ) -> AppPublisher:
        """Wire a publisher from settings.

        ``settings.token`` wins over ``token_supplier``.  Without an
        explicit sink, events go to the log and, when
        ``settings.events_path`` is set, to a JSON-lines file.
        """
        tokens = (
            supplier_for(settings.token)
            if settings.has_static_token or token_supplier is None
            else token_supplier
        )
        if events is None:
            sinks: list[EventSink] = [LoggingEventSink()]
            if settings.events_path is not None:
                sinks.append(JsonLinesFileSink(settings.events_path))
            events = SinkDispatcher(sinks)

        files = LocalArchiveAccess()
        reader = ArchiveMetadataReader(files)
        graph = GraphClient(
            tokens,
            base_url=settings.graph_base_url,
            http_client=http_client,
            timeout_seconds=settings.http_timeout_seconds,
        )
        uploader = ChunkedBlobUploader(
            http_client,
            chunk_size=settings.chunk_size,
            max_concurrency=settings.max_upload_concurrency,
            events=events,
            files=files,
            timeout_seconds=settings.http_timeout_seconds,
        )
        orchestrator = ContentVersionOrchestrator(
            graph,
            uploader,
            reader=reader,
            files=files,
            uri_policy=PollPolicy.for_uri(settings),
            commit_policy=PollPolicy.for_commit(settings),
            events=events,
        )
        return cls(
            graph,
            orchestrator,
            reader=reader,
            files=files,
            events=events,
            closeables=[graph, uploader],
        )

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    async def publish(
        self,
        descriptor: ApplicationRecord,
        payload_path: Path,
        metadata_path: Path,
        icon_path: Path | None = None,
    ) -> ApplicationRecord:
        """Publish an app and return its final remote state.

        A descriptor with ``id`` set names an existing app: its content is
        replaced, but it is never created and never deleted here.
        """
        payload_path = Path(payload_path)
        if not self._files.file_exists(payload_path):
            raise NotFoundError(f"Payload file not found: {payload_path}", path=str(payload_path))

        descriptor = self._with_icon(descriptor, icon_path)
        created = descriptor.id is None

        if created:
            logger.debug("Creating new app %s", descriptor.display_name)
            app = await self._graph.create_app(descriptor)
            if not app.id:
                raise RemoteApiError("The service created the app but returned no id")
            self._events.emit("publish.app_created", app_id=app.id, display_name=app.display_name)
        else:
            app = descriptor
            self._events.emit("publish.app_reused", app_id=app.id, display_name=app.display_name)

        app_id = app.id or ""
        outcome = await self._run_content_stage(app_id, payload_path, Path(metadata_path))

        if outcome.error is not None:
            await self._compensate(app_id, created, outcome.error)
            raise outcome.error

        application = outcome.application or app
        self._events.emit(
            "publish.completed",
            app_id=app_id,
            committed_content_version=application.committed_content_version,
        )
        return application

    async def publish_archive(
        self,
        descriptor: ApplicationRecord,
        archive_path: Path,
        icon_path: Path | None = None,
    ) -> ApplicationRecord:
        """Publish a packed archive; scratch space is removed afterwards."""
        async with self._reader.open(Path(archive_path)) as package:
            return await self.publish(
                descriptor, package.payload_path, package.metadata_path, icon_path
            )

    async def aclose(self) -> None:
        for closeable in self._closeables:
            await closeable.close()

    async def __aenter__(self) -> AppPublisher:
        return self

    async def __aexit__(self, *exc: Any) -> None:
        await self.aclose()

    # ------------------------------------------------------------------
    # Stages
    # ------------------------------------------------------------------

    async def _run_content_stage(
        self, app_id: str, payload_path: Path, metadata_path: Path
    ) -> StageOutcome:
        try:
            content = await self._orchestrator.publish_content(app_id, payload_path, metadata_path)
            application = await self._graph.get_app(app_id)
        except (Exception, asyncio.CancelledError) as exc:
            return StageOutcome(error=exc)
        return StageOutcome(content=content, application=application)

    async def _compensate(self, app_id: str, created: bool, error: BaseException) -> None:
        if isinstance(error, AuthFailedError):
            logger.error("Error publishing app, auth failed: %s", error)
            self._events.emit("publish.failed", app_id=app_id, error=str(error), cleanup="skipped")
            return

        logger.error("Error publishing app %s, deleting the remains: %s", app_id, error)
        self._events.emit(
            "publish.failed",
            app_id=app_id,
            error=str(error) or type(error).__name__,
            cleanup="delete" if created else "none",
        )
        if not created:
            return

        # The delete must finish even when the caller is cancelling us.
        delete = asyncio.ensure_future(self._delete_app(app_id))
        while True:
            try:
                cleanup_error = await asyncio.shield(delete)
                break
            except asyncio.CancelledError:
                if delete.done():
                    cleanup_error = delete.result()
                    break
                logger.warning("Cancellation requested while deleting app %s; finishing cleanup", app_id)

        if cleanup_error is not None:
            attach_cleanup_error(error, cleanup_error)

    async def _delete_app(self, app_id: str) -> BaseException | None:
        try:
            await self._graph.delete_app(app_id)
        except Exception as exc:
            logger.error("Error deleting app %s: %s", app_id, exc)
            self._events.emit("publish.cleanup_failed", app_id=app_id, error=str(exc))
            return exc
        self._events.emit("publish.cleaned_up", app_id=app_id)
        return None

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _with_icon(
        self, descriptor: ApplicationRecord, icon_path: Path | None
    ) -> ApplicationRecord:
        if descriptor.large_icon is not None or icon_path is None:
            return descriptor
        icon_path = Path(icon_path)
        if not self._files.file_exists(icon_path):
            logger.warning("Icon %s not found, publishing without one", icon_path)
            return descriptor
        return descriptor.with_icon(MimeContent.from_bytes(self._files.read_all_bytes(icon_path)))
