"""Chunked block-blob uploader.

Uploads a byte payload to a pre-signed blob-storage URI with the block
protocol:

1. Split the payload into fixed-size chunks, index 0 upwards.
2. ``PUT <uri>&comp=block&blockid=<id>`` for every chunk, where ``id`` is
   the base64 of the zero-padded 4-digit chunk index.
3. ``PUT <uri>&comp=blocklist`` with the ids in ascending index order.

Four digits cap the scheme at 10,000 blocks (about 60 GB at the default
6 MiB chunk size); bigger payloads fail before any request is sent.

Nothing is retried here and nothing is persisted: a failed upload leaves
an uncommitted blob behind that the storage service discards.
"""

from __future__ import annotations

import asyncio
import base64
import logging
import math
from collections.abc import Iterator
from dataclasses import dataclass
from pathlib import Path

import httpx

from intuneforge.bridge.archive_access import ArchiveAccess, LocalArchiveAccess
from intuneforge.config import DEFAULT_CHUNK_SIZE
from intuneforge.core.errors import CapacityExceededError, IntuneForgeError, UploadError
from intuneforge.routing.sinks import EventSink, NullEventSink

logger = logging.getLogger(__name__)

MAX_BLOCKS = 10_000
BLOB_TYPE_HEADER = {"x-ms-blob-type": "BlockBlob"}


@dataclass(frozen=True)
class UploadChunk:
    """One slice of the payload and the block id it is uploaded under."""

    index: int
    block_id: str
    offset: int
    length: int


def block_id(index: int) -> str:
    """Block id for a chunk index: base64 of the 4-digit decimal index."""
    if not 0 <= index < MAX_BLOCKS:
        raise CapacityExceededError(
            f"Chunk index {index} is outside the addressable range 0..{MAX_BLOCKS - 1}"
        )
    return base64.b64encode(f"{index:04d}".encode("ascii")).decode("ascii")


def chunk_count(size: int, chunk_size: int) -> int:
    """Number of chunks a payload of *size* bytes splits into."""
    return math.ceil(size / chunk_size)


def ensure_capacity(size: int, chunk_size: int) -> int:
    """Return the chunk count for *size*, or raise ``CapacityExceededError``
    when the payload needs more than ``MAX_BLOCKS`` chunks.
    """
    count = chunk_count(size, chunk_size)
    if count > MAX_BLOCKS:
        raise CapacityExceededError(
            f"Payload of {size} bytes needs {count} chunks of {chunk_size} bytes; "
            f"the block id scheme addresses at most {MAX_BLOCKS}"
        )
    return count


def plan_chunks(size: int, chunk_size: int) -> Iterator[UploadChunk]:
    """Yield the chunks of a payload in ascending index order.

    Raises ``CapacityExceededError`` up front (see :func:`ensure_capacity`).
    """
    count = ensure_capacity(size, chunk_size)
    for index in range(count):
        offset = index * chunk_size
        yield UploadChunk(
            index=index,
            block_id=block_id(index),
            offset=offset,
            length=min(chunk_size, size - offset),
        )


def block_list_xml(block_ids: list[str]) -> str:
    """The block-list document committing *block_ids* in the given order."""
    latest = "".join(f"<Latest>{bid}</Latest>" for bid in block_ids)
    return f'<?xml version="1.0" encoding="utf-8"?><BlockList>{latest}</BlockList>'


def with_query(uri: str, extra: str) -> str:
    """Append ``extra`` to the query string of a (pre-signed) URI."""
    if "?" not in uri:
        return f"{uri}?{extra}"
    if uri.endswith(("?", "&")):
        return f"{uri}{extra}"
    return f"{uri}&{extra}"


class ChunkedBlobUploader:
    """Uploads payloads to blob storage in blocks.

    Parameters
    ----------
    http_client:
        ``httpx.AsyncClient`` used for the PUTs.  Built on demand (and
        owned) when omitted.
    chunk_size:
        Bytes per block.  Defaults to 6 MiB.
    max_concurrency:
        Number of block PUTs in flight at once.  ``1`` uploads strictly
        sequentially.  The finalize list is in index order either way.
    events:
        Structured event sink.
    files:
        Local file access for :meth:`upload_file`.
    """

    def __init__(
        self,
        http_client: httpx.AsyncClient | None = None,
        *,
        chunk_size: int = DEFAULT_CHUNK_SIZE,
        max_concurrency: int = 1,
        events: EventSink | None = None,
        files: ArchiveAccess | None = None,
        timeout_seconds: float = 100.0,
    ) -> None:
        if chunk_size <= 0:
            raise ValueError("chunk_size must be positive")
        if max_concurrency < 1:
            raise ValueError("max_concurrency must be at least 1")
        self._owns_client = http_client is None
        self._http = http_client or httpx.AsyncClient(timeout=httpx.Timeout(timeout_seconds))
        self._chunk_size = chunk_size
        self._max_concurrency = max_concurrency
        self._events = events or NullEventSink()
        self._files = files or LocalArchiveAccess()

    @property
    def chunk_size(self) -> int:
        return self._chunk_size

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def check_capacity(self, size: int) -> int:
        """Chunk count for a payload of *size* bytes at this chunk size.

        Raises ``CapacityExceededError`` if the payload cannot be addressed.
        """
        return ensure_capacity(size, self._chunk_size)

    async def upload_file(self, path: Path, destination_uri: str) -> list[str]:
        """Read a file fully into memory and upload it.

        The size is checked against the block limit before anything is read.
        """
        path = Path(path)
        self.check_capacity(await asyncio.to_thread(self._files.file_size, path))
        payload = await asyncio.to_thread(self._files.read_all_bytes, path)
        return await self.upload(payload, destination_uri)

    async def upload(self, payload: bytes, destination_uri: str) -> list[str]:
        """Upload *payload* and commit it as a block blob.

        Returns the committed block ids, in order.

        Raises
        ------
        CapacityExceededError
            Before any request, if the payload needs too many blocks.
        UploadError
            If any block PUT or the finalize PUT fails.
        """
        chunks = list(plan_chunks(len(payload), self._chunk_size))
        block_ids = [chunk.block_id for chunk in chunks]

        logger.debug(
            "Uploading %d bytes in %d chunks to %s", len(payload), len(chunks), _redact(destination_uri)
        )
        self._events.emit(
            "upload.started",
            size=len(payload),
            chunk_count=len(chunks),
            chunk_size=self._chunk_size,
        )

        try:
            if self._max_concurrency == 1:
                for chunk in chunks:
                    await self._put_block(destination_uri, payload, chunk, len(chunks))
            else:
                await self._put_blocks_concurrently(destination_uri, payload, chunks)

            self._events.emit("upload.finalizing", chunk_count=len(chunks))
            await self._finalize(destination_uri, block_ids)
        except IntuneForgeError as exc:
            logger.error("Upload to %s failed: %s", _redact(destination_uri), exc)
            self._events.emit("upload.failed", error=str(exc))
            raise

        self._events.emit("upload.completed", size=len(payload), chunk_count=len(chunks))
        return block_ids

    async def close(self) -> None:
        if self._owns_client:
            await self._http.aclose()

    # ------------------------------------------------------------------
    # Internal
    # ------------------------------------------------------------------

    async def _put_blocks_concurrently(
        self, uri: str, payload: bytes, chunks: list[UploadChunk]
    ) -> None:
        semaphore = asyncio.Semaphore(self._max_concurrency)

        async def bounded(chunk: UploadChunk) -> None:
            async with semaphore:
                await self._put_block(uri, payload, chunk, len(chunks))

        tasks = [asyncio.create_task(bounded(chunk)) for chunk in chunks]
        try:
            await asyncio.gather(*tasks)
        except BaseException:
            for task in tasks:
                task.cancel()
            await asyncio.gather(*tasks, return_exceptions=True)
            raise

    async def _put_block(
        self, uri: str, payload: bytes, chunk: UploadChunk, total: int
    ) -> None:
        data = payload[chunk.offset:chunk.offset + chunk.length]
        url = with_query(uri, f"comp=block&blockid={chunk.block_id}")
        logger.debug(
            "Uploading chunk %d of %d (%d - %d)",
            chunk.index + 1, total, chunk.offset, chunk.offset + chunk.length,
        )
        try:
            response = await self._http.put(url, content=data, headers=BLOB_TYPE_HEADER)
        except httpx.HTTPError as exc:
            raise UploadError(
                f"Block {chunk.index} ({chunk.block_id}) failed: {exc}",
                block_id=chunk.block_id,
            ) from exc

        if not response.is_success:
            raise UploadError(
                f"Block {chunk.index} ({chunk.block_id}) rejected with HTTP {response.status_code}",
                status_code=response.status_code,
                block_id=chunk.block_id,
            )
        self._events.emit(
            "upload.chunk",
            index=chunk.index,
            block_id=chunk.block_id,
            offset=chunk.offset,
            length=chunk.length,
        )

    async def _finalize(self, uri: str, block_ids: list[str]) -> None:
        url = with_query(uri, "comp=blocklist")
        try:
            response = await self._http.put(
                url,
                content=block_list_xml(block_ids).encode("utf-8"),
                headers={"Content-Type": "application/xml; charset=utf-8"},
            )
        except httpx.HTTPError as exc:
            raise UploadError(f"Block list commit failed: {exc}") from exc

        if not response.is_success:
            raise UploadError(
                f"Block list commit rejected with HTTP {response.status_code}",
                status_code=response.status_code,
            )


def _redact(uri: str) -> str:
    """Strip the signature-bearing query string before logging a URI."""
    return uri.split("?", 1)[0]
