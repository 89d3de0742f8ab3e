"""Content archive reader — metadata record and encrypted payload location.

A content archive is a zip file with a fixed layout::

    IntuneWinPackage/
        Metadata/Detection.xml        <- the metadata record
        Contents/IntunePackage.intunewin  <- the encrypted payload

The reader accepts either the packed archive or a directory it was
already extracted to.  A packed archive is extracted into a scratch
directory that is removed on every exit path, success or failure.
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
import tempfile
import uuid
import xml.etree.ElementTree as ET
from collections.abc import AsyncIterator, Iterator
from pathlib import Path

from pydantic import BaseModel, ConfigDict, ValidationError

from intuneforge.bridge.archive_access import ArchiveAccess, LocalArchiveAccess
from intuneforge.core.errors import FormatError, NotFoundError
from intuneforge.models.metadata import ArchiveMetadata, EncryptionInfo

logger = logging.getLogger(__name__)

PACKAGE_DIR = "IntuneWinPackage"
METADATA_PATH = Path(PACKAGE_DIR, "Metadata", "Detection.xml")
CONTENTS_DIR = Path(PACKAGE_DIR, "Contents")
DEFAULT_PAYLOAD_NAME = "IntunePackage.intunewin"

_ENCRYPTION_FIELDS = {
    "EncryptionKey": "encryption_key",
    "MacKey": "mac_key",
    "InitializationVector": "initialization_vector",
    "Mac": "mac",
    "ProfileIdentifier": "profile_identifier",
    "FileDigest": "file_digest",
    "FileDigestAlgorithm": "file_digest_algorithm",
}


class ArchivePackage(BaseModel):
    """A located archive: parsed metadata plus where its files are."""

    model_config = ConfigDict(frozen=True)

    metadata: ArchiveMetadata
    metadata_path: Path
    payload_path: Path


def _local(tag: str) -> str:
    """Drop an ``{namespace}`` prefix from an element tag."""
    return tag.rsplit("}", 1)[-1]


def _children(element: ET.Element) -> dict[str, str]:
    return {_local(child.tag): (child.text or "").strip() for child in element}


def parse_metadata(xml_bytes: bytes) -> ArchiveMetadata:
    """Parse a ``Detection.xml`` metadata record.

    Raises
    ------
    FormatError
        If the XML is malformed, a required element is missing, or the
        unencrypted size is not a non-negative 64-bit integer.
    """
    try:
        root = ET.fromstring(xml_bytes)
    except ET.ParseError as exc:
        raise FormatError(f"Metadata is not valid XML: {exc}") from exc

    if _local(root.tag) != "ApplicationInfo":
        raise FormatError(f"Unexpected metadata root element <{_local(root.tag)}>")

    fields = _children(root)
    encryption = next(
        (child for child in root if _local(child.tag) == "EncryptionInfo"), None
    )
    if encryption is None:
        raise FormatError("Metadata has no <EncryptionInfo> element")

    for required in ("FileName", "UnencryptedContentSize"):
        if not fields.get(required):
            raise FormatError(f"Metadata has no <{required}> element")

    raw_size = fields["UnencryptedContentSize"]
    try:
        size = int(raw_size)
    except ValueError as exc:
        raise FormatError(f"UnencryptedContentSize is not an integer: {raw_size!r}") from exc

    enc_fields = _children(encryption)
    enc_kwargs = {
        attr: enc_fields[tag] for tag, attr in _ENCRYPTION_FIELDS.items() if enc_fields.get(tag)
    }

    try:
        return ArchiveMetadata(
            name=fields.get("Name", ""),
            file_name=fields["FileName"],
            setup_file=fields.get("SetupFile", ""),
            unencrypted_content_size=size,
            encryption_info=EncryptionInfo(**enc_kwargs),
            tool_version=root.get("ToolVersion", ""),
        )
    except ValidationError as exc:
        raise FormatError(f"Metadata is incomplete or out of range: {exc}") from exc


class ArchiveMetadataReader:
    """Locates and parses the metadata record of a content archive.

    Parameters
    ----------
    files:
        Local file access; ``LocalArchiveAccess`` when omitted.
    scratch_root:
        Where packed archives are extracted.  The system temp dir when
        omitted.  Each extraction gets its own fresh sub-directory.
    """

    def __init__(
        self,
        files: ArchiveAccess | None = None,
        *,
        scratch_root: Path | None = None,
    ) -> None:
        self._files = files or LocalArchiveAccess()
        self._scratch_root = Path(scratch_root) if scratch_root else Path(tempfile.gettempdir())

    # ------------------------------------------------------------------
    # Metadata
    # ------------------------------------------------------------------

    def read_metadata_file(self, metadata_path: Path) -> ArchiveMetadata:
        """Parse a standalone metadata file."""
        metadata_path = Path(metadata_path)
        if not self._files.file_exists(metadata_path):
            raise NotFoundError(
                f"Metadata file not found: {metadata_path}", path=str(metadata_path)
            )
        return parse_metadata(self._files.read_all_bytes(metadata_path))

    def locate(self, directory: Path) -> ArchivePackage:
        """Find and parse metadata and payload inside an extracted archive."""
        directory = Path(directory)
        metadata_path = directory / METADATA_PATH
        metadata = self.read_metadata_file(metadata_path)

        candidates = [directory / CONTENTS_DIR / metadata.file_name]
        if metadata.file_name != DEFAULT_PAYLOAD_NAME:
            candidates.append(directory / CONTENTS_DIR / DEFAULT_PAYLOAD_NAME)
        payload_path = next((p for p in candidates if self._files.file_exists(p)), None)
        if payload_path is None:
            raise NotFoundError(
                f"Archive payload not found: {candidates[0]}", path=str(candidates[0])
            )

        return ArchivePackage(
            metadata=metadata,
            metadata_path=metadata_path,
            payload_path=payload_path,
        )

    def read(self, path: Path) -> ArchiveMetadata:
        """Return the metadata of an archive or extracted directory."""
        with self.extracted(path) as package:
            return package.metadata

    # ------------------------------------------------------------------
    # Scoped extraction
    # ------------------------------------------------------------------

    @contextlib.contextmanager
    def extracted(self, path: Path) -> Iterator[ArchivePackage]:
        """Yield the located package; scratch space is removed afterwards."""
        package, scratch = self._unpack(Path(path))
        try:
            yield package
        finally:
            self._discard(scratch)

    @contextlib.asynccontextmanager
    async def open(self, path: Path) -> AsyncIterator[ArchivePackage]:
        """Async variant of :meth:`extracted`; extraction runs off the loop."""
        package, scratch = await asyncio.to_thread(self._unpack, Path(path))
        try:
            yield package
        finally:
            self._discard(scratch)

    def _unpack(self, path: Path) -> tuple[ArchivePackage, Path | None]:
        if path.is_dir():
            return self.locate(path), None

        if not self._files.file_exists(path):
            raise NotFoundError(f"Archive not found: {path}", path=str(path))

        scratch = self._scratch_root / f"intuneforge-{uuid.uuid4().hex}"
        try:
            self._files.extract(path, scratch)
            package = self.locate(scratch)
        except BaseException:
            self._discard(scratch)
            raise
        logger.debug("Unpacked %s into %s", path, scratch)
        return package, scratch

    def _discard(self, scratch: Path | None) -> None:
        if scratch is None:
            return
        try:
            self._files.delete_recursive(scratch)
        except OSError as exc:
            logger.warning("Could not remove scratch directory %s: %s", scratch, exc)
