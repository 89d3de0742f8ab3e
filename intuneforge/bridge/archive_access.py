"""Archive access bridge — filesystem and zip helpers used by the pipeline.

Bridge boundary
---------------
The publishing core only needs five capabilities from the local machine:
extract an archive, test for a file, read a file, measure a file, and
delete a path.  ``ArchiveAccess`` is that contract; ``LocalArchiveAccess``
is the implementation backed by ``zipfile`` and ``shutil``.  Tests and
hosts may substitute their own.
"""

from __future__ import annotations

import logging
import shutil
import zipfile
from pathlib import Path
from typing import Protocol, runtime_checkable

from intuneforge.core.errors import FormatError, NotFoundError

logger = logging.getLogger(__name__)


@runtime_checkable
class ArchiveAccess(Protocol):
    """The narrow local-file surface the pipeline depends on."""

    def extract(self, archive_path: Path, dest_dir: Path) -> None: ...

    def file_exists(self, path: Path) -> bool: ...

    def read_all_bytes(self, path: Path) -> bytes: ...

    def file_size(self, path: Path) -> int: ...

    def delete_recursive(self, path: Path) -> None: ...


class LocalArchiveAccess:
    """``ArchiveAccess`` over the local filesystem."""

    def extract(self, archive_path: Path, dest_dir: Path) -> None:
        """Extract a zip archive into *dest_dir*.

        Members that would land outside *dest_dir* (absolute paths or
        ``..`` segments) make the whole archive invalid.
        """
        archive_path = Path(archive_path)
        dest_dir = Path(dest_dir)
        if not archive_path.is_file():
            raise NotFoundError(f"Archive not found: {archive_path}", path=str(archive_path))

        dest_dir.mkdir(parents=True, exist_ok=True)
        root = dest_dir.resolve()
        try:
            with zipfile.ZipFile(archive_path) as zf:
                for member in zf.namelist():
                    target = (root / member).resolve()
                    if target != root and root not in target.parents:
                        raise FormatError(
                            f"Archive member escapes extraction directory: {member!r}"
                        )
                zf.extractall(root)
        except zipfile.BadZipFile as exc:
            raise FormatError(f"Not a valid archive: {archive_path}: {exc}") from exc

        logger.debug("Extracted %s to %s", archive_path, dest_dir)

    def file_exists(self, path: Path) -> bool:
        return Path(path).is_file()

    def read_all_bytes(self, path: Path) -> bytes:
        path = Path(path)
        if not path.is_file():
            raise NotFoundError(f"File not found: {path}", path=str(path))
        return path.read_bytes()

    def file_size(self, path: Path) -> int:
        path = Path(path)
        if not path.is_file():
            raise NotFoundError(f"File not found: {path}", path=str(path))
        return path.stat().st_size

    def delete_recursive(self, path: Path) -> None:
        """Delete a file or a directory tree. Missing paths are ignored."""
        path = Path(path)
        if path.is_dir():
            shutil.rmtree(path)
        elif path.exists():
            path.unlink()
