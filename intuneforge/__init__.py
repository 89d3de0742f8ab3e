"""intuneforge: publish packaged Win32 apps to Intune.

Reads a content archive, creates (or reuses) the app record, uploads the
encrypted payload to blob storage in blocks, commits it as a new content
version, and removes the app again when anything along the way fails.
"""

__version__ = "0.1.0"
__description__ = "Publish packaged Win32 line-of-business apps to Intune"

from intuneforge.core.archive import ArchiveMetadataReader
from intuneforge.core.blob_uploader import ChunkedBlobUploader
from intuneforge.core.content_version import ContentVersionOrchestrator
from intuneforge.core.publisher import AppPublisher
from intuneforge.cli.app import app as cli

__all__ = [
    "AppPublisher",
    "ArchiveMetadataReader",
    "ChunkedBlobUploader",
    "ContentVersionOrchestrator",
    "cli",
    "__version__",
]
