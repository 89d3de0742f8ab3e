"""Bridges to the outside world: local files, credentials, the management API."""

from intuneforge.bridge.archive_access import ArchiveAccess, LocalArchiveAccess
from intuneforge.bridge.credentials import (
    CallableTokenSupplier,
    StaticTokenSupplier,
    TokenSupplier,
    supplier_for,
)
from intuneforge.bridge.graph_client import GraphClient

__all__ = [
    "ArchiveAccess",
    "LocalArchiveAccess",
    "TokenSupplier",
    "StaticTokenSupplier",
    "CallableTokenSupplier",
    "supplier_for",
    "GraphClient",
]
