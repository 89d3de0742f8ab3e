"""Shared test fixtures for intuneforge."""

from __future__ import annotations

import zipfile
from collections.abc import Callable
from pathlib import Path

import pytest

from fakes import GRAPH_BASE, FakeIntune, no_sleep
from intuneforge.bridge.credentials import StaticTokenSupplier
from intuneforge.bridge.graph_client import GraphClient
from intuneforge.core.blob_uploader import ChunkedBlobUploader
from intuneforge.core.content_version import ContentVersionOrchestrator
from intuneforge.core.polling import PollPolicy
from intuneforge.core.publisher import AppPublisher
from intuneforge.routing.sinks import MemoryEventSink

# ---------------------------------------------------------------------------
# Archive factories
# ---------------------------------------------------------------------------

DETECTION_TEMPLATE = """<?xml version="1.0" encoding="utf-8"?>
<ApplicationInfo xmlns:xsd="http://www.w3.org/2001/XMLSchema" ToolVersion="1.8.4.0">
  <Name>{name}</Name>
  <UnencryptedContentSize>{size}</UnencryptedContentSize>
  <FileName>{file_name}</FileName>
  <SetupFile>{setup_file}</SetupFile>
  <EncryptionInfo>
    <EncryptionKey>a2V5a2V5a2V5a2V5</EncryptionKey>
    <MacKey>bWFjbWFjbWFjbWFj</MacKey>
    <InitializationVector>aXZpdml2aXZpdml2</InitializationVector>
    <Mac>bWFjdmFsdWU=</Mac>
    <ProfileIdentifier>ProfileVersion1</ProfileIdentifier>
    <FileDigest>ZGlnZXN0ZGlnZXN0</FileDigest>
    <FileDigestAlgorithm>SHA256</FileDigestAlgorithm>
  </EncryptionInfo>
</ApplicationInfo>
"""


@pytest.fixture
def make_detection_xml() -> Callable[..., bytes]:
    """Factory fixture: render a Detection.xml metadata record."""

    def _factory(
        name: str = "7-Zip",
        size: int | str = 1024,
        file_name: str = "IntunePackage.intunewin",
        setup_file: str = "7z2301-x64.exe",
    ) -> bytes:
        return DETECTION_TEMPLATE.format(
            name=name, size=size, file_name=file_name, setup_file=setup_file
        ).encode("utf-8")

    return _factory


@pytest.fixture
def make_package_dir(tmp_path: Path, make_detection_xml) -> Callable[..., Path]:
    """Factory fixture: lay out an extracted archive directory."""

    def _factory(
        payload: bytes = b"\x00" * 2048,
        *,
        unencrypted_size: int = 1024,
        file_name: str = "IntunePackage.intunewin",
        payload_name: str | None = None,
        dirname: str = "extracted",
    ) -> Path:
        root = tmp_path / dirname
        (root / "IntuneWinPackage" / "Metadata").mkdir(parents=True)
        (root / "IntuneWinPackage" / "Contents").mkdir(parents=True)
        (root / "IntuneWinPackage" / "Metadata" / "Detection.xml").write_bytes(
            make_detection_xml(size=unencrypted_size, file_name=file_name)
        )
        (root / "IntuneWinPackage" / "Contents" / (payload_name or file_name)).write_bytes(payload)
        return root

    return _factory


@pytest.fixture
def make_archive(tmp_path: Path, make_detection_xml) -> Callable[..., Path]:
    """Factory fixture: build a packed .intunewin archive."""

    def _factory(
        payload: bytes = b"\x00" * 2048,
        *,
        unencrypted_size: int = 1024,
        file_name: str = "IntunePackage.intunewin",
        metadata: bytes | None = None,
        extra_members: dict[str, bytes] | None = None,
        name: str = "app.intunewin",
    ) -> Path:
        path = tmp_path / name
        with zipfile.ZipFile(path, "w") as zf:
            zf.writestr(
                "IntuneWinPackage/Metadata/Detection.xml",
                metadata
                if metadata is not None
                else make_detection_xml(size=unencrypted_size, file_name=file_name),
            )
            zf.writestr(f"IntuneWinPackage/Contents/{file_name}", payload)
            for member, data in (extra_members or {}).items():
                zf.writestr(member, data)
        return path

    return _factory


# ---------------------------------------------------------------------------
# Service wiring
# ---------------------------------------------------------------------------


@pytest.fixture
def fake() -> FakeIntune:
    """Provide a fresh fake management API and blob store."""
    return FakeIntune()


@pytest.fixture
def events() -> MemoryEventSink:
    return MemoryEventSink()


@pytest.fixture
def fast_policy() -> PollPolicy:
    """Poll without waiting; give up after 20 attempts."""
    return PollPolicy(
        timeout_seconds=60.0,
        max_attempts=20,
        initial_delay_seconds=0.0,
        max_delay_seconds=0.0,
    )


@pytest.fixture
def graph(fake: FakeIntune) -> GraphClient:
    return GraphClient(
        StaticTokenSupplier("test-token"), base_url=GRAPH_BASE, http_client=fake.client()
    )


@pytest.fixture
def make_orchestrator(
    fake: FakeIntune, graph: GraphClient, events: MemoryEventSink, fast_policy: PollPolicy
) -> Callable[..., ContentVersionOrchestrator]:
    """Factory fixture: an orchestrator wired to the fake service."""

    def _factory(chunk_size: int = 1024, max_concurrency: int = 1) -> ContentVersionOrchestrator:
        uploader = ChunkedBlobUploader(
            fake.client(), chunk_size=chunk_size, max_concurrency=max_concurrency, events=events
        )
        return ContentVersionOrchestrator(
            graph,
            uploader,
            uri_policy=fast_policy,
            commit_policy=fast_policy,
            events=events,
            sleep=no_sleep,
        )

    return _factory


@pytest.fixture
def make_publisher(
    graph: GraphClient, events: MemoryEventSink, make_orchestrator
) -> Callable[..., AppPublisher]:
    """Factory fixture: a publisher wired to the fake service."""

    def _factory(chunk_size: int = 1024, max_concurrency: int = 1) -> AppPublisher:
        return AppPublisher(
            graph,
            make_orchestrator(chunk_size=chunk_size, max_concurrency=max_concurrency),
            events=events,
        )

    return _factory
