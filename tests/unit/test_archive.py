"""Tests for ArchiveMetadataReader — metadata parsing and scoped extraction."""

from __future__ import annotations

from pathlib import Path

import pytest

from intuneforge.core.archive import (
    DEFAULT_PAYLOAD_NAME,
    ArchiveMetadataReader,
    parse_metadata,
)
from intuneforge.core.errors import FormatError, NotFoundError


class TestParseMetadata:
    def test_parses_record(self, make_detection_xml):
        metadata = parse_metadata(make_detection_xml(name="7-Zip", size=1536))
        assert metadata.name == "7-Zip"
        assert metadata.file_name == "IntunePackage.intunewin"
        assert metadata.setup_file == "7z2301-x64.exe"
        assert metadata.unencrypted_content_size == 1536
        assert metadata.tool_version == "1.8.4.0"
        assert metadata.encryption_info.encryption_key == "a2V5a2V5a2V5a2V5"
        assert metadata.encryption_info.file_digest_algorithm == "SHA256"

    def test_namespaced_elements(self):
        xml = (
            b'<ApplicationInfo xmlns="urn:x"><FileName>p.intunewin</FileName>'
            b"<UnencryptedContentSize>3</UnencryptedContentSize>"
            b"<EncryptionInfo><EncryptionKey>k</EncryptionKey><MacKey>m</MacKey>"
            b"<InitializationVector>i</InitializationVector><Mac>c</Mac>"
            b"<FileDigest>d</FileDigest></EncryptionInfo></ApplicationInfo>"
        )
        metadata = parse_metadata(xml)
        assert metadata.file_name == "p.intunewin"
        assert metadata.encryption_info.profile_identifier == "ProfileVersion1"

    def test_invalid_xml(self):
        with pytest.raises(FormatError):
            parse_metadata(b"<ApplicationInfo><FileName>")

    def test_wrong_root(self):
        with pytest.raises(FormatError):
            parse_metadata(b"<Other/>")

    def test_non_numeric_size(self, make_detection_xml):
        with pytest.raises(FormatError):
            parse_metadata(make_detection_xml(size="lots"))

    def test_negative_size(self, make_detection_xml):
        with pytest.raises(FormatError):
            parse_metadata(make_detection_xml(size=-1))

    def test_missing_encryption_info(self):
        xml = (
            b"<ApplicationInfo><FileName>a</FileName>"
            b"<UnencryptedContentSize>1</UnencryptedContentSize></ApplicationInfo>"
        )
        with pytest.raises(FormatError, match="EncryptionInfo"):
            parse_metadata(xml)

    def test_missing_encryption_field(self):
        xml = (
            b"<ApplicationInfo><FileName>a</FileName>"
            b"<UnencryptedContentSize>1</UnencryptedContentSize>"
            b"<EncryptionInfo><EncryptionKey>k</EncryptionKey></EncryptionInfo></ApplicationInfo>"
        )
        with pytest.raises(FormatError):
            parse_metadata(xml)


class TestArchiveMetadataReader:
    def test_read_metadata_file_missing(self, tmp_path: Path):
        with pytest.raises(NotFoundError) as excinfo:
            ArchiveMetadataReader().read_metadata_file(tmp_path / "Detection.xml")
        assert excinfo.value.path == str(tmp_path / "Detection.xml")

    def test_read_packed_archive(self, make_archive):
        metadata = ArchiveMetadataReader().read(make_archive(unencrypted_size=77))
        assert metadata.unencrypted_content_size == 77

    def test_read_extracted_directory(self, make_package_dir):
        metadata = ArchiveMetadataReader().read(make_package_dir(unencrypted_size=5))
        assert metadata.unencrypted_content_size == 5

    def test_missing_archive(self, tmp_path: Path):
        with pytest.raises(NotFoundError):
            ArchiveMetadataReader().read(tmp_path / "nope.intunewin")

    def test_not_a_zip(self, tmp_path: Path):
        bogus = tmp_path / "bogus.intunewin"
        bogus.write_bytes(b"not a zip at all")
        with pytest.raises(FormatError):
            ArchiveMetadataReader().read(bogus)

    def test_payload_falls_back_to_default_name(self, make_package_dir):
        root = make_package_dir(file_name="Setup.intunewin", payload_name=DEFAULT_PAYLOAD_NAME)
        package = ArchiveMetadataReader().locate(root)
        assert package.payload_path.name == DEFAULT_PAYLOAD_NAME

    def test_missing_payload(self, make_package_dir):
        root = make_package_dir(file_name="Setup.intunewin", payload_name="Other.bin")
        with pytest.raises(NotFoundError):
            ArchiveMetadataReader().locate(root)

    def test_scratch_removed_after_use(self, make_archive, tmp_path: Path):
        scratch_root = tmp_path / "scratch"
        scratch_root.mkdir()
        reader = ArchiveMetadataReader(scratch_root=scratch_root)
        with reader.extracted(make_archive()) as package:
            assert package.payload_path.is_file()
            assert any(scratch_root.iterdir())
        assert not any(scratch_root.iterdir())

    def test_scratch_removed_on_error(self, make_archive, tmp_path: Path):
        scratch_root = tmp_path / "scratch"
        scratch_root.mkdir()
        reader = ArchiveMetadataReader(scratch_root=scratch_root)
        with pytest.raises(RuntimeError):
            with reader.extracted(make_archive()):
                raise RuntimeError("caller failed")
        assert not any(scratch_root.iterdir())

    def test_scratch_removed_when_locate_fails(self, make_archive, tmp_path: Path):
        scratch_root = tmp_path / "scratch"
        scratch_root.mkdir()
        reader = ArchiveMetadataReader(scratch_root=scratch_root)
        with pytest.raises(FormatError):
            reader.read(make_archive(metadata=b"<broken"))
        assert not any(scratch_root.iterdir())

    async def test_open_async(self, make_archive, tmp_path: Path):
        scratch_root = tmp_path / "scratch"
        scratch_root.mkdir()
        reader = ArchiveMetadataReader(scratch_root=scratch_root)
        async with reader.open(make_archive(payload=b"abc")) as package:
            assert package.payload_path.read_bytes() == b"abc"
        assert not any(scratch_root.iterdir())

    def test_extracted_directory_is_left_alone(self, make_package_dir):
        root = make_package_dir()
        with ArchiveMetadataReader().extracted(root):
            pass
        assert (root / "IntuneWinPackage" / "Metadata" / "Detection.xml").is_file()
