"""Content archive metadata models (immutable once parsed)."""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field

UINT64_MAX = 2**64 - 1


class EncryptionInfo(BaseModel):
    """Key material the service needs to decrypt an uploaded payload.

    Every value is the base64 string exactly as stored in the archive.
    """

    model_config = ConfigDict(frozen=True)

    encryption_key: str
    mac_key: str
    initialization_vector: str
    mac: str
    profile_identifier: str = "ProfileVersion1"
    file_digest: str
    file_digest_algorithm: str = "SHA256"

    def to_graph(self) -> dict[str, str]:
        """Render as the ``fileEncryptionInfo`` object of the commit call."""
        return {
            "encryptionKey": self.encryption_key,
            "macKey": self.mac_key,
            "initializationVector": self.initialization_vector,
            "mac": self.mac,
            "profileIdentifier": self.profile_identifier,
            "fileDigest": self.file_digest,
            "fileDigestAlgorithm": self.file_digest_algorithm,
        }


class ArchiveMetadata(BaseModel):
    """The metadata record embedded in a content archive."""

    model_config = ConfigDict(frozen=True)

    name: str = ""
    file_name: str
    setup_file: str = ""
    unencrypted_content_size: int = Field(ge=0, le=UINT64_MAX)
    encryption_info: EncryptionInfo
    tool_version: str = ""
