"""Artifact capability: compress, hash, verify and unpack bundles."""

from .artifact import (
    ArtifactIndex,
    CompressionType,
    PackageArtifact,
    artifact_for_file,
    file_checksums,
    METADATA_SUFFIX,
)

__all__ = [
    "ArtifactIndex",
    "CompressionType",
    "METADATA_SUFFIX",
    "PackageArtifact",
    "artifact_for_file",
    "file_checksums",
]
