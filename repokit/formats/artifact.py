"""Package artifacts: compressed bundles with checksums.

An artifact is a single file on disk (a compiled package or a repository
bundle) together with its compression type, checksum set and, for
compiled packages, the package it was built from and the list of paths
it installs.
"""

import copy
import hashlib
import os
import re
import tarfile
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional, Union

import yaml

from ..common.errors import IntegrityError
from ..common.logger import get_logger
from ..packages.package import Package

logger = get_logger("artifact")

METADATA_SUFFIX = ".metadata.yaml"
DEFAULT_CHECKSUM = "sha256"


class CompressionType(Enum):
    """Compression applied on top of the tar archive."""

    NONE = "none"
    GZIP = "gzip"
    XZ = "xz"

    @property
    def extension(self) -> str:
        return {"none": "", "gzip": ".gz", "xz": ".xz"}[self.value]

    @property
    def tar_mode(self) -> str:
        return {"none": "w", "gzip": "w:gz", "xz": "w:xz"}[self.value]

    @classmethod
    def parse(cls, value: Any) -> "CompressionType":
        if isinstance(value, cls):
            return value
        if not value:
            return cls.NONE
        return cls(str(value).lower())


def file_checksums(path: Union[str, Path], algorithms: Iterable[str] = (DEFAULT_CHECKSUM,)) -> Dict[str, str]:
    """Compute hex digests of a file.

    Args:
        path: File to hash
        algorithms: hashlib algorithm names

    Returns:
        Mapping algorithm -> hex digest
    """
    hashers = {name: hashlib.new(name) for name in algorithms}
    with open(path, "rb") as f:
        for chunk in iter(lambda: f.read(65536), b""):
            for h in hashers.values():
                h.update(chunk)
    return {name: h.hexdigest() for name, h in hashers.items()}


@dataclass
class PackageArtifact:
    """A file on disk with its compression type and checksums."""

    path: str
    compression_type: CompressionType = CompressionType.NONE
    checksums: Dict[str, str] = field(default_factory=dict)
    files: List[str] = field(default_factory=list)
    package: Optional[Package] = None

    @property
    def file_name(self) -> str:
        return os.path.basename(self.path)

    def compress(self, src: Union[str, Path]) -> None:
        """Archive a directory (or a single file) into this artifact.

        The archive is written to ``path`` plus the compression extension,
        and ``path`` is updated to point to it.

        Args:
            src: Directory whose contents are archived, or a single file

        Raises:
            FileNotFoundError: If src does not exist
            OSError: If the archive cannot be written
        """
        source = Path(src)
        if not source.exists():
            raise FileNotFoundError(f"Nothing to archive at {source}")

        target = Path(self.path)
        if self.compression_type.extension and not target.name.endswith(
            self.compression_type.extension
        ):
            target = target.with_name(target.name + self.compression_type.extension)
        target.parent.mkdir(parents=True, exist_ok=True)

        with tarfile.open(target, self.compression_type.tar_mode) as tar:
            if source.is_dir():
                for child in sorted(source.iterdir()):
                    tar.add(str(child), arcname=child.name)
            else:
                tar.add(str(source), arcname=source.name)

        self.path = str(target)
        logger.debug(f"Archived {source} into {target}")

    def hash(self) -> None:
        """Compute and store the artifact's checksums."""
        self.checksums = file_checksums(self.path)

    def verify(self) -> None:
        """Check the file on disk against the stored checksums.

        Raises:
            IntegrityError: If no checksum is declared or any digest differs
        """
        if not self.checksums:
            raise IntegrityError(f"no checksums declared for {self.file_name}")
        actual = file_checksums(self.path, self.checksums.keys())
        for algorithm, expected in self.checksums.items():
            if actual[algorithm] != expected:
                raise IntegrityError(
                    f"{algorithm} mismatch for {self.file_name}: "
                    f"expected {expected}, got {actual[algorithm]}"
                )

    def unpack(self, dest: Union[str, Path]) -> None:
        """Extract the archive into a directory.

        Members escaping the destination (absolute paths, ``..``, device
        files) are rejected by the tarfile data filter.

        Raises:
            RuntimeError: If extraction fails
        """
        destination = Path(dest)
        destination.mkdir(parents=True, exist_ok=True)
        try:
            with tarfile.open(self.path, "r:*") as tar:
                tar.extractall(destination, filter="data")
        except (tarfile.TarError, OSError) as e:
            raise RuntimeError(f"Failed to extract {self.file_name}: {e}") from e

    def clean_path(self) -> "PackageArtifact":
        """Copy of this artifact with its path reduced to the basename."""
        cleaned = copy.deepcopy(self)
        cleaned.path = self.file_name
        return cleaned

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {
            "path": self.path,
            "compressiontype": self.compression_type.value,
            "checksums": dict(self.checksums),
            "files": list(self.files),
        }
        if self.package is not None:
            data["package"] = self.package.to_dict()
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "PackageArtifact":
        package = data.get("package")
        return cls(
            path=data.get("path", ""),
            compression_type=CompressionType.parse(data.get("compressiontype")),
            checksums=dict(data.get("checksums") or {}),
            files=list(data.get("files") or []),
            package=Package.from_dict(package) if package else None,
        )

    @classmethod
    def from_yaml(cls, content: Union[str, bytes]) -> "PackageArtifact":
        """Parse an artifact metadata document.

        Raises:
            ValueError: If the document is not a mapping
        """
        data = yaml.safe_load(content)
        if not isinstance(data, dict):
            raise ValueError("artifact metadata must be a mapping")
        return cls.from_dict(data)

    def write_metadata(self, path: Optional[Union[str, Path]] = None) -> Path:
        """Write the ``<artifact>.metadata.yaml`` sidecar next to the artifact."""
        target = Path(path) if path else Path(self.path + METADATA_SUFFIX)
        with target.open("w") as f:
            yaml.safe_dump(self.to_dict(), f, sort_keys=False)
        return target


def artifact_for_file(path: Union[str, Path]) -> PackageArtifact:
    """Create an uncompressed, hashed artifact for an existing file."""
    artifact = PackageArtifact(path=str(path))
    artifact.hash()
    return artifact


class ArtifactIndex(list):
    """Ordered collection of artifacts published by a repository."""

    def clean_path(self) -> "ArtifactIndex":
        return ArtifactIndex(a.clean_path() for a in self)

    def find(self, package: Package) -> Optional[PackageArtifact]:
        """First artifact built from the given package, or None."""
        for artifact in self:
            if artifact.package is not None and artifact.package.matches(package):
                return artifact
        return None

    def search_files(self, pattern: Union[str, "re.Pattern[str]"]) -> List[PackageArtifact]:
        """Artifacts owning at least one installed file matching a regex.

        One hit per artifact: scanning an artifact stops at its first
        matching file. Artifacts of the same package are not merged.
        """
        regex = re.compile(pattern) if isinstance(pattern, str) else pattern
        matches = []
        for artifact in self:
            if artifact.package is None:
                continue
            if any(regex.search(f) for f in artifact.files):
                matches.append(artifact)
        return matches

    def file_search(self, pattern: Union[str, "re.Pattern[str]"]) -> List[Package]:
        """Packages of the artifacts returned by ``search_files``."""
        return [a.package for a in self.search_files(pattern)]
