"""Repository descriptor, manifest entries and metadata documents.

The descriptor is the in-memory view of a repository: identity, mirrors,
priority, revision and the manifest of repository files. Its durable form
is the spec document (``repository.yaml``); the artifact index travels
separately as the metadata document (``repository.meta.yaml``).
"""

import copy
import os
import time
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum, auto
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple, Union

import yaml

from ..common.config import RepositoryConfig, RepositoryType
from ..common.errors import ConfigurationError, MalformedDescriptorError
from ..common.logger import get_logger
from ..formats.artifact import ArtifactIndex, CompressionType, PackageArtifact
from ..packages.package import Package
from ..packages.tree import PackageTree

logger = get_logger("repository")

REPOSITORY_SPECFILE = "repository.yaml"
REPOSITORY_METAFILE = "repository.meta.yaml"
TREE_TARBALL = "tree.tar"
COMPILERTREE_TARBALL = "compilertree.tar"

REPOFILE_TREE_KEY = "tree"
REPOFILE_COMPILER_TREE_KEY = "compilertree"
REPOFILE_META_KEY = "meta"

MANDATORY_REPOFILE_KEYS = (REPOFILE_TREE_KEY, REPOFILE_META_KEY)


@dataclass
class RepositoryFile:
    """Manifest entry mapping a logical key to a published file."""

    filename: str
    compression_type: CompressionType = CompressionType.NONE
    checksums: Dict[str, str] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {
            "filename": self.filename,
            "compression": self.compression_type.value,
        }
        if self.checksums:
            data["checksums"] = dict(self.checksums)
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "RepositoryFile":
        return cls(
            filename=data.get("filename", ""),
            compression_type=CompressionType.parse(data.get("compression")),
            checksums=dict(data.get("checksums") or {}),
        )


def default_tree_file() -> RepositoryFile:
    return RepositoryFile(filename=TREE_TARBALL, compression_type=CompressionType.GZIP)


def default_compiler_tree_file() -> RepositoryFile:
    return RepositoryFile(filename=COMPILERTREE_TARBALL, compression_type=CompressionType.GZIP)


def default_meta_file() -> RepositoryFile:
    return RepositoryFile(filename=REPOSITORY_METAFILE + ".tar", compression_type=CompressionType.NONE)


@dataclass
class RepositoryMetadata:
    """The artifact index as its own document."""

    index: ArtifactIndex = field(default_factory=ArtifactIndex)

    def to_dict(self) -> Dict[str, Any]:
        return {"index": [a.to_dict() for a in self.index]}

    def write_file(self, path: Union[str, Path]) -> None:
        with open(path, "w") as f:
            yaml.safe_dump(self.to_dict(), f, sort_keys=False)

    @classmethod
    def read_file(cls, path: Union[str, Path], remove_file: bool = False) -> "RepositoryMetadata":
        """Load a metadata document.

        Args:
            path: Metadata document path
            remove_file: Delete the file once read

        Raises:
            ValueError: If the path is empty or the document is not a mapping
            FileNotFoundError: If the document does not exist
        """
        if not path:
            raise ValueError("Invalid path for repository metadata")
        try:
            with open(path, "r") as f:
                data = yaml.safe_load(f) or {}
        finally:
            if remove_file and os.path.exists(path):
                os.remove(path)
        if not isinstance(data, dict):
            raise ValueError(f"Repository metadata {path} is not a mapping")
        return cls(index=ArtifactIndex(PackageArtifact.from_dict(a) for a in data.get("index") or []))


@dataclass
class Repository:
    """Repository descriptor."""

    name: str
    type: RepositoryType
    urls: List[str] = field(default_factory=list)
    description: str = ""
    priority: int = 9999
    revision: int = 0
    last_update: str = ""
    verify: bool = True
    cached: bool = False
    authentication: Dict[str, str] = field(default_factory=dict)
    tree_path: str = ""
    meta_path: str = ""
    repository_files: Dict[str, RepositoryFile] = field(default_factory=dict)
    index: ArtifactIndex = field(default_factory=ArtifactIndex)
    tree: Optional[PackageTree] = None
    build_tree: Optional[PackageTree] = None

    def __post_init__(self) -> None:
        self.type = RepositoryType.parse(self.type)

    @classmethod
    def from_config(cls, config: RepositoryConfig) -> "Repository":
        """Create a descriptor from locally authored configuration."""
        return cls(
            name=config.name,
            type=config.type,
            urls=list(config.urls),
            description=config.description,
            priority=config.priority,
            verify=config.verify,
            cached=config.cached,
            authentication=dict(config.authentication),
            tree_path=config.tree_path,
            meta_path=config.meta_path,
        )

    def get_repository_file(self, key: str) -> Optional[RepositoryFile]:
        return self.repository_files.get(key)

    def set_repository_file(self, key: str, repo_file: RepositoryFile) -> None:
        self.repository_files[key] = repo_file

    @property
    def last_update_time(self) -> Optional[datetime]:
        """Publish time parsed from the unix-seconds string, if any."""
        try:
            return datetime.fromtimestamp(int(self.last_update))
        except (TypeError, ValueError):
            return None

    def touch(self) -> None:
        """Set the publish timestamp to now."""
        self.last_update = str(int(time.time()))

    def snapshot(self) -> "Repository":
        """Independent copy of the descriptor's serializable state.

        Trees are shared, not copied.
        """
        clone = copy.copy(self)
        clone.urls = list(self.urls)
        clone.authentication = dict(self.authentication)
        clone.repository_files = copy.deepcopy(self.repository_files)
        clone.index = ArtifactIndex(self.index)
        return clone

    def to_spec_document(self) -> Dict[str, Any]:
        """Serialized form written to ``repository.yaml``."""
        return {
            "name": self.name,
            "description": self.description,
            "urls": list(self.urls),
            "priority": self.priority,
            "type": self.type.value,
            "revision": self.revision,
            "last_update": self.last_update,
            "treepath": self.tree_path,
            "metapath": self.meta_path,
            "repo_files": {k: v.to_dict() for k, v in self.repository_files.items()},
            "verify": self.verify,
        }

    def serialize(self) -> Tuple[RepositoryMetadata, Dict[str, Any]]:
        """Split the descriptor into its metadata and spec documents.

        Artifact paths in the metadata are reduced to basenames.
        """
        return RepositoryMetadata(index=self.index.clean_path()), self.to_spec_document()

    @classmethod
    def from_spec_document(cls, data: Dict[str, Any]) -> "Repository":
        """Build a descriptor from a parsed spec document.

        The declared type is advisory: sync overwrites it with the locally
        configured one, so a missing or unknown type falls back to disk.

        Raises:
            ValueError: If a numeric field is not a number
        """
        try:
            repo_type = RepositoryType.parse(data.get("type") or RepositoryType.DISK)
        except ConfigurationError as e:
            logger.debug(f"Spec of {data.get('name', '')}: {e}, assuming disk")
            repo_type = RepositoryType.DISK

        repo = cls(
            name=data.get("name", ""),
            type=repo_type,
            urls=list(data.get("urls") or []),
            description=data.get("description", "") or "",
            priority=int(data.get("priority", 9999) or 0),
            verify=bool(data.get("verify", False)),
            tree_path=data.get("treepath", "") or "",
            meta_path=data.get("metapath", "") or "",
            repository_files={
                k: RepositoryFile.from_dict(v or {})
                for k, v in (data.get("repo_files") or {}).items()
            },
        )
        revision = int(data.get("revision", 0) or 0)
        if revision > 0:
            repo.revision = revision
        if data.get("last_update"):
            repo.last_update = str(data["last_update"])
        return repo

    @classmethod
    def read_spec_file(cls, path: Union[str, Path]) -> "Repository":
        """Read and validate a spec document.

        Raises:
            FileNotFoundError: If the file does not exist
            MalformedDescriptorError: If the document cannot be parsed or
                lacks the tree or metadata repository file
        """
        try:
            with open(path, "r") as f:
                data = yaml.safe_load(f)
        except yaml.YAMLError as e:
            raise MalformedDescriptorError(f"Error reading repository from file {path}: {e}") from e

        if not isinstance(data, dict):
            raise MalformedDescriptorError(f"Repository spec {path} is not a mapping")

        try:
            repo = cls.from_spec_document(data)
        except (TypeError, ValueError) as e:
            raise MalformedDescriptorError(f"Invalid repository spec {path}: {e}") from e
        for key in MANDATORY_REPOFILE_KEYS:
            if repo.get_repository_file(key) is None:
                raise MalformedDescriptorError(f"Invalid repository without the {key} key file.")
        return repo

    def write_spec_file(self, path: Union[str, Path]) -> None:
        with open(path, "w") as f:
            yaml.safe_dump(self.to_spec_document(), f, sort_keys=False)


class SyncStatus(Enum):
    """Outcome of a successful sync."""

    SUCCESS = auto()
    UP_TO_DATE = auto()  # cached revision and timestamp already match


@dataclass
class SyncResult:
    """Result of a repository sync operation."""

    status: SyncStatus
    repository: Repository
    sync_date: str
    downloaded_files: List[str] = field(default_factory=list)
    duration_seconds: float = 0.0

    @property
    def is_up_to_date(self) -> bool:
        return self.status == SyncStatus.UP_TO_DATE


@dataclass
class PackageMatch:
    """A package found in a repository, with its artifact when known."""

    repository: Repository
    package: Package
    artifact: Optional[PackageArtifact] = None
