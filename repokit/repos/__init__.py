"""Repository descriptors, publishing, sync and aggregation."""

from .aggregator import Repositories, SearchMode, search_artifact
from .backend import CompilerBackend, DockerBackend
from .base import (
    PackageMatch,
    Repository,
    RepositoryFile,
    RepositoryMetadata,
    SyncResult,
    SyncStatus,
)
from .clients import HttpClient, LocalClient, RegistryClient, RepoClient
from .generators import (
    LocalRepositoryGenerator,
    RegistryRepositoryGenerator,
    RepositoryGenerator,
)
from .registry import generate_repository, get_client, get_generator
from .sync import SyncEngine

__all__ = [
    "CompilerBackend",
    "DockerBackend",
    "HttpClient",
    "LocalClient",
    "LocalRepositoryGenerator",
    "PackageMatch",
    "RegistryClient",
    "RegistryRepositoryGenerator",
    "RepoClient",
    "Repositories",
    "Repository",
    "RepositoryFile",
    "RepositoryGenerator",
    "RepositoryMetadata",
    "SearchMode",
    "SyncEngine",
    "SyncResult",
    "SyncStatus",
    "generate_repository",
    "get_client",
    "get_generator",
    "search_artifact",
]
