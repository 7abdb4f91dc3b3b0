"""Repository generators, one per repository type."""

from .base import RepositoryGenerator, iter_artifact_metadata
from .local import LocalRepositoryGenerator
from .registry import RegistryRepositoryGenerator

__all__ = [
    "LocalRepositoryGenerator",
    "RegistryRepositoryGenerator",
    "RepositoryGenerator",
    "iter_artifact_metadata",
]
