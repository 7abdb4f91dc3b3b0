"""Type-keyed factories for repository generators and transport clients.

The repository type stored on a descriptor selects both the generator
used to publish it and the client used to sync it.
"""

from pathlib import Path
from typing import Callable, Dict, List, Optional, Sequence, Tuple, Union

from ..common.config import RepositoryType
from ..common.context import RuntimeContext
from ..common.errors import ConfigurationError
from ..common.logger import get_logger
from ..packages.database import InMemoryDatabase, PackageDatabase
from ..packages.tree import new_compiler_tree, new_runtime_tree
from .backend import CompilerBackend
from .base import Repository
from .clients import HttpClient, LocalClient, RegistryClient, RepoClient
from .generators import (
    LocalRepositoryGenerator,
    RegistryRepositoryGenerator,
    RepositoryGenerator,
)

logger = get_logger("repo_registry")

ClientFactory = Callable[[Repository, RuntimeContext, Optional[CompilerBackend]], RepoClient]


def _registry_client(
    repo: Repository, context: RuntimeContext, backend: Optional[CompilerBackend]
) -> RepoClient:
    if backend is None:
        raise ConfigurationError(f"repository {repo.name} of type registry requires a backend")
    return RegistryClient(repo.urls, context, backend)


_CLIENT_FACTORIES: Dict[RepositoryType, ClientFactory] = {
    RepositoryType.DISK: lambda repo, context, backend: LocalClient(repo.urls, context),
    RepositoryType.HTTP: lambda repo, context, backend: HttpClient(
        repo.urls, context, authentication=repo.authentication
    ),
    RepositoryType.REGISTRY: _registry_client,
}


def register_client(repo_type: RepositoryType, factory: ClientFactory) -> None:
    """Register (or replace) the client factory for a repository type."""
    if repo_type in _CLIENT_FACTORIES:
        logger.warning(f"Overwriting existing client factory for {repo_type.value}")
    _CLIENT_FACTORIES[repo_type] = factory


def get_client(
    repo: Repository,
    context: RuntimeContext,
    backend: Optional[CompilerBackend] = None,
) -> RepoClient:
    """Build the transport client for a repository.

    Raises:
        ConfigurationError: If no client handles the repository's type
    """
    factory = _CLIENT_FACTORIES.get(repo.type)
    if factory is None:
        raise ConfigurationError(f"no client for repository type {repo.type}")
    return factory(repo, context, backend)


def get_generator(
    repo: Repository,
    context: RuntimeContext,
    backend: Optional[CompilerBackend] = None,
    image_prefix: str = "",
    push_images: bool = True,
    force: bool = False,
) -> RepositoryGenerator:
    """Build the generator for a repository.

    Args:
        repo: Descriptor whose type selects the generator
        context: Runtime context
        backend: Image backend (registry repositories only)
        image_prefix: Prefix for package images (registry repositories only)
        push_images: Push images to the registry (registry repositories only)
        force: Rebuild and push existing tags (registry repositories only)

    Raises:
        ConfigurationError: If the type is unknown or a registry generator
            is requested without a backend
    """
    if repo.type in (RepositoryType.DISK, RepositoryType.HTTP):
        return LocalRepositoryGenerator(context)
    if repo.type == RepositoryType.REGISTRY:
        if backend is None:
            raise ConfigurationError(f"repository {repo.name} of type registry requires a backend")
        return RegistryRepositoryGenerator(
            context,
            backend,
            image_prefix=image_prefix,
            push_images=push_images,
            force=force,
        )
    raise ConfigurationError(f"invalid repository type: {repo.type}")


def generate_repository(
    name: str,
    description: str,
    repo_type: Union[str, RepositoryType],
    urls: List[str],
    priority: int,
    source: Union[str, Path],
    tree_dirs: Sequence[Union[str, Path]],
    context: RuntimeContext,
    database: Optional[PackageDatabase] = None,
    backend: Optional[CompilerBackend] = None,
    image_prefix: str = "",
    push_images: bool = True,
    force: bool = False,
) -> Tuple[Repository, RepositoryGenerator]:
    """Author a repository from package tree directories and built artifacts.

    Loads the runtime and compiler trees from ``tree_dirs``, then indexes
    the artifacts in ``source`` with the type's generator. Publishing is
    done by calling ``generator.generate(repo, destination)``.

    Returns:
        The new descriptor and the generator bound to its type
    """
    repo = Repository(
        name=name,
        type=RepositoryType.parse(repo_type),
        urls=list(urls),
        description=description,
        priority=priority,
        tree=new_runtime_tree(database if database is not None else InMemoryDatabase()),
        build_tree=new_compiler_tree(),
    )

    for tree_dir in tree_dirs:
        repo.tree.load(tree_dir)
        repo.build_tree.load(tree_dir)

    generator = get_generator(
        repo,
        context,
        backend=backend,
        image_prefix=image_prefix,
        push_images=push_images,
        force=force,
    )
    repo.index = generator.initialize(source, repo.tree.database)
    return repo, generator
