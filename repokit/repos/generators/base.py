"""Base class for repository generators.

A generator turns a descriptor plus its package trees and previously
built artifacts into a published repository: archived bundles, the
metadata document and the spec document, each registered in the
descriptor's manifest with its checksums.
"""

import os
import shutil
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Iterator, List, Optional, Union

import yaml

from ...common.context import RuntimeContext
from ...common.errors import MalformedDescriptorError, PackageNotFoundError, PublishError
from ...common.logger import get_logger
from ...formats.artifact import METADATA_SUFFIX, ArtifactIndex, PackageArtifact
from ...packages.database import PackageDatabase
from ...packages.tree import PackageTree
from ..base import (
    REPOFILE_META_KEY,
    REPOSITORY_METAFILE,
    Repository,
    RepositoryFile,
    default_meta_file,
)

logger = get_logger("generator")


def iter_artifact_metadata(path: Union[str, Path], database: PackageDatabase) -> Iterator[PackageArtifact]:
    """Yield the built artifacts found below a directory.

    Each ``*.metadata.yaml`` sidecar is parsed and its artifact path is
    rebased next to the sidecar. Artifacts whose package is no longer in
    the database are skipped.

    Raises:
        PublishError: If a sidecar cannot be read or parsed
    """
    root = Path(path)
    if not root.is_dir():
        raise PublishError(f"artifact directory {root} does not exist")

    for sidecar in sorted(root.rglob(f"*{METADATA_SUFFIX}")):
        try:
            artifact = PackageArtifact.from_yaml(sidecar.read_text())
        except (OSError, yaml.YAMLError, ValueError) as e:
            raise PublishError(f"Error reading yaml {sidecar}: {e}") from e

        # The sidecar records the path the artifact had at build time
        artifact.path = str(sidecar.parent / os.path.basename(artifact.path))

        if artifact.package is None:
            logger.debug(f"Artifact {sidecar} has no package, ignoring it")
            continue
        try:
            database.find_package(artifact.package)
        except PackageNotFoundError:
            logger.debug(
                f"Package {artifact.package.human_readable_string()} not found in tree. Ignoring it."
            )
            continue

        yield artifact


class RepositoryGenerator(ABC):
    """Abstract base class for repository generators."""

    def __init__(self, context: RuntimeContext):
        self.context = context

    @abstractmethod
    def initialize(self, source_path: Union[str, Path], database: PackageDatabase) -> ArtifactIndex:
        """Build the artifact index from previously built artifacts.

        Args:
            source_path: Directory holding artifacts and their sidecars
            database: Current package tree database used for pruning

        Returns:
            ArtifactIndex of the artifacts still present in the tree
        """
        pass

    @abstractmethod
    def generate(self, repo: Repository, destination: str, reset_revision: bool = False) -> None:
        """Run a full publish cycle.

        On success the descriptor's revision, timestamp and manifest are
        updated in place. On failure the descriptor is left untouched and
        no spec document is published.

        Args:
            repo: Descriptor to publish
            destination: Publish target (directory or image prefix)
            reset_revision: Restart the revision sequence at 1

        Raises:
            PublishError: If any step of the cycle fails
        """
        pass

    def bump_revision(self, repo: Repository, spec_path: Union[str, Path], reset_revision: bool) -> None:
        """Increment the revision, starting from the last published one.

        Raises:
            PublishError: If an existing spec document cannot be read
        """
        if reset_revision:
            repo.revision = 0
        elif os.path.exists(spec_path):
            try:
                repo.revision = Repository.read_spec_file(spec_path).revision
            except MalformedDescriptorError as e:
                raise PublishError(f"cannot read previous revision from {spec_path}: {e}") from e
        repo.revision += 1

    def add_repository_file(
        self,
        repo: Repository,
        src: Union[str, Path],
        key: str,
        repository_root: Union[str, Path],
        defaults: RepositoryFile,
    ) -> PackageArtifact:
        """Compress a path into the repository and register it in the manifest.

        The manifest entry for ``key`` (or ``defaults`` when absent) gives
        the file name and compression; after compression the entry's file
        name is rewritten to the compressed file's basename and its
        checksums are recorded.

        Raises:
            PublishError: If archiving or hashing fails
        """
        repo_file = repo.get_repository_file(key) or RepositoryFile(
            filename=defaults.filename,
            compression_type=defaults.compression_type,
        )

        artifact = PackageArtifact(
            path=str(Path(repository_root) / repo_file.filename),
            compression_type=repo_file.compression_type,
        )
        try:
            artifact.compress(src)
        except OSError as e:
            raise PublishError(f"Error met while creating package archive for {key}: {e}") from e
        try:
            artifact.hash()
        except OSError as e:
            raise PublishError(f"Failed generating checksums for {key}: {e}") from e

        repo.set_repository_file(
            key,
            RepositoryFile(
                filename=artifact.file_name,
                compression_type=repo_file.compression_type,
                checksums=dict(artifact.checksums),
            ),
        )
        return artifact

    def add_tree(
        self,
        repo: Repository,
        tree: Optional[PackageTree],
        repository_root: Union[str, Path],
        key: str,
        defaults: RepositoryFile,
    ) -> PackageArtifact:
        """Save a package tree and add it to the repository under ``key``."""
        if tree is None:
            raise PublishError(f"repository {repo.name} has no tree for {key}")

        archive = self.context.temp_dir("archive")
        try:
            try:
                tree.save(archive)
            except OSError as e:
                raise PublishError(f"Error met while saving the {key} tree: {e}") from e
            return self.add_repository_file(repo, archive, key, repository_root, defaults)
        finally:
            shutil.rmtree(archive, ignore_errors=True)

    def add_metadata(self, repo: Repository, repository_root: Union[str, Path]) -> PackageArtifact:
        """Write the metadata document and add it to the repository."""
        meta, _ = repo.serialize()
        meta_dir = self.context.temp_dir("metadata")
        try:
            try:
                meta.write_file(meta_dir / REPOSITORY_METAFILE)
            except OSError as e:
                raise PublishError(f"Error met while writing {REPOSITORY_METAFILE}: {e}") from e
            return self.add_repository_file(
                repo, meta_dir, REPOFILE_META_KEY, repository_root, default_meta_file()
            )
        finally:
            shutil.rmtree(meta_dir, ignore_errors=True)

    @staticmethod
    def install_bundles(bundles: List[PackageArtifact], repository_root: Union[str, Path]) -> None:
        """Move staged bundles into the repository root, keeping their names.

        Raises:
            PublishError: If a bundle cannot be moved
        """
        root = Path(repository_root)
        for bundle in bundles:
            target = root / bundle.file_name
            try:
                os.replace(bundle.path, target)
            except OSError as e:
                raise PublishError(f"Error met while installing {bundle.file_name}: {e}") from e
            bundle.path = str(target)

    def write_spec(self, repo: Repository, spec_path: Union[str, Path]) -> None:
        """Atomically write the spec document."""
        target = Path(spec_path)
        staging = target.with_name(f".{target.name}.tmp")
        try:
            repo.write_spec_file(staging)
            os.replace(staging, target)
        except OSError as e:
            staging.unlink(missing_ok=True)
            raise PublishError(f"Error met while writing {target}: {e}") from e

    @staticmethod
    def commit(repo: Repository, published: Repository) -> None:
        """Copy the publish results back onto the caller's descriptor."""
        repo.revision = published.revision
        repo.last_update = published.last_update
        repo.repository_files = published.repository_files
