"""Generator for repositories stored in a container registry.

Every published file becomes an image tagged ``<prefix>:<filename>``
whose root filesystem holds just that file; package artifacts become
``<prefix>:<package image id>`` images holding the unpacked package.
"""

import os
import shutil
from pathlib import Path
from typing import Union

from ...common.context import RuntimeContext
from ...common.errors import PublishError, RepoKitError
from ...common.events import RepositoryEvent
from ...common.logger import get_logger
from ...formats.artifact import ArtifactIndex, PackageArtifact
from ...packages.database import PackageDatabase
from ..backend import CompilerBackend
from ..base import (
    REPOFILE_COMPILER_TREE_KEY,
    REPOFILE_META_KEY,
    REPOFILE_TREE_KEY,
    REPOSITORY_SPECFILE,
    Repository,
    RepositoryFile,
    default_compiler_tree_file,
    default_tree_file,
)
from .base import RepositoryGenerator, iter_artifact_metadata

logger = get_logger("generator.registry")

DIGEST_LENGTH = 12


def content_addressed_name(filename: str, digest: str) -> str:
    """Insert a digest prefix before the archive extension.

    ``tree.tar.gz`` becomes ``tree-<digest>.tar.gz``.
    """
    base, sep, rest = filename.partition(".tar")
    return f"{base}-{digest[:DIGEST_LENGTH]}{sep}{rest}"


class RegistryRepositoryGenerator(RepositoryGenerator):
    """Publishes a repository as a set of tagged images.

    Bundle file names carry a digest of their content, so an existing tag
    always holds identical content and is neither rebuilt nor pushed
    again unless ``force`` is set. The spec document image is pushed on
    every publish.
    """

    def __init__(
        self,
        context: RuntimeContext,
        backend: CompilerBackend,
        image_prefix: str = "",
        push_images: bool = True,
        force: bool = False,
    ):
        """Initialize the generator.

        Args:
            context: Runtime context
            backend: Image build/push capability
            image_prefix: Image prefix for package images built by initialize
            push_images: Push built images to the registry
            force: Rebuild and push even when a tag already exists
        """
        super().__init__(context)
        self.backend = backend
        self.image_prefix = image_prefix
        self.push_images = push_images
        self.force = force

    def _push_image(self, image: str, force: bool) -> None:
        if self.backend.image_available(image) and not force:
            logger.debug(f"Image {image} already present, skipping")
            return
        self.backend.push(image)

    def _build_from_file(self, image: str, path: Union[str, Path]) -> None:
        rootfs = self.context.temp_dir("rootfs")
        try:
            shutil.copy2(path, rootfs / os.path.basename(path))
            self.backend.build_image(image, rootfs)
        finally:
            shutil.rmtree(rootfs, ignore_errors=True)

    def _build_from_artifact(self, image: str, artifact: PackageArtifact) -> None:
        rootfs = self.context.temp_dir("rootfs")
        try:
            artifact.unpack(rootfs)
            self.backend.build_image(image, rootfs)
        finally:
            shutil.rmtree(rootfs, ignore_errors=True)

    def initialize(self, source_path: Union[str, Path], database: PackageDatabase) -> ArtifactIndex:
        logger.info(f"Generating images for packages in {self.image_prefix}")
        index = ArtifactIndex()
        for artifact in iter_artifact_metadata(source_path, database):
            package = artifact.package
            image = f"{self.image_prefix}:{package.image_id()}"

            if self.push_images and self.backend.image_available(image) and not self.force:
                logger.info(f"Image {image} already present, skipping. use force to override")
            else:
                logger.info(
                    f"Generating final image {image} for package {package.human_readable_string()}"
                )
                try:
                    self._build_from_artifact(image, artifact)
                    if self.push_images:
                        self._push_image(image, self.force)
                except (RepoKitError, RuntimeError, OSError) as e:
                    raise PublishError(f"Failed while publishing image '{image}': {e}") from e

            index.append(artifact)
        return index

    def _publish_bundle(
        self,
        repo: Repository,
        prefix: str,
        key: str,
        artifact: PackageArtifact,
    ) -> None:
        """Rename a bundle after its digest, then build and push its image."""
        named = Path(artifact.path).with_name(
            content_addressed_name(artifact.file_name, artifact.checksums["sha256"])
        )
        try:
            os.replace(artifact.path, named)
        except OSError as e:
            raise PublishError(f"Failed naming {key} bundle {artifact.file_name}: {e}") from e
        artifact.path = str(named)

        entry = repo.get_repository_file(key)
        repo.set_repository_file(
            key,
            RepositoryFile(
                filename=artifact.file_name,
                compression_type=entry.compression_type,
                checksums=dict(entry.checksums),
            ),
        )

        image = f"{prefix}:{artifact.file_name}"
        if self.backend.image_available(image) and not self.force:
            logger.info(f"Image {image} already present, skipping")
            return
        try:
            self._build_from_file(image, artifact.path)
            if self.push_images:
                self.backend.push(image)
        except (RepoKitError, OSError) as e:
            raise PublishError(f"Failed while pushing image: '{image}': {e}") from e

    def generate(self, repo: Repository, destination: str, reset_revision: bool = False) -> None:
        prefix = destination
        image_repository = f"{prefix}:{REPOSITORY_SPECFILE}"

        repo_temp = self.context.temp_dir("repo")
        try:
            if self.backend.image_available(image_repository):
                try:
                    self.backend.download_image(image_repository)
                    self.backend.extract_rootfs(image_repository, repo_temp)
                except RepoKitError as e:
                    raise PublishError(f"while downloading '{image_repository}': {e}") from e

            repospec = repo_temp / REPOSITORY_SPECFILE

            published = repo.snapshot()
            # Bundle names are derived from content on every publish
            for key in (REPOFILE_TREE_KEY, REPOFILE_COMPILER_TREE_KEY, REPOFILE_META_KEY):
                published.repository_files.pop(key, None)

            self.bump_revision(published, repospec, reset_revision)
            published.touch()

            logger.info(
                f"For repository {published.name} creating revision {published.revision} "
                f"and last update {published.last_update}..."
            )
            self.context.events.publish(
                RepositoryEvent.PRE_BUILD, published.snapshot(), image_repository
            )

            bundles = repo_temp / "bundles"
            bundles.mkdir()

            artifact = self.add_tree(published, published.tree, bundles, REPOFILE_TREE_KEY, default_tree_file())
            self._publish_bundle(published, prefix, REPOFILE_TREE_KEY, artifact)

            if published.build_tree is not None:
                artifact = self.add_tree(
                    published,
                    published.build_tree,
                    bundles,
                    REPOFILE_COMPILER_TREE_KEY,
                    default_compiler_tree_file(),
                )
                self._publish_bundle(published, prefix, REPOFILE_COMPILER_TREE_KEY, artifact)

            artifact = self.add_metadata(published, bundles)
            self._publish_bundle(published, prefix, REPOFILE_META_KEY, artifact)

            self.write_spec(published, repospec)
            try:
                self._build_from_file(image_repository, repospec)
                if self.push_images:
                    self.backend.push(image_repository)
            except (RepoKitError, OSError) as e:
                raise PublishError(f"while pushing repository metadata tree: {e}") from e

            self.commit(repo, published)
            self.context.events.publish(RepositoryEvent.POST_BUILD, repo.snapshot(), prefix)
        finally:
            shutil.rmtree(repo_temp, ignore_errors=True)
