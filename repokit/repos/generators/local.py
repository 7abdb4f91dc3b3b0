"""Generator for repositories published as a directory (disk and http types)."""

import shutil
from pathlib import Path
from typing import Union

from ...common.events import RepositoryEvent
from ...common.logger import get_logger
from ...formats.artifact import ArtifactIndex
from ...packages.database import PackageDatabase
from ..base import (
    REPOFILE_COMPILER_TREE_KEY,
    REPOFILE_TREE_KEY,
    REPOSITORY_SPECFILE,
    Repository,
    default_compiler_tree_file,
    default_tree_file,
)
from .base import RepositoryGenerator, iter_artifact_metadata

logger = get_logger("generator.local")

STAGING_DIR = ".publish.new"


class LocalRepositoryGenerator(RepositoryGenerator):
    """Publishes the trees and metadata as compressed files in a directory.

    The same directory doubles as the flat store of prebuilt package
    artifacts that ``initialize`` indexes.
    """

    def initialize(self, source_path: Union[str, Path], database: PackageDatabase) -> ArtifactIndex:
        index = ArtifactIndex(iter_artifact_metadata(source_path, database))
        logger.info(f"Indexed {len(index)} artifact(s) from {source_path}")
        return index

    def generate(self, repo: Repository, destination: str, reset_revision: bool = False) -> None:
        dest = Path(destination)
        dest.mkdir(parents=True, exist_ok=True)
        repospec = dest / REPOSITORY_SPECFILE

        published = repo.snapshot()
        self.bump_revision(published, repospec, reset_revision)
        published.touch()

        logger.info(
            f"For repository {published.name} creating revision {published.revision} "
            f"and last update {published.last_update}..."
        )
        self.context.events.publish(RepositoryEvent.PRE_BUILD, published.snapshot(), str(repospec))

        # Bundles of the previous publish stay in place until every new one is built
        staging = dest / STAGING_DIR
        shutil.rmtree(staging, ignore_errors=True)
        staging.mkdir()
        try:
            bundles = [
                self.add_tree(published, published.tree, staging, REPOFILE_TREE_KEY, default_tree_file())
            ]
            if published.build_tree is not None:
                bundles.append(
                    self.add_tree(
                        published,
                        published.build_tree,
                        staging,
                        REPOFILE_COMPILER_TREE_KEY,
                        default_compiler_tree_file(),
                    )
                )
            bundles.append(self.add_metadata(published, staging))
            self.install_bundles(bundles, dest)
            self.write_spec(published, repospec)
        finally:
            shutil.rmtree(staging, ignore_errors=True)

        self.commit(repo, published)
        self.context.events.publish(RepositoryEvent.POST_BUILD, repo.snapshot(), str(dest))
