"""Repository synchronization.

Sync pulls a repository's spec document from its mirrors, decides whether
the local cache is stale, verifies the tree and metadata bundles and
rehydrates a descriptor from them. The cache of a repository is only ever
replaced once every bundle has been verified and unpacked next to it.
"""

import os
import shutil
import threading
import time
from datetime import datetime
from pathlib import Path
from typing import Dict, List, Optional, Tuple

from ..common.context import RuntimeContext
from ..common.errors import (
    IntegrityError,
    MalformedDescriptorError,
    RepoKitError,
    TransportError,
)
from ..common.logger import get_logger
from ..formats.artifact import PackageArtifact
from ..packages.database import InMemoryDatabase
from ..packages.tree import new_runtime_tree
from .backend import CompilerBackend
from .base import (
    REPOFILE_META_KEY,
    REPOFILE_TREE_KEY,
    REPOSITORY_METAFILE,
    REPOSITORY_SPECFILE,
    Repository,
    RepositoryMetadata,
    SyncResult,
    SyncStatus,
)
from .clients import RepoClient, discard_download
from .registry import ClientFactory, get_client

logger = get_logger("sync")

TREEFS_DIR = "treefs"
METAFS_DIR = "metafs"


class SyncEngine:
    """Synchronizes repositories into a local cache.

    Concurrent syncs against the same cache directory are serialized by a
    per-directory lock; syncs of different repositories run independently.
    """

    def __init__(
        self,
        context: RuntimeContext,
        backend: Optional[CompilerBackend] = None,
        client_factory: ClientFactory = get_client,
    ):
        """Initialize the engine.

        Args:
            context: Runtime context providing cache and temp roots
            backend: Image backend, required for registry repositories
            client_factory: Builds the transport client for a descriptor
        """
        self.context = context
        self.backend = backend
        self.client_factory = client_factory
        self._locks: Dict[Path, threading.Lock] = {}
        self._locks_guard = threading.Lock()

    def _lock_for(self, cache_dir: Path) -> threading.Lock:
        with self._locks_guard:
            return self._locks.setdefault(cache_dir.resolve(), threading.Lock())

    def sync(self, repo: Repository, force: bool = False) -> SyncResult:
        """Synchronize a repository.

        Args:
            repo: Locally configured descriptor
            force: Re-download even when the cache is up to date

        Returns:
            SyncResult carrying the rehydrated descriptor

        Raises:
            TransportError: If a file cannot be downloaded from any mirror
            MalformedDescriptorError: If the remote spec document is invalid
            IntegrityError: If a bundle fails checksum verification
            RepoKitError: If unpacking or loading the fetched content fails
        """
        start = time.time()
        client = self.client_factory(repo, self.context, self.backend)
        downloads: List[Path] = []

        try:
            spec_file = client.download_file(REPOSITORY_SPECFILE)
            downloads.append(spec_file)
            candidate = Repository.read_spec_file(spec_file)

            if repo.cached:
                repo_dir = self.context.repository_dir(repo.name)
                repo_dir.mkdir(parents=True, exist_ok=True)
                with self._lock_for(repo_dir):
                    status, treefs, metafs = self._sync_cached(
                        repo, candidate, client, spec_file, repo_dir, force, downloads
                    )
                    # Read back under the lock, before another sync can swap the cache
                    self._rehydrate(candidate, treefs, metafs)
            else:
                treefs = Path(repo.tree_path) if repo.tree_path else self.context.temp_dir("treefs")
                metafs = Path(repo.meta_path) if repo.meta_path else self.context.temp_dir("metafs")
                bundles = self._fetch_bundles(repo, candidate, client, downloads)
                for artifact, dest in zip(bundles, (treefs, metafs)):
                    self._unpack(artifact, dest)
                status = SyncStatus.SUCCESS
                self._rehydrate(candidate, treefs, metafs)
        finally:
            for path in downloads:
                discard_download(path)

        candidate.tree_path = str(treefs)
        candidate.meta_path = str(metafs)
        self._apply_local(candidate, repo)

        if status == SyncStatus.UP_TO_DATE:
            logger.info(f"Repository {candidate.name} is already up to date")
        else:
            updated = candidate.last_update_time
            logger.info(
                f"Repository {candidate.name} synced: revision {candidate.revision}, "
                f"last update {updated.isoformat() if updated else candidate.last_update}"
            )

        return SyncResult(
            status=status,
            repository=candidate,
            sync_date=datetime.now().isoformat(),
            downloaded_files=[p.name for p in downloads],
            duration_seconds=time.time() - start,
        )

    def _sync_cached(
        self,
        repo: Repository,
        candidate: Repository,
        client: RepoClient,
        spec_file: Path,
        repo_dir: Path,
        force: bool,
        downloads: List[Path],
    ) -> Tuple[SyncStatus, Path, Path]:
        cached_spec = repo_dir / REPOSITORY_SPECFILE
        treefs = Path(repo.tree_path) if repo.tree_path else repo_dir / TREEFS_DIR
        metafs = Path(repo.meta_path) if repo.meta_path else repo_dir / METAFS_DIR

        if not force and self._is_up_to_date(candidate, cached_spec, treefs, metafs):
            return SyncStatus.UP_TO_DATE, treefs, metafs

        bundles = self._fetch_bundles(repo, candidate, client, downloads)

        staged = []
        try:
            for artifact, target in zip(bundles, (treefs, metafs)):
                staging = target.with_name(f".{target.name}.new")
                shutil.rmtree(staging, ignore_errors=True)
                staged.append((staging, target))
                self._unpack(artifact, staging)
            self._swap(staged)
        finally:
            for staging, _ in staged:
                shutil.rmtree(staging, ignore_errors=True)

        spec_staging = cached_spec.with_name(f".{cached_spec.name}.new")
        try:
            shutil.copyfile(spec_file, spec_staging)
            os.replace(spec_staging, cached_spec)
        except OSError as e:
            spec_staging.unlink(missing_ok=True)
            raise RepoKitError(f"failed replacing cached {REPOSITORY_SPECFILE}: {e}") from e

        return SyncStatus.SUCCESS, treefs, metafs

    @staticmethod
    def _is_up_to_date(candidate: Repository, cached_spec: Path, treefs: Path, metafs: Path) -> bool:
        if not cached_spec.is_file() or not treefs.is_dir() or not metafs.is_dir():
            return False
        try:
            local = Repository.read_spec_file(cached_spec)
        except MalformedDescriptorError as e:
            logger.warning(f"Ignoring unreadable cached spec {cached_spec}: {e}")
            return False
        return local.revision == candidate.revision and local.last_update == candidate.last_update

    def _fetch_bundles(
        self,
        repo: Repository,
        candidate: Repository,
        client: RepoClient,
        downloads: List[Path],
    ) -> List[PackageArtifact]:
        """Download and verify the tree and metadata bundles, in that order."""
        artifacts = []
        for key in (REPOFILE_TREE_KEY, REPOFILE_META_KEY):
            entry = candidate.get_repository_file(key)
            logger.debug(f"Downloading {key} bundle {entry.filename} for {candidate.name}")
            try:
                path = client.download_file(entry.filename)
            except TransportError as e:
                raise TransportError(f"while downloading {key} bundle {entry.filename}: {e}") from e
            downloads.append(path)

            artifact = PackageArtifact(
                path=str(path),
                compression_type=entry.compression_type,
                checksums=dict(entry.checksums),
            )
            if not artifact.checksums and not repo.verify:
                logger.warning(
                    f"No checksums declared for {entry.filename} in {candidate.name}, "
                    "skipping verification"
                )
            else:
                try:
                    artifact.verify()
                except IntegrityError as e:
                    label = "Tree" if key == REPOFILE_TREE_KEY else "Metadata"
                    raise IntegrityError(f"{label} integrity check failure: {e}") from e
            artifacts.append(artifact)
        return artifacts

    @staticmethod
    def _unpack(artifact: PackageArtifact, dest: Path) -> None:
        try:
            artifact.unpack(dest)
        except RuntimeError as e:
            raise RepoKitError(f"Error met while unpacking {artifact.file_name}: {e}") from e

    @staticmethod
    def _swap(staged: List[Tuple[Path, Path]]) -> None:
        """Move staged directories into place, restoring the old ones on failure."""
        swapped = []
        try:
            for staging, target in staged:
                backup = target.with_name(f".{target.name}.old")
                shutil.rmtree(backup, ignore_errors=True)
                if target.exists():
                    os.replace(target, backup)
                else:
                    backup = None
                swapped.append((target, backup))
                os.replace(staging, target)
        except OSError as e:
            for target, backup in reversed(swapped):
                shutil.rmtree(target, ignore_errors=True)
                if backup is not None:
                    os.replace(backup, target)
            raise RepoKitError(f"failed replacing repository cache: {e}") from e

        for _, backup in swapped:
            if backup is not None:
                shutil.rmtree(backup, ignore_errors=True)

    @staticmethod
    def _rehydrate(candidate: Repository, treefs: Path, metafs: Path) -> None:
        try:
            meta = RepositoryMetadata.read_file(metafs / REPOSITORY_METAFILE)
        except (OSError, ValueError) as e:
            raise RepoKitError(f"While processing {REPOSITORY_METAFILE}: {e}") from e
        candidate.index = meta.index

        tree = new_runtime_tree(InMemoryDatabase())
        try:
            tree.load(treefs)
        except (OSError, ValueError) as e:
            raise RepoKitError(f"Error met while loading tree {treefs}: {e}") from e
        candidate.tree = tree

    @staticmethod
    def _apply_local(candidate: Repository, repo: Repository) -> None:
        """Locally configured fields win over the remote spec document."""
        candidate.name = repo.name
        candidate.urls = list(repo.urls)
        candidate.authentication = dict(repo.authentication)
        candidate.type = repo.type
        candidate.priority = repo.priority
        candidate.verify = repo.verify
        candidate.cached = repo.cached
