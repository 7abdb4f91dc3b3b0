"""Queries across an ordered set of synchronized repositories."""

import re
from concurrent.futures import ThreadPoolExecutor
from enum import Enum
from typing import Callable, Iterable, List, Optional

from ..common.config import RepoKitConfig, get_enabled_repositories
from ..common.errors import PackageNotFoundError
from ..common.logger import get_logger
from ..formats.artifact import PackageArtifact
from ..packages.database import PackageDatabase
from ..packages.package import Package
from .base import PackageMatch, Repository
from .sync import SyncEngine

logger = get_logger("aggregator")

DEFAULT_WORKERS = 4


class SearchMode(Enum):
    """What a search pattern is matched against."""

    LABEL = "label"  # exact label key or key=value
    REGEX_LABEL = "regex_label"
    REGEX_PACKAGE = "regex_package"
    FILE = "file"


def search_artifact(repo: Repository, package: Package) -> Optional[PackageArtifact]:
    """First artifact of a repository built from ``package``, or None."""
    return repo.index.find(package)


def _search_repository(repo: Repository, pattern: str, mode: SearchMode) -> List[PackageMatch]:
    if mode == SearchMode.FILE:
        return [PackageMatch(repo, a.package, a) for a in repo.index.search_files(pattern)]

    if repo.tree is None:
        return []
    db = repo.tree.database
    if mode == SearchMode.LABEL:
        packages = db.find_package_label(pattern)
    elif mode == SearchMode.REGEX_LABEL:
        packages = db.find_package_label_match(pattern)
    else:
        packages = db.find_package_match(pattern)
    return [PackageMatch(repo, p, search_artifact(repo, p)) for p in packages]


class Repositories(list):
    """An ordered collection of synchronized repositories.

    Lower priority values take precedence. Repositories sharing a
    priority keep the order in which they were added.
    """

    def __init__(self, repositories: Iterable[Repository] = (), max_workers: int = DEFAULT_WORKERS):
        super().__init__(repositories)
        self.max_workers = max_workers

    @classmethod
    def from_config(cls, config: RepoKitConfig) -> "Repositories":
        """Descriptors for the enabled repositories of a configuration."""
        return cls(
            (Repository.from_config(r) for r in get_enabled_repositories(config)),
            max_workers=config.system.sync_workers,
        )

    def sorted_by_priority(self) -> List[Repository]:
        return sorted(self, key=lambda r: r.priority)

    def _map(self, func: Callable[[Repository], object], repositories: List[Repository]) -> list:
        """Run ``func`` on every repository with bounded parallelism, keeping order."""
        if not repositories:
            return []
        with ThreadPoolExecutor(max_workers=max(1, min(self.max_workers, len(repositories)))) as pool:
            return list(pool.map(func, repositories))

    def sync_all(self, engine: SyncEngine, force: bool = False) -> "Repositories":
        """Sync every repository.

        Returns:
            Repositories holding the rehydrated descriptors, in priority order

        Raises:
            RepoKitError: The first failure in priority order
        """
        results = self._map(lambda r: engine.sync(r, force=force), self.sorted_by_priority())
        return Repositories((r.repository for r in results), max_workers=self.max_workers)

    def world(self) -> List[Package]:
        """Every package across all repositories, one per fingerprint.

        Repositories are walked from lowest to highest precedence so the
        highest-precedence definition of a fingerprint wins.
        """
        packages = {}
        for repo in reversed(self.sorted_by_priority()):
            if repo.tree is None:
                continue
            for p in repo.tree.database.world():
                packages[p.fingerprint] = p
        return list(packages.values())

    def sync_database(self, database: PackageDatabase) -> None:
        """Populate a database with one definition per fingerprint.

        Same walk as ``world`` but a fingerprint is inserted only the first
        time it is seen.
        """
        seen = set()
        for repo in reversed(self.sorted_by_priority()):
            if repo.tree is None:
                continue
            for p in repo.tree.database.world():
                if p.fingerprint not in seen:
                    seen.add(p.fingerprint)
                    database.create_package(p)

    def package_matches(self, packages: Iterable[Package]) -> List[PackageMatch]:
        """First exact match of each package, scanning by precedence."""
        matches = []
        ordered = self.sorted_by_priority()
        for package in packages:
            for repo in ordered:
                if repo.tree is None:
                    continue
                try:
                    found = repo.tree.database.find_package(package)
                except PackageNotFoundError:
                    continue
                matches.append(PackageMatch(repo, found, search_artifact(repo, found)))
                break
        return matches

    def resolve_selectors(self, packages: Iterable[Package]) -> List[Package]:
        """Replace selectors with the best candidate of the first repository having one.

        Concrete packages are passed through once each. Selectors no
        repository can satisfy are dropped.
        """
        resolved = []
        ordered = self.sorted_by_priority()
        for package in packages:
            if not package.is_selector():
                resolved.append(package)
                continue
            for repo in ordered:
                if repo.tree is None:
                    continue
                try:
                    resolved.append(repo.tree.database.find_package_candidate(package))
                    break
                except PackageNotFoundError:
                    continue
            else:
                logger.debug(f"No candidate for {package.human_readable_string()}")
        return resolved

    def search_packages(self, pattern: str, mode: SearchMode) -> List[PackageMatch]:
        """Search every repository, regardless of priority.

        Matches are returned grouped by repository in priority order. A
        search without hits, or with an invalid regex, returns an empty list.
        """
        if mode != SearchMode.LABEL:
            try:
                re.compile(pattern)
            except re.error as e:
                logger.warning(f"Invalid search pattern {pattern!r}: {e}")
                return []
        groups = self._map(lambda r: _search_repository(r, pattern, mode), self.sorted_by_priority())
        return [m for group in groups for m in group]

    def search(self, pattern: str) -> List[PackageMatch]:
        return self.search_packages(pattern, SearchMode.REGEX_PACKAGE)

    def search_label(self, label: str) -> List[PackageMatch]:
        return self.search_packages(label, SearchMode.LABEL)

    def search_label_match(self, pattern: str) -> List[PackageMatch]:
        return self.search_packages(pattern, SearchMode.REGEX_LABEL)

    def file_search(self, pattern: str) -> List[PackageMatch]:
        return self.search_packages(pattern, SearchMode.FILE)
