"""Package database: storage and query of package definitions."""

import re
import threading
from typing import Dict, List, Protocol

from ..common.errors import PackageNotFoundError
from .package import Package, parse_version


class PackageDatabase(Protocol):
    """Query interface consumed by generators, sync and the aggregator."""

    def world(self) -> List[Package]: ...

    def create_package(self, package: Package) -> None: ...

    def find_package(self, package: Package) -> Package: ...

    def find_package_candidate(self, package: Package) -> Package: ...

    def find_package_match(self, pattern: str) -> List[Package]: ...

    def find_package_label(self, label: str) -> List[Package]: ...

    def find_package_label_match(self, pattern: str) -> List[Package]: ...


class InMemoryDatabase:
    """Package database keyed by fingerprint, kept in insertion order."""

    def __init__(self) -> None:
        self._packages: Dict[str, Package] = {}
        self._lock = threading.Lock()

    def __len__(self) -> int:
        return len(self._packages)

    def world(self) -> List[Package]:
        """Return every stored package."""
        with self._lock:
            return list(self._packages.values())

    def create_package(self, package: Package) -> None:
        """Store a package, replacing any with the same fingerprint."""
        with self._lock:
            self._packages[package.fingerprint] = package

    def find_package(self, package: Package) -> Package:
        """Find the package with the same fingerprint.

        Raises:
            PackageNotFoundError: If no such package is stored
        """
        with self._lock:
            found = self._packages.get(package.fingerprint)
        if found is None:
            raise PackageNotFoundError(f"package {package.fingerprint} not found")
        return found

    def find_package_candidate(self, package: Package) -> Package:
        """Find the best package satisfying a selector.

        Concrete packages are looked up exactly. For selectors, the highest
        satisfying version wins; versions that do not parse sort lowest.

        Raises:
            PackageNotFoundError: If nothing satisfies the request
        """
        if not package.is_selector():
            return self.find_package(package)

        candidates = [p for p in self.world() if package.satisfied_by(p)]
        if not candidates:
            raise PackageNotFoundError(
                f"no candidate for {package.human_readable_string()}"
            )

        parsed = [p for p in candidates if parse_version(p.version) is not None]
        if parsed:
            return max(parsed, key=lambda p: parse_version(p.version))
        return max(candidates, key=lambda p: p.version)

    def find_package_match(self, pattern: str) -> List[Package]:
        """Packages whose category-qualified name matches a regex."""
        regex = re.compile(pattern)
        return [p for p in self.world() if regex.search(p.package_name)]

    def find_package_label(self, label: str) -> List[Package]:
        """Packages carrying a label.

        ``label`` is either a label key or an exact ``key=value`` pair.
        """
        matches = []
        for p in self.world():
            if label in p.labels:
                matches.append(p)
            elif any(f"{k}={v}" == label for k, v in p.labels.items()):
                matches.append(p)
        return matches

    def find_package_label_match(self, pattern: str) -> List[Package]:
        """Packages with at least one ``key=value`` label matching a regex."""
        regex = re.compile(pattern)
        return [
            p
            for p in self.world()
            if any(regex.search(f"{k}={v}") for k, v in p.labels.items())
        ]
