"""Package trees: directory-backed views over a package database.

A runtime tree holds the consumer-facing definitions (``definition.yaml``).
A compiler tree additionally carries the build specs (``build.yaml``) able
to reproduce the artifacts.
"""

from pathlib import Path
from typing import Any, Dict, Optional, Union

import yaml

from ..common.logger import get_logger
from .database import InMemoryDatabase, PackageDatabase
from .package import Package

logger = get_logger("tree")

DEFINITION_FILE = "definition.yaml"
BUILD_FILE = "build.yaml"


class PackageTree:
    """A package database that can be loaded from and saved to a directory."""

    def __init__(self, database: Optional[PackageDatabase] = None, compiler: bool = False):
        """Initialize a tree.

        Args:
            database: Backing database (a fresh in-memory one when omitted)
            compiler: Whether this is a compiler tree carrying build specs
        """
        self.database = database if database is not None else InMemoryDatabase()
        self.compiler = compiler
        self.build_specs: Dict[str, Dict[str, Any]] = {}

    def load(self, path: Union[str, Path]) -> None:
        """Load every definition found below a directory.

        Args:
            path: Root of a package tree

        Raises:
            FileNotFoundError: If the directory does not exist
            ValueError: If a definition cannot be parsed
        """
        root = Path(path)
        if not root.is_dir():
            raise FileNotFoundError(f"Package tree not found: {root}")

        count = 0
        for definition in sorted(root.rglob(DEFINITION_FILE)):
            try:
                with definition.open("r") as f:
                    package = Package.from_dict(yaml.safe_load(f) or {})
            except (yaml.YAMLError, ValueError) as e:
                raise ValueError(f"Invalid package definition {definition}: {e}") from e

            self.database.create_package(package)
            count += 1

            build_file = definition.parent / BUILD_FILE
            if self.compiler and build_file.is_file():
                with build_file.open("r") as f:
                    self.build_specs[package.fingerprint] = yaml.safe_load(f) or {}

        logger.debug(f"Loaded {count} package(s) from {root}")

    def save(self, path: Union[str, Path]) -> None:
        """Write the tree as ``<category>/<name>/<version>/definition.yaml`` files."""
        root = Path(path)
        root.mkdir(parents=True, exist_ok=True)
        for package in self.database.world():
            pkg_dir = root
            if package.category:
                pkg_dir = pkg_dir / package.category
            pkg_dir = pkg_dir / package.name / (package.version or "_")
            pkg_dir.mkdir(parents=True, exist_ok=True)

            with (pkg_dir / DEFINITION_FILE).open("w") as f:
                yaml.safe_dump(package.to_dict(), f, sort_keys=False)

            build_spec = self.build_specs.get(package.fingerprint)
            if self.compiler and build_spec is not None:
                with (pkg_dir / BUILD_FILE).open("w") as f:
                    yaml.safe_dump(build_spec, f, sort_keys=False)


def new_runtime_tree(database: Optional[PackageDatabase] = None) -> PackageTree:
    return PackageTree(database, compiler=False)


def new_compiler_tree(database: Optional[PackageDatabase] = None) -> PackageTree:
    return PackageTree(database, compiler=True)
