"""Package model, database and trees."""

from .package import Package
from .database import InMemoryDatabase, PackageDatabase
from .tree import PackageTree, new_compiler_tree, new_runtime_tree

__all__ = [
    "InMemoryDatabase",
    "Package",
    "PackageDatabase",
    "PackageTree",
    "new_compiler_tree",
    "new_runtime_tree",
]
