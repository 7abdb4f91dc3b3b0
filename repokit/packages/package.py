"""Package definitions and selectors.

A package is identified by its fingerprint (category, name and concrete
version). A *selector* is a package request whose version is a
constraint such as ``>=1.0`` rather than a concrete version.
"""

import re
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from packaging.specifiers import InvalidSpecifier, SpecifierSet
from packaging.version import InvalidVersion, Version

SELECTOR_CHARS = set("<>=!~*,")

_PACKAGE_STRING = re.compile(
    r"^(?:(?P<category>[^/@<>=!~]+)/)?"
    r"(?P<name>[A-Za-z0-9_.+-]+?)"
    r"(?:@(?P<version>[^@]+)|(?P<constraint>[<>=!~].*))?$"
)


@dataclass
class Package:
    """A package definition as stored in a package tree."""

    name: str
    version: str = ""
    category: str = ""
    description: str = ""
    labels: Dict[str, str] = field(default_factory=dict)
    requires: List[Dict[str, str]] = field(default_factory=list)

    @property
    def fingerprint(self) -> str:
        """Unique identity used to merge packages across repositories."""
        if self.category:
            return f"{self.category}/{self.name}-{self.version}"
        return f"{self.name}-{self.version}"

    @property
    def package_name(self) -> str:
        """Category-qualified name without version."""
        if self.category:
            return f"{self.category}/{self.name}"
        return self.name

    def human_readable_string(self) -> str:
        return f"{self.package_name}@{self.version}" if self.version else self.package_name

    def is_selector(self) -> bool:
        """Check whether the version is a constraint rather than a concrete version."""
        version = self.version.strip()
        if not version:
            return True
        return any(c in SELECTOR_CHARS for c in version)

    def matches(self, other: "Package") -> bool:
        """Exact identity match."""
        return self.fingerprint == other.fingerprint

    def satisfied_by(self, candidate: "Package") -> bool:
        """Check if a concrete package satisfies this selector.

        Args:
            candidate: Concrete package to test

        Returns:
            True if name and category agree and the candidate's version
            falls within this package's version constraint
        """
        if candidate.name != self.name or candidate.category != self.category:
            return False
        if not self.is_selector():
            return candidate.version == self.version
        constraint = self.version.strip()
        if constraint in ("", "*"):
            return True
        try:
            return Version(candidate.version) in SpecifierSet(constraint, prereleases=True)
        except (InvalidVersion, InvalidSpecifier):
            return False

    def image_id(self) -> str:
        """Container image tag for this package's final image."""
        parts = [self.name, self.category, self.version]
        return "-".join(p for p in parts if p).replace("+", "-")

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {"name": self.name, "version": self.version}
        if self.category:
            data["category"] = self.category
        if self.description:
            data["description"] = self.description
        if self.labels:
            data["labels"] = dict(self.labels)
        if self.requires:
            data["requires"] = [dict(r) for r in self.requires]
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Package":
        if not data or not data.get("name"):
            raise ValueError("package definition without a name")
        return cls(
            name=str(data["name"]),
            version=str(data.get("version", "") or ""),
            category=str(data.get("category", "") or ""),
            description=data.get("description", "") or "",
            labels={str(k): str(v) for k, v in (data.get("labels") or {}).items()},
            requires=[dict(r) for r in data.get("requires") or []],
        )

    @classmethod
    def from_string(cls, value: str) -> "Package":
        """Parse ``[category/]name[@version|<constraint>]``.

        Examples: ``foo@1.0``, ``utils/bar>=1.0``, ``baz`` (any version).

        Raises:
            ValueError: If the string cannot be parsed
        """
        m = _PACKAGE_STRING.match(value.strip())
        if not m:
            raise ValueError(f"invalid package string: {value!r}")
        version = m.group("version") or m.group("constraint") or ""
        return cls(
            name=m.group("name"),
            category=m.group("category") or "",
            version=version.strip(),
        )


def parse_version(value: str) -> Optional[Version]:
    """Parse a version, returning None when it is not PEP 440 compliant."""
    try:
        return Version(value)
    except InvalidVersion:
        return None
