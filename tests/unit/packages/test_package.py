"""Tests for the package model and selectors."""

import pytest

from repokit.packages.package import Package, parse_version


class TestPackage:
    """Tests for Package identity."""

    def test_fingerprint(self):
        """Test fingerprint with and without category."""
        assert Package(name="foo", version="1.0").fingerprint == "foo-1.0"
        assert Package(name="foo", version="1.0", category="utils").fingerprint == "utils/foo-1.0"

    def test_human_readable_string(self):
        """Test human readable form."""
        assert Package(name="foo", version="1.0", category="utils").human_readable_string() == "utils/foo@1.0"
        assert Package(name="foo").human_readable_string() == "foo"

    def test_image_id(self):
        """Test image tag derived from the package."""
        assert Package(name="foo", version="1.0+b1", category="utils").image_id() == "foo-utils-1.0-b1"

    def test_dict_round_trip(self):
        """Test serialization keeps labels and requirements."""
        package = Package(
            name="foo",
            version="1.0",
            category="utils",
            labels={"maintainer": "ops"},
            requires=[{"name": "bar", "version": ">=2"}],
        )
        assert Package.from_dict(package.to_dict()) == package

    def test_from_dict_requires_name(self):
        """Test definitions without a name are rejected."""
        with pytest.raises(ValueError):
            Package.from_dict({"version": "1.0"})


class TestSelectors:
    """Tests for selector detection and matching."""

    @pytest.mark.parametrize(
        "version,expected",
        [("1.0", False), ("", True), (">=1.0", True), ("~=1.2", True), ("*", True), ("!=2.0", True)],
    )
    def test_is_selector(self, version, expected):
        """Test selector detection."""
        assert Package(name="foo", version=version).is_selector() is expected

    def test_satisfied_by_range(self):
        """Test a range selector against candidates."""
        selector = Package(name="bar", version=">=1.0,<2.0")

        assert selector.satisfied_by(Package(name="bar", version="1.5"))
        assert not selector.satisfied_by(Package(name="bar", version="2.0"))
        assert not selector.satisfied_by(Package(name="baz", version="1.5"))

    def test_satisfied_by_checks_category(self):
        """Test selectors only match within their category."""
        selector = Package(name="bar", version=">=1.0", category="libs")
        assert not selector.satisfied_by(Package(name="bar", version="1.5", category="apps"))

    def test_satisfied_by_unparsable_version(self):
        """Test non PEP 440 candidates never satisfy a range."""
        selector = Package(name="bar", version=">=1.0")
        assert not selector.satisfied_by(Package(name="bar", version="latest"))

    def test_concrete_package_matches_exactly(self):
        """Test concrete packages only accept their own version."""
        package = Package(name="bar", version="2.0")
        assert package.satisfied_by(Package(name="bar", version="2.0"))
        assert not package.satisfied_by(Package(name="bar", version="2.1"))


class TestFromString:
    """Tests for parsing package strings."""

    def test_concrete(self):
        """Test name@version."""
        package = Package.from_string("utils/foo@1.0")
        assert (package.category, package.name, package.version) == ("utils", "foo", "1.0")
        assert not package.is_selector()

    def test_constraint(self):
        """Test name with constraint."""
        package = Package.from_string("bar>=1.0")
        assert package.name == "bar"
        assert package.version == ">=1.0"
        assert package.is_selector()

    def test_name_only(self):
        """Test a bare name is an any-version selector."""
        package = Package.from_string("baz")
        assert package.version == ""
        assert package.is_selector()

    def test_invalid(self):
        """Test unparsable strings raise ValueError."""
        with pytest.raises(ValueError):
            Package.from_string("@@")


def test_parse_version():
    """Test version parsing helper."""
    assert parse_version("1.10") > parse_version("1.9")
    assert parse_version("not-a-version!") is None
