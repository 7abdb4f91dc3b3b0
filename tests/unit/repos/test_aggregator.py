"""Tests for the multi-repository aggregator."""

import pytest

from repokit.common.config import parse_config
from repokit.formats.artifact import PackageArtifact
from repokit.packages.database import InMemoryDatabase
from repokit.packages.package import Package
from repokit.repos.aggregator import Repositories, SearchMode, search_artifact
from repokit.repos.base import SyncStatus
from repokit.repos.sync import SyncEngine
from tests.factories import local_descriptor, make_package, publish_local_repository, runtime_repository


@pytest.fixture
def repos():
    """Two repositories sharing foo-1.0 with different definitions."""
    foo_a = make_package("foo", "1.0", description="from A", labels={"origin": "a"})
    foo_b = make_package("foo", "1.0", description="from B", labels={"origin": "b"})
    bar_old = make_package("bar", "0.5")
    bar_new = make_package("bar", "1.2")
    bar_concrete = make_package("bar", "2.0")

    artifact = PackageArtifact(path="foo-1.0.tar.gz", files=["/usr/bin/foo"], package=foo_a)
    a = runtime_repository("a", 1, [foo_a, bar_old, bar_concrete], [artifact])
    b = runtime_repository("b", 10, [foo_b, bar_new, make_package("baz", "3.0", labels={"tier": "extra"})])
    # registered lowest precedence first
    return Repositories([b, a])


class TestOrdering:
    """Tests for priority ordering."""

    def test_sorted_by_priority(self, repos):
        """Test ascending priority order."""
        assert [r.name for r in repos.sorted_by_priority()] == ["a", "b"]

    def test_ties_keep_registration_order(self):
        """Test equal priorities keep insertion order."""
        repos = Repositories([runtime_repository(n, 5, []) for n in ("x", "y", "z")])
        assert [r.name for r in repos.sorted_by_priority()] == ["x", "y", "z"]

    def test_from_config(self, sample_config):
        """Test descriptors come from enabled configured repositories."""
        repos = Repositories.from_config(parse_config(sample_config))
        assert [r.name for r in repos] == ["main", "local"]
        assert repos.max_workers == 2


class TestWorld:
    """Tests for world and sync_database."""

    def test_world_precedence(self, repos):
        """Test the highest-precedence definition of a fingerprint wins."""
        world = {p.fingerprint: p for p in repos.world()}

        assert world["foo-1.0"].description == "from A"
        assert set(world) == {"foo-1.0", "bar-0.5", "bar-1.2", "bar-2.0", "baz-3.0"}

    def test_sync_database_first_seen(self, repos):
        """Test each fingerprint is inserted once, first seen in the walk."""
        db = InMemoryDatabase()
        repos.sync_database(db)

        assert len(db) == 5
        assert db.find_package(Package(name="foo", version="1.0")).description == "from B"


class TestPackageMatches:
    """Tests for package_matches."""

    def test_first_match_wins(self, repos):
        """Test the highest-precedence repository owning the package is returned."""
        matches = repos.package_matches([Package(name="foo", version="1.0")])

        assert len(matches) == 1
        assert matches[0].repository.name == "a"
        assert matches[0].artifact.path == "foo-1.0.tar.gz"

    def test_miss_is_empty(self, repos):
        """Test unknown packages produce no match."""
        assert repos.package_matches([Package(name="nope", version="1.0")]) == []

    def test_lower_precedence_only(self, repos):
        """Test packages only in the second repository are found there."""
        matches = repos.package_matches([Package(name="baz", version="3.0")])
        assert matches[0].repository.name == "b"
        assert matches[0].artifact is None


class TestResolveSelectors:
    """Tests for resolve_selectors."""

    def test_concrete_passed_through_once(self, repos):
        """Test non-selectors are returned unchanged exactly once."""
        bar = Package(name="bar", version="2.0")
        assert repos.resolve_selectors([bar]) == [bar]

    def test_selector_from_first_satisfying_repository(self, repos):
        """Test a selector only satisfiable in B resolves to B's candidate."""
        resolved = repos.resolve_selectors([Package(name="bar", version=">=1.0,<2.0")])
        assert [p.fingerprint for p in resolved] == ["bar-1.2"]

    def test_selector_prefers_higher_precedence(self, repos):
        """Test the first repository with a candidate decides the result."""
        resolved = repos.resolve_selectors([Package(name="bar", version=">=0.1")])
        assert [p.fingerprint for p in resolved] == ["bar-2.0"]

    def test_unsatisfiable_selector_dropped(self, repos):
        """Test selectors without any candidate are dropped."""
        assert repos.resolve_selectors([Package(name="bar", version=">=9")]) == []

    def test_mixed(self, repos):
        """Test order is preserved across selectors and concrete packages."""
        resolved = repos.resolve_selectors(
            [Package.from_string("baz"), Package(name="foo", version="1.0")]
        )
        assert [p.fingerprint for p in resolved] == ["baz-3.0", "foo-1.0"]


class TestSearch:
    """Tests for the search modes."""

    def test_regex_package_searches_all_repositories(self, repos):
        """Test package search spans every repository."""
        matches = repos.search("^foo$")
        assert [(m.repository.name, m.package.description) for m in matches] == [
            ("a", "from A"),
            ("b", "from B"),
        ]
        assert matches[0].artifact is not None
        assert matches[1].artifact is None

    def test_label(self, repos):
        """Test exact label search."""
        matches = repos.search_label("origin=b")
        assert [m.repository.name for m in matches] == ["b"]

    def test_label_key(self, repos):
        """Test label key search."""
        assert [m.package.name for m in repos.search_label("tier")] == ["baz"]

    def test_regex_label(self, repos):
        """Test label regex search."""
        matches = repos.search_label_match("^origin=")
        assert sorted(m.repository.name for m in matches) == ["a", "b"]

    def test_file_search(self, repos):
        """Test file search returns the owning package and artifact."""
        matches = repos.file_search("bin/foo")
        assert len(matches) == 1
        assert matches[0].package.fingerprint == "foo-1.0"
        assert matches[0].artifact.files == ["/usr/bin/foo"]

    def test_file_search_miss(self, repos):
        """Test a file search miss is empty."""
        assert repos.search_packages("bin/bar", SearchMode.FILE) == []

    def test_invalid_regex(self, repos):
        """Test an invalid regex finds nothing instead of failing."""
        assert repos.search("(") == []
        assert repos.search_label_match("[") == []
        assert repos.file_search("*bin") == []

    def test_search_artifact(self, repos):
        """Test artifact lookup within a repository."""
        a = repos.sorted_by_priority()[0]
        assert search_artifact(a, Package(name="foo", version="1.0")).path == "foo-1.0.tar.gz"
        assert search_artifact(a, Package(name="bar", version="0.5")) is None


class TestSyncAll:
    """Tests for syncing every repository."""

    def test_sync_all(self, tmp_path, context):
        """Test every repository is synced and returned in priority order."""
        _, dest_a = publish_local_repository(
            tmp_path / "a", context, [make_package("foo", "1.0")], name="a"
        )
        _, dest_b = publish_local_repository(
            tmp_path / "b", context, [make_package("bar", "1.0")], name="b"
        )
        repos = Repositories(
            [local_descriptor("b", [str(dest_b)], priority=10), local_descriptor("a", [str(dest_a)], priority=1)],
            max_workers=2,
        )
        engine = SyncEngine(context)

        synced = repos.sync_all(engine)

        assert [r.name for r in synced] == ["a", "b"]
        assert [p.fingerprint for p in synced.world()] == ["bar-1.0", "foo-1.0"]
        assert all(r.tree is not None for r in synced)
        assert engine.sync(local_descriptor("a", [str(dest_a)])).status == SyncStatus.UP_TO_DATE
