"""Tests for configuration module."""

import pytest

import yaml

from repokit.common.config import (
    RepositoryConfig,
    RepositoryType,
    RepoKitConfig,
    SystemConfig,
    get_enabled_repositories,
    get_repository,
    load_config,
    load_typed_config,
    parse_config,
    parse_repository_config,
    parse_system_config,
)
from repokit.common.context import RuntimeContext
from repokit.common.errors import ConfigurationError


class TestRepositoryType:
    """Tests for RepositoryType parsing."""

    def test_parse_known_types(self):
        """Test parsing each known type."""
        assert RepositoryType.parse("disk") == RepositoryType.DISK
        assert RepositoryType.parse("HTTP") == RepositoryType.HTTP
        assert RepositoryType.parse(RepositoryType.REGISTRY) == RepositoryType.REGISTRY

    def test_parse_unknown_type(self):
        """Test unknown type raises ConfigurationError."""
        with pytest.raises(ConfigurationError, match="invalid repository type"):
            RepositoryType.parse("ftp")


class TestRepositoryConfig:
    """Tests for RepositoryConfig parsing."""

    def test_parse_basic_repository(self):
        """Test parsing basic repository config."""
        repo = parse_repository_config(
            {"name": "main", "type": "http", "urls": ["https://example.com/main"]}
        )

        assert repo.name == "main"
        assert repo.type == RepositoryType.HTTP
        assert repo.urls == ["https://example.com/main"]
        assert repo.priority == 9999
        assert repo.enable is True
        assert repo.cached is True
        assert repo.verify is True

    def test_parse_repository_with_overrides(self):
        """Test parsing repository with path overrides and credentials."""
        repo = parse_repository_config(
            {
                "name": "main",
                "type": "disk",
                "tree_path": "/srv/tree",
                "meta_path": "/srv/meta",
                "authentication": {"username": "bob", "password": "pw"},
                "verify": False,
            }
        )

        assert repo.tree_path == "/srv/tree"
        assert repo.meta_path == "/srv/meta"
        assert repo.authentication["username"] == "bob"
        assert repo.verify is False

    def test_parse_repository_without_name(self):
        """Test repository without name is rejected."""
        with pytest.raises(ConfigurationError):
            parse_repository_config({"type": "disk"})

    def test_parse_repository_unknown_type(self):
        """Test repository with unknown type is rejected at parse time."""
        with pytest.raises(ConfigurationError):
            parse_repository_config({"name": "bad", "type": "gopher"})


class TestSystemConfig:
    """Tests for SystemConfig parsing."""

    def test_defaults(self):
        """Test default system values."""
        system = parse_system_config({})
        assert system == SystemConfig()
        assert system.sync_workers == 4

    def test_custom_values(self):
        """Test overriding system values."""
        system = parse_system_config({"cache_dir": "/tmp/cache", "sync_workers": "8"})
        assert system.cache_dir == "/tmp/cache"
        assert system.sync_workers == 8


class TestParseConfig:
    """Tests for full config parsing."""

    def test_parse_full_config(self, sample_config):
        """Test parsing the sample configuration."""
        config = parse_config(sample_config)

        assert isinstance(config, RepoKitConfig)
        assert config.system.log_level == "DEBUG"
        assert [r.name for r in config.repositories] == ["main", "local", "images"]
        assert config.repositories[2].type == RepositoryType.REGISTRY

    def test_parse_empty_config(self):
        """Test empty configuration gives defaults."""
        config = parse_config({})
        assert config.repositories == []
        assert config.system == SystemConfig()

    def test_duplicate_names_rejected(self):
        """Test two repositories may not share a name."""
        with pytest.raises(ConfigurationError, match="duplicate"):
            parse_config(
                {
                    "repositories": [
                        {"name": "a", "type": "disk"},
                        {"name": "a", "type": "http"},
                    ]
                }
            )

    def test_get_enabled_repositories(self, sample_config):
        """Test disabled repositories are filtered out."""
        config = parse_config(sample_config)
        enabled = get_enabled_repositories(config)
        assert [r.name for r in enabled] == ["main", "local"]

    def test_get_repository(self, sample_config):
        """Test repository lookup by name."""
        config = parse_config(sample_config)
        assert isinstance(get_repository(config, "local"), RepositoryConfig)
        assert get_repository(config, "missing") is None


class TestLoadConfig:
    """Tests for loading configuration files."""

    def test_load_config(self, tmp_path, sample_config):
        """Test loading a YAML file."""
        path = tmp_path / "config.yaml"
        path.write_text(yaml.safe_dump(sample_config))

        assert load_config(str(path)) == sample_config

    def test_load_missing_file(self, tmp_path):
        """Test missing file raises FileNotFoundError."""
        with pytest.raises(FileNotFoundError):
            load_config(str(tmp_path / "nope.yaml"))

    def test_load_non_mapping(self, tmp_path):
        """Test non-mapping root raises TypeError."""
        path = tmp_path / "config.yaml"
        path.write_text("- a\n- b\n")
        with pytest.raises(TypeError):
            load_config(str(path))

    def test_env_var_expansion(self, tmp_path, monkeypatch):
        """Test environment variables are expanded."""
        monkeypatch.setenv("REPOKIT_CACHE", "/data/cache")
        path = tmp_path / "config.yaml"
        path.write_text("system:\n  cache_dir: $REPOKIT_CACHE/repos\n")

        config = load_typed_config(str(path))
        assert config.system.cache_dir == "/data/cache/repos"


class TestRuntimeContext:
    """Tests for RuntimeContext."""

    def test_from_config(self, sample_config):
        """Test building a context from configuration."""
        context = RuntimeContext.from_config(parse_config(sample_config))
        assert str(context.cache_dir) == "/var/cache/repokit/repos"
        assert context.repository_dir("main") == context.cache_dir / "main"

    def test_temp_dirs_are_fresh(self, context):
        """Test each temp_dir call allocates a new directory."""
        first = context.temp_dir("download")
        second = context.temp_dir("download")

        assert first != second
        assert first.is_dir() and second.is_dir()
        assert first.parent == context.tmp_dir
        assert first.name.startswith("download-")
