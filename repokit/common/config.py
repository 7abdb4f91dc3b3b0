"""Configuration management for repokit.

Handles loading and validation of YAML configuration files describing
the local system paths and the set of configured repositories.
"""

import os
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Any, Dict, List, Optional

import yaml

from .errors import ConfigurationError


class RepositoryType(Enum):
    """Transport kind of a repository."""

    DISK = "disk"
    HTTP = "http"
    REGISTRY = "registry"

    @classmethod
    def parse(cls, value: Any) -> "RepositoryType":
        """Parse a repository type from its string form.

        Args:
            value: Type name or RepositoryType

        Returns:
            Matching RepositoryType

        Raises:
            ConfigurationError: If the type is unknown
        """
        if isinstance(value, cls):
            return value
        try:
            return cls(str(value).lower())
        except ValueError:
            raise ConfigurationError(
                f"invalid repository type: {value!r} "
                f"(expected one of: {', '.join(t.value for t in cls)})"
            ) from None


@dataclass
class RepositoryConfig:
    """Locally authored configuration for a single repository."""

    name: str
    type: RepositoryType
    urls: List[str] = field(default_factory=list)
    description: str = ""
    priority: int = 9999
    enable: bool = True
    cached: bool = True
    verify: bool = True
    authentication: Dict[str, str] = field(default_factory=dict)
    tree_path: str = ""
    meta_path: str = ""


@dataclass
class SystemConfig:
    """Local paths and runtime limits."""

    cache_dir: str = "/var/cache/repokit/repos"
    tmp_dir: str = "/var/tmp/repokit"
    log_dir: str = "/var/log/repokit"
    log_level: str = "INFO"
    sync_workers: int = 4


@dataclass
class RepoKitConfig:
    """Top-level configuration for repokit."""

    system: SystemConfig = field(default_factory=SystemConfig)
    repositories: List[RepositoryConfig] = field(default_factory=list)


def parse_repository_config(repo_dict: Dict[str, Any]) -> RepositoryConfig:
    """Parse a repository configuration dictionary.

    Args:
        repo_dict: Repository configuration dictionary

    Returns:
        RepositoryConfig instance

    Raises:
        ConfigurationError: If the name is missing or the type is unknown
    """
    name = repo_dict.get("name", "")
    if not name:
        raise ConfigurationError("repository entry without a name")

    return RepositoryConfig(
        name=name,
        type=RepositoryType.parse(repo_dict.get("type", "")),
        urls=list(repo_dict.get("urls", [])),
        description=repo_dict.get("description", ""),
        priority=int(repo_dict.get("priority", 9999)),
        enable=repo_dict.get("enable", True),
        cached=repo_dict.get("cached", True),
        verify=repo_dict.get("verify", True),
        authentication=dict(repo_dict.get("authentication", {}) or {}),
        tree_path=repo_dict.get("tree_path", ""),
        meta_path=repo_dict.get("meta_path", ""),
    )


def parse_system_config(system_dict: Dict[str, Any]) -> SystemConfig:
    """Parse system configuration dictionary.

    Args:
        system_dict: System configuration dictionary

    Returns:
        SystemConfig instance
    """
    defaults = SystemConfig()
    return SystemConfig(
        cache_dir=system_dict.get("cache_dir", defaults.cache_dir),
        tmp_dir=system_dict.get("tmp_dir", defaults.tmp_dir),
        log_dir=system_dict.get("log_dir", defaults.log_dir),
        log_level=system_dict.get("log_level", defaults.log_level),
        sync_workers=int(system_dict.get("sync_workers", defaults.sync_workers)),
    )


def parse_config(config_dict: Dict[str, Any]) -> RepoKitConfig:
    """Parse the full configuration dictionary.

    Args:
        config_dict: Full configuration dictionary

    Returns:
        RepoKitConfig instance

    Raises:
        ConfigurationError: If two repositories share a name
    """
    system = SystemConfig()
    if "system" in config_dict:
        system = parse_system_config(config_dict["system"] or {})

    repositories = []
    seen = set()
    for repo_dict in config_dict.get("repositories", []) or []:
        repo = parse_repository_config(repo_dict)
        if repo.name in seen:
            raise ConfigurationError(f"duplicate repository name: {repo.name}")
        seen.add(repo.name)
        repositories.append(repo)

    return RepoKitConfig(system=system, repositories=repositories)


def get_enabled_repositories(config: RepoKitConfig) -> List[RepositoryConfig]:
    """Get the enabled repositories in declaration order."""
    return [repo for repo in config.repositories if repo.enable]


def get_repository(config: RepoKitConfig, name: str) -> Optional[RepositoryConfig]:
    """Look up a configured repository by name."""
    for repo in config.repositories:
        if repo.name == name:
            return repo
    return None


def load_config(config_path: str = "/etc/repokit/config.yaml") -> Dict[str, Any]:
    """Load configuration from YAML file.

    Args:
        config_path: Path to configuration file

    Returns:
        Configuration dictionary

    Raises:
        FileNotFoundError: If config file doesn't exist
        yaml.YAMLError: If config file is invalid YAML
        TypeError: If the document root is not a mapping
    """
    config_file = Path(config_path)

    if not config_file.exists():
        raise FileNotFoundError(f"Configuration file not found: {config_path}")

    with config_file.open("r") as f:
        config = yaml.safe_load(f)

    if config is None:
        config = {}

    if not isinstance(config, dict):
        raise TypeError(
            f"Configuration root must be a mapping, got {type(config).__name__}"
        )

    return _expand_env_vars(config)


def _expand_env_vars(obj: Any) -> Any:
    """Recursively expand environment variables in configuration.

    Args:
        obj: Configuration object (dict, list, str, etc.)

    Returns:
        Configuration with expanded environment variables
    """
    if isinstance(obj, dict):
        return {key: _expand_env_vars(value) for key, value in obj.items()}
    elif isinstance(obj, list):
        return [_expand_env_vars(item) for item in obj]
    elif isinstance(obj, str):
        return os.path.expandvars(obj)
    else:
        return obj


def load_typed_config(config_path: str = "/etc/repokit/config.yaml") -> RepoKitConfig:
    """Load and parse configuration into typed dataclasses.

    Args:
        config_path: Path to configuration file

    Returns:
        RepoKitConfig instance
    """
    return parse_config(load_config(config_path))
