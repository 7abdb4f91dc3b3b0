"""Runtime context passed into generators and the sync engine."""

import tempfile
from dataclasses import dataclass, field
from pathlib import Path

from .config import RepoKitConfig
from .events import EventBus


@dataclass
class RuntimeContext:
    """Filesystem roots and observers for repository operations.

    Attributes:
        cache_dir: Root of the per-repository caches
        tmp_dir: Root under which temporary directories are allocated
        events: Publish-cycle observers
    """

    cache_dir: Path
    tmp_dir: Path
    events: EventBus = field(default_factory=EventBus)

    def __post_init__(self) -> None:
        self.cache_dir = Path(self.cache_dir)
        self.tmp_dir = Path(self.tmp_dir)

    @classmethod
    def from_config(cls, config: RepoKitConfig) -> "RuntimeContext":
        """Build a context from the system section of a configuration."""
        return cls(
            cache_dir=Path(config.system.cache_dir),
            tmp_dir=Path(config.system.tmp_dir),
        )

    def temp_dir(self, prefix: str) -> Path:
        """Allocate a fresh temporary directory.

        The caller owns the directory and is responsible for removing it.
        """
        self.tmp_dir.mkdir(parents=True, exist_ok=True)
        return Path(tempfile.mkdtemp(prefix=f"{prefix}-", dir=str(self.tmp_dir)))

    def repository_dir(self, name: str) -> Path:
        """Cache directory of a repository: ``<cache_dir>/<name>``."""
        return self.cache_dir / name
