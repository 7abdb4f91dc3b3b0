"""Common utilities for repokit."""

from .logger import configure_logging, setup_logger, get_logger
from .config import load_config, load_typed_config, RepositoryType
from .context import RuntimeContext
from .events import EventBus, RepositoryEvent, RepositoryBuildEvent

__all__ = [
    "EventBus",
    "RepositoryBuildEvent",
    "RepositoryEvent",
    "RepositoryType",
    "RuntimeContext",
    "configure_logging",
    "get_logger",
    "load_config",
    "load_typed_config",
    "setup_logger",
]
