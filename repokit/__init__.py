"""Build, publish, sync and search package repositories."""

__version__ = "0.1.0"
