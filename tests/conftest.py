"""Pytest configuration and shared fixtures."""

import shutil
from pathlib import Path

import pytest

from repokit.common.context import RuntimeContext
from repokit.common.errors import TransportError


class FakeBackend:
    """In-memory CompilerBackend.

    Built images live in ``images`` (tag -> rootfs copy); an image is
    available in the registry once it has been pushed.
    """

    def __init__(self, store: Path):
        self.store = store
        self.images = {}
        self.registry = set()
        self.builds = []
        self.pushes = []
        self.pulls = []

    def _image_dir(self, image: str) -> Path:
        return self.store / image.replace("/", "_").replace(":", "__")

    def image_available(self, image):
        return image in self.registry

    def build_image(self, image, rootfs):
        target = self._image_dir(image)
        shutil.rmtree(target, ignore_errors=True)
        shutil.copytree(rootfs, target)
        self.images[image] = target
        self.builds.append(image)

    def push(self, image):
        if image not in self.images:
            raise TransportError(f"image {image} was never built")
        self.registry.add(image)
        self.pushes.append(image)

    def download_image(self, image):
        if image not in self.registry:
            raise TransportError(f"image {image} not found")
        self.pulls.append(image)

    def extract_rootfs(self, image, destination):
        if image not in self.images:
            raise TransportError(f"image {image} not found")
        shutil.copytree(self.images[image], destination, dirs_exist_ok=True)


@pytest.fixture
def sample_config():
    """Sample configuration dictionary."""
    return {
        "system": {
            "cache_dir": "/var/cache/repokit/repos",
            "tmp_dir": "/var/tmp/repokit",
            "log_dir": "/var/log/repokit",
            "log_level": "DEBUG",
            "sync_workers": 2,
        },
        "repositories": [
            {
                "name": "main",
                "type": "http",
                "urls": ["https://mirror-a.example.com/main", "https://mirror-b.example.com/main"],
                "priority": 1,
                "authentication": {"token": "s3cr3t"},
            },
            {
                "name": "local",
                "type": "disk",
                "urls": ["/srv/repos/local"],
                "priority": 10,
                "cached": False,
            },
            {
                "name": "images",
                "type": "registry",
                "urls": ["registry.example.com/repokit/images"],
                "enable": False,
            },
        ],
    }


@pytest.fixture
def context(tmp_path):
    """Runtime context rooted in the test's temporary directory."""
    return RuntimeContext(cache_dir=tmp_path / "cache", tmp_dir=tmp_path / "tmp")


@pytest.fixture
def fake_backend(tmp_path):
    """In-memory image backend."""
    store = tmp_path / "images"
    store.mkdir()
    return FakeBackend(store)
