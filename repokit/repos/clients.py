"""Transport clients used by sync to fetch repository files.

Every client walks the repository's mirror URLs in order and returns the
first successful download. Downloads land in a fresh temporary directory
owned by the caller (see ``discard_download``).
"""

import shutil
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Dict, List, Optional

import httpx

from ..common.context import RuntimeContext
from ..common.errors import TransportError
from ..common.logger import get_logger
from .backend import CompilerBackend

logger = get_logger("client")


def discard_download(path: Path) -> None:
    """Remove a downloaded file together with its temporary directory."""
    shutil.rmtree(Path(path).parent, ignore_errors=True)


class RepoClient(ABC):
    """Fetches named files from a repository's mirrors."""

    def __init__(self, urls: List[str], context: RuntimeContext):
        self.urls = list(urls)
        self.context = context

    def download_file(self, name: str) -> Path:
        """Download a repository file from the first mirror that has it.

        Args:
            name: File name relative to the repository root

        Returns:
            Path of the downloaded file inside a fresh temporary directory

        Raises:
            TransportError: If no mirror could serve the file
        """
        if not self.urls:
            raise TransportError(f"no mirror configured to download {name}")

        errors = []
        for url in self.urls:
            dest_dir = self.context.temp_dir("download")
            try:
                path = self._fetch(url, name, dest_dir / name)
                logger.debug(f"Downloaded {name} from {url}")
                return path
            except TransportError as e:
                shutil.rmtree(dest_dir, ignore_errors=True)
                logger.debug(f"Mirror {url} failed for {name}: {e}")
                errors.append(f"{url}: {e}")

        raise TransportError(f"could not download {name}: " + "; ".join(errors))

    @abstractmethod
    def _fetch(self, url: str, name: str, dest: Path) -> Path:
        """Fetch ``name`` from a single mirror into ``dest``."""
        pass


class LocalClient(RepoClient):
    """Client for repositories published on a local or mounted filesystem."""

    def _fetch(self, url: str, name: str, dest: Path) -> Path:
        root = url[len("file://"):] if url.startswith("file://") else url
        source = Path(root) / name
        if not source.is_file():
            raise TransportError(f"{source} does not exist")
        try:
            shutil.copyfile(source, dest)
        except OSError as e:
            raise TransportError(f"failed copying {source}: {e}") from e
        return dest


class HttpClient(RepoClient):
    """Client for repositories served over HTTP(S).

    Authentication is taken from the repository's ``authentication``
    mapping: ``token`` selects bearer authentication, ``username`` and
    ``password`` select basic authentication.
    """

    def __init__(
        self,
        urls: List[str],
        context: RuntimeContext,
        authentication: Optional[Dict[str, str]] = None,
        timeout: float = 60.0,
        transport: Optional[httpx.BaseTransport] = None,
    ):
        super().__init__(urls, context)
        self.authentication = dict(authentication or {})
        self.timeout = timeout
        self.transport = transport

    def _auth(self) -> Optional[httpx.BasicAuth]:
        username = self.authentication.get("username")
        if username:
            return httpx.BasicAuth(username, self.authentication.get("password", ""))
        return None

    def _headers(self) -> Dict[str, str]:
        token = self.authentication.get("token")
        if token:
            return {"Authorization": f"Bearer {token}"}
        return {}

    def _fetch(self, url: str, name: str, dest: Path) -> Path:
        target = f"{url.rstrip('/')}/{name}"
        try:
            with httpx.Client(
                timeout=self.timeout,
                follow_redirects=True,
                auth=self._auth(),
                headers=self._headers(),
                transport=self.transport,
            ) as client:
                with client.stream("GET", target) as response:
                    response.raise_for_status()
                    with dest.open("wb") as f:
                        for chunk in response.iter_bytes():
                            f.write(chunk)
        except httpx.HTTPError as e:
            raise TransportError(f"GET {target} failed: {e}") from e
        return dest


class RegistryClient(RepoClient):
    """Client for repositories stored as images in a container registry.

    Each mirror URL is an image prefix; file ``name`` is the content of
    image ``<prefix>:<name>``.
    """

    def __init__(self, urls: List[str], context: RuntimeContext, backend: CompilerBackend):
        super().__init__(urls, context)
        self.backend = backend

    def _fetch(self, url: str, name: str, dest: Path) -> Path:
        image = f"{url}:{name}"
        rootfs = dest.parent / "rootfs"
        self.backend.download_image(image)
        self.backend.extract_rootfs(image, rootfs)
        extracted = rootfs / name
        if not extracted.is_file():
            raise TransportError(f"image {image} does not contain {name}")
        shutil.move(str(extracted), str(dest))
        shutil.rmtree(rootfs, ignore_errors=True)
        return dest
