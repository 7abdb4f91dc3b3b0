"""Compiler backend capability used by the registry generator and client.

The registry-backed repository stores every published file as a
container image. Anything implementing CompilerBackend can be used; the
DockerBackend wraps the docker command-line tool.
"""

import shutil
import subprocess
import tempfile
import time
from pathlib import Path
from typing import List, Optional, Protocol, Union

from ..common.errors import TransportError
from ..common.logger import get_logger

logger = get_logger("backend")


class CompilerBackend(Protocol):
    """Image operations the registry-backed repository relies on."""

    def image_available(self, image: str) -> bool: ...

    def build_image(self, image: str, rootfs: Union[str, Path]) -> None: ...

    def push(self, image: str) -> None: ...

    def download_image(self, image: str) -> None: ...

    def extract_rootfs(self, image: str, destination: Union[str, Path]) -> None: ...


class DockerBackend:
    """CompilerBackend using the docker CLI.

    Images are built ``FROM scratch`` so that their root filesystem is
    exactly the published content.
    """

    def __init__(
        self,
        docker: str = "docker",
        timeout: int = 600,
        max_retries: int = 3,
        retry_delay: int = 2,
    ):
        """Initialize the backend.

        Args:
            docker: docker executable
            timeout: Command timeout in seconds
            max_retries: Maximum attempts for each command
            retry_delay: Initial delay between retries (doubles each retry)
        """
        self.docker = docker
        self.timeout = timeout
        self.max_retries = max_retries
        self.retry_delay = retry_delay

    def _run(self, args: List[str], retry: bool = True) -> subprocess.CompletedProcess:
        """Run a docker command, retrying with exponential backoff.

        Raises:
            TransportError: If the command fails after all attempts
        """
        cmd = [self.docker] + args
        attempts = self.max_retries if retry else 1
        delay = self.retry_delay
        last_error: Optional[Exception] = None

        for attempt in range(attempts):
            try:
                return subprocess.run(
                    cmd,
                    capture_output=True,
                    timeout=self.timeout,
                    check=True,
                )
            except subprocess.CalledProcessError as e:
                last_error = e
                stderr = e.stderr.decode() if e.stderr else str(e)
                logger.warning(
                    f"docker {args[0]} failed (attempt {attempt + 1}/{attempts}): {stderr.strip()}"
                )
            except subprocess.TimeoutExpired as e:
                last_error = e
                logger.warning(f"docker {args[0]} timed out (attempt {attempt + 1}/{attempts})")
            except FileNotFoundError as e:
                raise TransportError(f"{self.docker} not available") from e

            if attempt < attempts - 1:
                time.sleep(delay)
                delay *= 2

        raise TransportError(f"docker {' '.join(args)} failed after {attempts} attempt(s)") from last_error

    def image_available(self, image: str) -> bool:
        """Check whether the registry already has an image."""
        try:
            result = subprocess.run(
                [self.docker, "manifest", "inspect", image],
                capture_output=True,
                timeout=self.timeout,
                check=False,
            )
        except subprocess.TimeoutExpired:
            logger.warning(f"Timed out checking availability of {image}")
            return False
        except FileNotFoundError as e:
            raise TransportError(f"{self.docker} not available") from e
        return result.returncode == 0

    def build_image(self, image: str, rootfs: Union[str, Path]) -> None:
        """Build an image whose filesystem is the content of ``rootfs``."""
        with tempfile.TemporaryDirectory(prefix="repokit-build-") as context:
            context_dir = Path(context)
            shutil.copytree(rootfs, context_dir / "rootfs")
            (context_dir / "Dockerfile").write_text("FROM scratch\nCOPY rootfs/ /\n")
            logger.debug(f"Building image {image}")
            self._run(["build", "-t", image, str(context_dir)])

    def push(self, image: str) -> None:
        logger.info(f"Pushing image {image}")
        self._run(["push", image])

    def download_image(self, image: str) -> None:
        logger.debug(f"Pulling image {image}")
        self._run(["pull", image])

    def extract_rootfs(self, image: str, destination: Union[str, Path]) -> None:
        """Copy an image's root filesystem into a directory."""
        Path(destination).mkdir(parents=True, exist_ok=True)
        # scratch images have no entrypoint; the command is never run
        created = self._run(["create", image, "/bin/true"], retry=False)
        container = created.stdout.decode().strip()
        try:
            self._run(["cp", f"{container}:/.", str(destination)], retry=False)
        finally:
            self._run(["rm", "-f", container], retry=False)
