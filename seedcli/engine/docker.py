"""Docker engine — the external container engine, driven through its CLI.

Every call runs ``docker`` as a subprocess with a bounded timeout. Failures
and timeouts raise :class:`EngineError`; nothing is retried, so a push is
never silently repeated.
"""

from __future__ import annotations

import json
import logging
import os
import shutil
import subprocess
from dataclasses import dataclass, field
from pathlib import Path

from seedcli.errors import EngineError
from seedcli.registry.models import Credentials, ImageName

logger = logging.getLogger(__name__)

MANIFEST_LABEL = "com.ngageoint.seed.manifest"
SEED_SUFFIX = "-seed"


@dataclass
class LocalImage:
    repository: str
    tag: str
    image_id: str = ""
    created: str = ""
    size: str = ""

    @property
    def reference(self) -> str:
        return f"{self.repository}:{self.tag}"


@dataclass
class DockerEngine:
    """Thin wrapper over the ``docker`` CLI.

    ``config_dir`` becomes ``DOCKER_CONFIG`` for every call so logins made
    by seed stay out of the user's own docker config.
    """

    config_dir: str = ""
    timeout: float = 30.0
    long_timeout: float | None = None
    executable: str = "docker"
    env: dict[str, str] = field(default_factory=dict)

    # -- plumbing ------------------------------------------------------------

    def _env(self) -> dict[str, str]:
        env = dict(os.environ)
        env.update(self.env)
        if self.config_dir:
            Path(self.config_dir).mkdir(parents=True, exist_ok=True)
            env["DOCKER_CONFIG"] = self.config_dir
        return env

    def _run(
        self,
        args: list[str],
        timeout: float | None,
        capture: bool = True,
        input_text: str | None = None,
        check: bool = True,
    ) -> subprocess.CompletedProcess:
        cmd = [self.executable, *args]
        short = " ".join(cmd[:3])
        logger.debug("Running: %s", " ".join(cmd))
        if shutil.which(self.executable) is None:
            raise EngineError(f"'{self.executable}' was not found on PATH")
        try:
            result = subprocess.run(
                cmd,
                capture_output=capture,
                text=True,
                input=input_text,
                timeout=timeout,
                env=self._env(),
            )
        except subprocess.TimeoutExpired as e:
            raise EngineError(f"'{short}' timed out after {timeout}s") from e
        except OSError as e:
            raise EngineError(f"Could not execute {self.executable}: {e}") from e

        if check and result.returncode != 0:
            detail = (result.stderr or "").strip() if capture else ""
            raise EngineError(
                f"'{short}' failed with exit code {result.returncode}"
                + (f": {detail}" if detail else ""),
                returncode=result.returncode,
            )
        return result

    # -- operations ----------------------------------------------------------

    def check_available(self) -> None:
        """Fail early if the daemon is unreachable (e.g. needs sudo)."""
        result = self._run(["info", "--format", "{{.ServerVersion}}"], self.timeout, check=False)
        if result.returncode != 0:
            stderr = (result.stderr or "").strip()
            hint = ""
            if "permission denied" in stderr.lower():
                hint = " (docker may require sudo, or add your user to the docker group)"
            raise EngineError(f"Docker daemon is not available{hint}: {stderr}", result.returncode)

    def login(self, registry: str, credentials: Credentials) -> None:
        args = ["login", "--username", credentials.username, "--password-stdin"]
        if registry:
            args.append(registry)
        self._run(args, self.timeout, input_text=credentials.password)

    def build(self, directory: str | Path, image: str, manifest_json: str) -> None:
        """``docker build`` with the manifest stored as an image label."""
        args = [
            "build",
            "--tag",
            image,
            "--label",
            f"{MANIFEST_LABEL}={manifest_json}",
            str(directory),
        ]
        self._run(args, self.long_timeout, capture=False)

    def run(self, args: list[str], timeout: float | None = None) -> int:
        """``docker run`` streaming output to the terminal; returns the container exit code."""
        result = self._run(["run", *args], timeout or self.long_timeout, capture=False, check=False)
        return result.returncode

    def tag(self, source: str, target: str) -> None:
        self._run(["tag", source, target], self.timeout)

    def push(self, reference: str) -> None:
        self._run(["push", reference], self.long_timeout, capture=False)

    def pull(self, reference: str) -> None:
        self._run(["pull", reference], self.long_timeout, capture=False)

    def images(self, reference_filter: str = "") -> list[LocalImage]:
        fmt = "{{json .}}"
        args = ["images", "--format", fmt]
        if reference_filter:
            args.append(reference_filter)
        result = self._run(args, self.timeout)
        images = []
        for line in result.stdout.splitlines():
            line = line.strip()
            if not line:
                continue
            try:
                row = json.loads(line)
            except json.JSONDecodeError:
                logger.debug("Skipping unparseable docker images line: %s", line)
                continue
            images.append(
                LocalImage(
                    repository=row.get("Repository", ""),
                    tag=row.get("Tag", ""),
                    image_id=row.get("ID", ""),
                    created=row.get("CreatedSince", ""),
                    size=row.get("Size", ""),
                )
            )
        return images

    def seed_images(self) -> list[LocalImage]:
        """Local images whose repository follows the ``*-seed`` convention."""
        return [
            img
            for img in self.images()
            if img.repository.rsplit("/", 1)[-1].endswith(SEED_SUFFIX) and img.tag != "<none>"
        ]

    def manifest_label(self, reference: str) -> str | None:
        """The raw seed manifest JSON stored in an image's labels, if any."""
        result = self._run(
            ["inspect", "--format", "{{json .Config.Labels}}", reference], self.timeout
        )
        try:
            labels = json.loads(result.stdout or "null") or {}
        except json.JSONDecodeError as e:
            raise EngineError(f"Unexpected 'docker inspect' output for {reference}") from e
        return labels.get(MANIFEST_LABEL)


class DockerPublisher:
    """Tags a local image with its registry reference and pushes it."""

    def __init__(self, engine: DockerEngine, credentials: Credentials | None = None):
        self.engine = engine
        self.credentials = credentials

    def publish(self, source: str, target: ImageName) -> None:
        if self.credentials:
            self.engine.login(target.registry, self.credentials)
        reference = target.remote_reference
        self.engine.tag(source, reference)
        self.engine.push(reference)

