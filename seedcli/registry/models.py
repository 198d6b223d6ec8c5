"""Registry data models — image names, credentials and tag sets."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Protocol

from seedcli.models.manifest import Manifest

DOCKER_HUB_HOSTS = {"docker.io", "index.docker.io", "registry-1.docker.io", "registry.hub.docker.com"}


@dataclass(frozen=True)
class Credentials:
    username: str
    password: str = ""

    def __repr__(self) -> str:
        return f"Credentials(username={self.username!r}, password='***')"


@dataclass(frozen=True)
class ImageName:
    """An image reference split into its parts.

    ``repository`` is the bare Seed repository (``<name>-<algVersion>-seed``);
    ``registry`` and ``org`` qualify it for pushing and probing.
    """

    repository: str
    tag: str
    registry: str = ""
    org: str = ""

    @classmethod
    def for_manifest(cls, manifest: Manifest, registry: str = "", org: str = "") -> ImageName:
        return cls(
            repository=manifest.image_repository,
            tag=manifest.package_version,
            registry=registry,
            org=org,
        )

    @classmethod
    def parse(cls, reference: str) -> ImageName:
        """Split ``[registry/][org/]repository[:tag]``. Tag defaults to ``latest``."""
        remainder, tag = reference, "latest"
        last = reference.rsplit("/", 1)[-1]
        if ":" in last:
            remainder, tag = reference.rsplit(":", 1)
        parts = remainder.split("/")
        registry = ""
        if len(parts) > 1 and ("." in parts[0] or ":" in parts[0] or parts[0] == "localhost"):
            registry = parts.pop(0)
        repository = parts.pop()
        return cls(repository=repository, tag=tag, registry=registry, org="/".join(parts))

    @property
    def local_reference(self) -> str:
        return f"{self.repository}:{self.tag}"

    @property
    def path(self) -> str:
        """Repository path inside the registry (``org/repository``)."""
        if self.org:
            return f"{self.org}/{self.repository}"
        if is_docker_hub(self.registry):
            return f"library/{self.repository}"
        return self.repository

    @property
    def remote_reference(self) -> str:
        """Fully qualified reference used for tag and push."""
        prefix = "" if not self.registry or is_docker_hub(self.registry) else f"{self.registry}/"
        name = f"{self.org}/{self.repository}" if self.org else self.repository
        return f"{prefix}{name}:{self.tag}"

    def with_tag(self, tag: str) -> ImageName:
        return ImageName(self.repository, tag, self.registry, self.org)

    def __str__(self) -> str:
        return self.remote_reference if (self.registry or self.org) else self.local_reference


@dataclass(frozen=True)
class RegistryTagSet:
    """Tags a registry currently reports for one repository.

    Fetched fresh for each publish decision and then discarded.
    """

    repository: str
    tags: frozenset[str] = field(default_factory=frozenset)

    def __contains__(self, tag: str) -> bool:
        return tag in self.tags

    def __len__(self) -> int:
        return len(self.tags)

    def sorted(self) -> list[str]:
        return sorted(self.tags)


class TagLister(Protocol):
    """Anything that can report the existing tags of a repository."""

    def list_tags(self, image: ImageName) -> RegistryTagSet: ...


class ImagePublisher(Protocol):
    """Anything that can push a locally built image to a registry."""

    def publish(self, source: str, target: ImageName) -> None: ...


def is_docker_hub(registry: str) -> bool:
    host = registry.split("://", 1)[-1].rstrip("/")
    return host in DOCKER_HUB_HOSTS
