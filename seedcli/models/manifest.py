"""Typed, read-only view of a Seed manifest.

Built from an already schema-validated dict by :func:`manifest_from_dict`.
Covers: job identity and versions, maintainer, the job interface (inputs,
outputs, mounts, settings), resources and error mappings.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from types import MappingProxyType
from typing import Mapping


class IOKind(Enum):
    """The two kinds of job interface entry."""

    FILE = "file"
    JSON = "json"


# --- Interface ---


@dataclass(frozen=True)
class InputDecl:
    """A declared job input."""

    name: str
    kind: IOKind
    required: bool = True
    json_type: str = ""  # JSON inputs only
    media_types: tuple[str, ...] = ()  # file inputs only
    multiple: bool = False
    partial: bool = False


@dataclass(frozen=True)
class OutputDecl:
    """A declared job output."""

    name: str
    kind: IOKind
    required: bool = True
    pattern: str = ""  # file outputs: glob relative to the output dir
    media_type: str = ""
    multiple: bool = False
    json_type: str = ""  # JSON outputs only
    key: str = ""  # JSON outputs: key in seed.outputs.json, defaults to name

    @property
    def lookup_key(self) -> str:
        return self.key or self.name


@dataclass(frozen=True)
class MountDecl:
    """A host directory mapped into the container."""

    name: str
    path: str  # container path
    mode: str = "ro"
    required: bool = True


@dataclass(frozen=True)
class SettingDecl:
    """A named setting passed to the container as an environment variable."""

    name: str
    secret: bool = False
    required: bool = True


@dataclass(frozen=True)
class JobInterface:
    """The job interface: what goes in, what comes out."""

    command: str = ""
    inputs: tuple[InputDecl, ...] = ()
    outputs: tuple[OutputDecl, ...] = ()
    mounts: Mapping[str, MountDecl] = field(default_factory=lambda: MappingProxyType({}))
    settings: Mapping[str, SettingDecl] = field(default_factory=lambda: MappingProxyType({}))

    @property
    def file_inputs(self) -> list[InputDecl]:
        return [i for i in self.inputs if i.kind == IOKind.FILE]

    @property
    def json_inputs(self) -> list[InputDecl]:
        return [i for i in self.inputs if i.kind == IOKind.JSON]

    @property
    def file_outputs(self) -> list[OutputDecl]:
        return [o for o in self.outputs if o.kind == IOKind.FILE]

    @property
    def json_outputs(self) -> list[OutputDecl]:
        return [o for o in self.outputs if o.kind == IOKind.JSON]


# --- Job metadata ---


@dataclass(frozen=True)
class Maintainer:
    name: str
    email: str
    organization: str = ""
    url: str = ""
    phone: str = ""


@dataclass(frozen=True)
class ErrorMapping:
    """Maps a container exit code to a named error."""

    code: int
    name: str
    title: str
    description: str = ""
    category: str = "job"


# --- The full manifest ---


@dataclass(frozen=True)
class Manifest:
    """A parsed ``seed.manifest.json``."""

    seed_version: str
    name: str
    algorithm_version: str
    package_version: str
    title: str = ""
    description: str = ""
    maintainer: Maintainer | None = None
    timeout: int = 0
    tags: tuple[str, ...] = ()
    interface: JobInterface = field(default_factory=JobInterface)
    resources: Mapping[str, float] = field(default_factory=lambda: MappingProxyType({}))
    errors: tuple[ErrorMapping, ...] = ()

    @property
    def image_repository(self) -> str:
        """Image repository name: ``<name>-<algorithmVersion>-seed``."""
        return f"{self.name}-{self.algorithm_version}-seed"

    @property
    def image_name(self) -> str:
        """Local image reference: ``<name>-<algorithmVersion>-seed:<packageVersion>``."""
        return f"{self.image_repository}:{self.package_version}"

    def error_for_exit_code(self, code: int) -> ErrorMapping | None:
        for err in self.errors:
            if err.code == code:
                return err
        return None


def manifest_from_dict(data: dict) -> Manifest:
    """Build a :class:`Manifest` from a schema-valid manifest dict."""
    job = data["job"]
    iface = job.get("interface", {})
    inputs = iface.get("inputs", {})
    outputs = iface.get("outputs", {})

    input_decls = [
        InputDecl(
            name=f["name"],
            kind=IOKind.FILE,
            required=f.get("required", True),
            media_types=tuple(f.get("mediaTypes", [])),
            multiple=f.get("multiple", False),
            partial=f.get("partial", False),
        )
        for f in inputs.get("files", [])
    ] + [
        InputDecl(
            name=j["name"],
            kind=IOKind.JSON,
            required=j.get("required", True),
            json_type=j["type"],
        )
        for j in inputs.get("json", [])
    ]

    output_decls = [
        OutputDecl(
            name=f["name"],
            kind=IOKind.FILE,
            required=f.get("required", True),
            pattern=f["pattern"],
            media_type=f.get("mediaType", ""),
            multiple=f.get("multiple", False),
        )
        for f in outputs.get("files", [])
    ] + [
        OutputDecl(
            name=j["name"],
            kind=IOKind.JSON,
            required=j.get("required", True),
            json_type=j["type"],
            key=j.get("key", ""),
        )
        for j in outputs.get("json", [])
    ]

    mounts = {
        m["name"]: MountDecl(
            name=m["name"],
            path=m["path"],
            mode=m.get("mode", "ro"),
            required=m.get("required", True),
        )
        for m in iface.get("mounts", [])
    }
    settings = {
        s["name"]: SettingDecl(
            name=s["name"],
            secret=s.get("secret", False),
            required=s.get("required", True),
        )
        for s in iface.get("settings", [])
    }

    maintainer = None
    if "maintainer" in job:
        m = job["maintainer"]
        maintainer = Maintainer(
            name=m["name"],
            email=m["email"],
            organization=m.get("organization", ""),
            url=m.get("url", ""),
            phone=m.get("phone", ""),
        )

    return Manifest(
        seed_version=data["seedVersion"],
        name=job["name"],
        algorithm_version=job["algorithmVersion"],
        package_version=job["packageVersion"],
        title=job.get("title", ""),
        description=job.get("description", ""),
        maintainer=maintainer,
        timeout=job.get("timeout", 0),
        tags=tuple(job.get("tags", [])),
        interface=JobInterface(
            command=iface.get("command", ""),
            inputs=tuple(input_decls),
            outputs=tuple(output_decls),
            mounts=MappingProxyType(mounts),
            settings=MappingProxyType(settings),
        ),
        resources=MappingProxyType(
            {r["name"]: r["value"] for r in job.get("resources", {}).get("scalar", [])}
        ),
        errors=tuple(
            ErrorMapping(
                code=e["code"],
                name=e["name"],
                title=e["title"],
                description=e.get("description", ""),
                category=e.get("category", "job"),
            )
            for e in job.get("errors", [])
        ),
    )
