"""Version resolver — semantic-version bumps for packageVersion/algorithmVersion.

Bumps follow MAJOR.MINOR.PATCH rules. The two manifest fields are bumped
independently. When a bump is applied the manifest on disk is rewritten
atomically (temp file + rename) so readers never see a half-written file.
"""

from __future__ import annotations

import json
import logging
import os
import re
import tempfile
from dataclasses import dataclass, replace
from enum import Enum
from pathlib import Path

from seedcli.errors import InvalidVersionFormatError
from seedcli.models.manifest import Manifest
from seedcli.spec.loader import LoadedManifest

logger = logging.getLogger(__name__)

_VERSION_RE = re.compile(r"^(\d+)\.(\d+)\.(\d+)$")


class BumpKind(Enum):
    NONE = "none"
    MINOR = "minor"
    MAJOR = "major"


@dataclass(frozen=True)
class SemVer:
    major: int
    minor: int
    patch: int

    def __str__(self) -> str:
        return f"{self.major}.{self.minor}.{self.patch}"

    def bump(self, kind: BumpKind) -> SemVer:
        if kind == BumpKind.MAJOR:
            return SemVer(self.major + 1, 0, 0)
        if kind == BumpKind.MINOR:
            return SemVer(self.major, self.minor + 1, 0)
        return self


@dataclass(frozen=True)
class VersionBumpRequest:
    """Requested bump for each version field."""

    package: BumpKind = BumpKind.NONE
    algorithm: BumpKind = BumpKind.NONE

    @property
    def requested(self) -> bool:
        return self.package != BumpKind.NONE or self.algorithm != BumpKind.NONE

    @classmethod
    def from_flags(
        cls,
        pkg_minor: bool = False,
        pkg_major: bool = False,
        alg_minor: bool = False,
        alg_major: bool = False,
    ) -> VersionBumpRequest:
        """Build a request from the four publish flags.

        If both minor and major are set for the same field, major wins; the
        two are never applied together.
        """
        return cls(
            package=_pick("packageVersion", pkg_minor, pkg_major),
            algorithm=_pick("algorithmVersion", alg_minor, alg_major),
        )


def _pick(field_name: str, minor: bool, major: bool) -> BumpKind:
    if major and minor:
        logger.warning(
            "Both minor and major bumps requested for %s; applying major only", field_name
        )
    if major:
        return BumpKind.MAJOR
    if minor:
        return BumpKind.MINOR
    return BumpKind.NONE


def parse_version(value, field_name: str = "version") -> SemVer:
    """Parse ``"x.y.z"`` (non-negative integers only).

    Raises:
        InvalidVersionFormatError: anything else, including pre-release suffixes.
    """
    if not isinstance(value, str):
        raise InvalidVersionFormatError(field_name, value)
    m = _VERSION_RE.match(value)
    if not m:
        raise InvalidVersionFormatError(field_name, value)
    return SemVer(int(m.group(1)), int(m.group(2)), int(m.group(3)))


def bump_version(value: str, kind: BumpKind, field_name: str = "version") -> str:
    """Return *value* bumped by *kind*. ``NONE`` returns *value* untouched."""
    if kind == BumpKind.NONE:
        return value
    return str(parse_version(value, field_name).bump(kind))


def resolve_versions(manifest: Manifest, request: VersionBumpRequest) -> Manifest:
    """Compute the bumped manifest without touching disk."""
    package = bump_version(manifest.package_version, request.package, "packageVersion")
    algorithm = bump_version(manifest.algorithm_version, request.algorithm, "algorithmVersion")
    return replace(manifest, package_version=package, algorithm_version=algorithm)


def apply_version_bump(loaded: LoadedManifest, request: VersionBumpRequest) -> LoadedManifest:
    """Bump versions and write the manifest back to where it was loaded from.

    Nothing is written when no bump is requested, or when either version
    fails to parse.
    """
    if not request.requested:
        return loaded

    updated = resolve_versions(loaded.manifest, request)

    data = loaded.data
    data["job"]["packageVersion"] = updated.package_version
    data["job"]["algorithmVersion"] = updated.algorithm_version
    write_manifest(loaded.path, data)

    logger.info(
        "Bumped %s: packageVersion %s -> %s, algorithmVersion %s -> %s",
        loaded.path,
        loaded.manifest.package_version,
        updated.package_version,
        loaded.manifest.algorithm_version,
        updated.algorithm_version,
    )
    return LoadedManifest(manifest=updated, path=loaded.path, _data=data)


def write_manifest(path: str | Path, data: dict) -> None:
    """Atomically replace the manifest at *path* with *data*."""
    path = Path(path)
    content = json.dumps(data, indent=2) + "\n"

    fd, tmp_name = tempfile.mkstemp(prefix=f".{path.name}.", suffix=".tmp", dir=path.parent)
    try:
        with os.fdopen(fd, "w", encoding="utf-8") as f:
            f.write(content)
            f.flush()
            os.fsync(f.fileno())
        if path.exists():
            os.chmod(tmp_name, path.stat().st_mode & 0o777)
        os.replace(tmp_name, path)
    except BaseException:
        if os.path.exists(tmp_name):
            os.unlink(tmp_name)
        raise
