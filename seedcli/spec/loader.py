"""Manifest loader — find, parse and validate ``seed.manifest.json``.

The loader never hands back a partially valid manifest: any parse error or
schema violation fails the whole load.
"""

from __future__ import annotations

import copy
import json
import logging
import re
from dataclasses import dataclass, field
from pathlib import Path

from seedcli.errors import (
    AmbiguousError,
    InvalidManifestError,
    MalformedManifestError,
    NotFoundError,
)
from seedcli.models.manifest import Manifest, manifest_from_dict
from seedcli.spec import MANIFEST_FILE_NAME
from seedcli.spec.schema import SchemaDocument, manifest_schema
from seedcli.spec.schema_validator import (
    Violation,
    to_pointer,
    validate_document,
    violation,
)

logger = logging.getLogger(__name__)

_STRICT_SEMVER_RE = re.compile(
    r"^(0|[1-9]\d*)\.(0|[1-9]\d*)\.(0|[1-9]\d*)"
    r"(-[0-9A-Za-z-]+(\.[0-9A-Za-z-]+)*)?(\+[0-9A-Za-z-]+(\.[0-9A-Za-z-]+)*)?$"
)

# Categories whose entry names must be unique, as (label, [JSON paths]).
# Inputs share one namespace across files/json; so do outputs.
_NAME_CATEGORIES = [
    ("input", [("job", "interface", "inputs", "files"), ("job", "interface", "inputs", "json")]),
    ("output", [("job", "interface", "outputs", "files"), ("job", "interface", "outputs", "json")]),
    ("mount", [("job", "interface", "mounts")]),
    ("setting", [("job", "interface", "settings")]),
]


@dataclass(frozen=True)
class LoadedManifest:
    """A validated manifest plus where it was read from."""

    manifest: Manifest
    path: Path  # absolute; version bumps are written back here
    _data: dict = field(repr=False, compare=False)

    def __post_init__(self):
        object.__setattr__(self, "_data", copy.deepcopy(self._data))

    @property
    def data(self) -> dict:
        """A copy of the raw manifest JSON."""
        return copy.deepcopy(self._data)

    @property
    def directory(self) -> Path:
        return self.path.parent


def find_manifest(directory: str | Path) -> Path:
    """Locate the single seed manifest in *directory*.

    *directory* may also be the manifest file itself.

    Raises:
        NotFoundError: no manifest present.
        AmbiguousError: several files match the manifest name (differing only in case).
    """
    path = Path(directory)
    if path.is_file():
        return path.resolve()
    if not path.is_dir():
        raise NotFoundError(f"Directory not found: {path}")

    candidates = sorted(
        p for p in path.iterdir() if p.is_file() and p.name.lower() == MANIFEST_FILE_NAME
    )
    if not candidates:
        raise NotFoundError(f"No {MANIFEST_FILE_NAME} found in {path.resolve()}")
    if len(candidates) > 1:
        names = ", ".join(p.name for p in candidates)
        raise AmbiguousError(f"Multiple manifest candidates in {path.resolve()}: {names}")
    return candidates[0].resolve()


def read_json(path: str | Path):
    """Parse a JSON file, reporting syntax errors with line and column."""
    path = Path(path)
    try:
        text = path.read_text(encoding="utf-8")
    except OSError as e:
        raise NotFoundError(f"Cannot read {path}: {e}") from e
    try:
        return json.loads(text)
    except json.JSONDecodeError as e:
        raise MalformedManifestError(f"{path}: invalid JSON: {e.msg}", line=e.lineno, column=e.colno) from e


def check_manifest(data, schema: SchemaDocument | None = None) -> list[Violation]:
    """Return every violation in a parsed manifest: schema plus invariants."""
    schema = schema or manifest_schema()
    violations = validate_document(data, schema)
    if not isinstance(data, dict):
        return violations

    seen_pointers = {v.pointer for v in violations}
    violations.extend(_check_versions(data, seen_pointers))
    violations.extend(_check_unique_names(data))
    return violations


def load_manifest(directory: str | Path = ".", schema_path: str | Path | None = None) -> LoadedManifest:
    """Find, parse and validate the manifest in *directory*.

    Args:
        directory: Directory holding ``seed.manifest.json`` (or the file itself).
        schema_path: Optional schema file overriding the built-in manifest schema.

    Raises:
        SchemaLoadError: the override schema is unusable (checked before the manifest).
        NotFoundError, AmbiguousError: manifest can't be located.
        MalformedManifestError: manifest isn't JSON.
        InvalidManifestError: schema or invariant violations (all of them).
    """
    schema = manifest_schema(schema_path)
    path = find_manifest(directory)
    logger.debug("Loading manifest %s (schema %s)", path, schema.origin)

    data = read_json(path)
    violations = check_manifest(data, schema)
    if violations:
        raise InvalidManifestError(str(path), violations)

    return LoadedManifest(manifest=to_model(data, str(path)), path=path, _data=data)


def to_model(data: dict, source: str) -> Manifest:
    """Build the typed model from an already validated manifest.

    An override schema can be looser than what the model needs, so shape
    errors surface here as an :class:`InvalidManifestError` for *source*.
    """
    try:
        return manifest_from_dict(data)
    except (KeyError, TypeError, AttributeError, ValueError) as e:
        raise InvalidManifestError(
            source,
            [violation("", "model", None, f"manifest does not have the shape seed needs: {e!r}")],
        ) from e



def _check_versions(data: dict, seen_pointers: set[str]) -> list[Violation]:
    job = data.get("job")
    if not isinstance(job, dict):
        return []
    issues = []
    for key in ("packageVersion", "algorithmVersion"):
        pointer = to_pointer(["job", key])
        value = job.get(key)
        if pointer in seen_pointers or value is None:
            continue
        if not isinstance(value, str) or not _STRICT_SEMVER_RE.match(value):
            issues.append(
                violation(pointer, "semver", value, f"{value!r} is not a valid semantic version")
            )
    return issues


def _check_unique_names(data: dict) -> list[Violation]:
    issues = []
    for label, paths in _NAME_CATEGORIES:
        seen: dict[str, str] = {}
        for parts in paths:
            entries = _dig(data, parts)
            if not isinstance(entries, list):
                continue
            for i, entry in enumerate(entries):
                if not isinstance(entry, dict) or not isinstance(entry.get("name"), str):
                    continue
                name = entry["name"]
                pointer = to_pointer([*parts, i, "name"])
                if name in seen:
                    issues.append(
                        violation(
                            pointer,
                            "uniqueName",
                            name,
                            f"duplicate {label} name {name!r} (first declared at {seen[name]})",
                        )
                    )
                else:
                    seen[name] = pointer
    return issues


def _dig(data, parts):
    node = data
    for part in parts:
        if not isinstance(node, dict):
            return None
        node = node.get(part)
    return node
