"""Run input binder — match CLI bindings to the manifest's job interface.

Bindings arrive as ``NAME=value`` strings (``-i`` file inputs, ``-j`` JSON
inputs, ``-e`` settings, ``-m`` mounts). Each is matched by name against the
manifest. The result renders the ``docker run`` arguments and the expanded
job command.
"""

from __future__ import annotations

import json
import logging
import re
import shlex
from dataclasses import dataclass, field
from pathlib import Path

from seedcli.errors import (
    InvalidBindingError,
    MissingRequiredInputError,
    UnrecognizedBindingError,
)
from seedcli.models.manifest import Manifest

logger = logging.getLogger(__name__)

CONTAINER_INPUT_ROOT = "/seed/inputs"
CONTAINER_OUTPUT_DIR = "/seed/outputs"
OUTPUT_DIR_VAR = "OUTPUT_DIR"

_PLACEHOLDER_RE = re.compile(r"\$\{([A-Za-z_][A-Za-z0-9_-]*)\}|\$([A-Za-z_][A-Za-z0-9_]*)")

JSON_TYPE_CHECKS = {
    "string": lambda v: isinstance(v, str),
    "integer": lambda v: isinstance(v, int) and not isinstance(v, bool),
    "number": lambda v: isinstance(v, (int, float)) and not isinstance(v, bool),
    "boolean": lambda v: isinstance(v, bool),
    "array": lambda v: isinstance(v, list),
    "object": lambda v: isinstance(v, dict),
}


@dataclass
class FileBinding:
    name: str
    host_paths: list[Path]
    container_path: str  # file path, or directory when the input is ``multiple``


@dataclass
class MountBinding:
    name: str
    host_path: Path
    container_path: str
    mode: str = "ro"


@dataclass
class BindingResult:
    """Resolved bindings for one ``seed run``."""

    files: dict[str, FileBinding] = field(default_factory=dict)
    json_values: dict[str, object] = field(default_factory=dict)
    settings: dict[str, str] = field(default_factory=dict)
    mounts: dict[str, MountBinding] = field(default_factory=dict)
    output_dir: Path = Path(".")
    secret_settings: set[str] = field(default_factory=set)
    resources: dict[str, float] = field(default_factory=dict)
    warnings: list[str] = field(default_factory=list)

    def environment(self) -> dict[str, str]:
        """Environment variables handed to the container."""
        env: dict[str, str] = {}
        for name, binding in self.files.items():
            env[name] = binding.container_path
        for name, value in self.json_values.items():
            env[name] = value if isinstance(value, str) else json.dumps(value)
        for name, mount in self.mounts.items():
            env[name] = mount.container_path
        env.update(self.settings)
        for name, value in self.resources.items():
            env[f"ALLOCATED_{name.upper()}"] = _format_number(value)
        env[OUTPUT_DIR_VAR] = CONTAINER_OUTPUT_DIR
        return env

    def volume_args(self) -> list[str]:
        args: list[str] = []
        for binding in self.files.values():
            if len(binding.host_paths) == 1 and not binding.container_path.endswith("/"):
                args += ["-v", f"{binding.host_paths[0]}:{binding.container_path}:ro"]
            else:
                for host in binding.host_paths:
                    args += ["-v", f"{host}:{binding.container_path.rstrip('/')}/{host.name}:ro"]
        for mount in self.mounts.values():
            args += ["-v", f"{mount.host_path}:{mount.container_path}:{mount.mode}"]
        args += ["-v", f"{self.output_dir}:{CONTAINER_OUTPUT_DIR}:rw"]
        return args

    def docker_args(self) -> list[str]:
        """Volume and environment flags for ``docker run``."""
        args = self.volume_args()
        for key, value in self.environment().items():
            args += ["-e", f"{key}={value}"]
        return args

    def describe(self) -> dict[str, str]:
        """Environment with secret settings masked, for display and logs."""
        env = self.environment()
        for name in self.secret_settings:
            if name in env:
                env[name] = "********"
        return env


def parse_binding(raw: str, flag: str) -> tuple[str, str]:
    """Split ``NAME=value``. Raises :class:`InvalidBindingError` otherwise."""
    name, sep, value = raw.partition("=")
    name = name.strip()
    if not sep or not name:
        raise InvalidBindingError(f"{flag} expects NAME=value, got {raw!r}")
    return name, value


def bind_inputs(
    manifest: Manifest,
    inputs: list[str] | tuple[str, ...] = (),
    json_inputs: list[str] | tuple[str, ...] = (),
    settings: list[str] | tuple[str, ...] = (),
    mounts: list[str] | tuple[str, ...] = (),
    output_dir: str | Path = ".",
    strict: bool = False,
) -> BindingResult:
    """Bind CLI-supplied values to the manifest's declared interface.

    Unknown names produce warnings, or :class:`UnrecognizedBindingError`
    when *strict*. Every required declaration without a binding is reported
    together in one :class:`MissingRequiredInputError`.
    """
    iface = manifest.interface
    result = BindingResult(output_dir=Path(output_dir).resolve())
    unknown: list[str] = []

    file_decls = {d.name: d for d in iface.file_inputs}
    json_decls = {d.name: d for d in iface.json_inputs}

    # -- file inputs --
    supplied_files: dict[str, list[Path]] = {}
    for raw in inputs:
        name, value = parse_binding(raw, "-i/--input")
        if name not in file_decls:
            unknown.append(f"input {name}")
            continue
        path = Path(value).expanduser()
        if not path.exists():
            raise InvalidBindingError(f"Input {name}: file not found: {value}")
        supplied_files.setdefault(name, []).append(path.resolve())

    for name, paths in supplied_files.items():
        decl = file_decls[name]
        if decl.multiple:
            container = f"{CONTAINER_INPUT_ROOT}/{name}/"
        else:
            if len(paths) > 1:
                raise InvalidBindingError(f"Input {name} accepts a single file, got {len(paths)}")
            container = f"{CONTAINER_INPUT_ROOT}/{name}/{paths[0].name}"
        result.files[name] = FileBinding(name=name, host_paths=paths, container_path=container)

    # -- json inputs --
    for raw in json_inputs:
        name, value = parse_binding(raw, "-j/--json")
        decl = json_decls.get(name)
        if decl is None:
            unknown.append(f"json {name}")
            continue
        result.json_values[name] = _coerce_json(name, value, decl.json_type)

    # -- settings --
    for raw in settings:
        name, value = parse_binding(raw, "-e/--setting")
        decl = iface.settings.get(name)
        if decl is None:
            unknown.append(f"setting {name}")
            continue
        result.settings[name] = value
        if decl.secret:
            result.secret_settings.add(name)

    # -- mounts --
    for raw in mounts:
        name, value = parse_binding(raw, "-m/--mount")
        decl = iface.mounts.get(name)
        if decl is None:
            unknown.append(f"mount {name}")
            continue
        host = Path(value).expanduser()
        if not host.exists():
            raise InvalidBindingError(f"Mount {name}: path not found: {value}")
        result.mounts[name] = MountBinding(
            name=name, host_path=host.resolve(), container_path=decl.path, mode=decl.mode
        )

    if unknown:
        if strict:
            raise UnrecognizedBindingError(unknown)
        for item in unknown:
            msg = f"Ignoring {item}: not declared in the manifest"
            logger.warning(msg)
            result.warnings.append(msg)

    missing = (
        [d.name for d in iface.file_inputs if d.required and d.name not in result.files]
        + [d.name for d in iface.json_inputs if d.required and d.name not in result.json_values]
        + [s.name for s in iface.settings.values() if s.required and s.name not in result.settings]
        + [m.name for m in iface.mounts.values() if m.required and m.name not in result.mounts]
    )
    if missing:
        raise MissingRequiredInputError(missing)

    result.resources = dict(manifest.resources)
    return result


def expand_command(command: str, env: dict[str, str]) -> list[str]:
    """Substitute ``${NAME}``/``$NAME`` from *env* and split into argv.

    Placeholders with no value expand to the empty string, like a shell would.
    """
    if not command:
        return []

    def _sub(match: re.Match) -> str:
        key = match.group(1) or match.group(2)
        return shlex.quote(env.get(key, ""))

    return shlex.split(_PLACEHOLDER_RE.sub(_sub, command))


def _coerce_json(name: str, raw: str, json_type: str):
    try:
        value = json.loads(raw)
    except json.JSONDecodeError:
        value = raw
    if json_type == "string" and not isinstance(value, str):
        value = raw
    check = JSON_TYPE_CHECKS.get(json_type)
    if check is not None and not check(value):
        raise InvalidBindingError(f"JSON input {name} expects {json_type}, got {raw!r}")
    return value


def _format_number(value: float) -> str:
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    return str(value)
