"""Configuration for the seed CLI.

Values are layered: built-in defaults, then an optional YAML file, then
``SEED_*`` environment variables. Command-line flags are applied on top by
the CLI itself.
"""

from __future__ import annotations

import os
from dataclasses import dataclass, fields, replace
from pathlib import Path

import yaml

from seedcli.errors import SeedError

# ---------------------------------------------------------------------------
# Defaults
# ---------------------------------------------------------------------------

DEFAULT_CONFIG_PATH = Path.home() / ".seed" / "config.yaml"

# Docker logins are written here instead of ~/.docker so running under sudo
# doesn't clobber another user's credentials.
DEFAULT_DOCKER_CONFIG_DIR = str(Path.home() / ".seed" / "docker")

DEFAULT_REGISTRY = "index.docker.io"

_ENV_MAP = {
    "SEED_REGISTRY": "registry",
    "SEED_ORG": "org",
    "SEED_USERNAME": "username",
    "SEED_PASSWORD": "password",
    "SEED_TIMEOUT": "timeout",
    "SEED_RUN_TIMEOUT": "run_timeout",
    "SEED_STRICT_BINDINGS": "strict_bindings",
    "SEED_DOCKER_CONFIG": "docker_config_dir",
    "SEED_INSECURE_REGISTRY": "insecure_registry",
}

_TRUE_STRINGS = {"1", "true", "yes", "on"}


@dataclass(frozen=True)
class SeedConfig:
    """Resolved settings shared by every command."""

    registry: str = ""
    org: str = ""
    username: str = ""
    password: str = ""
    timeout: float = 30.0  # registry requests and short engine calls
    run_timeout: float | None = None  # docker build/run/push; None = unbounded
    strict_bindings: bool = False
    docker_config_dir: str = DEFAULT_DOCKER_CONFIG_DIR
    insecure_registry: bool = False

    def with_overrides(self, **overrides) -> SeedConfig:
        """Return a copy with every non-empty override applied."""
        applied = {k: v for k, v in overrides.items() if v not in (None, "")}
        return replace(self, **applied)


def load_config(path: str | Path | None = None, environ: dict | None = None) -> SeedConfig:
    """Build a :class:`SeedConfig` from file and environment.

    Args:
        path: Explicit YAML config file. When omitted, ``$SEED_CONFIG`` is
              used, then ``~/.seed/config.yaml`` if it exists.
        environ: Environment mapping (defaults to ``os.environ``).

    Raises:
        SeedError: if an explicitly named config file is missing or invalid.
    """
    env = os.environ if environ is None else environ
    values: dict = {}

    config_path = path or env.get("SEED_CONFIG")
    if config_path:
        values.update(_read_yaml(Path(config_path), required=True))
    elif DEFAULT_CONFIG_PATH.exists():
        values.update(_read_yaml(DEFAULT_CONFIG_PATH, required=False))

    for env_name, attr in _ENV_MAP.items():
        if env_name in env:
            values[attr] = env[env_name]

    return SeedConfig(**_coerce(values))


def _read_yaml(path: Path, required: bool) -> dict:
    if not path.exists():
        if required:
            raise SeedError(f"Config file not found: {path}")
        return {}
    try:
        with open(path) as f:
            data = yaml.safe_load(f)
    except yaml.YAMLError as e:
        raise SeedError(f"Invalid YAML in config file {path}: {e}") from e

    if data is None:
        return {}
    if not isinstance(data, dict):
        raise SeedError(f"Config file {path} must contain a mapping")

    known = {f.name for f in fields(SeedConfig)}
    unknown = sorted(set(data) - known)
    if unknown:
        raise SeedError(f"Unknown config key(s) in {path}: {', '.join(unknown)}")
    return data


def _coerce(values: dict) -> dict:
    """Convert string values from env/YAML into the field types."""
    out = dict(values)
    for key in ("timeout", "run_timeout"):
        if key in out and out[key] not in (None, ""):
            try:
                out[key] = float(out[key])
            except (TypeError, ValueError) as e:
                raise SeedError(f"{key} must be a number, got {out[key]!r}") from e
        elif key in out:
            out[key] = None if key == "run_timeout" else SeedConfig.timeout
    for key in ("strict_bindings", "insecure_registry"):
        if key in out and isinstance(out[key], str):
            out[key] = out[key].strip().lower() in _TRUE_STRINGS
    for key in ("registry", "org", "username", "password", "docker_config_dir"):
        if key in out and out[key] is None:
            out[key] = ""
    return out
