"""Command records and their execution.

The CLI parses flags into one of the frozen records below and hands it to
:func:`execute`, which dispatches with a single ``match``. Keeping the
records plain data means every command can be driven from tests without
click, with the engine and registry swapped for fakes.
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Callable, Union

from seedcli import __version__
from seedcli.config import DEFAULT_REGISTRY, SeedConfig
from seedcli.engine.docker import (
    DockerEngine,
    DockerPublisher,
    LocalImage,
)
from seedcli.errors import (
    EngineError,
    InvalidManifestError,
    MalformedManifestError,
    NotFoundError,
    OutputValidationError,
)
from seedcli.models.manifest import Manifest
from seedcli.publish.publisher import PublishResult, publish
from seedcli.registry.models import Credentials, ImageName
from seedcli.registry.probe import RegistryProbe
from seedcli.run.binder import BindingResult, bind_inputs, expand_command
from seedcli.run.outputs import OutputReport, validate_outputs
from seedcli.spec import SEED_VERSION
from seedcli.spec.example import init_manifest
from seedcli.spec.loader import LoadedManifest, check_manifest, load_manifest, to_model
from seedcli.spec.schema import manifest_schema, metadata_schema
from seedcli.versioning.resolver import VersionBumpRequest

logger = logging.getLogger(__name__)


# ── Command records ──────────────────────────────────────────────────


@dataclass(frozen=True)
class InitCommand:
    directory: str = "."


@dataclass(frozen=True)
class ValidateCommand:
    directory: str = "."
    schema: str | None = None


@dataclass(frozen=True)
class BuildCommand:
    directory: str = "."
    username: str = ""
    password: str = ""
    registry: str = ""  # login target for private base images


@dataclass(frozen=True)
class RunCommand:
    image: str = ""
    directory: str = ""
    inputs: tuple[str, ...] = ()
    json_inputs: tuple[str, ...] = ()
    settings: tuple[str, ...] = ()
    mounts: tuple[str, ...] = ()
    output_dir: str = "."
    remove: bool = False
    metadata_schema: str | None = None
    schema: str | None = None


@dataclass(frozen=True)
class ListCommand:
    pass


@dataclass(frozen=True)
class SearchCommand:
    registry: str = ""
    org: str = ""
    filter: str = ""
    username: str = ""
    password: str = ""


@dataclass(frozen=True)
class PublishCommand:
    directory: str = "."
    image: str = ""
    registry: str = ""
    org: str = ""
    username: str = ""
    password: str = ""
    force: bool = False
    bump: VersionBumpRequest = field(default_factory=VersionBumpRequest)
    schema: str | None = None


@dataclass(frozen=True)
class PullCommand:
    image: str
    registry: str = ""
    org: str = ""
    username: str = ""
    password: str = ""


@dataclass(frozen=True)
class VersionCommand:
    pass


Command = Union[
    InitCommand,
    ValidateCommand,
    BuildCommand,
    RunCommand,
    ListCommand,
    SearchCommand,
    PublishCommand,
    PullCommand,
    VersionCommand,
]


# ── Results ──────────────────────────────────────────────────────────


@dataclass
class BuildResult:
    image: str
    manifest: Manifest


@dataclass
class RunResult:
    """Container outcome and output validation, reported separately."""

    image: str
    manifest: Manifest
    exit_code: int
    bindings: BindingResult
    report: OutputReport

    @property
    def succeeded(self) -> bool:
        return self.exit_code == 0

    @property
    def error_title(self) -> str:
        if self.succeeded:
            return ""
        mapped = self.manifest.error_for_exit_code(self.exit_code)
        return mapped.title if mapped else "unmapped exit code"

    def raise_for_failure(self) -> None:
        if not self.report.passed:
            raise OutputValidationError(self.report)
        if not self.succeeded:
            raise EngineError(
                f"Job {self.image} exited with code {self.exit_code} ({self.error_title})",
                returncode=self.exit_code,
            )


@dataclass
class PullResult:
    remote: str
    local: str


@dataclass
class VersionInfo:
    cli: str = __version__
    seed: str = SEED_VERSION


# ── Execution ────────────────────────────────────────────────────────


def make_engine(config: SeedConfig) -> DockerEngine:
    return DockerEngine(
        config_dir=config.docker_config_dir,
        timeout=config.timeout,
        long_timeout=config.run_timeout,
    )


def execute(
    command: Command,
    config: SeedConfig,
    engine: DockerEngine | None = None,
    probe_factory: Callable[..., RegistryProbe] | None = None,
):
    """Run *command* and return its result record.

    Errors propagate as :class:`~seedcli.errors.SeedError` subclasses; the
    CLI turns them into messages and exit codes.
    """
    engine = engine or make_engine(config)
    probe_factory = probe_factory or RegistryProbe

    match command:
        case InitCommand(directory=directory):
            path = init_manifest(directory)
            return load_manifest(path)

        case ValidateCommand(directory=directory, schema=schema):
            return load_manifest(directory, schema)

        case BuildCommand():
            return _build(command, config, engine)

        case RunCommand():
            return _run(command, config, engine)

        case ListCommand():
            return engine.seed_images()

        case SearchCommand():
            return _search(command, config, probe_factory)

        case PublishCommand():
            return _publish(command, config, engine, probe_factory)

        case PullCommand():
            return _pull(command, config, engine)

        case VersionCommand():
            return VersionInfo()

        case _:
            raise TypeError(f"Unknown command: {command!r}")


def _credentials(command, config: SeedConfig) -> Credentials | None:
    username = command.username or config.username
    password = command.password or config.password
    if username and password:
        return Credentials(username, password)
    return None


def _build(command: BuildCommand, config: SeedConfig, engine: DockerEngine) -> BuildResult:
    loaded = load_manifest(command.directory)
    if not (loaded.directory / "Dockerfile").exists():
        raise NotFoundError(f"No Dockerfile found in {loaded.directory}")

    engine.check_available()
    creds = _credentials(command, config)
    if creds:
        engine.login(command.registry or config.registry, creds)

    image = loaded.manifest.image_name
    _rebuild(engine)(loaded)
    return BuildResult(image=image, manifest=loaded.manifest)


def _rebuild(engine: DockerEngine) -> Callable[[LoadedManifest], None]:
    def rebuild(loaded: LoadedManifest) -> None:
        image = loaded.manifest.image_name
        logger.info("Building %s from %s", image, loaded.directory)
        engine.build(loaded.directory, image, json.dumps(loaded.data, separators=(",", ":")))

    return rebuild


def _run(command: RunCommand, config: SeedConfig, engine: DockerEngine) -> RunResult:
    engine.check_available()

    if command.directory:
        loaded = load_manifest(command.directory, command.schema)
        manifest = loaded.manifest
        image = command.image or manifest.image_name
    elif command.image:
        image = command.image
        manifest = manifest_from_image(engine, image, command.schema)
    else:
        raise NotFoundError("Specify an image (-in) or a directory holding seed.manifest.json (-d)")

    output_dir = Path(command.output_dir).expanduser()
    output_dir.mkdir(parents=True, exist_ok=True)

    bindings = bind_inputs(
        manifest,
        inputs=command.inputs,
        json_inputs=command.json_inputs,
        settings=command.settings,
        mounts=command.mounts,
        output_dir=output_dir,
        strict=config.strict_bindings,
    )

    args: list[str] = []
    if command.remove:
        args.append("--rm")
    args += bindings.docker_args()
    args.append(image)
    args += expand_command(manifest.interface.command, bindings.environment())

    timeout = float(manifest.timeout) if manifest.timeout else config.run_timeout
    logger.info("Running %s (timeout %s)", image, timeout or "none")
    exit_code = engine.run(args, timeout=timeout)

    report = validate_outputs(manifest, bindings.output_dir, metadata_schema(command.metadata_schema))
    return RunResult(
        image=image, manifest=manifest, exit_code=exit_code, bindings=bindings, report=report
    )


def manifest_from_image(engine: DockerEngine, image: str, schema_path: str | None = None) -> Manifest:
    """Read and validate the manifest stored in *image*'s labels."""
    raw = engine.manifest_label(image)
    if not raw:
        raise NotFoundError(f"Image {image} carries no seed manifest label")
    try:
        data = json.loads(raw)
    except json.JSONDecodeError as e:
        raise MalformedManifestError(f"Manifest label of {image}: {e.msg}", e.lineno, e.colno) from e

    violations = check_manifest(data, manifest_schema(schema_path))
    if violations:
        raise InvalidManifestError(f"{image} (label)", violations)
    return to_model(data, f"{image} (label)")


def _search(command: SearchCommand, config: SeedConfig, probe_factory) -> list[str]:
    registry = command.registry or config.registry or DEFAULT_REGISTRY
    org = command.org or config.org
    with probe_factory(
        registry,
        credentials=_credentials(command, config),
        timeout=config.timeout,
        insecure=config.insecure_registry,
    ) as probe:
        repositories = probe.list_repositories(org)

    return sorted(
        repo
        for repo in repositories
        if repo.endswith("-seed") and command.filter in repo.rsplit("/", 1)[-1]
    )


def _publish(
    command: PublishCommand,
    config: SeedConfig,
    engine: DockerEngine,
    probe_factory,
) -> PublishResult:
    registry = command.registry or config.registry or DEFAULT_REGISTRY
    org = command.org or config.org
    creds = _credentials(command, config)

    engine.check_available()
    publisher = DockerPublisher(engine, creds)

    # Tags are checked in the registry the push goes to.
    with probe_factory(
        registry, credentials=creds, timeout=config.timeout, insecure=config.insecure_registry
    ) as probe:
        return publish(
            command.directory,
            probe,
            publisher,
            registry=registry,
            org=org,
            request=command.bump,
            force=command.force,
            source_image=command.image,
            schema_path=command.schema,
            rebuild=_rebuild(engine),
        )


def _pull(command: PullCommand, config: SeedConfig, engine: DockerEngine) -> PullResult:
    engine.check_available()
    parsed = ImageName.parse(command.image)
    target = ImageName(
        repository=parsed.repository,
        tag=parsed.tag,
        registry=command.registry or config.registry or parsed.registry,
        org=command.org or config.org or parsed.org,
    )
    creds = _credentials(command, config)
    if creds:
        engine.login(target.registry, creds)

    remote = target.remote_reference
    engine.pull(remote)
    local = target.local_reference
    if local != remote:
        engine.tag(remote, local)
    return PullResult(remote=remote, local=local)


__all__ = [
    "BuildCommand",
    "BuildResult",
    "Command",
    "InitCommand",
    "ListCommand",
    "LocalImage",
    "PublishCommand",
    "PullCommand",
    "PullResult",
    "RunCommand",
    "RunResult",
    "SearchCommand",
    "ValidateCommand",
    "VersionCommand",
    "VersionInfo",
    "execute",
    "make_engine",
    "manifest_from_image",
]
