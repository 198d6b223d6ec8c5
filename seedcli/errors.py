"""Error taxonomy for the seed CLI.

Every failure a command can hit is a ``SeedError``. Commands raise; the CLI
entry point is the only place that turns an error into an exit code.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from seedcli.run.outputs import OutputReport
    from seedcli.spec.schema_validator import Violation


class SeedError(Exception):
    """Base class for all errors surfaced by the seed CLI."""

    exit_code = 1


class SchemaLoadError(SeedError):
    """A schema override could not be read or is not a valid JSON Schema."""


class NotFoundError(SeedError):
    """No seed manifest exists where one was expected."""


class AmbiguousError(SeedError):
    """More than one candidate manifest exists in a directory."""


class MalformedManifestError(SeedError):
    """The manifest (or a metadata document) is not parseable JSON."""

    def __init__(self, message: str, line: int | None = None, column: int | None = None):
        self.line = line
        self.column = column
        if line is not None:
            message = f"{message} (line {line}, column {column})"
        super().__init__(message)


class InvalidManifestError(SeedError):
    """The manifest parsed but violates the schema or its own invariants."""

    def __init__(self, path: str, violations: list[Violation]):
        self.path = path
        self.violations = list(violations)
        super().__init__(
            f"{path}: {len(self.violations)} schema violation(s)"
        )


class InvalidVersionFormatError(SeedError):
    """A version string is not three dot-separated non-negative integers."""

    def __init__(self, field_name: str, value: object):
        self.field_name = field_name
        self.value = value
        super().__init__(
            f"{field_name} {value!r} is not a MAJOR.MINOR.PATCH version"
        )


class RegistryUnavailableError(SeedError):
    """The registry could not be reached or refused the credentials."""


class PublishConflictError(SeedError):
    """The candidate image tag already exists in the target registry."""

    def __init__(self, tag: str, message: str):
        self.tag = tag
        super().__init__(message)


class BindingError(SeedError):
    """CLI-supplied inputs, settings or mounts don't fit the job interface."""


class InvalidBindingError(BindingError):
    """A binding is malformed or its value doesn't match the declaration."""


class MissingRequiredInputError(BindingError):
    """A required input, setting or mount has no binding."""

    def __init__(self, names: list[str]):
        self.names = list(names)
        super().__init__(
            "Missing required binding(s): " + ", ".join(self.names)
        )


class UnrecognizedBindingError(BindingError):
    """A binding names something the manifest does not declare (strict mode)."""

    def __init__(self, names: list[str]):
        self.names = list(names)
        super().__init__(
            "Unrecognized binding(s) not declared in manifest: " + ", ".join(self.names)
        )


class OutputValidationError(SeedError):
    """Produced outputs do not satisfy the manifest's output interface."""

    def __init__(self, report: OutputReport):
        self.report = report
        super().__init__(
            f"Output validation failed with {len(report.errors)} error(s)"
        )


class EngineError(SeedError):
    """The external container engine failed, timed out, or is missing."""

    def __init__(self, message: str, returncode: int | None = None):
        self.returncode = returncode
        super().__init__(message)
