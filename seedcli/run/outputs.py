"""Output validator — check what a job run produced against the manifest.

File outputs are matched by glob pattern in the output directory; any
side-car ``<file>.metadata.json`` next to a match is validated against the
metadata schema. JSON outputs are read from ``seed.outputs.json``.

The report is independent of the container's exit code: a run can exit 0
and still fail output validation, and both are reported.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from pathlib import Path

from seedcli.errors import MalformedManifestError, NotFoundError
from seedcli.models.manifest import Manifest
from seedcli.run.binder import JSON_TYPE_CHECKS
from seedcli.spec.loader import read_json
from seedcli.spec.schema import SchemaDocument, metadata_schema
from seedcli.spec.schema_validator import validate_document

logger = logging.getLogger(__name__)

OUTPUTS_JSON_FILE = "seed.outputs.json"
METADATA_SUFFIX = ".metadata.json"


@dataclass
class OutputIssue:
    output: str
    message: str
    path: str = ""

    def __str__(self) -> str:
        where = f" ({self.path})" if self.path else ""
        return f"{self.output}: {self.message}{where}"


@dataclass
class OutputReport:
    """Result of validating a job's outputs."""

    files: dict[str, list[Path]] = field(default_factory=dict)
    json_values: dict[str, object] = field(default_factory=dict)
    metadata_checked: list[Path] = field(default_factory=list)
    errors: list[OutputIssue] = field(default_factory=list)

    @property
    def passed(self) -> bool:
        return not self.errors

    def summary(self) -> str:
        status = "PASS" if self.passed else "FAIL"
        n_files = sum(len(v) for v in self.files.values())
        return (
            f"[{status}] {n_files} file output(s), {len(self.json_values)} JSON output(s), "
            f"{len(self.metadata_checked)} metadata file(s); {len(self.errors)} error(s)"
        )


def validate_outputs(
    manifest: Manifest,
    output_dir: str | Path,
    schema: SchemaDocument | None = None,
) -> OutputReport:
    """Validate everything the manifest says the job should have produced."""
    out = Path(output_dir)
    schema = schema or metadata_schema()
    report = OutputReport()

    if not out.is_dir():
        report.errors.append(OutputIssue("OUTPUT_DIR", "output directory does not exist", str(out)))
        return report

    for decl in manifest.interface.file_outputs:
        try:
            found = list(out.glob(decl.pattern))
        except (NotImplementedError, ValueError) as e:
            # pathlib refuses absolute and empty patterns
            report.errors.append(OutputIssue(decl.name, f"invalid pattern {decl.pattern!r}: {e}"))
            continue
        matches = sorted(p for p in found if p.is_file() and not p.name.endswith(METADATA_SUFFIX))

        if not matches:
            if decl.required:
                report.errors.append(
                    OutputIssue(decl.name, f"no file matches pattern {decl.pattern!r}")
                )
            continue
        if len(matches) > 1 and not decl.multiple:
            report.errors.append(
                OutputIssue(decl.name, f"expected one file, {len(matches)} match {decl.pattern!r}")
            )
        report.files[decl.name] = matches
        for match in matches:
            _check_sidecar(decl.name, match, schema, report)

    json_decls = manifest.interface.json_outputs
    if json_decls:
        _check_json_outputs(manifest, out / OUTPUTS_JSON_FILE, report)

    logger.debug(report.summary())
    return report


def _check_sidecar(name: str, output_file: Path, schema: SchemaDocument, report: OutputReport) -> None:
    sidecar = output_file.with_name(output_file.name + METADATA_SUFFIX)
    if not sidecar.exists():
        return
    try:
        document = read_json(sidecar)
    except (MalformedManifestError, NotFoundError) as e:
        report.errors.append(OutputIssue(name, str(e), str(sidecar)))
        return
    report.metadata_checked.append(sidecar)
    for v in validate_document(document, schema):
        report.errors.append(OutputIssue(name, f"metadata {v}", str(sidecar)))


def _check_json_outputs(manifest: Manifest, path: Path, report: OutputReport) -> None:
    decls = manifest.interface.json_outputs
    if not path.exists():
        for decl in decls:
            if decl.required:
                report.errors.append(OutputIssue(decl.name, f"{OUTPUTS_JSON_FILE} was not written", str(path)))
        return

    try:
        data = read_json(path)
    except MalformedManifestError as e:
        report.errors.append(OutputIssue(OUTPUTS_JSON_FILE, str(e), str(path)))
        return
    if not isinstance(data, dict):
        report.errors.append(OutputIssue(OUTPUTS_JSON_FILE, "must contain a JSON object", str(path)))
        return

    for decl in decls:
        key = decl.lookup_key
        if key not in data:
            if decl.required:
                report.errors.append(OutputIssue(decl.name, f"key {key!r} missing", str(path)))
            continue
        value = data[key]
        check = JSON_TYPE_CHECKS.get(decl.json_type)
        if check is not None and not check(value):
            report.errors.append(
                OutputIssue(decl.name, f"expected {decl.json_type}, got {type(value).__name__}", str(path))
            )
            continue
        report.json_values[decl.name] = value
