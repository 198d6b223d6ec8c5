"""Built-in JSON Schemas for Seed manifests and side-car metadata.

The manifest schema is the structural definition of ``seed.manifest.json``.
The metadata schema constrains the ``<output>.metadata.json`` files an
algorithm may write next to its file outputs. Either can be replaced by a
user-supplied schema file at validation time.
"""

from __future__ import annotations

import copy
import json
from dataclasses import dataclass, field
from pathlib import Path

from jsonschema.exceptions import SchemaError
from jsonschema.validators import validator_for

from seedcli.errors import SchemaLoadError
from seedcli.spec import SEED_VERSION

_NAME_PATTERN = r"^[a-zA-Z_][a-zA-Z0-9_-]*$"
_JOB_NAME_PATTERN = r"^[a-z0-9_-]+$"
_SEMVER_PATTERN = (
    r"^(0|[1-9]\d*)\.(0|[1-9]\d*)\.(0|[1-9]\d*)"
    r"(-[0-9A-Za-z-]+(\.[0-9A-Za-z-]+)*)?(\+[0-9A-Za-z-]+(\.[0-9A-Za-z-]+)*)?$"
)
_JSON_TYPES = ["array", "boolean", "integer", "number", "object", "string"]

# The canonical JSON Schema for seed.manifest.json.
SEED_MANIFEST_SCHEMA: dict = {
    "$schema": "https://json-schema.org/draft/2020-12/schema",
    "$id": f"https://ngageoint.github.io/seed/schema/{SEED_VERSION}/seed.manifest.schema.json",
    "title": "Seed Manifest",
    "description": "Describes a containerized algorithm job and its interface.",
    "type": "object",
    "required": ["seedVersion", "job"],
    "additionalProperties": False,
    "properties": {
        "seedVersion": {
            "type": "string",
            "pattern": _SEMVER_PATTERN,
        },
        "job": {
            "type": "object",
            "required": [
                "name",
                "algorithmVersion",
                "packageVersion",
                "title",
                "description",
                "maintainer",
                "timeout",
            ],
            "additionalProperties": False,
            "properties": {
                "name": {
                    "type": "string",
                    "pattern": _JOB_NAME_PATTERN,
                    "description": "Image-safe job name; becomes the image repository prefix.",
                },
                "algorithmVersion": {
                    "type": "string",
                    "pattern": _SEMVER_PATTERN,
                    "description": "Version of the wrapped algorithm.",
                },
                "packageVersion": {
                    "type": "string",
                    "pattern": _SEMVER_PATTERN,
                    "description": "Version of the Seed packaging around the algorithm.",
                },
                "title": {"type": "string", "minLength": 1},
                "description": {"type": "string", "minLength": 1},
                "tags": {"type": "array", "items": {"type": "string"}},
                "maintainer": {"$ref": "#/$defs/maintainer"},
                "timeout": {"type": "integer", "minimum": 0},
                "interface": {"$ref": "#/$defs/interface"},
                "resources": {"$ref": "#/$defs/resources"},
                "errors": {
                    "type": "array",
                    "items": {"$ref": "#/$defs/errorMapping"},
                },
            },
        },
    },
    "$defs": {
        "maintainer": {
            "type": "object",
            "required": ["name", "email"],
            "additionalProperties": False,
            "properties": {
                "name": {"type": "string", "minLength": 1},
                "organization": {"type": "string"},
                "email": {"type": "string", "minLength": 3},
                "url": {"type": "string"},
                "phone": {"type": "string"},
            },
        },
        "interface": {
            "type": "object",
            "additionalProperties": False,
            "properties": {
                "command": {"type": "string"},
                "inputs": {
                    "type": "object",
                    "additionalProperties": False,
                    "properties": {
                        "files": {"type": "array", "items": {"$ref": "#/$defs/inputFile"}},
                        "json": {"type": "array", "items": {"$ref": "#/$defs/inputJson"}},
                    },
                },
                "outputs": {
                    "type": "object",
                    "additionalProperties": False,
                    "properties": {
                        "files": {"type": "array", "items": {"$ref": "#/$defs/outputFile"}},
                        "json": {"type": "array", "items": {"$ref": "#/$defs/outputJson"}},
                    },
                },
                "mounts": {"type": "array", "items": {"$ref": "#/$defs/mount"}},
                "settings": {"type": "array", "items": {"$ref": "#/$defs/setting"}},
            },
        },
        "inputFile": {
            "type": "object",
            "required": ["name"],
            "additionalProperties": False,
            "properties": {
                "name": {"type": "string", "pattern": _NAME_PATTERN},
                "required": {"type": "boolean", "default": True},
                "mediaTypes": {"type": "array", "items": {"type": "string"}},
                "multiple": {"type": "boolean", "default": False},
                "partial": {"type": "boolean", "default": False},
            },
        },
        "inputJson": {
            "type": "object",
            "required": ["name", "type"],
            "additionalProperties": False,
            "properties": {
                "name": {"type": "string", "pattern": _NAME_PATTERN},
                "type": {"type": "string", "enum": _JSON_TYPES},
                "required": {"type": "boolean", "default": True},
            },
        },
        "outputFile": {
            "type": "object",
            "required": ["name", "pattern"],
            "additionalProperties": False,
            "properties": {
                "name": {"type": "string", "pattern": _NAME_PATTERN},
                "pattern": {"type": "string", "minLength": 1, "pattern": "^[^/]"},
                "mediaType": {"type": "string"},
                "multiple": {"type": "boolean", "default": False},
                "required": {"type": "boolean", "default": True},
            },
        },
        "outputJson": {
            "type": "object",
            "required": ["name", "type"],
            "additionalProperties": False,
            "properties": {
                "name": {"type": "string", "pattern": _NAME_PATTERN},
                "type": {"type": "string", "enum": _JSON_TYPES},
                "key": {"type": "string"},
                "required": {"type": "boolean", "default": True},
            },
        },
        "mount": {
            "type": "object",
            "required": ["name", "path"],
            "additionalProperties": False,
            "properties": {
                "name": {"type": "string", "pattern": _NAME_PATTERN},
                "path": {"type": "string", "pattern": "^/"},
                "mode": {"type": "string", "enum": ["ro", "rw"], "default": "ro"},
                "required": {"type": "boolean", "default": True},
            },
        },
        "setting": {
            "type": "object",
            "required": ["name"],
            "additionalProperties": False,
            "properties": {
                "name": {"type": "string", "pattern": _NAME_PATTERN},
                "secret": {"type": "boolean", "default": False},
                "required": {"type": "boolean", "default": True},
            },
        },
        "resources": {
            "type": "object",
            "additionalProperties": False,
            "properties": {
                "scalar": {
                    "type": "array",
                    "items": {
                        "type": "object",
                        "required": ["name", "value"],
                        "additionalProperties": False,
                        "properties": {
                            "name": {"type": "string", "minLength": 1},
                            "value": {"type": "number", "minimum": 0},
                            "inputMultiplier": {"type": "number"},
                        },
                    },
                },
            },
        },
        "errorMapping": {
            "type": "object",
            "required": ["code", "name", "title"],
            "additionalProperties": False,
            "properties": {
                "code": {"type": "integer", "minimum": 1, "maximum": 255},
                "name": {"type": "string", "pattern": _NAME_PATTERN},
                "title": {"type": "string"},
                "description": {"type": "string"},
                "category": {"type": "string", "enum": ["job", "data"], "default": "job"},
            },
        },
    },
}

# Side-car metadata is a GeoJSON Feature (or bare properties object wrapped
# in one) describing a single output file.
SEED_METADATA_SCHEMA: dict = {
    "$schema": "https://json-schema.org/draft/2020-12/schema",
    "$id": f"https://ngageoint.github.io/seed/schema/{SEED_VERSION}/seed.metadata.schema.json",
    "title": "Seed Side-car Metadata",
    "type": "object",
    "required": ["type"],
    "properties": {
        "type": {"type": "string", "enum": ["Feature"]},
        "geometry": {
            "oneOf": [
                {"type": "null"},
                {
                    "type": "object",
                    "required": ["type", "coordinates"],
                    "properties": {
                        "type": {
                            "type": "string",
                            "enum": [
                                "Point",
                                "MultiPoint",
                                "LineString",
                                "MultiLineString",
                                "Polygon",
                                "MultiPolygon",
                            ],
                        },
                        "coordinates": {"type": "array"},
                    },
                },
            ],
        },
        "properties": {
            "type": ["object", "null"],
            "properties": {
                "dataStarted": {"type": "string"},
                "dataEnded": {"type": "string"},
                "sourceStarted": {"type": "string"},
                "sourceEnded": {"type": "string"},
                "sourceSensorClass": {"type": "string"},
                "sourceSensor": {"type": "string"},
                "sourceCollection": {"type": "string"},
                "sourceTask": {"type": "string"},
            },
        },
    },
}


@dataclass(frozen=True)
class SchemaDocument:
    """An immutable JSON Schema together with where it came from."""

    origin: str
    _schema: dict = field(repr=False)

    def __post_init__(self):
        object.__setattr__(self, "_schema", copy.deepcopy(self._schema))

    @property
    def schema(self) -> dict:
        """A private copy of the schema dict; mutating it never affects this document."""
        return copy.deepcopy(self._schema)

    @property
    def is_builtin(self) -> bool:
        return self.origin.startswith("builtin:")

    def validator(self):
        """Return a ``jsonschema`` validator bound to this schema."""
        cls = validator_for(self._schema)
        return cls(self._schema)


def get_schema() -> dict:
    """Return the built-in manifest schema as a plain dict."""
    return copy.deepcopy(SEED_MANIFEST_SCHEMA)


def get_metadata_schema() -> dict:
    """Return the built-in side-car metadata schema as a plain dict."""
    return copy.deepcopy(SEED_METADATA_SCHEMA)


def manifest_schema(override: str | Path | None = None) -> SchemaDocument:
    """The manifest schema: built-in unless *override* names a schema file."""
    if override:
        return load_schema(override)
    return SchemaDocument("builtin:manifest", SEED_MANIFEST_SCHEMA)


def metadata_schema(override: str | Path | None = None) -> SchemaDocument:
    """The side-car metadata schema: built-in unless *override* names a file."""
    if override:
        return load_schema(override)
    return SchemaDocument("builtin:metadata", SEED_METADATA_SCHEMA)


def load_schema(path: str | Path) -> SchemaDocument:
    """Read a user-supplied schema file and check that it is a valid JSON Schema.

    Raises:
        SchemaLoadError: the file is missing, not JSON, or not a valid schema.
    """
    schema_path = Path(path)
    try:
        text = schema_path.read_text(encoding="utf-8")
    except OSError as e:
        raise SchemaLoadError(f"Cannot read schema file {schema_path}: {e}") from e

    try:
        data = json.loads(text)
    except json.JSONDecodeError as e:
        raise SchemaLoadError(
            f"Schema file {schema_path} is not valid JSON: {e.msg} (line {e.lineno}, column {e.colno})"
        ) from e

    if not isinstance(data, (dict, bool)):
        raise SchemaLoadError(f"Schema file {schema_path} must contain a JSON object")

    check_schema(data, origin=str(schema_path))
    if isinstance(data, bool):
        # true/false are valid schemas; normalise to their object forms
        data = {} if data else {"not": {}}
    return SchemaDocument(str(schema_path.resolve()), data)


def check_schema(schema: dict | bool, origin: str = "<schema>") -> None:
    """Raise :class:`SchemaLoadError` if *schema* is not a valid JSON Schema."""
    cls = validator_for(schema)
    try:
        cls.check_schema(schema)
    except SchemaError as e:
        where = "/" + "/".join(str(p) for p in e.path) if e.path else "/"
        raise SchemaLoadError(f"{origin} is not a valid JSON Schema at {where}: {e.message}") from e
