"""The Seed specification as seen by the CLI.

This package holds the pieces that decide whether a manifest is valid:
1. Schema — built-in JSON Schemas for manifests and side-car metadata
2. Schema validator — runs a document against a schema, collecting every violation
3. Loader — finds, parses and validates ``seed.manifest.json``
"""

SEED_VERSION = "1.0.0"

MANIFEST_FILE_NAME = "seed.manifest.json"
