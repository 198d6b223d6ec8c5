"""Publish workflow — bump, probe, deconflict, push.

The registry and the container engine are passed in as small capabilities
(:class:`TagLister`, :class:`ImagePublisher`) so the whole flow runs against
in-memory fakes in tests.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Callable

from seedcli.models.manifest import Manifest
from seedcli.publish.deconfliction import (
    PublishAttempt,
    PublishDecision,
    PublishState,
    decide,
)
from seedcli.registry.models import ImageName, ImagePublisher, TagLister
from seedcli.spec.loader import LoadedManifest, load_manifest
from seedcli.versioning.resolver import VersionBumpRequest, apply_version_bump

logger = logging.getLogger(__name__)


@dataclass
class PublishResult:
    """What a publish attempt did."""

    decision: PublishDecision
    manifest: Manifest
    source: str  # local image that was pushed
    target: ImageName
    bumped: bool = False
    states: list[PublishState] = field(default_factory=list)

    def summary(self) -> str:
        lines = [
            f"Image:     {self.target}",
            f"Source:    {self.source}",
            f"Versions:  package {self.manifest.package_version}, algorithm {self.manifest.algorithm_version}",
            f"Bumped:    {'yes' if self.bumped else 'no'}",
            f"Decision:  {self.decision.state.value} ({self.decision.reason})",
        ]
        return "\n".join(lines)


def publish(
    directory: str | Path,
    tag_lister: TagLister,
    publisher: ImagePublisher,
    registry: str = "",
    org: str = "",
    request: VersionBumpRequest | None = None,
    force: bool = False,
    source_image: str = "",
    schema_path: str | Path | None = None,
    rebuild: Callable[[LoadedManifest], None] | None = None,
) -> PublishResult:
    """Publish the image described by the manifest in *directory*.

    1. Load and validate the manifest
    2. Apply any requested version bump (rewrites the manifest on disk)
    3. Read the registry's current tags (skipped when forcing)
    4. Decide publish vs conflict
    5. Rebuild if versions changed, then tag and push

    Raises:
        PublishConflictError: the candidate tag already exists and force is off.
        RegistryUnavailableError: the registry could not be read.
    """
    request = request or VersionBumpRequest()
    attempt = PublishAttempt()

    loaded = load_manifest(directory, schema_path)
    source = source_image or loaded.manifest.image_name

    if request.requested:
        loaded = apply_version_bump(loaded, request)
        attempt.advance(PublishState.BUMPED)
        # The bumped versions change the image name; the old local image is stale.
        source = loaded.manifest.image_name

    candidate = ImageName.for_manifest(loaded.manifest, registry=registry, org=org)

    if force:
        decision = decide(candidate, None, force_publish=True)
    else:
        tags = tag_lister.list_tags(candidate)
        attempt.advance(PublishState.PROBED)
        decision = decide(
            candidate, tags, force_publish=False, bump_requested=request.requested
        )
    attempt.advance(decision.state)
    logger.info("Publish decision for %s: %s", candidate, decision.state.value)

    decision.raise_for_conflict()

    if request.requested and rebuild is not None:
        rebuild(loaded)

    publisher.publish(source, candidate)

    return PublishResult(
        decision=decision,
        manifest=loaded.manifest,
        source=source,
        target=candidate,
        bumped=request.requested,
        states=list(attempt.history),
    )
