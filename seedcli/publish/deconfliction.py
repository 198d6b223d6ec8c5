"""Deconfliction engine — decide whether a candidate image tag may be published.

States a publish attempt moves through::

    UNRESOLVED -> BUMPED (optional) -> PROBED -> PUBLISHED | CONFLICTED

PUBLISHED and CONFLICTED are terminal. The engine never retries or re-bumps
on its own: a conflict goes back to the caller, who may re-run with
different flags.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum

from seedcli.errors import PublishConflictError
from seedcli.registry.models import ImageName, RegistryTagSet


class PublishState(Enum):
    UNRESOLVED = "unresolved"
    BUMPED = "bumped"
    PROBED = "probed"
    PUBLISHED = "published"
    CONFLICTED = "conflicted"

    @property
    def terminal(self) -> bool:
        return self in (PublishState.PUBLISHED, PublishState.CONFLICTED)


_TRANSITIONS = {
    PublishState.UNRESOLVED: {PublishState.BUMPED, PublishState.PROBED, PublishState.PUBLISHED},
    PublishState.BUMPED: {PublishState.PROBED, PublishState.PUBLISHED},
    PublishState.PROBED: {PublishState.PUBLISHED, PublishState.CONFLICTED},
    PublishState.PUBLISHED: set(),
    PublishState.CONFLICTED: set(),
}


@dataclass(frozen=True)
class PublishDecision:
    """Outcome of a deconfliction check."""

    state: PublishState
    candidate: ImageName
    reason: str
    forced: bool = False

    @property
    def publish(self) -> bool:
        return self.state == PublishState.PUBLISHED

    def raise_for_conflict(self) -> None:
        if self.state == PublishState.CONFLICTED:
            raise PublishConflictError(str(self.candidate), self.reason)


class PublishAttempt:
    """Tracks one publish attempt through its state machine."""

    def __init__(self) -> None:
        self.state = PublishState.UNRESOLVED
        self.history: list[PublishState] = [self.state]

    def advance(self, new_state: PublishState) -> None:
        if new_state not in _TRANSITIONS[self.state]:
            raise RuntimeError(
                f"Illegal publish transition {self.state.value} -> {new_state.value}"
            )
        self.state = new_state
        self.history.append(new_state)


def decide(
    candidate: ImageName,
    tags: RegistryTagSet | None,
    force_publish: bool = False,
    bump_requested: bool = False,
) -> PublishDecision:
    """Decide whether *candidate* may be pushed given the registry's *tags*.

    Args:
        candidate: Image reference computed from the (possibly bumped) manifest.
        tags: Tags freshly read from the registry. May be None only when forcing.
        force_publish: Publish regardless of what the registry holds.
        bump_requested: Whether the caller already bumped a version for this attempt.
    """
    if force_publish:
        return PublishDecision(
            PublishState.PUBLISHED, candidate, "force publish requested; registry not consulted", forced=True
        )

    if tags is None:
        raise ValueError("tags are required unless force_publish is set")

    if candidate.tag not in tags:
        return PublishDecision(
            PublishState.PUBLISHED, candidate, f"{candidate} does not exist in the registry"
        )

    if bump_requested:
        reason = (
            f"Image {candidate} already exists in the registry even after the requested "
            "version bump. Choose a larger bump or use --force to overwrite."
        )
    else:
        reason = (
            f"Image {candidate} already exists in the registry. Re-run with a version bump "
            "(--pkg-minor, --pkg-major, --alg-minor, --alg-major) or --force to overwrite."
        )
    return PublishDecision(PublishState.CONFLICTED, candidate, reason)
