"""Vault to provider reconciliation.

Reconciling is split into a pure part (:func:`compute_sync_diff`,
:func:`compute_preview`, first-sync detection) and a two-step driver,
:func:`plan_sync` followed by :func:`apply_sync`. The plan freezes the
preview the operator sees, and apply sends exactly that plan. Collaborators
arrive through :class:`ReconcilerDeps`; there is no module level client.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Mapping, Optional, Protocol, Union

from ..errors import KeywayError, UserInputError
from .diff_engine import diff

logger = logging.getLogger(__name__)


class Direction(str, Enum):
    PUSH = "push"
    PULL = "pull"


def _keys(payload: Mapping[str, Any], name: str) -> List[str]:
    return [str(key) for key in payload.get(name) or []]


@dataclass(frozen=True)
class SyncDiff:
    """Keys of the vault compared with the keys of the provider."""

    only_in_vault: List[str] = field(default_factory=list)
    only_in_provider: List[str] = field(default_factory=list)
    different: List[str] = field(default_factory=list)
    same: List[str] = field(default_factory=list)
    vault_count: int = 0
    provider_count: int = 0

    @property
    def total_changes(self) -> int:
        return len(self.only_in_vault) + len(self.only_in_provider) + len(self.different)

    @property
    def is_in_sync(self) -> bool:
        return self.total_changes == 0

    @classmethod
    def from_payload(cls, payload: Mapping[str, Any]) -> "SyncDiff":
        return cls(
            only_in_vault=_keys(payload, "onlyInKeyway"),
            only_in_provider=_keys(payload, "onlyInProvider"),
            different=_keys(payload, "different"),
            same=_keys(payload, "same"),
            vault_count=int(payload.get("keywayCount") or 0),
            provider_count=int(payload.get("providerCount") or 0),
        )


def compute_sync_diff(vault: Mapping[str, str], provider: Mapping[str, str]) -> SyncDiff:
    result = diff(vault, provider)
    return SyncDiff(
        only_in_vault=result.added,
        only_in_provider=result.removed,
        different=result.changed,
        same=result.same,
        vault_count=len(vault),
        provider_count=len(provider),
    )


@dataclass(frozen=True)
class SyncPreview:
    direction: Direction
    to_create: List[str] = field(default_factory=list)
    to_update: List[str] = field(default_factory=list)
    to_delete: List[str] = field(default_factory=list)
    to_skip: List[str] = field(default_factory=list)

    @property
    def total_changes(self) -> int:
        return len(self.to_create) + len(self.to_update) + len(self.to_delete)


def compute_preview(sync_diff: SyncDiff, direction: Direction, allow_delete: bool = False) -> SyncPreview:
    """Turn a diff into the list of writes a sync in *direction* performs.

    Deletion only ever happens on push and only when *allow_delete* is set;
    asking for it on a pull is rejected.
    """

    direction = Direction(direction)
    if direction is Direction.PULL and allow_delete:
        raise UserInputError("--allow-delete cannot be used with --pull")
    if direction is Direction.PUSH:
        source_only, target_only = sync_diff.only_in_vault, sync_diff.only_in_provider
    else:
        source_only, target_only = sync_diff.only_in_provider, sync_diff.only_in_vault
    return SyncPreview(
        direction=direction,
        to_create=list(source_only),
        to_update=list(sync_diff.different),
        to_delete=list(target_only) if allow_delete else [],
        to_skip=list(sync_diff.same),
    )


def default_direction(sync_diff: SyncDiff) -> Direction:
    """Suggest importing when the vault is empty and the provider is not."""

    if sync_diff.vault_count == 0 and sync_diff.provider_count > 0:
        return Direction.PULL
    return Direction.PUSH


def detect_first_sync(sync_diff: SyncDiff, direction: Direction) -> Optional[Direction]:
    """Return the safer direction when *direction* reads from an empty side.

    Pushing an empty vault over a populated provider (or pulling an empty
    provider into a populated vault) is almost always a mistake. The caller
    decides whether to follow the recommendation.
    """

    if direction is Direction.PUSH and sync_diff.vault_count == 0 and sync_diff.provider_count > 0:
        return Direction.PULL
    if direction is Direction.PULL and sync_diff.provider_count == 0 and sync_diff.vault_count > 0:
        return Direction.PUSH
    return None


# -- driver ------------------------------------------------------------------


@dataclass(frozen=True)
class SyncTarget:
    """One vault environment paired with one provider project environment."""

    repo: str
    connection_id: str
    project_id: str
    keyway_environment: str
    provider_environment: str
    service_id: Optional[str] = None

    def options(self, direction: Optional[Direction] = None, allow_delete: bool = False) -> Dict[str, Any]:
        payload: Dict[str, Any] = {
            "connectionId": self.connection_id,
            "projectId": self.project_id,
            "keywayEnvironment": self.keyway_environment,
            "providerEnvironment": self.provider_environment,
        }
        if self.service_id:
            payload["serviceId"] = self.service_id
        if direction is not None:
            payload["direction"] = Direction(direction).value
            payload["allowDelete"] = allow_delete
        return payload


@dataclass(frozen=True)
class SyncStats:
    created: int = 0
    updated: int = 0
    deleted: int = 0


@dataclass(frozen=True)
class SyncResult:
    success: bool
    error: str = ""
    stats: SyncStats = field(default_factory=SyncStats)

    @classmethod
    def from_payload(cls, payload: Mapping[str, Any]) -> "SyncResult":
        stats = payload.get("stats") or {}
        return cls(
            success=bool(payload.get("success")),
            error=str(payload.get("error") or ""),
            stats=SyncStats(
                created=int(stats.get("created") or 0),
                updated=int(stats.get("updated") or 0),
                deleted=int(stats.get("deleted") or 0),
            ),
        )


class SyncAPI(Protocol):
    def get_sync_diff(self, target: SyncTarget) -> SyncDiff:
        ...

    def execute_sync(self, target: SyncTarget, direction: Direction, allow_delete: bool) -> SyncResult:
        ...


class Prompter(Protocol):
    def is_interactive(self) -> bool:
        ...

    def confirm(self, question: str, default: bool = True) -> bool:
        ...


@dataclass
class ReconcilerDeps:
    api: SyncAPI
    prompter: Prompter


@dataclass(frozen=True)
class SyncPlan:
    target: SyncTarget
    diff: SyncDiff
    preview: SyncPreview

    @property
    def direction(self) -> Direction:
        return self.preview.direction


@dataclass(frozen=True)
class Completed:
    plan: SyncPlan
    result: Optional[SyncResult] = None

    @property
    def applied(self) -> bool:
        return self.result is not None


@dataclass(frozen=True)
class Cancelled:
    reason: str


@dataclass(frozen=True)
class Failed:
    error: KeywayError


SyncOutcome = Union[Completed, Cancelled, Failed]


def plan_sync(
    deps: ReconcilerDeps,
    target: SyncTarget,
    direction: Direction,
    allow_delete: bool = False,
    sync_diff: Optional[SyncDiff] = None,
) -> SyncPlan:
    """Fetch the diff (unless given) and freeze the preview to apply."""

    if sync_diff is None:
        sync_diff = deps.api.get_sync_diff(target)
    preview = compute_preview(sync_diff, direction, allow_delete)
    return SyncPlan(target=target, diff=sync_diff, preview=preview)


def apply_sync(deps: ReconcilerDeps, plan: SyncPlan, *, assume_yes: bool = False, target_label: str = "") -> SyncOutcome:
    """Execute *plan* after confirmation.

    Deletion is requested only when the frozen preview lists keys to delete.
    Without a terminal the operator must pass ``assume_yes``.
    """

    preview = plan.preview
    if preview.total_changes == 0:
        return Completed(plan)

    if not assume_yes:
        if not deps.prompter.is_interactive():
            return Failed(UserInputError("confirmation required - use --yes in non-interactive mode"))
        label = target_label or ("Keyway" if plan.direction is Direction.PULL else "the provider")
        if not deps.prompter.confirm(f"Apply {preview.total_changes} changes to {label}?", True):
            return Cancelled("declined")

    try:
        result = deps.api.execute_sync(plan.target, plan.direction, bool(preview.to_delete))
    except KeywayError as exc:
        logger.debug("sync request failed", exc_info=True)
        return Failed(exc)
    if not result.success:
        return Failed(KeywayError(result.error or "sync failed"))
    return Completed(plan, result)


__all__ = [
    "Cancelled",
    "Completed",
    "Direction",
    "Failed",
    "Prompter",
    "ReconcilerDeps",
    "SyncAPI",
    "SyncDiff",
    "SyncOutcome",
    "SyncPlan",
    "SyncPreview",
    "SyncResult",
    "SyncStats",
    "SyncTarget",
    "apply_sync",
    "compute_preview",
    "compute_sync_diff",
    "default_direction",
    "detect_first_sync",
    "plan_sync",
]
