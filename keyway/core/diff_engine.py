"""Set differences and merge policies between two secret sets.

``diff`` is the primitive: every key of either side lands in exactly one of
``added``, ``removed``, ``changed`` or ``same``, each sorted by key. The merge
policies built on top never drop a secret the operator did not explicitly ask
to remove. Pushing keeps vault-only keys unless ``prune`` is set, and pulling
keeps local-only keys unless ``force`` is set.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Dict, List, Mapping

from .env_codec import SecretSet, serialize

LOCAL_SECTION_HEADER = "# Local variables (not in vault)"


@dataclass(frozen=True)
class DiffResult:
    """Classification of the keys of *source* against *target*."""

    added: List[str] = field(default_factory=list)
    removed: List[str] = field(default_factory=list)
    changed: List[str] = field(default_factory=list)
    same: List[str] = field(default_factory=list)

    @property
    def has_changes(self) -> bool:
        return bool(self.added or self.removed or self.changed)

    def as_dict(self) -> Dict[str, List[str]]:
        return {
            "added": list(self.added),
            "removed": list(self.removed),
            "changed": list(self.changed),
            "same": list(self.same),
        }


def diff(source: Mapping[str, str], target: Mapping[str, str]) -> DiffResult:
    """Compare *source* against *target*."""

    added: List[str] = []
    removed: List[str] = []
    changed: List[str] = []
    same: List[str] = []
    for key in sorted(set(source) | set(target)):
        if key not in target:
            added.append(key)
        elif key not in source:
            removed.append(key)
        elif source[key] != target[key]:
            changed.append(key)
        else:
            same.append(key)
    return DiffResult(added=added, removed=removed, changed=changed, same=same)


# -- push ------------------------------------------------------------------


@dataclass(frozen=True)
class PushPlan:
    """What a push will send and how it differs from the vault."""

    secrets: SecretSet
    added: List[str]
    changed: List[str]
    removed: List[str]
    prune: bool

    @property
    def has_changes(self) -> bool:
        return bool(self.added or self.changed or self.removed)

    @property
    def to_delete(self) -> List[str]:
        """Keys the vault will drop, which is only ever the case when pruning."""

        return list(self.removed) if self.prune else []


def push_merge_policy(local: Mapping[str, str], remote: Mapping[str, str], prune: bool = False) -> SecretSet:
    """Return the secret set to send to the vault on push.

    Without *prune* the vault content is overlaid by *local*, so keys that only
    exist remotely survive. With *prune* the local set is sent verbatim.
    """

    if prune:
        return dict(local)
    merged: SecretSet = dict(remote)
    merged.update(local)
    return merged


def plan_push(local: Mapping[str, str], remote: Mapping[str, str], prune: bool = False) -> PushPlan:
    """Compute :func:`push_merge_policy` together with the key level diff."""

    result = diff(local, remote)
    return PushPlan(
        secrets=push_merge_policy(local, remote, prune=prune),
        added=result.added,
        changed=result.changed,
        removed=result.removed,
        prune=prune,
    )


# -- pull ------------------------------------------------------------------


@dataclass(frozen=True)
class PullDiff:
    """Difference between the local file and the vault, seen from a pull."""

    added: List[str]
    changed: List[str]
    local_only: List[str]
    unchanged: List[str]

    @property
    def has_changes(self) -> bool:
        return bool(self.added or self.changed or self.local_only)


def pull_diff(local: Mapping[str, str], remote: Mapping[str, str]) -> PullDiff:
    result = diff(remote, local)
    return PullDiff(
        added=result.added,
        changed=result.changed,
        local_only=result.removed,
        unchanged=result.same,
    )


def pull_merge_policy(local: Mapping[str, str], remote: Mapping[str, str], force: bool = False) -> str:
    """Return the file content a pull writes.

    With *force* the output is exactly ``serialize(remote)``. Otherwise the
    remote entries come first and every local-only entry is appended, under a
    marker comment, with its original value.
    """

    content = serialize(remote)
    if force:
        return content
    local_only = {key: local[key] for key in local if key not in remote}
    if not local_only:
        return content
    prefix = content.rstrip("\n") + "\n\n" if content else ""
    return f"{prefix}{LOCAL_SECTION_HEADER}\n{serialize(local_only)}"


__all__ = [
    "DiffResult",
    "LOCAL_SECTION_HEADER",
    "PullDiff",
    "PushPlan",
    "diff",
    "plan_push",
    "pull_diff",
    "pull_merge_policy",
    "push_merge_policy",
]
