"""Core logic powering Keyway: env files, diffs, login and sync planning."""

from .device_auth import DeviceAuthClient, DeviceSession, PollResult
from .diff_engine import DiffResult, PullDiff, PushPlan, diff, plan_push, pull_diff, pull_merge_policy, push_merge_policy
from .env_codec import EnvCandidate, SecretSet, count_entries, discover_env_files, parse, serialize
from .project_matcher import MatchType, ProjectMatch, ProviderProject, find_match
from .sync_reconciler import (
    Direction,
    ReconcilerDeps,
    SyncDiff,
    SyncOutcome,
    SyncPreview,
    SyncTarget,
    apply_sync,
    compute_preview,
    compute_sync_diff,
    plan_sync,
)

__all__ = [
    "DeviceAuthClient",
    "DeviceSession",
    "DiffResult",
    "Direction",
    "EnvCandidate",
    "MatchType",
    "PollResult",
    "ProjectMatch",
    "ProviderProject",
    "PullDiff",
    "PushPlan",
    "ReconcilerDeps",
    "SecretSet",
    "SyncDiff",
    "SyncOutcome",
    "SyncPreview",
    "SyncTarget",
    "apply_sync",
    "compute_preview",
    "compute_sync_diff",
    "count_entries",
    "diff",
    "discover_env_files",
    "find_match",
    "parse",
    "plan_push",
    "plan_sync",
    "pull_diff",
    "pull_merge_policy",
    "push_merge_policy",
    "serialize",
]
