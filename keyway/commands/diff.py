"""``keyway diff``: compare two vault environments without revealing values."""

from __future__ import annotations

import json
from dataclasses import asdict, dataclass, field
from typing import Any, Dict, List, Mapping, Optional, Tuple

from ..core.diff_engine import diff as diff_sets
from ..core.env_codec import SecretSet, parse
from ..errors import APIError, KeywayError, UserInputError
from ..utils import log_event
from .push import environment_choices
from .session import with_auth_retry

ENV_ALIASES = {"prod": "production", "dev": "development", "stg": "staging"}


def normalize_env_name(name: str) -> str:
    lowered = name.strip().lower()
    return ENV_ALIASES.get(lowered, lowered)


def preview_value(value: str) -> str:
    """Show only the last two characters and the length of *value*."""

    if not value:
        return "(empty)"
    return f"**{value[-2:]} ({len(value)} chars)"


@dataclass
class ValueDifference:
    key: str
    preview1: str
    preview2: str
    value1: str = ""
    value2: str = ""


@dataclass
class ComparisonStats:
    total_env1: int = 0
    total_env2: int = 0
    only_in_env1: int = 0
    only_in_env2: int = 0
    different: int = 0
    same: int = 0


@dataclass
class EnvComparison:
    env1: str
    env2: str
    only_in_env1: List[str] = field(default_factory=list)
    only_in_env2: List[str] = field(default_factory=list)
    different: List[ValueDifference] = field(default_factory=list)
    same: List[str] = field(default_factory=list)
    stats: ComparisonStats = field(default_factory=ComparisonStats)

    @property
    def identical(self) -> bool:
        return not (self.only_in_env1 or self.only_in_env2 or self.different)


def compare_secrets(
    env1: str,
    env2: str,
    secrets1: Mapping[str, str],
    secrets2: Mapping[str, str],
    show_values: bool = False,
) -> EnvComparison:
    result = diff_sets(secrets1, secrets2)
    different = [
        ValueDifference(
            key=key,
            preview1=preview_value(secrets1[key]),
            preview2=preview_value(secrets2[key]),
            value1=secrets1[key] if show_values else "",
            value2=secrets2[key] if show_values else "",
        )
        for key in result.changed
    ]
    return EnvComparison(
        env1=env1,
        env2=env2,
        only_in_env1=result.added,
        only_in_env2=result.removed,
        different=different,
        same=result.same,
        stats=ComparisonStats(
            total_env1=len(secrets1),
            total_env2=len(secrets2),
            only_in_env1=len(result.added),
            only_in_env2=len(result.removed),
            different=len(different),
            same=len(result.same),
        ),
    )


def _pick_environments(args, session, repo: str) -> Tuple[str, str]:
    env1 = normalize_env_name(args.env1 or "")
    env2 = normalize_env_name(args.env2 or "")
    if env1 and env2:
        return env1, env2
    if not session.ui.is_interactive():
        raise UserInputError("missing arguments: keyway diff <env1> <env2>")

    available = environment_choices(session, repo, None)
    if not env1:
        env1 = session.ui.select("First environment:", available)
    remaining = [name for name in available if name != env1]
    if not env2:
        if not remaining:
            raise UserInputError("the vault has no other environment to compare with")
        env2 = session.ui.select("Second environment:", remaining)
    return env1, env2


def _fetch(session, repo: str, environment: str) -> Optional[SecretSet]:
    try:
        return parse(with_auth_retry(lambda client: client.pull_secrets(repo, environment), session))
    except KeywayError as exc:
        if isinstance(exc, APIError) and exc.is_auth_error:
            raise
        session.ui.warn(f"Could not fetch {environment}: {exc}")
        return None


def _render(ui, comparison: EnvComparison, keys_only: bool, show_values: bool) -> None:
    stats = comparison.stats
    ui.step(f"{comparison.env1}: {stats.total_env1} secrets | {comparison.env2}: {stats.total_env2} secrets")
    if comparison.identical:
        ui.success(f"Environments are identical ({stats.same} secrets)")
        return
    for name, keys, style in (
        (comparison.env1, comparison.only_in_env1, "cyan"),
        (comparison.env2, comparison.only_in_env2, "magenta"),
    ):
        ui.key_list(f"Only in {name} ({len(keys)})", keys, style=style, limit=len(keys))
    if comparison.different:
        ui.message(f"Different values ({stats.different})")
        for item in comparison.different:
            if keys_only:
                ui.diff_changed(item.key)
            elif show_values:
                ui.diff_changed(f"{item.key}: {item.value1} -> {item.value2}")
            else:
                ui.diff_changed(f"{item.key}: {item.preview1} -> {item.preview2}")
    if stats.same:
        ui.dim(f"= {stats.same} identical")


def diff(args, session) -> Dict[str, Any]:
    ui = session.ui
    if not args.json:
        ui.intro("diff")

    repo = session.git.detect_repo()
    session.ensure_login()
    env1, env2 = _pick_environments(args, session, repo)
    if env1 == env2:
        raise UserInputError("same environment: choose two different environments")

    secrets1 = _fetch(session, repo, env1)
    secrets2 = _fetch(session, repo, env2)
    if secrets1 is None and secrets2 is None:
        raise KeywayError("failed to fetch environments")

    comparison = compare_secrets(env1, env2, secrets1 or {}, secrets2 or {}, show_values=args.show_values)
    if args.json:
        ui.console.print_json(json.dumps(asdict(comparison)))
    else:
        _render(ui, comparison, keys_only=args.keys_only, show_values=args.show_values)

    return log_event("diff", repo=repo, env1=env1, env2=env2, stats=asdict(comparison.stats))


__all__ = ["EnvComparison", "compare_secrets", "diff", "normalize_env_name", "preview_value"]
