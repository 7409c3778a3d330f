"""``keyway set``: add or update a single secret in the vault."""

from __future__ import annotations

import re
from typing import Any, Dict, Optional, Tuple

from ..core.env_codec import DEFAULT_ENVIRONMENT
from ..errors import UserInputError
from ..utils import log_event
from .diff import preview_value
from .push import environment_choices, fetch_vault
from .session import with_auth_retry

KEY_PATTERN = re.compile(r"[A-Za-z0-9_]+")


def split_assignment(key: str, value: Optional[str]) -> Tuple[str, Optional[str]]:
    """Accept both ``KEY VALUE`` and ``KEY=VALUE``; an inline value wins."""

    if "=" in key:
        key, _, inline = key.partition("=")
        return key, inline
    return key, value


def _resolve_value(session, key: str, value: Optional[str]) -> str:
    if value:
        return value
    if not session.ui.is_interactive():
        raise UserInputError("value is required - pass it as an argument in non-interactive mode")
    value = session.ui.secret(f"Enter value for {key}:")
    if not value:
        raise UserInputError("value cannot be empty")
    return value


def set_secret(args, session) -> Dict[str, Any]:
    ui = session.ui
    ui.intro("set")

    key, value = split_assignment(args.key, args.value)
    if not key:
        raise UserInputError("key is required")
    if not KEY_PATTERN.fullmatch(key):
        raise UserInputError("key must contain only alphanumeric characters and underscores")
    ui.step(f"Key: {key}")
    value = _resolve_value(session, key, value)

    repo = session.git.detect_repo()
    ui.step(f"Repository: {repo}")
    session.ensure_login()

    environment = args.env
    if not environment:
        if ui.is_interactive():
            environment = ui.select("Environment:", environment_choices(session, repo, None))
        else:
            environment = DEFAULT_ENVIRONMENT
    ui.step(f"Environment: {environment}")

    secrets = fetch_vault(session, repo, environment)
    existing = secrets.get(key)
    if existing is not None and not args.yes:
        ui.warn(f"{key} already exists in vault ({environment})")
        ui.message(f"  Current: {preview_value(existing)}")
        ui.message(f"  New:     {preview_value(value)}")
        if not ui.is_interactive():
            raise UserInputError("confirmation required - use --yes to update an existing secret")
        if not ui.confirm("Update this secret?", False):
            ui.warn("Aborted.")
            return log_event("set", status="aborted", repo=repo, environment=environment, key=key)

    secrets[key] = value
    with_auth_retry(lambda client: client.push_secrets(repo, environment, secrets), session)

    if existing is not None:
        ui.success(f"Updated {key} in vault ({environment})")
    else:
        ui.success(f"Added {key} to vault ({environment})")
    ui.message()
    if environment == DEFAULT_ENVIRONMENT:
        ui.dim("Use with: keyway run <command>")
    else:
        ui.dim(f"Use with: keyway run -e {environment} <command>")
    ui.link("Dashboard", session.settings.vault_url(repo))

    return log_event(
        "set",
        repo=repo,
        environment=environment,
        key=key,
        updated=existing is not None,
    )


__all__ = ["KEY_PATTERN", "set_secret", "split_assignment"]
