"""``keyway pull``: download vault secrets into a local env file."""

from __future__ import annotations

import os
from pathlib import Path
from typing import Any, Dict, Tuple

from ..core.diff_engine import pull_diff, pull_merge_policy
from ..core.env_codec import SecretSet, count_entries, parse
from ..errors import UserInputError
from ..utils import log_event
from .push import check_gitignore, environment_choices
from .session import with_auth_retry

DEFAULT_ENVIRONMENT = "development"
DEFAULT_FILE = ".env"


def write_env_file(path: Path, content: str) -> None:
    """Write *content* to *path* readable by the owner only."""

    fd = os.open(str(path), os.O_WRONLY | os.O_CREAT | os.O_TRUNC, 0o600)
    with os.fdopen(fd, "w", encoding="utf-8") as handle:
        handle.write(content)
    os.chmod(path, 0o600)


def _read_local(path: Path) -> Tuple[bool, SecretSet]:
    try:
        return True, parse(path.read_text(encoding="utf-8"))
    except FileNotFoundError:
        return False, {}


def pull(args, session) -> Dict[str, Any]:
    ui = session.ui
    ui.intro("pull")
    check_gitignore(session)

    repo = session.git.detect_repo()
    ui.step(f"Repository: {repo}")
    session.ensure_login()

    environment = args.env or DEFAULT_ENVIRONMENT
    if args.env is None and ui.is_interactive():
        environment = ui.select("Environment:", environment_choices(session, repo, DEFAULT_ENVIRONMENT))
    ui.step(f"Environment: {environment}")

    remote = parse(with_auth_retry(lambda client: client.pull_secrets(repo, environment), session))

    path = Path(args.file or DEFAULT_FILE)
    exists, local = _read_local(path)
    changes = pull_diff(local, remote)

    if exists and changes.has_changes:
        if changes.added or changes.changed:
            ui.message()
            ui.message("Changes from vault:")
            for key in changes.added:
                ui.diff_added(key)
            for key in changes.changed:
                ui.diff_changed(key)
        if changes.local_only:
            ui.message()
            if args.force:
                ui.message("Not in vault (will be removed):")
                for key in changes.local_only:
                    ui.diff_removed(key)
            else:
                ui.message("Not in vault (will be preserved):")
                for key in changes.local_only:
                    ui.diff_kept(key)
        ui.message()

    if exists and not args.yes:
        if not ui.is_interactive():
            raise UserInputError(f"file {path} exists - use --yes to confirm")
        question = (
            f"Replace {path} with secrets from vault?" if args.force else f"Merge secrets from vault into {path}?"
        )
        if not ui.confirm(question, True):
            ui.warn("Pull aborted.")
            return log_event("pull", status="aborted", repo=repo, environment=environment)

    content = pull_merge_policy(local, remote, force=args.force or not exists)
    write_env_file(path, content)

    ui.success(f"Secrets downloaded to {path}")
    ui.message(f"Variables: {count_entries(content)}")
    return log_event(
        "pull",
        repo=repo,
        environment=environment,
        file=str(path),
        added=changes.added,
        changed=changes.changed,
        preserved=[] if args.force else changes.local_only,
        removed=changes.local_only if args.force else [],
    )


__all__ = ["pull", "write_env_file"]
