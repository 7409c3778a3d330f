"""``keyway init``: create the vault for the current repository."""

from __future__ import annotations

import argparse
from pathlib import Path
from typing import Any, Dict

from ..core.env_codec import discover_env_files
from ..errors import APIError
from ..utils import log_event
from .push import STARTER_CONTENT, check_gitignore, push
from .session import with_auth_retry


def _already_initialized(session, repo: str) -> Dict[str, Any]:
    session.ui.success("Already initialized!")
    session.ui.dim("Run keyway push to sync your secrets")
    session.ui.link("Dashboard", session.settings.vault_url(repo))
    return log_event("init", status="exists", repo=repo)


def _create_vault(session, repo: str) -> bool:
    """Create the vault; ``False`` when the API reports it already exists."""

    try:
        with_auth_retry(lambda client: client.init_vault(repo), session)
    except APIError as exc:
        if exc.status_code == 409:
            return False
        raise
    return True


def init(args, session) -> Dict[str, Any]:
    ui = session.ui
    ui.intro("init")
    check_gitignore(session)

    repo = session.git.detect_repo()
    ui.step(f"Repository: {repo}")
    session.ensure_login()

    if with_auth_retry(lambda client: client.check_vault_exists(repo), session):
        return _already_initialized(session, repo)
    if not _create_vault(session, repo):
        return _already_initialized(session, repo)
    ui.success("Vault created!")

    candidates = discover_env_files()
    if candidates and ui.is_interactive():
        ui.dim(f"Found {len(candidates)} env file(s): {', '.join(c.name for c in candidates)}")
        if ui.confirm("Push secrets now?", True):
            log_event("init", repo=repo, env_files=len(candidates))
            return push(argparse.Namespace(env=None, file=None, yes=False, prune=False), session)
    elif not candidates:
        if ui.is_interactive() and ui.confirm("No .env file found. Create one?", True):
            Path(".env").write_text(STARTER_CONTENT, encoding="utf-8")
            Path(".env").chmod(0o600)
            ui.success("Created .env file")
        ui.dim("Add your variables and run keyway push")
    else:
        ui.dim("Run keyway push to sync your secrets")

    ui.link("Dashboard", session.settings.vault_url(repo))
    return log_event("init", repo=repo, env_files=len(candidates))


__all__ = ["init"]
