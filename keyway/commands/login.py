"""Session management commands: ``login`` and ``logout``."""

from __future__ import annotations

from typing import Any, Dict, Optional

from ..errors import KeywayError, UserInputError
from ..utils import log_event

PAT_PREFIX = "github_pat_"


def _resolve_pat(args, session) -> str:
    token = (args.token or "").strip()
    if token:
        return token
    if not session.ui.is_interactive():
        raise UserInputError("pass the token as 'keyway login --token <github_pat_...>' in non-interactive mode")
    session.ui.dim("Create a fine-grained token at https://github.com/settings/personal-access-tokens/new")
    return session.ui.secret("GitHub personal access token")


def login_with_token(session, token: str) -> Dict[str, Any]:
    """Validate a fine-grained GitHub token and store it without expiry."""

    if not token.startswith(PAT_PREFIX):
        raise UserInputError(f"token must start with {PAT_PREFIX}")
    with session.new_client(token) as client:
        info = client.validate_token()
    session.vault.save_credential(token, info.username, None)
    session.token = token
    session.ui.success(f"Logged in as @{info.username}" if info.username else "Logged in")
    return log_event("login", method="token", login=info.username, plan=info.plan)


def login(args, session) -> Dict[str, Any]:
    session.ui.intro("login")
    if args.token is not None:
        return login_with_token(session, _resolve_pat(args, session))

    repository: Optional[str] = None
    try:
        repository = session.git.detect_repo()
    except KeywayError:
        repository = None
    credential = session.device_login(repository)
    return log_event("login", method="device", login=credential.login_handle, repository=repository)


def logout(args, session) -> Dict[str, Any]:
    session.vault.clear_credential()
    session.token = None
    session.ui.success("Logged out of Keyway")
    if session.settings.token:
        session.ui.dim("KEYWAY_TOKEN is still set in the environment")
    return log_event("logout")


__all__ = ["PAT_PREFIX", "login", "login_with_token", "logout"]
