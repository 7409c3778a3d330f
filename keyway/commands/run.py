"""``keyway run``: execute a command with vault secrets in its environment.

Secrets are only ever handed to the child process; nothing is written to
disk.
"""

from __future__ import annotations

import os
import subprocess
from typing import Any, Dict, List

from ..core.env_codec import DEFAULT_ENVIRONMENT, parse
from ..errors import UserInputError
from ..utils import log_event
from .push import environment_choices
from .session import with_auth_retry


def _command(args) -> List[str]:
    command = list(args.argv or [])
    if command and command[0] == "--":
        command = command[1:]
    if not command:
        raise UserInputError("command required - usage: keyway run [-e ENV] -- <command> [args...]")
    return command


def run(args, session) -> Dict[str, Any]:
    ui = session.ui
    command = _command(args)

    repo = session.git.detect_repo()
    session.ensure_login()

    environment = args.env
    if not environment:
        if ui.is_interactive():
            environment = ui.select("Environment:", environment_choices(session, repo, DEFAULT_ENVIRONMENT))
        else:
            environment = DEFAULT_ENVIRONMENT
    ui.step(f"Environment: {environment}")

    content = with_auth_retry(lambda client: client.pull_secrets(repo, environment), session)
    secrets = parse(content)
    ui.success(f"Injected {len(secrets)} secrets")

    try:
        completed = subprocess.run(command, env={**os.environ, **secrets}, check=False)
    except OSError as exc:
        raise UserInputError(f"failed to start command {command[0]}: {exc}") from exc
    # a child killed by signal N reports -N; shells report 128 + N
    exit_code = completed.returncode if completed.returncode >= 0 else 128 - completed.returncode

    return log_event(
        "run",
        status="success" if exit_code == 0 else "failed",
        repo=repo,
        environment=environment,
        command=command[0],
        injected=len(secrets),
        exit_code=exit_code,
    )


__all__ = ["run"]
