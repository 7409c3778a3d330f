"""``keyway push``: upload a local env file to the vault."""

from __future__ import annotations

from pathlib import Path
from typing import Any, Dict, List, Optional

from ..core.diff_engine import plan_push
from ..core.env_codec import EnvCandidate, SecretSet, derive_env_from_file, discover_env_files, parse
from ..errors import APIError, UserInputError
from ..utils import log_event
from .session import with_auth_retry

FALLBACK_ENVIRONMENTS = ["development", "staging", "production"]
STARTER_CONTENT = "# Add your environment variables here\n# Example: API_KEY=your-api-key\n"


def check_gitignore(session) -> None:
    """Warn when env files are not ignored and offer to fix it."""

    if session.git.check_env_gitignore():
        return
    session.ui.warn(".env files are not in .gitignore - secrets may be committed")
    if session.ui.is_interactive() and session.ui.confirm("Add .env* to .gitignore?", True):
        session.git.add_env_to_gitignore()
        session.ui.success("Added .env* to .gitignore")


def environment_choices(session, repo: str, preferred: Optional[str]) -> List[str]:
    """Vault environments for *repo* with *preferred* moved to the front."""

    try:
        environments = with_auth_retry(lambda client: client.get_vault_environments(repo), session)
    except APIError:
        environments = []
    environments = list(environments or FALLBACK_ENVIRONMENTS)
    if preferred:
        if preferred in environments:
            environments.remove(preferred)
        environments.insert(0, preferred)
    return environments


def _select_file(session, candidates: List[EnvCandidate], file: Optional[str]) -> Optional[EnvCandidate]:
    if file:
        return EnvCandidate(path=Path(file), environment=derive_env_from_file(file))
    if not candidates:
        return None
    if len(candidates) > 1 and session.ui.is_interactive():
        labels = [f"{candidate.name} (env: {candidate.environment})" for candidate in candidates]
        return candidates[session.ui.choose("Select an env file to push:", labels)]
    return candidates[0]


def fetch_vault(session, repo: str, environment: str) -> SecretSet:
    def fetch(client) -> SecretSet:
        try:
            return parse(client.pull_secrets(repo, environment))
        except APIError as exc:
            if exc.is_not_found:
                return {}
            raise

    return with_auth_retry(fetch, session)


def push(args, session) -> Dict[str, Any]:
    ui = session.ui
    ui.intro("push")
    check_gitignore(session)

    candidate = _select_file(session, discover_env_files(), args.file)
    if candidate is None:
        if not ui.is_interactive():
            raise UserInputError("No .env file found")
        if ui.confirm("No .env file found. Create one?", True):
            Path(".env").write_text(STARTER_CONTENT, encoding="utf-8")
            Path(".env").chmod(0o600)
            ui.success("Created .env file")
            ui.dim("Add your variables and run keyway push again")
        return {"action": "push", "status": "skipped"}

    try:
        content = candidate.path.read_text(encoding="utf-8")
    except OSError as exc:
        raise UserInputError(f"File not found: {candidate.path}") from exc
    if not content.strip():
        raise UserInputError(f"File is empty: {candidate.path}")
    secrets = parse(content)
    if not secrets:
        raise UserInputError("No valid environment variables found in file")

    ui.step(f"File: {candidate.path}")
    ui.step(f"Variables: {len(secrets)}")

    repo = session.git.detect_repo()
    ui.step(f"Repository: {repo}")
    session.ensure_login()

    environment = args.env or candidate.environment
    if args.env is None and ui.is_interactive():
        environment = ui.select("Push to environment:", environment_choices(session, repo, environment))
    ui.step(f"Environment: {environment}")

    vault = fetch_vault(session, repo, environment)
    plan = plan_push(secrets, vault, prune=args.prune)

    if plan.has_changes:
        if plan.added or plan.changed:
            ui.message()
            ui.message("Will be pushed to vault:")
            for key in plan.added:
                ui.diff_added(key)
            for key in plan.changed:
                ui.diff_changed(key)
        if plan.prune and plan.removed:
            ui.message()
            ui.message("Will be moved to trash (not in local file):")
            for key in plan.removed:
                ui.diff_removed(key)
        if not plan.prune and plan.removed:
            ui.message()
            ui.warn(f"{len(plan.removed)} secret(s) in vault not in local file: {', '.join(plan.removed)}")
            ui.dim("Use --prune to remove them, or keyway pull to fetch them")
        ui.message()
    else:
        ui.info("No changes detected")

    if not args.yes:
        if not ui.is_interactive():
            raise UserInputError("confirmation required - use --yes in non-interactive mode")
        if not ui.confirm(f"Push {len(secrets)} secrets from {candidate.path} to {repo}?", True):
            ui.warn("Push aborted.")
            return log_event("push", status="aborted", repo=repo, environment=environment)

    response = with_auth_retry(lambda client: client.push_secrets(repo, environment, plan.secrets), session)

    ui.success(response.message)
    if response.stats is not None:
        parts = []
        if response.stats.created:
            parts.append(f"+{response.stats.created} created")
        if response.stats.updated:
            parts.append(f"~{response.stats.updated} updated")
        if response.stats.deleted:
            parts.append(f"-{response.stats.deleted} deleted")
        if parts:
            ui.message(f"Stats: {', '.join(parts)}")
    ui.link("Dashboard", session.settings.vault_url(repo))

    return log_event(
        "push",
        repo=repo,
        environment=environment,
        file=str(candidate.path),
        added=plan.added,
        changed=plan.changed,
        removed=plan.to_delete,
        kept_remote=[] if plan.prune else plan.removed,
    )


__all__ = ["check_gitignore", "environment_choices", "fetch_vault", "push"]
