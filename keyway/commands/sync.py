"""``keyway sync``: reconcile a vault environment with a provider project."""

from __future__ import annotations

from typing import Any, Dict, List, Optional, Sequence, Tuple, Union

from ..core.project_matcher import (
    MatchType,
    ProviderProject,
    available_teams,
    filter_by_team,
    find_match,
    find_project,
    map_provider_environment,
    project_matches_repo,
    resolve_provider_environment,
)
from ..core.sync_reconciler import (
    Cancelled,
    Completed,
    Direction,
    Failed,
    ReconcilerDeps,
    SyncDiff,
    SyncPlan,
    SyncStats,
    SyncTarget,
    apply_sync,
    default_direction,
    detect_first_sync,
    plan_sync,
)
from ..errors import KeywayError, UserInputError
from ..utils import log_event
from .session import RetryingSyncAPI, with_auth_retry

SUMMARY_LIMIT = 3
FALLBACK_ENVIRONMENTS = ["production", "staging", "development"]


def _title(provider: str) -> str:
    return provider[:1].upper() + provider[1:]


def resolve_provider(args, session) -> Tuple[str, str]:
    if args.provider:
        name = args.provider.lower()
        return name, _title(name)
    if not session.ui.is_interactive():
        raise UserInputError("provider required: keyway sync <provider>")
    providers = with_auth_retry(lambda client: client.get_providers(), session)
    if not providers:
        raise UserInputError("No providers available")
    labels = [provider.display_name for provider in providers]
    selected = providers[session.ui.choose("Select a provider to sync with:", labels)]
    return selected.name, selected.display_name


def ensure_vault(session, repo: str) -> Optional[Cancelled]:
    if with_auth_retry(lambda client: client.check_vault_exists(repo), session):
        return None
    session.ui.warn(f"No vault found for {repo}.")
    if not session.ui.is_interactive():
        raise UserInputError(f"vault not found for {repo} - run keyway push first")
    if not session.ui.confirm("Create vault now?", True):
        return Cancelled("vault creation declined")
    with_auth_retry(lambda client: client.init_vault(repo), session)
    session.ui.success("Vault created!")
    return None


def _project_label(project: ProviderProject, repo: str, multiple_accounts: bool) -> str:
    badges = []
    if multiple_accounts:
        if project.team_name:
            badges.append(f"[{project.team_name}]")
        elif project.team_id:
            short = project.team_id if len(project.team_id) <= 12 else project.team_id[:12] + "..."
            badges.append(f"[team:{short}]")
        else:
            badges.append("[personal]")
    repo_name = repo.split("/")[-1].lower()
    if project.linked_repo and project.linked_repo.lower() == repo.lower():
        badges.append("<- linked")
    elif project.name.lower() == repo_name:
        badges.append("<- same name")
    elif project.linked_repo:
        badges.append(f"-> {project.linked_repo}")
    return " ".join([project.display_name, *badges])


def _prompt_project(session, projects: Sequence[ProviderProject], repo: str, multiple_accounts: bool) -> ProviderProject:
    if not session.ui.is_interactive():
        raise UserInputError("could not pick a project for this repository - pass --project")
    labels = [_project_label(project, repo, multiple_accounts) for project in projects]
    return projects[session.ui.choose("Select a project:", labels)]


def _warn_mismatch(session, repo: str, project: ProviderProject, label: str) -> None:
    session.ui.warn("Project does not match current repository")
    session.ui.message(f"Current repo:      {repo}")
    session.ui.message(f"{label:<19}{project.display_name}")


def select_project(
    session,
    projects: Sequence[ProviderProject],
    repo: str,
    project_flag: Optional[str] = None,
    multiple_accounts: bool = False,
) -> Union[ProviderProject, Cancelled]:
    """Choose the project to sync with.

    An explicit ``--project`` always wins. Otherwise a linked or exactly named
    project is used directly, a partial match is confirmed first and anything
    else is asked for.
    """

    ui = session.ui
    if project_flag:
        project = find_project(projects, project_flag)
        if project is None:
            ui.error(f"Project not found: {project_flag}")
            ui.dim("Available projects:")
            for candidate in projects:
                ui.dim(f"  - {candidate.display_name}")
            raise UserInputError(f"project not found: {project_flag}")
        if not project_matches_repo(project, repo):
            _warn_mismatch(session, repo, project, "Selected project:")
        return project

    match = find_match(projects, repo)
    if match is not None and match.is_confident:
        reason = f"linked to {repo}" if match.match_type is MatchType.LINKED_REPO else "exact name match"
        team = f" ({match.project.team_name})" if match.project.team_name else ""
        ui.success(f"Auto-selected project: {match.project.display_name}{team} ({reason})")
        return match.project

    if match is not None:
        name = match.project.display_name
        ui.info(f"Detected project: {name} (partial match)")
        if ui.is_interactive() and ui.confirm(f"Use {name}?", True):
            return match.project
        return _prompt_project(session, projects, repo, multiple_accounts)

    if len(projects) == 1:
        only = projects[0]
        if not project_matches_repo(only, repo):
            _warn_mismatch(session, repo, only, "Only project:")
            if ui.is_interactive() and not ui.confirm("Continue anyway?", False):
                return Cancelled("project mismatch declined")
        return only

    ui.warn(f"No matching project found for {repo}")
    return _prompt_project(session, projects, repo, multiple_accounts)


def select_environments(
    args,
    session,
    repo: str,
    project: ProviderProject,
    provider: str,
    provider_label: str,
) -> Tuple[str, str]:
    keyway_env = args.env
    provider_env = args.provider_env
    ui = session.ui

    if not keyway_env and ui.is_interactive():
        try:
            environments = with_auth_retry(lambda client: client.get_vault_environments(repo), session)
        except KeywayError:
            environments = []
        keyway_env = ui.select("Keyway environment:", list(environments or FALLBACK_ENVIRONMENTS))
        if not provider_env:
            provider_env = resolve_provider_environment(provider, keyway_env, project.environments)
            if provider_env is None:
                provider_env = ui.select(f"{provider_label} environment:", project.environments)
            elif provider_env != map_provider_environment(provider, keyway_env):
                ui.dim(f"Using {provider_label} environment: {provider_env}")

    keyway_env = keyway_env or "production"
    provider_env = provider_env or map_provider_environment(provider, keyway_env)
    return keyway_env, provider_env


def show_diff_summary(ui, sync_diff: SyncDiff, provider_label: str) -> None:
    if sync_diff.is_in_sync and sync_diff.same:
        ui.success(f"Already in sync ({len(sync_diff.same)} secrets)")
        return
    ui.step("Comparison Summary")
    ui.dim(f"Keyway: {sync_diff.vault_count} secrets | {provider_label}: {sync_diff.provider_count} secrets")
    ui.key_list(
        f"-> {len(sync_diff.only_in_vault)} only in Keyway",
        sync_diff.only_in_vault,
        style="cyan",
        limit=SUMMARY_LIMIT,
    )
    ui.key_list(
        f"<- {len(sync_diff.only_in_provider)} only in {provider_label}",
        sync_diff.only_in_provider,
        style="magenta",
        limit=SUMMARY_LIMIT,
    )
    ui.key_list(
        f"!= {len(sync_diff.different)} with different values",
        sync_diff.different,
        style="yellow",
        limit=SUMMARY_LIMIT,
    )
    if sync_diff.same:
        ui.dim(f"= {len(sync_diff.same)} identical")


def show_preview(ui, plan: SyncPlan) -> None:
    preview = plan.preview
    ui.step("Sync Preview")
    ui.key_list(f"+ {len(preview.to_create)} to create", preview.to_create, style="green")
    ui.key_list(f"~ {len(preview.to_update)} to update", preview.to_update, style="yellow")
    ui.key_list(f"- {len(preview.to_delete)} to delete", preview.to_delete, style="red")
    if preview.to_skip:
        ui.dim(f"o {len(preview.to_skip)} unchanged")


def choose_direction(args, session, sync_diff: SyncDiff, provider_label: str) -> Direction:
    if args.push:
        return Direction.PUSH
    if args.pull:
        return Direction.PULL
    if not session.ui.is_interactive():
        return Direction.PUSH
    options: List[Tuple[str, Direction]] = [
        (f"Keyway -> {provider_label}", Direction.PUSH),
        (f"{provider_label} -> Keyway", Direction.PULL),
    ]
    if default_direction(sync_diff) is Direction.PULL:
        options.reverse()
    labels = [label for label, _ in options]
    return options[session.ui.choose("Sync direction:", labels)][1]


def _record(status: str, **fields: Any) -> Dict[str, Any]:
    return log_event("sync", status=status, **fields)


def sync(args, session) -> Dict[str, Any]:
    if args.pull and args.allow_delete:
        raise UserInputError("--allow-delete cannot be used with --pull")
    if args.push and args.pull:
        raise UserInputError("--push and --pull are mutually exclusive")

    ui = session.ui
    session.ensure_login()
    provider, provider_label = resolve_provider(args, session)
    repo = session.git.detect_repo()

    ui.intro("sync")
    ui.step(f"Repository: {repo}")

    cancelled = ensure_vault(session, repo)
    if cancelled is not None:
        return _record("cancelled", repo=repo, provider=provider, reason=cancelled.reason)

    catalog = with_auth_retry(lambda client: client.get_all_provider_projects(provider), session)
    if not catalog.connections:
        ui.warn(f"Not connected to {provider_label}.")
        raise UserInputError(f"connect {provider_label} in the Keyway dashboard ({session.settings.dashboard_url}) first")

    projects = list(catalog.projects)
    if args.team:
        projects = filter_by_team(projects, args.team)
        if not projects:
            ui.dim("Available teams:")
            for team in available_teams(catalog.projects):
                ui.dim(f"  - {team}")
            raise UserInputError(f"No projects found for team: {args.team}")
        ui.dim(f"Filtered to {len(projects)} projects in team: {args.team}")
    if not projects:
        raise UserInputError(f"No projects found in your {provider_label} account(s).")

    project = select_project(session, projects, repo, args.project, len(catalog.connections) > 1)
    if isinstance(project, Cancelled):
        return _record("cancelled", repo=repo, provider=provider, reason=project.reason)

    keyway_env, provider_env = select_environments(args, session, repo, project, provider, provider_label)
    target = SyncTarget(
        repo=repo,
        connection_id=project.connection_id,
        project_id=project.id,
        keyway_environment=keyway_env,
        provider_environment=provider_env,
        service_id=project.service_id,
    )
    deps = ReconcilerDeps(api=RetryingSyncAPI(session), prompter=ui)

    sync_diff = deps.api.get_sync_diff(target)
    show_diff_summary(ui, sync_diff, provider_label)
    if sync_diff.is_in_sync:
        return _record("success", repo=repo, provider=provider, environment=keyway_env, changes=0)

    direction = choose_direction(args, session, sync_diff, provider_label)
    allow_delete = args.allow_delete
    recommended = detect_first_sync(sync_diff, direction)
    if recommended is Direction.PULL:
        ui.warn(
            f'Your Keyway vault is empty for "{keyway_env}", but {provider_label} has '
            f"{sync_diff.provider_count} secrets."
        )
        ui.dim("(Use --env to sync a different environment)")
        if ui.is_interactive() and ui.confirm(f"Import secrets from {provider_label} first?", True):
            direction, allow_delete = Direction.PULL, False
    elif recommended is Direction.PUSH:
        ui.warn(f"{provider_label} has no secrets in {provider_env}, but Keyway has {sync_diff.vault_count}.")
        if ui.is_interactive() and ui.confirm(f"Push secrets to {provider_label} instead?", True):
            direction = Direction.PUSH

    plan = plan_sync(deps, target, direction, allow_delete, sync_diff=sync_diff)
    if plan.preview.total_changes == 0:
        ui.success("Already in sync. No changes needed.")
        return _record("success", repo=repo, provider=provider, environment=keyway_env, changes=0)
    show_preview(ui, plan)

    label = "Keyway" if direction is Direction.PULL else provider_label
    outcome = apply_sync(deps, plan, assume_yes=args.yes, target_label=label)
    fields: Dict[str, Any] = {
        "repo": repo,
        "provider": provider,
        "project": project.id,
        "environment": keyway_env,
        "provider_environment": provider_env,
        "direction": direction.value,
    }
    if isinstance(outcome, Cancelled):
        ui.warn("Sync cancelled.")
        return _record("cancelled", reason=outcome.reason, **fields)
    if isinstance(outcome, Failed):
        ui.error("Sync failed")
        _record("failed", error=str(outcome.error), **fields)
        raise outcome.error

    stats = outcome.result.stats if isinstance(outcome, Completed) and outcome.result else SyncStats()
    ui.success("Sync complete!")
    ui.dim(f"Created: {stats.created}")
    ui.dim(f"Updated: {stats.updated}")
    if stats.deleted:
        ui.dim(f"Deleted: {stats.deleted}")
    return _record(
        "success",
        created=stats.created,
        updated=stats.updated,
        deleted=stats.deleted,
        to_delete=plan.preview.to_delete,
        **fields,
    )


__all__ = ["choose_direction", "ensure_vault", "resolve_provider", "select_environments", "select_project", "sync"]
