"""Match a GitHub repository to a project hosted by a deployment provider."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Iterable, List, Optional, Sequence

PERSONAL_TEAM = "personal"

_ENVIRONMENT_ALIASES: Dict[str, Dict[str, str]] = {
    "vercel": {"production": "production", "staging": "preview", "dev": "development", "development": "development"},
    "railway": {"production": "production", "staging": "staging", "dev": "development", "development": "development"},
}


def _opt(value: Any) -> Optional[str]:
    return str(value) if value else None


@dataclass(frozen=True)
class ProviderProject:
    """A project as listed by a provider integration."""

    id: str
    name: str
    service_id: Optional[str] = None
    service_name: Optional[str] = None
    linked_repo: Optional[str] = None
    environments: List[str] = field(default_factory=list)
    connection_id: str = ""
    team_id: Optional[str] = None
    team_name: Optional[str] = None

    @property
    def display_name(self) -> str:
        return self.service_name or self.name

    @classmethod
    def from_payload(cls, payload: Dict[str, Any]) -> "ProviderProject":
        environments = payload.get("environments") or []
        return cls(
            id=str(payload.get("id") or ""),
            name=str(payload.get("name") or ""),
            service_id=_opt(payload.get("serviceId")),
            service_name=_opt(payload.get("serviceName")),
            linked_repo=_opt(payload.get("linkedRepo")),
            environments=[str(env) for env in environments],
            connection_id=str(payload.get("connectionId") or ""),
            team_id=_opt(payload.get("teamId")),
            team_name=_opt(payload.get("teamName")),
        )


class MatchType(str, Enum):
    LINKED_REPO = "linked_repo"
    EXACT_NAME = "exact_name"
    PARTIAL_NAME = "partial_name"


@dataclass(frozen=True)
class ProjectMatch:
    project: ProviderProject
    match_type: MatchType

    @property
    def is_confident(self) -> bool:
        """Partial matches are a guess and should be confirmed by the user."""

        return self.match_type is not MatchType.PARTIAL_NAME


def _repo_name(repo_full_name: str) -> Optional[str]:
    parts = repo_full_name.split("/")
    if len(parts) != 2 or not parts[1]:
        return None
    return parts[1].lower()


def find_match(projects: Sequence[ProviderProject], repo_full_name: str) -> Optional[ProjectMatch]:
    """Return the best project for *repo_full_name*.

    A project whose linked repository equals the repo wins. Next comes a
    project named exactly like the repository, and last a single project
    whose name contains the repository name or vice versa. Several partial
    candidates are ambiguous and produce no match.
    """

    repo_name = _repo_name(repo_full_name)
    if repo_name is None:
        return None
    wanted = repo_full_name.lower()

    for project in projects:
        if project.linked_repo and project.linked_repo.lower() == wanted:
            return ProjectMatch(project, MatchType.LINKED_REPO)

    for project in projects:
        if project.name.lower() == repo_name:
            return ProjectMatch(project, MatchType.EXACT_NAME)

    partial = [
        project
        for project in projects
        if project.name and (repo_name in project.name.lower() or project.name.lower() in repo_name)
    ]
    if len(partial) == 1:
        return ProjectMatch(partial[0], MatchType.PARTIAL_NAME)
    return None


def project_matches_repo(project: ProviderProject, repo_full_name: str) -> bool:
    """Whether *project* plausibly belongs to *repo_full_name*."""

    if project.linked_repo:
        return project.linked_repo.lower() == repo_full_name.lower()
    repo_name = _repo_name(repo_full_name)
    return repo_name is not None and project.name.lower() == repo_name


def find_project(projects: Iterable[ProviderProject], query: str) -> Optional[ProviderProject]:
    """Look a project up by id, name or service name, ignoring case."""

    wanted = query.lower()
    for project in projects:
        candidates = (project.id, project.name, project.service_name or "")
        if any(candidate.lower() == wanted for candidate in candidates if candidate):
            return project
    return None


def filter_by_team(projects: Iterable[ProviderProject], team: str) -> List[ProviderProject]:
    """Keep projects owned by *team*; ``personal`` selects projects without one."""

    wanted = team.lower()
    selected: List[ProviderProject] = []
    for project in projects:
        if wanted == PERSONAL_TEAM and not project.team_id:
            selected.append(project)
        elif project.team_id and project.team_id.lower() == wanted:
            selected.append(project)
        elif project.team_name and project.team_name.lower() == wanted:
            selected.append(project)
    return selected


def available_teams(projects: Iterable[ProviderProject]) -> List[str]:
    teams = set()
    for project in projects:
        teams.add(project.team_name or project.team_id or PERSONAL_TEAM)
    return sorted(teams)


def map_provider_environment(provider: str, environment: str) -> str:
    """Translate a vault environment name into the provider's vocabulary."""

    aliases = _ENVIRONMENT_ALIASES.get(provider.lower())
    if aliases is None:
        return environment
    return aliases.get(environment.lower(), "production")


def resolve_provider_environment(
    provider: str,
    environment: str,
    project_environments: Sequence[str],
) -> Optional[str]:
    """Pick the provider environment to sync with, or ``None`` when unclear.

    The mapped name is used when the project offers it (or lists nothing);
    a project with a single environment uses that one.
    """

    mapped = map_provider_environment(provider, environment)
    if not project_environments or mapped in project_environments:
        return mapped
    if len(project_environments) == 1:
        return project_environments[0]
    return None


__all__ = [
    "MatchType",
    "PERSONAL_TEAM",
    "ProjectMatch",
    "ProviderProject",
    "available_teams",
    "filter_by_team",
    "find_match",
    "find_project",
    "map_provider_environment",
    "project_matches_repo",
    "resolve_provider_environment",
]
