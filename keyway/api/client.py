"""HTTP client for the Keyway vault API."""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Mapping, Optional
from urllib.parse import quote

import httpx

from .. import __version__
from ..config import Settings, load_settings
from ..core.device_auth import DeviceSession, PollResult
from ..core.project_matcher import ProviderProject
from ..core.sync_reconciler import Direction, SyncDiff, SyncResult, SyncTarget
from ..errors import APIError, NetworkError

logger = logging.getLogger(__name__)

DEFAULT_ENVIRONMENTS = ["production"]


@dataclass(frozen=True)
class PushStats:
    created: int = 0
    updated: int = 0
    deleted: int = 0


@dataclass(frozen=True)
class PushResponse:
    success: bool
    message: str = ""
    stats: Optional[PushStats] = None


@dataclass(frozen=True)
class TokenInfo:
    username: str
    plan: str = ""


@dataclass(frozen=True)
class Provider:
    name: str
    display_name: str
    configured: bool = False


@dataclass(frozen=True)
class Connection:
    id: str
    provider: str = ""
    provider_team_id: Optional[str] = None


@dataclass(frozen=True)
class ProviderCatalog:
    projects: List[ProviderProject] = field(default_factory=list)
    connections: List[Connection] = field(default_factory=list)


def _friendly_network_error(exc: httpx.HTTPError) -> NetworkError:
    if isinstance(exc, httpx.TimeoutException):
        return NetworkError("connection timed out - check your network connection")
    text = str(exc).lower()
    if "name or service not known" in text or "nodename nor servname" in text or "getaddrinfo" in text:
        return NetworkError("DNS lookup failed - check your internet connection")
    if "connection refused" in text:
        return NetworkError("connection refused - is the API server running?")
    if "certificate" in text:
        return NetworkError("SSL certificate error - check your system time")
    return NetworkError(f"network error: {exc}")


def _repo_path(repo: str) -> str:
    return quote(repo, safe="/")


class KeywayClient:
    """Thin wrapper over :class:`httpx.Client` speaking the vault API.

    Success bodies are JSON; most endpoints wrap their payload in ``data``.
    Status codes >= 400 raise :class:`~keyway.errors.APIError` and transport
    failures raise :class:`~keyway.errors.NetworkError`.
    """

    def __init__(
        self,
        token: Optional[str] = None,
        *,
        settings: Optional[Settings] = None,
        transport: Optional[httpx.BaseTransport] = None,
    ) -> None:
        self.settings = settings or load_settings()
        self.token = token
        headers = {
            "Content-Type": "application/json",
            "User-Agent": f"keyway-cli/{__version__}",
        }
        if token:
            headers["Authorization"] = f"Bearer {token}"
        self._http = httpx.Client(
            base_url=self.settings.api_url,
            headers=headers,
            timeout=self.settings.timeout,
            verify=not self.settings.insecure,
            transport=transport,
        )

    def close(self) -> None:
        self._http.close()

    def __enter__(self) -> "KeywayClient":
        return self

    def __exit__(self, *exc_info: Any) -> None:
        self.close()

    # -- transport ------------------------------------------------------
    def _request(
        self,
        method: str,
        path: str,
        *,
        body: Optional[Mapping[str, Any]] = None,
        params: Optional[Mapping[str, Any]] = None,
    ) -> Any:
        try:
            response = self._http.request(method, path, json=body, params=params)
        except httpx.HTTPError as exc:
            raise _friendly_network_error(exc) from exc

        logger.debug("%s %s -> %s", method, path, response.status_code)
        text = response.text
        if response.status_code >= 400:
            try:
                payload = json.loads(text)
            except ValueError:
                raise APIError(response.status_code, detail=text) from None
            raise APIError.from_payload(response.status_code, payload, raw=text)

        if not text:
            return {}
        try:
            return json.loads(text)
        except ValueError as exc:
            raise APIError(response.status_code, detail=f"failed to decode response: {exc}") from exc

    def health_status(self) -> int:
        """Status code of ``HEAD /v1/health``; transport failures raise."""

        try:
            response = self._http.head("/v1/health")
        except httpx.HTTPError as exc:
            raise _friendly_network_error(exc) from exc
        return response.status_code

    def _data(self, method: str, path: str, **kwargs: Any) -> Dict[str, Any]:
        payload = self._request(method, path, **kwargs)
        data = payload.get("data") if isinstance(payload, dict) else None
        return data if isinstance(data, dict) else {}

    # -- auth -----------------------------------------------------------
    def start_device_login(
        self,
        repository: Optional[str] = None,
    ) -> DeviceSession:
        body = {"repository": repository} if repository else None
        payload = self._request("POST", "/v1/auth/device/start", body=body)
        return DeviceSession.from_payload(payload if isinstance(payload, dict) else {})

    def poll_device_login(self, device_code: str) -> PollResult:
        payload = self._request("POST", "/v1/auth/device/poll", body={"deviceCode": device_code})
        return PollResult.from_payload(payload if isinstance(payload, dict) else {})

    def validate_token(self) -> TokenInfo:
        data = self._data("POST", "/v1/auth/token/validate", body={})
        return TokenInfo(username=str(data.get("username") or ""), plan=str(data.get("plan") or ""))

    # -- secrets --------------------------------------------------------
    def pull_secrets(self, repo: str, environment: str) -> str:
        data = self._data("GET", "/v1/secrets/pull", params={"repo": repo, "environment": environment})
        return str(data.get("content") or "")

    def push_secrets(self, repo: str, environment: str, secrets: Mapping[str, str]) -> PushResponse:
        body = {"repoFullName": repo, "environment": environment, "secrets": dict(secrets)}
        data = self._data("POST", "/v1/secrets/push", body=body)
        stats = data.get("stats")
        return PushResponse(
            success=bool(data.get("success", True)),
            message=str(data.get("message") or "Secrets pushed"),
            stats=PushStats(
                created=int(stats.get("created") or 0),
                updated=int(stats.get("updated") or 0),
                deleted=int(stats.get("deleted") or 0),
            )
            if isinstance(stats, dict)
            else None,
        )

    # -- vaults ---------------------------------------------------------
    def check_vault_exists(self, repo: str) -> bool:
        try:
            self._request("GET", f"/v1/vaults/{_repo_path(repo)}")
        except APIError as exc:
            if exc.is_not_found:
                return False
            raise
        return True

    def init_vault(self, repo: str) -> Dict[str, Any]:
        return self._data("POST", "/v1/vaults", body={"repoFullName": repo})

    def get_vault_environments(self, repo: str) -> List[str]:
        data = self._data("GET", f"/v1/vaults/{_repo_path(repo)}")
        environments = [str(env) for env in data.get("environments") or []]
        return environments or list(DEFAULT_ENVIRONMENTS)

    # -- providers ------------------------------------------------------
    def get_providers(self) -> List[Provider]:
        data = self._data("GET", "/v1/integrations")
        return [
            Provider(
                name=str(item.get("name") or ""),
                display_name=str(item.get("displayName") or item.get("name") or ""),
                configured=bool(item.get("configured")),
            )
            for item in data.get("providers") or []
        ]

    def get_all_provider_projects(self, provider: str) -> ProviderCatalog:
        data = self._data("GET", f"/v1/integrations/providers/{quote(provider, safe='')}/all-projects")
        return ProviderCatalog(
            projects=[ProviderProject.from_payload(item) for item in data.get("projects") or []],
            connections=[
                Connection(
                    id=str(item.get("id") or ""),
                    provider=str(item.get("provider") or ""),
                    provider_team_id=item.get("providerTeamId") or None,
                )
                for item in data.get("connections") or []
            ],
        )

    # -- sync -----------------------------------------------------------
    def _sync_path(self, target: SyncTarget, suffix: str = "") -> str:
        return f"/v1/integrations/vaults/{_repo_path(target.repo)}/sync{suffix}"

    def get_sync_diff(self, target: SyncTarget) -> SyncDiff:
        params = {
            "connectionId": target.connection_id,
            "projectId": target.project_id,
            "keywayEnvironment": target.keyway_environment,
            "providerEnvironment": target.provider_environment,
        }
        if target.service_id:
            params["serviceId"] = target.service_id
        return SyncDiff.from_payload(self._data("GET", self._sync_path(target, "/diff"), params=params))

    def execute_sync(self, target: SyncTarget, direction: Direction, allow_delete: bool) -> SyncResult:
        body = target.options(direction, allow_delete)
        return SyncResult.from_payload(self._data("POST", self._sync_path(target), body=body))


__all__ = [
    "Connection",
    "KeywayClient",
    "Provider",
    "ProviderCatalog",
    "PushResponse",
    "PushStats",
    "TokenInfo",
]
