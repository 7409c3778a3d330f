"""Tests for the HTTP client using an in-process transport."""

from __future__ import annotations

import json
from typing import Callable, List

import httpx
import pytest

from keyway import __version__
from keyway.api.client import KeywayClient
from keyway.config import Settings
from keyway.core.sync_reconciler import Direction, SyncTarget
from keyway.errors import APIError, NetworkError

Handler = Callable[[httpx.Request], httpx.Response]


def _client(handler: Handler, token: str = "kw_token") -> KeywayClient:
    settings = Settings(api_url="https://api.test")
    return KeywayClient(token, settings=settings, transport=httpx.MockTransport(handler))


def test_requests_carry_auth_and_user_agent() -> None:
    seen: List[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return httpx.Response(200, json={"data": {"content": "API_KEY=abc\n"}})

    with _client(handler) as client:
        content = client.pull_secrets("acme/widgets", "production")

    assert content == "API_KEY=abc\n"
    request = seen[0]
    assert request.url.path == "/v1/secrets/pull"
    assert request.url.params["repo"] == "acme/widgets"
    assert request.url.params["environment"] == "production"
    assert request.headers["Authorization"] == "Bearer kw_token"
    assert request.headers["User-Agent"] == f"keyway-cli/{__version__}"


def test_anonymous_client_sends_no_authorization() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        assert "Authorization" not in request.headers
        assert json.loads(request.content) == {"repository": "acme/widgets"}
        return httpx.Response(
            200,
            json={
                "deviceCode": "dev",
                "userCode": "ABCD",
                "verificationUri": "https://keyway.sh/device",
                "expiresIn": 900,
                "interval": 5,
            },
        )

    with _client(handler, token=None) as client:
        session = client.start_device_login("acme/widgets")

    assert session.device_code == "dev"
    assert session.verification_url == "https://keyway.sh/device"
    assert session.expires_in == 900


def test_problem_details_become_api_error() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(
            403,
            json={
                "type": "https://keyway.sh/errors/plan-limit",
                "title": "Forbidden",
                "detail": "Free plan allows one private vault",
                "upgradeUrl": "https://keyway.sh/upgrade",
            },
        )

    with _client(handler) as client, pytest.raises(APIError) as excinfo:
        client.push_secrets("acme/widgets", "production", {"A": "1"})

    error = excinfo.value
    assert error.status_code == 403
    assert str(error) == "Free plan allows one private vault"
    assert error.is_plan_limit
    assert error.upgrade_url == "https://keyway.sh/upgrade"


def test_non_json_error_body_is_kept_as_detail() -> None:
    with _client(lambda request: httpx.Response(502, text="Bad Gateway")) as client:
        with pytest.raises(APIError) as excinfo:
            client.validate_token()
    assert excinfo.value.detail == "Bad Gateway"
    assert not excinfo.value.is_auth_error


def test_unauthorized_is_an_auth_error() -> None:
    with _client(lambda request: httpx.Response(401, json={"title": "Unauthorized"})) as client:
        with pytest.raises(APIError) as excinfo:
            client.get_vault_environments("acme/widgets")
    assert excinfo.value.is_auth_error
    assert excinfo.value.message == "Unauthorized"


def test_transport_failures_become_network_errors() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("[Errno 111] Connection refused", request=request)

    with _client(handler) as client, pytest.raises(NetworkError, match="connection refused"):
        client.pull_secrets("acme/widgets", "production")


def test_vault_existence_check() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        if request.url.path == "/v1/vaults/acme/widgets":
            return httpx.Response(200, json={"data": {"environments": []}})
        return httpx.Response(404, json={"detail": "Vault not found"})

    with _client(handler) as client:
        assert client.check_vault_exists("acme/widgets")
        assert not client.check_vault_exists("acme/missing")
        assert client.get_vault_environments("acme/widgets") == ["production"]


def test_push_parses_stats() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        body = json.loads(request.content)
        assert body == {"repoFullName": "acme/widgets", "environment": "staging", "secrets": {"A": "1"}}
        return httpx.Response(
            200,
            json={"data": {"success": True, "message": "Pushed 1 secret", "stats": {"created": 1}}},
        )

    with _client(handler) as client:
        response = client.push_secrets("acme/widgets", "staging", {"A": "1"})

    assert response.message == "Pushed 1 secret"
    assert response.stats.created == 1
    assert response.stats.deleted == 0


def test_provider_catalog() -> None:
    payload = {
        "data": {
            "projects": [{"id": "prj_1", "name": "widgets", "connectionId": "conn_1", "environments": ["production"]}],
            "connections": [{"id": "conn_1", "provider": "vercel", "providerTeamId": "team_1"}],
        }
    }

    def handler(request: httpx.Request) -> httpx.Response:
        assert request.url.path == "/v1/integrations/providers/vercel/all-projects"
        return httpx.Response(200, json=payload)

    with _client(handler) as client:
        catalog = client.get_all_provider_projects("vercel")

    assert catalog.projects[0].connection_id == "conn_1"
    assert catalog.connections[0].provider_team_id == "team_1"


def test_sync_diff_and_execute() -> None:
    target = SyncTarget("acme/widgets", "conn_1", "prj_1", "production", "production")
    requests: List[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        requests.append(request)
        if request.method == "GET":
            return httpx.Response(
                200,
                json={"data": {"onlyInKeyway": ["A"], "onlyInProvider": ["X"], "keywayCount": 1, "providerCount": 1}},
            )
        return httpx.Response(200, json={"data": {"success": True, "stats": {"created": 1}}})

    with _client(handler) as client:
        sync_diff = client.get_sync_diff(target)
        result = client.execute_sync(target, Direction.PUSH, False)

    assert sync_diff.only_in_vault == ["A"]
    assert result.success and result.stats.created == 1
    assert requests[0].url.path == "/v1/integrations/vaults/acme/widgets/sync/diff"
    assert requests[0].url.params["connectionId"] == "conn_1"
    body = json.loads(requests[1].content)
    assert body["direction"] == "push"
    assert body["allowDelete"] is False


def test_health_status_uses_head() -> None:
    seen: List[str] = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(f"{request.method} {request.url.path}")
        return httpx.Response(503)

    with _client(handler, token="") as client:
        assert client.health_status() == 503
    assert seen == ["HEAD /v1/health"]
