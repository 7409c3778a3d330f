"""Token resolution and the single re-authentication retry."""

from __future__ import annotations

from pathlib import Path
from typing import List, Optional

import pytest

from conftest import FakeClient, ScriptedUI, make_session
from keyway.commands.session import NOT_LOGGED_IN, Session, with_auth_retry
from keyway.errors import APIError, UserInputError
from keyway.security.credential_vault import StoredCredential


class FakeFlow:
    """Device login that approves immediately with a fixed token."""

    def __init__(self, session: Session, token: str = "kw_fresh") -> None:
        self.session = session
        self.token = token
        self.repositories: List[Optional[str]] = []

    def login(self, repository: Optional[str] = None) -> StoredCredential:
        self.repositories.append(repository)
        return self.session.vault.save_credential(self.token, "octocat")


def _with_flow(session: Session) -> List[FakeFlow]:
    flows: List[FakeFlow] = []

    def factory(current: Session) -> FakeFlow:
        flow = FakeFlow(current)
        flows.append(flow)
        return flow

    session.device_auth_factory = factory
    return flows


def test_environment_token_wins(tmp_path: Path) -> None:
    session = make_session(tmp_path, token="env-token")
    session.vault.save_credential("stored-token")
    assert session.ensure_login() == "env-token"


def test_stored_credential_is_used(tmp_path: Path) -> None:
    session = make_session(tmp_path, token=None)
    session.vault.save_credential("stored-token")
    assert session.ensure_login() == "stored-token"
    assert session.client().token == "stored-token"


def test_not_logged_in_without_terminal(tmp_path: Path) -> None:
    session = make_session(tmp_path, token=None)
    with pytest.raises(UserInputError) as excinfo:
        session.ensure_login()
    assert str(excinfo.value) == NOT_LOGGED_IN


def test_interactive_session_starts_device_login(tmp_path: Path) -> None:
    session = make_session(tmp_path, token=None, ui=ScriptedUI(interactive=True))
    flows = _with_flow(session)

    assert session.ensure_login() == "kw_fresh"
    assert len(flows) == 1
    assert session.vault.get_credential().token == "kw_fresh"


def test_retry_once_after_reauthentication(tmp_path: Path) -> None:
    client = FakeClient({"production": {"A": "1"}}, auth_failures=1)
    ui = ScriptedUI(interactive=True, answers=[True])
    session = make_session(tmp_path, client=client, ui=ui, token=None)
    session.vault.save_credential("stale-token")
    _with_flow(session)

    content = with_auth_retry(lambda api: api.pull_secrets("acme/widgets", "production"), session)

    assert content == "A=1\n"
    assert client.calls == ["pull_secrets", "pull_secrets"]
    assert ui.questions == ["Open browser to sign in again?"]
    assert session.token == "kw_fresh"


def test_second_rejection_is_not_retried(tmp_path: Path) -> None:
    client = FakeClient({"production": {"A": "1"}}, auth_failures=2)
    session = make_session(tmp_path, client=client, ui=ScriptedUI(interactive=True, answers=[True]), token=None)
    _with_flow(session)

    with pytest.raises(APIError) as excinfo:
        with_auth_retry(lambda api: api.pull_secrets("acme/widgets", "production"), session)

    assert excinfo.value.is_auth_error
    assert client.calls == ["pull_secrets", "pull_secrets"]


def test_auth_error_without_terminal_clears_credential(tmp_path: Path) -> None:
    client = FakeClient({"production": {"A": "1"}}, auth_failures=1)
    session = make_session(tmp_path, client=client, token=None)
    session.vault.save_credential("stale-token")

    with pytest.raises(APIError):
        with_auth_retry(lambda api: api.pull_secrets("acme/widgets", "production"), session)

    assert session.vault.get_credential() is None
    assert client.calls == ["pull_secrets"]
    assert "keyway logout && keyway login" in session.ui.output


def test_declined_reauthentication_reraises(tmp_path: Path) -> None:
    client = FakeClient({"production": {"A": "1"}}, auth_failures=1)
    ui = ScriptedUI(interactive=True, answers=[False])
    session = make_session(tmp_path, client=client, ui=ui, token=None)
    session.vault.save_credential("stale-token")
    flows = _with_flow(session)

    with pytest.raises(APIError):
        with_auth_retry(lambda api: api.pull_secrets("acme/widgets", "production"), session)

    assert flows == []
    assert "Run: keyway login" in ui.output


def test_non_auth_errors_are_not_retried(tmp_path: Path) -> None:
    client = FakeClient()
    session = make_session(tmp_path, client=client)

    with pytest.raises(APIError) as excinfo:
        with_auth_retry(lambda api: api.pull_secrets("acme/widgets", "production"), session)

    assert excinfo.value.is_not_found
    assert client.calls == ["pull_secrets"]


def test_close_closes_clients(tmp_path: Path) -> None:
    client = FakeClient()
    session = make_session(tmp_path, client=client)
    session.client()
    session.close()
    assert client.closed
