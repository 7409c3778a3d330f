"""Behaviour of push, pull, diff and the login commands against fakes."""

from __future__ import annotations

import json
import os
import stat
from pathlib import Path

import pytest

from conftest import FakeClient, ScriptedUI, make_session, parse_args
from keyway.commands import diff, login, logout, pull, push
from keyway.commands.diff import compare_secrets, normalize_env_name, preview_value
from keyway.commands.login import login_with_token
from keyway.core.env_codec import parse
from keyway.errors import KeywayError, UserInputError


# -- push -------------------------------------------------------------------


def test_push_keeps_vault_only_secrets(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.chdir(tmp_path)
    (tmp_path / ".env").write_text("API_KEY=new\n", encoding="utf-8")
    client = FakeClient({"development": {"API_KEY": "old", "LEGACY": "x"}})
    session = make_session(tmp_path, client=client)

    record = push(parse_args("push", "--yes"), session)

    assert client.pushed == [
        {"repo": "acme/widgets", "environment": "development", "secrets": {"API_KEY": "new", "LEGACY": "x"}}
    ]
    assert record["changed"] == ["API_KEY"]
    assert record["kept_remote"] == ["LEGACY"]
    assert record["removed"] == []
    assert "LEGACY" in session.ui.output


def test_push_prune_sends_local_file_only(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.chdir(tmp_path)
    (tmp_path / ".env.production").write_text("API_KEY=new\n", encoding="utf-8")
    client = FakeClient({"production": {"API_KEY": "old", "LEGACY": "x"}})
    session = make_session(tmp_path, client=client)

    record = push(parse_args("push", "--yes", "--prune"), session)

    assert client.pushed[0]["secrets"] == {"API_KEY": "new"}
    assert client.pushed[0]["environment"] == "production"
    assert record["removed"] == ["LEGACY"]


def test_push_to_new_environment(tmp_path: Path) -> None:
    env_file = tmp_path / "secrets.env"
    env_file.write_text("A=1\nB=2\n", encoding="utf-8")
    client = FakeClient()
    session = make_session(tmp_path, client=client)

    record = push(parse_args("push", "-f", str(env_file), "-e", "staging", "-y"), session)

    assert client.vault == {"staging": {"A": "1", "B": "2"}}
    assert record["added"] == ["A", "B"]


def test_push_requires_yes_without_terminal(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.chdir(tmp_path)
    (tmp_path / ".env").write_text("API_KEY=new\n", encoding="utf-8")
    client = FakeClient()

    with pytest.raises(UserInputError, match="use --yes"):
        push(parse_args("push"), make_session(tmp_path, client=client))
    assert client.pushed == []


def test_push_without_env_file(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.chdir(tmp_path)
    with pytest.raises(UserInputError, match="No .env file found"):
        push(parse_args("push", "-y"), make_session(tmp_path))


def test_push_rejects_file_without_entries(tmp_path: Path) -> None:
    env_file = tmp_path / ".env"
    env_file.write_text("# only a comment\n", encoding="utf-8")
    with pytest.raises(UserInputError, match="No valid environment variables"):
        push(parse_args("push", "-f", str(env_file), "-y"), make_session(tmp_path))


def test_push_interactive_confirmation_declined(tmp_path: Path) -> None:
    env_file = tmp_path / ".env"
    env_file.write_text("A=1\n", encoding="utf-8")
    client = FakeClient()
    ui = ScriptedUI(interactive=True, answers=["development", False])

    record = push(parse_args("push", "-f", str(env_file)), make_session(tmp_path, client=client, ui=ui))

    assert record["status"] == "aborted"
    assert client.pushed == []


# -- pull -------------------------------------------------------------------


def test_pull_merges_local_only_secrets(tmp_path: Path) -> None:
    env_file = tmp_path / ".env"
    env_file.write_text("LOCAL_ONLY=keepme\n", encoding="utf-8")
    client = FakeClient({"development": {"API_KEY": "abc"}})

    record = pull(parse_args("pull", "-f", str(env_file), "-y"), make_session(tmp_path, client=client))

    assert parse(env_file.read_text(encoding="utf-8")) == {"API_KEY": "abc", "LOCAL_ONLY": "keepme"}
    assert record["preserved"] == ["LOCAL_ONLY"]
    assert record["added"] == ["API_KEY"]


def test_pull_force_replaces_file(tmp_path: Path) -> None:
    env_file = tmp_path / ".env"
    env_file.write_text("LOCAL_ONLY=keepme\n", encoding="utf-8")
    client = FakeClient({"production": {"API_KEY": "abc"}})

    record = pull(parse_args("pull", "-e", "production", "-f", str(env_file), "-y", "--force"), make_session(tmp_path, client=client))

    assert env_file.read_text(encoding="utf-8") == "API_KEY=abc\n"
    assert record["removed"] == ["LOCAL_ONLY"]


def test_pull_existing_file_needs_yes(tmp_path: Path) -> None:
    env_file = tmp_path / ".env"
    env_file.write_text("A=1\n", encoding="utf-8")
    client = FakeClient({"development": {"A": "2"}})

    with pytest.raises(UserInputError, match="exists - use --yes"):
        pull(parse_args("pull", "-f", str(env_file)), make_session(tmp_path, client=client))
    assert env_file.read_text(encoding="utf-8") == "A=1\n"


@pytest.mark.skipif(os.name == "nt", reason="POSIX permissions")
def test_pull_creates_owner_only_file(tmp_path: Path) -> None:
    env_file = tmp_path / ".env.development"
    client = FakeClient({"development": {"A": "1"}})

    pull(parse_args("pull", "-f", str(env_file)), make_session(tmp_path, client=client))

    assert env_file.read_text(encoding="utf-8") == "A=1\n"
    assert stat.S_IMODE(env_file.stat().st_mode) == 0o600


# -- diff -------------------------------------------------------------------


def test_preview_value_hides_secret() -> None:
    assert preview_value("supersecret") == "**et (11 chars)"
    assert preview_value("") == "(empty)"


def test_normalize_env_name() -> None:
    assert normalize_env_name("PROD") == "production"
    assert normalize_env_name("stg") == "staging"
    assert normalize_env_name("qa") == "qa"


def test_compare_secrets() -> None:
    comparison = compare_secrets("production", "staging", {"A": "1", "B": "22"}, {"B": "33", "C": "3"})
    assert comparison.only_in_env1 == ["A"]
    assert comparison.only_in_env2 == ["C"]
    assert [item.key for item in comparison.different] == ["B"]
    assert comparison.different[0].value1 == ""
    assert not comparison.identical


def test_diff_json_output(tmp_path: Path) -> None:
    client = FakeClient({"production": {"A": "1", "B": "2"}, "staging": {"A": "1", "B": "3", "C": "4"}})
    session = make_session(tmp_path, client=client)

    record = diff(parse_args("diff", "prod", "stg", "--json"), session)

    payload = json.loads(session.ui.output)
    assert payload["env1"] == "production"
    assert payload["only_in_env2"] == ["C"]
    assert payload["different"][0]["preview2"] == "**3 (1 chars)"
    assert payload["stats"]["same"] == 1
    assert record["stats"]["different"] == 1


def test_diff_same_environment(tmp_path: Path) -> None:
    with pytest.raises(UserInputError, match="same environment"):
        diff(parse_args("diff", "prod", "production"), make_session(tmp_path))


def test_diff_missing_arguments_without_terminal(tmp_path: Path) -> None:
    with pytest.raises(UserInputError, match="missing arguments"):
        diff(parse_args("diff", "production"), make_session(tmp_path))


def test_diff_tolerates_one_missing_environment(tmp_path: Path) -> None:
    client = FakeClient({"production": {"A": "1"}})
    session = make_session(tmp_path, client=client)

    record = diff(parse_args("diff", "production", "staging"), session)

    assert record["stats"]["only_in_env1"] == 1
    assert "Could not fetch staging" in session.ui.output


def test_diff_fails_when_both_fetches_fail(tmp_path: Path) -> None:
    with pytest.raises(KeywayError, match="failed to fetch environments"):
        diff(parse_args("diff", "production", "staging"), make_session(tmp_path, client=FakeClient()))


# -- login / logout ---------------------------------------------------------


def test_login_with_personal_access_token(tmp_path: Path) -> None:
    session = make_session(tmp_path, token=None)

    record = login(parse_args("login", "--token", "github_pat_abc"), session)

    credential = session.vault.get_credential()
    assert credential.token == "github_pat_abc"
    assert credential.login_handle == "octocat"
    assert credential.expires_at is None
    assert record["login"] == "octocat"


def test_login_rejects_classic_tokens(tmp_path: Path) -> None:
    session = make_session(tmp_path, token=None)
    with pytest.raises(UserInputError, match="github_pat_"):
        login_with_token(session, "ghp_classic")
    assert session.vault.get_credential() is None


def test_login_token_flag_requires_value_without_terminal(tmp_path: Path) -> None:
    with pytest.raises(UserInputError):
        login(parse_args("login", "--token"), make_session(tmp_path, token=None))


def test_logout_clears_credential(tmp_path: Path) -> None:
    session = make_session(tmp_path, token=None)
    session.vault.save_credential("kw_token")

    logout(parse_args("logout"), session)

    assert session.vault.get_credential() is None
    assert "Logged out" in session.ui.output
