from __future__ import annotations

import io
import sys
from pathlib import Path
from typing import Dict, Iterator, List, Optional, Sequence

import pytest
from rich.console import Console

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from keyway.api.client import PushResponse, PushStats, TokenInfo  # noqa: E402
from keyway.cli import _build_parser  # noqa: E402
from keyway.commands.session import Session  # noqa: E402
from keyway.config import Settings  # noqa: E402
from keyway.core.env_codec import serialize  # noqa: E402
from keyway.errors import APIError  # noqa: E402
from keyway.security.credential_vault import CredentialVault  # noqa: E402
from keyway.ui.console import ConsoleUI  # noqa: E402
from keyway.utils.logbook import reset_logger  # noqa: E402


@pytest.fixture(autouse=True)
def isolated_home(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Iterator[Path]:
    home = tmp_path / "home"
    monkeypatch.setenv("KEYWAY_HOME", str(home))
    monkeypatch.setenv("KEYWAY_LOG_DIR", str(home / "logs"))
    monkeypatch.setenv("CI", "1")
    monkeypatch.delenv("KEYWAY_TOKEN", raising=False)
    monkeypatch.delenv("KEYWAY_API_URL", raising=False)
    reset_logger()
    yield home
    reset_logger()


class ScriptedUI(ConsoleUI):
    """Console UI answering prompts from a queue and recording output."""

    def __init__(self, interactive: bool = False, answers: Sequence[object] = ()) -> None:
        super().__init__(Console(file=io.StringIO(), width=200, color_system=None, highlight=False))
        self.interactive = interactive
        self.answers: List[object] = list(answers)
        self.questions: List[str] = []

    def is_interactive(self) -> bool:
        return self.interactive

    def _next(self, question: str, fallback: object) -> object:
        self.questions.append(question)
        if self.answers:
            return self.answers.pop(0)
        return fallback

    def confirm(self, question: str, default: bool = True) -> bool:
        return bool(self._next(question, default))

    def choose(self, question: str, options: Sequence[str], default: int = 0) -> int:
        answer = self._next(question, default)
        if isinstance(answer, int) and not isinstance(answer, bool):
            assert 0 <= answer < len(options), f"index {answer} out of range for {question!r}"
            return answer
        assert answer in options, f"{answer!r} not offered for {question!r}: {list(options)}"
        return list(options).index(answer)

    def secret(self, question: str) -> str:
        return str(self._next(question, ""))

    @property
    def output(self) -> str:
        return self.console.file.getvalue()


class FakeGit:
    def __init__(self, repo: str = "acme/widgets", ignored: bool = True, inside: bool = True) -> None:
        self.repo = repo
        self.ignored = ignored
        self.inside = inside

    def is_repository(self) -> bool:
        return self.inside

    def detect_repo(self) -> str:
        return self.repo

    def check_env_gitignore(self) -> bool:
        return self.ignored

    def add_env_to_gitignore(self) -> None:
        self.ignored = True


class FakeClient:
    """In-memory stand in for :class:`keyway.api.client.KeywayClient`."""

    def __init__(self, vault: Optional[Dict[str, Dict[str, str]]] = None, *, auth_failures: int = 0) -> None:
        self.vault: Dict[str, Dict[str, str]] = vault if vault is not None else {}
        self.token: Optional[str] = None
        self.auth_failures = auth_failures
        self.pushed: List[Dict[str, object]] = []
        self.calls: List[str] = []
        self.closed = False
        self.vault_exists = bool(self.vault)
        self.health = 200

    def _check_auth(self, name: str) -> None:
        self.calls.append(name)
        if self.auth_failures:
            self.auth_failures -= 1
            raise APIError(401, detail="token expired")

    def close(self) -> None:
        self.closed = True

    def __enter__(self) -> "FakeClient":
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()

    def validate_token(self) -> TokenInfo:
        self._check_auth("validate_token")
        return TokenInfo(username="octocat", plan="free")

    def pull_secrets(self, repo: str, environment: str) -> str:
        self._check_auth("pull_secrets")
        if environment not in self.vault:
            raise APIError(404, detail=f"environment {environment} not found")
        return serialize(self.vault[environment])

    def push_secrets(self, repo: str, environment: str, secrets: Dict[str, str]) -> PushResponse:
        self._check_auth("push_secrets")
        self.pushed.append({"repo": repo, "environment": environment, "secrets": dict(secrets)})
        before = self.vault.get(environment, {})
        self.vault[environment] = dict(secrets)
        return PushResponse(
            success=True,
            message="Secrets pushed",
            stats=PushStats(
                created=len(set(secrets) - set(before)),
                updated=sum(1 for key in secrets if key in before and before[key] != secrets[key]),
                deleted=len(set(before) - set(secrets)),
            ),
        )

    def get_vault_environments(self, repo: str) -> List[str]:
        self._check_auth("get_vault_environments")
        return sorted(self.vault) or ["production"]

    def check_vault_exists(self, repo: str) -> bool:
        self._check_auth("check_vault_exists")
        return self.vault_exists

    def init_vault(self, repo: str) -> dict:
        self._check_auth("init_vault")
        if self.vault_exists:
            raise APIError(409, detail="Vault already exists")
        self.vault_exists = True
        return {}

    def health_status(self) -> int:
        self.calls.append("health_status")
        return self.health


def make_session(
    tmp_path: Path,
    *,
    client: Optional[FakeClient] = None,
    ui: Optional[ScriptedUI] = None,
    token: Optional[str] = "env-token",
    git: Optional[FakeGit] = None,
) -> Session:
    fake = client or FakeClient()

    def factory(value: Optional[str]) -> FakeClient:
        fake.token = value
        return fake

    return Session(
        settings=Settings(token=token, ci=True),
        ui=ui or ScriptedUI(),
        vault=CredentialVault(tmp_path / "config.json", tmp_path / ".key"),
        git=git or FakeGit(),
        client_factory=factory,
    )


def parse_args(*argv: str):
    return _build_parser().parse_args(list(argv))
