"""Per-invocation collaborators shared by every command.

A :class:`Session` is built once by the CLI entry point and handed to the
command handler. It owns the resolved bearer token and the API client, and
implements the login and single re-authentication retry rules.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Callable, List, Optional, TypeVar

from ..api.client import KeywayClient
from ..config import Settings, load_settings
from ..core.device_auth import DeviceAuthClient, DeviceSession
from ..core.sync_reconciler import Direction, SyncDiff, SyncResult, SyncTarget
from ..errors import APIError, UserInputError
from ..security.credential_vault import CredentialVault, StoredCredential
from ..ui.console import ConsoleUI
from ..utils.git import GitRepo

logger = logging.getLogger(__name__)

T = TypeVar("T")

ClientFactory = Callable[[Optional[str]], KeywayClient]
NOT_LOGGED_IN = "no Keyway session found - run 'keyway login' to authenticate"


@dataclass
class Session:
    settings: Settings
    ui: ConsoleUI
    vault: CredentialVault
    git: GitRepo
    client_factory: ClientFactory
    device_auth_factory: Optional[Callable[["Session"], DeviceAuthClient]] = None
    token: Optional[str] = None
    _clients: List[KeywayClient] = field(default_factory=list, repr=False)

    @classmethod
    def create(cls, settings: Optional[Settings] = None) -> "Session":
        resolved = settings or load_settings()
        return cls(
            settings=resolved,
            ui=ConsoleUI(ci=resolved.ci),
            vault=CredentialVault(),
            git=GitRepo(),
            client_factory=lambda token: KeywayClient(token, settings=resolved),
        )

    # -- clients --------------------------------------------------------
    def new_client(self, token: Optional[str] = None) -> KeywayClient:
        client = self.client_factory(token)
        self._clients.append(client)
        return client

    def client(self) -> KeywayClient:
        """Return an authenticated client, logging in first when needed."""

        token = self.ensure_login()
        for client in reversed(self._clients):
            if client.token == token:
                return client
        return self.new_client(token)

    def close(self) -> None:
        while self._clients:
            self._clients.pop().close()

    # -- login ----------------------------------------------------------
    def ensure_login(self) -> str:
        """Resolve a bearer token.

        ``KEYWAY_TOKEN`` wins, then the stored credential. Interactive
        sessions fall back to the device flow; anything else is an error.
        """

        if self.token:
            return self.token
        if self.settings.token:
            self.token = self.settings.token
            return self.token
        credential = self.vault.get_credential()
        if credential is not None:
            self.token = credential.token
            return self.token
        if not self.ui.is_interactive():
            raise UserInputError(NOT_LOGGED_IN)
        self.ui.warn("Not logged in to Keyway")
        credential = self.device_login()
        return credential.token

    def device_login(self, repository: Optional[str] = None) -> StoredCredential:
        if self.device_auth_factory is not None:
            flow = self.device_auth_factory(self)
        else:
            flow = DeviceAuthClient(self.new_client(None), self.vault, on_session=self._show_device_code)
        self.ui.step("Starting device login")
        credential = flow.login(repository)
        self.token = credential.token
        if credential.login_handle:
            self.ui.success(f"Logged in as @{credential.login_handle}")
        else:
            self.ui.success("Logged in")
        return credential

    def _show_device_code(self, device: DeviceSession) -> None:
        self.ui.message(f"Your code: {device.user_code}")
        self.ui.link("Open", device.verification_url)
        self.ui.dim("Waiting for approval in the browser...")

    # -- re-authentication ----------------------------------------------
    def handle_auth_error(self, error: APIError) -> str:
        """Drop the rejected credential and obtain a fresh token, or re-raise."""

        self.vault.clear_credential()
        self.token = None
        if self.ui.is_interactive():
            self.ui.warn("Session expired or invalid")
            if self.ui.confirm("Open browser to sign in again?", True):
                return self.device_login().token
            self.ui.dim("Run: keyway login")
            raise error
        self.ui.error("Session expired or invalid")
        self.ui.dim("Run: keyway logout && keyway login")
        raise error


def with_auth_retry(operation: Callable[[KeywayClient], T], session: Session) -> T:
    """Run *operation*; on a 401 re-authenticate and run it exactly once more."""

    try:
        return operation(session.client())
    except APIError as exc:
        if not exc.is_auth_error:
            raise
        logger.info("request rejected with 401, re-authenticating")
        session.handle_auth_error(exc)
    return operation(session.client())


class RetryingSyncAPI:
    """Sync endpoints routed through :func:`with_auth_retry`."""

    def __init__(self, session: Session) -> None:
        self.session = session

    def get_sync_diff(self, target: SyncTarget) -> SyncDiff:
        return with_auth_retry(lambda client: client.get_sync_diff(target), self.session)

    def execute_sync(self, target: SyncTarget, direction: Direction, allow_delete: bool) -> SyncResult:
        return with_auth_retry(
            lambda client: client.execute_sync(target, direction, allow_delete),
            self.session,
        )


__all__ = ["NOT_LOGGED_IN", "RetryingSyncAPI", "Session", "with_auth_retry"]
