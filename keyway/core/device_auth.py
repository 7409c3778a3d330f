"""OAuth 2.0 device authorization flow against the Keyway API.

The flow is a small blocking state machine::

    IDLE -> STARTED -> (pending -> STARTED)* -> APPROVED | EXPIRED | DENIED | TIMEOUT

Polling tolerates transient API and network failures until the deadline,
so a flaky connection does not force the user to restart. An approved token
is written to the :class:`~keyway.security.CredentialVault` before
:meth:`DeviceAuthClient.login` returns.
"""

from __future__ import annotations

import logging
import time
import webbrowser
from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, Dict, Optional, Protocol

from ..errors import DeviceAuthError, KeywayError
from ..security.credential_vault import CredentialVault, StoredCredential

logger = logging.getLogger(__name__)

MIN_POLL_INTERVAL = 3.0
DEFAULT_POLL_INTERVAL = 5.0
MAX_FLOW_SECONDS = 30 * 60


class DeviceAuthState(str, Enum):
    IDLE = "idle"
    STARTED = "started"
    APPROVED = "approved"
    EXPIRED = "expired"
    DENIED = "denied"
    TIMEOUT = "timeout"


class PollStatus(str, Enum):
    PENDING = "pending"
    APPROVED = "approved"
    EXPIRED = "expired"
    DENIED = "denied"


def _as_int(value: Any) -> int:
    try:
        return int(value)
    except (TypeError, ValueError):
        return 0


@dataclass(frozen=True)
class DeviceSession:
    """Codes returned by the start call; consumed by a single poll loop."""

    device_code: str
    user_code: str
    verification_uri: str
    verification_uri_complete: str = ""
    expires_in: int = 0
    interval: int = 0

    @property
    def verification_url(self) -> str:
        return self.verification_uri_complete or self.verification_uri

    @classmethod
    def from_payload(cls, payload: Dict[str, Any]) -> "DeviceSession":
        return cls(
            device_code=str(payload.get("deviceCode") or ""),
            user_code=str(payload.get("userCode") or ""),
            verification_uri=str(payload.get("verificationUri") or ""),
            verification_uri_complete=str(payload.get("verificationUriComplete") or ""),
            expires_in=_as_int(payload.get("expiresIn")),
            interval=_as_int(payload.get("interval")),
        )


@dataclass(frozen=True)
class PollResult:
    status: str
    token: Optional[str] = None
    login_handle: str = ""
    expires_at: Optional[str] = None
    message: str = ""

    @classmethod
    def from_payload(cls, payload: Dict[str, Any]) -> "PollResult":
        return cls(
            status=str(payload.get("status") or PollStatus.PENDING.value),
            token=payload.get("keywayToken") or None,
            login_handle=str(payload.get("githubLogin") or ""),
            expires_at=payload.get("expiresAt") or None,
            message=str(payload.get("message") or ""),
        )


class DeviceFlowAPI(Protocol):
    """The two vault API calls the flow depends on."""

    def start_device_login(
        self,
        repository: Optional[str] = None,
    ) -> DeviceSession:
        ...

    def poll_device_login(self, device_code: str) -> PollResult:
        ...


def effective_poll_interval(interval: float) -> float:
    """Apply the minimum floor; implausible intervals fall back to the default."""

    if interval < MIN_POLL_INTERVAL:
        return DEFAULT_POLL_INTERVAL
    return float(interval)


def effective_timeout(expires_in: float) -> float:
    """Cap the session lifetime so a broken server cannot hang the CLI."""

    if expires_in <= 0 or expires_in > MAX_FLOW_SECONDS:
        return float(MAX_FLOW_SECONDS)
    return float(expires_in)


def _open_browser(url: str) -> bool:
    try:
        return webbrowser.open(url)
    except (webbrowser.Error, OSError):
        logger.debug("could not open browser for %s", url, exc_info=True)
        return False


class DeviceAuthClient:
    """Drive one device login from start to a terminal outcome."""

    def __init__(
        self,
        api: DeviceFlowAPI,
        vault: CredentialVault,
        *,
        sleep: Callable[[float], None] = time.sleep,
        clock: Callable[[], float] = time.monotonic,
        open_browser: Callable[[str], bool] = _open_browser,
        on_session: Optional[Callable[[DeviceSession], None]] = None,
    ) -> None:
        self.api = api
        self.vault = vault
        self.state = DeviceAuthState.IDLE
        self._sleep = sleep
        self._clock = clock
        self._open_browser = open_browser
        self._on_session = on_session

    def start(
        self,
        repository: Optional[str] = None,
    ) -> DeviceSession:
        try:
            session = self.api.start_device_login(repository)
        except KeywayError as exc:
            raise DeviceAuthError("start_failed", f"failed to start login: {exc}") from exc
        self.state = DeviceAuthState.STARTED
        return session

    def wait_for_approval(self, session: DeviceSession) -> StoredCredential:
        """Poll until the session reaches a terminal state.

        Only an approval carrying a non-empty token ends the loop successfully.
        ``expired`` and ``denied`` end it immediately; running past the
        deadline ends it with a timeout. Nothing is persisted on failure.
        """

        interval = effective_poll_interval(session.interval)
        deadline = self._clock() + effective_timeout(session.expires_in)

        while self._clock() < deadline:
            self._sleep(interval)
            try:
                result = self.api.poll_device_login(session.device_code)
            except KeywayError:
                logger.debug("device poll failed, retrying", exc_info=True)
                continue

            if result.status == PollStatus.APPROVED.value:
                if not result.token:
                    continue
                credential = self.vault.save_credential(
                    result.token,
                    result.login_handle,
                    result.expires_at,
                )
                self.state = DeviceAuthState.APPROVED
                return credential
            if result.status == PollStatus.EXPIRED.value:
                self.state = DeviceAuthState.EXPIRED
                raise DeviceAuthError("expired", "login code expired")
            if result.status == PollStatus.DENIED.value:
                self.state = DeviceAuthState.DENIED
                raise DeviceAuthError("denied", "login denied")

        self.state = DeviceAuthState.TIMEOUT
        raise DeviceAuthError("timeout", "login timed out")

    def login(
        self,
        repository: Optional[str] = None,
    ) -> StoredCredential:
        """Run the whole flow and return the persisted credential."""

        session = self.start(repository)
        if self._on_session is not None:
            self._on_session(session)
        if session.verification_url:
            self._open_browser(session.verification_url)
        return self.wait_for_approval(session)


__all__ = [
    "DeviceAuthClient",
    "DeviceAuthState",
    "DeviceFlowAPI",
    "DeviceSession",
    "PollResult",
    "PollStatus",
    "effective_poll_interval",
    "effective_timeout",
]
