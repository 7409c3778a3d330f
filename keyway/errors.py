"""Exception hierarchy shared by the Keyway client."""

from __future__ import annotations

from typing import Any, Optional


class KeywayError(RuntimeError):
    """Base class for every error surfaced to the command line."""


class APIError(KeywayError):
    """HTTP error returned by the vault API (RFC 7807 problem details)."""

    def __init__(
        self,
        status_code: int,
        *,
        detail: str = "",
        title: str = "",
        type_: str = "",
        upgrade_url: Optional[str] = None,
    ) -> None:
        self.status_code = status_code
        self.detail = detail
        self.title = title
        self.type = type_
        self.upgrade_url = upgrade_url
        super().__init__(self.message)

    @property
    def message(self) -> str:
        if self.detail:
            return self.detail
        if self.title:
            return self.title
        return f"HTTP {self.status_code}"

    @property
    def is_auth_error(self) -> bool:
        return self.status_code == 401

    @property
    def is_not_found(self) -> bool:
        return self.status_code == 404

    @property
    def is_plan_limit(self) -> bool:
        return self.status_code == 403 and bool(self.upgrade_url)

    @classmethod
    def from_payload(cls, status_code: int, payload: Any, raw: str = "") -> "APIError":
        if not isinstance(payload, dict):
            return cls(status_code, detail=raw)
        return cls(
            status_code,
            detail=str(payload.get("detail") or ""),
            title=str(payload.get("title") or ""),
            type_=str(payload.get("type") or ""),
            upgrade_url=payload.get("upgradeUrl") or None,
        )


class NetworkError(KeywayError):
    """Raised when the API could not be reached at all."""


class CredentialStoreError(KeywayError):
    """Raised when credentials cannot be written to disk."""


class DeviceAuthError(KeywayError):
    """Terminal failure of the device authorization flow."""

    def __init__(self, reason: str, message: str) -> None:
        self.reason = reason
        super().__init__(message)


class UserInputError(KeywayError):
    """Ambiguous or missing input that the operator has to resolve."""


__all__ = [
    "APIError",
    "CredentialStoreError",
    "DeviceAuthError",
    "KeywayError",
    "NetworkError",
    "UserInputError",
]
