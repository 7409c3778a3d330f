"""Environment driven settings for the Keyway client."""

from __future__ import annotations

import os
from dataclasses import dataclass
from typing import Optional

DEFAULT_API_URL = "https://api.keyway.sh"
DEFAULT_DASHBOARD_URL = "https://app.keyway.sh"
DEFAULT_TIMEOUT = 30.0


def _flag(name: str) -> bool:
    return os.environ.get(name, "").strip().lower() in {"1", "true"}


@dataclass(frozen=True)
class Settings:
    """Resolved runtime configuration."""

    api_url: str = DEFAULT_API_URL
    dashboard_url: str = DEFAULT_DASHBOARD_URL
    token: Optional[str] = None
    insecure: bool = False
    ci: bool = False
    timeout: float = DEFAULT_TIMEOUT

    def vault_url(self, repo: str) -> str:
        return f"{self.dashboard_url.rstrip('/')}/vaults/{repo}"


def load_settings() -> Settings:
    """Build :class:`Settings` from ``KEYWAY_*`` environment variables."""

    return Settings(
        api_url=(os.environ.get("KEYWAY_API_URL") or DEFAULT_API_URL).rstrip("/"),
        dashboard_url=os.environ.get("KEYWAY_DASHBOARD_URL") or DEFAULT_DASHBOARD_URL,
        token=os.environ.get("KEYWAY_TOKEN") or None,
        insecure=os.environ.get("KEYWAY_INSECURE") == "1",
        ci=_flag("CI"),
    )


__all__ = ["DEFAULT_API_URL", "DEFAULT_DASHBOARD_URL", "Settings", "load_settings"]
