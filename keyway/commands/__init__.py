"""Command entry points for the Keyway CLI."""

from .diff import diff
from .doctor import doctor
from .init import init
from .login import login, logout
from .pull import pull
from .push import push
from .run import run
from .session import Session, with_auth_retry
from .set_secret import set_secret
from .sync import sync

__all__ = [
    "Session",
    "diff",
    "doctor",
    "init",
    "login",
    "logout",
    "pull",
    "push",
    "run",
    "set_secret",
    "sync",
    "with_auth_retry",
]
