"""Git helpers: GitHub repository detection and ``.gitignore`` checks."""

from __future__ import annotations

import re
import subprocess
from pathlib import Path
from typing import List, Optional

from ..errors import UserInputError

_SSH_URL = re.compile(r"git@github\.com:(.+)/(.+?)(?:\.git)?$")
_HTTPS_URL = re.compile(r"https://github\.com/(.+)/(.+?)(?:\.git)?$")

ENV_IGNORE_PATTERNS = (".env", ".env*", ".env.*", "*.env")
ENV_IGNORE_ENTRY = ".env*"


def parse_github_url(url: str) -> str:
    """Return ``owner/repo`` for an SSH or HTTPS GitHub remote URL."""

    for pattern in (_SSH_URL, _HTTPS_URL):
        match = pattern.search(url.strip())
        if match:
            return f"{match.group(1)}/{match.group(2)}"
    raise UserInputError(f"not a GitHub URL: {url}")


class GitRepo:
    """Read-only view of the git checkout around *cwd*."""

    def __init__(self, cwd: Optional[Path] = None) -> None:
        self.cwd = cwd

    def _git(self, *args: str) -> Optional[str]:
        try:
            result = subprocess.run(
                ["git", *args],
                capture_output=True,
                text=True,
                check=False,
                cwd=str(self.cwd) if self.cwd else None,
            )
        except OSError:
            return None
        if result.returncode != 0:
            return None
        return result.stdout.strip()

    def is_repository(self) -> bool:
        return self._git("rev-parse", "--is-inside-work-tree") == "true"

    def root(self) -> Optional[Path]:
        output = self._git("rev-parse", "--show-toplevel")
        return Path(output) if output else None

    def detect_repo(self) -> str:
        """Return ``owner/repo`` of the ``origin`` remote."""

        if not self.is_repository():
            raise UserInputError("not in a git repository")
        remote = self._git("remote", "get-url", "origin")
        if not remote:
            raise UserInputError("no remote origin configured")
        return parse_github_url(remote)

    def check_env_gitignore(self) -> bool:
        """Whether ``.gitignore`` at the repository root covers env files.

        Outside a repository there is nothing to warn about, so this is true.
        """

        root = self.root()
        if root is None:
            return True
        try:
            content = (root / ".gitignore").read_text(encoding="utf-8")
        except OSError:
            return False
        return any(line in ENV_IGNORE_PATTERNS for line in _rules(content))

    def add_env_to_gitignore(self) -> Path:
        root = self.root()
        if root is None:
            raise UserInputError("not in a git repository")
        path = root / ".gitignore"
        try:
            content = path.read_text(encoding="utf-8")
        except FileNotFoundError:
            content = ""
        if content and not content.endswith("\n"):
            content += "\n"
        path.write_text(content + ENV_IGNORE_ENTRY + "\n", encoding="utf-8")
        return path


def _rules(content: str) -> List[str]:
    rules = []
    for line in content.split("\n"):
        stripped = line.strip()
        if stripped and not stripped.startswith("#"):
            rules.append(stripped)
    return rules


__all__ = ["ENV_IGNORE_PATTERNS", "GitRepo", "parse_github_url"]
