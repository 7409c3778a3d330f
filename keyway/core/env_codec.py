"""Parsing and serialisation of ``.env`` files.

The format is one ``KEY=value`` per line. Blank lines and lines starting with
``#`` are ignored, the first ``=`` separates key from value, and a value
wrapped in one matching pair of single or double quotes loses exactly that
layer of quoting. Lines without ``=`` are skipped rather than rejected.
"""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Dict, List, Mapping, Optional, Union

SecretSet = Dict[str, str]

TEMPLATE_FILES = frozenset({".env.example", ".env.sample", ".env.template"})
DEFAULT_ENVIRONMENT = "development"


def _is_entry_line(stripped: str) -> bool:
    return bool(stripped) and not stripped.startswith("#")


def _unquote(value: str) -> str:
    if len(value) >= 2 and value[0] == value[-1] and value[0] in {'"', "'"}:
        return value[1:-1]
    return value


def parse(text: str) -> SecretSet:
    """Parse env *text* into an ordered ``{key: value}`` mapping."""

    result: SecretSet = {}
    for line in text.split("\n"):
        stripped = line.strip()
        if not _is_entry_line(stripped):
            continue
        key, sep, value = stripped.partition("=")
        if not sep:
            continue
        key = key.strip()
        if key:
            result[key] = _unquote(value)
    return result


def _needs_quotes(value: str) -> bool:
    # trailing whitespace is lost to line trimming, and an already quoted
    # value would lose its own quotes on the next parse
    if value != value.rstrip():
        return True
    return len(value) >= 2 and value[0] == value[-1] and value[0] in {'"', "'"}


def serialize(secrets: Mapping[str, str]) -> str:
    """Render *secrets* as ``KEY=value`` lines sorted by key."""

    lines = []
    for key in sorted(secrets):
        value = secrets[key]
        if _needs_quotes(value):
            value = f'"{value}"'
        lines.append(f"{key}={value}\n")
    return "".join(lines)


def count_entries(text: str) -> int:
    """Count the variables *text* defines, exactly as :func:`parse` reads them."""

    return len(parse(text))


# -- discovery ---------------------------------------------------------------


@dataclass(frozen=True)
class EnvCandidate:
    """A local env file and the vault environment it maps to."""

    path: Path
    environment: str

    @property
    def name(self) -> str:
        return self.path.name


def derive_env_from_file(file: Union[str, Path]) -> str:
    """Map ``.env`` to ``development`` and ``.env.<name>`` to ``<name>``."""

    base = Path(file).name
    if base.startswith(".env.") and len(base) > len(".env."):
        return base[len(".env."):]
    return DEFAULT_ENVIRONMENT


def discover_env_files(root: Optional[Path] = None) -> List[EnvCandidate]:
    """Return env files found directly in *root*, skipping templates."""

    base = root or Path.cwd()
    try:
        entries = sorted(base.iterdir(), key=lambda entry: entry.name)
    except OSError:
        return []
    candidates: List[EnvCandidate] = []
    for entry in entries:
        if not entry.name.startswith(".env") or entry.name in TEMPLATE_FILES:
            continue
        if entry.is_dir():
            continue
        candidates.append(EnvCandidate(path=entry, environment=derive_env_from_file(entry.name)))
    return candidates


__all__ = [
    "EnvCandidate",
    "SecretSet",
    "count_entries",
    "derive_env_from_file",
    "discover_env_files",
    "parse",
    "serialize",
]
