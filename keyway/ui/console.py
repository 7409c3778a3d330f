"""Rich powered terminal output and prompts for the Keyway commands."""

from __future__ import annotations

import sys
from typing import Iterable, Optional, Sequence

from rich.console import Console
from rich.markup import escape
from rich.panel import Panel
from rich.prompt import Confirm, Prompt

from ..errors import UserInputError

PREVIEW_LIMIT = 5


class ConsoleUI:
    """Everything the commands print or ask goes through this object."""

    def __init__(self, console: Optional[Console] = None, *, ci: bool = False) -> None:
        self.console = console or Console(highlight=False)
        self.ci = ci

    # ------------------------------------------------------------------
    # Interactivity
    # ------------------------------------------------------------------
    def is_interactive(self) -> bool:
        if self.ci:
            return False
        return sys.stdin.isatty() and self.console.is_terminal

    def confirm(self, question: str, default: bool = True) -> bool:
        return Confirm.ask(escape(question), default=default, console=self.console)

    def choose(self, question: str, options: Sequence[str], default: int = 0) -> int:
        """Ask the operator to pick one of *options* by number; return its index."""

        if not options:
            raise UserInputError(f"nothing to choose from: {question}")
        self.console.print(f"[bold]{escape(question)}[/]")
        for index, option in enumerate(options, start=1):
            self.console.print(f"  [cyan]{index}[/]) {escape(option)}")
        choices = [str(index) for index in range(1, len(options) + 1)]
        answer = Prompt.ask("Choice", choices=choices, default=choices[default], console=self.console)
        return int(answer) - 1

    def select(self, question: str, options: Sequence[str], default: int = 0) -> str:
        return options[self.choose(question, options, default)]

    def secret(self, question: str) -> str:
        return Prompt.ask(escape(question), password=True, console=self.console).strip()

    # ------------------------------------------------------------------
    # Output
    # ------------------------------------------------------------------
    def intro(self, command: str) -> None:
        self.console.print(Panel(f"keyway {escape(command)}", border_style="cyan", expand=False))

    def step(self, message: str) -> None:
        self.console.print(f"[cyan]>[/] {escape(message)}")

    def info(self, message: str) -> None:
        self.console.print(f"[blue]i[/] {escape(message)}")

    def success(self, message: str) -> None:
        self.console.print(f"[green]✓[/] {escape(message)}")

    def warn(self, message: str) -> None:
        self.console.print(f"[yellow]![/] {escape(message)}")

    def error(self, message: str) -> None:
        self.console.print(f"[red]✗[/] {escape(message)}")

    def message(self, message: str = "") -> None:
        self.console.print(escape(message))

    def dim(self, message: str) -> None:
        self.console.print(f"[dim]{escape(message)}[/]")

    def link(self, label: str, url: str) -> None:
        self.console.print(f"{escape(label)}: [link={url}]{escape(url)}[/link]")

    # ------------------------------------------------------------------
    # Diff rendering
    # ------------------------------------------------------------------
    def diff_added(self, key: str) -> None:
        self.console.print(f"  [green]+ {escape(key)}[/]")

    def diff_changed(self, key: str) -> None:
        self.console.print(f"  [yellow]~ {escape(key)}[/]")

    def diff_removed(self, key: str) -> None:
        self.console.print(f"  [red]- {escape(key)}[/]")

    def diff_kept(self, key: str) -> None:
        self.console.print(f"  [dim]• {escape(key)}[/]")

    def key_list(self, heading: str, keys: Iterable[str], *, style: str = "", limit: int = PREVIEW_LIMIT) -> None:
        """Print *heading* followed by at most *limit* of *keys*."""

        keys = list(keys)
        if not keys:
            return
        self.console.print(f"[{style}]{escape(heading)}[/]" if style else escape(heading))
        for key in keys[:limit]:
            self.dim(f"  {key}")
        if len(keys) > limit:
            self.dim(f"  ... and {len(keys) - limit} more")


__all__ = ["ConsoleUI", "PREVIEW_LIMIT"]
