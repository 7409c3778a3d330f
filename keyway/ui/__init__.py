"""Terminal user interface for Keyway."""

from .console import ConsoleUI

__all__ = ["ConsoleUI"]
