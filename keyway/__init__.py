"""Keyway command line client."""

__version__ = "0.4.0"

__all__ = ["__version__"]
