"""Vault API access."""

from .client import KeywayClient, Provider, ProviderCatalog, PushResponse, TokenInfo

__all__ = ["KeywayClient", "Provider", "ProviderCatalog", "PushResponse", "TokenInfo"]
