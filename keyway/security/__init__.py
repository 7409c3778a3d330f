"""Local credential storage."""

from .credential_vault import CiphertextError, CredentialVault, StoredCredential

__all__ = ["CiphertextError", "CredentialVault", "StoredCredential"]
