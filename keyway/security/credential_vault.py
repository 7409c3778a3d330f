"""Encrypted on-disk storage for the Keyway session credential.

The credential is serialised to JSON, sealed with AES-256-GCM and written to
``config.json`` as ``{"auth": "<iv>:<authTag>:<ciphertext>"}`` with every
part hex encoded. The 256-bit key lives hex encoded in its own file. Both
files are shared with the Node.js CLI, so the triple format must not change.

The files are untrusted input. Any read failure (missing key, malformed
triple, wrong key, tampered tag, broken JSON, expired session) degrades to
"no credential" and never raises.
"""

from __future__ import annotations

import json
import logging
import os
import secrets
import tempfile
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Callable, Dict, Optional

from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives.ciphers.aead import AESGCM

from ..errors import CredentialStoreError
from ..utils import paths

logger = logging.getLogger(__name__)

KEY_BYTES = 32
NONCE_BYTES = 12
TAG_BYTES = 16


class CiphertextError(ValueError):
    """Raised when a sealed credential cannot be opened."""


@dataclass(frozen=True)
class StoredCredential:
    """A bearer token together with who it belongs to and when it lapses."""

    token: str
    login_handle: str = ""
    expires_at: Optional[str] = None
    created_at: str = ""

    def expiry(self) -> Optional[datetime]:
        if not self.expires_at:
            return None
        return parse_timestamp(self.expires_at)

    def is_expired(self, now: datetime) -> bool:
        expiry = self.expiry()
        return expiry is not None and now > expiry

    def to_payload(self) -> Dict[str, str]:
        payload = {"keywayToken": self.token, "createdAt": self.created_at}
        if self.login_handle:
            payload["githubLogin"] = self.login_handle
        if self.expires_at:
            payload["expiresAt"] = self.expires_at
        return payload

    @classmethod
    def from_payload(cls, payload: Any) -> "StoredCredential":
        if not isinstance(payload, dict):
            raise CiphertextError("credential payload is not an object")
        token = payload.get("keywayToken")
        if not isinstance(token, str) or not token:
            raise CiphertextError("credential payload has no token")
        expires_at = payload.get("expiresAt")
        return cls(
            token=token,
            login_handle=str(payload.get("githubLogin") or ""),
            expires_at=str(expires_at) if expires_at else None,
            created_at=str(payload.get("createdAt") or ""),
        )


def parse_timestamp(value: str) -> Optional[datetime]:
    """Parse an RFC 3339 timestamp; naive values are taken as UTC."""

    text = value.strip()
    if text.endswith(("Z", "z")):
        text = text[:-1] + "+00:00"
    try:
        parsed = datetime.fromisoformat(text)
    except ValueError:
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def format_timestamp(moment: datetime) -> str:
    return moment.astimezone(timezone.utc).strftime("%Y-%m-%dT%H:%M:%SZ")


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


# -- sealing ---------------------------------------------------------------


def seal(plaintext: str, key: bytes) -> str:
    """Encrypt *plaintext* and return the ``iv:authTag:ciphertext`` triple."""

    nonce = secrets.token_bytes(NONCE_BYTES)
    sealed = AESGCM(key).encrypt(nonce, plaintext.encode("utf-8"), None)
    ciphertext, tag = sealed[:-TAG_BYTES], sealed[-TAG_BYTES:]
    return f"{nonce.hex()}:{tag.hex()}:{ciphertext.hex()}"


def unseal(data: str, key: bytes) -> str:
    """Decrypt an ``iv:authTag:ciphertext`` triple produced by :func:`seal`."""

    parts = data.split(":")
    if len(parts) != 3:
        raise CiphertextError("invalid encrypted data format")
    try:
        nonce, tag, ciphertext = (bytes.fromhex(part) for part in parts)
    except ValueError as exc:
        raise CiphertextError("encrypted data is not hex encoded") from exc
    if len(nonce) != NONCE_BYTES:
        raise CiphertextError(f"invalid IV length: got {len(nonce)}, expected {NONCE_BYTES}")
    if len(tag) != TAG_BYTES:
        raise CiphertextError(f"invalid auth tag length: got {len(tag)}, expected {TAG_BYTES}")
    try:
        plaintext = AESGCM(key).decrypt(nonce, ciphertext + tag, None)
    except InvalidTag as exc:
        raise CiphertextError("decryption failed (invalid tag)") from exc
    try:
        return plaintext.decode("utf-8")
    except UnicodeDecodeError as exc:
        raise CiphertextError("decrypted payload is not UTF-8") from exc


def _atomic_write(path: Path, data: str) -> None:
    path.parent.mkdir(mode=0o700, parents=True, exist_ok=True)
    fd, tmp_name = tempfile.mkstemp(prefix=f".{path.name}.", dir=str(path.parent))
    try:
        with os.fdopen(fd, "w", encoding="utf-8") as handle:
            handle.write(data)
        os.chmod(tmp_name, 0o600)
        os.replace(tmp_name, path)
    finally:
        if os.path.exists(tmp_name):
            os.unlink(tmp_name)


# -- store -----------------------------------------------------------------


class CredentialVault:
    """Persist a single :class:`StoredCredential` encrypted at rest.

    Concurrent CLI processes are not coordinated: writes are atomic renames
    and the last writer wins.
    """

    def __init__(
        self,
        config_path: Optional[Path] = None,
        key_path: Optional[Path] = None,
        *,
        now: Callable[[], datetime] = _utcnow,
    ) -> None:
        self.config_path = config_path or paths.config_path()
        self.key_path = key_path or paths.key_path()
        self._now = now

    # -- public API -----------------------------------------------------
    def get_credential(self) -> Optional[StoredCredential]:
        """Return the stored credential, or ``None`` when there is none usable."""

        try:
            raw = self.config_path.read_text(encoding="utf-8")
        except FileNotFoundError:
            return None
        except OSError:
            logger.debug("credential file unreadable: %s", self.config_path, exc_info=True)
            return None
        except UnicodeDecodeError:
            logger.debug("credential file is not UTF-8, clearing")
            self._discard()
            return None

        try:
            config = json.loads(raw)
        except json.JSONDecodeError:
            logger.debug("credential file is not valid JSON, clearing")
            self._discard()
            return None
        if not isinstance(config, dict):
            self._discard()
            return None
        sealed = config.get("auth")
        if not isinstance(sealed, str) or not sealed:
            return None

        try:
            credential = StoredCredential.from_payload(json.loads(unseal(sealed, self._load_key())))
        except (CiphertextError, ValueError, OSError):
            # json.JSONDecodeError is a ValueError
            logger.debug("stored credential is corrupted, clearing", exc_info=True)
            self._discard()
            return None

        if credential.is_expired(self._now()):
            logger.info("stored credential expired at %s", credential.expires_at)
            self._discard()
            return None
        return credential

    def save_credential(
        self,
        token: str,
        login_handle: str = "",
        expires_at: Optional[str] = None,
    ) -> StoredCredential:
        """Encrypt and persist a new credential, replacing any previous one."""

        if not token:
            raise CredentialStoreError("refusing to store an empty token")
        credential = StoredCredential(
            token=token,
            login_handle=login_handle or "",
            expires_at=expires_at or None,
            created_at=format_timestamp(self._now()),
        )
        try:
            sealed = seal(json.dumps(credential.to_payload()), self._load_key())
            _atomic_write(self.config_path, json.dumps({"auth": sealed}, indent=2))
        except OSError as exc:
            raise CredentialStoreError(f"failed to save credentials: {exc}") from exc
        return credential

    def clear_credential(self) -> None:
        """Overwrite the config with an empty record; no-op when it is absent."""

        if not self.config_path.exists():
            return
        try:
            _atomic_write(self.config_path, json.dumps({}, indent=2))
        except OSError as exc:
            raise CredentialStoreError(f"failed to clear credentials: {exc}") from exc

    # -- helpers --------------------------------------------------------
    def _discard(self) -> None:
        try:
            self.clear_credential()
        except CredentialStoreError:
            logger.debug("could not clear corrupted credential", exc_info=True)

    def _load_key(self) -> bytes:
        """Return the machine key, generating a new one if the file is unusable.

        A regenerated key cannot open ciphertext sealed under the old one, so
        existing credentials then read as logged out.
        """

        try:
            text = self.key_path.read_text(encoding="utf-8").strip()
        except (OSError, UnicodeDecodeError):
            text = ""
        if len(text) == KEY_BYTES * 2:
            try:
                return bytes.fromhex(text)
            except ValueError:
                logger.debug("key file is not hex, regenerating")
        key = secrets.token_bytes(KEY_BYTES)
        _atomic_write(self.key_path, key.hex())
        return key


__all__ = [
    "CiphertextError",
    "CredentialVault",
    "StoredCredential",
    "format_timestamp",
    "parse_timestamp",
    "seal",
    "unseal",
]
