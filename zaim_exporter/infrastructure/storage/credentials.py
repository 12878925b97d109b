"""Encrypted file storage for the long-lived Zaim access credential"""

import base64
import binascii
import contextlib
import json
import logging
import os
from datetime import datetime
from pathlib import Path
from typing import Optional, Protocol

from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives.ciphers.aead import AESGCM

from zaim_exporter.domain.exceptions import (
    CredentialNotFoundError,
    CredentialStoreError,
    InvalidCredentialError,
)
from zaim_exporter.domain.models import Credential
from zaim_exporter.utils.locks import ReadWriteLock

logger = logging.getLogger(__name__)

KEY_SIZE = 32  # AES-256
NONCE_SIZE = 12


class CredentialStore(Protocol):
    """Persistence of the single access credential"""

    def save(self, credential: Credential) -> None: ...

    def load(self) -> Credential: ...

    def clear(self) -> None: ...


def parse_encryption_key(raw: str) -> Optional[bytes]:
    """
    Decode an ENCRYPTION_KEY value.

    Accepts base64 of 32 bytes or a raw 32-character string. An empty value
    disables encryption.

    Raises:
        ValueError: If the key is not 256 bits
    """
    if not raw:
        return None

    try:
        decoded = base64.b64decode(raw, validate=True)
    except (binascii.Error, ValueError):
        decoded = b""
    if len(decoded) == KEY_SIZE:
        return decoded

    key = raw.encode("utf-8")
    if len(key) != KEY_SIZE:
        raise ValueError("encryption key must be 32 bytes")
    return key


def encrypt(plaintext: bytes, key: bytes) -> bytes:
    """AES-GCM with a fresh random nonce prepended to the ciphertext"""
    nonce = os.urandom(NONCE_SIZE)
    return nonce + AESGCM(key).encrypt(nonce, plaintext, None)


def decrypt(blob: bytes, key: bytes) -> bytes:
    if len(blob) < NONCE_SIZE:
        raise InvalidCredentialError("stored credential is shorter than a nonce")

    nonce, ciphertext = blob[:NONCE_SIZE], blob[NONCE_SIZE:]
    try:
        return AESGCM(key).decrypt(nonce, ciphertext, None)
    except InvalidTag as e:
        raise InvalidCredentialError("stored credential failed authentication") from e


class FileCredentialStore:
    """
    Stores the credential as JSON in a single file, optionally AES-256-GCM encrypted.

    Reads share the lock; writes and deletes hold it exclusively.
    """

    def __init__(self, path: str | Path, encryption_key: Optional[bytes] = None):
        if encryption_key is not None and len(encryption_key) != KEY_SIZE:
            raise ValueError("encryption key must be 32 bytes")
        self.path = Path(path)
        self._key = encryption_key
        self._lock = ReadWriteLock()

    @property
    def encrypted(self) -> bool:
        return self._key is not None

    def save(self, credential: Credential) -> None:
        """
        Persist the credential, replacing any previous one.

        Raises:
            CredentialStoreError: On filesystem failures
        """
        data = json.dumps(
            {
                "token": credential.access_token,
                "token_secret": credential.access_secret,
                "created_at": credential.created_at.isoformat(),
            }
        ).encode("utf-8")

        if self._key is not None:
            data = encrypt(data, self._key)

        with self._lock.write_locked():
            tmp_path = self.path.with_name(self.path.name + ".tmp")
            try:
                self.path.parent.mkdir(mode=0o755, parents=True, exist_ok=True)
                fd = os.open(tmp_path, os.O_WRONLY | os.O_CREAT | os.O_TRUNC, 0o600)
                with os.fdopen(fd, "wb") as fh:
                    fh.write(data)
                os.replace(tmp_path, self.path)
            except OSError as e:
                with contextlib.suppress(OSError):
                    tmp_path.unlink(missing_ok=True)
                raise CredentialStoreError(f"Failed to write {self.path}: {e}") from e

        logger.info("Saved access credential", extra={"path": str(self.path), "encrypted": self.encrypted})

    def load(self) -> Credential:
        """
        Read the stored credential.

        Raises:
            CredentialNotFoundError: Nothing stored yet
            InvalidCredentialError: Blob is truncated, tampered with, or undecodable
            CredentialStoreError: On other filesystem failures
        """
        with self._lock.read_locked():
            try:
                data = self.path.read_bytes()
            except FileNotFoundError as e:
                raise CredentialNotFoundError(f"No credential at {self.path}") from e
            except OSError as e:
                raise CredentialStoreError(f"Failed to read {self.path}: {e}") from e

        if self._key is not None:
            data = decrypt(data, self._key)

        try:
            payload = json.loads(data)
            return Credential(
                access_token=payload["token"],
                access_secret=payload["token_secret"],
                created_at=datetime.fromisoformat(payload["created_at"]),
            )
        except (UnicodeDecodeError, KeyError, TypeError, ValueError) as e:
            raise InvalidCredentialError(f"Stored credential is malformed: {e}") from e

    def clear(self) -> None:
        """Delete the stored credential; absence is not an error"""
        with self._lock.write_locked():
            try:
                self.path.unlink()
            except FileNotFoundError:
                return
            except OSError as e:
                raise CredentialStoreError(f"Failed to delete {self.path}: {e}") from e

        logger.info("Cleared access credential", extra={"path": str(self.path)})
