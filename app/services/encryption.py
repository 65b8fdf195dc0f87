"""
Credential/PII envelope for sensitive form fields.

Passwords, card numbers, CVVs and expiry dates are sealed before they leave
the caller and opened again inside the request handlers:

- Key material comes either from a per-device key (generated once, kept in a
  device-local store) or from a provisioned shared secret
- PBKDF2-HMAC-SHA256 stretches that material with the application salt into
  the Fernet key, on every call
- Fernet (AES-CBC + HMAC-SHA256, random IV) seals the canonical JSON of the
  value, so tampering is detected rather than decrypted into garbage
- Passwords at rest are stored as SHA-256 digests, compared in constant time
"""

from __future__ import annotations

import base64
import binascii
import hashlib
import hmac
import json
import logging
import secrets
from dataclasses import dataclass
from typing import Any, Callable

from cryptography.fernet import Fernet, InvalidToken
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.kdf.pbkdf2 import PBKDF2HMAC

from app.services.keystore import KeyValueStore, StorageUnavailable

logger = logging.getLogger(__name__)

DEVICE_KEY_NAME = "device_encryption_key"
DEVICE_KEY_BYTES = 32
MIN_DEVICE_KEY_BYTES = 16
DERIVED_KEY_BYTES = 32
DEFAULT_ITERATIONS = 100_000
MIN_ITERATIONS = 1000


class EnvelopeError(RuntimeError):
    """Base class for fatal envelope errors."""


class KeyGenerationFailure(EnvelopeError):
    """The system random source could not produce key material."""


# ---------------------------------------------------------------------------
# Decrypt results
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class Decrypted:
    value: Any

    ok = True


@dataclass(frozen=True)
class DecryptFailure:
    """Envelope could not be opened. ``reason`` is for logs, not end users."""

    reason: str

    ok = False


DecryptResult = Decrypted | DecryptFailure


# ---------------------------------------------------------------------------
# Key management
# ---------------------------------------------------------------------------

def _generate_key_bytes(size: int) -> bytes:
    try:
        return secrets.token_bytes(size)
    except (OSError, NotImplementedError) as exc:
        raise KeyGenerationFailure("Secure random source unavailable") from exc


def _decode_stored_key(stored: str) -> bytes:
    try:
        key = base64.urlsafe_b64decode(stored.encode("ascii"))
    except (binascii.Error, UnicodeEncodeError, ValueError) as exc:
        raise StorageUnavailable("Stored device key is unreadable") from exc
    if len(key) < MIN_DEVICE_KEY_BYTES:
        raise StorageUnavailable("Stored device key is too short")
    return key


def get_or_create_device_key(store: KeyValueStore) -> bytes:
    """
    Return this installation's device key, creating it on first use.

    Creation goes through ``set_if_absent``: when another caller stored a key
    first, that key is returned and the freshly generated one is discarded.
    """
    stored = store.get(DEVICE_KEY_NAME)
    if stored is not None:
        return _decode_stored_key(stored)

    candidate = base64.urlsafe_b64encode(_generate_key_bytes(DEVICE_KEY_BYTES)).decode("ascii")
    stored = store.set_if_absent(DEVICE_KEY_NAME, candidate)
    if stored == candidate:
        logger.info("Generated new device encryption key")
    return _decode_stored_key(stored)


def clear_device_key(store: KeyValueStore) -> None:
    """Forget the device key (logout / uninstall)."""
    store.remove(DEVICE_KEY_NAME)
    logger.info("Cleared device encryption key")


def derive_key(device_key: bytes, salt: bytes, iterations: int = DEFAULT_ITERATIONS) -> bytes:
    """Stretch key material into a 256-bit symmetric key. Deterministic."""
    if iterations < MIN_ITERATIONS:
        raise ValueError(f"iterations must be at least {MIN_ITERATIONS}")
    kdf = PBKDF2HMAC(
        algorithm=hashes.SHA256(),
        length=DERIVED_KEY_BYTES,
        salt=salt,
        iterations=iterations,
    )
    return kdf.derive(device_key)


# ---------------------------------------------------------------------------
# Hashing
# ---------------------------------------------------------------------------

def _canonical_json(value: Any) -> str:
    return json.dumps(value, sort_keys=True, separators=(",", ":"), ensure_ascii=False)


def hash_value(value: Any) -> str:
    """SHA-256 hex digest. Strings hash over their UTF-8 bytes."""
    data = value if isinstance(value, str) else _canonical_json(value)
    return hashlib.sha256(data.encode("utf-8")).hexdigest()


def secure_compare(a: str, b: str) -> bool:
    """Compare two secrets without leaking where they first differ."""
    if len(a) != len(b):
        return False
    return hmac.compare_digest(a.encode("utf-8"), b.encode("utf-8"))


# ---------------------------------------------------------------------------
# Envelope
# ---------------------------------------------------------------------------

class Envelope:
    """Seals and opens JSON values under a key derived per call."""

    def __init__(
        self,
        key_material: Callable[[], bytes],
        salt: bytes,
        iterations: int = DEFAULT_ITERATIONS,
    ):
        if iterations < MIN_ITERATIONS:
            raise ValueError(f"iterations must be at least {MIN_ITERATIONS}")
        self._key_material = key_material
        self._salt = salt
        self._iterations = iterations

    @classmethod
    def for_device(
        cls, store: KeyValueStore, salt: bytes, iterations: int = DEFAULT_ITERATIONS
    ) -> "Envelope":
        """Envelope keyed by this installation's device key."""
        return cls(lambda: get_or_create_device_key(store), salt, iterations)

    @classmethod
    def for_secret(
        cls, secret: str | bytes, salt: bytes, iterations: int = DEFAULT_ITERATIONS
    ) -> "Envelope":
        """Envelope keyed by a provisioned shared secret."""
        raw = secret.encode("utf-8") if isinstance(secret, str) else secret
        if not raw:
            raise ValueError("A non-empty secret is required")
        return cls(lambda: raw, salt, iterations)

    def _fernet(self) -> Fernet:
        derived = derive_key(self._key_material(), self._salt, self._iterations)
        return Fernet(base64.urlsafe_b64encode(derived))

    def encrypt(self, value: Any) -> str:
        """Seal ``value`` (anything JSON-serialisable) into a transport-safe string."""
        payload = _canonical_json(value).encode("utf-8")
        return self._fernet().encrypt(payload).decode("ascii")

    def decrypt(self, token: Any) -> DecryptResult:
        """
        Open an envelope.

        Malformed, tampered or foreign-key envelopes come back as
        ``DecryptFailure``; only storage/key errors raise.
        """
        if not isinstance(token, str) or not token:
            return DecryptFailure("envelope is not a non-empty string")
        fernet = self._fernet()
        try:
            payload = fernet.decrypt(token.encode("utf-8"))
        except (InvalidToken, UnicodeEncodeError):
            return DecryptFailure("envelope rejected by cipher")
        try:
            return Decrypted(json.loads(payload.decode("utf-8")))
        except (UnicodeDecodeError, ValueError):
            return DecryptFailure("envelope payload is not JSON")
