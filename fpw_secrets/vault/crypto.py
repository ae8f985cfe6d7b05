"""
Vault Crypto Core — userdata key handling, encryption/decryption, serialization.

Secret records are encrypted at rest with one deployment-wide key:
    AES-256-GCM(key, nonce, record_json, aad=object_key) → [nonce 12B][payload + tag 16B]

The object key is bound as associated data, so a blob copied under another
user's or application's key fails authentication instead of decrypting.

Security Note:
    Never log plaintext, ciphertext or key bytes.
    Nonces are random 96-bit; collision probability negligible under normal usage.
"""
import os
import logging
from typing import Any

import orjson
from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives.ciphers.aead import AESGCM

from ..conf import KEY_LENGTH, SecretsConfig
from ..errors import ConfigurationFault

logger = logging.getLogger("fpw.vault")

NONCE_SIZE = 12  # 96-bit nonce
TAG_SIZE = 16


class DecryptionError(Exception):
    """Ciphertext is truncated or failed authentication."""


# ---------------------------------------------------------------------------
# Key handling
# ---------------------------------------------------------------------------

def fill_key(key: bytes) -> bytes:
    """Stretch configured key material to exactly 32 bytes.

    The material is repeated until the buffer is full and then truncated;
    an empty key yields 32 zero bytes. A short key therefore still produces
    a usable cipher key, it just is not a strong one; callers log that as a
    configuration fault.

    Args:
        key: Raw configured key bytes (any length).

    Returns:
        32-byte AES-256 key.
    """
    if not key:
        return bytes(KEY_LENGTH)
    repeats = -(-KEY_LENGTH // len(key))
    return (key * repeats)[:KEY_LENGTH]


def userdata_key(config: SecretsConfig) -> bytes:
    """Return the cipher key for the userdata store.

    A missing or short key is a configuration fault: it is logged as an
    error and the request still proceeds with the filled key.
    """
    if not config.key_is_valid:
        fault = ConfigurationFault(
            f"Userdata encryption key missing or shorter than {KEY_LENGTH} bytes"
        )
        logger.error(fault.message)
    return fill_key(config.userdata_key)


# ---------------------------------------------------------------------------
# Record encryption
# ---------------------------------------------------------------------------

def encrypt_record(plaintext: bytes, key: bytes, object_key: str) -> bytes:
    """Encrypt a serialized record for storage.

    Format: [nonce 12B][encrypted_payload + GCM_tag 16B]

    Args:
        plaintext: Serialized record.
        key: 32-byte key from ``fill_key``.
        object_key: Storage key, bound as associated data.

    Returns:
        Ciphertext bytes.
    """
    cipher = AESGCM(key)
    nonce = os.urandom(NONCE_SIZE)
    ct = cipher.encrypt(nonce, plaintext, object_key.encode("utf-8"))
    return nonce + ct


def decrypt_record(ciphertext: bytes, key: bytes, object_key: str) -> bytes:
    """Decrypt a stored record.

    Raises:
        DecryptionError: If the blob is too short or fails authentication
            (wrong key, tampered content, or stored under a different key).
    """
    _min = NONCE_SIZE + TAG_SIZE
    if len(ciphertext) < _min:
        raise DecryptionError(
            f"ciphertext too short: {len(ciphertext)} bytes (minimum {_min})"
        )
    cipher = AESGCM(key)
    nonce = ciphertext[:NONCE_SIZE]
    ct = ciphertext[NONCE_SIZE:]
    try:
        return cipher.decrypt(nonce, ct, object_key.encode("utf-8"))
    except InvalidTag:
        raise DecryptionError("ciphertext failed authentication") from None


# ---------------------------------------------------------------------------
# Value serialization
# ---------------------------------------------------------------------------

def serialize_record(record: Any) -> bytes:
    """Serialize a pydantic record (by wire names) or a plain mapping."""
    if hasattr(record, "model_dump"):
        return orjson.dumps(record.model_dump(by_alias=True))
    return orjson.dumps(record)


def deserialize_record(data: bytes) -> Any:
    """Parse decrypted bytes back to a Python value (raises orjson.JSONDecodeError)."""
    return orjson.loads(data)
