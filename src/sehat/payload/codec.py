"""AES-256-CBC codec for the encrypted blob embedded in kiosk messages.

Blobs are ``<ivHex>:<cipherHex>``; the plaintext is UTF-8 JSON.
"""

from __future__ import annotations

import json
import logging
import os
from typing import Any

from cryptography.hazmat.primitives import padding
from cryptography.hazmat.primitives.ciphers import Cipher, algorithms, modes

LOGGER = logging.getLogger(__name__)

KEY_LENGTH = 32
IV_LENGTH = 16
_BLOCK_SIZE_BITS = 128


class PayloadCodec:
    """Encrypts and decrypts kiosk payloads with a process-wide secret key."""

    def __init__(self, key: bytes) -> None:
        if len(key) != KEY_LENGTH:
            raise ValueError(
                f"Encryption key must be {KEY_LENGTH} bytes, got {len(key)}"
            )
        self._key = key

    @classmethod
    def from_hex(cls, hex_key: str) -> "PayloadCodec":
        try:
            key = bytes.fromhex(hex_key)
        except ValueError as exc:
            raise ValueError("Encryption key must be hex encoded") from exc
        return cls(key)

    def encrypt(self, payload: Any) -> str:
        """Serialize ``payload`` to JSON and encrypt it under a fresh random IV."""
        iv = os.urandom(IV_LENGTH)
        padder = padding.PKCS7(_BLOCK_SIZE_BITS).padder()
        padded = padder.update(json.dumps(payload).encode("utf-8")) + padder.finalize()
        encryptor = Cipher(algorithms.AES(self._key), modes.CBC(iv)).encryptor()
        ciphertext = encryptor.update(padded) + encryptor.finalize()
        return f"{iv.hex()}:{ciphertext.hex()}"

    def decrypt(self, blob: str) -> Any | None:
        """Return the decoded JSON value, or ``None`` if the blob is unreadable."""
        try:
            return json.loads(self._decrypt_bytes(blob).decode("utf-8"))
        except (TypeError, ValueError) as exc:
            LOGGER.warning("Could not decrypt payload: %s", exc)
            return None

    def _decrypt_bytes(self, blob: str) -> bytes:
        if not isinstance(blob, str):
            raise TypeError(f"payload must be a string, got {type(blob).__name__}")
        iv_hex, separator, cipher_hex = blob.partition(":")
        if not separator:
            raise ValueError("payload is missing the iv separator")
        iv = bytes.fromhex(iv_hex)
        ciphertext = bytes.fromhex(cipher_hex)
        if len(iv) != IV_LENGTH:
            raise ValueError(f"iv must be {IV_LENGTH} bytes")

        decryptor = Cipher(algorithms.AES(self._key), modes.CBC(iv)).decryptor()
        padded = decryptor.update(ciphertext) + decryptor.finalize()
        unpadder = padding.PKCS7(_BLOCK_SIZE_BITS).unpadder()
        return unpadder.update(padded) + unpadder.finalize()
