"""Authenticated encryption for provider tokens at rest.

Upstream access and refresh tokens are stored as
base64(nonce || ciphertext || tag) using AES-256-GCM. A wrong key or a
tampered value fails to decrypt rather than producing garbage.
"""

import base64
import binascii
import os
import secrets

from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives.ciphers.aead import AESGCM

from sidan.auth.errors import CryptoError, InvalidKeyError

NONCE_SIZE = 12
KEY_SIZE = 32


def generate_key() -> str:
    """Generate a random AES-256 key.

    Returns:
        64 hex characters (32 random bytes)

    Example:
        >>> len(generate_key())
        64
    """
    return secrets.token_hex(KEY_SIZE)


class TokenCipher:
    """AES-256-GCM cipher for provider tokens.

    The key is process-wide configuration, loaded once at startup.
    """

    def __init__(self, hex_key: str):
        """Initialize cipher.

        Args:
            hex_key: 64 hex characters

        Raises:
            InvalidKeyError: Key is not hex or not 32 bytes
        """
        try:
            key = bytes.fromhex(hex_key)
        except (ValueError, TypeError) as e:
            raise InvalidKeyError("invalid encryption key: must be hex-encoded") from e

        if len(key) != KEY_SIZE:
            raise InvalidKeyError(
                "encryption key must be 32 bytes (64 hex characters)"
            )

        self._aead = AESGCM(key)

    def encrypt(self, plaintext: str) -> str:
        """Encrypt a UTF-8 string.

        Empty input maps to empty output. Two encryptions of the same
        plaintext differ because each uses a fresh random nonce.
        """
        if plaintext == "":
            return ""

        nonce = os.urandom(NONCE_SIZE)
        sealed = self._aead.encrypt(nonce, plaintext.encode("utf-8"), None)
        return base64.b64encode(nonce + sealed).decode("ascii")

    def decrypt(self, ciphertext: str) -> str:
        """Decrypt a value produced by `encrypt`.

        Raises:
            CryptoError: Malformed, truncated, tampered or wrong-key input
        """
        if ciphertext == "":
            return ""

        try:
            data = base64.b64decode(ciphertext, validate=True)
        except (binascii.Error, ValueError) as e:
            raise CryptoError("ciphertext is not valid base64") from e

        if len(data) < NONCE_SIZE:
            raise CryptoError("ciphertext too short")

        nonce, sealed = data[:NONCE_SIZE], data[NONCE_SIZE:]
        try:
            plaintext = self._aead.decrypt(nonce, sealed, None)
        except InvalidTag as e:
            raise CryptoError("ciphertext failed authentication") from e

        try:
            return plaintext.decode("utf-8")
        except UnicodeDecodeError as e:
            raise CryptoError("plaintext is not valid UTF-8") from e
