"""Token encryption using AES-256-GCM.

Every call to encrypt draws a fresh random nonce. The nonce is stored in
front of the ciphertext as fixed-width hex, separated by ``:``, so a stored
value decrypts on its own without any other state:

    <24 hex chars nonce>:<hex ciphertext+tag>
"""

import base64
import binascii
import os

from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives.ciphers.aead import AESGCM

from .exceptions import DecryptionError

NONCE_BYTES = 12
SEPARATOR = ":"


class TokenCipher:
    """Symmetric cipher for OAuth tokens at rest.

    Usage:
        cipher = TokenCipher(settings.token_encryption_key)
        stored = cipher.encrypt(access_token)
        access_token = cipher.decrypt(stored)
    """

    def __init__(self, key: str):
        """Initialize the cipher.

        Args:
            key: URL-safe base64 encoding of a 32-byte key.

        Raises:
            ValueError: If the key does not decode to 32 bytes.
        """
        try:
            raw = base64.urlsafe_b64decode(key.encode())
        except (binascii.Error, ValueError) as e:
            raise ValueError(f"Invalid encryption key encoding: {e}")
        if len(raw) != 32:
            raise ValueError("Encryption key must be 32 bytes (AES-256)")
        self._aead = AESGCM(raw)

    def encrypt(self, plaintext: str) -> str:
        """Encrypt a token.

        Args:
            plaintext: The token to encrypt.

        Returns:
            ``nonce_hex:ciphertext_hex``
        """
        if not plaintext:
            raise ValueError("Cannot encrypt an empty token")

        nonce = os.urandom(NONCE_BYTES)
        ciphertext = self._aead.encrypt(nonce, plaintext.encode("utf-8"), None)
        return f"{nonce.hex()}{SEPARATOR}{ciphertext.hex()}"

    def decrypt(self, ciphertext: str) -> str:
        """Decrypt a stored token.

        Args:
            ciphertext: Value previously returned by encrypt.

        Returns:
            The plaintext token.

        Raises:
            DecryptionError: If the value is empty, malformed, tampered with,
                             or was encrypted with a different key.
        """
        if not ciphertext:
            raise DecryptionError("Cannot decrypt an empty value")

        nonce_hex, sep, body_hex = ciphertext.partition(SEPARATOR)
        if not sep or len(nonce_hex) != NONCE_BYTES * 2 or not body_hex:
            raise DecryptionError("Malformed token ciphertext")

        try:
            nonce = bytes.fromhex(nonce_hex)
            body = bytes.fromhex(body_hex)
        except ValueError:
            raise DecryptionError("Token ciphertext is not valid hex")

        try:
            plaintext = self._aead.decrypt(nonce, body, None)
        except InvalidTag:
            raise DecryptionError(
                "Decryption failed: the value is corrupted, tampered with, "
                "or was encrypted with a different key"
            )

        try:
            return plaintext.decode("utf-8")
        except UnicodeDecodeError:
            raise DecryptionError("Decrypted token is not valid UTF-8")

    @staticmethod
    def generate_key() -> str:
        """Generate a new random key suitable for TOKEN_ENCRYPTION_KEY."""
        return base64.urlsafe_b64encode(os.urandom(32)).decode("ascii")
