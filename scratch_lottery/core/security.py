"""Scratch Lottery - AES encryption for ticket content."""

import base64
import secrets

from cryptography.hazmat.primitives.ciphers.aead import AESGCM


class AESCipher:
    """AES-256-GCM encryption for ticket content at rest.

    Usage:
        cipher = AESCipher(key_base64)
        encrypted = cipher.encrypt(plaintext)
        decrypted = cipher.decrypt(encrypted)

    The encrypted output format: base64(nonce + ciphertext + tag)
    - nonce: 12 bytes, fresh per call
    - ciphertext: variable length
    - tag: 16 bytes (appended by AESGCM)
    """

    NONCE_SIZE = 12  # 96 bits recommended for GCM

    def __init__(self, key_base64: str) -> None:
        """Initialize with base64-encoded 32-byte key.

        Args:
            key_base64: Base64-encoded 32-byte (256-bit) key
        """
        key = base64.b64decode(key_base64)
        if len(key) != 32:
            raise ValueError("AES key must be exactly 32 bytes (256 bits)")
        self._aesgcm = AESGCM(key)

    def encrypt(self, plaintext: str) -> str:
        """Encrypt plaintext string to base64-encoded ciphertext.

        Args:
            plaintext: The string to encrypt (serialized ticket content)

        Returns:
            Base64-encoded string containing nonce + ciphertext + tag
        """
        nonce = secrets.token_bytes(self.NONCE_SIZE)
        ciphertext = self._aesgcm.encrypt(nonce, plaintext.encode("utf-8"), None)
        return base64.b64encode(nonce + ciphertext).decode("ascii")

    def decrypt(self, encrypted_b64: str) -> str:
        """Decrypt base64-encoded ciphertext to plaintext string.

        Args:
            encrypted_b64: Base64-encoded string from encrypt()

        Returns:
            Original plaintext string

        Raises:
            cryptography.exceptions.InvalidTag: Wrong key or tampered data
            binascii.Error: Value is not base64
        """
        data = base64.b64decode(encrypted_b64, validate=True)
        nonce = data[: self.NONCE_SIZE]
        ciphertext = data[self.NONCE_SIZE :]
        plaintext = self._aesgcm.decrypt(nonce, ciphertext, None)
        return plaintext.decode("utf-8")


def generate_aes_key() -> str:
    """Generate a new random AES-256 key as base64 string.

    Use this to generate the TICKET_ENCRYPTION_KEY environment variable value.
    """
    return base64.b64encode(secrets.token_bytes(32)).decode("ascii")


# Singleton cipher instance (initialized on first use)
_cipher: AESCipher | None = None


def get_cipher() -> AESCipher:
    """Get the singleton AES cipher instance.

    Initializes from settings on first call.
    """
    global _cipher
    if _cipher is None:
        from scratch_lottery.core.config import get_settings

        _cipher = AESCipher(get_settings().ticket_encryption_key)
    return _cipher
