"""
Field encryption adapter for sensitive comment attributes
"""

import base64
import hashlib
import hmac
import os
from functools import lru_cache
from typing import Optional

from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.ciphers.aead import AESGCM
from cryptography.hazmat.primitives.kdf.pbkdf2 import PBKDF2HMAC

FORMAT_VERSION = b"\x01"
NONCE_LENGTH = 12
KEY_LENGTH = 32
DEFAULT_ITERATIONS = 100_000
MASK_MARKER = "***"
MASK_PREFIX_LENGTH = 8


class FieldDecryptionFailed(Exception):
    """Ciphertext is corrupt, truncated or bound to another context"""


def encryption_context(user_id: str, platform: str) -> str:
    return f"{user_id}:{platform}"


class FieldEncryptionAdapter:
    """
    AES-256-GCM encryption bound to a user/platform context

    A key is derived per context with PBKDF2-HMAC-SHA256 and the context is
    also authenticated as associated data, so a blob copied to another user or
    platform fails to decrypt.

    Args:
        master_key_hex: 64 hex characters
        iterations: PBKDF2 iteration count
    """

    def __init__(self, master_key_hex: str, iterations: int = DEFAULT_ITERATIONS):
        self._master_key = bytes.fromhex(master_key_hex)
        if len(self._master_key) != KEY_LENGTH:
            raise ValueError("Encryption key must be 32 bytes")
        self._iterations = iterations
        self._derive = lru_cache(maxsize=1024)(self._derive_key)

    def _derive_key(self, context: str) -> bytes:
        kdf = PBKDF2HMAC(
            algorithm=hashes.SHA256(),
            length=KEY_LENGTH,
            salt=b"comment-fields:" + context.encode("utf-8"),
            iterations=self._iterations,
        )
        return kdf.derive(self._master_key)

    def encrypt(self, value: str, context: str) -> str:
        """
        Encrypt a field for storage

        Args:
            value: Plaintext
            context: "user_id:platform" binding

        Returns:
            URL-safe base64 of version | nonce | ciphertext+tag
        """
        nonce = os.urandom(NONCE_LENGTH)
        sealed = AESGCM(self._derive(context)).encrypt(nonce, value.encode("utf-8"), context.encode("utf-8"))
        return base64.urlsafe_b64encode(FORMAT_VERSION + nonce + sealed).decode("ascii")

    def decrypt(self, token: str, context: str) -> str:
        try:
            blob = base64.urlsafe_b64decode(token.encode("ascii"))
        except (ValueError, UnicodeEncodeError) as e:
            raise FieldDecryptionFailed("Malformed ciphertext") from e
        if len(blob) < 1 + NONCE_LENGTH + 16 or blob[:1] != FORMAT_VERSION:
            raise FieldDecryptionFailed("Unsupported ciphertext format")

        nonce, sealed = blob[1:1 + NONCE_LENGTH], blob[1 + NONCE_LENGTH:]
        try:
            plain = AESGCM(self._derive(context)).decrypt(nonce, sealed, context.encode("utf-8"))
        except InvalidTag as e:
            raise FieldDecryptionFailed("Authentication tag mismatch") from e
        return plain.decode("utf-8")

    def decrypt_or_none(self, token: Optional[str], context: str) -> Optional[str]:
        if not token:
            return None
        try:
            return self.decrypt(token, context)
        except FieldDecryptionFailed:
            return None

    def mask(self, plaintext: str) -> str:
        """Display form that reveals no plaintext and always ends in ***"""
        digest = hmac.new(self._master_key, plaintext.encode("utf-8"), hashlib.sha256).hexdigest()
        return digest[:MASK_PREFIX_LENGTH] + MASK_MARKER

    @staticmethod
    def hash_content(content: str, user_id: str) -> str:
        """Deterministic per-user fingerprint used for duplicate detection"""
        return hashlib.sha256(f"{user_id}\x00{content}".encode("utf-8")).hexdigest()
