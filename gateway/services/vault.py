"""Credential vault: Fernet encryption at rest plus HMAC digests for lookups."""

from __future__ import annotations

import base64
import hashlib
import hmac

from cryptography.fernet import Fernet, InvalidToken

from gateway.logging_config import logger
from gateway.settings import Settings, settings

# Fernet tokens are urlsafe-base64 of a 0x80 version byte plus timestamp,
# so every well-formed token starts with this prefix.
FERNET_TOKEN_PREFIX = "gAAAAA"


class CredentialVault:
    """Encrypts, decrypts and hashes stored secrets (API keys, OAuth tokens)."""

    def __init__(self, encryption_key: str | bytes, hash_secret: str) -> None:
        if not encryption_key:
            raise ValueError("Encryption key must not be empty")
        try:
            self._cipher = Fernet(
                encryption_key.encode() if isinstance(encryption_key, str) else encryption_key
            )
        except (ValueError, TypeError) as exc:
            raise ValueError(f"Invalid ENCRYPTION_KEY: {exc}") from exc
        self._hash_secret = hash_secret.encode("utf-8")

    @classmethod
    def from_settings(cls, cfg: Settings | None = None) -> "CredentialVault":
        cfg = cfg or settings
        key = cfg.encryption_key
        if not key:
            if cfg.environment.lower() == "production":
                raise ValueError("ENCRYPTION_KEY must be set in production")
            logger.warning(
                "ENCRYPTION_KEY is not set; deriving a development key from SECRET_KEY"
            )
            key = derive_fernet_key(cfg.secret_key)
        return cls(key, cfg.secret_key)

    def encrypt(self, secret: str) -> str:
        if not secret:
            raise ValueError("Cannot encrypt empty secret")
        return self._cipher.encrypt(secret.encode("utf-8")).decode("ascii")

    def decrypt(self, ciphertext: str) -> str:
        """
        Decrypt a stored secret.

        Input that does not look like a Fernet token (e.g. plaintext left over
        from before encryption was introduced) is rejected with ValueError.
        """
        if not ciphertext:
            raise ValueError("Cannot decrypt empty ciphertext")
        if not ciphertext.startswith(FERNET_TOKEN_PREFIX):
            raise ValueError("Ciphertext is not in the expected encrypted format")
        try:
            return self._cipher.decrypt(ciphertext.encode("ascii")).decode("utf-8")
        except (InvalidToken, UnicodeError) as exc:
            raise ValueError("Failed to decrypt secret") from exc

    def hash(self, secret: str) -> str:
        return hmac.new(self._hash_secret, secret.encode("utf-8"), hashlib.sha256).hexdigest()

    @staticmethod
    def generate_key() -> str:
        return Fernet.generate_key().decode()


def derive_fernet_key(secret: str) -> str:
    digest = hashlib.sha256(secret.encode("utf-8")).digest()
    return base64.urlsafe_b64encode(digest).decode("ascii")


__all__ = ["CredentialVault", "FERNET_TOKEN_PREFIX", "derive_fernet_key"]
