"""
Fernet symmetric encryption for third-party credentials at rest.

GitHub access tokens obtained when a workspace connects its account are
stored encrypted with the ENCRYPTION_KEY setting and decrypted only for the
duration of an outbound call.

ENCRYPTION_KEY must be a 32-byte URL-safe base64 key:
    python -c "from cryptography.fernet import Fernet; print(Fernet.generate_key().decode())"
"""

from cryptography.fernet import Fernet, InvalidToken
from flask import current_app

__all__ = ["InvalidToken", "decrypt_secret", "encrypt_secret"]


def _get_fernet() -> Fernet:
    raw_key = current_app.config.get("ENCRYPTION_KEY")
    if not raw_key:
        raise RuntimeError("ENCRYPTION_KEY is not configured")
    return Fernet(raw_key.encode() if isinstance(raw_key, str) else raw_key)


def encrypt_secret(plaintext: str) -> str:
    """Encrypt ``plaintext``; the result fits a TEXT column."""
    return _get_fernet().encrypt(plaintext.encode("utf-8")).decode("utf-8")


def decrypt_secret(ciphertext: str) -> str:
    """Inverse of ``encrypt_secret``. Raises InvalidToken on tampering or key change."""
    return _get_fernet().decrypt(ciphertext.encode("utf-8")).decode("utf-8")
