"""Fernet sealing for vault secrets."""

import base64
import hashlib

from cryptography.fernet import Fernet, InvalidToken

from app.config import settings


def _vault_key(raw: str) -> bytes:
    """Use ``raw`` as a Fernet key if it is one, else derive one from it."""
    key = raw.encode()
    try:
        Fernet(key)
        return key
    except ValueError:
        return base64.urlsafe_b64encode(hashlib.sha256(key).digest())


def _fernet() -> Fernet:
    return Fernet(_vault_key(settings.secret_key))


def seal(plaintext: str) -> str:
    return _fernet().encrypt(plaintext.encode()).decode()


def unseal(token: str) -> str | None:
    """Decrypt ``token``; None when it was sealed under a different key."""
    try:
        return _fernet().decrypt(token.encode()).decode()
    except InvalidToken:
        return None
