from __future__ import annotations

from typing import Any, Dict

import jwt
from cryptography.fernet import Fernet

from .config import settings


def read_jwt_claims(token: str) -> Dict[str, Any]:
    """Decode an access token issued by the backend without checking its signature.

    The client never holds the signing secret; it only needs `sub` and `exp`
    to know whose session it is and when to refresh it.
    """
    return jwt.decode(token, options={"verify_signature": False, "verify_exp": False})


def encryption_enabled() -> bool:
    return bool(settings.session_encryption_key)


def _fernet() -> Fernet:
    if not settings.session_encryption_key:
        raise RuntimeError("SESSION_ENCRYPTION_KEY is not set")
    return Fernet(settings.session_encryption_key.encode("utf-8"))


def encrypt_text(plain: str) -> str:
    f = _fernet()
    return f.encrypt(plain.encode("utf-8")).decode("utf-8")


def decrypt_text(cipher: str) -> str:
    f = _fernet()
    return f.decrypt(cipher.encode("utf-8")).decode("utf-8")


def generate_fernet_key() -> str:
    return Fernet.generate_key().decode("utf-8")
