"""Encrypted connection profiles.

The browser keeps the last used connection so it can reconnect later. The
profile is handed out as a Fernet token so no plaintext password ends up in
browser storage.
"""
from __future__ import annotations

import base64
import hashlib
import logging

from cryptography.fernet import Fernet, InvalidToken
from pydantic import ValidationError

from .directory.models import ConnectionSettings
from .env_settings import get_env

log = logging.getLogger(__name__)


def _fernet() -> Fernet:
    secret = get_env().secret_key.encode("utf-8")
    key = base64.urlsafe_b64encode(hashlib.sha256(secret).digest())
    return Fernet(key)


def encrypt_str(value: str) -> str:
    if not value:
        return ""
    f = _fernet()
    return f.encrypt(value.encode("utf-8")).decode("utf-8")


def decrypt_str(token: str) -> str:
    if not token:
        return ""
    f = _fernet()
    try:
        return f.decrypt(token.encode("utf-8")).decode("utf-8")
    except InvalidToken:
        return ""


def encrypt_profile(settings: ConnectionSettings) -> str:
    return encrypt_str(settings.model_dump_json())


def decrypt_profile(token: str) -> ConnectionSettings | None:
    """Settings from a profile token, or None if it is invalid or tampered with."""
    raw = decrypt_str((token or "").strip())
    if not raw:
        return None
    try:
        return ConnectionSettings.model_validate_json(raw)
    except ValidationError as e:
        log.warning("profile token holds invalid settings: %s", e.error_count())
        return None
