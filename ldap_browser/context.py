from __future__ import annotations

import uuid

from itsdangerous import BadSignature, SignatureExpired, URLSafeTimedSerializer

from .env_settings import get_env

CONTEXT_COOKIE = "ldap_browser_ctx"


def _serializer() -> URLSafeTimedSerializer:
    s = get_env()
    return URLSafeTimedSerializer(s.secret_key, salt="ldap-browser-context")


def new_context_id() -> str:
    return uuid.uuid4().hex


def create_context_token(context_id: str) -> str:
    return _serializer().dumps({"cid": context_id})


def read_context_token(token: str, max_age_seconds: int) -> str | None:
    """Context id from a signed cookie value; None if missing, forged or expired."""
    try:
        data = _serializer().loads(token, max_age=max_age_seconds)
    except (BadSignature, SignatureExpired):
        return None
    if not isinstance(data, dict):
        return None
    cid = data.get("cid")
    return cid if isinstance(cid, str) and cid else None
