from __future__ import annotations

from fastapi import Depends, Request, Response

from .context import CONTEXT_COOKIE, new_context_id, read_context_token
from .directory.errors import NotConnected
from .directory.registry import RegistryStore, SessionRegistry
from .directory.session import DirectorySession
from .env_settings import get_env
from .webui import set_context_cookie


def get_store(request: Request) -> RegistryStore:
    return request.app.state.registries


def read_request_context(request: Request) -> str | None:
    """Context id from the signed cookie; None if missing, forged or expired."""
    token = request.cookies.get(CONTEXT_COOKIE, "")
    if not token:
        return None
    return read_context_token(token, get_env().context_max_age_seconds)


def get_context_id(request: Request, response: Response) -> str:
    """The caller's context id; the cookie is re-issued so its expiry slides."""
    cid = read_request_context(request) or new_context_id()
    set_context_cookie(response, cid)
    return cid


def get_registry(request: Request, cid: str = Depends(get_context_id)) -> SessionRegistry:
    """Registry of the caller's context.

    Contexts without connections are not stored; they get an empty registry.
    """
    return get_store(request).peek(cid)


def get_or_create_registry(request: Request, cid: str = Depends(get_context_id)) -> SessionRegistry:
    return get_store(request).get(cid)


def get_active_session(registry: SessionRegistry = Depends(get_registry)) -> DirectorySession:
    session = registry.active
    if session is None or not session.is_connected:
        raise NotConnected()
    return session


def resolve_base_dn(session: DirectorySession, base_dn: str) -> str:
    """Explicit base DN, or the one from the session's connection settings."""
    base_dn = (base_dn or "").strip()
    if base_dn:
        return base_dn
    return session.settings.base_dn if session.settings else ""
