from __future__ import annotations

import logging
from dataclasses import asdict
from typing import Optional

from fastapi import APIRouter, Depends, Request, Response
from pydantic import BaseModel, Field

from ..crypto import decrypt_profile, encrypt_profile
from ..deps import get_active_session, get_or_create_registry, get_registry, get_store, read_request_context
from ..directory.errors import ConnectFailed
from ..directory.models import ConnectionSettings
from ..directory.registry import SessionRegistry
from ..directory.session import DirectorySession
from ..webui import clear_context_cookie, not_found_response, ui_result

log = logging.getLogger(__name__)

router = APIRouter(prefix="/api/connections", tags=["connections"])


class ReconnectRequest(BaseModel):
    profile_token: str = Field(default="")
    settings: Optional[ConnectionSettings] = None


class BindCheckRequest(BaseModel):
    user_dn: str
    password: str = Field(default="")


def _listing(registry: SessionRegistry) -> dict:
    return {
        "connections": [asdict(c) for c in registry.get_all()],
        "active_id": registry.active_id,
    }


@router.get("")
def list_connections(registry: SessionRegistry = Depends(get_registry)):
    return ui_result(True, "OK", **_listing(registry))


@router.post("")
def add_connection(settings: ConnectionSettings, registry: SessionRegistry = Depends(get_or_create_registry)):
    session_id = registry.add_connection(settings)
    return ui_result(
        True,
        f"Connected to {settings.display_name}.",
        id=session_id,
        profile_token=encrypt_profile(settings),
        **_listing(registry),
    )


@router.post("/reconnect")
def reconnect(body: ReconnectRequest, registry: SessionRegistry = Depends(get_or_create_registry)):
    settings = body.settings
    if settings is None and body.profile_token:
        settings = decrypt_profile(body.profile_token)
        if settings is None:
            log.info("reconnect: profile token rejected")

    ok = registry.try_reconnect(settings)
    msg = "Connected." if ok else "Reconnect failed."
    return ui_result(ok, msg, **_listing(registry))


@router.post("/test-bind")
def test_bind(body: BindCheckRequest, session: DirectorySession = Depends(get_active_session)):
    try:
        session.test_bind(body.user_dn, body.password)
    except ConnectFailed as e:
        return ui_result(False, "Bind failed.", str(e))
    return ui_result(True, "Bind succeeded.")


@router.post("/{session_id}/activate")
def activate(session_id: str, registry: SessionRegistry = Depends(get_registry)):
    if not registry.set_active(session_id):
        return not_found_response(f"Unknown connection: {session_id}")
    return ui_result(True, "OK", **_listing(registry))


@router.delete("/context")
def close_context(request: Request, response: Response):
    """Disconnect every session of the caller's context and forget it."""
    cid = read_request_context(request)
    if cid is not None:
        get_store(request).drop(cid)
    clear_context_cookie(response)
    return ui_result(True, "Signed out.", connections=[], active_id=None)


@router.delete("/{session_id}")
def remove(session_id: str, registry: SessionRegistry = Depends(get_registry)):
    if registry.get(session_id) is None:
        return not_found_response(f"Unknown connection: {session_id}")
    registry.remove_connection(session_id)
    return ui_result(True, "Disconnected.", **_listing(registry))
