from __future__ import annotations

from dataclasses import asdict
from typing import Optional

from fastapi import APIRouter, Depends, Query, status
from fastapi.responses import JSONResponse, Response
from pydantic import BaseModel, Field

from ..deps import get_active_session, resolve_base_dn
from ..directory.certs import read_certificate
from ..directory.models import LdapModification, ModificationType
from ..directory.passwords import DEFAULT_ALGORITHM
from ..directory.session import DirectorySession
from ..directory.utils import build_attribute_filter
from ..webui import not_found_response, ui_result

router = APIRouter(prefix="/api", tags=["directory"])


class CreateEntryRequest(BaseModel):
    dn: str = Field(..., min_length=1)
    attributes: dict[str, list[str]] = Field(default_factory=dict)


class ModificationIn(BaseModel):
    attribute_name: str = Field(..., min_length=1)
    type: ModificationType = ModificationType.REPLACE
    new_value: Optional[str] = None
    old_value: Optional[str] = None


class ModifyEntryRequest(BaseModel):
    dn: str = Field(..., min_length=1)
    modifications: list[ModificationIn] = Field(default_factory=list)


class MoveEntryRequest(BaseModel):
    dn: str = Field(..., min_length=1)
    new_rdn: str = Field(..., min_length=1)
    new_parent_dn: Optional[str] = None


class SetPasswordRequest(BaseModel):
    dn: str = Field(..., min_length=1)
    password: str = Field(..., min_length=1)
    algorithm: str = Field(default=DEFAULT_ALGORITHM)


def _bad_request(message: str) -> JSONResponse:
    return JSONResponse(ui_result(False, message, kind="invalid_request"), status_code=status.HTTP_400_BAD_REQUEST)


# --- tree -------------------------------------------------------------------


@router.get("/tree/children")
def tree_children(dn: str = Query(""), session: DirectorySession = Depends(get_active_session)):
    parent = resolve_base_dn(session, dn)
    entries = session.get_children(parent)
    return ui_result(True, "OK", dn=parent, entries=[{"dn": e.dn, "display_name": e.display_name} for e in entries])


@router.get("/tree/count")
def tree_count(dn: str = Query(""), session: DirectorySession = Depends(get_active_session)):
    parent = resolve_base_dn(session, dn)
    return ui_result(True, "OK", dn=parent, count=session.get_child_count(parent))


@router.get("/tree/has-children")
def tree_has_children(dn: str = Query(""), session: DirectorySession = Depends(get_active_session)):
    parent = resolve_base_dn(session, dn)
    return ui_result(True, "OK", dn=parent, has_children=session.has_children(parent))


@router.get("/tree/naming-contexts")
def naming_contexts(session: DirectorySession = Depends(get_active_session)):
    return ui_result(True, "OK", naming_contexts=session.get_naming_contexts())


# --- search -----------------------------------------------------------------


@router.get("/search")
def search(
    base_dn: str = Query(""),
    search_filter: str = Query("", alias="filter"),
    attribute: str = Query(""),
    value: str = Query(""),
    session: DirectorySession = Depends(get_active_session),
):
    base = resolve_base_dn(session, base_dn)
    flt = search_filter.strip() or build_attribute_filter(attribute, value)
    entries = session.search(base, flt)
    return ui_result(True, f"{len(entries)} entries", filter=flt, entries=[e.to_dict() for e in entries])


@router.get("/subtree")
def subtree(base_dn: str = Query(""), session: DirectorySession = Depends(get_active_session)):
    entries = session.get_subtree(resolve_base_dn(session, base_dn))
    return ui_result(True, f"{len(entries)} entries", entries=[e.to_dict() for e in entries])


# --- entries ----------------------------------------------------------------


@router.get("/entries")
def get_entry(dn: str = Query(..., min_length=1), session: DirectorySession = Depends(get_active_session)):
    entry = session.get_entry(dn)
    if entry is None:
        return not_found_response(f"No such entry: {dn}")
    return ui_result(True, "OK", entry=entry.to_dict())


@router.post("/entries")
def create_entry(body: CreateEntryRequest, session: DirectorySession = Depends(get_active_session)):
    session.create_entry(body.dn, body.attributes)
    return ui_result(True, "Entry created.", dn=body.dn)


@router.patch("/entries")
def modify_entry(body: ModifyEntryRequest, session: DirectorySession = Depends(get_active_session)):
    mods = [
        LdapModification(
            attribute_name=m.attribute_name,
            type=m.type,
            new_value=m.new_value,
            old_value=m.old_value,
        )
        for m in body.modifications
    ]
    session.modify_entry(body.dn, mods)
    return ui_result(True, "Entry modified.", dn=body.dn)


@router.delete("/entries")
def delete_entry(dn: str = Query(..., min_length=1), session: DirectorySession = Depends(get_active_session)):
    session.delete_entry(dn)
    return ui_result(True, "Entry deleted.", dn=dn)


@router.post("/entries/move")
def move_entry(body: MoveEntryRequest, session: DirectorySession = Depends(get_active_session)):
    new_dn = session.move_entry(body.dn, body.new_rdn, body.new_parent_dn)
    return ui_result(True, "Entry moved.", dn=new_dn)


@router.post("/entries/password")
def set_password(body: SetPasswordRequest, session: DirectorySession = Depends(get_active_session)):
    try:
        session.set_password(body.dn, body.password, body.algorithm)
    except ValueError as e:
        return _bad_request(str(e))
    return ui_result(True, "Password set.", dn=body.dn)


@router.get("/entries/binary")
def get_binary(
    dn: str = Query(..., min_length=1),
    attribute: str = Query(..., min_length=1),
    session: DirectorySession = Depends(get_active_session),
):
    data = session.get_binary_attribute(dn, attribute)
    if data is None:
        return not_found_response(f"No value for {attribute} in {dn}")
    return Response(
        content=data,
        media_type="application/octet-stream",
        headers={"Content-Disposition": f'attachment; filename="{attribute}.bin"'},
    )


@router.get("/entries/certificate")
def get_certificate(
    dn: str = Query(..., min_length=1),
    attribute: str = Query("userCertificate"),
    session: DirectorySession = Depends(get_active_session),
):
    data = session.get_binary_attribute(dn, attribute)
    if data is None:
        return not_found_response(f"No value for {attribute} in {dn}")
    try:
        info = read_certificate(data)
    except ValueError as e:
        return _bad_request(f"Not a certificate: {e}")
    return ui_result(True, "OK", certificate=asdict(info))
