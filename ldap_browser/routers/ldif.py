from __future__ import annotations

from dataclasses import asdict

from fastapi import APIRouter, Depends, Query
from fastapi.responses import PlainTextResponse
from pydantic import BaseModel, Field

from ..deps import get_active_session
from ..directory.ldif import apply_ldif, parse_ldif, to_ldif, to_ldif_many
from ..directory.session import DirectorySession
from ..webui import not_found_response, ui_result

router = APIRouter(prefix="/api/ldif", tags=["ldif"])


class LdifRequest(BaseModel):
    content: str = Field(default="")


@router.post("/parse")
def parse(body: LdifRequest):
    ops = parse_ldif(body.content)
    return ui_result(True, f"{len(ops)} operations", operations=[asdict(o) for o in ops])


@router.post("/apply")
def apply(body: LdifRequest, session: DirectorySession = Depends(get_active_session)):
    results = apply_ldif(session, parse_ldif(body.content))
    failed = sum(1 for r in results if not r.success)
    msg = f"{len(results) - failed} applied, {failed} failed"
    return ui_result(failed == 0, msg, results=[asdict(r) for r in results])


@router.get("/export", response_class=PlainTextResponse)
def export(
    dn: str = Query(..., min_length=1),
    subtree: bool = Query(False),
    session: DirectorySession = Depends(get_active_session),
):
    if subtree:
        return PlainTextResponse(to_ldif_many(session.get_subtree(dn)))
    entry = session.get_entry(dn)
    if entry is None:
        return not_found_response(f"No such entry: {dn}")
    return PlainTextResponse(to_ldif(entry))
