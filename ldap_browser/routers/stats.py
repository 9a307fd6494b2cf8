from __future__ import annotations

from fastapi import APIRouter, Depends, Query

from ..deps import get_active_session, resolve_base_dn
from ..directory.session import DirectorySession
from ..webui import ui_result

router = APIRouter(prefix="/api/stats", tags=["stats"])


def _sorted_counts(stats: dict[str, int]) -> list[dict]:
    # Largest first, then by name
    items = sorted(stats.items(), key=lambda kv: (-kv[1], kv[0].lower()))
    return [{"name": k, "count": v} for k, v in items]


@router.get("/object-classes")
def object_class_stats(base_dn: str = Query(""), session: DirectorySession = Depends(get_active_session)):
    base = resolve_base_dn(session, base_dn)
    return ui_result(True, "OK", base_dn=base, items=_sorted_counts(session.get_statistics(base)))


@router.get("/ous")
def ou_stats(base_dn: str = Query(""), session: DirectorySession = Depends(get_active_session)):
    base = resolve_base_dn(session, base_dn)
    return ui_result(True, "OK", base_dn=base, items=_sorted_counts(session.get_ou_statistics(base)))
