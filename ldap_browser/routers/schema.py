from __future__ import annotations

from dataclasses import asdict

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel, Field

from ..deps import get_active_session
from ..directory.passwords import supported_algorithms
from ..directory.schema import get_allowed_attributes, get_required_attributes, get_typical_rdn_attribute
from ..directory.session import DirectorySession
from ..directory.suggestions import suggest_attributes
from ..webui import ui_result

router = APIRouter(prefix="/api/schema", tags=["schema"])


class ObjectClassesRequest(BaseModel):
    object_classes: list[str] = Field(default_factory=list)


@router.get("")
def get_schema(session: DirectorySession = Depends(get_active_session)):
    schema = session.get_schema()
    return ui_result(
        True,
        "OK",
        object_classes=[asdict(i) for i in schema.object_classes],
        attribute_types=[asdict(i) for i in schema.attribute_types],
    )


@router.post("/attributes")
def attributes_for(body: ObjectClassesRequest, session: DirectorySession = Depends(get_active_session)):
    schema = session.get_schema()
    return ui_result(
        True,
        "OK",
        allowed=get_allowed_attributes(schema, body.object_classes),
        required=get_required_attributes(schema, body.object_classes),
        typical_rdn=get_typical_rdn_attribute(body.object_classes),
    )


@router.get("/suggestions")
def suggestions(q: str = Query(""), limit: int = Query(20, ge=1, le=200)):
    return ui_result(True, "OK", attributes=suggest_attributes(q, limit))


@router.get("/password-algorithms")
def password_algorithms():
    return ui_result(True, "OK", algorithms=supported_algorithms())
