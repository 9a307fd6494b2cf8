from __future__ import annotations

from fastapi import status
from fastapi.responses import JSONResponse, Response

from .context import CONTEXT_COOKIE, create_context_token
from .directory.errors import ConnectFailed, DirectoryError, NotConnected, OperationFailed
from .env_settings import get_env


def ui_result(ok: bool, message: str, details: str | None = None, **data) -> dict:
    """Unified result shape for API responses.

    Format:
      {"ok": bool, "message": str, "details": str, ...data}
    """

    out = {
        "ok": bool(ok),
        "message": str(message or ""),
        "details": str(details or ""),
    }
    out.update(data)
    return out


def error_status(exc: DirectoryError) -> int:
    if isinstance(exc, NotConnected):
        return status.HTTP_409_CONFLICT
    if isinstance(exc, ConnectFailed):
        return status.HTTP_502_BAD_GATEWAY
    if isinstance(exc, OperationFailed) and exc.is_no_such_object:
        return status.HTTP_404_NOT_FOUND
    return status.HTTP_400_BAD_REQUEST


def directory_error_response(exc: DirectoryError) -> JSONResponse:
    details = ""
    if isinstance(exc, OperationFailed):
        details = exc.message or exc.description
    return JSONResponse(
        ui_result(False, str(exc), details, kind=exc.kind),
        status_code=error_status(exc),
    )


def not_found_response(message: str) -> JSONResponse:
    return JSONResponse(ui_result(False, message, kind="not_found"), status_code=status.HTTP_404_NOT_FOUND)


def set_context_cookie(resp: Response, context_id: str) -> None:
    """Set the signed user-context cookie (kept in one place for all flows)."""
    env = get_env()
    resp.set_cookie(
        key=CONTEXT_COOKIE,
        value=create_context_token(context_id),
        httponly=True,
        secure=env.cookie_secure,
        samesite="lax",
        max_age=env.context_max_age_seconds,
    )


def clear_context_cookie(resp: Response) -> None:
    resp.delete_cookie(key=CONTEXT_COOKIE, httponly=True, secure=get_env().cookie_secure, samesite="lax")
