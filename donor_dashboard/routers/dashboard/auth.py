"""Session introspection and logout."""

from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Depends, Response, status
from fastapi.responses import JSONResponse

from donor_dashboard.core.config import Settings
from donor_dashboard.core.security import DashboardSession
from donor_dashboard.routers.deps import current_session, get_settings
from donor_dashboard.schemas.session import SessionOut

router = APIRouter(prefix="/auth", tags=["Auth"])


def set_session_cookie(response: Response, settings: Settings, token: str, max_age: int) -> None:
    response.set_cookie(
        settings.session_cookie_name,
        token,
        max_age=max_age,
        httponly=True,
        secure=settings.is_production,
        samesite="lax",
        path="/",
    )


@router.get("/session", response_model=SessionOut)
async def get_session(session: Optional[DashboardSession] = Depends(current_session)):
    if session is None:
        return JSONResponse(status_code=status.HTTP_401_UNAUTHORIZED, content={"authenticated": False})
    return SessionOut(authenticated=True, **session.model_dump(include=set(SessionOut.model_fields)))


@router.post("/logout")
async def logout(response: Response, settings: Settings = Depends(get_settings)):
    response.delete_cookie(settings.session_cookie_name, path="/")
    return {"success": True}
