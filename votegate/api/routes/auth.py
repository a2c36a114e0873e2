from __future__ import annotations

from fastapi import APIRouter, Response

from votegate.core.config import get_settings

router = APIRouter(prefix="/auth", tags=["auth"])


@router.post("/logout")
def logout(response: Response) -> dict:
    response.delete_cookie(get_settings().session_cookie_name, path="/")
    return {"message": "Logged out"}
