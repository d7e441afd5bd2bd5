import hmac
import logging

from fastapi import APIRouter, HTTPException, status
from fastapi.responses import JSONResponse

from app.api.deps import ADMIN_COOKIE, studio_session_value
from app.core.config import settings
from app.schemas.quiz import StudioLoginRequest

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/studio-auth", tags=["Studio Auth"])

SESSION_MAX_AGE = 60 * 60 * 24 * 7


@router.post("")
def login(payload: StudioLoginRequest):
    if not hmac.compare_digest(payload.password.encode("utf-8"), settings.STUDIO_PASSWORD.encode("utf-8")):
        logger.warning("Rejected studio login attempt")
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Incorrect password. Please try again.",
        )

    response = JSONResponse({"success": True})
    response.set_cookie(
        ADMIN_COOKIE,
        studio_session_value(),
        max_age=SESSION_MAX_AGE,
        httponly=True,
        secure=settings.COOKIE_SECURE,
        samesite="lax",
        path="/",
    )
    return response


@router.delete("")
def logout():
    response = JSONResponse({"success": True})
    response.delete_cookie(ADMIN_COOKIE, path="/")
    return response
