import hashlib
import hmac
from typing import Optional

from fastapi import HTTPException, Request, status

from app.core.config import settings

ADMIN_COOKIE = "studio_authenticated"


def studio_session_value(password: Optional[str] = None) -> str:
    """Cookie value proving the studio password was entered."""
    secret = (password if password is not None else settings.STUDIO_PASSWORD).encode("utf-8")
    return hmac.new(secret, ADMIN_COOKIE.encode("utf-8"), hashlib.sha256).hexdigest()


def require_admin(request: Request) -> None:
    cookie = request.cookies.get(ADMIN_COOKIE) or ""
    if not hmac.compare_digest(cookie, studio_session_value()):
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Unauthorized")


def client_ip(request: Request) -> Optional[str]:
    forwarded = request.headers.get("x-forwarded-for")
    if forwarded:
        return forwarded.split(",")[0].strip() or None
    real_ip = request.headers.get("x-real-ip")
    if real_ip:
        return real_ip.strip()
    return request.client.host if request.client else None
