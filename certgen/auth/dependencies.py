import logging
import uuid
from typing import Optional

from fastapi import Depends, HTTPException, Request, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from jose import JWTError
from redis.exceptions import RedisError
from sqlalchemy.ext.asyncio import AsyncSession

from certgen.admins.models import Admin
from certgen.admins.service import get_admin_by_id
from certgen.auth.blacklist import is_token_revoked
from certgen.auth.service import decode_access_token
from certgen.config import settings
from certgen.database import get_db

logger = logging.getLogger(__name__)

# auto_error=False so we don't 403 when no header but cookie is present
security = HTTPBearer(auto_error=False)


def _extract_token(
    request: Request,
    credentials: HTTPAuthorizationCredentials | None,
) -> str:
    """Extract JWT from the Authorization header first, then the HttpOnly cookie."""
    if credentials and credentials.credentials:
        return credentials.credentials

    cookie_token = request.cookies.get(settings.cookie_name)
    if cookie_token:
        return cookie_token

    raise HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="Not authenticated",
        headers={"WWW-Authenticate": "Bearer"},
    )


async def _revoked(jti: str | None) -> bool:
    if not jti:
        return False
    try:
        return await is_token_revoked(jti)
    except (RedisError, OSError) as exc:
        # Revocation is best effort; token expiry remains the hard limit
        logger.warning("Token blacklist unavailable: %s", exc)
        return False


async def authenticate_token(db: AsyncSession, token: str) -> Admin | None:
    """Resolve a raw JWT to an active admin, or None."""
    try:
        payload = decode_access_token(token)
        admin_id = uuid.UUID(payload["sub"])
    except (JWTError, KeyError, ValueError):
        return None
    if await _revoked(payload.get("jti")):
        return None
    admin = await get_admin_by_id(db, admin_id)
    if not admin or not admin.is_active:
        return None
    return admin


async def get_current_admin(
    request: Request,
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security),
    db: AsyncSession = Depends(get_db),
) -> Admin:
    token = _extract_token(request, credentials)
    admin = await authenticate_token(db, token)
    if admin is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid token",
        )
    return admin

