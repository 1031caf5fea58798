import logging

from fastapi import APIRouter, Depends, HTTPException, Request, Response, status
from fastapi.security import HTTPAuthorizationCredentials
from jose import JWTError
from redis.exceptions import RedisError
from sqlalchemy.ext.asyncio import AsyncSession

from certgen.admins.models import Admin, AdminRole
from certgen.admins.schemas import AdminCreate, AdminOut, ProfileUpdate
from certgen.admins.service import (
    count_admins,
    create_admin,
    get_admin_by_email,
    register_failed_login,
    register_successful_login,
    update_profile,
)
from certgen.auth.blacklist import revoke_token
from certgen.auth.dependencies import authenticate_token, get_current_admin, security
from certgen.auth.schemas import LoginRequest, TokenResponse
from certgen.auth.service import create_access_token, decode_access_token
from certgen.auth.utils import get_password_hash, verify_password
from certgen.config import settings as app_settings
from certgen.database import get_db
from certgen.ratelimit import client_ip, login_limiter

logger = logging.getLogger(__name__)

router = APIRouter()


def _set_auth_cookie(response: Response, token: str) -> None:
    """Set an HttpOnly secure cookie containing the JWT."""
    response.set_cookie(
        key=app_settings.cookie_name,
        value=token,
        httponly=True,
        secure=app_settings.cookie_secure,
        samesite=app_settings.cookie_samesite,
        max_age=app_settings.jwt_access_token_expire_minutes * 60,
        path="/",
        domain=app_settings.cookie_domain,
    )


def _clear_auth_cookie(response: Response) -> None:
    response.delete_cookie(
        key=app_settings.cookie_name,
        path="/",
        domain=app_settings.cookie_domain,
    )


def _issue_token(response: Response, admin: Admin, set_cookie: bool = True) -> TokenResponse:
    token = create_access_token(subject=str(admin.id), role=admin.role.value)
    if set_cookie:
        _set_auth_cookie(response, token)
    return TokenResponse(access_token=token, admin=AdminOut.model_validate(admin))


@router.post("/register", response_model=TokenResponse, status_code=status.HTTP_201_CREATED)
async def register(
    data: AdminCreate,
    request: Request,
    response: Response,
    credentials: HTTPAuthorizationCredentials | None = Depends(security),
    db: AsyncSession = Depends(get_db),
):
    caller = None
    if await count_admins(db) > 0 and not app_settings.allow_open_registration:
        token = (credentials.credentials if credentials else None) or request.cookies.get(
            app_settings.cookie_name
        )
        caller = await authenticate_token(db, token) if token else None
        if caller is None or caller.role != AdminRole.SUPER_ADMIN:
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail="Registration is closed. Ask a super admin to create your account.",
            )

    if await get_admin_by_email(db, data.email):
        raise HTTPException(status_code=400, detail="Email already registered")

    admin = await create_admin(db, data)
    # A super admin creating an account keeps their own session cookie
    return _issue_token(response, admin, set_cookie=caller is None)


@router.post("/login", response_model=TokenResponse)
async def login(data: LoginRequest, request: Request, response: Response, db: AsyncSession = Depends(get_db)):
    ip = client_ip(request)
    rate_key = f"{ip}:{data.email}"
    login_limiter.check(rate_key)

    admin = await get_admin_by_email(db, data.email)

    # Timing-safe: always hash even if the admin does not exist
    if not admin:
        get_password_hash("dummy-password-to-prevent-timing-attack")
        login_limiter.record(rate_key)
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid credentials",
        )
    if admin.is_locked:
        raise HTTPException(
            status_code=status.HTTP_423_LOCKED,
            detail="Account temporarily locked due to too many failed login attempts",
        )
    if not verify_password(data.password, admin.hashed_password):
        login_limiter.record(rate_key)
        await register_failed_login(db, admin)
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid credentials",
        )
    if not admin.is_active:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Account is deactivated",
        )

    await register_successful_login(db, admin)
    logger.info("Login succeeded: admin_id=%s, ip=%s", admin.id, ip)
    return _issue_token(response, admin)


@router.get("/me", response_model=AdminOut)
async def me(current_admin: Admin = Depends(get_current_admin)):
    return current_admin


@router.put("/profile", response_model=AdminOut)
async def update_my_profile(
    data: ProfileUpdate,
    db: AsyncSession = Depends(get_db),
    current_admin: Admin = Depends(get_current_admin),
):
    return await update_profile(db, current_admin, data.name)


@router.post("/refresh", response_model=TokenResponse)
async def refresh(response: Response, current_admin: Admin = Depends(get_current_admin)):
    return _issue_token(response, current_admin)


@router.post("/logout", status_code=status.HTTP_204_NO_CONTENT)
async def logout(
    request: Request,
    response: Response,
    credentials: HTTPAuthorizationCredentials | None = Depends(security),
):
    """Revoke the current JWT and clear the auth cookie."""
    token = (credentials.credentials if credentials else None) or request.cookies.get(
        app_settings.cookie_name
    )
    if token:
        try:
            payload = decode_access_token(token)
            jti = payload.get("jti")
            exp = payload.get("exp")
            if jti and exp:
                await revoke_token(jti, int(exp))
        except (JWTError, ValueError) as exc:
            logger.debug("Logout with unusable token: %s", exc)
        except (RedisError, OSError) as exc:
            logger.warning("Could not revoke token on logout: %s", exc)
    _clear_auth_cookie(response)
