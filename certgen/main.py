import logging
from contextlib import asynccontextmanager
from datetime import datetime, timezone

from fastapi import FastAPI, Request, Response
from fastapi.middleware.cors import CORSMiddleware
from jose import JWTError
from starlette.middleware.base import BaseHTTPMiddleware

from certgen.auth.router import router as auth_router
from certgen.auth.service import create_access_token, decode_access_token
from certgen.certificates.router import router as certificates_router
from certgen.config import settings
from certgen.init_db import startup as init_startup
from certgen.progress.router import router as progress_router
from certgen.redis import close_redis, redis_status
from certgen.templates.router import router as templates_router

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)


# --- Security Headers Middleware ---


class SecurityHeadersMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request: Request, call_next) -> Response:
        response = await call_next(request)
        response.headers["X-Content-Type-Options"] = "nosniff"
        response.headers["X-XSS-Protection"] = "1; mode=block"
        response.headers["Referrer-Policy"] = "strict-origin-when-cross-origin"
        response.headers["Permissions-Policy"] = "camera=(), microphone=(), geolocation=()"

        # The placeholder editor shows template backgrounds in a same-origin frame
        path = request.url.path
        is_embeddable = path.startswith("/api/templates/") and path.endswith("/file")
        response.headers["X-Frame-Options"] = "SAMEORIGIN" if is_embeddable else "DENY"

        if settings.app_env == "production":
            response.headers["Strict-Transport-Security"] = (
                "max-age=31536000; includeSubDomains"
            )
            response.headers["Content-Security-Policy"] = (
                "default-src 'self'; script-src 'self' 'unsafe-inline'; "
                "style-src 'self' 'unsafe-inline'; "
                "img-src 'self' data: blob:; font-src 'self'; "
                "connect-src 'self' ws: wss:; frame-src 'self'"
            )
        return response


# --- Sliding-window session refresh middleware ---


class SessionRefreshMiddleware(BaseHTTPMiddleware):
    """Re-issue the session cookie once it is past half of its lifetime.

    Only successful responses carrying the session cookie are touched; the
    login and logout endpoints manage the cookie themselves.
    """

    _SKIP_PATHS = frozenset({
        "/api/auth/login",
        "/api/auth/logout",
        "/api/health",
    })

    async def dispatch(self, request: Request, call_next) -> Response:
        response = await call_next(request)

        if response.status_code >= 300:
            return response
        if request.url.path in self._SKIP_PATHS:
            return response

        cookie_token = request.cookies.get(settings.cookie_name)
        if not cookie_token:
            return response

        try:
            payload = decode_access_token(cookie_token)
        except (JWTError, ValueError):
            # Invalid or expired; the regular auth flow rejects it
            return response

        exp = payload.get("exp", 0)
        iat = payload.get("iat", 0)
        lifetime = exp - iat
        elapsed = datetime.now(timezone.utc).timestamp() - iat
        if lifetime > 0 and elapsed > lifetime / 2:
            new_token = create_access_token(subject=payload["sub"], role=payload.get("role"))
            response.set_cookie(
                key=settings.cookie_name,
                value=new_token,
                httponly=True,
                secure=settings.cookie_secure,
                samesite=settings.cookie_samesite,
                max_age=settings.jwt_access_token_expire_minutes * 60,
                path="/",
                domain=settings.cookie_domain,
            )
        return response


@asynccontextmanager
async def lifespan(app: FastAPI):
    settings.validate_secrets()
    logger.info("CORS origins: %s", settings.cors_origins)
    await init_startup()
    yield
    await close_redis()


# Disable interactive docs in production
_docs_url = "/docs" if settings.app_env != "production" else None
_redoc_url = "/redoc" if settings.app_env != "production" else None

app = FastAPI(
    title="Certgen",
    description="Certificate template management and PDF/PNG certificate generation",
    version="0.1.0",
    root_path="",
    lifespan=lifespan,
    docs_url=_docs_url,
    redoc_url=_redoc_url,
)

# Security headers must be added first (outermost middleware)
app.add_middleware(SecurityHeadersMiddleware)
app.add_middleware(SessionRefreshMiddleware)

cors_origins = list(settings.cors_origins)
# Only include localhost in non-production environments
if settings.app_env != "production":
    for origin in ["http://localhost:3000", "http://127.0.0.1:3000"]:
        if origin not in cors_origins:
            cors_origins.append(origin)

app.add_middleware(
    CORSMiddleware,
    allow_origins=cors_origins,
    allow_credentials=True,
    allow_methods=["GET", "POST", "PUT", "DELETE", "OPTIONS"],
    allow_headers=["Content-Type", "Authorization"],
    expose_headers=["Content-Disposition"],
)

app.include_router(auth_router, prefix="/api/auth", tags=["auth"])
app.include_router(templates_router, prefix="/api/templates", tags=["templates"])
app.include_router(certificates_router, prefix="/api/certificates", tags=["certificates"])
app.include_router(progress_router, tags=["progress"])


@app.get("/api/health")
async def health_check():
    return {
        "status": "ok",
        "environment": settings.app_env,
        "redis": await redis_status(),
        "timestamp": datetime.now(timezone.utc).isoformat(),
    }
