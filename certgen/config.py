import logging

from pydantic_settings import BaseSettings

logger = logging.getLogger(__name__)

_INSECURE_DEFAULT = "change-me"
_MIN_SECRET_LENGTH = 32


class Settings(BaseSettings):
    app_env: str = "production"
    app_debug: bool = False
    app_secret_key: str = _INSECURE_DEFAULT

    database_url: str = "postgresql+asyncpg://certgen:certgen@db:5432/certgen"

    jwt_secret_key: str = _INSECURE_DEFAULT
    jwt_algorithm: str = "HS256"
    jwt_access_token_expire_minutes: int = 60 * 24

    cors_origins: list[str] = ["http://localhost:3000"]

    # Template uploads live under <upload_dir>/templates, renders under generated_dir
    upload_dir: str = "/data/uploads"
    generated_dir: str = "/data/generated"
    max_upload_size_mb: int = 10

    # Directories searched for the TrueType faces used by the raster renderer
    font_dirs: list[str] = [
        "/usr/share/fonts/truetype/liberation",
        "/usr/share/fonts/truetype/liberation2",
        "/usr/share/fonts/truetype/dejavu",
        "/usr/share/fonts/TTF",
    ]

    # Editor preview width assumed when a request carries no container size
    default_container_width: int = 800

    # Cookie settings for JWT HttpOnly cookie
    cookie_name: str = "access_token"
    cookie_secure: bool = True  # False for local dev without HTTPS
    cookie_samesite: str = "lax"
    cookie_domain: str | None = None

    # Redis (used for token blacklist)
    redis_url: str = "redis://redis:6379/0"

    # Account lockout
    max_failed_logins: int = 5
    lockout_minutes: int = 120

    # In-memory rate limits (per client)
    login_max_attempts: int = 5
    login_window_seconds: int = 300
    upload_rate_limit_per_hour: int = 30
    generate_rate_limit_per_hour: int = 500

    # Only the first admin may register freely unless this is enabled
    allow_open_registration: bool = False

    # Admin seed, created on startup when both are set and no admin exists
    admin_seed_email: str = ""
    admin_seed_password: str = ""

    model_config = {"env_file": ".env", "env_file_encoding": "utf-8"}

    @property
    def template_upload_dir(self) -> str:
        import os

        return os.path.join(self.upload_dir, "templates")

    def validate_secrets(self) -> None:
        """Raise if running with insecure default secrets."""
        insecure = []
        if self.app_secret_key == _INSECURE_DEFAULT:
            insecure.append("APP_SECRET_KEY")
        if self.jwt_secret_key == _INSECURE_DEFAULT:
            insecure.append("JWT_SECRET_KEY")
        if insecure:
            if self.app_env == "production":
                raise ValueError(
                    f"Insecure secrets in production, configure: {', '.join(insecure)}"
                )
            logger.warning(
                "SECURITY: using insecure default secrets (%s). "
                "Set environment variables before going to production.",
                ", ".join(insecure),
            )

        if self.app_env == "production":
            if len(self.jwt_secret_key) < _MIN_SECRET_LENGTH:
                raise ValueError(
                    f"JWT_SECRET_KEY must be at least {_MIN_SECRET_LENGTH} characters."
                )
            if len(self.app_secret_key) < _MIN_SECRET_LENGTH:
                raise ValueError(
                    f"APP_SECRET_KEY must be at least {_MIN_SECRET_LENGTH} characters."
                )


settings = Settings()
