import logging

from pydantic_settings import BaseSettings
from pydantic import ConfigDict
from typing import Optional

class Settings(BaseSettings):
    # Environment
    ENV: str = "development"
    CONFIG_STRICT: bool = False

    # Database
    DATABASE_URL: Optional[str] = None
    TEST_DATABASE_URL: Optional[str] = None

    # Identity provider (bearer JWT)
    JWT_SECRET: Optional[str] = None
    JWT_ALGORITHMS: str = "HS256"  # comma-separated
    JWT_AUDIENCE: Optional[str] = None
    AUTH_ALLOW_USER_ID_HEADER: bool = False  # X-User-Id fallback; tests and local tooling only

    # Plan catalog
    DEFAULT_CONTACT_VIEW_LIMIT: int = 5  # free tier when a driver has no subscription
    DEFAULT_DRIVER_PLAN: str = "driver-free"
    DEFAULT_COMPANY_PLAN: str = "company-trial"
    SEED_PLANS_ON_STARTUP: bool = True

    # HTTP
    CORS_ALLOWED_ORIGINS: str = "http://localhost:5173"  # comma-separated

    model_config = ConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )
settings = Settings()


def validate_config(strict: Optional[bool] = None, settings_obj: Optional[Settings] = None, logger: Optional[logging.Logger] = None) -> bool:
    """Validate required configuration.

    In strict mode raise RuntimeError; otherwise emit warnings only.
    Secrets are not logged, only missing keys.
    """
    cfg = settings_obj or settings
    log = logger or logging.getLogger("freightgate")
    strict_mode = strict if strict is not None else getattr(cfg, "CONFIG_STRICT", False)

    required_keys = [
        "DATABASE_URL",
        "JWT_SECRET",
    ]

    missing = [key for key in required_keys if not getattr(cfg, key, None)]
    if missing:
        message = f"Missing required configuration: {', '.join(missing)}"
        if strict_mode:
            raise RuntimeError(message)
        log.warning(message)

    if cfg.DEFAULT_CONTACT_VIEW_LIMIT < 0:
        message = "DEFAULT_CONTACT_VIEW_LIMIT must be >= 0"
        if strict_mode:
            raise RuntimeError(message)
        log.warning(message)

    return True
