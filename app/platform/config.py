from pathlib import Path
from typing import List, Literal, Optional

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    # ── App ─────────────────────────────────────
    APP_NAME: str = "Site Audit API"
    ENVIRONMENT: Literal["development", "staging", "production"] = "production"
    # Exposes internal error messages in 5xx responses
    DEBUG: bool = False
    API_PREFIX: str = "/api"
    SITE_URL: str = "https://audit.example.com"
    LOG_DIR: str = "logs"
    LOG_LEVEL: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = "INFO"
    CORS_ORIGINS: List[str] = ["*"]

    # ── Database ────────────────────────────────
    DATABASE_URL: str = "sqlite+aiosqlite:///./site_audit.db"
    AUTO_CREATE_TABLES: bool = True

    # ── Audit ───────────────────────────────────
    AUDIT_TIMEOUT_SECONDS: float = 120
    PROBE_TIMEOUT_SECONDS: float = 90
    PDF_TIMEOUT_SECONDS: float = 60
    MAX_PDF_BYTES: int = 10 * 1024 * 1024
    CACHE_TTL_HOURS: int = 24
    AUDIT_RETENTION_DAYS: int = 90
    REQUEST_MAX_AGE_SECONDS: int = 300
    USER_AGENT: str = "SEO-Audit-Bot/1.0"

    PAGESPEED_API_URL: str = "https://www.googleapis.com/pagespeedonline/v5/runPagespeed"
    PAGESPEED_API_KEY: Optional[str] = None
    PAGESPEED_STRATEGY: Literal["mobile", "desktop"] = "mobile"

    CHROMEDRIVER_PATH: Optional[str] = None
    BROWSER_PAGE_LOAD_TIMEOUT: int = 30

    # ── Rate limits ─────────────────────────────
    AUDIT_RATE_LIMIT_MAX: int = 10
    AUDIT_RATE_LIMIT_WINDOW_SECONDS: int = 60
    EMAIL_RATE_LIMIT_MAX: int = 3
    EMAIL_RATE_LIMIT_WINDOW_SECONDS: int = 300

    # ── Email Configuration ─────────────────────
    BREVO_API_KEY: Optional[str] = None
    BREVO_API_URL: str = "https://api.brevo.com/v3/smtp/email"
    EMAIL_TIMEOUT: int = 30
    MAIL_HOST: str = "smtp.gmail.com"
    MAIL_PORT: int = 587
    MAIL_USERNAME: str = ""
    MAIL_PASSWORD: str = ""
    MAIL_ENCRYPTION: str = "tls"
    MAIL_FROM_ADDRESS: str = "audit@example.com"
    MAIL_FROM_NAME: str = "Site Audit"

    # ── Admin ───────────────────────────────────
    ADMIN_TOKEN: str = "change-this-admin-token"

    class Config:
        env_file = str(Path(__file__).parent.parent.parent / ".env")
        env_file_encoding = "utf-8"
        case_sensitive = False
        extra = "ignore"


settings = Settings()
