"""
Runtime configuration for the HJ Fashion API.

Values come from the environment (a local .env file is loaded first) and are
read once per process through get_settings().
"""
import os
from functools import lru_cache
from typing import List, Optional

from dotenv import load_dotenv
from pydantic import BaseModel, Field


def _env(name: str, default: Optional[str] = None) -> Optional[str]:
    value = os.getenv(name)
    if value is None:
        return default
    value = value.strip()
    return value or default


class Settings(BaseModel):
    app_env: str = Field("development", description="development | production")
    database_url: Optional[str] = None
    database_name: str = "hj_fashion"
    jwt_secret: Optional[str] = None

    smtp_host: str = "smtp.gmail.com"
    smtp_port: int = 587
    smtp_secure: Optional[bool] = Field(None, description="Implicit TLS; None means port == 465")
    smtp_user: Optional[str] = None
    smtp_pass: Optional[str] = None
    from_email: Optional[str] = None

    resend_api_key: Optional[str] = None
    resend_from: Optional[str] = None

    app_name: str = "HJ Fashion"
    app_url: str = "https://hjfashion.vercel.app"
    cors_origins: List[str] = Field(default_factory=lambda: ["*"])

    @property
    def is_production(self) -> bool:
        return self.app_env == "production"

    @property
    def smtp_uses_ssl(self) -> bool:
        if self.smtp_secure is None:
            return self.smtp_port == 465
        return self.smtp_secure

    @property
    def has_smtp_credentials(self) -> bool:
        return bool(self.smtp_user and self.smtp_pass)

    @property
    def sender_email(self) -> str:
        return self.from_email or self.smtp_user or "noreply@hjfashion.com"

    @classmethod
    def from_env(cls) -> "Settings":
        secure_raw = _env("SMTP_SECURE")
        port_raw = _env("SMTP_PORT", "587")
        try:
            port = int(port_raw)
        except ValueError:
            raise ValueError("Invalid SMTP_PORT (must be a number).")
        smtp_pass = _env("SMTP_PASS")
        origins = _env("CORS_ORIGINS", "*")
        return cls(
            app_env=(_env("APP_ENV", "development") or "development").lower(),
            database_url=_env("DATABASE_URL"),
            database_name=_env("DATABASE_NAME", "hj_fashion"),
            jwt_secret=_env("JWT_SECRET"),
            smtp_host=_env("SMTP_HOST", "smtp.gmail.com"),
            smtp_port=port,
            smtp_secure=None if secure_raw is None else secure_raw.lower() == "true",
            smtp_user=_env("SMTP_USER"),
            smtp_pass="".join(smtp_pass.split()) if smtp_pass else None,
            from_email=_env("FROM_EMAIL"),
            resend_api_key=_env("RESEND_API_KEY"),
            resend_from=_env("RESEND_FROM"),
            app_url=(_env("APP_URL", "https://hjfashion.vercel.app")).rstrip("/"),
            cors_origins=[o.strip() for o in origins.split(",") if o.strip()],
        )


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    load_dotenv()
    return Settings.from_env()
