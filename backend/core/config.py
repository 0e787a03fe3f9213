"""
Application Configuration
Auth, CORS, SMTP and upload settings - read from environment variables or .env
"""
from pathlib import Path
from typing import List

from pydantic_settings import BaseSettings, SettingsConfigDict

BACKEND_DIR = Path(__file__).resolve().parent.parent


class AppSettings(BaseSettings):
    """Runtime settings that are not database related."""

    # JWT
    secret_key: str = "change-this-secret-key-in-production"
    jwt_algorithm: str = "HS256"
    access_token_expire_minutes: int = 60 * 24  # 24 hours

    # CORS
    cors_origins: str = "*"

    # SMTP (low stock alerts and user credentials)
    smtp_host: str = "smtp.gmail.com"
    smtp_port: int = 587
    smtp_user: str = ""
    smtp_password: str = ""
    smtp_use_tls: bool = True
    smtp_timeout: int = 30

    # Receipt uploads
    uploads_dir: Path = BACKEND_DIR / "uploads"
    max_upload_bytes: int = 5 * 1024 * 1024  # 5MB

    # Seeded superadmin
    default_admin_username: str = "superadmin"
    default_admin_password: str = "admin123"
    default_admin_email: str = "admin@inventory.local"

    # Items without an explicit threshold
    default_low_stock_threshold: int = 5

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore"
    )

    @property
    def cors_origin_list(self) -> List[str]:
        return [origin.strip() for origin in self.cors_origins.split(",") if origin.strip()]

    @property
    def smtp_configured(self) -> bool:
        return bool(self.smtp_user and self.smtp_password)


app_settings = AppSettings()
