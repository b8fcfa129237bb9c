"""
config.py — 90-Day Objectives service settings.

Usage:
    from objectives.config import Settings
    settings = Settings()
    app = create_app(settings)

Settings are built once at process start (in create_app) and handed to each
service constructor. Required credentials are checked per request with
Settings.require(), so a missing value fails only the call that needs it.
"""
from typing import List

from pydantic_settings import BaseSettings, SettingsConfigDict

from objectives.errors import ConfigurationError


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",  # Silently ignore any extra env vars
    )

    # --- Completion provider ---
    mistral_api_key: str = ""

    # --- Record store (Airtable) ---
    airtable_api_key: str = ""
    airtable_base_id: str = ""
    airtable_table_id: str = ""  # Table id (tbl...) or table name
    # True → single upsert-by-key request instead of find-then-write
    airtable_atomic_upsert: bool = False

    # --- Mail relay ---
    smtp_host: str = ""
    smtp_port: int = 587
    smtp_secure: bool = False  # True → implicit TLS (SMTP_SSL), usually port 465
    smtp_user: str = ""
    smtp_password: str = ""
    smtp_from_email: str = ""
    smtp_timeout: float = 20.0

    # --- Product limits ---
    text_field_max_length: int = 100_000
    rating_min: int = 1
    rating_max: int = 10

    # --- CORS ---
    # Comma-separated list of allowed frontend origins
    cors_origins: str = "http://localhost:3000"

    # --- Application ---
    debug: bool = False
    app_version: str = "0.1.0"

    @property
    def cors_origins_list(self) -> List[str]:
        """Split comma-separated CORS origins into a list."""
        return [o.strip() for o in self.cors_origins.split(",") if o.strip()]

    def require(self, *names: str) -> None:
        """
        Raise ConfigurationError for the first setting in `names` that is empty.
        The error names the environment variable (upper-cased field name).
        """
        for name in names:
            if not getattr(self, name):
                raise ConfigurationError(name.upper())
