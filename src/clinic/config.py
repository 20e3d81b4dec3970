from __future__ import annotations

import os
from dataclasses import dataclass
from typing import Optional


@dataclass
class Settings:
    """Centralized application settings.

    This keeps environment-variable handling in one place so other modules can
    depend on strongly-typed attributes instead of calling os.getenv
    directly.
    """

    # Optional database configuration for SQL-backed repositories.
    database_url: Optional[str] = os.getenv("DATABASE_URL")
    use_sql_repos: bool = os.getenv("USE_SQL_REPOS", "false").lower() == "true"

    # Seed the default permission catalog and roles on startup.
    seed_defaults: bool = os.getenv("SEED_DEFAULTS", "true").lower() == "true"

    # Basic API authentication configuration.
    # When ENABLE_API_AUTH=true, protected endpoints require a valid API key
    # that has been bound to a registered user.
    enable_api_auth: bool = os.getenv("ENABLE_API_AUTH", "false").lower() == "true"
    # Comma-separated list of allowed API keys when auth is enabled.
    api_keys: Optional[str] = os.getenv("API_KEYS")

    # Optional platform administrator created by the seed step.
    super_admin_email: Optional[str] = os.getenv("SUPER_ADMIN_EMAIL")
    super_admin_name: Optional[str] = os.getenv("SUPER_ADMIN_NAME")
    # API key bound to that administrator at startup, so API auth can be
    # bootstrapped. Must also be listed in API_KEYS.
    super_admin_api_key: Optional[str] = os.getenv("SUPER_ADMIN_API_KEY")

    # Number of days a team invitation stays acceptable.
    invitation_ttl_days: int = int(os.getenv("INVITATION_TTL_DAYS", "7"))

    # Root log level applied at startup.
    log_level: str = os.getenv("LOG_LEVEL", "INFO")

    # CORS configuration: comma-separated origins (e.g. "https://app.example.com,https://admin.example.com").
    # Default is "*" (allow all) which is acceptable for local development but
    # should be tightened in production.
    cors_allow_origins: str = os.getenv("CORS_ALLOW_ORIGINS", "*")


settings = Settings()
