"""
catequesis_api.settings

Central configuration model (Pydantic Settings).

Responsibilities:
- Provide strongly-typed, env-driven settings for all layers.
- Hide secrets from repr/logging (e.g., JWT secret).
- Offer a cached settings instance for dependency injection.
"""

from __future__ import annotations

from functools import lru_cache
from typing import Literal

from pydantic import Field, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

DEFAULT_JWT_SECRET = "dev-secret-change-me"


class Settings(BaseSettings):
    """
    Env-driven configuration (prefix `CATEQUESIS_`).

    Defaults are safe for local dev; `prod` refuses to start with the default JWT secret.
    """

    model_config = SettingsConfigDict(env_prefix="CATEQUESIS_", case_sensitive=False)

    # Environment controls toggle behavior like auto-init DB tables and the dev token router.
    env: Literal["dev", "test", "prod"] = "dev"
    service_name: str = "catequesis-api"
    log_level: str = "INFO"

    api_host: str = "0.0.0.0"
    api_port: int = 3000

    # Auth
    jwt_alg: str = "HS256"
    jwt_issuer: str = "catequesis-api"
    jwt_audience: str = "catequesis-clients"
    jwt_secret: str = Field(default=DEFAULT_JWT_SECRET, repr=False)
    jwt_ttl_minutes: int = Field(default=24 * 60, ge=1)
    bcrypt_rounds: int = Field(default=12, ge=4, le=31)

    # Gating
    privileged_role: str = "admin"
    login_max_failed_attempts: int = Field(default=5, ge=1)
    login_lockout_minutes: int = Field(default=30, ge=1)
    # Only enable behind a proxy that overwrites X-Forwarded-For.
    trust_forwarded_for: bool = False

    # Rate limiting (sliding window per identity key)
    api_rate_limit_max: int = Field(default=100, ge=1)
    api_rate_limit_window_seconds: float = Field(default=15 * 60, gt=0)
    login_rate_limit_max: int = Field(default=10, ge=1)
    login_rate_limit_window_seconds: float = Field(default=15 * 60, gt=0)
    credential_change_rate_limit_max: int = Field(default=5, ge=1)
    credential_change_rate_limit_window_seconds: float = Field(default=60 * 60, gt=0)
    rate_limit_max_keys: int = Field(default=20_000, ge=1)

    # Activity logging
    activity_queue_size: int = Field(default=1_000, ge=1)

    # Persistence
    database_url: str = "sqlite+aiosqlite:///./catequesis.db"

    @model_validator(mode="after")
    def _reject_default_secret_in_prod(self) -> Settings:
        if self.env == "prod" and self.jwt_secret == DEFAULT_JWT_SECRET:
            raise ValueError("CATEQUESIS_JWT_SECRET must be set in prod")
        return self


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    # Cache avoids re-parsing env vars for each request dependency.
    return Settings()


# --- Module Notes -----------------------------------------------------------
# Rate limit quotas mirror the long-standing defaults of the parish backend:
# general API 100/15min, login 10/15min, credential changes 5/hour.
