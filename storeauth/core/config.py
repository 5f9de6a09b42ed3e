from pydantic_settings import BaseSettings, SettingsConfigDict
from functools import lru_cache
from typing import Optional


class Settings(BaseSettings):
    # App
    app_name: str = "storeauth"
    debug: bool = False

    # Database
    database_url: str = "sqlite:///./storeauth.db"
    database_echo: bool = False

    # Optional YAML hierarchy used to seed an in-memory engine
    hierarchy_file: Optional[str] = None

    # Decisions
    decision_timeout_ms: int = 250  # exceeded deadline -> Deny
    audit_allows: bool = False  # Deny outcomes are always audited

    # Scope graph freshness bound (seconds) for cached hierarchy snapshots
    graph_max_age_seconds: int = 5

    # Logging
    log_level: str = "INFO"
    log_dir: str = "/var/log/storeauth"
    log_to_file: bool = False

    @property
    def decision_timeout_seconds(self) -> float:
        return self.decision_timeout_ms / 1000.0

    model_config = SettingsConfigDict(
        env_prefix="STOREAUTH_",
        env_file=".env",
        case_sensitive=False,
        extra="ignore",  # Allow extra env vars without raising validation errors
    )


@lru_cache
def get_settings() -> Settings:
    return Settings()
