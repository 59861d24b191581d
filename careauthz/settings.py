from __future__ import annotations

from functools import lru_cache
from pathlib import Path

from pydantic_settings import BaseSettings, SettingsConfigDict

from careauthz.policy.config import PolicyConfig


class Settings(BaseSettings):
    """
    App settings.

    Notes:
    - Paths default to files inside the repo so a checkout runs as-is.
    - ``consent_grace_minutes`` and ``break_glass_max_minutes`` have no
      defaults; ``policy_config()`` refuses to start without them.
    - Override anything via ``AUTHZ_*`` env vars.
    """

    model_config = SettingsConfigDict(env_prefix="AUTHZ_", extra="ignore")

    environment: str = "development"
    rules_path: str | None = None
    db_url: str | None = None
    log_level: str = "INFO"

    consent_grace_minutes: int | None = None
    break_glass_max_minutes: int | None = None

    @property
    def dev_routes_enabled(self) -> bool:
        return self.environment.strip().lower() != "production"

    def resolved_rules_path(self) -> Path:
        if self.rules_path:
            return Path(self.rules_path)

        repo_root = Path(__file__).resolve().parents[1]
        return repo_root / "config" / "policy_rules.yaml"

    def resolved_db_url(self) -> str:
        if self.db_url:
            return self.db_url

        repo_root = Path(__file__).resolve().parents[1]
        db_path = repo_root / "consent.db"
        return f"sqlite:///{db_path}"

    def policy_config(self) -> PolicyConfig:
        return PolicyConfig.from_minutes(self.consent_grace_minutes, self.break_glass_max_minutes)


@lru_cache
def get_settings() -> Settings:
    return Settings()
