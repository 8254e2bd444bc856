from __future__ import annotations

from functools import lru_cache
from pathlib import Path

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """
    App settings.

    Notes:
    - Defaults are local and deterministic (SQLite file next to the repo, logging side-effect channels).
    - Every value can be overridden with an `APP_`-prefixed environment variable.
    - `environment="development"` enables the OTP shortcuts and unsanitized 500 messages.
    """

    model_config = SettingsConfigDict(env_prefix="APP_", extra="ignore")

    db_url: str | None = None
    security_config_path: str | None = None
    log_level: str = "INFO"
    environment: str = "production"
    seed_demo_data: bool = False

    jwt_secret: str = "change-me-access-secret-change-me-now"
    jwt_refresh_secret: str = "change-me-refresh-secret-change-me-now"
    jwt_algorithm: str = "HS256"
    access_token_ttl_minutes: int = 7 * 24 * 60
    refresh_token_ttl_days: int = 30

    bcrypt_rounds: int = 12

    otp_ttl_minutes: int = 10
    dev_otp: str = "123456"

    trial_days: int = 30
    trial_max_consignments_per_month: int = 100
    trial_max_users: int = 2
    trial_max_branches: int = 1

    default_page_limit: int = 50
    max_page_limit: int = 200
    gst_rate: float = 0.18

    sms_api_url: str = "https://api.textlocal.in/send/"
    sms_api_key: str | None = None
    sms_sender: str = "DSCRGO"

    smtp_host: str | None = None
    smtp_port: int = 587
    smtp_user: str | None = None
    smtp_password: str | None = None
    mail_from: str = "DesiCargo <noreply@desicargo.com>"

    @property
    def is_development(self) -> bool:
        return self.environment.lower() == "development"

    def resolved_db_url(self) -> str:
        if self.db_url:
            return self.db_url

        repo_root = Path(__file__).resolve().parents[1]
        db_path = repo_root / "cargo.db"
        return f"sqlite:///{db_path}"

    def resolved_security_config_path(self) -> Path:
        if self.security_config_path:
            return Path(self.security_config_path)

        repo_root = Path(__file__).resolve().parents[1]
        return repo_root / "config" / "security_config.yaml"


@lru_cache
def get_settings() -> Settings:
    return Settings()
