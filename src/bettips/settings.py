"""Runtime configuration, read from the environment (and a local .env file)."""
from __future__ import annotations

import logging
import os
from dataclasses import dataclass

from dotenv import load_dotenv

load_dotenv()


def _env_bool(name: str, default: bool) -> bool:
    raw = os.environ.get(name)
    if raw is None:
        return default
    return raw.strip().lower() in ("1", "true", "yes", "on")


@dataclass(frozen=True)
class Settings:
    database_url: str = "sqlite:///data/bettips.db"
    secret_key: str = "change-me-in-production"
    access_token_minutes: int = 60 * 24  # 24 hours
    refresh_token_days: int = 7
    reset_token_minutes: int = 60
    environment: str = "development"
    log_level: str = "INFO"
    # Parlay pricing
    reference_bookmaker_id: int = 1
    strict_parlay_pricing: bool = False
    # Leaderboards
    top_tipster_min_tips: int = 10
    # Outbound email
    frontend_url: str = "http://localhost:3000"
    smtp_host: str = ""
    smtp_port: int = 587
    smtp_user: str = ""
    smtp_password: str = ""
    smtp_from: str = "BetTips <no-reply@bettips.local>"

    @property
    def is_production(self) -> bool:
        return self.environment.lower() == "production"


def load_settings() -> Settings:
    """Build a Settings object from the current environment."""
    return Settings(
        database_url=os.environ.get("BETTIPS_DATABASE_URL", Settings.database_url),
        secret_key=os.environ.get("BETTIPS_SECRET_KEY", Settings.secret_key),
        access_token_minutes=int(
            os.environ.get("BETTIPS_ACCESS_TOKEN_MINUTES", Settings.access_token_minutes)
        ),
        refresh_token_days=int(
            os.environ.get("BETTIPS_REFRESH_TOKEN_DAYS", Settings.refresh_token_days)
        ),
        reset_token_minutes=int(
            os.environ.get("BETTIPS_RESET_TOKEN_MINUTES", Settings.reset_token_minutes)
        ),
        environment=os.environ.get("BETTIPS_ENV", Settings.environment),
        log_level=os.environ.get("BETTIPS_LOG_LEVEL", Settings.log_level),
        reference_bookmaker_id=int(
            os.environ.get("BETTIPS_REFERENCE_BOOKMAKER_ID", Settings.reference_bookmaker_id)
        ),
        strict_parlay_pricing=_env_bool(
            "BETTIPS_STRICT_PARLAY_PRICING", Settings.strict_parlay_pricing
        ),
        top_tipster_min_tips=int(
            os.environ.get("BETTIPS_TOP_TIPSTER_MIN_TIPS", Settings.top_tipster_min_tips)
        ),
        frontend_url=os.environ.get("BETTIPS_FRONTEND_URL", Settings.frontend_url),
        smtp_host=os.environ.get("SMTP_HOST", Settings.smtp_host),
        smtp_port=int(os.environ.get("SMTP_PORT", Settings.smtp_port)),
        smtp_user=os.environ.get("SMTP_USER", Settings.smtp_user),
        smtp_password=os.environ.get("SMTP_PASSWORD", Settings.smtp_password),
        smtp_from=os.environ.get("SMTP_FROM", Settings.smtp_from),
    )


def configure_logging(level: str = "INFO") -> None:
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
