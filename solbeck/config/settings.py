"""
Application settings and environment configuration.

Responsibilities:
- Load configuration from environment variables and .env files.
- Validate required settings (RPC endpoint, fee payer secret, fee collector,
  transport credentials); absence of any is a fatal ConfigError.
- Expose typed settings for the scanner, batch submitter, fee calculator
  and persistence layer.
"""

from __future__ import annotations

import json
import os
import threading
from dataclasses import dataclass, field
from typing import Any

from pydantic import ValidationError

from solbeck.config.env import env_str, get_solana_rpc_url, load_solbeck_env
from solbeck.core.exceptions import ConfigError
from solbeck.referrals.models import (
    DEFAULT_REFERRAL_PROGRAMS,
    ReferralProgram,
    parse_referral_programs,
)

DEFAULT_FEE_RATE = 0.10
DEFAULT_MINIMUM_RENT_LAMPORTS = 890_880
DEFAULT_ESTIMATED_ACCOUNT_RENT_LAMPORTS = 2_039_280
DEFAULT_FEE_DUST_THRESHOLD_LAMPORTS = 1_000
DEFAULT_CLOSE_BATCH_SIZE = 6
DEFAULT_BURN_BATCH_SIZE = 3
DEFAULT_SEND_MAX_RETRIES = 3
DEFAULT_CONFIRM_POLL_ATTEMPTS = 30
DEFAULT_CONFIRM_POLL_INTERVAL_SEC = 1.0
DEFAULT_INACTIVITY_DAYS = 5.0
DEFAULT_ACTIVITY_SIGNATURE_LIMIT = 10
DEFAULT_METADATA_TIMEOUT_SEC = 3.0
DEFAULT_PRICE_TIMEOUT_SEC = 5.0
DEFAULT_MAX_WALLETS_PER_OPERATION = 100
DEFAULT_SELECTION_PAGE_SIZE = 8
DEFAULT_TOKEN_REGISTRY_URLS = (
    "https://token.jup.ag/strict",
    "https://token.jup.ag/all",
)
DEFAULT_PRICE_API_URL = "https://api.coingecko.com/api/v3/simple/price?ids=solana&vs_currencies=usd"
DEFAULT_SQLITE_PATH = "solbeck.db"

_REQUIRED = (
    ("rpc_url", "SOLANA_RPC_URL"),
    ("fee_payer_secret", "FEE_PAYER_SECRET"),
    ("fee_collector", "FEE_COLLECTOR"),
    ("bot_token", "BOT_TOKEN"),
)


def _env_number(name: str, default: float, cast: type = float) -> Any:
    raw = (os.getenv(name) or "").strip()
    if not raw:
        return cast(default)
    try:
        return cast(raw)
    except ValueError as e:
        raise ConfigError(f"{name} must be a {cast.__name__}, got {raw!r}") from e


def _database_url() -> str:
    url = env_str("SOLBECK_DB_URL", "DATABASE_URL")
    if url:
        return url
    return f"sqlite:///{env_str('SOLBECK_DB_PATH') or DEFAULT_SQLITE_PATH}"


def _registry_urls() -> tuple[str, ...]:
    raw = env_str("TOKEN_REGISTRY_URLS")
    if not raw:
        return DEFAULT_TOKEN_REGISTRY_URLS
    return tuple(u.strip() for u in raw.split(",") if u.strip())


def _referral_programs() -> dict[str, ReferralProgram]:
    raw = env_str("REFERRAL_CODES")
    if not raw:
        return dict(DEFAULT_REFERRAL_PROGRAMS)
    try:
        return parse_referral_programs(json.loads(raw))
    except (json.JSONDecodeError, TypeError, AttributeError, ValidationError) as e:
        raise ConfigError(f"REFERRAL_CODES is not a valid referral catalogue: {e}") from e


@dataclass
class Settings:
    """Typed configuration. Build with Settings.from_env() or directly in tests."""

    rpc_url: str
    fee_payer_secret: str = field(repr=False)
    fee_collector: str
    bot_token: str = field(repr=False)
    fee_rate: float = DEFAULT_FEE_RATE
    minimum_rent_lamports: int = DEFAULT_MINIMUM_RENT_LAMPORTS
    estimated_account_rent_lamports: int = DEFAULT_ESTIMATED_ACCOUNT_RENT_LAMPORTS
    fee_dust_threshold_lamports: int = DEFAULT_FEE_DUST_THRESHOLD_LAMPORTS
    close_batch_size: int = DEFAULT_CLOSE_BATCH_SIZE
    burn_batch_size: int = DEFAULT_BURN_BATCH_SIZE
    send_max_retries: int = DEFAULT_SEND_MAX_RETRIES
    confirm_poll_attempts: int = DEFAULT_CONFIRM_POLL_ATTEMPTS
    confirm_poll_interval_sec: float = DEFAULT_CONFIRM_POLL_INTERVAL_SEC
    inactivity_days: float = DEFAULT_INACTIVITY_DAYS
    activity_signature_limit: int = DEFAULT_ACTIVITY_SIGNATURE_LIMIT
    metadata_timeout_sec: float = DEFAULT_METADATA_TIMEOUT_SEC
    price_timeout_sec: float = DEFAULT_PRICE_TIMEOUT_SEC
    max_wallets_per_operation: int = DEFAULT_MAX_WALLETS_PER_OPERATION
    selection_page_size: int = DEFAULT_SELECTION_PAGE_SIZE
    token_registry_urls: tuple[str, ...] = DEFAULT_TOKEN_REGISTRY_URLS
    price_api_url: str = DEFAULT_PRICE_API_URL
    database_url: str = f"sqlite:///{DEFAULT_SQLITE_PATH}"
    referral_programs: dict[str, ReferralProgram] = field(
        default_factory=lambda: dict(DEFAULT_REFERRAL_PROGRAMS)
    )

    def __post_init__(self) -> None:
        missing = [env for attr, env in _REQUIRED if not str(getattr(self, attr) or "").strip()]
        if missing:
            raise ConfigError(f"Required environment variables are missing: {', '.join(missing)}")
        if not 0.0 <= self.fee_rate < 1.0:
            raise ConfigError(f"FEE_RATE must be in [0, 1), got {self.fee_rate}")
        for name in (
            "close_batch_size",
            "burn_batch_size",
            "send_max_retries",
            "confirm_poll_attempts",
            "max_wallets_per_operation",
            "selection_page_size",
            "activity_signature_limit",
        ):
            if int(getattr(self, name)) < 1:
                raise ConfigError(f"{name} must be >= 1")
        if self.fee_dust_threshold_lamports < 0 or self.minimum_rent_lamports < 0:
            raise ConfigError("lamport thresholds must be non-negative")
        if self.confirm_poll_interval_sec < 0:
            self.confirm_poll_interval_sec = 0.0

    @classmethod
    def from_env(cls) -> "Settings":
        load_solbeck_env()
        return cls(
            rpc_url=get_solana_rpc_url(),
            fee_payer_secret=env_str("FEE_PAYER_SECRET"),
            fee_collector=env_str("FEE_COLLECTOR"),
            bot_token=env_str("BOT_TOKEN"),
            fee_rate=_env_number("FEE_RATE", DEFAULT_FEE_RATE),
            minimum_rent_lamports=_env_number("MINIMUM_RENT_LAMPORTS", DEFAULT_MINIMUM_RENT_LAMPORTS, int),
            estimated_account_rent_lamports=_env_number(
                "ESTIMATED_ACCOUNT_RENT_LAMPORTS", DEFAULT_ESTIMATED_ACCOUNT_RENT_LAMPORTS, int
            ),
            fee_dust_threshold_lamports=_env_number(
                "FEE_DUST_THRESHOLD_LAMPORTS", DEFAULT_FEE_DUST_THRESHOLD_LAMPORTS, int
            ),
            close_batch_size=_env_number("CLOSE_BATCH_SIZE", DEFAULT_CLOSE_BATCH_SIZE, int),
            burn_batch_size=_env_number("BURN_BATCH_SIZE", DEFAULT_BURN_BATCH_SIZE, int),
            send_max_retries=_env_number("SEND_MAX_RETRIES", DEFAULT_SEND_MAX_RETRIES, int),
            confirm_poll_attempts=_env_number("CONFIRM_POLL_ATTEMPTS", DEFAULT_CONFIRM_POLL_ATTEMPTS, int),
            confirm_poll_interval_sec=_env_number("CONFIRM_POLL_INTERVAL_SEC", DEFAULT_CONFIRM_POLL_INTERVAL_SEC),
            inactivity_days=_env_number("INACTIVITY_DAYS", DEFAULT_INACTIVITY_DAYS),
            activity_signature_limit=_env_number(
                "ACTIVITY_SIGNATURE_LIMIT", DEFAULT_ACTIVITY_SIGNATURE_LIMIT, int
            ),
            metadata_timeout_sec=_env_number("METADATA_TIMEOUT_SEC", DEFAULT_METADATA_TIMEOUT_SEC),
            price_timeout_sec=_env_number("PRICE_TIMEOUT_SEC", DEFAULT_PRICE_TIMEOUT_SEC),
            max_wallets_per_operation=_env_number(
                "MAX_WALLETS_PER_OPERATION", DEFAULT_MAX_WALLETS_PER_OPERATION, int
            ),
            selection_page_size=_env_number("SELECTION_PAGE_SIZE", DEFAULT_SELECTION_PAGE_SIZE, int),
            token_registry_urls=_registry_urls(),
            price_api_url=env_str("PRICE_API_URL") or DEFAULT_PRICE_API_URL,
            database_url=_database_url(),
            referral_programs=_referral_programs(),
        )


_settings: Settings | None = None
_settings_lock = threading.Lock()


def get_settings() -> Settings:
    """
    Return the process-wide settings, loading them from env on first use.

    Raises:
        ConfigError: a required variable is missing or a value is invalid.
    """
    global _settings
    with _settings_lock:
        if _settings is None:
            _settings = Settings.from_env()
        return _settings


def reset_settings_for_test() -> None:
    global _settings
    with _settings_lock:
        _settings = None
