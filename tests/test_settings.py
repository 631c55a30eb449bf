"""
Settings loading from environment: required variables, numeric parsing,
referral catalogue, database URL resolution.
"""

from __future__ import annotations

import pytest


def test_from_env_defaults(settings_env, fee_collector):
    """Only the required variables set: every tunable takes its default."""
    from solbeck.config.settings import (
        DEFAULT_CLOSE_BATCH_SIZE,
        DEFAULT_FEE_RATE,
        DEFAULT_REFERRAL_PROGRAMS,
        Settings,
    )

    s = Settings.from_env()
    assert s.rpc_url == "http://127.0.0.1:8899"
    assert s.fee_collector == fee_collector
    assert s.fee_rate == DEFAULT_FEE_RATE
    assert s.close_batch_size == DEFAULT_CLOSE_BATCH_SIZE
    assert s.minimum_rent_lamports == 890_880
    assert s.referral_programs.keys() == DEFAULT_REFERRAL_PROGRAMS.keys()


def test_secrets_not_in_repr(settings_env):
    from solbeck.config.settings import Settings

    s = Settings.from_env()
    assert s.fee_payer_secret not in repr(s)
    assert "123:abc" not in repr(s)


@pytest.mark.parametrize("missing", ["FEE_PAYER_SECRET", "FEE_COLLECTOR", "BOT_TOKEN"])
def test_missing_required_is_config_error(settings_env, monkeypatch, missing):
    """Absence of any required variable is fatal and names the variable."""
    from solbeck.config.settings import Settings
    from solbeck.core.exceptions import ConfigError

    monkeypatch.delenv(missing, raising=False)
    with pytest.raises(ConfigError, match=missing):
        Settings.from_env()


def test_rpc_url_falls_back_to_helius(settings_env, monkeypatch):
    from solbeck.config.settings import Settings

    monkeypatch.delenv("SOLANA_RPC_URL", raising=False)
    monkeypatch.setenv("HELIUS_API_KEY", "k123")
    s = Settings.from_env()
    assert s.rpc_url == "https://mainnet.helius-rpc.com/?api-key=k123"


def test_numeric_overrides_and_bad_numbers(settings_env, monkeypatch):
    from solbeck.config.settings import Settings
    from solbeck.core.exceptions import ConfigError

    monkeypatch.setenv("FEE_RATE", "0.05")
    monkeypatch.setenv("CLOSE_BATCH_SIZE", "4")
    s = Settings.from_env()
    assert s.fee_rate == pytest.approx(0.05)
    assert s.close_batch_size == 4

    monkeypatch.setenv("CLOSE_BATCH_SIZE", "four")
    with pytest.raises(ConfigError, match="CLOSE_BATCH_SIZE"):
        Settings.from_env()


@pytest.mark.parametrize("rate", ["1.0", "-0.1"])
def test_fee_rate_out_of_range(settings_env, monkeypatch, rate):
    from solbeck.config.settings import Settings
    from solbeck.core.exceptions import ConfigError

    monkeypatch.setenv("FEE_RATE", rate)
    with pytest.raises(ConfigError, match="FEE_RATE"):
        Settings.from_env()


def test_referral_codes_from_json(settings_env, monkeypatch):
    """REFERRAL_CODES replaces the default catalogue; codes are case-insensitive."""
    from solbeck.config.settings import Settings
    from solbeck.core.exceptions import ConfigError

    monkeypatch.setenv("REFERRAL_CODES", '{"Alpha": {"name": "Alpha Club", "free_wallets": 3}}')
    s = Settings.from_env()
    assert list(s.referral_programs) == ["alpha"]
    assert s.referral_programs["alpha"].free_wallets == 3

    monkeypatch.setenv("REFERRAL_CODES", '{"alpha": {"name": "x", "free_wallets": -1}}')
    with pytest.raises(ConfigError, match="REFERRAL_CODES"):
        Settings.from_env()
    monkeypatch.setenv("REFERRAL_CODES", "not json")
    with pytest.raises(ConfigError):
        Settings.from_env()


def test_database_url_resolution(settings_env, monkeypatch):
    from solbeck.config.settings import Settings

    monkeypatch.setenv("SOLBECK_DB_PATH", "/tmp/x.db")
    assert Settings.from_env().database_url == "sqlite:////tmp/x.db"
    monkeypatch.setenv("DATABASE_URL", "postgresql://u@h/db")
    assert Settings.from_env().database_url == "postgresql://u@h/db"


def test_get_settings_is_cached(settings_env):
    from solbeck.config.settings import get_settings

    assert get_settings() is get_settings()


def test_mask_rpc_url():
    from solbeck.config.env import mask_rpc_url

    assert mask_rpc_url("https://mainnet.helius-rpc.com/?api-key=secret") == "https://mainnet.helius-rpc.com/?api-key=***"
    assert mask_rpc_url("http://localhost:8899") == "http://localhost:8899"
