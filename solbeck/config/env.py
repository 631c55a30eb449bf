"""
Environment variable loading for solbeck.

- SOLANA_RPC_URL (alias RPC_URL): ledger RPC endpoint
- HELIUS_API_KEY: fallback RPC URL when no explicit endpoint is set
- Loads .env from project root when available.
"""

from __future__ import annotations

import os
from pathlib import Path

from dotenv import load_dotenv

# Project root: config is solbeck/config/, root is 2 levels up
_CONFIG_DIR = Path(__file__).resolve().parent
_PACKAGE_DIR = _CONFIG_DIR.parent
_ROOT = _PACKAGE_DIR.parent
_ENV_PATH = _ROOT / ".env"

HELIUS_MAINNET_URL_TEMPLATE = "https://mainnet.helius-rpc.com/?api-key={key}"

_TRUE_VALUES = ("1", "true", "yes", "on")
_FALSE_VALUES = ("0", "false", "no", "off")


def load_solbeck_env() -> None:
    """Load .env from project root. Safe to call multiple times; never overrides the process env."""
    load_dotenv(_ENV_PATH, override=False)


def env_str(*names: str) -> str:
    """First non-empty value among the given variable names, stripped; '' when none is set."""
    for name in names:
        raw = (os.getenv(name) or "").strip()
        if raw:
            return raw
    return ""


def env_bool(name: str, default: bool = False) -> bool:
    raw = (os.getenv(name) or "").strip().lower()
    if raw in _TRUE_VALUES:
        return True
    if raw in _FALSE_VALUES:
        return False
    return default


def get_solana_rpc_url() -> str:
    """
    Resolve the ledger RPC URL from env.
    Order: SOLANA_RPC_URL > RPC_URL > HELIUS_API_KEY (mainnet). Empty when none is configured.
    """
    load_solbeck_env()
    url = env_str("SOLANA_RPC_URL", "RPC_URL")
    if url:
        return url
    key = env_str("HELIUS_API_KEY")
    if key:
        return HELIUS_MAINNET_URL_TEMPLATE.format(key=key)
    return ""


def mask_rpc_url(url: str) -> str:
    """Hide api keys embedded in RPC URLs before they reach a log line."""
    if "api-key=" in url:
        return url.split("api-key=")[0] + "api-key=***"
    return url
