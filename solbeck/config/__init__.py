"""
Configuration management for solbeck.

Loads and validates settings from environment variables and an optional
.env file. Exposes a single source of truth for RPC, fee, batching and
persistence configuration.
"""

from solbeck.config.settings import Settings, get_settings  # noqa: F401

__all__ = ["Settings", "get_settings"]
