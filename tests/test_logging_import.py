"""
Test that solbeck_logging can be imported without circular import and logger works.
"""

from __future__ import annotations


def test_logging_import():
    """Import get_logger from solbeck_logging and use the logger."""
    from solbeck.solbeck_logging import get_logger

    logger = get_logger("test")
    assert logger is not None
    assert hasattr(logger, "info")
    assert hasattr(logger, "warning")
    assert hasattr(logger, "error")
    # Smoke test: call info (should not raise)
    logger.info("test_message", key="value")


def test_bind_user_logger_smoke():
    from solbeck.solbeck_logging import bind_user

    log = bind_user("42", "op-1")
    log.info("settlement_started", wallets=1)


def test_short_addr():
    from solbeck.solbeck_logging import short_addr

    assert short_addr("9QCfNuQuxct1Xk9ytFYgxc5fThmTzL4pHQnSjjrVUrka") == "9QCf...Urka"
    assert short_addr("short") == "short"
    assert short_addr(None) == ""


def test_key_material_is_redacted():
    """Fields named like secrets are blanked and api keys in URLs are masked."""
    from solbeck.solbeck_logging.logger import _redact_secrets

    event = _redact_secrets(
        None,
        "info",
        {
            "event_type": "settings_loaded",
            "fee_payer_secret": "4vJ9...",
            "key_text": "abc def",
            "rpc_url": "https://mainnet.helius-rpc.com/?api-key=abc123&x=1",
            "wallets": 2,
        },
    )
    assert event["fee_payer_secret"] == "[redacted]"
    assert event["key_text"] == "[redacted]"
    assert event["rpc_url"] == "https://mainnet.helius-rpc.com/?api-key=***&x=1"
    assert event["wallets"] == 2
    assert event["event_type"] == "settings_loaded"
