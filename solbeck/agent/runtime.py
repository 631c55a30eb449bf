"""
Runtime bootstrap: build a ReclaimService from Settings.

Process-wide shared resources are created once here and are read-only
afterwards: the fee-paying keypair, the ledger client and the store.
"""

from __future__ import annotations

import functools
from typing import Awaitable, Callable

from solders.keypair import Keypair
from solders.pubkey import Pubkey

from solbeck.agent.service import ReclaimService
from solbeck.config.env import mask_rpc_url
from solbeck.config.settings import Settings, get_settings
from solbeck.core.exceptions import ConfigError, InputValidationError
from solbeck.database.store import SolbeckStore
from solbeck.keys.material import decode_secret_key, parse_destination
from solbeck.ledger.client import LedgerClient
from solbeck.metadata.prices import fetch_sol_usd_price
from solbeck.metadata.resolver import TokenMetadataResolver
from solbeck.referrals.tracker import ReferralTracker
from solbeck.scanner.account_scanner import AccountScanner
from solbeck.settlement.batching import BatchSubmitter
from solbeck.settlement.fees import FeeCalculator
from solbeck.settlement.reconciler import SettlementReconciler
from solbeck.solbeck_logging import get_logger, short_addr

logger = get_logger(__name__)


def load_fee_payer(secret: str) -> Keypair:
    """FEE_PAYER_SECRET as base58 or JSON byte array."""
    try:
        ident = decode_secret_key(secret)
    except InputValidationError as e:
        logger.warning("fee_payer_load_failed", error=str(e))
        raise ConfigError("Invalid FEE_PAYER_SECRET") from e
    keypair = ident.keypair
    ident.wipe()
    return keypair


def load_fee_collector(address: str) -> Pubkey:
    try:
        collector = parse_destination(address)
    except InputValidationError as e:
        raise ConfigError("Invalid FEE_COLLECTOR address") from e
    if collector is None:
        raise ConfigError("FEE_COLLECTOR is required")
    return collector


def build_service(
    settings: Settings | None = None,
    *,
    ledger: LedgerClient | None = None,
    store: SolbeckStore | None = None,
    price_lookup: Callable[[], Awaitable[float]] | None = None,
) -> ReclaimService:
    """
    Wire every component from settings. ledger, store and price_lookup may be injected.

    Raises:
        ConfigError: settings are missing or invalid.
    """
    settings = settings or get_settings()
    fee_payer = load_fee_payer(settings.fee_payer_secret)
    fee_collector = load_fee_collector(settings.fee_collector)

    ledger = ledger or LedgerClient(settings.rpc_url)
    if store is None:
        store = SolbeckStore(settings.database_url)
    store.init_db()

    tracker = ReferralTracker(store, settings.referral_programs)
    resolver = TokenMetadataResolver(
        ledger,
        settings.token_registry_urls,
        timeout_sec=settings.metadata_timeout_sec,
    )
    scanner = AccountScanner(
        ledger,
        resolver,
        inactivity_days=settings.inactivity_days,
        signature_limit=settings.activity_signature_limit,
    )
    submitter = BatchSubmitter(
        ledger,
        fee_payer,
        max_retries=settings.send_max_retries,
        confirm_attempts=settings.confirm_poll_attempts,
        confirm_interval_sec=settings.confirm_poll_interval_sec,
    )
    fees = FeeCalculator(
        settings.fee_rate,
        fee_collector,
        dust_threshold_lamports=settings.fee_dust_threshold_lamports,
        tracker=tracker,
    )
    reconciler = SettlementReconciler(
        ledger,
        submitter,
        fees,
        tracker=tracker,
        store=store,
        close_batch_size=settings.close_batch_size,
        burn_batch_size=settings.burn_batch_size,
        estimated_account_rent_lamports=settings.estimated_account_rent_lamports,
        minimum_rent_lamports=settings.minimum_rent_lamports,
    )
    logger.info(
        "solbeck_runtime_ready",
        rpc_url=mask_rpc_url(settings.rpc_url),
        fee_payer=short_addr(fee_payer.pubkey()),
        fee_collector=short_addr(fee_collector),
        fee_rate=settings.fee_rate,
    )
    return ReclaimService(
        scanner=scanner,
        reconciler=reconciler,
        tracker=tracker,
        store=store,
        max_wallets=settings.max_wallets_per_operation,
        page_size=settings.selection_page_size,
        price_lookup=price_lookup
        or functools.partial(
            fetch_sol_usd_price,
            settings.price_api_url,
            timeout_sec=settings.price_timeout_sec,
        ),
    )
