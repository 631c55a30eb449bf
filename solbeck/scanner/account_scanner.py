"""
Account Scanner: discover and classify token accounts for a set of identities.

- Enumerate every token-program account per owner; an enumeration failure
  raises ScanError (no partial result for that owner is fabricated).
- Read each account's balance. Zero balance is empty with no metadata lookup.
  A failed read is treated as empty: closing a nonzero account fails loudly
  on-chain, so the conservative choice is safe.
- Nonzero balances get a symbol, and when requested an activity status:
  no transaction history, or a newest transaction older than the staleness
  window, means inactive.
"""

from __future__ import annotations

import time
from typing import Any, Callable, Iterable

from solbeck.core.exceptions import ScanError
from solbeck.ledger.client import LedgerClient
from solbeck.metadata.resolver import TokenMetadataResolver
from solbeck.scanner.models import ActivityStatus, ScanResult, TokenAccountRecord
from solbeck.solbeck_logging import get_logger, short_addr

logger = get_logger(__name__)

SECONDS_PER_DAY = 86_400


def _owner_address(owner: Any) -> str:
    return str(getattr(owner, "address", owner))


class AccountScanner:
    def __init__(
        self,
        ledger: LedgerClient,
        resolver: TokenMetadataResolver,
        *,
        inactivity_days: float = 5.0,
        signature_limit: int = 10,
        clock: Callable[[], float] = time.time,
    ) -> None:
        if inactivity_days <= 0:
            raise ValueError("inactivity_days must be positive")
        self._ledger = ledger
        self._resolver = resolver
        self._window_sec = inactivity_days * SECONDS_PER_DAY
        self._signature_limit = signature_limit
        self._clock = clock

    async def scan(self, owners: Iterable[Any], check_activity: bool = False) -> ScanResult:
        """
        Scan every owner (SigningIdentity or address) in order.

        Raises:
            ScanError: token accounts for an owner could not be enumerated.
        """
        result = ScanResult(activity_checked=check_activity)
        for owner in owners:
            address = _owner_address(owner)
            try:
                accounts = await self._ledger.get_token_accounts(address)
            except Exception as e:
                logger.warning("scan_enumeration_failed", owner=short_addr(address), error=str(e))
                raise ScanError(address, e) from e
            for acct in accounts:
                result.add(await self._read_account(address, acct.address, acct.mint, check_activity))
            logger.info("scan_owner_done", owner=short_addr(address), accounts=len(accounts))
        logger.info("scan_completed", **result.summary(), activity_checked=check_activity)
        return result

    async def _read_account(self, owner: str, address: str, mint: str, check_activity: bool) -> TokenAccountRecord:
        try:
            amount, decimals = await self._ledger.get_token_balance(address)
        except Exception as e:
            logger.warning("scan_account_read_failed", account=short_addr(address), error=str(e))
            return TokenAccountRecord(owner=owner, address=address, mint=mint, amount=0)
        if amount == 0:
            return TokenAccountRecord(owner=owner, address=address, mint=mint, amount=0, decimals=decimals)
        symbol = await self._resolver.resolve_symbol(mint)
        activity = ActivityStatus.UNKNOWN
        if check_activity:
            inactive = await self.is_account_inactive(address)
            activity = ActivityStatus.INACTIVE if inactive else ActivityStatus.ACTIVE
        return TokenAccountRecord(
            owner=owner,
            address=address,
            mint=mint,
            amount=amount,
            decimals=decimals,
            symbol=symbol,
            activity=activity,
        )

    async def is_account_inactive(self, address: str) -> bool:
        """
        True when the account has no history or its newest transaction is
        older than the staleness window. Lookup failures count as active.
        """
        try:
            signatures = await self._ledger.get_signatures(address, self._signature_limit)
            if not signatures:
                return True
            newest = signatures[0]
            block_time = newest.block_time
            if block_time is None:
                block_time = await self._ledger.get_transaction_block_time(newest.signature)
            if block_time is None:
                return True
            return (self._clock() - block_time) > self._window_sec
        except Exception as e:
            logger.warning("scan_activity_check_failed", account=short_addr(address), error=str(e))
            return False
