"""
Fee Calculator.

fee = floor(gross * rate), or 0 for a feeless operation; net = gross - fee.
A transfer instruction (destination -> fee collector) is emitted only when
the fee is above the dust threshold.
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import ROUND_FLOOR, Decimal
from typing import Any

from solders.instruction import Instruction

from solbeck.ledger.instructions import build_transfer_ix
from solbeck.referrals.tracker import ReferralTracker
from solbeck.solbeck_logging import get_logger

logger = get_logger(__name__)


def compute_fee(gross_lamports: int, rate: float, feeless: bool = False) -> int:
    if gross_lamports < 0:
        raise ValueError("gross_lamports must be non-negative")
    if feeless or gross_lamports == 0:
        return 0
    fee = (Decimal(int(gross_lamports)) * Decimal(str(rate))).to_integral_value(rounding=ROUND_FLOOR)
    return int(fee)


@dataclass(frozen=True)
class FeeQuote:
    gross_lamports: int
    fee_lamports: int
    net_lamports: int
    feeless: bool
    transfer_ix: Instruction | None
    source: str | None

    @property
    def is_dust(self) -> bool:
        return self.fee_lamports > 0 and self.transfer_ix is None


class FeeCalculator:
    def __init__(
        self,
        rate: float,
        fee_collector: Any,
        *,
        dust_threshold_lamports: int = 1000,
        tracker: ReferralTracker | None = None,
    ) -> None:
        if not 0.0 <= rate < 1.0:
            raise ValueError(f"fee rate must be in [0, 1), got {rate}")
        self.rate = rate
        self.fee_collector = str(fee_collector)
        self.dust_threshold_lamports = dust_threshold_lamports
        self._tracker = tracker

    def decide_feeless(self, user_id: Any, wallet_count: int) -> bool:
        """Read-only quota check; must run before the operation's commit."""
        if user_id is None or self._tracker is None:
            return False
        return self._tracker.is_feeless(user_id, wallet_count)

    def quote(
        self,
        gross_lamports: int,
        destination: Any,
        user_id: Any = None,
        wallet_count: int = 0,
        *,
        feeless: bool | None = None,
    ) -> FeeQuote:
        """
        Fee split for gross_lamports. destination is the account the fee is
        taken from (the consolidation/rent destination). Pass feeless to reuse
        an earlier decide_feeless() result.
        """
        if feeless is None:
            feeless = self.decide_feeless(user_id, wallet_count)
        fee = compute_fee(gross_lamports, self.rate, feeless)
        ix = None
        if fee > self.dust_threshold_lamports and destination is not None:
            ix = build_transfer_ix(destination, self.fee_collector, fee)
        elif fee > 0:
            logger.info("fee_below_dust_threshold", fee_lamports=fee, threshold=self.dust_threshold_lamports)
        return FeeQuote(
            gross_lamports=int(gross_lamports),
            fee_lamports=fee,
            net_lamports=int(gross_lamports) - fee,
            feeless=feeless,
            transfer_ix=ix,
            source=str(destination) if destination is not None else None,
        )
