"""Settlement outcome models."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

from solbeck.ledger.instructions import lamports_to_sol


@dataclass(frozen=True)
class BurnedToken:
    symbol: str
    amount: float
    display_name: str

    def to_dict(self) -> dict[str, Any]:
        return {"symbol": self.symbol, "amount": self.amount, "display_name": self.display_name}


@dataclass(frozen=True)
class SettlementResult:
    """
    Per-operation outcome. fee_lamports is the computed fee; net is always
    gross - fee_lamports. fees_collected_lamports is what actually landed
    on-chain and may be 0 when fee collection failed.
    """

    operation_id: str
    closed_accounts: int
    burned_tokens: int
    gross_lamports: int
    fee_lamports: int
    fees_collected_lamports: int
    net_lamports: int
    feeless: bool
    fee_rate: float
    wallet_count: int
    last_signature: str | None = None
    destination: str | None = None
    swept_lamports: int = 0
    burn_only: bool = False
    burned_details: list[BurnedToken] = field(default_factory=list)
    signatures: list[str] = field(default_factory=list)

    @property
    def gross_sol(self) -> float:
        return lamports_to_sol(self.gross_lamports)

    @property
    def fee_sol(self) -> float:
        return lamports_to_sol(self.fee_lamports)

    @property
    def net_sol(self) -> float:
        return lamports_to_sol(self.net_lamports)

    @property
    def empty_accounts_closed(self) -> int:
        return self.closed_accounts - self.burned_tokens

    @property
    def nothing_done(self) -> bool:
        return self.closed_accounts == 0 and self.burned_tokens == 0 and self.gross_lamports == 0

    def to_record(
        self,
        user_id: str,
        username: str | None = None,
        referral_code: str | None = None,
        sol_usd_price: float | None = None,
    ) -> dict[str, Any]:
        """Row for SolbeckStore.save_settlement_record()."""
        return {
            "operation_id": self.operation_id,
            "user_id": str(user_id),
            "username": username,
            "wallet_count": self.wallet_count,
            "burned_tokens": self.burned_tokens,
            "closed_accounts": self.closed_accounts,
            "gross_lamports": self.gross_lamports,
            "fee_lamports": self.fee_lamports,
            "fees_collected_lamports": self.fees_collected_lamports,
            "net_lamports": self.net_lamports,
            "burn_only": self.burn_only,
            "referral_code": referral_code,
            "feeless": self.feeless,
            "fee_rate": self.fee_rate,
            "sol_usd_price": sol_usd_price,
            "last_signature": self.last_signature,
            "burned_details": [b.to_dict() for b in self.burned_details],
        }
