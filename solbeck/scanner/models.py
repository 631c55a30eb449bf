"""
Scan data models.

TokenAccountRecord is created during a scan and read-only afterwards.
ScanResult partitions the discovered records into disjoint empty /
active-balance / inactive-balance lists whose union is every account found.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any


class ActivityStatus(str, Enum):
    UNKNOWN = "unknown"
    ACTIVE = "active"
    INACTIVE = "inactive"


@dataclass(frozen=True)
class TokenAccountRecord:
    owner: str  # address of the owning SigningIdentity
    address: str
    mint: str
    amount: int  # raw, smallest unit
    decimals: int = 0
    symbol: str = ""
    activity: ActivityStatus = ActivityStatus.UNKNOWN

    @property
    def is_empty(self) -> bool:
        return self.amount == 0

    @property
    def ui_amount(self) -> float:
        return self.amount / (10 ** self.decimals) if self.decimals else float(self.amount)

    @property
    def display_name(self) -> str:
        return f"{self.ui_amount:.6f} {self.symbol}".strip()

    def to_dict(self) -> dict[str, Any]:
        return {
            "owner": self.owner,
            "address": self.address,
            "mint": self.mint,
            "amount": self.amount,
            "decimals": self.decimals,
            "symbol": self.symbol,
            "ui_amount": self.ui_amount,
            "activity": self.activity.value,
        }


@dataclass
class ScanResult:
    empty: list[TokenAccountRecord] = field(default_factory=list)
    active_balance: list[TokenAccountRecord] = field(default_factory=list)
    inactive_balance: list[TokenAccountRecord] = field(default_factory=list)
    activity_checked: bool = False

    @property
    def balance_bearing(self) -> list[TokenAccountRecord]:
        """Nonzero-balance accounts, inactive first."""
        return [*self.inactive_balance, *self.active_balance]

    @property
    def all_accounts(self) -> list[TokenAccountRecord]:
        return [*self.empty, *self.balance_bearing]

    def add(self, record: TokenAccountRecord) -> None:
        if record.is_empty:
            self.empty.append(record)
        elif record.activity is ActivityStatus.INACTIVE:
            self.inactive_balance.append(record)
        else:
            self.active_balance.append(record)

    def summary(self) -> dict[str, int]:
        return {
            "empty": len(self.empty),
            "active_balance": len(self.active_balance),
            "inactive_balance": len(self.inactive_balance),
            "total": len(self.empty) + len(self.active_balance) + len(self.inactive_balance),
        }
