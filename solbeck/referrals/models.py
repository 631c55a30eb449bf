"""
Referral data models.

ReferralProgram is validated with pydantic because the catalogue comes from
the REFERRAL_CODES environment variable as JSON. ReferralState mirrors one
row of the referral_state table.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Any

from pydantic import BaseModel, Field


class ReferralProgram(BaseModel):
    """A referral code's terms: display name and free-wallet ceiling."""

    code: str
    name: str
    free_wallets: int = Field(ge=0)
    description: str = ""


DEFAULT_REFERRAL_PROGRAMS: dict[str, ReferralProgram] = {
    "magnumcommunity": ReferralProgram(
        code="magnumcommunity",
        name="Magnum Community",
        free_wallets=10,
        description="Magnum Community members get feeless service for first 10 wallets!",
    ),
}


def parse_referral_programs(raw: dict[str, Any]) -> dict[str, ReferralProgram]:
    """Build the catalogue from {code: {name, free_wallets, description?}}; codes are lower-cased."""
    out: dict[str, ReferralProgram] = {}
    for code, body in raw.items():
        key = str(code).strip().lower()
        if not key:
            continue
        out[key] = ReferralProgram(code=key, **dict(body))
    return out


@dataclass(frozen=True)
class ReferralState:
    """Per-user referral record: code, cumulative wallets processed, join time."""

    user_id: str
    referral_code: str
    wallet_count: int
    joined_at: datetime

    def to_dict(self) -> dict[str, Any]:
        return {
            "user_id": self.user_id,
            "referral_code": self.referral_code,
            "wallet_count": self.wallet_count,
            "joined_at": self.joined_at.isoformat(),
        }
