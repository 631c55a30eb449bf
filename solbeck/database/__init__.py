"""SQLAlchemy persistence: referral quotas, settlement records, fee-collection ledger."""

from solbeck.database.models import (
    FEE_STATUS_COLLECTED,
    FEE_STATUS_FAILED,
    FEE_STATUS_PENDING,
    Base,
    FeeCollectionRow,
    ReferralStateRow,
    SettlementRecordRow,
)
from solbeck.database.store import SolbeckStore

__all__ = [
    "Base",
    "FEE_STATUS_COLLECTED",
    "FEE_STATUS_FAILED",
    "FEE_STATUS_PENDING",
    "FeeCollectionRow",
    "ReferralStateRow",
    "SettlementRecordRow",
    "SolbeckStore",
]
