"""Fee Calculator, Batch Transaction Builder & Submitter, Settlement Reconciler."""

from solbeck.settlement.batching import (
    BatchJob,
    BatchReceipt,
    BatchSubmitter,
    InstructionGroup,
    burn_close_group,
    close_group,
    plan_batches,
    signer_set,
    transfer_group,
)
from solbeck.settlement.fees import FeeCalculator, FeeQuote, compute_fee
from solbeck.settlement.models import BurnedToken, SettlementResult
from solbeck.settlement.reconciler import SettlementPlan, SettlementReconciler, fee_failure_reason

__all__ = [
    "BatchJob",
    "BatchReceipt",
    "BatchSubmitter",
    "BurnedToken",
    "FeeCalculator",
    "FeeQuote",
    "InstructionGroup",
    "SettlementPlan",
    "SettlementReconciler",
    "SettlementResult",
    "burn_close_group",
    "close_group",
    "compute_fee",
    "fee_failure_reason",
    "plan_batches",
    "signer_set",
    "transfer_group",
]
