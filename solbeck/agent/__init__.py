"""ReclaimService facade, runtime wiring and settlement summary rendering."""

from solbeck.agent.runtime import build_service, load_fee_collector, load_fee_payer
from solbeck.agent.service import ReclaimOutcome, ReclaimService
from solbeck.agent.summary import render_settlement_summary

__all__ = [
    "ReclaimOutcome",
    "ReclaimService",
    "build_service",
    "load_fee_collector",
    "load_fee_payer",
    "render_settlement_summary",
]
