"""Ledger access: async RPC client wrapper and instruction builders."""

from solbeck.ledger.client import LedgerClient, OwnedTokenAccount, SignatureRecord, SimulationOutcome
from solbeck.ledger.instructions import (
    LAMPORTS_PER_SOL,
    build_burn_ix,
    build_close_ix,
    build_transfer_ix,
    lamports_to_sol,
    required_signers,
)

__all__ = [
    "LAMPORTS_PER_SOL",
    "LedgerClient",
    "OwnedTokenAccount",
    "SignatureRecord",
    "SimulationOutcome",
    "build_burn_ix",
    "build_close_ix",
    "build_transfer_ix",
    "lamports_to_sol",
    "required_signers",
]
