"""
Instruction builders for the three on-chain actions the pipeline performs:
SPL token close, SPL token burn, and native SOL transfer.
"""

from __future__ import annotations

from typing import Any

from solders.instruction import Instruction
from solders.pubkey import Pubkey
from solders.system_program import TransferParams, transfer
from spl.token.constants import TOKEN_PROGRAM_ID
from spl.token.instructions import burn, close_account
from spl.token.models import BurnParams, CloseAccountParams

LAMPORTS_PER_SOL = 1_000_000_000


def _pk(value: Any) -> Pubkey:
    return value if isinstance(value, Pubkey) else Pubkey.from_string(str(value))


def build_close_ix(account: Any, destination: Any, owner: Any) -> Instruction:
    """Close a token account; rent lamports go to destination. owner signs."""
    return close_account(
        CloseAccountParams(
            program_id=TOKEN_PROGRAM_ID,
            account=_pk(account),
            dest=_pk(destination),
            owner=_pk(owner),
        )
    )


def build_burn_ix(account: Any, mint: Any, owner: Any, amount: int) -> Instruction:
    """Burn the full raw amount held by a token account. owner signs."""
    return burn(
        BurnParams(
            program_id=TOKEN_PROGRAM_ID,
            account=_pk(account),
            mint=_pk(mint),
            owner=_pk(owner),
            amount=int(amount),
        )
    )


def build_transfer_ix(from_pubkey: Any, to_pubkey: Any, lamports: int) -> Instruction:
    return transfer(TransferParams(from_pubkey=_pk(from_pubkey), to_pubkey=_pk(to_pubkey), lamports=int(lamports)))


def required_signers(ix: Instruction) -> set[str]:
    """Addresses flagged as signers in an instruction's account metas."""
    return {str(meta.pubkey) for meta in ix.accounts if meta.is_signer}


def lamports_to_sol(lamports: int) -> float:
    return int(lamports) / LAMPORTS_PER_SOL
