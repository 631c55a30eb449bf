"""
Batch Transaction Builder & Submitter.

Instruction groups (one per token account or sweep) are chunked into
bounded batches. Each batch becomes one v0 transaction whose payer is the
fee payer and whose signers are exactly {fee payer} plus the distinct
owners referenced by the batch's groups.

Submission per batch: fresh blockhash, sign, simulate (an error aborts and
nothing is sent), send with preflight under a bounded retry loop, then poll
the signature status. A confirmation timeout is logged and the pipeline
proceeds; the transaction may still land.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Iterable, Sequence

from solders.instruction import Instruction
from solders.keypair import Keypair
from solders.message import MessageV0
from solders.transaction import VersionedTransaction

from solbeck.core.exceptions import BatchError, BatchSimulationError, BatchSubmissionError
from solbeck.keys.material import SigningIdentity
from solbeck.ledger.client import LedgerClient
from solbeck.ledger.instructions import build_burn_ix, build_close_ix, build_transfer_ix
from solbeck.scanner.models import TokenAccountRecord
from solbeck.solbeck_logging import get_logger, short_addr

logger = get_logger(__name__)

KIND_CLOSE = "close"
KIND_BURN = "burn"
KIND_SWEEP = "sweep"
KIND_FEE = "fee"


@dataclass(frozen=True)
class InstructionGroup:
    """Instructions for one account (or one transfer) plus the owner that must sign them."""

    instructions: tuple[Instruction, ...]
    owner: str
    kind: str = KIND_CLOSE
    account: str | None = None


def close_group(record: TokenAccountRecord, destination: Any) -> InstructionGroup:
    return InstructionGroup(
        instructions=(build_close_ix(record.address, destination, record.owner),),
        owner=record.owner,
        kind=KIND_CLOSE,
        account=record.address,
    )


def burn_close_group(record: TokenAccountRecord, destination: Any) -> InstructionGroup:
    """Burn the whole balance, then close the now-empty account."""
    return InstructionGroup(
        instructions=(
            build_burn_ix(record.address, record.mint, record.owner, record.amount),
            build_close_ix(record.address, destination, record.owner),
        ),
        owner=record.owner,
        kind=KIND_BURN,
        account=record.address,
    )


def transfer_group(source: Any, destination: Any, lamports: int, kind: str = KIND_SWEEP) -> InstructionGroup:
    return InstructionGroup(
        instructions=(build_transfer_ix(source, destination, lamports),),
        owner=str(source),
        kind=kind,
    )


@dataclass
class BatchJob:
    index: int
    label: str
    groups: list[InstructionGroup]
    signers: list[Keypair] = field(repr=False)

    @property
    def instructions(self) -> list[Instruction]:
        return [ix for g in self.groups for ix in g.instructions]

    @property
    def signer_addresses(self) -> list[str]:
        return [str(kp.pubkey()) for kp in self.signers]

    @property
    def accounts(self) -> list[str]:
        return [g.account for g in self.groups if g.account]


def signer_set(
    groups: Iterable[InstructionGroup],
    fee_payer: Keypair,
    identities: Sequence[SigningIdentity],
) -> list[Keypair]:
    """
    Fee payer first, then each distinct owner once, in first-reference order.

    Raises:
        BatchError: an owner has no matching identity.
    """
    by_address = {ident.address: ident.keypair for ident in identities}
    signers = [fee_payer]
    seen = {str(fee_payer.pubkey())}
    for g in groups:
        if g.owner in seen:
            continue
        kp = by_address.get(g.owner)
        if kp is None:
            raise BatchError(f"no signing identity for owner {short_addr(g.owner)}")
        seen.add(g.owner)
        signers.append(kp)
    return signers


def plan_batches(
    groups: Sequence[InstructionGroup],
    batch_size: int,
    fee_payer: Keypair,
    identities: Sequence[SigningIdentity],
    label: str,
) -> list[BatchJob]:
    """Chunk groups into batches of at most batch_size groups, in input order."""
    if batch_size < 1:
        raise ValueError("batch_size must be >= 1")
    jobs: list[BatchJob] = []
    for i in range(0, len(groups), batch_size):
        chunk = list(groups[i : i + batch_size])
        jobs.append(
            BatchJob(
                index=len(jobs),
                label=label,
                groups=chunk,
                signers=signer_set(chunk, fee_payer, identities),
            )
        )
    return jobs


@dataclass(frozen=True)
class BatchReceipt:
    index: int
    label: str
    signature: str
    confirmed: bool


class BatchSubmitter:
    """Stateless per batch; one instance may be shared by concurrent operations."""

    def __init__(
        self,
        ledger: LedgerClient,
        fee_payer: Keypair,
        *,
        max_retries: int = 3,
        confirm_attempts: int = 30,
        confirm_interval_sec: float = 1.0,
        retry_backoff_sec: float = 0.5,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ) -> None:
        if max_retries < 1 or confirm_attempts < 1:
            raise ValueError("max_retries and confirm_attempts must be >= 1")
        self._ledger = ledger
        self.fee_payer = fee_payer
        self._max_retries = max_retries
        self._confirm_attempts = confirm_attempts
        self._confirm_interval = confirm_interval_sec
        self._retry_backoff = retry_backoff_sec
        self._sleep = sleep

    def build_transaction(self, job: BatchJob, blockhash: Any) -> VersionedTransaction:
        message = MessageV0.try_compile(self.fee_payer.pubkey(), job.instructions, [], blockhash)
        return VersionedTransaction(message, job.signers)

    async def submit(self, job: BatchJob) -> BatchReceipt:
        """
        Simulate, send and poll one batch.

        Raises:
            BatchSimulationError: simulation reported an error; nothing was sent.
            BatchSubmissionError: sending failed after retries, or the
                transaction landed with an error.
        """
        if not job.groups:
            raise BatchError("empty batch", label=job.label, batch_index=job.index)
        blockhash = await self._ledger.latest_blockhash()
        tx = self.build_transaction(job, blockhash)

        sim = await self._ledger.simulate(tx)
        if not sim.ok:
            logger.error(
                "batch_simulation_failed",
                label=job.label,
                batch_index=job.index,
                err=str(sim.err),
                logs=sim.logs[-5:],
            )
            raise BatchSimulationError(sim.err, label=job.label, batch_index=job.index, logs=sim.logs)

        signature = await self._send_with_retry(job, tx)
        confirmed = await self.wait_for_confirmation(signature, job)
        return BatchReceipt(index=job.index, label=job.label, signature=signature, confirmed=confirmed)

    async def submit_all(self, jobs: Sequence[BatchJob]) -> list[BatchReceipt]:
        """Sequential: each batch is confirmed (or timed out) before the next is built."""
        receipts: list[BatchReceipt] = []
        for job in jobs:
            receipts.append(await self.submit(job))
        return receipts

    async def _send_with_retry(self, job: BatchJob, tx: VersionedTransaction) -> str:
        # The same signed bytes are resent, so a retry can never produce a second transaction.
        last_err: Exception | None = None
        for attempt in range(self._max_retries):
            try:
                signature = await self._ledger.send(tx, self._max_retries)
                logger.info(
                    "batch_sent",
                    label=job.label,
                    batch_index=job.index,
                    signature=signature,
                    instruction_count=len(job.instructions),
                    signers=len(job.signers),
                )
                return signature
            except Exception as e:
                last_err = e
                backoff = self._retry_backoff * (2 ** attempt)
                logger.warning(
                    "batch_send_failed",
                    label=job.label,
                    batch_index=job.index,
                    attempt=attempt + 1,
                    error=str(e),
                    backoff_sec=round(backoff, 2),
                )
                if attempt < self._max_retries - 1:
                    await self._sleep(backoff)
        logger.error("batch_send_retries_exhausted", label=job.label, batch_index=job.index, error=str(last_err))
        raise BatchSubmissionError(
            f"{job.label} batch {job.index} failed to send: {last_err}",
            label=job.label,
            batch_index=job.index,
        ) from last_err

    async def wait_for_confirmation(self, signature: str, job: BatchJob | None = None) -> bool:
        """Poll until confirmed/finalized. Timeout logs and returns False."""
        label = job.label if job else ""
        for _ in range(self._confirm_attempts):
            try:
                status, err = await self._ledger.signature_status(signature)
            except Exception as e:
                logger.warning("batch_confirm_poll_error", signature=signature, error=str(e))
                status, err = None, None
            if err is not None:
                logger.error("batch_landed_with_error", label=label, signature=signature, err=str(err))
                raise BatchSubmissionError(
                    f"{label} transaction {signature} failed on-chain: {err}",
                    label=label,
                    batch_index=job.index if job else -1,
                )
            if status in ("confirmed", "finalized"):
                logger.info("batch_confirmed", label=label, signature=signature, confirmation_status=status)
                return True
            await self._sleep(self._confirm_interval)
        logger.warning(
            "batch_confirm_timeout",
            label=label,
            signature=signature,
            attempts=self._confirm_attempts,
            interval_sec=self._confirm_interval,
        )
        return False
