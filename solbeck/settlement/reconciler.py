"""
Settlement Reconciler: one end-to-end operation.

Order: burn pass (burn + close per selected account) -> close pass (empty
accounts) -> native sweep to the destination -> fee collection -> quota
commit. Gross lamports come from each account's balance read right before
its batch is built; the flat estimate is used only when that read fails.

Batch errors (simulation or submission) abort the operation and propagate.
Fee collection is a separate transaction and best-effort: its failure is
logged by reason and reported as 0 collected, never raised.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

from solders.pubkey import Pubkey

from solbeck.core.exceptions import (
    BatchSimulationError,
    FeeCollectionError,
    InputValidationError,
)
from solbeck.database.store import SolbeckStore
from solbeck.keys.material import SigningIdentity, identity_for
from solbeck.ledger.client import LedgerClient
from solbeck.referrals.tracker import ReferralTracker
from solbeck.scanner.models import TokenAccountRecord
from solbeck.settlement.batching import (
    KIND_FEE,
    BatchJob,
    BatchSubmitter,
    InstructionGroup,
    burn_close_group,
    close_group,
    plan_batches,
    signer_set,
    transfer_group,
)
from solbeck.settlement.fees import FeeCalculator, FeeQuote
from solbeck.settlement.models import BurnedToken, SettlementResult
from solbeck.solbeck_logging import bind_user, get_logger, short_addr

logger = get_logger(__name__)

REASON_INSUFFICIENT_FUNDS = "insufficient_funds"
REASON_SIGNATURE_VERIFICATION = "signature_verification"
REASON_SIMULATION_UNSTABLE = "simulation_unstable"
REASON_DESTINATION_NOT_SIGNABLE = "destination_not_signable"
REASON_OTHER = "other"


def fee_failure_reason(exc: BaseException) -> str:
    """Monitoring category for a failed fee collection."""
    if isinstance(exc, FeeCollectionError):
        return exc.reason
    text = str(exc).lower()
    if isinstance(exc, BatchSimulationError):
        text = " ".join([text, str(exc.err).lower(), *(line.lower() for line in exc.logs)])
    if "signature verification" in text:
        return REASON_SIGNATURE_VERIFICATION
    if "insufficient" in text:
        return REASON_INSUFFICIENT_FUNDS
    if isinstance(exc, BatchSimulationError) or "simulation failed" in text:
        return REASON_SIMULATION_UNSTABLE
    return REASON_OTHER


@dataclass
class SettlementPlan:
    """What the user asked for: identities, destination and the accounts to burn/close."""

    operation_id: str
    identities: list[SigningIdentity]
    destination: Pubkey | None = None
    empty_accounts: list[TokenAccountRecord] = field(default_factory=list)
    burn_accounts: list[TokenAccountRecord] = field(default_factory=list)
    user_id: str | None = None
    burn_only: bool = False

    @property
    def wallet_count(self) -> int:
        return len(self.identities)

    @property
    def primary(self) -> SigningIdentity:
        return self.identities[0]

    @property
    def rent_destination(self) -> Pubkey:
        """Consolidation address, or the primary identity when none was given."""
        return self.destination if self.destination is not None else self.primary.pubkey


class SettlementReconciler:
    def __init__(
        self,
        ledger: LedgerClient,
        submitter: BatchSubmitter,
        fee_calculator: FeeCalculator,
        *,
        tracker: ReferralTracker | None = None,
        store: SolbeckStore | None = None,
        close_batch_size: int = 6,
        burn_batch_size: int = 3,
        estimated_account_rent_lamports: int = 2_039_280,
        minimum_rent_lamports: int = 890_880,
    ) -> None:
        self._ledger = ledger
        self._submitter = submitter
        self._fees = fee_calculator
        self._tracker = tracker
        self._store = store
        self._close_batch_size = close_batch_size
        self._burn_batch_size = burn_batch_size
        self._estimated_rent = estimated_account_rent_lamports
        self._minimum_rent = minimum_rent_lamports

    async def settle(self, plan: SettlementPlan) -> SettlementResult:
        """
        Run the operation and return its SettlementResult.

        Raises:
            InputValidationError: no identities.
            BatchError: a batch failed simulation or submission; the operation is aborted.
        """
        if not plan.identities:
            raise InputValidationError("no signing identities for settlement")
        log = bind_user(plan.user_id, plan.operation_id)
        feeless = self._fees.decide_feeless(plan.user_id, plan.wallet_count)
        rent_dest = plan.rent_destination
        fee_payer = self._submitter.fee_payer

        burn_records = _unique(plan.burn_accounts)
        burn_addresses = {r.address for r in burn_records}
        close_records = [r for r in _unique(plan.empty_accounts) if r.address not in burn_addresses]
        log.info(
            "settlement_started",
            wallets=plan.wallet_count,
            burn_accounts=len(burn_records),
            close_accounts=len(close_records),
            destination=short_addr(rent_dest),
            feeless=feeless,
        )

        signatures: list[str] = []
        gross = 0

        burn_records, lamports = await self._pre_read_lamports(burn_records)
        gross += lamports
        if burn_records:
            jobs = plan_batches(
                [burn_close_group(r, rent_dest) for r in burn_records],
                self._burn_batch_size,
                fee_payer,
                plan.identities,
                "burn",
            )
            signatures += [r.signature for r in await self._submitter.submit_all(jobs)]

        close_records, lamports = await self._pre_read_lamports(close_records)
        gross += lamports
        if close_records:
            jobs = plan_batches(
                [close_group(r, rent_dest) for r in close_records],
                self._close_batch_size,
                fee_payer,
                plan.identities,
                "close",
            )
            signatures += [r.signature for r in await self._submitter.submit_all(jobs)]

        swept = 0
        if plan.destination is not None:
            swept, sweep_sigs = await self._sweep(plan)
            gross += swept
            signatures += sweep_sigs

        quote = self._fees.quote(gross, rent_dest, feeless=feeless)
        collected, fee_signature = await self._collect_fee(plan, quote, log)
        if quote.transfer_ix is not None and collected != quote.fee_lamports:
            log.warning(
                "fee_divergence",
                computed_fee_lamports=quote.fee_lamports,
                collected_fee_lamports=collected,
            )

        if self._tracker is not None:
            self._tracker.increment_wallet_count(plan.user_id, plan.wallet_count)

        result = SettlementResult(
            operation_id=plan.operation_id,
            closed_accounts=len(close_records) + len(burn_records),
            burned_tokens=len(burn_records),
            gross_lamports=gross,
            fee_lamports=quote.fee_lamports,
            fees_collected_lamports=collected,
            net_lamports=quote.net_lamports,
            feeless=quote.feeless,
            fee_rate=self._fees.rate,
            wallet_count=plan.wallet_count,
            last_signature=signatures[-1] if signatures else None,
            destination=str(rent_dest),
            swept_lamports=swept,
            burn_only=plan.burn_only,
            burned_details=[
                BurnedToken(symbol=r.symbol, amount=r.ui_amount, display_name=r.display_name)
                for r in burn_records
            ],
            signatures=signatures + ([fee_signature] if fee_signature else []),
        )
        log.info(
            "settlement_completed",
            closed=result.closed_accounts,
            burned=result.burned_tokens,
            gross_lamports=result.gross_lamports,
            fee_lamports=result.fee_lamports,
            fees_collected_lamports=result.fees_collected_lamports,
            net_lamports=result.net_lamports,
            swept_lamports=swept,
        )
        return result

    async def _pre_read_lamports(
        self, records: list[TokenAccountRecord]
    ) -> tuple[list[TokenAccountRecord], int]:
        """
        Read each account's lamports before closure.

        Returns the records still on chain and their lamport total. An account
        that no longer exists is already closed: it is dropped and adds nothing.
        A failed read keeps the record and counts the flat rent estimate.
        """
        live: list[TokenAccountRecord] = []
        total = 0
        for r in records:
            try:
                lamports = await self._ledger.get_lamports(r.address)
            except Exception as e:
                logger.warning(
                    "pre_close_read_estimated",
                    account=short_addr(r.address),
                    error=str(e),
                    estimate_lamports=self._estimated_rent,
                )
                lamports = self._estimated_rent
            if lamports is None:
                logger.info("pre_close_account_gone", account=short_addr(r.address))
                continue
            live.append(r)
            total += int(lamports)
        return live, total

    async def _sweep(self, plan: SettlementPlan) -> tuple[int, list[str]]:
        """Move each identity's residual native balance to the destination."""
        destination = str(plan.destination)
        groups: list[InstructionGroup] = []
        swept = 0
        for ident in plan.identities:
            if ident.address == destination:
                continue
            try:
                balance = await self._ledger.get_balance(ident.address)
            except Exception as e:
                logger.warning("sweep_balance_read_failed", owner=short_addr(ident.address), error=str(e))
                continue
            if balance <= 0:
                continue
            groups.append(transfer_group(ident.address, destination, balance))
            swept += balance
        if not groups:
            return 0, []
        jobs = plan_batches(groups, self._close_batch_size, self._submitter.fee_payer, plan.identities, "sweep")
        receipts = await self._submitter.submit_all(jobs)
        return swept, [r.signature for r in receipts]

    async def _collect_fee(self, plan: SettlementPlan, quote: FeeQuote, log: Any) -> tuple[int, str | None]:
        if quote.transfer_ix is None:
            if quote.feeless:
                log.info("fee_feeless_applied", gross_lamports=quote.gross_lamports)
            return 0, None
        try:
            if self._store is not None and not self._store.claim_fee_collection(
                plan.operation_id, plan.user_id, quote.fee_lamports
            ):
                log.warning("fee_collection_skipped_duplicate", fee_lamports=quote.fee_lamports)
                return 0, None
        except Exception as e:
            # Unclaimed fees are never sent.
            log.error(
                "fee_collection_failed",
                reason=REASON_OTHER,
                error=f"fee claim failed: {e}",
                fee_lamports=quote.fee_lamports,
            )
            return 0, None
        try:
            source = identity_for(plan.identities, quote.source)
            if source is None:
                raise FeeCollectionError(
                    f"fee source {short_addr(quote.source)} is not one of the operation's identities",
                    reason=REASON_DESTINATION_NOT_SIGNABLE,
                )
            balance = await self._ledger.get_balance(source.address)
            remaining = balance - quote.fee_lamports
            if remaining < 0 or 0 < remaining < self._minimum_rent:
                raise FeeCollectionError(
                    f"fee source balance {balance} cannot cover fee {quote.fee_lamports}",
                    reason=REASON_INSUFFICIENT_FUNDS,
                )
            group = InstructionGroup(instructions=(quote.transfer_ix,), owner=source.address, kind=KIND_FEE)
            job = BatchJob(
                index=0,
                label="fee",
                groups=[group],
                signers=signer_set([group], self._submitter.fee_payer, plan.identities),
            )
            receipt = await self._submitter.submit(job)
        except Exception as e:
            reason = fee_failure_reason(e)
            log.error(
                "fee_collection_failed",
                reason=reason,
                error=str(e),
                fee_lamports=quote.fee_lamports,
            )
            self._finish_fee_collection(plan.operation_id, log, collected=False, reason=reason)
            return 0, None
        self._finish_fee_collection(plan.operation_id, log, collected=True, signature=receipt.signature)
        log.info("fee_collected", fee_lamports=quote.fee_lamports, signature=receipt.signature)
        return quote.fee_lamports, receipt.signature

    def _finish_fee_collection(self, operation_id: str, log: Any, **outcome: Any) -> None:
        if self._store is None:
            return
        try:
            self._store.finish_fee_collection(operation_id, **outcome)
        except Exception as e:
            log.error("fee_collection_record_failed", error=str(e), collected=outcome.get("collected"))


def _unique(records: list[TokenAccountRecord]) -> list[TokenAccountRecord]:
    seen: set[str] = set()
    out: list[TokenAccountRecord] = []
    for r in records:
        if r.address in seen:
            continue
        seen.add(r.address)
        out.append(r)
    return out
