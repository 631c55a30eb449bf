"""
ReclaimService: the facade an external chat transport drives.

Conversation flow, one context per user:
    begin()    validate destination and keys (no network), seal keys in session
    scan()     classify token accounts; builds the paginated burn selection
    execute()  settle, persist the stats record, render the summary

run() does all three in one call. Every path ends the session (wiping key
material) except begin()/scan() success, which leave it open for the next
step; cancel() ends it explicitly.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Awaitable, Callable

from solbeck.agent.summary import render_settlement_summary
from solbeck.core.exceptions import (
    EmptySelectionError,
    InputValidationError,
    OperationInProgressError,
    ScanError,
    SolbeckError,
    TooManyWalletsError,
    classify_failure,
)
from solbeck.core.messages import MessageKey, failure_message, normalize_locale, render
from solbeck.database.store import SolbeckStore
from solbeck.keys.material import parse_destination, parse_secret_key_text, wipe_identities
from solbeck.referrals.models import ReferralState
from solbeck.referrals.tracker import ReferralTracker
from solbeck.scanner.account_scanner import AccountScanner
from solbeck.scanner.models import ScanResult
from solbeck.scanner.selection import BurnSelection
from solbeck.sessions.context import OperationContext, SessionRegistry
from solbeck.settlement.models import SettlementResult
from solbeck.settlement.reconciler import SettlementPlan, SettlementReconciler
from solbeck.solbeck_logging import bind_user, get_logger

logger = get_logger(__name__)


@dataclass(frozen=True)
class ReclaimOutcome:
    result: SettlementResult
    summary: str
    sol_usd_price: float = 0.0


class ReclaimService:
    def __init__(
        self,
        *,
        scanner: AccountScanner,
        reconciler: SettlementReconciler,
        tracker: ReferralTracker,
        store: SolbeckStore,
        sessions: SessionRegistry | None = None,
        max_wallets: int = 100,
        page_size: int = 8,
        price_lookup: Callable[[], Awaitable[float]] | None = None,
    ) -> None:
        self.scanner = scanner
        self.reconciler = reconciler
        self.tracker = tracker
        self.store = store
        self.sessions = sessions or SessionRegistry()
        self.max_wallets = max_wallets
        self.page_size = page_size
        self._price_lookup = price_lookup

    # ------------------------------------------------------------------
    # Step-by-step flow
    # ------------------------------------------------------------------

    def begin(
        self,
        user_id: Any,
        key_text: str,
        destination: str | None = None,
        *,
        username: str | None = None,
        locale: str | None = None,
    ) -> OperationContext:
        """
        Validate input and open the user's session.

        Raises:
            InputValidationError: bad destination or keys; nothing is retained.
            OperationInProgressError: the user already has an open session.
        """
        dest = parse_destination(destination)
        identities = parse_secret_key_text(key_text, self.max_wallets)
        try:
            ctx = self.sessions.begin(
                user_id,
                username=username,
                locale=normalize_locale(locale),
                destination=dest,
            )
        except OperationInProgressError:
            wipe_identities(identities)
            raise
        ctx.seal(identities)
        return ctx

    async def scan(self, user_id: Any, check_activity: bool = True) -> ScanResult:
        ctx = self._require(user_id)
        try:
            return await self._scan(ctx, check_activity)
        except ScanError:
            self.sessions.end(user_id, ctx)
            raise

    async def execute(self, user_id: Any, *, burn_only: bool = False) -> ReclaimOutcome:
        """
        Settle the scanned session. The session is always ended afterwards,
        except when burn-only mode finds nothing selected.
        """
        ctx = self._require(user_id)
        self._check_selection(ctx, burn_only)
        try:
            return await self._execute(ctx, burn_only)
        finally:
            self.sessions.end(user_id, ctx)

    def selection(self, user_id: Any) -> BurnSelection:
        ctx = self._require(user_id)
        if ctx.selection is None:
            raise InputValidationError("no scan for this session")
        return ctx.selection

    def cancel(self, user_id: Any) -> None:
        self.sessions.end(user_id)

    # ------------------------------------------------------------------
    # One-shot
    # ------------------------------------------------------------------

    async def run(
        self,
        user_id: Any,
        key_text: str,
        destination: str | None = None,
        *,
        select: Callable[[BurnSelection], Any] | None = None,
        burn_only: bool = False,
        check_activity: bool = True,
        username: str | None = None,
        locale: str | None = None,
    ) -> ReclaimOutcome:
        """Validate, scan, let select() pick burn targets, and settle in one session."""
        dest = parse_destination(destination)
        identities = parse_secret_key_text(key_text, self.max_wallets)
        try:
            async with self.sessions.operation(
                user_id,
                username=username,
                locale=normalize_locale(locale),
                destination=dest,
            ) as ctx:
                ctx.seal(identities)
                await self._scan(ctx, check_activity)
                if select is not None and ctx.selection is not None:
                    select(ctx.selection)
                self._check_selection(ctx, burn_only)
                return await self._execute(ctx, burn_only)
        finally:
            wipe_identities(identities)

    # ------------------------------------------------------------------
    # Referrals, stats, messages
    # ------------------------------------------------------------------

    def join_referral(self, user_id: Any, code: str) -> ReferralState | None:
        return self.tracker.record_referral_join(user_id, code)

    def remaining_free_wallets(self, user_id: Any) -> int:
        return self.tracker.remaining_free_wallets(user_id)

    def stats(self) -> dict[str, Any]:
        return self.store.aggregate_stats()

    def describe_failure(self, exc: BaseException, locale: str | None = None) -> str:
        if isinstance(exc, TooManyWalletsError):
            return render(MessageKey.ERROR_TOO_MANY_WALLETS, locale, exc.limit)
        if isinstance(exc, EmptySelectionError):
            return render(MessageKey.NO_TOKENS_SELECTED, locale)
        return failure_message(classify_failure(exc), locale)

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _require(self, user_id: Any) -> OperationContext:
        ctx = self.sessions.get(user_id)
        if ctx is None or ctx.keyring is None:
            raise InputValidationError(f"no open session for user {user_id}")
        return ctx

    def _check_selection(self, ctx: OperationContext, burn_only: bool) -> None:
        if ctx.scan is None:
            raise InputValidationError("scan must run before settlement")
        if burn_only and (ctx.selection is None or not ctx.selection.selected_records()):
            raise EmptySelectionError("no tokens selected for burning")

    async def _scan(self, ctx: OperationContext, check_activity: bool) -> ScanResult:
        if ctx.keyring is None:
            raise InputValidationError("session has no keys")
        result = await self.scanner.scan(ctx.keyring.addresses, check_activity)
        ctx.scan = result
        ctx.selection = BurnSelection(result, self.page_size)
        return result

    async def _execute(self, ctx: OperationContext, burn_only: bool) -> ReclaimOutcome:
        log = bind_user(ctx.user_id, ctx.operation_id)
        plan = SettlementPlan(
            operation_id=ctx.operation_id,
            identities=ctx.open_identities(),
            destination=ctx.destination,
            empty_accounts=list(ctx.scan.empty) if ctx.scan else [],
            burn_accounts=ctx.selection.selected_records() if ctx.selection else [],
            user_id=ctx.user_id,
            burn_only=burn_only,
        )
        try:
            result = await self.reconciler.settle(plan)
        except SolbeckError as e:
            log.error("operation_failed", error=str(e), failure=classify_failure(e).value)
            raise
        price = await self._price_lookup() if self._price_lookup is not None else 0.0
        state = self.tracker.get_state(ctx.user_id)
        if not result.nothing_done:
            self.store.save_settlement_record(
                result.to_record(
                    ctx.user_id,
                    ctx.username,
                    state.referral_code if state else None,
                    price,
                )
            )
        program = self.tracker.program(state.referral_code) if state else None
        summary = render_settlement_summary(
            result,
            ctx.locale,
            sol_usd_price=price,
            referral=program,
            remaining_free_wallets=self.tracker.remaining_free_wallets(ctx.user_id),
        )
        return ReclaimOutcome(result=result, summary=summary, sol_usd_price=price)
