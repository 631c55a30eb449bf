"""
Referral/Quota Tracker.

Per-user cumulative wallet counts against a referral's free-wallet ceiling.
State is durable (SolbeckStore) so a restart never resets quotas.

Decide-then-commit: is_feeless() is read before an operation, and
increment_wallet_count() is called by the reconciler only after the
operation settled. Counts only increase.
"""

from __future__ import annotations

import threading
from datetime import datetime, timezone
from typing import TYPE_CHECKING

from solbeck.referrals.models import ReferralProgram, ReferralState
from solbeck.solbeck_logging import get_logger

if TYPE_CHECKING:
    from solbeck.database.store import SolbeckStore

logger = get_logger(__name__)


def feeless_eligible(prior_count: int, this_op_count: int, ceiling: int) -> bool:
    """All-or-nothing: the whole operation must fit under the ceiling."""
    return prior_count + this_op_count <= ceiling


class ReferralTracker:
    def __init__(self, store: SolbeckStore, programs: dict[str, ReferralProgram]) -> None:
        self._store = store
        self._programs = {k.lower(): v for k, v in programs.items()}
        # Guards each check-then-write pair; never held across an await.
        self._lock = threading.Lock()

    def program(self, code: str | None) -> ReferralProgram | None:
        if not code:
            return None
        return self._programs.get(code.strip().lower())

    def get_state(self, user_id: str | int | None) -> ReferralState | None:
        if user_id is None:
            return None
        return self._store.get_referral(str(user_id))

    def record_referral_join(self, user_id: str | int, code: str) -> ReferralState | None:
        """
        Attach a referral code to a user. Unknown codes are ignored (None).
        A user who already joined keeps the original record.
        """
        program = self.program(code)
        if program is None:
            logger.info("referral_code_unknown", user_id=str(user_id), code=(code or "")[:32])
            return None
        with self._lock:
            inserted = self._store.insert_referral(
                str(user_id),
                program.code,
                int(datetime.now(timezone.utc).timestamp()),
            )
            state = self._store.get_referral(str(user_id))
        if inserted:
            logger.info("referral_joined", user_id=str(user_id), code=program.code)
        else:
            logger.info("referral_already_joined", user_id=str(user_id), code=state.referral_code if state else None)
        return state

    def is_feeless(self, user_id: str | int | None, wallet_count: int) -> bool:
        state = self.get_state(user_id)
        if state is None:
            return False
        program = self.program(state.referral_code)
        if program is None:
            return False
        return feeless_eligible(state.wallet_count, wallet_count, program.free_wallets)

    def increment_wallet_count(self, user_id: str | int | None, wallet_count: int) -> int | None:
        """Commit this operation's wallets. No-op (None) for users without a referral."""
        if user_id is None or wallet_count <= 0:
            return None
        with self._lock:
            new_count = self._store.add_wallet_count(str(user_id), wallet_count)
        if new_count is not None:
            logger.info("referral_wallets_committed", user_id=str(user_id), added=wallet_count, total=new_count)
        return new_count

    def remaining_free_wallets(self, user_id: str | int | None) -> int:
        state = self.get_state(user_id)
        if state is None:
            return 0
        program = self.program(state.referral_code)
        if program is None:
            return 0
        return max(0, program.free_wallets - state.wallet_count)
