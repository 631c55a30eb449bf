"""
SQLAlchemy-backed store for referral quotas, settlement records and the
fee-collection idempotency ledger.

Uses the configured DATABASE_URL (SQLite file by default). An in-memory
SQLite URL shares one connection across threads so tests see one database.
"""

from __future__ import annotations

import json
import time
from contextlib import contextmanager
from datetime import datetime, timezone
from typing import Any, Iterator

from sqlalchemy import create_engine, func
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from solbeck.database.models import (
    FEE_STATUS_COLLECTED,
    FEE_STATUS_FAILED,
    FEE_STATUS_PENDING,
    Base,
    FeeCollectionRow,
    ReferralStateRow,
    SettlementRecordRow,
)
from solbeck.referrals.models import ReferralState
from solbeck.solbeck_logging import get_logger

logger = get_logger(__name__)

SECONDS_PER_DAY = 86_400
RECENT_ACTIVITY_DAYS = 7


def _display_url(url: str) -> str:
    return url.split("?")[0].split("//")[-1]


def _to_state(row: ReferralStateRow) -> ReferralState:
    return ReferralState(
        user_id=row.user_id,
        referral_code=row.referral_code,
        wallet_count=int(row.wallet_count or 0),
        joined_at=datetime.fromtimestamp(row.joined_at, tz=timezone.utc),
    )


class SolbeckStore:
    def __init__(self, database_url: str) -> None:
        if not database_url:
            raise ValueError("database_url is required")
        self.database_url = database_url
        connect_args: dict[str, Any] = {}
        kwargs: dict[str, Any] = {}
        if database_url.startswith("sqlite"):
            connect_args["check_same_thread"] = False
            if ":memory:" in database_url or database_url.rstrip("/") == "sqlite:":
                kwargs["poolclass"] = StaticPool
        self._engine = create_engine(database_url, connect_args=connect_args, pool_pre_ping=True, **kwargs)
        self._session_factory = sessionmaker(autocommit=False, autoflush=False, bind=self._engine)

    @contextmanager
    def _session_scope(self) -> Iterator[Session]:
        """Commits on success, rolls back on error."""
        session = self._session_factory()
        try:
            yield session
            session.commit()
        except Exception:
            session.rollback()
            raise
        finally:
            session.close()

    def init_db(self) -> None:
        """Create tables if they do not exist. Safe to call on every startup."""
        try:
            Base.metadata.create_all(bind=self._engine)
            logger.info("store_init_db", url=_display_url(self.database_url))
        except Exception as e:
            logger.exception("store_init_db_failed", error=str(e))
            raise

    def dispose(self) -> None:
        self._engine.dispose()

    # ------------------------------------------------------------------
    # Referral state
    # ------------------------------------------------------------------

    def get_referral(self, user_id: str) -> ReferralState | None:
        with self._session_scope() as session:
            row = session.get(ReferralStateRow, str(user_id))
            return _to_state(row) if row else None

    def insert_referral(self, user_id: str, referral_code: str, joined_at: int | None = None) -> bool:
        """Insert a referral record. False when the user already has one (original kept)."""
        try:
            with self._session_scope() as session:
                session.add(
                    ReferralStateRow(
                        user_id=str(user_id),
                        referral_code=referral_code,
                        wallet_count=0,
                        joined_at=int(joined_at if joined_at is not None else time.time()),
                    )
                )
                session.flush()
            return True
        except IntegrityError:
            return False

    def add_wallet_count(self, user_id: str, count: int) -> int | None:
        """Add count to the user's cumulative wallets. None when the user has no referral record."""
        if count < 0:
            raise ValueError("wallet count increment must be non-negative")
        with self._session_scope() as session:
            row = session.get(ReferralStateRow, str(user_id))
            if row is None:
                return None
            row.wallet_count = int(row.wallet_count or 0) + int(count)
            return int(row.wallet_count)

    # ------------------------------------------------------------------
    # Fee collection ledger
    # ------------------------------------------------------------------

    def claim_fee_collection(self, operation_id: str, user_id: str | None, fee_lamports: int) -> bool:
        """
        Record a pending fee attempt for operation_id before anything is sent.
        False when a claim already exists: the fee step must be skipped.
        """
        try:
            with self._session_scope() as session:
                session.add(
                    FeeCollectionRow(
                        operation_id=operation_id,
                        user_id=str(user_id) if user_id is not None else None,
                        fee_lamports=int(fee_lamports),
                        status=FEE_STATUS_PENDING,
                        attempted_at=int(time.time()),
                    )
                )
                session.flush()
            return True
        except IntegrityError:
            logger.warning("fee_collection_already_claimed", operation_id=operation_id)
            return False

    def finish_fee_collection(
        self,
        operation_id: str,
        *,
        collected: bool,
        signature: str | None = None,
        reason: str | None = None,
    ) -> None:
        with self._session_scope() as session:
            row = session.get(FeeCollectionRow, operation_id)
            if row is None:
                raise KeyError(f"no fee claim for operation {operation_id}")
            row.status = FEE_STATUS_COLLECTED if collected else FEE_STATUS_FAILED
            row.signature = signature
            row.reason = reason

    def get_fee_collection(self, operation_id: str) -> dict[str, Any] | None:
        with self._session_scope() as session:
            row = session.get(FeeCollectionRow, operation_id)
            return row.to_dict() if row else None

    # ------------------------------------------------------------------
    # Settlement records and stats
    # ------------------------------------------------------------------

    def save_settlement_record(self, record: dict[str, Any]) -> bool:
        """Append one settlement record. False when operation_id was already recorded."""
        data = dict(record)
        details = data.pop("burned_details", None) or []
        data.setdefault("created_at", int(time.time()))
        try:
            with self._session_scope() as session:
                session.add(SettlementRecordRow(burned_details=json.dumps(details), **data))
                session.flush()
            logger.info(
                "settlement_record_saved",
                operation_id=data.get("operation_id"),
                user_id=data.get("user_id"),
            )
            return True
        except IntegrityError:
            logger.warning("settlement_record_duplicate", operation_id=data.get("operation_id"))
            return False

    def list_settlement_records(self, user_id: str | None = None) -> list[dict[str, Any]]:
        with self._session_scope() as session:
            q = session.query(SettlementRecordRow)
            if user_id is not None:
                q = q.filter(SettlementRecordRow.user_id == str(user_id))
            rows = q.order_by(SettlementRecordRow.created_at.asc(), SettlementRecordRow.id.asc()).all()
            return [r.to_dict() for r in rows]

    def aggregate_stats(self, now: float | None = None) -> dict[str, Any]:
        """Totals across all settlement records, recent activity and top user by net amount."""
        now_ts = int(now if now is not None else time.time())
        recent_cutoff = now_ts - RECENT_ACTIVITY_DAYS * SECONDS_PER_DAY
        R = SettlementRecordRow
        with self._session_scope() as session:
            totals = session.query(
                func.count(R.id),
                func.count(func.distinct(R.user_id)),
                func.coalesce(func.sum(R.gross_lamports), 0),
                func.coalesce(func.sum(R.fee_lamports), 0),
                func.coalesce(func.sum(R.fees_collected_lamports), 0),
                func.coalesce(func.sum(R.net_lamports), 0),
                func.coalesce(func.sum(R.wallet_count), 0),
                func.coalesce(func.sum(R.burned_tokens), 0),
                func.coalesce(func.sum(R.closed_accounts), 0),
            ).one()
            burn_only_ops = session.query(func.count(R.id)).filter(R.burn_only.is_(True)).scalar() or 0
            recent_ops = session.query(func.count(R.id)).filter(R.created_at >= recent_cutoff).scalar() or 0
            feeless_ops = session.query(func.count(R.id)).filter(R.feeless.is_(True)).scalar() or 0
            top = (
                session.query(R.user_id, func.max(R.username), func.sum(R.net_lamports).label("net"))
                .group_by(R.user_id)
                .order_by(func.sum(R.net_lamports).desc())
                .first()
            )
        total_ops = int(totals[0] or 0)
        return {
            "total_operations": total_ops,
            "unique_users": int(totals[1] or 0),
            "gross_lamports": int(totals[2]),
            "fee_lamports": int(totals[3]),
            "fees_collected_lamports": int(totals[4]),
            "net_lamports": int(totals[5]),
            "wallets": int(totals[6]),
            "burned_tokens": int(totals[7]),
            "closed_accounts": int(totals[8]),
            "burn_only_operations": int(burn_only_ops),
            "full_operations": total_ops - int(burn_only_ops),
            "feeless_operations": int(feeless_ops),
            "operations_last_7_days": int(recent_ops),
            "top_user": (
                {"user_id": top[0], "username": top[1] or "", "net_lamports": int(top[2] or 0)}
                if top
                else None
            ),
        }
