"""
SQLAlchemy models for solbeck persistence.

referral_state      one row per user who joined with a recognized referral code
settlement_records  one row per completed operation (append-only)
fee_collections     idempotency ledger for fee transfers, keyed by operation id
"""

from __future__ import annotations

import json
from typing import Any

from sqlalchemy import Boolean, Column, Float, Integer, String, Text
from sqlalchemy.orm import declarative_base

Base = declarative_base()

FEE_STATUS_PENDING = "pending"
FEE_STATUS_COLLECTED = "collected"
FEE_STATUS_FAILED = "failed"


class ReferralStateRow(Base):
    __tablename__ = "referral_state"

    user_id = Column(String(64), primary_key=True)
    referral_code = Column(String(64), nullable=False, index=True)
    wallet_count = Column(Integer, nullable=False, default=0)
    joined_at = Column(Integer, nullable=False)  # Unix seconds


class SettlementRecordRow(Base):
    """
    Stats record for one completed operation. Amounts are lamports (BigInt-safe
    in SQLite Integer); SOL values are derived on read.
    """

    __tablename__ = "settlement_records"

    id = Column(Integer, primary_key=True, autoincrement=True)
    operation_id = Column(String(64), unique=True, nullable=False, index=True)
    user_id = Column(String(64), nullable=False, index=True)
    username = Column(String(128), nullable=True)
    wallet_count = Column(Integer, nullable=False, default=0)
    burned_tokens = Column(Integer, nullable=False, default=0)
    closed_accounts = Column(Integer, nullable=False, default=0)
    gross_lamports = Column(Integer, nullable=False, default=0)
    fee_lamports = Column(Integer, nullable=False, default=0)
    fees_collected_lamports = Column(Integer, nullable=False, default=0)
    net_lamports = Column(Integer, nullable=False, default=0)
    burn_only = Column(Boolean, nullable=False, default=False)
    referral_code = Column(String(64), nullable=True)
    feeless = Column(Boolean, nullable=False, default=False)
    fee_rate = Column(Float, nullable=False, default=0.0)
    sol_usd_price = Column(Float, nullable=True)
    last_signature = Column(String(128), nullable=True)
    burned_details = Column(Text, nullable=True)  # JSON array of {symbol, amount, display_name}
    created_at = Column(Integer, nullable=False, index=True)  # Unix seconds

    def to_dict(self) -> dict[str, Any]:
        return {
            "operation_id": self.operation_id,
            "user_id": self.user_id,
            "username": self.username or "",
            "wallet_count": self.wallet_count,
            "burned_tokens": self.burned_tokens,
            "closed_accounts": self.closed_accounts,
            "gross_lamports": self.gross_lamports,
            "fee_lamports": self.fee_lamports,
            "fees_collected_lamports": self.fees_collected_lamports,
            "net_lamports": self.net_lamports,
            "burn_only": bool(self.burn_only),
            "referral_code": self.referral_code,
            "feeless": bool(self.feeless),
            "fee_rate": self.fee_rate,
            "sol_usd_price": self.sol_usd_price,
            "last_signature": self.last_signature,
            "burned_details": json.loads(self.burned_details) if self.burned_details else [],
            "created_at": self.created_at,
        }


class FeeCollectionRow(Base):
    __tablename__ = "fee_collections"

    operation_id = Column(String(64), primary_key=True)
    user_id = Column(String(64), nullable=True, index=True)
    fee_lamports = Column(Integer, nullable=False)
    status = Column(String(16), nullable=False, default=FEE_STATUS_PENDING)
    signature = Column(String(128), nullable=True)
    reason = Column(String(64), nullable=True)
    attempted_at = Column(Integer, nullable=False)

    def to_dict(self) -> dict[str, Any]:
        return {
            "operation_id": self.operation_id,
            "user_id": self.user_id,
            "fee_lamports": self.fee_lamports,
            "status": self.status,
            "signature": self.signature,
            "reason": self.reason,
            "attempted_at": self.attempted_at,
        }
