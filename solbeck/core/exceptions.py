"""
Application-level exceptions.

Every error raised by the reclaim pipeline derives from SolbeckError so the
service boundary can clean up and map it to a user-facing FailureKind with
classify_failure(). Ledger errors that only surface as RPC text (program
error codes, preflight messages) are classified by pattern.
"""

from __future__ import annotations

import re
from enum import Enum
from typing import Any


class SolbeckError(Exception):
    """Base class for all solbeck errors."""


class ConfigError(SolbeckError):
    """Missing or invalid configuration; fatal at startup."""


class InputValidationError(SolbeckError):
    """User input rejected before any network call."""


class InvalidKeyError(InputValidationError):
    """A secret key is not valid base58 / JSON bytes or has the wrong length."""

    def __init__(self, message: str, position: int | None = None) -> None:
        super().__init__(message)
        self.position = position


class InvalidAddressError(InputValidationError):
    """A destination address is not a valid base58 public key."""


class TooManyWalletsError(InputValidationError):
    def __init__(self, count: int, limit: int) -> None:
        super().__init__(f"{count} wallets supplied; at most {limit} per operation")
        self.count = count
        self.limit = limit


class EmptySelectionError(InputValidationError):
    """Burn-only mode was requested with nothing selected."""


class ScanError(SolbeckError):
    """Token accounts for a whole identity could not be enumerated."""

    def __init__(self, owner: str, cause: Exception | str) -> None:
        super().__init__(f"failed to enumerate token accounts for {owner}: {cause}")
        self.owner = owner


class BatchError(SolbeckError):
    """A batch could not be executed; aborts the whole operation."""

    def __init__(self, message: str, *, label: str = "", batch_index: int = -1) -> None:
        super().__init__(message)
        self.label = label
        self.batch_index = batch_index


class BatchSimulationError(BatchError):
    """Simulation reported an error; the batch was never sent."""

    def __init__(
        self,
        err: Any,
        *,
        label: str = "",
        batch_index: int = -1,
        logs: list[str] | None = None,
    ) -> None:
        self.err = err
        self.logs = list(logs or [])
        detail = " | ".join(self.logs[-3:]) if self.logs else ""
        message = f"{label} simulation failed: {err}"
        if detail:
            message = f"{message} ({detail})"
        super().__init__(message, label=label, batch_index=batch_index)


class BatchSubmissionError(BatchError):
    """Sending the batch failed after the bounded retry count."""


class FeeCollectionError(SolbeckError):
    """Fee transfer failed; never propagated past the reconciler."""

    def __init__(self, message: str, reason: str = "other") -> None:
        super().__init__(message)
        self.reason = reason


class OperationInProgressError(SolbeckError):
    """The user already has an operation in flight."""

    def __init__(self, user_id: Any) -> None:
        super().__init__(f"operation already in progress for user {user_id}")
        self.user_id = user_id


class FailureKind(str, Enum):
    """User-visible failure classes."""

    INVALID_KEY = "invalid_key"
    INVALID_ADDRESS = "invalid_address"
    INSUFFICIENT_FUNDS = "insufficient_funds"
    TOKEN_BALANCE_NONZERO = "token_balance_nonzero"
    FROZEN_TOKEN = "frozen_token"
    INVALID_OWNERSHIP = "invalid_ownership"
    OPERATION_IN_PROGRESS = "operation_in_progress"
    GENERIC = "generic"


# SPL token program errors as they appear in simulation/preflight text.
# 0xb NonNativeHasBalance, 0x11 AccountFrozen, 0x4 OwnerMismatch, 0x1 InsufficientFunds.
# Hex and decimal codes end at a word boundary so 0x1 never matches 0x10.
_TEXT_PATTERNS: tuple[tuple[re.Pattern[str], FailureKind], ...] = (
    (
        re.compile(
            r"non-native account can only be closed if its balance is zero"
            r"|custom program error: 0xb\b"
            r"|'custom': 11\b"
            r"|custom\(11\)"
        ),
        FailureKind.TOKEN_BALANCE_NONZERO,
    ),
    (
        re.compile(r"account is frozen|frozen|custom program error: 0x11\b|'custom': 17\b|custom\(17\)"),
        FailureKind.FROZEN_TOKEN,
    ),
    (
        re.compile(r"invalid account owner|owner does not match|custom program error: 0x4\b|'custom': 4\b|custom\(4\)"),
        FailureKind.INVALID_OWNERSHIP,
    ),
    (
        re.compile(r"insufficient|custom program error: 0x1\b|'custom': 1\b|custom\(1\)"),
        FailureKind.INSUFFICIENT_FUNDS,
    ),
)


def classify_failure_text(text: str) -> FailureKind:
    """Map raw ledger/RPC error text to a FailureKind; GENERIC when nothing matches."""
    lowered = (text or "").lower()
    for pattern, kind in _TEXT_PATTERNS:
        if pattern.search(lowered):
            return kind
    return FailureKind.GENERIC


def classify_failure(exc: BaseException) -> FailureKind:
    """Map an exception to the user-visible failure class (type first, then ledger text)."""
    if isinstance(exc, InvalidKeyError):
        return FailureKind.INVALID_KEY
    if isinstance(exc, InvalidAddressError):
        return FailureKind.INVALID_ADDRESS
    if isinstance(exc, OperationInProgressError):
        return FailureKind.OPERATION_IN_PROGRESS
    text = str(exc)
    if isinstance(exc, BatchSimulationError):
        text = " ".join([text, str(exc.err), *exc.logs])
    return classify_failure_text(text)
