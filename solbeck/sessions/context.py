"""
Per-user operation context and the process-wide session registry.

Each user has at most one OperationContext in flight. The registry maps
user id -> context under a threading.Lock held only for dict access, never
across an await. Leaving SessionRegistry.operation() always wipes key
material and removes the context, whether the pipeline succeeded or not.
"""

from __future__ import annotations

import threading
import uuid
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from typing import AsyncIterator

from solders.pubkey import Pubkey

from solbeck.core.exceptions import OperationInProgressError
from solbeck.keys.material import SigningIdentity, wipe_identities
from solbeck.keys.vault import SealedKeyring
from solbeck.scanner.models import ScanResult
from solbeck.scanner.selection import BurnSelection
from solbeck.solbeck_logging import get_logger

logger = get_logger(__name__)


def new_operation_id() -> str:
    return uuid.uuid4().hex


@dataclass(eq=False)
class OperationContext:
    """Everything one user's in-flight operation owns."""

    user_id: str
    operation_id: str = field(default_factory=new_operation_id)
    username: str | None = None
    locale: str = "en"
    keyring: SealedKeyring | None = None
    destination: Pubkey | None = None
    scan: ScanResult | None = None
    selection: BurnSelection | None = None
    burn_only: bool = False
    opened: list[SigningIdentity] = field(default_factory=list, repr=False)

    def seal(self, identities: list[SigningIdentity]) -> None:
        """Seal decoded identities into the keyring and wipe the plaintext copies."""
        if self.keyring is not None:
            self.keyring.wipe()
        self.keyring = SealedKeyring(identities, operation_id=self.operation_id)
        wipe_identities(identities)

    def open_identities(self) -> list[SigningIdentity]:
        """Decrypt the keyring for a pipeline run; wiped again by cleanup()."""
        if self.keyring is None:
            return []
        self.opened = self.keyring.open()
        return self.opened

    @property
    def wallet_count(self) -> int:
        return len(self.keyring) if self.keyring is not None else 0

    def cleanup(self) -> None:
        wipe_identities(self.opened)
        if self.keyring is not None:
            self.keyring.wipe()
            self.keyring = None
        self.scan = None
        self.selection = None
        self.destination = None


class SessionRegistry:
    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._contexts: dict[str, OperationContext] = {}

    def get(self, user_id: str | int) -> OperationContext | None:
        with self._lock:
            return self._contexts.get(str(user_id))

    def active_users(self) -> list[str]:
        with self._lock:
            return list(self._contexts)

    def begin(self, user_id: str | int, **kwargs: object) -> OperationContext:
        """
        Register a new context for user_id.

        Raises:
            OperationInProgressError: the user already has one.
        """
        key = str(user_id)
        with self._lock:
            if key in self._contexts:
                raise OperationInProgressError(key)
            ctx = OperationContext(user_id=key, **kwargs)  # type: ignore[arg-type]
            self._contexts[key] = ctx
        logger.info("session_started", user_id=key, operation_id=ctx.operation_id)
        return ctx

    def end(self, user_id: str | int, ctx: OperationContext | None = None) -> None:
        """Remove and clean up the user's context. With ctx, only that exact context is removed."""
        key = str(user_id)
        with self._lock:
            current = self._contexts.get(key)
            if current is not None and (ctx is None or current is ctx):
                del self._contexts[key]
            else:
                current = None
        target = ctx or current
        if target is not None:
            target.cleanup()
            logger.info("session_cleared", user_id=target.user_id, operation_id=target.operation_id)

    @asynccontextmanager
    async def operation(self, user_id: str | int, **kwargs: object) -> AsyncIterator[OperationContext]:
        ctx = self.begin(user_id, **kwargs)
        try:
            yield ctx
        finally:
            self.end(user_id, ctx)
