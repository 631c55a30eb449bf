"""
Pytest fixtures for solbeck tests. In-memory SQLite store and a fake ledger
that implements the LedgerClient surface without any network access.
"""

from __future__ import annotations

import itertools
from typing import Any, Callable

import base58
import pytest
from solders.hash import Hash
from solders.keypair import Keypair
from solders.pubkey import Pubkey
from solders.transaction import VersionedTransaction

# Configure structlog before any test swaps sys.stdout.
import solbeck.solbeck_logging  # noqa: F401


async def no_sleep(_seconds: float) -> None:
    return None


def b58_secret(kp: Keypair) -> str:
    return base58.b58encode(bytes(kp)).decode("ascii")


def new_address() -> str:
    return str(Pubkey.new_unique())


def make_identity(kp: Keypair | None = None):
    from solbeck.keys.material import decode_secret_key

    return decode_secret_key(b58_secret(kp or Keypair()))


def make_record(owner: Any, amount: int = 0, *, activity: str = "unknown", symbol: str = "", decimals: int = 6):
    from solbeck.scanner.models import ActivityStatus, TokenAccountRecord

    return TokenAccountRecord(
        owner=str(getattr(owner, "address", owner)),
        address=new_address(),
        mint=new_address(),
        amount=amount,
        decimals=decimals,
        symbol=symbol,
        activity=ActivityStatus(activity),
    )


def tx_keys(tx: VersionedTransaction) -> list[str]:
    return [str(k) for k in tx.message.account_keys]


class FakeLedger:
    """In-memory stand-in for solbeck.ledger.client.LedgerClient."""

    def __init__(self) -> None:
        from solbeck.ledger.client import OwnedTokenAccount, SignatureRecord

        self._owned_cls = OwnedTokenAccount
        self._sig_cls = SignatureRecord
        self.token_accounts: dict[str, list[Any]] = {}
        self.token_balances: dict[str, tuple[int, int]] = {}
        self.account_lamports: dict[str, int] = {}
        self.native: dict[str, int] = {}
        self.signatures: dict[str, list[Any]] = {}
        self.block_times: dict[str, int] = {}
        self.account_data: dict[str, bytes] = {}
        self.fail_enumeration: set[str] = set()
        self.fail_balance: set[str] = set()
        self.fail_lamports: set[str] = set()
        self.fail_signatures: set[str] = set()
        self.simulate_error: Callable[[list[str]], Any] | None = None
        self.simulate_logs: list[str] = []
        self.send_failures = 0
        self.status: str | None = "confirmed"
        self.status_err: Any = None
        self.simulated: list[VersionedTransaction] = []
        self.sent: list[VersionedTransaction] = []
        self.balance_reads: list[str] = []
        self._counter = itertools.count()

    def add_token_account(self, owner: Any, *, amount: int = 0, decimals: int = 6, lamports: int = 2_039_280, mint: str | None = None) -> str:
        address = new_address()
        self.token_accounts.setdefault(str(getattr(owner, "address", owner)), []).append(
            self._owned_cls(address=address, mint=mint or new_address())
        )
        self.token_balances[address] = (amount, decimals)
        self.account_lamports[address] = lamports
        return address

    async def get_token_accounts(self, owner: Any) -> list[Any]:
        if str(owner) in self.fail_enumeration:
            raise RuntimeError("rpc unavailable")
        return list(self.token_accounts.get(str(owner), []))

    async def get_token_balance(self, account: Any) -> tuple[int, int]:
        if str(account) in self.fail_balance:
            raise RuntimeError("429 Too Many Requests")
        return self.token_balances[str(account)]

    async def get_lamports(self, address: Any) -> int | None:
        if str(address) in self.fail_lamports:
            raise RuntimeError("timeout")
        return self.account_lamports.get(str(address))

    async def get_account_data(self, address: Any) -> bytes | None:
        return self.account_data.get(str(address))

    async def get_balance(self, address: Any) -> int:
        self.balance_reads.append(str(address))
        return self.native.get(str(address), 0)

    async def get_signatures(self, address: Any, limit: int) -> list[Any]:
        if str(address) in self.fail_signatures:
            raise RuntimeError("rpc unavailable")
        return list(self.signatures.get(str(address), []))[:limit]

    def add_signature(self, address: str, block_time: int | None) -> str:
        sig = f"sig{next(self._counter)}"
        self.signatures.setdefault(address, []).append(self._sig_cls(signature=sig, block_time=block_time))
        return sig

    async def get_transaction_block_time(self, signature: str) -> int | None:
        return self.block_times.get(signature)

    async def latest_blockhash(self) -> Hash:
        return Hash.default()

    async def simulate(self, tx: VersionedTransaction):
        from solbeck.ledger.client import SimulationOutcome

        self.simulated.append(tx)
        err = self.simulate_error(tx_keys(tx)) if self.simulate_error else None
        return SimulationOutcome(err=err, logs=list(self.simulate_logs) if err else [])

    async def send(self, tx: VersionedTransaction, max_retries: int) -> str:
        if self.send_failures > 0:
            self.send_failures -= 1
            raise RuntimeError("node is behind")
        self.sent.append(tx)
        return str(tx.signatures[0])

    async def signature_status(self, signature: str) -> tuple[str | None, Any]:
        return self.status, self.status_err


@pytest.fixture
def ledger() -> FakeLedger:
    return FakeLedger()


@pytest.fixture
def store():
    from solbeck.database.store import SolbeckStore

    s = SolbeckStore("sqlite:///:memory:")
    s.init_db()
    yield s
    s.dispose()


@pytest.fixture
def programs():
    from solbeck.referrals.models import ReferralProgram

    return {"magnumcommunity": ReferralProgram(code="magnumcommunity", name="Magnum Community", free_wallets=10)}


@pytest.fixture
def tracker(store, programs):
    from solbeck.referrals.tracker import ReferralTracker

    return ReferralTracker(store, programs)


@pytest.fixture
def fee_payer() -> Keypair:
    return Keypair()


@pytest.fixture
def fee_collector() -> str:
    return new_address()


@pytest.fixture
def submitter(ledger, fee_payer):
    from solbeck.settlement.batching import BatchSubmitter

    return BatchSubmitter(
        ledger,
        fee_payer,
        max_retries=3,
        confirm_attempts=3,
        confirm_interval_sec=0.0,
        retry_backoff_sec=0.0,
        sleep=no_sleep,
    )


@pytest.fixture
def fee_calculator(fee_collector, tracker):
    from solbeck.settlement.fees import FeeCalculator

    return FeeCalculator(0.10, fee_collector, dust_threshold_lamports=1000, tracker=tracker)


@pytest.fixture
def reconciler(ledger, submitter, fee_calculator, tracker, store):
    from solbeck.settlement.reconciler import SettlementReconciler

    return SettlementReconciler(ledger, submitter, fee_calculator, tracker=tracker, store=store)


@pytest.fixture
def settings_env(monkeypatch, fee_payer, fee_collector):
    """Required settings in the environment; .env loading cannot override them."""
    for name in (
        "RPC_URL",
        "HELIUS_API_KEY",
        "FEE_RATE",
        "REFERRAL_CODES",
        "DATABASE_URL",
        "SOLBECK_DB_URL",
        "TOKEN_REGISTRY_URLS",
        "CLOSE_BATCH_SIZE",
    ):
        monkeypatch.delenv(name, raising=False)
    monkeypatch.setenv("SOLANA_RPC_URL", "http://127.0.0.1:8899")
    monkeypatch.setenv("FEE_PAYER_SECRET", b58_secret(fee_payer))
    monkeypatch.setenv("FEE_COLLECTOR", fee_collector)
    monkeypatch.setenv("BOT_TOKEN", "123:abc")

    from solbeck.config.settings import reset_settings_for_test

    reset_settings_for_test()
    yield
    reset_settings_for_test()
