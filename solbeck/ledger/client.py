"""
Async ledger client: thin wrapper over solana-py AsyncClient.

Every method performs one RPC call and returns plain Python values
(ints, strings, solders objects) so the scanner, submitter and reconciler
never touch response envelopes. RPC exceptions propagate; callers decide
whether a failure is fatal (enumeration) or conservative (per-account reads).
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any

from solana.rpc.async_api import AsyncClient
from solana.rpc.commitment import Confirmed
from solana.rpc.models import TokenAccountOpts, TxOpts
from solders.hash import Hash
from solders.pubkey import Pubkey
from solders.signature import Signature
from solders.transaction import VersionedTransaction
from spl.token.constants import TOKEN_PROGRAM_ID

from solbeck.config.env import mask_rpc_url
from solbeck.solbeck_logging import get_logger

logger = get_logger(__name__)


def _get_resp_value(resp: Any) -> Any:
    if resp is None:
        return None
    v = getattr(resp, "value", None)
    if v is not None:
        return v
    if hasattr(resp, "result"):
        return getattr(resp.result, "value", None)
    return None


def _as_pubkey(value: Any) -> Pubkey:
    return value if isinstance(value, Pubkey) else Pubkey.from_string(str(value))


def _parsed_info(acct: Any) -> dict[str, Any]:
    """account.data.parsed["info"] from a jsonParsed token account; {} when absent."""
    try:
        parsed = acct.account.data.parsed
    except AttributeError:
        parsed = None
    if parsed is None and isinstance(acct, dict):
        parsed = acct.get("account", {}).get("data", {}).get("parsed")
    if isinstance(parsed, dict):
        info = parsed.get("info", {})
        return info if isinstance(info, dict) else {}
    return {}


@dataclass(frozen=True)
class OwnedTokenAccount:
    """Enumeration result: token account address and its mint."""

    address: str
    mint: str


@dataclass(frozen=True)
class SimulationOutcome:
    err: Any
    logs: list[str]

    @property
    def ok(self) -> bool:
        return self.err is None


@dataclass(frozen=True)
class SignatureRecord:
    signature: str
    block_time: int | None


class LedgerClient:
    """One AsyncClient per process; shared read-only by every operation."""

    def __init__(self, rpc_url: str, *, client: AsyncClient | None = None) -> None:
        if not rpc_url and client is None:
            raise ValueError("rpc_url is required")
        self.rpc_url = rpc_url
        self._client = client or AsyncClient(rpc_url, commitment=Confirmed)
        logger.info("ledger_client_created", rpc_url=mask_rpc_url(rpc_url))

    async def close(self) -> None:
        await self._client.close()

    async def get_token_accounts(self, owner: Pubkey | str) -> list[OwnedTokenAccount]:
        """All token-program accounts owned by owner. Raises on RPC failure."""
        resp = await self._client.get_token_accounts_by_owner_json_parsed(
            _as_pubkey(owner),
            TokenAccountOpts(program_id=TOKEN_PROGRAM_ID),
        )
        out: list[OwnedTokenAccount] = []
        for acct in _get_resp_value(resp) or []:
            address = getattr(acct, "pubkey", None)
            if address is None and isinstance(acct, dict):
                address = acct.get("pubkey")
            mint = _parsed_info(acct).get("mint")
            if address is None or not mint:
                continue
            out.append(OwnedTokenAccount(address=str(address), mint=str(mint)))
        return out

    async def get_token_balance(self, account: Pubkey | str) -> tuple[int, int]:
        """(raw amount, decimals) of a token account."""
        resp = await self._client.get_token_account_balance(_as_pubkey(account))
        value = _get_resp_value(resp)
        if value is None:
            raise RuntimeError(f"no balance returned for {account}")
        return int(value.amount), int(value.decimals)

    async def get_lamports(self, address: Pubkey | str) -> int | None:
        """Account lamports, or None when the account does not exist."""
        resp = await self._client.get_account_info(_as_pubkey(address))
        value = _get_resp_value(resp)
        if value is None:
            return None
        return int(value.lamports)

    async def get_account_data(self, address: Pubkey | str) -> bytes | None:
        resp = await self._client.get_account_info(_as_pubkey(address))
        value = _get_resp_value(resp)
        if value is None:
            return None
        return bytes(value.data)

    async def get_balance(self, address: Pubkey | str) -> int:
        resp = await self._client.get_balance(_as_pubkey(address))
        value = _get_resp_value(resp)
        return int(value or 0)

    async def get_signatures(self, address: Pubkey | str, limit: int) -> list[SignatureRecord]:
        """Most recent signatures for address, newest first."""
        resp = await self._client.get_signatures_for_address(_as_pubkey(address), limit=limit)
        out: list[SignatureRecord] = []
        for s in _get_resp_value(resp) or []:
            bt = getattr(s, "block_time", None)
            out.append(SignatureRecord(signature=str(s.signature), block_time=int(bt) if bt is not None else None))
        return out

    async def get_transaction_block_time(self, signature: str) -> int | None:
        resp = await self._client.get_transaction(
            Signature.from_string(signature),
            max_supported_transaction_version=0,
        )
        value = _get_resp_value(resp)
        bt = getattr(value, "block_time", None) if value is not None else None
        return int(bt) if bt is not None else None

    async def latest_blockhash(self) -> Hash:
        resp = await self._client.get_latest_blockhash()
        value = _get_resp_value(resp)
        if value is None:
            raise RuntimeError("No blockhash")
        return value.blockhash

    async def simulate(self, tx: VersionedTransaction) -> SimulationOutcome:
        resp = await self._client.simulate_transaction(tx, commitment=Confirmed)
        value = _get_resp_value(resp)
        if value is None:
            return SimulationOutcome(err="empty simulation response", logs=[])
        return SimulationOutcome(err=value.err, logs=list(value.logs or []))

    async def send(self, tx: VersionedTransaction, max_retries: int) -> str:
        """Send with preflight at confirmed commitment; returns the signature."""
        resp = await self._client.send_raw_transaction(
            bytes(tx),
            opts=TxOpts(
                skip_preflight=False,
                preflight_commitment=Confirmed,
                max_retries=max_retries,
            ),
        )
        value = _get_resp_value(resp)
        if value is None:
            raise RuntimeError(f"send returned no signature: {resp}")
        return str(value)

    async def signature_status(self, signature: str) -> tuple[str | None, Any]:
        """(confirmation status, err) of a signature; (None, None) while unknown."""
        resp = await self._client.get_signature_statuses([Signature.from_string(signature)])
        statuses = _get_resp_value(resp)
        if not statuses or statuses[0] is None:
            return None, None
        st = statuses[0]
        confirm = getattr(st, "confirmation_status", None)
        confirm_str = str(confirm).rsplit(".", 1)[-1].lower() if confirm is not None else None
        return confirm_str, getattr(st, "err", None)
