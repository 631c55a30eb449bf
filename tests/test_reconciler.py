"""
End-to-end settlement against the fake ledger: close, burn, sweep, fee collection
and quota commit.
"""

from __future__ import annotations

import asyncio

import pytest

from tests.conftest import make_identity, new_address, tx_keys

RENT = 2_039_280


def _plan(identities, *, destination=None, empty=(), burn=(), user_id="u1", operation_id="op-1"):
    from solbeck.keys.material import parse_destination
    from solbeck.settlement.reconciler import SettlementPlan

    return SettlementPlan(
        operation_id=operation_id,
        identities=list(identities),
        destination=parse_destination(destination) if destination else None,
        empty_accounts=list(empty),
        burn_accounts=list(burn),
        user_id=user_id,
    )


def _records(ledger, owner, amounts, lamports=RENT):
    from solbeck.scanner.models import TokenAccountRecord

    out = []
    for amount in amounts:
        address = ledger.add_token_account(owner, amount=amount, lamports=lamports)
        acct = ledger.token_accounts[owner.address][-1]
        out.append(TokenAccountRecord(owner=owner.address, address=address, mint=acct.mint, amount=amount, decimals=6, symbol="TKN"))
    return out


def test_scenario_close_empties_with_external_destination(ledger, reconciler, store):
    """Two empty accounts closed to an external address; the balance-bearing account is untouched."""
    owner = make_identity()
    empties = _records(ledger, owner, [0, 0], lamports=2_039_280)
    untouched = _records(ledger, owner, [500])[0]
    dest = new_address()

    result = asyncio.run(reconciler.settle(_plan([owner], destination=dest, empty=empties)))

    assert result.closed_accounts == 2
    assert result.burned_tokens == 0
    assert result.empty_accounts_closed == 2
    assert result.gross_lamports == 4_078_560
    assert result.fee_lamports == 407_856
    assert result.net_lamports == 4_078_560 - 407_856
    assert result.destination == dest
    sent_keys = {k for tx in ledger.sent for k in tx_keys(tx)}
    assert untouched.address not in sent_keys
    assert dest in sent_keys
    # Fee source is the external destination, which cannot sign.
    assert result.fees_collected_lamports == 0
    assert store.get_fee_collection("op-1")["reason"] == "destination_not_signable"


def test_sweep_adds_native_balance_to_gross(ledger, reconciler):
    owner = make_identity()
    empties = _records(ledger, owner, [0])
    ledger.native[owner.address] = 5_000_000
    dest = new_address()

    result = asyncio.run(reconciler.settle(_plan([owner], destination=dest, empty=empties)))

    assert result.swept_lamports == 5_000_000
    assert result.gross_lamports == RENT + 5_000_000
    assert len(ledger.sent) == 2
    sweep_tx = ledger.sent[-1]
    assert tx_keys(sweep_tx)[1:3] in ([owner.address, dest], [dest, owner.address])


def test_no_destination_returns_rent_to_primary_and_collects_fee(ledger, reconciler, store, fee_collector):
    """Without a destination the primary identity receives rent and pays the fee; no sweep."""
    primary, second = make_identity(), make_identity()
    empties = _records(ledger, primary, [0]) + _records(ledger, second, [0])
    ledger.native[primary.address] = 10_000_000
    ledger.native[second.address] = 3_000_000

    result = asyncio.run(reconciler.settle(_plan([primary, second], empty=empties)))

    assert result.destination == primary.address
    assert result.swept_lamports == 0
    assert result.gross_lamports == 2 * RENT
    assert result.fee_lamports == 407_856
    assert result.fees_collected_lamports == 407_856
    fee_tx = ledger.sent[-1]
    assert fee_collector in tx_keys(fee_tx)
    assert primary.address in tx_keys(fee_tx)
    assert result.last_signature == str(ledger.sent[0].signatures[0])
    assert str(fee_tx.signatures[0]) in result.signatures
    claim = store.get_fee_collection("op-1")
    assert claim["status"] == "collected"
    assert claim["signature"] == str(fee_tx.signatures[0])


def test_burn_inactive_accounts(ledger, reconciler):
    """Selected balance-bearing account is burned and closed; gross uses its actual lamports."""
    owner = make_identity()
    burn = _records(ledger, owner, [7_000_000], lamports=2_100_000)
    ledger.native[owner.address] = 5_000_000

    result = asyncio.run(reconciler.settle(_plan([owner], burn=burn)))

    assert result.burned_tokens == 1
    assert result.closed_accounts == 1
    assert result.empty_accounts_closed == 0
    assert result.gross_lamports == 2_100_000
    assert result.burned_details[0].display_name == "7.000000 TKN"
    burn_tx = ledger.sent[0]
    assert len(burn_tx.message.instructions) == 2


def test_burned_account_is_not_closed_twice(ledger, reconciler):
    owner = make_identity()
    record = _records(ledger, owner, [1])[0]
    ledger.native[owner.address] = 5_000_000

    result = asyncio.run(reconciler.settle(_plan([owner], empty=[record], burn=[record, record])))

    assert result.closed_accounts == 1
    assert result.gross_lamports == RENT


def test_unreadable_account_uses_rent_estimate(ledger, reconciler):
    owner = make_identity()
    records = _records(ledger, owner, [0, 0], lamports=2_500_000)
    ledger.fail_lamports.add(records[0].address)
    ledger.native[owner.address] = 5_000_000

    result = asyncio.run(reconciler.settle(_plan([owner], empty=records)))
    assert result.gross_lamports == RENT + 2_500_000
    assert result.closed_accounts == 2


def test_already_closed_account_is_skipped(ledger, reconciler):
    """An account gone from chain adds nothing and is left out of the close batch."""
    owner = make_identity()
    live, gone = _records(ledger, owner, [0, 0], lamports=2_500_000)
    del ledger.account_lamports[gone.address]
    ledger.native[owner.address] = 5_000_000
    ledger.simulate_error = lambda keys: "AccountNotFound" if gone.address in keys else None

    result = asyncio.run(reconciler.settle(_plan([owner], empty=[live, gone])))

    assert result.gross_lamports == 2_500_000
    assert result.closed_accounts == 1
    close_keys = tx_keys(ledger.sent[0])
    assert live.address in close_keys
    assert gone.address not in close_keys


def test_already_burned_account_is_not_counted(ledger, reconciler):
    owner = make_identity()
    gone = _records(ledger, owner, [9])[0]
    del ledger.account_lamports[gone.address]

    result = asyncio.run(reconciler.settle(_plan([owner], burn=[gone])))

    assert result.nothing_done
    assert result.burned_tokens == 0
    assert ledger.sent == []


def test_referral_over_ceiling_pays_full_fee(ledger, reconciler, tracker):
    """8 prior wallets plus 5 now exceeds the ceiling of 10: standard fee on the whole gross."""
    tracker.record_referral_join("u1", "magnumcommunity")
    tracker.increment_wallet_count("u1", 8)
    identities = [make_identity() for _ in range(5)]
    empties = _records(ledger, identities[0], [0, 0])
    ledger.native[identities[0].address] = 10_000_000

    result = asyncio.run(reconciler.settle(_plan(identities, empty=empties)))

    assert result.feeless is False
    assert result.fee_lamports == 407_856


def test_referral_under_ceiling_is_feeless(ledger, reconciler, tracker):
    tracker.record_referral_join("u1", "magnumcommunity")
    owner = make_identity()
    empties = _records(ledger, owner, [0, 0])

    result = asyncio.run(reconciler.settle(_plan([owner], empty=empties)))

    assert result.feeless is True
    assert result.fee_lamports == 0
    assert result.net_lamports == result.gross_lamports
    assert len(ledger.sent) == 1
    assert tracker.remaining_free_wallets("u1") == 9


def test_close_simulation_failure_aborts(ledger, reconciler, tracker, store):
    """A failing close batch aborts the operation: nothing sent, quota not committed."""
    from solbeck.core.exceptions import BatchSimulationError

    tracker.record_referral_join("u1", "magnumcommunity")
    owner = make_identity()
    empties = _records(ledger, owner, [0, 0])
    ledger.simulate_error = lambda keys: {"InstructionError": [0, {"Custom": 11}]}

    with pytest.raises(BatchSimulationError):
        asyncio.run(reconciler.settle(_plan([owner], empty=empties)))
    assert ledger.sent == []
    assert tracker.get_state("u1").wallet_count == 0
    assert store.get_fee_collection("op-1") is None


def test_fee_failure_keeps_computed_split(ledger, reconciler, store, fee_collector):
    """Fee transaction fails after closes succeed: computed fee/net reported, 0 collected."""
    owner = make_identity()
    empties = _records(ledger, owner, [0, 0])
    ledger.native[owner.address] = 10_000_000
    ledger.simulate_error = lambda keys: "insufficient funds for fee" if fee_collector in keys else None

    result = asyncio.run(reconciler.settle(_plan([owner], empty=empties)))

    assert result.closed_accounts == 2
    assert result.fee_lamports == 407_856
    assert result.net_lamports == 4_078_560 - 407_856
    assert result.fees_collected_lamports == 0
    claim = store.get_fee_collection("op-1")
    assert (claim["status"], claim["reason"]) == ("failed", "insufficient_funds")


@pytest.mark.parametrize("balance", [407_856 + 1, 100_000])
def test_fee_precheck_rejects_rent_dust(ledger, reconciler, store, balance):
    """Remaining balance after the fee must be zero or at least the rent-exempt minimum."""
    owner = make_identity()
    empties = _records(ledger, owner, [0, 0])
    ledger.native[owner.address] = balance

    result = asyncio.run(reconciler.settle(_plan([owner], empty=empties)))

    assert result.fees_collected_lamports == 0
    assert len(ledger.sent) == 1
    assert store.get_fee_collection("op-1")["reason"] == "insufficient_funds"


def test_fee_precheck_allows_exact_balance(ledger, reconciler):
    owner = make_identity()
    empties = _records(ledger, owner, [0, 0])
    ledger.native[owner.address] = 407_856

    result = asyncio.run(reconciler.settle(_plan([owner], empty=empties)))
    assert result.fees_collected_lamports == 407_856


def test_fee_not_charged_twice_for_same_operation(ledger, reconciler, store, fee_collector):
    """Re-running an operation id skips the already-claimed fee step."""
    owner = make_identity()
    ledger.native[owner.address] = 10_000_000
    first = asyncio.run(reconciler.settle(_plan([owner], empty=_records(ledger, owner, [0, 0]))))
    second = asyncio.run(reconciler.settle(_plan([owner], empty=_records(ledger, owner, [0, 0]))))

    assert first.fees_collected_lamports == 407_856
    assert second.fees_collected_lamports == 0
    assert second.fee_lamports == 407_856
    fee_txs = [tx for tx in ledger.sent if fee_collector in tx_keys(tx)]
    assert len(fee_txs) == 1


def test_dust_fee_sends_no_transfer(ledger, reconciler, store):
    owner = make_identity()
    empties = _records(ledger, owner, [0], lamports=10_000)
    ledger.native[owner.address] = 10_000_000

    result = asyncio.run(reconciler.settle(_plan([owner], empty=empties)))

    assert result.fee_lamports == 1000
    assert result.net_lamports == 9000
    assert result.fees_collected_lamports == 0
    assert len(ledger.sent) == 1
    assert store.get_fee_collection("op-1") is None


def test_nothing_to_do(ledger, reconciler):
    owner = make_identity()
    result = asyncio.run(reconciler.settle(_plan([owner])))
    assert result.nothing_done
    assert result.last_signature is None
    assert ledger.sent == []


def test_fee_failure_reason():
    from solbeck.core.exceptions import BatchSimulationError, BatchSubmissionError, FeeCollectionError
    from solbeck.settlement.reconciler import fee_failure_reason

    assert fee_failure_reason(FeeCollectionError("x", reason="destination_not_signable")) == "destination_not_signable"
    assert fee_failure_reason(BatchSimulationError("SignatureFailure: signature verification failed")) == "signature_verification"
    assert fee_failure_reason(BatchSimulationError({"Custom": 0}, logs=["Transfer: insufficient lamports"])) == "insufficient_funds"
    assert fee_failure_reason(BatchSimulationError("AccountInUse")) == "simulation_unstable"
    assert fee_failure_reason(BatchSubmissionError("timeout")) == "other"


def test_plan_without_identities_is_rejected(reconciler):
    from solbeck.core.exceptions import InputValidationError

    with pytest.raises(InputValidationError):
        asyncio.run(reconciler.settle(_plan([])))


def test_fee_claim_store_error_does_not_abort_settlement(ledger, reconciler, store, fee_collector, monkeypatch):
    """Closes already landed: a store error while claiming the fee leaves the fee uncollected and unsent."""
    from sqlalchemy.exc import OperationalError

    def locked(*args, **kwargs):
        raise OperationalError("INSERT INTO fee_collections", {}, Exception("database is locked"))

    monkeypatch.setattr(store, "claim_fee_collection", locked)
    owner = make_identity()
    ledger.native[owner.address] = 10_000_000

    result = asyncio.run(reconciler.settle(_plan([owner], empty=_records(ledger, owner, [0, 0]))))

    assert result.closed_accounts == 2
    assert result.fee_lamports == 407_856
    assert result.fees_collected_lamports == 0
    assert not [tx for tx in ledger.sent if fee_collector in tx_keys(tx)]


def test_fee_finish_store_error_keeps_collected_fee(ledger, reconciler, store, monkeypatch):
    from sqlalchemy.exc import OperationalError

    def locked(*args, **kwargs):
        raise OperationalError("UPDATE fee_collections", {}, Exception("database is locked"))

    monkeypatch.setattr(store, "finish_fee_collection", locked)
    owner = make_identity()
    ledger.native[owner.address] = 10_000_000

    result = asyncio.run(reconciler.settle(_plan([owner], empty=_records(ledger, owner, [0, 0]))))

    assert result.fees_collected_lamports == 407_856
    assert store.get_fee_collection("op-1")["status"] == "pending"
