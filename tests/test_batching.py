"""
Batch planning (chunking, signer sets) and submission (simulate, send retry, confirmation).
"""

from __future__ import annotations

import asyncio

import pytest
from solders.keypair import Keypair

from tests.conftest import make_identity, make_record, new_address, no_sleep


def test_burn_close_group_orders_burn_before_close():
    from solbeck.ledger.instructions import required_signers
    from solbeck.settlement.batching import KIND_BURN, burn_close_group

    owner = make_identity()
    record = make_record(owner, amount=123)
    group = burn_close_group(record, owner.pubkey)
    assert group.kind == KIND_BURN
    assert group.account == record.address
    assert len(group.instructions) == 2
    burn_ix, close_ix = group.instructions
    assert str(burn_ix.accounts[0].pubkey) == record.address
    assert str(burn_ix.accounts[1].pubkey) == record.mint
    assert [str(m.pubkey) for m in close_ix.accounts][:2] == [record.address, owner.address]
    assert required_signers(burn_ix) == required_signers(close_ix) == {owner.address}


def test_plan_batches_chunks_and_signers():
    """14 accounts over two owners, batch size 6: batches of 6, 6, 2 with exact signer sets."""
    from solbeck.settlement.batching import close_group, plan_batches

    fee_payer = Keypair()
    a, b = make_identity(), make_identity()
    records = [make_record(a) for _ in range(7)] + [make_record(b) for _ in range(7)]
    dest = new_address()
    jobs = plan_batches([close_group(r, dest) for r in records], 6, fee_payer, [a, b], "close")

    assert [len(j.groups) for j in jobs] == [6, 6, 2]
    assert [j.index for j in jobs] == [0, 1, 2]
    assert jobs[0].signer_addresses == [str(fee_payer.pubkey()), a.address]
    assert jobs[1].signer_addresses == [str(fee_payer.pubkey()), a.address, b.address]
    assert jobs[2].signer_addresses == [str(fee_payer.pubkey()), b.address]
    flattened = [acct for j in jobs for acct in j.accounts]
    assert flattened == [r.address for r in records]


def test_signer_set_missing_identity():
    from solbeck.core.exceptions import BatchError
    from solbeck.settlement.batching import close_group, signer_set

    stranger = make_record(new_address())
    with pytest.raises(BatchError):
        signer_set([close_group(stranger, new_address())], Keypair(), [make_identity()])


def test_plan_batches_rejects_zero_size():
    from solbeck.settlement.batching import plan_batches

    with pytest.raises(ValueError):
        plan_batches([], 0, Keypair(), [], "close")


def _job(fee_payer, owner, n=1, label="close"):
    from solbeck.settlement.batching import close_group, plan_batches

    records = [make_record(owner) for _ in range(n)]
    return plan_batches([close_group(r, owner.pubkey) for r in records], 10, fee_payer, [owner], label)[0]


def test_submit_signs_simulates_and_confirms(ledger, submitter, fee_payer):
    owner = make_identity()
    job = _job(fee_payer, owner, n=2)
    receipt = asyncio.run(submitter.submit(job))

    assert receipt.confirmed is True
    assert receipt.label == "close"
    assert len(ledger.simulated) == 1
    assert len(ledger.sent) == 1
    tx = ledger.sent[0]
    assert receipt.signature == str(tx.signatures[0])
    assert tx.message.account_keys[0] == fee_payer.pubkey()
    assert len(tx.signatures) == 2


def test_simulation_error_sends_nothing(ledger, submitter, fee_payer):
    from solbeck.core.exceptions import BatchSimulationError, FailureKind, classify_failure

    ledger.simulate_error = lambda keys: {"InstructionError": [0, {"Custom": 11}]}
    ledger.simulate_logs = ["Program log: Error: Non-native account can only be closed if its balance is zero"]
    with pytest.raises(BatchSimulationError) as info:
        asyncio.run(submitter.submit(_job(fee_payer, make_identity())))
    assert ledger.sent == []
    assert info.value.label == "close"
    assert classify_failure(info.value) is FailureKind.TOKEN_BALANCE_NONZERO


def test_send_retry_resends_same_transaction(ledger, submitter, fee_payer):
    ledger.send_failures = 2
    receipt = asyncio.run(submitter.submit(_job(fee_payer, make_identity())))
    assert receipt.confirmed is True
    assert len(ledger.sent) == 1
    assert len(ledger.simulated) == 1


def test_send_retries_exhausted(ledger, submitter, fee_payer):
    from solbeck.core.exceptions import BatchSubmissionError

    ledger.send_failures = 3
    with pytest.raises(BatchSubmissionError):
        asyncio.run(submitter.submit(_job(fee_payer, make_identity())))
    assert ledger.sent == []


def test_confirmation_timeout_returns_false(ledger, submitter, fee_payer):
    ledger.status = None
    receipt = asyncio.run(submitter.submit(_job(fee_payer, make_identity())))
    assert receipt.confirmed is False
    assert len(ledger.sent) == 1


def test_landed_with_error_raises(ledger, submitter, fee_payer):
    from solbeck.core.exceptions import BatchSubmissionError

    ledger.status_err = {"InstructionError": [0, "InvalidAccountData"]}
    with pytest.raises(BatchSubmissionError):
        asyncio.run(submitter.submit(_job(fee_payer, make_identity())))


def test_submit_all_stops_at_first_failure(ledger, fee_payer):
    """Batches run in order; a failing batch aborts the rest."""
    from solbeck.core.exceptions import BatchSimulationError
    from solbeck.settlement.batching import BatchSubmitter, close_group, plan_batches

    owner = make_identity()
    records = [make_record(owner) for _ in range(4)]
    jobs = plan_batches([close_group(r, owner.pubkey) for r in records], 2, fee_payer, [owner], "close")
    bad = records[2].address
    ledger.simulate_error = lambda keys: "AccountNotFound" if bad in keys else None
    submitter = BatchSubmitter(ledger, fee_payer, confirm_interval_sec=0, sleep=no_sleep)

    with pytest.raises(BatchSimulationError) as info:
        asyncio.run(submitter.submit_all(jobs))
    assert info.value.batch_index == 1
    assert len(ledger.sent) == 1


def test_empty_job_is_rejected(submitter, fee_payer):
    from solbeck.core.exceptions import BatchError
    from solbeck.settlement.batching import BatchJob

    with pytest.raises(BatchError):
        asyncio.run(submitter.submit(BatchJob(index=0, label="close", groups=[], signers=[fee_payer])))
