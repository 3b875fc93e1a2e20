from dataclasses import replace

from zkvault.infrastructure.blockchain.event_log import (
    GENESIS_HASH,
    BorrowEvent,
    DepositEvent,
    EventType,
    VaultEventLog,
    WithdrawalEvent,
)


def _populated_log() -> VaultEventLog:
    log = VaultEventLog()
    log.append(DepositEvent(commitment=111, leaf_index=0, timestamp=1))
    log.append(DepositEvent(commitment=222, leaf_index=1, timestamp=2))
    log.append(BorrowEvent(recipient="0xalice", nullifier_id=9, amount=500))
    log.append(WithdrawalEvent(
        recipient="0xbob", nullifier_id=9, collateral_released=166, repayment_amount=500,
    ))
    return log


def test_empty_log_is_valid():
    log = VaultEventLog()
    report = log.verify_integrity()
    assert report.is_valid
    assert report.chain_length == 0
    assert log.head_hash == GENESIS_HASH


def test_entries_are_chained_in_order():
    log = _populated_log()
    entries = log.entries()
    assert [e.index for e in entries] == [0, 1, 2, 3]
    assert entries[0].previous_hash == GENESIS_HASH
    for prev, cur in zip(entries, entries[1:]):
        assert cur.previous_hash == prev.entry_hash
    assert log.verify_integrity().is_valid


def test_tamper_detection():
    log = _populated_log()
    original = log._chain[2]
    log._chain[2] = replace(original, payload={**original.payload, "amount": 5_000_000})

    report = log.verify_integrity()
    assert not report.is_valid
    assert report.first_invalid_index == 2


def test_filtering_and_typed_events():
    log = _populated_log()
    deposits = log.events(EventType.DEPOSIT)
    assert [e.commitment for e in deposits] == [111, 222]
    assert log.deposited_commitments() == [111, 222]

    withdrawal = log.events(EventType.WITHDRAWAL)[0]
    assert isinstance(withdrawal, WithdrawalEvent)
    assert withdrawal.collateral_released == 166

    assert len(log.entries(limit=2, offset=1)) == 2
    assert log.entries(limit=2, offset=1)[0].event_type == "Deposit"


def test_to_dict_stringifies_field_elements():
    log = VaultEventLog()
    big = 2**250
    entry = log.append(DepositEvent(commitment=big, leaf_index=0, timestamp=1))
    assert entry.to_dict()["payload"]["commitment"] == str(big)


def test_subscribers_see_every_entry_and_failures_are_isolated():
    log = VaultEventLog()
    seen = []

    def broken(entry):
        raise RuntimeError("observer crashed")

    log.subscribe(broken)
    log.subscribe(lambda entry: seen.append(entry.event_type))

    log.append(DepositEvent(commitment=1, leaf_index=0, timestamp=1))
    log.append(BorrowEvent(recipient="0xa", nullifier_id=2, amount=3))

    assert seen == ["Deposit", "Borrow"]
    assert len(log) == 2
