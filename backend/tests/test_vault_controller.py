import pytest

from zkvault.core.crypto.hasher import FIELD_SIZE
from zkvault.core.crypto.notes import build_merkle_path, compute_root, generate_note
from zkvault.core.errors import (
    AccessDenied,
    AccountingError,
    CapacityError,
    DuplicateCommitment,
    ExceedsMaxBorrow,
    InvalidAmount,
    InvalidProof,
    MintFailed,
    PriceUnavailable,
    ProofError,
    TransferError,
    UnknownRoot,
    ValidationError,
    WrongDepositValue,
)
from zkvault.infrastructure.blockchain.event_log import DepositEvent, EventType
from zkvault.services.vault_controller import PRICE_RESCALE, VaultController

from conftest import ADMIN, ALICE, BOB, PROOF, BrokenPrice, FixedPrice, RejectingLedger


def _deposit_note(vault, hasher):
    note = generate_note()
    vault.deposit(note.commitment(hasher), vault.unit_deposit)
    return note, note.nullifier_id(hasher), vault.get_last_root()


# ═══════════════════════════════════════════════════════════════════════════════
# DEPOSIT
# ═══════════════════════════════════════════════════════════════════════════════

def test_deposit_assigns_leaf_and_emits_event(vault, hasher):
    c1 = generate_note().commitment(hasher)
    c2 = generate_note().commitment(hasher)

    assert vault.deposit(c1, 1000) == 0
    assert vault.deposit(c2, 1000) == 1

    events = vault.events.events(EventType.DEPOSIT)
    assert events == [
        DepositEvent(commitment=c1, leaf_index=0, timestamp=1_700_000_000),
        DepositEvent(commitment=c2, leaf_index=1, timestamp=1_700_000_000),
    ]
    assert vault.is_commitment_used(c1)
    assert vault.collateral_reserve == 2000


def test_duplicate_commitment_rejected(vault, hasher):
    commitment = generate_note().commitment(hasher)
    vault.deposit(commitment, 1000)
    root = vault.get_last_root()

    with pytest.raises(DuplicateCommitment) as info:
        vault.deposit(commitment, 1000)

    assert isinstance(info.value, ValidationError)
    assert vault.next_index == 1
    assert vault.get_last_root() == root
    assert len(vault.events) == 1


@pytest.mark.parametrize("value", [0, 999, 1001, 2000])
def test_deposit_requires_exact_unit(vault, hasher, value):
    commitment = generate_note().commitment(hasher)
    with pytest.raises(WrongDepositValue):
        vault.deposit(commitment, value)
    assert not vault.is_commitment_used(commitment)
    assert vault.next_index == 0
    assert vault.collateral_reserve == 0


def test_deposit_rejects_non_field_commitment(vault):
    with pytest.raises(ValidationError):
        vault.deposit(FIELD_SIZE + 1, 1000)


def test_deposit_capacity_exhausted(make_vault, hasher):
    vault = make_vault(height=1)
    vault.deposit(generate_note().commitment(hasher), 1000)
    vault.deposit(generate_note().commitment(hasher), 1000)

    extra = generate_note().commitment(hasher)
    with pytest.raises(CapacityError):
        vault.deposit(extra, 1000)
    assert not vault.is_commitment_used(extra)
    assert vault.collateral_reserve == 2000


def test_deposit_paths_match_vault_root(vault, hasher):
    notes = [generate_note() for _ in range(5)]
    for note in notes:
        vault.deposit(note.commitment(hasher), 1000)

    leaves = vault.events.deposited_commitments()
    for index, note in enumerate(notes):
        path = build_merkle_path(leaves, index, vault.tree_height, hasher)
        assert compute_root(note.commitment(hasher), path, hasher) == vault.get_last_root()


# ═══════════════════════════════════════════════════════════════════════════════
# BORROW
# ═══════════════════════════════════════════════════════════════════════════════

def test_borrow_initializes_position_and_mints(vault, hasher, token, verifier):
    _, nullifier_id, root = _deposit_note(vault, hasher)
    assert vault.get_position(nullifier_id) is None

    position = vault.borrow(PROOF, root, nullifier_id, ALICE, 500)

    assert position.initialized
    assert not position.fully_withdrawn
    assert position.collateral_amount == 1000
    assert position.debt_amount == 500
    assert token.balance_of(ALICE) == 500
    assert verifier.calls == [(root, nullifier_id)]

    borrow_event = vault.events.events(EventType.BORROW)[0]
    assert (borrow_event.recipient, borrow_event.nullifier_id, borrow_event.amount) == (ALICE, nullifier_id, 500)


def test_borrow_is_repeatable_against_same_nullifier(vault, hasher, token):
    _, nullifier_id, root = _deposit_note(vault, hasher)
    vault.borrow(PROOF, root, nullifier_id, ALICE, 300)
    vault.borrow(PROOF, root, nullifier_id, BOB, 200)

    position = vault.get_position(nullifier_id)
    assert position.debt_amount == 500
    assert position.collateral_amount == 1000
    assert token.total_supply == 500


def test_borrow_unknown_root(vault, hasher, token):
    _, nullifier_id, _ = _deposit_note(vault, hasher)
    with pytest.raises(UnknownRoot) as info:
        vault.borrow(PROOF, 424242, nullifier_id, ALICE, 10)
    assert isinstance(info.value, ProofError)
    assert vault.get_position(nullifier_id) is None
    assert token.total_supply == 0


def test_borrow_zero_root_rejected(vault, hasher):
    _, nullifier_id, _ = _deposit_note(vault, hasher)
    with pytest.raises(ProofError):
        vault.borrow(PROOF, 0, nullifier_id, ALICE, 10)


def test_borrow_invalid_proof(vault, hasher, verifier, token):
    _, nullifier_id, root = _deposit_note(vault, hasher)
    verifier.accept = False
    with pytest.raises(InvalidProof):
        vault.borrow(PROOF, root, nullifier_id, ALICE, 10)
    assert vault.get_position(nullifier_id) is None
    assert token.total_supply == 0


def test_stale_root_fails_after_history_window(vault, hasher):
    # root_history_size == 3 in the fixture
    _, nullifier_id, stale_root = _deposit_note(vault, hasher)
    for _ in range(3):
        _deposit_note(vault, hasher)
    vault.borrow(PROOF, stale_root, nullifier_id, ALICE, 1)

    _deposit_note(vault, hasher)
    with pytest.raises(UnknownRoot):
        vault.borrow(PROOF, stale_root, nullifier_id, ALICE, 1)


def test_max_borrow_formula(vault, hasher):
    _, nullifier_id, root = _deposit_note(vault, hasher)
    # (1000 * 2 - 0) * 150 / 100
    assert vault.max_borrow(nullifier_id) == 3000

    vault.borrow(PROOF, root, nullifier_id, ALICE, 1000)
    # (1000 * 2 - 1000) * 150 / 100
    assert vault.max_borrow(nullifier_id) == 1500


def test_borrow_over_ceiling_rejected(vault, hasher, token):
    _, nullifier_id, root = _deposit_note(vault, hasher)
    with pytest.raises(ExceedsMaxBorrow) as info:
        vault.borrow(PROOF, root, nullifier_id, ALICE, 3001)
    assert isinstance(info.value, AccountingError)
    assert vault.get_position(nullifier_id) is None

    vault.borrow(PROOF, root, nullifier_id, ALICE, 3000)
    assert vault.max_borrow(nullifier_id) == 0
    with pytest.raises(ExceedsMaxBorrow):
        vault.borrow(PROOF, root, nullifier_id, ALICE, 1)
    assert token.balance_of(ALICE) == 3000


@pytest.mark.parametrize("amounts", [
    [3000, 1],
    [1000, 1000, 1000, 1000],
    [1, 2, 4, 8, 16, 32, 64, 128, 256, 512, 1024, 2048],
    [2999, 2, 1],
])
def test_debt_ceiling_never_exceeded(vault, hasher, amounts):
    _, nullifier_id, root = _deposit_note(vault, hasher)
    ceiling = vault.unit_deposit * vault.get_price() * vault.ratio // 100

    accepted = 0
    for amount in amounts:
        try:
            vault.borrow(PROOF, root, nullifier_id, ALICE, amount)
            accepted += amount
        except ExceedsMaxBorrow:
            pass
        assert accepted <= ceiling
        position = vault.get_position(nullifier_id)
        assert (position.debt_amount if position else 0) == accepted


@pytest.mark.parametrize("amount", [0, -5])
def test_borrow_requires_positive_amount(vault, hasher, amount):
    _, nullifier_id, root = _deposit_note(vault, hasher)
    with pytest.raises(InvalidAmount):
        vault.borrow(PROOF, root, nullifier_id, ALICE, amount)


def test_failed_mint_rolls_back_position(make_vault, hasher):
    vault = make_vault(stable_ledger=RejectingLedger())
    _, nullifier_id, root = _deposit_note(vault, hasher)

    with pytest.raises(MintFailed) as info:
        vault.borrow(PROOF, root, nullifier_id, ALICE, 100)

    assert isinstance(info.value, TransferError)
    assert vault.get_position(nullifier_id) is None
    assert vault.events.events(EventType.BORROW) == []


def test_price_failure_is_fatal(make_vault, hasher):
    vault = make_vault(price_source=BrokenPrice())
    _, nullifier_id, root = _deposit_note(vault, hasher)

    with pytest.raises(PriceUnavailable):
        vault.borrow(PROOF, root, nullifier_id, ALICE, 1)
    with pytest.raises(PriceUnavailable):
        vault.max_borrow(nullifier_id)
    assert vault.get_position(nullifier_id) is None


def test_non_positive_price_is_fatal(make_vault):
    vault = make_vault(price=0)
    with pytest.raises(PriceUnavailable):
        vault.get_price()


# ═══════════════════════════════════════════════════════════════════════════════
# PRICING VIEWS
# ═══════════════════════════════════════════════════════════════════════════════

def test_estimates(vault):
    assert vault.estimate_collateral(501) == 250
    assert vault.estimate_tokens(1000) == 2000


def test_price_rescaled_from_feed_precision(hasher, verifier, token, custody):
    vault = VaultController(
        hasher=hasher,
        verifier=verifier,
        price_source=FixedPrice(2000 * 10**8),
        stable_ledger=token,
        value_transfer=custody,
        admin=ADMIN,
        unit_deposit=10**18,
        ratio=150,
        height=4,
    )
    assert PRICE_RESCALE == 10**10
    assert vault.get_price() == 2000 * 10**18
    assert vault.estimate_tokens(10**18) == 2000 * 10**36


# ═══════════════════════════════════════════════════════════════════════════════
# ADMIN
# ═══════════════════════════════════════════════════════════════════════════════

def test_set_ratio_admin_only(vault):
    with pytest.raises(AccessDenied):
        vault.set_ratio(200, caller=ALICE)
    assert vault.ratio == 150

    vault.set_ratio(200, caller=ADMIN)
    assert vault.ratio == 200

    with pytest.raises(InvalidAmount):
        vault.set_ratio(0, caller=ADMIN)


def test_set_price_source_admin_only(vault, hasher):
    _, nullifier_id, _ = _deposit_note(vault, hasher)

    with pytest.raises(AccessDenied):
        vault.set_price_source(FixedPrice(10), caller=BOB)
    assert vault.get_price() == 2

    vault.set_price_source(FixedPrice(10), caller=ADMIN)
    assert vault.get_price() == 10
    assert vault.max_borrow(nullifier_id) == 15000
