"""
Vault Controller — Proof-Gated Collateral Vault for ZkUSD.

Python equivalent of the on-chain Vault contract. Users deposit a fixed
unit of collateral behind a commitment; later, without revealing which
deposit is theirs, they prove membership of that commitment in the
accumulator to borrow ZkUSD against it, or repay ZkUSD to release
collateral.

Operation flow:
    deposit   → Accumulator.insert → mark commitment used → Deposit event
    borrow    → is_known_root → verify([root, nullifier_id]) → debt ceiling
                → position.debt += amount → ZkUSD.mint → Borrow event
    withdraw  → is_known_root → verify → debt / balance / collateral checks
                → ZkUSD.burn → position -= (released, repayment)
                → send_value(recipient) → Withdrawal event

Execution model:
    Calls are strictly sequential and all-or-nothing. Each operation runs
    checks first, then internal effects, then external calls; every effect
    registers an undo step, and any failure replays the undo steps in
    reverse before the error propagates. A non-reentrancy guard rejects any
    nested deposit/borrow/withdraw, such as one made by a recipient's
    receive hook during the collateral transfer.

Capabilities (injected, never inherited):
    hasher, verifier, price source, stable ledger (ZkUSD), value transfer.
"""

from __future__ import annotations

import logging
import time
from contextlib import contextmanager
from typing import Callable, Iterator, List, Optional

from zkvault.core.crypto.hasher import FieldHasher, is_field_element
from zkvault.core.crypto.verifier import ProofVerifier
from zkvault.core.errors import (
    AccessDenied,
    BurnFailed,
    DuplicateCommitment,
    ExceedsMaxBorrow,
    InsufficientBalance,
    InsufficientCollateral,
    InvalidAmount,
    InvalidFieldElement,
    InvalidProof,
    MintFailed,
    PriceUnavailable,
    ReentrantCall,
    RepaymentExceedsDebt,
    TransferFailed,
    UnknownRoot,
    ValidationError,
    WrongDepositValue,
)
from zkvault.infrastructure.blockchain.custody import ValueTransfer
from zkvault.infrastructure.blockchain.event_log import (
    BorrowEvent,
    DepositEvent,
    VaultEventLog,
    WithdrawalEvent,
)
from zkvault.infrastructure.blockchain.merkle import (
    DEFAULT_ROOT_HISTORY_SIZE,
    MerkleTreeWithHistory,
)
from zkvault.infrastructure.blockchain.price_feed import PriceSource
from zkvault.infrastructure.blockchain.zkusd import StableLedger
from zkvault.schemas.zkp import Proof
from zkvault.services.position_ledger import Position, PositionLedger

logger = logging.getLogger(__name__)

# Oracle answers have 8 decimals, vault math runs at 18
PRICE_RESCALE = 10**10


class VaultController:
    """
    Owns the accumulator and the position ledger; the only component that
    mutates either.

    Usage:
        vault = VaultController(
            hasher=KeccakFieldHasher(), verifier=verifier,
            price_source=oracle, stable_ledger=zkusd,
            value_transfer=custody, admin="0xadmin",
            unit_deposit=10**18, ratio=150, height=20,
        )
        leaf_index = vault.deposit(commitment, attached_value=10**18)
        vault.borrow(proof, root, nullifier_id, "0xrecipient", amount)
    """

    def __init__(
        self,
        *,
        hasher: FieldHasher,
        verifier: ProofVerifier,
        price_source: PriceSource,
        stable_ledger: StableLedger,
        value_transfer: ValueTransfer,
        admin: str,
        unit_deposit: int,
        ratio: int,
        height: int,
        root_history_size: int = DEFAULT_ROOT_HISTORY_SIZE,
        price_rescale: int = PRICE_RESCALE,
        event_log: Optional[VaultEventLog] = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        if unit_deposit <= 0:
            raise ValueError(f"unit_deposit should be positive, got {unit_deposit}")
        if ratio <= 0:
            raise ValueError(f"ratio should be positive, got {ratio}")
        if price_rescale <= 0:
            raise ValueError(f"price_rescale should be positive, got {price_rescale}")

        self._tree = MerkleTreeWithHistory(height, hasher, root_history_size)
        self._ledger = PositionLedger()
        self._verifier = verifier
        self._price_source = price_source
        self._stable_ledger = stable_ledger
        self._value_transfer = value_transfer
        self._events = event_log if event_log is not None else VaultEventLog()
        self._clock = clock

        self.admin = admin
        self.unit_deposit = unit_deposit
        self._ratio = ratio
        self._price_rescale = price_rescale
        self._collateral_reserve = 0
        self._entered = False

        logger.info(
            f"[VAULT] Initialized — unit_deposit={unit_deposit} ratio={ratio}% "
            f"height={height} history={root_history_size} hasher={hasher.name}"
        )

    # ═══════════════════════════════════════════════════════════════════════════
    # GUARDS
    # ═══════════════════════════════════════════════════════════════════════════

    @contextmanager
    def _non_reentrant(self, operation: str) -> Iterator[None]:
        if self._entered:
            logger.warning(f"[VAULT] Re-entrant {operation} blocked")
            raise ReentrantCall(f"Nested call into {operation} while another call is in flight")
        self._entered = True
        try:
            yield
        finally:
            self._entered = False

    @contextmanager
    def _atomic(self, operation: str) -> Iterator[List[Callable[[], None]]]:
        """Run a block whose registered undo steps replay on any failure."""
        undo: List[Callable[[], None]] = []
        try:
            yield undo
        except BaseException as exc:
            for step in reversed(undo):
                try:
                    step()
                except Exception as undo_exc:
                    # Keep unwinding; the remaining steps are independent
                    logger.critical(f"[VAULT] {operation} undo step failed — {undo_exc}")
            if undo:
                logger.error(
                    f"[VAULT] {operation} reverted after {len(undo)} effect(s) — {exc}"
                )
            else:
                logger.warning(f"[VAULT] {operation} rejected — {exc}")
            raise

    def _require_admin(self, caller: str) -> None:
        if caller != self.admin:
            raise AccessDenied(
                "Caller is not the vault admin",
                {"caller": caller},
            )

    @staticmethod
    def _require_amount(name: str, amount: int) -> None:
        if not isinstance(amount, int) or isinstance(amount, bool) or amount <= 0:
            raise InvalidAmount(f"{name} should be a positive integer", {name: str(amount)})

    @staticmethod
    def _require_recipient(recipient: str) -> None:
        if not isinstance(recipient, str) or not recipient:
            raise ValidationError("recipient is required")

    def _check_proof(self, proof: Proof, root: int, nullifier_id: int) -> None:
        if not self._tree.is_known_root(root):
            raise UnknownRoot("Cannot find your merkle root", {"root": str(root)})
        if not self._verifier.verify(proof.pi_a, proof.pi_b, proof.pi_c, [root, nullifier_id]):
            raise InvalidProof("Invalid withdraw proof", {"nullifier_id": str(nullifier_id)})

    # ═══════════════════════════════════════════════════════════════════════════
    # PRICING
    # ═══════════════════════════════════════════════════════════════════════════

    def get_price(self) -> int:
        """
        Latest price at working precision.

        Raises:
            PriceUnavailable: If the source fails or answers non-positive.
        """
        try:
            raw = self._price_source.latest_price()
        except Exception as exc:
            raise PriceUnavailable(f"Price source failed: {exc}") from exc
        if not isinstance(raw, int) or raw <= 0:
            raise PriceUnavailable(f"Price source returned unusable answer {raw!r}")
        return raw * self._price_rescale

    def max_borrow(self, nullifier_id: int) -> int:
        """(unit_deposit * price - current_debt) * ratio / 100, floored at zero."""
        price = self.get_price()
        current_debt = self._ledger.debt_of(nullifier_id)
        ceiling = (self.unit_deposit * price - current_debt) * self._ratio // 100
        return max(ceiling, 0)

    def estimate_collateral(self, repayment_amount: int) -> int:
        return repayment_amount // self.get_price()

    def estimate_tokens(self, deposit_amount: int) -> int:
        return deposit_amount * self.get_price()

    def _collateral_for(self, repayment_amount: int, price: int) -> int:
        # Divide by price first, then scale: truncation favors the vault
        return repayment_amount // price * 100 // self._ratio

    # ═══════════════════════════════════════════════════════════════════════════
    # STATE TRANSITIONS
    # ═══════════════════════════════════════════════════════════════════════════

    def deposit(self, commitment: int, attached_value: int) -> int:
        """
        Insert a commitment backed by exactly one unit of collateral.

        Returns:
            The leaf index assigned to the commitment.

        Raises:
            InvalidFieldElement, DuplicateCommitment, WrongDepositValue,
            CapacityExceeded.
        """
        with self._non_reentrant("deposit"), self._atomic("deposit"):
            if not is_field_element(commitment):
                raise InvalidFieldElement(
                    "commitment should be inside the field",
                    {"commitment": str(commitment)},
                )
            if self._ledger.is_commitment_used(commitment):
                raise DuplicateCommitment(
                    "The commitment has been submitted",
                    {"commitment": str(commitment)},
                )
            if attached_value != self.unit_deposit:
                raise WrongDepositValue(
                    "Please send exactly one unit of collateral along with transaction",
                    {"attached_value": str(attached_value), "unit_deposit": str(self.unit_deposit)},
                )

            leaf_index = self._tree.insert(commitment)
            self._ledger.mark_commitment_used(commitment)
            self._collateral_reserve += attached_value

            self._events.append(DepositEvent(
                commitment=commitment,
                leaf_index=leaf_index,
                timestamp=int(self._clock()),
            ))

        logger.info(
            f"[VAULT] Deposit — leaf #{leaf_index} reserve={self._collateral_reserve}"
        )
        return leaf_index

    def borrow(
        self,
        proof: Proof,
        root: int,
        nullifier_id: int,
        recipient: str,
        amount: int,
    ) -> Position:
        """
        Mint ZkUSD against the position named by `nullifier_id`.

        The nullifier is not consumed: a position can be borrowed against
        repeatedly until its ceiling is reached.

        Returns:
            Copy of the updated position.

        Raises:
            InvalidAmount, UnknownRoot, InvalidProof, PriceUnavailable,
            ExceedsMaxBorrow, MintFailed.
        """
        with self._non_reentrant("borrow"), self._atomic("borrow") as undo:
            self._require_amount("amount", amount)
            self._require_recipient(recipient)
            self._check_proof(proof, root, nullifier_id)

            ceiling = self.max_borrow(nullifier_id)
            if amount > ceiling:
                raise ExceedsMaxBorrow(
                    "Amount exceeds the position's borrowing ceiling",
                    {"amount": str(amount), "max_borrow": str(ceiling)},
                )

            # Effects
            snapshot = self._ledger.get(nullifier_id)
            position = self._ledger.record_borrow(nullifier_id, amount, self.unit_deposit)
            undo.append(lambda: self._ledger.restore(nullifier_id, snapshot))

            # Interaction
            if not self._stable_ledger.mint(recipient, amount):
                raise MintFailed("ZkUSD mint failed", {"recipient": recipient, "amount": str(amount)})

            self._events.append(BorrowEvent(
                recipient=recipient,
                nullifier_id=nullifier_id,
                amount=amount,
            ))

        logger.info(
            f"[VAULT] Borrow — {amount} to {recipient} "
            f"debt={position.debt_amount} collateral={position.collateral_amount}"
        )
        return position

    def withdraw(
        self,
        proof: Proof,
        root: int,
        nullifier_id: int,
        recipient: str,
        repayment_amount: int,
        caller: str,
    ) -> int:
        """
        Burn `repayment_amount` ZkUSD from `caller` and release the matching
        collateral to `recipient`.

        collateral_released = repayment_amount / price * 100 / ratio, in
        integer division applied in exactly that order.

        Returns:
            The collateral released.

        Raises:
            InvalidAmount, UnknownRoot, InvalidProof, RepaymentExceedsDebt,
            InsufficientBalance, PriceUnavailable, InsufficientCollateral,
            BurnFailed, TransferFailed.
        """
        with self._non_reentrant("withdraw"), self._atomic("withdraw") as undo:
            self._require_amount("repayment_amount", repayment_amount)
            self._require_recipient(recipient)
            self._check_proof(proof, root, nullifier_id)

            snapshot = self._ledger.get(nullifier_id)
            debt = snapshot.debt_amount if snapshot is not None else 0
            if repayment_amount > debt:
                raise RepaymentExceedsDebt(
                    "Repayment amount exceeds outstanding debt",
                    {"repayment_amount": str(repayment_amount), "debt_amount": str(debt)},
                )
            balance = self._stable_ledger.balance_of(caller)
            if balance < repayment_amount:
                raise InsufficientBalance(
                    "Caller's ZkUSD balance does not cover the repayment",
                    {"caller": caller, "balance": str(balance)},
                )

            collateral_released = self._collateral_for(repayment_amount, self.get_price())
            if collateral_released > snapshot.collateral_amount or collateral_released > self._collateral_reserve:
                raise InsufficientCollateral(
                    "Released collateral exceeds what the position holds",
                    {
                        "collateral_released": str(collateral_released),
                        "collateral_amount": str(snapshot.collateral_amount),
                    },
                )

            # Effects
            if not self._stable_ledger.burn(caller, repayment_amount):
                raise BurnFailed("ZkUSD burn failed", {"caller": caller})
            undo.append(lambda: self._refund(caller, repayment_amount))

            position = self._ledger.record_repayment(nullifier_id, repayment_amount, collateral_released)
            undo.append(lambda: self._ledger.restore(nullifier_id, snapshot))

            self._collateral_reserve -= collateral_released
            undo.append(lambda: self._restore_reserve(collateral_released))

            # Interaction: the vault's only outward value transfer
            if not self._value_transfer.send_value(recipient, collateral_released):
                raise TransferFailed(
                    "Payment to recipient did not go through",
                    {"recipient": recipient, "amount": str(collateral_released)},
                )

            self._events.append(WithdrawalEvent(
                recipient=recipient,
                nullifier_id=nullifier_id,
                collateral_released=collateral_released,
                repayment_amount=repayment_amount,
            ))

        logger.info(
            f"[VAULT] Withdrawal — repaid {repayment_amount}, released {collateral_released} "
            f"to {recipient} debt={position.debt_amount} collateral={position.collateral_amount}"
        )
        return collateral_released

    # ── Undo steps ──

    def _refund(self, account: str, amount: int) -> None:
        if not self._stable_ledger.mint(account, amount):
            logger.critical(f"[VAULT] Could not restore {amount} burned ZkUSD to {account}")

    def _restore_reserve(self, amount: int) -> None:
        self._collateral_reserve += amount

    # ═══════════════════════════════════════════════════════════════════════════
    # ADMIN
    # ═══════════════════════════════════════════════════════════════════════════

    def set_price_source(self, price_source: PriceSource, caller: str) -> None:
        self._require_admin(caller)
        self._price_source = price_source
        logger.info(f"[VAULT] Price source replaced by {caller}")

    def set_ratio(self, ratio: int, caller: str) -> None:
        self._require_admin(caller)
        if not isinstance(ratio, int) or isinstance(ratio, bool) or ratio <= 0:
            raise InvalidAmount("ratio should be a positive integer", {"ratio": str(ratio)})
        logger.info(f"[VAULT] Ratio {self._ratio}% -> {ratio}% by {caller}")
        self._ratio = ratio

    # ═══════════════════════════════════════════════════════════════════════════
    # VIEWS
    # ═══════════════════════════════════════════════════════════════════════════

    @property
    def ratio(self) -> int:
        return self._ratio

    @property
    def collateral_reserve(self) -> int:
        return self._collateral_reserve

    @property
    def events(self) -> VaultEventLog:
        return self._events

    @property
    def tree_height(self) -> int:
        return self._tree.height

    @property
    def next_index(self) -> int:
        return self._tree.next_index

    def get_position(self, nullifier_id: int) -> Optional[Position]:
        return self._ledger.get(nullifier_id)

    def is_commitment_used(self, commitment: int) -> bool:
        return self._ledger.is_commitment_used(commitment)

    def is_known_root(self, root: int) -> bool:
        return self._tree.is_known_root(root)

    def get_last_root(self) -> int:
        return self._tree.get_last_root()
