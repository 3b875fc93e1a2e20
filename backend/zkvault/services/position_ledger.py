"""
Position Ledger — per-nullifier vault positions and the used-commitment set.

Owned exclusively by the VaultController; nothing else holds a reference to
the underlying mappings. Reads hand out copies so callers can never mutate
a live record.

Position lifecycle (per nullifier identifier):
    Uninitialized ──first borrow──→ Active ──borrow / withdraw──→ Active

`fully_withdrawn` is part of the record but no operation sets it.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, replace
from typing import Dict, Optional, Set

from zkvault.core.errors import InsufficientCollateral, RepaymentExceedsDebt

logger = logging.getLogger(__name__)


@dataclass
class Position:
    initialized: bool = False
    fully_withdrawn: bool = False
    collateral_amount: int = 0
    debt_amount: int = 0


class PositionLedger:
    def __init__(self) -> None:
        self._positions: Dict[int, Position] = {}
        self._used_commitments: Set[int] = set()

    # ── Commitments ──

    def is_commitment_used(self, commitment: int) -> bool:
        return commitment in self._used_commitments

    def mark_commitment_used(self, commitment: int) -> None:
        self._used_commitments.add(commitment)

    @property
    def commitment_count(self) -> int:
        return len(self._used_commitments)

    # ── Positions ──

    def get(self, nullifier_id: int) -> Optional[Position]:
        """Copy of the position, or None if never initialized."""
        position = self._positions.get(nullifier_id)
        return replace(position) if position is not None else None

    def debt_of(self, nullifier_id: int) -> int:
        position = self._positions.get(nullifier_id)
        return position.debt_amount if position is not None else 0

    def __len__(self) -> int:
        return len(self._positions)

    def record_borrow(self, nullifier_id: int, amount: int, unit_deposit: int) -> Position:
        """
        Add debt, initializing the position on first touch with one unit of
        collateral. Returns the updated copy.
        """
        position = self._positions.get(nullifier_id)
        if position is None:
            position = Position(initialized=True, collateral_amount=unit_deposit)
            self._positions[nullifier_id] = position
            logger.info(f"[POSITIONS] Position {nullifier_id:#x} initialized")
        position.debt_amount += amount
        return replace(position)

    def record_repayment(
        self,
        nullifier_id: int,
        repayment_amount: int,
        collateral_released: int,
    ) -> Position:
        """
        Reduce debt and collateral together. Neither may go negative.

        Raises:
            RepaymentExceedsDebt: If repayment_amount > debt_amount.
            InsufficientCollateral: If collateral_released > collateral_amount.
        """
        position = self._positions.get(nullifier_id) or Position()
        if repayment_amount > position.debt_amount:
            raise RepaymentExceedsDebt(
                "Repayment amount exceeds outstanding debt",
                {"repayment_amount": str(repayment_amount), "debt_amount": str(position.debt_amount)},
            )
        if collateral_released > position.collateral_amount:
            raise InsufficientCollateral(
                "Released collateral exceeds position collateral",
                {
                    "collateral_released": str(collateral_released),
                    "collateral_amount": str(position.collateral_amount),
                },
            )
        position.debt_amount -= repayment_amount
        position.collateral_amount -= collateral_released
        return replace(position)

    def restore(self, nullifier_id: int, snapshot: Optional[Position]) -> None:
        """Put a position back exactly as captured by get()."""
        if snapshot is None:
            self._positions.pop(nullifier_id, None)
        else:
            self._positions[nullifier_id] = replace(snapshot)
