"""
Vault Error Taxonomy — Revert Semantics for zkVault.

Every failure raised by the vault aborts the triggering operation in full,
the Python equivalent of a Solidity 'revert'. Nothing is retried and no
partial state survives; the caller resubmits with corrected parameters or a
fresher root.

Hierarchy:
    VaultError
    ├── ValidationError   — DuplicateCommitment, WrongDepositValue,
    │                       InvalidAmount, InvalidFieldElement
    ├── ProofError        — UnknownRoot, InvalidProof
    ├── AccountingError   — ExceedsMaxBorrow, RepaymentExceedsDebt,
    │                       InsufficientBalance, InsufficientCollateral,
    │                       PriceUnavailable
    ├── CapacityError     — CapacityExceeded
    ├── TransferError     — TransferFailed, MintFailed, BurnFailed
    ├── AccessDenied
    └── ReentrantCall
"""

from __future__ import annotations

from typing import Any, Dict, Optional


class VaultError(Exception):
    """
    Base class for every vault revert.

    Attributes:
        reason:  Stable machine-readable code (the concrete class name).
        message: Human-readable explanation.
        details: Extra context for logs and API responses.
    """

    category = "vault"

    def __init__(self, message: str = "", details: Optional[Dict[str, Any]] = None):
        self.reason = type(self).__name__
        self.message = message or self.reason
        self.details = details or {}
        super().__init__(f"VAULT REVERT [{self.reason}]: {self.message}")

    def to_dict(self) -> Dict[str, Any]:
        return {
            "error": self.category,
            "reason": self.reason,
            "message": self.message,
            "details": self.details,
        }


# ── Categories ──

class ValidationError(VaultError):
    category = "validation"


class ProofError(VaultError):
    category = "proof"


class AccountingError(VaultError):
    category = "accounting"


class CapacityError(VaultError):
    category = "capacity"


class TransferError(VaultError):
    category = "transfer"


class AccessDenied(VaultError):
    category = "access"


class ReentrantCall(VaultError):
    category = "reentrancy"


# ── Concrete reverts ──

class DuplicateCommitment(ValidationError):
    pass


class WrongDepositValue(ValidationError):
    pass


class InvalidAmount(ValidationError):
    pass


class InvalidFieldElement(ValidationError):
    pass


class UnknownRoot(ProofError):
    pass


class InvalidProof(ProofError):
    pass


class ExceedsMaxBorrow(AccountingError):
    pass


class RepaymentExceedsDebt(AccountingError):
    pass


class InsufficientBalance(AccountingError):
    pass


class InsufficientCollateral(AccountingError):
    pass


class PriceUnavailable(AccountingError):
    pass


class CapacityExceeded(CapacityError):
    pass


class TransferFailed(TransferError):
    pass


class MintFailed(TransferError):
    pass


class BurnFailed(TransferError):
    pass
