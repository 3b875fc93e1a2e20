"""
Vault API — HTTP surface over the VaultController.

Every state-changing endpoint forwards to exactly one controller operation.
A vault revert becomes an HTTPException whose status reflects the error
category and whose detail carries the stable revert reason:

    ValidationError  → 422      AccountingError → 409
    ProofError       → 403      CapacityError   → 507
    AccessDenied     → 403      TransferError   → 502
    ReentrantCall    → 409

Withdraw burns ZkUSD from the requesting account, so it takes that account
from an authenticated session (POST /session, then X-Session-Token), never
from the request body.

Usage:
    from zkvault.api.vault import vault_router
    app.include_router(vault_router)
"""

from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Depends, Header, HTTPException, Query, status

from zkvault.core.errors import (
    AccessDenied,
    AccountingError,
    CapacityError,
    ProofError,
    ReentrantCall,
    TransferError,
    ValidationError,
    VaultError,
)
from zkvault.infrastructure.blockchain.auth_service import (
    AuthError,
    ChallengeInvalid,
    open_session,
    validate_session_token,
)
from zkvault.infrastructure.blockchain.event_log import EventType, IntegrityReport
from zkvault.schemas.vault import (
    BorrowRequest,
    DepositRequest,
    DepositResponse,
    EstimateOut,
    MaxBorrowOut,
    PositionOut,
    RootKnownOut,
    RootOut,
    SessionOut,
    SessionRequest,
    WithdrawRequest,
    WithdrawResponse,
)
from zkvault.services.vault_controller import VaultController

logger = logging.getLogger(__name__)

vault_router = APIRouter(prefix="/vault", tags=["Vault"])


# ═══════════════════════════════════════════════════════════════════════════════
# DEPENDENCIES
# ═══════════════════════════════════════════════════════════════════════════════

_vault_instance: Optional[VaultController] = None


def get_vault() -> VaultController:
    """Lazy singleton built from Settings on first request."""
    global _vault_instance
    if _vault_instance is None:
        from zkvault.services.vault_factory import build_vault
        _vault_instance = build_vault()
    return _vault_instance


def get_caller(
    x_account_address: Optional[str] = Header(default=None),
    x_session_token: Optional[str] = Header(default=None),
) -> str:
    """
    Account acting on the request, taken from its session token.

    401 without a valid token; 403 when X-Account-Address names a different
    account than the one the token was issued to.
    """
    if not x_session_token:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail={"error": "auth", "reason": "MissingSession", "message": "X-Session-Token header is required"},
        )
    try:
        account = validate_session_token(x_session_token)
    except AuthError as exc:
        logger.warning(f"[API] Session rejected: {exc}")
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail={"error": "auth", "reason": type(exc).__name__, "message": str(exc)},
        ) from exc

    if x_account_address and x_account_address.lower() != account.lower():
        logger.warning(f"[API] Session for {account} used to act as {x_account_address}")
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail={
                "error": "auth",
                "reason": "AccountMismatch",
                "message": "Session does not belong to the named account",
            },
        )
    return account


# ═══════════════════════════════════════════════════════════════════════════════
# ERROR MAPPING
# ═══════════════════════════════════════════════════════════════════════════════

_STATUS_BY_CATEGORY = [
    (ValidationError, status.HTTP_422_UNPROCESSABLE_ENTITY),
    (ProofError, status.HTTP_403_FORBIDDEN),
    (AccessDenied, status.HTTP_403_FORBIDDEN),
    (AccountingError, status.HTTP_409_CONFLICT),
    (ReentrantCall, status.HTTP_409_CONFLICT),
    (CapacityError, status.HTTP_507_INSUFFICIENT_STORAGE),
    (TransferError, status.HTTP_502_BAD_GATEWAY),
]


def _to_http(exc: VaultError) -> HTTPException:
    code = next(
        (code for cls, code in _STATUS_BY_CATEGORY if isinstance(exc, cls)),
        status.HTTP_400_BAD_REQUEST,
    )
    logger.warning(f"[API] {exc.reason}: {exc.message}")
    return HTTPException(status_code=code, detail=exc.to_dict())


def _position_out(vault: VaultController, nullifier_id: int) -> PositionOut:
    position = vault.get_position(nullifier_id)
    if position is None:
        return PositionOut(nullifier_id=nullifier_id)
    return PositionOut(
        nullifier_id=nullifier_id,
        initialized=position.initialized,
        fully_withdrawn=position.fully_withdrawn,
        collateral_amount=position.collateral_amount,
        debt_amount=position.debt_amount,
    )


# ═══════════════════════════════════════════════════════════════════════════════
# STATE TRANSITIONS
# ═══════════════════════════════════════════════════════════════════════════════

@vault_router.post("/deposit", response_model=DepositResponse, status_code=status.HTTP_201_CREATED)
def deposit(request: DepositRequest, vault: VaultController = Depends(get_vault)) -> DepositResponse:
    try:
        leaf_index = vault.deposit(request.commitment, request.value)
    except VaultError as exc:
        raise _to_http(exc) from exc
    return DepositResponse(leaf_index=leaf_index, root=vault.get_last_root())


@vault_router.post("/borrow", response_model=PositionOut)
def borrow(request: BorrowRequest, vault: VaultController = Depends(get_vault)) -> PositionOut:
    try:
        vault.borrow(
            request.proof,
            request.root,
            request.nullifier_id,
            request.recipient,
            request.amount,
        )
    except VaultError as exc:
        raise _to_http(exc) from exc
    return _position_out(vault, request.nullifier_id)


@vault_router.post("/session", response_model=SessionOut, status_code=status.HTTP_201_CREATED)
def session(request: SessionRequest) -> SessionOut:
    """Exchange a signed challenge for a session token."""
    try:
        issued = open_session(request.address, request.issued_at, request.signature)
    except ChallengeInvalid as exc:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail={"error": "auth", "reason": "ChallengeInvalid", "message": str(exc)},
        ) from exc
    return SessionOut(**issued)


@vault_router.post("/withdraw", response_model=WithdrawResponse)
def withdraw(
    request: WithdrawRequest,
    caller: str = Depends(get_caller),
    vault: VaultController = Depends(get_vault),
) -> WithdrawResponse:
    """Repay from the session's own ZkUSD balance."""
    try:
        released = vault.withdraw(
            request.proof,
            request.root,
            request.nullifier_id,
            request.recipient,
            request.repayment_amount,
            caller=caller,
        )
    except VaultError as exc:
        raise _to_http(exc) from exc
    return WithdrawResponse(
        collateral_released=released,
        position=_position_out(vault, request.nullifier_id),
    )


# ═══════════════════════════════════════════════════════════════════════════════
# VIEWS
# ═══════════════════════════════════════════════════════════════════════════════

@vault_router.get("/positions/{nullifier_id}", response_model=PositionOut)
def get_position(nullifier_id: str, vault: VaultController = Depends(get_vault)) -> PositionOut:
    return _position_out(vault, _path_uint(nullifier_id))


@vault_router.get("/max-borrow/{nullifier_id}", response_model=MaxBorrowOut)
def max_borrow(nullifier_id: str, vault: VaultController = Depends(get_vault)) -> MaxBorrowOut:
    nid = _path_uint(nullifier_id)
    try:
        value = vault.max_borrow(nid)
    except VaultError as exc:
        raise _to_http(exc) from exc
    return MaxBorrowOut(nullifier_id=nid, max_borrow=value)


@vault_router.get("/roots/latest", response_model=RootOut)
def latest_root(vault: VaultController = Depends(get_vault)) -> RootOut:
    return RootOut(
        root=vault.get_last_root(),
        next_index=vault.next_index,
        tree_height=vault.tree_height,
    )


@vault_router.get("/roots/{root}/known", response_model=RootKnownOut)
def root_known(root: str, vault: VaultController = Depends(get_vault)) -> RootKnownOut:
    value = _path_uint(root)
    return RootKnownOut(root=value, known=vault.is_known_root(value))


@vault_router.get("/estimate/collateral", response_model=EstimateOut)
def estimate_collateral(
    repayment_amount: str = Query(...),
    vault: VaultController = Depends(get_vault),
) -> EstimateOut:
    amount = _path_uint(repayment_amount)
    try:
        return EstimateOut(
            amount=amount,
            estimate=vault.estimate_collateral(amount),
            price=vault.get_price(),
        )
    except VaultError as exc:
        raise _to_http(exc) from exc


@vault_router.get("/estimate/tokens", response_model=EstimateOut)
def estimate_tokens(
    deposit_amount: str = Query(...),
    vault: VaultController = Depends(get_vault),
) -> EstimateOut:
    amount = _path_uint(deposit_amount)
    try:
        return EstimateOut(
            amount=amount,
            estimate=vault.estimate_tokens(amount),
            price=vault.get_price(),
        )
    except VaultError as exc:
        raise _to_http(exc) from exc


@vault_router.get("/events")
def list_events(
    event_type: Optional[EventType] = None,
    limit: int = Query(default=100, ge=1, le=1000),
    offset: int = Query(default=0, ge=0),
    vault: VaultController = Depends(get_vault),
) -> List[Dict[str, Any]]:
    return [e.to_dict() for e in vault.events.entries(event_type, limit=limit, offset=offset)]


@vault_router.get("/events/integrity", response_model=IntegrityReport)
def events_integrity(vault: VaultController = Depends(get_vault)) -> IntegrityReport:
    return vault.events.verify_integrity()


def _path_uint(raw: str) -> int:
    """Parse a decimal or 0x-hex path/query value."""
    text = raw.strip()
    try:
        value = int(text, 16) if text.lower().startswith("0x") else int(text, 10)
    except ValueError:
        value = -1
    if value < 0:
        raise HTTPException(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            detail={
                "error": "validation",
                "reason": "InvalidFieldElement",
                "message": f"not an unsigned integer: {raw!r}",
            },
        )
    return value
