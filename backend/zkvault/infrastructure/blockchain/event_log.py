"""
VaultEventLog — Ordered, Tamper-Evident Event Journal.

The vault's Deposit / Borrow / Withdrawal events are the only channel
external observers (wallets rebuilding Merkle paths, indexers, auditors)
have into its state. They are appended in commit order to a hash chain:
each entry's digest covers its payload and the previous entry's digest, so
rewriting history anywhere breaks every later link.

Architecture:
    ┌──────────────────────────────────────────────────────┐
    │  VaultController ──append()──→ VaultEventLog          │
    │                                 │                    │
    │                  ┌──────────────┴───────────┐        │
    │                  │ Chain (append-only)      │        │
    │                  │ Subscribers (callbacks)  │        │
    │                  └──────────────────────────┘        │
    └──────────────────────────────────────────────────────┘

Events are appended only after the emitting operation has fully
committed, so a reverted call never leaves an entry behind.
"""

from __future__ import annotations

import hashlib
import json
import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Callable, Dict, List, Optional, Union

from pydantic import BaseModel, Field

logger = logging.getLogger(__name__)


# ═══════════════════════════════════════════════════════════════════════════════
# CONSTANTS
# ═══════════════════════════════════════════════════════════════════════════════

GENESIS_HASH = "0" * 64


# ═══════════════════════════════════════════════════════════════════════════════
# EVENT MODELS
# ═══════════════════════════════════════════════════════════════════════════════

class EventType(str, Enum):
    DEPOSIT = "Deposit"
    BORROW = "Borrow"
    WITHDRAWAL = "Withdrawal"


class DepositEvent(BaseModel):
    """Emitted when a commitment enters the accumulator."""
    commitment: int
    leaf_index: int
    timestamp: int

    @property
    def event_type(self) -> EventType:
        return EventType.DEPOSIT


class BorrowEvent(BaseModel):
    """Emitted when ZkUSD is minted against a position."""
    recipient: str
    nullifier_id: int
    amount: int

    @property
    def event_type(self) -> EventType:
        return EventType.BORROW


class WithdrawalEvent(BaseModel):
    """Emitted when debt is repaid and collateral released."""
    recipient: str
    nullifier_id: int
    collateral_released: int
    repayment_amount: int

    @property
    def event_type(self) -> EventType:
        return EventType.WITHDRAWAL


VaultEvent = Union[DepositEvent, BorrowEvent, WithdrawalEvent]

_EVENT_MODELS = {
    EventType.DEPOSIT: DepositEvent,
    EventType.BORROW: BorrowEvent,
    EventType.WITHDRAWAL: WithdrawalEvent,
}


@dataclass(frozen=True)
class LogEntry:
    """A single immutable record in the event chain."""
    index: int
    event_type: str  # EventType value
    payload: Dict[str, Any]
    recorded_at: str  # ISO-8601 UTC
    previous_hash: str
    entry_hash: str

    @property
    def event(self) -> VaultEvent:
        """Rehydrate the typed event."""
        return _EVENT_MODELS[EventType(self.event_type)](**self.payload)

    def to_dict(self) -> Dict[str, Any]:
        """Serialize to a JSON-safe dictionary (field elements as strings)."""
        return {
            "index": self.index,
            "event_type": self.event_type,
            "payload": {
                k: str(v) if isinstance(v, int) and not isinstance(v, bool) else v
                for k, v in self.payload.items()
            },
            "recorded_at": self.recorded_at,
            "previous_hash": self.previous_hash,
            "entry_hash": self.entry_hash,
        }


class IntegrityReport(BaseModel):
    """Result of a full chain integrity verification."""
    is_valid: bool = True
    chain_length: int = 0
    head_hash: str = GENESIS_HASH
    first_invalid_index: int = -1
    error_message: str = ""
    verified_at: str = Field(
        default_factory=lambda: datetime.now(timezone.utc).isoformat()
    )


# ═══════════════════════════════════════════════════════════════════════════════
# ENTRY HASH COMPUTATION
# ═══════════════════════════════════════════════════════════════════════════════

def _compute_entry_hash(
    index: int,
    event_type: str,
    payload: Dict[str, Any],
    recorded_at: str,
    previous_hash: str,
) -> str:
    """SHA-256 over the canonical JSON of every entry field."""
    canonical = json.dumps(
        {
            "index": index,
            "event_type": event_type,
            "payload": payload,
            "recorded_at": recorded_at,
            "previous_hash": previous_hash,
        },
        sort_keys=True,
        separators=(",", ":"),
    )
    return hashlib.sha256(canonical.encode("utf-8")).hexdigest()


# ═══════════════════════════════════════════════════════════════════════════════
# EVENT LOG
# ═══════════════════════════════════════════════════════════════════════════════

EventSubscriber = Callable[[LogEntry], None]


class VaultEventLog:
    """
    Append-only, hash-chained journal of vault events.

    Usage:
        log = VaultEventLog()
        log.subscribe(lambda entry: print(entry.event_type))
        log.append(DepositEvent(commitment=c, leaf_index=0, timestamp=ts))
        assert log.verify_integrity().is_valid
    """

    def __init__(self) -> None:
        self._chain: List[LogEntry] = []
        self._subscribers: List[EventSubscriber] = []

    # ── Write Interface ──

    def append(self, event: VaultEvent) -> LogEntry:
        """Append an event, link it to the chain head and notify subscribers."""
        index = len(self._chain)
        previous_hash = self._chain[-1].entry_hash if self._chain else GENESIS_HASH
        recorded_at = datetime.now(timezone.utc).isoformat()
        event_type = event.event_type.value
        payload = event.model_dump()

        entry_hash = _compute_entry_hash(
            index=index,
            event_type=event_type,
            payload=payload,
            recorded_at=recorded_at,
            previous_hash=previous_hash,
        )
        entry = LogEntry(
            index=index,
            event_type=event_type,
            payload=payload,
            recorded_at=recorded_at,
            previous_hash=previous_hash,
            entry_hash=entry_hash,
        )
        self._chain.append(entry)

        logger.debug(f"[EVENTS] #{index} {event_type} committed — hash={entry_hash[:16]}...")

        for subscriber in list(self._subscribers):
            try:
                subscriber(entry)
            except Exception as exc:
                logger.error(f"[EVENTS] Subscriber error on #{index}: {exc}")

        return entry

    def subscribe(self, callback: EventSubscriber) -> None:
        self._subscribers.append(callback)

    # ── Read Interface ──

    def __len__(self) -> int:
        return len(self._chain)

    @property
    def head_hash(self) -> str:
        return self._chain[-1].entry_hash if self._chain else GENESIS_HASH

    def entries(
        self,
        event_type: Optional[EventType] = None,
        limit: Optional[int] = None,
        offset: int = 0,
    ) -> List[LogEntry]:
        """Entries in commit order, optionally filtered by type."""
        chain = self._chain
        if event_type is not None:
            chain = [e for e in chain if e.event_type == EventType(event_type).value]
        end = None if limit is None else offset + limit
        return chain[offset:end]

    def events(self, event_type: Optional[EventType] = None) -> List[VaultEvent]:
        return [e.event for e in self.entries(event_type)]

    def deposited_commitments(self) -> List[int]:
        """Leaves in insertion order, as a wallet rebuilds them."""
        deposits = sorted(self.events(EventType.DEPOSIT), key=lambda e: e.leaf_index)
        return [e.commitment for e in deposits]

    # ── Integrity Verification ──

    def verify_integrity(self) -> IntegrityReport:
        """Recompute every digest and check every link."""
        for i, entry in enumerate(self._chain):
            expected_prev = GENESIS_HASH if i == 0 else self._chain[i - 1].entry_hash
            if entry.previous_hash != expected_prev:
                return IntegrityReport(
                    is_valid=False,
                    chain_length=len(self._chain),
                    head_hash=self.head_hash,
                    first_invalid_index=i,
                    error_message=f"Chain break at index {i}: previous_hash mismatch",
                )

            recomputed = _compute_entry_hash(
                entry.index,
                entry.event_type,
                entry.payload,
                entry.recorded_at,
                entry.previous_hash,
            )
            if recomputed != entry.entry_hash:
                return IntegrityReport(
                    is_valid=False,
                    chain_length=len(self._chain),
                    head_hash=self.head_hash,
                    first_invalid_index=i,
                    error_message=f"Hash mismatch at index {i}: entry tampered",
                )

        return IntegrityReport(
            is_valid=True,
            chain_length=len(self._chain),
            head_hash=self.head_hash,
        )
