"""
Native Collateral Custody — outward value transfer for withdrawals.

Withdrawing releases collateral to an arbitrary recipient, the vault's one
outward value transfer (`payable(recipient).call{value: x}` on-chain). A
recipient may be a contract with its own receive logic: it can refuse the
payment, or call straight back into the vault before the transfer returns.
`NativeBalanceBook` models both through optional receive hooks.
"""

from __future__ import annotations

import logging
from collections import defaultdict
from typing import Callable, Dict, Protocol

logger = logging.getLogger(__name__)

# Called with the incoming amount; returning False refuses the payment.
ReceiveHook = Callable[[int], bool]


class ValueTransfer(Protocol):
    """Outward value transfer capability consumed by the vault controller."""

    def send_value(self, recipient: str, amount: int) -> bool:
        ...


class NativeBalanceBook:
    """
    Native-currency balances of externally owned accounts and contracts.

    The vault's own reserve is accounted by the controller; this book only
    tracks what has left the vault.
    """

    def __init__(self) -> None:
        self._balances: Dict[str, int] = defaultdict(int)
        self._hooks: Dict[str, ReceiveHook] = {}

    def balance_of(self, account: str) -> int:
        return self._balances.get(account, 0)

    def register_receiver(self, account: str, hook: ReceiveHook) -> None:
        """Attach receive logic to an account (a contract recipient)."""
        self._hooks[account] = hook

    def send_value(self, recipient: str, amount: int) -> bool:
        """
        Credit `recipient`, running its receive hook first.

        The credit is applied only when the hook accepts. Re-entrant calls
        made from inside the hook run before this method returns.
        """
        if not recipient or amount < 0:
            logger.warning(f"[CUSTODY] Send rejected — recipient={recipient!r} amount={amount}")
            return False

        hook = self._hooks.get(recipient)
        if hook is not None and not hook(amount):
            logger.warning(f"[CUSTODY] Recipient {recipient} refused {amount}")
            return False

        self._balances[recipient] += amount
        logger.info(f"[CUSTODY] Sent {amount} to {recipient}")
        return True
