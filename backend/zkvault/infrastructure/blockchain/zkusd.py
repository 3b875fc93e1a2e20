"""
ZkUSD — Stable-Value Ledger Minted Against Vault Positions.

Python equivalent of the "Zero Knowledge USD" ERC-20 the vault mints on
borrow and burns on repayment. The vault only depends on the narrow
capability below; this in-process token is the reference implementation
used by the app and the test-suite.

Result-returning semantics:
    mint/burn/transfer return False instead of reverting, mirroring ERC-20
    `bool` returns. The caller decides whether a False is fatal.
"""

from __future__ import annotations

import logging
from collections import defaultdict
from typing import Dict, Protocol

logger = logging.getLogger(__name__)

TOKEN_NAME = "Zero Knowledge USD"
TOKEN_SYMBOL = "ZkUSD"
TOKEN_DECIMALS = 18


class StableLedger(Protocol):
    """Stable-value ledger capability consumed by the vault controller."""

    def mint(self, account: str, amount: int) -> bool:
        ...

    def burn(self, account: str, amount: int) -> bool:
        ...

    def balance_of(self, account: str) -> int:
        ...


class ZkUsdToken:
    """
    In-memory ERC-20 style balance book.

    Usage:
        token = ZkUsdToken()
        token.mint("0xabc", 500)
        token.transfer("0xabc", "0xdef", 200)
        assert token.balance_of("0xdef") == 200
    """

    def __init__(
        self,
        name: str = TOKEN_NAME,
        symbol: str = TOKEN_SYMBOL,
        decimals: int = TOKEN_DECIMALS,
    ) -> None:
        self.name = name
        self.symbol = symbol
        self.decimals = decimals
        self._balances: Dict[str, int] = defaultdict(int)
        self._total_supply = 0

    @property
    def total_supply(self) -> int:
        return self._total_supply

    def balance_of(self, account: str) -> int:
        return self._balances.get(account, 0)

    def mint(self, account: str, amount: int) -> bool:
        if not account or amount <= 0:
            logger.warning(f"[ZKUSD] Mint rejected — account={account!r} amount={amount}")
            return False
        self._balances[account] += amount
        self._total_supply += amount
        logger.info(f"[ZKUSD] Minted {amount} to {account}")
        return True

    def burn(self, account: str, amount: int) -> bool:
        if amount <= 0 or self.balance_of(account) < amount:
            logger.warning(
                f"[ZKUSD] Burn rejected — account={account!r} amount={amount} "
                f"balance={self.balance_of(account)}"
            )
            return False
        self._balances[account] -= amount
        self._total_supply -= amount
        logger.info(f"[ZKUSD] Burned {amount} from {account}")
        return True

    def transfer(self, sender: str, recipient: str, amount: int) -> bool:
        if not recipient or amount <= 0 or self.balance_of(sender) < amount:
            logger.warning(
                f"[ZKUSD] Transfer rejected — {sender!r} -> {recipient!r} amount={amount}"
            )
            return False
        self._balances[sender] -= amount
        self._balances[recipient] += amount
        return True
