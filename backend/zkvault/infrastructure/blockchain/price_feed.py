"""
Price Sources — collateral/USD exchange rate for the vault.

Both sources answer `latest_price()` with an integer at 8 decimals, the
precision Chainlink USD feeds report. The vault rescales to its 18-decimal
working precision itself.

    MockOracle           fixed, owner-settable answer (local/dev networks)
    ChainlinkPriceFeed   AggregatorV3Interface.latestRoundData() via web3.py
"""

import logging
from typing import Optional, Protocol

from web3 import Web3

logger = logging.getLogger(__name__)

PRICE_DECIMALS = 8
MOCK_DEFAULT_PRICE = 2000 * 10**PRICE_DECIMALS

# Minimal AggregatorV3Interface ABI
AGGREGATOR_V3_ABI = [
    {
        "inputs": [],
        "name": "latestRoundData",
        "outputs": [
            {"internalType": "uint80", "name": "roundId", "type": "uint80"},
            {"internalType": "int256", "name": "answer", "type": "int256"},
            {"internalType": "uint256", "name": "startedAt", "type": "uint256"},
            {"internalType": "uint256", "name": "updatedAt", "type": "uint256"},
            {"internalType": "uint80", "name": "answeredInRound", "type": "uint80"},
        ],
        "stateMutability": "view",
        "type": "function",
    },
    {
        "inputs": [],
        "name": "decimals",
        "outputs": [{"internalType": "uint8", "name": "", "type": "uint8"}],
        "stateMutability": "view",
        "type": "function",
    },
]


class PriceFeedError(Exception):
    """Raised when a price source cannot produce a usable answer."""
    pass


class PriceSource(Protocol):
    """Price capability consumed by the vault controller."""

    def latest_price(self) -> int:
        ...


class MockOracle:
    """Constant price source; only the owner may move the price."""

    def __init__(self, owner: str, price: int = MOCK_DEFAULT_PRICE):
        self.owner = owner
        self._price = price

    def latest_price(self) -> int:
        return self._price

    def set_price(self, price: int, caller: str) -> None:
        if caller != self.owner:
            raise PermissionError(f"{caller} is not the oracle owner")
        if price <= 0:
            raise ValueError(f"price should be positive, got {price}")
        logger.info(f"[ORACLE] Mock price moved {self._price} -> {price}")
        self._price = price


class ChainlinkPriceFeed:
    def __init__(self, provider_url: str, feed_address: str, w3: Optional[Web3] = None):
        self.w3 = w3 or Web3(Web3.HTTPProvider(provider_url))
        self.feed_address = Web3.to_checksum_address(feed_address)
        self.contract = self.w3.eth.contract(address=self.feed_address, abi=AGGREGATOR_V3_ABI)
        self._decimals_checked = False

    def is_connected(self) -> bool:
        return self.w3.is_connected()

    def latest_price(self) -> int:
        """
        Read the latest round answer.

        Raises:
            PriceFeedError: If the round reports a non-positive answer,
                or the feed does not report at PRICE_DECIMALS.
        """
        if not self._decimals_checked:
            self._check_decimals()

        _round_id, answer, _started_at, updated_at, _answered_in = (
            self.contract.functions.latestRoundData().call()
        )
        if answer <= 0:
            raise PriceFeedError(f"Feed {self.feed_address} returned non-positive answer {answer}")

        logger.debug(f"[ORACLE] Chainlink answer={answer} updatedAt={updated_at}")
        return int(answer)

    def _check_decimals(self) -> None:
        decimals = self.contract.functions.decimals().call()
        if decimals != PRICE_DECIMALS:
            raise PriceFeedError(
                f"Feed {self.feed_address} reports {decimals} decimals, expected {PRICE_DECIMALS}"
            )
        self._decimals_checked = True
