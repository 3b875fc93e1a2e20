"""
Vault Factory — wires a VaultController from Settings.

Follows the deployment order: stable token, price source, then the
vault bound to both. Without PRICE_FEED_ADDRESS the vault runs against a
MockOracle owned by the admin, the local-network setup.
"""

import logging
from typing import Optional

from zkvault.core.config import Settings, settings as default_settings
from zkvault.core.crypto.hasher import get_hasher
from zkvault.core.crypto.verifier import ProofVerifier, SnarkjsVerifier
from zkvault.infrastructure.blockchain.custody import NativeBalanceBook
from zkvault.infrastructure.blockchain.price_feed import (
    ChainlinkPriceFeed,
    MockOracle,
    PriceSource,
)
from zkvault.infrastructure.blockchain.zkusd import ZkUsdToken
from zkvault.services.vault_controller import VaultController

logger = logging.getLogger(__name__)


def build_price_source(config: Settings) -> PriceSource:
    if config.PRICE_FEED_ADDRESS:
        logger.info(f"[FACTORY] Chainlink feed {config.PRICE_FEED_ADDRESS} via {config.WEB3_PROVIDER_URL}")
        return ChainlinkPriceFeed(config.WEB3_PROVIDER_URL, config.PRICE_FEED_ADDRESS)
    logger.info(f"[FACTORY] PRICE_FEED_ADDRESS not set — MockOracle at {config.MOCK_PRICE}")
    return MockOracle(owner=config.ADMIN_ADDRESS, price=config.MOCK_PRICE)


def build_vault(
    config: Optional[Settings] = None,
    *,
    verifier: Optional[ProofVerifier] = None,
    price_source: Optional[PriceSource] = None,
    stable_ledger: Optional[ZkUsdToken] = None,
    value_transfer: Optional[NativeBalanceBook] = None,
) -> VaultController:
    """Assemble a vault; any capability can be overridden."""
    config = config or default_settings
    return VaultController(
        hasher=get_hasher(config.HASHER),
        verifier=verifier or SnarkjsVerifier(
            config.VERIFICATION_KEY_PATH,
            command=config.SNARKJS_COMMAND,
            timeout=config.VERIFIER_TIMEOUT_SECONDS,
        ),
        price_source=price_source or build_price_source(config),
        stable_ledger=stable_ledger or ZkUsdToken(),
        value_transfer=value_transfer or NativeBalanceBook(),
        admin=config.ADMIN_ADDRESS,
        unit_deposit=config.UNIT_DEPOSIT,
        ratio=config.COLLATERAL_RATIO,
        height=config.MERKLE_TREE_HEIGHT,
        root_history_size=config.ROOT_HISTORY_SIZE,
        price_rescale=config.PRICE_DECIMALS_RESCALE,
    )
