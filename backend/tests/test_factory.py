from zkvault.core.config import Settings
from zkvault.core.crypto.hasher import KeccakFieldHasher, Sha256FieldHasher
from zkvault.core.crypto.verifier import SnarkjsVerifier
from zkvault.infrastructure.blockchain.price_feed import ChainlinkPriceFeed, MockOracle
from zkvault.services.vault_factory import build_price_source, build_vault

from conftest import FakeVerifier


def test_defaults_run_against_mock_oracle():
    config = Settings()
    source = build_price_source(config)
    assert isinstance(source, MockOracle)
    assert source.latest_price() == 2000 * 10**8
    assert source.owner == config.ADMIN_ADDRESS


def test_feed_address_selects_chainlink():
    config = Settings(PRICE_FEED_ADDRESS="0x5f4ec3df9cbd43714fe2740f5e3616155c5b8419")
    assert isinstance(build_price_source(config), ChainlinkPriceFeed)


def test_build_vault_from_settings(monkeypatch):
    monkeypatch.setenv("COLLATERAL_RATIO", "175")
    monkeypatch.setenv("MERKLE_TREE_HEIGHT", "8")
    config = Settings()

    vault = build_vault(config)

    assert vault.ratio == 175
    assert vault.tree_height == 8
    assert vault.unit_deposit == 10**18
    assert vault.admin == config.ADMIN_ADDRESS
    assert isinstance(vault._verifier, SnarkjsVerifier)
    assert isinstance(vault._tree.hasher, KeccakFieldHasher)
    # 2000 USD at 8 decimals, rescaled to 18
    assert vault.get_price() == 2000 * 10**18


def test_build_vault_overrides():
    verifier = FakeVerifier()
    vault = build_vault(Settings(HASHER="sha256"), verifier=verifier)
    assert vault._verifier is verifier
    assert isinstance(vault._tree.hasher, Sha256FieldHasher)
