from typing import Callable, List, Optional, Sequence, Tuple

import pytest

from zkvault.core.crypto.hasher import Sha256FieldHasher
from zkvault.infrastructure.blockchain.custody import NativeBalanceBook
from zkvault.infrastructure.blockchain.zkusd import ZkUsdToken
from zkvault.schemas.zkp import Proof
from zkvault.services.vault_controller import VaultController

ADMIN = "0xadmin"
ALICE = "0xalice"
BOB = "0xbob"

PROOF = Proof(
    pi_a=["1", "2"],
    pi_b=[["3", "4"], ["5", "6"]],
    pi_c=["7", "8"],
)


# ═══════════════════════════════════════════════════════════════════════════════
# FAKE CAPABILITIES
# ═══════════════════════════════════════════════════════════════════════════════

class FakeVerifier:
    """Accepts every proof unless told otherwise; records public inputs."""

    def __init__(self, accept: bool = True):
        self.accept = accept
        self.calls: List[Tuple[int, ...]] = []

    def verify(self, proof_a, proof_b, proof_c, public_inputs: Sequence[int]) -> bool:
        self.calls.append(tuple(public_inputs))
        return self.accept


class FixedPrice:
    def __init__(self, price: int):
        self.price = price

    def latest_price(self) -> int:
        return self.price


class BrokenPrice:
    def latest_price(self) -> int:
        raise ConnectionError("feed unreachable")


class RejectingLedger(ZkUsdToken):
    """ZkUSD whose mint always fails."""

    def mint(self, account: str, amount: int) -> bool:
        return False


# ═══════════════════════════════════════════════════════════════════════════════
# FIXTURES
# ═══════════════════════════════════════════════════════════════════════════════

@pytest.fixture
def hasher():
    return Sha256FieldHasher()


@pytest.fixture
def verifier():
    return FakeVerifier()


@pytest.fixture
def token():
    return ZkUsdToken()


@pytest.fixture
def custody():
    return NativeBalanceBook()


@pytest.fixture
def make_vault(hasher, verifier, token, custody) -> Callable[..., VaultController]:
    """
    Vault factory with small, test-friendly parameters: unit 1000, price 2
    at working precision, ratio 150, height 4, root history 3.
    """
    def _make(
        price: int = 2,
        ratio: int = 150,
        unit_deposit: int = 1000,
        height: int = 4,
        root_history_size: int = 3,
        price_source=None,
        stable_ledger=None,
        clock: Optional[Callable[[], float]] = None,
    ) -> VaultController:
        return VaultController(
            hasher=hasher,
            verifier=verifier,
            price_source=price_source or FixedPrice(price),
            stable_ledger=stable_ledger or token,
            value_transfer=custody,
            admin=ADMIN,
            unit_deposit=unit_deposit,
            ratio=ratio,
            height=height,
            root_history_size=root_history_size,
            price_rescale=1,
            clock=clock or (lambda: 1_700_000_000),
        )
    return _make


@pytest.fixture
def vault(make_vault) -> VaultController:
    return make_vault()
