"""
Field Hashers — two-to-one hash capability for the commitment accumulator.

Every internal Merkle node is `hash(left, right)` over elements of the BN254
scalar field (the field Groth16 circuits on bn128 operate in). The primitive
itself is pluggable; the circuit that produced the proofs must use the same
one.

    KeccakFieldHasher   keccak256(abi.encodePacked(uint256 l, uint256 r)) mod p
    Sha256FieldHasher   sha256(l_be32 ‖ r_be32) mod p
"""

from __future__ import annotations

import hashlib
from typing import Protocol

from web3 import Web3

# BN254 scalar field order
FIELD_SIZE: int = (
    21888242871839275222246405745257275088548364400416034343698204186575808495617
)

# Value of an empty leaf: keccak256("zkusd") mod p
ZERO_VALUE: int = int.from_bytes(Web3.keccak(text="zkusd"), "big") % FIELD_SIZE


def is_field_element(value: int) -> bool:
    """True for integers in [0, FIELD_SIZE)."""
    return isinstance(value, int) and not isinstance(value, bool) and 0 <= value < FIELD_SIZE


class FieldHasher(Protocol):
    """Hash capability consumed by the accumulator."""

    name: str

    def hash(self, left: int, right: int) -> int:
        ...


class KeccakFieldHasher:
    """Solidity-compatible keccak256 pair hash reduced into the field."""

    name = "keccak"

    def hash(self, left: int, right: int) -> int:
        if not is_field_element(left):
            raise ValueError("left should be inside the field")
        if not is_field_element(right):
            raise ValueError("right should be inside the field")
        digest = Web3.solidity_keccak(["uint256", "uint256"], [left, right])
        return int.from_bytes(digest, "big") % FIELD_SIZE


class Sha256FieldHasher:
    """SHA-256 pair hash reduced into the field."""

    name = "sha256"

    def hash(self, left: int, right: int) -> int:
        if not is_field_element(left):
            raise ValueError("left should be inside the field")
        if not is_field_element(right):
            raise ValueError("right should be inside the field")
        digest = hashlib.sha256(
            left.to_bytes(32, "big") + right.to_bytes(32, "big")
        ).digest()
        return int.from_bytes(digest, "big") % FIELD_SIZE


def compute_zeros(hasher: FieldHasher, height: int) -> list:
    """
    Roots of empty subtrees, one per level.

    zeros[0] is the empty leaf, zeros[i] = hash(zeros[i-1], zeros[i-1]),
    so zeros[height] is the root of a completely empty tree.
    """
    zeros = [ZERO_VALUE]
    for _ in range(height):
        zeros.append(hasher.hash(zeros[-1], zeros[-1]))
    return zeros


_HASHERS = {
    KeccakFieldHasher.name: KeccakFieldHasher,
    Sha256FieldHasher.name: Sha256FieldHasher,
}


def get_hasher(name: str) -> FieldHasher:
    """Resolve a hasher by its configured name."""
    try:
        return _HASHERS[name.lower()]()
    except KeyError:
        raise ValueError(
            f"Unknown hasher '{name}' — expected one of {sorted(_HASHERS)}"
        ) from None
