"""
Deposit Notes — client-side witness material for the external prover.

A note is the pair (nullifier, secret) a depositor keeps private. From it:

    commitment    = H(nullifier, secret)     published at deposit time
    nullifier_id  = H(nullifier, nullifier)  names the vault position

To prove membership the prover also needs the Merkle path of the
commitment, which anyone can rebuild from the ordered Deposit events
because the accumulator only stores the right-most frontier.

None of this runs inside the vault; it exists so tests and tooling can
produce the same values a wallet would.
"""

from __future__ import annotations

import re
import secrets
from dataclasses import dataclass
from typing import List, Sequence

from zkvault.core.crypto.hasher import FieldHasher, compute_zeros

NOTE_PREFIX = "zkvault-note"
NOTE_SECRET_BYTES = 31  # 248 bits, always below FIELD_SIZE

_NOTE_PATTERN = re.compile(rf"^{NOTE_PREFIX}-0x(?P<nullifier>[0-9a-fA-F]{{62}})(?P<secret>[0-9a-fA-F]{{62}})$")


def _random_field_bytes() -> int:
    return int.from_bytes(secrets.token_bytes(NOTE_SECRET_BYTES), "big")


# ═══════════════════════════════════════════════════════════════════════════════
# NOTES
# ═══════════════════════════════════════════════════════════════════════════════

@dataclass(frozen=True)
class Note:
    """Private deposit note. Never leaves the depositor."""
    nullifier: int
    secret: int

    def commitment(self, hasher: FieldHasher) -> int:
        return hasher.hash(self.nullifier, self.secret)

    def nullifier_id(self, hasher: FieldHasher) -> int:
        return hasher.hash(self.nullifier, self.nullifier)

    def to_string(self) -> str:
        """Serialize as `zkvault-note-0x<nullifier><secret>`."""
        return (
            f"{NOTE_PREFIX}-0x"
            f"{self.nullifier:0{NOTE_SECRET_BYTES * 2}x}"
            f"{self.secret:0{NOTE_SECRET_BYTES * 2}x}"
        )

    @classmethod
    def from_string(cls, text: str) -> "Note":
        match = _NOTE_PATTERN.match(text.strip())
        if match is None:
            raise ValueError("The note has invalid format")
        return cls(
            nullifier=int(match.group("nullifier"), 16),
            secret=int(match.group("secret"), 16),
        )


def generate_note() -> Note:
    """Sample a fresh note with 248-bit nullifier and secret."""
    return Note(nullifier=_random_field_bytes(), secret=_random_field_bytes())


# ═══════════════════════════════════════════════════════════════════════════════
# MERKLE PATHS
# ═══════════════════════════════════════════════════════════════════════════════

@dataclass(frozen=True)
class MerklePath:
    """
    Authentication path for one leaf.

    path_indices[i] is 0 when the node at level i is a left child and 1
    when it is a right child; path_elements[i] is its sibling.
    """
    leaf_index: int
    path_elements: List[int]
    path_indices: List[int]
    root: int


def build_merkle_path(
    leaves: Sequence[int],
    leaf_index: int,
    height: int,
    hasher: FieldHasher,
) -> MerklePath:
    """
    Rebuild the tree from the ordered leaves and return the path of one leaf.

    Absent siblings are filled with the empty-subtree value of their level,
    matching what the on-chain accumulator computes incrementally.

    Raises:
        IndexError: If leaf_index is not an inserted leaf.
        ValueError: If there are more leaves than the tree can hold.
    """
    if not 0 <= leaf_index < len(leaves):
        raise IndexError(f"leaf index {leaf_index} out of range")
    if len(leaves) > 2 ** height:
        raise ValueError(f"{len(leaves)} leaves exceed capacity of height {height}")

    zeros = compute_zeros(hasher, height)
    level: List[int] = [int(x) for x in leaves]
    index = leaf_index
    elements: List[int] = []
    indices: List[int] = []

    for depth in range(height):
        sibling = index ^ 1
        elements.append(level[sibling] if sibling < len(level) else zeros[depth])
        indices.append(index & 1)

        next_level: List[int] = []
        for i in range(0, len(level), 2):
            left = level[i]
            right = level[i + 1] if i + 1 < len(level) else zeros[depth]
            next_level.append(hasher.hash(left, right))
        level = next_level
        index //= 2

    root = level[0] if level else zeros[height]
    return MerklePath(
        leaf_index=leaf_index,
        path_elements=elements,
        path_indices=indices,
        root=root,
    )


def compute_root(leaf: int, path: MerklePath, hasher: FieldHasher) -> int:
    """Fold a leaf up its authentication path — what the circuit checks."""
    node = leaf
    for sibling, is_right in zip(path.path_elements, path.path_indices):
        node = hasher.hash(sibling, node) if is_right else hasher.hash(node, sibling)
    return node
