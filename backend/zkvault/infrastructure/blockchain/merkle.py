"""
Commitment Accumulator — Fixed-Depth Incremental Merkle Tree with Root History.

Every deposit commitment becomes a leaf. The tree never stores its leaves:
only the right-most frontier (`filled_subtrees`) is cached, so an insert
touches exactly `height` hashes. Absent siblings are the precomputed roots of
empty subtrees (`zeros`).

Structure (height = 2):
    Level 2 (root):   H(L1_0, L1_1)
    Level 1:          L1_0 = H(leaf0, leaf1)    L1_1 = H(leaf2, leaf3)
    Level 0 (leaves): leaf0 leaf1 leaf2 leaf3   (unfilled = zeros[0])

Root history:
    A prover observes a root, builds a proof against it, and submits later.
    The last K superseded roots stay valid next to the current root, so a
    root R is rejected only after K+1 further insertions. Zero never
    matches, which keeps unfilled buffer slots from verifying.
"""

from __future__ import annotations

import logging
from typing import List

from zkvault.core.crypto.hasher import FieldHasher, compute_zeros, is_field_element
from zkvault.core.errors import CapacityExceeded, InvalidFieldElement

logger = logging.getLogger(__name__)

DEFAULT_ROOT_HISTORY_SIZE = 30
MAX_TREE_HEIGHT = 32


class MerkleTreeWithHistory:
    """
    Append-only accumulator over commitment leaves.

    Usage:
        tree = MerkleTreeWithHistory(height=20, hasher=KeccakFieldHasher())
        index = tree.insert(commitment)
        assert tree.is_known_root(tree.get_last_root())
    """

    def __init__(
        self,
        height: int,
        hasher: FieldHasher,
        root_history_size: int = DEFAULT_ROOT_HISTORY_SIZE,
    ) -> None:
        if not 0 < height <= MAX_TREE_HEIGHT:
            raise ValueError(f"height should be in (0, {MAX_TREE_HEIGHT}], got {height}")
        if root_history_size < 1:
            raise ValueError(f"root_history_size should be positive, got {root_history_size}")

        self.height = height
        self.hasher = hasher
        self.root_history_size = root_history_size

        self._zeros: List[int] = compute_zeros(hasher, height)
        self._filled_subtrees: List[int] = self._zeros[:height]
        self._current_root: int = self._zeros[height]
        self._roots: List[int] = [0] * root_history_size
        self._history_index: int = root_history_size - 1
        self._next_index: int = 0

    # ── Views ──

    @property
    def capacity(self) -> int:
        return 2 ** self.height

    @property
    def next_index(self) -> int:
        """Index the next inserted leaf will receive."""
        return self._next_index

    def zeros(self, level: int) -> int:
        """Root of an empty subtree of the given level."""
        return self._zeros[level]

    def get_last_root(self) -> int:
        return self._current_root

    def is_known_root(self, root: int) -> bool:
        """
        True iff `root` is the current root or one of the last K superseded
        roots. Always False for zero.
        """
        if root == 0:
            return False
        if root == self._current_root:
            return True
        return root in self._roots

    # ── Insertion ──

    def insert(self, leaf: int) -> int:
        """
        Append a leaf and return its index.

        Walks from the leaf to the root. At each level a left child is
        paired with the empty subtree and cached as the new frontier node;
        a right child is paired with the cached frontier node on its left.

        Raises:
            InvalidFieldElement: If leaf is not in the scalar field.
            CapacityExceeded: If all 2^height slots are used.
        """
        if not is_field_element(leaf):
            raise InvalidFieldElement(
                "leaf should be inside the field",
                {"leaf": str(leaf)},
            )
        if self._next_index == self.capacity:
            raise CapacityExceeded(
                "Merkle tree is full. No more leaves can be added",
                {"capacity": self.capacity},
            )

        leaf_index = self._next_index
        current_index = leaf_index
        current_hash = leaf
        filled = list(self._filled_subtrees)

        for level in range(self.height):
            if current_index % 2 == 0:
                left, right = current_hash, self._zeros[level]
                filled[level] = current_hash
            else:
                left, right = filled[level], current_hash
            current_hash = self.hasher.hash(left, right)
            current_index //= 2

        # Commit only after every hash succeeded
        self._filled_subtrees = filled
        self._history_index = (self._history_index + 1) % self.root_history_size
        self._roots[self._history_index] = self._current_root
        self._current_root = current_hash
        self._next_index = leaf_index + 1

        root_hex = f"{current_hash:064x}"
        logger.debug(f"[MERKLE] Leaf #{leaf_index} inserted — root={root_hex[:16]}...")
        return leaf_index
