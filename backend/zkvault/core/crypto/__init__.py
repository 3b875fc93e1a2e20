"""
zkVault cryptographic capabilities.

Public API:
    - FieldHasher / KeccakFieldHasher / Sha256FieldHasher: pair hashes over the BN254 field.
    - ProofVerifier / SnarkjsVerifier: Groth16 check over public inputs [root, nullifier_id].
    - Note / MerklePath: client-side witness helpers for the external prover.
"""

from zkvault.core.crypto.hasher import (
    FIELD_SIZE,
    ZERO_VALUE,
    FieldHasher,
    KeccakFieldHasher,
    Sha256FieldHasher,
    compute_zeros,
    get_hasher,
    is_field_element,
)
from zkvault.core.crypto.notes import (
    MerklePath,
    Note,
    build_merkle_path,
    compute_root,
    generate_note,
)
from zkvault.core.crypto.verifier import ProofVerifier, SnarkjsVerifier

__all__ = [
    "FIELD_SIZE",
    "ZERO_VALUE",
    "FieldHasher",
    "KeccakFieldHasher",
    "Sha256FieldHasher",
    "compute_zeros",
    "get_hasher",
    "is_field_element",
    "MerklePath",
    "Note",
    "build_merkle_path",
    "compute_root",
    "generate_note",
    "ProofVerifier",
    "SnarkjsVerifier",
]
