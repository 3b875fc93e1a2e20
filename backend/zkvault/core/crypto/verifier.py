"""
Proof Verifier — Groth16 membership-proof check for borrow/withdraw.

The vault never constructs proofs. An external prover turns the private
witness (secret, nullifier, Merkle path) into a Groth16 proof whose public
inputs are `[root, nullifier_id]`; this module only answers
`verify(a, b, c, public_inputs) -> bool`.

SnarkjsVerifier shells out to `snarkjs groth16 verify` with the verification
key exported by `snarkjs zkey export verificationkey`.
"""

import json
import logging
import os
import shlex
import subprocess
import tempfile
from typing import List, Optional, Protocol, Sequence

from zkvault.schemas.zkp import Proof

logger = logging.getLogger(__name__)


class ProofVerifier(Protocol):
    """Verifier capability consumed by the vault controller."""

    def verify(
        self,
        proof_a: Sequence[str],
        proof_b: Sequence[Sequence[str]],
        proof_c: Sequence[str],
        public_inputs: Sequence[int],
    ) -> bool:
        ...


class SnarkjsVerifier:
    def __init__(
        self,
        verification_key_path: str,
        command: str = "npx snarkjs",
        timeout: Optional[float] = 60.0,
    ):
        self.vk_path = os.path.abspath(verification_key_path)
        self.command = shlex.split(command)
        self.timeout = timeout

        if not os.path.exists(self.vk_path):
            logger.warning(f"[VERIFIER] Verification key not found at {self.vk_path}. Proof verification will fail.")

    def verify(
        self,
        proof_a: Sequence[str],
        proof_b: Sequence[Sequence[str]],
        proof_c: Sequence[str],
        public_inputs: Sequence[int],
    ) -> bool:
        """
        Verifies a Groth16 proof using snarkjs via CLI.

        Public inputs are written as decimal strings, the format snarkjs
        emits in `public.json`. A non-zero exit status is a rejection;
        failure to launch snarkjs at all propagates to the caller.
        """
        proof = Proof(
            pi_a=[str(x) for x in proof_a],
            pi_b=[[str(x) for x in row] for row in proof_b],
            pi_c=[str(x) for x in proof_c],
        )
        signals: List[str] = [str(int(x)) for x in public_inputs]

        with tempfile.TemporaryDirectory(prefix="zkvault-verify-") as workdir:
            proof_path = os.path.join(workdir, "proof.json")
            public_path = os.path.join(workdir, "public.json")
            with open(proof_path, "w") as f:
                json.dump(proof.model_dump(), f)
            with open(public_path, "w") as f:
                json.dump(signals, f)

            # snarkjs groth16 verify verification_key.json public.json proof.json
            cmd = self.command + ["groth16", "verify", self.vk_path, public_path, proof_path]
            result = subprocess.run(cmd, capture_output=True, text=True, timeout=self.timeout)

        if result.returncode == 0 and "OK" in result.stdout:
            logger.info("[VERIFIER] Groth16 verification successful")
            return True

        logger.warning(f"[VERIFIER] Groth16 verification failed: {(result.stderr or result.stdout).strip()}")
        return False
