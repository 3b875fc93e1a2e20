from typing import List
from pydantic import BaseModel, Field

class Proof(BaseModel):
    """Groth16 proof as exported by snarkjs (`proof.json`)."""
    pi_a: List[str] = Field(..., min_length=2)
    pi_b: List[List[str]] = Field(..., min_length=2)
    pi_c: List[str] = Field(..., min_length=2)
    protocol: str = "groth16"
    curve: str = "bn128"
