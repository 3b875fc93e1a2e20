from typing import Annotated, Any

from pydantic import BaseModel, BeforeValidator, Field, PlainSerializer

from zkvault.schemas.zkp import Proof


def _parse_uint(value: Any) -> Any:
    """Accept ints, decimal strings and 0x-prefixed hex strings."""
    if isinstance(value, str):
        text = value.strip()
        try:
            return int(text, 16) if text.lower().startswith("0x") else int(text, 10)
        except ValueError:
            raise ValueError(f"not an unsigned integer: {value!r}") from None
    return value


# Field elements and token amounts overflow JS numbers; exchanged as strings
Uint = Annotated[
    int,
    BeforeValidator(_parse_uint),
    Field(ge=0),
    PlainSerializer(lambda v: str(v), return_type=str, when_used="json"),
]


class DepositRequest(BaseModel):
    commitment: Uint
    value: Uint


class DepositResponse(BaseModel):
    leaf_index: int
    root: Uint


class BorrowRequest(BaseModel):
    proof: Proof
    root: Uint
    nullifier_id: Uint
    recipient: str = Field(..., min_length=1)
    amount: Uint


class WithdrawRequest(BaseModel):
    proof: Proof
    root: Uint
    nullifier_id: Uint
    recipient: str = Field(..., min_length=1)
    repayment_amount: Uint


class PositionOut(BaseModel):
    nullifier_id: Uint
    initialized: bool = False
    fully_withdrawn: bool = False
    collateral_amount: Uint = 0
    debt_amount: Uint = 0


class WithdrawResponse(BaseModel):
    collateral_released: Uint
    position: PositionOut


class MaxBorrowOut(BaseModel):
    nullifier_id: Uint
    max_borrow: Uint


class RootOut(BaseModel):
    root: Uint
    next_index: int
    tree_height: int


class RootKnownOut(BaseModel):
    root: Uint
    known: bool


class EstimateOut(BaseModel):
    amount: Uint
    estimate: Uint
    price: Uint


class SessionRequest(BaseModel):
    address: str = Field(..., min_length=1)
    issued_at: int
    signature: str = Field(..., min_length=1)


class SessionOut(BaseModel):
    token: str
    expires_at: str
    address: str
