"""
Pydantic Payment Payload Models

Body a wallet POSTs to the payment URL of a NUT-18 payment request.
Proof contents are opaque here; only the face value is read before the
wallet verifies them.
"""
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field


class Proof(BaseModel):
    """Ecash proof as submitted by the paying wallet."""

    amount: int = Field(ge=0)
    id: str = Field(description="Keyset id")
    secret: str
    C: str
    witness: Optional[str] = None
    dleq: Optional[Dict[str, Any]] = None

    model_config = {"extra": "allow"}


class PaymentRequestPayload(BaseModel):
    """NUT-18 payment payload."""

    id: Optional[str] = None
    memo: Optional[str] = None
    mint: str
    unit: Optional[str] = None
    proofs: List[Proof]

    model_config = {
        "json_schema_extra": {
            "example": {
                "id": "0b6f6c0a-8d6c-4f6b-9d5d-3a0f4c3a2e11",
                "memo": None,
                "mint": "https://mint.example.com",
                "unit": "sat",
                "proofs": [
                    {
                        "amount": 64,
                        "id": "009a1f293253e41e",
                        "secret": "407915bc212be61a77e3e6d2aeb4c727980bda51cd06a6afc29e2861768a7837",
                        "C": "02bc9097997d81afb2cc7346b5e4345a9346bd2a506eb7958598a72f0cf85163ea",
                    }
                ],
            }
        }
    }
