"""
Pydantic Quote Model

A quote is a payment obligation for a fixed amount and unit. Its id, amount
and unit never change; state moves from Unpaid to Paid once.
"""
from datetime import datetime, timezone
from enum import Enum
from typing import List
from uuid import UUID

from pydantic import BaseModel, Field

# Amounts are unsigned 64 bit on the wire
MAX_AMOUNT = 2**64 - 1


class QuoteState(str, Enum):
    UNPAID = "Unpaid"
    PAID = "Paid"


class CurrencyUnit(str, Enum):
    """Currency units known to the token protocol."""
    SAT = "sat"
    MSAT = "msat"
    USD = "usd"
    EUR = "eur"


# Units this terminal issues quotes in: the base unit and one fiat-pegged unit
ALLOWED_UNITS = (CurrencyUnit.SAT, CurrencyUnit.USD)
DEFAULT_UNIT = CurrencyUnit.SAT


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Quote(BaseModel):
    """Payment obligation tracked by the POS."""

    id: UUID
    amount: int = Field(gt=0, le=MAX_AMOUNT)
    unit: CurrencyUnit
    state: QuoteState = QuoteState.UNPAID
    created_at: datetime = Field(default_factory=utcnow)

    model_config = {"frozen": True}

    def with_state(self, state: QuoteState) -> "Quote":
        return self.model_copy(update={"state": state})


# ============================================================================
# API response models
# ============================================================================

class CreateQuoteResponse(BaseModel):
    checking_id: UUID
    payment_request: str


class QuoteStateResponse(BaseModel):
    id: UUID
    state: QuoteState


class PosInfoResponse(BaseModel):
    accepted_mints: List[str]
    units: List[CurrencyUnit]
