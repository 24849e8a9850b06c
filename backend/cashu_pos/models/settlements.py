"""
Pydantic Settlement Attempt Model

Durable record of one redemption of a submitted payment. It marks the
window between redeeming proofs at the mint and committing the quote state.
"""
from datetime import datetime
from enum import Enum
from typing import Optional
from uuid import UUID

from pydantic import BaseModel, Field

from .quotes import CurrencyUnit, utcnow


class SettlementStatus(str, Enum):
    PENDING = "pending"      # recorded, proofs not yet redeemed
    REDEEMED = "redeemed"    # wallet accepted the proofs, quote not yet Paid
    COMMITTED = "committed"  # quote state transition done
    FAILED = "failed"        # wallet rejected the proofs


class SettlementAttempt(BaseModel):
    id: UUID
    quote_id: UUID
    mint: str
    unit: CurrencyUnit
    amount_received: int = Field(ge=0)
    status: SettlementStatus = SettlementStatus.PENDING
    error: Optional[str] = None
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)
