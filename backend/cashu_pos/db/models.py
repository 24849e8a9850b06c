"""
SQLAlchemy ORM Models for the Cashu POS

quotes: one row per quote keyed by the raw 16 byte UUID. Immutable fields
live in the quote_data JSON blob; state is its own column so it can be
compared and set in a single statement.

settlements: one row per settlement attempt, the durable marker between
redeeming proofs and committing the quote state.
"""
from datetime import datetime, timezone

from sqlalchemy import CheckConstraint, Column, DateTime, ForeignKey, LargeBinary, String, Text
from sqlalchemy.orm import declarative_base

Base = declarative_base()


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class QuoteModel(Base):
    """ORM model for quotes table."""
    __tablename__ = "quotes"

    id = Column(LargeBinary(16), primary_key=True)
    quote_data = Column(Text, nullable=False)  # JSON blob
    state = Column(String, nullable=False, index=True)

    __table_args__ = (
        CheckConstraint("state IN ('Unpaid', 'Paid')", name="quote_state_check"),
    )


class SettlementModel(Base):
    """ORM model for settlements table."""
    __tablename__ = "settlements"

    id = Column(String, primary_key=True)
    quote_id = Column(LargeBinary(16), ForeignKey("quotes.id"), nullable=False, index=True)
    mint = Column(String, nullable=False)
    unit = Column(String, nullable=False)
    amount_received = Column(String, nullable=False)  # u64 does not fit SQLite INTEGER
    status = Column(String, nullable=False, index=True)
    error = Column(Text)
    created_at = Column(DateTime(timezone=True), nullable=False, default=_utcnow)
    updated_at = Column(DateTime(timezone=True), nullable=False, default=_utcnow, onupdate=_utcnow, index=True)

    __table_args__ = (
        CheckConstraint(
            "status IN ('pending', 'redeemed', 'committed', 'failed')",
            name="settlement_status_check"
        ),
    )
