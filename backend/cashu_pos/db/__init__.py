"""
Database package for the Cashu POS.

Exports the engine factory, ORM models and the quote and settlement stores.
"""
from .init_db import create_engine, database_url
from .models import Base, QuoteModel, SettlementModel
from .quote_store import CompareAndSetResult, QuoteStore
from .settlement_store import SettlementStore

__all__ = [
    "create_engine",
    "database_url",
    "Base",
    "QuoteModel",
    "SettlementModel",
    "CompareAndSetResult",
    "QuoteStore",
    "SettlementStore",
]
