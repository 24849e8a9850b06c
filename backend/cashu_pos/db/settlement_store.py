"""
Settlement Ledger

Durable record of settlement attempts. A row is written as `pending` before
proofs are handed to the wallet and moved to `redeemed` once the wallet has
accepted them. The move to `committed` happens inside the same transaction
as the quote's Unpaid -> Paid transition, so a `redeemed` row always means
value was received but the quote state was not yet committed.
"""
import logging
import uuid
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import AsyncIterator, List, Optional
from uuid import UUID

from sqlalchemy import select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession

from ..exceptions import (
    SettlementNotFoundError,
    StorageInitError,
    StorageReadError,
    StorageWriteError,
)
from ..models.quotes import CurrencyUnit, utcnow
from ..models.settlements import SettlementAttempt, SettlementStatus
from .models import SettlementModel
from .quote_store import make_session_factory

logger = logging.getLogger(__name__)


def _as_utc(value: Optional[datetime]) -> Optional[datetime]:
    # SQLite drops tzinfo; everything is stored as UTC
    if value is not None and value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def _to_attempt(row: SettlementModel) -> SettlementAttempt:
    return SettlementAttempt(
        id=UUID(row.id),
        quote_id=UUID(bytes=row.quote_id),
        mint=row.mint,
        unit=CurrencyUnit(row.unit),
        amount_received=int(row.amount_received),
        status=SettlementStatus(row.status),
        error=row.error,
        created_at=_as_utc(row.created_at),
        updated_at=_as_utc(row.updated_at),
    )


class SettlementStore:
    """Settlement attempt persistence over the engine shared with QuoteStore."""

    def __init__(self, engine: AsyncEngine):
        self._engine = engine
        self._session_factory = make_session_factory(engine)

    async def create(self) -> None:
        """Create the settlements table if absent."""
        try:
            async with self._engine.begin() as conn:
                await conn.run_sync(SettlementModel.__table__.create, checkfirst=True)
        except SQLAlchemyError as e:
            logger.error(f"Failed to initialize settlements table: {e}", exc_info=True)
            raise StorageInitError(f"Cannot initialize settlement storage: {e}") from e

    @asynccontextmanager
    async def _write(self, session: Optional[AsyncSession]) -> AsyncIterator[AsyncSession]:
        """
        Yield a session for a write.

        A caller-supplied session is used as-is and committed by the caller;
        otherwise a new session is opened and committed here.
        """
        if session is not None:
            yield session
            return

        try:
            async with self._session_factory() as own_session:
                async with own_session.begin():
                    yield own_session
        except SQLAlchemyError as e:
            logger.error(f"Failed to write settlement attempt: {e}", exc_info=True)
            raise StorageWriteError(f"Failed to write settlement attempt: {e}") from e

    async def record_pending(
        self,
        quote_id: UUID,
        mint: str,
        unit: CurrencyUnit,
        amount_received: int,
    ) -> SettlementAttempt:
        """Record an attempt before its proofs are redeemed."""
        attempt = SettlementAttempt(
            id=uuid.uuid4(),
            quote_id=quote_id,
            mint=mint,
            unit=unit,
            amount_received=amount_received,
        )

        async with self._write(None) as session:
            session.add(SettlementModel(
                id=str(attempt.id),
                quote_id=quote_id.bytes,
                mint=mint,
                unit=unit.value,
                amount_received=str(amount_received),
                status=attempt.status.value,
                created_at=attempt.created_at,
                updated_at=attempt.updated_at,
            ))

        logger.debug(f"Recorded pending settlement {attempt.id} for quote {quote_id}")
        return attempt

    async def set_status(
        self,
        attempt_id: UUID,
        status: SettlementStatus,
        error: Optional[str] = None,
        session: Optional[AsyncSession] = None,
        unless: Optional[SettlementStatus] = None,
    ) -> bool:
        """
        Update the status of an attempt.

        Pass `session` to join a transaction opened elsewhere (the quote
        state commit). With `unless`, an attempt already in that status is
        left untouched; the check and the write are one statement.

        Returns:
            True if the row was updated
        """
        statement = update(SettlementModel).where(SettlementModel.id == str(attempt_id))
        if unless is not None:
            statement = statement.where(SettlementModel.status != unless.value)
        statement = statement.values(
            status=status.value,
            error=error,
            updated_at=utcnow(),
        ).execution_options(synchronize_session=False)

        async with self._write(session) as active:
            result = await active.execute(statement)
            if result.rowcount == 0:
                exists = (
                    await active.execute(select(SettlementModel.id).where(SettlementModel.id == str(attempt_id)))
                ).scalar_one_or_none()
                if exists is None:
                    raise SettlementNotFoundError(attempt_id)
                logger.debug(f"Settlement {attempt_id} already {unless.value}, not moved to {status.value}")
                return False

        logger.debug(f"Settlement {attempt_id} -> {status.value}")
        return True

    async def mark_redeemed(self, attempt_id: UUID) -> None:
        await self.set_status(attempt_id, SettlementStatus.REDEEMED)

    async def mark_failed(self, attempt_id: UUID, error: str) -> None:
        await self.set_status(attempt_id, SettlementStatus.FAILED, error=error)

    async def mark_committed(
        self,
        attempt_id: UUID,
        session: Optional[AsyncSession] = None,
        note: Optional[str] = None,
        if_uncommitted: bool = False,
    ) -> bool:
        unless = SettlementStatus.COMMITTED if if_uncommitted else None
        return await self.set_status(
            attempt_id, SettlementStatus.COMMITTED, error=note, session=session, unless=unless
        )

    async def get(self, attempt_id: UUID) -> SettlementAttempt:
        try:
            async with self._session_factory() as session:
                row = (
                    await session.execute(select(SettlementModel).where(SettlementModel.id == str(attempt_id)))
                ).scalar_one_or_none()
        except SQLAlchemyError as e:
            raise StorageReadError(f"Failed to read settlement {attempt_id}: {e}") from e

        if row is None:
            raise SettlementNotFoundError(attempt_id)
        return _to_attempt(row)

    async def list_by_status(
        self,
        status: SettlementStatus,
        updated_before: Optional[datetime] = None,
        limit: int = 100,
    ) -> List[SettlementAttempt]:
        """Attempts in `status`, oldest first."""
        query = select(SettlementModel).where(SettlementModel.status == status.value)
        if updated_before is not None:
            query = query.where(SettlementModel.updated_at < updated_before)
        query = query.order_by(SettlementModel.updated_at).limit(limit)

        try:
            async with self._session_factory() as session:
                rows = (await session.execute(query)).scalars().all()
        except SQLAlchemyError as e:
            logger.error(f"Failed to list {status.value} settlements: {e}", exc_info=True)
            raise StorageReadError(f"Failed to list settlements: {e}") from e

        return [_to_attempt(row) for row in rows]

    async def list_for_quote(self, quote_id: UUID) -> List[SettlementAttempt]:
        try:
            async with self._session_factory() as session:
                rows = (
                    await session.execute(
                        select(SettlementModel)
                        .where(SettlementModel.quote_id == quote_id.bytes)
                        .order_by(SettlementModel.created_at)
                    )
                ).scalars().all()
        except SQLAlchemyError as e:
            raise StorageReadError(f"Failed to list settlements for {quote_id}: {e}") from e

        return [_to_attempt(row) for row in rows]
