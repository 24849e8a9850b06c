"""
Durable Quote Store

Transactional key-value table of quotes keyed by the raw UUID bytes.

compare_and_set_state() is the only mutation path after creation. It runs
the state check and the write as one conditional UPDATE, so SQLite's single
writer lock orders concurrent callers and at most one of them sees the
expected state.
"""
import json
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Awaitable, Callable, Optional
from uuid import UUID

from sqlalchemy import select, update
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker

from ..exceptions import (
    DeserializationError,
    QuoteNotFoundError,
    StorageInitError,
    StorageReadError,
    StorageWriteError,
)
from ..models.quotes import Quote, QuoteState
from .models import QuoteModel

logger = logging.getLogger(__name__)

# Fields stored in the quote_data blob; state has its own column
IMMUTABLE_FIELDS = {"amount", "unit", "created_at"}

TransitionHook = Callable[[AsyncSession], Awaitable[None]]


@dataclass(frozen=True)
class CompareAndSetResult:
    """
    Outcome of compare_and_set_state().

    swapped=True: `quote` is the pre-transition quote and the new state was
    written. swapped=False: the state did not match (StateMismatch) and
    `quote` is the current, unchanged quote.
    """
    quote: Quote
    swapped: bool

    @property
    def state_mismatch(self) -> bool:
        return not self.swapped


def serialize_quote(quote: Quote) -> str:
    return quote.model_dump_json(include=IMMUTABLE_FIELDS)


def deserialize_quote(row: QuoteModel) -> Quote:
    try:
        data = json.loads(row.quote_data)
        return Quote(id=UUID(bytes=row.id), state=row.state, **data)
    except (ValueError, TypeError) as e:
        # json.JSONDecodeError and pydantic.ValidationError are ValueErrors
        raise DeserializationError(f"Corrupt quote record: {e}") from e


def make_session_factory(engine: AsyncEngine) -> async_sessionmaker:
    return async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


class QuoteStore:
    """Quote persistence over a shared async engine."""

    def __init__(self, engine: AsyncEngine):
        self._engine = engine
        self._session_factory = make_session_factory(engine)

    @property
    def engine(self) -> AsyncEngine:
        return self._engine

    async def create(self) -> None:
        """Create the quotes table if absent. Safe to call repeatedly."""
        db_file = self._engine.url.database
        try:
            if db_file and db_file != ":memory:":
                Path(db_file).parent.mkdir(parents=True, exist_ok=True)
            async with self._engine.begin() as conn:
                await conn.run_sync(QuoteModel.__table__.create, checkfirst=True)
        except (OSError, SQLAlchemyError) as e:
            logger.error(f"Failed to initialize quote table at {db_file}: {e}", exc_info=True)
            raise StorageInitError(f"Cannot initialize quote storage at {db_file}: {e}") from e

        logger.debug(f"Quote table ready at {db_file}")

    async def put(self, quote: Quote) -> None:
        """Insert or overwrite the row for quote.id in one write transaction."""
        try:
            record = serialize_quote(quote)
        except (ValueError, TypeError) as e:
            raise StorageWriteError(f"Cannot serialize quote {quote.id}: {e}") from e

        statement = sqlite_insert(QuoteModel).values(
            id=quote.id.bytes,
            quote_data=record,
            state=quote.state.value,
        )
        statement = statement.on_conflict_do_update(
            index_elements=[QuoteModel.id],
            set_={"quote_data": statement.excluded.quote_data, "state": statement.excluded.state},
        )

        try:
            async with self._session_factory() as session:
                async with session.begin():
                    await session.execute(statement)
        except SQLAlchemyError as e:
            logger.error(f"Failed to write quote {quote.id}: {e}", exc_info=True)
            raise StorageWriteError(f"Failed to write quote {quote.id}: {e}") from e

        logger.debug(f"Stored quote {quote.id} state={quote.state.value}")

    async def get(self, quote_id: UUID) -> Quote:
        """Read one quote. Raises QuoteNotFoundError if absent."""
        try:
            async with self._session_factory() as session:
                async with session.begin():
                    result = await session.execute(
                        select(QuoteModel).where(QuoteModel.id == quote_id.bytes)
                    )
                    row = result.scalar_one_or_none()
        except SQLAlchemyError as e:
            logger.error(f"Failed to read quote {quote_id}: {e}", exc_info=True)
            raise StorageReadError(f"Failed to read quote {quote_id}: {e}") from e

        if row is None:
            raise QuoteNotFoundError(quote_id)

        return deserialize_quote(row)

    async def exists(self, quote_id: UUID) -> bool:
        try:
            await self.get(quote_id)
        except QuoteNotFoundError:
            return False
        return True

    async def compare_and_set_state(
        self,
        quote_id: UUID,
        expected: QuoteState,
        new: QuoteState,
        on_transition: Optional[TransitionHook] = None,
    ) -> CompareAndSetResult:
        """
        Atomically move a quote from `expected` to `new`.

        The conditional UPDATE is the first statement of the transaction, so
        the connection takes the write lock before reading anything. On a
        match, `on_transition` runs inside the same transaction before commit;
        if it raises, the state change is rolled back too.

        Raises:
            QuoteNotFoundError: no quote with this id
            StorageWriteError: the transaction could not be committed
            DeserializationError: the stored record is corrupt
        """
        try:
            async with self._session_factory() as session:
                result = await session.execute(
                    update(QuoteModel)
                    .where(QuoteModel.id == quote_id.bytes, QuoteModel.state == expected.value)
                    .values(state=new.value)
                    .execution_options(synchronize_session=False)
                )
                swapped = result.rowcount == 1

                row = (
                    await session.execute(select(QuoteModel).where(QuoteModel.id == quote_id.bytes))
                ).scalar_one_or_none()

                if row is None:
                    await session.rollback()
                    raise QuoteNotFoundError(quote_id)

                current = deserialize_quote(row)

                if not swapped:
                    await session.rollback()
                    logger.info(
                        f"State mismatch for quote {quote_id}: "
                        f"expected {expected.value}, found {current.state.value}"
                    )
                    return CompareAndSetResult(quote=current, swapped=False)

                if on_transition is not None:
                    await on_transition(session)

                await session.commit()
        except SQLAlchemyError as e:
            logger.error(f"Failed to update state of quote {quote_id}: {e}", exc_info=True)
            raise StorageWriteError(f"Failed to update state of quote {quote_id}: {e}") from e

        logger.debug(f"Quote {quote_id} moved {expected.value} -> {new.value}")
        return CompareAndSetResult(quote=current.with_state(expected), swapped=True)
