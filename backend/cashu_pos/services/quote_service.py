"""
Quote Lifecycle Service

Creates quotes, reports their state and settles incoming payments.

Settlement order for a payment submission:
    1. mint is accepted                 5. proof amounts sum without overflow
    2. quote id parses                  6. sum covers the quote amount
    3. quote exists                     7. a wallet exists for (mint, unit)
    4. quote is Unpaid                  8. wallet redeems the proofs
                                        9. quote moves Unpaid -> Paid

Steps 1-7 reject without side effects. Step 8 is the point of no return:
from there on the work is shielded from caller cancellation, and the
settlement ledger records the attempt so step 9 can be retried by the
reconciler if it fails.
"""
import asyncio
import logging
import uuid
from typing import Iterable, List, Optional, Sequence, Union
from uuid import UUID

from ..db.quote_store import QuoteStore
from ..db.settlement_store import SettlementStore
from ..exceptions import (
    AmountOverflowError,
    InsufficientPaymentError,
    InvalidAmountError,
    InvalidQuoteStateError,
    ProofVerificationError,
    StorageError,
    UnsupportedCurrencyUnitError,
    UnsupportedMintError,
    WalletNotFoundError,
)
from ..models.payments import Proof
from ..models.quotes import (
    ALLOWED_UNITS,
    MAX_AMOUNT,
    CreateQuoteResponse,
    CurrencyUnit,
    Quote,
    QuoteState,
)
from ..models.settlements import SettlementAttempt
from ..protocol.payment_request import build_payment_request
from ..wallets.base import WalletProvider
from .validation import normalize_mint_url, parse_quote_id

logger = logging.getLogger(__name__)


def sum_proof_amounts(proofs: Sequence[Proof]) -> int:
    """Total face value of `proofs`; AmountOverflowError above the u64 range."""
    total = sum(proof.amount for proof in proofs)
    if total > MAX_AMOUNT:
        raise AmountOverflowError(total)
    return total


def _log_detached_failure(task: "asyncio.Future[None]") -> None:
    # Nobody awaits a settlement whose caller was cancelled; retrieve its
    # outcome here
    if task.cancelled():
        return
    error = task.exception()
    if error is not None:
        logger.error(f"Settlement finished after its caller was cancelled: {error}")


class QuoteService:
    """
    Quote lifecycle manager.

    All collaborators are injected; the service holds no quote state of its
    own and re-reads the store on every call.
    """

    def __init__(
        self,
        store: QuoteStore,
        settlements: SettlementStore,
        wallets: WalletProvider,
        accepted_mints: Iterable[str],
        payment_url: str,
        allowed_units: Iterable[CurrencyUnit] = ALLOWED_UNITS,
    ):
        self._store = store
        self._settlements = settlements
        self._wallets = wallets
        self._payment_url = payment_url
        self._allowed_units = tuple(allowed_units)

        self._accepted_mints: List[str] = []
        for mint in accepted_mints:
            try:
                self._accepted_mints.append(normalize_mint_url(mint))
            except UnsupportedMintError:
                raise ValueError(f"Invalid accepted mint URL in configuration: {mint!r}")

    @property
    def accepted_mints(self) -> List[str]:
        return list(self._accepted_mints)

    @property
    def allowed_units(self) -> List[CurrencyUnit]:
        return list(self._allowed_units)

    # ========================================================================
    # Create
    # ========================================================================

    async def create_quote(
        self,
        amount: int,
        unit: CurrencyUnit,
        mints: Optional[Sequence[str]] = None,
        payment_url: Optional[str] = None,
    ) -> CreateQuoteResponse:
        """
        Create an Unpaid quote and its payment request.

        Args:
            amount: Required payment value, > 0
            unit: Currency unit, one of the allowed units
            mints: Mints the payer may use (defaults to the accepted mints)
            payment_url: Callback target for the payment payload

        Returns:
            Quote id and the encoded payment request

        Raises:
            InvalidAmountError, UnsupportedCurrencyUnitError,
            TransportBuildError, StorageWriteError
        """
        if amount <= 0 or amount > MAX_AMOUNT:
            raise InvalidAmountError(str(amount))
        if unit not in self._allowed_units:
            raise UnsupportedCurrencyUnitError(unit.value, self._allowed_units)

        quote_id = uuid.uuid4()
        payment_request = build_payment_request(
            payment_id=str(quote_id),
            amount=amount,
            unit=unit.value,
            mints=self._accepted_mints if mints is None else mints,
            payment_url=self._payment_url if payment_url is None else payment_url,
        )

        quote = Quote(id=quote_id, amount=amount, unit=unit)
        await self._store.put(quote)

        logger.info(f"Created new quote: {quote_id} for {amount} {unit.value}")

        return CreateQuoteResponse(
            checking_id=quote_id,
            payment_request=payment_request.encode(),
        )

    # ========================================================================
    # Check
    # ========================================================================

    async def get_quote_state(self, quote_id: Union[str, UUID]) -> Quote:
        """
        Read a quote.

        Raises:
            InvalidIdentifierError: quote_id is not a UUID
            QuoteNotFoundError: no such quote
        """
        if not isinstance(quote_id, UUID):
            quote_id = parse_quote_id(quote_id)
        return await self._store.get(quote_id)

    # ========================================================================
    # Settle
    # ========================================================================

    async def settle_payment(
        self,
        mint: str,
        claimed_id: Optional[str],
        proofs: Sequence[Proof],
    ) -> None:
        """
        Settle a payment submission against its quote.

        Returns nothing on success. A submission that loses a race against a
        concurrent settlement of the same quote also succeeds, without
        crediting the quote twice.
        """
        try:
            mint_url = normalize_mint_url(mint)
        except UnsupportedMintError:
            logger.warning(f"Payment from malformed mint URL: {mint!r}")
            raise
        if mint_url not in self._accepted_mints:
            logger.warning(f"Payment from unsupported mint: {mint_url}")
            raise UnsupportedMintError(mint_url)

        quote_id = parse_quote_id(claimed_id)
        quote = await self._store.get(quote_id)

        if quote.state != QuoteState.UNPAID:
            logger.warning(f"Quote {quote_id} has invalid state: {quote.state.value}")
            raise InvalidQuoteStateError(quote_id, quote.state)

        received = sum_proof_amounts(proofs)
        if received < quote.amount:
            logger.warning(f"Insufficient payment for {quote_id}: expected {quote.amount}, received {received}")
            raise InsufficientPaymentError(expected=quote.amount, received=received)

        wallet = await self._wallets.get_wallet(mint_url, quote.unit)
        if wallet is None:
            logger.warning(f"Wallet not created for {mint_url} with unit {quote.unit.value}")
            raise WalletNotFoundError(mint_url, quote.unit)

        # Redemption cannot be rolled back, so it and the commit finish even if
        # the caller goes away.
        settlement = asyncio.ensure_future(self._redeem_and_commit(quote, mint_url, received, wallet, proofs))
        try:
            await asyncio.shield(settlement)
        except asyncio.CancelledError:
            settlement.add_done_callback(_log_detached_failure)
            raise

        logger.info(f"Payment processing completed for quote {quote_id}")

    async def _redeem_and_commit(
        self,
        quote: Quote,
        mint_url: str,
        received: int,
        wallet,
        proofs: Sequence[Proof],
    ) -> None:
        attempt = await self._settlements.record_pending(quote.id, mint_url, quote.unit, received)

        try:
            amount = await wallet.receive_proofs(proofs)
        except ProofVerificationError as e:
            logger.error(f"Could not receive proofs for {quote.id}: {e.message}")
            await self._settlements.mark_failed(attempt.id, e.message)
            raise
        except Exception as e:
            logger.error(f"Could not receive proofs for {quote.id}: {e}", exc_info=True)
            await self._settlements.mark_failed(attempt.id, str(e))
            raise ProofVerificationError(str(e)) from e

        logger.info(f"Successfully received payment of {amount} {quote.unit.value} for quote {quote.id}")

        try:
            await self._settlements.mark_redeemed(attempt.id)
        except StorageError:
            logger.error(
                f"Settlement {attempt.id} for quote {quote.id} redeemed but not recorded as such",
                exc_info=True,
            )

        try:
            await self.commit_settlement(attempt)
        except StorageError:
            logger.error(
                f"Quote {quote.id} was paid but its state could not be committed; "
                f"settlement {attempt.id} left for reconciliation",
                exc_info=True,
            )
            raise

    async def commit_settlement(self, attempt: SettlementAttempt) -> bool:
        """
        Move the attempt's quote to Paid and mark the attempt committed.

        Idempotent: re-running it for an already committed attempt changes
        nothing. Never calls the wallet.

        Returns:
            True if this call performed the Unpaid -> Paid transition
        """
        async def mark_committed(session) -> None:
            await self._settlements.mark_committed(attempt.id, session=session)

        result = await self._store.compare_and_set_state(
            attempt.quote_id,
            QuoteState.UNPAID,
            QuoteState.PAID,
            on_transition=mark_committed,
        )

        if result.swapped:
            logger.info(f"Quote {attempt.quote_id} marked Paid (settlement {attempt.id})")
            return True

        # Either another settlement moved the quote, or this attempt was
        # committed concurrently and must keep its credited record
        marked = await self._settlements.mark_committed(
            attempt.id, note="quote already paid", if_uncommitted=True
        )
        if marked:
            logger.warning(
                f"Quote {attempt.quote_id} already {result.quote.state.value}; "
                f"settlement {attempt.id} not credited again"
            )
        return False
