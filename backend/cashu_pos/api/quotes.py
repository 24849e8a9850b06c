"""
Quote API Endpoints

GET  /create?amount=<uint>&unit=<sat|usd>  create a quote and its payment request
POST /payment                              NUT-18 payment payload callback
GET  /check/{id}                           quote state
GET  /info                                 accepted mints and units

Request parameters are taken as raw strings and parsed by the validation
layer so malformed input maps onto the POS error codes rather than a
generic 422.
"""
import logging
from typing import Optional

from fastapi import APIRouter, Depends, Query, Request, Response

from ..models.payments import PaymentRequestPayload
from ..models.quotes import CreateQuoteResponse, PosInfoResponse, QuoteStateResponse
from ..services.quote_service import QuoteService
from ..services.validation import parse_amount, parse_currency_unit

logger = logging.getLogger(__name__)

router = APIRouter()


def get_quote_service(request: Request) -> QuoteService:
    """FastAPI dependency returning the service built at startup."""
    return request.app.state.quote_service


@router.get("/create", response_model=CreateQuoteResponse)
async def create_quote_endpoint(
    amount: Optional[str] = Query(None, description="Amount in the quote unit"),
    unit: Optional[str] = Query(None, description="sat (default) or usd"),
    service: QuoteService = Depends(get_quote_service),
) -> CreateQuoteResponse:
    """
    Create a payment quote.

    Example:
        GET /create?amount=100&unit=sat
        -> {"checking_id": "<uuid>", "payment_request": "creqA..."}
    """
    parsed_amount = parse_amount(amount)
    parsed_unit = parse_currency_unit(unit, service.allowed_units)

    logger.debug(f"Received quote request with amount: {parsed_amount} {parsed_unit.value}")

    return await service.create_quote(parsed_amount, parsed_unit)


@router.get("/check/{quote_id}", response_model=QuoteStateResponse)
async def get_quote_state_endpoint(
    quote_id: str,
    service: QuoteService = Depends(get_quote_service),
) -> QuoteStateResponse:
    """
    Get the state of a quote.

    Example:
        GET /check/0b6f6c0a-8d6c-4f6b-9d5d-3a0f4c3a2e11
        -> {"id": "0b6f6c0a-...", "state": "Unpaid"}
    """
    logger.debug(f"Received quote state request for ID: {quote_id}")

    quote = await service.get_quote_state(quote_id)
    return QuoteStateResponse(id=quote.id, state=quote.state)


@router.post("/payment")
async def receive_payment_endpoint(
    payload: PaymentRequestPayload,
    service: QuoteService = Depends(get_quote_service),
) -> Response:
    """
    Receive ecash for a quote.

    Responds 200 with an empty body once the quote is settled.
    """
    logger.debug(f"Received payment for mint: {payload.mint}")

    await service.settle_payment(payload.mint, payload.id, payload.proofs)
    return Response(status_code=200)


@router.get("/info", response_model=PosInfoResponse)
async def get_info_endpoint(
    service: QuoteService = Depends(get_quote_service),
) -> PosInfoResponse:
    return PosInfoResponse(
        accepted_mints=service.accepted_mints,
        units=service.allowed_units,
    )
