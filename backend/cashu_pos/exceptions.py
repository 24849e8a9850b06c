"""
POS Exception Hierarchy

Every error raised by the quote lifecycle carries a stable error code with a
pos: prefix and a kind that decides the HTTP status class.
"""
from enum import Enum
from typing import Any, Dict, Iterable, Optional
from uuid import UUID


class ErrorKind(str, Enum):
    """Error taxonomy used to pick the HTTP status."""
    INVALID_INPUT = "invalid_input"
    NOT_FOUND = "not_found"
    CONFLICT = "conflict"
    UPSTREAM = "upstream"
    STORAGE = "storage"
    INTERNAL = "internal"


STATUS_BY_KIND = {
    ErrorKind.INVALID_INPUT: 400,
    ErrorKind.NOT_FOUND: 404,
    ErrorKind.CONFLICT: 400,
    ErrorKind.UPSTREAM: 500,
    ErrorKind.STORAGE: 500,
    ErrorKind.INTERNAL: 500,
}

# Kinds whose message and details never reach the caller
OPAQUE_KINDS = {ErrorKind.UPSTREAM, ErrorKind.STORAGE, ErrorKind.INTERNAL}


class PosError(Exception):
    """
    Base exception for all POS errors.

    Subclasses fix `kind` and `public_message`. The full message and details
    are kept for logging; `to_dict()` hides them for opaque kinds.
    """

    kind: ErrorKind = ErrorKind.INTERNAL
    public_message: str = "An unexpected error occurred"

    def __init__(
        self,
        error_code: str,
        message: str,
        details: Optional[Dict[str, Any]] = None
    ):
        self.error_code = error_code
        self.message = message
        self.details = details or {}
        super().__init__(message)

    @property
    def status_code(self) -> int:
        return STATUS_BY_KIND[self.kind]

    @property
    def is_opaque(self) -> bool:
        return self.kind in OPAQUE_KINDS

    def to_dict(self) -> Dict[str, Any]:
        """Convert exception to API error response format."""
        if self.is_opaque:
            return {
                "error_code": self.error_code,
                "message": self.public_message,
                "details": {},
            }
        return {
            "error_code": self.error_code,
            "message": self.message,
            "details": self.details,
        }


# ============================================================================
# Invalid input (400)
# ============================================================================

class InvalidAmountError(PosError):
    """Amount missing, not an integer, not positive or out of range."""

    kind = ErrorKind.INVALID_INPUT

    def __init__(self, value: Optional[str], reason: str = "must be a positive integer"):
        super().__init__(
            "pos:request:invalid_amount",
            f"Invalid amount {value!r}: {reason}",
            {"amount": value},
        )


class InvalidIdentifierError(PosError):
    """Quote identifier is not a UUID."""

    kind = ErrorKind.INVALID_INPUT

    def __init__(self, value: Optional[str]):
        shown = value if value is not None else "missing"
        super().__init__(
            "pos:request:invalid_identifier",
            f"Invalid UUID format: {shown}",
            {"id": value},
        )


class InvalidPaymentPayloadError(PosError):
    """Payment body could not be parsed."""

    kind = ErrorKind.INVALID_INPUT

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__("pos:request:invalid_payload", message, details)


class AmountOverflowError(PosError):
    """Sum of proof amounts does not fit in an unsigned 64 bit amount."""

    kind = ErrorKind.INVALID_INPUT

    def __init__(self, total: int):
        super().__init__(
            "pos:payment:amount_overflow",
            "Failed to sum proof amounts: total exceeds maximum amount",
            {"total": str(total)},
        )


# ============================================================================
# Not found (404)
# ============================================================================

class QuoteNotFoundError(PosError):
    kind = ErrorKind.NOT_FOUND

    def __init__(self, quote_id: UUID):
        self.quote_id = quote_id
        super().__init__(
            "pos:quote:not_found",
            f"Quote not found: {quote_id}",
            {"id": str(quote_id)},
        )


# ============================================================================
# Conflict (400)
# ============================================================================

class UnsupportedCurrencyUnitError(PosError):
    kind = ErrorKind.CONFLICT

    def __init__(self, given: str, allowed: Iterable[Any]):
        allowed_values = [getattr(unit, "value", unit) for unit in allowed]
        super().__init__(
            "pos:request:unsupported_unit",
            f"Unsupported currency unit: {given}. "
            f"Allowed units are: {', '.join(allowed_values)}",
            {"given": given, "allowed": allowed_values},
        )


class UnsupportedMintError(PosError):
    kind = ErrorKind.CONFLICT

    def __init__(self, mint: str):
        super().__init__(
            "pos:payment:unsupported_mint",
            f"Unsupported mint: {mint}",
            {"mint": mint},
        )


class InvalidQuoteStateError(PosError):
    kind = ErrorKind.CONFLICT

    def __init__(self, quote_id: UUID, state: Any):
        state_value = getattr(state, "value", state)
        super().__init__(
            "pos:quote:invalid_state",
            f"Quote {quote_id} has invalid state: {state_value}",
            {"id": str(quote_id), "state": state_value},
        )


class InsufficientPaymentError(PosError):
    kind = ErrorKind.CONFLICT

    def __init__(self, expected: int, received: int):
        self.expected = expected
        self.received = received
        super().__init__(
            "pos:payment:insufficient",
            f"Insufficient payment: expected {expected}, received {received}",
            {"expected": expected, "received": received},
        )


# ============================================================================
# Upstream (500)
# ============================================================================

class TransportBuildError(PosError):
    """Payment request transport could not be built from the payment URL."""

    kind = ErrorKind.INTERNAL
    public_message = "Failed to build payment request"

    def __init__(self, message: str):
        super().__init__("pos:quote:transport_build", message)


class WalletNotFoundError(PosError):
    kind = ErrorKind.UPSTREAM
    public_message = "Wallet not available for this mint and unit"

    def __init__(self, mint: str, unit: Any):
        unit_value = getattr(unit, "value", unit)
        super().__init__(
            "pos:wallet:not_found",
            f"Wallet not created for {mint} with unit {unit_value}",
            {"mint": mint, "unit": unit_value},
        )


class ProofVerificationError(PosError):
    kind = ErrorKind.UPSTREAM
    public_message = "Proof verification failed"

    def __init__(self, message: str):
        super().__init__("pos:payment:proof_verification", message)


# ============================================================================
# Storage (500)
# ============================================================================

class StorageError(PosError):
    kind = ErrorKind.STORAGE
    public_message = "Database error"


class StorageInitError(StorageError):
    def __init__(self, message: str):
        super().__init__("pos:storage:init", message)


class StorageReadError(StorageError):
    def __init__(self, message: str):
        super().__init__("pos:storage:read", message)


class StorageWriteError(StorageError):
    def __init__(self, message: str):
        super().__init__("pos:storage:write", message)


class DeserializationError(StorageError):
    def __init__(self, message: str):
        super().__init__("pos:storage:deserialize", message)


class SettlementNotFoundError(StorageError):
    def __init__(self, attempt_id: UUID):
        super().__init__(
            "pos:storage:settlement_not_found",
            f"Settlement attempt not found: {attempt_id}",
        )


# ============================================================================
# Internal (500)
# ============================================================================

class InternalError(PosError):
    def __init__(self, message: str):
        super().__init__("pos:internal", message)
