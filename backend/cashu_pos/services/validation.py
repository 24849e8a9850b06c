"""
Request Validation

Pure parsing of untrusted request input. Nothing here touches storage or the
network; every function either returns a typed value or raises a PosError
with no side effects.
"""
from typing import Iterable, Optional
from uuid import UUID

from pydantic import AnyHttpUrl, TypeAdapter, ValidationError

from ..exceptions import (
    InvalidAmountError,
    InvalidIdentifierError,
    UnsupportedCurrencyUnitError,
    UnsupportedMintError,
)
from ..models.quotes import ALLOWED_UNITS, DEFAULT_UNIT, MAX_AMOUNT, CurrencyUnit

_http_url = TypeAdapter(AnyHttpUrl)


def parse_amount(value: Optional[str]) -> int:
    """Parse a positive integer amount."""
    if value is None:
        raise InvalidAmountError(value, "missing amount parameter")

    text = value.strip()
    # int() would accept "+5" and "1_000"
    if not (text.isascii() and text.isdigit()):
        raise InvalidAmountError(value)
    # int() refuses digit strings past sys.get_int_max_str_digits()
    digits = text.lstrip("0") or "0"
    if len(digits) > len(str(MAX_AMOUNT)):
        raise InvalidAmountError(value, f"must not exceed {MAX_AMOUNT}")

    amount = int(digits)
    if amount <= 0:
        raise InvalidAmountError(value)
    if amount > MAX_AMOUNT:
        raise InvalidAmountError(value, f"must not exceed {MAX_AMOUNT}")
    return amount


def parse_currency_unit(
    value: Optional[str],
    allowed: Iterable[CurrencyUnit] = ALLOWED_UNITS,
) -> CurrencyUnit:
    """
    Parse a unit tag, case-insensitively.

    An omitted unit means the base unit. A unit that is unknown or known but
    not accepted by this terminal raises UnsupportedCurrencyUnitError.
    """
    allowed = tuple(allowed)
    if value is None:
        return DEFAULT_UNIT

    try:
        unit = CurrencyUnit(value.strip().lower())
    except ValueError:
        raise UnsupportedCurrencyUnitError(value, allowed)

    if unit not in allowed:
        raise UnsupportedCurrencyUnitError(value, allowed)
    return unit


def parse_quote_id(value: Optional[str]) -> UUID:
    if value is None:
        raise InvalidIdentifierError(None)
    try:
        return UUID(value.strip())
    except (ValueError, AttributeError):
        raise InvalidIdentifierError(value)


def normalize_mint_url(value: str) -> str:
    """
    Canonical form of a mint URL: lower-case scheme and host, no trailing slash.

    Raises:
        UnsupportedMintError: value is not an http(s) URL
    """
    try:
        url = _http_url.validate_python(value.strip())
    except (ValidationError, AttributeError):
        raise UnsupportedMintError(str(value))
    return str(url).rstrip("/")
