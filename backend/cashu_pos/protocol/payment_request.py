"""
NUT-18 Payment Requests

Builds and parses the payment request descriptor handed to paying wallets:
"creqA" followed by the url-safe base64 of a CBOR map.

CBOR keys:
    i  payment id        a  amount           u  unit
    s  single use        m  accepted mints   d  description
    t  transports, each {t: type, a: target, g: tags}
"""
import base64
import binascii
from enum import Enum
from typing import Any, Dict, List, Optional

import cbor2
from pydantic import AnyHttpUrl, BaseModel, TypeAdapter, ValidationError

from ..exceptions import TransportBuildError

PAYMENT_REQUEST_PREFIX = "creqA"

_http_url = TypeAdapter(AnyHttpUrl)


class TransportType(str, Enum):
    HTTP_POST = "post"
    NOSTR = "nostr"


class Transport(BaseModel):
    """Where the paying wallet delivers its payment payload."""
    type: TransportType
    target: str
    tags: Optional[List[List[str]]] = None

    def to_cbor_map(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {"t": self.type.value, "a": self.target}
        if self.tags:
            data["g"] = self.tags
        return data

    @classmethod
    def from_cbor_map(cls, data: Dict[str, Any]) -> "Transport":
        return cls(type=data["t"], target=data["a"], tags=data.get("g"))


class PaymentRequest(BaseModel):
    payment_id: Optional[str] = None
    amount: Optional[int] = None
    unit: Optional[str] = None
    single_use: Optional[bool] = None
    mints: Optional[List[str]] = None
    description: Optional[str] = None
    transports: List[Transport] = []

    def to_cbor_map(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {}
        if self.payment_id is not None:
            data["i"] = self.payment_id
        if self.amount is not None:
            data["a"] = self.amount
        if self.unit is not None:
            data["u"] = self.unit
        if self.single_use is not None:
            data["s"] = self.single_use
        if self.mints is not None:
            data["m"] = self.mints
        if self.description is not None:
            data["d"] = self.description
        data["t"] = [transport.to_cbor_map() for transport in self.transports]
        return data

    def encode(self) -> str:
        payload = cbor2.dumps(self.to_cbor_map())
        return PAYMENT_REQUEST_PREFIX + base64.urlsafe_b64encode(payload).decode("ascii")

    def __str__(self) -> str:
        return self.encode()

    @classmethod
    def decode(cls, value: str) -> "PaymentRequest":
        """
        Parse an encoded payment request.

        Raises:
            ValueError: prefix, base64 or CBOR content is invalid
        """
        if not value.startswith(PAYMENT_REQUEST_PREFIX):
            raise ValueError(f"Payment request must start with {PAYMENT_REQUEST_PREFIX}")

        encoded = value[len(PAYMENT_REQUEST_PREFIX):]
        encoded += "=" * (-len(encoded) % 4)
        try:
            data = cbor2.loads(base64.urlsafe_b64decode(encoded))
        except (binascii.Error, cbor2.CBORDecodeError) as e:
            raise ValueError(f"Malformed payment request: {e}") from e

        if not isinstance(data, dict):
            raise ValueError("Malformed payment request: expected a CBOR map")

        return cls(
            payment_id=data.get("i"),
            amount=data.get("a"),
            unit=data.get("u"),
            single_use=data.get("s"),
            mints=data.get("m"),
            description=data.get("d"),
            transports=[Transport.from_cbor_map(t) for t in data.get("t") or []],
        )


def build_http_transport(target: str) -> Transport:
    """HTTP POST transport to `target`; raises TransportBuildError if it is not an http(s) URL."""
    if not target:
        raise TransportBuildError("Failed to build transport: payment URL is not configured")
    try:
        _http_url.validate_python(target)
    except ValidationError as e:
        raise TransportBuildError(f"Failed to build transport: invalid target {target!r}") from e
    return Transport(type=TransportType.HTTP_POST, target=target)


def build_payment_request(
    payment_id: str,
    amount: int,
    unit: str,
    mints: List[str],
    payment_url: str,
) -> PaymentRequest:
    """Single-use request scoped to `mints`, paid by POSTing to `payment_url`."""
    return PaymentRequest(
        payment_id=payment_id,
        amount=amount,
        unit=unit,
        single_use=True,
        mints=list(mints),
        transports=[build_http_transport(payment_url)],
    )
