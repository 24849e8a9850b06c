"""
Tests for the NUT-18 payment request encoding.
"""
import base64

import cbor2
import pytest

from cashu_pos.exceptions import TransportBuildError
from cashu_pos.protocol.payment_request import (
    PAYMENT_REQUEST_PREFIX,
    PaymentRequest,
    Transport,
    TransportType,
    build_http_transport,
    build_payment_request,
)

QUOTE_ID = "0b6f6c0a-8d6c-4f6b-9d5d-3a0f4c3a2e11"


def raw_map(encoded: str) -> dict:
    payload = encoded[len(PAYMENT_REQUEST_PREFIX):]
    return cbor2.loads(base64.urlsafe_b64decode(payload + "=" * (-len(payload) % 4)))


class TestBuildPaymentRequest:

    def test_cbor_layout(self):
        request = build_payment_request(
            payment_id=QUOTE_ID,
            amount=100,
            unit="sat",
            mints=["https://mint.example.com"],
            payment_url="http://pos.test/payment",
        )
        encoded = request.encode()

        assert encoded.startswith("creqA")
        assert str(request) == encoded
        assert raw_map(encoded) == {
            "i": QUOTE_ID,
            "a": 100,
            "u": "sat",
            "s": True,
            "m": ["https://mint.example.com"],
            "t": [{"t": "post", "a": "http://pos.test/payment"}],
        }

    def test_decode(self):
        encoded = build_payment_request(QUOTE_ID, 5, "usd", ["https://a.example", "https://b.example"],
                                        "https://pos.example/payment").encode()

        request = PaymentRequest.decode(encoded)

        assert request.payment_id == QUOTE_ID
        assert request.amount == 5
        assert request.unit == "usd"
        assert request.single_use is True
        assert request.mints == ["https://a.example", "https://b.example"]
        assert request.transports == [
            Transport(type=TransportType.HTTP_POST, target="https://pos.example/payment")
        ]

    def test_optional_fields_are_omitted(self):
        encoded = PaymentRequest(description="coffee").encode()
        assert raw_map(encoded) == {"d": "coffee", "t": []}

    def test_transport_tags(self):
        transport = Transport(type=TransportType.NOSTR, target="nprofile1abc", tags=[["n", "17"]])
        assert transport.to_cbor_map() == {"t": "nostr", "a": "nprofile1abc", "g": [["n", "17"]]}
        assert Transport.from_cbor_map(transport.to_cbor_map()) == transport


class TestDecodeErrors:

    def test_wrong_prefix(self):
        with pytest.raises(ValueError):
            PaymentRequest.decode("creqB" + base64.urlsafe_b64encode(cbor2.dumps({})).decode())

    def test_not_a_map(self):
        encoded = PAYMENT_REQUEST_PREFIX + base64.urlsafe_b64encode(cbor2.dumps([1, 2])).decode()
        with pytest.raises(ValueError):
            PaymentRequest.decode(encoded)

    def test_truncated_payload(self):
        with pytest.raises(ValueError):
            PaymentRequest.decode(PAYMENT_REQUEST_PREFIX)


class TestHttpTransport:

    def test_valid_target(self):
        transport = build_http_transport("http://127.0.0.1:8085/payment")
        assert transport.type == TransportType.HTTP_POST
        assert transport.target == "http://127.0.0.1:8085/payment"

    @pytest.mark.parametrize("target", ["", "not a url", "ftp://pos.example/payment"])
    def test_invalid_target(self, target):
        with pytest.raises(TransportBuildError) as exc_info:
            build_http_transport(target)
        assert exc_info.value.to_dict()["message"] == "Failed to build payment request"
