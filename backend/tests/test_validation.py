"""
Tests for request parsing.
"""
import uuid

import pytest

from cashu_pos.exceptions import (
    InvalidAmountError,
    InvalidIdentifierError,
    UnsupportedCurrencyUnitError,
    UnsupportedMintError,
)
from cashu_pos.models.quotes import MAX_AMOUNT, CurrencyUnit
from cashu_pos.services.validation import (
    normalize_mint_url,
    parse_amount,
    parse_currency_unit,
    parse_quote_id,
)


class TestParseAmount:

    @pytest.mark.parametrize("value, expected", [
        ("100", 100),
        ("1", 1),
        (" 7 ", 7),
        ("007", 7),
        (str(MAX_AMOUNT), MAX_AMOUNT),
    ])
    def test_valid(self, value, expected):
        assert parse_amount(value) == expected

    @pytest.mark.parametrize("value", [
        None, "", "0", "-1", "+5", "1_000", "1.5", "abc", "١٢",
        str(MAX_AMOUNT + 1), "1" * 21, "1" * 5000, "0" * 5000,
    ])
    def test_invalid(self, value):
        with pytest.raises(InvalidAmountError) as exc_info:
            parse_amount(value)
        assert exc_info.value.error_code == "pos:request:invalid_amount"
        assert exc_info.value.status_code == 400


class TestParseCurrencyUnit:

    def test_missing_unit_defaults_to_sat(self):
        assert parse_currency_unit(None) == CurrencyUnit.SAT

    @pytest.mark.parametrize("value, expected", [
        ("sat", CurrencyUnit.SAT),
        ("SAT", CurrencyUnit.SAT),
        ("usd", CurrencyUnit.USD),
        ("Usd", CurrencyUnit.USD),
    ])
    def test_allowed_units_any_case(self, value, expected):
        assert parse_currency_unit(value) == expected

    @pytest.mark.parametrize("value", ["eur", "msat", "btc", ""])
    def test_rejected_units(self, value):
        with pytest.raises(UnsupportedCurrencyUnitError) as exc_info:
            parse_currency_unit(value)

        error = exc_info.value
        assert error.status_code == 400
        assert error.details["allowed"] == ["sat", "usd"]
        assert "Allowed units are: sat, usd" in error.message

    def test_custom_allow_list(self):
        assert parse_currency_unit("eur", allowed=[CurrencyUnit.EUR]) == CurrencyUnit.EUR
        with pytest.raises(UnsupportedCurrencyUnitError):
            parse_currency_unit("sat", allowed=[CurrencyUnit.EUR])


class TestParseQuoteId:

    def test_valid(self):
        quote_id = uuid.uuid4()
        assert parse_quote_id(str(quote_id)) == quote_id

    @pytest.mark.parametrize("value", [None, "", "not-a-uuid", "1234"])
    def test_invalid(self, value):
        with pytest.raises(InvalidIdentifierError) as exc_info:
            parse_quote_id(value)
        assert exc_info.value.error_code == "pos:request:invalid_identifier"


class TestNormalizeMintUrl:

    @pytest.mark.parametrize("value, expected", [
        ("https://mint.example.com", "https://mint.example.com"),
        ("https://mint.example.com/", "https://mint.example.com"),
        ("https://Mint.Example.COM", "https://mint.example.com"),
        ("http://localhost:3338", "http://localhost:3338"),
        ("https://mint.example.com/cashu/", "https://mint.example.com/cashu"),
    ])
    def test_canonical_form(self, value, expected):
        assert normalize_mint_url(value) == expected

    @pytest.mark.parametrize("value", ["", "mint.example.com", "ftp://mint.example.com", "not a url"])
    def test_rejects_non_http_urls(self, value):
        with pytest.raises(UnsupportedMintError):
            normalize_mint_url(value)
