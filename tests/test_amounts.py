from decimal import Decimal

import pytest

from extraction.amounts import detect_currency, parse_amount


class TestParseAmount:

    @pytest.mark.parametrize("text,expected", [
        ("₡25,500.00", Decimal("25500.00")),
        ("$45.20", Decimal("45.20")),
        ("$ 1,234,567.89", Decimal("1234567.89")),
        ("25.500,00", Decimal("25500.00")),
        ("1.234.567,5", Decimal("1234567.5")),
        ("CRC 1,000", Decimal("1000")),
        ("USD 12.5", Decimal("12.5")),
        ("€9,99", Decimal("9.99")),
        ("7", Decimal("7")),
        ("-25.00", Decimal("-25.00")),
    ])
    def test_formats(self, text, expected):
        assert parse_amount(text) == expected

    def test_dot_thousands_is_read_as_decimal(self):
        # Three digits after a single dot stay a decimal fraction
        assert parse_amount("1.234") == Decimal("1.234")

    @pytest.mark.parametrize("text", ["", "₡", "abc", "12.3.4,5,6x", "NaN", "Infinity", "1e5", "2E-3", None])
    def test_unreadable(self, text):
        assert parse_amount(text) is None


class TestDetectCurrency:

    @pytest.mark.parametrize("match_text,expected", [
        ("₡25,500.00", "crc"),
        ("$45.20", "usd"),
        ("€10,00", "eur"),
        ("USD 12.00", "usd"),
        ("CRC 5,000.00", "crc"),
    ])
    def test_from_match(self, match_text, expected):
        assert detect_currency(match_text) == expected

    def test_from_surrounding_text(self):
        text = "Se realizó un cargo por 5,000.00 colones en su tarjeta"
        assert detect_currency("5,000.00", text) == "crc"

    def test_context_window_is_limited(self):
        text = "dólares" + " " * 80 + "Total 10.00"
        assert detect_currency("10.00", text) is None
        assert detect_currency("10.00", text, window=100) == "usd"

    def test_nothing_to_go_on(self):
        assert detect_currency("10.00", "Total 10.00") is None
