"""Tests for number, range and limit extraction."""

from __future__ import annotations

import pytest

from src.nlquery.parsing.numbers import NumberCalculator


class TestParseNumber:
    """Magnitudes with suffixes."""

    @pytest.mark.parametrize(
        "text,expected",
        [
            ("over 5 million", 5_000_000.0),
            ("2.5 million dollars", 2_500_000.0),
            ("at least 5m", 5_000_000.0),
            ("500 thousand", 500_000.0),
            ("under 200k", 200_000.0),
            ("under 200K", 200_000.0),
            ("fee of 42", 42.0),
        ],
    )
    def test_suffixes(self, text, expected) -> None:
        assert NumberCalculator.parse_number(text) == expected

    def test_month_word_is_not_a_suffix(self) -> None:
        assert NumberCalculator.parse_number("10 months") == 10.0

    @pytest.mark.parametrize("text", [None, "", "no numbers here"])
    def test_no_number(self, text) -> None:
        assert NumberCalculator.parse_number(text) is None


class TestParseRange:
    """between X and Y."""

    def test_suffixed_range(self) -> None:
        assert NumberCalculator.parse_range("fees between 1m and 5m") == (1_000_000.0, 5_000_000.0)

    def test_mixed_suffixes_and_currency(self) -> None:
        assert NumberCalculator.parse_range("between $100k and $2.5 million") == (
            100_000.0,
            2_500_000.0,
        )

    def test_plain_numbers(self) -> None:
        assert NumberCalculator.parse_range("Between 10 and 20") == (10.0, 20.0)

    def test_no_range(self) -> None:
        assert NumberCalculator.parse_range("more than 5 million") is None


class TestParseLimit:
    """Requested result counts."""

    @pytest.mark.parametrize(
        "text,expected",
        [
            ("top 10 clients", 10),
            ("first 5 projects", 5),
            ("the 3 largest projects", 3),
            ("7 biggest deals", 7),
            ("limit 20", 20),
            ("Top 15", 15),
        ],
    )
    def test_limits(self, text, expected) -> None:
        assert NumberCalculator.parse_limit(text) == expected

    def test_no_limit(self) -> None:
        assert NumberCalculator.parse_limit("largest projects") is None
