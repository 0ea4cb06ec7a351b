from decimal import Decimal

import pytest

from core.utils.money import format_money, parse_pence, percentage_of, round_half_up


@pytest.mark.parametrize(
    "value,expected",
    [(2.5, 3), (2.4, 2), ("10.5", 11), (Decimal("0.5"), 1), (7, 7)],
)
def test_round_half_up(value, expected):
    assert round_half_up(value) == expected


def test_percentage_of_rounds_half_pennies_up():
    assert percentage_of(5000, 20) == 1000
    assert percentage_of(1234, 10) == 123
    assert percentage_of(1235, 10) == 124
    assert percentage_of(999, Decimal("12.50")) == 125


def test_parse_pence_handles_metadata_strings():
    assert parse_pence("1500") == 1500
    assert parse_pence(None) == 0
    assert parse_pence("") == 0
    assert parse_pence("not-a-number") == 0
    assert parse_pence("abc", default=7) == 7
    assert parse_pence("12.7") == 12


def test_format_money():
    assert format_money(1250) == "£12.50"
    assert format_money(None) == "£0.00"
    assert format_money(999, "usd") == "$9.99"
    assert format_money(100, "JPY") == "JPY1.00"
