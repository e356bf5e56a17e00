import pytest

from pool_rebalancer.analytics.pricing import (
    apply_buffer,
    format_units,
    required_base_amount,
    withdrawal_amount,
)


def test_example_scenario_sizing():
    withdrawal = withdrawal_amount(10, 90)
    assert withdrawal == 9
    required = required_base_amount(1_000_000, 10, withdrawal)
    assert required == 900_000
    assert apply_buffer(required) == 990_000


def test_withdrawal_scales_linearly_in_wei():
    balance = 10 * 10**18
    assert withdrawal_amount(balance, 90) == 9 * 10**18
    assert withdrawal_amount(balance, 45) * 2 == withdrawal_amount(balance, 90)
    assert withdrawal_amount(2 * balance, 90) == 2 * withdrawal_amount(balance, 90)
    assert withdrawal_amount(balance, 100) == balance
    assert withdrawal_amount(balance, 12.5) == 1_250_000_000_000_000_000


def test_withdrawal_floors_fractional_wei():
    assert withdrawal_amount(7, 50) == 3
    assert withdrawal_amount(1, 99.9) == 0


@pytest.mark.parametrize("pct", [0, -1, 100.01])
def test_withdrawal_rejects_out_of_range_percentage(pct):
    with pytest.raises(ValueError):
        withdrawal_amount(10, pct)


def test_required_amount_floors():
    assert required_base_amount(10, 3, 1) == 3
    assert required_base_amount(1_000_000 * 10**6, 10 * 10**18, 9 * 10**18) == 900_000 * 10**6


def test_required_amount_needs_quote_reserve():
    with pytest.raises(ValueError):
        required_base_amount(1_000, 0, 1)


def test_buffer_floors():
    assert apply_buffer(9) == 9
    assert apply_buffer(10) == 11
    assert apply_buffer(0) == 0


def test_format_units():
    assert format_units(1_500_000, 6) == "1.5"
    assert format_units(10**18, 18) == "1"
    assert format_units(100, 0) == "100"
    assert format_units(-5 * 10**17, 18) == "-0.5"
    assert format_units(0, 18) == "0"
