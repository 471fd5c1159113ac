import math

import pytest

from tests.factories import make_point
from wealth_dash.performance import ReturnMode, compute_return, round_decimal


@pytest.mark.parametrize("mode", [ReturnMode.PERIOD, ReturnMode.ALL_TIME])
def test_short_history_returns_zero(mode) -> None:
    for history in ([], None, [make_point(1000, 500)]):
        result = compute_return(history, mode)
        assert result.gain_loss_amount == 0.0
        assert result.return_ratio == 0.0


def test_period_return_without_cash_flow() -> None:
    result = compute_return([make_point(1000, 1000), make_point(1100, 1000, day=1)], "period")
    assert result.return_ratio == pytest.approx(0.10)
    assert result.gain_loss_amount == pytest.approx(100.0)


def test_period_return_neutralises_deposits() -> None:
    history = [
        make_point(1000, 1000),
        make_point(1600, 1500, day=1),  # +500 deposit, +100 market
        make_point(1760, 1500, day=2),
    ]
    result = compute_return(history, ReturnMode.PERIOD)
    expected = (1100 / 1000) * (1760 / 1600) - 1
    assert result.return_ratio == pytest.approx(expected)
    assert result.gain_loss_amount == pytest.approx(260.0)


def test_period_return_skips_steps_from_zero_value() -> None:
    history = [
        make_point(0, 0),
        make_point(1000, 1000, day=1),
        make_point(1050, 1000, day=2),
    ]
    result = compute_return(history, ReturnMode.PERIOD)
    assert result.return_ratio == pytest.approx(0.05)
    assert math.isfinite(result.return_ratio)


def test_period_return_skips_zero_value_in_the_middle() -> None:
    history = [
        make_point(1000, 1000),
        make_point(0, 0, day=1),  # withdrew everything
        make_point(500, 500, day=2),
        make_point(550, 500, day=3),
    ]
    result = compute_return(history, ReturnMode.PERIOD)
    first_step = (0 - (0 - 1000)) / 1000
    last_step = (550 - 0) / 500
    assert result.return_ratio == pytest.approx(first_step * last_step - 1)
    assert result.gain_loss_amount == pytest.approx((550 - 1000) - (500 - 1000))


def test_all_time_return_uses_net_contribution_as_basis() -> None:
    history = [make_point(1000, 1000), make_point(1500, 1200, day=30)]
    result = compute_return(history, "allTime")
    assert result.gain_loss_amount == pytest.approx(300.0)
    assert result.return_ratio == pytest.approx(0.25)


def test_all_time_return_with_zero_contribution_is_zero() -> None:
    history = [make_point(0, 0), make_point(250, 0, day=1)]
    result = compute_return(history, ReturnMode.ALL_TIME)
    assert result.gain_loss_amount == pytest.approx(250.0)
    assert result.return_ratio == 0.0


def test_return_mode_parse() -> None:
    assert ReturnMode.parse("all_time") is ReturnMode.ALL_TIME
    assert ReturnMode.parse("allTime") is ReturnMode.ALL_TIME
    assert ReturnMode.parse(ReturnMode.PERIOD) is ReturnMode.PERIOD
    with pytest.raises(ValueError):
        ReturnMode.parse("ytd")


def test_round_decimal_handles_non_finite_values() -> None:
    assert round_decimal(0.1234567891) == 0.123457
    assert round_decimal(1.005, 1) == 1.0
    assert round_decimal(float("nan")) == 0.0
    assert round_decimal(float("inf")) == 0.0
