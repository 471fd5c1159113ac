import pytest

from tests.factories import make_point
from wealth_dash.goals import compute_goal_progress
from wealth_dash.models import Goal, GoalAllocation


def _valuations():
    return {
        "acc1": make_point(5000, 4000, account_id="acc1", account_currency="USD"),
        "acc2": make_point(
            10000,
            9000,
            account_id="acc2",
            account_currency="EUR",
            base_currency="USD",
            fx_rate_to_base=1.1,
        ),
    }


def test_empty_inputs_short_circuit() -> None:
    goal = Goal(id="g1", title="House", target_amount=1000)
    allocation = GoalAllocation(goal_id="g1", account_id="acc1", percent_allocation=50)
    assert compute_goal_progress([], [goal], []) == []
    assert compute_goal_progress(_valuations(), [], [allocation]) == []
    assert compute_goal_progress(_valuations(), [goal], None) == []
    assert compute_goal_progress(None, [goal], [allocation]) == []


def test_multi_currency_progress() -> None:
    goal = Goal(id="g1", title="House", target_amount=10000)
    allocations = [
        GoalAllocation(goal_id="g1", account_id="acc1", percent_allocation=50),
        GoalAllocation(goal_id="g1", account_id="acc2", percent_allocation=10),
    ]
    [progress] = compute_goal_progress(_valuations(), [goal], allocations)
    assert progress.name == "House"
    assert progress.current_value == pytest.approx(3600)
    assert progress.progress == pytest.approx(0.36)
    assert progress.currency == "USD"


def test_reporting_currency_comes_from_first_account() -> None:
    valuations = [
        ("eu", make_point(100, 100, account_id="eu", base_currency="EUR")),
        ("us", make_point(100, 100, account_id="us", base_currency="USD")),
    ]
    goal = Goal(id="g1", title="Trip", target_amount=100)
    allocations = [GoalAllocation(goal_id="g1", account_id="us", percent_allocation=100)]
    [progress] = compute_goal_progress(valuations, [goal], allocations)
    assert progress.currency == "EUR"


def test_zero_target_reports_zero_progress() -> None:
    goals = [
        Goal(id="empty", title="Nothing allocated", target_amount=0),
        Goal(id="funded", title="Funded", target_amount=0),
    ]
    allocations = [GoalAllocation(goal_id="funded", account_id="acc1", percent_allocation=100)]
    results = compute_goal_progress(_valuations(), goals, allocations)
    assert [item.progress for item in results] == [0.0, 0.0]
    assert results[0].current_value == 0.0
    assert results[1].current_value == pytest.approx(5000)


def test_missing_account_contributes_nothing() -> None:
    goal = Goal(id="g1", title="Car", target_amount=2000)
    allocations = [GoalAllocation(goal_id="g1", account_id="closed", percent_allocation=100)]
    [progress] = compute_goal_progress(_valuations(), [goal], allocations)
    assert progress.current_value == 0.0
    assert progress.progress == 0.0


def test_over_allocation_is_not_clamped() -> None:
    goal = Goal(id="g1", title="Emergency fund", target_amount=5000)
    allocations = [
        GoalAllocation(goal_id="g1", account_id="acc1", percent_allocation=100),
        GoalAllocation(goal_id="g1", account_id="acc2", percent_allocation=100),
    ]
    [progress] = compute_goal_progress(_valuations(), [goal], allocations)
    assert progress.progress == pytest.approx((5000 + 11000) / 5000)


def test_goals_are_ordered_by_target_with_stable_ties() -> None:
    goals = [
        Goal(id="a", title="Big", target_amount=50000),
        Goal(id="b", title="Small first", target_amount=1000),
        Goal(id="c", title="Small second", target_amount=1000),
    ]
    allocations = [GoalAllocation(goal_id="a", account_id="acc1", percent_allocation=10)]
    results = compute_goal_progress(_valuations(), goals, allocations)
    assert [item.name for item in results] == ["Small first", "Small second", "Big"]
    assert results[2].current_value == pytest.approx(500)
