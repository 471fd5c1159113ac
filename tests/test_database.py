from datetime import date

from tests.factories import make_point, make_quote
from wealth_dash.models import Goal, GoalAllocation


def test_quotes_are_upserted_and_deleted(repository) -> None:
    assert repository.save_quote(make_quote(date(2024, 1, 1), 10.0)) == "20240101_ACME"
    repository.save_quote(make_quote(date(2024, 1, 1), 10.5))
    repository.save_quote(make_quote(date(2024, 1, 2), 11.0))
    repository.save_quote(make_quote(date(2024, 1, 2), 99.0, symbol="OTHER"))

    quotes = repository.list_quotes("acme")
    assert [quote.id for quote in quotes] == ["20240102_ACME", "20240101_ACME"]
    assert quotes[1].close == 10.5
    assert quotes[1].timestamp.date() == date(2024, 1, 1)

    repository.delete_quote("20240101_ACME")
    assert [quote.id for quote in repository.list_quotes("ACME")] == ["20240102_ACME"]
    assert repository.existing_quote_ids(["20240102_ACME", "20240101_ACME"]) == {"20240102_ACME"}


def test_valuations_are_returned_in_date_order(repository) -> None:
    repository.upsert_valuations(
        [
            make_point(120, 100, day=2),
            make_point(100, 100, day=0),
            make_point(110, 100, day=1),
            make_point(500, 400, day=0, account_id="acc2", base_currency="usd", fx_rate_to_base=1.1),
        ]
    )
    history = repository.list_valuations("acc1")
    assert [point.total_value for point in history] == [100, 110, 120]

    window = repository.list_valuations("acc1", start=date(2024, 1, 2), end=date(2024, 1, 2))
    assert [point.total_value for point in window] == [110]

    latest = repository.latest_valuations()
    assert list(latest) == ["acc1", "acc2"]
    assert latest["acc1"].total_value == 120
    assert latest["acc2"].base_currency == "USD"
    assert latest["acc2"].fx_rate_to_base == 1.1


def test_goals_and_allocations(repository) -> None:
    repository.upsert_goal(Goal(id="g1", title="House", target_amount=10000))
    repository.upsert_goal(Goal(id="g1", title="Bigger house", target_amount=20000, is_achieved=True))
    repository.upsert_allocation(GoalAllocation(goal_id="g1", account_id="acc1", percent_allocation=50))
    repository.upsert_allocation(GoalAllocation(goal_id="g1", account_id="acc1", percent_allocation=60))

    [goal] = repository.list_goals()
    assert goal.title == "Bigger house"
    assert goal.is_achieved is True
    [allocation] = repository.list_allocations()
    assert allocation.percent_allocation == 60
