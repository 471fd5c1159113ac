"""Aggregation of account valuations into savings-goal progress."""
from __future__ import annotations

from collections import defaultdict
from typing import Iterable, Mapping, Optional, Sequence, Tuple, Union

from .models import Goal, GoalAllocation, GoalProgress, ValuationPoint

Valuations = Union[Mapping[str, ValuationPoint], Sequence[Tuple[str, ValuationPoint]]]


def compute_goal_progress(
    valuations: Optional[Valuations],
    goals: Optional[Sequence[Goal]],
    allocations: Optional[Sequence[GoalAllocation]],
) -> list[GoalProgress]:
    """Return the progress of every goal, ordered by ascending target amount.

    Args:
        valuations: Latest valuation per account, keyed by account id.  Input
            order matters: the base currency of the first account becomes the
            reporting currency.
        goals: Goals to report on.
        allocations: Percentage of each account counted toward each goal.
            Allocations do not need to add up to 100; over-allocation simply
            yields a progress above 1.

    Accounts referenced by an allocation but missing from ``valuations``
    contribute nothing.  A goal with a zero target always reports a progress of
    ``0``.
    """

    if not valuations or not goals or not allocations:
        return []

    account_points = list(_iter_valuations(valuations))
    currency = account_points[0][1].base_currency
    account_values = {
        account_id: point.total_value * point.fx_rate_to_base for account_id, point in account_points
    }

    allocations_by_goal: dict[str, list[GoalAllocation]] = defaultdict(list)
    for allocation in allocations:
        allocations_by_goal[allocation.goal_id].append(allocation)

    results: list[GoalProgress] = []
    for goal in sorted(goals, key=lambda item: item.target_amount):
        current_value = sum(
            (
                account_values.get(allocation.account_id, 0.0) * allocation.percent_allocation / 100
                for allocation in allocations_by_goal.get(goal.id, [])
            ),
            0.0,
        )
        progress = current_value / goal.target_amount if goal.target_amount != 0 else 0.0
        results.append(
            GoalProgress(
                name=goal.title,
                target_value=goal.target_amount,
                current_value=current_value,
                progress=progress,
                currency=currency,
            )
        )
    return results


def _iter_valuations(valuations: Valuations) -> Iterable[Tuple[str, ValuationPoint]]:
    if isinstance(valuations, Mapping):
        return valuations.items()
    return valuations
