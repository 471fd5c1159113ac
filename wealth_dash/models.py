"""Domain models used by the wealth_dash backend.

The classes defined here are intentionally lightweight data containers that do
not know anything about persistence or transport concerns.  Calculators and
edit sessions operate on these types only, which keeps them pure and easy to
test in isolation.
"""
from __future__ import annotations

import time
from dataclasses import dataclass, field
from datetime import date, datetime, timezone
from enum import Enum
from typing import Optional, Union
from uuid import uuid4

TEMPORARY_ID_PREFIX = "temp-"


@dataclass(frozen=True, slots=True)
class TemporaryId:
    """Identifier of a row that only exists inside an edit session.

    Temporary ids are never handed to a delete operation; on save the owning
    record is given a :class:`PersistedId` instead.
    """

    token: str

    @classmethod
    def generate(cls) -> "TemporaryId":
        return cls(f"{int(time.time() * 1000)}-{uuid4().hex[:7]}")

    def __str__(self) -> str:
        return f"{TEMPORARY_ID_PREFIX}{self.token}"


@dataclass(frozen=True, slots=True)
class PersistedId:
    """Identifier assigned by the backing store."""

    value: str

    def __str__(self) -> str:
        return self.value


RecordId = Union[TemporaryId, PersistedId]


def parse_record_id(raw: str) -> RecordId:
    """Turn the string form of an id (as sent by a client) back into a :data:`RecordId`."""

    if raw.startswith(TEMPORARY_ID_PREFIX):
        return TemporaryId(raw[len(TEMPORARY_ID_PREFIX):])
    return PersistedId(raw)


@dataclass(frozen=True, slots=True)
class ValuationPoint:
    """Dated snapshot of an account as produced by the valuation engine.

    Attributes:
        account_id: Account the snapshot belongs to.
        valuation_date: Date of the snapshot.
        total_value: Account value in account currency.
        net_contribution: Cumulative deposits minus withdrawals, in account
            currency.
        base_currency: Reporting currency of the account.
        fx_rate_to_base: Multiplier converting account currency into
            :attr:`base_currency` at :attr:`valuation_date`.
        account_currency: Currency the account is denominated in.
    """

    account_id: str
    valuation_date: date
    total_value: float
    net_contribution: float
    base_currency: str
    fx_rate_to_base: float = 1.0
    account_currency: Optional[str] = None


@dataclass(frozen=True, slots=True)
class PerformanceResult:
    """Gain/loss and return ratio over a valuation window."""

    gain_loss_amount: float
    return_ratio: float


@dataclass(slots=True)
class Goal:
    """Savings goal with a target amount in base currency."""

    id: str
    title: str
    target_amount: float
    description: Optional[str] = None
    is_achieved: bool = False


@dataclass(slots=True)
class GoalAllocation:
    """Share of an account counted toward a goal, in percent (0-100)."""

    goal_id: str
    account_id: str
    percent_allocation: float
    id: Optional[str] = None


@dataclass(frozen=True, slots=True)
class GoalProgress:
    """Derived, read-only progress of a goal."""

    name: str
    target_value: float
    current_value: float
    progress: float
    currency: str


class AssetKind(str, Enum):
    """Asset classes that influence how quotes are displayed and rounded."""

    SECURITY = "SECURITY"
    CRYPTO = "CRYPTO"
    FX_RATE = "FX_RATE"
    OPTION = "OPTION"
    COMMODITY = "COMMODITY"
    PRIVATE_EQUITY = "PRIVATE_EQUITY"
    PROPERTY = "PROPERTY"
    OTHER = "OTHER"


@dataclass(slots=True)
class Quote:
    """Market quote for an asset as persisted in the local database."""

    id: str
    symbol: str
    timestamp: datetime
    open: float
    high: float
    low: float
    close: float
    volume: float
    adjclose: float
    currency: str
    data_source: str = "MANUAL"
    created_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))


@dataclass(slots=True)
class QuoteEntry:
    """Editable, in-session representation of a quote row."""

    id: RecordId
    date: date
    open: float
    high: float
    low: float
    close: float
    volume: int
    currency: str


__all__ = [
    "TEMPORARY_ID_PREFIX",
    "TemporaryId",
    "PersistedId",
    "RecordId",
    "parse_record_id",
    "ValuationPoint",
    "PerformanceResult",
    "Goal",
    "GoalAllocation",
    "GoalProgress",
    "AssetKind",
    "Quote",
    "QuoteEntry",
]
