"""CSV importer for manually maintained quote histories."""
from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime, timezone
from decimal import Decimal, InvalidOperation
from enum import Enum
from typing import IO, Iterable, Iterator, Optional, Union

import pandas as pd
from dateutil import parser as date_parser

from .models import Quote
from .quote_history import MANUAL_DATA_SOURCE, quote_id_for, quote_timestamp

REQUIRED_COLUMNS = ("symbol", "date", "close")


class ImportStatus(str, Enum):
    VALID = "VALID"
    DUPLICATE = "DUPLICATE"
    INVALID = "INVALID"


@dataclass(slots=True)
class QuoteImportRow:
    """One CSV line after parsing, with its validation outcome.

    ``open``, ``high`` and ``low`` fall back to ``close`` and ``volume`` to
    zero when the file leaves them empty.
    """

    line: int
    symbol: str
    day: Optional[date]
    close: Optional[float]
    currency: str
    open: Optional[float] = None
    high: Optional[float] = None
    low: Optional[float] = None
    volume: Optional[float] = None
    status: ImportStatus = ImportStatus.VALID
    message: Optional[str] = None

    @property
    def quote_id(self) -> Optional[str]:
        if self.day is None or not self.symbol:
            return None
        return quote_id_for(self.day, self.symbol)

    def to_quote(self, now: Optional[datetime] = None) -> Quote:
        if self.day is None or self.close is None:
            raise ValueError(f"Line {self.line} is not importable")
        close = self.close
        return Quote(
            id=quote_id_for(self.day, self.symbol),
            symbol=self.symbol,
            timestamp=quote_timestamp(self.day),
            open=self.open if self.open is not None else close,
            high=self.high if self.high is not None else close,
            low=self.low if self.low is not None else close,
            close=close,
            volume=self.volume if self.volume is not None else 0.0,
            adjclose=close,
            currency=self.currency,
            data_source=MANUAL_DATA_SOURCE,
            created_at=now or datetime.now(timezone.utc),
        )


@dataclass
class QuoteImportResult:
    imported: int = 0
    skipped: int = 0
    errors: list[str] = field(default_factory=list)


class QuoteCsvImporter:
    """Load and validate quote rows from a CSV export.

    Expected columns are ``symbol``, ``date``, ``close`` and optionally
    ``open``, ``high``, ``low``, ``volume`` and ``currency``.  Header names are
    matched case-insensitively.
    """

    def __init__(self, default_currency: str = "USD") -> None:
        self.default_currency = default_currency.upper()

    def load(self, source: Union[str, IO[str]]) -> list[QuoteImportRow]:
        """Parse ``source`` (a path or text stream) into rows without validating them."""

        dataframe = pd.read_csv(source, dtype=str, skipinitialspace=True)
        dataframe.columns = [str(column).strip().lower() for column in dataframe.columns]
        missing = [column for column in REQUIRED_COLUMNS if column not in dataframe.columns]
        if missing:
            raise ValueError(f"Missing required columns: {', '.join(missing)}")
        return list(self._iter_rows(dataframe))

    def validate(self, rows: Iterable[QuoteImportRow], existing_ids: Iterable[str] = ()) -> list[QuoteImportRow]:
        """Assign a status to every row.

        Rows whose quote already exists in the store, or that repeat an earlier
        row of the same file, are duplicates.
        """

        seen = set(existing_ids)
        validated: list[QuoteImportRow] = []
        for row in rows:
            error = _validation_error(row)
            if error:
                row.status = ImportStatus.INVALID
                row.message = error
            elif row.quote_id in seen:
                row.status = ImportStatus.DUPLICATE
                row.message = f"Quote for {row.symbol} on {row.day.isoformat()} already exists"
            else:
                row.status = ImportStatus.VALID
                row.message = None
                seen.add(row.quote_id)
            validated.append(row)
        return validated

    def _iter_rows(self, dataframe: pd.DataFrame) -> Iterator[QuoteImportRow]:
        for index, row in dataframe.fillna("").iterrows():
            yield QuoteImportRow(
                line=int(index) + 2,
                symbol=_clean_string(row.get("symbol")).upper(),
                day=_parse_date(row.get("date")),
                close=_parse_decimal(row.get("close")),
                currency=_clean_string(row.get("currency")).upper() or self.default_currency,
                open=_parse_decimal(row.get("open")),
                high=_parse_decimal(row.get("high")),
                low=_parse_decimal(row.get("low")),
                volume=_parse_decimal(row.get("volume")),
            )


def _validation_error(row: QuoteImportRow) -> Optional[str]:
    if not row.symbol:
        return "Symbol is required"
    if row.day is None:
        return "Invalid or missing date"
    if row.close is None:
        return "Close price is required"
    if row.close <= 0:
        return "Close price must be positive"
    if row.high is not None and row.low is not None and row.high < row.low:
        return "High price is below low price"
    return None


# ---------------------------------------------------------------------------
# Helper utilities
# ---------------------------------------------------------------------------

def _clean_string(value: object) -> str:
    if value is None:
        return ""
    return str(value).strip()


def _parse_decimal(value: object) -> float | None:
    if value is None:
        return None
    stringified = str(value).strip()
    if not stringified:
        return None
    normalised = stringified.replace("'", "").replace(" ", "").replace(",", ".")
    try:
        parsed = Decimal(normalised)
    except (InvalidOperation, ValueError):
        return None
    if not parsed.is_finite():
        return None
    return float(parsed)


def _parse_date(value: object) -> date | None:
    if value is None:
        return None
    stringified = str(value).strip()
    if not stringified or stringified in {"NaT", "nan"}:
        return None
    try:
        return date_parser.parse(stringified).date()
    except (ValueError, OverflowError):
        return None
