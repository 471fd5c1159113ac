"""Manual quote history editing built on :class:`TabularEditSession`."""
from __future__ import annotations

from datetime import date, datetime, time, timezone
from typing import Callable, Iterable, Optional

from .edit_session import CommitResult, TabularEditSession
from .models import AssetKind, PersistedId, Quote, QuoteEntry, TemporaryId

MANUAL_DATA_SOURCE = "MANUAL"

# Decimal places shown (and kept) per asset kind; anything else uses the default.
DECIMAL_PRECISION = {
    AssetKind.CRYPTO: 8,
    AssetKind.FX_RATE: 6,
    AssetKind.OPTION: 4,
}
DEFAULT_DECIMAL_PRECISION = 2


def decimal_precision(asset_kind: Optional[AssetKind]) -> int:
    return DECIMAL_PRECISION.get(asset_kind, DEFAULT_DECIMAL_PRECISION)


def quote_id_for(day: date, symbol: str) -> str:
    """Deterministic store id of the quote of ``symbol`` on ``day``."""

    return f"{day.strftime('%Y%m%d')}_{symbol.upper()}"


def quote_timestamp(day: date) -> datetime:
    """Quotes entered by day are stamped at noon UTC."""

    return datetime.combine(day, time(12, 0), tzinfo=timezone.utc)


def to_quote_entry(quote: Quote, decimals: Optional[int] = None) -> QuoteEntry:
    def _round(value: float) -> float:
        return round(value, decimals) if decimals is not None else value

    return QuoteEntry(
        id=PersistedId(quote.id),
        date=quote.timestamp.date(),
        open=_round(quote.open),
        high=_round(quote.high),
        low=_round(quote.low),
        close=_round(quote.close),
        volume=int(round(quote.volume)),
        currency=quote.currency,
    )


def to_quote(entry: QuoteEntry, symbol: str, now: Optional[datetime] = None) -> Quote:
    """Translate a session entry into the quote handed to the store.

    Drafts get the id derived from their date and symbol; persisted entries
    keep theirs.
    """

    if isinstance(entry.id, TemporaryId):
        quote_id = quote_id_for(entry.date, symbol)
    else:
        quote_id = entry.id.value
    return Quote(
        id=quote_id,
        symbol=symbol,
        timestamp=quote_timestamp(entry.date),
        open=entry.open,
        high=entry.high,
        low=entry.low,
        close=entry.close,
        volume=entry.volume,
        adjclose=entry.close,
        currency=entry.currency,
        data_source=MANUAL_DATA_SOURCE,
        created_at=now or datetime.now(timezone.utc),
    )


def quote_entry_changed(previous: QuoteEntry, current: QuoteEntry) -> bool:
    return (
        current.date != previous.date
        or current.open != previous.open
        or current.high != previous.high
        or current.low != previous.low
        or current.close != previous.close
        or current.volume != previous.volume
    )


class QuoteHistorySession:
    """Edit session over the manually maintained quotes of one symbol.

    ``save_quote`` must return the id under which the quote was stored and
    ``delete_quote`` receives the plain store id.
    """

    def __init__(
        self,
        symbol: str,
        currency: str,
        quotes: Iterable[Quote],
        save_quote: Callable[[Quote], str],
        delete_quote: Callable[[str], None],
        asset_kind: Optional[AssetKind] = None,
        today: Callable[[], date] = date.today,
    ) -> None:
        self.symbol = symbol.upper()
        self.currency = currency.upper()
        self.asset_kind = asset_kind
        self.decimals = decimal_precision(asset_kind)
        self._today = today
        self.session: TabularEditSession[QuoteEntry, Quote] = TabularEditSession(
            self._entries(quotes),
            draft_factory=self._new_draft,
            save=save_quote,
            delete=lambda persisted_id: delete_quote(persisted_id.value),
            to_persisted=lambda entry: to_quote(entry, self.symbol),
            changed=quote_entry_changed,
        )

    def refresh(self, quotes: Iterable[Quote]) -> None:
        """Reseed from the store; unsaved edits are discarded."""

        self.session.reseed(self._entries(quotes))

    def commit(self) -> CommitResult:
        return self.session.commit()

    def _entries(self, quotes: Iterable[Quote]) -> list[QuoteEntry]:
        entries = [to_quote_entry(quote, self.decimals) for quote in quotes]
        entries.sort(key=lambda entry: entry.date, reverse=True)
        return entries

    def _new_draft(self) -> QuoteEntry:
        return QuoteEntry(
            id=TemporaryId.generate(),
            date=self._today(),
            open=0.0,
            high=0.0,
            low=0.0,
            close=0.0,
            volume=0,
            currency=self.currency,
        )
