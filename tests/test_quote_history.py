from dataclasses import replace
from datetime import date, datetime, timezone

from tests.factories import make_quote
from wealth_dash.models import AssetKind, PersistedId, QuoteEntry, TemporaryId
from wealth_dash.quote_history import (
    QuoteHistorySession,
    decimal_precision,
    quote_entry_changed,
    quote_id_for,
    to_quote,
    to_quote_entry,
)


def test_decimal_precision_by_asset_kind() -> None:
    assert decimal_precision(AssetKind.CRYPTO) == 8
    assert decimal_precision(AssetKind.FX_RATE) == 6
    assert decimal_precision(AssetKind.OPTION) == 4
    assert decimal_precision(AssetKind.SECURITY) == 2
    assert decimal_precision(None) == 2


def test_to_quote_entry_rounds_prices_and_volume() -> None:
    quote = make_quote(date(2024, 5, 6), 101.23456, volume=1234.6)
    entry = to_quote_entry(quote, 2)
    assert entry.id == PersistedId("20240506_ACME")
    assert entry.date == date(2024, 5, 6)
    assert entry.close == 101.23
    assert entry.volume == 1235

    unrounded = to_quote_entry(quote)
    assert unrounded.close == 101.23456


def test_to_quote_derives_id_for_drafts() -> None:
    now = datetime(2024, 6, 1, tzinfo=timezone.utc)
    draft = QuoteEntry(TemporaryId("abc"), date(2024, 3, 9), 1.0, 2.0, 0.5, 1.5, 10, "EUR")
    quote = to_quote(draft, "acme", now=now)
    assert quote.id == "20240309_ACME"
    assert quote.symbol == "acme"
    assert quote.adjclose == 1.5
    assert quote.data_source == "MANUAL"
    assert quote.created_at == now
    assert quote.timestamp.date() == date(2024, 3, 9)

    persisted = replace(draft, id=PersistedId("custom-id"))
    assert to_quote(persisted, "ACME").id == "custom-id"


def test_quote_id_for_uses_upper_case_symbol() -> None:
    assert quote_id_for(date(2023, 12, 31), "btc-usd") == "20231231_BTC-USD"


def test_change_detection_ignores_currency() -> None:
    entry = QuoteEntry(PersistedId("q"), date(2024, 1, 1), 1.0, 1.0, 1.0, 1.0, 0, "USD")
    assert not quote_entry_changed(entry, replace(entry, currency="EUR"))
    assert quote_entry_changed(entry, replace(entry, high=1.1))
    assert quote_entry_changed(entry, replace(entry, date=date(2024, 1, 2)))


def test_session_round_trip_against_repository(repository) -> None:
    repository.upsert_quotes(
        [make_quote(date(2024, 1, 1), 10.0), make_quote(date(2024, 1, 2), 11.0)]
    )
    session = QuoteHistorySession(
        symbol="acme",
        currency="usd",
        quotes=repository.list_quotes("ACME"),
        save_quote=repository.save_quote,
        delete_quote=repository.delete_quote,
        today=lambda: date(2024, 1, 3),
    )
    entries = session.session.local_entries
    assert [entry.date for entry in entries] == [date(2024, 1, 2), date(2024, 1, 1)]

    draft = session.session.add_draft()
    assert draft.currency == "USD"
    assert draft.date == date(2024, 1, 3)
    session.session.update_from_grid_snapshot([replace(draft, close=12.0)])
    session.session.delete_rows([PersistedId("20240101_ACME")])

    result = session.commit()
    assert result.ok
    assert result.saved == [PersistedId("20240103_ACME")]
    assert result.deleted == [PersistedId("20240101_ACME")]

    stored = repository.list_quotes("ACME")
    assert [quote.id for quote in stored] == ["20240103_ACME", "20240102_ACME"]
    assert stored[0].close == 12.0

    session.refresh(stored)
    assert not session.session.has_unsaved_changes
    assert len(session.session.local_entries) == 2
