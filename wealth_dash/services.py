"""High-level application services orchestrating the wealth_dash backend."""
from __future__ import annotations

import logging
from datetime import date
from typing import IO, Optional, Union

from .config import AppConfig
from .database import SQLiteRepository
from .edit_session import CommitResult
from .goals import compute_goal_progress
from .importers import ImportStatus, QuoteCsvImporter, QuoteImportResult
from .models import AssetKind, GoalProgress, PerformanceResult, Quote
from .performance import ReturnMode, compute_return
from .price_service import PriceService
from .quote_history import QuoteHistorySession

logger = logging.getLogger(__name__)

class PortfolioService:
    """Coordinates persistence, calculations and quote edit sessions."""

    def __init__(self, config: AppConfig, repository: SQLiteRepository, price_service: PriceService) -> None:
        self._config = config
        self._repository = repository
        self._price_service = price_service
        self._quote_sessions: dict[str, QuoteHistorySession] = {}

    # ------------------------------------------------------------------
    # Performance and goals
    # ------------------------------------------------------------------
    def account_performance(
        self,
        account_id: str,
        start: Optional[date] = None,
        end: Optional[date] = None,
        mode: ReturnMode | str = ReturnMode.PERIOD,
    ) -> PerformanceResult:
        mode = ReturnMode.parse(mode)
        history = self._repository.list_valuations(account_id, start, end)
        result = compute_return(history, mode)
        if mode is ReturnMode.ALL_TIME and len(history) >= 2:
            last = history[-1]
            if last.net_contribution == 0 and result.gain_loss_amount != 0:
                logger.warning(
                    "Account %s has a gain of %s without any net contribution; reporting a zero return",
                    account_id,
                    result.gain_loss_amount,
                )
        return result

    def goal_progress(self) -> list[GoalProgress]:
        return compute_goal_progress(
            self._repository.latest_valuations(),
            self._repository.list_goals(),
            self._repository.list_allocations(),
        )

    # ------------------------------------------------------------------
    # Quotes
    # ------------------------------------------------------------------
    def list_quotes(self, symbol: str) -> list[Quote]:
        return self._repository.list_quotes(symbol)

    def refresh_quote(self, symbol: str) -> Optional[Quote]:
        quote = self._price_service.fetch_equity_quote(symbol)
        if quote:
            self._repository.save_quote(quote)
            self._reseed(quote.symbol)
        return quote

    def import_quotes(self, source: Union[str, IO[str]]) -> QuoteImportResult:
        """Import quotes from a CSV source; invalid and duplicate rows are skipped."""

        importer = QuoteCsvImporter(self._config.default_currency)
        rows = importer.load(source)
        existing = self._repository.existing_quote_ids(row.quote_id for row in rows if row.quote_id)
        rows = importer.validate(rows, existing)

        result = QuoteImportResult()
        valid = []
        for row in rows:
            if row.status is ImportStatus.VALID:
                valid.append(row.to_quote())
                continue
            result.skipped += 1
            if row.status is ImportStatus.INVALID:
                result.errors.append(f"Line {row.line}: {row.message}")
            logger.info("Skipping quote import line %d: %s", row.line, row.message)

        result.imported = self._repository.upsert_quotes(valid)
        for symbol in {quote.symbol for quote in valid}:
            self._reseed(symbol)
        return result

    # ------------------------------------------------------------------
    # Quote edit sessions
    # ------------------------------------------------------------------
    def open_quote_session(
        self,
        symbol: str,
        currency: Optional[str] = None,
        asset_kind: Optional[AssetKind] = None,
    ) -> QuoteHistorySession:
        """Start a fresh edit session for ``symbol``, replacing any open one."""

        symbol = symbol.upper()
        session = QuoteHistorySession(
            symbol=symbol,
            currency=currency or self._config.default_currency,
            quotes=self._repository.list_quotes(symbol),
            save_quote=self._repository.save_quote,
            delete_quote=self._repository.delete_quote,
            asset_kind=asset_kind,
        )
        self._quote_sessions[symbol] = session
        return session

    def get_quote_session(self, symbol: str) -> Optional[QuoteHistorySession]:
        return self._quote_sessions.get(symbol.upper())

    def close_quote_session(self, symbol: str) -> None:
        self._quote_sessions.pop(symbol.upper(), None)

    def commit_quote_session(self, session: QuoteHistorySession) -> CommitResult:
        """Commit ``session`` and reseed it from the store when every call succeeded.

        After a partial failure the session is left as is so the failed rows
        can be committed again.
        """

        result = session.commit()
        if result.ok:
            session.refresh(self._repository.list_quotes(session.symbol))
        return result

    def _reseed(self, symbol: str) -> None:
        session = self._quote_sessions.get(symbol.upper())
        if session is None:
            return
        if session.session.has_unsaved_changes:
            logger.info("Quotes of %s changed upstream; discarding unsaved edits", session.symbol)
        session.refresh(self._repository.list_quotes(session.symbol))
