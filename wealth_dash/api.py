"""FastAPI application exposing the wealth_dash backend."""
from __future__ import annotations

import datetime
import io
import logging
from contextlib import asynccontextmanager
from datetime import date
from typing import Annotated, Optional

from fastapi import Depends, FastAPI, HTTPException, Query, Request
from fastapi.middleware.cors import CORSMiddleware
from pydantic import BaseModel

from .config import load_config
from .database import SQLiteRepository
from .edit_session import CommitResult
from .models import AssetKind, Quote, QuoteEntry, parse_record_id
from .performance import ReturnMode, round_decimal
from .price_service import PriceService
from .quote_history import QuoteHistorySession
from .services import PortfolioService

logger = logging.getLogger(__name__)

CURRENCY_PATTERN = "^[A-Za-z]{3}$"


@asynccontextmanager
async def lifespan(_: FastAPI):
    """Initialise shared services once and reuse them across requests."""

    config = load_config()
    repository = SQLiteRepository(config.database_file)
    repository.initialise_schema()
    price_service = PriceService(config)
    portfolio_service = PortfolioService(config, repository, price_service)

    app.state.config = config
    app.state.repository = repository
    app.state.portfolio = portfolio_service

    yield

    repository.close()


app = FastAPI(lifespan=lifespan, title="wealth_dash backend", version="0.1.0")
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# Request payloads ----------------------------------------------------------


class QuoteRowPayload(BaseModel):
    id: str
    date: datetime.date
    open: float = 0.0
    high: float = 0.0
    low: float = 0.0
    close: float = 0.0
    volume: int = 0
    currency: Optional[str] = None


class DeleteRowsPayload(BaseModel):
    ids: list[str]


# Dependency injection ------------------------------------------------------

def get_portfolio_service() -> PortfolioService:
    service: PortfolioService = app.state.portfolio
    return service


def get_quote_session(
    symbol: str,
    portfolio_service: Annotated[PortfolioService, Depends(get_portfolio_service)],
) -> QuoteHistorySession:
    session = portfolio_service.get_quote_session(symbol)
    if session is None:
        raise HTTPException(status_code=404, detail=f"No open quote session for {symbol.upper()}.")
    return session


# Serialisation helpers -----------------------------------------------------


def _quote_payload(quote: Quote) -> dict[str, object]:
    return {
        "id": quote.id,
        "symbol": quote.symbol,
        "timestamp": quote.timestamp.isoformat(),
        "open": quote.open,
        "high": quote.high,
        "low": quote.low,
        "close": quote.close,
        "volume": quote.volume,
        "adjclose": quote.adjclose,
        "currency": quote.currency,
        "data_source": quote.data_source,
    }


def _entry_payload(entry: QuoteEntry) -> dict[str, object]:
    return {
        "id": str(entry.id),
        "date": entry.date.isoformat(),
        "open": entry.open,
        "high": entry.high,
        "low": entry.low,
        "close": entry.close,
        "volume": entry.volume,
        "currency": entry.currency,
    }


def _session_payload(quote_session: QuoteHistorySession) -> dict[str, object]:
    session = quote_session.session
    return {
        "symbol": quote_session.symbol,
        "currency": quote_session.currency,
        "decimals": quote_session.decimals,
        "entries": [_entry_payload(entry) for entry in session.local_entries],
        "has_unsaved_changes": session.has_unsaved_changes,
        "dirty_count": session.dirty_count,
        "deleted_count": session.deleted_count,
    }


def _commit_payload(result: CommitResult) -> dict[str, object]:
    return {
        "saved": [str(record_id) for record_id in result.saved],
        "deleted": [str(record_id) for record_id in result.deleted],
        "failures": [
            {"id": str(failure.record_id), "operation": failure.operation, "error": str(failure.error)}
            for failure in result.failures
        ],
    }


# Routes --------------------------------------------------------------------


@app.get("/health")
def health_check() -> dict[str, str]:
    """Return a basic heartbeat payload for monitoring purposes."""

    return {"status": "ok"}


@app.get("/accounts/{account_id}/performance")
def account_performance(
    account_id: str,
    portfolio_service: Annotated[PortfolioService, Depends(get_portfolio_service)],
    start: Optional[date] = None,
    end: Optional[date] = None,
    mode: Annotated[str, Query(pattern="^(period|allTime|all_time)$")] = "period",
) -> dict[str, object]:
    result = portfolio_service.account_performance(account_id, start, end, ReturnMode.parse(mode))
    return {
        "account_id": account_id,
        "mode": ReturnMode.parse(mode).value,
        "gain_loss_amount": round_decimal(result.gain_loss_amount),
        "return_ratio": round_decimal(result.return_ratio),
    }


@app.get("/goals/progress")
def goal_progress(
    portfolio_service: Annotated[PortfolioService, Depends(get_portfolio_service)],
) -> dict[str, object]:
    goals = [
        {
            "name": item.name,
            "target_value": item.target_value,
            "current_value": round_decimal(item.current_value),
            "progress": round_decimal(item.progress),
            "currency": item.currency,
        }
        for item in portfolio_service.goal_progress()
    ]
    return {"goals": goals, "count": len(goals)}


@app.get("/quotes/{symbol}")
def list_quotes(
    symbol: str,
    portfolio_service: Annotated[PortfolioService, Depends(get_portfolio_service)],
) -> dict[str, object]:
    quotes = [_quote_payload(quote) for quote in portfolio_service.list_quotes(symbol)]
    return {"symbol": symbol.upper(), "quotes": quotes, "count": len(quotes)}


@app.post("/quotes/import")
async def import_quotes(
    request: Request,
    portfolio_service: Annotated[PortfolioService, Depends(get_portfolio_service)],
) -> dict[str, object]:
    """Import quotes from a CSV request body."""

    body = (await request.body()).decode("utf-8-sig")
    try:
        result = portfolio_service.import_quotes(io.StringIO(body))
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    return {"imported": result.imported, "skipped": result.skipped, "errors": result.errors}


@app.post("/quotes/{symbol}/refresh")
def refresh_quote(
    symbol: str,
    portfolio_service: Annotated[PortfolioService, Depends(get_portfolio_service)],
) -> dict[str, object]:
    quote = portfolio_service.refresh_quote(symbol)
    if not quote:
        raise HTTPException(status_code=503, detail="Quote unavailable. Check the Alpha Vantage API key.")
    return _quote_payload(quote)


# Quote edit sessions -------------------------------------------------------


@app.post("/quotes/{symbol}/session")
def open_quote_session(
    symbol: str,
    portfolio_service: Annotated[PortfolioService, Depends(get_portfolio_service)],
    currency: Annotated[Optional[str], Query(pattern=CURRENCY_PATTERN)] = None,
    asset_kind: Optional[AssetKind] = None,
) -> dict[str, object]:
    session = portfolio_service.open_quote_session(symbol, currency, asset_kind)
    return _session_payload(session)


@app.get("/quotes/{symbol}/session")
def read_quote_session(
    session: Annotated[QuoteHistorySession, Depends(get_quote_session)],
) -> dict[str, object]:
    return _session_payload(session)


@app.delete("/quotes/{symbol}/session")
def close_quote_session(
    symbol: str,
    portfolio_service: Annotated[PortfolioService, Depends(get_portfolio_service)],
) -> dict[str, str]:
    portfolio_service.close_quote_session(symbol)
    return {"status": "closed"}


@app.post("/quotes/{symbol}/session/drafts")
def add_quote_drafts(
    session: Annotated[QuoteHistorySession, Depends(get_quote_session)],
    count: Annotated[int, Query(ge=1, le=1000)] = 1,
) -> dict[str, object]:
    if count == 1:
        session.session.add_draft()
    else:
        session.session.add_draft_batch(count)
    return _session_payload(session)


@app.put("/quotes/{symbol}/session/rows")
def update_quote_rows(
    rows: list[QuoteRowPayload],
    session: Annotated[QuoteHistorySession, Depends(get_quote_session)],
) -> dict[str, object]:
    entries = [
        QuoteEntry(
            id=parse_record_id(row.id),
            date=row.date,
            open=row.open,
            high=row.high,
            low=row.low,
            close=row.close,
            volume=row.volume,
            currency=(row.currency or session.currency).upper(),
        )
        for row in rows
    ]
    changed = session.session.update_from_grid_snapshot(entries)
    payload = _session_payload(session)
    payload["changed"] = [str(record_id) for record_id in changed]
    return payload


@app.post("/quotes/{symbol}/session/delete")
def delete_quote_rows(
    payload: DeleteRowsPayload,
    session: Annotated[QuoteHistorySession, Depends(get_quote_session)],
) -> dict[str, object]:
    session.session.delete_rows([parse_record_id(raw) for raw in payload.ids])
    return _session_payload(session)


@app.post("/quotes/{symbol}/session/commit")
def commit_quote_session(
    session: Annotated[QuoteHistorySession, Depends(get_quote_session)],
    portfolio_service: Annotated[PortfolioService, Depends(get_portfolio_service)],
) -> dict[str, object]:
    result = portfolio_service.commit_quote_session(session)
    payload = _session_payload(session)
    payload["commit"] = _commit_payload(result)
    return payload


@app.post("/quotes/{symbol}/session/cancel")
def cancel_quote_session(
    session: Annotated[QuoteHistorySession, Depends(get_quote_session)],
) -> dict[str, object]:
    session.session.cancel()
    return _session_payload(session)
