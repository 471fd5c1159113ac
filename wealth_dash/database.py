"""SQLite persistence layer for the wealth_dash backend.

The repository provides a small, well-typed API that hides SQL details from the
rest of the code.  It relies on the standard library :mod:`sqlite3` module and
acts both as the supplier of valuations, goals and allocations and as the
persistence collaborator of quote edit sessions.
"""
from __future__ import annotations

import sqlite3
from datetime import date, datetime
from pathlib import Path
from typing import Iterable, Optional

from .models import Goal, GoalAllocation, Quote, ValuationPoint


class SQLiteRepository:
    """Encapsulates all SQLite access for the application."""

    def __init__(self, database_path: Path | str) -> None:
        self._database_path = database_path
        # FastAPI runs sync endpoints in a worker thread pool.
        self._connection = sqlite3.connect(database_path, check_same_thread=False)
        self._connection.execute("PRAGMA foreign_keys = ON;")
        self._connection.row_factory = sqlite3.Row

    def close(self) -> None:
        """Close the underlying SQLite connection."""

        self._connection.close()

    # ------------------------------------------------------------------
    # Schema management
    # ------------------------------------------------------------------
    def initialise_schema(self) -> None:
        """Create all tables required by the application if they do not exist."""

        cursor = self._connection.cursor()
        cursor.executescript(
            """
            CREATE TABLE IF NOT EXISTS quotes (
                id TEXT PRIMARY KEY,
                symbol TEXT NOT NULL,
                timestamp TEXT NOT NULL,
                open REAL NOT NULL,
                high REAL NOT NULL,
                low REAL NOT NULL,
                close REAL NOT NULL,
                volume REAL NOT NULL,
                adjclose REAL NOT NULL,
                currency TEXT NOT NULL,
                data_source TEXT NOT NULL,
                created_at TEXT NOT NULL
            );

            CREATE INDEX IF NOT EXISTS idx_quotes_symbol_timestamp
                ON quotes (symbol, timestamp);

            CREATE TABLE IF NOT EXISTS account_valuations (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                account_id TEXT NOT NULL,
                valuation_date TEXT NOT NULL,
                account_currency TEXT,
                base_currency TEXT NOT NULL,
                fx_rate_to_base REAL NOT NULL,
                total_value REAL NOT NULL,
                net_contribution REAL NOT NULL,
                UNIQUE(account_id, valuation_date)
            );

            CREATE TABLE IF NOT EXISTS goals (
                id TEXT PRIMARY KEY,
                title TEXT NOT NULL,
                description TEXT,
                target_amount REAL NOT NULL,
                is_achieved INTEGER NOT NULL DEFAULT 0
            );

            CREATE TABLE IF NOT EXISTS goal_allocations (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                goal_id TEXT NOT NULL REFERENCES goals(id) ON DELETE CASCADE,
                account_id TEXT NOT NULL,
                percent_allocation REAL NOT NULL,
                UNIQUE(goal_id, account_id)
            );
            """
        )
        self._connection.commit()

    # ------------------------------------------------------------------
    # Quotes
    # ------------------------------------------------------------------
    def save_quote(self, quote: Quote) -> str:
        """Insert or replace a single quote and return its id."""

        self._write_quote(self._connection.cursor(), quote)
        self._connection.commit()
        return quote.id

    def upsert_quotes(self, quotes: Iterable[Quote]) -> int:
        cursor = self._connection.cursor()
        count = 0
        for quote in quotes:
            self._write_quote(cursor, quote)
            count += 1
        self._connection.commit()
        return count

    def delete_quote(self, quote_id: str) -> None:
        self._connection.execute("DELETE FROM quotes WHERE id = ?", (quote_id,))
        self._connection.commit()

    def list_quotes(self, symbol: str) -> list[Quote]:
        """Return the quotes of ``symbol``, newest first."""

        rows = self._connection.execute(
            """
            SELECT * FROM quotes
            WHERE symbol = ?
            ORDER BY timestamp DESC
            """,
            (symbol.upper(),),
        ).fetchall()
        return [_row_to_quote(row) for row in rows]

    def existing_quote_ids(self, quote_ids: Iterable[str]) -> set[str]:
        wanted = list(set(quote_ids))
        found: set[str] = set()
        # Stay well below SQLite's bound-parameter limit.
        for start in range(0, len(wanted), 500):
            chunk = wanted[start : start + 500]
            placeholders = ", ".join("?" for _ in chunk)
            rows = self._connection.execute(
                f"SELECT id FROM quotes WHERE id IN ({placeholders})",
                chunk,
            ).fetchall()
            found.update(row["id"] for row in rows)
        return found

    @staticmethod
    def _write_quote(cursor: sqlite3.Cursor, quote: Quote) -> None:
        cursor.execute(
            """
            INSERT OR REPLACE INTO quotes (
                id, symbol, timestamp, open, high, low, close, volume,
                adjclose, currency, data_source, created_at
            ) VALUES (
                :id, :symbol, :timestamp, :open, :high, :low, :close, :volume,
                :adjclose, :currency, :data_source, :created_at
            )
            """,
            {
                "id": quote.id,
                "symbol": quote.symbol.upper(),
                "timestamp": quote.timestamp.isoformat(),
                "open": quote.open,
                "high": quote.high,
                "low": quote.low,
                "close": quote.close,
                "volume": quote.volume,
                "adjclose": quote.adjclose,
                "currency": quote.currency.upper(),
                "data_source": quote.data_source,
                "created_at": quote.created_at.isoformat(timespec="seconds"),
            },
        )

    # ------------------------------------------------------------------
    # Account valuations
    # ------------------------------------------------------------------
    def upsert_valuations(self, points: Iterable[ValuationPoint]) -> None:
        cursor = self._connection.cursor()
        for point in points:
            cursor.execute(
                """
                INSERT INTO account_valuations (
                    account_id, valuation_date, account_currency, base_currency,
                    fx_rate_to_base, total_value, net_contribution
                ) VALUES (
                    :account_id, :valuation_date, :account_currency, :base_currency,
                    :fx_rate_to_base, :total_value, :net_contribution
                )
                ON CONFLICT(account_id, valuation_date) DO UPDATE SET
                    account_currency=excluded.account_currency,
                    base_currency=excluded.base_currency,
                    fx_rate_to_base=excluded.fx_rate_to_base,
                    total_value=excluded.total_value,
                    net_contribution=excluded.net_contribution
                ;
                """,
                {
                    "account_id": point.account_id,
                    "valuation_date": point.valuation_date.isoformat(),
                    "account_currency": point.account_currency,
                    "base_currency": point.base_currency.upper(),
                    "fx_rate_to_base": point.fx_rate_to_base,
                    "total_value": point.total_value,
                    "net_contribution": point.net_contribution,
                },
            )
        self._connection.commit()

    def list_valuations(
        self,
        account_id: str,
        start: Optional[date] = None,
        end: Optional[date] = None,
    ) -> list[ValuationPoint]:
        """Return the valuations of an account in ascending date order."""

        query = "SELECT * FROM account_valuations WHERE account_id = ?"
        params: list[object] = [account_id]
        if start is not None:
            query += " AND valuation_date >= ?"
            params.append(start.isoformat())
        if end is not None:
            query += " AND valuation_date <= ?"
            params.append(end.isoformat())
        query += " ORDER BY valuation_date ASC"
        rows = self._connection.execute(query, params).fetchall()
        return [_row_to_valuation(row) for row in rows]

    def latest_valuations(self) -> dict[str, ValuationPoint]:
        """Return the most recent valuation of every account, keyed by account id."""

        rows = self._connection.execute(
            """
            SELECT v.*
            FROM account_valuations v
            JOIN (
                SELECT account_id, MAX(valuation_date) AS latest
                FROM account_valuations
                GROUP BY account_id
            ) m ON m.account_id = v.account_id AND m.latest = v.valuation_date
            ORDER BY v.account_id
            """
        ).fetchall()
        return {row["account_id"]: _row_to_valuation(row) for row in rows}

    # ------------------------------------------------------------------
    # Goals
    # ------------------------------------------------------------------
    def upsert_goal(self, goal: Goal) -> None:
        self._connection.execute(
            """
            INSERT INTO goals (id, title, description, target_amount, is_achieved)
            VALUES (:id, :title, :description, :target_amount, :is_achieved)
            ON CONFLICT(id) DO UPDATE SET
                title=excluded.title,
                description=excluded.description,
                target_amount=excluded.target_amount,
                is_achieved=excluded.is_achieved
            """,
            {
                "id": goal.id,
                "title": goal.title,
                "description": goal.description,
                "target_amount": goal.target_amount,
                "is_achieved": int(goal.is_achieved),
            },
        )
        self._connection.commit()

    def list_goals(self) -> list[Goal]:
        rows = self._connection.execute("SELECT * FROM goals ORDER BY rowid").fetchall()
        return [
            Goal(
                id=row["id"],
                title=row["title"],
                description=row["description"],
                target_amount=float(row["target_amount"]),
                is_achieved=bool(row["is_achieved"]),
            )
            for row in rows
        ]

    def upsert_allocation(self, allocation: GoalAllocation) -> None:
        self._connection.execute(
            """
            INSERT INTO goal_allocations (goal_id, account_id, percent_allocation)
            VALUES (?, ?, ?)
            ON CONFLICT(goal_id, account_id) DO UPDATE SET
                percent_allocation=excluded.percent_allocation
            """,
            (allocation.goal_id, allocation.account_id, allocation.percent_allocation),
        )
        self._connection.commit()

    def list_allocations(self) -> list[GoalAllocation]:
        rows = self._connection.execute("SELECT * FROM goal_allocations ORDER BY id").fetchall()
        return [
            GoalAllocation(
                id=str(row["id"]),
                goal_id=row["goal_id"],
                account_id=row["account_id"],
                percent_allocation=float(row["percent_allocation"]),
            )
            for row in rows
        ]


def _row_to_quote(row: sqlite3.Row) -> Quote:
    return Quote(
        id=row["id"],
        symbol=row["symbol"],
        timestamp=datetime.fromisoformat(row["timestamp"]),
        open=float(row["open"]),
        high=float(row["high"]),
        low=float(row["low"]),
        close=float(row["close"]),
        volume=float(row["volume"]),
        adjclose=float(row["adjclose"]),
        currency=row["currency"],
        data_source=row["data_source"],
        created_at=datetime.fromisoformat(row["created_at"]),
    )


def _row_to_valuation(row: sqlite3.Row) -> ValuationPoint:
    return ValuationPoint(
        account_id=row["account_id"],
        valuation_date=date.fromisoformat(row["valuation_date"]),
        total_value=float(row["total_value"]),
        net_contribution=float(row["net_contribution"]),
        base_currency=row["base_currency"],
        fx_rate_to_base=float(row["fx_rate_to_base"]),
        account_currency=row["account_currency"],
    )
