"""Market data helpers for the wealth_dash backend."""
from __future__ import annotations

from datetime import date
from typing import Optional

import requests

from .config import AppConfig
from .models import Quote
from .quote_history import quote_id_for, quote_timestamp

PROVIDER_DATA_SOURCE = "ALPHA_VANTAGE"


class PriceService:
    """Fetch quotes from the external market data provider."""

    def __init__(self, config: AppConfig, session: Optional[requests.Session] = None) -> None:
        self._config = config
        self._session = session or requests.Session()

    def fetch_equity_quote(self, symbol: str) -> Optional[Quote]:
        """Return the latest daily quote of ``symbol`` from Alpha Vantage.

        The function gracefully degrades to ``None`` when the API key is not
        configured or when the external service does not return the expected
        payload structure.  HTTP errors are raised to the caller.
        """

        if not self._config.alpha_vantage_key:
            return None

        params = {
            "function": "GLOBAL_QUOTE",
            "symbol": symbol,
            "apikey": self._config.alpha_vantage_key,
        }
        response = self._session.get(self._config.alpha_vantage_endpoint, params=params, timeout=30)
        response.raise_for_status()
        payload = response.json()
        quote_section = payload.get("Global Quote")
        if not quote_section:
            return None

        close = _parse_float(quote_section.get("05. price"))
        if close is None:
            return None

        trading_day = _parse_day(quote_section.get("07. latest trading day")) or date.today()
        currency = quote_section.get("08. currency", "USD")

        def _or_close(key: str) -> float:
            value = _parse_float(quote_section.get(key))
            return close if value is None else value

        return Quote(
            id=quote_id_for(trading_day, symbol),
            symbol=symbol.upper(),
            timestamp=quote_timestamp(trading_day),
            open=_or_close("02. open"),
            high=_or_close("03. high"),
            low=_or_close("04. low"),
            close=close,
            volume=_parse_float(quote_section.get("06. volume")) or 0.0,
            adjclose=close,
            currency=currency.upper(),
            data_source=PROVIDER_DATA_SOURCE,
        )


def _parse_float(value: object) -> Optional[float]:
    if value is None:
        return None
    try:
        return float(value)
    except (TypeError, ValueError):
        return None


def _parse_day(value: object) -> Optional[date]:
    if not value:
        return None
    try:
        return date.fromisoformat(str(value))
    except ValueError:
        return None
