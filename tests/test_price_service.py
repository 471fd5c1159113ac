from datetime import date
from unittest.mock import MagicMock

import pytest
import requests

from wealth_dash.config import AppConfig
from wealth_dash.price_service import PriceService


def _config(tmp_path, key="secret"):
    return AppConfig(
        project_root=tmp_path,
        database_file=tmp_path / "test.db",
        log_level="INFO",
        default_currency="USD",
        alpha_vantage_key=key,
        alpha_vantage_endpoint="https://example.invalid/query",
    )


def _session_returning(payload):
    response = MagicMock()
    response.json.return_value = payload
    session = MagicMock()
    session.get.return_value = response
    return session


def test_fetch_equity_quote_maps_global_quote(tmp_path) -> None:
    session = _session_returning(
        {
            "Global Quote": {
                "01. symbol": "ACME",
                "02. open": "10.0",
                "03. high": "12.5",
                "04. low": "9.5",
                "05. price": "12.0",
                "06. volume": "12345",
                "07. latest trading day": "2024-04-05",
            }
        }
    )
    quote = PriceService(_config(tmp_path), session=session).fetch_equity_quote("acme")

    assert quote.id == "20240405_ACME"
    assert quote.symbol == "ACME"
    assert quote.timestamp.date() == date(2024, 4, 5)
    assert (quote.open, quote.high, quote.low, quote.close) == (10.0, 12.5, 9.5, 12.0)
    assert quote.volume == 12345.0
    assert quote.currency == "USD"
    assert quote.data_source == "ALPHA_VANTAGE"
    _, kwargs = session.get.call_args
    assert kwargs["params"]["function"] == "GLOBAL_QUOTE"


def test_fetch_equity_quote_without_key(tmp_path) -> None:
    session = MagicMock()
    assert PriceService(_config(tmp_path, key=None), session=session).fetch_equity_quote("ACME") is None
    session.get.assert_not_called()


@pytest.mark.parametrize("payload", [{}, {"Global Quote": {}}, {"Global Quote": {"05. price": "n/a"}}])
def test_fetch_equity_quote_malformed_payload(tmp_path, payload) -> None:
    service = PriceService(_config(tmp_path), session=_session_returning(payload))
    assert service.fetch_equity_quote("ACME") is None


def test_fetch_equity_quote_propagates_http_errors(tmp_path) -> None:
    session = _session_returning({})
    session.get.return_value.raise_for_status.side_effect = requests.HTTPError("503")
    with pytest.raises(requests.HTTPError):
        PriceService(_config(tmp_path), session=session).fetch_equity_quote("ACME")
