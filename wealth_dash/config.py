"""Application configuration utilities for the wealth_dash backend.

This module centralises environment-driven configuration so the rest of the
code base does not need to read environment variables directly.
"""
from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv

# Load any variables defined in a local .env file. The call is idempotent and
# does not override variables already present in the environment.
load_dotenv()


@dataclass(frozen=True)
class AppConfig:
    """Strongly-typed container for runtime configuration.

    Attributes:
        project_root: Root directory of the project. Used to derive default
            paths so the app works out of the box after cloning the repo.
        database_file: Absolute path to the SQLite database file holding
            quotes, valuations and goals.
        log_level: Name of the root logging level, e.g. ``"INFO"``.
        default_currency: Currency given to quote drafts when the caller does
            not specify one.
        alpha_vantage_key: Optional API key for the Alpha Vantage service,
            required to refresh quotes from the provider.
        alpha_vantage_endpoint: Endpoint URL used when talking to Alpha
            Vantage. Defaults to the public REST API endpoint.
    """

    project_root: Path
    database_file: Path
    log_level: str
    default_currency: str
    alpha_vantage_key: Optional[str]
    alpha_vantage_endpoint: str

    @property
    def database_uri(self) -> str:
        """Return a SQLite URI pointing at :attr:`database_file`."""

        return f"file:{self.database_file}?mode=rwc"


def load_config() -> AppConfig:
    """Create a new :class:`AppConfig` instance based on environment settings.

    Environment variables override the default values, allowing users to
    customise the runtime without touching the source code.
    """

    project_root = Path(__file__).resolve().parent.parent
    database_file = Path(
        getenv_with_default(
            "WEALTH_DASH_DB_FILE",
            project_root / "wealth_dash.db",
        )
    )
    log_level = getenv_with_default("WEALTH_DASH_LOG_LEVEL", "INFO").upper()
    default_currency = getenv_with_default("WEALTH_DASH_CURRENCY", "USD").upper()

    alpha_vantage_key = getenv_with_default("ALPHAVANTAGE_API_KEY")
    alpha_vantage_endpoint = getenv_with_default(
        "ALPHAVANTAGE_ENDPOINT",
        "https://www.alphavantage.co/query",
    )

    # Ensure the directories exist so later code can safely create files.
    database_file.parent.mkdir(parents=True, exist_ok=True)

    return AppConfig(
        project_root=project_root,
        database_file=database_file,
        log_level=log_level,
        default_currency=default_currency,
        alpha_vantage_key=alpha_vantage_key,
        alpha_vantage_endpoint=alpha_vantage_endpoint,
    )


def getenv_with_default(name: str, default: Optional[Path | str] = None) -> Optional[str]:
    """Return the value of an environment variable or a sensible default.

    ``None`` values are propagated so callers can make explicit decisions about
    optional configuration values. Paths are converted to strings, keeping the
    return type uniform and easy to serialise.
    """

    from os import getenv

    value = getenv(name)
    if value is not None:
        return value
    if default is None:
        return None
    return str(default)
