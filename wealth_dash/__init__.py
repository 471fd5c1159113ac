"""wealth_dash: portfolio returns, goal progress and manual quote editing."""
from __future__ import annotations

from .api import app

__all__ = ["app"]
