"""Shared fixtures: an app per test with explicit settings, and mocked upstreams."""

from __future__ import annotations

from typing import Any, Callable, Dict, Optional

import httpx
import pytest
import respx
from fastapi.testclient import TestClient

from discover.config import Settings
from discover.main import create_app


def make_settings(**overrides: Any) -> Settings:
    values: Dict[str, Any] = {
        "FINNHUB_API_KEY": None,
        "ALPHA_VANTAGE_API_KEY": None,
        "OPENWEATHERMAP_API_KEY": None,
        "WORDPRESS_URL": None,
    }
    values.update(overrides)
    return Settings(_env_file=None, **values)


@pytest.fixture
def make_client() -> Callable[..., TestClient]:
    """Build a TestClient around a fresh app (fresh caches) with the given settings."""

    def _make(**overrides: Any) -> TestClient:
        return TestClient(create_app(make_settings(**overrides)))

    return _make


@pytest.fixture
def upstream():
    """Intercept outbound httpx calls. Routes left uncalled are fine."""
    with respx.mock(assert_all_called=False) as mock:
        yield mock


# =============================================================================
# Upstream payload builders
# =============================================================================


def finnhub_body(c: float, d: Optional[float], dp: Optional[float]) -> Dict[str, Any]:
    return {"c": c, "d": d, "dp": dp, "h": c, "l": c, "o": c, "pc": c, "t": 1700000000}


def global_quote_body(symbol: str, price: str, change: str, pct: str) -> Dict[str, Any]:
    return {
        "Global Quote": {
            "01. symbol": symbol,
            "05. price": price,
            "09. change": change,
            "10. change percent": pct,
        }
    }


def fx_body(code: str, rate: str) -> Dict[str, Any]:
    return {
        "Realtime Currency Exchange Rate": {
            "1. From_Currency Code": code,
            "3. To_Currency Code": "USD",
            "5. Exchange Rate": rate,
        }
    }


def json_response(body: Any, status: int = 200) -> httpx.Response:
    return httpx.Response(status, json=body)
