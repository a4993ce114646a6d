import asyncio
import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple, Union

import httpx
from cachetools import TTLCache

from discover.config import Settings
from discover.models.quote import MarketSnapshot, Quote
from discover.services.errors import ProviderError, UpstreamMalformed, UpstreamUnavailable
from discover.utils import parse_number, parse_percent

log = logging.getLogger("discover.market")

# =========================
# Config
# =========================
FINNHUB_URL = "https://finnhub.io/api/v1/quote"
ALPHA_VANTAGE_URL = "https://www.alphavantage.co/query"

HTTP_HEADERS = {
    "User-Agent": "Mozilla/5.0 (X11; Linux x86_64) Discover/0.1",
    "Accept": "application/json",
}

INDEX_SYMBOLS = ("SPY", "QQQ")
VIX_SYMBOL = "VIX"
CRYPTO_SYMBOLS = ("BTC",)

DISPLAY_NAMES = {
    "SPY": "S&P 500",
    "QQQ": "NASDAQ",
    "VIX": "VIX",
    "BTC": "Bitcoin",
}

# Static payload served when nothing live is available
FALLBACK_INDICES: List[Dict[str, Any]] = [
    {"symbol": "SPY", "name": "S&P 500", "price": 6859.5, "change": 8.45, "changePercent": 0.12},
    {"symbol": "QQQ", "name": "NASDAQ", "price": 25482, "change": 171.75, "changePercent": 0.68},
]
FALLBACK_CRYPTO: List[Dict[str, Any]] = [
    {"symbol": "BTC", "name": "Bitcoin", "price": 90505.05, "change": -880.11, "changePercent": -0.96},
    {"symbol": "VIX", "name": "VIX", "price": 16.35, "change": -0.84, "changePercent": -4.89},
]

def fallback_indices() -> List[Quote]:
    return [Quote(**q) for q in FALLBACK_INDICES]

def fallback_crypto() -> List[Quote]:
    return [Quote(**q) for q in FALLBACK_CRYPTO]

def fallback_market() -> MarketSnapshot:
    return MarketSnapshot(indices=fallback_indices(), crypto=fallback_crypto())

# =========================
# Source selection
# =========================
class QuoteKind(str, Enum):
    FINNHUB = "finnhub"                        # real-time quote
    GLOBAL_QUOTE = "alphavantage.global_quote"  # delayed quote
    CURRENCY_RATE = "alphavantage.fx"          # exchange rate, no deltas

@dataclass(frozen=True)
class QuoteRequest:
    symbol: str
    kind: QuoteKind

@dataclass
class MarketPlan:
    indices: List[QuoteRequest] = field(default_factory=list)
    crypto: List[QuoteRequest] = field(default_factory=list)

    @property
    def requests(self) -> List[QuoteRequest]:
        return self.indices + self.crypto

def select_sources(settings: Settings) -> Optional[MarketPlan]:
    """
    Pick one provider per data category:
      - indices and VIX: Finnhub when keyed, else Alpha Vantage GLOBAL_QUOTE
      - crypto: Alpha Vantage CURRENCY_EXCHANGE_RATE only, skipped without its key
    Returns None when no provider is configured at all.
    """
    finnhub = bool(settings.FINNHUB_API_KEY)
    alpha = bool(settings.ALPHA_VANTAGE_API_KEY)
    if not finnhub and not alpha:
        return None

    equity = QuoteKind.FINNHUB if finnhub else QuoteKind.GLOBAL_QUOTE
    plan = MarketPlan()
    plan.indices = [QuoteRequest(s, equity) for s in INDEX_SYMBOLS]
    if alpha:
        plan.crypto = [QuoteRequest(s, QuoteKind.CURRENCY_RATE) for s in CRYPTO_SYMBOLS]
    # VIX sits after the coins in the crypto group
    plan.crypto.append(QuoteRequest(VIX_SYMBOL, equity))
    return plan

# =========================
# Parsers (one per response shape)
# =========================
def _num(v: Any) -> float:
    # Finnhub sends numbers or null
    if isinstance(v, bool) or not isinstance(v, (int, float)):
        return 0.0
    return parse_number(v)

def parse_finnhub(symbol: str, data: Any) -> Quote:
    if not isinstance(data, dict):
        raise UpstreamMalformed("finnhub", f"unexpected body for {symbol}")
    return Quote(
        symbol=symbol,
        name=symbol,
        price=_num(data.get("c")),
        change=_num(data.get("d")),
        change_percent=_num(data.get("dp")),
    )

def parse_global_quote(symbol: str, data: Any) -> Quote:
    quote = data.get("Global Quote") if isinstance(data, dict) else None
    if not quote or not isinstance(quote, dict):
        # rate-limit answers come back as {"Note": ...} / {"Information": ...}
        raise UpstreamMalformed("alphavantage", f"no Global Quote for {symbol}")
    return Quote(
        symbol=symbol,
        name=symbol,
        price=parse_number(quote.get("05. price")),
        change=parse_number(quote.get("09. change")),
        change_percent=parse_percent(quote.get("10. change percent")),
    )

def parse_currency_rate(symbol: str, data: Any) -> Quote:
    rate = data.get("Realtime Currency Exchange Rate") if isinstance(data, dict) else None
    if not rate or not isinstance(rate, dict):
        raise UpstreamMalformed("alphavantage", f"no exchange rate for {symbol}")
    return Quote(
        symbol=symbol,
        name="Bitcoin" if symbol == "BTC" else symbol,
        price=parse_number(rate.get("5. Exchange Rate")),
        change=0.0,
        change_percent=0.0,
    )

PARSERS = {
    QuoteKind.FINNHUB: parse_finnhub,
    QuoteKind.GLOBAL_QUOTE: parse_global_quote,
    QuoteKind.CURRENCY_RATE: parse_currency_rate,
}

# =========================
# HTTP
# =========================
async def _get_json(client: httpx.AsyncClient, provider: str, url: str, params: Dict[str, str]) -> Any:
    try:
        r = await client.get(url, params=params)
    except httpx.HTTPError as e:
        raise UpstreamUnavailable(provider, f"{type(e).__name__}: {e}") from e
    if r.status_code >= 400:
        raise UpstreamUnavailable(provider, f"HTTP {r.status_code}", status_code=r.status_code)
    try:
        return r.json()
    except ValueError as e:
        raise UpstreamMalformed(provider, "body is not JSON") from e

# =========================
# Aggregator
# =========================
class MarketAggregator:
    """
    Fans out one request per symbol, normalizes whatever comes back and blends
    in the static lists for empty groups. Whole snapshot cached for the
    revalidation window.
    """

    def __init__(self, settings: Settings):
        self.settings = settings
        self.cache: TTLCache = TTLCache(maxsize=1, ttl=settings.MARKET_REVALIDATE)

    def _params(self, req: QuoteRequest) -> Tuple[str, str, Dict[str, str]]:
        if req.kind is QuoteKind.FINNHUB:
            return "finnhub", FINNHUB_URL, {"symbol": req.symbol, "token": self.settings.FINNHUB_API_KEY or ""}
        key = self.settings.ALPHA_VANTAGE_API_KEY or ""
        if req.kind is QuoteKind.GLOBAL_QUOTE:
            return "alphavantage", ALPHA_VANTAGE_URL, {
                "function": "GLOBAL_QUOTE", "symbol": req.symbol, "apikey": key,
            }
        return "alphavantage", ALPHA_VANTAGE_URL, {
            "function": "CURRENCY_EXCHANGE_RATE", "from_currency": req.symbol,
            "to_currency": "USD", "apikey": key,
        }

    async def fetch_quote(self, client: httpx.AsyncClient, req: QuoteRequest) -> Quote:
        provider, url, params = self._params(req)
        data = await _get_json(client, provider, url, params)
        quote = PARSERS[req.kind](req.symbol, data)
        quote.name = DISPLAY_NAMES.get(req.symbol, quote.name)
        return quote

    async def fetch_all(self, requests: List[QuoteRequest]) -> List[Optional[Quote]]:
        """
        One attempt per request, all in flight at once. A ProviderError only
        blanks its own slot; anything else propagates.
        """
        async with httpx.AsyncClient(timeout=self.settings.HTTP_TIMEOUT, headers=HTTP_HEADERS) as client:
            results: List[Union[Quote, BaseException]] = await asyncio.gather(
                *(self.fetch_quote(client, r) for r in requests),
                return_exceptions=True,
            )

        out: List[Optional[Quote]] = []
        for req, res in zip(requests, results):
            if isinstance(res, ProviderError):
                log.warning("quote %s via %s unavailable: %s", req.symbol, req.kind.value, res)
                out.append(None)
            elif isinstance(res, BaseException):
                raise res
            else:
                out.append(res)
        return out

    async def _collect(self, plan: MarketPlan) -> Tuple[List[Quote], List[Quote]]:
        results = await self.fetch_all(plan.requests)
        n = len(plan.indices)
        indices = [q for q in results[:n] if q is not None]
        crypto = [q for q in results[n:] if q is not None]
        return indices, crypto

    async def get_market(self) -> MarketSnapshot:
        if "market" in self.cache:
            return self.cache["market"]
        snapshot = await self._load()
        self.cache["market"] = snapshot
        return snapshot

    async def _load(self) -> MarketSnapshot:
        plan = select_sources(self.settings)
        if plan is None:
            log.info("no quote provider configured, serving static market data")
            return fallback_market()

        try:
            indices, crypto = await self._collect(plan)
        except Exception:
            log.exception("market aggregation failed, serving static market data")
            return fallback_market()

        return compose_market(indices, crypto)

def compose_market(indices: List[Quote], crypto: List[Quote]) -> MarketSnapshot:
    """Each group falls back on its own; both empty means the full static payload."""
    if not indices and not crypto:
        log.info("no live quotes, serving static market data")
        return fallback_market()
    if not indices:
        log.info("no live index quotes, using static indices")
    if not crypto:
        log.info("no live crypto quotes, using static crypto")
    return MarketSnapshot(
        indices=indices or fallback_indices(),
        crypto=crypto or fallback_crypto(),
    )
