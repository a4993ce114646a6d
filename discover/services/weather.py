import asyncio
import logging
from collections import OrderedDict
from datetime import datetime, timezone
from typing import Any, Dict, List

import httpx
from cachetools import TTLCache

from discover.config import Settings
from discover.models.weather import ForecastDay, WeatherSnapshot
from discover.services.errors import MissingCredentials, ProviderError, UpstreamMalformed, UpstreamUnavailable
from discover.utils import js_round

log = logging.getLogger("discover.weather")

OPENWEATHER_BASE = "https://api.openweathermap.org/data/2.5"
FORECAST_DAYS = 5

# Fixed English abbreviations, independent of the process locale
_WEEKDAYS = ("Mon", "Tue", "Wed", "Thu", "Fri", "Sat", "Sun")

FALLBACK_FORECAST: List[Dict[str, Any]] = [
    {"day": "Fri", "high": 65, "low": 52, "condition": "sunny"},
    {"day": "Sat", "high": 68, "low": 54, "condition": "cloudy"},
    {"day": "Sun", "high": 63, "low": 51, "condition": "rain"},
    {"day": "Mon", "high": 60, "low": 48, "condition": "cloudy"},
    {"day": "Tue", "high": 62, "low": 50, "condition": "sunny"},
]

def fallback_weather(city: str) -> WeatherSnapshot:
    return WeatherSnapshot(
        location=city,
        temperature=62,
        condition="Partly Cloudy",
        humidity=65,
        wind_speed=12,
        forecast=[ForecastDay(**d) for d in FALLBACK_FORECAST],
    )

# =========================
# Normalization
# =========================
def weekday(ts: int) -> str:
    return _WEEKDAYS[datetime.fromtimestamp(int(ts), tz=timezone.utc).weekday()]

def parse_current(data: Any) -> Dict[str, Any]:
    try:
        main = data["main"]
        return {
            "location": data["name"],
            "temperature": js_round(float(main["temp"])),
            "condition": ((data.get("weather") or [{}])[0] or {}).get("description") or "Unknown",
            "humidity": main["humidity"],
            "wind_speed": js_round(float(data["wind"]["speed"])),
        }
    except (KeyError, TypeError, ValueError, IndexError) as e:
        raise UpstreamMalformed("openweathermap", f"current conditions: {e!r}") from e

def group_forecast(entries: List[Dict[str, Any]], days: int = FORECAST_DAYS) -> List[ForecastDay]:
    """
    Fold 3-hour forecast slots into one row per weekday, in encounter order.
    high/low are max/min of the rounded slot temperatures; condition comes
    from the first slot seen for that day.
    """
    daily: "OrderedDict[str, Dict[str, Any]]" = OrderedDict()
    for item in entries:
        key = weekday(item["dt"])
        hi = js_round(float(item["main"]["temp_max"]))
        lo = js_round(float(item["main"]["temp_min"]))
        row = daily.get(key)
        if row:
            row["high"] = max(row["high"], hi)
            row["low"] = min(row["low"], lo)
        else:
            first = (item.get("weather") or [{}])[0] or {}
            daily[key] = {
                "high": hi,
                "low": lo,
                "condition": (first.get("main") or "").lower() or "cloudy",
            }
    return [ForecastDay(day=day, **row) for day, row in list(daily.items())[:days]]

def parse_forecast(data: Any) -> List[ForecastDay]:
    try:
        return group_forecast(data["list"])
    except (KeyError, TypeError, ValueError, IndexError) as e:
        raise UpstreamMalformed("openweathermap", f"forecast: {e!r}") from e

# =========================
# Service
# =========================
class WeatherService:
    def __init__(self, settings: Settings):
        self.settings = settings
        self.cache: TTLCache = TTLCache(maxsize=256, ttl=settings.WEATHER_REVALIDATE)

    async def _get(self, client: httpx.AsyncClient, path: str, city: str) -> Any:
        params = {"q": city, "appid": self.settings.OPENWEATHERMAP_API_KEY or "", "units": "imperial"}
        try:
            r = await client.get(f"{OPENWEATHER_BASE}/{path}", params=params)
        except httpx.HTTPError as e:
            raise UpstreamUnavailable("openweathermap", f"{type(e).__name__}: {e}") from e
        if r.status_code >= 400:
            raise UpstreamUnavailable("openweathermap", f"{path}: HTTP {r.status_code}", status_code=r.status_code)
        try:
            return r.json()
        except ValueError as e:
            raise UpstreamMalformed("openweathermap", f"{path}: body is not JSON") from e

    async def fetch_live(self, city: str) -> WeatherSnapshot:
        """Current conditions and forecast in parallel. Only the current call is required."""
        if not self.settings.OPENWEATHERMAP_API_KEY:
            raise MissingCredentials("openweathermap")

        async with httpx.AsyncClient(timeout=self.settings.HTTP_TIMEOUT) as client:
            current_raw, forecast_raw = await asyncio.gather(
                self._get(client, "weather", city),
                self._get(client, "forecast", city),
                return_exceptions=True,
            )

        if isinstance(current_raw, BaseException):
            raise current_raw
        current = parse_current(current_raw)

        forecast: List[ForecastDay] = []
        if isinstance(forecast_raw, BaseException):
            if not isinstance(forecast_raw, ProviderError):
                raise forecast_raw
            log.warning("forecast for %s unavailable: %s", city, forecast_raw)
        else:
            try:
                forecast = parse_forecast(forecast_raw)
            except UpstreamMalformed as e:
                log.warning("forecast for %s unusable: %s", city, e)

        return WeatherSnapshot(forecast=forecast, **current)

    async def get_weather(self, city: str) -> WeatherSnapshot:
        if city in self.cache:
            return self.cache[city]
        try:
            snapshot = await self.fetch_live(city)
        except MissingCredentials:
            log.info("no weather provider configured, serving static weather for %s", city)
            snapshot = fallback_weather(city)
        except ProviderError as e:
            log.warning("weather for %s unavailable (%s), serving static weather", city, e)
            snapshot = fallback_weather(city)
        except Exception:
            log.exception("weather lookup for %s failed, serving static weather", city)
            snapshot = fallback_weather(city)
        self.cache[city] = snapshot
        return snapshot
