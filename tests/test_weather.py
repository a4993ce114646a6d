"""Tests for the weather endpoint and forecast grouping."""

from __future__ import annotations

from datetime import datetime, timedelta, timezone

import httpx
import pytest

from conftest import json_response
from discover.services.errors import UpstreamMalformed
from discover.services.weather import group_forecast, parse_current, weekday
from discover.utils import js_round

STATIC_FORECAST = [
    {"day": "Fri", "high": 65, "low": 52, "condition": "sunny"},
    {"day": "Sat", "high": 68, "low": 54, "condition": "cloudy"},
    {"day": "Sun", "high": 63, "low": 51, "condition": "rain"},
    {"day": "Mon", "high": 60, "low": 48, "condition": "cloudy"},
    {"day": "Tue", "high": 62, "low": 50, "condition": "sunny"},
]

# Friday 2024-01-05 18:00 UTC, then every 3h: 2 slots on Fri, 8 on Sat
START = datetime(2024, 1, 5, 18, tzinfo=timezone.utc)
MAXES = [60.4, 61.6, 55.5, 58.2, 64.9, 70.1, 68.5, 62.3, 57.0, 54.4]
MINS = [50.2, 51.4, 45.3, 48.0, 54.7, 59.9, 58.3, 52.1, 46.8, 44.2]
MAINS = ["Clouds", "Clear", "Rain", "Rain", "Clouds", "Clear", "Clear", "Clouds", "Snow", "Snow"]


def _slots():
    return [
        {
            "dt": int((START + timedelta(hours=3 * i)).timestamp()),
            "main": {"temp": MAXES[i] - 1, "temp_max": MAXES[i], "temp_min": MINS[i]},
            "weather": [{"main": MAINS[i], "description": MAINS[i].lower()}],
        }
        for i in range(10)
    ]


def _current(name="Oakland"):
    return {
        "name": name,
        "main": {"temp": 58.5, "humidity": 71},
        "weather": [{"main": "Clouds", "description": "broken clouds"}],
        "wind": {"speed": 9.4},
    }


# =============================================================================
# Normalization
# =============================================================================


@pytest.mark.parametrize("x,expected", [(2.5, 3), (-2.5, -2), (68.5, 69), (54.4, 54), (-0.4, 0)])
def test_js_round_is_half_up(x, expected) -> None:
    assert js_round(x) == expected


def test_weekday_uses_utc_english_abbreviation() -> None:
    assert weekday(int(START.timestamp())) == "Fri"
    assert weekday(int((START + timedelta(hours=6)).timestamp())) == "Sat"


def test_forecast_grouped_by_day() -> None:
    days = group_forecast(_slots())

    assert [d.day for d in days] == ["Fri", "Sat"]
    fri, sat = days
    assert (fri.high, fri.low, fri.condition) == (62, 50, "clouds")
    assert (sat.high, sat.low, sat.condition) == (70, 44, "rain")


def test_forecast_truncated_to_five_days() -> None:
    slots = [
        {"dt": int((START + timedelta(days=i)).timestamp()), "main": {"temp_max": 70, "temp_min": 60}, "weather": []}
        for i in range(7)
    ]
    days = group_forecast(slots)
    assert [d.day for d in days] == ["Fri", "Sat", "Sun", "Mon", "Tue"]
    # no weather block -> default keyword
    assert {d.condition for d in days} == {"cloudy"}


def test_parse_current_rounds_and_defaults_condition() -> None:
    body = _current()
    body["weather"] = []
    current = parse_current(body)
    assert current["temperature"] == 59
    assert current["wind_speed"] == 9
    assert current["humidity"] == 71
    assert current["condition"] == "Unknown"


def test_parse_current_missing_fields_is_malformed() -> None:
    with pytest.raises(UpstreamMalformed):
        parse_current({"name": "Nowhere"})


# =============================================================================
# Endpoint
# =============================================================================


def test_no_key_returns_static_weather_for_default_city(make_client, upstream) -> None:
    response = make_client().get("/api/weather")
    assert response.status_code == 200
    assert response.json() == {
        "location": "San Francisco",
        "temperature": 62,
        "condition": "Partly Cloudy",
        "humidity": 65,
        "windSpeed": 12,
        "forecast": STATIC_FORECAST,
    }
    assert upstream.calls.call_count == 0


def test_live_weather(make_client, upstream) -> None:
    upstream.get(host="api.openweathermap.org", path="/data/2.5/weather").mock(
        return_value=json_response(_current())
    )
    forecast = upstream.get(host="api.openweathermap.org", path="/data/2.5/forecast").mock(
        return_value=json_response({"cod": "200", "list": _slots()})
    )

    data = make_client(OPENWEATHERMAP_API_KEY="ow").get("/api/weather", params={"city": "Oakland"}).json()

    assert data == {
        "location": "Oakland",
        "temperature": 59,
        "condition": "broken clouds",
        "humidity": 71,
        "windSpeed": 9,
        "forecast": [
            {"day": "Fri", "high": 62, "low": 50, "condition": "clouds"},
            {"day": "Sat", "high": 70, "low": 44, "condition": "rain"},
        ],
    }
    sent = forecast.calls.last.request.url.params
    assert sent["q"] == "Oakland"
    assert sent["units"] == "imperial"
    assert sent["appid"] == "ow"


def test_forecast_failure_keeps_current_conditions(make_client, upstream) -> None:
    upstream.get(host="api.openweathermap.org", path="/data/2.5/weather").mock(
        return_value=json_response(_current())
    )
    upstream.get(host="api.openweathermap.org", path="/data/2.5/forecast").mock(
        return_value=json_response({"cod": "500"}, status=500)
    )

    data = make_client(OPENWEATHERMAP_API_KEY="ow").get("/api/weather?city=Oakland").json()
    assert data["temperature"] == 59
    assert data["forecast"] == []


@pytest.mark.parametrize(
    "forecast_mock",
    [
        {"return_value": json_response({"cod": "200"})},  # no "list"
        {"side_effect": httpx.ConnectError("connection refused")},
    ],
    ids=["malformed-body", "transport-error"],
)
def test_unusable_forecast_keeps_current_conditions(make_client, upstream, forecast_mock) -> None:
    upstream.get(host="api.openweathermap.org", path="/data/2.5/weather").mock(
        return_value=json_response(_current())
    )
    upstream.get(host="api.openweathermap.org", path="/data/2.5/forecast").mock(**forecast_mock)

    data = make_client(OPENWEATHERMAP_API_KEY="ow").get("/api/weather?city=Oakland").json()
    assert data["location"] == "Oakland"
    assert data["temperature"] == 59
    assert data["condition"] == "broken clouds"
    assert data["forecast"] == []


def test_current_failure_returns_static_weather(make_client, upstream) -> None:
    upstream.get(host="api.openweathermap.org", path="/data/2.5/weather").mock(
        return_value=json_response({"cod": 401, "message": "Invalid API key"}, status=401)
    )
    upstream.get(host="api.openweathermap.org", path="/data/2.5/forecast").mock(
        return_value=json_response({"list": _slots()})
    )

    response = make_client(OPENWEATHERMAP_API_KEY="bad").get("/api/weather?city=Paris")
    assert response.status_code == 200
    data = response.json()
    assert data["location"] == "Paris"
    assert data["condition"] == "Partly Cloudy"
    assert data["forecast"] == STATIC_FORECAST


def test_network_error_returns_static_weather(make_client, upstream) -> None:
    upstream.get(host="api.openweathermap.org").mock(side_effect=httpx.ConnectTimeout("timed out"))

    data = make_client(OPENWEATHERMAP_API_KEY="ow").get("/api/weather?city=Lima").json()
    assert data["location"] == "Lima"
    assert data["temperature"] == 62


def test_cached_per_city(make_client, upstream) -> None:
    current = upstream.get(host="api.openweathermap.org", path="/data/2.5/weather").mock(
        return_value=json_response(_current())
    )
    upstream.get(host="api.openweathermap.org", path="/data/2.5/forecast").mock(
        return_value=json_response({"list": _slots()})
    )
    client = make_client(OPENWEATHERMAP_API_KEY="ow")

    first = client.get("/api/weather?city=Oakland")
    second = client.get("/api/weather?city=Oakland")
    client.get("/api/weather?city=Berkeley")

    assert first.content == second.content
    assert current.call_count == 2
    assert first.headers["cache-control"] == "public, s-maxage=1800, stale-while-revalidate"
