"""Tests for the health endpoint."""

from datetime import datetime


def test_health_endpoint(make_client) -> None:
    response = make_client().get("/health")
    assert response.status_code == 200
    data = response.json()
    assert data["status"] == "ok"
    assert datetime.fromisoformat(data["time_utc"]).tzinfo is not None
