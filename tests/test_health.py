# tests/test_health.py
from typing import Any

from fastapi import status


def test_health_responds(client: Any) -> None:
    """Verify that the health endpoint reports the service as up."""
    r = client.get("/health")
    assert r.status_code == status.HTTP_200_OK
    assert r.json() == {"status": "ok"}


def test_root_describes_service(client: Any, test_settings: Any) -> None:
    r = client.get("/")
    assert r.status_code == status.HTTP_200_OK
    assert r.json()["name"] == test_settings.app_name


def test_payment_headers_are_exposed_to_browsers(client: Any) -> None:
    r = client.get("/health", headers={"Origin": "https://app.example"})
    exposed = r.headers["access-control-expose-headers"]
    assert "X-Payment-Amount" in exposed
    assert "Retry-After" in exposed
