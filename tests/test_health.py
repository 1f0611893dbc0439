# tests/test_health.py
from fastapi.testclient import TestClient

from app.config import get_settings
from app.main import app

client = TestClient(app)


def test_health_check():
    response = client.get("/health")
    assert response.status_code == 200
    data = response.json()
    assert data["status"] in ("ok", "degraded")
    assert data["app"] == get_settings().APP_NAME
    assert data["env"]
    assert data["database"] in ("ok", "error")


def test_routers_are_mounted():
    paths = {route.path for route in app.routes}
    assert "/events/{event_id}/available-times" in paths
    assert "/events/{event_id}/bookings" in paths
    assert "/bookings/{booking_id}/cancel" in paths
    assert "/hosts/{host_id}/availability-patterns" in paths
