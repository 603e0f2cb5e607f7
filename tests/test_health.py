#!/usr/bin/env python3
"""
Basic health endpoint tests for CI/CD pipeline.
Runs against a throwaway SQLite database, no external services.
"""

import pytest
import sys
import os

# Add app to Python path for testing
sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..'))


@pytest.mark.smoke
def test_health_endpoint(client):
    """Liveness never touches the database"""
    response = client.get("/healthz")
    assert response.status_code == 200
    assert response.json() == {"ok": True}


@pytest.mark.smoke
def test_ready_endpoint(client):
    response = client.get("/readyz")
    assert response.status_code == 200
    assert response.json() == {"db": "ok"}


@pytest.mark.smoke
def test_api_health_reports_environment(client):
    response = client.get("/api/health")
    assert response.status_code == 200
    data = response.json()
    assert data["status"] == "ok"
    assert data["environment"] == "testing"
    assert "timestamp" in data


def test_admin_user_bootstrapped_on_startup(client, admin_auth):
    """Lifespan creates the admin account from settings"""
    assert client.get("/api/user", auth=admin_auth).status_code == 200


def test_openapi_lists_public_routes(client):
    paths = client.get("/openapi.json").json()["paths"]
    for path in ("/api/availability", "/api/availability/next", "/api/bookings", "/api/bookings/{token}",
                 "/api/admin/blocked-slots/bulk", "/api/contact", "/api/health"):
        assert path in paths
