"""Tests for the health check endpoint."""

from __future__ import annotations

from unittest.mock import patch

from django.db import DatabaseError


class TestHealthCheck:
    def test_healthy(self, client, db):
        response = client.get("/health/")

        assert response.status_code == 200
        assert response.json() == {
            "status": "healthy",
            "database": "connected",
            "cache": "connected",
        }

    def test_database_down(self, client, db):
        with patch("core.views.connection.cursor", side_effect=DatabaseError("down")):
            response = client.get("/health/")

        assert response.status_code == 503
        assert response.json()["database"] == "disconnected"
        assert response.json()["status"] == "unhealthy"

    def test_cache_down_is_degraded_not_failed(self, client, db):
        with patch("core.views.cache.set", side_effect=ConnectionError("redis gone")):
            response = client.get("/health/")

        assert response.status_code == 200
        assert response.json()["cache"] == "disconnected"
