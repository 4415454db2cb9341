"""
Health Check Tests
==================

Tests for the health check endpoints.
"""

import pytest
from httpx import AsyncClient

from app.db.session import get_db
from app.main import app


@pytest.mark.asyncio
async def test_health_check(client: AsyncClient):
    """Test the health check endpoint."""
    response = await client.get("/health")
    
    assert response.status_code == 200
    data = response.json()
    
    assert data["status"] == "healthy"
    assert "version" in data
    assert "environment" in data


@pytest.mark.asyncio
async def test_root_endpoint(client: AsyncClient):
    """Test the root endpoint."""
    response = await client.get("/")
    
    assert response.status_code == 200
    data = response.json()
    
    assert data["name"] == "Fishing Charter Marketplace API"
    assert "version" in data


@pytest.mark.asyncio
async def test_protected_route_requires_token(client: AsyncClient, mock_db):
    """Routes behind CurrentUser answer 401 with the standard error envelope."""
    async def _db():
        yield mock_db

    app.dependency_overrides[get_db] = _db

    response = await client.get("/api/v1/profile")

    assert response.status_code == 401
    body = response.json()
    assert body["success"] is False
    assert body["error"]["code"] == "UNAUTHORIZED"
