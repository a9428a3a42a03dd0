from unittest.mock import AsyncMock, MagicMock

import aiosqlite
import httpx


def _ollama_up(client):
    mock_response = MagicMock()
    mock_response.status_code = 200
    client.app.state.ollama_client._http.get = AsyncMock(return_value=mock_response)


def test_health_ok(client):
    _ollama_up(client)

    resp = client.get("/health")
    assert resp.status_code == 200
    data = resp.json()
    assert data["status"] == "ok"
    assert data["checks"]["ollama"]["available"] is True
    assert data["checks"]["database"]["available"] is True


def test_health_ollama_down(client):
    client.app.state.ollama_client._http.get = AsyncMock(
        side_effect=httpx.ConnectError("refused")
    )

    resp = client.get("/health")
    assert resp.status_code == 200
    data = resp.json()
    assert data["status"] == "degraded"
    assert data["checks"]["ollama"]["available"] is False
    assert data["checks"]["database"]["available"] is True


def test_health_database_down(client):
    _ollama_up(client)
    repository = MagicMock()
    repository.ping = AsyncMock(side_effect=aiosqlite.OperationalError("disk I/O error"))
    client.app.state.repository = repository

    data = client.get("/health").json()
    assert data["status"] == "degraded"
    assert data["checks"]["database"]["available"] is False
