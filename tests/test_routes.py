"""
Tests for the bridge API routes.
"""

import pytest

from conftest import CountingFactory, jsonrpc
from core.registry import SessionRegistry


@pytest.mark.asyncio
async def test_health_endpoint(app_client, session_factory):
    async with app_client as client:
        response = await client.get("/health")

    assert response.status_code == 200
    assert response.text == "OK"
    assert session_factory.spawn_count == 0


@pytest.mark.asyncio
async def test_health_accepts_any_method(app_client):
    async with app_client as client:
        response = await client.post("/health", content=b"ignored")

    assert response.status_code == 200
    assert response.text == "OK"


@pytest.mark.asyncio
@pytest.mark.parametrize("method", ["GET", "PUT", "DELETE", "PATCH"])
async def test_mcp_rejects_non_post_without_spawning(app_client, registry, session_factory, method):
    async with app_client as client:
        response = await client.request(method, "/mcp")

    assert response.status_code == 405
    assert session_factory.spawn_count == 0
    assert len(registry) == 0


@pytest.mark.asyncio
async def test_mcp_rejects_malformed_json_without_spawning(app_client, registry, session_factory):
    async with app_client as client:
        response = await client.post(
            "/mcp",
            content=b'{"jsonrpc": "2.0", "method": ',
            headers={"Content-Type": "application/json"},
        )

    assert response.status_code == 400
    assert response.json()["detail"].startswith("Invalid JSON")
    assert session_factory.spawn_count == 0
    assert len(registry) == 0


@pytest.mark.asyncio
async def test_mcp_forwards_and_returns_response(app_client):
    async with app_client as client:
        response = await client.post("/mcp", json=jsonrpc("tools/list", {"cursor": "c1"}, id=7))

    assert response.status_code == 200
    assert response.headers["content-type"] == "application/json"
    data = response.json()
    assert data["jsonrpc"] == "2.0"
    assert data["id"] == 7
    assert data["result"]["method"] == "tools/list"
    assert data["result"]["params"] == {"cursor": "c1"}


@pytest.mark.asyncio
async def test_mcp_echoes_null_and_absent_id(app_client):
    async with app_client as client:
        with_null = await client.post(
            "/mcp", content=b'{"jsonrpc":"2.0","id":null,"method":"ping"}'
        )
        without_id = await client.post(
            "/mcp", content=b'{"jsonrpc":"2.0","method":"ping"}'
        )
        with_string = await client.post(
            "/mcp", content=b'{"jsonrpc":"2.0","id":"req-9","method":"ping"}'
        )

    assert with_null.status_code == 200
    assert "id" in with_null.json() and with_null.json()["id"] is None
    assert "id" not in without_id.json()
    assert with_string.json()["id"] == "req-9"


@pytest.mark.asyncio
async def test_session_header_selects_process(app_client, registry, session_factory):
    async with app_client as client:
        a1 = await client.post("/mcp", json=jsonrpc("echo", id=1), headers={"X-Session-ID": "a"})
        b1 = await client.post("/mcp", json=jsonrpc("echo", id=2), headers={"X-Session-ID": "b"})
        a2 = await client.post("/mcp", json=jsonrpc("echo", id=3), headers={"X-Session-ID": "a"})

    assert a1.json()["result"]["pid"] == a2.json()["result"]["pid"]
    assert a1.json()["result"]["pid"] != b1.json()["result"]["pid"]
    assert session_factory.spawn_count == 2
    assert "a" in registry and "b" in registry


@pytest.mark.asyncio
@pytest.mark.parametrize("headers", [{}, {"X-Session-ID": ""}, {"X-Session-ID": "   "}])
async def test_missing_session_header_uses_default(app_client, registry, headers):
    async with app_client as client:
        response = await client.post("/mcp", json=jsonrpc("echo", id=1), headers=headers)

    assert response.status_code == 200
    assert "default" in registry
    assert len(registry) == 1


@pytest.mark.asyncio
async def test_malformed_child_output_returns_500_and_service_survives(app_client, registry):
    async with app_client as client:
        bad = await client.post("/mcp", json=jsonrpc("garbage", id=1))
        health = await client.get("/health")
        again = await client.post("/mcp", json=jsonrpc("echo", id=2))

    assert bad.status_code == 500
    assert bad.json()["detail"].startswith("MCP request failed")
    assert health.status_code == 200
    assert again.status_code == 200
    assert again.json()["id"] == 2
    assert "default" in registry


@pytest.mark.asyncio
async def test_dead_child_returns_500_and_stays_registered(app_client, registry):
    async with app_client as client:
        first = await client.post("/mcp", json=jsonrpc("exit", id=1), headers={"X-Session-ID": "dead"})
        second = await client.post("/mcp", json=jsonrpc("echo", id=2), headers={"X-Session-ID": "dead"})

    assert first.status_code == 500
    assert second.status_code == 500
    assert "dead" in registry


@pytest.mark.asyncio
async def test_unlaunchable_server_returns_500():
    from httpx import AsyncClient, ASGITransport
    from main import create_app

    factory = CountingFactory(command=["definitely-not-an-mcp-server-binary-xyz"])
    registry = SessionRegistry(factory, ttl_seconds=60.0)
    app = create_app(registry=registry)

    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
        response = await client.post("/mcp", json=jsonrpc("initialize", id=1))
        health = await client.get("/health")

    assert response.status_code == 500
    assert response.json()["detail"].startswith("Failed to create MCP session")
    assert len(registry) == 0
    assert health.status_code == 200


@pytest.mark.asyncio
async def test_timeout_discards_session_when_configured(monkeypatch):
    from httpx import AsyncClient, ASGITransport
    from config import BridgeConfig
    from main import create_app

    monkeypatch.setattr(BridgeConfig, "CLOSE_SESSION_ON_TIMEOUT", True)
    factory = CountingFactory(exchange_timeout=0.3, close_timeout=2.0)
    registry = SessionRegistry(factory, ttl_seconds=60.0)
    app = create_app(registry=registry)
    try:
        async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
            response = await client.post("/mcp", json=jsonrpc("hang", id=1))

        assert response.status_code == 500
        assert "did not respond" in response.json()["detail"]
        assert "default" not in registry
        assert factory.created[0].closed
    finally:
        await registry.close_all()


@pytest.mark.asyncio
async def test_timeout_keeps_session_when_configured(monkeypatch):
    from httpx import AsyncClient, ASGITransport
    from config import BridgeConfig
    from main import create_app

    monkeypatch.setattr(BridgeConfig, "CLOSE_SESSION_ON_TIMEOUT", False)
    factory = CountingFactory(exchange_timeout=0.3, close_timeout=2.0)
    registry = SessionRegistry(factory, ttl_seconds=60.0)
    app = create_app(registry=registry)
    try:
        async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
            response = await client.post("/mcp", json=jsonrpc("hang", id=1))

        assert response.status_code == 500
        assert "default" in registry
    finally:
        await registry.close_all()


@pytest.mark.asyncio
async def test_stats_endpoint(app_client):
    async with app_client as client:
        await client.post("/mcp", json=jsonrpc("echo", id=1), headers={"X-Session-ID": "s1"})
        response = await client.get("/stats")

    assert response.status_code == 200
    data = response.json()
    assert data["service"] == "mcp-http-bridge"
    assert data["active_sessions"] == 1
    assert data["sessions"][0]["session_id"] == "s1"
    assert data["sessions"][0]["exchanges"] == 1
    assert "trace_id" in data


@pytest.mark.asyncio
async def test_traceparent_header_propagated(app_client):
    traceparent = "00-abcdef1234567890abcdef1234567890-1234567890abcdef-01"

    async with app_client as client:
        response = await client.get("/health", headers={"traceparent": traceparent})

    assert response.headers["traceparent"] == traceparent
    assert response.headers["x-trace-id"] == "abcdef1234567890abcdef1234567890"


@pytest.mark.asyncio
async def test_request_id_header_becomes_trace_id(app_client):
    async with app_client as client:
        response = await client.get("/stats", headers={"X-Request-ID": "req-123"})

    assert response.headers["x-trace-id"] == "req-123"
    assert response.json()["trace_id"] == "req-123"
