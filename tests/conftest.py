"""
Shared test fixtures for the MCP HTTP bridge test suite.
"""

import os
import sys

import pytest
import pytest_asyncio

# Ensure the project root is on the path so imports work
sys.path.insert(0, os.path.join(os.path.dirname(__file__), ".."))

# Set required env vars before any application imports
os.environ.setdefault("ENVIRONMENT", "testing")
os.environ.setdefault("LOG_LEVEL", "WARNING")
os.environ.setdefault("LOG_FILE", "")

FAKE_SERVER = os.path.join(os.path.dirname(__file__), "fixtures", "fake_mcp_server.py")
FAKE_COMMAND = [sys.executable, "-u", FAKE_SERVER]


class CountingFactory:
    """Session factory that records every session it creates."""

    def __init__(self, command=None, **session_kwargs):
        self.command = list(command or FAKE_COMMAND)
        self.session_kwargs = session_kwargs
        self.created = []

    def __call__(self, session_id):
        from core.session import McpSession

        session = McpSession(session_id, self.command, **self.session_kwargs)
        self.created.append(session)
        return session

    @property
    def spawn_count(self) -> int:
        return len(self.created)


@pytest.fixture
def fake_command():
    """Command line that launches the fake MCP server."""
    return list(FAKE_COMMAND)


@pytest.fixture
def session_factory():
    """Counting factory for sessions backed by the fake MCP server."""
    return CountingFactory(exchange_timeout=10.0, close_timeout=2.0)


@pytest_asyncio.fixture
async def registry(session_factory):
    """Isolated registry; every session is closed after the test."""
    from core.registry import SessionRegistry

    reg = SessionRegistry(session_factory, ttl_seconds=60.0, sliding=False)
    yield reg
    await reg.close_all()


@pytest_asyncio.fixture
async def session(fake_command):
    """A started session against the fake MCP server."""
    from core.session import McpSession

    s = McpSession("test", fake_command, exchange_timeout=10.0, close_timeout=2.0)
    await s.start()
    yield s
    await s.close()


@pytest.fixture
def app(registry):
    """FastAPI app wired to the isolated registry."""
    from main import create_app

    return create_app(registry=registry)


@pytest.fixture
def app_client(app):
    """FastAPI test client."""
    from httpx import AsyncClient, ASGITransport

    transport = ASGITransport(app=app)
    return AsyncClient(transport=transport, base_url="http://test")


def jsonrpc(method, params=None, **extra):
    """Build a JSON-RPC request body."""
    body = {"jsonrpc": "2.0", "method": method}
    if params is not None:
        body["params"] = params
    body.update(extra)
    return body
