"""Shared fixtures for the portal backend tests."""

import asyncio
import json
import os
from typing import Optional, Tuple
from urllib.parse import urlencode

# Required settings must exist before main.py builds the container settings
os.environ.setdefault("JWT_SECRET_KEY", "test-secret-key-for-the-portal-backend-0123456789")
os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///:memory:")
os.environ.setdefault("LOG_LEVEL", "WARNING")
os.environ.setdefault("LOG_FORMAT", "console")

import pytest
from dependency_injector import providers
from fastapi.testclient import TestClient

from core.config import Settings
from core.container import container

TEST_PASSWORD = "correct-horse-battery"


class FakeRequest:
    """Stands in for a Starlette request in the SSE generator tests."""

    def __init__(self):
        self.disconnected = False

    async def is_disconnected(self) -> bool:
        return self.disconnected


@pytest.fixture
def fake_request() -> FakeRequest:
    return FakeRequest()


@pytest.fixture
def settings(tmp_path) -> Settings:
    return Settings(
        jwt_secret_key=os.environ["JWT_SECRET_KEY"],
        database_url=f"sqlite+aiosqlite:///{tmp_path}/portal.db",
        log_level="WARNING",
        log_format="console",
        sse_heartbeat_interval=0.05,
    )


@pytest.fixture
def app(settings):
    """The FastAPI app wired to a fresh database, caches and broadcaster."""
    container.settings.override(providers.Object(settings))
    container.reset_singletons()

    from main import app as fastapi_app
    yield fastapi_app

    container.settings.reset_override()
    container.reset_singletons()


@pytest.fixture
def client(app):
    with TestClient(app) as test_client:
        yield test_client


def register(client: TestClient, email: str, name: str = "Test User",
             department: Optional[str] = None) -> dict:
    """Register an account; the client keeps its session cookie."""
    response = client.post("/api/auth/register", json={
        "email": email,
        "password": TEST_PASSWORD,
        "name": name,
        "department": department,
    })
    assert response.status_code == 201, response.text
    return response.json()["user"]


def login(client: TestClient, email: str) -> dict:
    """Switch the client's session to another account."""
    response = client.post("/api/auth/login", json={"email": email, "password": TEST_PASSWORD})
    assert response.status_code == 200, response.text
    return response.json()["user"]


async def _first_sse_chunk(app, path: str, query: str, cookie: str):
    """Run one GET through the ASGI app and disconnect after the first SSE message."""
    first_message = asyncio.Event()
    request_sent = False
    response = {"status": None, "headers": {}, "body": b""}

    async def receive():
        nonlocal request_sent
        if not request_sent:
            request_sent = True
            return {"type": "http.request", "body": b"", "more_body": False}
        await first_message.wait()
        return {"type": "http.disconnect"}

    async def send(message):
        if message["type"] == "http.response.start":
            response["status"] = message["status"]
            response["headers"] = {k.decode(): v.decode() for k, v in message["headers"]}
        elif message["type"] == "http.response.body":
            response["body"] += message.get("body", b"")
            if b"\n\n" in response["body"] or not message.get("more_body", False):
                first_message.set()

    scope = {
        "type": "http",
        "asgi": {"version": "3.0"},
        "http_version": "1.1",
        "method": "GET",
        "scheme": "http",
        "path": path,
        "raw_path": path.encode(),
        "root_path": "",
        "query_string": query.encode(),
        "headers": [(b"host", b"testserver"), (b"cookie", cookie.encode())],
        "client": ("testclient", 50000),
        "server": ("testserver", 80),
    }
    await asyncio.wait_for(app(scope, receive, send), timeout=5)
    return response


def read_first_event(client: TestClient, path: str, **params) -> Tuple[int, dict, dict]:
    """First ``data:`` message of an SSE endpoint, read with the client's session.

    The test client buffers whole responses, so streams are driven at the
    ASGI level on the client's event loop and disconnected after one message.
    """
    cookie = "; ".join(f"{name}={value}" for name, value in client.cookies.items())
    response = client.portal.call(_first_sse_chunk, client.app, path, urlencode(params), cookie)

    body = response["body"].decode()
    if not body.startswith("data: "):
        return response["status"], response["headers"], json.loads(body) if body else {}
    first = body.split("\n\n", 1)[0]
    return response["status"], response["headers"], json.loads(first[len("data: "):])
