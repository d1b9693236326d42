import os

# settings are read at import time
os.environ["APP_ENV"] = "test"
os.environ["DATABASE_URL"] = "sqlite://"
os.environ["AUTH_SECRET"] = "test-secret"
os.environ.setdefault("OPENAI_API_KEY", "sk-test")
os.environ.setdefault("COMPOSIO_API_KEY", "composio-test")

from typing import Any, Dict, List, Optional

import pytest
from fastapi.testclient import TestClient
from langchain_core.messages import AIMessageChunk

from isuite.api import deps
from isuite.core.limiter import limiter
from isuite.main import app
from isuite.schemas import Connection, User
from isuite.services.database_service import DatabaseService
from isuite.services.tool_gateway import ToolGatewayError

limiter.enabled = False


class FakeLLMService:
    """
    Stands in for LLMService: every astream() call plays the next scripted
    step, a list of AIMessageChunk. The last step repeats when exhausted.
    """

    def __init__(self, steps: List[List[AIMessageChunk]]):
        self.steps = steps
        self.calls: List[Dict[str, Any]] = []

    async def astream(self, messages, tools=None):
        self.calls.append({"messages": list(messages), "tools": list(tools or [])})
        step = self.steps[min(len(self.calls), len(self.steps)) - 1]
        for chunk in step:
            yield chunk


def text_step(*parts: str) -> List[AIMessageChunk]:
    return [AIMessageChunk(content=part) for part in parts]


def tool_step(name: str, args_json: str, call_id: str = "call_1", text: str = "") -> List[AIMessageChunk]:
    chunks = [AIMessageChunk(content=text)] if text else []
    chunks.append(
        AIMessageChunk(
            content="",
            tool_call_chunks=[{"name": name, "args": args_json, "id": call_id, "index": 0}],
        )
    )
    return chunks


class FakeToolSession:
    def __init__(self, tools):
        self._tools = tools

    async def tools(self):
        return list(self._tools)


class FakeGateway:
    """In-memory tool platform with the ToolGatewayClient surface the routes use."""

    def __init__(self, connections: Optional[List[Connection]] = None, tools=None, fail: Optional[str] = None):
        self.connections = list(connections or [])
        self.tools = list(tools or [])
        self.fail = fail
        self.removed: List[str] = []
        self.initiated: List[tuple] = []

    def _check(self):
        if self.fail:
            raise ToolGatewayError(self.fail, status_code=500)

    async def list_connections(self, user_id=None):
        self._check()
        if user_id is None:
            return list(self.connections)
        return [c for c in self.connections if c.user_id == user_id]

    async def initiate_connection(self, user_id, toolkit_slug):
        self._check()
        self.initiated.append((user_id, toolkit_slug))
        return f"https://auth.example.com/{toolkit_slug}"

    async def remove_connection(self, connection_id):
        self._check()
        self.removed.append(connection_id)

    async def open_session(self, user_id):
        self._check()
        return FakeToolSession(self.tools)

    async def aclose(self):
        pass


@pytest.fixture
def user() -> User:
    return User(id="a@b.com", email="a@b.com", name="A")


@pytest.fixture
def db() -> DatabaseService:
    # sqlite:// is a fresh in-memory database per engine
    return DatabaseService("sqlite://")


@pytest.fixture
def gateway() -> FakeGateway:
    return FakeGateway()


@pytest.fixture
def client(db, gateway):
    app.dependency_overrides[deps.get_database] = lambda: db
    app.dependency_overrides[deps.get_tool_gateway] = lambda: gateway
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()


@pytest.fixture
def auth_client(client):
    response = client.post("/auth/login", json={"email": "a@b.com", "name": "A"})
    assert response.status_code == 200
    return client
