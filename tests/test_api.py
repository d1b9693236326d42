import asyncio
import json

import pytest
from langchain_core.tools import StructuredTool

from conftest import FakeLLMService, text_step, tool_step
from isuite.api import deps
from isuite.api.v1.chat import stream_with_deadline
from isuite.core.config import settings
from isuite.core.langgraph.graph import LangGraphAgent
from isuite.main import app
from isuite.schemas import Connection, StartEvent


def sse_events(response):
    lines = [line for line in response.text.split("\n\n") if line]
    assert lines[-1] == "data: [DONE]"
    return [json.loads(line[len("data: "):]) for line in lines[:-1]]


@pytest.mark.parametrize(
    "method,path",
    [
        ("get", "/connections"),
        ("get", "/connections/toolkits"),
        ("post", "/connections/connect"),
        ("post", "/connections/disconnect"),
        ("get", "/admin/users"),
        ("post", "/chat"),
        ("get", "/chat/sessions"),
        ("post", "/chat/sessions"),
        ("get", "/chat/sessions/abc"),
        ("delete", "/chat/sessions/abc"),
        ("post", "/chat/sessions/abc/messages"),
    ],
)
def test_protected_routes_require_session(client, method, path):
    response = getattr(client, method)(path)
    assert response.status_code == 401
    assert response.json() == {"error": "Unauthorized"}


def test_health(client):
    response = client.get("/health")
    assert response.status_code == 200
    assert response.json()["components"]["database"] == "healthy"


def test_unknown_route_uses_error_shape(client):
    response = client.get("/nope")
    assert response.status_code == 404
    assert "error" in response.json()


# Sessions
def test_session_lifecycle(auth_client):
    session = auth_client.post("/chat/sessions").json()["session"]
    assert session["title"] == "New Chat"
    assert session["messageCount"] == 0
    assert set(session) == {"id", "title", "createdAt", "updatedAt", "messageCount"}

    # a second create while the first is still empty hands back the same one
    assert auth_client.post("/chat/sessions").json()["session"]["id"] == session["id"]

    response = auth_client.post(
        f"/chat/sessions/{session['id']}/messages", json={"role": "user", "content": "Find my open PRs"}
    )
    assert response.status_code == 200
    assert response.json()["message"]["content"] == "Find my open PRs"

    auth_client.post(
        f"/chat/sessions/{session['id']}/messages",
        json={
            "role": "assistant",
            "content": "You have 2 open PRs.",
            "toolCalls": [{"toolName": "GITHUB_LIST_PULL_REQUESTS", "status": "completed", "args": {"state": "open"}}],
        },
    )

    detail = auth_client.get(f"/chat/sessions/{session['id']}").json()
    assert detail["session"]["title"] == "Find my open PRs"
    assert detail["session"]["messageCount"] == 2
    assert [m["role"] for m in detail["messages"]] == ["user", "assistant"]
    assert detail["messages"][1]["toolCalls"] == [
        {"toolName": "GITHUB_LIST_PULL_REQUESTS", "status": "completed", "args": {"state": "open"}}
    ]

    sessions = auth_client.get("/chat/sessions").json()["sessions"]
    assert [s["id"] for s in sessions] == [session["id"]]

    assert auth_client.delete(f"/chat/sessions/{session['id']}").json() == {"success": True}
    response = auth_client.get(f"/chat/sessions/{session['id']}")
    assert response.status_code == 404
    assert response.json() == {"error": "Session not found"}


def test_rename_session(auth_client):
    session_id = auth_client.post("/chat/sessions").json()["session"]["id"]
    response = auth_client.patch(f"/chat/sessions/{session_id}", json={"title": "Weekly report"})
    assert response.json()["session"]["title"] == "Weekly report"
    assert auth_client.patch("/chat/sessions/missing", json={"title": "x"}).status_code == 404


def test_other_users_sessions_are_not_found(auth_client, db):
    foreign = asyncio.run(db.create_session("someone@else.com"))
    assert auth_client.get(f"/chat/sessions/{foreign.id}").status_code == 404
    assert auth_client.delete(f"/chat/sessions/{foreign.id}").status_code == 404
    response = auth_client.post(f"/chat/sessions/{foreign.id}/messages", json={"role": "user", "content": "hi"})
    assert response.status_code == 404


def test_invalid_message_is_rejected(auth_client):
    session_id = auth_client.post("/chat/sessions").json()["session"]["id"]
    response = auth_client.post(f"/chat/sessions/{session_id}/messages", json={"role": "system", "content": "x"})
    assert response.status_code == 400
    body = response.json()
    assert body["error"] == "Validation error"
    assert body["details"]
    assert auth_client.get(f"/chat/sessions/{session_id}").json()["session"]["messageCount"] == 0


# Connections
def test_connections_and_toolkits(auth_client, gateway):
    gateway.connections = [
        Connection(id="ca_1", user_id="a@b.com", toolkit_slug="gmail", status="ACTIVE"),
        Connection(id="ca_2", user_id="a@b.com", toolkit_slug="slack", status="INITIATED"),
        Connection(id="ca_3", user_id="someone@else.com", toolkit_slug="github", status="ACTIVE"),
    ]

    connections = auth_client.get("/connections").json()["connections"]
    assert [c["id"] for c in connections] == ["ca_1", "ca_2"]
    assert connections[0]["toolkitSlug"] == "gmail"

    toolkits = {t["id"]: t["connected"] for t in auth_client.get("/connections/toolkits").json()["toolkits"]}
    assert toolkits["gmail"] is True
    assert toolkits["slack"] is False
    assert toolkits["github"] is False


def test_connect_returns_redirect_url(auth_client, gateway):
    response = auth_client.post("/connections/connect", json={"toolkit": "GitHub"})
    assert response.json() == {"success": True, "redirectUrl": "https://auth.example.com/github"}
    assert gateway.initiated == [("a@b.com", "github")]

    assert auth_client.post("/connections/connect", json={"toolkit": "../etc"}).status_code == 400


def test_disconnect_only_own_connections(auth_client, gateway):
    gateway.connections = [
        Connection(id="ca_1", user_id="a@b.com", toolkit_slug="gmail", status="ACTIVE"),
        Connection(id="ca_3", user_id="someone@else.com", toolkit_slug="github", status="ACTIVE"),
    ]
    assert auth_client.post("/connections/disconnect", json={"connectionId": "ca_1"}).json() == {"success": True}
    assert auth_client.post("/connections/disconnect", json={"connectionId": "ca_3"}).status_code == 404
    assert gateway.removed == ["ca_1"]


def test_upstream_failure_is_502_with_message(auth_client, gateway):
    gateway.fail = "Invalid API key"
    response = auth_client.get("/connections")
    assert response.status_code == 502
    assert response.json() == {"error": "Invalid API key"}


def test_admin_users_groups_by_user(auth_client, gateway):
    gateway.connections = [
        Connection(id="ca_1", user_id="a@b.com", toolkit_slug="gmail", status="ACTIVE"),
        Connection(id="ca_2", toolkit_slug="slack", status="ACTIVE"),
        Connection(id="ca_3", user_id="a@b.com", toolkit_slug="github", status="ACTIVE"),
    ]
    body = auth_client.get("/admin/users").json()
    assert body["success"] is True
    assert body["totalUsers"] == 2
    users = {u["userId"]: u for u in body["users"]}
    assert users["a@b.com"]["totalConnections"] == 2
    assert [c["toolkit"] for c in users["a@b.com"]["connections"]] == ["gmail", "github"]
    assert users["unknown"]["totalConnections"] == 1


# Chat
@pytest.fixture
def use_agent():
    def install(llm):
        app.dependency_overrides[deps.get_agent] = lambda: LangGraphAgent(llm_service=llm)

    return install


def test_chat_streams_events(auth_client, use_agent):
    use_agent(FakeLLMService([text_step("Hi ", "there")]))
    response = auth_client.post("/chat", json={"messages": [{"role": "user", "content": "hello"}]})

    assert response.status_code == 200
    assert response.headers["content-type"].startswith("text/event-stream")
    events = sse_events(response)
    assert [e["type"] for e in events] == ["start", "text-delta", "text-delta", "finish-step", "finish"]
    assert events[1] == {"type": "text-delta", "delta": "Hi "}
    assert events[-1]["steps"] == 1
    assert "messageId" in events[0]


def test_chat_tool_events_use_camel_case(auth_client, gateway, use_agent):
    async def list_repos(owner: str) -> list:
        """List repositories."""
        return ["isuite"]

    gateway.tools = [StructuredTool.from_function(coroutine=list_repos, name="GITHUB_LIST_REPOS")]
    use_agent(FakeLLMService([tool_step("GITHUB_LIST_REPOS", '{"owner": "me"}'), text_step("One repo.")]))

    events = sse_events(auth_client.post("/chat", json={"messages": [{"role": "user", "content": "repos?"}]}))
    tool_input = next(e for e in events if e["type"] == "tool-input-available")
    tool_output = next(e for e in events if e["type"] == "tool-output-available")
    assert tool_input == {
        "type": "tool-input-available",
        "toolCallId": "call_1",
        "toolName": "GITHUB_LIST_REPOS",
        "input": {"owner": "me"},
    }
    assert tool_output["output"] == ["isuite"]


def test_chat_rejects_empty_history(auth_client):
    response = auth_client.post("/chat", json={"messages": []})
    assert response.status_code == 400


def test_chat_tool_manifest_failure_is_502(auth_client, gateway, use_agent):
    use_agent(FakeLLMService([text_step("unused")]))
    gateway.fail = "Composio unavailable"
    response = auth_client.post("/chat", json={"messages": [{"role": "user", "content": "hello"}]})
    assert response.status_code == 502
    assert response.json() == {"error": "Composio unavailable"}


def test_chat_model_failure_becomes_error_event(auth_client, use_agent):
    class FailingLLM:
        async def astream(self, messages, tools=None):
            raise RuntimeError("Failed to get response from any LLM")
            yield  # pragma: no cover

    use_agent(FailingLLM())
    events = sse_events(auth_client.post("/chat", json={"messages": [{"role": "user", "content": "hello"}]}))
    assert [e["type"] for e in events] == ["start", "error"]
    assert events[-1]["errorText"] == "Failed to generate a response"


def test_chat_over_time_limit_emits_error(auth_client, use_agent, monkeypatch):
    class SlowLLM:
        async def astream(self, messages, tools=None):
            await asyncio.sleep(5)
            yield  # pragma: no cover

    monkeypatch.setattr(settings, "CHAT_MAX_DURATION_SECONDS", 0.2)
    use_agent(SlowLLM())
    events = sse_events(auth_client.post("/chat", json={"messages": [{"role": "user", "content": "hello"}]}))
    assert events[-1]["type"] == "error"
    assert "too long" in events[-1]["errorText"]


async def test_stream_with_deadline_passes_events_through():
    async def events():
        yield StartEvent(message_id="m1")

    assert [e.message_id async for e in stream_with_deadline(events(), 1)] == ["m1"]


def hanging_source(cancelled: asyncio.Event):
    async def events():
        yield StartEvent(message_id="m1")
        try:
            await asyncio.sleep(5)
        except asyncio.CancelledError:
            cancelled.set()
            raise
        yield StartEvent(message_id="m2")  # pragma: no cover

    return events()


async def test_stream_with_deadline_cancels_source_on_timeout():
    cancelled = asyncio.Event()
    received = []
    with pytest.raises(TimeoutError):
        async for event in stream_with_deadline(hanging_source(cancelled), 0.1):
            received.append(event.message_id)

    await asyncio.wait_for(cancelled.wait(), 1)
    assert received == ["m1"]


async def test_stream_with_deadline_cancels_source_when_closed_early():
    cancelled = asyncio.Event()
    stream = stream_with_deadline(hanging_source(cancelled), 5)
    assert (await anext(stream)).message_id == "m1"
    await stream.aclose()

    await asyncio.wait_for(cancelled.wait(), 1)
