import pytest
from langchain_core.messages import AIMessageChunk, HumanMessage

from isuite.core.config import settings
from isuite.services.llm_registry import LLMRegistry
from isuite.services.llm_service import LLMService


class ScriptedModel:
    """Minimal chat model: streams fixed chunks, or fails before the first one."""

    def __init__(self, chunks=None, error=None):
        self.chunks = chunks or []
        self.error = error
        self.bound_tools = None
        self.calls = 0

    def bind_tools(self, tools):
        self.bound_tools = tools
        return self

    async def astream(self, messages):
        self.calls += 1
        if self.error is not None:
            raise self.error
        for chunk in self.chunks:
            yield chunk


@pytest.fixture
def registry(monkeypatch):
    models = {
        "primary": ScriptedModel(error=ValueError("model overloaded")),
        "backup": ScriptedModel(chunks=[AIMessageChunk(content="Hel"), AIMessageChunk(content="lo")]),
    }
    monkeypatch.setitem(
        LLMRegistry.LLMS,
        "fake",
        [{"name": name, "factory": (lambda m=model: m)} for name, model in models.items()],
    )
    monkeypatch.setattr(settings, "MAX_LLM_CALL_RETRIES", 1)
    LLMRegistry.reset()
    yield models
    LLMRegistry.reset()


def test_registry_rejects_unknown_model():
    with pytest.raises(ValueError):
        LLMRegistry.get("openai", "not-a-model")
    with pytest.raises(ValueError):
        LLMRegistry.get("nope", "gpt-4o")


def test_registry_names():
    assert "gpt-4o-mini" in LLMRegistry.get_all_names("openai")
    assert "openai/gpt-4o-mini" in LLMRegistry.get_all_names()


def test_unknown_provider_is_rejected():
    with pytest.raises(ValueError):
        LLMService(provider="nope")


async def test_stream_falls_back_to_next_model(registry):
    service = LLMService(provider="fake", model_name="primary")
    chunks = [chunk async for chunk in service.astream([HumanMessage(content="hi")])]

    assert "".join(c.content for c in chunks) == "Hello"
    assert service.current_model_name == "backup"
    assert registry["primary"].calls == 1


async def test_stream_binds_tools(registry):
    service = LLMService(provider="fake", model_name="backup")
    tools = [object()]
    [chunk async for chunk in service.astream([HumanMessage(content="hi")], tools=tools)]
    assert registry["backup"].bound_tools == tools


async def test_stream_raises_when_every_model_fails(registry):
    registry["backup"].error = ValueError("down too")
    service = LLMService(provider="fake", model_name="primary")
    with pytest.raises(RuntimeError, match="exhausting all options"):
        [chunk async for chunk in service.astream([HumanMessage(content="hi")])]


def test_unknown_default_model_uses_first(registry):
    assert LLMService(provider="fake", model_name="missing").current_model_name == "primary"
