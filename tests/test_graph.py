from langchain_core.messages import HumanMessage, SystemMessage, ToolMessage
from langchain_core.tools import StructuredTool

from conftest import FakeLLMService, text_step, tool_step
from isuite.core.langgraph.graph import LangGraphAgent
from isuite.schemas import Message
from isuite.services.tool_gateway import ToolGatewayError


async def send_email(to: str) -> dict:
    """Send an email."""
    return {"sent_to": to}


async def broken_tool(to: str) -> dict:
    """Always fails upstream."""
    raise ToolGatewayError("Gmail is not connected", status_code=400)


def make_tool(func, name="GMAIL_SEND_EMAIL"):
    return StructuredTool.from_function(coroutine=func, name=name, description=func.__doc__)


async def run(agent, user, tools=(), history=None):
    messages = history or [Message(role="user", content="hi")]
    return [event async for event in agent.get_stream_response(messages, user, tools)]


async def test_text_only_reply(user):
    llm = FakeLLMService([text_step("Hel", "lo!")])
    events = await run(LangGraphAgent(llm_service=llm), user)

    assert [e.type for e in events] == ["start", "text-delta", "text-delta", "finish-step", "finish"]
    assert "".join(e.delta for e in events if e.type == "text-delta") == "Hello!"
    assert events[-1].steps == 1
    assert events[-1].message_id == events[0].message_id


async def test_prompt_has_system_message_and_history(user):
    llm = FakeLLMService([text_step("ok")])
    history = [
        Message(role="user", content="first question"),
        Message(role="assistant", content="first answer"),
        Message(role="user", content="second question"),
    ]
    await run(LangGraphAgent(llm_service=llm), user, history=history)

    prompt = llm.calls[0]["messages"]
    assert isinstance(prompt[0], SystemMessage)
    assert "A (a@b.com)" in prompt[0].content
    assert [m.content for m in prompt[1:]] == ["first question", "first answer", "second question"]
    assert isinstance(prompt[-1], HumanMessage)


async def test_tool_call_then_answer(user):
    llm = FakeLLMService([tool_step("GMAIL_SEND_EMAIL", '{"to": "x@y.com"}'), text_step("Sent.")])
    events = await run(LangGraphAgent(llm_service=llm), user, tools=[make_tool(send_email)])

    assert [e.type for e in events] == [
        "start",
        "finish-step",
        "tool-input-available",
        "tool-output-available",
        "text-delta",
        "finish-step",
        "finish",
    ]
    tool_input, tool_output = events[2], events[3]
    assert tool_input.tool_name == "GMAIL_SEND_EMAIL"
    assert tool_input.input == {"to": "x@y.com"}
    assert tool_output.tool_call_id == tool_input.tool_call_id == "call_1"
    assert tool_output.output == {"sent_to": "x@y.com"}
    assert events[-1].steps == 2

    # the second model step sees the tool result
    second_prompt = llm.calls[1]["messages"]
    assert isinstance(second_prompt[-1], ToolMessage)
    assert "x@y.com" in second_prompt[-1].content


async def test_tool_failure_is_fed_back_to_the_model(user):
    llm = FakeLLMService([tool_step("GMAIL_SEND_EMAIL", '{"to": "x@y.com"}'), text_step("Please connect Gmail.")])
    events = await run(LangGraphAgent(llm_service=llm), user, tools=[make_tool(broken_tool)])

    outputs = [e for e in events if e.type == "tool-output-available"]
    assert outputs[0].output == {"error": "Gmail is not connected"}
    assert "Gmail is not connected" in llm.calls[1]["messages"][-1].content
    assert events[-1].type == "finish"


async def test_unknown_tool_is_reported_not_raised(user):
    llm = FakeLLMService([tool_step("NOPE", "{}"), text_step("Sorry.")])
    events = await run(LangGraphAgent(llm_service=llm), user)

    outputs = [e for e in events if e.type == "tool-output-available"]
    assert outputs[0].output == {"error": "Unknown tool: NOPE"}
    assert events[-1].type == "finish"


async def test_step_cap_ends_stream_without_error(user):
    # the model asks for a tool on every step and would never stop on its own
    llm = FakeLLMService([tool_step("GMAIL_SEND_EMAIL", '{"to": "x@y.com"}', text="Working. ")])
    events = await run(LangGraphAgent(llm_service=llm, max_steps=5), user, tools=[make_tool(send_email)])

    assert len(llm.calls) == 5
    assert [e.step for e in events if e.type == "finish-step"] == [1, 2, 3, 4, 5]
    assert not [e for e in events if e.type == "error"]
    assert events[-1].type == "finish"
    assert events[-1].steps == 5
    assert "".join(e.delta for e in events if e.type == "text-delta") == "Working. " * 5
