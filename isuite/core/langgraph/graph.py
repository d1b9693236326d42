import json
import uuid
from typing import Any, AsyncGenerator, Dict, List, Literal, Optional, Sequence

from langchain_core.messages import AIMessage, ToolMessage, message_chunk_to_message
from langchain_core.runnables.config import RunnableConfig
from langchain_core.tools import BaseTool
from langgraph.config import get_stream_writer
from langgraph.graph import END, START, StateGraph
from langgraph.graph.state import CompiledStateGraph
from langgraph.types import Command

from isuite.core.config import settings
from isuite.core.logging import logger
from isuite.core.prompts import load_system_prompt
from isuite.schemas import (
    FinishEvent,
    FinishStepEvent,
    GraphState,
    Message,
    StartEvent,
    StreamEvent,
    TextDeltaEvent,
    ToolInputEvent,
    ToolOutputEvent,
    User,
)
from isuite.services.llm_service import LLMService, get_llm_service
from isuite.services.tool_gateway import ToolGatewayError
from isuite.utils import content_text, dump_messages, prepare_messages, process_llm_response


class LangGraphAgent:
    """
    Manages the LangGraph workflow: a chat node that streams a model step
    and a tool node that runs the requested tools, looping until the model
    stops asking for tools or the step cap is hit.

    Progress is pushed through the graph's custom stream as StreamEvents.
    """

    def __init__(self, llm_service: Optional[LLMService] = None, max_steps: Optional[int] = None):
        self._llm_service = llm_service
        self.max_steps = max_steps or settings.MAX_AGENT_STEPS
        self._graph: Optional[CompiledStateGraph] = None
        logger.info("langgraph_agent_initialized", max_steps=self.max_steps)

    @property
    def llm_service(self) -> LLMService:
        if self._llm_service is None:
            self._llm_service = get_llm_service()
        return self._llm_service

    # Node Logic
    async def _chat(self, state: GraphState, config: RunnableConfig) -> Command[Literal["tool_call", "__end__"]]:
        """
        The main Chat Node.
        1. Loads the system prompt for the current user.
        2. Prepares messages (trimming if needed).
        3. Streams one model step, forwarding text as it arrives.
        """
        writer = get_stream_writer()
        configurable = config.get("configurable", {})
        user: User = configurable["user"]
        tools: List[BaseTool] = configurable.get("tools") or []
        step = state.step_count + 1

        messages = prepare_messages(state.messages, load_system_prompt(user))

        response = None
        try:
            async for chunk in self.llm_service.astream(messages, tools=tools):
                text = content_text(chunk.content)
                if text:
                    writer(TextDeltaEvent(delta=text))
                response = chunk if response is None else response + chunk
        except Exception as e:
            logger.error("llm_call_node_failed", step=step, error=str(e))
            raise

        if response is None:
            response_message = AIMessage(content="")
        else:
            response_message = process_llm_response(message_chunk_to_message(response))

        writer(FinishStepEvent(step=step))

        # Determine routing: If LLM wants to use a tool, go to 'tool_call', else END.
        tool_calls = getattr(response_message, "tool_calls", None) or []
        goto = "tool_call" if tool_calls else END
        logger.debug("chat_step_completed", step=step, tool_call_count=len(tool_calls))
        return Command(update={"messages": [response_message], "step_count": step}, goto=goto)

    async def _tool_call(self, state: GraphState, config: RunnableConfig) -> Command[Literal["chat", "__end__"]]:
        """
        Executes the tools requested by the last model step and feeds the
        results back. Hands control back to chat unless the step cap is reached.
        """
        writer = get_stream_writer()
        tools: List[BaseTool] = config.get("configurable", {}).get("tools") or []
        tools_by_name = {tool.name: tool for tool in tools}

        outputs = []
        for tool_call in state.messages[-1].tool_calls:
            name = tool_call["name"]
            call_id = tool_call.get("id") or f"call_{uuid.uuid4().hex}"
            args = tool_call.get("args") or {}

            writer(ToolInputEvent(tool_call_id=call_id, tool_name=name, input=args))
            result = await self._run_tool(tools_by_name.get(name), name, args)
            writer(ToolOutputEvent(tool_call_id=call_id, tool_name=name, output=result))

            outputs.append(ToolMessage(content=_tool_message_content(result), name=name, tool_call_id=call_id))

        if state.step_count >= self.max_steps:
            # not an error: the model just doesn't get another turn
            logger.info("agent_step_limit_reached", steps=state.step_count)
            goto = END
        else:
            goto = "chat"
        return Command(update={"messages": outputs}, goto=goto)

    async def _run_tool(self, tool: Optional[BaseTool], name: str, args: Dict[str, Any]) -> Any:
        """Run one tool. Failures become an error payload the model can read."""
        if tool is None:
            logger.warning("unknown_tool_requested", tool=name)
            return {"error": f"Unknown tool: {name}"}
        try:
            return await tool.ainvoke(args)
        except ToolGatewayError as e:
            logger.error("tool_call_failed", tool=name, error=e.message, status_code=e.status_code)
            return {"error": e.message}
        except Exception as e:
            logger.exception("tool_call_crashed", tool=name, error=str(e))
            return {"error": f"Tool {name} failed"}

    def create_graph(self) -> CompiledStateGraph:
        """Build (once) and return the compiled graph."""
        if self._graph is None:
            graph_builder = StateGraph(GraphState)
            graph_builder.add_node("chat", self._chat)
            graph_builder.add_node("tool_call", self._tool_call)
            graph_builder.add_edge(START, "chat")
            self._graph = graph_builder.compile(name=f"{settings.PROJECT_NAME} Agent")
            logger.info("graph_created", graph_name=f"{settings.PROJECT_NAME} Agent")
        return self._graph

    async def get_stream_response(
        self, messages: List[Message], user: User, tools: Sequence[BaseTool] = ()
    ) -> AsyncGenerator[StreamEvent, None]:
        """
        Run the conversation and yield its events as they happen:
        start, text deltas / tool events / step boundaries, finish.

        Args:
            messages: The full prior history, last one being the new user message
            user: The authenticated user
            tools: The user's tool manifest

        Yields:
            StreamEvent instances
        """
        message_id = f"msg_{uuid.uuid4().hex}"
        graph = self.create_graph()
        config: RunnableConfig = {
            "configurable": {"user": user, "tools": list(tools)},
            # chat + tool_call per step, plus headroom
            "recursion_limit": self.max_steps * 2 + 5,
        }

        logger.info("conversation_started", user_id=user.id, message_count=len(messages), tool_count=len(tools))
        yield StartEvent(message_id=message_id)

        steps = 0
        async for event in graph.astream(
            {"messages": dump_messages(messages), "step_count": 0}, config, stream_mode="custom"
        ):
            if isinstance(event, FinishStepEvent):
                steps = event.step
            yield event

        logger.info("conversation_finished", user_id=user.id, steps=steps)
        yield FinishEvent(message_id=message_id, steps=steps)


def _tool_message_content(result: Any) -> str:
    if isinstance(result, str):
        return result
    return json.dumps(result, default=str)
