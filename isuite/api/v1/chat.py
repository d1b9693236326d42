"""
POST /chat: the streamed conversation endpoint.

The response is Server-Sent Events, one JSON stream event per `data:` line,
closed by `data: [DONE]`. Nothing is persisted here; the client saves the
finished assistant message through the sessions API.
"""
import asyncio
from typing import AsyncIterator, Union

from fastapi import APIRouter, Depends, HTTPException, Request, status
from fastapi.responses import StreamingResponse

from isuite.api.deps import get_agent, get_tool_gateway, require_user
from isuite.core.config import settings
from isuite.core.langgraph.graph import LangGraphAgent
from isuite.core.limiter import endpoint_limit, limiter
from isuite.core.logging import logger
from isuite.schemas import ChatRequest, ErrorEvent, StreamEvent, User
from isuite.services.tool_gateway import ToolGatewayClient, ToolGatewayError

router = APIRouter()

DONE = "data: [DONE]\n\n"
_END = object()


def format_sse(event: StreamEvent) -> str:
    return f"data: {event.model_dump_json(by_alias=True)}\n\n"


async def stream_with_deadline(events: AsyncIterator[StreamEvent], timeout: float) -> AsyncIterator[StreamEvent]:
    """
    Re-yield `events` until they end or `timeout` seconds have passed.

    The source is drained by its own task so the whole graph run stays in
    one task and can be cancelled as a unit.

    Raises:
        TimeoutError: when the deadline passes first
    """
    queue: asyncio.Queue = asyncio.Queue()

    async def produce() -> None:
        try:
            async for event in events:
                queue.put_nowait(event)
        except Exception as e:
            queue.put_nowait(e)
        finally:
            queue.put_nowait(_END)

    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout
    producer = asyncio.create_task(produce())
    try:
        while True:
            remaining = deadline - loop.time()
            if remaining <= 0:
                raise TimeoutError
            item: Union[StreamEvent, Exception, object] = await asyncio.wait_for(queue.get(), remaining)
            if item is _END:
                return
            if isinstance(item, Exception):
                raise item
            yield item
    finally:
        if not producer.done():
            producer.cancel()


@router.post("")
@limiter.limit(endpoint_limit("chat"))
async def chat(
    request: Request,
    payload: ChatRequest,
    user: User = Depends(require_user),
    gateway: ToolGatewayClient = Depends(get_tool_gateway),
    agent: LangGraphAgent = Depends(get_agent),
):
    """Process a chat request and stream the reply.

    Args:
        request: The FastAPI request object for rate limiting
        payload: The full message history, last one being the new prompt
        user: The authenticated user

    Returns:
        StreamingResponse: text/event-stream of stream events

    Raises:
        HTTPException: 502 if the user's tools cannot be loaded
    """
    try:
        tool_session = await gateway.open_session(user.id)
        tools = await tool_session.tools()
    except ToolGatewayError as e:
        logger.error("chat_tool_manifest_failed", user_id=user.id, error=e.message)
        raise HTTPException(status_code=status.HTTP_502_BAD_GATEWAY, detail=e.message)

    logger.info("chat_request_received", user_id=user.id, message_count=len(payload.messages), tool_count=len(tools))

    async def event_generator():
        try:
            events = agent.get_stream_response(payload.messages, user, tools)
            async for event in stream_with_deadline(events, settings.CHAT_MAX_DURATION_SECONDS):
                yield format_sse(event)
        except TimeoutError:
            logger.warning("chat_stream_timed_out", user_id=user.id, limit=settings.CHAT_MAX_DURATION_SECONDS)
            yield format_sse(ErrorEvent(error_text="The response took too long and was stopped"))
        except ToolGatewayError as e:
            logger.error("chat_stream_tool_gateway_failed", user_id=user.id, error=e.message)
            yield format_sse(ErrorEvent(error_text=e.message))
        except Exception as e:
            logger.exception("chat_stream_failed", user_id=user.id, error=str(e))
            yield format_sse(ErrorEvent(error_text="Failed to generate a response"))
        yield DONE

    return StreamingResponse(
        event_generator(),
        media_type="text/event-stream",
        headers={"Cache-Control": "no-cache", "X-Accel-Buffering": "no"},
    )
