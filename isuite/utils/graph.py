from typing import Any, List
from langchain_core.messages import BaseMessage, SystemMessage
from langchain_core.messages import trim_messages as _trim_messages
from langchain_core.messages.utils import count_tokens_approximately
from isuite.core.config import settings
from isuite.schemas.chat import Message
from isuite.core.logging import logger


# LangGraph / LLM utilities
def dump_messages(messages: List[Message]) -> List[dict]:
    """
    Converts Pydantic message models into the dictionary format
    expected by OpenAI/LangChain.
    """
    return [{"role": message.role, "content": message.content} for message in messages]


def prepare_messages(messages: List[BaseMessage], system_prompt: str, max_tokens: int | None = None) -> List[BaseMessage]:
    """
    Prepares the message history for the LLM context window.

    Keeps the System Prompt + the most recent messages that fit
    within the context budget. Token counts are approximate so no
    provider tokenizer is needed.
    """
    budget = max_tokens or settings.MAX_CONTEXT_TOKENS
    try:
        trimmed_messages = _trim_messages(
            messages,
            strategy="last",
            token_counter=count_tokens_approximately,
            max_tokens=budget,
            start_on="human",
            include_system=False,
            allow_partial=False,
        )
    except ValueError as e:
        # Handle unrecognized content blocks (e.g., reasoning blocks from GPT-5)
        logger.warning(
            "token_counting_failed_skipping_trim",
            error=str(e),
            message_count=len(messages),
        )
        trimmed_messages = list(messages)
    # always prepend the system prompt to enforce agent behavior
    return [SystemMessage(content=system_prompt)] + list(trimmed_messages)


def content_text(content: Any) -> str:
    """Extract plain text from a message content (string or list of blocks)."""
    if isinstance(content, str):
        return content
    text_parts = []
    if isinstance(content, list):
        for block in content:
            if isinstance(block, str):
                text_parts.append(block)
            elif isinstance(block, dict) and block.get("type") == "text" and "text" in block:
                text_parts.append(block["text"])
    return "".join(text_parts)


def process_llm_response(response: BaseMessage) -> BaseMessage:
    """Process LLM response to handle structured content blocks (e.g., from GPT-5 models).

    GPT-5 models return content as a list of blocks like:
    [
        {'id': '...', 'summary': [], 'type': 'reasoning'},
        {'type': 'text', 'text': 'actual response'}
    ]

    This function extracts the actual text content from such structures.

    Args:
        response: The raw response from the LLM

    Returns:
        BaseMessage with processed content
    """
    if isinstance(response.content, list):
        for block in response.content:
            # Log reasoning blocks for debugging
            if isinstance(block, dict) and block.get("type") == "reasoning":
                logger.debug(
                    "reasoning_block_received",
                    reasoning_id=block.get("id"),
                    has_summary=bool(block.get("summary")),
                )
        block_count = len(response.content)
        response.content = content_text(response.content)
        logger.debug(
            "processed_structured_content",
            block_count=block_count,
            extracted_length=len(response.content),
        )

    return response
