import logging
from typing import AsyncIterator, List, Optional, Sequence, Tuple
from langchain_core.language_models.chat_models import BaseChatModel
from langchain_core.messages import BaseMessage, BaseMessageChunk
from langchain_core.runnables import Runnable
from langchain_core.tools import BaseTool
from openai import APIConnectionError, APITimeoutError, InternalServerError, RateLimitError
from tenacity import (
    AsyncRetrying,
    before_sleep_log,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from isuite.core.config import settings
from isuite.core.logging import logger
from isuite.services.llm_registry import LLMRegistry

RETRYABLE_ERRORS = (RateLimitError, APITimeoutError, APIConnectionError, InternalServerError)


class LLMService:
    """
    Manages LLM calls with automatic retries and fallback logic.
    """

    def __init__(self, provider: Optional[str] = None, model_name: Optional[str] = None):
        self.provider = (provider or settings.DEFAULT_LLM_PROVIDER).lower()
        requested = model_name or settings.DEFAULT_LLM_MODEL
        all_names = LLMRegistry.get_all_names(self.provider)
        if not all_names:
            raise ValueError(f"Invalid Provider: {self.provider}")

        # Initialize with the requested model, falling back to the first one
        if requested in all_names:
            self._current_model_index = all_names.index(requested)
        else:
            self._current_model_index = 0
            logger.warning("default_model_not_found_using_first", requested=requested, using=all_names[0])

        logger.info(
            "llm_service_initialised",
            provider=self.provider,
            default_model=self.current_model_name,
            model_index=self._current_model_index,
            total_models=len(all_names),
            environment=settings.ENVIRONMENT.value,
        )

    @property
    def current_model_name(self) -> str:
        return LLMRegistry.LLMS[self.provider][self._current_model_index]["name"]

    def get_llm(self) -> BaseChatModel:
        return LLMRegistry.get(self.provider, self.current_model_name)

    def _switch_to_next_model(self) -> bool:
        """
        Circular Fallback: Switches to the next available model in the registry.
        Returns True if Successful
        """
        total = len(LLMRegistry.LLMS[self.provider])
        if total < 2:
            return False
        next_index = (self._current_model_index + 1) % total
        logger.warning(
            "switching_to_next_model",
            from_model=self.current_model_name,
            to_model=LLMRegistry.LLMS[self.provider][next_index]["name"],
        )
        self._current_model_index = next_index
        return True

    async def _open_stream(
        self, llm: BaseChatModel | Runnable, messages: List[BaseMessage]
    ) -> Tuple[Optional[BaseMessageChunk], AsyncIterator[BaseMessageChunk]]:
        """
        Start a streaming call and wait for its first chunk.

        Only this part is retried: once a chunk has reached the caller a
        retry would duplicate output.
        """
        # The Retry loop
        # If opening the stream raises one of the transient provider errors,
        # Tenacity will wait (exponentially) and try again
        async for attempt in AsyncRetrying(
            stop=stop_after_attempt(settings.MAX_LLM_CALL_RETRIES),
            wait=wait_exponential(multiplier=1, min=2, max=10),
            retry=retry_if_exception_type(RETRYABLE_ERRORS),
            before_sleep=before_sleep_log(logger, logging.WARNING),
            reraise=True,
        ):
            with attempt:
                stream = llm.astream(messages)
                first = await anext(stream, None)
                return first, stream
        raise RuntimeError("unreachable")  # pragma: no cover

    async def astream(
        self, messages: List[BaseMessage], tools: Optional[Sequence[BaseTool]] = None
    ) -> AsyncIterator[BaseMessageChunk]:
        """
        Stream a completion, with retries and circular fallback.
        If the current model keeps failing before producing anything,
        we switch to the next one and try again.

        Args:
            messages: Prompt messages, system prompt included
            tools: Tools the model may call

        Yields:
            Message chunks as the provider produces them

        Raises:
            RuntimeError: If all models fail after retries
        """
        total_models = len(LLMRegistry.LLMS[self.provider])
        models_tried = 0
        starting_model = self.current_model_name
        last_error: Optional[Exception] = None

        while models_tried < total_models:
            try:
                llm = self.get_llm()
                bound = llm.bind_tools(list(tools)) if tools else llm
                first, stream = await self._open_stream(bound, messages)
            except Exception as e:
                last_error = e
                models_tried += 1
                logger.error(
                    "llm_call_failed_after_retries",
                    model=self.current_model_name,
                    models_tried=models_tried,
                    total_models=total_models,
                    error_type=type(e).__name__,
                    error=str(e),
                )
                if models_tried >= total_models or not self._switch_to_next_model():
                    break
                continue

            logger.debug("llm_stream_opened", model=self.current_model_name, message_count=len(messages))
            if first is not None:
                yield first
            async for chunk in stream:
                yield chunk
            return

        logger.error("all_models_failed", models_tried=models_tried, starting_model=starting_model)
        raise RuntimeError(
            f"Failed to get response from any LLM after exhausting all options. "
            f"Tried {models_tried} models. Last error: {last_error}"
        )


llm_service: Optional[LLMService] = None


def get_llm_service() -> LLMService:
    """Process-wide LLMService, created on first use."""
    global llm_service
    if llm_service is None:
        llm_service = LLMService()
    return llm_service
