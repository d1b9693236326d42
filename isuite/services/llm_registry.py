from typing import Any, Callable, Dict, List, Optional
from langchain_core.language_models.chat_models import BaseChatModel
from langchain_groq import ChatGroq
from langchain_openai import ChatOpenAI

from isuite.core.config import settings
from isuite.core.logging import logger


# LLM Registry
class LLMRegistry:
    """
    Registry of available LLM models.
    This allows us to switch 'Brains' on the fly without changing code.

    Entries hold a factory rather than a client: provider SDKs refuse to
    start without an API key, and only the configured provider has one.
    """

    # We pre-configure models with different capabilities/costs
    LLMS: Dict[str, List[Dict[str, Any]]] = {
        "openai": [
            {
                "name": "gpt-4o-mini",
                "factory": lambda: ChatOpenAI(
                    model="gpt-4o-mini",
                    temperature=settings.DEFAULT_LLM_TEMPERATURE,
                    api_key=settings.OPENAI_API_KEY or None,
                    max_completion_tokens=settings.MAX_TOKENS,
                    max_retries=0,
                ),
            },
            {
                "name": "gpt-4o",
                "factory": lambda: ChatOpenAI(
                    model="gpt-4o",
                    temperature=settings.DEFAULT_LLM_TEMPERATURE,
                    api_key=settings.OPENAI_API_KEY or None,
                    max_completion_tokens=settings.MAX_TOKENS,
                    max_retries=0,
                ),
            },
            {
                "name": "gpt-4.1-mini",
                "factory": lambda: ChatOpenAI(
                    model="gpt-4.1-mini",
                    temperature=settings.DEFAULT_LLM_TEMPERATURE,
                    api_key=settings.OPENAI_API_KEY or None,
                    max_completion_tokens=settings.MAX_TOKENS,
                    max_retries=0,
                ),
            },
        ],
        "groq": [
            {
                "name": "openai/gpt-oss-120b",
                "factory": lambda: ChatGroq(
                    model="openai/gpt-oss-120b",
                    api_key=settings.GROQ_API_KEY or None,
                    max_tokens=settings.MAX_TOKENS,
                    temperature=settings.DEFAULT_LLM_TEMPERATURE,
                    max_retries=0,
                ),
            },
            {
                "name": "moonshotai/kimi-k2-instruct-0905",
                "factory": lambda: ChatGroq(
                    model="moonshotai/kimi-k2-instruct-0905",
                    api_key=settings.GROQ_API_KEY or None,
                    max_tokens=settings.MAX_TOKENS,
                    temperature=settings.DEFAULT_LLM_TEMPERATURE,
                    max_retries=0,
                ),
            },
        ],
    }

    # Built instances, keyed by (provider, name)
    _instances: Dict[tuple, BaseChatModel] = {}

    @classmethod
    def _entry(cls, llm_provider: str, model_name: str) -> Dict[str, Any]:
        provider = llm_provider.lower()
        if provider not in cls.LLMS:
            logger.error("invalid_llm_provider", provider=llm_provider)
            raise ValueError(f"Invalid Provider: {llm_provider}")

        for entry in cls.LLMS[provider]:
            if entry["name"] == model_name:
                return entry

        available_models = cls.get_all_names(provider)
        raise ValueError(
            f"model '{model_name}' not found in registry. available models: {', '.join(available_models)}"
        )

    @classmethod
    def get(cls, llm_provider: str, model_name: str) -> BaseChatModel:
        """Retrieve (building on first use) a specific model instance by name."""
        entry = cls._entry(llm_provider, model_name)
        key = (llm_provider.lower(), model_name)
        if key not in cls._instances:
            factory: Callable[[], BaseChatModel] = entry["factory"]
            cls._instances[key] = factory()
            logger.debug("llm_instance_created", provider=key[0], model_name=model_name)
        return cls._instances[key]

    @classmethod
    def get_all_names(cls, llm_provider: Optional[str] = None) -> List[str]:
        """
        If LLM_provider is passed: returns names for that provider.
        If None: return fully quantified names like "openai/gpt-4o".
        """
        if llm_provider:
            llm_provider = llm_provider.lower()
            return [e["name"] for e in cls.LLMS.get(llm_provider, [])]

        out: List[str] = []
        for provider, entries in cls.LLMS.items():
            for e in entries:
                out.append(f"{provider}/{e['name']}")
        return out

    @classmethod
    def reset(cls) -> None:
        """Forget built instances (settings changed, or between tests)."""
        cls._instances.clear()
