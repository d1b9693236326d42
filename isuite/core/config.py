"""Application configuration.

Settings are read from the process environment once, at import time, after
loading the matching `.env.<environment>` file (and a plain `.env` as
fallback). Everything else in the app receives this object explicitly.
"""
import json
import os
from enum import Enum
from pathlib import Path
from typing import Any, Dict, List

from dotenv import load_dotenv

# Only used when AUTH_SECRET is missing. Never acceptable in production.
INSECURE_DEFAULT_SECRET = "your-secret-key-change-this-in-production"


class Environment(str, Enum):
    """Deployment environments."""

    DEVELOPMENT = "development"
    STAGING = "staging"
    PRODUCTION = "production"
    TEST = "test"


def get_environment() -> Environment:
    """Resolve the current environment from APP_ENV (defaults to development)."""
    match os.getenv("APP_ENV", "development").lower():
        case "production" | "prod":
            return Environment.PRODUCTION
        case "staging" | "stage":
            return Environment.STAGING
        case "test":
            return Environment.TEST
        case _:
            return Environment.DEVELOPMENT


def load_env_file() -> None:
    """Load the environment-specific .env file, then the generic one."""
    env = get_environment()
    base_dir = Path(__file__).resolve().parent.parent.parent

    for candidate in (f".env.{env.value}.local", f".env.{env.value}", ".env"):
        env_file = base_dir / candidate
        if env_file.is_file():
            # never override variables that are already exported
            load_dotenv(dotenv_path=env_file, override=False)


load_env_file()


def parse_list_from_env(env_key: str, default: List[str] | None = None) -> List[str]:
    """Parse a comma separated (or JSON array) env value into a list."""
    value = os.getenv(env_key)
    if not value:
        return list(default or [])

    value = value.strip()
    if value.startswith("["):
        try:
            parsed = json.loads(value)
            return [str(item).strip() for item in parsed if str(item).strip()]
        except json.JSONDecodeError:
            pass
    return [item.strip().strip("\"'") for item in value.split(",") if item.strip()]


def parse_dict_of_lists_from_env(prefix: str, default: Dict[str, List[str]]) -> Dict[str, List[str]]:
    """Collect `<PREFIX><KEY>` env vars into a dict, keeping defaults for the rest."""
    result = dict(default)
    for key, value in os.environ.items():
        if key.startswith(prefix) and value:
            endpoint = key[len(prefix):].lower()
            result[endpoint] = parse_list_from_env(key)
    return result


class Settings:
    """
    Process-wide settings. Built once at startup and handed to the
    components that need it.
    """

    def __init__(self):
        self.ENVIRONMENT = get_environment()

        # Application
        self.PROJECT_NAME = os.getenv("PROJECT_NAME", "iSuiteAI")
        self.VERSION = os.getenv("VERSION", "1.0.0")
        self.DESCRIPTION = os.getenv(
            "DESCRIPTION", "Productivity assistant with third-party tool integrations"
        )
        self.DEBUG = os.getenv("DEBUG", "false").lower() in ("true", "1", "t", "yes")
        self.ALLOWED_ORIGINS = parse_list_from_env("ALLOWED_ORIGINS", ["*"])

        # Logging
        self.LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()
        self.LOG_FORMAT = os.getenv("LOG_FORMAT", "json")
        self.LOG_DIR = os.getenv("LOG_DIR", "")

        # Session token / cookie
        self.AUTH_SECRET = os.getenv("AUTH_SECRET", "")
        self.JWT_ALGORITHM = os.getenv("JWT_ALGORITHM", "HS256")
        self.SESSION_EXPIRE_DAYS = int(os.getenv("SESSION_EXPIRE_DAYS", "7"))
        self.SESSION_COOKIE_NAME = os.getenv("SESSION_COOKIE_NAME", "session")

        # Database
        self.POSTGRES_HOST = os.getenv("POSTGRES_HOST", "")
        self.POSTGRES_PORT = int(os.getenv("POSTGRES_PORT", "5432"))
        self.POSTGRES_DB = os.getenv("POSTGRES_DB", "isuite")
        self.POSTGRES_USER = os.getenv("POSTGRES_USER", "postgres")
        self.POSTGRES_PASSWORD = os.getenv("POSTGRES_PASSWORD", "postgres")
        self.POSTGRES_POOL_SIZE = int(os.getenv("POSTGRES_POOL_SIZE", "20"))
        self.POSTGRES_MAX_OVERFLOW = int(os.getenv("POSTGRES_MAX_OVERFLOW", "10"))
        self.DATABASE_URL = os.getenv("DATABASE_URL") or self._default_database_url()

        # Hosted model
        self.OPENAI_API_KEY = os.getenv("OPENAI_API_KEY", "")
        self.GROQ_API_KEY = os.getenv("GROQ_API_KEY", "")
        self.DEFAULT_LLM_PROVIDER = os.getenv("DEFAULT_LLM_PROVIDER", "openai").lower()
        self.DEFAULT_LLM_MODEL = os.getenv("DEFAULT_LLM_MODEL", "gpt-4o-mini")
        self.DEFAULT_LLM_TEMPERATURE = float(os.getenv("DEFAULT_LLM_TEMPERATURE", "0.2"))
        self.MAX_TOKENS = int(os.getenv("MAX_TOKENS", "2000"))
        self.MAX_CONTEXT_TOKENS = int(os.getenv("MAX_CONTEXT_TOKENS", "32000"))
        self.MAX_LLM_CALL_RETRIES = int(os.getenv("MAX_LLM_CALL_RETRIES", "3"))
        self.MAX_AGENT_STEPS = int(os.getenv("MAX_AGENT_STEPS", "5"))
        self.CHAT_MAX_DURATION_SECONDS = float(os.getenv("CHAT_MAX_DURATION_SECONDS", "60"))

        # Tool platform (Composio)
        self.COMPOSIO_API_KEY = os.getenv("COMPOSIO_API_KEY", "")
        self.COMPOSIO_BASE_URL = os.getenv("COMPOSIO_BASE_URL", "https://backend.composio.dev/api/v3")
        self.TOOL_GATEWAY_TIMEOUT = float(os.getenv("TOOL_GATEWAY_TIMEOUT", "30"))
        self.TOOL_GATEWAY_RETRIES = int(os.getenv("TOOL_GATEWAY_RETRIES", "3"))
        self.TOOLS_PER_TOOLKIT = int(os.getenv("TOOLS_PER_TOOLKIT", "20"))

        # Chat sessions
        self.SESSION_TITLE_MAX_LENGTH = int(os.getenv("SESSION_TITLE_MAX_LENGTH", "50"))

        # Rate limiting
        self.RATE_LIMIT_DEFAULT = parse_list_from_env("RATE_LIMIT_DEFAULT", ["1000 per day", "200 per hour"])
        self.RATE_LIMIT_ENDPOINTS = parse_dict_of_lists_from_env(
            "RATE_LIMIT_",
            {
                "login": ["20 per minute"],
                "chat": ["30 per minute"],
                "connections": ["60 per minute"],
                "sessions": ["120 per minute"],
                "admin": ["20 per minute"],
                "health": ["20 per minute"],
            },
        )
        # RATE_LIMIT_DEFAULT is not an endpoint
        self.RATE_LIMIT_ENDPOINTS.pop("default", None)

        self.apply_environment_settings()

    def _default_database_url(self) -> str:
        if self.POSTGRES_HOST:
            return (
                f"postgresql+psycopg://{self.POSTGRES_USER}:{self.POSTGRES_PASSWORD}"
                f"@{self.POSTGRES_HOST}:{self.POSTGRES_PORT}/{self.POSTGRES_DB}"
            )
        return "sqlite:///./isuite.db"

    def apply_environment_settings(self) -> None:
        """Environment specific defaults, only where the env var was not set."""
        env_overrides: Dict[Environment, Dict[str, Any]] = {
            Environment.DEVELOPMENT: {"DEBUG": True, "LOG_LEVEL": "DEBUG", "LOG_FORMAT": "console"},
            Environment.STAGING: {"DEBUG": False, "LOG_LEVEL": "INFO"},
            Environment.PRODUCTION: {"DEBUG": False, "LOG_LEVEL": "WARNING"},
            Environment.TEST: {"DEBUG": True, "LOG_LEVEL": "DEBUG", "LOG_FORMAT": "console"},
        }
        for key, value in env_overrides.get(self.ENVIRONMENT, {}).items():
            if key not in os.environ:
                setattr(self, key, value)

    @property
    def is_production(self) -> bool:
        return self.ENVIRONMENT == Environment.PRODUCTION

    @property
    def uses_insecure_secret(self) -> bool:
        return not self.AUTH_SECRET

    @property
    def signing_secret(self) -> str:
        return self.AUTH_SECRET or INSECURE_DEFAULT_SECRET


settings = Settings()
