"""Environment-driven application settings."""

import os
from dataclasses import dataclass
from functools import lru_cache

from dotenv import load_dotenv

load_dotenv()

DEFAULT_MODEL = "claude-3-5-sonnet-20241022"
DEFAULT_TIME_ZONE = "Asia/Kolkata"


def _int_env(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    try:
        return int(raw)
    except ValueError as e:
        raise ValueError(f"{name} must be an integer, got {raw!r}") from e


@dataclass
class Settings:
    """Process-wide configuration read once from the environment."""

    anthropic_api_key: str | None = None
    anthropic_model: str = DEFAULT_MODEL
    exa_api_key: str | None = None
    tavily_api_key: str | None = None
    openai_api_key: str | None = None
    google_client_id: str | None = None
    google_client_secret: str | None = None
    calendar_backend: str = "google"
    default_time_zone: str = DEFAULT_TIME_ZONE
    max_tool_rounds: int = 8
    model_timeout_seconds: int = 60
    tool_timeout_seconds: int = 30
    client_cache_ttl_minutes: int = 60
    log_level: str = "INFO"
    cors_origins: tuple[str, ...] = ("*",)
    host: str = "0.0.0.0"
    port: int = 8000

    @property
    def uses_memory_calendar(self) -> bool:
        return self.calendar_backend.lower() == "memory"

    @property
    def missing_env_vars(self) -> list[str]:
        """Optional keys that are unset; the tools they back degrade instead of failing."""
        missing = []
        if not self.anthropic_api_key:
            missing.append("ANTHROPIC_API_KEY")
        if not self.exa_api_key:
            missing.append("EXA_API_KEY")
        if not self.tavily_api_key:
            missing.append("TAVILY_API_KEY")
        if not self.openai_api_key:
            missing.append("OPENAI_API_KEY")
        if not self.uses_memory_calendar and not (self.google_client_id and self.google_client_secret):
            missing.extend(["GOOGLE_CLIENT_ID", "GOOGLE_CLIENT_SECRET"])
        return missing


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    return Settings(
        anthropic_api_key=os.getenv("ANTHROPIC_API_KEY"),
        anthropic_model=os.getenv("ANTHROPIC_MODEL", DEFAULT_MODEL),
        exa_api_key=os.getenv("EXA_API_KEY"),
        tavily_api_key=os.getenv("TAVILY_API_KEY"),
        openai_api_key=os.getenv("OPENAI_API_KEY"),
        google_client_id=os.getenv("GOOGLE_CLIENT_ID"),
        google_client_secret=os.getenv("GOOGLE_CLIENT_SECRET"),
        calendar_backend=os.getenv("CALENDAR_BACKEND", "google"),
        default_time_zone=os.getenv("DEFAULT_TIME_ZONE", DEFAULT_TIME_ZONE),
        max_tool_rounds=_int_env("MAX_TOOL_ROUNDS", 8),
        model_timeout_seconds=_int_env("MODEL_TIMEOUT_SECONDS", 60),
        tool_timeout_seconds=_int_env("TOOL_TIMEOUT_SECONDS", 30),
        client_cache_ttl_minutes=_int_env("CLIENT_CACHE_TTL_MINUTES", 60),
        log_level=os.getenv("LOG_LEVEL", "INFO"),
        cors_origins=tuple(origin.strip() for origin in os.getenv("CORS_ORIGINS", "*").split(",") if origin.strip()),
        host=os.getenv("HOST", "0.0.0.0"),
        port=_int_env("PORT", 8000),
    )
