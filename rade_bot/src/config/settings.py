import os
from dataclasses import dataclass
from functools import lru_cache
from typing import Optional

from dotenv import load_dotenv

load_dotenv()

HOUR_MS = 60 * 60 * 1000


def _env_bool(name: str, default: bool) -> bool:
    value = os.getenv(name)
    if value is None or value.strip() == "":
        return default
    return value.strip().lower() in ("1", "true", "yes", "sim")


def _env_int(name: str, default: int) -> int:
    value = os.getenv(name)
    if value is None or value.strip() == "":
        return default
    return int(value)


@dataclass(frozen=True)
class Settings:
    """Runtime configuration read from the environment (and `.env`)."""

    openai_api_key: Optional[str] = None
    primary_model: str = "gpt-4o-mini"
    groq_api_key: Optional[str] = None
    fallback_model: str = "llama-3.3-70b-versatile"
    fallback_max_retries: int = 2

    rade_api_base_url: str = "https://api.stg.radeapp.com"
    rade_api_token: Optional[str] = None
    rade_api_timeout: float = 10.0

    # USE_API_DATA=false serves the bundled mock data and turns on test mode
    use_api_data: bool = False
    test_mode: bool = True
    reports_enabled: bool = True
    public_base_url: str = "http://localhost:8000"

    history_max_messages: int = 12
    history_tool_pairs: int = 2
    max_tool_steps: int = 3
    session_ttl_ms: int = HOUR_MS
    tool_cache_ttl_ms: int = 3 * HOUR_MS
    cache_max_entries: int = 1000
    report_list_threshold: int = 20

    log_level: str = "INFO"


def load_settings() -> Settings:
    use_api_data = _env_bool("USE_API_DATA", False)
    return Settings(
        openai_api_key=os.getenv("OPENAI_API_KEY"),
        primary_model=os.getenv("PRIMARY_MODEL", "gpt-4o-mini"),
        groq_api_key=os.getenv("GROQ_API_KEY"),
        fallback_model=os.getenv("FALLBACK_MODEL", "llama-3.3-70b-versatile"),
        fallback_max_retries=_env_int("FALLBACK_MAX_RETRIES", 2),
        rade_api_base_url=os.getenv("RADE_API_BASE_URL", "https://api.stg.radeapp.com"),
        rade_api_token=os.getenv("RADE_API_TOKEN"),
        rade_api_timeout=float(os.getenv("RADE_API_TIMEOUT", "10")),
        use_api_data=use_api_data,
        test_mode=_env_bool("TEST_MODE", not use_api_data),
        reports_enabled=_env_bool("REPORTS_ENABLED", True),
        public_base_url=os.getenv("PUBLIC_BASE_URL", "http://localhost:8000").rstrip("/"),
        history_max_messages=_env_int("HISTORY_MAX_MESSAGES", 12),
        history_tool_pairs=_env_int("HISTORY_TOOL_PAIRS", 2),
        max_tool_steps=_env_int("MAX_TOOL_STEPS", 3),
        session_ttl_ms=_env_int("SESSION_TTL_MS", HOUR_MS),
        tool_cache_ttl_ms=_env_int("TOOL_CACHE_TTL_MS", 3 * HOUR_MS),
        cache_max_entries=_env_int("CACHE_MAX_ENTRIES", 1000),
        report_list_threshold=_env_int("REPORT_LIST_THRESHOLD", 20),
        log_level=os.getenv("LOG_LEVEL", "INFO"),
    )


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    return load_settings()
