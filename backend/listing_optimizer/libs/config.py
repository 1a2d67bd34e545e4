import os
from dataclasses import dataclass
from pathlib import Path

from dotenv import load_dotenv, find_dotenv


# ---- Environment loading ----
_ENV_LOADED = False


def _ensure_env_loaded() -> None:
    global _ENV_LOADED
    if _ENV_LOADED:
        return
    try:
        env_path = find_dotenv(usecwd=True)
        if env_path:
            load_dotenv(env_path)
    except Exception:
        pass
    try:
        backend_env = Path(__file__).resolve().parents[2] / ".env"
        if backend_env.exists():
            load_dotenv(backend_env, override=False)
    except Exception:
        pass
    _ENV_LOADED = True


def _env_float(name: str, default: float) -> float:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    try:
        return float(raw)
    except ValueError:
        return default


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    try:
        return int(raw)
    except ValueError:
        return default


def _env_bool(name: str, default: bool) -> bool:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    return raw.strip().lower() in {"1", "true", "yes", "on"}


DEFAULT_USER_AGENT = (
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) "
    "AppleWebKit/537.36 (KHTML, like Gecko) "
    "Chrome/120.0.0.0 Safari/537.36"
)


@dataclass(frozen=True)
class ScraperSettings:
    navigation_timeout_ms: int = 30000
    # Extra wait after DOMContentLoaded so client-side rendering can finish.
    settle_delay: float = 3.0
    headless: bool = True
    user_agent: str = DEFAULT_USER_AGENT
    accept_language: str = "en-US,en;q=0.9"


@dataclass(frozen=True)
class LLMSettings:
    model: str = "gpt-4o-mini"
    base_url: str | None = None
    max_tokens: int = 2048
    temperature: float = 0.7


def get_scraper_settings() -> ScraperSettings:
    _ensure_env_loaded()
    return ScraperSettings(
        navigation_timeout_ms=_env_int("SCRAPER_NAVIGATION_TIMEOUT_MS", 30000),
        settle_delay=_env_float("SCRAPER_SETTLE_DELAY", 3.0),
        headless=_env_bool("SCRAPER_HEADLESS", True),
        user_agent=os.getenv("SCRAPER_USER_AGENT") or DEFAULT_USER_AGENT,
    )


def get_llm_settings() -> LLMSettings:
    _ensure_env_loaded()
    return LLMSettings(
        model=os.getenv("LLM_MODEL") or "gpt-4o-mini",
        base_url=os.getenv("LLM_BASE_URL") or None,
        max_tokens=_env_int("LLM_MAX_TOKENS", 2048),
    )


def resolve_llm_api_key() -> str | None:
    """Resolve the completion-service key: OPENAI_API_KEY, then LLM_API_KEY."""
    _ensure_env_loaded()
    return os.getenv("OPENAI_API_KEY") or os.getenv("LLM_API_KEY") or None
