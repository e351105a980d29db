from pydantic_settings import BaseSettings
from functools import lru_cache


class Settings(BaseSettings):
    # core
    ENV: str = "dev"
    API_PREFIX: str = "/api"

    # database & redis
    DATABASE_URL: str = "sqlite:///./intel_brief.db"
    # Optional: search results and served briefs are cached here when set
    REDIS_URL: str | None = None

    # auth / security
    API_AUTH_KEY: str | None = None
    FRONTEND_ORIGIN: str | None = None
    # Explicit debug-only switch for wide-open CORS in non-prod envs
    CORS_ALLOW_ALL_ORIGINS: bool = False

    # search providers
    SEARCH_PROVIDER: str = "tavily"  # or "exa"
    TAVILY_API_KEY: str | None = None
    EXA_API_KEY: str | None = None
    SEARCH_MAX_RESULTS: int = 5
    SEARCH_TIMEOUT_SECONDS: float = 25.0
    EVIDENCE_TIMEOUT_SECONDS: float = 15.0
    # Hard cap on simultaneous outbound search calls per pipeline run
    SEARCH_MAX_CONCURRENCY: int = 4
    SEARCH_CACHE_TTL_SECONDS: int = 60 * 60 * 24

    # llm
    OPENAI_API_KEY: str | None = None
    OPENROUTER_API_KEY: str | None = None
    LLM_MODEL: str = "gpt-4o-mini"
    # Hard cap on concurrent LLM calls per process
    LLM_MAX_CONCURRENCY: int = 4
    LLM_TIMEOUT_SECONDS: float = 180.0

    # retries (shared by every outbound provider)
    RETRY_MAX_ATTEMPTS: int = 3
    RETRY_BASE_DELAY_SECONDS: float = 0.4
    RETRY_MAX_DELAY_SECONDS: float = 8.0

    # pipeline
    SNIPPET_CAP: int = 20
    COMPETITOR_TARGET: int = 3
    COMPETITOR_SHORTLIST_CAP: int = 8
    COMPETITOR_MAX: int = 6
    PIPELINE_DEADLINE_SECONDS: float = 180.0

    # brief store
    BRIEF_CACHE_TTL_SECONDS: int = 60 * 10

    class Config:
        env_file = ".env"
        case_sensitive = True


@lru_cache
def get_settings() -> Settings:
    return Settings()
