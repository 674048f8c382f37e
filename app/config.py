"""Datagate configuration — loaded from environment / .env file."""

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", env_prefix="DATAGATE_", extra="ignore")

    env: str = "development"
    secret_key: str = "change-me"
    database_url: str = "sqlite+aiosqlite:///./datagate.db"

    # Governed tables in this schema are reflected without a schema prefix
    default_table_schema: str = "public"

    # OpenRouter (model provider)
    openrouter_api_key: str = ""
    openrouter_base_url: str = "https://openrouter.ai/api/v1"
    site_url: str = "https://datagate.local"
    app_name: str = "Datagate"

    # Model tiers
    chat_model: str = "google/gemini-3-flash-preview"
    tool_model: str = "anthropic/claude-opus-4.5"
    fallback_tool_model: str = "openai/gpt-4.1"
    tool_max_steps: int = 8
    router_extra_entities: list[str] = []

    # Tool execution
    default_max_rows: int = 100
    default_query_limit: int = 10
    dry_run_default: bool = False
    chat_timeout_seconds: float = 60.0
    tool_call_timeout_seconds: float | None = 30.0  # reads only

    # Identity forwarded by the upstream auth provider
    auth_header: str = "X-User-Id"
    cors_origins: list[str] = ["http://localhost:3000"]

    @property
    def openrouter_chat_url(self) -> str:
        return f"{self.openrouter_base_url.rstrip('/')}/chat/completions"


settings = Settings()
