"""Configuration settings for the application."""

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Pydantic settings class for the application."""

    # Define the settings with default values and types
    # These will be loaded from environment variables or a .env file if not provided
    API_PORT: int = 8000
    DEBUG: bool = True
    LOG_LEVEL: str = "info"  # Options: debug, info, warning, error, critical

    # LLM Configuration
    LLM_BACKEND: str = "openai"  # Options: openai, anthropic
    OPENAI_API_KEY: str | None = None
    OPENAI_BASE_URL: str | None = None  # Any OpenAI-compatible endpoint (Gemini, vLLM, ...)
    OPENAI_MODEL: str = "gpt-4o-mini"
    ANTHROPIC_API_KEY: str | None = None
    ANTHROPIC_MODEL: str = "claude-3-5-haiku-latest"

    # Agent behaviour
    RESPONSE_TIMEOUT_SECONDS: float = 30.0
    MAX_TOOL_ROUNDTRIPS: int = 3
    MAX_GENERATION_CALLS: int = 4  # planner + primary + nudge + narration
    DEFAULT_DATABASE: str = "restapi"
    DOMAIN_PROMPT_PATH: str | None = None

    # MCP tool providers
    MCP_CONFIG_PATH: str = "mcp-config.json"
    MCP_SESSION_CACHE: bool = True
    MCP_SESSION_TTL_SECONDS: float = 300.0
    MCP_INIT_TIMEOUT_SECONDS: float = 20.0

    class Config:
        """Configuration for Pydantic settings."""

        # Load environment variables from a .env file
        env_file = ".env"
        env_file_encoding = "utf-8"


settings = Settings()
