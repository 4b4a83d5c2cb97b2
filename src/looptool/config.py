"""Configuration settings for the application."""

from pydantic_settings import BaseSettings

DEFAULT_SYSTEM_PROMPT = "You are a helpful assistant with access to tools. Use them when needed."


class Settings(BaseSettings):
    """Pydantic settings class for the application."""

    # Define the settings with default values and types
    # These will be loaded from environment variables or a .env file if not provided
    LOG_LEVEL: str = "info"  # Options: debug, info, warning, error, critical

    # LLM Configuration
    TRANSPORT: str = "ollama"
    OLLAMA_HOST: str = "http://localhost:11434"
    OLLAMA_MODEL: str = "qwen3-vl:latest"
    REQUEST_TIMEOUT: float = 30.0  # seconds, per chat request

    # Agent loop
    MAX_ITERATIONS: int = 10
    SYSTEM_PROMPT: str = DEFAULT_SYSTEM_PROMPT

    # Command execution
    REQUIRE_CONFIRM: bool = True
    AUTO_APPROVE_READS: bool = True
    COMMAND_TIMEOUT: float = 30.0

    class Config:
        """Configuration for Pydantic settings."""

        # Load environment variables from a .env file
        env_file = ".env"
        env_file_encoding = "utf-8"
        extra = "ignore"


settings = Settings()
