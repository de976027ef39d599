"""Application configuration."""

import logging
from typing import Optional

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # Application
    app_name: str = "Subtitle Translator"
    debug: bool = False

    # Server
    host: str = "127.0.0.1"
    port: int = 8000
    frontend_port: int = 5173

    # LLM endpoint
    llm_endpoint: str = "http://localhost:8317/v1/chat/completions"
    llm_api_key: str = "dummy"
    llm_model: str = "gemini-2.5-pro"
    llm_api_format: str = "openai"  # "openai" | "anthropic" | "auto"
    llm_max_tokens: int = 8192  # Anthropic requires an explicit limit
    llm_request_timeout: float = 300.0  # seconds

    # Translation defaults
    default_batch_size: int = 50
    default_parallel_requests: int = 1
    max_retries: int = 3
    retry_delay: float = 1.0  # seconds between retries of a failed batch
    auto_continue: bool = True
    continue_on_error: bool = False
    streaming: bool = False

    # CORS - dynamically built based on frontend_port
    cors_origins: list[str] = []

    # Authentication (optional - for network-exposed deployments)
    # Set API_AUTH_TOKEN to require a token on translation endpoints
    api_auth_token: Optional[str] = None

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    def __init__(self, **kwargs):
        super().__init__(**kwargs)
        if not self.cors_origins:
            self.cors_origins = [
                f"http://localhost:{self.frontend_port}",
                f"http://127.0.0.1:{self.frontend_port}",
            ]


settings = Settings()


def configure_logging(debug: Optional[bool] = None) -> None:
    """Install a root handler for service entry points."""
    level = logging.DEBUG if (settings.debug if debug is None else debug) else logging.INFO
    logging.basicConfig(
        level=level,
        format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
    )
