"""Configuration management for AutoRAG Chat."""

from pathlib import Path

from pydantic_settings import BaseSettings, SettingsConfigDict

DEFAULT_SYSTEM_PROMPT = (
    "You are a helpful, friendly assistant. Use the provided context from the knowledge "
    "base to enhance your responses when relevant, but you can also draw from your general "
    "knowledge. If context is provided, prioritize it but explain clearly when you're using "
    "external knowledge vs. the knowledge base. Provide concise and accurate responses."
)


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # Workers AI (hosted search + LLM)
    workers_ai_account_id: str = ""
    workers_ai_api_token: str = ""
    workers_ai_base_url: str = "https://api.cloudflare.com/client/v4"

    # LLM
    llm_model: str = "@cf/meta/llama-3.3-70b-instruct-fp8-fast"
    llm_max_tokens: int = 1024
    llm_temperature: float = 0.7
    llm_timeout: float = 300.0  # seconds

    # Retrieval
    autorag_index: str = "knowledge-base"
    rag_max_results: int = 5
    rag_score_threshold: float = 0.1
    rag_rewrite_query: bool = True

    default_system_prompt: str = DEFAULT_SYSTEM_PROMPT

    # Request limits (characters)
    max_system_prompt_length: int = 10000
    max_message_length: int = 50000

    # Server
    # __file__ = src/autorag_chat/config.py -> .parent.parent.parent = repo root
    static_dir: Path = Path(__file__).parent.parent.parent / "public"
    log_level: str = "INFO"

    # Chat client
    chat_api_url: str = "http://localhost:8000/api/chat"
    client_timeout: float = 30.0  # seconds
    max_retry_attempts: int = 3
    retry_notice_delay: float = 1.0  # seconds after a failure
    retry_base_delay: float = 2.0  # seconds, multiplied by the attempt number


def get_settings() -> Settings:
    """Get application settings."""
    return Settings()
