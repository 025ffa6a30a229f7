"""Configuration settings for the agent service."""

from functools import lru_cache
from typing import Optional

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Settings loaded from environment variables or a .env file"""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # Runtime
    ENVIRONMENT: str = "production"  # "development" enables debug logs
    LOG_LEVEL: str = "INFO"
    LOG_FORMAT: str = "json"  # Options: json, console
    SERVICE_NAME: str = "rag-agent"
    API_HOST: str = "0.0.0.0"
    API_PORT: int = 8000

    # LLM Configuration
    OPENAI_API_KEY: Optional[str] = None
    CHAT_MODEL: str = "gpt-4"
    CHAT_TEMPERATURE: float = 0.0
    EMBEDDING_MODEL: str = "text-embedding-ada-002"

    # Vector store
    MILVUS_URI: str = "http://localhost:19530"
    MILVUS_TOKEN: Optional[str] = None
    MILVUS_COLLECTION: str = "test_collection4"
    SEARCH_TOP_K: int = 5
    SEARCH_METRIC: str = "L2"
    SEARCH_NPROBE: int = 10

    # Agent loop
    MAX_AGENT_ITERATIONS: int = 10

    @property
    def is_development(self) -> bool:
        return is_development_environment(self.ENVIRONMENT)


def is_development_environment(environment: Optional[str]) -> bool:
    return (environment or "").lower() == "development"


@lru_cache()
def get_settings() -> Settings:
    """Return the process-wide settings instance"""
    return Settings()
