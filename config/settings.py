"""
Configuration settings for the ragcore semantic search + Q&A library.

WHY THIS FILE EXISTS:
- Centralizes all configuration in one place
- Keeps secrets separate from code (loaded from .env)
- Lets the service layer and the tests build the same objects

OPENAI CONCEPTS:
- API Key: Authentication for the embeddings and chat endpoints
- Base URL: Optional override (proxies, compatible gateways)
- Models: One for embeddings (vectors), one for chat (answers).
  Every vector in one index must come from the same embedding model.
"""

import os
from dataclasses import dataclass, field
from typing import Optional

from dotenv import load_dotenv

# Load environment variables from .env file
load_dotenv()


@dataclass
class OpenAIConfig:
    """
    Configuration for the OpenAI providers.

    WHY DATACLASS:
    - Groups related settings
    - Easy to pass around as a single object
    """
    api_key: str
    base_url: Optional[str] = None
    chat_model: str = "gpt-4o"                        # For generating answers
    embedding_model: str = "text-embedding-3-small"   # For creating vectors
    temperature: float = 0.7
    max_tokens: int = 1000


@dataclass
class RetrievalConfig:
    """
    Configuration for document retrieval.

    WHY THESE DEFAULTS:
    - top_k=5: Return 5 most relevant documents
    - score_threshold=0.7: Minimum cosine similarity
      - Filters out weakly related documents
    """
    top_k: int = 5
    score_threshold: float = 0.7


@dataclass
class LoggingConfig:
    level: str = "INFO"


@dataclass
class Settings:
    """
    Main settings container.

    WHY NESTED CONFIGS:
    - Organized by concern (providers, retrieval, logging)
    - Clear what settings belong together
    """
    openai: OpenAIConfig
    retrieval: RetrievalConfig = field(default_factory=RetrievalConfig)
    logging: LoggingConfig = field(default_factory=LoggingConfig)


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return int(raw)
    except ValueError:
        raise ValueError(f"{name} must be an integer, got {raw!r}")


def _env_float(name: str, default: float) -> float:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return float(raw)
    except ValueError:
        raise ValueError(f"{name} must be a number, got {raw!r}")


def load_settings() -> Settings:
    """
    Load settings from environment variables.

    REQUIRED ENVIRONMENT VARIABLES:
    - OPENAI_API_KEY: Your API key

    OPTIONAL:
    - OPENAI_BASE_URL, RAG_CHAT_MODEL, RAG_EMBEDDING_MODEL
    - RAG_TOP_K, RAG_SCORE_THRESHOLD
    - RAG_TEMPERATURE, RAG_MAX_TOKENS
    - RAG_LOG_LEVEL
    """
    api_key = os.getenv("OPENAI_API_KEY")

    if not api_key:
        raise ValueError(
            "OPENAI_API_KEY not set. "
            "Add it to your .env file or set it as an environment variable."
        )

    defaults = OpenAIConfig(api_key=api_key)
    retrieval_defaults = RetrievalConfig()

    return Settings(
        openai=OpenAIConfig(
            api_key=api_key,
            base_url=os.getenv("OPENAI_BASE_URL") or None,
            chat_model=os.getenv("RAG_CHAT_MODEL") or defaults.chat_model,
            embedding_model=os.getenv("RAG_EMBEDDING_MODEL") or defaults.embedding_model,
            temperature=_env_float("RAG_TEMPERATURE", defaults.temperature),
            max_tokens=_env_int("RAG_MAX_TOKENS", defaults.max_tokens),
        ),
        retrieval=RetrievalConfig(
            top_k=_env_int("RAG_TOP_K", retrieval_defaults.top_k),
            score_threshold=_env_float("RAG_SCORE_THRESHOLD", retrieval_defaults.score_threshold),
        ),
        logging=LoggingConfig(level=(os.getenv("RAG_LOG_LEVEL") or "INFO").upper()),
    )


# Singleton pattern - load settings once and reuse
_settings = None


def get_settings() -> Settings:
    """Get the global settings instance."""
    global _settings
    if _settings is None:
        _settings = load_settings()
    return _settings


def reset_settings():
    """Drop the cached settings so the next get_settings() re-reads the environment."""
    global _settings
    _settings = None
