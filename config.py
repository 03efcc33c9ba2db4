"""
Configuration module for the Lingua Tutor backend.

This module centralizes all configuration settings for the tutor service,
loading values from environment variables with sensible defaults.
"""
import os
import logging
from typing import Optional
from dotenv import load_dotenv

# Initialize feature flags
from utils.feature_flags import init_feature_flags

# Load environment variables from .env file
load_dotenv()

LOG_LEVEL = os.getenv("TUTOR_LOG_LEVEL", "INFO").upper()

# Initialize logging
logging.basicConfig(
    level=getattr(logging, LOG_LEVEL, logging.INFO),
    format="[%(asctime)s] [%(levelname)s] %(message)s",
    datefmt="%Y-%m-%d %H:%M:%S"
)
logger = logging.getLogger(__name__)


def _optional_float(name: str) -> Optional[float]:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return None
    return float(raw)


# Check for required environment variables
def _check_required_env_vars() -> None:
    """Warn about environment variables the tutor needs for its optional integrations."""
    required_vars = [
        "OPENAI_API_KEY",
    ]

    missing_vars = [var for var in required_vars if not os.getenv(var)]

    if missing_vars:
        logger.warning(f"Missing environment variables: {', '.join(missing_vars)}")
        logger.warning("Embeddings and tutor replies are disabled until they are set")
        logger.warning("See .env.example for a template")


def setup_logging() -> None:
    """Apply ``LOG_LEVEL`` to the root logger (safe to call more than once)."""
    logging.getLogger().setLevel(getattr(logging, LOG_LEVEL, logging.INFO))


# API Keys and Authentication
OPENAI_API_KEY = os.getenv("OPENAI_API_KEY")

# OpenAI Configuration
OPENAI_EMBEDDING_MODEL = os.getenv("OPENAI_EMBEDDING_MODEL", "text-embedding-3-small")
OPENAI_COMPLETION_MODEL = os.getenv("OPENAI_COMPLETION_MODEL", "gpt-4o-mini")
VECTOR_DB_DIMENSIONS = int(os.getenv("VECTOR_DB_DIMENSIONS", "1536"))  # Dimensions for text-embedding-3-small
EMBEDDING_MAX_ATTEMPTS = int(os.getenv("EMBEDDING_MAX_ATTEMPTS", "2"))
LLM_TEMPERATURE = float(os.getenv("LLM_TEMPERATURE", "0.7"))
LLM_MAX_TOKENS = int(os.getenv("LLM_MAX_TOKENS", "600"))

# Chat history storage
TUTOR_MEMORY_DB = os.getenv("TUTOR_MEMORY_DB", "sqlite:///./tutor_chat_memory.db")
# "sql" only when a database was configured explicitly, otherwise keep history in process.
TUTOR_STORE_BACKEND = os.getenv(
    "TUTOR_STORE_BACKEND", "sql" if os.getenv("TUTOR_MEMORY_DB") else "memory"
).lower()

# Context retrieval
TUTOR_CONTEXT_LIMIT = int(os.getenv("TUTOR_CONTEXT_LIMIT", "10"))
TUTOR_KEYWORD_WEIGHT = float(os.getenv("TUTOR_KEYWORD_WEIGHT", "0.7"))
TUTOR_RECENCY_WEIGHT = float(os.getenv("TUTOR_RECENCY_WEIGHT", "0.3"))
TUTOR_RECENCY_WINDOW_DAYS = float(os.getenv("TUTOR_RECENCY_WINDOW_DAYS", "7"))
TUTOR_SIMILARITY_THRESHOLD = _optional_float("TUTOR_SIMILARITY_THRESHOLD")

# Prompt context
CONTEXT_SUMMARY_MAX_MESSAGES = int(os.getenv("CONTEXT_SUMMARY_MAX_MESSAGES", "20"))

# Initialize feature flags
init_feature_flags()

# Check required environment variables on import
_check_required_env_vars()
