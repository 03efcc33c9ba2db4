"""OpenAI client factory."""

import os
from typing import Optional
import openai
from dotenv import load_dotenv

# Load environment variables from .env file (for local development)
load_dotenv()

def get_openai_client(api_key: Optional[str] = None) -> openai.OpenAI:
    """Initialize and return an OpenAI client.

    The key is taken from ``api_key`` or the ``OPENAI_API_KEY`` environment
    variable.

    Returns:
        openai.OpenAI: Configured OpenAI client

    Raises:
        ValueError: If no API key is configured
    """
    api_key = api_key or os.getenv("OPENAI_API_KEY")

    if not api_key:
        raise ValueError(
            "OpenAI API key not found. Set OPENAI_API_KEY in the environment or a .env file."
        )

    return openai.OpenAI(api_key=api_key)
