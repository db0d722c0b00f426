"""Factory for OpenAI clients used by the metadata drivers."""

from __future__ import annotations

import os

from openai import AsyncOpenAI

from shared.config import config


def create_openai_client(
    api_key: str | None = None,
    timeout: float | None = None,
) -> AsyncOpenAI:
    """
    Create an async OpenAI client.

    Args:
        api_key: OpenAI API key (auto-detected if None)
        timeout: Request timeout in seconds (client default if None)

    Returns:
        Configured AsyncOpenAI client

    Raises:
        ValueError: If API key is not configured
    """
    api_key = api_key or config.get("openai_api_key") or os.getenv("OPENAI_API_KEY")

    if not api_key:
        raise ValueError("OpenAI API key not configured. Set OPENAI_API_KEY environment variable.")

    if timeout is not None:
        return AsyncOpenAI(api_key=api_key, timeout=timeout)
    return AsyncOpenAI(api_key=api_key)


def get_model_name(model: str | None = None) -> str:
    """Resolve the vision model name from the argument, config or environment."""
    return model or config.get("openai_model") or os.getenv("OPENAI_MODEL") or "gpt-4-vision-preview"
