"""Construction of the OpenAI client shared by transcription and extraction."""

import logging
from typing import Optional

import openai
from openai import AsyncOpenAI

logger = logging.getLogger(__name__)


def create_openai_client(
    api_key: Optional[str],
    base_url: Optional[str] = None,
) -> AsyncOpenAI:
    """Build an async client with automatic retries disabled.

    Failures surface to the caller as-is; nothing in the pipeline retries.
    """
    if not api_key:
        raise RuntimeError(
            "OpenAI API key is not configured. Set OPENAI_API_KEY or openai_api_key in the config file."
        )
    logger.debug("Creating OpenAI client")
    return AsyncOpenAI(api_key=api_key, base_url=base_url, max_retries=0)


def describe_api_error(error: Exception) -> str:
    """Short description of an upstream failure, including the response body when there is one."""
    if isinstance(error, openai.APIStatusError):
        body = error.response.text if error.response is not None else ""
        return f"OpenAI {error.status_code} - {body or error.message}"
    if isinstance(error, openai.APITimeoutError):
        return "OpenAI request timed out"
    if isinstance(error, openai.APIConnectionError):
        return f"OpenAI connection error: {error.message}"
    return str(error) or error.__class__.__name__
