"""
Gemini API client for the form assistant.
All API keys loaded from src/.env file.
"""

import logging
import os
import time
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv
from google import genai
from google.genai import types

# Load API key from .env in same directory
load_dotenv(Path(__file__).parent / ".env")
GEMINI_API_KEY = os.getenv("GEMINI_API_KEY") or os.getenv("GOOGLE_API_KEY")

GEMINI_2_5_FLASH = "gemini-2.5-flash"
GEMINI_MODEL = os.getenv("GEMINI_MODEL", GEMINI_2_5_FLASH)
DEFAULT_MAX_OUTPUT_TOKENS = int(os.getenv("GEMINI_MAX_OUTPUT_TOKENS", 16384))

# Logger Setup
logger = logging.getLogger("gemini_client")
if not logger.handlers:
    logger.setLevel(logging.INFO)
    console_handler = logging.StreamHandler()
    console_handler.setLevel(logging.INFO)
    formatter = logging.Formatter("[%(asctime)s] [%(levelname)s] %(message)s")
    console_handler.setFormatter(formatter)
    logger.addHandler(console_handler)

# Lazy-initialized Gemini client
_client = None


class GeminiError(RuntimeError):
    """The text-generation call failed before any output was produced."""


def get_client() -> genai.Client:
    """
    Get or create the google-genai client.

    Raises:
        GeminiError: If no API key is configured
    """
    global _client

    if _client is None:
        if not GEMINI_API_KEY or "YOUR_GEMINI_API_KEY" in GEMINI_API_KEY:
            raise GeminiError("GEMINI_API_KEY is not set. Cannot call Gemini API.")
        _client = genai.Client(api_key=GEMINI_API_KEY)
        logger.info("Gemini client initialized")

    return _client


def _build_config(json_mode: bool, temperature: float, max_output_tokens: Optional[int], model: str):
    config = types.GenerateContentConfig(
        temperature=temperature,
        max_output_tokens=max_output_tokens or DEFAULT_MAX_OUTPUT_TOKENS,
    )

    # Gemini 3 uses thinking_level, Gemini 2.5 uses thinking_budget
    if "gemini-3" in model:
        config.thinking_config = types.ThinkingConfig(thinking_level="MINIMAL")
    elif "gemini-2.5" in model:
        config.thinking_config = types.ThinkingConfig(thinking_budget=0)

    if json_mode:
        config.response_mime_type = "application/json"
    return config


def generate_text(
    prompt: str,
    model: Optional[str] = None,
    json_mode: bool = True,
    temperature: float = 0.0,
    max_output_tokens: Optional[int] = None,
) -> str:
    """
    Send a single prompt and return the raw response text.

    The response is not parsed here; callers run it through response_parser.

    Args:
        prompt: The text prompt to send to the model
        model: Optional model name (defaults to GEMINI_MODEL)
        json_mode: Ask the API for an application/json response
        temperature: Sampling temperature
        max_output_tokens: Optional cap on output tokens

    Returns:
        Raw response text

    Raises:
        GeminiError: If the API call fails or returns no text
    """
    selected_model = model or GEMINI_MODEL
    client = get_client()
    config = _build_config(json_mode, temperature, max_output_tokens, selected_model)

    logger.info(f"[Gemini] Calling {selected_model}...")
    logger.info(f"[Gemini] Prompt length: {len(prompt):,} chars")

    call_start = time.time()
    try:
        response = client.models.generate_content(
            model=selected_model,
            contents=[prompt],
            config=config,
        )
    except Exception as e:
        logger.exception(f"An error occurred with gemini call: {e}")
        raise GeminiError(f"LLM call failed: {e}") from e
    call_duration = time.time() - call_start

    logger.info(f"[Gemini] Response received in {call_duration:.1f}s")

    usage = getattr(response, "usage_metadata", None)
    if usage is not None:
        input_tokens = getattr(usage, "prompt_token_count", "N/A")
        output_tokens = getattr(usage, "candidates_token_count", "N/A")
        logger.info(f"[Gemini] Tokens used - Input: {input_tokens}, Output: {output_tokens}")

    text = response.text
    if not text:
        raise GeminiError("LLM returned an empty response")

    logger.info(f"[Gemini] Response text length: {len(text):,} chars")
    return text
