"""
LLM chat for SolveNote suggestions, backed by Google Generative AI (Gemini).

LLM_API_KEY and LLM_MODEL are read per call so a key added to the
environment is picked up without a restart. Callers check is_configured()
and fall back to static content when it returns False.
"""
import asyncio
import logging
import os
from typing import Optional

logger = logging.getLogger(__name__)

DEFAULT_MODEL = "gemini-2.0-flash"
# Suggestions are short; anything longer is truncated by the model
MAX_OUTPUT_TOKENS = 1024


def _get_api_key() -> Optional[str]:
    return (os.environ.get("LLM_API_KEY") or "").strip() or None


def _get_model(model: Optional[str]) -> str:
    name = model or os.environ.get("LLM_MODEL") or DEFAULT_MODEL
    return name if "gemini" in name else DEFAULT_MODEL


def is_configured() -> bool:
    return _get_api_key() is not None


def _sync_chat(system_prompt: str, user_text: str, model: Optional[str], json_output: bool) -> str:
    import google.generativeai as genai

    api_key = _get_api_key()
    if not api_key:
        raise ValueError("LLM_API_KEY not found in environment")
    genai.configure(api_key=api_key)

    generation_config = {"max_output_tokens": MAX_OUTPUT_TOKENS, "temperature": 0.7}
    if json_output:
        generation_config["response_mime_type"] = "application/json"

    gemini = genai.GenerativeModel(
        _get_model(model),
        system_instruction=system_prompt,
        generation_config=generation_config,
    )
    response = gemini.generate_content(user_text)
    text = getattr(response, "text", None) if response else None
    if not text:
        raise ValueError("Empty response from LLM")
    return text


async def chat(
    system_prompt: str,
    user_text: str,
    model: Optional[str] = None,
    json_output: bool = True,
) -> str:
    """Chat completion. The Gemini SDK is synchronous, so it runs in the default executor."""
    loop = asyncio.get_running_loop()
    logger.debug("LLM request model=%s chars=%d", _get_model(model), len(user_text))
    return await loop.run_in_executor(
        None,
        lambda: _sync_chat(system_prompt, user_text, model, json_output),
    )
