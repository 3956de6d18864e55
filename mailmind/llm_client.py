"""
LLM client wrapper.

This module provides a thin async wrapper around an OpenAI-compatible chat
completion API using httpx. JSON-mode calls are tolerant of code fences and
surrounding commentary in the model output.
"""

import json
import logging
from typing import Any, Dict, List, Optional

import httpx

from .config import Config
from .errors import CollaboratorError

logger = logging.getLogger(__name__)


class LLMError(CollaboratorError):
    """Generic error raised by the LLM client."""


class LLMResponseFormatError(LLMError):
    """The model answered, but not with the JSON object that was asked for."""


def _extract_json_from_text(text: str) -> str:
    """
    Extract a JSON object from raw model text.

    The model might respond with:
    - pure JSON
    - JSON wrapped in ```json ... ```
    - JSON wrapped in ``` ... ```
    - leading/trailing commentary (we try to ignore it)

    Strategy:
    - Strip the first fenced block if there is one.
    - Find the first '{' and the last '}' and slice between them.
    """
    text = text.strip()
    if not text:
        raise LLMResponseFormatError("Empty response from model when JSON was expected.")

    if "```" in text:
        parts = text.split("```")
        if len(parts) >= 3:
            # parts[1] is after first ```, maybe "json\n{...}"
            inner = parts[1]
            stripped = inner.lstrip()
            if stripped.lower().startswith("json"):
                inner = inner.split("\n", 1)[-1]
            text = inner.strip()

    first = text.find("{")
    last = text.rfind("}")
    if first == -1 or last == -1 or last <= first:
        raise LLMResponseFormatError("Could not locate a JSON object in the model response.")

    return text[first : last + 1]


async def _post_chat(
    config: Config,
    messages: List[Dict[str, str]],
    max_tokens: int,
    temperature: float,
    json_mode: bool,
    client: Optional[httpx.AsyncClient] = None,
) -> str:
    if not config.openai_api_key:
        raise LLMError("OPENAI_API_KEY (or equivalent) is not set in config.")

    headers = {
        "Authorization": f"Bearer {config.openai_api_key}",
        "Content-Type": "application/json",
    }

    payload: Dict[str, Any] = {
        "model": config.model_name,
        "messages": messages,
        "temperature": temperature,
        "max_tokens": max_tokens,
    }
    if json_mode:
        payload["response_format"] = {"type": "json_object"}

    try:
        logger.info("Calling LLM model=%s json_mode=%s", config.model_name, json_mode)
        if client is None:
            async with httpx.AsyncClient(timeout=config.llm_timeout_seconds) as own_client:
                resp = await own_client.post(config.llm_base_url, headers=headers, json=payload)
        else:
            resp = await client.post(config.llm_base_url, headers=headers, json=payload)
        resp.raise_for_status()
    except httpx.HTTPError as e:
        logger.error("HTTP error calling LLM: %s", e)
        raise LLMError(f"HTTP error from LLM API: {e}") from e

    try:
        data = resp.json()
    except json.JSONDecodeError as e:
        logger.error("Failed to decode JSON from LLM HTTP response: %s", e)
        raise LLMError("Invalid JSON from LLM HTTP response.") from e

    try:
        choices = data.get("choices")
        if not choices:
            raise LLMError("No choices in LLM response.")
        content = choices[0]["message"]["content"]
    except (AttributeError, KeyError, IndexError, TypeError) as e:
        logger.error("Unexpected structure in LLM response: %s", e)
        raise LLMError("Unexpected structure in LLM response.") from e

    if not isinstance(content, str):
        raise LLMError(f"LLM content is not a string: {type(content)}")

    logger.debug("LLM raw content (first 500 chars): %s", content[:500])
    return content


async def call_llm_json(
    config: Config,
    messages: List[Dict[str, str]],
    max_tokens: int = 1000,
    temperature: float = 0.2,
    client: Optional[httpx.AsyncClient] = None,
) -> Dict[str, Any]:
    """
    Call the LLM with a list of messages and parse a JSON object response.

    Arguments:
        config: Config containing openai_api_key, model_name and llm_base_url.
        messages: List of {'role': 'system'|'user'|'assistant', 'content': str}
        max_tokens: Maximum tokens for the response.
        temperature: Sampling temperature.
        client: Optional shared httpx.AsyncClient.

    Returns:
        Parsed JSON (as a Python dict).

    Raises:
        LLMError: on HTTP or JSON parsing errors.
    """
    content = await _post_chat(config, messages, max_tokens, temperature, True, client)

    try:
        parsed = json.loads(_extract_json_from_text(content))
    except json.JSONDecodeError as e:
        logger.error(
            "Raw LLM content that failed JSON parse (first 1000 chars): %s",
            content[:1000],
        )
        raise LLMResponseFormatError(f"Failed to parse JSON from LLM content: {e}") from e

    if not isinstance(parsed, dict):
        raise LLMResponseFormatError("LLM JSON response is not an object.")
    return parsed


async def call_llm_text(
    config: Config,
    messages: List[Dict[str, str]],
    max_tokens: int = 1000,
    temperature: float = 0.3,
    client: Optional[httpx.AsyncClient] = None,
) -> str:
    """Call the LLM and return the raw text of the first choice, stripped."""
    content = await _post_chat(config, messages, max_tokens, temperature, False, client)
    return content.strip()
