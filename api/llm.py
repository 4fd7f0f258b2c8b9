"""
LLM client for OpenAI-compatible chat completions.

Two call sites:
  - generate_completion: runs a project's behavior spec (system prompt,
    model, temperature) against one scenario input
  - analyze_rating_patterns: the pattern-extraction pass that turns rated
    outputs into quality criteria

Output is trusted as-is. The only processing is pulling the message text
out of the response and, for extraction, parsing it as JSON.
"""
import json
import logging
from typing import Any, Dict, List, Optional

import httpx

from . import config
from .schema import CompletionResult

logger = logging.getLogger(__name__)


class LLMError(Exception):
    """The completion endpoint failed or returned something unusable."""


def _get_headers() -> dict:
    headers = {"content-type": "application/json"}
    if config.OPENAI_API_KEY:
        headers["Authorization"] = f"Bearer {config.OPENAI_API_KEY}"
    return headers


def _build_messages(system_prompt: Optional[str], user_message: str) -> List[dict]:
    """Build the messages array; the system message is only sent when there is one."""
    messages = []
    if system_prompt:
        messages.append({"role": "system", "content": system_prompt})
    messages.append({"role": "user", "content": user_message})
    return messages


async def _call_openai(
    messages: List[dict],
    model: str,
    temperature: float,
    json_mode: bool = False,
) -> Dict[str, Any]:
    """Make a request to the chat completions endpoint and return the decoded body."""
    url = f"{config.OPENAI_API_BASE_URL.rstrip('/')}/v1/chat/completions"

    payload: Dict[str, Any] = {
        "model": model,
        "temperature": temperature,
        "messages": messages,
    }
    if config.MAX_TOKENS:
        payload["max_tokens"] = config.MAX_TOKENS
    if json_mode:
        payload["response_format"] = {"type": "json_object"}

    logger.info(f"Calling {model} at {url}")

    try:
        async with httpx.AsyncClient(timeout=config.REQUEST_TIMEOUT) as client:
            response = await client.post(url, json=payload, headers=_get_headers())
            response.raise_for_status()
            data = response.json()
    except httpx.HTTPStatusError as e:
        raise LLMError(
            f"{model} returned HTTP {e.response.status_code}: {e.response.text[:200]}"
        ) from e
    except (httpx.HTTPError, ValueError) as e:
        raise LLMError(f"{model} request failed: {e}") from e

    if not isinstance(data, dict):
        raise LLMError(f"Unexpected completion response shape from {model}: {type(data).__name__}")
    return data


def _extract_text(data: Dict[str, Any]) -> str:
    """Pull choices[0].message.content out of a completion; empty string if absent."""
    choices = data.get("choices") or []
    if not choices:
        return ""
    if not isinstance(choices, list) or not isinstance(choices[0], dict):
        raise LLMError("Unexpected completion response shape: choices")
    message = choices[0].get("message") or {}
    if not isinstance(message, dict):
        raise LLMError("Unexpected completion response shape: message")
    content = message.get("content") or ""
    if not isinstance(content, str):
        raise LLMError("Unexpected completion response shape: content")
    return content


def _parse_json_response(raw_text: str) -> dict:
    """Extract JSON from the LLM response, handling markdown code fences."""
    text = raw_text.strip()

    # Strip markdown code fences if present
    if text.startswith("```"):
        lines = text.split("\n")
        # Remove first line (```json or ```) and last line (```)
        lines = lines[1:]
        if lines and lines[-1].strip() == "```":
            lines = lines[:-1]
        text = "\n".join(lines).strip()

    if not text:
        return {}

    try:
        data = json.loads(text)
    except json.JSONDecodeError as e:
        raise LLMError(f"Model returned invalid JSON: {e}") from e

    if not isinstance(data, dict):
        raise LLMError(f"Expected a JSON object, got {type(data).__name__}")
    return data


# --- Public API Functions ---

async def generate_completion(
    input_text: str,
    model: str,
    temperature: float,
    system_prompt: Optional[str] = None,
) -> CompletionResult:
    """Run one scenario input through the project's model config."""
    messages = _build_messages(system_prompt, input_text)
    data = await _call_openai(messages, model=model, temperature=temperature)
    usage = data.get("usage")
    return CompletionResult(
        text=_extract_text(data),
        usage=usage if isinstance(usage, dict) else {},
    )


async def analyze_rating_patterns(analysis_data: List[Dict[str, Any]]) -> Dict[str, Any]:
    """
    Ask the LLM which patterns separate high-rated outputs from low-rated ones.

    Returns the parsed JSON object exactly as the model produced it.
    """
    user_message = (
        f"Analyze these {len(analysis_data)} rated outputs:\n\n"
        f"{json.dumps(analysis_data, indent=2)}"
    )
    messages = _build_messages(config.EXTRACTION_SYSTEM_PROMPT, user_message)

    data = await _call_openai(
        messages,
        model=config.EXTRACTION_MODEL,
        temperature=config.EXTRACTION_TEMPERATURE,
        json_mode=True,
    )
    return _parse_json_response(_extract_text(data))
