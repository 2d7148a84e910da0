"""LiteLLM wrapper used for optional message profiling."""

from __future__ import annotations

import asyncio
import json
import logging
from typing import Any

import litellm

from pingchain.config import ENGINE_CONFIG

logger = logging.getLogger(__name__)

litellm.suppress_debug_info = True


async def llm_complete(
    prompt: str,
    system: str | None = None,
    model: str | None = None,
    temperature: float | None = None,
    max_retries: int = 3,
    backoff_seconds: float = 1.0,
) -> str:
    """Return the text of a single chat completion, retrying with backoff."""
    model = model or ENGINE_CONFIG["llm_model"]
    if temperature is None:
        temperature = ENGINE_CONFIG["llm_temperature"]

    messages = [{"role": "user", "content": prompt}]
    if system:
        messages.insert(0, {"role": "system", "content": system})

    attempt = 0
    while True:
        attempt += 1
        try:
            response = await litellm.acompletion(
                model=model, messages=messages, temperature=temperature,
            )
        except Exception:
            if attempt >= max_retries:
                raise
            logger.warning("%s completion failed (attempt %d/%d)", model, attempt, max_retries)
            await asyncio.sleep(backoff_seconds * attempt)
            continue
        return response.choices[0].message.content or ""


def parse_json_reply(text: str) -> dict[str, Any]:
    """Parse a JSON object from a model reply, tolerating markdown fences."""
    cleaned = text.strip()
    if cleaned.startswith("```"):
        cleaned = "\n".join(
            line for line in cleaned.splitlines()[1:] if not line.strip().startswith("```")
        )
    parsed = json.loads(cleaned)
    if not isinstance(parsed, dict):
        raise ValueError(f"Expected a JSON object, got {type(parsed).__name__}")
    return parsed


async def llm_complete_json(
    prompt: str,
    system: str | None = None,
    model: str | None = None,
    temperature: float | None = None,
) -> dict[str, Any]:
    text = await llm_complete(prompt, system=system, model=model, temperature=temperature)
    return parse_json_reply(text)
