from __future__ import annotations

import json
import logging
import re
from typing import Any

from openai import OpenAI

from .config import Settings
from .errors import GenerationError

logger = logging.getLogger("careercoach.llm")

CODE_FENCE_PATTERN = re.compile(r"```(?:json)?\n?", re.IGNORECASE)
DEFAULT_SYSTEM_PROMPT = "You are a precise career-coaching assistant. Follow the requested output format exactly."


def safe_text(value: Any) -> str:
    if value is None:
        return ""
    return str(value).strip()


def extract_llm_text(message_content: Any) -> str:
    if isinstance(message_content, str):
        return safe_text(message_content)

    if isinstance(message_content, list):
        parts: list[str] = []
        for item in message_content:
            if isinstance(item, str):
                parts.append(item)
                continue

            if isinstance(item, dict):
                text = item.get("text")
            else:
                text = getattr(item, "text", None)

            if isinstance(text, str):
                parts.append(text)

        return safe_text("\n".join(parts))

    return safe_text(message_content)


def strip_code_fence(text: str) -> str:
    return CODE_FENCE_PATTERN.sub("", text or "").strip()


def parse_json_response(text: str) -> Any:
    candidate = strip_code_fence(text)
    try:
        return json.loads(candidate)
    except json.JSONDecodeError as exc:
        logger.error("Model response is not valid JSON (%s). First 200 chars: %r", exc, candidate[:200])
        raise GenerationError("AI response could not be parsed.") from exc


class TextGenerator:
    """Single-shot chat completion: prompt in, text out.

    Every call reaches the model exactly once. Failures surface as
    ``GenerationError`` and are never retried here.
    """

    def __init__(self, client: Any, model: str, temperature: float = 0.3):
        self.client = client
        self.model = model
        self.temperature = temperature

    @classmethod
    def from_settings(cls, settings: Settings) -> "TextGenerator":
        client = None
        if settings.openai_api_key:
            client = OpenAI(api_key=settings.openai_api_key, timeout=settings.openai_timeout_seconds, max_retries=0)
        return cls(client, settings.openai_model)

    def complete(self, prompt: str, system_prompt: str = DEFAULT_SYSTEM_PROMPT) -> str:
        if self.client is None:
            raise GenerationError("OPENAI_API_KEY not configured.")

        try:
            response = self.client.chat.completions.create(
                model=self.model,
                messages=[
                    {"role": "system", "content": system_prompt},
                    {"role": "user", "content": prompt},
                ],
                temperature=self.temperature,
            )
        except Exception as exc:
            logger.exception("OpenAI request failed for model '%s'.", self.model)
            raise GenerationError(f"{type(exc).__name__} on model {self.model}") from exc

        content = extract_llm_text(response.choices[0].message.content if response.choices else "")
        if not content:
            logger.error("OpenAI returned empty content for model '%s'.", self.model)
            raise GenerationError(f"empty response from model {self.model}")
        return content
