from __future__ import annotations

import logging
from typing import Any

import httpx

logger = logging.getLogger(__name__)

SYSTEM_INSTRUCTION = "You are a professional Arabic translator and job summarizer."


class GenerationError(RuntimeError):
    """The text-generation service failed or returned no usable text."""


def extract_generated_text(response: Any) -> str | None:
    """Pull the generated text out of any of the response shapes the service may return."""
    if not isinstance(response, dict):
        return None
    if isinstance(response.get("response"), str):
        return response["response"] or None
    choices = response.get("choices")
    if isinstance(choices, list):
        if not choices or not isinstance(choices[0], dict):
            return None
        message = choices[0].get("message") or {}
        content = message.get("content") if isinstance(message, dict) else None
        return content if isinstance(content, str) and content else None
    if isinstance(response.get("output_text"), str):
        return response["output_text"] or None
    output = response.get("output")
    if isinstance(output, list):
        for item in output:
            if not isinstance(item, dict) or not isinstance(item.get("content"), list):
                continue
            for block in item["content"]:
                if isinstance(block, dict) and block.get("type") == "output_text" and isinstance(block.get("text"), str):
                    return block["text"] or None
    return None


class TextGenerationClient:
    """OpenAI-compatible chat-completions endpoint."""

    def __init__(
        self,
        base_url: str,
        api_key: str,
        model: str,
        timeout_seconds: float = 60,
        max_tokens: int = 1024,
        temperature: float = 0.7,
        client: httpx.Client | None = None,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self.api_key = api_key
        self.model = model
        self.timeout = timeout_seconds
        self.max_tokens = max_tokens
        self.temperature = temperature
        self.client = client or httpx.Client()

    @classmethod
    def from_config(cls, config: dict[str, Any], client: httpx.Client | None = None) -> "TextGenerationClient":
        section = config.get("ai", {})
        return cls(
            base_url=section.get("base_url", ""),
            api_key=section.get("api_key", ""),
            model=section.get("model", ""),
            timeout_seconds=float(section.get("timeout_seconds", 60)),
            max_tokens=int(section.get("max_tokens", 1024)),
            temperature=float(section.get("temperature", 0.7)),
            client=client,
        )

    def generate(self, prompt: str) -> str:
        payload = {
            "model": self.model,
            "messages": [
                {"role": "system", "content": SYSTEM_INSTRUCTION},
                {"role": "user", "content": prompt},
            ],
            "max_tokens": self.max_tokens,
            "temperature": self.temperature,
        }
        headers = {"Authorization": f"Bearer {self.api_key}"} if self.api_key else {}
        try:
            response = self.client.post(
                f"{self.base_url}/chat/completions", json=payload, headers=headers, timeout=self.timeout
            )
            response.raise_for_status()
            body = response.json()
        except (httpx.HTTPError, ValueError) as exc:
            raise GenerationError(str(exc)) from exc
        text = extract_generated_text(body)
        if not text:
            raise GenerationError(f"malformed response: {str(body)[:300]}")
        return text
