from typing import List

import httpx

from sales_agent.logging_config import get_logger
from sales_agent.services.errors import UpstreamError
from sales_agent.services.llm.base import LLMProvider, LLMResponse

logger = get_logger("llm.gemini")

GEMINI_BASE_URL = "https://generativelanguage.googleapis.com/v1beta/models"


def _to_gemini_contents(messages: List[dict]) -> tuple[str, list[dict]]:
    """Split OpenAI-style messages into a system instruction and Gemini contents."""
    system_parts = []
    contents = []
    for message in messages:
        role = message.get("role")
        text = message.get("content") or ""
        if role == "system":
            system_parts.append(text)
            continue
        contents.append({"role": "model" if role == "assistant" else "user", "parts": [{"text": text}]})
    return "\n\n".join(system_parts), contents


class GeminiProvider(LLMProvider):
    name = "gemini"

    def __init__(self, api_key: str, model: str, timeout: float = 60.0):
        self.api_key = api_key
        self.model = model
        self.url = f"{GEMINI_BASE_URL}/{model}:generateContent"
        self._client = httpx.AsyncClient(timeout=timeout)

    async def generate(
        self,
        messages: List[dict],
        temperature: float = 0.3,
        max_tokens: int = 500,
    ) -> LLMResponse:
        system_instruction, contents = _to_gemini_contents(messages)
        payload = {
            "contents": contents,
            "generationConfig": {"temperature": temperature, "maxOutputTokens": max_tokens},
        }
        if system_instruction:
            payload["systemInstruction"] = {"parts": [{"text": system_instruction}]}

        try:
            response = await self._client.post(self.url, params={"key": self.api_key}, json=payload)
        except httpx.HTTPError as exc:
            raise UpstreamError(self.name, str(exc) or exc.__class__.__name__) from exc

        if response.status_code != 200:
            logger.error(f"Gemini error: {response.status_code} {response.text[:200]}")
            raise UpstreamError(self.name, f"HTTP {response.status_code}")

        data = response.json()
        candidates = data.get("candidates") or []
        parts = ((candidates[0].get("content") or {}).get("parts") or []) if candidates else []
        content = "".join(part.get("text", "") for part in parts)
        if not content:
            raise UpstreamError(self.name, "empty response")

        return LLMResponse(content=content, model=self.model, provider=self.name, usage=data.get("usageMetadata"))

    async def aclose(self) -> None:
        await self._client.aclose()
