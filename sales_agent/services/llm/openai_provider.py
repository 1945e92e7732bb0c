from typing import List, Optional

import httpx

from sales_agent.logging_config import get_logger
from sales_agent.services.errors import UpstreamError
from sales_agent.services.llm.base import LLMProvider, LLMResponse

logger = get_logger("llm.openai")

OPENROUTER_BASE_URL = "https://openrouter.ai/api/v1"
GROQ_BASE_URL = "https://api.groq.com/openai/v1"


class OpenAIProvider(LLMProvider):
    """Any OpenAI-compatible chat completions API (OpenRouter, Groq)."""

    def __init__(
        self,
        name: str,
        api_key: str,
        model: str,
        base_url: str,
        timeout: float = 60.0,
        extra_headers: Optional[dict] = None,
    ):
        self.name = name
        self.api_key = api_key
        self.model = model
        self.url = f"{base_url.rstrip('/')}/chat/completions"
        headers = {
            "Authorization": f"Bearer {api_key}",
            "Content-Type": "application/json",
        }
        headers.update(extra_headers or {})
        self._client = httpx.AsyncClient(headers=headers, timeout=timeout)

    async def generate(
        self,
        messages: List[dict],
        temperature: float = 0.3,
        max_tokens: int = 500,
    ) -> LLMResponse:
        payload = {
            "model": self.model,
            "messages": messages,
            "temperature": temperature,
            "max_tokens": max_tokens,
        }
        logger.debug(f"{self.name} request: model={self.model}, messages_count={len(messages)}")

        try:
            response = await self._client.post(self.url, json=payload)
        except httpx.HTTPError as exc:
            raise UpstreamError(self.name, str(exc) or exc.__class__.__name__) from exc

        if response.status_code != 200:
            logger.error(f"{self.name} error: {response.status_code} {response.text[:200]}")
            raise UpstreamError(self.name, f"HTTP {response.status_code}")

        data = response.json()
        content = ""
        choices = data.get("choices") or []
        if choices:
            content = (choices[0].get("message") or {}).get("content") or ""
        if not content:
            raise UpstreamError(self.name, "empty response")

        return LLMResponse(
            content=content,
            model=data.get("model", self.model),
            provider=self.name,
            usage=data.get("usage"),
        )

    async def aclose(self) -> None:
        await self._client.aclose()


def openrouter_provider(api_key: str, model: str, timeout: float = 60.0) -> OpenAIProvider:
    return OpenAIProvider(
        name="openrouter",
        api_key=api_key,
        model=model,
        base_url=OPENROUTER_BASE_URL,
        timeout=timeout,
        extra_headers={"X-Title": "WhatsApp Sales Agent"},
    )


def groq_provider(api_key: str, model: str, timeout: float = 60.0) -> OpenAIProvider:
    return OpenAIProvider(name="groq", api_key=api_key, model=model, base_url=GROQ_BASE_URL, timeout=timeout)
