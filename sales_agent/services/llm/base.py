from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import List, Optional


@dataclass
class LLMResponse:
    content: str
    model: str
    provider: str
    usage: Optional[dict] = None


class LLMProvider(ABC):
    """Abstract base class for LLM providers."""

    name: str = "llm"

    @abstractmethod
    async def generate(
        self,
        messages: List[dict],
        temperature: float = 0.3,
        max_tokens: int = 500,
    ) -> LLMResponse:
        """Generate a reply. Raises UpstreamError on any failure."""

    async def aclose(self) -> None:
        return None
