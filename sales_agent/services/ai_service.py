import re
from dataclasses import dataclass, field
from typing import Optional, Sequence

from sales_agent.config import Settings
from sales_agent.logging_config import get_logger
from sales_agent.models import Message
from sales_agent.services.catalog_service import Catalog
from sales_agent.services.errors import UpstreamError
from sales_agent.services.llm import GeminiProvider, LLMProvider, groq_provider, openrouter_provider
from sales_agent.services.prompt_builder import build_messages

logger = get_logger("ai_service")

MAX_REPLY_CHARS = 4000
SOFT_CUT_CHARS = 3900
MIN_SENTENCE_CUT = 3000

_ROLE_PREFIX = re.compile(r"^(assistant|bot|ai|response):", re.IGNORECASE)
_CODE_FENCE = re.compile(r"```[\s\S]*?```")
_EXTRA_BLANK_LINES = re.compile(r"\n{3,}")


@dataclass
class ProviderFailure:
    provider: str
    error: str


@dataclass
class GenerationResult:
    success: bool
    text: Optional[str] = None
    provider: Optional[str] = None
    failures: list[ProviderFailure] = field(default_factory=list)

    @property
    def error(self) -> Optional[str]:
        if self.success:
            return None
        if not self.failures:
            return "no generation providers configured"
        return "; ".join(f"{f.provider}: {f.error}" for f in self.failures)


def postprocess(text: Optional[str]) -> str:
    """Trim model output into a WhatsApp-sized message."""
    if not text:
        return ""
    processed = _ROLE_PREFIX.sub("", text.strip()).strip()
    processed = _CODE_FENCE.sub("", processed)
    processed = _EXTRA_BLANK_LINES.sub("\n\n", processed)
    if len(processed) > MAX_REPLY_CHARS:
        cut = processed.rfind(".", 0, SOFT_CUT_CHARS)
        processed = processed[: cut + 1] if cut > MIN_SENTENCE_CUT else processed[:SOFT_CUT_CHARS] + "..."
    return processed.strip()


class GenerationService:
    """Tries each provider in order; the first non-empty reply wins."""

    def __init__(self, catalog: Catalog, providers: Sequence[LLMProvider]):
        self.catalog = catalog
        self.providers = list(providers)

    async def generate(
        self,
        user_text: str,
        history: Sequence[Message] = (),
        intent: Optional[str] = None,
        context: Optional[dict] = None,
    ) -> GenerationResult:
        messages = build_messages(self.catalog, user_text, history, intent, context)
        failures: list[ProviderFailure] = []

        for provider in self.providers:
            try:
                response = await provider.generate(messages)
            except UpstreamError as exc:
                failures.append(ProviderFailure(provider=provider.name, error=str(exc)))
                logger.warning(
                    "Generation provider failed",
                    extra={"context": {"provider": provider.name, "error": str(exc)}},
                )
                continue

            text = postprocess(response.content)
            if not text:
                failures.append(ProviderFailure(provider=provider.name, error="empty after postprocess"))
                continue

            if failures:
                logger.info(
                    "Generation served by fallback provider",
                    extra={"context": {"provider": provider.name, "failed": [f.provider for f in failures]}},
                )
            return GenerationResult(success=True, text=text, provider=provider.name, failures=failures)

        logger.error(
            "All generation providers failed",
            extra={"context": {"failures": [f.__dict__ for f in failures], "intent": intent}},
        )
        return GenerationResult(success=False, failures=failures)

    def provider_names(self) -> list[str]:
        return [provider.name for provider in self.providers]

    async def aclose(self) -> None:
        for provider in self.providers:
            await provider.aclose()


def build_providers(settings: Settings) -> list[LLMProvider]:
    """Gemini, then OpenRouter, then Groq; unconfigured ones are skipped."""
    timeout = settings.generation_timeout_seconds
    providers: list[LLMProvider] = []
    if settings.gemini_api_key:
        providers.append(GeminiProvider(settings.gemini_api_key, settings.gemini_model, timeout=timeout))
    if settings.openrouter_api_key:
        providers.append(openrouter_provider(settings.openrouter_api_key, settings.openrouter_model, timeout=timeout))
    if settings.groq_api_key:
        providers.append(groq_provider(settings.groq_api_key, settings.groq_model, timeout=timeout))
    if not providers:
        logger.warning("No generation providers configured; catalog fallbacks only")
    return providers
