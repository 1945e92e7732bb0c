import asyncio
import json

import httpx

from sales_agent.config import Settings
from sales_agent.services.ai_service import GenerationService, build_providers, postprocess
from sales_agent.services.errors import UpstreamError
from sales_agent.services.llm import GeminiProvider, LLMProvider, LLMResponse, OpenAIProvider
from sales_agent.services.prompt_builder import build_messages, build_system_prompt


class StubProvider(LLMProvider):
    def __init__(self, name, reply=None, error=None):
        self.name = name
        self.reply = reply
        self.error = error
        self.calls = 0

    async def generate(self, messages, temperature=0.3, max_tokens=500):
        self.calls += 1
        if self.error:
            raise UpstreamError(self.name, self.error)
        return LLMResponse(content=self.reply, model="stub", provider=self.name)


class TestGenerationService:
    def test_first_provider_wins(self, catalog):
        first = StubProvider("gemini", reply="Logo Design Rs. 5,000 ka hai.")
        second = StubProvider("openrouter", reply="unused")

        result = asyncio.run(GenerationService(catalog, [first, second]).generate("logo price?"))

        assert result.success is True
        assert result.provider == "gemini"
        assert second.calls == 0

    def test_falls_through_failed_providers(self, catalog):
        providers = [
            StubProvider("gemini", error="HTTP 429"),
            StubProvider("openrouter", error="timeout"),
            StubProvider("groq", reply="Ji zaroor!"),
        ]

        result = asyncio.run(GenerationService(catalog, providers).generate("hello"))

        assert result.success is True
        assert result.text == "Ji zaroor!"
        assert [f.provider for f in result.failures] == ["gemini", "openrouter"]

    def test_all_providers_failing(self, catalog):
        providers = [StubProvider("gemini", error="HTTP 500"), StubProvider("groq", error="HTTP 503")]

        result = asyncio.run(GenerationService(catalog, providers).generate("hello"))

        assert result.success is False
        assert result.text is None
        assert result.error == "gemini: gemini: HTTP 500; groq: groq: HTTP 503"

    def test_empty_reply_counts_as_failure(self, catalog):
        providers = [StubProvider("gemini", reply="```code only```"), StubProvider("groq", reply="Ji!")]

        result = asyncio.run(GenerationService(catalog, providers).generate("hello"))

        assert result.provider == "groq"
        assert result.failures[0].error == "empty after postprocess"

    def test_no_providers(self, catalog):
        result = asyncio.run(GenerationService(catalog, []).generate("hello"))
        assert result.success is False
        assert result.error == "no generation providers configured"


class TestPostprocess:
    def test_strips_role_prefix(self):
        assert postprocess("Assistant: Ji, bilkul!") == "Ji, bilkul!"

    def test_collapses_blank_lines(self):
        assert postprocess("one\n\n\n\ntwo") == "one\n\ntwo"

    def test_truncates_long_replies(self):
        text = "word " * 2000
        processed = postprocess(text)
        assert len(processed) <= 4000
        assert processed.endswith("...")

    def test_empty(self):
        assert postprocess(None) == ""


class TestPrompts:
    def test_system_prompt_carries_catalog(self, catalog):
        prompt = build_system_prompt(catalog)
        assert "PixelCraft Studio" in prompt
        assert "Rs. 35,000" in prompt
        assert "JazzCash" in prompt

    def test_user_prompt_has_intent_and_context(self, catalog):
        messages = build_messages(
            catalog,
            "website ka price?",
            [],
            intent="PRICING_INQUIRY",
            context={"customer_name": "Ali", "language": "mixed"},
        )

        assert [m["role"] for m in messages] == ["system", "user"]
        user_prompt = messages[1]["content"]
        assert "This is a new conversation" in user_prompt
        assert "## DETECTED INTENT: PRICING_INQUIRY" in user_prompt
        assert "Customer Name: Ali" in user_prompt
        assert user_prompt.endswith("website ka price?")


class TestBuildProviders:
    def test_order_is_gemini_openrouter_groq(self):
        settings = Settings(
            database_url="sqlite://",
            gemini_api_key="g",
            openrouter_api_key="o",
            groq_api_key="q",
        )
        assert [p.name for p in build_providers(settings)] == ["gemini", "openrouter", "groq"]

    def test_unconfigured_providers_are_skipped(self):
        settings = Settings(database_url="sqlite://", gemini_api_key=None, openrouter_api_key=None, groq_api_key="q")
        assert [p.name for p in build_providers(settings)] == ["groq"]


class TestProviders:
    def test_openai_compatible_request(self):
        captured = {}

        def handler(request):
            captured["url"] = str(request.url)
            captured["body"] = json.loads(request.content)
            return httpx.Response(200, json={"choices": [{"message": {"content": "Salam!"}}], "model": "llama"})

        provider = OpenAIProvider("groq", "key", "llama", "https://api.groq.com/openai/v1")
        provider._client = httpx.AsyncClient(transport=httpx.MockTransport(handler))

        response = asyncio.run(provider.generate([{"role": "user", "content": "hi"}]))

        assert response.content == "Salam!"
        assert captured["url"] == "https://api.groq.com/openai/v1/chat/completions"
        assert captured["body"]["model"] == "llama"

    def test_openai_compatible_error_raises_upstream(self):
        provider = OpenAIProvider("groq", "key", "llama", "https://api.groq.com/openai/v1")
        provider._client = httpx.AsyncClient(transport=httpx.MockTransport(lambda request: httpx.Response(429)))

        try:
            asyncio.run(provider.generate([{"role": "user", "content": "hi"}]))
        except UpstreamError as exc:
            assert exc.service == "groq"
        else:
            raise AssertionError("expected UpstreamError")

    def test_gemini_moves_system_prompt_to_instruction(self):
        captured = {}

        def handler(request):
            captured["body"] = json.loads(request.content)
            captured["key"] = request.url.params.get("key")
            return httpx.Response(200, json={"candidates": [{"content": {"parts": [{"text": "Ji!"}]}}]})

        provider = GeminiProvider("gkey", "gemini-1.5-flash")
        provider._client = httpx.AsyncClient(transport=httpx.MockTransport(handler))

        response = asyncio.run(
            provider.generate([{"role": "system", "content": "rules"}, {"role": "user", "content": "hi"}])
        )

        assert response.content == "Ji!"
        assert captured["key"] == "gkey"
        assert captured["body"]["systemInstruction"] == {"parts": [{"text": "rules"}]}
        assert captured["body"]["contents"] == [{"role": "user", "parts": [{"text": "hi"}]}]
