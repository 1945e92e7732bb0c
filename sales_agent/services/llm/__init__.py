from sales_agent.services.llm.base import LLMProvider, LLMResponse
from sales_agent.services.llm.gemini_provider import GeminiProvider
from sales_agent.services.llm.openai_provider import OpenAIProvider, groq_provider, openrouter_provider

__all__ = ["LLMProvider", "LLMResponse", "GeminiProvider", "OpenAIProvider", "groq_provider", "openrouter_provider"]
