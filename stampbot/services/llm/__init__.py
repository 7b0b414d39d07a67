from stampbot.services.llm.base import LLMProvider, LLMResponse
from stampbot.services.llm.openai_provider import OpenAIProvider

__all__ = ["LLMProvider", "LLMResponse", "OpenAIProvider"]
