from coderoom.providers.base import PostJsonRequest, ProviderClient
from coderoom.providers.gemini import GeminiClient
from coderoom.providers.openai import OpenAIClient

__all__ = ["GeminiClient", "OpenAIClient", "PostJsonRequest", "ProviderClient"]
