"""Vendor adapters implementing the ``Provider`` interface."""

from chatwire.llm.providers.base import Provider
from chatwire.llm.providers.gemini import GeminiProvider
from chatwire.llm.providers.openai_compat import OpenAICompatProvider

__all__ = ["GeminiProvider", "OpenAICompatProvider", "Provider"]
