"""LLM provider abstraction."""
from .base import LLMConfig, LLMProvider, get_provider
from .anthropic_provider import AnthropicProvider

__all__ = ["LLMConfig", "LLMProvider", "get_provider", "AnthropicProvider"]
