"""Provider interface and explicit LLM configuration."""

from __future__ import annotations

import os
from abc import ABC, abstractmethod
from dataclasses import dataclass


@dataclass(frozen=True)
class LLMConfig:
    """Credentials and generation settings passed to a provider constructor.

    Temperatures per operation follow what each call needs: deterministic
    judgements for classify/evaluate/tag, a little freedom when merging.
    """

    api_key: str = ""
    model: str = "claude-haiku-4-5"
    timeout: int = 90
    max_tokens: int = 2000
    classify_temperature: float = 0.0
    extract_temperature: float = 0.0
    evaluate_temperature: float = 0.0
    merge_temperature: float = 0.3
    tag_temperature: float = 0.1

    @classmethod
    def from_env(cls) -> "LLMConfig":
        return cls(
            api_key=os.environ.get("ANTHROPIC_API_KEY", ""),
            model=os.environ.get("MFA_MODEL", cls.model),
            timeout=int(os.environ.get("MFA_LLM_TIMEOUT", str(cls.timeout))),
            max_tokens=int(os.environ.get("MFA_LLM_MAX_TOKENS", str(cls.max_tokens))),
        )


class LLMProvider(ABC):
    """Turns a prompt into text.

    Implementations raise ``TransientServiceError`` for failures worth
    retrying and ``ServiceError`` for the rest. They never retry themselves.
    """

    @property
    @abstractmethod
    def name(self) -> str:
        ...

    @abstractmethod
    def generate(
        self,
        prompt: str,
        model: str | None = None,
        timeout: int | None = None,
        max_tokens: int | None = None,
        temperature: float = 0.0,
    ) -> str:
        ...

    def close(self) -> None:
        """Release any transport the provider holds."""


def get_provider(name: str, config: LLMConfig) -> LLMProvider:
    """Build a provider by name."""
    if name == "anthropic":
        from .anthropic_provider import AnthropicProvider

        return AnthropicProvider(config)
    raise ValueError(f"Unknown LLM provider: {name!r}")
