"""
Chat-completion client wrapper.

Sends a single user prompt and returns the text plus billed token counts.
"""

import logging
import time
from dataclasses import dataclass
from typing import Any, Optional

from openai import AsyncOpenAI

from ..config.loader import AIConfig
from ..core.parsing import first_text
from ..core.token_counter import TokenUsage

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class AICompletion:
    """Text and usage of one model call."""
    text: str
    input_tokens: int
    output_tokens: int
    latency_ms: int
    request_id: Optional[str] = None

    @property
    def total_tokens(self) -> int:
        return self.input_tokens + self.output_tokens


class HabitAIClient:
    """Async OpenAI-compatible client bound to one model configuration.

    Failures from the provider propagate unchanged; callers decide whether a
    failed call is fatal.
    """

    def __init__(self, config: AIConfig, client: Any):
        """Initialize the client.

        Args:
            config: Model, max tokens and temperature
            client: An ``AsyncOpenAI`` instance (or compatible object)
        """
        self.config = config
        self.client = client

    async def complete(
        self,
        prompt: str,
        max_tokens: Optional[int] = None,
        temperature: Optional[float] = None,
        system: Optional[str] = None,
    ) -> AICompletion:
        """Run a single-prompt chat completion.

        Args:
            prompt: User message content
            max_tokens: Override for the configured max tokens
            temperature: Override for the configured temperature
            system: Optional system message sent before the prompt

        Returns:
            AICompletion with the first text block and token usage

        Raises:
            ValueError: If prompt is empty
            OpenAI API errors: Propagated without modification
        """
        if not prompt or not prompt.strip():
            raise ValueError("prompt is required and cannot be empty")

        messages = [{"role": "user", "content": prompt}]
        if system:
            messages.insert(0, {"role": "system", "content": system})

        start = time.perf_counter()
        response = await self.client.chat.completions.create(
            model=self.config.model,
            messages=messages,
            max_tokens=max_tokens if max_tokens is not None else self.config.max_tokens,
            temperature=temperature if temperature is not None else self.config.temperature,
        )
        latency_ms = int((time.perf_counter() - start) * 1000)

        usage = TokenUsage.from_response(response)
        completion = AICompletion(
            text=first_text(response),
            input_tokens=usage.input_tokens,
            output_tokens=usage.output_tokens,
            latency_ms=latency_ms,
            request_id=getattr(response, "id", None),
        )
        logger.info(
            "AI call completed",
            extra={
                "model": self.config.model,
                "input_tokens": completion.input_tokens,
                "output_tokens": completion.output_tokens,
                "latency_ms": latency_ms,
            },
        )
        return completion


def create_ai_client(
    config: AIConfig,
    api_key: Optional[str],
    base_url: Optional[str] = None,
) -> Optional[HabitAIClient]:
    """Build the AI client, or None when no API key is configured."""
    if not api_key:
        logger.info("AI disabled: no API key configured")
        return None
    return HabitAIClient(config, AsyncOpenAI(api_key=api_key, base_url=base_url))
