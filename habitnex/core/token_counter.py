"""
Token counting and usage tracking.

Extracts token counts from chat-completion responses.
"""

from dataclasses import dataclass
from typing import Any


@dataclass(frozen=True)
class TokenUsage:
    """Token usage data for cost calculation.

    Contains exact token counts as reported by the provider, without estimation.
    """
    input_tokens: int
    output_tokens: int

    @property
    def total_tokens(self) -> int:
        """Total tokens used (input + output)."""
        return self.input_tokens + self.output_tokens

    @classmethod
    def from_response(cls, response: Any) -> "TokenUsage":
        """Read usage off a chat-completion response.

        A response without a usage block counts as zero tokens.
        """
        usage = getattr(response, "usage", None)
        if usage is None:
            return cls(input_tokens=0, output_tokens=0)
        return cls(
            input_tokens=getattr(usage, "prompt_tokens", 0) or 0,
            output_tokens=getattr(usage, "completion_tokens", 0) or 0,
        )
