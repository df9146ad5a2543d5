"""
Token counting and estimation.

Provides exact token counts when a provider reports them and a rough
estimate when it does not.
"""

import math
from dataclasses import dataclass
from typing import Any, Mapping, Optional

DEFAULT_TOKEN_ESTIMATE = 1000
BASE_TOKENS_PER_REQUEST = 100
CHARS_PER_TOKEN = 4


@dataclass(frozen=True)
class TokenUsage:
    """Token usage data for cost calculation.

    Contains exact token counts without estimation or model-specific logic.
    """
    prompt_tokens: int
    completion_tokens: int

    @property
    def total_tokens(self) -> int:
        """Total tokens used (prompt + completion)."""
        return self.prompt_tokens + self.completion_tokens


def estimate_tokens(payload: Optional[Mapping[str, Any]] = None) -> int:
    """Estimate tokens for a request from its payload.

    Roughly one token per four characters of the ``input`` or ``prompt``
    text plus a fixed base. Unparseable payloads or non-text input get the default.

    Args:
        payload: Request body, if it could be parsed

    Returns:
        Estimated token count
    """
    if payload is None:
        return DEFAULT_TOKEN_ESTIMATE

    text = payload.get("input") or payload.get("prompt") or ""
    if not isinstance(text, str):
        return DEFAULT_TOKEN_ESTIMATE
    return math.ceil(len(text) / CHARS_PER_TOKEN) + BASE_TOKENS_PER_REQUEST
