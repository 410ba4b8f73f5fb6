"""
Token and cost estimation for generation calls.
"""

import math
from typing import Dict, Tuple

from ..core.schema import ProviderKind

# Cents per token: (input, output)
COST_TABLE: Dict[ProviderKind, Tuple[float, float]] = {
    ProviderKind.OPENAI: (0.0005, 0.0015),
    ProviderKind.ANTHROPIC: (0.0003, 0.0015),
    ProviderKind.GOOGLE: (0.0001, 0.0004),
    ProviderKind.GROQ: (0.00005, 0.00008),
    ProviderKind.MISTRAL: (0.0002, 0.0006),
    ProviderKind.XAI: (0.0004, 0.0012),
    ProviderKind.CUSTOM_LOCAL: (0.0, 0.0),
}


def estimate_tokens(text: str) -> int:
    """Rough token count: one token per four characters, rounded up."""
    return math.ceil(len(text) / 4)


def estimate_cost(input_tokens: int, output_tokens: int, kind: ProviderKind) -> float:
    """Estimated cost in USD cents."""
    input_rate, output_rate = COST_TABLE.get(ProviderKind(kind), (0.0, 0.0))
    return input_tokens * input_rate + output_tokens * output_rate
