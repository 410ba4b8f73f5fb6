"""
Provider adapter interface and the request/response types shared by all adapters.
"""

import math
from abc import ABC, abstractmethod
from dataclasses import dataclass, field, asdict
from enum import Enum
from typing import Any, Dict, List, Optional

from ..core.schema import ProviderConfig, ProviderKind
from .usage import estimate_tokens, estimate_cost

CONTEXT_SEPARATOR = "\n---\n"


class RoutingMode(str, Enum):
    LIGHTNING = "LIGHTNING"
    DEEP_THOUGHT = "DEEP_THOUGHT"
    STANDARD = "STANDARD"


class InjectionStrategy(str, Enum):
    PREPEND = "PREPEND"
    APPEND = "APPEND"
    INTERLEAVE = "INTERLEAVE"


@dataclass
class GenerationRequest:
    """Everything an adapter needs for one completion."""
    system_directive: str
    retrieved_context: List[str]
    query: str
    temperature: float = 0.7
    injection_strategy: InjectionStrategy = InjectionStrategy.PREPEND

    def __post_init__(self):
        self.injection_strategy = InjectionStrategy(self.injection_strategy)


@dataclass
class UsageMetrics:
    input_tokens: int
    output_tokens: int
    total_tokens: int
    cost_estimate: float
    provider: str
    model: str
    routing_mode: RoutingMode

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data["routing_mode"] = RoutingMode(self.routing_mode).value
        return data


@dataclass
class GenerationResponse:
    text: str
    usage: UsageMetrics
    related_record_ids: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "text": self.text,
            "usage": self.usage.to_dict(),
            "related_record_ids": list(self.related_record_ids),
        }


def build_prompt(request: GenerationRequest) -> str:
    """Assemble the user prompt according to the injection strategy."""
    query = request.query
    if not request.retrieved_context:
        return f"QUERY:\n{query}"

    context = CONTEXT_SEPARATOR.join(request.retrieved_context)
    strategy = request.injection_strategy

    if strategy == InjectionStrategy.APPEND:
        return f"QUERY:\n{query}\n\nRELEVANT CONTEXT (Use if helpful):\n{context}"

    if strategy == InjectionStrategy.INTERLEAVE:
        items = request.retrieved_context
        mid = math.ceil(len(items) / 2)
        primary = CONTEXT_SEPARATOR.join(items[:mid])
        secondary = CONTEXT_SEPARATOR.join(items[mid:])
        return f"PRIMARY DATA:\n{primary}\n\nUSER QUERY:\n{query}\n\nSECONDARY DATA:\n{secondary}"

    return f"CONTEXT:\n{context}\n\nQUERY:\n{query}"


def build_usage(kind: ProviderKind, model: str, mode: RoutingMode,
                input_tokens: Optional[int], output_tokens: Optional[int],
                prompt_text: str, output_text: str) -> UsageMetrics:
    """Usage from reported token counts, estimated where the provider omitted them."""
    if input_tokens is None:
        input_tokens = estimate_tokens(prompt_text)
    if output_tokens is None:
        output_tokens = estimate_tokens(output_text)
    return UsageMetrics(
        input_tokens=input_tokens,
        output_tokens=output_tokens,
        total_tokens=input_tokens + output_tokens,
        cost_estimate=estimate_cost(input_tokens, output_tokens, kind),
        provider=ProviderKind(kind).value,
        model=model,
        routing_mode=RoutingMode(mode),
    )


class ProviderAdapter(ABC):
    """
    Abstract base class for generation backends.
    One subclass per ProviderKind, plus the simulation fallback.
    """

    kind: ProviderKind = None
    default_model: str = ""

    def __init__(self, config: ProviderConfig, timeout: float = 60.0):
        self.config = config
        self.timeout = timeout

    @property
    def model_name(self) -> str:
        return self.config.model_id or self.default_model

    @abstractmethod
    def complete(self, request: GenerationRequest, mode: RoutingMode) -> GenerationResponse:
        """
        Run one completion.

        Args:
            request: Directive, context, query and sampling options
            mode: Routing mode chosen for this request

        Returns:
            GenerationResponse with text and usage

        Raises:
            ProviderUnavailable: Transport failure, HTTP error, malformed payload or timeout
        """
        pass

    def get_status(self) -> Dict[str, Any]:
        return {
            "config_id": self.config.id,
            "kind": ProviderKind(self.config.kind).value,
            "model_name": self.model_name,
            "adapter_type": type(self).__name__,
        }
