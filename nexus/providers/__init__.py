"""
Provider routing and adapters for text generation.
"""

from .base import (
    ProviderAdapter, GenerationRequest, GenerationResponse, UsageMetrics,
    RoutingMode, InjectionStrategy, build_prompt
)
from .registry import ProviderRegistry
from .router import ProviderRouter, RouteDecision
from .simulation import SimulationAdapter
from .usage import estimate_tokens, estimate_cost

__all__ = [
    'ProviderAdapter',
    'GenerationRequest',
    'GenerationResponse',
    'UsageMetrics',
    'RoutingMode',
    'InjectionStrategy',
    'build_prompt',
    'ProviderRegistry',
    'ProviderRouter',
    'RouteDecision',
    'SimulationAdapter',
    'estimate_tokens',
    'estimate_cost'
]
