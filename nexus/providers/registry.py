"""
Adapter lookup table keyed by provider kind.
"""

from typing import Dict, List, Type

from .base import ProviderAdapter
from .http_adapters import OpenAIAdapter, AnthropicAdapter, GoogleAdapter, GroqAdapter, MistralAdapter, XAIAdapter
from .local_adapter import LocalAdapter
from .simulation import SimulationAdapter
from ..core.config import PROVIDER_TIMEOUT_SEC
from ..core.errors import UnknownProviderKind
from ..core.schema import ProviderConfig, ProviderKind

DEFAULT_ADAPTERS: Dict[ProviderKind, Type[ProviderAdapter]] = {
    ProviderKind.GOOGLE: GoogleAdapter,
    ProviderKind.OPENAI: OpenAIAdapter,
    ProviderKind.ANTHROPIC: AnthropicAdapter,
    ProviderKind.GROQ: GroqAdapter,
    ProviderKind.MISTRAL: MistralAdapter,
    ProviderKind.XAI: XAIAdapter,
    ProviderKind.CUSTOM_LOCAL: LocalAdapter,
}


class ProviderRegistry:
    """
    Maps each ProviderKind to its adapter class and builds adapters for configs.
    Configs that cannot reach a live backend get the simulation adapter.
    """

    def __init__(self, adapters: Dict[ProviderKind, Type[ProviderAdapter]] = None,
                 timeout: float = PROVIDER_TIMEOUT_SEC):
        self.adapters: Dict[ProviderKind, Type[ProviderAdapter]] = dict(adapters or DEFAULT_ADAPTERS)
        self.timeout = timeout

    def register(self, kind: ProviderKind, adapter_cls: Type[ProviderAdapter]):
        self.adapters[ProviderKind(kind)] = adapter_cls

    def lookup(self, kind: ProviderKind) -> Type[ProviderAdapter]:
        """
        Get the adapter class for a kind.

        Raises:
            UnknownProviderKind: No adapter registered for ``kind``
        """
        try:
            return self.adapters[ProviderKind(kind)]
        except (KeyError, ValueError):
            raise UnknownProviderKind(f"No adapter registered for provider kind {kind!r}")

    def create_adapter(self, config: ProviderConfig) -> ProviderAdapter:
        """Build the adapter for a config, degrading to simulation when it has nothing to connect with."""
        adapter_cls = self.lookup(config.kind)

        if ProviderKind(config.kind) == ProviderKind.CUSTOM_LOCAL:
            if not config.endpoint:
                return SimulationAdapter(config, self.timeout)
        elif not config.credential:
            return SimulationAdapter(config, self.timeout)

        return adapter_cls(config, self.timeout)

    def list_kinds(self) -> List[str]:
        return [kind.value for kind in self.adapters]
