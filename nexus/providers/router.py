"""
Switchboard: picks a provider config and invocation mode for each request.
"""

import re
from dataclasses import dataclass
from typing import List, Optional, Sequence

from util.logging import logger
from .base import RoutingMode
from ..core.schema import ProviderConfig, ProviderKind

LONG_CONTEXT_THRESHOLD = 50_000
SHORT_QUERY_LENGTH = 50

LONG_CONTEXT_KIND = ProviderKind.GOOGLE
LOW_LATENCY_KIND = ProviderKind.GROQ
LOCAL_KIND = ProviderKind.CUSTOM_LOCAL
NUANCED_WRITING_KIND = ProviderKind.ANTHROPIC
STRUCTURED_REASONING_KINDS = (ProviderKind.OPENAI, ProviderKind.XAI)
GENERAL_PURPOSE_KIND = ProviderKind.GOOGLE

CREATION_VERBS = re.compile(r"write|generate|create", re.IGNORECASE)
SUMMARY_WORDS = re.compile(r"summarize|summary", re.IGNORECASE)
COMPLEX_WORDS = re.compile(r"plan|architect|code|legal|contract|complex|draft|blog|tone|style|essay", re.IGNORECASE)
WRITING_WORDS = re.compile(r"draft|blog|tone|style|essay", re.IGNORECASE)


@dataclass
class RouteDecision:
    config: ProviderConfig
    mode: RoutingMode


def _find(configs: Sequence[ProviderConfig], kind: ProviderKind) -> Optional[ProviderConfig]:
    for config in configs:
        if config.kind == kind:
            return config
    return None


class ProviderRouter:
    """Rule-based routing, first match wins. Each rule falls through when its kinds are absent."""

    def route(self, query: str, retrieved_context: List[str],
              configs: Sequence[ProviderConfig]) -> Optional[RouteDecision]:
        decision = self._decide(query, retrieved_context, configs)
        if decision is not None:
            logger.log_operation("router.route", "success", {
                "config_id": decision.config.id,
                "kind": decision.config.kind.value,
                "mode": decision.mode.value
            })
        return decision

    def _decide(self, query: str, retrieved_context: List[str],
                configs: Sequence[ProviderConfig]) -> Optional[RouteDecision]:
        if not configs:
            return None

        context_length = sum(len(item) for item in retrieved_context)
        if context_length > LONG_CONTEXT_THRESHOLD:
            config = _find(configs, LONG_CONTEXT_KIND)
            if config:
                return RouteDecision(config, RoutingMode.DEEP_THOUGHT)

        is_chatter = len(query) < SHORT_QUERY_LENGTH and not CREATION_VERBS.search(query)
        if is_chatter or SUMMARY_WORDS.search(query):
            config = _find(configs, LOW_LATENCY_KIND) or _find(configs, LOCAL_KIND)
            if config:
                return RouteDecision(config, RoutingMode.LIGHTNING)

        if COMPLEX_WORDS.search(query):
            if WRITING_WORDS.search(query):
                config = _find(configs, NUANCED_WRITING_KIND)
                if config:
                    return RouteDecision(config, RoutingMode.DEEP_THOUGHT)
            for kind in STRUCTURED_REASONING_KINDS:
                config = _find(configs, kind)
                if config:
                    return RouteDecision(config, RoutingMode.DEEP_THOUGHT)

        config = _find(configs, GENERAL_PURPOSE_KIND) or configs[0]
        return RouteDecision(config, RoutingMode.STANDARD)
