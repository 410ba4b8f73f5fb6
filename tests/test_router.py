"""
Tests for the provider switchboard.
"""

import pytest

from nexus.core.schema import ProviderConfig, ProviderKind
from nexus.providers.base import RoutingMode
from nexus.providers.router import ProviderRouter


def cfg(kind: ProviderKind) -> ProviderConfig:
    return ProviderConfig(id=f"cfg-{kind.value.lower()}", kind=kind, display_name=kind.value, credential="key")


ALL = [cfg(kind) for kind in ProviderKind]
LONG_QUERY_PAD = " with enough extra words to pass the short query limit"


@pytest.fixture
def router():
    return ProviderRouter()


def test_empty_config_list_returns_none(router):
    assert router.route("hello", [], []) is None


def test_long_context_goes_to_long_context_kind(router):
    context = ["x" * 30_000, "y" * 30_000]
    for query in ("hi", "write a legal contract essay", "summarize this"):
        decision = router.route(query, context, ALL)
        assert decision.config.kind == ProviderKind.GOOGLE
        assert decision.mode == RoutingMode.DEEP_THOUGHT


def test_long_context_without_google_falls_through(router):
    configs = [cfg(ProviderKind.OPENAI), cfg(ProviderKind.GROQ)]
    decision = router.route("hi", ["z" * 60_000], configs)
    assert decision.config.kind == ProviderKind.GROQ
    assert decision.mode == RoutingMode.LIGHTNING


def test_short_chatter_prefers_low_latency(router):
    decision = router.route("how are you?", [], ALL)
    assert decision.config.kind == ProviderKind.GROQ
    assert decision.mode == RoutingMode.LIGHTNING


def test_low_latency_falls_back_to_local(router):
    configs = [cfg(ProviderKind.OPENAI), cfg(ProviderKind.CUSTOM_LOCAL)]
    decision = router.route("quick question", [], configs)
    assert decision.config.kind == ProviderKind.CUSTOM_LOCAL
    assert decision.mode == RoutingMode.LIGHTNING


def test_summary_keyword_is_lightning_even_when_long(router):
    query = "Please summarize everything we discussed about the quarterly budget" + LONG_QUERY_PAD
    decision = router.route(query, [], ALL)
    assert decision.mode == RoutingMode.LIGHTNING


def test_short_query_with_creation_verb_is_not_lightning(router):
    decision = router.route("write code", [], ALL)
    assert decision.config.kind == ProviderKind.OPENAI
    assert decision.mode == RoutingMode.DEEP_THOUGHT


def test_writing_keywords_prefer_nuanced_writer(router):
    decision = router.route("Draft a blog post about our launch" + LONG_QUERY_PAD, [], ALL)
    assert decision.config.kind == ProviderKind.ANTHROPIC
    assert decision.mode == RoutingMode.DEEP_THOUGHT


def test_style_keyword_prefers_nuanced_writer(router):
    decision = router.route("Rework the style of this paragraph for a formal audience" + LONG_QUERY_PAD, [], ALL)
    assert decision.config.kind == ProviderKind.ANTHROPIC


def test_reasoning_keywords_prefer_openai_then_xai(router):
    query = "Architect a plan for migrating the billing system" + LONG_QUERY_PAD
    assert router.route(query, [], ALL).config.kind == ProviderKind.OPENAI

    without_openai = [c for c in ALL if c.kind != ProviderKind.OPENAI]
    decision = router.route(query, [], without_openai)
    assert decision.config.kind == ProviderKind.XAI
    assert decision.mode == RoutingMode.DEEP_THOUGHT


def test_writing_without_anthropic_uses_reasoning_kind(router):
    configs = [cfg(ProviderKind.GOOGLE), cfg(ProviderKind.XAI)]
    decision = router.route("Write an essay on distributed consensus" + LONG_QUERY_PAD, [], configs)
    assert decision.config.kind == ProviderKind.XAI


def test_default_prefers_general_purpose_kind(router):
    query = "Tell me what you remember about my trip to Lisbon last spring"
    decision = router.route(query, [], ALL)
    assert decision.config.kind == ProviderKind.GOOGLE
    assert decision.mode == RoutingMode.STANDARD


def test_default_falls_back_to_first_config(router):
    configs = [cfg(ProviderKind.MISTRAL), cfg(ProviderKind.ANTHROPIC)]
    query = "Tell me what you remember about my trip to Lisbon last spring"
    decision = router.route(query, [], configs)
    assert decision.config.kind == ProviderKind.MISTRAL
    assert decision.mode == RoutingMode.STANDARD


def test_complex_query_with_no_matching_kind_falls_through(router):
    configs = [cfg(ProviderKind.MISTRAL)]
    decision = router.route("Plan the legal review of the contract" + LONG_QUERY_PAD, [], configs)
    assert decision.config.kind == ProviderKind.MISTRAL
    assert decision.mode == RoutingMode.STANDARD
