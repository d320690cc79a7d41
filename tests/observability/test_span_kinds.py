"""Tests for OpenInference span-kind classification of nodes."""
import pytest

from flowtrace.observability.span_kinds import (
    EXACT_MATCHES,
    INTERNAL_LOGIC_NODES,
    SpanKind,
    classify_node,
    resolve_span_kind,
)

EXACT_CASES = [
    (node_type, kind) for kind, node_types in EXACT_MATCHES.items() for node_type in sorted(node_types)
]


class TestExactMatches:
    """Exact table entries win over every pattern that would also match."""

    @pytest.mark.parametrize("node_type,kind", EXACT_CASES)
    def test_exact_table_kind(self, node_type, kind):
        assert classify_node(node_type) is kind

    @pytest.mark.parametrize(
        "node_type,kind",
        [
            # "tool" pattern would say TOOL, the table says CHAIN
            ("ToolWorkflow", SpanKind.CHAIN),
            ("ToolThink", SpanKind.CHAIN),
            # "agent" pattern would say AGENT either way, "tool" never gets a say
            ("AgentTool", SpanKind.AGENT),
            # "chat"/"openai" patterns would say LLM
            ("EmbeddingsAzureOpenAi", SpanKind.EMBEDDING),
            ("MemoryChatRetriever", SpanKind.RETRIEVER),
            ("RerankerCohere", SpanKind.RERANKER),
            ("ChainLlm", SpanKind.CHAIN),
            # "parser" pattern would say CHAIN
            ("OutputParserAutofixing", SpanKind.EVALUATOR),
        ],
    )
    def test_exact_table_beats_patterns(self, node_type, kind):
        assert classify_node(node_type) is kind

    def test_exact_match_is_case_sensitive(self):
        # Falls through to the patterns instead of the table
        assert classify_node("outputparserautofixing") is SpanKind.CHAIN


class TestPatternRules:
    """Ordered regex heuristics against the lower-cased node type."""

    @pytest.mark.parametrize(
        "node_type,kind",
        [
            ("manualTrigger", SpanKind.CHAIN),
            ("myAgentThing", SpanKind.AGENT),
            ("embeddingsVoyage", SpanKind.EMBEDDING),
            ("vectorStoreRedis", SpanKind.RETRIEVER),
            ("customRetrieverNode", SpanKind.RETRIEVER),
            ("rerankerJina", SpanKind.RERANKER),
            ("lmOllama", SpanKind.LLM),
            ("mistralChatModel", SpanKind.LLM),
            ("httpRequestTool", SpanKind.TOOL),
            ("memoryBufferWindow", SpanKind.CHAIN),
            ("executeWorkflowNode", SpanKind.CHAIN),
            ("customClassifier", SpanKind.EVALUATOR),
            ("contentModeration", SpanKind.GUARDRAIL),
        ],
    )
    def test_single_pattern(self, node_type, kind):
        assert classify_node(node_type) is kind

    @pytest.mark.parametrize(
        "node_type",
        ["chatTrigger", "ChatTrigger", "openAiChatTrigger", "triggerChat", "anthropicTrigger"],
    )
    def test_trigger_wins_over_llm(self, node_type):
        assert classify_node(node_type) is SpanKind.CHAIN

    @pytest.mark.parametrize(
        "node_type,kind",
        [
            ("chatAgent", SpanKind.AGENT),
            ("toolAgent", SpanKind.AGENT),
            ("openAiTool", SpanKind.LLM),
            ("cohereEmbedding", SpanKind.EMBEDDING),
            ("vectorStoreTool", SpanKind.RETRIEVER),
            ("workflowTool", SpanKind.TOOL),
        ],
    )
    def test_earlier_rule_wins(self, node_type, kind):
        assert classify_node(node_type) is kind


class TestCategoryFallback:
    """Coarse category attribute when no pattern matches."""

    @pytest.mark.parametrize(
        "category", ["Trigger Nodes", "Transform Nodes", "AI/LangChain Nodes"]
    )
    def test_chain_categories(self, category):
        assert classify_node("DateTime", {"n8n.node.category": category}) is SpanKind.CHAIN

    @pytest.mark.parametrize("node_type", sorted(INTERNAL_LOGIC_NODES))
    def test_core_internal_logic_is_chain(self, node_type):
        assert classify_node(node_type, {"n8n.node.category": "Core Nodes"}) is SpanKind.CHAIN

    def test_other_core_nodes_are_tools(self):
        assert classify_node("HttpRequest", {"n8n.node.category": "Core Nodes"}) is SpanKind.TOOL

    def test_raw_category_used_when_category_missing(self):
        attributes = {"n8n.node.category_raw": "Core Nodes"}
        assert classify_node("HttpRequest", attributes) is SpanKind.TOOL

    def test_unknown_category_is_no_match(self):
        assert classify_node("HttpRequest", {"n8n.node.category": "Marketing"}) is None

    def test_patterns_win_over_category(self):
        attributes = {"n8n.node.category": "Core Nodes"}
        assert classify_node("webhookTrigger", attributes) is SpanKind.CHAIN


class TestTotality:
    """The classifier never raises and never leaves the enumerated set."""

    def test_unknown_type_without_category(self):
        assert classify_node("UnknownCustomNode123") is None

    @pytest.mark.parametrize(
        "node_type", [None, "", 123, 1.5, b"OpenAi", ["OpenAi"], {"type": "OpenAi"}, object()]
    )
    def test_non_string_types_are_no_match(self, node_type):
        assert classify_node(node_type) is None

    @pytest.mark.parametrize(
        "attributes", [None, {}, [], "Core Nodes", object(), {"n8n.node.category": 42}]
    )
    def test_malformed_attributes_never_raise(self, attributes):
        assert classify_node("HttpRequest", attributes) is None

    @pytest.mark.parametrize(
        "node_type",
        ["x", "  ", "🤖", "Trigger\nChat", "a" * 10000, "lm", "LM", "^lm", "(chain)"],
    )
    def test_result_always_in_enumerated_set(self, node_type):
        result = classify_node(node_type, {"n8n.node.category": "Core Nodes"})
        assert result is None or result in set(SpanKind)


class TestResolveSpanKind:
    def test_no_match_defaults_to_chain(self):
        assert resolve_span_kind("UnknownCustomNode123") is SpanKind.CHAIN

    def test_disabled_mapping_is_always_chain(self):
        assert resolve_span_kind("OpenAi", enabled=False) is SpanKind.CHAIN

    def test_match_is_returned(self):
        assert resolve_span_kind("OpenAi") is SpanKind.LLM

    def test_span_kind_values(self):
        assert [kind.value for kind in SpanKind] == [
            "LLM",
            "EMBEDDING",
            "CHAIN",
            "RETRIEVER",
            "RERANKER",
            "TOOL",
            "AGENT",
            "GUARDRAIL",
            "EVALUATOR",
            "PROMPT",
        ]
