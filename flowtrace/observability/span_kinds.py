"""
OpenInference span-kind classification for workflow engine nodes.

Node types are mapped to one of the OpenInference span kinds in three tiers,
first match wins:

1. Exact match against well-known first-party integrations (case-sensitive)
2. Ordered regex heuristics against the lower-cased node type
3. Fallback on the node's coarse category attribute

Anything else is left unclassified and callers default it to CHAIN.

Valid span kinds:
    LLM, EMBEDDING, CHAIN, RETRIEVER, RERANKER, TOOL, AGENT, GUARDRAIL,
    EVALUATOR, PROMPT
"""

import logging
import re
from enum import Enum
from typing import Any, Dict, FrozenSet, Mapping, Optional, Pattern, Tuple

from .constants import NODE_CATEGORY, NODE_CATEGORY_RAW

logger = logging.getLogger(__name__)


class SpanKind(str, Enum):
    """OpenInference span kinds a node span can carry."""

    LLM = "LLM"
    EMBEDDING = "EMBEDDING"
    CHAIN = "CHAIN"
    RETRIEVER = "RETRIEVER"
    RERANKER = "RERANKER"
    TOOL = "TOOL"
    AGENT = "AGENT"
    GUARDRAIL = "GUARDRAIL"
    EVALUATOR = "EVALUATOR"
    PROMPT = "PROMPT"

    def __str__(self) -> str:
        return self.value


DEFAULT_SPAN_KIND = SpanKind.CHAIN

# ============================================================================
# Exact Match Tier
# ============================================================================

EXACT_MATCHES: Dict[SpanKind, FrozenSet[str]] = {
    SpanKind.AGENT: frozenset({"Agent", "AgentTool"}),
    SpanKind.LLM: frozenset(
        {
            "LmChatOpenAi",
            "LmOpenAi",
            "OpenAi",
            "Anthropic",
            "GoogleGemini",
            "Groq",
            "Perplexity",
            "LmChatAnthropic",
            "LmChatGoogleGemini",
            "LmChatMistralCloud",
            "LmChatOpenRouter",
            "LmChatXAiGrok",
            "OpenAiAssistant",
        }
    ),
    SpanKind.EMBEDDING: frozenset(
        {
            "EmbeddingsAwsBedrock",
            "EmbeddingsAzureOpenAi",
            "EmbeddingsCohere",
            "EmbeddingsGoogleGemini",
            "EmbeddingsGoogleVertex",
            "EmbeddingsHuggingFaceInference",
            "EmbeddingsMistralCloud",
            "EmbeddingsOllama",
            "EmbeddingsOpenAi",
        }
    ),
    SpanKind.RETRIEVER: frozenset(
        {
            "RetrieverContextualCompression",
            "RetrieverMultiQuery",
            "RetrieverVectorStore",
            "RetrieverWorkflow",
            "MemoryChatRetriever",
            "VectorStoreInMemory",
            "VectorStoreInMemoryInsert",
            "VectorStoreInMemoryLoad",
            "VectorStoreMilvus",
            "VectorStoreMongoDBAtlas",
            "VectorStorePGVector",
            "VectorStorePinecone",
            "VectorStorePineconeInsert",
            "VectorStorePineconeLoad",
            "VectorStoreQdrant",
            "VectorStoreSupabase",
            "VectorStoreSupabaseInsert",
            "VectorStoreSupabaseLoad",
            "VectorStoreWeaviate",
            "VectorStoreZep",
            "VectorStoreZepInsert",
            "VectorStoreZepLoad",
        }
    ),
    SpanKind.RERANKER: frozenset({"RerankerCohere"}),
    SpanKind.EVALUATOR: frozenset(
        {
            "SentimentAnalysis",
            "TextClassifier",
            "InformationExtractor",
            "OutputParserAutofixing",
        }
    ),
    SpanKind.GUARDRAIL: frozenset({"GooglePerspective", "AwsRekognition"}),
    SpanKind.CHAIN: frozenset(
        {
            "ChainLlm",
            "ChainRetrievalQa",
            "ChainSummarization",
            "ToolWorkflow",
            "ToolExecutor",
            "ModelSelector",
            "OutputParserStructured",
            "OutputParserItemList",
            "TextSplitterCharacterTextSplitter",
            "TextSplitterRecursiveCharacterTextSplitter",
            "TextSplitterTokenSplitter",
            "ToolThink",
        }
    ),
}

_EXACT_LOOKUP: Dict[str, SpanKind] = {
    node_type: kind for kind, node_types in EXACT_MATCHES.items() for node_type in node_types
}

# ============================================================================
# Pattern Tier
# ============================================================================

# Order matters: the trigger rule must precede the LLM rule so that a type
# such as "chatTrigger" is a CHAIN and not an LLM.
PATTERN_RULES: Tuple[Tuple[SpanKind, Pattern[str]], ...] = (
    (SpanKind.CHAIN, re.compile(r"trigger")),
    (SpanKind.AGENT, re.compile(r"agent")),
    (SpanKind.EMBEDDING, re.compile(r"embedding")),
    (SpanKind.RETRIEVER, re.compile(r"(retriev|vectorstore)")),
    (SpanKind.RERANKER, re.compile(r"rerank")),
    (
        SpanKind.LLM,
        re.compile(r"(lmchat|^lm[a-z]|chat|openai|anthropic|gemini|mistral|groq|cohere)"),
    ),
    (SpanKind.TOOL, re.compile(r"tool")),
    (SpanKind.CHAIN, re.compile(r"(chain|textsplitter|parser|memory|workflow)")),
    (SpanKind.EVALUATOR, re.compile(r"(classif|sentiment|extract)")),
    (SpanKind.GUARDRAIL, re.compile(r"(perspective|rekognition|moderation|guardrail)")),
)

# ============================================================================
# Category Fallback Tier
# ============================================================================

CATEGORY_KINDS: Dict[str, SpanKind] = {
    "Trigger Nodes": SpanKind.CHAIN,
    "Transform Nodes": SpanKind.CHAIN,
    "AI/LangChain Nodes": SpanKind.CHAIN,
}

CORE_CATEGORY = "Core Nodes"

# Core nodes that only route or reshape data
INTERNAL_LOGIC_NODES: FrozenSet[str] = frozenset(
    {
        "If",
        "Switch",
        "Set",
        "Move",
        "Rename",
        "Wait",
        "WaitUntil",
        "Function",
        "FunctionItem",
        "Code",
        "NoOp",
        "ExecuteWorkflow",
        "SubworkflowTo",
        "Schedule",
        "Cron",
    }
)


def _category_fallback(node_type: str, category: Any) -> Optional[SpanKind]:
    if not isinstance(category, str):
        return None
    if category == CORE_CATEGORY:
        if node_type in INTERNAL_LOGIC_NODES:
            return SpanKind.CHAIN
        return SpanKind.TOOL
    return CATEGORY_KINDS.get(category)


def classify_node(
    node_type: Any, attributes: Optional[Mapping[str, Any]] = None
) -> Optional[SpanKind]:
    """
    Map a node type to an OpenInference span kind.

    Args:
        node_type: The engine's node type identifier, e.g. ``"LmChatOpenAi"``
        attributes: Optional flattened node attributes; ``n8n.node.category``
            (or ``n8n.node.category_raw``) drives the category fallback

    Returns:
        Optional[SpanKind]: The matched kind, or None when no tier matches

    Example:
        >>> classify_node("OpenAi")
        <SpanKind.LLM: 'LLM'>
        >>> classify_node("chatTrigger")
        <SpanKind.CHAIN: 'CHAIN'>
        >>> classify_node("UnknownCustomNode123") is None
        True
    """
    if not isinstance(node_type, str) or not node_type:
        return None

    exact = _EXACT_LOOKUP.get(node_type)
    if exact is not None:
        return exact

    lowered = node_type.lower()
    for kind, pattern in PATTERN_RULES:
        if pattern.search(lowered):
            return kind

    if attributes:
        try:
            category = attributes.get(NODE_CATEGORY) or attributes.get(
                NODE_CATEGORY_RAW
            )
        except Exception as e:
            logger.debug(f"Could not read category for {node_type}: {e}")
            return None
        return _category_fallback(node_type, category)

    return None


def resolve_span_kind(
    node_type: Any,
    attributes: Optional[Mapping[str, Any]] = None,
    enabled: bool = True,
) -> SpanKind:
    """Classify a node, defaulting to CHAIN when mapping is disabled or nothing matches."""
    if not enabled:
        return DEFAULT_SPAN_KIND
    return classify_node(node_type, attributes) or DEFAULT_SPAN_KIND


__all__ = [
    "CATEGORY_KINDS",
    "DEFAULT_SPAN_KIND",
    "EXACT_MATCHES",
    "INTERNAL_LOGIC_NODES",
    "PATTERN_RULES",
    "SpanKind",
    "classify_node",
    "resolve_span_kind",
]
