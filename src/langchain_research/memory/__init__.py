"""
Memory processors for research agents.

Shapes the conversation history an agent sees by running it through an
ordered pipeline of independent filters:

- Personalization, citation, multi-perspective, temporal, uncertainty,
  knowledge-graph, belief and hierarchical filters: keyword/regex heuristics
- Token limiter: cumulative token budget, stops at the first overflow
- Deduplicator: drops repeated content by checksum
- Circuit breaker: wraps a filter and passes messages through unfiltered
  after repeated failures

Tool and system messages are never dropped by the content filters.
"""

from .breaker import BreakerState, CircuitBreakerProcessor
from .config import MemoryConfig
from .content import (
    ContentCache,
    compute_checksum,
    default_cache,
    extract_content,
    lowercase_content,
)
from .middleware import MemoryMiddleware
from .pipeline import MemoryPipeline, build_pipeline
from .processors import (
    BayesianBeliefProcessor,
    CitationExtractorProcessor,
    DeduplicatorProcessor,
    HierarchicalMemoryProcessor,
    KnowledgeGraphProcessor,
    MessageProcessor,
    MultiPerspectiveProcessor,
    PersonalizationProcessor,
    ProcessorOptions,
    ReliabilityProcessor,
    TemporalReasoningProcessor,
    TokenLimiterProcessor,
    UncertaintyQuantificationProcessor,
)
from .token_budget import calculate_budget, estimate_message_tokens, estimate_tokens

__all__ = [
    "BayesianBeliefProcessor",
    "BreakerState",
    "CircuitBreakerProcessor",
    "CitationExtractorProcessor",
    "ContentCache",
    "DeduplicatorProcessor",
    "HierarchicalMemoryProcessor",
    "KnowledgeGraphProcessor",
    "MemoryConfig",
    "MemoryMiddleware",
    "MemoryPipeline",
    "MessageProcessor",
    "MultiPerspectiveProcessor",
    "PersonalizationProcessor",
    "ProcessorOptions",
    "ReliabilityProcessor",
    "TemporalReasoningProcessor",
    "TokenLimiterProcessor",
    "UncertaintyQuantificationProcessor",
    "build_pipeline",
    "calculate_budget",
    "compute_checksum",
    "default_cache",
    "estimate_message_tokens",
    "estimate_tokens",
    "extract_content",
    "lowercase_content",
]
