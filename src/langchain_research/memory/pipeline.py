"""
Ordered composition of memory processors.

A pipeline is a plain list of processors; each one's output becomes the
next one's input. ``build_pipeline`` assembles one from ``MemoryConfig``
using the stage registry below.
"""

import logging
from typing import Callable, Optional

from .breaker import CircuitBreakerProcessor
from .config import MemoryConfig
from .content import ContentCache, default_cache
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
from .token_budget import calculate_budget

logger = logging.getLogger(__name__)


class MemoryPipeline:
    """
    Runs messages through processors in order.

    Usage:
        pipeline = MemoryPipeline([DeduplicatorProcessor(), CitationExtractorProcessor()])
        filtered = pipeline.process(messages, ProcessorOptions(thread_id="t1"))
    """

    def __init__(self, processors: list[MessageProcessor]):
        self.processors = list(processors)

    @property
    def names(self) -> list[str]:
        return [p.name for p in self.processors]

    def process(self, messages, opts: Optional[ProcessorOptions] = None):
        if not isinstance(messages, (list, tuple)):
            return messages

        opts = opts or ProcessorOptions()
        current = list(messages)
        for processor in self.processors:
            before = len(current)
            current = processor.process(current, opts)
            logger.debug(
                "Processor %s kept %d of %d messages",
                processor.name,
                len(current),
                before,
            )
        return current


# Stage name → factory(config, cache, history_budget)
StageFactory = Callable[[MemoryConfig, ContentCache, int], MessageProcessor]

STAGES: dict[str, StageFactory] = {
    "personalization": lambda c, cache, budget: PersonalizationProcessor(
        preferences=c.preferences, cache=cache
    ),
    "token_limiter": lambda c, cache, budget: TokenLimiterProcessor(
        max_tokens=budget, cache=cache
    ),
    "reliability": lambda c, cache, budget: CircuitBreakerProcessor(
        ReliabilityProcessor(cache=cache),
        failure_threshold=c.failure_threshold,
        recovery_timeout_ms=c.recovery_timeout_ms,
    ),
    "citation": lambda c, cache, budget: CitationExtractorProcessor(cache=cache),
    "deduplicator": lambda c, cache, budget: DeduplicatorProcessor(cache=cache),
    "knowledge_graph": lambda c, cache, budget: KnowledgeGraphProcessor(cache=cache),
    "uncertainty": lambda c, cache, budget: UncertaintyQuantificationProcessor(
        cache=cache
    ),
    "temporal": lambda c, cache, budget: TemporalReasoningProcessor(cache=cache),
    "belief": lambda c, cache, budget: BayesianBeliefProcessor(cache=cache),
    "hierarchical": lambda c, cache, budget: HierarchicalMemoryProcessor(
        threshold=c.hierarchical_threshold, cache=cache
    ),
    "multi_perspective": lambda c, cache, budget: MultiPerspectiveProcessor(
        viewpoints=c.viewpoints, cache=cache
    ),
}


def build_pipeline(
    config: MemoryConfig,
    model_name: str = "",
    system_prompt_tokens: int = 0,
    cache: Optional[ContentCache] = None,
) -> MemoryPipeline:
    """
    Build the pipeline named by ``config.processors``.

    With ``config.max_tokens == 0`` the token limiter budget is derived from
    the model's context window.
    """
    unknown = [name for name in config.processors if name not in STAGES]
    if unknown:
        raise ValueError(
            f"Unknown memory processors: {', '.join(unknown)} "
            f"(available: {', '.join(STAGES)})"
        )

    budget = config.max_tokens
    if budget == 0:
        budget = calculate_budget(config, model_name, system_prompt_tokens)

    cache = cache or default_cache
    pipeline = MemoryPipeline(
        [STAGES[name](config, cache, budget) for name in config.processors]
    )
    logger.info("Memory pipeline: %s", " -> ".join(pipeline.names))
    return pipeline
