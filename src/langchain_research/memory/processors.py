"""
Memory processors for research agents.

Each processor takes the conversation as an ordered list of messages and
returns an ordered subsequence of it. Processors share no state except the
content caches, so a pipeline is just a list of them applied in turn.

- TokenLimiterProcessor: keeps messages until the token budget is spent
- DeduplicatorProcessor: drops messages whose content checksum was seen
- Content-classifying filters (hierarchical, personalization, citation,
  multi-perspective, temporal, uncertainty, knowledge graph, belief,
  reliability): keep a message when a keyword/regex heuristic matches

Tool and system messages are always kept by the content-classifying filters
and by the token limiter. Non-list input is returned unchanged.
"""

import logging
import math
from dataclasses import dataclass
from typing import Callable, Optional, Protocol

from . import patterns
from .config import DEFAULT_MAX_TOKENS
from .content import (
    CACHE_KEY_PREFIX_CHARS,
    ContentCache,
    compute_checksum,
    default_cache,
)
from .messages import is_exempt
from .token_budget import estimate_tokens

logger = logging.getLogger(__name__)

PREFERENCE_TERMS = ["research", "AI", "analysis", "data"]
VIEWPOINT_TERMS = ["technical", "ethical", "practical"]
TEMPORAL_TERMS = ["recently", "previously", "before", "after", "timeline", "chronological"]
UNCERTAINTY_TERMS = ["uncertain", "confidence", "probability", "likely", "evidence", "hypothesis"]
GRAPH_TERMS = ["relationship", "connection", "network", "graph", "entity", "link"]
BELIEF_TERMS = ["belief", "hypothesis", "evidence", "update", "probability", "bayesian"]
RELIABILITY_TERMS = ["reliable", "stable", "robust", "fault-tolerant", "recovery"]


@dataclass
class ProcessorOptions:
    """Calling scope passed through the pipeline (unused by most stages)."""

    thread_id: str = "default"
    resource_id: Optional[str] = None


class MessageProcessor(Protocol):
    """Anything with a name and a ``process(messages, opts)`` method."""

    name: str

    def process(
        self, messages: list, opts: Optional[ProcessorOptions] = None
    ) -> list:
        ...


def _filter_messages(
    messages,
    keep: Callable[[object], bool],
    label: str,
):
    """Keep exempt messages plus those for which ``keep`` holds, in order."""
    if not isinstance(messages, (list, tuple)):
        return messages

    result = []
    for msg in messages:
        if is_exempt(msg):
            result.append(msg)
            continue
        if keep(msg):
            logger.debug("Retained %s message", label)
            result.append(msg)
        else:
            logger.debug("Filtered non-%s message", label)
    return result


def _lowered(terms) -> list[str]:
    return [term.lower() for term in terms]


class TokenLimiterProcessor:
    """
    Keep messages while the cumulative token estimate fits ``max_tokens``.

    Once a message would exceed the budget no later message is considered,
    even a smaller one. Tool and system messages bypass the budget and are
    kept wherever they appear.
    """

    name = "token_limiter"

    def __init__(
        self,
        max_tokens: Optional[float] = None,
        cache: Optional[ContentCache] = None,
    ):
        self.max_tokens = DEFAULT_MAX_TOKENS
        if (
            isinstance(max_tokens, (int, float))
            and not isinstance(max_tokens, bool)
            and math.isfinite(max_tokens)
            and max_tokens > 0
        ):
            self.max_tokens = max_tokens
        self.cache = cache or default_cache

    def process(self, messages, opts: Optional[ProcessorOptions] = None):
        if not isinstance(messages, (list, tuple)):
            return messages

        total_tokens = 0
        exhausted = False
        result = []

        for msg in messages:
            if is_exempt(msg):
                result.append(msg)
                continue
            if exhausted:
                continue

            tokens = estimate_tokens(self.cache.content(msg))
            if total_tokens + tokens <= self.max_tokens:
                result.append(msg)
                total_tokens += tokens
            else:
                logger.info(
                    "Token limit reached (%d + %d > %d), stopping retrieval",
                    total_tokens,
                    tokens,
                    self.max_tokens,
                )
                exhausted = True

        return result


class DeduplicatorProcessor:
    """Drop messages whose content checksum was already seen in this call."""

    name = "deduplicator"

    def __init__(self, cache: Optional[ContentCache] = None):
        self.cache = cache or default_cache

    def process(self, messages, opts: Optional[ProcessorOptions] = None):
        if not isinstance(messages, (list, tuple)):
            return messages

        seen: set[str] = set()
        result = []

        for msg in messages:
            checksum = compute_checksum(self.cache.content(msg))
            if checksum in seen:
                logger.warning("Duplicate research content skipped (checksum %s)", checksum)
                continue
            seen.add(checksum)
            result.append(msg)

        return result


class HierarchicalMemoryProcessor:
    """
    Keep long "semantic" messages, drop short "episodic" ones.

    Relevance is min(1, len / 1000), memoized under a key built from the
    first 50 characters and the length, so two messages sharing both share
    a cache entry.
    """

    name = "hierarchical"

    def __init__(self, threshold: float = 0.7, cache: Optional[ContentCache] = None):
        self.threshold = threshold
        self.cache = cache or default_cache

    def relevance(self, msg) -> float:
        content = self.cache.content(msg)
        key = f"{content[:CACHE_KEY_PREFIX_CHARS]}-{len(content)}"
        cached = self.cache.relevance.get(key)
        if cached is not None:
            return cached
        score = min(1.0, len(content) / 1000)
        self.cache.relevance[key] = score
        return score

    def _keep(self, msg) -> bool:
        score = self.relevance(msg)
        logger.debug("Message relevance %.3f (threshold %.3f)", score, self.threshold)
        return score >= self.threshold

    def process(self, messages, opts: Optional[ProcessorOptions] = None):
        return _filter_messages(messages, self._keep, "semantic")


class PersonalizationProcessor:
    """Keep messages that mention a user preference or a person."""

    name = "personalization"

    def __init__(self, preferences=None, cache: Optional[ContentCache] = None):
        self.preferences = _lowered(
            PREFERENCE_TERMS if preferences is None else preferences
        )
        self.cache = cache or default_cache

    def _keep(self, msg) -> bool:
        if patterns.contains_any(self.cache.lowercase(msg), self.preferences):
            return True
        raw = self.cache.content(msg)
        return bool(
            patterns.EMAIL.search(raw)
            or patterns.NAME.search(raw)
            or patterns.TITLE.search(raw)
            or patterns.PROFESSION.search(raw)
        )

    def process(self, messages, opts: Optional[ProcessorOptions] = None):
        return _filter_messages(messages, self._keep, "personalized")


class CitationExtractorProcessor:
    """Keep messages that look like they cite something."""

    name = "citation"

    def __init__(self, cache: Optional[ContentCache] = None):
        self.cache = cache or default_cache

    def _keep(self, msg) -> bool:
        content = self.cache.content(msg)
        return bool(
            patterns.CITATION.search(content)
            or "source" in content
            or "ref" in content
            or patterns.LONG_WORD.search(content)
            or patterns.URL.search(content)
            or patterns.QUOTES.search(content)
        )

    def process(self, messages, opts: Optional[ProcessorOptions] = None):
        return _filter_messages(messages, self._keep, "cited")


class MultiPerspectiveProcessor:
    """
    Keep messages that mention one of the configured viewpoints or contain
    code. Decisions are memoized under (content prefix, viewpoints).
    """

    name = "multi_perspective"

    def __init__(self, viewpoints=None, cache: Optional[ContentCache] = None):
        self.viewpoints = _lowered(
            VIEWPOINT_TERMS if viewpoints is None else viewpoints
        )
        self._key_suffix = ",".join(self.viewpoints)
        self.cache = cache or default_cache

    def _keep(self, msg) -> bool:
        raw = self.cache.content(msg)
        key = f"{raw[:CACHE_KEY_PREFIX_CHARS]}-{self._key_suffix}"
        cached = self.cache.patterns.get(key)
        if cached is not None:
            return cached
        decision = bool(
            patterns.contains_any(self.cache.lowercase(msg), self.viewpoints)
            or patterns.CODE.search(raw)
        )
        self.cache.patterns[key] = decision
        return decision

    def process(self, messages, opts: Optional[ProcessorOptions] = None):
        return _filter_messages(messages, self._keep, "multi-perspective")


class TemporalReasoningProcessor:
    """Keep messages with temporal wording or a date."""

    name = "temporal"

    def __init__(self, terms=None, cache: Optional[ContentCache] = None):
        self.terms = _lowered(TEMPORAL_TERMS if terms is None else terms)
        self.cache = cache or default_cache

    def _keep(self, msg) -> bool:
        return bool(
            patterns.contains_any(self.cache.lowercase(msg), self.terms)
            or patterns.DATE.search(self.cache.content(msg))
        )

    def process(self, messages, opts: Optional[ProcessorOptions] = None):
        return _filter_messages(messages, self._keep, "temporal")


class UncertaintyQuantificationProcessor:
    """
    Keep messages that hedge, quantify, ask, or simply form a sentence.

    In practice only fragments without punctuation, digits or question
    words are dropped.
    """

    name = "uncertainty"

    def __init__(self, terms=None, cache: Optional[ContentCache] = None):
        self.terms = _lowered(UNCERTAINTY_TERMS if terms is None else terms)
        self.cache = cache or default_cache

    def _keep(self, msg) -> bool:
        if patterns.contains_any(self.cache.lowercase(msg), self.terms):
            return True
        raw = self.cache.content(msg)
        return bool(
            patterns.SENTENCE_END.search(raw)
            or patterns.NUMBER.search(raw)
            or patterns.QUESTION.search(raw)
        )

    def process(self, messages, opts: Optional[ProcessorOptions] = None):
        return _filter_messages(messages, self._keep, "uncertainty")


class KnowledgeGraphProcessor:
    """Keep messages about relationships between entities, or with acronyms."""

    name = "knowledge_graph"

    def __init__(self, terms=None, cache: Optional[ContentCache] = None):
        self.terms = _lowered(GRAPH_TERMS if terms is None else terms)
        self.cache = cache or default_cache

    def _keep(self, msg) -> bool:
        return bool(
            patterns.contains_any(self.cache.lowercase(msg), self.terms)
            or patterns.ACRONYM.search(self.cache.content(msg))
        )

    def process(self, messages, opts: Optional[ProcessorOptions] = None):
        return _filter_messages(messages, self._keep, "graph")


class BayesianBeliefProcessor:
    """Keep messages that talk about beliefs, evidence or hypotheses."""

    name = "belief"

    def __init__(self, terms=None, cache: Optional[ContentCache] = None):
        self.terms = _lowered(BELIEF_TERMS if terms is None else terms)
        self.cache = cache or default_cache

    def _keep(self, msg) -> bool:
        return patterns.contains_any(self.cache.lowercase(msg), self.terms)

    def process(self, messages, opts: Optional[ProcessorOptions] = None):
        return _filter_messages(messages, self._keep, "Bayesian")


class ReliabilityProcessor:
    """Keep messages that talk about reliability. Usually breaker-wrapped."""

    name = "reliability"

    def __init__(self, terms=None, cache: Optional[ContentCache] = None):
        self.terms = _lowered(RELIABILITY_TERMS if terms is None else terms)
        self.cache = cache or default_cache

    def _keep(self, msg) -> bool:
        return patterns.contains_any(self.cache.lowercase(msg), self.terms)

    def process(self, messages, opts: Optional[ProcessorOptions] = None):
        return _filter_messages(messages, self._keep, "reliable")
