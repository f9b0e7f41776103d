"""
Tests for the memory processors, the circuit breaker and pipeline assembly.
"""

from typing import Optional, get_type_hints
from unittest.mock import MagicMock

import pytest
from langchain_core.messages import AIMessage, HumanMessage, SystemMessage, ToolMessage

from langchain_research.memory.breaker import BreakerState, CircuitBreakerProcessor
from langchain_research.memory.config import DEFAULT_PROCESSORS, MemoryConfig
from langchain_research.memory.content import ContentCache
from langchain_research.memory.pipeline import MemoryPipeline, build_pipeline
from langchain_research.memory.processors import (
    BayesianBeliefProcessor,
    CitationExtractorProcessor,
    DeduplicatorProcessor,
    HierarchicalMemoryProcessor,
    KnowledgeGraphProcessor,
    MultiPerspectiveProcessor,
    PersonalizationProcessor,
    ProcessorOptions,
    ReliabilityProcessor,
    TemporalReasoningProcessor,
    TokenLimiterProcessor,
    UncertaintyQuantificationProcessor,
)
from langchain_research.memory.token_budget import estimate_message_tokens

CLASSIFYING_STAGES = [
    HierarchicalMemoryProcessor,
    PersonalizationProcessor,
    CitationExtractorProcessor,
    MultiPerspectiveProcessor,
    TemporalReasoningProcessor,
    UncertaintyQuantificationProcessor,
    KnowledgeGraphProcessor,
    BayesianBeliefProcessor,
    ReliabilityProcessor,
]


def _user(text):
    return {"role": "user", "content": text}


def _is_ordered_subsequence(result, original) -> bool:
    it = iter(original)
    return all(any(r is o for o in it) for r in result)


def _mixed_messages():
    return [
        SystemMessage(content="rules"),
        HumanMessage(content="What is the robust evidence, recently?"),
        AIMessage(content="ok"),
        ToolMessage(content="{}", tool_call_id="call-1"),
        HumanMessage(content="A technical relationship between NASA and [1]."),
        AIMessage(content="x" * 800),
        {"role": "data", "content": "hello there"},
    ]


# ── Shared Contract Tests ──


class TestStageContract:
    @pytest.mark.parametrize("stage_cls", CLASSIFYING_STAGES)
    def test_exempt_roles_always_kept(self, stage_cls, cache):
        stage = stage_cls(cache=cache)
        system = SystemMessage(content="")
        tool = ToolMessage(content="", tool_call_id="call-1")
        assert stage.process([system, tool], ProcessorOptions()) == [system, tool]

    @pytest.mark.parametrize(
        "stage_cls",
        CLASSIFYING_STAGES + [TokenLimiterProcessor, DeduplicatorProcessor],
    )
    def test_order_preserved(self, stage_cls, cache):
        messages = _mixed_messages()
        result = stage_cls(cache=cache).process(messages, ProcessorOptions())
        assert _is_ordered_subsequence(result, messages)

    @pytest.mark.parametrize(
        "stage_cls",
        CLASSIFYING_STAGES + [TokenLimiterProcessor, DeduplicatorProcessor],
    )
    def test_empty_and_non_list_input(self, stage_cls, cache):
        stage = stage_cls(cache=cache)
        assert stage.process([]) == []
        assert stage.process(None) is None
        assert stage.process("not a list") == "not a list"

    @pytest.mark.parametrize(
        "stage_cls",
        CLASSIFYING_STAGES + [TokenLimiterProcessor, DeduplicatorProcessor],
    )
    def test_stage_is_documented(self, stage_cls):
        assert stage_cls.__doc__ and stage_cls.__doc__.strip()


# ── Token Limiter Tests ──


class TestTokenLimiter:
    def test_budget_example(self, cache):
        first = _user("a" * 24)  # 6 tokens
        second = _user("b" * 24)  # 6 tokens
        system = SystemMessage(content="s" * 400)
        limiter = TokenLimiterProcessor(max_tokens=10, cache=cache)
        assert limiter.process([first, second, system]) == [first, system]

    def test_stops_at_first_overflow(self, cache):
        big = _user("a" * 40)  # 10 tokens
        small = _user("b" * 4)  # 1 token, would fit but comes after the stop
        first = _user("c" * 24)  # 6 tokens
        limiter = TokenLimiterProcessor(max_tokens=10, cache=cache)
        assert limiter.process([first, big, small]) == [first]

    def test_exempt_messages_bypass_budget(self, cache):
        tool = ToolMessage(content="x" * 4000, tool_call_id="call-1")
        msg = _user("a" * 40)  # 10 tokens
        limiter = TokenLimiterProcessor(max_tokens=10, cache=cache)
        assert limiter.process([tool, msg]) == [tool, msg]

    def test_running_total_never_exceeds_budget(self, cache):
        messages = [_user("z" * n) for n in (12, 8, 20, 4, 40, 4)]
        limiter = TokenLimiterProcessor(max_tokens=12, cache=cache)
        result = limiter.process(messages)
        total = sum(len(m["content"]) // 4 for m in result)
        # 3 + 2 + 5 + 1 tokens, then the 10-token message stops the walk
        assert total == 11
        assert result == messages[:4]

    def test_invalid_budget_uses_default(self):
        for value in (0, -5, float("nan"), float("inf"), None, "10", True):
            assert TokenLimiterProcessor(max_tokens=value).max_tokens == 1_000_000

    def test_annotations(self):
        hints = get_type_hints(TokenLimiterProcessor.__init__)
        assert hints["max_tokens"] == Optional[float]
        assert hints["cache"] == Optional[ContentCache]
        assert get_type_hints(estimate_message_tokens)["cache"] == Optional[ContentCache]


# ── Deduplicator Tests ──


class TestDeduplicator:
    def test_first_occurrence_wins(self, cache):
        first = _user("same text")
        dup = _user("same text")
        other = _user("other text")
        result = DeduplicatorProcessor(cache=cache).process([first, dup, other])
        assert result == [first, other]
        assert result[0] is first

    def test_checksum_collision_drops_distinct_content(self, cache):
        # "Aa" and "BB" share a checksum; the second is dropped as a duplicate
        first = _user("Aa")
        colliding = _user("BB")
        assert DeduplicatorProcessor(cache=cache).process([first, colliding]) == [first]

    def test_applies_to_all_roles(self, cache):
        a = SystemMessage(content="rules")
        b = SystemMessage(content="rules")
        assert DeduplicatorProcessor(cache=cache).process([a, b]) == [a]

    def test_dedup_then_citation_example(self, cache):
        messages = [
            _user("Check https://example.com for details"),
            _user("Check https://example.com for details"),
            {"role": "tool", "content": "{}"},
        ]
        pipeline = MemoryPipeline([
            DeduplicatorProcessor(cache=cache),
            CitationExtractorProcessor(cache=cache),
        ])
        result = pipeline.process(messages)
        assert len(result) == 2
        assert result[0] is messages[0]
        assert result[1] is messages[2]


# ── Content-Classifying Filter Tests ──


class TestFilters:
    def _kept(self, stage, texts):
        messages = [_user(t) for t in texts]
        return [m["content"] for m in stage.process(messages)]

    def test_hierarchical(self, cache):
        stage = HierarchicalMemoryProcessor(threshold=0.7, cache=cache)
        assert self._kept(stage, ["x" * 700, "x" * 100]) == ["x" * 700]

    def test_hierarchical_relevance_cached_by_prefix_and_length(self, cache):
        stage = HierarchicalMemoryProcessor(cache=cache)
        assert stage.relevance(_user("y" * 500)) == 0.5
        assert cache.relevance == {f"{'y' * 50}-500": 0.5}
        stage.relevance(_user("y" * 500))
        assert len(cache.relevance) == 1

    def test_personalization(self, cache):
        stage = PersonalizationProcessor(cache=cache)
        kept = self._kept(stage, [
            "ok sure thing",
            "tell me about ai",
            "Alice asked again",
            "ping bob@example.com",
            "talk to the prof",
        ])
        assert kept == [
            "tell me about ai",
            "Alice asked again",
            "ping bob@example.com",
            "talk to the prof",
        ]

    def test_personalization_preferences_case_insensitive(self, cache):
        stage = PersonalizationProcessor(preferences=["Python"], cache=cache)
        assert self._kept(stage, ["i like python", "ok then"]) == ["i like python"]

    def test_citation(self, cache):
        stage = CitationExtractorProcessor(cache=cache)
        kept = self._kept(stage, ["ok yes", "see [1]", "it's", "a ref", "longer"])
        assert kept == ["see [1]", "it's", "a ref", "longer"]

    def test_multi_perspective(self, cache):
        stage = MultiPerspectiveProcessor(cache=cache)
        kept = self._kept(stage, ["a technical note", "use `pip`", "hello world"])
        assert kept == ["a technical note", "use `pip`"]

    def test_multi_perspective_decision_cached_by_prefix(self, cache):
        stage = MultiPerspectiveProcessor(cache=cache)
        prefix = "p" * 50
        assert stage.process([_user(prefix + " nothing")]) == []
        # Same 50-character prefix reuses the cached decision
        assert stage.process([_user(prefix + " technical")]) == []
        assert len(cache.patterns) == 1

    def test_temporal(self, cache):
        stage = TemporalReasoningProcessor(cache=cache)
        kept = self._kept(stage, ["we met recently", "due 2024-05-01", "on 5/1/24", "hello world"])
        assert kept == ["we met recently", "due 2024-05-01", "on 5/1/24"]

    def test_uncertainty(self, cache):
        stage = UncertaintyQuantificationProcessor(cache=cache)
        kept = self._kept(
            stage,
            ["hello world", "hello world.", "call 42", "what now", "likely so"],
        )
        assert kept == ["hello world.", "call 42", "what now", "likely so"]

    def test_knowledge_graph(self, cache):
        stage = KnowledgeGraphProcessor(cache=cache)
        kept = self._kept(stage, ["the NASA mission", "a link here", "hello world"])
        assert kept == ["the NASA mission", "a link here"]

    def test_belief(self, cache):
        stage = BayesianBeliefProcessor(cache=cache)
        kept = self._kept(stage, ["update the belief", "hello world", "New Evidence"])
        assert kept == ["update the belief", "New Evidence"]

    def test_reliability(self, cache):
        stage = ReliabilityProcessor(cache=cache)
        kept = self._kept(stage, ["a robust system", "hello world", "Fault-Tolerant"])
        assert kept == ["a robust system", "Fault-Tolerant"]

    def test_list_content_is_classified(self, cache):
        msg = AIMessage(content=[{"type": "text", "text": "stable release"}])
        assert ReliabilityProcessor(cache=cache).process([msg]) == [msg]


# ── Circuit Breaker Tests ──


class FakeClock:
    def __init__(self):
        self.now = 0.0

    def __call__(self):
        return self.now


def _failing_inner():
    inner = MagicMock()
    inner.name = "failing"
    inner.process.side_effect = RuntimeError("boom")
    return inner


class TestCircuitBreaker:
    def test_default_wraps_reliability_filter(self, cache):
        breaker = CircuitBreakerProcessor()
        assert isinstance(breaker.inner, ReliabilityProcessor)
        assert breaker.failure_threshold == 3
        assert breaker.recovery_timeout_ms == 30_000

    def test_success_passes_inner_result(self):
        inner = MagicMock()
        inner.name = "inner"
        inner.process.return_value = ["filtered"]
        breaker = CircuitBreakerProcessor(inner)
        opts = ProcessorOptions(thread_id="t1")
        assert breaker.process(["a", "b"], opts) == ["filtered"]
        inner.process.assert_called_once_with(["a", "b"], opts)

    def test_failure_returns_input_unchanged(self):
        breaker = CircuitBreakerProcessor(_failing_inner(), clock=FakeClock())
        messages = [_user("hi")]
        assert breaker.process(messages) is messages
        assert breaker.failure_count == 1
        assert breaker.state is BreakerState.CLOSED

    def test_success_resets_failure_count(self):
        inner = _failing_inner()
        breaker = CircuitBreakerProcessor(inner, clock=FakeClock())
        breaker.process([_user("hi")])
        breaker.process([_user("hi")])
        assert breaker.failure_count == 2
        inner.process.side_effect = None
        inner.process.return_value = []
        assert breaker.process([_user("hi")]) == []
        assert breaker.failure_count == 0

    def test_opens_after_threshold_and_recovers(self):
        clock = FakeClock()
        inner = _failing_inner()
        breaker = CircuitBreakerProcessor(inner, failure_threshold=3, clock=clock)
        messages = [_user("hi")]

        for _ in range(3):
            assert breaker.process(messages) is messages
        assert breaker.is_open
        assert breaker.failure_count == 3

        # Before the recovery timeout the inner processor is skipped
        clock.now = 10.0
        assert breaker.process(messages) is messages
        assert inner.process.call_count == 3

        # Exactly at the timeout the breaker is still open
        clock.now = 30.0
        assert breaker.process(messages) is messages
        assert inner.process.call_count == 3

        clock.now = 30.001
        inner.process.side_effect = None
        inner.process.return_value = ["kept"]
        assert breaker.process(messages) == ["kept"]
        assert breaker.state is BreakerState.CLOSED
        assert breaker.failure_count == 0

    def test_failure_after_recovery_counts_from_zero(self):
        clock = FakeClock()
        breaker = CircuitBreakerProcessor(_failing_inner(), failure_threshold=2, clock=clock)
        breaker.process([])
        breaker.process([])
        assert breaker.is_open
        clock.now = 31.0
        breaker.process([])
        assert breaker.failure_count == 1
        assert not breaker.is_open

    def test_get_state_and_reset(self):
        clock = FakeClock()
        breaker = CircuitBreakerProcessor(_failing_inner(), failure_threshold=1, clock=clock)
        breaker.process([])
        state = breaker.get_state()
        assert state["state"] == "open"
        assert state["failure_count"] == 1
        assert state["can_retry"] is False
        clock.now = 31.0
        assert breaker.get_state()["can_retry"] is True

        breaker.reset()
        assert breaker.get_state() == {
            "name": "circuit_breaker(failing)",
            "state": "closed",
            "failure_count": 0,
            "last_failure_time": None,
            "can_retry": True,
        }

    def test_non_list_input(self):
        inner = _failing_inner()
        breaker = CircuitBreakerProcessor(inner)
        assert breaker.process(None) is None
        inner.process.assert_not_called()


# ── Pipeline Tests ──


class TestPipeline:
    def test_default_order(self, cache):
        pipeline = build_pipeline(MemoryConfig(), cache=cache)
        names = pipeline.names
        assert len(names) == len(DEFAULT_PROCESSORS)
        assert names[0] == "personalization"
        assert names[2] == "circuit_breaker(reliability)"
        assert names[-1] == "multi_perspective"

    def test_config_is_applied(self, cache):
        config = MemoryConfig(
            processors=["hierarchical", "reliability", "token_limiter"],
            hierarchical_threshold=0.2,
            failure_threshold=7,
            max_tokens=50,
        )
        hierarchical, breaker, limiter = build_pipeline(config, cache=cache).processors
        assert hierarchical.threshold == 0.2
        assert breaker.failure_threshold == 7
        assert limiter.max_tokens == 50
        assert hierarchical.cache is cache

    def test_negative_max_tokens_falls_back_to_limiter_default(self, cache):
        config = MemoryConfig(
            max_tokens=-5, context_window=1000, processors=["token_limiter"]
        )
        (limiter,) = build_pipeline(config, cache=cache).processors
        assert limiter.max_tokens == 1_000_000

    def test_zero_max_tokens_derives_budget_from_context_window(self, cache):
        config = MemoryConfig(
            max_tokens=0, context_window=1000, processors=["token_limiter"]
        )
        (limiter,) = build_pipeline(config, cache=cache).processors
        # 1000 * 0.9 - min(1000 * 0.2, 16000)
        assert limiter.max_tokens == 700

    def test_unknown_processor(self):
        with pytest.raises(ValueError, match="Unknown memory processors: nope"):
            build_pipeline(MemoryConfig(processors=["deduplicator", "nope"]))

    def test_output_of_each_stage_feeds_the_next(self):
        first = MagicMock()
        first.name = "first"
        first.process.return_value = ["a"]
        second = MagicMock()
        second.name = "second"
        second.process.return_value = []
        pipeline = MemoryPipeline([first, second])
        opts = ProcessorOptions(thread_id="t1")
        assert pipeline.process(["a", "b"], opts) == []
        second.process.assert_called_once_with(["a"], opts)

    def test_non_list_input(self):
        assert MemoryPipeline([]).process(None) is None
