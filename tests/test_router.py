"""Tests for task routing.

Tests cover:
- Tier mapping over half-open intervals (0.3 is standard, not simple)
- Oracle classification and complexity with keyword/heuristic fallbacks
- Roster only for complex and multi-agent tiers; hierarchical process threshold
- Forced and quick routing stay out of the history
- Bounded history, stats, batch routing and decomposition
"""

from __future__ import annotations

import json

import pytest

from cogniflow.config import Settings
from cogniflow.oracle.client import OracleResponse
from cogniflow.routing.complexity import ComplexityAssessment, HeuristicComplexity
from cogniflow.routing.intent import TaskCategory, classify_by_keywords
from cogniflow.routing.router import HandlingTier, TaskRouter
from tests.conftest import make_oracle


def _routing_oracle(category: str = "research", factor: float = 0.3, confidence: float = 0.9):
    """Oracle answering classification and complexity prompts."""

    def respond(prompt, system=None, **kwargs):
        if prompt.startswith("Classify this task"):
            return json.dumps({"category": category, "confidence": confidence, "keywords": []})
        if prompt.startswith("Assess the complexity"):
            factors = dict.fromkeys(("steps", "domains", "ambiguity", "iteration", "dependencies"), factor)
            return json.dumps({"factors": factors, "reasoning": "scripted"})
        raise AssertionError(f"unexpected prompt: {prompt[:40]}")

    return make_oracle(respond)


# ------------------------------------------------------------------ #
# Tier mapping
# ------------------------------------------------------------------ #


class TestTierFor:
    @pytest.mark.parametrize(
        ("score", "tier"),
        [
            (0.0, HandlingTier.SIMPLE),
            (0.29, HandlingTier.SIMPLE),
            (0.3, HandlingTier.STANDARD),
            (0.59, HandlingTier.STANDARD),
            (0.6, HandlingTier.COMPLEX),
            (0.79, HandlingTier.COMPLEX),
            (0.8, HandlingTier.MULTI_AGENT),
            (1.0, HandlingTier.MULTI_AGENT),
        ],
    )
    def test_half_open_intervals(self, settings: Settings, score, tier):
        assert TaskRouter(None, settings).tier_for(score) is tier


# ------------------------------------------------------------------ #
# route()
# ------------------------------------------------------------------ #


class TestRoute:
    @pytest.mark.asyncio
    async def test_boundary_complexity_is_standard(self, settings: Settings):
        router = TaskRouter(_routing_oracle(factor=0.3), settings)
        decision = await router.route("Summarize the meeting notes")

        assert decision.complexity.score == 0.3
        assert decision.tier is HandlingTier.STANDARD
        assert decision.roster is None
        assert decision.process == "sequential"
        assert decision.intent.method == "oracle"
        assert decision.complexity.method == "oracle"

    @pytest.mark.asyncio
    async def test_multi_agent_gets_category_roster_and_hierarchy(self, settings: Settings):
        router = TaskRouter(_routing_oracle(category="code", factor=0.9), settings)
        decision = await router.route("Build a distributed cache with replication")

        assert decision.tier is HandlingTier.MULTI_AGENT
        assert decision.intent.category is TaskCategory.CODE
        assert decision.roster == ["architect", "coder", "reviewer"]
        assert decision.process == "hierarchical"

    @pytest.mark.asyncio
    async def test_complex_general_gets_default_roster(self, settings: Settings):
        router = TaskRouter(_routing_oracle(category="general", factor=0.7), settings)
        decision = await router.route("Something involved")

        assert decision.tier is HandlingTier.COMPLEX
        assert decision.roster == ["researcher", "analyst", "writer"]
        assert decision.process == "sequential"

    @pytest.mark.asyncio
    async def test_confidence_formula(self, settings: Settings):
        router = TaskRouter(_routing_oracle(factor=0.9, confidence=0.95), settings)
        decision = await router.route("task")
        assert decision.confidence == pytest.approx(round(1 - abs(0.9 - 0.5), 4))

    @pytest.mark.asyncio
    async def test_unknown_category_becomes_general(self, settings: Settings):
        router = TaskRouter(_routing_oracle(category="astrology"), settings)
        decision = await router.route("Read my horoscope")
        assert decision.intent.category is TaskCategory.GENERAL

    @pytest.mark.asyncio
    async def test_no_oracle_uses_keywords_and_heuristic(self, settings: Settings):
        router = TaskRouter(None, settings)
        decision = await router.route("What is 2+2?")

        assert decision.intent.method in ("keyword", "default")
        assert decision.complexity.method == "heuristic"
        assert decision.tier is HandlingTier.SIMPLE
        assert 0.0 <= decision.complexity.score <= 1.0

    @pytest.mark.asyncio
    async def test_oracle_failure_falls_back(self, settings: Settings):
        oracle = make_oracle(OracleResponse.failure("claude", "503"))
        decision = await TaskRouter(oracle, settings).route("Debug this function error")

        assert decision.intent.method == "keyword"
        assert decision.intent.category is TaskCategory.CODE
        assert decision.complexity.method == "heuristic"

    @pytest.mark.asyncio
    async def test_oracle_exception_falls_back(self, settings: Settings):
        oracle = make_oracle(RuntimeError("socket closed"))
        decision = await TaskRouter(oracle, settings).route("hello")
        assert decision.intent.method != "oracle"
        assert decision.complexity.method == "heuristic"

    @pytest.mark.asyncio
    async def test_unparseable_reply_falls_back(self, settings: Settings):
        oracle = make_oracle("I think it's pretty hard")
        decision = await TaskRouter(oracle, settings).route("hello")
        assert decision.intent.method != "oracle"
        assert decision.complexity.method == "heuristic"

    @pytest.mark.asyncio
    async def test_recorded_in_history(self, settings: Settings):
        router = TaskRouter(None, settings)
        await router.route("one")
        await router.route("two")
        assert [d.task for d in router.history()] == ["one", "two"]

    @pytest.mark.asyncio
    async def test_history_bounded(self, settings: Settings):
        router = TaskRouter(None, settings)
        for i in range(settings.routing_history_size + 2):
            await router.route(f"task {i}")
        history = router.history(limit=100)
        assert len(history) == settings.routing_history_size
        assert history[0].task == "task 2"


class TestForcedAndQuick:
    @pytest.mark.asyncio
    async def test_force_tier(self, settings: Settings):
        oracle = _routing_oracle()
        router = TaskRouter(oracle, settings)
        decision = await router.route("hello", force_tier="complex")

        assert decision.tier is HandlingTier.COMPLEX
        assert decision.forced is True
        assert decision.confidence == 1.0
        assert decision.roster is not None
        assert router.history() == []
        oracle.invoke.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_force_unknown_tier(self, settings: Settings):
        with pytest.raises(ValueError):
            await TaskRouter(None, settings).route("hello", force_tier="galactic")

    def test_quick_route(self, settings: Settings):
        router = TaskRouter(_routing_oracle(), settings)
        decision = router.quick_route("What is Python?")
        assert decision.quick is True
        assert decision.complexity.method == "heuristic"
        assert router.history() == []


class TestBatchAndStats:
    @pytest.mark.asyncio
    async def test_route_batch(self, settings: Settings):
        router = TaskRouter(_routing_oracle(factor=0.9), settings)
        batch = await router.route_batch(["a", "b", "c"])
        assert batch.total == 3
        assert batch.tier_breakdown == {"multi_agent": 3}

    @pytest.mark.asyncio
    async def test_route_batch_sequential(self, settings: Settings):
        router = TaskRouter(None, settings)
        batch = await router.route_batch(["x", "y"], parallel=False)
        assert [d.task for d in batch.decisions] == ["x", "y"]

    @pytest.mark.asyncio
    async def test_stats(self, settings: Settings):
        router = TaskRouter(_routing_oracle(category="math", factor=0.3), settings)
        assert router.stats() == {"total_decisions": 0}
        await router.route("a")
        await router.route("b")

        stats = router.stats()
        assert stats["total_decisions"] == 2
        assert stats["tier_breakdown"] == {"standard": 2}
        assert stats["most_common_intent"] == "math"
        assert stats["average_complexity"] == 0.3

        router.clear_history()
        assert router.stats()["total_decisions"] == 0


class TestDecompose:
    @pytest.mark.asyncio
    async def test_requires_oracle(self, settings: Settings):
        result = await TaskRouter(None, settings).decompose("big task")
        assert result.error is not None
        assert result.subtasks == []

    @pytest.mark.asyncio
    async def test_subtasks_quick_routed(self, settings: Settings):
        reply = {
            "subtasks": [
                {"id": 1, "description": "Research caching strategies", "dependencies": []},
                {"id": 2, "description": "Implement the cache", "dependencies": [1]},
            ],
            "criticalPath": [1, 2],
            "totalEstimatedSteps": 5,
        }
        router = TaskRouter(make_oracle(json.dumps(reply)), settings)
        result = await router.decompose("Add caching")

        assert result.error is None
        assert [s.id for s in result.subtasks] == [1, 2]
        assert result.subtasks[1].dependencies == [1]
        assert all(s.routing.quick for s in result.subtasks)
        assert result.critical_path == ["1", "2"]
        assert result.total_estimated_steps == 5
        assert router.history() == []

    @pytest.mark.asyncio
    async def test_unparseable_reply_gives_single_subtask(self, settings: Settings):
        router = TaskRouter(make_oracle("Sorry, I can't do that."), settings)
        result = await router.decompose("Add caching")
        assert len(result.subtasks) == 1
        assert result.subtasks[0].description == "Add caching"

    @pytest.mark.asyncio
    async def test_oracle_failure(self, settings: Settings):
        router = TaskRouter(make_oracle(OracleResponse.failure("claude", "down")), settings)
        result = await router.decompose("Add caching")
        assert result.error == "down"


# ------------------------------------------------------------------ #
# Heuristics
# ------------------------------------------------------------------ #


class TestHeuristics:
    def test_simple_question(self):
        assessment = HeuristicComplexity().assess("What is 2+2?")
        assert assessment.score < 0.3
        assert assessment.method == "heuristic"
        assert set(assessment.factors) == {"steps", "domains", "ambiguity", "iteration", "dependencies"}

    def test_long_multi_part_task_scores_higher(self):
        simple = HeuristicComplexity().assess("What is 2+2?")
        long_task = "Research and analyze, then design and implement a system. " * 12
        assert HeuristicComplexity().assess(long_task).score > simple.score

    def test_estimated_steps(self):
        assessment = HeuristicComplexity().assess("Analyze and compare vendors")
        assert assessment.estimated_steps >= 1

    def test_score_validated(self):
        with pytest.raises(ValueError):
            ComplexityAssessment(score=1.5)

    def test_keyword_classification(self):
        result = classify_by_keywords("Fix this bug in my function")
        assert result.category is TaskCategory.CODE
        assert result.keywords == ["function", "bug"]
        assert result.confidence == pytest.approx(0.7)

    def test_keyword_default(self):
        result = classify_by_keywords("Good morning to the whole wide world out there")
        assert result.category is TaskCategory.GENERAL
        assert result.confidence == 0.5
