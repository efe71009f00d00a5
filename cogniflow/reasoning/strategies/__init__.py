"""Reasoning strategies.

All strategies share ``ReasoningStrategy.reason()`` and additionally expose
their own richer entry point (``explore``, ``search``, ``vote``, ``reflect``,
``verify``).
"""

from __future__ import annotations

from cogniflow.reasoning.strategies.base import ReasoningResult, ReasoningStrategy
from cogniflow.reasoning.strategies.beam_search import BeamSearch
from cogniflow.reasoning.strategies.reflexion import (
    QuickCheckResult,
    Reflexion,
    ReflexionAttempt,
    ReflexionResult,
)
from cogniflow.reasoning.strategies.self_consistency import SelfConsistency
from cogniflow.reasoning.strategies.thoughts import ReasoningNode, ThoughtExpander
from cogniflow.reasoning.strategies.tree_of_thought import (
    ExplorationResult,
    ExplorationStats,
    TreeOfThought,
)
from cogniflow.reasoning.strategies.verification import (
    ChainOfVerification,
    ClaimCheck,
    VerificationResult,
)

__all__ = [
    "BeamSearch",
    "ChainOfVerification",
    "ClaimCheck",
    "ExplorationResult",
    "ExplorationStats",
    "QuickCheckResult",
    "ReasoningNode",
    "ReasoningResult",
    "ReasoningStrategy",
    "Reflexion",
    "ReflexionAttempt",
    "ReflexionResult",
    "SelfConsistency",
    "ThoughtExpander",
    "TreeOfThought",
    "VerificationResult",
]
