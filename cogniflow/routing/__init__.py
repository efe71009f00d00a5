"""Task routing: intent classification, complexity assessment and tier selection."""

from __future__ import annotations

from cogniflow.routing.complexity import ComplexityAssessment, ComplexityAssessor, HeuristicComplexity
from cogniflow.routing.intent import IntentClassification, IntentClassifier, TaskCategory
from cogniflow.routing.router import (
    BatchRouting,
    HandlingTier,
    RoutingDecision,
    TaskDecomposition,
    TaskRouter,
)

__all__ = [
    "BatchRouting",
    "ComplexityAssessment",
    "ComplexityAssessor",
    "HandlingTier",
    "HeuristicComplexity",
    "IntentClassification",
    "IntentClassifier",
    "RoutingDecision",
    "TaskCategory",
    "TaskDecomposition",
    "TaskRouter",
]
