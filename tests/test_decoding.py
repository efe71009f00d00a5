"""Tests for structured oracle output decoding.

Tests cover:
- JSON extraction from bare text, markdown fences and surrounding chatter
- Per-field defaults for missing or malformed values
- Percentage confidence rescaling and clamping
- camelCase / snake_case keys
- Claims, final answers, completion markers, REASONING/ANSWER sections
"""

from __future__ import annotations

import pytest

from cogniflow.core.errors import ParseFailureError
from cogniflow.oracle.decoding import (
    ClaimVerdict,
    ComplexityPayload,
    CritiquePayload,
    DecompositionPayload,
    IntentPayload,
    QuickCheckPayload,
    ThoughtEvaluation,
    decode,
    decode_claims,
    decode_or_default,
    decode_strict,
    extract_final_answer,
    extract_json,
    is_complete_thought,
    parse_reasoned_answer,
    strip_complete_marker,
)

# ------------------------------------------------------------------ #
# extract_json
# ------------------------------------------------------------------ #


class TestExtractJson:
    def test_bare_object(self):
        assert extract_json('{"a": 1}') == {"a": 1}

    def test_bare_array(self):
        assert extract_json('["x", "y"]') == ["x", "y"]

    def test_fenced_block(self):
        text = 'Here you go:\n```json\n{"category": "research"}\n```\nHope that helps.'
        assert extract_json(text) == {"category": "research"}

    def test_unlabelled_fence(self):
        assert extract_json('```\n{"ok": true}\n```') == {"ok": True}

    def test_object_inside_chatter(self):
        text = 'Sure! The scores are {"progress": 7, "clarity": 8} as requested.'
        assert extract_json(text) == {"progress": 7, "clarity": 8}

    def test_skips_unbalanced_brace_before_valid_object(self):
        text = 'Note {not json here. Result: {"verified": false}'
        assert extract_json(text) == {"verified": False}

    @pytest.mark.parametrize("text", [None, "", "   ", "no json at all", "{broken", "42", '"str"'])
    def test_returns_none_without_object_or_array(self, text):
        assert extract_json(text) is None


# ------------------------------------------------------------------ #
# decode / decode_or_default
# ------------------------------------------------------------------ #


class TestDecode:
    def test_none_when_no_object(self):
        assert decode("I cannot answer that", IntentPayload) is None

    def test_none_for_top_level_array(self):
        assert decode('["a"]', IntentPayload) is None

    def test_decode_or_default_gives_defaults(self):
        payload = decode_or_default("garbage", IntentPayload)
        assert payload.category == "general"
        assert payload.confidence == 0.5
        assert payload.keywords == []

    def test_decode_strict_raises(self):
        with pytest.raises(ParseFailureError, match="No IntentPayload object"):
            decode_strict("plain prose", IntentPayload)

    def test_decode_strict_success(self):
        assert decode_strict('{"category": "math"}', IntentPayload).category == "math"

    def test_extra_fields_ignored(self):
        payload = decode('{"category": "coding", "unexpected": [1, 2]}', IntentPayload)
        assert payload is not None
        assert payload.category == "coding"


class TestIntentPayload:
    def test_valid(self):
        payload = decode(
            '{"category": "analysis", "confidence": 0.92, "keywords": ["compare", "data"]}',
            IntentPayload,
        )
        assert payload.category == "analysis"
        assert payload.confidence == pytest.approx(0.92)
        assert payload.keywords == ["compare", "data"]

    def test_percentage_confidence_rescaled(self):
        payload = decode('{"confidence": 85}', IntentPayload)
        assert payload.confidence == pytest.approx(0.85)

    def test_confidence_clamped(self):
        assert decode('{"confidence": 250}', IntentPayload).confidence == 1.0
        assert decode('{"confidence": -0.3}', IntentPayload).confidence == 0.0

    def test_numeric_string_confidence(self):
        assert decode('{"confidence": "0.7"}', IntentPayload).confidence == pytest.approx(0.7)

    def test_malformed_confidence_defaults(self):
        payload = decode('{"category": "coding", "confidence": "very high"}', IntentPayload)
        assert payload.category == "coding"
        assert payload.confidence == 0.5

    def test_keywords_string_coerced_to_list(self):
        assert decode('{"keywords": "python"}', IntentPayload).keywords == ["python"]

    def test_keywords_drop_empty_items(self):
        payload = decode('{"keywords": ["a", "", null, "  b "]}', IntentPayload)
        assert payload.keywords == ["a", "b"]


class TestComplexityPayload:
    def test_score_is_factor_average(self):
        payload = decode(
            '{"score": 0.99, "factors": {"steps": 0.8, "domains": 0.6, "ambiguity": 0.4, '
            '"iteration": 0.2, "dependencies": 0.5}, "reasoning": "multi-step"}',
            ComplexityPayload,
        )
        assert payload.score == 0.5
        assert payload.reasoning == "multi-step"

    def test_missing_factors_use_defaults(self):
        payload = decode('{"factors": {"steps": 0.9}}', ComplexityPayload)
        assert payload.factors.steps == pytest.approx(0.9)
        assert payload.factors.domains == 0.3
        assert payload.factors.iteration == 0.2
        assert payload.score == round((0.9 + 0.3 + 0.3 + 0.2 + 0.2) / 5, 2)

    def test_malformed_factors_object_defaults(self):
        payload = decode('{"factors": "lots"}', ComplexityPayload)
        assert payload.score == round((0.3 + 0.3 + 0.3 + 0.2 + 0.2) / 5, 2)

    def test_one_bad_factor_keeps_the_others(self):
        payload = decode('{"factors": {"steps": "many", "domains": 0.7}}', ComplexityPayload)
        assert payload.factors.steps == 0.3
        assert payload.factors.domains == pytest.approx(0.7)


class TestThoughtEvaluation:
    def test_score_normalized_from_ten_point(self):
        payload = decode(
            '{"progress": 8, "correctness": 9, "completeness": 6, "clarity": 7}',
            ThoughtEvaluation,
        )
        assert payload.score == pytest.approx(0.75)

    def test_missing_subscores_count_as_five(self):
        assert decode('{"progress": 10}', ThoughtEvaluation).score == pytest.approx(0.625)

    def test_subscores_clamped(self):
        payload = decode(
            '{"progress": 15, "correctness": -2, "completeness": 10, "clarity": 10}',
            ThoughtEvaluation,
        )
        assert payload.progress == 10.0
        assert payload.correctness == 0.0
        assert payload.score == pytest.approx(0.75)

    def test_non_numeric_subscore_defaults(self):
        payload = decode('{"progress": "great", "correctness": 5, "completeness": 5, "clarity": 5}', ThoughtEvaluation)
        assert payload.score == pytest.approx(0.5)


class TestCritiquePayload:
    def test_camel_case_keys(self):
        payload = decode(
            '{"confidence": 0.6, "isCorrect": false, "isComplete": true, '
            '"issues": ["missing edge case"], "feedback": "handle empty input", '
            '"strengths": ["clear"], "suggestions": ["add tests"]}',
            CritiquePayload,
        )
        assert payload.is_correct is False
        assert payload.is_complete is True
        assert payload.issues == ["missing edge case"]
        assert payload.feedback == "handle empty input"
        assert payload.suggestions == ["add tests"]

    def test_snake_case_keys(self):
        payload = decode('{"is_correct": false}', CritiquePayload)
        assert payload.is_correct is False

    def test_defaults(self):
        payload = decode("{}", CritiquePayload)
        assert payload.confidence == 0.5
        assert payload.is_correct is True
        assert payload.issues == []
        assert payload.feedback == ""

    def test_issue_objects_flattened(self):
        payload = decode('{"issues": [{"issue": "off by one"}, {"severity": "low"}]}', CritiquePayload)
        assert payload.issues[0] == "off by one"
        assert "severity" in payload.issues[1]


class TestQuickCheckPayload:
    def test_quick_fix_alias(self):
        payload = decode(
            '{"approved": false, "confidence": 0.4, "issues": ["too short"], "quickFix": "expand"}',
            QuickCheckPayload,
        )
        assert payload.approved is False
        assert payload.quick_fix == "expand"

    def test_fails_open(self):
        payload = decode('{"approved": "perhaps"}', QuickCheckPayload)
        assert payload.approved is True


class TestClaimVerdict:
    def test_rejected_claim(self):
        payload = decode(
            '{"verified": false, "confidence": 0.9, "reason": "wrong year", "correction": "1969"}',
            ClaimVerdict,
        )
        assert payload.verified is False
        assert payload.correction == "1969"

    def test_defaults_to_verified(self):
        payload = decode('{"reason": "unsure"}', ClaimVerdict)
        assert payload.verified is True
        assert payload.confidence == 0.5


class TestDecompositionPayload:
    def test_subtasks(self):
        payload = decode(
            '{"subtasks": [{"id": 1, "description": "collect data", "dependencies": [], '
            '"estimatedComplexity": 0.3, "suggestedHandler": "researcher"}, '
            '{"id": 2, "description": "analyze", "dependencies": [1]}], '
            '"parallelizable": [], "criticalPath": [1, 2], "totalEstimatedSteps": 4}',
            DecompositionPayload,
        )
        assert [s.id for s in payload.subtasks] == [1, 2]
        assert payload.subtasks[0].suggested_handler == "researcher"
        assert payload.subtasks[0].estimated_complexity == pytest.approx(0.3)
        assert payload.subtasks[1].dependencies == [1]
        assert payload.critical_path == ["1", "2"]
        assert payload.total_estimated_steps == 4

    def test_non_object_subtasks_dropped(self):
        payload = decode('{"subtasks": ["do it", {"id": 3, "description": "x"}]}', DecompositionPayload)
        assert len(payload.subtasks) == 1
        assert payload.subtasks[0].id == 3

    def test_subtasks_not_a_list(self):
        assert decode('{"subtasks": "none"}', DecompositionPayload).subtasks == []


# ------------------------------------------------------------------ #
# Claims and plain-text conventions
# ------------------------------------------------------------------ #


class TestDecodeClaims:
    def test_bare_array(self):
        assert decode_claims('["Paris is in France", "It has 2M people"]') == [
            "Paris is in France",
            "It has 2M people",
        ]

    def test_wrapped_object(self):
        assert decode_claims('{"claims": ["one", "two"]}') == ["one", "two"]

    def test_nothing_usable(self):
        assert decode_claims("no claims here") == []
        assert decode_claims('{"other": 1}') == []


class TestFinalAnswer:
    def test_extracts_line(self):
        text = "Work...\nFINAL ANSWER: 42\nThanks"
        assert extract_final_answer(text) == "42"

    def test_case_insensitive(self):
        assert extract_final_answer("final answer: yes") == "yes"

    def test_missing(self):
        assert extract_final_answer("The answer is 42") is None


class TestCompleteMarker:
    def test_detect_and_strip(self):
        text = "So the result is 12. [COMPLETE]"
        assert is_complete_thought(text) is True
        assert strip_complete_marker(text) == "So the result is 12."

    def test_absent(self):
        assert is_complete_thought("keep going") is False


class TestReasonedAnswer:
    def test_sections(self):
        answer, reasoning = parse_reasoned_answer(
            "REASONING:\nFirst add, then divide.\n\nANSWER:\n7.5"
        )
        assert answer == "7.5"
        assert reasoning == "First add, then divide."

    def test_without_sections(self):
        answer, reasoning = parse_reasoned_answer("  just the answer  ")
        assert answer == "just the answer"
        assert reasoning == ""
