"""
Unit tests for constraint parsing and the counterexample search.
"""

import pytest

from compat.schemacompat.schema.constraints import (
    find_counterexample,
    parse_constraint,
    pattern_constraint,
)


class TestParseConstraint:
    """Tests for parse_constraint."""

    @pytest.mark.parametrize("expression,accepted,rejected", [
        ("non-empty", "a", ""),
        ("nonEmpty", "a", ""),
        ("length > 0", "a", ""),
        ("length<=3", "abc", "abcd"),
        ("positive", 1, 0),
        ("> 0", 0.5, -1),
        ("non-negative", 0, -0.5),
        ("!= 7", 8, 7),
        ("matches:[0-9]+", "123", "12a"),
    ])
    def test_recognised_rules(self, expression, accepted, rejected):
        """Recognised rules evaluate values as expected."""
        constraint = parse_constraint(expression)
        assert constraint is not None
        assert constraint.admits(accepted)
        assert not constraint.admits(rejected)

    def test_unrecognised_rule(self):
        """Unknown rules are not evaluated."""
        assert parse_constraint("custom(foo)") is None

    def test_domain_mismatch_rejects(self):
        """Numeric rules reject strings and vice versa."""
        assert not parse_constraint("> 0").admits("5")
        assert not parse_constraint("non-empty").admits(5)


class TestPatternConstraint:
    """Tests for pattern constraints."""

    def test_full_match_required(self):
        """Patterns must match the whole value."""
        constraint = pattern_constraint("[a-z]+")
        assert constraint.admits("abc")
        assert not constraint.admits("abc1")

    def test_invalid_pattern(self):
        """Invalid regular expressions are not evaluated."""
        assert pattern_constraint("[unclosed") is None


class TestCounterexample:
    """Tests for find_counterexample."""

    def test_tightened_numeric(self):
        """A raised lower bound yields a counterexample near the threshold."""
        value = find_counterexample(parse_constraint(">= 0"), parse_constraint(">= 5"))
        assert value is not None
        assert 0 <= value < 5

    def test_relaxed_numeric(self):
        """A lowered bound has no counterexample."""
        assert find_counterexample(parse_constraint(">= 5"), parse_constraint(">= 0")) is None

    def test_length_threshold_sampled(self):
        """Length thresholds beyond the fixed candidates are sampled."""
        old = parse_constraint("length <= 100")
        new = parse_constraint("length <= 50")
        value = find_counterexample(old, new)
        assert value is not None
        assert 50 < len(value) <= 100

    def test_domain_mismatch_is_unknown(self):
        """Constraints over different domains are not compared."""
        assert find_counterexample(parse_constraint("> 0"), parse_constraint("non-empty")) is None

    def test_heuristic_misses_are_possible(self):
        """No counterexample is not a proof: sparse patterns can slip through."""
        old = pattern_constraint("[a-z]+|zzzz[0-9]{9}")
        new = pattern_constraint("[a-z]+")
        assert find_counterexample(old, new) is None
