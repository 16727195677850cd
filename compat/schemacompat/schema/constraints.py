"""
Value-constraint drift detection.

Schema versions may carry value-level constraints in their metadata:
- "constraint": a rule such as "non-empty", "positive", "> 0", "length <= 64"
  or "matches:<regex>"
- "pattern": a regular expression the whole value must match

When the constraint of a type changes between versions, data accepted by the
old version may be rejected by the new one. Deciding whether one constraint
admits a superset of another is undecidable in general for regular
expressions with back-references and impractical for arbitrary rules, so this
module uses a bounded finite-sample heuristic:

- A fixed list of candidate values, plus values around every numeric or
  length threshold found in either rule, is evaluated against both rules.
- A candidate the old rule admits and the new rule rejects is a concrete
  counterexample: the new rule is proven NOT to be a superset.
- Finding no counterexample proves nothing. Callers must treat that outcome
  as "unknown", never as "compatible".

Unrecognised rules are never evaluated; they also yield "unknown".
"""

from __future__ import annotations

import logging
import operator
import re
from dataclasses import dataclass
from typing import Any, Callable, Iterator, Optional, Tuple

logger = logging.getLogger(__name__)

CANDIDATE_STRINGS: Tuple[str, ...] = (
    "", "a", "1", "abc", "ABC", "123", "test", "example", "hello", "world",
    "abc123", "a1b2c3", "Test123!", "test@example.com", "user_name",
    "CamelCase", "snake_case", "kebab-case", " ", "x" * 256,
)

CANDIDATE_NUMBERS: Tuple[float, ...] = (
    -1000, -100, -10, -1, -0.5, 0, 0.5, 1, 2, 10, 100, 1000, 2**31 - 1, 2**31,
)

_OPERATORS: dict[str, Callable[[Any, Any], bool]] = {
    ">": operator.gt,
    ">=": operator.ge,
    "<": operator.lt,
    "<=": operator.le,
    "==": operator.eq,
    "!=": operator.ne,
}

_COMPARISON_RE = re.compile(r"^(length\s*)?(>=|<=|==|!=|>|<)\s*(-?\d+(?:\.\d+)?)$")

_NAMED_RULES: dict[str, str] = {
    "nonempty": "length > 0",
    "non-empty": "length > 0",
    "non_empty": "length > 0",
    "positive": "> 0",
    "negative": "< 0",
    "non-negative": ">= 0",
    "nonnegative": ">= 0",
    "non-positive": "<= 0",
}


@dataclass(frozen=True)
class Constraint:
    """An evaluable value constraint.

    Attributes:
        expression: Original rule text
        domain: "string" or "number"
        predicate: Returns True when a value satisfies the rule
        thresholds: Numeric or length boundaries used to derive sample values
    """

    expression: str
    domain: str
    predicate: Callable[[Any], bool]
    thresholds: Tuple[float, ...] = ()

    def admits(self, value: Any) -> bool:
        try:
            return bool(self.predicate(value))
        except (TypeError, ValueError):
            return False


def parse_constraint(expression: str) -> Optional[Constraint]:
    """Interpret a constraint rule.

    Returns:
        A Constraint, or None when the rule is not recognised
    """
    text = expression.strip()
    lowered = text.lower()
    for prefix in ("matches:", "pattern:", "regex:"):
        if lowered.startswith(prefix):
            return pattern_constraint(text[len(prefix):])

    lowered = _NAMED_RULES.get(lowered, lowered)
    match = _COMPARISON_RE.match(lowered)
    if match is None:
        return None
    is_length, op_text, raw_bound = match.groups()
    compare = _OPERATORS[op_text]
    bound = float(raw_bound)
    if is_length:
        return Constraint(
            expression=text,
            domain="string",
            predicate=lambda v: isinstance(v, str) and compare(len(v), bound),
            thresholds=(bound,),
        )
    return Constraint(
        expression=text,
        domain="number",
        predicate=lambda v: isinstance(v, (int, float)) and compare(v, bound),
        thresholds=(bound,),
    )


def pattern_constraint(pattern: str) -> Optional[Constraint]:
    """Constraint requiring a full regex match, or None for an invalid regex."""
    try:
        compiled = re.compile(pattern)
    except re.error as e:
        logger.debug(f"Ignoring invalid pattern {pattern!r}: {e}")
        return None
    return Constraint(
        expression=pattern,
        domain="string",
        predicate=lambda v: isinstance(v, str) and compiled.fullmatch(v) is not None,
    )


def _sample_values(domain: str, *constraints: Constraint) -> Iterator[Any]:
    thresholds = sorted({t for c in constraints for t in c.thresholds})
    if domain == "number":
        yield from CANDIDATE_NUMBERS
        for t in thresholds:
            yield from (t - 1, t - 0.5, t, t + 0.5, t + 1)
    else:
        yield from CANDIDATE_STRINGS
        for t in thresholds:
            for n in (int(t) - 1, int(t), int(t) + 1):
                if n >= 0:
                    yield "x" * n


def find_counterexample(old: Constraint, new: Constraint) -> Optional[Any]:
    """Search for a value the old constraint admits and the new one rejects.

    A returned value proves the new constraint is not a superset of the old
    one. None means no counterexample was found among the sample values,
    which is NOT a proof of the converse.
    """
    if old.domain != new.domain:
        return None
    for value in _sample_values(old.domain, old, new):
        if old.admits(value) and not new.admits(value):
            return value
    return None
