"""
Achievement calculator.

Turns a raw numerator/denominator pair into an achievement value and
compares it against the indicator's target.

    Formula             achievement
    ─────────────────   ──────────────────
    N/D                 n / d
    N-D                 n - d
    (N/D)*100           (n / d) * 100        (default)

    Comparator          achieved when
    ─────────────────   ──────────────────
    >  <  =  >=  <=     achievement <op> target   (>= default)

Score (a.k.a. point score):
    100 when achieved, else (achievement / target) * 100, None when target is 0.

Pure functions only: nothing here touches the session or raises.
"""

from __future__ import annotations

import math
import operator
from dataclasses import dataclass
from enum import Enum


class Formula(str, Enum):
    RATIO = "N/D"
    DIFFERENCE = "N-D"
    PERCENTAGE = "(N/D)*100"

    @classmethod
    def parse(cls, tag) -> "Formula":
        """Resolve a stored tag; None or unknown tags fall back to PERCENTAGE."""
        if isinstance(tag, cls):
            return tag
        try:
            return cls(tag)
        except ValueError:
            return cls.PERCENTAGE


class Comparator(str, Enum):
    GT = ">"
    LT = "<"
    EQ = "="
    GTE = ">="
    LTE = "<="

    @classmethod
    def parse(cls, tag) -> "Comparator":
        """Resolve a stored tag; None or unknown tags fall back to GTE."""
        if isinstance(tag, cls):
            return tag
        try:
            return cls(tag)
        except ValueError:
            return cls.GTE


def _equals(a, b):
    return math.isclose(a, b, rel_tol=1e-9, abs_tol=1e-9)


_FORMULAS = {
    Formula.RATIO: lambda n, d: n / d,
    Formula.DIFFERENCE: lambda n, d: n - d,
    Formula.PERCENTAGE: lambda n, d: (n / d) * 100,
}

_COMPARATORS = {
    Comparator.GT: operator.gt,
    Comparator.LT: operator.lt,
    Comparator.EQ: _equals,
    Comparator.GTE: operator.ge,
    Comparator.LTE: operator.le,
}


@dataclass(frozen=True)
class Evaluation:
    achievement: float | None
    achieved: bool
    score: float | None
    needs_corrective_action: bool

    def to_dict(self):
        return {
            "achievement": self.achievement,
            "achieved": self.achieved,
            "score": self.score,
            "needs_corrective_action": self.needs_corrective_action,
        }


def compute_achievement(numerator, denominator, formula=None):
    """Apply *formula* to the pair; None when either side is missing or d is 0."""
    if numerator is None or denominator is None or denominator == 0:
        return None
    return _FORMULAS[Formula.parse(formula)](float(numerator), float(denominator))


def is_achieved(achievement, target, comparator=None) -> bool:
    if achievement is None or target is None:
        return False
    return bool(_COMPARATORS[Comparator.parse(comparator)](achievement, target))


def compute_score(achievement, target, achieved):
    if achievement is None:
        return None
    if achieved:
        return 100.0
    if target is None or target == 0:
        return None
    return (achievement / target) * 100


def evaluate(
    numerator,
    denominator,
    indicator,
    *,
    precomputed_achievement=None,
    precomputed_score=None,
) -> Evaluation:
    """
    Score one numerator/denominator pair against *indicator*.

    *indicator* is anything exposing ``calculation_formula``,
    ``target_comparator`` and ``target`` (the Indicator model or a
    snapshot). Caller-supplied achievement/score values are kept as
    given; only the missing ones are derived.
    """
    formula = getattr(indicator, "calculation_formula", None)
    comparator = getattr(indicator, "target_comparator", None)
    target = getattr(indicator, "target", None)

    if precomputed_achievement is not None:
        achievement = float(precomputed_achievement)
    else:
        achievement = compute_achievement(numerator, denominator, formula)

    achieved = is_achieved(achievement, target, comparator)
    needs_action = (not achieved) if (achievement is not None and target is not None) else False

    if precomputed_score is not None:
        score = float(precomputed_score)
    else:
        score = compute_score(achievement, target, achieved)

    return Evaluation(
        achievement=achievement,
        achieved=achieved,
        score=score,
        needs_corrective_action=needs_action,
    )


def point(evaluation: Evaluation, target_weight) -> float:
    """Target weight when achieved, else 0."""
    return float(target_weight or 0) if evaluation.achieved else 0.0


def weighted_score(score, target_weight):
    if score is None:
        return None
    return score * float(target_weight or 0)


def format_target(indicator) -> str:
    """Render a target as comparator + value, with % for percentage units."""
    target = getattr(indicator, "target", None)
    if target is None:
        return "-"
    comparator = Comparator.parse(getattr(indicator, "target_comparator", None)).value
    suffix = "%" if getattr(indicator, "target_unit", None) == "percentage" else ""
    return f"{comparator}{target:g}{suffix}"
