"""Condition evaluation: per-kind strategies and the group/link evaluator."""

from .evaluator import ConditionEvaluator, EvaluationContext, GroupEvaluation, LinkEvaluation
from .strategies import CONDITION_STRATEGIES, compare_values

__all__ = [
    "CONDITION_STRATEGIES",
    "ConditionEvaluator",
    "EvaluationContext",
    "GroupEvaluation",
    "LinkEvaluation",
    "compare_values",
]
