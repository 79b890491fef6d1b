"""One evaluator per condition kind, selected through ``CONDITION_STRATEGIES``.

Every strategy returns False for a malformed condition (wrong kind, missing
field, unknown variable) instead of raising.
"""
from __future__ import annotations

import logging
import operator
from typing import Callable, Dict, Mapping

from storyplay.core.rng import RNG
from storyplay.core.types import Comparator, VariableValue
from storyplay.domain.defs import (
    NUMERIC_KINDS,
    NodeHappenedConditionDef,
    NodeNotHappenedConditionDef,
    ProbabilityConditionDef,
    VariableComparisonConditionDef,
)
from storyplay.domain.state import GameState, Variable
from storyplay.domain.values import to_bool, to_number, to_text

LOGGER = logging.getLogger(__name__)

ConditionStrategy = Callable[[object, GameState, RNG], bool]

_NUMERIC_COMPARATORS: Mapping[str, Callable[[float, float], bool]] = {
    "eq": operator.eq,
    "neq": operator.ne,
    "gt": operator.gt,
    "gte": operator.ge,
    "lt": operator.lt,
    "lte": operator.le,
}


def evaluate_node_visited(condition: object, state: GameState, rng: RNG) -> bool:
    if not isinstance(condition, NodeHappenedConditionDef) or not condition.node_id:
        return False
    return condition.node_id in state.visited_nodes


def evaluate_node_not_visited(condition: object, state: GameState, rng: RNG) -> bool:
    # A missing node id cannot be evaluated in either direction.
    if not isinstance(condition, NodeNotHappenedConditionDef) or not condition.node_id:
        return False
    return condition.node_id not in state.visited_nodes


def evaluate_probability(condition: object, state: GameState, rng: RNG) -> bool:
    if not isinstance(condition, ProbabilityConditionDef):
        return False
    probability = condition.probability if condition.probability is not None else 0.0
    return rng.random() < probability


def evaluate_variable_comparison(condition: object, state: GameState, rng: RNG) -> bool:
    if not isinstance(condition, VariableComparisonConditionDef) or not condition.variable_id:
        return False
    variable = state.variables.get(condition.variable_id)
    if variable is None:
        LOGGER.warning("Condition %s references unknown variable %s", condition.id, condition.variable_id)
        return False

    if condition.value_source == "variable":
        if not condition.comparison_variable_id:
            return False
        other = state.variables.get(condition.comparison_variable_id)
        if other is None:
            LOGGER.warning(
                "Condition %s references unknown variable %s", condition.id, condition.comparison_variable_id
            )
            return False
        right: object = other.value
    else:
        if condition.value is None:
            return False
        right = _scale_percent_literal(variable, condition.value, condition.percent_literal)

    return compare_values(variable, right, condition.comparator or "eq")


def compare_values(variable: Variable, right: object, comparator: Comparator) -> bool:
    """Compare a variable's current value with ``right`` using kind-appropriate rules."""
    if variable.kind in NUMERIC_KINDS:
        compare = _NUMERIC_COMPARATORS.get(comparator)
        left_number = to_number(variable.value)
        right_number = to_number(right)
        if compare is None or left_number is None or right_number is None:
            return False
        return compare(left_number, right_number)

    if comparator not in ("eq", "neq"):
        return False
    if variable.kind == "boolean":
        left_bool = to_bool(variable.value)
        right_bool = to_bool(right)
        if left_bool is None or right_bool is None:
            return False
        equal = left_bool == right_bool
    else:
        equal = to_text(variable.value) == to_text(right)
    return equal if comparator == "eq" else not equal


def _scale_percent_literal(variable: Variable, value: VariableValue, percent_literal: bool) -> object:
    if variable.kind != "percent" or not percent_literal:
        return value
    number = to_number(value)
    return value if number is None else number / 100


CONDITION_STRATEGIES: Dict[str, ConditionStrategy] = {
    NodeHappenedConditionDef.kind: evaluate_node_visited,
    NodeNotHappenedConditionDef.kind: evaluate_node_not_visited,
    ProbabilityConditionDef.kind: evaluate_probability,
    VariableComparisonConditionDef.kind: evaluate_variable_comparison,
}
