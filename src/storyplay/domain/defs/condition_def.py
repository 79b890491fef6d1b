"""Condition definitions attached to story links."""
from __future__ import annotations

from dataclasses import dataclass
from typing import ClassVar, Tuple, Union

from storyplay.core.types import Comparator, ConditionKind, GroupOperator, ValueSource, VariableValue


@dataclass(frozen=True, slots=True)
class ProbabilityConditionDef:
    """Passes when a uniform draw falls below ``probability``."""

    kind: ClassVar[ConditionKind] = "probability"

    id: str
    probability: float | None = None


@dataclass(frozen=True, slots=True)
class VariableComparisonConditionDef:
    """Compares a variable against a literal or against another variable."""

    kind: ClassVar[ConditionKind] = "variable_comparison"

    id: str
    variable_id: str | None = None
    comparator: Comparator | None = None
    value_source: ValueSource = "custom"
    value: VariableValue | None = None
    comparison_variable_id: str | None = None
    percent_literal: bool = False


@dataclass(frozen=True, slots=True)
class NodeHappenedConditionDef:
    kind: ClassVar[ConditionKind] = "node_happened"

    id: str
    node_id: str | None = None


@dataclass(frozen=True, slots=True)
class NodeNotHappenedConditionDef:
    kind: ClassVar[ConditionKind] = "node_not_happened"

    id: str
    node_id: str | None = None


ConditionDef = Union[
    ProbabilityConditionDef,
    VariableComparisonConditionDef,
    NodeHappenedConditionDef,
    NodeNotHappenedConditionDef,
]


@dataclass(frozen=True, slots=True)
class ConditionGroupDef:
    """AND/OR bundle of conditions on a single link."""

    id: str
    operator: GroupOperator
    conditions: Tuple[ConditionDef, ...] = ()
