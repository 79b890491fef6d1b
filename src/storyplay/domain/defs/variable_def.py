"""Variable and variable-operation definitions."""
from __future__ import annotations

from dataclasses import dataclass
from typing import Literal

from storyplay.core.types import OperationKind, VariableKind, VariableValue

NUMERIC_KINDS = frozenset({"integer", "float", "percent"})


@dataclass(frozen=True, slots=True)
class VariableDef:
    """Story variable with its default value. Percent values are stored as 0..1."""

    id: str
    name: str
    kind: VariableKind
    value: VariableValue


@dataclass(frozen=True, slots=True)
class OperationTargetDef:
    """Right-hand side of an operation: a literal or another variable's value."""

    source: Literal["custom", "variable"] = "custom"
    value: VariableValue | None = None
    variable_id: str | None = None


@dataclass(frozen=True, slots=True)
class VariableOperationDef:
    """Single mutation applied to a variable when the owning node is visited."""

    id: str
    node_id: str
    variable_id: str
    kind: OperationKind
    target: OperationTargetDef | None = None
    enabled: bool = True
    order: int = 0
