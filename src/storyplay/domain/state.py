"""Mutable playback state owned by the story engine."""
from __future__ import annotations

from dataclasses import dataclass, field, replace
from typing import Dict, Iterable, List, Set

from storyplay.core.types import GroupOperator, VariableKind, VariableValue
from storyplay.domain.defs import ConditionDef, NodeDef, VariableDef, VariableOperationDef


@dataclass(slots=True)
class Variable:
    """Runtime copy of a story variable."""

    id: str
    name: str
    kind: VariableKind
    value: VariableValue

    @classmethod
    def from_def(cls, definition: VariableDef) -> "Variable":
        return cls(id=definition.id, name=definition.name, kind=definition.kind, value=definition.value)


@dataclass(slots=True)
class OperationPlayback:
    """Applied operation with enough information to undo it."""

    operation: VariableOperationDef
    result_value: VariableValue
    previous_value: VariableValue | None
    executed_in_node_id: str | None
    history_index: int | None = None

    @property
    def variable_id(self) -> str:
        return self.operation.variable_id


@dataclass(frozen=True, slots=True)
class TriggeredCondition:
    """Audit record of a condition checked on a path that was actually taken."""

    condition: ConditionDef
    result: bool
    group_operator: GroupOperator
    node_id: str | None = None
    edge_id: str | None = None
    group_id: str | None = None


@dataclass
class GameState:
    """Complete runtime state of one playback session."""

    variables: Dict[str, Variable] = field(default_factory=dict)
    visited_nodes: Set[str] = field(default_factory=set)
    history: List[str] = field(default_factory=list)
    display_history: List[NodeDef] = field(default_factory=list)
    executed_operations: List[OperationPlayback] = field(default_factory=list)
    triggered_conditions: List[TriggeredCondition] = field(default_factory=list)

    def reset_variables(self, definitions: Iterable[VariableDef]) -> None:
        self.variables = {definition.id: Variable.from_def(definition) for definition in definitions}

    def clear_progress(self) -> None:
        self.visited_nodes = set()
        self.history = []
        self.display_history = []
        self.executed_operations = []
        self.triggered_conditions = []

    def current_node_id(self) -> str | None:
        return self.history[-1] if self.history else None

    def snapshot(self) -> "GameState":
        """Return a copy that callers can inspect or mutate without touching this state."""
        return GameState(
            variables={key: replace(variable) for key, variable in self.variables.items()},
            visited_nodes=set(self.visited_nodes),
            history=list(self.history),
            display_history=list(self.display_history),
            executed_operations=[replace(entry) for entry in self.executed_operations],
            triggered_conditions=list(self.triggered_conditions),
        )
