"""Shared type aliases for the core and domain layers."""
from typing import Literal, Union

NodeKind = Literal["narrative", "choice"]
GroupOperator = Literal["AND", "OR"]
Comparator = Literal["eq", "neq", "gt", "gte", "lt", "lte"]
ConditionKind = Literal["probability", "variable_comparison", "node_happened", "node_not_happened"]
ValueSource = Literal["custom", "variable"]
VariableKind = Literal["integer", "float", "string", "boolean", "percent"]
OperationKind = Literal["override", "addition", "subtract", "multiply", "divide", "invert", "join"]
DisplayMode = Literal["novel", "waterfall"]

VariableValue = Union[str, int, float, bool]

__all__ = [
    "Comparator",
    "ConditionKind",
    "DisplayMode",
    "GroupOperator",
    "NodeKind",
    "OperationKind",
    "ValueSource",
    "VariableKind",
    "VariableValue",
]
