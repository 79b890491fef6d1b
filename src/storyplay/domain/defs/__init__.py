"""Domain definition exports."""

from .condition_def import (
    ConditionDef,
    ConditionGroupDef,
    NodeHappenedConditionDef,
    NodeNotHappenedConditionDef,
    ProbabilityConditionDef,
    VariableComparisonConditionDef,
)
from .story_def import (
    ChoiceNodeDef,
    LinkDef,
    NarrativeNodeDef,
    NodeDef,
    StoryData,
    is_choice_node,
    is_narrative_node,
)
from .variable_def import NUMERIC_KINDS, OperationTargetDef, VariableDef, VariableOperationDef

__all__ = [
    "ChoiceNodeDef",
    "ConditionDef",
    "ConditionGroupDef",
    "LinkDef",
    "NUMERIC_KINDS",
    "NarrativeNodeDef",
    "NodeDef",
    "NodeHappenedConditionDef",
    "NodeNotHappenedConditionDef",
    "OperationTargetDef",
    "ProbabilityConditionDef",
    "StoryData",
    "VariableComparisonConditionDef",
    "VariableDef",
    "VariableOperationDef",
    "is_choice_node",
    "is_narrative_node",
]
