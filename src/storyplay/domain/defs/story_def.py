"""Story graph structures consumed by the playback engine."""
from __future__ import annotations

from dataclasses import dataclass, field
from typing import ClassVar, Dict, List, Tuple, Union

from storyplay.core.types import NodeKind
from storyplay.domain.defs.condition_def import ConditionGroupDef
from storyplay.domain.defs.variable_def import VariableDef, VariableOperationDef


@dataclass(frozen=True, slots=True)
class NarrativeNodeDef:
    """Story beat with display text; the only node kind recorded in history."""

    kind: ClassVar[NodeKind] = "narrative"

    id: str
    title: str = ""
    text: str = ""
    operations: Tuple[VariableOperationDef, ...] = ()

    @property
    def display_name(self) -> str:
        return self.title or self.text or self.id


@dataclass(frozen=True, slots=True)
class ChoiceNodeDef:
    """Decision point presented to the player."""

    kind: ClassVar[NodeKind] = "choice"

    id: str
    text: str = ""
    operations: Tuple[VariableOperationDef, ...] = ()

    @property
    def display_name(self) -> str:
        return self.text or self.id


NodeDef = Union[NarrativeNodeDef, ChoiceNodeDef]


@dataclass(frozen=True, slots=True)
class LinkDef:
    """Directed, optionally conditional connection between two nodes."""

    id: str
    source_id: str
    target_id: str
    conditions: Tuple[ConditionGroupDef, ...] = ()

    @property
    def has_conditions(self) -> bool:
        return bool(self.conditions)


@dataclass(frozen=True, slots=True)
class StoryData:
    """Flattened story graph plus variable defaults."""

    title: str
    nodes: Tuple[NodeDef, ...] = ()
    links: Tuple[LinkDef, ...] = ()
    variables: Tuple[VariableDef, ...] = ()
    _node_index: Dict[str, NodeDef] = field(default_factory=dict, init=False, repr=False, compare=False)

    def __post_init__(self) -> None:
        # First occurrence wins for duplicate ids, matching linear lookup order.
        for node in self.nodes:
            self._node_index.setdefault(node.id, node)

    def get_node(self, node_id: str) -> NodeDef | None:
        return self._node_index.get(node_id)

    def node_map(self) -> Dict[str, NodeDef]:
        return dict(self._node_index)

    def outgoing_links(self, node_id: str) -> List[LinkDef]:
        return [link for link in self.links if link.source_id == node_id]

    def narrative_nodes(self) -> List[NarrativeNodeDef]:
        return [node for node in self.nodes if isinstance(node, NarrativeNodeDef)]


def is_narrative_node(node: object) -> bool:
    return isinstance(node, NarrativeNodeDef)


def is_choice_node(node: object) -> bool:
    return isinstance(node, ChoiceNodeDef)
