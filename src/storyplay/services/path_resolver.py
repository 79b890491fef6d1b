"""Determines which outgoing links of a node are valid and which one to follow."""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, List, Mapping, Sequence

from storyplay.core.rng import RNG
from storyplay.domain.defs import ChoiceNodeDef, LinkDef, NarrativeNodeDef, NodeDef
from storyplay.domain.state import GameState
from storyplay.services.conditions import ConditionEvaluator, EvaluationContext, LinkEvaluation

LOGGER = logging.getLogger(__name__)


class PathPriority(Enum):
    """Selection tiers, scanned in declaration order."""

    CONDITIONAL_NARRATIVE = "conditional_narrative"
    CHOICE = "choice"
    DIRECT_NARRATIVE = "direct_narrative"


_AUTO_SELECTABLE = (PathPriority.CONDITIONAL_NARRATIVE, PathPriority.DIRECT_NARRATIVE)


def _empty_tiers() -> Dict[PathPriority, List[LinkDef]]:
    return {priority: [] for priority in PathPriority}


@dataclass(slots=True)
class PathResolution:
    """Everything the resolver learned about a node's outgoing links.

    ``evaluations`` maps link id to the checks performed for that link only.
    ``unresolved_paths`` holds valid links whose destination is not in the graph.
    """

    available_paths: List[LinkDef] = field(default_factory=list)
    valid_paths: List[LinkDef] = field(default_factory=list)
    prioritized_paths: Dict[PathPriority, List[LinkDef]] = field(default_factory=_empty_tiers)
    selected_path: LinkDef | None = None
    evaluations: Dict[str, LinkEvaluation] = field(default_factory=dict)
    unresolved_paths: List[LinkDef] = field(default_factory=list)

    def paths_for(self, priority: PathPriority) -> List[LinkDef]:
        return self.prioritized_paths[priority]


def get_path_priority(link: LinkDef, target_node: NodeDef) -> PathPriority:
    if isinstance(target_node, NarrativeNodeDef) and link.has_conditions:
        return PathPriority.CONDITIONAL_NARRATIVE
    if isinstance(target_node, ChoiceNodeDef):
        return PathPriority.CHOICE
    return PathPriority.DIRECT_NARRATIVE


class PathResolver:
    """Filters links through the condition evaluator and buckets them by priority."""

    def __init__(self, condition_evaluator: ConditionEvaluator, rng: RNG | None = None) -> None:
        self._condition_evaluator = condition_evaluator
        self._rng = rng or condition_evaluator.rng

    def resolve_paths(
        self,
        current_node: NodeDef,
        outgoing_links: Sequence[LinkDef],
        state: GameState,
        available_nodes: Mapping[str, NodeDef],
    ) -> PathResolution:
        if not outgoing_links:
            return PathResolution()

        resolution = PathResolution(available_paths=list(outgoing_links))
        for link in outgoing_links:
            context = EvaluationContext(node_id=current_node.id, edge_id=link.id, silent=True)
            evaluation = self._condition_evaluator.evaluate_connection_conditions(link.conditions, state, context)
            resolution.evaluations[link.id] = evaluation
            if evaluation.passed:
                resolution.valid_paths.append(link)

        for link in resolution.valid_paths:
            target_node = available_nodes.get(link.target_id)
            if target_node is None:
                LOGGER.warning(
                    "Link %s from %s points at missing node %s; ignoring it",
                    link.id,
                    current_node.id,
                    link.target_id,
                )
                resolution.unresolved_paths.append(link)
                continue
            resolution.prioritized_paths[get_path_priority(link, target_node)].append(link)

        resolution.selected_path = self._select_path(resolution.prioritized_paths)
        if resolution.selected_path is not None:
            LOGGER.debug("Selected link %s from node %s", resolution.selected_path.id, current_node.id)
        return resolution

    def _select_path(self, prioritized_paths: Mapping[PathPriority, List[LinkDef]]) -> LinkDef | None:
        for priority in PathPriority:
            paths = prioritized_paths[priority]
            if not paths:
                continue
            if priority not in _AUTO_SELECTABLE:
                # Choice links wait for the player.
                return None
            return self._rng.choice(paths)
        return None
