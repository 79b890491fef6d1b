"""Playback state machine that drives a story graph."""
from __future__ import annotations

import logging
from typing import Dict, List

from storyplay.core.rng import RNG
from storyplay.core.types import DisplayMode, VariableValue
from storyplay.domain.defs import (
    ChoiceNodeDef,
    LinkDef,
    NarrativeNodeDef,
    NodeDef,
    StoryData,
    is_choice_node,
    is_narrative_node,
)
from storyplay.domain.state import GameState, TriggeredCondition
from storyplay.domain.values import coerce_value
from storyplay.services.conditions import ConditionEvaluator, LinkEvaluation
from storyplay.services.events import (
    ChoiceSelectedEvent,
    ChoiceView,
    ConditionEvaluatedEvent,
    ConditionGroupEvaluatedEvent,
    EventChannel,
    NavigationBackEvent,
    NodeVisitedEvent,
    StoryRestartedEvent,
)
from storyplay.services.operations_service import OperationsService
from storyplay.services.path_resolver import PathPriority, PathResolution, PathResolver

LOGGER = logging.getLogger(__name__)


class StoryEngine:
    """Owns the loaded story and the single ``GameState`` of a playback session.

    Every public call runs to completion synchronously. Calls made before
    ``initialize`` return ``None`` or an empty list and change nothing.
    """

    def __init__(
        self,
        rng: RNG | None = None,
        event_channel: EventChannel | None = None,
        condition_evaluator: ConditionEvaluator | None = None,
        *,
        continue_label: str = "Continue",
        default_choice_label: str = "Choice",
    ) -> None:
        if rng is None:
            rng = condition_evaluator.rng if condition_evaluator is not None else RNG()
        self._rng = rng
        self._event_channel = event_channel or EventChannel()
        self._condition_evaluator = condition_evaluator or ConditionEvaluator(rng)
        self._condition_evaluator.set_rng(rng)
        self._condition_evaluator.set_event_channel(self._event_channel)
        self._path_resolver = PathResolver(self._condition_evaluator, rng)
        self._operations_service = OperationsService(self._event_channel)
        self._continue_label = continue_label
        self._default_choice_label = default_choice_label
        self._story: StoryData | None = None
        self._state = GameState()

    @property
    def events(self) -> EventChannel:
        return self._event_channel

    def get_story_data(self) -> StoryData | None:
        return self._story

    def initialize(self, story: StoryData) -> None:
        """Load ``story`` and reset the session to its defaults."""
        self._story = story
        self._state.reset_variables(story.variables)
        self._state.clear_progress()
        LOGGER.debug("Loaded story %r with %d nodes", story.title, len(story.nodes))

    def get_state(self) -> GameState:
        """Return a snapshot; mutating it does not affect the engine."""
        return self._state.snapshot()

    def get_node(self, node_id: str) -> NodeDef | None:
        if self._story is None:
            return None
        return self._story.get_node(node_id)

    def is_narrative_node(self, node: object) -> bool:
        return is_narrative_node(node)

    def is_choice_node(self, node: object) -> bool:
        return is_choice_node(node)

    def get_start_node(self) -> NarrativeNodeDef | None:
        """Narrative node without incoming links, else the first narrative node."""
        if self._story is None:
            return None
        narrative_nodes = self._story.narrative_nodes()
        targets = {link.target_id for link in self._story.links}
        for node in narrative_nodes:
            if node.id not in targets:
                return node
        return narrative_nodes[0] if narrative_nodes else None

    def get_current_node(self) -> NodeDef | None:
        if self._story is None:
            return None
        current_id = self._state.current_node_id()
        if current_id is None:
            return self.get_start_node()
        return self._story.get_node(current_id) or self.get_start_node()

    def get_next_node(self, node_id: str) -> NodeDef | None:
        """Return the node the story would move to from ``node_id`` without moving.

        Condition events for the selected link are emitted, but nothing is
        written to the state.
        """
        return self._find_next_node(node_id, record=False)

    def visit_node(self, node_id: str) -> NodeDef | None:
        if self._story is None:
            LOGGER.warning("visit_node(%s) called before a story was loaded", node_id)
            return None
        node = self._story.get_node(node_id)
        if node is None:
            LOGGER.warning("visit_node: unknown node %s", node_id)
            return None
        if not isinstance(node, NarrativeNodeDef):
            LOGGER.warning("visit_node called with non-narrative node %s; not recorded", node_id)
            return node

        self._operations_service.execute_operations(node, self._state, self._story)
        self._state.history.append(node_id)
        self._state.visited_nodes.add(node_id)
        self._event_channel.emit(
            NodeVisitedEvent(node_id=node.id, node_name=node.display_name, node_type=node.kind)
        )
        LOGGER.debug("Visited %s (history length %d)", node_id, len(self._state.history))
        return node

    def execute_choice(self, choice_id: str) -> NodeDef | None:
        """Select a choice node and visit the narrative node it leads to."""
        if self._story is None:
            LOGGER.warning("execute_choice(%s) called before a story was loaded", choice_id)
            return None
        choice_node = self._story.get_node(choice_id)
        if choice_node is None:
            LOGGER.warning("execute_choice: unknown node %s", choice_id)
            return None
        if not isinstance(choice_node, ChoiceNodeDef):
            LOGGER.warning("execute_choice called with non-choice node %s", choice_id)
            return None

        self._state.visited_nodes.add(choice_id)
        self._event_channel.emit(
            ChoiceSelectedEvent(
                node_id=self._state.current_node_id() or "",
                choice=ChoiceView(
                    id=choice_node.id,
                    text=choice_node.text or self._default_choice_label,
                    has_next_node=True,
                ),
            )
        )

        next_node = self._find_next_node(choice_id, record=True)
        if next_node is None:
            return None
        if isinstance(next_node, NarrativeNodeDef):
            return self.visit_node(next_node.id)
        LOGGER.warning("Choice %s leads to non-narrative node %s", choice_id, next_node.id)
        return next_node

    def get_available_choices(self, node_id: str) -> List[ChoiceView]:
        """Choice-tier options of ``node_id``, or a single virtual "Continue"."""
        if self._story is None:
            return []
        resolution = self._resolve(node_id)
        if resolution is None:
            return []

        choice_paths = resolution.paths_for(PathPriority.CHOICE)
        if choice_paths:
            choices: List[ChoiceView] = []
            for link in choice_paths:
                target = self._story.get_node(link.target_id)
                if not isinstance(target, ChoiceNodeDef):
                    continue
                choices.append(
                    ChoiceView(
                        id=target.id,
                        text=target.text or self._default_choice_label,
                        has_next_node=bool(self._story.outgoing_links(target.id)),
                    )
                )
            return choices

        narrative_path = resolution.selected_path or _first_of(
            resolution.paths_for(PathPriority.CONDITIONAL_NARRATIVE),
            resolution.paths_for(PathPriority.DIRECT_NARRATIVE),
        )
        if narrative_path is None:
            return []
        target = self._story.get_node(narrative_path.target_id)
        if not isinstance(target, NarrativeNodeDef):
            return []
        return [
            ChoiceView(
                id=target.id,
                text=self._continue_label,
                has_next_node=True,
                is_virtual=True,
                path_link=narrative_path,
                evaluation=resolution.evaluations.get(narrative_path.id),
            )
        ]

    def handle_direct_narrative_transition(self, node_id: str) -> NodeDef | None:
        """Follow a lone "Continue" from ``node_id``; the first node of a run never auto-advances."""
        if self._story is None:
            return None
        if self._is_first_node(node_id):
            return None
        choices = self.get_available_choices(node_id)
        if len(choices) == 1 and choices[0].is_virtual:
            return self._follow_virtual_choice(node_id, choices[0])
        return None

    def move_forward(self, node_id: str, force_move: bool = False) -> NodeDef | None:
        """Advance from ``node_id``: follow a virtual continue, stop at a choice, or visit the next beat."""
        if self._story is None:
            return None
        if self._is_first_node(node_id) and not force_move:
            return self._story.get_node(node_id)
        choices = self.get_available_choices(node_id)
        if len(choices) == 1 and choices[0].is_virtual:
            return self._follow_virtual_choice(node_id, choices[0])

        next_node = self._find_next_node(node_id, record=True)
        if next_node is None:
            return None
        if isinstance(next_node, NarrativeNodeDef):
            return self.visit_node(next_node.id)
        return next_node

    def go_back(self) -> NodeDef | None:
        """Step back one narrative node, undoing the operations of the node left."""
        if self._story is None or len(self._state.history) <= 1:
            return None
        removed_id = self._state.history.pop()
        self._operations_service.rollback_node_operations(
            removed_id, self._state, history_index=len(self._state.history)
        )
        previous_id = self._state.history[-1]
        previous = self._story.get_node(previous_id)
        if previous is not None:
            self._event_channel.emit(NavigationBackEvent(from_node_id=removed_id, to_node_id=previous.id))
        return previous

    def restart(self) -> NarrativeNodeDef | None:
        """Reset the session; the start node is returned but not recorded."""
        self._state.clear_progress()
        if self._story is not None:
            self._state.reset_variables(self._story.variables)
        start_node = self.get_start_node()
        if start_node is not None:
            self._event_channel.emit(StoryRestartedEvent(start_node_id=start_node.id))
        return start_node

    def get_display_history(self, mode: DisplayMode, current_node: NodeDef) -> List[NodeDef]:
        if mode == "novel":
            self._state.display_history = [current_node]
            return [current_node]
        if len(self._state.display_history) <= 1:
            self._rebuild_display_history()
        display = self._state.display_history
        if not display or display[-1].id != current_node.id:
            display.append(current_node)
        return list(display)

    def add_choice_to_display_history(self, choice: ChoiceView) -> None:
        node = self.get_node(choice.id)
        if not isinstance(node, ChoiceNodeDef):
            node = ChoiceNodeDef(id=choice.id, text=choice.text)
        self._state.display_history.append(node)

    def update_display_history_on_back(self, mode: DisplayMode) -> List[NodeDef]:
        if self._story is None:
            return []
        if mode == "novel":
            current = self.get_current_node()
            self._state.display_history = [current] if current is not None else []
            return list(self._state.display_history)

        display = self._state.display_history
        if len(display) <= 1:
            return list(display)
        if is_narrative_node(display[-1]) and is_choice_node(display[-2]):
            del display[-2:]
        else:
            del display[-1]
        return list(display)

    def set_variable(self, variable_id: str, value: VariableValue) -> bool:
        """Set a variable, converting ``value`` to the variable's kind. Not undone by ``go_back``."""
        variable = self._state.variables.get(variable_id)
        if variable is None:
            LOGGER.warning("set_variable: unknown variable %s", variable_id)
            return False
        coerced = coerce_value(variable.kind, value)
        if coerced is None:
            LOGGER.warning("set_variable: %r is not a valid %s for %s", value, variable.kind, variable_id)
            return False
        variable.value = coerced
        return True

    def set_variable_manually(self, variable_id: str, value: VariableValue) -> bool:
        """Store ``value`` as given, outside the operation log."""
        variable = self._state.variables.get(variable_id)
        if variable is None:
            LOGGER.warning("set_variable_manually: unknown variable %s", variable_id)
            return False
        variable.value = value
        return True

    def _rebuild_display_history(self) -> None:
        """Rebuild the waterfall view from ``history``, restoring the choices taken between beats."""
        if self._story is None:
            return
        history = self._state.history
        rebuilt: List[NodeDef] = []
        for index, node_id in enumerate(history):
            node = self._story.get_node(node_id)
            if node is None:
                continue
            rebuilt.append(node)
            if index + 1 < len(history):
                choice = self._choice_between(node_id, history[index + 1])
                if choice is not None:
                    rebuilt.append(choice)
        self._state.display_history = rebuilt

    def _choice_between(self, source_id: str, target_id: str) -> ChoiceNodeDef | None:
        assert self._story is not None
        for link in self._story.outgoing_links(source_id):
            candidate = self._story.get_node(link.target_id)
            if not isinstance(candidate, ChoiceNodeDef):
                continue
            if any(out.target_id == target_id for out in self._story.outgoing_links(candidate.id)):
                return candidate
        return None

    def _is_first_node(self, node_id: str) -> bool:
        history = self._state.history
        return len(history) == 1 and history[0] == node_id

    def _resolve(self, node_id: str) -> PathResolution | None:
        assert self._story is not None
        node = self._story.get_node(node_id)
        if node is None:
            return None
        outgoing = self._story.outgoing_links(node_id)
        if not outgoing:
            return None
        return self._path_resolver.resolve_paths(node, outgoing, self._state, self._node_map())

    def _find_next_node(self, node_id: str, *, record: bool) -> NodeDef | None:
        if self._story is None or not node_id:
            return None
        resolution = self._resolve(node_id)
        if resolution is None:
            return None
        selected = resolution.selected_path
        if selected is not None:
            self._log_path_evaluation(node_id, selected, resolution.evaluations.get(selected.id), record=record)
            return self._story.get_node(selected.target_id)
        choice_paths = resolution.paths_for(PathPriority.CHOICE)
        if choice_paths:
            return self._story.get_node(choice_paths[0].target_id)
        return None

    def _follow_virtual_choice(self, node_id: str, choice: ChoiceView) -> NodeDef | None:
        if choice.path_link is not None:
            self._log_path_evaluation(node_id, choice.path_link, choice.evaluation, record=True)
        return self.visit_node(choice.id)

    def _log_path_evaluation(
        self,
        node_id: str,
        link: LinkDef,
        evaluation: LinkEvaluation | None,
        *,
        record: bool,
    ) -> None:
        """Replay the cached checks of a taken link as events (and audit records when ``record``)."""
        if evaluation is None:
            return
        for group_result in evaluation.group_results:
            operator = group_result.group.operator
            for condition_result in group_result.condition_results:
                if record:
                    self._state.triggered_conditions.append(
                        TriggeredCondition(
                            condition=condition_result.condition,
                            result=condition_result.result,
                            group_operator=operator,
                            node_id=node_id,
                            edge_id=link.id,
                            group_id=group_result.group.id,
                        )
                    )
                self._event_channel.emit(
                    ConditionEvaluatedEvent(
                        node_id=node_id,
                        edge_id=link.id,
                        condition=condition_result.condition,
                        result=condition_result.result,
                        group_operator=operator,
                    )
                )
            self._event_channel.emit(
                ConditionGroupEvaluatedEvent(
                    node_id=node_id,
                    edge_id=link.id,
                    conditions=group_result.condition_results,
                    group_operator=operator,
                    group_result=group_result.passed,
                )
            )

    def _node_map(self) -> Dict[str, NodeDef]:
        assert self._story is not None
        return self._story.node_map()


def _first_of(*candidates: List[LinkDef]) -> LinkDef | None:
    for paths in candidates:
        if paths:
            return paths[0]
    return None
