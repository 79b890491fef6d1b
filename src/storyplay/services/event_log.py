"""Playback log built from engine events."""
from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Callable, Iterable, List, Literal

from storyplay.domain.defs import (
    NodeHappenedConditionDef,
    NodeNotHappenedConditionDef,
    ProbabilityConditionDef,
    VariableComparisonConditionDef,
)
from storyplay.domain.values import to_text
from storyplay.services.events import (
    ChoiceSelectedEvent,
    ConditionGroupEvaluatedEvent,
    ConditionResult,
    EngineEvent,
    EventChannel,
    NavigationBackEvent,
    NodeVisitedEvent,
    OperationExecutedEvent,
    StoryRestartedEvent,
)

LOGGER = logging.getLogger(__name__)

LogEntryKind = Literal["visit_node", "choose_choice", "operation_execute", "condition_evaluate"]

DEFAULT_MAX_ENTRIES = 500


@dataclass(frozen=True, slots=True)
class PlaybackLogEntry:
    kind: LogEntryKind
    node_id: str
    message: str
    timestamp: float | None = None
    edge_id: str | None = None


class EventLogger:
    """Subscribes to an ``EventChannel`` and keeps a readable trail of the session.

    Narrative visits, selected choices, executed operations and evaluated
    condition groups become entries. Going back truncates the trail to the
    last visit of the node returned to; a restart clears it. At most
    ``max_entries`` entries are kept, oldest dropped first.
    """

    def __init__(self, max_entries: int = DEFAULT_MAX_ENTRIES) -> None:
        if max_entries <= 0:
            raise ValueError("max_entries must be positive")
        self._max_entries = max_entries
        self._entries: List[PlaybackLogEntry] = []
        self._unsubscribe: Callable[[], None] | None = None

    @property
    def entries(self) -> List[PlaybackLogEntry]:
        return list(self._entries)

    def connect(self, channel: EventChannel) -> None:
        self.disconnect()
        self._unsubscribe = channel.on(self.handle)

    def disconnect(self) -> None:
        if self._unsubscribe is not None:
            self._unsubscribe()
            self._unsubscribe = None

    def clear(self) -> None:
        self._entries.clear()

    def filter(self, kinds: Iterable[LogEntryKind]) -> List[PlaybackLogEntry]:
        wanted = set(kinds)
        return [entry for entry in self._entries if entry.kind in wanted]

    def handle(self, event: EngineEvent) -> None:
        if isinstance(event, NodeVisitedEvent):
            if event.node_type == "narrative":
                self._add("visit_node", event.node_id, f"Visited '{event.node_name}'", event)
        elif isinstance(event, ChoiceSelectedEvent):
            self._add("choose_choice", event.node_id, f"Chose '{event.choice.text}'", event)
        elif isinstance(event, OperationExecutedEvent):
            operation = event.operation
            message = (
                f"{operation.kind or 'unknown'} {operation.variable_id}: "
                f"{to_text(event.previous_value)} -> {to_text(event.result_value)}"
            )
            self._add("operation_execute", event.node_id, message, event)
        elif isinstance(event, ConditionGroupEvaluatedEvent):
            if not event.node_id:
                return
            outcome = "passed" if event.group_result else "failed"
            details = ", ".join(describe_condition_result(result) for result in event.conditions)
            message = f"{event.group_operator} group {outcome}"
            if details:
                message = f"{message}: {details}"
            self._add("condition_evaluate", event.node_id, message, event, edge_id=event.edge_id)
        elif isinstance(event, NavigationBackEvent):
            self._rollback_to(event.to_node_id)
        elif isinstance(event, StoryRestartedEvent):
            self.clear()
            LOGGER.info("Story restarted at %s", event.start_node_id)

    def _add(
        self,
        kind: LogEntryKind,
        node_id: str,
        message: str,
        event: EngineEvent,
        *,
        edge_id: str | None = None,
    ) -> None:
        self._entries.append(
            PlaybackLogEntry(
                kind=kind, node_id=node_id, message=message, timestamp=event.timestamp, edge_id=edge_id
            )
        )
        if len(self._entries) > self._max_entries:
            del self._entries[: len(self._entries) - self._max_entries]
        LOGGER.info("[%s] %s", node_id, message)

    def _rollback_to(self, node_id: str) -> None:
        for index in range(len(self._entries) - 1, -1, -1):
            entry = self._entries[index]
            if entry.kind == "visit_node" and entry.node_id == node_id:
                del self._entries[index + 1 :]
                return


def describe_condition_result(result: ConditionResult) -> str:
    condition = result.condition
    mark = "true" if result.result else "false"
    if isinstance(condition, ProbabilityConditionDef):
        return f"chance {condition.probability or 0} = {mark}"
    if isinstance(condition, VariableComparisonConditionDef):
        if condition.value_source == "variable":
            right = condition.comparison_variable_id or "?"
        else:
            right = to_text(condition.value)
        return f"{condition.variable_id or '?'} {condition.comparator or '?'} {right} = {mark}"
    if isinstance(condition, NodeHappenedConditionDef):
        return f"visited {condition.node_id or '?'} = {mark}"
    if isinstance(condition, NodeNotHappenedConditionDef):
        return f"not visited {condition.node_id or '?'} = {mark}"
    return f"{condition.id} = {mark}"
