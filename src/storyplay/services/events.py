"""Engine events and the synchronous event channel."""
from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from typing import TYPE_CHECKING, Callable, ClassVar, List, Tuple

from storyplay.core.types import GroupOperator, NodeKind, VariableValue
from storyplay.domain.defs import ConditionDef, LinkDef, VariableOperationDef

if TYPE_CHECKING:
    from storyplay.services.conditions import LinkEvaluation

LOGGER = logging.getLogger(__name__)


@dataclass(slots=True, kw_only=True)
class EngineEvent:
    """Base class for engine events. ``timestamp`` is filled in on emit when omitted."""

    type: ClassVar[str] = "engine.event"

    timestamp: float | None = None


@dataclass(frozen=True, slots=True)
class ChoiceView:
    """Selectable option derived from the outgoing paths of a node.

    Virtual choices stand for a plain "Continue" to a narrative node and carry
    the link and the evaluation that validated it so the engine can log why the
    path was taken.
    """

    id: str
    text: str
    has_next_node: bool
    is_virtual: bool = False
    path_link: LinkDef | None = None
    evaluation: LinkEvaluation | None = None


@dataclass(frozen=True, slots=True)
class ConditionResult:
    condition: ConditionDef
    result: bool


@dataclass(slots=True, kw_only=True)
class NodeVisitedEvent(EngineEvent):
    type: ClassVar[str] = "node.visited"

    node_id: str
    node_name: str
    node_type: NodeKind


@dataclass(slots=True, kw_only=True)
class ChoiceSelectedEvent(EngineEvent):
    type: ClassVar[str] = "choice.selected"

    node_id: str
    choice: ChoiceView


@dataclass(slots=True, kw_only=True)
class NavigationBackEvent(EngineEvent):
    type: ClassVar[str] = "navigation.back"

    from_node_id: str
    to_node_id: str


@dataclass(slots=True, kw_only=True)
class StoryRestartedEvent(EngineEvent):
    type: ClassVar[str] = "story.restarted"

    start_node_id: str


@dataclass(slots=True, kw_only=True)
class OperationExecutedEvent(EngineEvent):
    type: ClassVar[str] = "operation.executed"

    node_id: str
    operation: VariableOperationDef
    previous_value: VariableValue | None
    result_value: VariableValue


@dataclass(slots=True, kw_only=True)
class OperationsRolledBackEvent(EngineEvent):
    type: ClassVar[str] = "operations.rolledback"

    node_id: str
    count: int


@dataclass(slots=True, kw_only=True)
class ConditionEvaluatedEvent(EngineEvent):
    type: ClassVar[str] = "condition.evaluated"

    condition: ConditionDef
    result: bool
    group_operator: GroupOperator
    node_id: str | None = None
    edge_id: str | None = None


@dataclass(slots=True, kw_only=True)
class ConditionGroupEvaluatedEvent(EngineEvent):
    type: ClassVar[str] = "condition.group.evaluated"

    conditions: Tuple[ConditionResult, ...]
    group_operator: GroupOperator
    group_result: bool
    node_id: str | None = None
    edge_id: str | None = None


EventListener = Callable[[EngineEvent], None]


class EventChannel:
    """Synchronous fan-out to listeners in registration order.

    A listener that raises is logged and skipped; the remaining listeners still
    receive the event and the emitting call never sees the error.
    """

    def __init__(self) -> None:
        self._listeners: List[EventListener] = []

    def on(self, listener: EventListener) -> Callable[[], None]:
        """Register ``listener`` and return a callable that unregisters it."""
        self._listeners.append(listener)
        return lambda: self.off(listener)

    def off(self, listener: EventListener) -> None:
        try:
            self._listeners.remove(listener)
        except ValueError:
            pass

    def clear(self) -> None:
        self._listeners.clear()

    @property
    def listener_count(self) -> int:
        return len(self._listeners)

    def emit(self, event: EngineEvent) -> EngineEvent:
        if event.timestamp is None:
            event.timestamp = time.time()
        for listener in list(self._listeners):
            try:
                listener(event)
            except Exception:
                LOGGER.exception("Event listener %r failed while handling %s", listener, event.type)
        return event
