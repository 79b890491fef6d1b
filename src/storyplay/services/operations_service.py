"""Applies node-attached variable operations and undoes them on back navigation."""
from __future__ import annotations

import logging
import math
from dataclasses import dataclass
from typing import List

from storyplay.core.types import VariableKind, VariableValue
from storyplay.domain.defs import ChoiceNodeDef, NodeDef, StoryData, VariableOperationDef
from storyplay.domain.state import GameState, OperationPlayback, Variable
from storyplay.domain.values import round_half_up, to_number, to_text
from storyplay.services.events import EventChannel, OperationExecutedEvent, OperationsRolledBackEvent

LOGGER = logging.getLogger(__name__)

_ARITHMETIC_KINDS = frozenset({"addition", "subtract", "multiply", "divide"})


@dataclass(frozen=True, slots=True)
class RollbackIssue:
    operation: OperationPlayback
    issue: str


class _UnresolvedTarget(Exception):
    """Raised internally when an operation's target variable does not exist."""


class OperationsService:
    """Executes variable operations and keeps the log used for rollback."""

    def __init__(self, event_channel: EventChannel | None = None) -> None:
        self._event_channel = event_channel

    def execute_operations(self, node: NodeDef | None, state: GameState, story: StoryData | None) -> None:
        if node is None:
            return
        if isinstance(node, ChoiceNodeDef):
            LOGGER.warning("Skipping operations on choice node %s", node.id)
            return
        if story is None:
            LOGGER.warning("No story loaded; skipping operations for node %s", node.id)
            return

        for operation in node.operations:
            if not operation.enabled:
                continue
            variable = state.variables.get(operation.variable_id)
            if variable is None:
                LOGGER.warning(
                    "Operation %s targets unknown variable %s", operation.id, operation.variable_id
                )
                continue
            try:
                target_value = self._resolve_target_value(operation, state)
            except _UnresolvedTarget:
                LOGGER.warning("Operation %s reads unknown variable; skipped", operation.id)
                continue

            previous_value = variable.value
            result_value = apply_operation(operation, previous_value, variable.kind, target_value)
            variable.value = result_value
            state.executed_operations.append(
                OperationPlayback(
                    operation=operation,
                    result_value=result_value,
                    previous_value=previous_value,
                    executed_in_node_id=node.id,
                    history_index=len(state.history),
                )
            )
            if self._event_channel is not None:
                self._event_channel.emit(
                    OperationExecutedEvent(
                        node_id=node.id,
                        operation=operation,
                        previous_value=previous_value,
                        result_value=result_value,
                    )
                )

    def rollback_node_operations(
        self, node_id: str, state: GameState, *, history_index: int | None = None
    ) -> int:
        """Undo every logged operation owned by ``node_id``, newest first.

        With ``history_index`` only the entries recorded for that particular visit
        are undone, so earlier visits of the same node keep their effects.
        """
        node_entries = [entry for entry in state.executed_operations if _owned_by(entry, node_id, history_index)]
        for entry in reversed(node_entries):
            self._rollback_entry(entry, state)
        if node_entries:
            state.executed_operations = [
                entry for entry in state.executed_operations if not _owned_by(entry, node_id, history_index)
            ]
            if self._event_channel is not None:
                self._event_channel.emit(OperationsRolledBackEvent(node_id=node_id, count=len(node_entries)))
        return len(node_entries)

    def rollback_last_operations(self, count: int, state: GameState) -> int:
        if count <= 0 or not state.executed_operations:
            return 0
        last_entries = state.executed_operations[-count:]
        for entry in reversed(last_entries):
            self._rollback_entry(entry, state)
        del state.executed_operations[-len(last_entries):]
        return len(last_entries)

    def verify_rollback_capability(self, state: GameState) -> List[RollbackIssue]:
        issues: List[RollbackIssue] = []
        for entry in state.executed_operations:
            kind = entry.operation.kind
            if entry.previous_value is None and kind in ("override", "join"):
                issues.append(
                    RollbackIssue(entry, f"{kind} cannot be reversed exactly without a recorded previous value")
                )
            if entry.executed_in_node_id is None:
                issues.append(RollbackIssue(entry, "operation is not linked to a node and cannot be grouped"))
            if entry.variable_id not in state.variables:
                issues.append(RollbackIssue(entry, f"variable {entry.variable_id} is missing from the state"))
        return issues

    @staticmethod
    def _resolve_target_value(operation: VariableOperationDef, state: GameState) -> VariableValue | None:
        target = operation.target
        if target is None:
            return None
        if target.source == "variable":
            if not target.variable_id:
                return None
            source = state.variables.get(target.variable_id)
            if source is None:
                raise _UnresolvedTarget(target.variable_id)
            return source.value
        return target.value

    def _rollback_entry(self, entry: OperationPlayback, state: GameState) -> None:
        variable = state.variables.get(entry.variable_id)
        if variable is None:
            LOGGER.warning("Cannot roll back operation %s: variable %s is gone", entry.operation.id, entry.variable_id)
            return
        if entry.previous_value is not None:
            variable.value = entry.previous_value
            return
        variable.value = _approximate_inverse(entry.operation, variable)


def _owned_by(entry: OperationPlayback, node_id: str, history_index: int | None) -> bool:
    if entry.executed_in_node_id != node_id:
        return False
    return history_index is None or entry.history_index == history_index


def apply_operation(
    operation: VariableOperationDef,
    current_value: VariableValue,
    kind: VariableKind,
    target_value: VariableValue | None,
) -> VariableValue:
    """Return the new value of a variable after ``operation``; unchanged when not applicable."""
    operation_kind = operation.kind
    if operation_kind == "override":
        return current_value if target_value is None else target_value
    if operation_kind in _ARITHMETIC_KINDS:
        return _apply_arithmetic(operation, current_value, kind, target_value)
    if operation_kind == "invert":
        if kind == "boolean" and isinstance(current_value, bool):
            return not current_value
        LOGGER.warning("invert on non-boolean variable %s ignored", operation.variable_id)
        return current_value
    if operation_kind == "join":
        if kind == "string":
            return to_text(current_value) + to_text(target_value)
        LOGGER.warning("join on non-string variable %s ignored", operation.variable_id)
        return current_value
    LOGGER.warning("Unknown operation kind %r on %s", operation_kind, operation.id)
    return current_value


def _apply_arithmetic(
    operation: VariableOperationDef,
    current_value: VariableValue,
    kind: VariableKind,
    target_value: VariableValue | None,
) -> VariableValue:
    left = to_number(current_value)
    right = to_number(target_value)
    if left is None or right is None:
        LOGGER.warning("%s on %s needs numeric operands; ignored", operation.kind, operation.variable_id)
        return current_value
    if operation.kind == "addition":
        result = left + right
    elif operation.kind == "subtract":
        result = left - right
    elif operation.kind == "multiply":
        result = left * right
    else:
        if right == 0:
            return current_value
        result = left / right
    if not math.isfinite(result):
        LOGGER.warning("%s on %s overflows; value left unchanged", operation.kind, operation.variable_id)
        return current_value
    return _normalize_number(result, kind)


def _normalize_number(value: float, kind: VariableKind) -> VariableValue:
    if kind == "integer":
        return round_half_up(value)
    return value


def _approximate_inverse(operation: VariableOperationDef, variable: Variable) -> VariableValue:
    """Best-effort undo for log entries without a previous value.

    Lossy: ``override`` and ``join`` have no inverse and leave the value as is,
    and integer rounding in the forward step is not recoverable.
    """
    current = variable.value
    amount = to_number(operation.target.value) if operation.target is not None else None
    kind = operation.kind
    if kind in ("override", "join"):
        LOGGER.warning("Cannot reverse %s on %s without its previous value", kind, variable.id)
        return current
    if kind == "invert":
        return not current if variable.kind == "boolean" and isinstance(current, bool) else current
    number = to_number(current)
    if number is None or amount is None:
        LOGGER.warning("Cannot reverse %s on %s: non-numeric operands", kind, variable.id)
        return current
    if kind == "addition":
        result = number - amount
    elif kind == "subtract":
        result = number + amount
    elif kind in ("multiply", "divide"):
        if amount == 0:
            return current
        result = number / amount if kind == "multiply" else number * amount
    else:
        LOGGER.warning("Unknown operation kind %r in rollback", kind)
        return current
    if not math.isfinite(result):
        LOGGER.warning("Cannot reverse %s on %s: result overflows", kind, variable.id)
        return current
    return _normalize_number(result, variable.kind)
