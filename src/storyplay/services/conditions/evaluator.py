"""Dispatches conditions to their strategies and applies group and link rules."""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Dict, List, Mapping, Sequence, Tuple

from storyplay.core.rng import RNG
from storyplay.core.types import GroupOperator
from storyplay.domain.defs import ConditionDef, ConditionGroupDef
from storyplay.domain.state import GameState, TriggeredCondition
from storyplay.services.conditions.strategies import CONDITION_STRATEGIES, ConditionStrategy
from storyplay.services.events import (
    ConditionEvaluatedEvent,
    ConditionGroupEvaluatedEvent,
    ConditionResult,
    EventChannel,
)

LOGGER = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class EvaluationContext:
    """Where a check happens. Silent checks are neither recorded nor emitted."""

    node_id: str | None = None
    edge_id: str | None = None
    group_operator: GroupOperator | None = None
    group_id: str | None = None
    silent: bool = False


@dataclass(frozen=True, slots=True)
class GroupEvaluation:
    group: ConditionGroupDef
    passed: bool
    condition_results: Tuple[ConditionResult, ...] = ()


@dataclass(frozen=True, slots=True)
class LinkEvaluation:
    """Outcome of the link-level rule, including every check actually performed."""

    passed: bool
    group_results: Tuple[GroupEvaluation, ...] = field(default_factory=tuple)


class ConditionEvaluator:
    """Evaluates single conditions, AND/OR groups, and the groups attached to a link."""

    def __init__(
        self,
        rng: RNG | None = None,
        event_channel: EventChannel | None = None,
        *,
        strategies: Mapping[str, ConditionStrategy] | None = None,
    ) -> None:
        self._rng = rng or RNG()
        self._event_channel = event_channel
        self._strategies: Dict[str, ConditionStrategy] = dict(strategies or CONDITION_STRATEGIES)

    @property
    def rng(self) -> RNG:
        return self._rng

    def set_rng(self, rng: RNG) -> None:
        self._rng = rng

    def set_event_channel(self, event_channel: EventChannel | None) -> None:
        self._event_channel = event_channel

    def evaluate_condition(
        self,
        condition: ConditionDef,
        state: GameState,
        context: EvaluationContext | None = None,
    ) -> bool:
        kind = getattr(condition, "kind", None)
        strategy = self._strategies.get(kind) if isinstance(kind, str) else None
        if strategy is None:
            LOGGER.warning("No strategy for condition kind %r", kind)
            result = False
        else:
            result = strategy(condition, state, self._rng)
        if context is not None and not context.silent:
            self._record_condition(condition, result, state, context)
        return result

    def evaluate_group(
        self,
        group: ConditionGroupDef,
        state: GameState,
        context: EvaluationContext | None = None,
        *,
        exhaustive: bool = False,
    ) -> GroupEvaluation:
        """Evaluate a group, short-circuiting unless ``exhaustive`` is set.

        The returned results list exactly the conditions that were evaluated.
        """
        is_or = group.operator == "OR"
        condition_context = None
        if context is not None:
            condition_context = EvaluationContext(
                node_id=context.node_id,
                edge_id=context.edge_id,
                group_operator=group.operator,
                group_id=group.id,
                silent=context.silent,
            )
        results: List[ConditionResult] = []
        passed = not is_or
        for condition in group.conditions:
            outcome = self.evaluate_condition(condition, state, condition_context)
            results.append(ConditionResult(condition=condition, result=outcome))
            if is_or and outcome:
                passed = True
                if not exhaustive:
                    break
            elif not is_or and not outcome:
                passed = False
                if not exhaustive:
                    break
        evaluation = GroupEvaluation(group=group, passed=passed, condition_results=tuple(results))
        if context is not None and not context.silent and self._event_channel is not None:
            self._event_channel.emit(
                ConditionGroupEvaluatedEvent(
                    node_id=context.node_id,
                    edge_id=context.edge_id,
                    conditions=evaluation.condition_results,
                    group_operator=group.operator,
                    group_result=passed,
                )
            )
        return evaluation

    def evaluate_condition_group(
        self,
        group: ConditionGroupDef,
        state: GameState,
        context: EvaluationContext | None = None,
    ) -> bool:
        return self.evaluate_group(group, state, context).passed

    def evaluate_connection_conditions(
        self,
        groups: Sequence[ConditionGroupDef],
        state: GameState,
        context: EvaluationContext | None = None,
    ) -> LinkEvaluation:
        """Apply the link rule: any passing OR group validates the link outright,
        otherwise every AND group must pass. Only-OR links with no passing group
        are invalid; links without groups are valid.
        """
        if not groups:
            return LinkEvaluation(passed=True)

        group_results: List[GroupEvaluation] = []
        for group in groups:
            if group.operator != "OR":
                continue
            evaluation = self.evaluate_group(group, state, context)
            group_results.append(evaluation)
            if evaluation.passed:
                return LinkEvaluation(passed=True, group_results=tuple(group_results))

        and_groups = [group for group in groups if group.operator == "AND"]
        if not and_groups:
            return LinkEvaluation(passed=False, group_results=tuple(group_results))

        passed = True
        for group in and_groups:
            evaluation = self.evaluate_group(group, state, context)
            group_results.append(evaluation)
            if not evaluation.passed:
                passed = False
                break
        return LinkEvaluation(passed=passed, group_results=tuple(group_results))

    def _record_condition(
        self,
        condition: ConditionDef,
        result: bool,
        state: GameState,
        context: EvaluationContext,
    ) -> None:
        group_operator = context.group_operator or "AND"
        state.triggered_conditions.append(
            TriggeredCondition(
                condition=condition,
                result=result,
                group_operator=group_operator,
                node_id=context.node_id,
                edge_id=context.edge_id,
                group_id=context.group_id,
            )
        )
        if self._event_channel is not None:
            self._event_channel.emit(
                ConditionEvaluatedEvent(
                    node_id=context.node_id,
                    edge_id=context.edge_id,
                    condition=condition,
                    result=result,
                    group_operator=group_operator,
                )
            )
