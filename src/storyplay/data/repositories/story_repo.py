"""Repository for exported story graphs."""
from __future__ import annotations

import logging
from pathlib import Path
from typing import List, Tuple, get_args

from storyplay.core.types import Comparator, VariableKind
from storyplay.data.errors import DataReferenceError, DataValidationError
from storyplay.data.repositories.base import RepositoryBase
from storyplay.domain.defs import (
    ChoiceNodeDef,
    ConditionDef,
    ConditionGroupDef,
    LinkDef,
    NarrativeNodeDef,
    NodeDef,
    NodeHappenedConditionDef,
    NodeNotHappenedConditionDef,
    OperationTargetDef,
    ProbabilityConditionDef,
    StoryData,
    VariableComparisonConditionDef,
    VariableDef,
    VariableOperationDef,
)
from storyplay.domain.values import coerce_value, to_number
from storyplay.services.story_graph_validator import format_issue, validate_story_graph

LOGGER = logging.getLogger(__name__)

_VARIABLE_KINDS = frozenset(get_args(VariableKind))
_COMPARATORS = frozenset(get_args(Comparator))


class StoryRepository(RepositoryBase[StoryData]):
    """Loads a story export and validates its structure.

    With ``strict`` set the loaded graph is also checked by the story graph
    validator and any ERROR issue raises ``DataReferenceError``.
    """

    def __init__(
        self,
        filename: str = "story.json",
        base_path: Path | str | None = None,
        *,
        strict: bool = False,
    ) -> None:
        super().__init__(filename, base_path)
        self._strict = strict

    @classmethod
    def from_file(cls, path: Path | str, *, strict: bool = False) -> "StoryRepository":
        file_path = Path(path)
        return cls(file_path.name, file_path.parent, strict=strict)

    def get_story(self) -> StoryData:
        return self._ensure_loaded()

    def _build(self, raw: dict[str, object]) -> StoryData:
        title = self._optional_str(raw.get("title"), "story.title") or ""
        data = self._require_mapping(raw.get("data"), "story.data")
        nodes = self._parse_nodes(data.get("nodes"))
        links = self._parse_links(data.get("edges", []))
        variables = self._parse_variables(data.get("variables", []))
        story = StoryData(title=title, nodes=nodes, links=links, variables=variables)
        if self._strict:
            self._check_references(story)
        return story

    def _check_references(self, story: StoryData) -> None:
        issues = validate_story_graph(story)
        errors = [issue for issue in issues if issue.severity == "ERROR"]
        for issue in issues:
            if issue.severity != "ERROR":
                LOGGER.warning("%s", format_issue(issue))
        if errors:
            details = "; ".join(format_issue(issue) for issue in errors)
            raise DataReferenceError(f"Story graph in {self._get_file_path()} is invalid: {details}")

    def _parse_nodes(self, raw_nodes: object) -> Tuple[NodeDef, ...]:
        nodes: List[NodeDef] = []
        for index, entry in enumerate(self._require_list(raw_nodes, "story.data.nodes")):
            context = f"story.data.nodes[{index}]"
            node_data = self._require_mapping(entry, context)
            node_id = self._require_str(node_data.get("id"), f"{context}.id")
            node_type = self._require_str(node_data.get("type"), f"{context}.type")
            if node_type not in ("narrative", "choice"):
                LOGGER.debug("Skipping node %s of unsupported type %r", node_id, node_type)
                continue
            payload = node_data.get("data")
            payload = {} if payload is None else self._require_mapping(payload, f"{context}.data")
            text = self._optional_str(payload.get("text"), f"{context}.data.text") or ""
            operations = self._parse_operations(node_data.get("operations"), node_id, context)
            if node_type == "narrative":
                title = self._optional_str(payload.get("title"), f"{context}.data.title") or ""
                nodes.append(NarrativeNodeDef(id=node_id, title=title, text=text, operations=operations))
            else:
                nodes.append(ChoiceNodeDef(id=node_id, text=text, operations=operations))
        return tuple(nodes)

    def _parse_operations(
        self, raw_operations: object, node_id: str, node_context: str
    ) -> Tuple[VariableOperationDef, ...]:
        if raw_operations is None:
            return ()
        context = f"{node_context}.operations"
        operations: List[VariableOperationDef] = []
        for index, entry in enumerate(self._require_list(raw_operations, context)):
            op_context = f"{context}[{index}]"
            op_data = self._require_mapping(entry, op_context)
            target = None
            if op_data.get("target") is not None:
                target = self._parse_target(op_data["target"], f"{op_context}.target")
            enabled = op_data.get("enabled", True)
            if not isinstance(enabled, bool):
                raise DataValidationError(f"{op_context}.enabled must be a boolean.")
            order = op_data.get("order", index)
            if isinstance(order, bool) or not isinstance(order, int):
                raise DataValidationError(f"{op_context}.order must be an integer.")
            operations.append(
                VariableOperationDef(
                    id=self._require_str(op_data.get("id"), f"{op_context}.id"),
                    node_id=self._optional_str(op_data.get("nodeId"), f"{op_context}.nodeId") or node_id,
                    variable_id=self._require_str(op_data.get("variableId"), f"{op_context}.variableId"),
                    kind=self._require_str(op_data.get("operationType"), f"{op_context}.operationType"),
                    target=target,
                    enabled=enabled,
                    order=order,
                )
            )
        return tuple(operations)

    def _parse_target(self, raw_target: object, context: str) -> OperationTargetDef:
        target = self._require_mapping(raw_target, context)
        source = target.get("type", "custom")
        if source not in ("custom", "variable"):
            raise DataValidationError(f"{context}.type must be 'custom' or 'variable'.")
        return OperationTargetDef(
            source=source,
            value=self._scalar(target.get("value"), f"{context}.value"),
            variable_id=self._optional_str(target.get("variableId"), f"{context}.variableId"),
        )

    def _parse_links(self, raw_links: object) -> Tuple[LinkDef, ...]:
        links: List[LinkDef] = []
        for index, entry in enumerate(self._require_list(raw_links, "story.data.edges")):
            context = f"story.data.edges[{index}]"
            link_data = self._require_mapping(entry, context)
            link_id = self._require_str(link_data.get("id"), f"{context}.id")
            payload = link_data.get("data")
            payload = {} if payload is None else self._require_mapping(payload, f"{context}.data")
            groups = self._parse_groups(payload.get("conditions"), link_id, f"{context}.data.conditions")
            links.append(
                LinkDef(
                    id=link_id,
                    source_id=self._require_str(link_data.get("source"), f"{context}.source"),
                    target_id=self._require_str(link_data.get("target"), f"{context}.target"),
                    conditions=groups,
                )
            )
        return tuple(links)

    def _parse_groups(self, raw_groups: object, link_id: str, context: str) -> Tuple[ConditionGroupDef, ...]:
        if raw_groups is None:
            return ()
        groups: List[ConditionGroupDef] = []
        for index, entry in enumerate(self._require_list(raw_groups, context)):
            group_context = f"{context}[{index}]"
            group_data = self._require_mapping(entry, group_context)
            operator = group_data.get("operator", "AND")
            if not isinstance(operator, str) or operator.upper() not in ("AND", "OR"):
                raise DataValidationError(f"{group_context}.operator must be 'AND' or 'OR'.")
            raw_conditions = group_data.get("conditions")
            conditions = tuple(
                self._parse_condition(condition, f"{group_context}.conditions[{position}]")
                for position, condition in enumerate(
                    [] if raw_conditions is None else self._require_list(raw_conditions, f"{group_context}.conditions")
                )
            )
            groups.append(
                ConditionGroupDef(
                    id=self._optional_str(group_data.get("id"), f"{group_context}.id") or f"{link_id}:{index}",
                    operator=operator.upper(),
                    conditions=conditions,
                )
            )
        return tuple(groups)

    def _parse_condition(self, raw_condition: object, context: str) -> ConditionDef:
        data = self._require_mapping(raw_condition, context)
        condition_id = self._require_str(data.get("id"), f"{context}.id")
        condition_type = self._require_str(data.get("type"), f"{context}.type")
        if condition_type == "probability":
            return ProbabilityConditionDef(id=condition_id, probability=to_number(data.get("probability")))
        if condition_type in ("node_happened", "node_not_happened"):
            node_id = self._optional_str(data.get("nodeId"), f"{context}.nodeId")
            if condition_type == "node_happened":
                return NodeHappenedConditionDef(id=condition_id, node_id=node_id)
            return NodeNotHappenedConditionDef(id=condition_id, node_id=node_id)
        if condition_type == "variable_comparison":
            comparator = data.get("operator")
            if comparator is not None and comparator not in _COMPARATORS:
                raise DataValidationError(f"{context}.operator must be one of {sorted(_COMPARATORS)}.")
            value_source = data.get("valType", "custom")
            if value_source not in ("custom", "variable"):
                raise DataValidationError(f"{context}.valType must be 'custom' or 'variable'.")
            return VariableComparisonConditionDef(
                id=condition_id,
                variable_id=self._optional_str(data.get("varId"), f"{context}.varId"),
                comparator=comparator,
                value_source=value_source,
                value=self._scalar(data.get("value"), f"{context}.value"),
                comparison_variable_id=self._optional_str(data.get("comparisonVarId"), f"{context}.comparisonVarId"),
                percent_literal=data.get("percentType") is True,
            )
        raise DataValidationError(f"{context}.type {condition_type!r} is not a known condition type.")

    def _parse_variables(self, raw_variables: object) -> Tuple[VariableDef, ...]:
        variables: List[VariableDef] = []
        for index, entry in enumerate(self._require_list(raw_variables, "story.data.variables")):
            context = f"story.data.variables[{index}]"
            variable_data = self._require_mapping(entry, context)
            variable_id = self._require_str(variable_data.get("id"), f"{context}.id")
            kind = variable_data.get("type")
            if kind not in _VARIABLE_KINDS:
                raise DataValidationError(f"{context}.type must be one of {sorted(_VARIABLE_KINDS)}.")
            value = coerce_value(kind, variable_data.get("value"))
            if value is None:
                raise DataValidationError(f"{context}.value is not a valid {kind}.")
            variables.append(
                VariableDef(
                    id=variable_id,
                    name=self._optional_str(variable_data.get("name"), f"{context}.name") or variable_id,
                    kind=kind,
                    value=value,
                )
            )
        return tuple(variables)

    @staticmethod
    def _scalar(value: object, context: str) -> str | int | float | bool | None:
        if value is None or isinstance(value, (str, int, float, bool)):
            return value
        raise DataValidationError(f"{context} must be a string, number or boolean.")
