"""Static story graph validation utilities."""
from __future__ import annotations

from dataclasses import dataclass
from typing import Iterable, Mapping, Sequence

from storyplay.domain.defs import (
    ChoiceNodeDef,
    ConditionGroupDef,
    LinkDef,
    NarrativeNodeDef,
    NodeDef,
    NodeHappenedConditionDef,
    NodeNotHappenedConditionDef,
    StoryData,
    VariableComparisonConditionDef,
)


Severity = str


@dataclass(frozen=True, slots=True)
class Issue:
    severity: Severity
    code: str
    message: str
    context: dict[str, str]


def format_issue(issue: Issue) -> str:
    context = " ".join(f"{key}={value}" for key, value in issue.context.items())
    suffix = f" ({context})" if context else ""
    return f"[{issue.severity}] {issue.code}: {issue.message}{suffix}"


def has_errors(issues: Iterable[Issue]) -> bool:
    return any(issue.severity == "ERROR" for issue in issues)


def validate_story_graph(story: StoryData) -> list[Issue]:
    """Report structural problems of ``story`` without playing it."""
    issues: list[Issue] = []
    _validate_duplicate_ids(story, issues)

    node_ids = {node.id for node in story.nodes}
    variable_ids = {variable.id for variable in story.variables}

    for index, link in enumerate(story.links):
        _validate_link_endpoints(link, index, node_ids, issues)
        _validate_link_conditions(link, node_ids, variable_ids, issues)

    for node in story.nodes:
        _validate_node_operations(node, variable_ids, issues)

    start_id = _find_start_node_id(story)
    if start_id is None:
        issues.append(
            Issue(
                severity="ERROR",
                code="MISSING_START_NODE",
                message="Story has no narrative node to start from.",
                context={"title": story.title},
            )
        )
    else:
        _validate_reachability(story, start_id, issues)

    _validate_dead_end_choices(story, issues)
    return issues


def _validate_duplicate_ids(story: StoryData, issues: list[Issue]) -> None:
    for code, label, ids in (
        ("DUPLICATE_NODE_ID", "node", [node.id for node in story.nodes]),
        ("DUPLICATE_LINK_ID", "link", [link.id for link in story.links]),
        ("DUPLICATE_VARIABLE_ID", "variable", [variable.id for variable in story.variables]),
    ):
        for duplicate in _duplicates(ids):
            issues.append(
                Issue(
                    severity="ERROR",
                    code=code,
                    message=f"Duplicate {label} id detected.",
                    context={f"{label}_id": duplicate},
                )
            )


def _duplicates(ids: Sequence[str]) -> list[str]:
    seen: set[str] = set()
    duplicates: list[str] = []
    for item in ids:
        if item in seen and item not in duplicates:
            duplicates.append(item)
        seen.add(item)
    return duplicates


def _validate_link_endpoints(link: LinkDef, index: int, node_ids: set[str], issues: list[Issue]) -> None:
    for field_name, referenced_id in (("source", link.source_id), ("target", link.target_id)):
        if referenced_id in node_ids:
            continue
        issues.append(
            Issue(
                severity="ERROR",
                code="MISSING_LINK_ENDPOINT",
                message=f"Link {field_name} references missing node.",
                context={
                    "link_id": link.id,
                    "field_path": f"edges[{index}].{field_name}",
                    "referenced_id": referenced_id,
                },
            )
        )


def _validate_link_conditions(
    link: LinkDef,
    node_ids: set[str],
    variable_ids: set[str],
    issues: list[Issue],
) -> None:
    for group_index, group in enumerate(link.conditions):
        for condition_index, condition in enumerate(group.conditions):
            field_path = f"conditions[{group_index}].conditions[{condition_index}]"
            for referenced_id, kind in _condition_references(condition):
                known = variable_ids if kind == "variable" else node_ids
                if referenced_id in known:
                    continue
                issues.append(
                    Issue(
                        severity="WARN",
                        code="UNKNOWN_VARIABLE_REF" if kind == "variable" else "UNKNOWN_NODE_REF",
                        message=f"Condition references unknown {kind}; it will evaluate to false.",
                        context={"link_id": link.id, "field_path": field_path, "referenced_id": referenced_id},
                    )
                )
        _validate_group_operator(link, group, group_index, issues)


def _condition_references(condition: object) -> list[tuple[str, str]]:
    references: list[tuple[str, str]] = []
    if isinstance(condition, VariableComparisonConditionDef):
        references.append((condition.variable_id or "", "variable"))
        if condition.value_source == "variable":
            references.append((condition.comparison_variable_id or "", "variable"))
    elif isinstance(condition, (NodeHappenedConditionDef, NodeNotHappenedConditionDef)):
        references.append((condition.node_id or "", "node"))
    return references


def _validate_group_operator(link: LinkDef, group: ConditionGroupDef, group_index: int, issues: list[Issue]) -> None:
    if group.operator in ("AND", "OR"):
        return
    issues.append(
        Issue(
            severity="WARN",
            code="UNKNOWN_GROUP_OPERATOR",
            message="Condition group operator is neither AND nor OR; the group is ignored.",
            context={"link_id": link.id, "field_path": f"conditions[{group_index}].operator"},
        )
    )


def _validate_node_operations(node: NodeDef, variable_ids: set[str], issues: list[Issue]) -> None:
    if isinstance(node, ChoiceNodeDef) and node.operations:
        issues.append(
            Issue(
                severity="WARN",
                code="CHOICE_OPERATIONS_IGNORED",
                message="Operations on choice nodes are never executed.",
                context={"node_id": node.id},
            )
        )
    for index, operation in enumerate(node.operations):
        referenced = [operation.variable_id]
        if operation.target is not None and operation.target.source == "variable":
            referenced.append(operation.target.variable_id or "")
        for variable_id in referenced:
            if variable_id in variable_ids:
                continue
            issues.append(
                Issue(
                    severity="WARN",
                    code="UNKNOWN_VARIABLE_REF",
                    message="Operation references unknown variable; it will be skipped.",
                    context={
                        "node_id": node.id,
                        "field_path": f"operations[{index}]",
                        "referenced_id": variable_id,
                    },
                )
            )


def _find_start_node_id(story: StoryData) -> str | None:
    targets = {link.target_id for link in story.links}
    narrative_ids = [node.id for node in story.nodes if isinstance(node, NarrativeNodeDef)]
    for node_id in narrative_ids:
        if node_id not in targets:
            return node_id
    return narrative_ids[0] if narrative_ids else None


def _validate_reachability(story: StoryData, start_id: str, issues: list[Issue]) -> None:
    adjacency: dict[str, list[str]] = {}
    for link in story.links:
        adjacency.setdefault(link.source_id, []).append(link.target_id)
    node_ids = {node.id for node in story.nodes}
    reachable = _reachable_from(start_id, adjacency, node_ids)
    for node_id in sorted(node_ids - reachable):
        issues.append(
            Issue(
                severity="WARN",
                code="UNREACHABLE_NODE",
                message="Node is unreachable from the start node.",
                context={"node_id": node_id},
            )
        )


def _reachable_from(start_id: str, adjacency: Mapping[str, list[str]], node_ids: set[str]) -> set[str]:
    reachable: set[str] = set()
    stack = [start_id]
    while stack:
        node_id = stack.pop()
        if node_id in reachable:
            continue
        reachable.add(node_id)
        for next_id in adjacency.get(node_id, []):
            if next_id in node_ids:
                stack.append(next_id)
    return reachable


def _validate_dead_end_choices(story: StoryData, issues: list[Issue]) -> None:
    sources = {link.source_id for link in story.links}
    for node in story.nodes:
        if isinstance(node, ChoiceNodeDef) and node.id not in sources:
            issues.append(
                Issue(
                    severity="WARN",
                    code="DEAD_END_CHOICE",
                    message="Choice node has no outgoing links.",
                    context={"node_id": node.id},
                )
            )
