"""Service layer exports."""

from .conditions import ConditionEvaluator, EvaluationContext, GroupEvaluation, LinkEvaluation
from .event_log import EventLogger, PlaybackLogEntry
from .events import (
    ChoiceSelectedEvent,
    ChoiceView,
    ConditionEvaluatedEvent,
    ConditionGroupEvaluatedEvent,
    ConditionResult,
    EngineEvent,
    EventChannel,
    NavigationBackEvent,
    NodeVisitedEvent,
    OperationExecutedEvent,
    OperationsRolledBackEvent,
    StoryRestartedEvent,
)
from .operations_service import OperationsService, RollbackIssue
from .path_resolver import PathPriority, PathResolution, PathResolver
from .story_engine import StoryEngine
from .story_graph_validator import Issue, format_issue, validate_story_graph

__all__ = [
    "ChoiceSelectedEvent",
    "ChoiceView",
    "ConditionEvaluatedEvent",
    "ConditionEvaluator",
    "ConditionGroupEvaluatedEvent",
    "ConditionResult",
    "EngineEvent",
    "EvaluationContext",
    "EventChannel",
    "EventLogger",
    "GroupEvaluation",
    "Issue",
    "LinkEvaluation",
    "NavigationBackEvent",
    "NodeVisitedEvent",
    "OperationExecutedEvent",
    "OperationsRolledBackEvent",
    "OperationsService",
    "PathPriority",
    "PathResolution",
    "PathResolver",
    "PlaybackLogEntry",
    "RollbackIssue",
    "StoryEngine",
    "StoryRestartedEvent",
    "format_issue",
    "validate_story_graph",
]
