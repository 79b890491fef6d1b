import pytest

from storyplay.core.rng import RNG
from storyplay.domain.defs import VariableOperationDef
from storyplay.domain.state import GameState, OperationPlayback
from storyplay.services import StoryEngine
from storyplay.services.events import EventChannel, OperationExecutedEvent, OperationsRolledBackEvent
from storyplay.services.operations_service import OperationsService, apply_operation
from tests.helpers.story_factory import choice, narrative, op, story, var


def _setup(*variables, operations=()):
    node = narrative("room", "", *operations)
    data = story([node], variables=variables)
    state = GameState()
    state.reset_variables(data.variables)
    return node, data, state


def test_addition_records_previous_value_and_rolls_back_exactly() -> None:
    node, data, state = _setup(var("score", "integer", 10), operations=[op("o1", "room", "score", "addition", 5)])
    service = OperationsService()

    service.execute_operations(node, state, data)

    assert state.variables["score"].value == 15
    entry = state.executed_operations[0]
    assert entry.previous_value == 10
    assert entry.result_value == 15
    assert entry.executed_in_node_id == "room"

    assert service.rollback_node_operations("room", state) == 1
    assert state.variables["score"].value == 10
    assert state.executed_operations == []


def test_divide_by_zero_leaves_value_but_is_logged() -> None:
    node, data, state = _setup(var("score", "integer", 10), operations=[op("o1", "room", "score", "divide", 0)])
    OperationsService().execute_operations(node, state, data)
    assert state.variables["score"].value == 10
    assert len(state.executed_operations) == 1


@pytest.mark.parametrize(("kind", "start"), [("integer", 10**200), ("float", 1e200), ("percent", 1e200)])
def test_overflowing_arithmetic_leaves_value_but_is_logged(kind: str, start: object) -> None:
    node, data, state = _setup(var("big", kind, start), operations=[op("o1", "room", "big", "multiply", 1e200)])
    OperationsService().execute_operations(node, state, data)
    assert state.variables["big"].value == start
    entry = state.executed_operations[0]
    assert entry.previous_value == start
    assert entry.result_value == start


def test_overflowing_operation_does_not_break_playback() -> None:
    data = story(
        [narrative("start", "", op("o1", "start", "big", "multiply", 1e200))],
        variables=[var("big", "integer", 10**200)],
    )
    engine = StoryEngine(rng=RNG(1))
    engine.initialize(data)

    assert engine.visit_node("start").id == "start"
    assert engine.get_state().variables["big"].value == 10**200


def test_integers_too_large_for_floats_are_left_alone() -> None:
    operation = op("o", "room", "big", "addition", 1)
    assert apply_operation(operation, 10**400, "integer", 1) == 10**400


@pytest.mark.parametrize(
    ("kind", "value", "expected"),
    [
        ("subtract", 3, 7),
        ("multiply", 3, 30),
        ("divide", 4, 3),
        ("divide", 3, 3),
        ("addition", 0.5, 11),
        ("override", 42, 42),
    ],
)
def test_integer_arithmetic_rounds_half_up(kind: str, value: object, expected: int) -> None:
    operation = op("o", "room", "score", kind, value)
    assert apply_operation(operation, 10, "integer", value) == expected


def test_float_arithmetic_keeps_fraction() -> None:
    operation = op("o", "room", "ratio", "divide", 4)
    assert apply_operation(operation, 10.0, "float", 4) == 2.5


def test_invert_and_join() -> None:
    node, data, state = _setup(
        var("lit", "boolean", False),
        var("log", "string", "a"),
        operations=[op("o1", "room", "lit", "invert"), op("o2", "room", "log", "join", "b")],
    )
    OperationsService().execute_operations(node, state, data)
    assert state.variables["lit"].value is True
    assert state.variables["log"].value == "ab"


def test_invert_and_join_ignore_wrong_kinds() -> None:
    assert apply_operation(op("o", "n", "v", "invert"), 3, "integer", None) == 3
    assert apply_operation(op("o", "n", "v", "join", "x"), 3, "integer", "x") == 3


def test_target_from_variable() -> None:
    node, data, state = _setup(
        var("gold", "integer", 5),
        var("bonus", "integer", 7),
        operations=[op("o1", "room", "gold", "addition", source="variable", target_variable_id="bonus")],
    )
    OperationsService().execute_operations(node, state, data)
    assert state.variables["gold"].value == 12


def test_unknown_variables_and_disabled_operations_are_skipped() -> None:
    node, data, state = _setup(
        var("gold", "integer", 5),
        operations=[
            op("o1", "room", "ghost", "addition", 1),
            op("o2", "room", "gold", "addition", source="variable", target_variable_id="ghost"),
            op("o3", "room", "gold", "addition", 1, enabled=False),
        ],
    )
    OperationsService().execute_operations(node, state, data)
    assert state.variables["gold"].value == 5
    assert state.executed_operations == []


def test_operations_run_in_stored_order() -> None:
    node, data, state = _setup(
        var("score", "integer", 2),
        operations=[op("o1", "room", "score", "addition", 3), op("o2", "room", "score", "multiply", 10)],
    )
    OperationsService().execute_operations(node, state, data)
    assert state.variables["score"].value == 50


def test_choice_nodes_and_missing_story_do_nothing() -> None:
    node, data, state = _setup(var("score", "integer", 1))
    service = OperationsService()
    service.execute_operations(choice("c"), state, data)
    service.execute_operations(node, state, None)
    assert state.executed_operations == []


def test_rollback_restores_in_reverse_order() -> None:
    node, data, state = _setup(
        var("score", "integer", 2),
        operations=[op("o1", "room", "score", "addition", 3), op("o2", "room", "score", "override", 99)],
    )
    service = OperationsService()
    service.execute_operations(node, state, data)
    assert state.variables["score"].value == 99

    service.rollback_node_operations("room", state)
    assert state.variables["score"].value == 2


def test_rollback_by_history_index_keeps_earlier_visits() -> None:
    node, data, state = _setup(var("score", "integer", 0), operations=[op("o1", "room", "score", "addition", 1)])
    service = OperationsService()
    service.execute_operations(node, state, data)
    state.history.append("room")
    service.execute_operations(node, state, data)
    state.history.append("room")
    assert state.variables["score"].value == 2

    assert service.rollback_node_operations("room", state, history_index=1) == 1
    assert state.variables["score"].value == 1
    assert len(state.executed_operations) == 1


def test_rollback_emits_event_only_when_something_was_undone() -> None:
    channel = EventChannel()
    received = []
    channel.on(received.append)
    node, data, state = _setup(var("score", "integer", 0), operations=[op("o1", "room", "score", "addition", 1)])
    service = OperationsService(channel)

    assert service.rollback_node_operations("room", state) == 0
    service.execute_operations(node, state, data)
    service.rollback_node_operations("room", state)

    assert [type(event) for event in received] == [OperationExecutedEvent, OperationsRolledBackEvent]
    assert received[1].count == 1


def test_rollback_last_operations() -> None:
    node, data, state = _setup(
        var("score", "integer", 1),
        operations=[op("o1", "room", "score", "addition", 1), op("o2", "room", "score", "addition", 10)],
    )
    service = OperationsService()
    service.execute_operations(node, state, data)

    assert service.rollback_last_operations(1, state) == 1
    assert state.variables["score"].value == 2
    assert service.rollback_last_operations(0, state) == 0
    assert [entry.operation.id for entry in state.executed_operations] == ["o1"]


def test_rollback_without_previous_value_uses_inverse() -> None:
    state = GameState()
    state.reset_variables([var("score", "integer", 15)])
    addition = op("o1", "room", "score", "addition", 5)
    state.executed_operations.append(OperationPlayback(addition, 15, None, "room"))

    OperationsService().rollback_node_operations("room", state)

    assert state.variables["score"].value == 10


def test_verify_rollback_capability_reports_problems() -> None:
    state = GameState()
    state.reset_variables([var("name", "string", "x")])
    override = op("o1", "room", "name", "override", "y")
    orphan = VariableOperationDef(id="o2", node_id="room", variable_id="ghost", kind="addition")
    state.executed_operations = [
        OperationPlayback(override, "y", None, "room"),
        OperationPlayback(orphan, 1, 0, None),
    ]

    issues = OperationsService().verify_rollback_capability(state)

    assert len(issues) == 3
    assert issues[0].operation.operation.id == "o1"
    assert {issue.operation.operation.id for issue in issues[1:]} == {"o2"}
