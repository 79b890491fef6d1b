from storyplay.core.rng import RNG
from storyplay.domain.defs import ChoiceNodeDef, NarrativeNodeDef, ProbabilityConditionDef
from storyplay.services import (
    ChoiceSelectedEvent,
    ConditionEvaluatedEvent,
    ConditionGroupEvaluatedEvent,
    EventChannel,
    NavigationBackEvent,
    NodeVisitedEvent,
    StoryEngine,
    StoryRestartedEvent,
)
from storyplay.services.events import ChoiceView
from tests.helpers.story_factory import and_group, choice, compare, link, narrative, op, story, var


def _branching_story():
    return story(
        [
            narrative("start", "", op("o-start", "start", "score", "addition", 5)),
            choice("go-left", "Go left"),
            choice("go-right", ""),
            narrative("left", "", op("o-left", "left", "score", "addition", 10)),
            narrative("right"),
            narrative("end"),
        ],
        [
            link("start", "go-left"),
            link("start", "go-right"),
            link("go-left", "left"),
            link("go-right", "right"),
            link("left", "end"),
            link("right", "end"),
        ],
        [var("score", "integer", 10), var("brave", "boolean", False)],
    )


def _engine(data=None, seed: int = 1) -> StoryEngine:
    engine = StoryEngine(rng=RNG(seed))
    engine.initialize(data or _branching_story())
    return engine


def _begin(engine: StoryEngine) -> NarrativeNodeDef:
    start = engine.get_start_node()
    engine.visit_node(start.id)
    return start


def test_calls_before_initialize_are_inert() -> None:
    engine = StoryEngine(rng=RNG(1))
    assert engine.get_story_data() is None
    assert engine.get_start_node() is None
    assert engine.get_current_node() is None
    assert engine.visit_node("start") is None
    assert engine.execute_choice("go-left") is None
    assert engine.get_next_node("start") is None
    assert engine.get_available_choices("start") == []
    assert engine.go_back() is None
    assert engine.move_forward("start") is None
    assert engine.update_display_history_on_back("waterfall") == []
    assert engine.get_state().history == []


def test_start_node_is_narrative_without_incoming_links() -> None:
    data = story([narrative("middle"), narrative("origin")], [link("origin", "middle")])
    assert _engine(data).get_start_node().id == "origin"


def test_start_node_falls_back_to_first_narrative() -> None:
    data = story([choice("c"), narrative("a"), narrative("b")], [link("a", "b"), link("b", "a")])
    assert _engine(data).get_start_node().id == "a"


def test_visit_node_records_history_and_runs_operations() -> None:
    engine = _engine()
    received = []
    engine.events.on(received.append)

    _begin(engine)

    state = engine.get_state()
    assert state.history == ["start"]
    assert state.visited_nodes == {"start"}
    assert state.variables["score"].value == 15
    visit = [event for event in received if isinstance(event, NodeVisitedEvent)]
    assert visit[0].node_id == "start" and visit[0].node_type == "narrative"


def test_visit_node_with_choice_returns_it_unrecorded() -> None:
    engine = _engine()
    node = engine.visit_node("go-left")
    assert isinstance(node, ChoiceNodeDef)
    assert engine.get_state().history == []


def test_available_choices_lists_choice_tier() -> None:
    engine = _engine()
    _begin(engine)

    choices = engine.get_available_choices("start")

    assert [(c.id, c.text, c.has_next_node, c.is_virtual) for c in choices] == [
        ("go-left", "Go left", True, False),
        ("go-right", "Choice", True, False),
    ]
    assert engine.get_next_node("start").id == "go-left"


def test_available_choices_gives_virtual_continue_for_narrative_path() -> None:
    engine = _engine()
    _begin(engine)
    engine.execute_choice("go-left")

    choices = engine.get_available_choices("left")

    assert len(choices) == 1
    assert choices[0].is_virtual
    assert choices[0].id == "end"
    assert choices[0].text == "Continue"


def test_execute_choice_visits_next_narrative_node() -> None:
    engine = _engine()
    received = []
    engine.events.on(received.append)
    _begin(engine)

    result = engine.execute_choice("go-left")

    assert result.id == "left"
    state = engine.get_state()
    assert state.history == ["start", "left"]
    assert {"start", "go-left", "left"} <= state.visited_nodes
    assert state.variables["score"].value == 25
    selected = [event for event in received if isinstance(event, ChoiceSelectedEvent)]
    assert selected[0].node_id == "start"
    assert selected[0].choice.id == "go-left"


def test_execute_choice_rejects_narrative_nodes() -> None:
    engine = _engine()
    _begin(engine)
    assert engine.execute_choice("left") is None
    assert engine.get_state().history == ["start"]


def test_execute_choice_returns_chained_choice_without_visiting() -> None:
    data = story(
        [narrative("start"), choice("c1", "Open"), choice("c2", "Really open"), narrative("end")],
        [link("start", "c1"), link("c1", "c2"), link("c2", "end")],
    )
    engine = _engine(data)
    _begin(engine)
    received = []
    engine.events.on(received.append)

    result = engine.execute_choice("c1")

    assert isinstance(result, ChoiceNodeDef)
    assert result.id == "c2"
    state = engine.get_state()
    assert state.history == ["start"]
    assert "c2" not in state.visited_nodes
    assert not [event for event in received if isinstance(event, NodeVisitedEvent)]


def test_history_only_contains_narrative_nodes() -> None:
    engine = _engine()
    _begin(engine)
    engine.execute_choice("go-right")
    engine.move_forward("right")
    data = engine.get_story_data()
    for node_id in engine.get_state().history:
        assert isinstance(data.get_node(node_id), NarrativeNodeDef)


def test_go_back_boundaries() -> None:
    engine = _engine()
    _begin(engine)
    assert engine.go_back() is None
    assert engine.get_state().history == ["start"]

    engine.execute_choice("go-left")
    previous = engine.go_back()

    assert previous.id == "start"
    assert engine.get_state().history == ["start"]


def test_go_back_rolls_back_operations_of_left_node() -> None:
    engine = _engine()
    received = []
    engine.events.on(received.append)
    _begin(engine)
    engine.execute_choice("go-left")
    assert engine.get_state().variables["score"].value == 25

    engine.go_back()

    state = engine.get_state()
    assert state.variables["score"].value == 15
    assert [entry.operation.id for entry in state.executed_operations] == ["o-start"]
    back = [event for event in received if isinstance(event, NavigationBackEvent)]
    assert (back[0].from_node_id, back[0].to_node_id) == ("left", "start")


def test_visited_nodes_survive_go_back() -> None:
    engine = _engine()
    _begin(engine)
    engine.execute_choice("go-left")
    before = engine.get_state().visited_nodes
    engine.go_back()
    assert before <= engine.get_state().visited_nodes


def test_restart_resets_exactly() -> None:
    engine = _engine()
    received = []
    engine.events.on(received.append)
    _begin(engine)
    engine.execute_choice("go-left")
    engine.set_variable("brave", True)

    start = engine.restart()

    state = engine.get_state()
    assert start.id == "start"
    assert state.history == []
    assert state.visited_nodes == set()
    assert state.executed_operations == []
    assert {key: variable.value for key, variable in state.variables.items()} == {"score": 10, "brave": False}
    assert isinstance(received[-1], StoryRestartedEvent)


def test_move_forward_does_not_leave_first_node_unless_forced() -> None:
    data = story([narrative("a"), narrative("b")], [link("a", "b")])
    engine = _engine(data)
    _begin(engine)

    assert engine.move_forward("a").id == "a"
    assert engine.get_state().history == ["a"]
    assert engine.handle_direct_narrative_transition("a") is None

    assert engine.move_forward("a", force_move=True).id == "b"
    assert engine.get_state().history == ["a", "b"]


def test_handle_direct_narrative_transition_follows_continue() -> None:
    data = story([narrative("a"), choice("c"), narrative("b"), narrative("d")], [link("a", "c"), link("c", "b"), link("b", "d")])
    engine = _engine(data)
    _begin(engine)
    engine.execute_choice("c")

    assert engine.handle_direct_narrative_transition("b").id == "d"
    assert engine.get_state().history == ["a", "b", "d"]


def test_move_forward_stops_at_choice_nodes() -> None:
    engine = _engine()
    _begin(engine)
    result = engine.move_forward("start", force_move=True)
    assert isinstance(result, ChoiceNodeDef)
    assert engine.get_state().history == ["start"]


def test_conditional_path_records_triggered_conditions() -> None:
    data = story(
        [narrative("a"), narrative("b"), narrative("secret"), narrative("plain")],
        [
            link("a", "b"),
            link("b", "secret", and_group("g", compare("rich", "gold", "gte", 5)), link_id="to-secret"),
            link("b", "plain"),
        ],
        [var("gold", "integer", 7)],
    )
    engine = _engine(data)
    received = []
    engine.events.on(received.append)
    _begin(engine)
    engine.move_forward("a", force_move=True)

    result = engine.move_forward("b")

    assert result.id == "secret"
    triggered = engine.get_state().triggered_conditions
    assert [(t.condition.id, t.result, t.edge_id, t.node_id) for t in triggered] == [("rich", True, "to-secret", "b")]
    assert any(isinstance(event, ConditionEvaluatedEvent) for event in received)
    assert any(isinstance(event, ConditionGroupEvaluatedEvent) and event.group_result for event in received)


def test_get_next_node_does_not_record_conditions() -> None:
    data = story(
        [narrative("a"), narrative("b")],
        [link("a", "b", and_group("g", ProbabilityConditionDef(id="p", probability=1.0)))],
    )
    engine = _engine(data)
    _begin(engine)
    assert engine.get_next_node("a").id == "b"
    assert engine.get_state().triggered_conditions == []
    assert engine.get_state().history == ["a"]


def test_display_history_novel_and_waterfall() -> None:
    engine = _engine()
    start = _begin(engine)
    assert [node.id for node in engine.get_display_history("novel", start)] == ["start"]

    engine.add_choice_to_display_history(engine.get_available_choices("start")[0])
    left = engine.execute_choice("go-left")
    assert [node.id for node in engine.get_display_history("waterfall", left)] == ["start", "go-left", "left"]

    engine.go_back()
    remaining = engine.update_display_history_on_back("waterfall")
    assert [node.id for node in remaining] == ["start"]


def test_waterfall_rebuilds_choices_from_history() -> None:
    engine = _engine()
    start = _begin(engine)
    engine.get_display_history("novel", start)
    left = engine.execute_choice("go-left")
    engine.get_display_history("novel", left)

    display = engine.get_display_history("waterfall", left)

    assert [node.id for node in display] == ["start", "go-left", "left"]


def test_update_display_history_on_back_novel_shows_current() -> None:
    engine = _engine()
    _begin(engine)
    engine.execute_choice("go-left")
    engine.go_back()
    assert [node.id for node in engine.update_display_history_on_back("novel")] == ["start"]


def test_add_choice_to_display_history_accepts_unknown_choice() -> None:
    engine = _engine()
    _begin(engine)
    engine.add_choice_to_display_history(ChoiceView(id="ad-hoc", text="Improvise", has_next_node=False))
    assert engine.get_state().display_history[-1] == ChoiceNodeDef(id="ad-hoc", text="Improvise")


def test_set_variable_coerces_to_kind() -> None:
    engine = _engine()
    assert engine.set_variable("score", "12.6")
    assert engine.set_variable("brave", "true")
    assert not engine.set_variable("score", "lots")
    assert not engine.set_variable("ghost", 1)
    state = engine.get_state()
    assert state.variables["score"].value == 13
    assert state.variables["brave"].value is True
    assert state.executed_operations == []


def test_set_variable_manually_stores_raw_value() -> None:
    engine = _engine()
    assert engine.set_variable_manually("score", "raw")
    assert not engine.set_variable_manually("ghost", 1)
    assert engine.get_state().variables["score"].value == "raw"


def test_get_state_returns_snapshot() -> None:
    engine = _engine()
    _begin(engine)
    snapshot = engine.get_state()
    snapshot.history.append("tampered")
    snapshot.variables["score"].value = -1
    state = engine.get_state()
    assert state.history == ["start"]
    assert state.variables["score"].value == 15


def test_custom_labels_and_shared_channel() -> None:
    channel = EventChannel()
    engine = StoryEngine(rng=RNG(1), event_channel=channel, continue_label="Next", default_choice_label="...")
    engine.initialize(_branching_story())
    _begin(engine)
    assert engine.events is channel
    assert engine.get_available_choices("start")[1].text == "..."
    engine.execute_choice("go-left")
    assert engine.get_available_choices("left")[0].text == "Next"


def test_node_kind_helpers() -> None:
    engine = _engine()
    assert engine.is_narrative_node(engine.get_node("start"))
    assert engine.is_choice_node(engine.get_node("go-left"))
    assert not engine.is_choice_node(None)
