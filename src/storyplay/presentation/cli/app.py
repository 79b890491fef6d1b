"""Console-driven playback loop for story exports."""
from __future__ import annotations

import argparse
import logging
import secrets
from typing import Literal, Sequence

from storyplay.core.rng import RNG
from storyplay.core.types import DisplayMode
from storyplay.data.errors import DataError
from storyplay.data.repositories import StoryRepository
from storyplay.presentation.cli.config import load_config, resolve_log_level, save_config
from storyplay.presentation.cli.render import (
    debug_enabled,
    render_choices,
    render_commands,
    render_heading,
    render_history,
)
from storyplay.services import ChoiceView, EventLogger, PlaybackLogEntry, StoryEngine

LOGGER = logging.getLogger(__name__)

Command = Literal["back", "restart", "quit"]
_COMMANDS: dict[str, Command] = {"b": "back", "r": "restart", "q": "quit"}
_MAX_RANDOM_SEED = 2**31 - 1


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="storyplay", description="Play an exported branching story.")
    parser.add_argument("story", help="Path to the story JSON export.")
    parser.add_argument("--seed", type=int, default=None, help="Seed for probability checks.")
    parser.add_argument(
        "--mode",
        choices=("novel", "waterfall"),
        default=None,
        help="Show only the current beat (novel) or the whole path (waterfall).",
    )
    parser.add_argument(
        "--save-mode",
        action="store_true",
        help="Remember --mode as the default display mode.",
    )
    return parser


def main(argv: Sequence[str] | None = None) -> int:
    """Start the interactive CLI session."""
    args = build_parser().parse_args(argv)
    config = load_config()
    logging.basicConfig(level=resolve_log_level(config), format="%(levelname)s %(name)s: %(message)s")
    mode: DisplayMode = args.mode or config["display_mode"]
    if args.save_mode and args.mode:
        save_config({**config, "display_mode": args.mode})

    try:
        story = StoryRepository.from_file(args.story).get_story()
    except DataError as exc:
        print(f"Could not load story: {exc}")
        return 1

    seed = args.seed if args.seed is not None else secrets.randbelow(_MAX_RANDOM_SEED)
    engine = StoryEngine(rng=RNG(seed))
    event_logger = EventLogger()
    event_logger.connect(engine.events)
    engine.initialize(story)

    start_node = engine.get_start_node()
    if start_node is None:
        print("This story has no narrative node to start from.")
        return 1
    print(f"=== {story.title or 'Untitled story'} ===")
    LOGGER.debug("Playing with seed %d", seed)
    engine.visit_node(start_node.id)
    _run_story_loop(engine, event_logger, mode)
    print("Goodbye!")
    return 0


def _run_story_loop(engine: StoryEngine, event_logger: EventLogger, mode: DisplayMode) -> None:
    last_shown: PlaybackLogEntry | None = None
    while True:
        current = engine.get_current_node()
        if current is None:
            return
        render_history(engine.get_display_history(mode, current))
        choices = engine.get_available_choices(current.id)
        if choices:
            render_choices(choices)
        else:
            print("\nThe End.")
        if debug_enabled():
            last_shown = _render_log(event_logger, last_shown)
        render_commands()

        selection = _prompt_selection(len(choices))
        if selection == "quit":
            return
        if selection == "back":
            if engine.go_back() is None:
                print("You are at the beginning.")
            else:
                engine.update_display_history_on_back(mode)
                last_shown = _last_entry(event_logger)
            continue
        if selection == "restart":
            start_node = engine.restart()
            if start_node is not None:
                engine.visit_node(start_node.id)
            last_shown = None
            continue
        _take_choice(engine, current.id, choices[selection], mode)


def _take_choice(engine: StoryEngine, node_id: str, choice: ChoiceView, mode: DisplayMode) -> None:
    if choice.is_virtual:
        engine.move_forward(node_id, force_move=True)
        return
    if mode == "waterfall":
        engine.add_choice_to_display_history(choice)
    if engine.execute_choice(choice.id) is None:
        print("That choice leads nowhere yet.")


def _render_log(event_logger: EventLogger, last_shown: PlaybackLogEntry | None) -> PlaybackLogEntry | None:
    """Print entries recorded after ``last_shown``; everything when it is gone from the log."""
    entries = event_logger.entries
    start = 0
    for index in range(len(entries) - 1, -1, -1):
        if entries[index] is last_shown:
            start = index + 1
            break
    fresh = entries[start:]
    if fresh:
        render_heading("Log")
        for entry in fresh:
            print(f"- [{entry.node_id}] {entry.message}")
    return _last_entry(event_logger)


def _last_entry(event_logger: EventLogger) -> PlaybackLogEntry | None:
    entries = event_logger.entries
    return entries[-1] if entries else None


def _prompt_selection(choice_count: int) -> int | Command:
    while True:
        raw = input("Select an option: ").strip().lower()
        if raw in ("b", "r", "q"):
            return _COMMANDS[raw]
        try:
            index = int(raw) - 1
        except ValueError:
            print("Please enter a number, b, r or q.")
            continue
        if 0 <= index < choice_count:
            return index
        if choice_count:
            print(f"Please enter a value between 1 and {choice_count}.")
        else:
            print("There are no choices here. Enter b, r or q.")