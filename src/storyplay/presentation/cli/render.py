"""Shared CLI rendering helpers."""
from __future__ import annotations

import os
import textwrap
from typing import Sequence

from storyplay.domain.defs import ChoiceNodeDef, NarrativeNodeDef, NodeDef
from storyplay.services import ChoiceView

_TEXT_WIDTH = 78


def debug_enabled() -> bool:
    """Return True only when STORYPLAY_DEBUG is explicitly set to '1'."""
    return os.getenv("STORYPLAY_DEBUG") == "1"


def wrap_text(text: str, width: int = _TEXT_WIDTH) -> list[str]:
    """Wrap text on word boundaries, keeping blank lines between paragraphs."""
    if not text:
        return [""]
    lines: list[str] = []
    for paragraph in text.splitlines():
        if not paragraph.strip():
            lines.append("")
            continue
        lines.extend(
            textwrap.wrap(paragraph, width=width, break_long_words=False, break_on_hyphens=False)
        )
    return lines


def render_heading(title: str) -> None:
    """Print a consistent section heading."""
    print(f"\n=== {title} ===")


def format_node(node: NodeDef) -> list[str]:
    """Return the printable lines of a history entry."""
    lines: list[str] = []
    if debug_enabled():
        lines.append(f"[{node.id}]")
    if isinstance(node, ChoiceNodeDef):
        lines.append(f"> {node.text or node.id}")
        return lines
    if isinstance(node, NarrativeNodeDef) and node.title:
        lines.append(node.title.upper())
    lines.extend(wrap_text(node.text))
    return lines


def render_history(nodes: Sequence[NodeDef]) -> None:
    """Render the display history, separating narrative beats."""
    if not nodes:
        return
    render_heading("Story")
    for idx, node in enumerate(nodes):
        if idx > 0 and isinstance(node, NarrativeNodeDef):
            print("\n---")
        for line in format_node(node):
            print(line)


def render_choices(choices: Sequence[ChoiceView]) -> None:
    """Display numbered story choices."""
    if not choices:
        return
    render_heading("Choices")
    for idx, choice in enumerate(choices, start=1):
        suffix = "" if choice.has_next_node else " (ends here)"
        print(f"{idx}. {choice.text}{suffix}")


def render_commands() -> None:
    print("[b] back  [r] restart  [q] quit")
