"""Playback interpreter for branching narrative graphs."""

__version__ = "0.1.0"
