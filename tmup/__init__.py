"""Paths, failure state, terminal formatting and tmux helpers for a tmux plugin manager."""

__version__ = "0.1.0"
__all__ = ["state", "termui", "tmux"]