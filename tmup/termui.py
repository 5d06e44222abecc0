"""Terminal text helpers: right-aligned labels, ANSI accents and width-aware truncation."""

from __future__ import annotations

import enum

from wcwidth import wcwidth

_ELLIPSIS = "…"
_ELLIPSIS_WIDTH = 1


class Accent(enum.Enum):
    """Visual accent applied to labelled output lines."""

    BOLD = "bold"
    INFO = "info"
    SUCCESS = "success"
    WARNING = "warning"
    ERROR = "error"
    MUTED = "muted"


_FOREGROUND = {
    Accent.INFO: 36,
    Accent.SUCCESS: 32,
    Accent.WARNING: 33,
    Accent.ERROR: 31,
}


def _bold(text: str) -> str:
    return f"\x1b[1m{text}\x1b[0m"


def _style_text(text: str, accent: Accent) -> str:
    if accent is Accent.MUTED:
        return f"\x1b[2m{text}\x1b[0m"
    styled = _bold(text)
    color = _FOREGROUND.get(accent)
    if color is None:
        return styled
    return f"\x1b[{color}m{styled}\x1b[39m"


def _char_width(ch: str) -> int:
    return max(wcwidth(ch), 0)


def bold(text: str) -> str:
    """Return text wrapped in ANSI bold formatting."""
    return _bold(text)


def display_width(text: str) -> int:
    """Number of terminal columns the text occupies."""
    return sum(_char_width(ch) for ch in text)


def format_plain_labeled_line(label: str, width: int, message: str) -> str:
    """A right-aligned label followed by a message, without styling."""
    return f"{label.rjust(width)} {message}"


def format_styled_labeled_line(label: str, width: int, message: str, accent: Accent) -> str:
    """A right-aligned, styled label followed by a plain message."""
    return f"{_style_text(label.rjust(width), accent)} {message}"


def format_styled_labeled_line_clamped(
    label: str, width: int, message: str, accent: Accent, max_width: int
) -> str:
    """A styled labelled line whose visible width never exceeds max_width."""
    if max_width == 0:
        return ""
    label_segment = truncate_display_width(label.rjust(width), max_width)
    label_width = display_width(label_segment)
    if label_width >= max_width:
        return _style_text(label_segment, accent)
    available = max(max_width - (label_width + 1), 0)
    clamped = truncate_display_width(message, available)
    if not clamped:
        return _style_text(label_segment, accent)
    return f"{_style_text(label_segment, accent)} {clamped}"


def truncate_display_width(text: str, max_width: int) -> str:
    """Truncate a single line to max_width columns, ending with an ellipsis if cut."""
    if max_width == 0:
        return ""
    if display_width(text) <= max_width:
        return text
    if max_width <= _ELLIPSIS_WIDTH:
        return _ELLIPSIS
    kept = []
    used = 0
    for ch in text:
        ch_width = _char_width(ch)
        if used + ch_width + _ELLIPSIS_WIDTH > max_width:
            break
        kept.append(ch)
        used += ch_width
    return "".join(kept) + _ELLIPSIS