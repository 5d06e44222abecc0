"""tmux commands, version detection and init UI helpers driven through the tmux CLI."""

from __future__ import annotations

import enum
import os
import re
import subprocess
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Iterable, Sequence, Union


class TmuxError(Exception):
    """Raised when a tmux command cannot be run or reports failure."""


def shell_quote(value: str) -> str:
    """Quote a value for a POSIX shell using single quotes."""
    return "'" + value.replace("'", "'\"'\"'") + "'"


def shell_join(args: Iterable[str]) -> str:
    """Quote every argument and join them with spaces."""
    return " ".join(shell_quote(arg) for arg in args)


def shell_env_assignment(key: str, value: str) -> str:
    """A shell `KEY='value'` assignment."""
    return f"{key}={shell_quote(value)}"


@dataclass(frozen=True)
class SetEnvironment:
    """Set a global tmux environment variable."""

    key: str
    value: str

    def to_args(self) -> list[str]:
        return ["set-environment", "-g", self.key, self.value]


@dataclass(frozen=True)
class SetOption:
    """Set a global tmux user option (prefixed with `@`)."""

    key: str
    value: str

    def to_args(self) -> list[str]:
        return ["set", "-g", f"@{self.key}", self.value]


@dataclass(frozen=True)
class RunShell:
    """Run a script through `tmux run-shell`."""

    script: Path

    def to_args(self) -> list[str]:
        return ["run-shell", shell_quote(os.fsdecode(self.script))]


TmuxCommand = Union[SetEnvironment, SetOption, RunShell]


@dataclass(frozen=True)
class TmuxVersion:
    """A parsed tmux version such as `3.3a`."""

    major: int
    minor: int
    suffix: str | None = None

    def supports_popup(self) -> bool:
        return (self.major, self.minor) >= (3, 2)

    def supports_popup_title(self) -> bool:
        return (self.major, self.minor) >= (3, 3)

    def supports_split_ui(self) -> bool:
        return (self.major, self.minor) >= (2, 0)


class InitUiKind(enum.Enum):
    """Where the init progress interface is shown."""

    POPUP = "popup"
    SPLIT = "split"
    INLINE = "inline"


@dataclass(frozen=True)
class InitUiMode:
    """The chosen init UI and, for popups, whether titles are supported."""

    kind: InitUiKind
    supports_title: bool = False


@dataclass(frozen=True)
class InitUiTarget:
    """The tmux client and pane that host the init UI."""

    client: str
    pane: str


_U16_MAX = 0xFFFF
_DIGITS = re.compile(r"[0-9]+")
_LEADING_DIGITS = re.compile(r"[0-9]*")


def _parse_u16(text: str) -> int | None:
    if not _DIGITS.fullmatch(text):
        return None
    value = int(text)
    return value if value <= _U16_MAX else None


def parse_tmux_version(raw: str) -> TmuxVersion | None:
    """Parse `tmux -V` output; return None if it holds no version."""
    raw = raw.strip()
    first_digit = re.search(r"[0-9]", raw)
    if first_digit is None:
        return None
    version = raw[first_digit.start():]
    dot = version.find(".")
    if dot < 0:
        return None
    major = _parse_u16(version[:dot])
    if major is None:
        return None
    rest = version[dot + 1:]
    end = _LEADING_DIGITS.match(rest).end()
    if end == 0:
        return None
    minor = _parse_u16(rest[:end])
    if minor is None:
        return None
    tail = rest[end:end + 1]
    suffix = tail if tail.isascii() and tail.isalpha() else None
    return TmuxVersion(major, minor, suffix)


def _run(args: Sequence[str]) -> subprocess.CompletedProcess:
    try:
        return subprocess.run(["tmux", *args], capture_output=True)
    except OSError as err:
        raise TmuxError(f"failed to run tmux: {err}") from err


def _stderr(result: subprocess.CompletedProcess) -> str:
    return (result.stderr or b"").decode("utf-8", "replace")


def read_tmux_version() -> TmuxVersion | None:
    """Version of the installed tmux, or None if it cannot be determined."""
    try:
        result = _run(["-V"])
    except TmuxError:
        return None
    if result.returncode != 0:
        return None
    return parse_tmux_version((result.stdout or b"").decode("utf-8", "replace"))


def init_ui_mode() -> InitUiMode:
    """Best init UI mode the running tmux supports."""
    version = read_tmux_version()
    if version is None:
        return InitUiMode(InitUiKind.INLINE)
    if version.supports_popup():
        return InitUiMode(InitUiKind.POPUP, version.supports_popup_title())
    if version.supports_split_ui():
        return InitUiMode(InitUiKind.SPLIT)
    return InitUiMode(InitUiKind.INLINE)


def execute(command: TmuxCommand) -> None:
    """Run one tmux command, raising TmuxError if it fails."""
    args = command.to_args()
    result = _run(args)
    if result.returncode != 0:
        name = args[0] if args else "?"
        raise TmuxError(f"tmux {name} failed: {_stderr(result)}")


def execute_plan(plan: Iterable[TmuxCommand]) -> None:
    """Run tmux commands in order, stopping at the first failure."""
    for command in plan:
        execute(command)


def _display_message_format(fmt: str) -> str:
    result = _run(["display-message", "-p", fmt])
    if result.returncode != 0:
        raise TmuxError(f"display-message failed: {_stderr(result)}")
    return (result.stdout or b"").decode("utf-8", "replace").strip()


def _read_init_ui_target_once() -> InitUiTarget | None:
    try:
        client = _display_message_format("#{client_name}")
        pane = _display_message_format("#{pane_id}")
    except TmuxError:
        return None
    if not client or not pane:
        return None
    return InitUiTarget(client, pane)


def current_init_ui_target() -> InitUiTarget | None:
    """The client and pane of the current tmux context, if usable."""
    return _read_init_ui_target_once()


_INITIAL_BACKOFF_MS = 20
_MAX_DELAY_MS = 1_000


def probe_init_ui_target() -> InitUiTarget | None:
    """Poll tmux with exponential backoff for a usable client and pane."""
    delay_ms = 0
    while True:
        if delay_ms:
            time.sleep(delay_ms / 1000)
        target = _read_init_ui_target_once()
        if target is not None:
            return target
        if delay_ms >= _MAX_DELAY_MS:
            return None
        delay_ms = _INITIAL_BACKOFF_MS if delay_ms == 0 else delay_ms * 2


def wait_for(channel: str) -> None:
    """Block until `tmux wait-for -S <channel>` is signalled."""
    try:
        result = subprocess.run(["tmux", "wait-for", channel])
    except OSError as err:
        raise TmuxError(f"failed to run tmux: {err}") from err
    if result.returncode != 0:
        raise TmuxError("tmux wait-for failed")


def display_message(message: str) -> None:
    """Show a transient status-bar message."""
    result = _run(["display-message", message])
    if result.returncode != 0:
        raise TmuxError(f"display-message failed: {_stderr(result)}")