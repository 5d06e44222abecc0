# tmup

Building blocks for a tmux plugin manager. The package has three parts:

- `tmup.state` finds the XDG data, state and config locations. It also stores
  build-failure markers and holds a cross-process operation lock.
- `tmup.termui` formats labelled terminal lines. It uses ANSI styling and
  truncates text to a given display width, so wide characters such as CJK are
  counted correctly.
- `tmup.tmux` builds tmux commands, quotes them for the shell and runs them. It
  also parses `tmux -V` output and picks a UI mode (popup, split or inline) for
  the running tmux version.

## Paths

```python
from tmup.state import Paths

paths = Paths.resolve(None)          # XDG_* variables, falling back to $HOME
paths.ensure_dirs()

paths.plugin_dir("github.com/tmux-plugins/tmux-sensible")
paths.repo_cache_dir("github.com/tmux-plugins/tmux-sensible")
paths.lockfile_path                  # tmup.lock next to the active config
```

Plugin ids are checked before they are used to build a path. The check rejects
empty segments, `.`, `..` and backslashes. Call `validate_plugin_id` to run the
check on its own.

## Failure markers

When a build fails, record it so that automatic runs do not retry the same
build on the same commit:

```python
from tmup.state import (
    FailureMarker, build_command_hash, timestamp_now,
    write_failure_marker, has_failure_marker, clear_failure_markers,
)

marker = FailureMarker(
    plugin_id="github.com/user/repo",
    commit="abc123",
    build_hash=build_command_hash("make"),
    build_command="make",
    failed_at=timestamp_now(),
    stderr_summary="error",
)
write_failure_marker(paths.failures_root, marker)
assert has_failure_marker(paths.failures_root, marker.key())
clear_failure_markers(paths.failures_root, "github.com/user/repo")
```

## Operation lock

```python
from tmup.state import OperationLock

with OperationLock.acquire(paths.lock_path):
    ...  # exclusive across processes

guard = OperationLock.try_acquire(paths.lock_path)  # None if already held
```

## Terminal output

```python
from tmup.termui import Accent, format_styled_labeled_line_clamped, truncate_display_width

truncate_display_width("abcdef", 4)     # "abc…"
truncate_display_width("你好世界", 5)    # "你好…"
format_styled_labeled_line_clamped("Synced", 12, "github.com/user/repo", Accent.INFO, 40)
```

## tmux

```python
from tmup.tmux import SetOption, parse_tmux_version, execute_plan, init_ui_mode

SetOption("catppuccin_flavor", "mocha").to_args()
# ["set", "-g", "@catppuccin_flavor", "mocha"]

version = parse_tmux_version("tmux 3.3a")
version.supports_popup_title()          # True

execute_plan([SetOption("catppuccin_flavor", "mocha")])
```

If tmux reports a failure, `TmuxError` is raised. Its message contains tmux's
stderr.