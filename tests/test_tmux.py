import subprocess
from pathlib import Path
from unittest import mock

import pytest

from tmup.tmux import (
    InitUiKind,
    InitUiMode,
    InitUiTarget,
    RunShell,
    SetEnvironment,
    SetOption,
    TmuxError,
    TmuxVersion,
    current_init_ui_target,
    display_message,
    execute,
    execute_plan,
    init_ui_mode,
    parse_tmux_version,
    probe_init_ui_target,
    read_tmux_version,
    shell_env_assignment,
    shell_join,
    shell_quote,
    wait_for,
)


def completed(returncode=0, stdout=b"", stderr=b""):
    return subprocess.CompletedProcess(["tmux"], returncode, stdout, stderr)


def test_set_option_args_prefix_key():
    cmd = SetOption(key="pa_theme", value="dark")
    assert cmd.to_args() == ["set", "-g", "@pa_theme", "dark"]
    assert cmd == SetOption("pa_theme", "dark")


def test_set_environment_args():
    cmd = SetEnvironment("TMUX_PLUGIN_MANAGER_PATH", "/plugins/")
    assert cmd.to_args() == ["set-environment", "-g", "TMUX_PLUGIN_MANAGER_PATH", "/plugins/"]


def test_run_shell_quotes_script():
    cmd = RunShell(Path("/p/it's/00-first.tmux"))
    assert cmd.to_args() == ["run-shell", "'/p/it'\"'\"'s/00-first.tmux'"]


def test_shell_helpers():
    assert shell_quote("plain") == "'plain'"
    assert shell_join(["a b", "c"]) == "'a b' 'c'"
    assert shell_env_assignment("TMUP_CONFIG_MODE", "mixed") == "TMUP_CONFIG_MODE='mixed'"


@pytest.mark.parametrize(
    "raw, expected",
    [
        ("tmux 3.3a\n", TmuxVersion(3, 3, "a")),
        ("tmux 3.2", TmuxVersion(3, 2, None)),
        ("tmux next-3.4", TmuxVersion(3, 4, None)),
        ("tmux 2.9-rc", TmuxVersion(2, 9, None)),
        ("tmux master", None),
        ("tmux 3", None),
        ("tmux 3.", None),
    ],
)
def test_parse_tmux_version(raw, expected):
    assert parse_tmux_version(raw) == expected


def test_version_feature_thresholds():
    assert TmuxVersion(3, 3).supports_popup_title()
    assert not TmuxVersion(3, 2).supports_popup_title()
    assert TmuxVersion(3, 2).supports_popup()
    assert not TmuxVersion(3, 1).supports_popup()
    assert TmuxVersion(2, 0).supports_split_ui()
    assert not TmuxVersion(1, 9).supports_split_ui()


@pytest.mark.parametrize(
    "stdout, expected",
    [
        (b"tmux 3.4\n", InitUiMode(InitUiKind.POPUP, True)),
        (b"tmux 3.2a\n", InitUiMode(InitUiKind.POPUP, False)),
        (b"tmux 2.8\n", InitUiMode(InitUiKind.SPLIT)),
        (b"tmux 1.8\n", InitUiMode(InitUiKind.INLINE)),
    ],
)
def test_init_ui_mode_by_version(stdout, expected):
    with mock.patch("subprocess.run", return_value=completed(stdout=stdout)):
        assert init_ui_mode() == expected


def test_init_ui_mode_without_tmux_is_inline():
    with mock.patch("subprocess.run", side_effect=FileNotFoundError("tmux")):
        assert read_tmux_version() is None
        assert init_ui_mode() == InitUiMode(InitUiKind.INLINE)


def test_execute_passes_args():
    cmd = SetOption("k", "v")
    args = cmd.to_args()
    assert args == ["set", "-g", "@k", "v"]
    with mock.patch("subprocess.run", return_value=completed()) as run:
        execute(cmd)
    assert run.call_args.args[0] == ["tmux", *args]


def test_execute_failure_raises_with_stderr():
    with mock.patch("subprocess.run", return_value=completed(1, stderr=b"no server")):
        with pytest.raises(TmuxError, match="tmux set-environment failed: no server"):
            execute(SetEnvironment("A", "B"))


def test_execute_plan_stops_at_first_failure():
    results = [completed(), completed(1, stderr=b"bad"), completed()]
    with mock.patch("subprocess.run", side_effect=results) as run:
        with pytest.raises(TmuxError):
            execute_plan([SetOption("a", "1"), SetOption("b", "2"), SetOption("c", "3")])
    assert run.call_count == 2


def test_current_init_ui_target_reads_client_and_pane():
    results = [completed(stdout=b"/dev/pts/0\n"), completed(stdout=b"%1\n")]
    with mock.patch("subprocess.run", side_effect=results):
        assert current_init_ui_target() == InitUiTarget("/dev/pts/0", "%1")


def test_current_init_ui_target_empty_pane_is_none():
    results = [completed(stdout=b"/dev/pts/0\n"), completed(stdout=b"\n")]
    with mock.patch("subprocess.run", side_effect=results):
        assert current_init_ui_target() is None


def test_probe_backs_off_then_gives_up():
    with mock.patch("subprocess.run", return_value=completed(1)) as run, mock.patch(
        "time.sleep"
    ) as sleep:
        assert probe_init_ui_target() is None
    delays = [call.args[0] for call in sleep.call_args_list]
    assert delays == pytest.approx([0.02, 0.04, 0.08, 0.16, 0.32, 0.64, 1.28])
    assert run.call_count == 8


def test_probe_returns_first_success_without_sleeping():
    results = [completed(stdout=b"c\n"), completed(stdout=b"%2\n")]
    with mock.patch("subprocess.run", side_effect=results), mock.patch("time.sleep") as sleep:
        assert probe_init_ui_target() == InitUiTarget("c", "%2")
    assert sleep.call_count == 0


def test_wait_for_failure_raises():
    with mock.patch("subprocess.run", return_value=completed(1)):
        with pytest.raises(TmuxError, match="wait-for failed"):
            wait_for("chan")


def test_display_message_failure_raises():
    with mock.patch("subprocess.run", return_value=completed(1, stderr=b"oops")):
        with pytest.raises(TmuxError, match="display-message failed: oops"):
            display_message("hello")