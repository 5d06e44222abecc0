"""Filesystem layout, build-failure markers and the cross-process operation lock."""

from __future__ import annotations

import dataclasses
import fcntl
import hashlib
import json
import os
import time
from dataclasses import dataclass
from pathlib import Path
from typing import IO, Any

_HOME_ERROR = "HOME must be set to an absolute path"


class StateError(Exception):
    """Raised when tmup state paths, ids or lock files cannot be used."""


def _parent_of(path: Path) -> Path:
    parent = path.parent
    if parent == path:
        raise StateError(f"config path has no parent directory: {path}")
    return parent


@dataclass
class Paths:
    """All filesystem paths used by tmup."""

    plugin_root: Path
    staging_root: Path
    lock_path: Path
    failures_root: Path
    logs_root: Path
    init_results_root: Path
    config_path: Path
    lockfile_path: Path
    repo_cache_root: Path

    @classmethod
    def _from_roots(
        cls, data: Path, state: Path, config_path: Path, lockfile_path: Path
    ) -> Paths:
        return cls(
            plugin_root=data / "plugins",
            staging_root=data / ".staging",
            lock_path=state / "operations.lock",
            failures_root=state / "failures",
            logs_root=state / "logs",
            init_results_root=state / "init-results",
            config_path=config_path,
            lockfile_path=lockfile_path,
            repo_cache_root=data / ".repos",
        )

    @classmethod
    def resolve(cls, config_path: str | os.PathLike[str] | None = None) -> Paths:
        """Resolve paths from the XDG base directories, optionally overriding the config path."""
        try:
            home: Path | None = resolve_home_dir(os.environ.get("HOME"))
        except StateError:
            home = None
        data_dir = _xdg_dir("XDG_DATA_HOME", ".local/share", home) / "tmup"
        state_dir = _xdg_dir("XDG_STATE_HOME", ".local/state", home) / "tmup"
        if config_path is None:
            config = _xdg_dir("XDG_CONFIG_HOME", ".config", home) / "tmux" / "tmup.kdl"
        else:
            config = Path(config_path)
        lockfile = _parent_of(config) / "tmup.lock"
        return cls._from_roots(data_dir, state_dir, config, lockfile)

    @classmethod
    def for_test(
        cls, data_root: str | os.PathLike[str], state_root: str | os.PathLike[str]
    ) -> Paths:
        """Build a path set rooted at explicit data and state directories."""
        state = Path(state_root)
        return cls._from_roots(
            Path(data_root), state, state / "tmup.kdl", state / "tmup.lock"
        )

    @classmethod
    def from_runtime_roots(
        cls,
        data_root: str | os.PathLike[str],
        state_root: str | os.PathLike[str],
        config_path: str | os.PathLike[str],
    ) -> Paths:
        """Reconstruct paths from roots handed down by a parent process."""
        config = Path(config_path)
        lockfile = _parent_of(config) / "tmup.lock"
        return cls._from_roots(Path(data_root), Path(state_root), config, lockfile)

    def set_config_path(self, config_path: str | os.PathLike[str]) -> None:
        """Override the active config path and retarget the lockfile next to it."""
        config = Path(config_path)
        self.lockfile_path = _parent_of(config) / "tmup.lock"
        self.config_path = config

    def with_config_path(self, config_path: str | os.PathLike[str]) -> Paths:
        """Return a copy pointing at another config and lockfile pair."""
        paths = dataclasses.replace(self)
        paths.set_config_path(config_path)
        return paths

    def ensure_dirs(self) -> None:
        """Create every directory tmup needs."""
        for directory in (
            self.plugin_root,
            self.staging_root,
            self.failures_root,
            self.logs_root,
            self.init_results_root,
            self.repo_cache_root,
            self.lock_path.parent,
        ):
            directory.mkdir(parents=True, exist_ok=True)

    def data_root(self) -> Path:
        """The data root, the parent of the plugin root."""
        return self.plugin_root.parent

    def state_root(self) -> Path:
        """The state root, the parent of the failures root."""
        return self.failures_root.parent

    def init_result_path(self, wait_channel: str) -> Path:
        """Path of the init result file for a wait channel."""
        return self.init_results_root / f"{build_command_hash(wait_channel)[:16]}.json"

    def plugin_dir(self, plugin_id: str) -> Path:
        """Install directory of a remote plugin."""
        validate_plugin_id(plugin_id)
        return self.plugin_root / plugin_id

    def repo_cache_dir(self, plugin_id: str) -> Path:
        """Repository cache directory of a remote plugin."""
        validate_plugin_id(plugin_id)
        return self.repo_cache_root / f"{plugin_id}.git"

    def staging_dir(self, plugin_id: str) -> Path:
        """Staging directory for an operation on a plugin by this process."""
        validate_plugin_id(plugin_id)
        digest = build_command_hash(plugin_id)[:12]
        return self.staging_root / f"{digest}-{os.getpid()}"


def validate_plugin_id(plugin_id: str) -> None:
    """Raise StateError if a plugin id contains unsafe path segments."""
    if not plugin_id:
        raise StateError("unsafe plugin id: empty")
    for segment in plugin_id.split("/"):
        if not segment or segment in (".", "..") or "\\" in segment:
            raise StateError(f'unsafe plugin id segment: "{segment}"')


def resolve_home_dir(home: str | None) -> Path:
    """Validate a HOME value and return it as an absolute path."""
    if not home:
        raise StateError(_HOME_ERROR)
    path = Path(home)
    if not path.is_absolute():
        raise StateError(_HOME_ERROR)
    return path


def _xdg_dir(var: str, fallback_suffix: str, home: Path | None) -> Path:
    value = os.environ.get(var)
    if value is not None and Path(value).is_absolute():
        return Path(value)
    if home is None:
        raise StateError(_HOME_ERROR)
    return home / fallback_suffix


def build_command_hash(text: str) -> str:
    """Lower-case hex SHA-256 of a string."""
    return hashlib.sha256(text.encode("utf-8")).hexdigest()


@dataclass(frozen=True)
class FailureKey:
    """Identifies a known build failure, used to suppress automatic retries."""

    plugin_id: str
    commit: str
    build_hash: str

    def filename(self) -> str:
        """File name under which this failure marker is stored."""
        combined = f"{self.plugin_id}:{self.commit}:{self.build_hash}"
        return f"{build_command_hash(combined)[:16]}.json"


@dataclass
class FailureMarker:
    """A persisted record of a build failure."""

    plugin_id: str
    commit: str
    build_hash: str
    build_command: str
    failed_at: str
    stderr_summary: str

    def key(self) -> FailureKey:
        """The key that uniquely identifies this marker."""
        return FailureKey(self.plugin_id, self.commit, self.build_hash)

    def to_dict(self) -> dict[str, str]:
        """Serialisable mapping of the marker fields."""
        return dataclasses.asdict(self)

    @classmethod
    def from_dict(cls, data: Any) -> FailureMarker:
        """Build a marker from a mapping, raising StateError if it is malformed."""
        if not isinstance(data, dict):
            raise StateError("failure marker must be a JSON object")
        values = {}
        for field in dataclasses.fields(cls):
            value = data.get(field.name)
            if not isinstance(value, str):
                raise StateError(f"failure marker field {field.name!r} must be a string")
            values[field.name] = value
        return cls(**values)


def write_failure_marker(failures_root: str | os.PathLike[str], marker: FailureMarker) -> None:
    """Write a failure marker to disk."""
    root = Path(failures_root)
    root.mkdir(parents=True, exist_ok=True)
    (root / marker.key().filename()).write_text(
        json.dumps(marker.to_dict(), indent=2), encoding="utf-8"
    )


def _marker_files(root: Path):
    for path in sorted(root.iterdir()):
        if path.suffix != ".json":
            continue
        try:
            marker = FailureMarker.from_dict(json.loads(path.read_text(encoding="utf-8")))
        except (OSError, ValueError, StateError):
            continue
        yield path, marker


def read_failure_markers(failures_root: str | os.PathLike[str]) -> list[FailureMarker]:
    """Read every readable failure marker; unreadable or malformed files are skipped."""
    root = Path(failures_root)
    if not root.exists():
        return []
    return [marker for _, marker in _marker_files(root)]


def clear_failure_markers(failures_root: str | os.PathLike[str], plugin_id: str) -> None:
    """Remove all failure markers that belong to a plugin."""
    root = Path(failures_root)
    if not root.exists():
        return
    for path, marker in list(_marker_files(root)):
        if marker.plugin_id == plugin_id:
            path.unlink()


def has_failure_marker(failures_root: str | os.PathLike[str], key: FailureKey) -> bool:
    """Whether a marker for this failure key exists."""
    return (Path(failures_root) / key.filename()).exists()


def timestamp_now() -> str:
    """Current wall-clock timestamp for failure markers."""
    return f"{max(int(time.time()), 0)}s-since-epoch"


class OperationLockGuard:
    """Holds the exclusive operation lock until released or the context exits."""

    def __init__(self, handle: IO[bytes]) -> None:
        self._handle: IO[bytes] | None = handle

    @property
    def held(self) -> bool:
        return self._handle is not None

    def release(self) -> None:
        """Release the lock by closing the lock file; safe to call twice."""
        if self._handle is not None:
            handle, self._handle = self._handle, None
            handle.close()

    def __enter__(self) -> OperationLockGuard:
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.release()


class OperationLock:
    """Cross-process mutual exclusion through an exclusive flock on a lock file."""

    @staticmethod
    def _open_lock_file(lock_path: Path) -> IO[bytes]:
        try:
            lock_path.parent.mkdir(parents=True, exist_ok=True)
            fd = os.open(lock_path, os.O_RDWR | os.O_CREAT, 0o644)
        except OSError as err:
            raise StateError(f"failed to open lock file: {lock_path}: {err}") from err
        return os.fdopen(fd, "r+b")

    @classmethod
    def acquire(cls, lock_path: str | os.PathLike[str]) -> OperationLockGuard:
        """Acquire the exclusive lock, blocking until it is available."""
        handle = cls._open_lock_file(Path(lock_path))
        try:
            fcntl.flock(handle.fileno(), fcntl.LOCK_EX)
        except OSError as err:
            handle.close()
            raise StateError(f"failed to acquire lock: {err}") from err
        return OperationLockGuard(handle)

    @classmethod
    def try_acquire(cls, lock_path: str | os.PathLike[str]) -> OperationLockGuard | None:
        """Try to acquire the exclusive lock; return None if it is already held."""
        handle = cls._open_lock_file(Path(lock_path))
        try:
            fcntl.flock(handle.fileno(), fcntl.LOCK_EX | fcntl.LOCK_NB)
        except BlockingIOError:
            handle.close()
            return None
        except OSError as err:
            handle.close()
            raise StateError(f"failed to acquire lock: {err}") from err
        return OperationLockGuard(handle)