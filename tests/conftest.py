"""
selfreload Test Configuration.

Pytest fixtures and fakes for the notification source and exec.
Requires Python 3.11+.
"""

import queue
import threading
from collections.abc import Generator
from pathlib import Path

import pytest

from selfreload.reloader import set_reloader
from selfreload.restart import RestartContext
from selfreload.utils.config import Settings
from selfreload.watcher.source import CLOSED, EventKind, FsEvent, StreamItem


class FakeSource:
    """Queue-backed notification source driven by the test."""

    def __init__(self, fail_on: str | None = None) -> None:
        self.added: list[str] = []
        self.close_calls = 0
        self._fail_on = fail_on
        self._queue: queue.Queue[StreamItem] = queue.Queue()

    def add(self, path: str) -> None:
        if path == self._fail_on:
            raise OSError(f"inotify watch limit reached for {path}")
        self.added.append(path)

    def get(self) -> StreamItem:
        return self._queue.get()

    def close(self) -> None:
        self.close_calls += 1
        if self.close_calls == 1:
            self._queue.put(CLOSED)

    def emit(self, path: str | Path, kind: EventKind = EventKind.WRITE) -> None:
        self._queue.put(FsEvent(str(path), kind))

    def fail(self, error: Exception) -> None:
        self._queue.put(error)


class ExecRecorder:
    """Stands in for os.execve and records what would have been executed."""

    def __init__(self, error: OSError | None = None) -> None:
        self.calls: list[tuple[str, list[str], dict[str, str]]] = []
        self.called = threading.Event()
        self._error = error

    def __call__(self, path: str, args: list[str], env: dict[str, str]) -> None:
        self.calls.append((path, list(args), dict(env)))
        self.called.set()
        if self._error is not None:
            raise self._error


class AbortRecorder:
    """Stands in for os._exit."""

    def __init__(self) -> None:
        self.codes: list[int] = []
        self.called = threading.Event()

    def __call__(self, code: int) -> None:
        self.codes.append(code)
        self.called.set()


@pytest.fixture(autouse=True)
def reset_default_reloader() -> Generator[None, None, None]:
    """Keep the process-wide reloader from leaking between tests."""
    set_reloader(None)
    yield
    set_reloader(None)


@pytest.fixture
def settings() -> Settings:
    """Settings independent of the environment."""
    return Settings(exit_code=70)


@pytest.fixture
def program_file(tmp_path: Path) -> Path:
    """A fake program file in its own directory."""
    bin_dir = tmp_path / "bin"
    bin_dir.mkdir()
    program = bin_dir / "daemon.py"
    program.write_text("print('running')\n")
    return program


@pytest.fixture
def templates_dir(tmp_path: Path) -> Path:
    """An additional directory to watch."""
    path = tmp_path / "templates"
    path.mkdir()
    (path / "index.html").write_text("<p>hello</p>\n")
    return path


@pytest.fixture
def fake_source() -> FakeSource:
    """A fresh fake notification source."""
    return FakeSource()


@pytest.fixture
def exec_recorder() -> ExecRecorder:
    """A fake execve that returns (which counts as failure)."""
    return ExecRecorder()


@pytest.fixture
def abort_recorder() -> AbortRecorder:
    """A fake os._exit."""
    return AbortRecorder()


@pytest.fixture
def context(program_file: Path, exec_recorder: ExecRecorder) -> RestartContext:
    """Restart context for a script run as ``python daemon.py --port 8080``."""
    return RestartContext(
        argv=[str(program_file), "--port", "8080"],
        environ={"PATH": "/usr/bin", "APP_ENV": "dev"},
        execve=exec_recorder,
        executable="/usr/bin/python3",
        frozen=False,
        main_spec=None,
    )


class LogRecorder:
    """printf-style log sink that keeps formatted lines."""

    def __init__(self) -> None:
        self.lines: list[str] = []

    def __call__(self, fmt: str, *args: object) -> None:
        self.lines.append(fmt % args if args else fmt)


@pytest.fixture
def log_sink() -> LogRecorder:
    """A recording log sink."""
    return LogRecorder()
