"""
selfreload Restart Protocol.

Replaces the running process with a fresh copy of its own program.
Requires Python 3.11+.
"""

import os
import sys
from collections.abc import Callable, Mapping, Sequence
from dataclasses import dataclass
from importlib.machinery import ModuleSpec
from typing import Any, NoReturn

from selfreload.errors import RestartError
from selfreload.utils.logger import LoggerMixin

ExecFunc = Callable[[str, list[str], dict[str, str]], Any]

_UNSET: Any = object()


@dataclass(frozen=True)
class Program:
    """
    The file the running process was started from.

    Attributes:
        path: File whose changes trigger a restart
        executable: File handed to exec
        prefix: Arguments that replace argv[0] in the new process
    """

    path: str
    executable: str
    prefix: tuple[str, ...]

    def command(self, argv: Sequence[str]) -> list[str]:
        """Full argument list for the new image; argv[1:] is kept as is."""
        return [*self.prefix, *argv[1:]]


def _main_spec() -> ModuleSpec | None:
    main = sys.modules.get("__main__")
    return getattr(main, "__spec__", None)


def resolve_program(
    argv: Sequence[str],
    executable: str | None = None,
    frozen: bool | None = None,
    main_spec: ModuleSpec | None = _UNSET,
) -> Program:
    """
    Work out which file this process runs and how to exec it again.

    Args:
        argv: Original command line (sys.argv)
        executable: Interpreter or frozen binary (sys.executable)
        frozen: Whether this is a frozen application (sys.frozen)
        main_spec: Spec of __main__, set when started with ``-m``

    Returns:
        The resolved program

    Raises:
        RestartError: If the program file cannot be determined
    """
    if executable is None:
        executable = sys.executable
    if frozen is None:
        frozen = bool(getattr(sys, "frozen", False))
    if main_spec is _UNSET:
        main_spec = _main_spec()

    if not executable:
        raise RestartError("cannot get path to the interpreter: sys.executable is empty")
    executable = os.path.abspath(executable)

    if frozen:
        return Program(path=executable, executable=executable, prefix=(executable,))

    name = argv[0] if argv else ""
    if name in ("", "-c", "-"):
        raise RestartError(f"cannot get path to program {name!r}: not started from a file")

    path = name
    if not os.path.isabs(path):
        try:
            path = os.path.abspath(path)
        except OSError as e:
            raise RestartError(f"cannot get path to program {name!r} (launch with absolute path): {e}") from e
        if not os.path.isfile(path):
            raise RestartError(f"cannot get path to program {name!r} (launch with absolute path)")
    path = os.path.normpath(path)

    if main_spec is not None and main_spec.name and main_spec.name != "__main__":
        module = main_spec.name
        # "python -m pkg" runs pkg.__main__
        if module.endswith(".__main__"):
            module = module[: -len(".__main__")]
        return Program(path=path, executable=executable, prefix=(executable, "-m", module))

    return Program(path=path, executable=executable, prefix=(executable, path))


class RestartContext(LoggerMixin):
    """
    Everything needed to restart the process, in one place.

    Both the debounce timer and manual callers go through the same context:
    it caches the program resolved at setup, holds the closer for the
    notification source and the pre-exec hook, and performs the exec.
    """

    def __init__(
        self,
        argv: Sequence[str] | None = None,
        environ: Mapping[str, str] | None = None,
        execve: ExecFunc | None = None,
        executable: str | None = None,
        frozen: bool | None = None,
        main_spec: ModuleSpec | None = _UNSET,
        program: Program | None = None,
    ) -> None:
        """
        Initialize the context.

        Args:
            argv: Command line to preserve; defaults to a copy of sys.argv
            environ: Environment for the new image; defaults to os.environ
                as it is at restart time
            execve: Image replacement function; defaults to os.execve
            executable: Interpreter path; defaults to sys.executable
            frozen: Frozen application flag; defaults to sys.frozen
            main_spec: Spec of __main__; looked up when not given
            program: Already resolved program, skipping resolution
        """
        self._argv = tuple(sys.argv if argv is None else argv)
        self._environ = environ
        self._execve = execve or os.execve
        self._executable = executable
        self._frozen = frozen
        self._main_spec = main_spec
        self._program = program
        self._closer: Callable[[], Any] | None = None
        self.on_exec: Callable[[], Any] | None = None

    @property
    def argv(self) -> tuple[str, ...]:
        """Command line captured when the context was created."""
        return self._argv

    @property
    def program(self) -> Program | None:
        """Program cached by ``setup``, if it ran."""
        return self._program

    def setup(self) -> Program:
        """
        Resolve and cache the program.

        Raises:
            RestartError: If the program file cannot be determined
        """
        if self._program is None:
            self._program = resolve_program(
                self._argv,
                executable=self._executable,
                frozen=self._frozen,
                main_spec=self._main_spec,
            )
        return self._program

    def set_closer(self, closer: Callable[[], Any] | None) -> None:
        """Register the function releasing the watch subscription."""
        self._closer = closer

    def restart(self) -> NoReturn:
        """
        Replace the current process image.

        Releases the subscription, runs the pre-exec hook, then execs the
        program with the original arguments and the full environment.
        Finally blocks, atexit handlers and signal handlers do not run.

        Raises:
            RestartError: If the program cannot be resolved or exec fails
        """
        program = self.setup()
        args = program.command(self._argv)
        env = dict(os.environ if self._environ is None else self._environ)

        closer = self._closer
        if closer is not None:
            try:
                closer()
            except Exception as e:
                self.log.debug("close_failed", error=str(e))

        if self.on_exec is not None:
            self.on_exec()

        self.log.info("restart_exec", executable=program.executable, args=args)
        _flush_std_streams()

        try:
            self._execve(program.executable, args, env)
        except OSError as e:
            error = RestartError(f"cannot restart: {e}")
            self.log.critical("restart_failed", executable=program.executable, error=str(e))
            raise error from e

        self.log.critical("restart_failed", executable=program.executable, error="exec returned")
        raise RestartError(f"cannot restart: exec of {program.executable!r} returned")


def _flush_std_streams() -> None:
    """Exec drops Python-level buffers; write them out first."""
    for stream in (sys.stdout, sys.stderr):
        if stream is None:
            continue
        try:
            stream.flush()
        except (OSError, ValueError):
            continue
