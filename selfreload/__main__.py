"""
selfreload Command-Line Wrapper.

Runs a script or module and restarts it whenever its file changes.
Requires Python 3.11+.

Usage:
    python -m selfreload path/to/daemon.py [args...]
    python -m selfreload -m package.daemon [args...]
    python -m selfreload --watch templates path/to/daemon.py [args...]

Unlike calling ``selfreload.start`` from the program itself, the wrapper
keeps watching when the program exits or fails at import time, so fixing a
syntax error restarts it too.
"""

import argparse
import importlib.util
import os
import runpy
import sys
from collections.abc import Sequence

from selfreload.errors import ReloadError
from selfreload.reloader import Reloader, set_reloader, watch_dir
from selfreload.restart import Program, RestartContext
from selfreload.utils.logger import configure_logging, get_logger

logger = get_logger("selfreload.cli")


def build_parser() -> argparse.ArgumentParser:
    """Create the argument parser."""
    parser = argparse.ArgumentParser(
        prog="python -m selfreload",
        description="Run a Python program and restart it when its file changes.",
    )
    parser.add_argument(
        "-m",
        dest="module",
        metavar="MODULE",
        help="Run a library module as a script, like python -m",
    )
    parser.add_argument(
        "--watch",
        action="append",
        default=[],
        metavar="DIR",
        help="Also restart when a file directly inside DIR changes (repeatable)",
    )
    return parser


def split_argv(argv: Sequence[str]) -> tuple[list[str], list[str]]:
    """
    Split wrapper options from the program and its arguments.

    Everything after ``-m MODULE`` or the script path belongs to the
    program, including options the wrapper also knows.
    """
    i = 0
    while i < len(argv):
        arg = argv[i]
        if arg == "-m":
            return list(argv[: i + 2]), list(argv[i + 2 :])
        if arg == "--watch":
            i += 2
        elif arg.startswith("--watch=") or arg in ("-h", "--help"):
            i += 1
        elif arg == "--":
            return list(argv[:i]), list(argv[i + 1 :])
        else:
            return list(argv[:i]), list(argv[i:])
    return list(argv), []


def module_origin(module: str) -> str:
    """
    Find the source file ``python -m module`` would run.

    Raises:
        ReloadError: If the module cannot be found
    """
    try:
        spec = importlib.util.find_spec(module)
    except (ImportError, ValueError) as e:
        raise ReloadError(f"cannot find module {module!r}: {e}") from e
    if spec is None:
        raise ReloadError(f"cannot find module {module!r}")

    if spec.submodule_search_locations is not None:
        return module_origin(f"{module}.__main__")
    if not spec.origin or not os.path.isfile(spec.origin):
        raise ReloadError(f"module {module!r} has no source file to watch")
    return os.path.abspath(spec.origin)


def main(argv: Sequence[str] | None = None) -> int:
    """
    Run the wrapped program under the reloader.

    Returns:
        Exit status when the watch stream ends
    """
    configure_logging()
    parser = build_parser()
    wrapper_argv = list(sys.argv if argv is None else [sys.argv[0], *argv])
    head, args = split_argv(wrapper_argv[1:])
    options = parser.parse_args(head)

    if options.module is None and not args:
        parser.error("a script path or -m MODULE is required")

    try:
        if options.module is not None:
            target = module_origin(options.module)
            program_argv = [target, *args]
        else:
            target = os.path.abspath(args[0])
            if not os.path.isfile(target):
                parser.error(f"cannot find script {args[0]!r}")
            program_argv = [target, *args[1:]]
    except ReloadError as e:
        parser.error(str(e))

    # A restart runs the wrapper again with the same arguments
    program = Program(
        path=target,
        executable=os.path.abspath(sys.executable),
        prefix=(os.path.abspath(sys.executable), "-m", "selfreload"),
    )
    reloader = Reloader(context=RestartContext(argv=wrapper_argv, program=program))
    set_reloader(reloader)

    try:
        reloader.start(*(watch_dir(d, reloader.restart_or_exit) for d in options.watch))
    except ReloadError as e:
        logger.error("reloader_setup_failed", error=str(e))
        return 1

    sys.argv = program_argv
    try:
        if options.module is not None:
            runpy.run_module(options.module, run_name="__main__", alter_sys=True)
        else:
            # Make the script's directory importable, as python itself does
            sys.path.insert(0, os.path.dirname(target))
            runpy.run_path(target, run_name="__main__")
    except SystemExit as e:
        logger.info("program_exited", status=e.code)
    except Exception:
        logger.exception("program_failed")
    else:
        logger.info("program_exited", status=0)

    logger.info("waiting_for_changes", program=target)
    reloader.wait()
    return 0


if __name__ == "__main__":
    sys.exit(main())
