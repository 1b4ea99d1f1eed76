"""
Tests that restart a real Python process.

Requires Python 3.11+.
"""

import os
import subprocess
import sys
import textwrap
from pathlib import Path

import pytest

PROJECT_ROOT = Path(__file__).resolve().parents[1]

# The first run sets DAEMON_GENERATION; the environment is carried into the
# restarted run, which records itself and exits.
LIBRARY_DAEMON = textwrap.dedent(
    """
    import os
    import sys
    import threading
    import time

    import selfreload

    marker = sys.argv[1]

    def record(line):
        with open(marker, "a") as f:
            f.write(line + "\\n")

    if os.environ.get("DAEMON_GENERATION") == "2":
        record("restarted")
        sys.exit(0)

    os.environ["DAEMON_GENERATION"] = "2"

    def hook():
        record("hook")
        time.sleep(0.5)

    def touch():
        time.sleep(0.5)
        with open(__file__, "a") as f:
            f.write("# touched\\n")

    selfreload.set_on_exec(hook)
    threading.Thread(target=touch, daemon=True).start()
    selfreload.start()
    record("start-returned")
    """
)

WRAPPED_DAEMON = textwrap.dedent(
    """
    import os
    import sys
    import threading
    import time

    marker = sys.argv[1]

    def record(line):
        with open(marker, "a") as f:
            f.write(line + "\\n")

    if os.environ.get("DAEMON_GENERATION") == "2":
        record("restarted")
        os._exit(0)

    os.environ["DAEMON_GENERATION"] = "2"

    def touch():
        time.sleep(0.5)
        with open(__file__, "a") as f:
            f.write("# touched\\n")

    threading.Thread(target=touch, daemon=True).start()
    record("ran")
    """
)


@pytest.fixture
def child_env() -> dict[str, str]:
    """Environment for a child interpreter that can import selfreload."""
    env = dict(os.environ)
    env.pop("DAEMON_GENERATION", None)
    env["PYTHONPATH"] = os.pathsep.join(filter(None, [str(PROJECT_ROOT), env.get("PYTHONPATH")]))
    return env


def write_daemon(tmp_path: Path, source: str) -> Path:
    app_dir = tmp_path / "app"
    app_dir.mkdir()
    script = app_dir / "daemon.py"
    script.write_text(source)
    return script


class TestProcessRestart:
    """Test cases for restarting a real interpreter."""

    def test_start_blocks_until_exec(self, tmp_path: Path, child_env: dict[str, str]):
        """Test that a slow pre-exec hook does not let start() return first."""
        script = write_daemon(tmp_path, LIBRARY_DAEMON)
        marker = tmp_path / "marker.txt"

        result = subprocess.run(
            [sys.executable, str(script), str(marker)],
            cwd=tmp_path,
            env=child_env,
            capture_output=True,
            text=True,
            timeout=30,
        )

        assert result.returncode == 0, result.stderr
        assert marker.read_text() == "hook\nrestarted\n"

    def test_wrapper_restarts_program(self, tmp_path: Path, child_env: dict[str, str]):
        """Test that python -m selfreload re-runs the program after a change."""
        script = write_daemon(tmp_path, WRAPPED_DAEMON)
        marker = tmp_path / "marker.txt"

        result = subprocess.run(
            [sys.executable, "-m", "selfreload", str(script), str(marker)],
            cwd=tmp_path,
            env=child_env,
            capture_output=True,
            text=True,
            timeout=30,
        )

        assert result.returncode == 0, result.stderr
        assert marker.read_text() == "ran\nrestarted\n"
