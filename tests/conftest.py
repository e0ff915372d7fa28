"""Shared pytest fixtures: a scripted stand-in for the Claude Code CLI."""

from __future__ import annotations

import json
import logging
import os
import stat
import sys
import textwrap
import time
from pathlib import Path

import pytest

from claude_code_runner.execution.process_executor import ProcessExecutor
from claude_code_runner.execution.timeout_guard import ProcessTimeoutGuard

FAKE_VERSION = "9.9.9 (Claude Code)"

# Behaviour is selected by the prompt text:
#   sleep:N      sleep N seconds, then reply
#   fail:N       print a diagnostic and exit with status N
#   lines:N:D    print N numbered lines, pausing D seconds between them
#   stderr       write one line to stderr and one to stdout
#   child:N      start a grandchild that sleeps N seconds, then sleep N
#   orphan:N     start a grandchild holding our stdout for N seconds, then exit 0
#   anything     reply "reply: <prompt>"
FAKE_CLI_SOURCE = """\
#!{python}
import json
import os
import subprocess
import sys
import time

LOG = os.environ.get("FAKE_CLAUDE_LOG")
ENV_KEYS = (
    "ANTHROPIC_API_KEY",
    "CLAUDE_CODE_OAUTH_TOKEN",
    "HOME",
    "NODE_EXTRA_CA_CERTS",
    "FAKE_EXTRA",
)


def record(event, **extra):
    if not LOG:
        return
    entry = {{
        "event": event,
        "argv": sys.argv[1:],
        "pid": os.getpid(),
        "time": time.time(),
        "cwd": os.getcwd(),
        "env": {{key: os.environ.get(key) for key in ENV_KEYS}},
    }}
    entry.update(extra)
    with open(LOG, "a", encoding="utf-8") as handle:
        handle.write(json.dumps(entry) + "\\n")


args = sys.argv[1:]
if args == ["--version"]:
    print("{version}")
    sys.exit(0)

# Returns immediately only when the parent closed our stdin.
stdin_data = sys.stdin.read()
prompt = args[args.index("-p") + 1] if "-p" in args else ""
record("start", stdin=stdin_data)

if prompt.startswith("sleep:"):
    time.sleep(float(prompt.split(":")[1]))
    print("slept")
elif prompt.startswith("fail:"):
    print("something went wrong")
    sys.stdout.flush()
    record("end")
    sys.exit(int(prompt.split(":")[1]))
elif prompt.startswith("lines:"):
    _, count, delay = prompt.split(":")
    for index in range(int(count)):
        print("line %d" % index)
        sys.stdout.flush()
        time.sleep(float(delay))
elif prompt == "stderr":
    sys.stderr.write("warning from stderr\\n")
    sys.stderr.flush()
    print("result")
elif prompt.startswith("child:"):
    seconds = prompt.split(":")[1]
    child = subprocess.Popen([sys.executable, "-c", "import time; time.sleep(%s)" % seconds])
    record("child", child_pid=child.pid)
    time.sleep(float(seconds))
elif prompt.startswith("orphan:"):
    seconds = prompt.split(":")[1]
    child = subprocess.Popen([sys.executable, "-c", "import time; time.sleep(%s)" % seconds])
    record("child", child_pid=child.pid)
    print("detached")
    sys.stdout.flush()
else:
    print("reply: " + prompt)

record("end")
"""


class CliLog:
    """Reads the JSON lines the fake CLI appends for every invocation."""

    def __init__(self, path: Path) -> None:
        self.path = path

    def records(self, event: str | None = None) -> list[dict]:
        if not self.path.exists():
            return []
        entries = [
            json.loads(line)
            for line in self.path.read_text(encoding="utf-8").splitlines()
            if line.strip()
        ]
        if event is None:
            return entries
        return [entry for entry in entries if entry["event"] == event]

    def argv_list(self) -> list[list[str]]:
        return [entry["argv"] for entry in self.records("start")]


def is_alive(pid: int) -> bool:
    """Return True when ``pid`` refers to a running (non-zombie) process."""

    try:
        os.kill(pid, 0)
    except ProcessLookupError:
        return False
    except PermissionError:
        return True
    try:
        stat_line = Path(f"/proc/{pid}/stat").read_text()
    except OSError:
        return True
    state = stat_line.rsplit(")", 1)[1].split()[0]
    return state not in {"Z", "X"}


def wait_until(predicate, timeout: float = 5.0, interval: float = 0.02) -> bool:
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        if predicate():
            return True
        time.sleep(interval)
    return predicate()


@pytest.fixture(name="is_alive")
def is_alive_fixture():
    return is_alive


@pytest.fixture(name="wait_until")
def wait_until_fixture():
    return wait_until


@pytest.fixture
def fake_cli(tmp_path: Path) -> Path:
    """Write an executable Python script that behaves like ``claude -p``."""

    if os.name == "nt":
        pytest.skip("The fake CLI relies on a POSIX shebang")
    script = tmp_path / "bin" / "claude"
    script.parent.mkdir()
    script.write_text(
        textwrap.dedent(FAKE_CLI_SOURCE).format(python=sys.executable, version=FAKE_VERSION),
        encoding="utf-8",
    )
    script.chmod(script.stat().st_mode | stat.S_IXUSR | stat.S_IXGRP | stat.S_IXOTH)
    return script


@pytest.fixture
def cli_log(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> CliLog:
    path = tmp_path / "fake-claude.log"
    monkeypatch.setenv("FAKE_CLAUDE_LOG", str(path))
    return CliLog(path)


@pytest.fixture
def guard():
    timeout_guard = ProcessTimeoutGuard()
    yield timeout_guard
    timeout_guard.shutdown()


@pytest.fixture
def process_executor(fake_cli: Path, cli_log: CliLog, guard: ProcessTimeoutGuard) -> ProcessExecutor:
    return ProcessExecutor(fake_cli, {"ANTHROPIC_API_KEY": "test-key"}, guard=guard)


@pytest.fixture(autouse=True)
def _restore_root_logging():
    """CLI commands reconfigure the root logger; put the original handlers back."""

    root = logging.getLogger()
    handlers = list(root.handlers)
    level = root.level
    yield
    root.handlers[:] = handlers
    root.setLevel(level)
