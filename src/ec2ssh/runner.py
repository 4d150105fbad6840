"""Child process runner.

Executes ssh/scp/sftp (or session-manager-plugin) via subprocess.  The
child inherits the terminal and environment for full interactive support;
the parent waits so the temporary key directory can be removed afterwards.

While the child runs, SIGINT is ignored in the parent (the terminal
delivers it to the child directly) and SIGTERM is forwarded to the child.
"""

from __future__ import annotations

import logging
import signal
import subprocess
from typing import Callable, List

from .errors import ChildError

log = logging.getLogger(__name__)

CommandRunner = Callable[[List[str]], int]


def run_command(cmd: List[str]) -> int:
    """Execute *cmd* with inherited stdio and return its exit code.

    Args:
        cmd: Full command to execute, e.g. ["ssh", "-i/tmp/k", "10.0.0.1"]

    Returns:
        Exit code from the child process.  A child killed by signal N
        reports 128 + N, as a shell would.

    Raises:
        ChildError: the binary cannot be started.
    """
    log.debug("running %s with args: %s", cmd[0], cmd[1:])
    try:
        proc = subprocess.Popen(cmd)
    except OSError as e:
        raise ChildError(f"cannot start {cmd[0]}: {e.strerror or e}") from e

    def _forward(signum, _frame):
        proc.send_signal(signum)

    old_int = signal.signal(signal.SIGINT, signal.SIG_IGN)
    old_term = signal.signal(signal.SIGTERM, _forward)
    try:
        returncode = proc.wait()
    finally:
        signal.signal(signal.SIGINT, old_int)
        signal.signal(signal.SIGTERM, old_term)

    if returncode < 0:
        returncode = 128 - returncode
    log.debug("%s exited with code %d", cmd[0], returncode)
    return returncode
