"""Session Manager: interactive shells, remote commands and the plugin.

Interactive sessions are handed to the ``session-manager-plugin`` binary
the same way the AWS CLI does it: the StartSession response and request
are passed as JSON on its command line.
"""

from __future__ import annotations

import json
import logging
import re
import shlex
import sys
from typing import Any, Dict, List, Optional, TextIO

from .aws import CloudClient, error_code
from .destination import parse_ssh_destination
from .errors import ChildError, Ec2sshError, ProviderError, RemoteCommandError, UsageError
from .options import SSM_FLAGS
from .resolver import parse_dst_type, resolve_instance
from .session import Collaborators

log = logging.getLogger(__name__)

PLUGIN = "session-manager-plugin"
SSH_DOCUMENT = "AWS-StartSSHSession"

DEFAULT_TIMEOUT = 60.0
POLL_INITIAL = 0.1
POLL_MAX = 5.0

TERMINAL_STATUSES = frozenset(["Success", "Failed", "TimedOut", "Cancelled"])

_DURATION_RE = re.compile(r"^(?:(\d+)h)?(?:(\d+)m)?(?:(\d+)s)?$")


def parse_duration(text: str) -> float:
    """Parse ``90``, ``90s``, ``2m``, ``1h`` or ``1m30s`` into seconds."""
    if text.isdigit():
        seconds = int(text)
    else:
        match = _DURATION_RE.match(text)
        if not text or not match:
            raise UsageError(f"invalid duration {text}")
        hours, minutes, secs = (int(g) if g else 0 for g in match.groups())
        seconds = hours * 3600 + minutes * 60 + secs
    if seconds <= 0:
        raise UsageError(f"invalid duration {text}")
    return float(seconds)


def run_plugin(
    cloud: CloudClient,
    request: Dict[str, Any],
    collab: Collaborators,
) -> int:
    """Start an SSM session and hand it to session-manager-plugin.

    The session is terminated when the plugin cannot be started.
    """
    response = cloud.start_session(**request)
    argv = [
        PLUGIN,
        json.dumps(response),
        cloud.region or "",
        "StartSession",
        cloud.profile or "",
        json.dumps(request),
        cloud.ssm_endpoint_url(),
    ]
    try:
        return collab.run_command(argv)
    except ChildError:
        cloud.terminate_session(response["SessionId"])
        raise


def start_shell(cloud: CloudClient, instance_id: str, collab: Collaborators) -> int:
    return run_plugin(cloud, {"Target": instance_id}, collab)


def start_ssh_tunnel(cloud: CloudClient, instance_id: str, port: str, collab: Collaborators) -> int:
    request = {
        "Target": instance_id,
        "DocumentName": SSH_DOCUMENT,
        "Parameters": {"portNumber": [port]},
    }
    return run_plugin(cloud, request, collab)


def wait_for_command(
    cloud: CloudClient,
    command_id: str,
    instance_id: str,
    timeout: float,
    collab: Collaborators,
) -> Dict[str, Any]:
    """Poll GetCommandInvocation until the command reaches a final status.

    Polls back off from 100ms, doubling up to 5s.  An invocation that does
    not exist yet (right after SendCommand) is polled again.

    Raises:
        Ec2sshError: *timeout* seconds passed without a final status.
    """
    deadline = collab.clock() + timeout
    delay = POLL_INITIAL
    while True:
        collab.sleep(delay)
        try:
            invocation = cloud.get_command_invocation(command_id, instance_id)
        except ProviderError as e:
            if error_code(e) != "InvocationDoesNotExist":
                raise
            log.debug("invocation %s not registered yet", command_id)
        else:
            status = invocation.get("Status")
            log.debug("command %s status %s", command_id, status)
            if status in TERMINAL_STATUSES:
                return invocation

        if collab.clock() >= deadline:
            raise Ec2sshError("timeout waiting for command completion")
        delay = min(delay * 2, POLL_MAX)


def run_remote_command(
    cloud: CloudClient,
    instance_id: str,
    command: List[str],
    timeout: float,
    collab: Collaborators,
    stdout: Optional[TextIO] = None,
    stderr: Optional[TextIO] = None,
) -> int:
    """Run *command* through SendCommand and relay its output.

    Returns:
        0 when the command succeeded.

    Raises:
        RemoteCommandError: the command failed; carries its exit code.
        Ec2sshError: the command timed out, was cancelled, or polling
            timed out.
    """
    stdout = stdout or sys.stdout
    stderr = stderr or sys.stderr

    script = shlex.join(command)
    log.debug("running remote command %s", script)
    command_id = cloud.send_command(instance_id, [script])
    invocation = wait_for_command(cloud, command_id, instance_id, timeout, collab)

    stdout.write(invocation.get("StandardOutputContent") or "")
    stdout.flush()
    stderr.write(invocation.get("StandardErrorContent") or "")
    stderr.flush()

    status = invocation["Status"]
    if status == "Success":
        return 0
    if status == "Failed":
        raise RemoteCommandError(invocation.get("ResponseCode") or 1)
    if status == "TimedOut":
        raise Ec2sshError("remote command timed out")
    raise Ec2sshError("remote command was cancelled")


def run_ssm(args: List[str], collab: Optional[Collaborators] = None) -> int:
    """Entry point for the ssm intent.

    With only a destination an interactive shell is started; any further
    words are run as a remote command.
    """
    collab = collab or Collaborators()
    sifted = SSM_FLAGS.sift(args)
    flags = sifted.flags

    if not sifted.positionals:
        raise UsageError("missing destination")
    destination = parse_ssh_destination(sifted.positionals[0])
    command = sifted.positionals[1:]

    dst_type = parse_dst_type(flags["dst_type"])
    timeout = parse_duration(flags["timeout"]) if flags["timeout"] else DEFAULT_TIMEOUT

    cloud = collab.cloud(flags["region"], flags["profile"])
    instance = resolve_instance(cloud, destination.host, dst_type)

    if not command:
        return start_shell(cloud, instance.instance_id, collab)
    return run_remote_command(cloud, instance.instance_id, command, timeout, collab)
