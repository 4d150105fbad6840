"""ec2ssh — connect to EC2 instances with ssh, scp and sftp using ephemeral keys.

Single entry point for all installed names; the binary name or a leading
override flag selects the mode:

  ec2ssh / --ssh     ssh to an instance (default)
  ec2scp / --scp     copy files with scp
  ec2sftp / --sftp   transfer files with sftp
  ec2ssm / --ssm     Session Manager shell or remote command
  ec2list / --list   list instances

``--eice-tunnel`` and ``--ssm-tunnel`` are internal modes run by ssh as a
ProxyCommand.
"""

from __future__ import annotations

import logging
import signal
import sys
from typing import List, Optional, TextIO

from .errors import Ec2sshError, RemoteCommandError, UsageError
from .intent import Intent, resolve_intent
from .listing import run_list
from .session import Collaborators, build_plan, run_session
from .ssm import run_ssm
from .tunnel import run_eice_tunnel, run_ssm_tunnel

VERSION = "0.1.0"

LOG_FORMAT = "DEBUG: %(asctime)s %(filename)s:%(lineno)d: %(message)s"

USAGE = f"""\
ec2ssh {VERSION} — ssh/scp/sftp to EC2 instances with ephemeral keys

Usage:
  ec2ssh [OPTIONS] [SSH_OPTIONS] destination [--] [command [argument ...]]
  ec2scp [OPTIONS] [SCP_OPTIONS] source target
  ec2sftp [OPTIONS] [SFTP_OPTIONS] destination
  ec2ssm [--region R] [--profile P] [--timeout D] destination [command ...]
  ec2list [--region R] [--profile P] [--list-columns COLUMNS]

  The mode can also be chosen with a leading --ssh, --scp, --sftp, --ssm
  or --list.

Destination:
  Instance ID, private/public IPv4 or IPv6 address, private DNS name or
  Name tag, optionally as user@dest, dest:port, [ipv6]:port or
  ssh://user@dest:port.  scp takes user@dest:path; sftp also accepts
  sftp://user@dest:port/path.

Examples:
  ec2ssh -l ec2-user i-0123456789abcdef0
  ec2ssh -p 2222 --address-type public ec2-user@app01
  ec2ssh --use-eice ip-10-0-0-1
  ec2ssh --use-eice -L 8888:127.0.0.1:8888 -N app01
  ec2scp ./config.yaml ubuntu@web-prod:/etc/app/
  ec2ssm web-prod -- uptime

Options:
  --region REGION          AWS region (default: AWS SDK configuration)
  --profile PROFILE        AWS profile (default: AWS SDK configuration)
  --use-eice               Connect through an EC2 Instance Connect Endpoint
  --eice-id ID             Endpoint to use; implies --use-eice
                           (default: discovered from the instance VPC)
  --use-ssm                Connect through Session Manager
  --destination-type TYPE  id, private_ip, public_ip, ipv6, private_dns
                           or name_tag (default: guessed)
  --address-type TYPE      private, public or ipv6
                           (default: first of private, public, ipv6)
  --no-send-keys           Do not push a key with EC2 Instance Connect
  -i FILE                  Use FILE and FILE.pub instead of a generated key
  --list-columns COLUMNS   ID,NAME,STATE,TYPE,AZ,PRIVATE-IP,PUBLIC-IP,IPV6,
                           PRIVATE-DNS,PUBLIC-DNS
                           (default: ID,NAME,STATE,PRIVATE-IP,PUBLIC-IP)
  --timeout DURATION       ec2ssm command timeout, e.g. 90s, 2m (default: 60s)
  --debug                  Log debug messages to stderr
  --help, -h               Show this help
  --version                Show version

All other options are passed to ssh, scp or sftp unchanged.
"""


def setup_logging(debug: bool) -> None:
    """Send ``ec2ssh.*`` debug records to stderr when *debug* is set."""
    logger = logging.getLogger("ec2ssh")
    for handler in list(logger.handlers):
        logger.removeHandler(handler)
    logger.propagate = False
    if debug:
        handler = logging.StreamHandler(sys.stderr)
        handler.setFormatter(logging.Formatter(LOG_FORMAT))
        logger.addHandler(handler)
        logger.setLevel(logging.DEBUG)
    else:
        logger.addHandler(logging.NullHandler())
        logger.setLevel(logging.WARNING)


def _wants_debug(args: List[str]) -> bool:
    for arg in args:
        if arg == "--":
            return False
        if arg == "--debug":
            return True
    return False


def _terminate(signum, _frame):
    # Unwinds context managers so the temporary key directory is removed.
    raise SystemExit(128 + signum)


def dispatch(intent: Intent, args: List[str], collab: Optional[Collaborators] = None) -> int:
    """Run *intent* and return the process exit code."""
    if intent in (Intent.SSH, Intent.SCP, Intent.SFTP):
        return run_session(build_plan(intent, args), collab)
    if intent is Intent.LIST:
        return run_list(args, collab)
    if intent is Intent.SSM:
        return run_ssm(args, collab)
    if intent is Intent.EICE_TUNNEL:
        return run_eice_tunnel(args, collab)
    if intent is Intent.SSM_TUNNEL:
        return run_ssm_tunnel(args, collab)
    raise Ec2sshError(f"unhandled intent {intent.value}")


def run(
    argv: List[str],
    collab: Optional[Collaborators] = None,
    stdout: Optional[TextIO] = None,
    stderr: Optional[TextIO] = None,
) -> int:
    """Run ec2ssh for *argv* (including argv[0]) and return the exit code.

    This is the only place errors are printed.
    """
    stdout = stdout or sys.stdout
    stderr = stderr or sys.stderr

    intent, args = resolve_intent(argv[0], argv[1:])
    if intent is Intent.HELP:
        stdout.write(USAGE)
        return 0
    if intent is Intent.VERSION:
        print(VERSION, file=stdout)
        return 0

    setup_logging(_wants_debug(args))
    logging.getLogger(__name__).debug("intent %s, args %s", intent.value, args)

    try:
        return dispatch(intent, args, collab)
    except UsageError as e:
        print(f"ec2ssh: {e}", file=stderr)
        stderr.write("\n" + USAGE)
        return 1
    except RemoteCommandError as e:
        print(f"ec2ssh: {e}", file=stderr)
        return e.exit_code
    except Ec2sshError as e:
        print(f"ec2ssh: {e}", file=stderr)
        return 1
    except KeyboardInterrupt:
        print(file=stderr)
        return 130


def main() -> None:
    """Console script entry point for every installed name."""
    signal.signal(signal.SIGTERM, _terminate)
    sys.exit(run(sys.argv))


if __name__ == "__main__":
    main()
