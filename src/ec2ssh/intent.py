"""Select the operating mode from the binary name and a leading flag."""

from __future__ import annotations

import enum
import os
from typing import List, Tuple


class Intent(enum.Enum):
    HELP = "help"
    VERSION = "version"
    SSH = "ssh"
    SCP = "scp"
    SFTP = "sftp"
    LIST = "list"
    SSM = "ssm"
    EICE_TUNNEL = "eice-tunnel"
    SSM_TUNNEL = "ssm-tunnel"


# A leading override flag wins over the binary name.
OVERRIDE_FLAGS = {
    "--help": Intent.HELP,
    "-h": Intent.HELP,
    "--version": Intent.VERSION,
    "--ssh": Intent.SSH,
    "--scp": Intent.SCP,
    "--sftp": Intent.SFTP,
    "--list": Intent.LIST,
    "--ssm": Intent.SSM,
    "--eice-tunnel": Intent.EICE_TUNNEL,
    "--ssm-tunnel": Intent.SSM_TUNNEL,
}

BINARY_NAMES = {
    "ec2list": Intent.LIST,
    "ec2scp": Intent.SCP,
    "ec2sftp": Intent.SFTP,
    "ec2ssm": Intent.SSM,
}


def resolve_intent(argv0: str, args: List[str]) -> Tuple[Intent, List[str]]:
    """Return the intent and the arguments with any override flag removed.

    Unknown binary names fall back to SSH.
    """
    if args and args[0] in OVERRIDE_FLAGS:
        return OVERRIDE_FLAGS[args[0]], args[1:]

    name = os.path.basename(argv0)
    return BINARY_NAMES.get(name, Intent.SSH), list(args)
