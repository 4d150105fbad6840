"""Flag schemas for every intent."""

from __future__ import annotations

from .intent import Intent
from .sieve import Flag, FlagSet

REGION = Flag("region", long="region", takes_value=True)
PROFILE = Flag("profile", long="profile", takes_value=True)
DEBUG = Flag("debug", long="debug")

# Flags shared by ssh, scp and sftp.
SESSION_FLAGS = [
    REGION,
    PROFILE,
    DEBUG,
    Flag("eice_id", long="eice-id", takes_value=True),
    Flag("use_eice", long="use-eice"),
    Flag("use_ssm", long="use-ssm"),
    Flag("dst_type", long="destination-type", takes_value=True),
    Flag("addr_type", long="address-type", takes_value=True),
    Flag("no_send_keys", long="no-send-keys"),
    Flag("identity_file", short="i", takes_value=True),
]

# Short options of the child binaries that consume the next word.
SSH_VALUE_FLAGS = (
    "-B", "-b", "-c", "-D", "-E", "-e", "-F", "-I", "-J",
    "-L", "-m", "-O", "-o", "-P", "-R", "-S", "-W", "-w",
)
SCP_VALUE_FLAGS = ("-c", "-D", "-F", "-J", "-l", "-o", "-S", "-X")
SFTP_VALUE_FLAGS = (
    "-B", "-b", "-c", "-D", "-F", "-J", "-l", "-o", "-R", "-S", "-s", "-X",
)

SSH_FLAGS = FlagSet(
    SESSION_FLAGS
    + [
        Flag("login", short="l", takes_value=True),
        Flag("port", short="p", takes_value=True),
    ],
    passthrough_with_value=SSH_VALUE_FLAGS,
)

SCP_FLAGS = FlagSet(
    SESSION_FLAGS + [Flag("port", short="P", takes_value=True)],
    passthrough_with_value=SCP_VALUE_FLAGS,
)

SFTP_FLAGS = FlagSet(
    SESSION_FLAGS + [Flag("port", short="P", takes_value=True)],
    passthrough_with_value=SFTP_VALUE_FLAGS,
)

LIST_FLAGS = FlagSet(
    [REGION, PROFILE, DEBUG, Flag("columns", long="list-columns", takes_value=True)],
    strict=True,
)

SSM_FLAGS = FlagSet(
    [
        REGION,
        PROFILE,
        DEBUG,
        Flag("dst_type", long="destination-type", takes_value=True),
        Flag("timeout", long="timeout", takes_value=True),
    ],
    strict=True,
)

EICE_TUNNEL_FLAGS = FlagSet(
    [
        REGION,
        PROFILE,
        DEBUG,
        Flag("host", long="host", takes_value=True),
        Flag("port", long="port", takes_value=True),
        Flag("eice_id", long="eice-id", takes_value=True),
    ],
    strict=True,
)

SSM_TUNNEL_FLAGS = FlagSet(
    [
        REGION,
        PROFILE,
        DEBUG,
        Flag("instance_id", long="instance-id", takes_value=True),
        Flag("port", long="port", takes_value=True),
    ],
    strict=True,
)

FLAG_SETS = {
    Intent.SSH: SSH_FLAGS,
    Intent.SCP: SCP_FLAGS,
    Intent.SFTP: SFTP_FLAGS,
    Intent.LIST: LIST_FLAGS,
    Intent.SSM: SSM_FLAGS,
    Intent.EICE_TUNNEL: EICE_TUNNEL_FLAGS,
    Intent.SSM_TUNNEL: SSM_TUNNEL_FLAGS,
}
