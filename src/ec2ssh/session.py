"""The ssh/scp/sftp session pipeline.

    sift -> parse destination -> resolve instance -> stage keys
         -> push key -> choose address -> plan proxy -> compose -> exec

Each stage fills in a field of :class:`SessionPlan`.  A failing stage
raises and the scoped key directory is released on the way out.

External effects (AWS session, key generation, process execution, user
lookup, self command) go through :class:`Collaborators` so tests can replace
them.
"""

from __future__ import annotations

import getpass
import logging
import time
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional

from . import aws, keys, proxy, runner
from .aws import CloudClient, Instance
from .composer import base_args, scp_args, sftp_args, ssh_args
from .destination import (
    Destination,
    ScpOperands,
    check_port,
    parse_scp_operands,
    parse_sftp_destination,
    parse_ssh_destination,
)
from .errors import KeyPushError, ProviderError, UsageError
from .intent import Intent
from .keys import KeyPair, stage_keys
from .options import FLAG_SETS
from .resolver import (
    AddrType,
    DstType,
    instance_addr,
    parse_addr_type,
    parse_dst_type,
    resolve_instance,
)

log = logging.getLogger(__name__)

CHILD_BINARIES = {
    Intent.SSH: "ssh",
    Intent.SCP: "scp",
    Intent.SFTP: "sftp",
}


@dataclass
class Collaborators:
    """Side-effecting dependencies of the pipeline."""

    load_session: Callable[[Optional[str], Optional[str]], Any] = aws.load_session
    make_cloud: Callable[[Any], CloudClient] = CloudClient
    generate_keypair: keys.KeyGenerator = keys.generate_keypair
    run_command: runner.CommandRunner = runner.run_command
    current_user: Callable[[], str] = getpass.getuser
    self_command: Callable[[], List[str]] = proxy.self_command
    sleep: Callable[[float], None] = time.sleep
    clock: Callable[[], float] = time.monotonic

    def cloud(self, region: Optional[str], profile: Optional[str]) -> CloudClient:
        return self.make_cloud(self.load_session(region, profile))


@dataclass
class SessionPlan:
    """Everything known about one connection, filled in stage by stage."""

    intent: Intent
    flags: Dict[str, Any]
    passthrough: List[str] = field(default_factory=list)
    dst_type: DstType = DstType.AUTO
    addr_type: AddrType = AddrType.AUTO
    destination: Optional[Destination] = None
    scp: Optional[ScpOperands] = None
    port: Optional[str] = None
    command: List[str] = field(default_factory=list)
    instance: Optional[Instance] = None
    key_pair: Optional[KeyPair] = None
    connect_addr: Optional[str] = None
    proxy_command: Optional[str] = None
    child_argv: List[str] = field(default_factory=list)

    @property
    def use_tunnel(self) -> bool:
        return bool(self.flags["use_eice"] or self.flags["use_ssm"])


def build_plan(intent: Intent, args: List[str]) -> SessionPlan:
    """Parse *args* for a connecting intent.

    Raises:
        UsageError: bad flags, conflicting tunnel options, a malformed
            destination, or neither a destination nor passthrough flags.
    """
    sifted = FLAG_SETS[intent].sift(args)
    flags = sifted.flags

    if flags["eice_id"]:
        flags["use_eice"] = True
    if flags["use_eice"] and flags["use_ssm"]:
        raise UsageError("--use-eice and --use-ssm are mutually exclusive")

    plan = SessionPlan(
        intent=intent,
        flags=flags,
        passthrough=sifted.passthrough,
        dst_type=parse_dst_type(flags["dst_type"]),
        addr_type=parse_addr_type(flags["addr_type"]),
        port=check_port(flags["port"]) if flags["port"] is not None else None,
    )

    positionals = sifted.positionals
    if intent is Intent.SCP:
        if positionals:
            plan.scp = parse_scp_operands(positionals)
            plan.destination = plan.scp.destination
    elif positionals:
        if intent is Intent.SSH:
            plan.destination = parse_ssh_destination(positionals[0])
            plan.command = positionals[1:]
        else:
            if len(positionals) > 1:
                raise UsageError(f"unexpected argument {positionals[1]}")
            plan.destination = parse_sftp_destination(positionals[0])
        # An explicit port flag wins over one embedded in the destination.
        if plan.port is None:
            plan.port = plan.destination.port

    if plan.destination is None and not plan.passthrough:
        raise UsageError("missing destination")

    return plan


def push_key(
    cloud: CloudClient,
    plan: SessionPlan,
    current_user: Callable[[], str],
) -> None:
    """Send the public key for the login the child will most likely use.

    Login fallback chain: ``user@`` in the destination, then ``-l``, then
    the local user.

    Raises:
        KeyPushError: the login cannot be determined or the push failed.
    """
    login = plan.destination.login or plan.flags.get("login")
    if not login:
        try:
            login = current_user()
        except (OSError, KeyError) as e:
            raise KeyPushError(f"unable to determine current user: {e}") from e

    try:
        cloud.send_ssh_public_key(plan.instance.instance_id, login, plan.key_pair.public_key)
    except ProviderError as e:
        raise KeyPushError(f"unable to send public key: {e}") from e


def compose(plan: SessionPlan) -> List[str]:
    """Return the child's argv (without the binary name)."""
    base = base_args(
        plan.proxy_command,
        plan.key_pair.private_key_path if plan.key_pair else None,
        plan.instance.instance_id if plan.instance else None,
        plan.passthrough,
    )
    if plan.intent is Intent.SSH:
        return ssh_args(
            base,
            plan.destination,
            plan.connect_addr,
            login_flag=plan.flags.get("login"),
            port=plan.port,
            command=plan.command,
        )
    if plan.intent is Intent.SCP:
        return scp_args(base, plan.scp, plan.connect_addr, port=plan.port)
    return sftp_args(base, plan.destination, plan.connect_addr, port=plan.port)


def run_passthrough(plan: SessionPlan, collab: Collaborators) -> int:
    """Run the child with only the passthrough flags (e.g. ``ssh -V``)."""
    binary = CHILD_BINARIES[plan.intent]
    log.debug("no destination, running %s in passthrough mode", binary)
    plan.child_argv = base_args(None, plan.flags["identity_file"], None, plan.passthrough)
    return collab.run_command([binary] + plan.child_argv)


def run_session(plan: SessionPlan, collab: Optional[Collaborators] = None) -> int:
    """Run the pipeline for *plan* and return the child's exit code.

    Raises:
        Ec2sshError: any stage failed before the child started.
    """
    collab = collab or Collaborators()
    if plan.destination is None:
        return run_passthrough(plan, collab)

    flags = plan.flags
    cloud = collab.cloud(flags["region"], flags["profile"])

    plan.instance = resolve_instance(cloud, plan.destination.host, plan.dst_type)

    with stage_keys(flags["identity_file"], collab.generate_keypair) as key_pair:
        plan.key_pair = key_pair

        if flags["no_send_keys"]:
            log.debug("not sending public key")
        else:
            push_key(cloud, plan, collab.current_user)

        if plan.use_tunnel:
            plan.connect_addr = plan.instance.instance_id
            plan.proxy_command = proxy.plan_proxy_command(
                cloud,
                plan.instance,
                use_eice=flags["use_eice"],
                use_ssm=flags["use_ssm"],
                eice_id=flags["eice_id"],
                region=flags["region"],
                profile=flags["profile"],
                debug=flags["debug"],
                program=collab.self_command(),
            )
        else:
            plan.connect_addr = instance_addr(plan.instance, plan.addr_type)

        plan.child_argv = compose(plan)
        return collab.run_command([CHILD_BINARIES[plan.intent]] + plan.child_argv)
