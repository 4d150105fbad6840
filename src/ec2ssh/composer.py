"""Compose the final argument vector for ssh, scp and sftp."""

from __future__ import annotations

from typing import List, Optional

from .destination import Destination, ScpOperands, format_remote


def base_args(
    proxy_command: Optional[str],
    private_key_path: Optional[str],
    instance_id: Optional[str],
    passthrough: List[str],
) -> List[str]:
    """Options common to every child: ProxyCommand, identity, host key alias."""
    args: List[str] = []
    if proxy_command:
        args.append(f"-oProxyCommand={proxy_command}")
    if private_key_path:
        args.append(f"-i{private_key_path}")
    if instance_id:
        args.append(f"-oHostKeyAlias={instance_id}")
    args.extend(passthrough)
    return args


def ssh_args(
    base: List[str],
    destination: Destination,
    host: str,
    login_flag: Optional[str] = None,
    port: Optional[str] = None,
    command: Optional[List[str]] = None,
) -> List[str]:
    """Append ``-l``, ``-p``, the target and the remote command.

    ``-l`` is emitted only when it was given on the command line; a login
    from ``user@host`` stays in the target.
    """
    args = list(base)
    if login_flag:
        args.append(f"-l{login_flag}")
    if port:
        args.append(f"-p{port}")
    prefix = f"{destination.login}@" if destination.login else ""
    args.append(prefix + host)
    if command:
        args.append("--")
        args.extend(command)
    return args


def scp_args(
    base: List[str],
    operands: ScpOperands,
    host: str,
    port: Optional[str] = None,
) -> List[str]:
    """Append ``-P`` and the two operands in their original direction."""
    args = list(base)
    if port:
        args.append(f"-P{port}")
    dst = operands.destination
    remote = format_remote(dst.login, host, dst.remote_path)
    if operands.upload:
        args += [operands.local_path, remote]
    else:
        args += [remote, operands.local_path]
    return args


def sftp_args(
    base: List[str],
    destination: Destination,
    host: str,
    port: Optional[str] = None,
) -> List[str]:
    """Append ``-P`` and ``[login@]host[:path]``."""
    args = list(base)
    if port:
        args.append(f"-P{port}")
    args.append(format_remote(destination.login, host, destination.remote_path))
    return args
