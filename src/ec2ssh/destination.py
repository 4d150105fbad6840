"""Parse the destination spellings accepted by ec2ssh, ec2sftp and ec2scp.

Supports:
- SSH:   [user@]host, [user@]host:port, [user@][ipv6]:port,
         ssh://[user@]host[:port]
- SFTP:  [user@]host[:path], sftp://[user@]host[:port][/path]
- SCP:   two operands, exactly one of them [user@]host:path

The login is split off at the LAST '@', as OpenSSH does.  Brackets around
IPv6 hosts are stripped; formatting helpers put them back where the
colon-separated forms need them.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import List, Optional, Tuple

from .errors import UsageError

SSH_SCHEME = "ssh://"
SFTP_SCHEME = "sftp://"


@dataclass
class Destination:
    """A parsed destination operand."""

    host: str
    login: Optional[str] = None
    port: Optional[str] = None
    remote_path: Optional[str] = None


@dataclass
class ScpOperands:
    """Result of parsing the two scp operands."""

    destination: Destination
    local_path: str
    upload: bool  # True = local -> remote


def split_login(token: str) -> Tuple[Optional[str], str]:
    """Split ``user@rest`` at the last '@'.  Returns (login or None, rest)."""
    at_idx = token.rfind("@")
    if at_idx == -1:
        return None, token
    return token[:at_idx] or None, token[at_idx + 1 :]


def strip_brackets(host: str) -> str:
    """Remove surrounding brackets from an IPv6 literal."""
    if host.startswith("[") and host.endswith("]"):
        return host[1:-1]
    return host


def bracket_host(host: str) -> str:
    """Wrap an IPv6 literal in brackets for host:rest forms."""
    if ":" in host:
        return f"[{host}]"
    return host


def _split_host_rest(text: str) -> Tuple[str, Optional[str]]:
    """Split ``host:rest`` honoring ``[ipv6]:rest``.

    Returns the host (brackets stripped) and the rest, or None when there
    is no separating colon.
    """
    if text.startswith("["):
        close = text.find("]")
        if close == -1:
            raise UsageError(f"invalid destination {text}: unterminated '['")
        host = text[1:close]
        after = text[close + 1 :]
        if not after:
            return host, None
        if not after.startswith(":"):
            raise UsageError(f"invalid destination {text}")
        return host, after[1:]

    colon = text.find(":")
    if colon == -1:
        return text, None
    return text[:colon], text[colon + 1 :]


def valid_port(port: str) -> bool:
    return port.isdigit() and 0 < int(port) < 65536


def check_port(port: str) -> str:
    """Return *port* unchanged, or raise UsageError if it is not 1-65535."""
    if not valid_port(port):
        raise UsageError(f"invalid port {port}")
    return port


def _check_port(port: Optional[str], token: str) -> Optional[str]:
    if port is None or port == "":
        return None
    if not valid_port(port):
        raise UsageError(f"invalid port in destination {token}")
    return port


def _require_host(host: str, token: str) -> str:
    if not host:
        raise UsageError(f"invalid destination {token}: missing hostname")
    return host


def parse_ssh_destination(token: str) -> Destination:
    """Parse an SSH destination.

    ``host:port`` is only recognized when the host part holds no other
    colon; an unbracketed IPv6 literal is taken whole.

    Raises:
        UsageError: empty host, bad port or malformed brackets.
    """
    text = token
    if text.startswith(SSH_SCHEME):
        text = text[len(SSH_SCHEME) :]
        text, slash, path = text.partition("/")
        if slash and path:
            raise UsageError(f"invalid destination {token}: ssh:// URL cannot carry a path")

    login, rest = split_login(text)

    if rest.startswith("["):
        host, port = _split_host_rest(rest)
    elif rest.count(":") == 1:
        host, port = rest.split(":", 1)
    else:
        host, port = rest, None

    return Destination(
        host=_require_host(host, token),
        login=login,
        port=_check_port(port, token),
    )


def parse_sftp_destination(token: str) -> Destination:
    """Parse an SFTP destination: ``[user@]host[:path]`` or an sftp:// URL."""
    if token.startswith(SFTP_SCHEME):
        text = token[len(SFTP_SCHEME) :]
        hostport, _, path = text.partition("/")
        login, rest = split_login(hostport)
        if rest.startswith("["):
            host, port = _split_host_rest(rest)
        elif ":" in rest:
            host, port = rest.rsplit(":", 1)
        else:
            host, port = rest, None
        return Destination(
            host=_require_host(host, token),
            login=login,
            port=_check_port(port, token),
            remote_path=path or None,
        )

    login, rest = split_login(token)
    host, path = _split_host_rest(rest)
    return Destination(
        host=_require_host(host, token),
        login=login,
        remote_path=path or None,
    )


def find_remote_colon(operand: str) -> int:
    """Return the index of the host/path colon in an scp operand, or -1.

    Follows OpenSSH's colon() from misc.c:
    - a leading ':' is part of a filename
    - a '/' before any unbracketed ':' makes it a local path (``./a:b``)
    - ``[ipv6]:path`` and ``user@[ipv6]:path`` split at ``]:``
    """
    if not operand or operand[0] == ":":
        return -1

    in_brackets = operand[0] == "["
    for i, ch in enumerate(operand):
        if ch == "@" and operand[i + 1 : i + 2] == "[":
            in_brackets = True
        elif ch == "]" and in_brackets and operand[i + 1 : i + 2] == ":":
            return i + 1
        elif ch == ":" and not in_brackets:
            return i
        elif ch == "/":
            return -1
    return -1


def is_remote_operand(operand: str) -> bool:
    return find_remote_colon(operand) != -1


def _parse_remote_operand(operand: str) -> Destination:
    colon = find_remote_colon(operand)
    login, host = split_login(operand[:colon])
    host = strip_brackets(host)
    if not host:
        raise UsageError("remote host cannot be empty")
    path = operand[colon + 1 :]
    if not path:
        raise UsageError("remote path cannot be empty")
    return Destination(host=host, login=login, remote_path=path)


def parse_scp_operands(operands: List[str]) -> ScpOperands:
    """Parse and validate the scp source and target.

    Raises:
        UsageError: not exactly two operands, no remote operand, two remote
            operands, or an empty remote host/path.
    """
    if len(operands) != 2:
        raise UsageError("scp requires exactly 2 operands (source and target)")

    source, target = operands
    source_remote = is_remote_operand(source)
    target_remote = is_remote_operand(target)

    if not source_remote and not target_remote:
        raise UsageError("no remote operand (use host:path syntax)")
    if source_remote and target_remote:
        raise UsageError("multiple remote operands")

    if target_remote:
        return ScpOperands(_parse_remote_operand(target), local_path=source, upload=True)
    return ScpOperands(_parse_remote_operand(source), local_path=target, upload=False)


def format_ssh_destination(dst: Destination) -> str:
    """Render ``[login@]host[:port]``; IPv6 is bracketed."""
    prefix = f"{dst.login}@" if dst.login else ""
    host = f"[{dst.host}]" if ":" in dst.host else dst.host
    if dst.port:
        return f"{prefix}{host}:{dst.port}"
    return f"{prefix}{host}"


def format_remote(login: Optional[str], host: str, path: Optional[str]) -> str:
    """Render ``[login@]host[:path]`` as scp/sftp expect it."""
    prefix = f"{login}@" if login else ""
    if path is None:
        return f"{prefix}{bracket_host(host)}"
    return f"{prefix}{bracket_host(host)}:{path}"


def format_sftp_destination(dst: Destination) -> str:
    """Render an SFTP destination; the URL form is used only to carry a port."""
    if dst.port:
        prefix = f"{dst.login}@" if dst.login else ""
        path = f"/{dst.remote_path}" if dst.remote_path else ""
        return f"{SFTP_SCHEME}{prefix}{bracket_host(dst.host)}:{dst.port}{path}"
    return format_remote(dst.login, dst.host, dst.remote_path)
