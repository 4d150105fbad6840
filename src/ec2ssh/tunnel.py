"""Subordinate tunnel intents run by ssh as a ProxyCommand.

``--eice-tunnel`` relays stdin/stdout over a WebSocket to an EC2 Instance
Connect Endpoint.  ``--ssm-tunnel`` hands port forwarding to the Session
Manager plugin.
"""

from __future__ import annotations

import asyncio
import logging
import sys
from typing import Any, Dict, List, Optional

import websockets
import websockets.exceptions

from .destination import check_port
from .eice import create_tunnel_uri, get_endpoint
from .errors import TunnelError, UsageError
from .options import EICE_TUNNEL_FLAGS, SSM_TUNNEL_FLAGS
from .session import Collaborators
from .sieve import FlagSet
from .ssm import start_ssh_tunnel

log = logging.getLogger(__name__)

READ_SIZE = 8192


def _parse_tunnel_flags(flag_set: FlagSet, args: List[str], required: List[str]) -> Dict[str, Any]:
    sifted = flag_set.sift(args)
    if sifted.positionals:
        raise UsageError(f"unexpected argument {sifted.positionals[0]}")
    flags = sifted.flags
    for name in required:
        if not flags[name.replace("-", "_")]:
            raise UsageError(f"missing required flag --{name}")
    check_port(flags["port"])
    return flags


async def stdin_to_ws(reader: asyncio.StreamReader, websocket: Any) -> None:
    while True:
        data = await reader.read(READ_SIZE)
        if not data:
            log.debug("stdin closed")
            return
        try:
            await websocket.send(data)
        except websockets.exceptions.ConnectionClosed:
            return


async def ws_to_stdout(websocket: Any, writer: Any) -> None:
    try:
        async for message in websocket:
            if isinstance(message, str):
                message = message.encode()
            writer.write(message)
            await writer.drain()
    except websockets.exceptions.ConnectionClosed as e:
        log.debug("websocket closed: %s", e)
    else:
        log.debug("websocket closed")


async def relay(websocket: Any, reader: asyncio.StreamReader, writer: Any) -> None:
    """Pump bytes both ways until either side closes.

    Both pumps start before either can block; when one finishes the other
    is cancelled.
    """
    pumps = {
        asyncio.ensure_future(stdin_to_ws(reader, websocket)),
        asyncio.ensure_future(ws_to_stdout(websocket, writer)),
    }
    done, pending = await asyncio.wait(pumps, return_when=asyncio.FIRST_COMPLETED)
    for task in pending:
        task.cancel()
    await asyncio.gather(*pending, return_exceptions=True)
    for task in done:
        task.result()


async def _stdio_streams():
    loop = asyncio.get_running_loop()
    reader = asyncio.StreamReader()
    protocol = asyncio.StreamReaderProtocol(reader)
    await loop.connect_read_pipe(lambda: protocol, sys.stdin.buffer)

    transport, writer_protocol = await loop.connect_write_pipe(
        asyncio.streams.FlowControlMixin, sys.stdout.buffer
    )
    writer = asyncio.StreamWriter(transport, writer_protocol, reader, loop)
    return reader, writer


async def open_tunnel(uri: str) -> None:
    """Connect to *uri* and relay the process's stdin/stdout through it.

    Raises:
        TunnelError: the WebSocket handshake or connection failed.
    """
    try:
        async with websockets.connect(uri, max_size=None, compression=None) as websocket:
            log.debug("websocket connected")
            reader, writer = await _stdio_streams()
            await relay(websocket, reader, writer)
    except websockets.exceptions.InvalidHandshake as e:
        raise TunnelError(f"unable to open tunnel: {e}") from e
    except (OSError, asyncio.TimeoutError) as e:
        raise TunnelError(f"unable to open tunnel: {e}") from e


def run_eice_tunnel(args: List[str], collab: Optional[Collaborators] = None) -> int:
    """Entry point for ``--eice-tunnel --host H --port P --eice-id E``."""
    collab = collab or Collaborators()
    flags = _parse_tunnel_flags(EICE_TUNNEL_FLAGS, args, ["host", "port", "eice-id"])

    cloud = collab.cloud(flags["region"], flags["profile"])
    endpoint = get_endpoint(cloud, flags["eice_id"])
    uri = create_tunnel_uri(cloud, endpoint, flags["host"], flags["port"])

    asyncio.run(open_tunnel(uri))
    return 0


def run_ssm_tunnel(args: List[str], collab: Optional[Collaborators] = None) -> int:
    """Entry point for ``--ssm-tunnel --instance-id I --port P``."""
    collab = collab or Collaborators()
    flags = _parse_tunnel_flags(SSM_TUNNEL_FLAGS, args, ["instance-id", "port"])

    cloud = collab.cloud(flags["region"], flags["profile"])
    return start_ssh_tunnel(cloud, flags["instance_id"], flags["port"], collab)
